"""coderag configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (CODERAG_EMBEDDING_MODEL, CODERAG_GENERATION_MODEL, CODERAG_DB)
  3. Per-project coderag.yaml  (in the working directory)
  4. Global ~/.coderag/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".coderag"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "coderag.yaml"

DEFAULT_DB_PATH = ".coderag.db"

# Fields that suggest an API key — forbidden in global config.
# Does NOT match legitimate keys like max_tokens or chars_per_token.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|(?<!_per)_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["database", "embedding", "generation", "indexing", "chunking", "retrieval"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class DatabaseCfg:
    """Database location (coderag.yaml: database:)."""

    path: str = DEFAULT_DB_PATH


@dataclass
class EmbeddingCfg:
    """Embedding model and quota (coderag.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    daily_limit: int = 7_000
    batch_size: int = 50


@dataclass
class GenerationCfg:
    """Answer generation model and quota (coderag.yaml: generation:)."""

    model: str = "openai/gpt-4o-mini"
    title_model: str = "openai/gpt-4o-mini"
    daily_limit: int = 3_000
    max_tokens: int = 1_024
    history_messages: int = 6


@dataclass
class IndexingCfg:
    """Indexer batching and skip policy (coderag.yaml: indexing:)."""

    db_batch_size: int = 100
    vector_batch_size: int = 100
    recent_window_seconds: int = 3_600


@dataclass
class ChunkingCfg:
    """Chunk size budget and boundary tuning (coderag.yaml: chunking:).

    Attributes:
        max_tokens: Token budget per chunk.
        chars_per_token: Characters per token used to turn the budget into
            a character limit (512 × 4 = 2048 characters by default).
        overlap_lines: Lines carried from one fixed window into the next.
        min_boundary_gap: Lines that must separate two accepted code boundaries.
    """

    max_tokens: int = 512
    chars_per_token: int = 4
    overlap_lines: int = 3
    min_boundary_gap: int = 5

    @property
    def max_chars(self) -> int:
        return self.max_tokens * self.chars_per_token


@dataclass
class RetrievalCfg:
    """Query-time settings (coderag.yaml: retrieval:)."""

    top_k: int = 10
    history_limit: int = 10
    search_cache_ttl: int = 300


@dataclass
class CodeRagConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    indexing: IndexingCfg = field(default_factory=IndexingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: CodeRagConfig) -> None:
    """Reject values the pipeline cannot run with."""
    positive = {
        "embedding.dimensions": cfg.embedding.dimensions,
        "embedding.batch_size": cfg.embedding.batch_size,
        "indexing.db_batch_size": cfg.indexing.db_batch_size,
        "indexing.vector_batch_size": cfg.indexing.vector_batch_size,
        "chunking.max_tokens": cfg.chunking.max_tokens,
        "chunking.chars_per_token": cfg.chunking.chars_per_token,
        "retrieval.top_k": cfg.retrieval.top_k,
    }
    for name, value in positive.items():
        if value < 1:
            raise ConfigError(f"{name} must be >= 1, got {value}")
    non_negative = {
        "embedding.daily_limit": cfg.embedding.daily_limit,
        "generation.daily_limit": cfg.generation.daily_limit,
        "indexing.recent_window_seconds": cfg.indexing.recent_window_seconds,
        "chunking.overlap_lines": cfg.chunking.overlap_lines,
        "chunking.min_boundary_gap": cfg.chunking.min_boundary_gap,
        "retrieval.history_limit": cfg.retrieval.history_limit,
    }
    for name, value in non_negative.items():
        if value < 0:
            raise ConfigError(f"{name} must be >= 0, got {value}")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _parse_section(raw: Any, defaults: Any, section: str) -> Any:
    """Build a section dataclass from *raw*, coercing to each field's default type."""
    if raw is None:
        return defaults
    if not isinstance(raw, dict):
        raise ConfigError(f"Config section '{section}' must be a mapping.")
    values: dict[str, Any] = {}
    for f in fields(defaults):
        default = getattr(defaults, f.name)
        if f.name not in raw:
            values[f.name] = default
            continue
        try:
            values[f.name] = type(default)(raw[f.name])
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                f"Invalid value for {section}.{f.name}: {raw[f.name]!r}"
            ) from exc
    return type(defaults)(**values)


def _cfg_from_dict(data: dict[str, Any]) -> CodeRagConfig:
    """Build a *CodeRagConfig* from a merged raw YAML dict."""
    cfg = CodeRagConfig()
    for section in _KNOWN_SECTIONS:
        if section in data:
            setattr(
                cfg,
                section,
                _parse_section(data[section], getattr(cfg, section), section),
            )
    return cfg


def _apply_env_overrides(cfg: CodeRagConfig) -> CodeRagConfig:
    """Apply CODERAG_* environment variable overrides."""
    if model := os.environ.get("CODERAG_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("CODERAG_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db_path := os.environ.get("CODERAG_DB"):
        cfg.database.path = db_path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> CodeRagConfig:
    """Load and return a merged *CodeRagConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *coderag.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If the global config contains API-key-like fields, or a
            value has the wrong type or range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.coderag/config.yaml`` with defaults if it does not exist.

    Creates the parent directory with mode 0o700 and the file with 0o600.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# coderag global configuration — model defaults only.\n"
            "# NEVER store API keys here — use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
            "\n"
            "generation:\n"
            "  model: openai/gpt-4o-mini\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
