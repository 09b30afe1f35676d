"""File classification: chunk type by extension and the index eligibility filter."""

from __future__ import annotations

CODE_EXTENSIONS = frozenset(
    ["ts", "tsx", "js", "jsx", "mjs", "cjs", "py", "go", "rs", "java",
     "c", "cpp", "cc", "cxx", "h", "hpp", "sql", "sh", "bash"]
)
MARKDOWN_EXTENSIONS = frozenset(["md", "mdx", "markdown"])
CONFIG_EXTENSIONS = frozenset(["json", "yaml", "yml", "toml", "xml", "env", "ini", "cfg"])

INDEXABLE_EXTENSIONS = CODE_EXTENSIONS | MARKDOWN_EXTENSIONS | frozenset(
    ["json", "yaml", "yml", "toml", "txt"]
)

# Any path segment equal to one of these is skipped.
EXCLUDED_DIRS = frozenset(
    ["node_modules", ".git", "dist", "build", ".next", "__pycache__", "venv",
     ".venv", "target", ".idea", ".vscode", "coverage", ".wrangler", ".turbo",
     ".cache", ".mypy_cache", ".pytest_cache", ".tox"]
)
EXCLUDED_FILES = frozenset(
    ["package-lock.json", "yarn.lock", "pnpm-lock.yaml", "poetry.lock",
     "Cargo.lock", "composer.lock", "uv.lock"]
)


def file_extension(path: str) -> str:
    """Return the lower-cased extension of *path* without the dot ('' if none)."""
    name = path.replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def file_type(path: str) -> str:
    """Classify *path* as ``code``, ``markdown``, ``config`` or ``text``."""
    ext = file_extension(path)
    if ext in CODE_EXTENSIONS:
        return "code"
    if ext in MARKDOWN_EXTENSIONS:
        return "markdown"
    if ext in CONFIG_EXTENSIONS:
        return "config"
    return "text"


def should_index(path: str) -> bool:
    """True if *path* has an indexable extension and no excluded segment.

    Excluded: build output and dependency directories, VCS directories, lock
    files.
    """
    parts = [p for p in path.replace("\\", "/").split("/") if p]
    if not parts:
        return False
    if any(p in EXCLUDED_DIRS for p in parts[:-1]):
        return False
    if parts[-1] in EXCLUDED_FILES:
        return False
    return file_extension(path) in INDEXABLE_EXTENSIONS
