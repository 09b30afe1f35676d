"""Content fingerprint stored per file record."""

from __future__ import annotations

import hashlib


def hash_content(content: str) -> str:
    """SHA-256 of the UTF-8 encoded *content*, as lowercase hex."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
