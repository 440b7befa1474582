"""Content fingerprints for transcripts."""

from __future__ import annotations

import hashlib


def normalize_text(text: str | None) -> str:
    """Normalizes line endings and trims surrounding whitespace."""
    if text is None:
        return ""
    return text.replace("\r\n", "\n").replace("\r", "\n").strip()


def content_fingerprint(text: str | None) -> str:
    """Returns the SHA-256 hex digest of normalized transcript text."""
    return hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()
