"""Tests for transcript fingerprints."""

import hashlib

from capture_bridge.utils.hashing import content_fingerprint, normalize_text


def test_fingerprint_is_sha256_of_normalized_text() -> None:
    """Fingerprints should hash trimmed LF-normalized UTF-8 text."""
    expected = hashlib.sha256("first line\nsecond line".encode("utf-8")).hexdigest()

    assert content_fingerprint("  first line\r\nsecond line \n") == expected


def test_line_ending_variants_share_one_fingerprint() -> None:
    """CRLF, CR, and LF transcripts of the same text should collide."""
    assert (
        content_fingerprint("a\r\nb")
        == content_fingerprint("a\rb")
        == content_fingerprint("a\nb")
    )


def test_normalize_text_treats_none_as_empty() -> None:
    assert normalize_text(None) == ""
    assert content_fingerprint(None) == hashlib.sha256(b"").hexdigest()
