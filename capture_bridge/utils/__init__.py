from .hashing import content_fingerprint, normalize_text
from .logger import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "content_fingerprint",
    "get_logger",
    "normalize_text",
]
