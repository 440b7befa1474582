"""Speech-to-text backend adapters."""

from .base import ModelAdapter, ModelHandle
from .factory import resolve_model_adapter

__all__ = [
    "ModelAdapter",
    "ModelHandle",
    "resolve_model_adapter",
]
