"""Extraction engine: the dual-stack state machine and its contexts."""

from .context import ExtractionContext
from .extractor import Extractor

__all__ = [
    "ExtractionContext",
    "Extractor",
]
