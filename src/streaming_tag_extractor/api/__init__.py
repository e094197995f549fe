"""Public API layer for streaming tag extraction."""

from .extract import build_extractor, extract_file, extract_string, to_jsonable

__all__ = [
    "build_extractor",
    "extract_file",
    "extract_string",
    "to_jsonable",
]
