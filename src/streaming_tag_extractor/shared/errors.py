"""Exception hierarchy for streaming tag extraction."""

from typing import Any, Optional


class ExtractionError(Exception):
    """Base exception for all extraction errors."""


class SchemaMismatchError(ExtractionError):
    """A top-level tag has no registered element type.

    Fatal for the current stream: no result is emitted for the element and the
    extractor refuses further events until it is reset.
    """

    def __init__(self, tag_name: str) -> None:
        super().__init__(f"Unknown element type: {tag_name}")
        self.tag_name = tag_name


class ExtractionAbortedError(ExtractionError):
    """Events were delivered to an extractor whose stream already failed."""


class SchemaDeclarationError(ExtractionError):
    """A schema declaration is invalid or references an unknown type."""


class CoercionError(ExtractionError):
    """Leaf text could not be coerced and strict coercion is enabled."""

    def __init__(self, type_name: str, raw_value: str, reason: Optional[Any] = None) -> None:
        message = f"Cannot coerce {raw_value!r} to {type_name}"
        if reason is not None:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.type_name = type_name
        self.raw_value = raw_value
