"""Shared utilities for streaming tag extraction.

This package provides configuration objects, result and diagnostic types,
the exception hierarchy, and correlation-aware logging used by every layer.
"""

from .config import (
    CoercionConfig,
    ConfigError,
    ConfigValidationError,
    ExtractorConfig,
    TokenizerConfig,
)
from .errors import (
    CoercionError,
    ExtractionAbortedError,
    ExtractionError,
    SchemaDeclarationError,
    SchemaMismatchError,
)
from .logging import (
    CorrelationLogger,
    get_logger,
)
from .result import (
    DiagnosticEntry,
    DiagnosticSeverity,
    ExtractionMetrics,
    ExtractionResult,
)

__all__ = [
    "CoercionConfig",
    "ConfigError",
    "ConfigValidationError",
    "ExtractorConfig",
    "TokenizerConfig",
    "CoercionError",
    "ExtractionAbortedError",
    "ExtractionError",
    "SchemaDeclarationError",
    "SchemaMismatchError",
    "CorrelationLogger",
    "get_logger",
    "DiagnosticEntry",
    "DiagnosticSeverity",
    "ExtractionMetrics",
    "ExtractionResult",
]
