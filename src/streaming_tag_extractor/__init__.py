"""Streaming Tag Extractor.

Declarative, streaming extraction of structured records from tag trees.
A schema of element types says which nested elements and attributes map to
which fields and how their text is coerced; the extractor consumes open-tag,
close-tag and text events and emits one result per top-level element.

Progressive API Disclosure:
- Level 1: Simple functions - extract_string(), extract_file()
- Level 2: Configured extractor - Extractor class with element types
- Level 3: Raw event feeding - Extractor.on_open_tag/on_close_tag/on_text
"""

__version__ = "0.1.0"
__author__ = "Streaming Tag Extractor Team"

from .api import extract_file, extract_string
from .engine import ExtractionContext, Extractor
from .schema import (
    INVALID_DATE,
    Date,
    ElementType,
    Float,
    Integer,
    String,
    ValueType,
    load_schema,
)
from .shared import (
    ExtractionError,
    ExtractionResult,
    ExtractorConfig,
    SchemaDeclarationError,
    SchemaMismatchError,
)

__all__ = [
    # Version and metadata
    "__author__",
    "__version__",

    # Level 1: Simple extraction functions
    "extract_string",
    "extract_file",

    # Level 2: Extractor and schema
    "Extractor",
    "ExtractionContext",
    "ElementType",
    "ValueType",
    "load_schema",

    # Built-in leaf types
    "String",
    "Date",
    "Float",
    "Integer",
    "INVALID_DATE",

    # Results, configuration and errors
    "ExtractionResult",
    "ExtractorConfig",
    "ExtractionError",
    "SchemaDeclarationError",
    "SchemaMismatchError",
]
