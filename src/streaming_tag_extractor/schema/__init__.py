"""Schema layer: value types, element types and declarative schema loading."""

from .element_type import ElementType, Extractable, PathBuilder, validates_path
from .loader import load_schema, load_schema_file
from .values import (
    BUILTIN_TYPES,
    INVALID_DATE,
    Date,
    DateType,
    Float,
    FloatType,
    Integer,
    IntegerType,
    LeafType,
    String,
    StringType,
    ValueType,
    is_nan,
    parse_date,
)

__all__ = [
    "ElementType",
    "Extractable",
    "PathBuilder",
    "validates_path",
    "load_schema",
    "load_schema_file",
    "BUILTIN_TYPES",
    "INVALID_DATE",
    "Date",
    "DateType",
    "Float",
    "FloatType",
    "Integer",
    "IntegerType",
    "LeafType",
    "String",
    "StringType",
    "ValueType",
    "is_nan",
    "parse_date",
]
