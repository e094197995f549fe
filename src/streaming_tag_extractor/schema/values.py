"""Value types and leaf coercion for streaming tag extraction.

Every value type implements the same capability interface. Composite element
types override the tag handlers; leaf types only accumulate text and coerce it
when their element closes.
"""

import math
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from streaming_tag_extractor.shared.config import CoercionConfig
from streaming_tag_extractor.shared.errors import CoercionError

if TYPE_CHECKING:
    from streaming_tag_extractor.engine.context import ExtractionContext

_FLOAT_PREFIX = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_INTEGER_PREFIX = re.compile(r"[+-]?\d+")

_DEFAULT_COERCION = CoercionConfig()


class _InvalidDate:
    """Sentinel returned when date text cannot be parsed."""

    _instance: Optional["_InvalidDate"] = None

    def __new__(cls) -> "_InvalidDate":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "INVALID_DATE"


INVALID_DATE = _InvalidDate()


class ValueType(ABC):
    """Capability interface shared by leaf and composite value types.

    Handlers receive the live ``ExtractionContext`` as their mutation target.
    The defaults do nothing, so a type only overrides the events it cares
    about.
    """

    name: str = "value"

    @abstractmethod
    def init_value(self) -> Any:
        """Return the initial accumulated value for a new context."""

    @abstractmethod
    def return_value(self, value: Any, options: Optional[CoercionConfig] = None) -> Any:
        """Reduce an accumulated value to its final form, or None for absence."""

    def on_enter(self, name: str, attributes: Dict[str, str], ctx: "ExtractionContext") -> None:
        pass

    def on_open_tag(self, name: str, attributes: Dict[str, str], ctx: "ExtractionContext") -> None:
        pass

    def on_close_tag(self, name: str, ctx: "ExtractionContext") -> None:
        pass

    def on_text(self, text: str, ctx: "ExtractionContext") -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class LeafType(ValueType):
    """Scalar value type built from the trimmed text of its element.

    Empty text is absence for every leaf type, so the field is left out.
    """

    def init_value(self) -> str:
        return ""

    def on_text(self, text: str, ctx: "ExtractionContext") -> None:
        ctx.value += text.strip()

    def return_value(self, value: str, options: Optional[CoercionConfig] = None) -> Any:
        if not value:
            return None
        return self.coerce(value, options or _DEFAULT_COERCION)

    @abstractmethod
    def coerce(self, text: str, options: CoercionConfig) -> Any:
        """Convert accumulated text to the final value."""


class StringType(LeafType):
    """Text passthrough; empty text is absence."""

    name = "String"

    def coerce(self, text: str, options: CoercionConfig) -> str:
        return text


class FloatType(LeafType):
    """Base-10 float. Reads the longest numeric prefix; NaN when there is none."""

    name = "Float"

    def coerce(self, text: str, options: CoercionConfig) -> float:
        match = _FLOAT_PREFIX.fullmatch(text) if options.strict else _FLOAT_PREFIX.match(text)
        if match is None:
            if options.strict:
                raise CoercionError(self.name, text)
            return math.nan
        return float(match.group(0))


class IntegerType(LeafType):
    """Base-10 integer. Reads the leading digits; NaN when there are none."""

    name = "Integer"

    def coerce(self, text: str, options: CoercionConfig) -> Any:
        match = _INTEGER_PREFIX.fullmatch(text) if options.strict else _INTEGER_PREFIX.match(text)
        if match is None:
            if options.strict:
                raise CoercionError(self.name, text)
            return math.nan
        return int(match.group(0))


class DateType(LeafType):
    """Date and time values.

    ISO-8601 is tried first, then each of the configured ``date_formats``.
    Unparseable text yields ``INVALID_DATE``.
    """

    name = "Date"

    def coerce(self, text: str, options: CoercionConfig) -> Any:
        parsed = parse_date(text, options.date_formats)
        if parsed is None:
            if options.strict:
                raise CoercionError(self.name, text, "no matching date format")
            return INVALID_DATE
        return parsed


def parse_date(text: str, formats: Any = ()) -> Optional[datetime]:
    """Parse ``text`` as ISO-8601 or one of ``formats``; None on failure."""
    if not text:
        return None

    iso_text = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(iso_text)
    except ValueError:
        pass

    for fmt in formats:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


String = StringType()
Float = FloatType()
Integer = IntegerType()
Date = DateType()

BUILTIN_TYPES: Dict[str, LeafType] = {
    leaf.name: leaf for leaf in (String, Date, Float, Integer)
}

# Python types accepted wherever a value type is expected.
TYPE_ALIASES: Dict[Any, LeafType] = {
    str: String,
    float: Float,
    int: Integer,
    datetime: Date,
}


def is_nan(value: Any) -> bool:
    """Check for the NaN produced by failed numeric coercion."""
    return isinstance(value, float) and math.isnan(value)
