"""Configuration classes for streaming tag extraction.

Configuration objects are plain dataclasses that validate themselves on
construction. ``ExtractorConfig`` is frozen so a single instance can be shared
between extractors running in different threads.
"""

import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

DEFAULT_DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y/%m/%d",
    "%d %b %Y",
    "%a, %d %b %Y %H:%M:%S %z",  # RFC 822, as found in RSS feeds
    "%a, %d %b %Y %H:%M:%S %Z",
]


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigValidationError(ConfigError):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, field_name: Optional[str] = None,
                 suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.field_name = field_name
        self.suggestions = suggestions or []


@dataclass
class CoercionConfig:
    """Configuration for leaf value coercion."""

    # Permissive by default: malformed numbers become NaN, malformed dates
    # become INVALID_DATE.
    strict: bool = False
    date_formats: List[str] = field(default_factory=lambda: list(DEFAULT_DATE_FORMATS))

    def __post_init__(self) -> None:
        """Validate coercion configuration."""
        if any(not fmt for fmt in self.date_formats):
            raise ValueError("date_formats cannot contain empty formats")


@dataclass
class TokenizerConfig:
    """Configuration for the lxml tokenizer feeding the extractor."""

    strip_namespaces: bool = True
    resolve_entities: bool = False
    huge_tree: bool = False
    encoding: Optional[str] = None
    chunk_size: int = 65536

    def __post_init__(self) -> None:
        """Validate tokenizer configuration."""
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")


@dataclass(frozen=True)
class ExtractorConfig:
    """Complete configuration for an ``Extractor`` instance."""

    coercion: CoercionConfig = field(default_factory=CoercionConfig)
    tokenizer: TokenizerConfig = field(default_factory=TokenizerConfig)
    report_unhandled_text: bool = True
    max_depth: Optional[int] = None
    correlation_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate the complete extractor configuration."""
        try:
            self.coercion.__post_init__()
            self.tokenizer.__post_init__()
            if self.max_depth is not None and self.max_depth <= 0:
                raise ValueError("max_depth must be > 0 or None")
        except ValueError as e:
            raise ConfigValidationError(str(e)) from e

    def override(self, **kwargs: Any) -> "ExtractorConfig":
        """Create a new configuration with specific overrides.

        Nested fields use double underscores, e.g.
        ``config.override(coercion__strict=True, max_depth=64)``.
        """
        nested_overrides: Dict[str, Dict[str, Any]] = {}
        top_level: Dict[str, Any] = {}
        for key, value in kwargs.items():
            if "__" in key:
                component, field_name = key.split("__", 1)
                nested_overrides.setdefault(component, {})[field_name] = value
            else:
                top_level[key] = value

        for component, values in nested_overrides.items():
            if component not in ("coercion", "tokenizer"):
                raise ConfigValidationError(
                    f"Unknown configuration component: {component}",
                    field_name=component,
                    suggestions=["coercion", "tokenizer"],
                )
            top_level[component] = replace(getattr(self, component), **values)

        return replace(self, **top_level)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary format."""
        return {
            "coercion": {
                "strict": self.coercion.strict,
                "date_formats": list(self.coercion.date_formats),
            },
            "tokenizer": {
                "strip_namespaces": self.tokenizer.strip_namespaces,
                "resolve_entities": self.tokenizer.resolve_entities,
                "huge_tree": self.tokenizer.huge_tree,
                "encoding": self.tokenizer.encoding,
                "chunk_size": self.tokenizer.chunk_size,
            },
            "report_unhandled_text": self.report_unhandled_text,
            "max_depth": self.max_depth,
            "correlation_id": self.correlation_id,
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert configuration to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractorConfig":
        """Create configuration from dictionary.

        Unknown keys are rejected so typos in configuration files surface
        instead of silently falling back to defaults.
        """
        known = {"coercion", "tokenizer", "report_unhandled_text", "max_depth",
                 "correlation_id"}
        unknown = set(data) - known
        if unknown:
            raise ConfigValidationError(
                f"Unknown configuration keys: {sorted(unknown)}",
                suggestions=sorted(known),
            )

        try:
            values: Dict[str, Any] = {
                key: value for key, value in data.items()
                if key not in ("coercion", "tokenizer")
            }
            if "coercion" in data:
                values["coercion"] = CoercionConfig(**data["coercion"])
            if "tokenizer" in data:
                values["tokenizer"] = TokenizerConfig(**data["tokenizer"])
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(str(e)) from e

        return cls(**values)

    @classmethod
    def from_json(cls, json_str: str) -> "ExtractorConfig":
        """Create configuration from JSON string."""
        return cls.from_dict(json.loads(json_str))

    @classmethod
    def permissive(cls) -> "ExtractorConfig":
        """Default preset: sentinel values on coercion failure."""
        return cls()

    @classmethod
    def strict(cls) -> "ExtractorConfig":
        """Preset that raises on coercion failure."""
        return cls(coercion=CoercionConfig(strict=True))
