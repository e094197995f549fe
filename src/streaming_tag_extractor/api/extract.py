"""Simple extraction functions.

These are the one-call entry points: build an ``Extractor`` from a schema,
run it over a string or file, and return an ``ExtractionResult``.
"""

import math
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from streaming_tag_extractor.engine import Extractor
from streaming_tag_extractor.schema import INVALID_DATE, load_schema
from streaming_tag_extractor.shared import ExtractionResult, ExtractorConfig, get_logger

SchemaType = Union[Callable[[Extractor], Any], Mapping[str, Any]]

PREVIEW_LENGTH = 100


def build_extractor(schema: SchemaType, config: Optional[ExtractorConfig] = None) -> Extractor:
    """Create an extractor and declare ``schema`` on it.

    Args:
        schema: Callable receiving the extractor, or a ``load_schema`` mapping
        config: Optional extractor configuration

    Returns:
        Extractor ready to receive events
    """
    extractor = Extractor(config=config)
    if callable(schema):
        schema(extractor)
    else:
        load_schema(extractor, schema)
    return extractor


def extract_string(
    xml_string: Union[str, bytes],
    schema: SchemaType,
    config: Optional[ExtractorConfig] = None,
) -> ExtractionResult:
    """Extract structured results from markup held in a string.

    Examples:
        >>> def schema(extractor):
        ...     extractor.element_type("book").extract("title", "title")
        >>> extract_string("<book><title>Dune</title></book>", schema).result
        {'title': 'Dune'}
    """
    extractor = build_extractor(schema, config)
    logger = get_logger(__name__, extractor.correlation_id, "extract_string")
    logger.debug(
        "Starting string extraction",
        extra={
            "content_length": len(xml_string),
            "preview": xml_string[:PREVIEW_LENGTH],
        },
    )
    return extractor.parse_string(xml_string)


def extract_file(
    path: Union[str, Path],
    schema: SchemaType,
    config: Optional[ExtractorConfig] = None,
) -> ExtractionResult:
    """Extract structured results from a markup file, streamed in chunks."""
    extractor = build_extractor(schema, config)
    logger = get_logger(__name__, extractor.correlation_id, "extract_file")
    logger.debug("Starting file extraction", extra={"path": str(path)})
    return extractor.parse_file(path)


def to_jsonable(value: Any) -> Any:
    """Convert an extracted value to something ``json.dumps`` accepts.

    Dates become ISO strings; ``INVALID_DATE`` and non-finite floats become
    None.
    """
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_jsonable(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if value is INVALID_DATE:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value
