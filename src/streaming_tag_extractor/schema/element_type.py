"""Composite element types and their extraction declarations.

An ``ElementType`` describes, for the element that created it, which
descendant tags and attributes are extracted into which fields. Declarations
are made once, before extraction starts::

    item = extractor.element_type("item")
    item.extract_attribute("item", "id", "id")
    item.find("details").extract("price", "price", Float).end()

Paths declared with ``find``/``end`` are matched as ordered, gap-tolerant
subsequences of the open tags below the element, so ``find("a").find("b")``
matches ``<a><x><b>`` as well as ``<a><b>``.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from streaming_tag_extractor.schema.values import String, ValueType
from streaming_tag_extractor.shared.config import CoercionConfig
from streaming_tag_extractor.shared.errors import SchemaDeclarationError
from streaming_tag_extractor.shared.logging import get_logger

if TYPE_CHECKING:
    from streaming_tag_extractor.engine.context import ExtractionContext

TypeRef = Union[ValueType, str, type]

logger = get_logger(__name__, component="element_type")


@dataclass(eq=False)
class Extractable:
    """Declaration binding a tag (or one of its attributes) to a field.

    ``context`` holds the in-flight extraction for this declaration between
    the matching open tag and its completion. Only one extraction per
    declaration is tracked at a time; a tag nested inside another tag of the
    same name and declaration is not supported.
    """

    destination: str
    value_type: TypeRef = String
    path: Tuple[str, ...] = ()
    attribute: Optional[str] = None
    repeated: bool = False
    context: Optional["ExtractionContext"] = field(default=None, repr=False)

    @property
    def is_attribute(self) -> bool:
        return self.attribute is not None


class PathBuilder:
    """Relative path accumulated by ``find``/``end`` while declaring."""

    def __init__(self) -> None:
        self._segments: List[str] = []

    def push(self, tag_name: str) -> None:
        self._segments.append(tag_name)

    def pop(self) -> str:
        if not self._segments:
            raise SchemaDeclarationError("end() called without a matching find()")
        return self._segments.pop()

    def snapshot(self) -> Tuple[str, ...]:
        return tuple(self._segments)

    @property
    def depth(self) -> int:
        return len(self._segments)


def validates_path(declared: Sequence[str], open_tags: Sequence[str]) -> bool:
    """Check that ``declared`` occurs in ``open_tags`` as an ordered subsequence.

    Each declared segment is searched for after the previous match, so tags
    in between are allowed. An empty declaration always matches.
    """
    position = 0
    for segment in declared:
        try:
            position = open_tags.index(segment, position) + 1
        except ValueError:
            return False
    return True


class ElementType(ValueType):
    """Composite value type producing a mapping of extracted fields."""

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name or "element"
        self._extractables: Dict[str, Extractable] = {}
        self._builder: Optional[PathBuilder] = PathBuilder()

    # Declaration API

    def find(self, tag_name: str) -> "ElementType":
        """Scope following declarations to descendants reached through ``tag_name``."""
        self._require_builder().push(tag_name)
        return self

    def end(self) -> "ElementType":
        """Close the innermost ``find`` scope."""
        self._require_builder().pop()
        return self

    def extract(self, tag_name: str, destination: str, value_type: TypeRef = String) -> "ElementType":
        """Extract a single occurrence of ``tag_name``; later occurrences overwrite."""
        return self._declare(tag_name, Extractable(destination, value_type, self._current_path()))

    def extract_many(self, tag_name: str, destination: str, value_type: TypeRef = String) -> "ElementType":
        """Extract every occurrence of ``tag_name`` into a list, in document order."""
        return self._declare(
            tag_name,
            Extractable(destination, value_type, self._current_path(), repeated=True),
        )

    def extract_attribute(self, tag_name: str, attribute: str, destination: str) -> "ElementType":
        """Copy ``attribute`` of ``tag_name`` into ``destination`` as a raw string."""
        return self._declare(
            tag_name,
            Extractable(destination, String, self._current_path(), attribute=attribute),
        )

    def seal(self) -> "ElementType":
        """Finish declaring. The path builder is discarded and the type becomes read-only."""
        if self._builder is None:
            return self
        if self._builder.depth:
            logger.warning(
                "Element type sealed with unbalanced find()",
                extra={"element_type": self.name, "open_path": list(self._builder.snapshot())},
            )
        self._builder = None
        return self

    @property
    def sealed(self) -> bool:
        return self._builder is None

    @property
    def extractables(self) -> Mapping[str, Extractable]:
        return MappingProxyType(self._extractables)

    def release_contexts(self) -> None:
        """Drop any in-flight extraction references, e.g. after an aborted stream."""
        for extractable in self._extractables.values():
            extractable.context = None

    def _require_builder(self) -> PathBuilder:
        if self._builder is None:
            raise SchemaDeclarationError(
                f"Element type {self.name!r} is sealed; declare types before extracting"
            )
        return self._builder

    def _current_path(self) -> Tuple[str, ...]:
        return self._require_builder().snapshot()

    def _declare(self, tag_name: str, extractable: Extractable) -> "ElementType":
        if not tag_name:
            raise SchemaDeclarationError("Tag name cannot be empty")
        if not extractable.destination:
            raise SchemaDeclarationError(f"Destination field for {tag_name!r} cannot be empty")
        self._extractables[tag_name] = extractable
        return self

    # Value protocol

    def init_value(self) -> Dict[str, Any]:
        return {}

    def return_value(
        self, value: Dict[str, Any], options: Optional[CoercionConfig] = None
    ) -> Optional[Dict[str, Any]]:
        return value if value else None

    # Event handlers

    def on_enter(self, name: str, attributes: Dict[str, str], ctx: "ExtractionContext") -> None:
        # Attributes of the element that created this context.
        extractable = self._extractables.get(name)
        if extractable is not None and extractable.is_attribute and not extractable.path:
            self._write_attribute(extractable, attributes, ctx)

    def on_open_tag(self, name: str, attributes: Dict[str, str], ctx: "ExtractionContext") -> None:
        extractable = self._extractables.get(name)
        if extractable is None or not validates_path(extractable.path, ctx.tag_path):
            return

        if extractable.is_attribute:
            self._write_attribute(extractable, attributes, ctx)
            return

        child = ctx.push_context(
            extractable.value_type,
            lambda completed: self._finish_extraction(extractable, completed, ctx),
        )
        extractable.context = child
        child.enter(name, attributes)

    def on_close_tag(self, name: str, ctx: "ExtractionContext") -> None:
        # Completion is detected by the extractor when the depth returns to a
        # context's creation depth, never by matching close tag names.
        pass

    def on_text(self, text: str, ctx: "ExtractionContext") -> None:
        normalized = text.strip()
        if normalized:
            ctx.report_unhandled_text(normalized)

    def _write_attribute(
        self, extractable: Extractable, attributes: Dict[str, str], ctx: "ExtractionContext"
    ) -> None:
        value = attributes.get(extractable.attribute)
        if value:
            ctx.value[extractable.destination] = value

    def _finish_extraction(
        self, extractable: Extractable, child: "ExtractionContext", ctx: "ExtractionContext"
    ) -> None:
        value = child.return_value()
        if value is not None:
            if extractable.repeated:
                ctx.value.setdefault(extractable.destination, []).append(value)
            else:
                ctx.value[extractable.destination] = value
        extractable.context = None
