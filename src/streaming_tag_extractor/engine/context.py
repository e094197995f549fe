"""Extraction contexts: live instances of a value type during extraction."""

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from streaming_tag_extractor.schema.values import ValueType

if TYPE_CHECKING:
    from streaming_tag_extractor.engine.extractor import Extractor
    from streaming_tag_extractor.schema.element_type import TypeRef

LeaveCallback = Callable[["ExtractionContext"], None]


class ExtractionContext:
    """Accumulation state for one element being extracted.

    A context is created when its governing tag opens and is left when the
    tag-depth stack returns to ``creation_depth``. Events are forwarded to
    the value type with the context itself as the mutation target.
    """

    def __init__(
        self,
        extractor: "Extractor",
        value_type: ValueType,
        creation_depth: int,
        on_leave: Optional[LeaveCallback] = None,
    ) -> None:
        self.extractor = extractor
        self.value_type = value_type
        self.creation_depth = creation_depth
        self.on_leave = on_leave
        self.value: Any = value_type.init_value()

    def __repr__(self) -> str:
        return (
            f"ExtractionContext(type={self.value_type.name!r}, "
            f"depth={self.creation_depth}, value={self.value!r})"
        )

    @property
    def tag_path(self) -> List[str]:
        """Open tags from this context's element down to the current depth."""
        return self.extractor.tag_stack[self.creation_depth:]

    def enter(self, name: str, attributes: Dict[str, str]) -> None:
        self.value_type.on_enter(name, attributes, self)

    def on_open_tag(self, name: str, attributes: Dict[str, str]) -> None:
        self.value_type.on_open_tag(name, attributes, self)

    def on_close_tag(self, name: str) -> None:
        self.value_type.on_close_tag(name, self)

    def on_text(self, text: str) -> None:
        self.value_type.on_text(text, self)

    def leave(self) -> None:
        if self.on_leave is not None:
            self.on_leave(self)

    def return_value(self) -> Any:
        return self.value_type.return_value(self.value, self.extractor.config.coercion)

    def push_context(
        self, value_type: "TypeRef", on_leave: Optional[LeaveCallback] = None
    ) -> "ExtractionContext":
        return self.extractor.push_context(value_type, on_leave)

    def report_unhandled_text(self, text: str) -> None:
        self.extractor.report_unhandled_text(text, self)
