"""Tests for the extraction engine driven by raw tokenizer events.

Events are pushed straight into the extractor, without a tokenizer, so the
state machine is exercised exactly as an external tokenizer would drive it.
"""

import math
from datetime import datetime

import pytest

from streaming_tag_extractor.engine import ExtractionContext, Extractor
from streaming_tag_extractor.schema import (
    INVALID_DATE,
    Date,
    ElementType,
    Float,
    Integer,
)
from streaming_tag_extractor.shared import (
    CoercionError,
    DiagnosticSeverity,
    ExtractionAbortedError,
    ExtractionError,
    ExtractorConfig,
    SchemaDeclarationError,
    SchemaMismatchError,
)


def open_(extractor, name, **attributes):
    extractor.on_open_tag(name, attributes)


def element(extractor, name, text=None, **attributes):
    """Feed a complete leaf element: open tag, optional text, close tag."""
    extractor.on_open_tag(name, attributes)
    if text is not None:
        extractor.on_text(text)
    extractor.on_close_tag(name)


def catalog_extractor(**kwargs) -> Extractor:
    extractor = Extractor(**kwargs)
    item_type = ElementType("ItemType")
    item_type.extract("name", "name").extract_attribute("item", "id", "id")
    extractor.element_type("catalog").extract_many("item", "items", item_type)
    return extractor


class TestTopLevelMatching:
    """Root element matching and result emission."""

    def test_catalog_scenario(self) -> None:
        """Test repeated nested element types with attribute extraction."""
        extractor = catalog_extractor()

        open_(extractor, "catalog")
        open_(extractor, "item", id="1")
        element(extractor, "name", "Widget")
        extractor.on_close_tag("item")
        open_(extractor, "item", id="2")
        element(extractor, "name", "Gadget")
        extractor.on_close_tag("item")
        extractor.on_close_tag("catalog")

        assert extractor.results == [
            {"items": [{"id": "1", "name": "Widget"}, {"id": "2", "name": "Gadget"}]}
        ]

    def test_schema_without_declarations_yields_absence(self) -> None:
        """Test that an empty composite collapses to None."""
        extractor = Extractor()
        extractor.element_type("root")

        open_(extractor, "root")
        element(extractor, "child", "ignored")
        extractor.on_close_tag("root")

        assert extractor.results == [None]

    def test_unknown_top_level_tag_is_fatal(self) -> None:
        """Test that an unregistered root tag raises and emits nothing."""
        extractor = Extractor()
        extractor.element_type("known")

        with pytest.raises(SchemaMismatchError, match="unknown") as exc_info:
            open_(extractor, "unknown")

        assert exc_info.value.tag_name == "unknown"
        assert extractor.results == []
        assert extractor.context_stack == []
        errors = [d for d in extractor.diagnostics if d.severity == DiagnosticSeverity.ERROR]
        assert len(errors) == 1

    def test_events_after_fatal_error_are_refused(self) -> None:
        """Test that the extractor refuses to route events after a fatal error."""
        extractor = Extractor()

        with pytest.raises(SchemaMismatchError):
            open_(extractor, "unknown")

        with pytest.raises(ExtractionAbortedError):
            extractor.on_text("more")
        with pytest.raises(ExtractionAbortedError):
            extractor.on_close_tag("unknown")

    def test_reset_clears_fatal_state(self) -> None:
        """Test that reset allows a new stream after a failure."""
        extractor = Extractor()
        extractor.element_type("root").extract("a", "a")

        with pytest.raises(SchemaMismatchError):
            open_(extractor, "unknown")
        extractor.reset()

        open_(extractor, "root")
        element(extractor, "a", "value")
        extractor.on_close_tag("root")

        assert extractor.results == [{"a": "value"}]

    def test_one_result_per_top_level_element(self) -> None:
        """Test that consecutive top-level elements each produce a result."""
        extractor = Extractor()
        extractor.element_type("record").extract("id", "id", Integer)

        for value in ("1", "2", "3"):
            open_(extractor, "record")
            element(extractor, "id", value)
            extractor.on_close_tag("record")

        assert extractor.results == [{"id": 1}, {"id": 2}, {"id": 3}]
        assert extractor.metrics.results_emitted == 3

    def test_leaf_type_as_root(self) -> None:
        """Test that a registered leaf type can match a top-level element."""
        extractor = Extractor()
        extractor.register_type("price", Float)

        element(extractor, "price", " 12.50 ")

        assert extractor.results == [12.5]

    def test_text_outside_any_element_is_ignored(self) -> None:
        """Test that text before the first match is dropped silently."""
        extractor = Extractor()
        extractor.element_type("root")

        extractor.on_text("preamble")

        assert extractor.diagnostics == []
        assert extractor.metrics.text_events == 1


class TestValueReduction:
    """Reduction of completed contexts into their parents."""

    def test_extract_many_preserves_document_order(self) -> None:
        """Test that repeated extraction appends in close-tag order."""
        extractor = Extractor()
        extractor.element_type("list").extract_many("entry", "entries")

        open_(extractor, "list")
        for value in ("first", "second", "third"):
            element(extractor, "entry", value)
        extractor.on_close_tag("list")

        assert extractor.results == [{"entries": ["first", "second", "third"]}]

    def test_single_extraction_overwrites_on_reoccurrence(self) -> None:
        """Test that a second occurrence of a single extraction wins."""
        extractor = Extractor()
        extractor.element_type("root").extract("tag", "field")

        open_(extractor, "root")
        element(extractor, "tag", "first")
        element(extractor, "tag", "second")
        extractor.on_close_tag("root")

        assert extractor.results == [{"field": "second"}]

    def test_absent_values_are_not_attached(self) -> None:
        """Test that whitespace-only leaves leave the field unset."""
        extractor = Extractor()
        extractor.element_type("root").extract("title", "title").extract_many("tag", "tags")

        open_(extractor, "root")
        element(extractor, "title", "   \n  ")
        element(extractor, "tag", "")
        element(extractor, "tag", "kept")
        extractor.on_close_tag("root")

        assert extractor.results == [{"tags": ["kept"]}]

    def test_empty_nested_composite_is_not_attached(self) -> None:
        """Test that a nested element type with no fields is omitted."""
        extractor = Extractor()
        extractor.element_type("meta").extract("author", "author")
        extractor.element_type("doc").extract("meta", "meta", "meta").extract("title", "title")

        open_(extractor, "doc")
        open_(extractor, "meta")
        extractor.on_close_tag("meta")
        element(extractor, "title", "Report")
        extractor.on_close_tag("doc")

        assert extractor.results == [{"title": "Report"}]

    def test_typed_leaves_are_coerced(self) -> None:
        """Test Integer, Float and Date coercion through the engine."""
        extractor = Extractor()
        (
            extractor.element_type("row")
            .extract("count", "count", Integer)
            .extract("ratio", "ratio", Float)
            .extract("when", "when", Date)
        )

        open_(extractor, "row")
        element(extractor, "count", "42")
        element(extractor, "ratio", "3.14")
        element(extractor, "when", "2024-01-15")
        extractor.on_close_tag("row")

        assert extractor.results == [
            {"count": 42, "ratio": 3.14, "when": datetime(2024, 1, 15)}
        ]

    def test_malformed_numbers_and_dates_use_sentinels(self) -> None:
        """Test that permissive coercion attaches NaN and INVALID_DATE."""
        extractor = Extractor()
        extractor.element_type("row").extract("count", "count", Integer).extract(
            "when", "when", Date
        )

        open_(extractor, "row")
        element(extractor, "count", "many")
        element(extractor, "when", "someday")
        extractor.on_close_tag("row")

        result = extractor.results[0]
        assert math.isnan(result["count"])
        assert result["when"] is INVALID_DATE

    def test_strict_coercion_failure_is_fatal(self) -> None:
        """Test that strict mode raises instead of producing sentinels."""
        extractor = Extractor(config=ExtractorConfig.strict())
        extractor.element_type("row").extract("count", "count", Integer)

        open_(extractor, "row")
        open_(extractor, "count")
        extractor.on_text("12abc")

        with pytest.raises(CoercionError, match="Integer"):
            extractor.on_close_tag("count")
        assert extractor.results == []

    def test_value_type_can_be_referenced_by_name(self) -> None:
        """Test that registered names and Python types resolve to value types."""
        extractor = Extractor()
        extractor.element_type("author").extract("name", "name")
        (
            extractor.element_type("book")
            .extract("author", "author", "author")
            .extract("pages", "pages", int)
            .extract("price", "price", "Float")
        )

        open_(extractor, "book")
        open_(extractor, "author")
        element(extractor, "name", "Ursula")
        extractor.on_close_tag("author")
        element(extractor, "pages", "248")
        element(extractor, "price", "9.99")
        extractor.on_close_tag("book")

        assert extractor.results == [
            {"author": {"name": "Ursula"}, "pages": 248, "price": 9.99}
        ]

    def test_leaf_concatenates_trimmed_text_of_nested_tags(self) -> None:
        """Test that a leaf collects text from tags below it."""
        extractor = Extractor()
        extractor.element_type("root").extract("title", "title")

        open_(extractor, "root")
        open_(extractor, "title")
        extractor.on_text("Hello ")
        element(extractor, "em", " big ")
        extractor.on_text(" world")
        extractor.on_close_tag("title")
        extractor.on_close_tag("root")

        assert extractor.results == [{"title": "Hellobigworld"}]


class TestPathMatching:
    """Declared paths and gap-tolerant matching."""

    def _path_extractor(self) -> Extractor:
        extractor = Extractor()
        extractor.element_type("root").find("a").find("b").extract("target", "t").end().end()
        return extractor

    def test_path_tolerates_intervening_tags(self) -> None:
        """Test that <a><x><b><target> satisfies path [a, b]."""
        extractor = self._path_extractor()

        open_(extractor, "root")
        open_(extractor, "a")
        open_(extractor, "x")
        open_(extractor, "b")
        element(extractor, "target", "found")
        for name in ("b", "x", "a", "root"):
            extractor.on_close_tag(name)

        assert extractor.results == [{"t": "found"}]

    def test_path_requires_every_segment(self) -> None:
        """Test that the target is ignored when b never opens."""
        extractor = self._path_extractor()

        open_(extractor, "root")
        open_(extractor, "a")
        open_(extractor, "x")
        element(extractor, "target", "missed")
        for name in ("x", "a", "root"):
            extractor.on_close_tag(name)

        assert extractor.results == [None]
        assert any("missed" in d.message for d in extractor.diagnostics)

    def test_path_requires_segment_order(self) -> None:
        """Test that [a, b] does not match b opened above a."""
        extractor = self._path_extractor()

        open_(extractor, "root")
        open_(extractor, "b")
        open_(extractor, "a")
        element(extractor, "target", "missed")
        for name in ("a", "b", "root"):
            extractor.on_close_tag(name)

        assert extractor.results == [None]

    def test_path_is_relative_to_owning_context(self) -> None:
        """Test that ancestors above the owning element do not satisfy a path."""
        extractor = Extractor()
        extractor.element_type("entry").find("meta").extract("date", "date").end()
        extractor.element_type("feed").extract_many("entry", "entries", "entry")

        open_(extractor, "feed")
        open_(extractor, "meta")
        open_(extractor, "entry")
        element(extractor, "date", "direct")
        extractor.on_close_tag("entry")
        extractor.on_close_tag("meta")
        extractor.on_close_tag("feed")

        assert extractor.results == [None]

    def test_empty_path_matches_any_depth(self) -> None:
        """Test that an undeclared path matches descendants at any depth."""
        extractor = Extractor()
        extractor.element_type("root").extract("deep", "deep")

        open_(extractor, "root")
        open_(extractor, "x")
        open_(extractor, "y")
        element(extractor, "deep", "value")
        for name in ("y", "x", "root"):
            extractor.on_close_tag(name)

        assert extractor.results == [{"deep": "value"}]


class TestAttributeExtraction:
    """Attribute extraction never descends into the element."""

    def test_attribute_does_not_create_context(self) -> None:
        """Test that attribute extraction writes directly to the field."""
        extractor = Extractor()
        extractor.element_type("root").extract_attribute("tag", "attr", "field")

        open_(extractor, "root")
        open_(extractor, "tag", attr="v")
        element(extractor, "child", "noise")
        extractor.on_close_tag("tag")
        extractor.on_close_tag("root")

        assert extractor.results == [{"field": "v"}]
        assert extractor.metrics.contexts_created == 1

    def test_missing_attribute_writes_nothing(self) -> None:
        """Test that an element without the attribute leaves the field unset."""
        extractor = Extractor()
        extractor.element_type("root").extract_attribute("tag", "attr", "field")

        open_(extractor, "root")
        element(extractor, "tag", "text", other="x")
        extractor.on_close_tag("root")

        assert extractor.results == [None]
        assert extractor.metrics.contexts_created == 1

    def test_root_element_attributes(self) -> None:
        """Test that a root type can read attributes of its own element."""
        extractor = Extractor()
        extractor.element_type("feed").extract_attribute("feed", "lang", "language")

        open_(extractor, "feed", lang="en")
        extractor.on_close_tag("feed")

        assert extractor.results == [{"language": "en"}]


class TestContextLifecycle:
    """Stack invariants and the live context slot."""

    def test_context_stack_tracks_depth(self) -> None:
        """Test creation depths and stack contents during extraction."""
        extractor = catalog_extractor()

        assert extractor.current_context is None
        open_(extractor, "catalog")
        open_(extractor, "item", id="1")
        open_(extractor, "name")

        depths = [ctx.creation_depth for ctx in extractor.context_stack]
        assert depths == [0, 1, 2]
        assert extractor.tag_stack == ["catalog", "item", "name"]
        assert isinstance(extractor.current_context, ExtractionContext)

        extractor.on_close_tag("name")
        extractor.on_close_tag("item")
        assert [ctx.creation_depth for ctx in extractor.context_stack] == [0]

        extractor.on_close_tag("catalog")
        assert extractor.context_stack == []
        assert extractor.tag_stack == []

    def test_live_context_slot_is_set_only_while_in_flight(self) -> None:
        """Test that the declaration's live context is cleared on completion."""
        extractor = Extractor()
        root = extractor.element_type("root").extract("tag", "field")
        extractable = root.extractables["tag"]

        open_(extractor, "root")
        assert extractable.context is None
        open_(extractor, "tag")
        assert extractable.context is extractor.current_context
        extractor.on_close_tag("tag")
        assert extractable.context is None

    def test_close_tag_is_routed_below_creation_depth(self) -> None:
        """Test that close tags inside a context reach its value type."""
        extractor = Extractor()
        extractor.element_type("root")
        seen = []
        root = extractor.element_types["root"]
        root.on_close_tag = lambda name, ctx: seen.append(name)

        open_(extractor, "root")
        element(extractor, "child")
        extractor.on_close_tag("root")

        assert seen == ["child"]


class TestCallbacksAndDiagnostics:
    """Per-instance result and error channels."""

    def test_on_result_receives_each_result(self) -> None:
        """Test that the result callback fires once per top-level element."""
        received = []
        extractor = Extractor(on_result=received.append)
        extractor.element_type("record").extract("v", "v")

        open_(extractor, "record")
        element(extractor, "v", "x")
        extractor.on_close_tag("record")

        assert received == [{"v": "x"}]

    def test_failing_result_callback_leaves_stacks_empty(self) -> None:
        """Test that a raising consumer does not strand the finished root context."""
        def reject(result):
            raise RuntimeError("consumer rejected result")

        extractor = Extractor(on_result=reject)
        extractor.element_type("record").extract("v", "v")

        open_(extractor, "record")
        element(extractor, "v", "first")
        with pytest.raises(RuntimeError, match="consumer rejected"):
            extractor.on_close_tag("record")

        assert extractor.context_stack == []
        assert extractor.tag_stack == []
        assert extractor.results == [{"v": "first"}]

        extractor.on_result = None
        open_(extractor, "record")
        element(extractor, "v", "second")
        extractor.on_close_tag("record")
        assert extractor.results == [{"v": "first"}, {"v": "second"}]

        with pytest.raises(SchemaMismatchError):
            open_(extractor, "other")

    def test_on_error_receives_fatal_error(self) -> None:
        """Test that the error callback fires before the error is raised."""
        errors = []
        extractor = Extractor(on_error=errors.append)

        with pytest.raises(SchemaMismatchError):
            open_(extractor, "nope")

        assert len(errors) == 1
        assert errors[0].tag_name == "nope"

    def test_extractors_do_not_share_state(self) -> None:
        """Test that two extractors with separate schemas are isolated."""
        first = catalog_extractor()
        second = catalog_extractor()

        open_(first, "catalog")
        open_(first, "item", id="1")

        assert second.tag_stack == []
        assert second.context_stack == []

    def test_unhandled_text_is_reported_as_warning(self) -> None:
        """Test that text under a composite element becomes a diagnostic."""
        extractor = Extractor()
        extractor.element_type("root")

        open_(extractor, "root")
        extractor.on_text("  stray  ")
        extractor.on_text("   ")
        extractor.on_close_tag("root")

        assert len(extractor.diagnostics) == 1
        diagnostic = extractor.diagnostics[0]
        assert diagnostic.severity == DiagnosticSeverity.WARNING
        assert diagnostic.message == "Text not handled: stray"

    def test_unhandled_text_reporting_can_be_disabled(self) -> None:
        """Test the report_unhandled_text switch."""
        extractor = Extractor(config=ExtractorConfig(report_unhandled_text=False))
        extractor.element_type("root")

        open_(extractor, "root")
        extractor.on_text("stray")
        extractor.on_close_tag("root")

        assert extractor.diagnostics == []


class TestSchemaSealing:
    """Schema freezing at the start of extraction."""

    def test_unknown_type_name_fails_on_first_event(self) -> None:
        """Test that a reference to an unregistered type is reported."""
        extractor = Extractor()
        extractor.element_type("root").extract("child", "child", "Missing")

        with pytest.raises(SchemaDeclarationError, match="Missing"):
            open_(extractor, "root")

    def test_declarations_rejected_after_extraction_starts(self) -> None:
        """Test that schema types are read-only while extracting."""
        extractor = Extractor()
        root = extractor.element_type("root")
        open_(extractor, "root")

        with pytest.raises(SchemaDeclarationError, match="sealed"):
            root.extract("late", "late")
        with pytest.raises(SchemaDeclarationError):
            extractor.element_type("other")

    def test_max_depth_is_enforced(self) -> None:
        """Test that exceeding the configured depth aborts the stream."""
        extractor = Extractor(config=ExtractorConfig(max_depth=2))
        extractor.element_type("root")

        open_(extractor, "root")
        open_(extractor, "a")
        with pytest.raises(ExtractionError, match="Maximum depth 2"):
            open_(extractor, "b")
