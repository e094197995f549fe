"""Streaming extraction engine.

The ``Extractor`` consumes open-tag, close-tag and text events in document
order and builds one result per top-level element. It keeps two stacks:

* ``tag_stack`` holds every open tag name; its length is the document depth.
* ``context_stack`` holds the chain of live ``ExtractionContext`` objects,
  outermost first. Only the top context receives routed events.

A context completes when a close tag brings the depth back to the depth at
which the context was created. Its value is then reduced into its parent, or
emitted as a result when it is the outermost context.

Events can be pushed directly (``on_open_tag``/``on_close_tag``/``on_text``)
or produced by lxml from raw markup (``feed``/``close``, ``parse_string``,
``parse_file``).
"""

import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from lxml import etree

from streaming_tag_extractor.engine.context import ExtractionContext, LeaveCallback
from streaming_tag_extractor.schema.element_type import ElementType, TypeRef
from streaming_tag_extractor.schema.values import BUILTIN_TYPES, TYPE_ALIASES, ValueType
from streaming_tag_extractor.shared import (
    DiagnosticEntry,
    DiagnosticSeverity,
    ExtractionAbortedError,
    ExtractionError,
    ExtractionMetrics,
    ExtractionResult,
    ExtractorConfig,
    SchemaDeclarationError,
    SchemaMismatchError,
    get_logger,
)

ResultCallback = Callable[[Any], None]
ErrorCallback = Callable[[ExtractionError], None]


def _local_name(name: str) -> str:
    # "{namespace}tag" -> "tag"
    if name.startswith("{"):
        return name.split("}", 1)[1]
    return name


class _TokenizerTarget:
    """lxml parser target forwarding tokenizer events to an ``Extractor``.

    lxml delivers character data in pieces (around entity references and at
    buffer boundaries). The pieces are joined and forwarded as one text event
    when the next tag event arrives.
    """

    def __init__(self, extractor: "Extractor", strip_namespaces: bool) -> None:
        self._extractor = extractor
        self._strip = strip_namespaces
        self._pending: List[str] = []

    def _name(self, name: str) -> str:
        return _local_name(name) if self._strip else name

    def start(self, tag: str, attrib: Dict[str, str]) -> None:
        self._flush_text()
        attributes = {self._name(key): value for key, value in attrib.items()}
        self._extractor.on_open_tag(self._name(tag), attributes)

    def end(self, tag: str) -> None:
        self._flush_text()
        self._extractor.on_close_tag(self._name(tag))

    def data(self, data: str) -> None:
        self._pending.append(data)

    def comment(self, text: str) -> None:
        pass

    def close(self) -> List[Any]:
        self._flush_text()
        return list(self._extractor.results)

    def _flush_text(self) -> None:
        if self._pending:
            text = "".join(self._pending)
            self._pending.clear()
            self._extractor.on_text(text)


class Extractor:
    """Depth-synchronized extraction state machine.

    One instance handles one stream at a time. Instances share no state, so
    separate extractors can run in separate threads without coordination.

    Args:
        config: Extractor configuration, defaults to ``ExtractorConfig()``
        on_result: Called with each finished top-level result
        on_error: Called with the fatal error before it is raised
    """

    def __init__(
        self,
        config: Optional[ExtractorConfig] = None,
        on_result: Optional[ResultCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.config = config or ExtractorConfig()
        self.correlation_id = self.config.correlation_id
        self.logger = get_logger(__name__, self.correlation_id, "extractor")
        self.on_result = on_result
        self.on_error = on_error

        self.element_types: Dict[str, ValueType] = dict(BUILTIN_TYPES)
        self.tag_stack: List[str] = []
        self.context_stack: List[ExtractionContext] = []

        self.results: List[Any] = []
        self.diagnostics: List[DiagnosticEntry] = []
        self.metrics = ExtractionMetrics()

        self._failure: Optional[ExtractionError] = None
        self._sealed = False
        self._schema_nodes: List[ElementType] = []
        self._parser: Optional[etree.XMLParser] = None

    # Type registry

    def element_type(self, name: str) -> ElementType:
        """Create and register a composite element type under ``name``."""
        node = ElementType(name)
        self.register_type(name, node)
        return node

    def register_type(self, name: str, definition: ValueType) -> "Extractor":
        """Register an existing value type under ``name``."""
        if self._sealed:
            raise SchemaDeclarationError(
                f"Cannot register {name!r}: extraction has already started"
            )
        if not isinstance(definition, ValueType):
            raise SchemaDeclarationError(
                f"Type {name!r} must be a ValueType, got {type(definition).__name__}"
            )
        self.element_types[name] = definition
        return self

    def resolve_type(self, ref: TypeRef) -> ValueType:
        """Resolve a value type, registered name or Python type alias."""
        if isinstance(ref, ValueType):
            return ref
        if isinstance(ref, str):
            try:
                return self.element_types[ref]
            except KeyError:
                raise SchemaDeclarationError(f"Unknown value type: {ref}") from None
        if ref in TYPE_ALIASES:
            return TYPE_ALIASES[ref]
        raise SchemaDeclarationError(f"Unsupported value type: {ref!r}")

    def seal(self) -> None:
        """Freeze all element types and check that every referenced type exists.

        Called automatically on the first event.
        """
        if self._sealed:
            return

        # Element types passed by instance need not be registered, so walk
        # the declarations instead of only the registry.
        pending = [vt for vt in self.element_types.values() if isinstance(vt, ElementType)]
        seen = set()
        nodes: List[ElementType] = []
        while pending:
            node = pending.pop()
            if id(node) in seen:
                continue
            seen.add(id(node))
            nodes.append(node)
            node.seal()
            for tag_name, extractable in node.extractables.items():
                if extractable.is_attribute:
                    continue
                try:
                    resolved = self.resolve_type(extractable.value_type)
                except SchemaDeclarationError as e:
                    raise SchemaDeclarationError(
                        f"{node.name}.{tag_name} -> {extractable.destination}: {e}"
                    ) from None
                if isinstance(resolved, ElementType):
                    pending.append(resolved)
        self._schema_nodes = nodes
        self._sealed = True
        self.logger.debug(
            "Schema sealed", extra={"element_types": sorted(self.element_types)}
        )

    # Context stack

    @property
    def current_context(self) -> Optional[ExtractionContext]:
        return self.context_stack[-1] if self.context_stack else None

    @property
    def depth(self) -> int:
        return len(self.tag_stack)

    def push_context(
        self, value_type: TypeRef, on_leave: Optional[LeaveCallback] = None
    ) -> ExtractionContext:
        ctx = ExtractionContext(self, self.resolve_type(value_type), self.depth, on_leave)
        self.context_stack.append(ctx)
        self.metrics.contexts_created += 1
        return ctx

    def pop_context(self) -> Optional[ExtractionContext]:
        self.context_stack.pop()
        return self.current_context

    # Tokenizer events

    def on_open_tag(self, name: str, attributes: Optional[Dict[str, str]] = None) -> None:
        """Handle an open tag event."""
        self._check_active()
        self.seal()
        attributes = attributes or {}
        self.metrics.open_tags += 1

        max_depth = self.config.max_depth
        if max_depth is not None and self.depth >= max_depth:
            self._fail(ExtractionError(f"Maximum depth {max_depth} exceeded at <{name}>"))

        try:
            if not self.context_stack:
                value_type = self.element_types.get(name)
                if value_type is None:
                    raise SchemaMismatchError(name)
                self.logger.debug("Matched top-level element", extra={"tag": name})
                self.push_context(value_type).enter(name, attributes)
            else:
                self.current_context.on_open_tag(name, attributes)
        except ExtractionError as e:
            self._fail(e)

        self.tag_stack.append(name)
        self.metrics.record_depth(self.depth)

    def on_close_tag(self, name: str) -> None:
        """Handle a close tag event."""
        self._check_active()
        self.metrics.close_tags += 1
        if not self.tag_stack:
            self._fail(ExtractionError(f"Close tag </{name}> without open tag"))
        self.tag_stack.pop()

        ctx = self.current_context
        if ctx is None:
            return

        try:
            if ctx.creation_depth == self.depth:
                ctx.leave()
                self.pop_context()
                if not self.context_stack:
                    self._emit(ctx.return_value())
            else:
                ctx.on_close_tag(name)
        except ExtractionError as e:
            self._fail(e)

    def on_text(self, text: str) -> None:
        """Handle a text event. Ignored when no element is being extracted."""
        self._check_active()
        self.metrics.text_events += 1
        ctx = self.current_context
        if ctx is None:
            return
        ctx.on_text(text)

    # Streaming markup input

    def feed(self, chunk: Union[str, bytes]) -> None:
        """Feed a chunk of raw markup to the lxml tokenizer."""
        if self._parser is None:
            self._parser = self._create_parser()
        self._parser.feed(chunk)

    def close(self) -> List[Any]:
        """Signal end of input and return the results of this stream."""
        if self._parser is None:
            return list(self.results)
        parser, self._parser = self._parser, None
        return parser.close()

    def parse_string(self, text: Union[str, bytes]) -> ExtractionResult:
        """Extract from a complete document held in memory."""
        self.reset()
        start = time.time()

        def run() -> None:
            self.feed(text)
            self.close()

        error = self._run(run)
        return self._build_result(start, error)

    def parse_file(self, path: Union[str, Path]) -> ExtractionResult:
        """Extract from a file, feeding it to the tokenizer in chunks."""
        self.reset()
        start = time.time()
        file_path = Path(path)
        chunk_size = self.config.tokenizer.chunk_size

        def run() -> None:
            with file_path.open("rb") as f:
                for chunk in iter(lambda: f.read(chunk_size), b""):
                    self.feed(chunk)
            self.close()

        error = self._run(run)
        return self._build_result(start, error)

    def reset(self) -> None:
        """Discard all stream state so the extractor can take a new stream."""
        self.tag_stack.clear()
        self.context_stack.clear()
        self.results.clear()
        self.diagnostics.clear()
        self.metrics = ExtractionMetrics()
        self._failure = None
        self._parser = None
        for node in self._schema_nodes:
            node.release_contexts()

    # Diagnostics

    def report_unhandled_text(self, text: str, ctx: ExtractionContext) -> None:
        """Record text that no declaration can attribute to a field."""
        if not self.config.report_unhandled_text:
            return
        self.logger.debug(
            "Text not handled",
            extra={"text": text, "element_type": ctx.value_type.name, "depth": self.depth},
        )
        self._add_diagnostic(
            DiagnosticSeverity.WARNING,
            f"Text not handled: {text}",
            "element_type",
            details={"element_type": ctx.value_type.name},
        )

    def _add_diagnostic(
        self,
        severity: DiagnosticSeverity,
        message: str,
        component: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.diagnostics.append(
            DiagnosticEntry(
                severity=severity,
                message=message,
                component=component,
                depth=self.depth,
                details=details,
                correlation_id=self.correlation_id,
            )
        )

    # Internals

    def _create_parser(self) -> etree.XMLParser:
        tokenizer = self.config.tokenizer
        return etree.XMLParser(
            target=_TokenizerTarget(self, tokenizer.strip_namespaces),
            encoding=tokenizer.encoding,
            resolve_entities=tokenizer.resolve_entities,
            huge_tree=tokenizer.huge_tree,
            remove_comments=True,
            remove_pis=True,
        )

    def _emit(self, value: Any) -> None:
        self.results.append(value)
        self.metrics.results_emitted += 1
        self.logger.info(
            "Extraction result emitted",
            extra={"result_index": len(self.results) - 1, "empty": value is None},
        )
        if self.on_result is not None:
            self.on_result(value)

    def _check_active(self) -> None:
        if self._failure is not None:
            raise ExtractionAbortedError(
                f"Extraction stream aborted after: {self._failure}"
            ) from self._failure

    def _fail(self, error: ExtractionError) -> None:
        self._failure = error
        self._add_diagnostic(
            DiagnosticSeverity.ERROR,
            str(error),
            "extractor",
            details={"exception_type": type(error).__name__},
        )
        self.logger.error(
            "Extraction failed",
            extra={"error": str(error), "depth": self.depth},
        )
        if self.on_error is not None:
            self.on_error(error)
        raise error

    def _run(self, action: Callable[[], Any]) -> Optional[BaseException]:
        try:
            action()
        except ExtractionError as e:
            return self._failure or e
        except etree.XMLSyntaxError as e:
            if self._failure is not None:
                return self._failure
            self._add_diagnostic(
                DiagnosticSeverity.CRITICAL,
                f"Tokenizer error: {e}",
                "tokenizer",
                details={"exception_type": type(e).__name__},
            )
            self.logger.error("Tokenizer error", extra={"error": str(e)})
            return e
        finally:
            self._parser = None
        return None

    def _build_result(self, start: float, error: Optional[BaseException]) -> ExtractionResult:
        self.metrics.processing_time_ms = (time.time() - start) * 1000
        return ExtractionResult(
            results=list(self.results),
            diagnostics=list(self.diagnostics),
            metrics=self.metrics,
            success=error is None,
            error=error,
            correlation_id=self.correlation_id,
        )
