"""Result objects and diagnostic types for streaming tag extraction.

Extraction never turns recoverable conditions into exceptions. Unrouted text
and similar observations are recorded as diagnostics next to the extracted
results so callers can inspect them after the stream ends.
"""

import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional


class DiagnosticSeverity(Enum):
    """Severity levels for diagnostic entries."""

    DEBUG = auto()
    INFO = auto()
    WARNING = auto()
    ERROR = auto()      # Fatal for the current stream
    CRITICAL = auto()


@dataclass
class DiagnosticEntry:
    """Single diagnostic entry with context information."""

    severity: DiagnosticSeverity
    message: str
    component: str
    depth: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: float = field(default_factory=time.time)
    correlation_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate diagnostic entry."""
        if not self.message:
            raise ValueError("Diagnostic message cannot be empty")
        if not self.component:
            raise ValueError("Diagnostic component cannot be empty")


@dataclass
class ExtractionMetrics:
    """Event and context counters for one extraction stream."""

    open_tags: int = 0
    close_tags: int = 0
    text_events: int = 0
    contexts_created: int = 0
    results_emitted: int = 0
    max_depth: int = 0
    processing_time_ms: float = 0.0

    @property
    def events_processed(self) -> int:
        """Total number of tokenizer events routed through the engine."""
        return self.open_tags + self.close_tags + self.text_events

    @property
    def events_per_second(self) -> float:
        """Calculate routed events per second."""
        if self.processing_time_ms <= 0:
            return 0.0
        return (self.events_processed * 1000.0) / self.processing_time_ms

    def record_depth(self, depth: int) -> None:
        if depth > self.max_depth:
            self.max_depth = depth


@dataclass
class ExtractionResult:
    """Outcome of extracting one document or stream.

    ``results`` holds one entry per completed top-level element in document
    order. An entry is ``None`` when the element matched but nothing was
    extracted from it.
    """

    results: List[Any] = field(default_factory=list)
    diagnostics: List[DiagnosticEntry] = field(default_factory=list)
    metrics: ExtractionMetrics = field(default_factory=ExtractionMetrics)
    success: bool = True
    error: Optional[BaseException] = None
    correlation_id: Optional[str] = None

    def add_diagnostic(
        self,
        severity: DiagnosticSeverity,
        message: str,
        component: str,
        depth: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Add a diagnostic entry to the result."""
        self.diagnostics.append(
            DiagnosticEntry(
                severity=severity,
                message=message,
                component=component,
                depth=depth,
                details=details,
                correlation_id=self.correlation_id,
            )
        )

    def get_diagnostics_by_severity(
        self, severity: DiagnosticSeverity
    ) -> List[DiagnosticEntry]:
        """Get all diagnostics of a specific severity level."""
        return [d for d in self.diagnostics if d.severity == severity]

    @property
    def has_errors(self) -> bool:
        """Check if the extraction hit an error or critical condition."""
        return self.error is not None or any(
            d.severity in (DiagnosticSeverity.ERROR, DiagnosticSeverity.CRITICAL)
            for d in self.diagnostics
        )

    @property
    def result(self) -> Any:
        """The first extracted result, or None if there is none."""
        return self.results[0] if self.results else None

    def summary(self) -> Dict[str, Any]:
        """Summarize the extraction for logging and CLI output."""
        severity_counts: Dict[str, int] = {}
        for diagnostic in self.diagnostics:
            name = diagnostic.severity.name
            severity_counts[name] = severity_counts.get(name, 0) + 1

        return {
            "success": self.success,
            "result_count": len(self.results),
            "error": str(self.error) if self.error else None,
            "diagnostics": severity_counts,
            "events_processed": self.metrics.events_processed,
            "contexts_created": self.metrics.contexts_created,
            "max_depth": self.metrics.max_depth,
            "processing_time_ms": round(self.metrics.processing_time_ms, 3),
        }
