"""
GanttExporter - OpenTelemetry SpanExporter that generates Mermaid Gantt charts.

This exporter collects finished spans per trace, converts them into the flat
span map understood by ``ganttmaid.core`` and renders one Gantt diagram per
completed trace.

Example:
    >>> from opentelemetry import trace
    >>> from opentelemetry.sdk.trace import TracerProvider
    >>> from opentelemetry.sdk.trace.export import BatchSpanProcessor
    >>> from ganttmaid.exporters import GanttExporter
    >>>
    >>> exporter = GanttExporter(output_dir="./gantt")
    >>> provider = TracerProvider()
    >>> provider.add_span_processor(BatchSpanProcessor(exporter))
    >>> trace.set_tracer_provider(provider)
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult
from opentelemetry.trace import StatusCode

from ganttmaid.core.decoder import Span
from ganttmaid.core.errors import GanttmaidError
from ganttmaid.core.gantt import GanttProjector

logger = logging.getLogger(__name__)


def readable_span_to_span(span: ReadableSpan) -> Span:
    """Convert an SDK ReadableSpan into a flat Span record.

    Args:
        span: The finished OpenTelemetry span

    Returns:
        Span with kind and status taken from the SDK enum names
    """
    parent = span.parent
    parent_id = format(parent.span_id, "016x") if parent else ""

    service_name = "unknown"
    if span.resource and span.resource.attributes:
        service_name = str(span.resource.attributes.get("service.name", "unknown"))

    status = StatusCode.UNSET.name
    if span.status and span.status.status_code is not None:
        status = span.status.status_code.name

    return Span(
        name=span.name,
        kind=span.kind.name if span.kind is not None else "",
        start=span.start_time or 0,
        end=span.end_time or 0,
        status=status,
        parent_span_id=parent_id,
        service_name=service_name,
    )


class GanttExporter(SpanExporter):
    """OpenTelemetry SpanExporter that writes a Gantt chart per trace.

    A trace is complete when its root span is exported, or when no span
    for it arrived during ``flush_interval_seconds``.

    Attributes:
        output_dir: Directory for ``trace_<id>_<timestamp>.md`` files (None for no files)
        projector: GanttProjector used to render traces
        console_output: Whether to print diagrams to stdout
        on_diagram_generated: Optional callback(trace_id, diagram)
        flush_interval_seconds: Idle time after which a trace is complete
    """

    def __init__(
        self,
        output_dir: Optional[str] = None,
        projector: Optional[GanttProjector] = None,
        console_output: bool = False,
        on_diagram_generated: Optional[Callable[[str, str], None]] = None,
        flush_interval_seconds: float = 2.0,
    ) -> None:
        self.output_dir = Path(output_dir) if output_dir else None
        self.projector = projector or GanttProjector()
        self.console_output = console_output
        self.on_diagram_generated = on_diagram_generated
        self.flush_interval_seconds = flush_interval_seconds

        self._lock = threading.Lock()
        self._trace_spans: Dict[str, Dict[str, Span]] = defaultdict(dict)
        self._trace_last_update: Dict[str, float] = {}

        if self.output_dir:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            logger.info("GanttExporter: saving diagrams to %s", self.output_dir)

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        """Collect a batch of spans and render every trace that completed.

        Args:
            spans: Sequence of finished spans

        Returns:
            SpanExportResult.SUCCESS
        """
        if not spans:
            return SpanExportResult.SUCCESS

        logger.debug("Exporting %d spans", len(spans))
        now = time.monotonic()
        traces_with_root = set()

        with self._lock:
            for span in spans:
                trace_id = format(span.context.trace_id, "032x")
                span_id = format(span.context.span_id, "016x")
                self._trace_spans[trace_id][span_id] = readable_span_to_span(span)
                self._trace_last_update[trace_id] = now

                if not span.parent:
                    traces_with_root.add(trace_id)
                    logger.debug("Root span detected for trace %s", trace_id[:8])

            complete = list(traces_with_root)
            for trace_id, last_update in self._trace_last_update.items():
                if trace_id not in traces_with_root:
                    if now - last_update >= self.flush_interval_seconds:
                        complete.append(trace_id)

        for trace_id in complete:
            self._process_trace(trace_id)

        return SpanExportResult.SUCCESS

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Render every pending trace immediately.

        Returns:
            True once all pending traces were processed
        """
        with self._lock:
            trace_ids = list(self._trace_spans.keys())

        for trace_id in trace_ids:
            self._process_trace(trace_id)

        return True

    def shutdown(self) -> None:
        """Flush pending traces before shutdown."""
        logger.info("GanttExporter shutting down, flushing pending traces")
        self.force_flush()

    def pending_trace_ids(self) -> List[str]:
        """Trace ids still waiting for completion."""
        with self._lock:
            return list(self._trace_spans.keys())

    def _process_trace(self, trace_id: str) -> None:
        """Render and output one collected trace.

        Args:
            trace_id: The trace to process
        """
        with self._lock:
            spans = self._trace_spans.pop(trace_id, None)
            self._trace_last_update.pop(trace_id, None)

        if not spans:
            return

        try:
            diagram = self.projector.generate(spans)
        except GanttmaidError as e:
            logger.error("Failed to render Gantt chart for trace %s: %s", trace_id, e)
            return

        self._output_diagram(trace_id, diagram, len(spans))

    def _diagram_path(self, trace_id: str) -> Path:
        """Pick a file name for a trace that no earlier diagram uses.

        Spans arriving after a trace was rendered start a new diagram for the
        same trace id, so every rendering gets its own file.
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        stem = f"trace_{trace_id[:8]}_{timestamp}"
        filepath = self.output_dir / f"{stem}.md"
        n = 1
        while filepath.exists():
            filepath = self.output_dir / f"{stem}_{n}.md"
            n += 1
        return filepath

    def _output_diagram(self, trace_id: str, diagram: str, span_count: int) -> None:
        """Send a rendered diagram to the console, file and callback."""
        if self.console_output:
            print(f"%% Trace ID: {trace_id} ({span_count} spans)")
            print(diagram)

        if self.output_dir:
            filepath = self._diagram_path(trace_id)
            try:
                with open(filepath, "w", encoding="utf-8") as f:
                    f.write(diagram)
            except OSError as e:
                logger.error(
                    "Failed to save Gantt chart for trace %s to %s: %s",
                    trace_id, filepath, e, exc_info=True,
                )
            else:
                logger.info("Gantt chart saved: %s", filepath)

        if self.on_diagram_generated:
            try:
                self.on_diagram_generated(trace_id, diagram)
            except Exception as e:
                logger.error("Callback failed for trace %s: %s", trace_id, e)
