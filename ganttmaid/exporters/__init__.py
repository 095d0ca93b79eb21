"""
ganttmaid.exporters - OpenTelemetry SpanExporter implementations.

Example:
    >>> from opentelemetry.sdk.trace import TracerProvider
    >>> from opentelemetry.sdk.trace.export import SimpleSpanProcessor
    >>> from ganttmaid.exporters import GanttExporter
    >>>
    >>> provider = TracerProvider()
    >>> provider.add_span_processor(SimpleSpanProcessor(GanttExporter(output_dir="./gantt")))
"""

from ganttmaid.exporters.gantt_exporter import GanttExporter, readable_span_to_span

__all__ = ["GanttExporter", "readable_span_to_span"]
