"""
ganttmaid - Mermaid Gantt charts from flat OpenTelemetry span maps.

This package decodes flat JSON span maps, groups the spans by the service
that produced them, and renders the result as a Mermaid ``gantt`` diagram.

Example:
    >>> from ganttmaid import SpanDecoder, GanttProjector
    >>> spans = SpanDecoder().decode(json_bytes)
    >>> diagram = GanttProjector().generate(spans)
"""

__version__ = "0.1.0"
__author__ = "KR"
__email__ = "Karthickrajam18@gmail.com"

from ganttmaid.core.errors import GanttmaidError, DecodeError, RenderError
from ganttmaid.core.decoder import Span, SpanDecoder, decode_spans
from ganttmaid.core.gantt import (
    GanttProjector,
    GanttStyle,
    ServiceSection,
    SpanTemplate,
)

__all__ = [
    "GanttmaidError",
    "DecodeError",
    "RenderError",
    "Span",
    "SpanDecoder",
    "decode_spans",
    "GanttProjector",
    "GanttStyle",
    "ServiceSection",
    "SpanTemplate",
]
