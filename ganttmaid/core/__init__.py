"""
ganttmaid.core - Core modules for span decoding and Gantt diagram generation.

This subpackage contains the main functionality:
- decoder: Span dataclass and SpanDecoder for flat JSON span maps
- gantt: GanttProjector for grouping spans by service and rendering
- errors: DecodeError and RenderError
"""

from ganttmaid.core.errors import GanttmaidError, DecodeError, RenderError
from ganttmaid.core.decoder import Span, SpanDecoder, decode_spans
from ganttmaid.core.gantt import (
    GanttProjector,
    GanttStyle,
    ServiceSection,
    SpanTemplate,
    is_active,
    is_crit,
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
    "is_active",
    "is_crit",
]
