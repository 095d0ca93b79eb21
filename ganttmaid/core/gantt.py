"""
ganttmaid.core.gantt - Mermaid Gantt projection and rendering module.

This module groups a flat span map into per-service sections and renders
them as a Mermaid ``gantt`` diagram description.

Grouping walks the spans in a fixed traversal order. Consecutive spans of
the same service share a section. A section is appended to the result right
after the root span has been added, or when the service changes; spans of
the root's service that follow the root keep extending the same section.
Whatever section is still open when the walk ends is appended as well, so
every span is emitted exactly once.

Classes:
    GanttStyle: Configuration for the rendered diagram text
    SpanTemplate: Render-ready attributes of one span
    ServiceSection: Contiguous run of spans from one service
    GanttProjector: Projects span maps into sections and renders them
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from ganttmaid.core.decoder import Span
from ganttmaid.core.errors import RenderError

logger = logging.getLogger(__name__)

# Kinds that cross a service or process boundary
ACTIVE_KINDS = frozenset({"CLIENT", "SERVER", "PRODUCER", "CONSUMER"})

NS_PER_MS = 1_000_000

ORDER_START = "start"
ORDER_INPUT = "input"
ORDERS = (ORDER_START, ORDER_INPUT)


def is_active(kind: str) -> bool:
    """Whether a span kind renders in the in-flight (``active``) style."""
    return kind in ACTIVE_KINDS


def is_crit(status: str) -> bool:
    """Whether a span status marks a failure."""
    return status.lower() == "error"


def ns_to_ms(value: int) -> int:
    """Convert nanoseconds to milliseconds, truncating toward zero."""
    millis = abs(value) // NS_PER_MS
    return millis if value >= 0 else -millis


@dataclass
class GanttStyle:
    """Text configuration for Gantt diagrams.

    Attributes:
        date_format: Mermaid ``dateFormat`` (``x`` = Unix milliseconds)
        axis_format: Mermaid ``axisFormat`` for tick labels
        title: Optional diagram title
        task_format: ``str.format`` template for one task line. Available
            fields: name, state, crit, start, duration
        active_token: State token for spans crossing a service boundary
        done_token: State token for every other span
        crit_token: Suffix appended for failed spans
    """
    date_format: str = "x"
    axis_format: str = "%X:%L"
    title: Optional[str] = None
    task_format: str = "{name} :{name} {state}{crit}, {start}, {duration}ms"
    active_token: str = "active"
    done_token: str = "done"
    crit_token: str = ", crit"


@dataclass(frozen=True)
class SpanTemplate:
    """Render-ready attributes of a span.

    Attributes:
        name: Span name, used as task label and id
        active: Span kind is CLIENT, SERVER, PRODUCER or CONSUMER
        crit: Span status is "error" in any casing
        start_unix: Start time in Unix milliseconds
        duration: end - start in milliseconds (negative if end < start)
    """
    name: str
    active: bool
    crit: bool
    start_unix: int
    duration: int

    @classmethod
    def from_span(cls, span: Span) -> SpanTemplate:
        return cls(
            name=span.name,
            active=is_active(span.kind),
            crit=is_crit(span.status),
            start_unix=ns_to_ms(span.start),
            duration=ns_to_ms(span.end - span.start),
        )


@dataclass
class ServiceSection:
    """A contiguous run of spans belonging to one service.

    Attributes:
        name: Service name
        section: Rendered section label
        spans: Templates of the spans in this run, in traversal order
    """
    name: str
    section: str = ""
    spans: List[SpanTemplate] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.section:
            self.section = f"section {self.name}"


class GanttProjector:
    """Projects flat span maps into Mermaid Gantt diagrams.

    The traversal order decides how sections are formed:

    - ``"start"`` sorts spans by start time, then name, then span id
    - ``"input"`` keeps the order of the span map (JSON document order)

    Example:
        >>> from ganttmaid.core.decoder import decode_spans
        >>> projector = GanttProjector()
        >>> spans = decode_spans(data)
        >>> print(projector.generate(spans))
        gantt
        dateFormat x
        axisFormat %X:%L
        <BLANKLINE>
        section gateway
        GET /users :GET /users active, 1700000000000, 250ms
    """

    def __init__(
        self,
        style: Optional[GanttStyle] = None,
        order: str = ORDER_START,
    ) -> None:
        """Initialize the GanttProjector.

        Args:
            style: Optional text configuration. Uses defaults if not provided.
            order: Traversal order, "start" or "input"

        Raises:
            ValueError: If order is not a known traversal order
        """
        if order not in ORDERS:
            raise ValueError(
                f"order must be one of {', '.join(ORDERS)}, got {order!r}"
            )
        self.style = style or GanttStyle()
        self.order = order

    def generate(self, spans: Mapping[str, Span]) -> str:
        """Project and render a span map in one step.

        Args:
            spans: Mapping of span identifier to Span

        Returns:
            Mermaid Gantt diagram text
        """
        return self.render(self.project(spans))

    def ordered_spans(self, spans: Mapping[str, Span]) -> List[Span]:
        """Return spans in traversal order."""
        if self.order == ORDER_INPUT:
            return list(spans.values())
        items = sorted(
            spans.items(),
            key=lambda item: (item[1].start, item[1].name, item[0]),
        )
        return [span for _, span in items]

    def find_root(self, spans: Iterable[Span]) -> Optional[Span]:
        """Find the first span without a parent, or None."""
        for span in spans:
            if span.is_root:
                return span
        return None

    def find_root_name(self, spans: Iterable[Span]) -> str:
        """Find the name of the first span without a parent.

        Args:
            spans: Spans in traversal order

        Returns:
            Root span name, or an empty string if no span is parentless
        """
        root = self.find_root(spans)
        return root.name if root is not None else ""

    def build_templates(self, spans: Iterable[Span]) -> Dict[str, SpanTemplate]:
        """Compute the template of every span, keyed by span name.

        When two spans share a name the later one in traversal order wins.

        Args:
            spans: Spans in traversal order

        Returns:
            Mapping of span name to SpanTemplate
        """
        templates: Dict[str, SpanTemplate] = {}
        for span in spans:
            template = SpanTemplate.from_span(span)
            if template.duration < 0:
                logger.warning(
                    "Span %r ends before it starts (start=%d, end=%d)",
                    span.name, span.start, span.end,
                )
            if span.name in templates:
                logger.warning(
                    "Duplicate span name %r; keeping attributes of the later span "
                    "(service %r)",
                    span.name, span.service_name,
                )
            templates[span.name] = template
        return templates

    def project(self, spans: Mapping[str, Span]) -> List[ServiceSection]:
        """Group spans into service sections.

        Args:
            spans: Mapping of span identifier to Span

        Returns:
            Ordered list of ServiceSection objects
        """
        ordered = self.ordered_spans(spans)
        root = self.find_root(ordered)
        if root is None and ordered:
            logger.debug("No root span found; sections split on service changes only")
        templates = self.build_templates(ordered)

        sections: List[ServiceSection] = []
        current: Optional[ServiceSection] = None
        # current is already in sections once the root flushed it
        appended = False

        for span in ordered:
            if current is not None and current.name != span.service_name:
                if not appended:
                    sections.append(current)
                current = None
            if current is None:
                current = ServiceSection(name=span.service_name)
                appended = False

            current.spans.append(templates[span.name])

            if root is not None and span.name == root.name and not appended:
                logger.debug(
                    "Root span %r flushes section %r", span.name, current.name
                )
                sections.append(current)
                appended = True

        if current is not None and not appended:
            sections.append(current)

        logger.debug(
            "Projected %d spans into %d sections", len(ordered), len(sections)
        )
        return sections

    def render(self, sections: Iterable[ServiceSection]) -> str:
        """Render sections as Mermaid Gantt text.

        Args:
            sections: Ordered service sections

        Returns:
            Diagram text terminated by a newline

        Raises:
            RenderError: If the task template cannot be applied
        """
        lines: List[str] = ["gantt"]
        if self.style.title:
            lines.append(f"title {self.style.title}")
        lines.append(f"dateFormat {self.style.date_format}")
        lines.append(f"axisFormat {self.style.axis_format}")

        for section in sections:
            lines.append("")
            lines.append(section.section)
            for template in section.spans:
                lines.append(self._render_task(template))

        return "\n".join(lines) + "\n"

    def _render_task(self, template: SpanTemplate) -> str:
        """Render one task line.

        Args:
            template: Span template to render

        Returns:
            Task line for the diagram
        """
        state = self.style.active_token if template.active else self.style.done_token
        crit = self.style.crit_token if template.crit else ""
        try:
            return self.style.task_format.format(
                name=template.name,
                state=state,
                crit=crit,
                start=template.start_unix,
                duration=template.duration,
            )
        except (KeyError, IndexError, ValueError, AttributeError) as exc:
            raise RenderError(
                f"task template {self.style.task_format!r} failed for span "
                f"{template.name!r}: {exc}"
            ) from exc
