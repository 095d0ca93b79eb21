"""
Tests for the ganttmaid.core.gantt module.

This module covers GanttProjector including:
- Template computation (active/crit flags, millisecond conversion)
- Root detection and section grouping in both traversal orders
- Missing roots, duplicate names and negative durations
- Rendering and template failures
"""

import logging
import random
from pathlib import Path
from typing import Dict, List

import pytest

from ganttmaid.core.decoder import Span, decode_spans
from ganttmaid.core.errors import RenderError
from ganttmaid.core.gantt import (
    GanttProjector,
    GanttStyle,
    ServiceSection,
    SpanTemplate,
    is_active,
    is_crit,
    ns_to_ms,
)


FIXTURES = Path(__file__).parent / "fixtures"

HEADER = "gantt\ndateFormat x\naxisFormat %X:%L\n"


# =============================================================================
# Helpers and Fixtures
# =============================================================================


def make_span(
    name: str,
    service: str,
    parent: str = "",
    start: int = 0,
    end: int = 0,
    kind: str = "INTERNAL",
    status: str = "OK",
) -> Span:
    return Span(
        name=name,
        kind=kind,
        start=start,
        end=end,
        status=status,
        parent_span_id=parent,
        service_name=service,
    )


def section_layout(sections: List[ServiceSection]) -> List[tuple]:
    """Reduce sections to (service, [span names]) pairs."""
    return [(s.name, [t.name for t in s.spans]) for s in sections]


@pytest.fixture
def projector() -> GanttProjector:
    """Projector that traverses spans in start order."""
    return GanttProjector()


@pytest.fixture
def input_projector() -> GanttProjector:
    """Projector that traverses spans in span map order."""
    return GanttProjector(order="input")


@pytest.fixture
def abc_spans() -> Dict[str, Span]:
    """A is the svc1 root, B is its svc1 child, C its svc2 child."""
    return {
        "a": make_span("A", "svc1", start=1_000_000_000, end=5_000_000_000, kind="SERVER"),
        "b": make_span("B", "svc1", parent="A", start=2_000_000_000, end=3_000_000_000),
        "c": make_span("C", "svc2", parent="A", start=3_000_000_000, end=4_000_000_000),
    }


# =============================================================================
# Flag and Unit Conversion Tests
# =============================================================================


class TestFlags:
    """Tests for is_active and is_crit."""

    @pytest.mark.parametrize("kind", ["CLIENT", "SERVER", "PRODUCER", "CONSUMER"])
    def test_boundary_kinds_are_active(self, kind: str) -> None:
        assert is_active(kind)

    @pytest.mark.parametrize("kind", ["INTERNAL", "", "client", "UNSPECIFIED", "SPAN_KIND_SERVER"])
    def test_other_kinds_are_not_active(self, kind: str) -> None:
        assert not is_active(kind)

    @pytest.mark.parametrize("status", ["error", "ERROR", "Error", "eRRor"])
    def test_error_in_any_casing_is_crit(self, status: str) -> None:
        assert is_crit(status)

    @pytest.mark.parametrize("status", ["", "OK", "UNSET", "errors", " error"])
    def test_other_statuses_are_not_crit(self, status: str) -> None:
        assert not is_crit(status)


class TestSpanTemplate:
    """Tests for SpanTemplate.from_span."""

    def test_duration_and_start_in_milliseconds(self) -> None:
        span = make_span("op", "svc", start=1_000_000_000, end=3_500_000_000)
        template = SpanTemplate.from_span(span)
        assert template.duration == 2500
        assert template.start_unix == 1000

    def test_sub_millisecond_parts_are_truncated(self) -> None:
        span = make_span("op", "svc", start=1_999_999, end=4_500_000)
        template = SpanTemplate.from_span(span)
        assert template.start_unix == 1
        assert template.duration == 2

    def test_negative_duration_is_passed_through(self) -> None:
        span = make_span("op", "svc", start=3_000_000_000, end=1_000_000_000)
        assert SpanTemplate.from_span(span).duration == -2000

    def test_flags(self) -> None:
        span = make_span("op", "svc", kind="CONSUMER", status="Error")
        template = SpanTemplate.from_span(span)
        assert template.active is True
        assert template.crit is True

    def test_template_is_immutable(self) -> None:
        template = SpanTemplate.from_span(make_span("op", "svc"))
        with pytest.raises(AttributeError):
            template.duration = 5

    @pytest.mark.parametrize(
        "value,expected",
        [(0, 0), (999_999, 0), (1_000_000, 1), (-999_999, 0), (-1_500_000, -1)],
    )
    def test_ns_to_ms_truncates_toward_zero(self, value: int, expected: int) -> None:
        assert ns_to_ms(value) == expected


# =============================================================================
# Projection Tests
# =============================================================================


class TestProjectorConfig:
    """Tests for projector construction."""

    def test_default_order_is_start(self, projector: GanttProjector) -> None:
        assert projector.order == "start"
        assert isinstance(projector.style, GanttStyle)

    def test_unknown_order_rejected(self) -> None:
        with pytest.raises(ValueError, match="order must be one of"):
            GanttProjector(order="random")

    def test_section_label(self) -> None:
        assert ServiceSection(name="billing").section == "section billing"


class TestRootDetection:
    """Tests for find_root_name."""

    def test_first_parentless_span_wins(self, projector: GanttProjector) -> None:
        spans = [
            make_span("child", "svc", parent="r1"),
            make_span("r1", "svc"),
            make_span("r2", "svc"),
        ]
        assert projector.find_root_name(spans) == "r1"

    def test_no_root_gives_empty_marker(self, projector: GanttProjector) -> None:
        spans = [make_span("x", "svc", parent="p")]
        assert projector.find_root_name(spans) == ""

    def test_find_root_returns_span(self, projector: GanttProjector) -> None:
        root = make_span("r", "svc")
        assert projector.find_root([make_span("c", "svc", parent="r"), root]) is root

    def test_find_root_none_without_parentless_span(self, projector: GanttProjector) -> None:
        assert projector.find_root([make_span("x", "svc", parent="p")]) is None


class TestGrouping:
    """Tests for the section accumulation rule."""

    def test_root_in_the_middle_closes_its_section(
        self, input_projector: GanttProjector, abc_spans: Dict[str, Span]
    ) -> None:
        ordered = {k: abc_spans[k] for k in ("b", "a", "c")}
        sections = input_projector.project(ordered)
        assert section_layout(sections) == [
            ("svc1", ["B", "A"]),
            ("svc2", ["C"]),
        ]

    def test_root_first_keeps_collecting_its_service(
        self, input_projector: GanttProjector, abc_spans: Dict[str, Span]
    ) -> None:
        sections = input_projector.project(abc_spans)
        assert section_layout(sections) == [
            ("svc1", ["A", "B"]),
            ("svc2", ["C"]),
        ]

    def test_root_last_is_flushed_on_its_own(
        self, input_projector: GanttProjector, abc_spans: Dict[str, Span]
    ) -> None:
        ordered = {k: abc_spans[k] for k in ("b", "c", "a")}
        sections = input_projector.project(ordered)
        assert section_layout(sections) == [
            ("svc1", ["B"]),
            ("svc2", ["C"]),
            ("svc1", ["A"]),
        ]

    def test_start_order_ignores_map_order(
        self, projector: GanttProjector, abc_spans: Dict[str, Span]
    ) -> None:
        reordered = {k: abc_spans[k] for k in ("c", "b", "a")}
        assert section_layout(projector.project(reordered)) == [
            ("svc1", ["A", "B"]),
            ("svc2", ["C"]),
        ]

    def test_service_changes_split_sections(
        self, input_projector: GanttProjector
    ) -> None:
        spans = {
            "1": make_span("root", "api"),
            "2": make_span("q1", "db", parent="root"),
            "3": make_span("q2", "db", parent="root"),
            "4": make_span("call", "api", parent="root"),
            "5": make_span("q3", "db", parent="root"),
        }
        assert section_layout(input_projector.project(spans)) == [
            ("api", ["root"]),
            ("db", ["q1", "q2"]),
            ("api", ["call"]),
            ("db", ["q3"]),
        ]

    def test_missing_root_flushes_final_section(
        self, input_projector: GanttProjector
    ) -> None:
        spans = {
            "1": make_span("X", "svc1", parent="gone"),
            "2": make_span("Y", "svc1", parent="X"),
            "3": make_span("Z", "svc2", parent="X"),
        }
        sections = input_projector.project(spans)
        assert section_layout(sections) == [
            ("svc1", ["X", "Y"]),
            ("svc2", ["Z"]),
        ]

    def test_single_service_without_root_is_emitted(
        self, projector: GanttProjector
    ) -> None:
        spans = {str(i): make_span(f"op{i}", "svc", parent="p", start=i) for i in range(3)}
        assert section_layout(projector.project(spans)) == [
            ("svc", ["op0", "op1", "op2"]),
        ]

    def test_every_span_emitted_once(self, projector: GanttProjector) -> None:
        spans = decode_spans((FIXTURES / "sample_spans.json").read_bytes())
        sections = projector.project(spans)
        names = [t.name for s in sections for t in s.spans]
        assert sorted(names) == sorted(s.name for s in spans.values())

    def test_empty_mapping_has_no_sections(self, projector: GanttProjector) -> None:
        assert projector.project({}) == []

    def test_root_with_empty_name_flushes(
        self, input_projector: GanttProjector, caplog
    ) -> None:
        spans = {
            "1": make_span("B", "svc1", parent="r"),
            "2": make_span("", "svc1"),
            "3": make_span("C", "svc1", parent="r"),
            "4": make_span("D", "svc2", parent="r"),
        }
        with caplog.at_level(logging.DEBUG, logger="ganttmaid.core.gantt"):
            sections = input_projector.project(spans)

        assert "Root span '' flushes section 'svc1'" in caplog.text
        assert section_layout(sections) == [
            ("svc1", ["B", "", "C"]),
            ("svc2", ["D"]),
        ]

    def test_empty_names_without_root_do_not_flush(
        self, input_projector: GanttProjector, caplog
    ) -> None:
        spans = {
            "1": make_span("", "svc1", parent="p"),
            "2": make_span("D", "svc2", parent="p"),
        }
        with caplog.at_level(logging.DEBUG, logger="ganttmaid.core.gantt"):
            sections = input_projector.project(spans)

        assert "flushes section" not in caplog.text
        assert section_layout(sections) == [("svc1", [""]), ("svc2", ["D"])]


class TestOrdering:
    """Tests for the traversal order."""

    def test_start_ties_break_on_name_then_id(self, projector: GanttProjector) -> None:
        spans = {
            "z": make_span("b", "svc", parent="p", start=5),
            "y": make_span("a", "svc", parent="p", start=5),
            "x": make_span("a", "other", parent="p", start=5),
            "w": make_span("c", "svc", parent="p", start=1),
        }
        ordered = projector.ordered_spans(spans)
        assert [(s.name, s.service_name) for s in ordered] == [
            ("c", "svc"),
            ("a", "other"),
            ("a", "svc"),
            ("b", "svc"),
        ]

    def test_input_order_keeps_mapping_order(
        self, input_projector: GanttProjector, abc_spans: Dict[str, Span]
    ) -> None:
        reordered = {k: abc_spans[k] for k in ("c", "a", "b")}
        assert [s.name for s in input_projector.ordered_spans(reordered)] == ["C", "A", "B"]

    def test_output_is_deterministic(self, projector: GanttProjector) -> None:
        spans = decode_spans((FIXTURES / "sample_spans.json").read_bytes())
        first = projector.generate(spans)

        items = list(spans.items())
        random.Random(7).shuffle(items)
        assert projector.generate(dict(items)) == first
        assert projector.generate(spans) == first


class TestDuplicateNames:
    """Duplicate span names: the later span in traversal order wins."""

    @pytest.fixture
    def duplicate_spans(self) -> Dict[str, Span]:
        return {
            "1": make_span("X", "svc1", parent="p", start=1_000_000, end=2_000_000,
                           kind="SERVER", status="OK"),
            "2": make_span("X", "svc2", parent="p", start=5_000_000, end=9_000_000,
                           kind="INTERNAL", status="error"),
        }

    def test_last_write_wins(
        self, projector: GanttProjector, duplicate_spans: Dict[str, Span]
    ) -> None:
        templates = projector.build_templates(projector.ordered_spans(duplicate_spans))
        assert list(templates) == ["X"]
        assert templates["X"] == SpanTemplate(
            name="X", active=False, crit=True, start_unix=5, duration=4
        )

    def test_both_rows_render_winning_attributes(
        self, projector: GanttProjector, duplicate_spans: Dict[str, Span]
    ) -> None:
        sections = projector.project(duplicate_spans)
        assert [s.name for s in sections] == ["svc1", "svc2"]
        assert sections[0].spans == sections[1].spans

    def test_duplicate_logged(
        self,
        projector: GanttProjector,
        duplicate_spans: Dict[str, Span],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="ganttmaid.core.gantt"):
            projector.project(duplicate_spans)
        assert "Duplicate span name 'X'" in caplog.text


class TestNegativeDuration:
    """Spans that end before they start."""

    def test_rendered_and_logged(
        self, projector: GanttProjector, caplog: pytest.LogCaptureFixture
    ) -> None:
        spans = {"1": make_span("late", "svc", start=3_000_000_000, end=1_000_000_000)}
        with caplog.at_level(logging.WARNING, logger="ganttmaid.core.gantt"):
            diagram = projector.generate(spans)
        assert "late :late done, 3000, -2000ms" in diagram
        assert "ends before it starts" in caplog.text


# =============================================================================
# Rendering Tests
# =============================================================================


class TestRender:
    """Tests for render and generate."""

    def test_empty_input_renders_header_only(self, projector: GanttProjector) -> None:
        assert projector.generate({}) == HEADER

    def test_task_line_tokens(self, projector: GanttProjector) -> None:
        sections = [
            ServiceSection(
                name="svc",
                spans=[
                    SpanTemplate("a", True, True, 10, 5),
                    SpanTemplate("b", True, False, 11, 6),
                    SpanTemplate("c", False, True, 12, 7),
                    SpanTemplate("d", False, False, 13, 8),
                ],
            )
        ]
        assert projector.render(sections) == HEADER + (
            "\n"
            "section svc\n"
            "a :a active, crit, 10, 5ms\n"
            "b :b active, 11, 6ms\n"
            "c :c done, crit, 12, 7ms\n"
            "d :d done, 13, 8ms\n"
        )

    def test_sample_fixture_diagram(self, projector: GanttProjector) -> None:
        spans = decode_spans((FIXTURES / "sample_spans.json").read_bytes())
        assert projector.generate(spans) == HEADER + (
            "\n"
            "section frontend\n"
            "GET /checkout :GET /checkout active, 1700000000000, 450ms\n"
            "render cart :render cart done, 1700000000010, 40ms\n"
            "\n"
            "section payments\n"
            "POST /charge :POST /charge active, crit, 1700000000060, 240ms\n"
            "SELECT cards :SELECT cards active, 1700000000070, 50ms\n"
            "\n"
            "section frontend\n"
            "publish receipt :publish receipt active, 1700000000310, 10ms\n"
        )

    def test_custom_style(self) -> None:
        style = GanttStyle(
            date_format="X",
            axis_format="%H:%M",
            title="Checkout",
            task_format="{name} :{state}{crit}, {start}, {duration}ms",
            active_token="act",
            done_token="fin",
        )
        projector = GanttProjector(style=style)
        spans = {"1": make_span("op", "svc", kind="CLIENT", status="ERROR",
                                start=2_000_000, end=5_000_000)}
        assert projector.generate(spans) == (
            "gantt\n"
            "title Checkout\n"
            "dateFormat X\n"
            "axisFormat %H:%M\n"
            "\n"
            "section svc\n"
            "op :act, crit, 2, 3ms\n"
        )

    @pytest.mark.parametrize("task_format", ["{name} {missing}", "{0}", "{name!z}"])
    def test_malformed_task_format_raises_render_error(self, task_format: str) -> None:
        projector = GanttProjector(style=GanttStyle(task_format=task_format))
        with pytest.raises(RenderError, match="task template"):
            projector.generate({"1": make_span("op", "svc")})

    def test_malformed_task_format_unused_without_spans(self) -> None:
        projector = GanttProjector(style=GanttStyle(task_format="{missing}"))
        assert projector.generate({}) == HEADER
