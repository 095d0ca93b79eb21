"""
ganttmaid.cli - Command-line interface for ganttmaid.

This module walks an input file or directory, converts every span map it
finds into a Mermaid Gantt diagram and writes one output file per input.

Usage:
    ganttmaid <input_path> [--output-dir/-o <dir>] [--stdout] [--order <order>]

Examples:
    ganttmaid trace.json
    ganttmaid ./input -o ./output
    ganttmaid ./input --order input --title "Checkout flow"
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set

from ganttmaid import __version__
from ganttmaid.core.decoder import SpanDecoder
from ganttmaid.core.errors import DecodeError, GanttmaidError, RenderError
from ganttmaid.core.gantt import ORDERS, GanttProjector, GanttStyle

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "*.json"
DEFAULT_SUFFIX = ".md"

EXIT_OK = 0
EXIT_WALK_ERROR = 1
EXIT_DECODE_ERROR = 2
EXIT_RENDER_ERROR = 3
EXIT_UNEXPECTED = 4


@dataclass
class ConversionResult:
    """Outcome of converting one input file.

    Attributes:
        input_path: The span map that was read
        output_path: Where the diagram was written (None for stdout or failure)
        error: The failure, or None on success
    """
    input_path: Path
    output_path: Optional[Path] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_args(args: List[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        args: List of arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="ganttmaid",
        description="Convert flat OpenTelemetry span maps into Mermaid Gantt charts",
        epilog="Example: ganttmaid ./input -o ./output",
    )

    parser.add_argument(
        "input_path",
        type=str,
        help="Span map file or directory to search for *.json files",
    )

    parser.add_argument(
        "-o", "--output-dir",
        type=str,
        default=".",
        help="Directory for generated diagrams (default: current directory)",
    )

    parser.add_argument(
        "--stdout",
        action="store_true",
        help="Print diagrams to stdout instead of writing files",
    )

    parser.add_argument(
        "--order",
        type=str,
        choices=list(ORDERS),
        default="start",
        help="Span traversal order: by start time or as listed in the file (default: start)",
    )

    parser.add_argument(
        "--title",
        type=str,
        default=None,
        help="Title line for every diagram",
    )

    parser.add_argument(
        "--date-format",
        type=str,
        default=GanttStyle.date_format,
        help="Mermaid dateFormat (default: %(default)s)",
    )

    parser.add_argument(
        "--axis-format",
        type=str,
        default=GanttStyle.axis_format,
        help="Mermaid axisFormat (default: %(default)s)",
    )

    parser.add_argument(
        "--suffix",
        type=str,
        default=DEFAULT_SUFFIX,
        help=f"Suffix appended to the input file name (default: {DEFAULT_SUFFIX})",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(args)


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stderr, at DEBUG level when verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_projector(parsed_args: argparse.Namespace) -> GanttProjector:
    """Create a GanttProjector from parsed CLI options."""
    style = GanttStyle(
        date_format=parsed_args.date_format,
        axis_format=parsed_args.axis_format,
        title=parsed_args.title,
    )
    return GanttProjector(style=style, order=parsed_args.order)


def find_input_files(input_path: str | Path, pattern: str = DEFAULT_PATTERN) -> List[Path]:
    """Find the span map files to convert.

    Args:
        input_path: A single file or a directory searched recursively
        pattern: Glob pattern for files inside a directory

    Returns:
        Sorted list of input files

    Raises:
        FileNotFoundError: If the input path doesn't exist
    """
    path = Path(input_path)

    if not path.exists():
        raise FileNotFoundError(f"Input path not found: {input_path}")

    if path.is_file():
        return [path]

    return sorted(p for p in path.rglob(pattern) if p.is_file())


def output_path_for(
    input_path: str | Path,
    output_dir: str | Path,
    suffix: str = DEFAULT_SUFFIX,
) -> Path:
    """Build the output path for an input file.

    The suffix is appended to the full file name, so ``trace.json``
    becomes ``trace.json.md``.
    """
    return Path(output_dir) / f"{Path(input_path).name}{suffix}"


def convert_file(
    input_path: str | Path,
    output_path: str | Path | None,
    projector: GanttProjector,
    decoder: Optional[SpanDecoder] = None,
) -> str:
    """Convert one span map file into a Gantt diagram.

    The output is written only after decoding and rendering succeeded.

    Args:
        input_path: Path to the span map
        output_path: Destination file, or None to skip writing
        projector: Projector used for grouping and rendering
        decoder: Optional decoder (defaults to SpanDecoder())

    Returns:
        The rendered diagram text

    Raises:
        DecodeError: If the file is not a valid span map
        RenderError: If the diagram template fails to apply
        OSError: If the file cannot be read or written
    """
    decoder = decoder or SpanDecoder()
    path = Path(input_path)

    data = path.read_bytes()

    try:
        spans = decoder.decode(data)
        diagram = projector.generate(spans)
    except GanttmaidError as exc:
        exc.source = str(path)
        raise

    if output_path is not None:
        out = Path(output_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        with open(out, "w", encoding="utf-8") as f:
            f.write(diagram)

    return diagram


def process_path(
    input_path: str | Path,
    output_dir: str | Path | None,
    projector: Optional[GanttProjector] = None,
    suffix: str = DEFAULT_SUFFIX,
) -> List[ConversionResult]:
    """Convert every span map under a path.

    A failure for one file is logged and recorded; the remaining files are
    still converted. When output_dir is None the diagrams go to stdout.

    Args:
        input_path: File or directory to convert
        output_dir: Directory for generated diagrams, or None for stdout
        projector: Projector to use (defaults to GanttProjector())
        suffix: Suffix appended to each input file name

    Returns:
        One ConversionResult per input file

    Raises:
        FileNotFoundError: If the input path doesn't exist
    """
    projector = projector or GanttProjector()
    decoder = SpanDecoder()
    results: List[ConversionResult] = []
    written: Set[Path] = set()

    for path in find_input_files(input_path):
        target = output_path_for(path, output_dir, suffix) if output_dir is not None else None
        try:
            diagram = convert_file(path, target, projector, decoder)
        except (GanttmaidError, OSError) as e:
            logger.error("failed %s: %s", path, e)
            results.append(ConversionResult(input_path=path, error=e))
            continue

        if target is None:
            print(diagram, end="")
        elif target in written:
            logger.warning("overwrote %s with output for %s", target, path)
        else:
            written.add(target)
        logger.info("processed %s", path)
        results.append(ConversionResult(input_path=path, output_path=target))

    return results


def exit_code_for(results: List[ConversionResult]) -> int:
    """Pick the CLI exit code for a batch of conversion results."""
    errors = [r.error for r in results if r.error is not None]
    if any(isinstance(e, DecodeError) for e in errors):
        return EXIT_DECODE_ERROR
    if any(isinstance(e, RenderError) for e in errors):
        return EXIT_RENDER_ERROR
    if errors:
        return EXIT_UNEXPECTED
    return EXIT_OK


def main(args: List[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parsed_args = parse_args(args)
    configure_logging(parsed_args.verbose)

    try:
        projector = build_projector(parsed_args)
        output_dir = None if parsed_args.stdout else parsed_args.output_dir

        results = process_path(
            parsed_args.input_path,
            output_dir,
            projector,
            suffix=parsed_args.suffix,
        )

        failed = sum(1 for r in results if not r.ok)
        logger.info(
            "Converted %d of %d files", len(results) - failed, len(results)
        )
        return exit_code_for(results)

    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_WALK_ERROR

    except OSError as e:
        print(f"Error: Failed to walk input path: {e}", file=sys.stderr)
        return EXIT_WALK_ERROR

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_UNEXPECTED


if __name__ == "__main__":
    sys.exit(main())
