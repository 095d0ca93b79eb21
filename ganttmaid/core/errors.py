"""
ganttmaid.core.errors - Exception hierarchy for span decoding and rendering.

Classes:
    GanttmaidError: Base class for all ganttmaid errors
    DecodeError: Input bytes are not a valid span mapping
    RenderError: The Gantt task template could not be applied
"""

from __future__ import annotations

from typing import Optional


class GanttmaidError(Exception):
    """Base class for ganttmaid errors.

    Attributes:
        source: Optional input path the error relates to
    """

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"{self.source}: {self.message}"
        return self.message


class DecodeError(GanttmaidError, ValueError):
    """Raised when input is not valid JSON or does not match the span schema."""


class RenderError(GanttmaidError):
    """Raised when the diagram template fails to apply."""
