"""
ganttmaid.core.decoder - Flat span map decoding module.

This module turns the raw bytes of a span export into ``Span`` records.
The expected input is a single JSON object whose keys are span identifiers
and whose values are flat span records:

    {
        "a1": {
            "name": "GET /users",
            "kind": "SERVER",
            "start": 1700000000000000000,
            "end": 1700000000250000000,
            "status": "OK",
            "parentSpanID": "",
            "serviceName": "gateway"
        }
    }

Classes:
    Span: Dataclass representing a single flat span record
    SpanDecoder: Decoder for span maps serialized as JSON
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Union

from ganttmaid.core.errors import DecodeError

logger = logging.getLogger(__name__)

# JSON key -> (attribute name, zero value)
FIELD_MAP = {
    "name": ("name", ""),
    "kind": ("kind", ""),
    "start": ("start", 0),
    "end": ("end", 0),
    "status": ("status", ""),
    "parentSpanID": ("parent_span_id", ""),
    "serviceName": ("service_name", ""),
}

# Optional minus sign followed by ASCII digits only
INT_PATTERN = re.compile(r"-?[0-9]+")


@dataclass
class Span:
    """Represents a single span in a flat span map.

    Attributes:
        name: Display label, also used as lookup key within one file
        kind: Span kind (CLIENT, SERVER, PRODUCER, CONSUMER, INTERNAL, ...)
        start: Start timestamp in nanoseconds
        end: End timestamp in nanoseconds
        status: Free-form status string ("error" in any casing marks failure)
        parent_span_id: Identifier of the enclosing span, empty for the root
        service_name: Name of the service that produced the span
    """
    name: str = ""
    kind: str = ""
    start: int = 0
    end: int = 0
    status: str = ""
    parent_span_id: str = ""
    service_name: str = ""

    @property
    def is_root(self) -> bool:
        """Whether the span has no parent."""
        return self.parent_span_id == ""


class SpanDecoder:
    """Decoder for flat span maps.

    Example:
        >>> decoder = SpanDecoder()
        >>> spans = decoder.decode(b'{"1": {"name": "root", "serviceName": "api"}}')
        >>> spans["1"].service_name
        'api'
    """

    def decode(self, data: Union[bytes, str]) -> Dict[str, Span]:
        """Decode a span map from raw bytes.

        Args:
            data: UTF-8 encoded JSON (or an already decoded string)

        Returns:
            Mapping of span identifier to Span, in document order

        Raises:
            DecodeError: If the data is not valid JSON or has the wrong shape
        """
        if isinstance(data, (bytes, bytearray)):
            try:
                data = bytes(data).decode("utf-8")
            except UnicodeDecodeError as exc:
                raise DecodeError(f"input is not valid UTF-8: {exc}") from exc

        try:
            raw = json.loads(data)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"invalid JSON: {exc}") from exc

        spans = self.decode_mapping(raw)
        logger.debug("Decoded %d spans", len(spans))
        return spans

    def decode_mapping(self, raw: Any) -> Dict[str, Span]:
        """Decode an already parsed JSON value into spans.

        Args:
            raw: Parsed JSON value, expected to be an object of span records

        Returns:
            Mapping of span identifier to Span

        Raises:
            DecodeError: If the value does not match the span map shape
        """
        if not isinstance(raw, dict):
            raise DecodeError(
                f"expected a JSON object of spans, got {type(raw).__name__}"
            )

        spans: Dict[str, Span] = {}
        for span_id, record in raw.items():
            spans[span_id] = self._decode_span(span_id, record)
        return spans

    def _decode_span(self, span_id: str, record: Any) -> Span:
        """Decode a single span record.

        Args:
            span_id: Key of the record in the span map
            record: Parsed JSON value of the record

        Returns:
            Span object with missing fields set to their zero value
        """
        if not isinstance(record, dict):
            raise DecodeError(
                f"span {span_id!r}: expected an object, got {type(record).__name__}"
            )

        values: Dict[str, Any] = {}
        for key, (attr, zero) in FIELD_MAP.items():
            value = record.get(key)
            if value is None:
                values[attr] = zero
            elif isinstance(zero, int):
                values[attr] = self._coerce_int(span_id, key, value)
            elif isinstance(value, str):
                values[attr] = value
            else:
                raise DecodeError(
                    f"span {span_id!r}: field {key!r} must be a string, "
                    f"got {type(value).__name__}"
                )

        return Span(**values)

    def _coerce_int(self, span_id: str, key: str, value: Any) -> int:
        """Convert a timestamp field to int.

        Accepts JSON integers, integral floats and strings of ASCII digits
        with an optional leading minus (OTLP JSON encodes 64-bit integers as
        strings). Surrounding whitespace is ignored.
        """
        # bool is a subclass of int
        if isinstance(value, bool):
            pass
        elif isinstance(value, int):
            return value
        elif isinstance(value, float) and value.is_integer():
            return int(value)
        elif isinstance(value, str) and INT_PATTERN.fullmatch(value.strip()):
            return int(value.strip())

        raise DecodeError(
            f"span {span_id!r}: field {key!r} must be an integer timestamp, "
            f"got {value!r}"
        )


def decode_spans(data: Union[bytes, str]) -> Dict[str, Span]:
    """Decode a span map using a default SpanDecoder.

    Args:
        data: UTF-8 encoded JSON span map

    Returns:
        Mapping of span identifier to Span
    """
    return SpanDecoder().decode(data)
