"""Output envelopes, upstream line decoding, and NDJSON framing."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Union

from ..time_utils import iso_timestamp
from .errors import GatewayError
from .models import EnvelopeMessage, OutputEnvelope

NO_CONTENT_PLACEHOLDER = "No content returned"


def make_envelope(model: str, content: str | None, *, done: bool) -> dict[str, Any]:
    """Build one caller-facing envelope; ``content=None`` omits the message."""

    message = EnvelopeMessage(content=content) if content is not None else None
    return OutputEnvelope(
        model=model,
        created_at=iso_timestamp(),
        message=message,
        done=done,
    ).to_payload()


def terminal_envelope(model: str, content: str | None = None) -> dict[str, Any]:
    return make_envelope(model, content, done=True)


def error_envelope(model: str, error: GatewayError) -> dict[str, Any]:
    return make_envelope(model, error.message, done=True)


def is_terminal(payload: dict[str, Any]) -> bool:
    return payload.get("done") is True


@dataclass(frozen=True)
class StructuredUnit:
    payload: dict[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return self.payload


@dataclass(frozen=True)
class RawTextUnit:
    text: str

    def to_payload(self) -> dict[str, Any]:
        return {"response": self.text}


DecodedUnit = Union[StructuredUnit, RawTextUnit]


def decode_line(line: str) -> DecodedUnit:
    """Parse one upstream line, falling back to raw text when it is not a JSON object."""

    try:
        parsed = json.loads(line)
    except ValueError:
        return RawTextUnit(line)
    if not isinstance(parsed, dict):
        return RawTextUnit(line)
    return StructuredUnit(parsed)


class NdjsonDecoder:
    """Incremental newline-delimited JSON decoder.

    Bytes are buffered until a newline arrives, so objects split across
    network chunks (including inside a multi-byte UTF-8 sequence) decode the
    same as when delivered whole. Blank lines are ignored.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> list[DecodedUnit]:
        self._buffer.extend(chunk)
        units: list[DecodedUnit] = []
        while True:
            index = self._buffer.find(b"\n")
            if index < 0:
                break
            raw = bytes(self._buffer[:index])
            del self._buffer[: index + 1]
            unit = _decode_raw(raw)
            if unit is not None:
                units.append(unit)
        return units

    def flush(self) -> list[DecodedUnit]:
        raw = bytes(self._buffer)
        self._buffer.clear()
        unit = _decode_raw(raw)
        return [unit] if unit is not None else []

    @property
    def pending(self) -> int:
        return len(self._buffer)


def _decode_raw(raw: bytes) -> DecodedUnit | None:
    line = raw.decode("utf-8", errors="replace").strip()
    if not line:
        return None
    return decode_line(line)


@dataclass(frozen=True)
class BufferedResponse:
    payload: dict[str, Any]
    status_code: int = 200


@dataclass
class StreamedResponse:
    envelopes: AsyncIterator[dict[str, Any]]
    route: str = ""


GatewayResponse = Union[BufferedResponse, StreamedResponse]


def encode_ndjson(payload: dict[str, Any]) -> bytes:
    return (json.dumps(payload, ensure_ascii=False) + "\n").encode("utf-8")


__all__ = [
    "BufferedResponse",
    "DecodedUnit",
    "GatewayResponse",
    "NO_CONTENT_PLACEHOLDER",
    "NdjsonDecoder",
    "RawTextUnit",
    "StreamedResponse",
    "StructuredUnit",
    "decode_line",
    "encode_ndjson",
    "error_envelope",
    "is_terminal",
    "make_envelope",
    "terminal_envelope",
]
