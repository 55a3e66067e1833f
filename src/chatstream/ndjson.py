"""NDJSON framing and decoding for the chat stream.

Chunks arrive at arbitrary boundaries (mid-line, mid UTF-8 sequence).
`LineFramer` buffers the incomplete tail; `decode_line` turns one complete
line into at most one event and never raises.
"""

from __future__ import annotations

import codecs
import json
import logging
import math
from collections.abc import AsyncIterable, AsyncIterator, Iterable
from contextlib import aclosing
from typing import Any

from .events import (
    ContentEvent,
    ContextEvent,
    ErrorEvent,
    PlanEvent,
    ReasoningEvent,
    StatusEvent,
    StreamEvent,
)

logger = logging.getLogger(__name__)


class LineFramer:
    """Split a chunked text/byte stream into complete, trimmed, non-blank lines."""

    def __init__(self):
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: str | bytes) -> list[str]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        if not chunk:
            return []

        self._buffer += chunk
        if "\n" not in chunk:
            return []

        *complete, self._buffer = self._buffer.split("\n")
        return [line.strip() for line in complete if line.strip()]

    def flush(self) -> list[str]:
        """Emit whatever remains once the stream is done."""
        self._buffer += self._decoder.decode(b"", final=True)
        remaining, self._buffer = self._buffer, ""
        lines = [line.strip() for line in remaining.split("\n")]
        return [line for line in lines if line]


def iter_lines(chunks: Iterable[str | bytes]) -> Iterable[str]:
    framer = LineFramer()
    for chunk in chunks:
        yield from framer.feed(chunk)
    yield from framer.flush()


async def aiter_lines(chunks: AsyncIterable[str | bytes]) -> AsyncIterator[str]:
    """Async variant of `iter_lines`; upstream errors propagate as-is."""
    framer = LineFramer()
    async for chunk in chunks:
        for line in framer.feed(chunk):
            yield line
    for line in framer.flush():
        yield line


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def _context_event(value: dict[str, Any]) -> ContextEvent:
    compacting = value.get("compacting")
    return ContextEvent(
        usage_percent=_as_int(value.get("usagePercent")),
        total_tokens=_as_int(value.get("totalTokens")),
        context_window_size=_as_int(value.get("contextWindowSize")),
        compacting=compacting if isinstance(compacting, bool) else False,
    )


_TEXT_EVENTS = {
    "c": ContentEvent,
    "r": ReasoningEvent,
    "p": PlanEvent,
}


def decode_line(line: str) -> StreamEvent | None:
    """Decode one NDJSON line. Returns None for anything malformed or unknown."""
    try:
        data = json.loads(line)
    except (ValueError, RecursionError):
        logger.debug("Dropping malformed stream line: %.80s", line)
        return None

    if not isinstance(data, dict):
        return None

    kind = data.get("t")
    value = data.get("v")
    if not isinstance(kind, str):
        return None

    if kind == "e":
        return ErrorEvent(message=value if isinstance(value, str) else "Unknown error")

    if kind == "x":
        return _context_event(value) if isinstance(value, dict) else None

    if kind in _TEXT_EVENTS or kind == "s":
        if value is None:
            value = ""
        if not isinstance(value, str):
            logger.debug("Dropping '%s' event with non-string value", kind)
            return None
        if kind == "s":
            return StatusEvent(status=value)
        return _TEXT_EVENTS[kind](text=value)

    logger.debug("Ignoring unknown stream event type %r", kind)
    return None


def iter_events(chunks: Iterable[str | bytes]) -> Iterable[StreamEvent]:
    for line in iter_lines(chunks):
        event = decode_line(line)
        if event is not None:
            yield event


async def aiter_events(chunks: AsyncIterable[str | bytes]) -> AsyncIterator[StreamEvent]:
    """Frame and decode a chunk stream into events, in arrival order."""
    async with aclosing(aiter_lines(chunks)) as lines:
        async for line in lines:
            event = decode_line(line)
            if event is not None:
                yield event
