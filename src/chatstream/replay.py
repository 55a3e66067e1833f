"""Replay a captured NDJSON response body through the accumulator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import click

from .accumulator import MessageAccumulator
from .events import (
    ContentEvent,
    ContextEvent,
    ErrorEvent,
    PlanEvent,
    ReasoningEvent,
    StatusEvent,
    StreamEvent,
)
from .models import ClarifyQuestion, Message
from .ndjson import iter_events

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 4096


@dataclass
class ReplayResult:
    message: Message
    clarify_questions: list[ClarifyQuestion] = field(default_factory=list)
    context: ContextEvent | None = None
    events: int = 0


def _read_chunks(path: Path):
    with path.open("rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            yield chunk


def replay_ndjson(
    path: str | Path,
    accumulator: MessageAccumulator,
    prompt: str = "",
) -> ReplayResult:
    """Feed a saved response body through the same steps as a live turn.

    An error event ends the replay with the message marked as failed; the
    remaining lines are not applied.
    """
    source = Path(path)
    if not source.exists():
        raise click.ClickException(f"File not found: {path}")

    if prompt:
        accumulator.add_user_message(prompt)
    message = accumulator.add_assistant_placeholder()
    result = ReplayResult(message=message)

    for event in iter_events(_read_chunks(source)):
        result.events += 1
        if not _apply(event, accumulator, result):
            logger.info("Replay stopped at error event after %d events", result.events)
            return result

    accumulator.finish_streaming()
    result.clarify_questions = accumulator.take_clarify_questions()
    return result


def _apply(event: StreamEvent, accumulator: MessageAccumulator, result: ReplayResult) -> bool:
    match event:
        case ContentEvent(text=text):
            accumulator.append_content(text)
        case ReasoningEvent(text=text):
            accumulator.append_reasoning(text)
        case PlanEvent(text=text):
            accumulator.append_plan(text)
        case StatusEvent():
            if event.tool_name:
                accumulator.add_tool_used(event.tool_name)
        case ContextEvent():
            result.context = event
        case ErrorEvent(message=message):
            accumulator.set_error(message)
            return False
        case _:
            raise TypeError(f"Unhandled stream event: {event!r}")
    return True
