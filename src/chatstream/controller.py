"""Drive one chat turn: request, decode, accumulate, finish."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import aclosing
from typing import Any

from .accumulator import MessageAccumulator
from .client import ChatClient, TransportError
from .events import (
    ContentEvent,
    ContextEvent,
    ErrorEvent,
    PlanEvent,
    ReasoningEvent,
    StatusEvent,
    StreamEvent,
    StreamingPhase,
    ToolCategory,
    phase_from_event,
)
from .models import Attachment, ClarifyQuestion, Message, TurnOptions
from .ndjson import aiter_events

logger = logging.getLogger(__name__)

Listener = Callable[["StreamEvent | None"], None]


class TurnHandle:
    """Handle for one in-flight turn."""

    def __init__(self, controller: StreamController, message: Message):
        self.message = message
        self.clarify_questions: list[ClarifyQuestion] = []
        self._controller = controller
        self._task: asyncio.Task | None = None

    @property
    def done(self) -> bool:
        return self._task is None or self._task.done()

    def stop(self):
        if self._controller.active_turn is self:
            self._controller.stop()

    async def wait(self) -> Message:
        """Wait for the turn to end (finished, errored or stopped)."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                if not self._task.cancelled():
                    raise
        return self.message


class StreamController:
    """Runs at most one streaming turn at a time for a conversation.

    State that a UI would observe (phase, tool name, context usage, clarify
    questions) lives on the controller; listeners registered with
    `subscribe` are called after every change.
    """

    def __init__(
        self,
        client: ChatClient,
        accumulator: MessageAccumulator,
        options: TurnOptions | None = None,
    ):
        self.client = client
        self.accumulator = accumulator
        self.options = options or TurnOptions()
        self.phase: StreamingPhase | None = None
        self.tool_name: str | None = None
        self.tool_category: ToolCategory | None = None
        self.context: ContextEvent | None = None
        self.clarify_questions: list[ClarifyQuestion] = []
        self.active_turn: TurnHandle | None = None
        self._listeners: list[Listener] = []
        self._task: asyncio.Task | None = None

    @property
    def messages(self) -> list[Message]:
        return self.accumulator.messages

    @property
    def is_streaming(self) -> bool:
        return self._task is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: StreamEvent | None):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.warning("Stream listener %r failed", listener, exc_info=True)

    def _build_payload(
        self,
        history: list[dict],
        attachments: list[Attachment],
        options: TurnOptions,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"messages": history}
        if self.accumulator.conversation_id:
            payload["conversationId"] = self.accumulator.conversation_id
        payload.update(options.to_json_dict())
        if attachments:
            payload["attachments"] = [a.to_json_dict() for a in attachments]
        return payload

    def send_turn(
        self,
        text: str,
        attachments: list[Attachment] | None = None,
        options: TurnOptions | None = None,
    ) -> TurnHandle:
        """Start a turn. Must be called from a running event loop.

        The user message and the streaming assistant placeholder are in
        `messages` when this returns. Any turn still in flight is stopped first.
        """
        loop = asyncio.get_running_loop()
        self.stop()

        attachments = list(attachments or [])
        history = self.accumulator.history()
        user_message = self.accumulator.add_user_message(text, attachments)
        placeholder = self.accumulator.add_assistant_placeholder()
        payload = self._build_payload(
            history + [user_message.to_chat_api()], attachments, options or self.options
        )

        self.phase = StreamingPhase.THINKING
        self.tool_name = None
        self.tool_category = None
        self.clarify_questions = []

        handle = TurnHandle(self, placeholder)
        self._task = handle._task = loop.create_task(self._run(payload, handle))
        self.active_turn = handle
        self._notify(None)
        return handle

    def stop(self):
        """Cancel the in-flight request and finish the message with what has arrived.

        Stopping is a normal completion, not an error.
        """
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        self.accumulator.finish_streaming()
        self._reset()
        self._notify(None)

    def _reset(self):
        self.phase = None
        self.tool_name = None
        self.tool_category = None
        self.active_turn = None

    async def _run(self, payload: dict[str, Any], handle: TurnHandle):
        body = self.client.stream_chat(payload)
        try:
            async with aclosing(aiter_events(body)) as events:
                async for event in events:
                    if not self._dispatch(event):
                        break
                else:
                    self.accumulator.finish_streaming()
                    handle.clarify_questions = self.accumulator.take_clarify_questions()
                    self.clarify_questions = handle.clarify_questions
        except TransportError as exc:
            self.accumulator.set_error(str(exc))
        except Exception as exc:
            logger.exception("Unexpected failure while streaming")
            self.accumulator.set_error(f"Error: {exc}")
        finally:
            await body.aclose()
            if self._task is asyncio.current_task():
                self._task = None
                self._reset()
                self._notify(None)

    def _dispatch(self, event: StreamEvent) -> bool:
        """Apply one event. Returns False when the turn must stop."""
        phase = phase_from_event(event)
        if phase is not None:
            self.phase = phase

        match event:
            case ContentEvent(text=text):
                self.accumulator.append_content(text)
            case ReasoningEvent(text=text):
                self.accumulator.append_reasoning(text)
            case PlanEvent(text=text):
                self.accumulator.append_plan(text)
            case StatusEvent():
                if event.is_using_tool:
                    self.tool_name = event.tool_name
                    self.tool_category = ToolCategory.from_tool_name(event.tool_name)
                    if event.tool_name:
                        self.accumulator.add_tool_used(event.tool_name)
            case ContextEvent():
                self.context = event
            case ErrorEvent(message=message):
                self.accumulator.set_error(message)
                self._notify(event)
                return False
            case _:
                raise TypeError(f"Unhandled stream event: {event!r}")

        self._notify(event)
        return True

