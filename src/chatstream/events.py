"""Typed events decoded from the chat stream.

The server emits one `{t, v}` object per line:

- `c` = content text chunk
- `r` = reasoning/thinking text chunk
- `p` = plan text chunk
- `s` = status (`searching`, `using_tool`, `using_tool:<name>`, ...)
- `x` = context window telemetry
- `e` = error message
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class ContentEvent(BaseModel):
    kind: Literal["content"] = "content"
    text: str


class ReasoningEvent(BaseModel):
    kind: Literal["reasoning"] = "reasoning"
    text: str


class PlanEvent(BaseModel):
    kind: Literal["plan"] = "plan"
    text: str


class StatusEvent(BaseModel):
    kind: Literal["status"] = "status"
    status: str

    @property
    def name(self) -> str:
        return self.status.split(":", 1)[0]

    @property
    def tool_name(self) -> str | None:
        name, _, tool = self.status.partition(":")
        if name != "using_tool" or not tool:
            return None
        return tool

    @property
    def is_searching(self) -> bool:
        return self.name == "searching"

    @property
    def is_using_tool(self) -> bool:
        return self.name == "using_tool"


class ContextEvent(BaseModel):
    kind: Literal["context"] = "context"
    usage_percent: int = 0
    total_tokens: int = 0
    context_window_size: int = 0
    compacting: bool = False


class ErrorEvent(BaseModel):
    kind: Literal["error"] = "error"
    message: str


StreamEvent = Annotated[
    Union[ContentEvent, ReasoningEvent, PlanEvent, StatusEvent, ContextEvent, ErrorEvent],
    Field(discriminator="kind"),
]


class StreamingPhase(str, Enum):
    """What the assistant is currently doing, for progress indicators."""

    THINKING = "thinking"
    SEARCHING = "searching"
    USING_TOOL = "using_tool"
    PLANNING = "planning"
    ANSWERING = "answering"


def phase_from_event(event: StreamEvent) -> StreamingPhase | None:
    match event:
        case ReasoningEvent():
            return StreamingPhase.THINKING
        case PlanEvent():
            return StreamingPhase.PLANNING
        case ContentEvent():
            return StreamingPhase.ANSWERING
        case StatusEvent() if event.is_searching:
            return StreamingPhase.SEARCHING
        case StatusEvent() if event.is_using_tool:
            return StreamingPhase.USING_TOOL
        case StatusEvent() | ContextEvent() | ErrorEvent():
            return None
        case _:
            raise TypeError(f"Unhandled stream event: {event!r}")


class ToolCategory(str, Enum):
    WEB_SEARCH = "web_search"
    KNOWLEDGE = "knowledge"
    CALCULATION = "calculation"
    MEMORY = "memory"
    TASK = "task"
    NOTIFICATION = "notification"
    SCRATCHPAD = "scratchpad"
    CHART = "chart"
    HTTP = "http"
    MCP = "mcp"
    GENERIC = "generic"

    @classmethod
    def from_tool_name(cls, tool_name: str | None) -> ToolCategory:
        """Resolve a server tool name; unknown names come from MCP plugins."""
        if not tool_name:
            return cls.GENERIC
        return _TOOL_CATEGORIES.get(tool_name, cls.MCP)


_TOOL_CATEGORIES = {
    "web_search": ToolCategory.WEB_SEARCH,
    "read_knowledge": ToolCategory.KNOWLEDGE,
    "search_knowledge": ToolCategory.KNOWLEDGE,
    "calculate": ToolCategory.CALCULATION,
    "analyze_csv": ToolCategory.CALCULATION,
    "generate_chart_data": ToolCategory.CHART,
    "save_memory": ToolCategory.MEMORY,
    "create_task": ToolCategory.TASK,
    "send_notification": ToolCategory.NOTIFICATION,
    "write_scratchpad": ToolCategory.SCRATCHPAD,
    "read_scratchpad": ToolCategory.SCRATCHPAD,
    "http_request": ToolCategory.HTTP,
    "get_current_time": ToolCategory.GENERIC,
    "get_user_info": ToolCategory.GENERIC,
    "get_conversation_context": ToolCategory.GENERIC,
}
