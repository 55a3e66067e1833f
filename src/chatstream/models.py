"""Data models for conversations, messages and extracted artifacts."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Model(BaseModel):
    """Serializes to the camelCase JSON shape the API and cache use."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ArtifactType(str, Enum):
    CONTRACT = "CONTRACT"
    CLAIM = "CLAIM"
    COMPLAINT = "COMPLAINT"
    DOCUMENT = "DOCUMENT"
    CODE = "CODE"
    ANALYSIS = "ANALYSIS"
    IMAGE = "IMAGE"

    @classmethod
    def parse(cls, value: str | None) -> ArtifactType:
        """Case-insensitive lookup; anything unrecognized is a DOCUMENT."""
        try:
            return cls((value or "").strip().upper())
        except ValueError:
            return cls.DOCUMENT


def normalize_title(title: str) -> str:
    """Dedup key for artifact titles."""
    return title.strip().casefold()


class Artifact(_Model):
    id: str
    type: ArtifactType = ArtifactType.DOCUMENT
    title: str
    content: str
    language: str | None = None

    @property
    def key(self) -> str:
        return normalize_title(self.title)


class Replacement(_Model):
    old_text: str = Field(validation_alias=AliasChoices("oldText", "old_text", "old"))
    new_text: str = Field(validation_alias=AliasChoices("newText", "new_text", "new"))


class ArtifactEdit(_Model):
    """A search/replace directive against an artifact identified by title."""

    target: str = Field(validation_alias=AliasChoices("target", "title"))
    replacements: list[Replacement] = Field(
        default_factory=list,
        validation_alias=AliasChoices("replacements", "edits"),
    )

    @property
    def edit_count(self) -> int:
        return len(self.replacements)


class ClarifyQuestion(_Model):
    id: str = ""
    question: str = ""
    options: list[str] | None = None
    type: str = "select"
    placeholder: str | None = None

    @property
    def is_text_input(self) -> bool:
        return self.type == "text"

    @property
    def is_select(self) -> bool:
        return not self.is_text_input and bool(self.options)


class LegalReference(_Model):
    label: str
    scheme: str
    code: str
    article: str


class Attachment(_Model):
    id: str
    name: str
    mime_type: str = "application/octet-stream"
    size_bytes: int = 0
    url: str | None = None
    thumbnail_url: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(_Model):
    id: str
    conversation_id: str = ""
    role: MessageRole
    content: str = ""
    reasoning_content: str | None = None
    plan_content: str | None = None
    artifacts: list[Artifact] = []
    applied_edits: list[ArtifactEdit] = []
    attachments: list[Attachment] = []
    tools_used: list[str] = []
    created_at: datetime = Field(default_factory=_utcnow)
    is_streaming: bool = False
    is_error: bool = False
    error_message: str | None = None

    @property
    def is_user(self) -> bool:
        return self.role == MessageRole.USER

    @property
    def is_assistant(self) -> bool:
        return self.role == MessageRole.ASSISTANT

    def to_chat_api(self) -> dict:
        """The minimal `{role, content}` form the chat endpoint expects."""
        return {"role": self.role.value, "content": self.content}


class Conversation(_Model):
    id: str
    title: str
    create_time: float | None = None
    update_time: float | None = None
    message_count: int = 0


class TurnOptions(_Model):
    """Per-turn request flags."""

    agent_id: str | None = None
    skill_id: str | None = None
    thinking_enabled: bool = True
    web_search_enabled: bool = False
    planning_enabled: bool = False
