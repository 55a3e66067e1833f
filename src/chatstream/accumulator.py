"""Accumulate streamed events into conversation state and reconcile artifacts."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field

from .models import (
    Artifact,
    ArtifactEdit,
    Attachment,
    ClarifyQuestion,
    Message,
    MessageRole,
    normalize_title,
)
from .parser import extract_artifacts, extract_clarify_questions, extract_edits

logger = logging.getLogger(__name__)


class IdGenerator:
    """Sequential, scope-local ids for messages created on the client."""

    def __init__(self, prefix: str = "local"):
        self.prefix = prefix
        self._counter = itertools.count(1)

    def next(self) -> str:
        return f"{self.prefix}_{next(self._counter)}"


@dataclass
class FinishResult:
    new_artifacts: list[Artifact] = field(default_factory=list)
    updated_artifacts: list[Artifact] = field(default_factory=list)
    applied_edits: list[ArtifactEdit] = field(default_factory=list)


def _apply_edit(artifact: Artifact, edit: ArtifactEdit) -> bool:
    content = artifact.content
    for replacement in edit.replacements:
        if replacement.old_text:
            content = content.replace(replacement.old_text, replacement.new_text)
    if content == artifact.content:
        return False
    artifact.content = content
    return True


class MessageAccumulator:
    """Owns the message list of one conversation.

    Only the last message is ever mutated by streaming events. The exception
    is `finish_streaming`, which may rewrite artifacts on earlier, already
    finished messages: a repeated title means the assistant revised an
    artifact it produced in an earlier turn, and the revision replaces the
    earlier one in place instead of showing up twice.
    """

    def __init__(
        self,
        conversation_id: str = "",
        messages: list[Message] | None = None,
        id_generator: IdGenerator | None = None,
    ):
        self.conversation_id = conversation_id
        self.ids = id_generator or IdGenerator()
        self.messages: list[Message] = []
        self._titles: dict[str, Artifact] = {}
        self.load(messages or [])

    def load(self, messages: list[Message]):
        """Replace the message list, e.g. with history restored from the cache."""
        self.messages = list(messages)
        self._titles = {}
        for message in self.messages:
            for artifact in message.artifacts:
                self._titles.setdefault(artifact.key, artifact)

    def clear(self):
        self.load([])

    @property
    def last(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def _streaming_message(self) -> Message | None:
        last = self.last
        if last is None or not last.is_assistant or not last.is_streaming:
            return None
        return last

    @property
    def is_streaming(self) -> bool:
        return self._streaming_message() is not None

    def find_artifact(self, title: str) -> Artifact | None:
        return self._titles.get(normalize_title(title))

    # ---- message creation ----

    def add_user_message(self, text: str, attachments: list[Attachment] | None = None) -> Message:
        message = Message(
            id=self.ids.next(),
            conversation_id=self.conversation_id,
            role=MessageRole.USER,
            content=text,
            attachments=list(attachments or []),
        )
        self.messages.append(message)
        return message

    def add_assistant_placeholder(self) -> Message:
        message = Message(
            id=self.ids.next(),
            conversation_id=self.conversation_id,
            role=MessageRole.ASSISTANT,
            is_streaming=True,
        )
        self.messages.append(message)
        return message

    # ---- streaming deltas ----

    def append_content(self, fragment: str):
        message = self._streaming_message()
        if message is not None:
            message.content += fragment

    def append_reasoning(self, fragment: str):
        message = self._streaming_message()
        if message is not None:
            message.reasoning_content = (message.reasoning_content or "") + fragment

    def append_plan(self, fragment: str):
        message = self._streaming_message()
        if message is not None:
            message.plan_content = (message.plan_content or "") + fragment

    def record_artifacts(self, artifacts: list[Artifact]):
        message = self._streaming_message()
        if message is not None:
            message.artifacts = list(artifacts)

    def record_tools_used(self, tools: list[str]):
        message = self._streaming_message()
        if message is not None:
            message.tools_used = list(tools)

    def add_tool_used(self, tool_name: str):
        message = self._streaming_message()
        if message is not None and tool_name not in message.tools_used:
            self.record_tools_used([*message.tools_used, tool_name])

    # ---- terminal transitions ----

    def finish_streaming(self) -> FinishResult | None:
        """Complete the in-flight assistant message.

        Extracts artifacts and edit directives from the accumulated content,
        folds artifacts whose title already exists anywhere in the
        conversation into that existing artifact, applies edits, and stores
        the tag-free content. Artifacts passed to `record_artifacts` during
        the stream are reconciled the same way, ahead of extracted ones.
        Returns None if nothing was streaming.
        """
        message = self._streaming_message()
        if message is None:
            return None

        extracted = extract_artifacts(message.content)
        edits = extract_edits(extracted.clean_content)
        result = FinishResult()

        for artifact in [*message.artifacts, *extracted.artifacts]:
            existing = self._titles.get(artifact.key)
            if existing is artifact:
                continue
            if existing is None:
                self._titles[artifact.key] = artifact
                result.new_artifacts.append(artifact)
                continue
            # Historical mutation: the earlier message keeps ownership of the artifact.
            if existing.content != artifact.content:
                existing.content = artifact.content
                result.updated_artifacts.append(existing)
                logger.debug("Updated artifact %r from a later message", existing.title)

        for edit in edits.edits:
            target = self._titles.get(normalize_title(edit.target))
            if target is None:
                logger.debug("Edit target %r not found", edit.target)
                continue
            if _apply_edit(target, edit):
                result.applied_edits.append(edit)

        message.is_streaming = False
        message.content = edits.clean_content
        message.artifacts = result.new_artifacts
        message.applied_edits = result.applied_edits
        return result

    def set_error(self, error_message: str) -> bool:
        message = self._streaming_message()
        if message is None:
            return False
        message.is_streaming = False
        message.is_error = True
        message.error_message = error_message
        return True

    def take_clarify_questions(self) -> list[ClarifyQuestion]:
        """Strip a clarify block from the finished last message and return its questions."""
        last = self.last
        if last is None or not last.is_assistant or last.is_streaming:
            return []

        extracted = extract_clarify_questions(last.content)
        if extracted.questions:
            last.content = extracted.clean_content
        return extracted.questions

    def history(self) -> list[dict]:
        """Prior messages in the `{role, content}` form the chat API accepts."""
        return [
            m.to_chat_api()
            for m in self.messages
            if m.role != MessageRole.SYSTEM and m.content
        ]
