"""Tests for the SQLite conversation cache."""

from __future__ import annotations

import time

import pytest

from chatstream.models import Artifact, ArtifactType, Message, MessageRole
from chatstream.storage import ConversationStore


@pytest.fixture
def store(tmp_path):
    s = ConversationStore(tmp_path / "data" / "conversations.db")
    yield s
    s.close()


def _messages() -> list[Message]:
    return [
        Message(id="m1", conversation_id="c1", role=MessageRole.USER, content="Draft a lease for my flat"),
        Message(
            id="m2",
            conversation_id="c1",
            role=MessageRole.ASSISTANT,
            content="Here it is.",
            reasoning_content="thinking",
            tools_used=["web_search"],
            artifacts=[
                Artifact(id="artifact_0", type=ArtifactType.CONTRACT, title="Lease", content="Terms"),
            ],
        ),
    ]


def test_round_trip(store):
    messages = _messages()
    store.save_conversation("c1", messages)

    loaded = store.get_messages("c1")
    assert loaded == messages
    assert loaded[1].artifacts[0].type == ArtifactType.CONTRACT

    conv = store.get_conversation("c1")
    assert conv.title == "Draft a lease for my flat"
    assert conv.message_count == 2
    assert store.conversation_exists("c1")


def test_payload_is_camel_case_json(store):
    store.save_conversation("c1", _messages())
    payload = store.conn.execute(
        "SELECT payload FROM messages WHERE id = 'm2'"
    ).fetchone()["payload"]
    assert '"reasoningContent"' in payload
    assert '"toolsUsed"' in payload
    assert '"conversationId"' in payload


def test_missing_conversation(store):
    assert store.get_messages("nope") is None
    assert store.get_conversation("nope") is None
    assert not store.conversation_exists("nope")


def test_resave_keeps_title_and_create_time(store):
    store.save_conversation("c1", _messages(), title="Lease work")
    created = store.get_conversation("c1").create_time

    more = _messages() + [Message(id="m3", role=MessageRole.USER, content="Thanks")]
    store.save_conversation("c1", more)

    conv = store.get_conversation("c1")
    assert conv.title == "Lease work"
    assert conv.create_time == created
    assert [m.id for m in store.get_messages("c1")] == ["m1", "m2", "m3"]


def test_long_title_is_truncated(store):
    text = "word " * 40
    store.save_conversation("c1", [Message(id="m1", role=MessageRole.USER, content=text)])
    title = store.get_conversation("c1").title
    assert len(title) <= 60
    assert title.endswith("...")


def test_ttl_expiry(store):
    store.save_conversation("c1", _messages())
    store.conn.execute("UPDATE conversations SET cached_at = ?", (time.time() - 3600,))
    store.conn.commit()

    assert store.get_messages("c1", max_age=60) is None
    assert len(store.get_messages("c1", max_age=7200)) == 2
    assert len(store.get_messages("c1")) == 2


def test_corrupt_row_is_skipped(store):
    store.save_conversation("c1", _messages())
    store.conn.execute("UPDATE messages SET payload = '{\"broken\": true}' WHERE id = 'm1'")
    store.conn.commit()

    assert [m.id for m in store.get_messages("c1")] == ["m2"]


def test_list_and_search(store):
    store.save_conversation("c1", _messages())
    store.save_conversation(
        "c2", [Message(id="x1", role=MessageRole.USER, content="Weather in Almaty")]
    )
    store.conn.execute("UPDATE conversations SET update_time = 1000 WHERE id = 'c1'")
    store.conn.commit()

    assert [c.id for c in store.list_conversations()] == ["c2", "c1"]
    assert [c.id for c in store.list_conversations(keyword="Almaty")] == ["c2"]
    assert [c.id for c in store.list_conversations(keyword="Terms")] == ["c1"]
    assert [c.id for c in store.list_conversations(limit=1, offset=1)] == ["c1"]


def test_artifacts(store):
    store.save_conversation("c1", _messages())

    entries = store.list_artifacts()
    assert len(entries) == 1
    assert entries[0]["conversation_id"] == "c1"
    assert entries[0]["message_id"] == "m2"

    assert store.get_artifact("c1", " lease ").content == "Terms"
    assert store.get_artifact("c1", "Other") is None
    assert store.get_artifact("c2", "Lease") is None


def test_stats_and_delete(store):
    store.save_conversation("c1", _messages())
    stats = store.get_stats()
    assert stats["total_conversations"] == 1
    assert stats["total_messages"] == 2
    assert stats["total_artifacts"] == 1
    assert stats["avg_messages_per_conversation"] == 2.0
    assert stats["date_range_start"] is not None

    store.delete_conversation("c1")
    assert store.get_stats()["total_conversations"] == 0
    assert store.get_messages("c1") is None
