"""FastMCP server exposing cached conversations and their artifacts."""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone

from mcp.server.fastmcp import FastMCP

from .config import DATA_DIR, SQLITE_PATH
from .storage import ConversationStore

# Logging to stderr only; stdout is the MCP JSON-RPC transport
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)

mcp = FastMCP(
    "chatstream",
    instructions=(
        "Browse cached chat conversations and the documents (artifacts) the "
        "assistant produced in them. "
        "Use list_conversations to find a conversation, get_conversation to read it, "
        "list_artifacts and get_artifact to read generated documents and code."
    ),
)

_store: ConversationStore | None = None


def _get_store() -> ConversationStore:
    global _store
    if _store is None:
        _store = ConversationStore(SQLITE_PATH)
    return _store


def _format_ts(ts: float | None) -> str:
    if ts is None:
        return "Unknown date"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


def _check_data_exists() -> str | None:
    """Return an error message if nothing has been cached yet."""
    if not SQLITE_PATH.exists():
        return (
            "No cached conversations found. Start one first:\n"
            '  chatstream chat "Hello"'
        )
    return None


@mcp.tool()
def list_conversations(
    limit: int = 20,
    offset: int = 0,
    keyword: str | None = None,
) -> str:
    """Browse cached conversations, most recent first.

    Args:
        limit: Maximum results (default 20)
        offset: Skip this many results (for pagination)
        keyword: Optional keyword to filter by (titles and content)
    """
    err = _check_data_exists()
    if err:
        return err

    conversations = _get_store().list_conversations(limit=limit, offset=offset, keyword=keyword)
    if not conversations:
        if keyword:
            return f"No conversations found matching '{keyword}'."
        return "No conversations found."

    lines = []
    for i, c in enumerate(conversations, offset + 1):
        lines.append(f"{i}. **{c.title}** ({_format_ts(c.update_time)})")
        lines.append(f"   ID: `{c.id}` | {c.message_count} msgs")

    if len(conversations) == limit:
        lines.append(f"\nMore available, use offset={offset + limit} to see the next page.")
    return "\n".join(lines)


@mcp.tool()
def get_conversation(conversation_id: str) -> str:
    """Read a cached conversation transcript.

    Args:
        conversation_id: The conversation ID (from list_conversations)
    """
    err = _check_data_exists()
    if err:
        return err

    store = _get_store()
    conv = store.get_conversation(conversation_id)
    messages = store.get_messages(conversation_id)
    if conv is None or messages is None:
        return f"Conversation not found: {conversation_id}"

    lines = [f"# {conv.title}", f"Updated: {_format_ts(conv.update_time)}", "", "---", ""]
    for msg in messages:
        role = "**User**" if msg.is_user else "**Assistant**"
        lines.append(f"{role}:")
        if msg.is_error:
            lines.append(f"[error] {msg.error_message}")
        else:
            lines.append(msg.content)
        for artifact in msg.artifacts:
            lines.append(f"  [artifact] {artifact.title} ({artifact.type.value})")
        for edit in msg.applied_edits:
            lines.append(f"  [edited] {edit.target} ({edit.edit_count} changes)")
        lines.append("")
    return "\n".join(lines)


@mcp.tool()
def list_artifacts(conversation_id: str | None = None) -> str:
    """List documents and code the assistant generated.

    Args:
        conversation_id: Restrict to one conversation (default: all)
    """
    err = _check_data_exists()
    if err:
        return err

    entries = _get_store().list_artifacts(conversation_id)
    if not entries:
        return "No artifacts found."

    lines = [f"Found {len(entries)} artifacts:\n"]
    for entry in entries:
        artifact = entry["artifact"]
        lang = f", {artifact.language}" if artifact.language else ""
        lines.append(f"- **{artifact.title}** ({artifact.type.value}{lang})")
        lines.append(f"  Conversation: `{entry['conversation_id']}`")
    return "\n".join(lines)


@mcp.tool()
def get_artifact(conversation_id: str, title: str) -> str:
    """Get the latest content of an artifact by title (case-insensitive).

    Args:
        conversation_id: The conversation the artifact belongs to
        title: The artifact title
    """
    err = _check_data_exists()
    if err:
        return err

    artifact = _get_store().get_artifact(conversation_id, title)
    if artifact is None:
        return f"Artifact not found: {title}"

    fence = artifact.language or ""
    return f"# {artifact.title}\n\n```{fence}\n{artifact.content}\n```"


@mcp.tool()
def get_stats() -> str:
    """Statistics about the local conversation cache."""
    err = _check_data_exists()
    if err:
        return err

    stats = _get_store().get_stats()
    size_mb = SQLITE_PATH.stat().st_size / (1024 * 1024)
    lines = [
        "# Conversation Cache",
        "",
        f"- **Conversations**: {stats['total_conversations']:,}",
        f"- **Messages**: {stats['total_messages']:,}",
        f"- **Artifacts**: {stats['total_artifacts']:,}",
        f"- **Avg messages/conversation**: {stats['avg_messages_per_conversation']}",
        f"- **Storage used**: {size_mb:.1f} MB",
    ]
    if stats["date_range_start"]:
        lines.append(f"- **Date range**: {stats['date_range_start']} → {stats['date_range_end']}")
    lines.append(f"\n*Data stored in: {DATA_DIR}*")
    return "\n".join(lines)
