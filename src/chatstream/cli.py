"""CLI interface for chatstream."""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
import uuid

import click

from . import __version__
from .accumulator import IdGenerator, MessageAccumulator
from .config import API_BASE_URL, CACHE_TTL_SECONDS, DATA_DIR, SQLITE_PATH
from .events import ContentEvent, ReasoningEvent, StatusEvent
from .models import ClarifyQuestion, Message, TurnOptions


def _id_generator() -> IdGenerator:
    return IdGenerator(prefix=f"local_{int(time.time() * 1000)}")


def _print_summary(message: Message, questions: list[ClarifyQuestion]):
    click.echo()
    if message.is_error:
        click.echo(click.style(f"Error: {message.error_message}", fg="red"), err=True)
        return

    for artifact in message.artifacts:
        lang = f", {artifact.language}" if artifact.language else ""
        click.echo(click.style(f"[artifact] {artifact.title} ({artifact.type.value}{lang})", fg="cyan"))
    for edit in message.applied_edits:
        click.echo(click.style(f"[edited] {edit.target}: {edit.edit_count} change(s)", fg="green"))
    for q in questions:
        options = f" [{' / '.join(q.options)}]" if q.is_select else ""
        click.echo(click.style(f"[question] {q.question}{options}", fg="yellow"))


@click.group()
@click.version_option(version=__version__, prog_name="chatstream")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging on stderr")
def cli(verbose: bool):
    """chatstream: stream chat turns from an NDJSON chat API.

    Conversations are cached locally so artifacts produced in earlier
    turns can be revised by later ones.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


async def _run_chat(
    text: str,
    conversation_id: str,
    options: TurnOptions,
    api_url: str,
    show_reasoning: bool,
):
    from .client import ChatClient
    from .controller import StreamController
    from .storage import ConversationStore

    store = ConversationStore(SQLITE_PATH)
    history = store.get_messages(conversation_id, max_age=CACHE_TTL_SECONDS) or []
    accumulator = MessageAccumulator(conversation_id, history, _id_generator())

    def _echo(event):
        if isinstance(event, ContentEvent):
            click.echo(event.text, nl=False)
        elif isinstance(event, ReasoningEvent) and show_reasoning:
            click.echo(click.style(event.text, dim=True), nl=False, err=True)
        elif isinstance(event, StatusEvent) and (event.is_searching or event.is_using_tool):
            click.echo(click.style(f"[{event.status}]", dim=True), err=True)

    async with ChatClient(base_url=api_url) as client:
        controller = StreamController(client, accumulator, options)
        controller.subscribe(_echo)
        handle = controller.send_turn(text)
        try:
            await handle.wait()
        finally:
            controller.stop()
            store.save_conversation(conversation_id, accumulator.messages)
            store.close()

    return handle


@cli.command()
@click.argument("message")
@click.option("--conversation", "conversation_id", help="Continue a cached conversation")
@click.option("--think/--no-think", default=True, help="Enable reasoning mode")
@click.option("--web-search", is_flag=True, help="Allow the assistant to search the web")
@click.option("--planning", is_flag=True, help="Ask the assistant to plan first")
@click.option("--agent", "agent_id", help="Agent ID to route the turn to")
@click.option("--skill", "skill_id", help="Skill ID to apply to the turn")
@click.option("--api-url", default=API_BASE_URL, show_default=True, help="Chat API base URL")
@click.option("--show-reasoning", is_flag=True, help="Print reasoning text to stderr")
def chat(
    message: str,
    conversation_id: str | None,
    think: bool,
    web_search: bool,
    planning: bool,
    agent_id: str | None,
    skill_id: str | None,
    api_url: str,
    show_reasoning: bool,
):
    """Send MESSAGE and stream the reply.

    Example:
        chatstream chat "Draft a rental agreement" --planning
    """
    conversation_id = conversation_id or str(uuid.uuid4())
    options = TurnOptions(
        agent_id=agent_id,
        skill_id=skill_id,
        thinking_enabled=think,
        web_search_enabled=web_search,
        planning_enabled=planning,
    )

    try:
        handle = asyncio.run(_run_chat(message, conversation_id, options, api_url, show_reasoning))
    except KeyboardInterrupt:
        click.echo("\nStopped.", err=True)
        return

    _print_summary(handle.message, handle.clarify_questions)
    click.echo(click.style(f"Conversation: {conversation_id}", dim=True), err=True)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--conversation", "conversation_id", help="Replay into a cached conversation")
@click.option("--prompt", default="", help="User message to record before the reply")
@click.option("--save", is_flag=True, help="Write the result to the cache")
def replay(path: str, conversation_id: str | None, prompt: str, save: bool):
    """Replay a captured NDJSON response body from PATH.

    Useful for checking how a recorded stream is reconciled against a
    conversation's artifacts without calling the API.
    """
    from .replay import replay_ndjson
    from .storage import ConversationStore

    conversation_id = conversation_id or str(uuid.uuid4())
    store = ConversationStore(SQLITE_PATH) if (save or SQLITE_PATH.exists()) else None
    history = (store.get_messages(conversation_id) if store else None) or []
    accumulator = MessageAccumulator(conversation_id, history, _id_generator())

    result = replay_ndjson(path, accumulator, prompt=prompt)

    click.echo(result.message.content)
    _print_summary(result.message, result.clarify_questions)
    click.echo(click.style(f"Events: {result.events}", dim=True), err=True)
    if result.context is not None:
        click.echo(
            click.style(
                f"Context: {result.context.usage_percent}% "
                f"({result.context.total_tokens:,}/{result.context.context_window_size:,} tokens)",
                dim=True,
            ),
            err=True,
        )

    if store is not None:
        if save:
            store.save_conversation(conversation_id, accumulator.messages)
            click.echo(f"Saved to conversation {conversation_id}", err=True)
        store.close()


@cli.command()
def serve():
    """Start the MCP server (stdio transport) over the conversation cache."""
    if not SQLITE_PATH.exists():
        click.echo("Warning: No conversations cached yet.", err=True)

    from .server import mcp

    mcp.run(transport="stdio")


@cli.command()
def stats():
    """Show statistics about the conversation cache."""
    if not SQLITE_PATH.exists():
        click.echo("No cached conversations yet.")
        return

    from .storage import ConversationStore

    store = ConversationStore(SQLITE_PATH)
    s = store.get_stats()
    store.close()

    click.echo()
    click.echo(click.style("Conversation Cache", bold=True))
    click.echo(f"  Conversations:  {s['total_conversations']:,}")
    click.echo(f"  Messages:       {s['total_messages']:,}")
    click.echo(f"  Artifacts:      {s['total_artifacts']:,}")
    click.echo(f"  Avg msgs/conv:  {s['avg_messages_per_conversation']}")
    if s["date_range_start"]:
        click.echo(f"  Date range:     {s['date_range_start']} → {s['date_range_end']}")
    click.echo(f"  Storage:        {SQLITE_PATH.stat().st_size / (1024 * 1024):.1f} MB")
    click.echo(f"  Location:       {DATA_DIR}")
    click.echo()


@cli.command()
@click.confirmation_option(prompt="This will delete all cached conversations. Are you sure?")
def reset():
    """Delete the conversation cache."""
    if DATA_DIR.exists():
        shutil.rmtree(DATA_DIR)
        click.echo(f"Deleted {DATA_DIR}")
    else:
        click.echo("No data to delete.")
