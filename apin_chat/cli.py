"""
ApinChat CLI: a terminal front end for the conversation manager.

Registered as `apin-chat` console script via pyproject.toml.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import sys
from datetime import datetime
from pathlib import Path

import click

from .config import DATA_DIR_ENV_VAR, DB_FILENAME, default_data_dir
from .manager import ConversationManager
from .models import Conversation, Message
from .protocols import create_backend
from .provider import ModelProvider
from .storage import ConversationStore, SQLiteKeyValueStore

HELP_TEXT = """Slash Commands
/help                 Show command help
/new                  Start a new conversation
/list                 List conversations (most recent first)
/select N             Switch to conversation N (index or id prefix)
/delete [N]           Delete conversation N (defaults to the current one)
/status               Re-check on-device model availability
/quit                 Leave the chat (alias: /exit)
"""


class AppContext:
    """Lazily wires the store, provider and manager for a CLI invocation."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir
        self._kv: SQLiteKeyValueStore | None = None
        self._manager: ConversationManager | None = None

    @property
    def manager(self) -> ConversationManager:
        if self._manager is None:
            self._kv = SQLiteKeyValueStore(self.data_dir / DB_FILENAME)
            self._manager = ConversationManager(
                ModelProvider(create_backend()), ConversationStore(self._kv)
            )
        return self._manager

    def close(self) -> None:
        if self._kv is not None:
            self._kv.close()
            self._kv = None


# ── Helpers ───────────────────────────────────────────────────────────────────


def _resolve_conversation(manager: ConversationManager, reference: str) -> Conversation:
    """Find a conversation by 1-based list index or by id prefix."""
    conversations = manager.conversations
    needle = reference.strip().lower()
    if needle.isdigit() and 1 <= int(needle) <= len(conversations):
        return conversations[int(needle) - 1]
    if needle:
        matches = [c for c in conversations if str(c.id).startswith(needle)]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            raise click.BadParameter(
                f"'{reference}' matches {len(matches)} conversations; use a longer id prefix.",
                param_hint="CONVERSATION",
            )
    raise click.BadParameter(f"no conversation matches '{reference}'.", param_hint="CONVERSATION")


def _format_time(moment: datetime) -> str:
    return moment.astimezone().strftime("%Y-%m-%d %H:%M")


def _print_status(manager: ConversationManager) -> None:
    color = "green" if manager.is_ai_available else "yellow"
    click.secho(manager.availability_message, fg=color)


def _print_conversation_table(manager: ConversationManager) -> None:
    """Pretty-print conversations, marking the selected one."""
    conversations = manager.conversations
    if not conversations:
        click.secho("No conversations yet. Start one with `apin-chat new`.", fg="yellow")
        return

    click.secho(f"  {'#':<4}{'ID':<10}{'Title':<40}{'Msgs':>5}  Last activity", fg="cyan")
    click.secho(f"  {'─' * 3} {'─' * 9} {'─' * 39} {'─' * 4}  {'─' * 16}", fg="cyan")
    for index, conversation in enumerate(conversations, start=1):
        marker = "*" if conversation.id == manager.selected_id else " "
        title = conversation.title
        if len(title) > 38:
            title = title[:37] + "…"
        click.echo(
            f"{marker} {index:<4}{str(conversation.id)[:8]:<10}{title:<40}"
            f"{len(conversation.messages):>5}  {_format_time(conversation.last_message_at)}"
        )


def _print_message(message: Message) -> None:
    speaker, color = ("You", "cyan") if message.is_user else ("Assistant", "magenta")
    click.secho(f"{speaker} | {_format_time(message.timestamp)}", fg=color)
    click.echo(message.content)
    click.echo()


def _print_transcript(conversation: Conversation) -> None:
    click.secho(f"\n{conversation.title}\n", bold=True)
    if not conversation.messages:
        click.secho("(no messages yet)", fg="yellow")
        return
    for message in conversation.messages:
        _print_message(message)


def _report_send_failure(manager: ConversationManager) -> None:
    click.secho(manager.error_message or "No reply was generated.", fg="red", err=True)


def _read_line() -> str | None:
    line = sys.stdin.readline()
    if not line:
        return None
    return line.rstrip("\n").rstrip("\r")


# ── Commands ──────────────────────────────────────────────────────────────────


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="apin-chat")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    envvar=DATA_DIR_ENV_VAR,
    show_envvar=True,
    help="Where chat history is stored (default: $APIN_CHAT_HOME or ~/.apin_chat).",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, data_dir: Path | None, verbose: bool) -> None:
    """ApinChat: on-device chat with Apple Foundation Models."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    app = AppContext(data_dir or default_data_dir())
    ctx.obj = app
    ctx.call_on_close(app.close)


@cli.command()
@click.pass_obj
def status(app: AppContext) -> None:
    """Show whether the on-device model is ready."""
    manager = app.manager
    manager.check_availability()
    _print_status(manager)


@cli.command(name="list")
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """List saved conversations, most recent first."""
    _print_conversation_table(app.manager)


@cli.command()
@click.pass_obj
def new(app: AppContext) -> None:
    """Create an empty conversation and print its id."""
    conversation = app.manager.create_conversation()
    click.echo(str(conversation.id))


@cli.command()
@click.argument("conversation")
@click.pass_obj
def show(app: AppContext, conversation: str) -> None:
    """Print the transcript of CONVERSATION (list index or id prefix)."""
    _print_transcript(_resolve_conversation(app.manager, conversation))


@cli.command()
@click.argument("conversation")
@click.pass_obj
def delete(app: AppContext, conversation: str) -> None:
    """Delete CONVERSATION (list index or id prefix)."""
    manager = app.manager
    target = _resolve_conversation(manager, conversation)
    manager.delete_conversation(target.id)
    click.secho(f"Deleted '{target.title}'.", fg="green")


@cli.command()
@click.option(
    "-c",
    "--conversation",
    "reference",
    default=None,
    help="Target conversation (list index or id prefix). Defaults to the most recent one.",
)
@click.argument("text")
@click.pass_obj
def send(app: AppContext, reference: str | None, text: str) -> None:
    """Send TEXT as a single message and print the reply.

    \b
    Examples:
        apin-chat send "What is the capital of France?"
        apin-chat send -c 2 "And of Spain?"
    """
    if not text.strip():
        raise click.BadParameter("message text must not be blank.", param_hint="TEXT")

    manager = app.manager
    if reference is None:
        manager.ensure_conversation()
    else:
        manager.select_conversation(_resolve_conversation(manager, reference).id)

    reply = asyncio.run(manager.send_message(text))
    if reply is None:
        _report_send_failure(manager)
        raise SystemExit(1)
    click.echo(reply.content)


@cli.command()
@click.pass_obj
def chat(app: AppContext) -> None:
    """Start an interactive chat session (type /help for commands)."""
    asyncio.run(_chat_loop(app.manager))


# ── Interactive loop ──────────────────────────────────────────────────────────


def _run_slash_command(manager: ConversationManager, line: str) -> bool:
    """Execute a slash command. Returns False when the session should end."""
    command, _, argument = line.partition(" ")
    command = command.lower()
    argument = argument.strip()

    if command in {"/quit", "/exit"}:
        return False
    if command == "/help":
        click.echo(HELP_TEXT)
    elif command == "/new":
        manager.create_conversation()
        click.secho("Started a new conversation.", fg="green")
    elif command == "/list":
        _print_conversation_table(manager)
    elif command == "/status":
        manager.check_availability()
        _print_status(manager)
    elif command == "/select":
        if not argument:
            click.secho("Usage: /select N", fg="yellow")
            return True
        try:
            target = _resolve_conversation(manager, argument)
        except click.BadParameter as e:
            click.secho(e.format_message(), fg="red")
            return True
        manager.select_conversation(target.id)
        _print_transcript(target)
    elif command == "/delete":
        try:
            target = (
                _resolve_conversation(manager, argument)
                if argument
                else manager.selected_conversation
            )
        except click.BadParameter as e:
            click.secho(e.format_message(), fg="red")
            return True
        if target is None:
            click.secho("No conversation is selected.", fg="yellow")
            return True
        manager.delete_conversation(target.id)
        click.secho(f"Deleted '{target.title}'.", fg="green")
        current = manager.ensure_conversation()
        click.echo(f"Now chatting in: {current.title}")
    else:
        click.secho(f"Unknown command '{command}'. Type /help for commands.", fg="yellow")
    return True


async def _chat_loop(manager: ConversationManager) -> None:
    manager.check_availability()
    conversation = manager.ensure_conversation()
    _print_status(manager)
    click.echo(f"Chatting in: {conversation.title}  (/help for commands)\n")

    loop = asyncio.get_running_loop()
    while True:
        click.echo("> ", nl=False)
        line = await loop.run_in_executor(None, _read_line)
        if line is None:
            click.echo()
            break
        text = line.strip()
        if not text:
            continue
        if text.startswith("/"):
            if not _run_slash_command(manager, text):
                break
            continue

        reply = await manager.send_message(text)
        if reply is None:
            _report_send_failure(manager)
            manager.clear_error()
        else:
            _print_message(reply)


# ── Entry point ───────────────────────────────────────────────────────────────


def cli_entry() -> None:
    """Entry point for the console_scripts."""
    try:
        cli()
    except sqlite3.Error as exc:
        click.secho(f"Chat history storage failed: {exc}", fg="red", err=True)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    cli_entry()
