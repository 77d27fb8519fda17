"""Chat Store - command line access to a chat store file."""
from __future__ import annotations

import shlex
from datetime import datetime, timezone
from pathlib import Path

import click

from chat_core.codec import Content
from chat_core.errors import StoreError
from chat_core.protocol import FOLDER_NAME, NEW_ID

from .engine import Storage
from .scan import export_records
from .session import DEFAULT_COMMAND, ChatSession, ChatStyle


def _fatal(e: Exception) -> None:
    # Fail closed, with a single-line reason.
    click.echo(f"FATAL: {e}")
    raise SystemExit(1)


def _echo_notifications(storage: Storage) -> None:
    for msg in storage.notifier.drain():
        click.echo(msg)


def _iso(ts: int) -> str:
    try:
        return datetime.fromtimestamp(ts, timezone.utc).isoformat().replace("+00:00", "Z")
    except (OverflowError, OSError, ValueError):
        # Any i64 is a valid stored timestamp; show it raw when the platform cannot convert it.
        return str(ts)


def render_line(line: str, style: ChatStyle) -> str:
    for prefix, color in (
        (style.user_prefix, style.user_color),
        (style.bot_prefix, style.bot_color),
        (style.system_prefix, style.system_color),
    ):
        if line.startswith(prefix):
            return click.style(prefix, fg=color) + line[len(prefix):]
    return line


@click.group()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=FOLDER_NAME,
    envvar="CHAT_STORE_ROOT",
    show_default=True,
    help="Folder holding chat.db",
)
@click.pass_context
def main(ctx: click.Context, root: Path) -> None:
    """Inspect and write a fixed-record chat store."""
    ctx.obj = Storage(root)


@main.command("init")
@click.pass_obj
def init_cmd(storage: Storage) -> None:
    """Create the store, or load it if it already exists."""
    try:
        storage.initialize()
    except StoreError as e:
        _fatal(e)
    _echo_notifications(storage)


@main.command("store")
@click.argument("message")
@click.option("--id", "rid", type=int, default=NEW_ID, help="Overwrite this identifier (0 allocates)")
@click.pass_obj
def store_cmd(storage: Storage, message: str, rid: int) -> None:
    """Store MESSAGE as one record and print its identifier."""
    now = int(datetime.now(timezone.utc).timestamp())
    content = Content(created_at=now, updated_at=now, content=message.encode("utf-8"))
    try:
        rid = storage.store(rid, content)
    except StoreError as e:
        _fatal(e)
    _echo_notifications(storage)
    click.echo(rid)


@main.command("get")
@click.argument("rid", type=int)
@click.pass_obj
def get_cmd(storage: Storage, rid: int) -> None:
    """Print one record."""
    try:
        content = storage.get(rid)
    except StoreError as e:
        _fatal(e)
    click.echo(f"# id={content.id} created={_iso(content.created_at)} "
               f"updated={_iso(content.updated_at)} length={content.length}")
    click.echo(content.content.decode("utf-8", errors="replace"), nl=False)


@main.command("ids")
@click.pass_obj
def ids_cmd(storage: Storage) -> None:
    """List allocated identifiers."""
    try:
        ids = storage.get_ids()
    except StoreError as e:
        _fatal(e)
    for rid in ids:
        click.echo(rid)


@main.command("export")
@click.argument("out", type=click.Path(file_okay=False, path_type=Path))
@click.pass_obj
def export_cmd(storage: Storage, out: Path) -> None:
    """Write OUT/records.parquet with every stored record."""
    try:
        target = export_records(storage.path, out, storage.capacity)
    except (StoreError, OSError) as e:
        _fatal(e)
    if target is None:
        click.echo("No records to export.")
    else:
        click.echo(f"PASS: Records exported to {target}")


@main.command("chat")
@click.option("--command", "command", default=None, help="Chat command; {input} is replaced by your text")
@click.pass_obj
def chat_cmd(storage: Storage, command: str | None) -> None:
    """Line-mode chat. /save stores the transcript, /quit exits.

    User and bot lines are saved; a transcript past 4096 bytes is rejected on /save.
    """
    session = ChatSession(storage, command=shlex.split(command) if command else DEFAULT_COMMAND)
    try:
        storage.initialize()
    except StoreError as e:
        _fatal(e)

    shown = 0

    def flush() -> None:
        nonlocal shown
        session.pump_notifications()
        for line in session.messages[shown:]:
            click.echo(render_line(line, session.style))
        shown = len(session.messages)

    click.echo("Chat successfully initialized. Type a message below.")
    flush()
    while True:
        try:
            line = click.prompt("|", default="", show_default=False, prompt_suffix=" ")
        except click.Abort:
            break

        if line == "/quit":
            break
        if line == "/save":
            try:
                session.save()
            except StoreError as e:
                click.echo(f"Error saving chat history: {e}")
        elif line.strip():
            session.ask(line)
        flush()

    storage.close()


if __name__ == "__main__":
    main()
