"""
CLI interface for board storage.

Usage:
    lana list
    lana create "Trip"
    lana fetch board-1712345678901 https://example.com/
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import Boards
from .errors import LanaError
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .types import BoardMeta


# Configure quiet mode by default (suppress verbose library output)
# Set LANA_VERBOSE=1 to enable debug mode via environment
if os.environ.get("LANA_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"lana {version('lana-boards')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


app = typer.Typer(
    name="lana",
    help="Local board storage: list, trash, restore and enrich boards.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="LANA_BOARDS_PATH",
        help="Path to the boards directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Local board storage: list, trash, restore and enrich boards."""


def _get_boards() -> Boards:
    """Open the boards root, exiting cleanly on failure."""
    try:
        boards = Boards(_store_override)
    except (LanaError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    configure_ops_log(boards.root)
    return boards


def _fail(e: Exception):
    typer.echo(f"Error: {e}", err=True)
    raise typer.Exit(1)


def _format_time(millis: Optional[int]) -> str:
    if millis is None:
        return ""
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M")


def _format_boards(boards: list[BoardMeta], trashed: bool = False) -> str:
    if _get_json_output():
        return json.dumps([b.to_dict() for b in boards], indent=2)
    if not boards:
        return "Trash is empty." if trashed else "No boards."
    lines = []
    for b in boards:
        when = b.deleted_at if trashed else b.updated_at
        lines.append(f"{b.id}  {_format_time(when)}  {b.name}")
    return "\n".join(lines)


def _echo_json(obj) -> None:
    typer.echo(json.dumps(obj, indent=2, ensure_ascii=False))


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command("list")
def list_boards():
    """List active boards."""
    boards = _get_boards()
    try:
        typer.echo(_format_boards(boards.list_boards()))
    except LanaError as e:
        _fail(e)


@app.command("trash")
def list_trash():
    """List trashed boards, most recently deleted first."""
    boards = _get_boards()
    try:
        typer.echo(_format_boards(boards.list_trashed_boards(), trashed=True))
    except LanaError as e:
        _fail(e)


@app.command()
def create(
    name: Annotated[str, typer.Argument(help="Board name")],
):
    """Create an empty board."""
    boards = _get_boards()
    try:
        meta = boards.create_board(name)
    except LanaError as e:
        _fail(e)
    if _get_json_output():
        _echo_json(meta.to_dict())
    else:
        typer.echo(meta.id)


@app.command()
def delete(
    board_id: Annotated[str, typer.Argument(help="Board id")],
):
    """Move a board to the trash."""
    boards = _get_boards()
    try:
        boards.delete_board(board_id)
    except LanaError as e:
        _fail(e)
    typer.echo(f"Moved {board_id} to trash")


@app.command()
def restore(
    board_id: Annotated[str, typer.Argument(help="Board id")],
):
    """Restore a board from the trash."""
    boards = _get_boards()
    try:
        meta = boards.restore_board(board_id)
    except LanaError as e:
        _fail(e)
    if _get_json_output():
        _echo_json(meta.to_dict())
    else:
        typer.echo(f"Restored {board_id}")


@app.command("empty-trash")
def empty_trash(
    yes: Annotated[bool, typer.Option(
        "--yes", "-y",
        help="Don't ask for confirmation",
    )] = False,
):
    """Permanently delete all trashed boards."""
    boards = _get_boards()
    if not yes:
        count = len(boards.list_trashed_boards())
        if count and not typer.confirm(f"Permanently delete {count} boards?"):
            raise typer.Exit(1)
    try:
        boards.empty_trash()
    except LanaError as e:
        _fail(e)
    typer.echo("Trash emptied")


@app.command()
def show(
    board_id: Annotated[str, typer.Argument(help="Board id")],
):
    """Print a board document."""
    boards = _get_boards()
    try:
        board = boards.load_board(board_id)
    except LanaError as e:
        _fail(e)
    if _get_json_output():
        _echo_json(board.to_dict())
        return
    typer.echo(f"{board.name} ({board.id})")
    typer.echo(f"  {len(board.cards)} cards, {len(board.columns)} columns")
    for column in board.columns:
        typer.echo(f"  [{column.name}] {len(column.card_ids)} cards")


@app.command()
def fetch(
    board_id: Annotated[str, typer.Argument(help="Board id")],
    url: Annotated[str, typer.Argument(help="Page URL")],
):
    """Fetch link preview metadata (and image) for a board."""
    boards = _get_boards()
    try:
        meta = boards.fetch_link_metadata(board_id, url)
    except LanaError as e:
        _fail(e)
    if _get_json_output():
        _echo_json(meta.to_dict())
        return
    typer.echo(meta.title)
    typer.echo(f"  url:  {meta.url}")
    if meta.site_name:
        typer.echo(f"  site: {meta.site_name}")
    if meta.image:
        typer.echo(f"  image: {meta.image}")


@app.command()
def assets(
    board_id: Annotated[str, typer.Argument(help="Board id")],
):
    """Print a board's assets directory."""
    boards = _get_boards()
    try:
        typer.echo(boards.get_assets_dir(board_id))
    except LanaError as e:
        _fail(e)


@app.command("open")
def open_url(
    url: Annotated[str, typer.Argument(help="http(s) URL")],
):
    """Open a URL in the default browser."""
    boards = _get_boards()
    try:
        boards.open_external_url(url)
    except LanaError as e:
        _fail(e)


@app.command()
def chat(
    model: Annotated[str, typer.Argument(help="Ollama model name")],
    message: Annotated[str, typer.Argument(help="User message")],
):
    """Send one message to the local Ollama server."""
    boards = _get_boards()
    try:
        reply = boards.ollama_chat(model, [{"role": "user", "content": message}])
    except (LanaError, ValueError) as e:
        _fail(e)
    if _get_json_output():
        _echo_json(reply.to_dict())
    else:
        typer.echo(reply.content)


@app.command()
def reindex():
    """Rebuild boards.json from the board directories."""
    boards = _get_boards()
    try:
        index = boards.reindex()
    except LanaError as e:
        _fail(e)
    typer.echo(f"Indexed {len(index.active())} boards, {len(index.trashed())} in trash")


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="lana CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
