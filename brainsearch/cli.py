"""
CLI interface for the knowledge store.

Usage:
    brainsearch search "query text"
    brainsearch related note-id
    brainsearch put note-id "content" --title "Title"
    brainsearch backfill
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from typing_extensions import Annotated

from .api import Brain
from .errors import BrainSearchError, log_exception
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import NOTE, PROFILE, Item, SearchQuery

T = TypeVar("T")


# Configure quiet mode by default (suppress verbose library output)
# Set BRAINSEARCH_VERBOSE=1 to enable debug mode via environment
if os.environ.get("BRAINSEARCH_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


_store_override: Optional[Path] = None


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


app = typer.Typer(
    name="brainsearch",
    help="Search and relate notes in a personal knowledge store.",
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
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="BRAINSEARCH_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Search and relate notes in a personal knowledge store."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

StoreOption = Annotated[
    Optional[Path],
    typer.Option(
        "--store", "-s",
        help="Path to the store directory (default: ~/.brainsearch/)"
    )
]

LimitOption = Annotated[
    int,
    typer.Option(
        "--limit", "-n",
        help="Maximum results to return"
    )
]

ProfileOption = Annotated[
    bool,
    typer.Option(
        "--profile", "-p",
        help="Work on the profile instead of notes"
    )
]


def _get_brain(store: Optional[Path]) -> Brain:
    """Open the store, reporting failures as a clean error."""
    actual_store = store if store is not None else _store_override
    try:
        return Brain(actual_store)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _run(store: Optional[Path], command: str,
         operation: Callable[[Brain], Awaitable[T]]) -> T:
    """Run an async operation against the store and close it afterwards."""
    brain = _get_brain(store)
    try:
        return asyncio.run(operation(brain))
    except BrainSearchError as e:
        log_path = log_exception(e, context=f"brainsearch {command}")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise typer.Exit(1)
    finally:
        brain.close()


def _format_items(items: list[Item]) -> str:
    """One ``id<TAB>title`` line per item."""
    return "\n".join(f"{item.id}\t{item.title}" for item in items)


def _echo_items(items: list[Item]) -> None:
    if items:
        typer.echo(_format_items(items))


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def search(
    query: Annotated[Optional[str], typer.Argument(help="Search query text")] = None,
    tag: Annotated[Optional[list[str]], typer.Option(
        "--tag", "-t",
        help="Only items with this tag (repeatable)"
    )] = None,
    keyword: Annotated[bool, typer.Option(
        "--keyword", "-k",
        help="Keyword search only (skip semantic ranking)"
    )] = False,
    offset: Annotated[int, typer.Option(
        "--offset",
        help="Skip this many results"
    )] = 0,
    profile: ProfileOption = False,
    store: StoreOption = None,
    limit: LimitOption = 10,
):
    """
    Search notes by meaning, falling back to keywords.

    \b
    Examples:
        brainsearch search "rust ownership"
        brainsearch search -t rust -n 5
        brainsearch search                  # Most recently updated
    """
    request = SearchQuery(
        query=query,
        tags=tuple(tag or ()),
        limit=limit,
        offset=offset,
        semantic_search=not keyword,
    )
    kind = PROFILE if profile else NOTE
    _echo_items(_run(store, "search", lambda brain: brain.search(request, kind=kind)))


@app.command()
def related(
    id: Annotated[Optional[str], typer.Argument(help="Item ID to relate")] = None,
    profile: ProfileOption = False,
    store: StoreOption = None,
    limit: LimitOption = 5,
):
    """
    Find items related to an item.

    \b
    Examples:
        brainsearch related note-1          # Notes related to a note
        brainsearch related --profile       # Notes related to the profile
    """
    if id is None and not profile:
        typer.echo("Error: Specify an ID or --profile", err=True)
        raise typer.Exit(1)

    if id is None:
        items = _run(store, "related", lambda brain: brain.find_notes_for_profile(limit))
    else:
        kind = PROFILE if profile else NOTE
        items = _run(store, "related",
                     lambda brain: brain.find_related(id, limit, kind=kind))
    _echo_items(items)


@app.command()
def put(
    id: Annotated[str, typer.Argument(help="Note ID")],
    content: Annotated[Optional[str], typer.Argument(
        help="Note content ('-' to read stdin)"
    )] = None,
    title: Annotated[str, typer.Option(
        "--title",
        help="Note title"
    )] = "",
    tag: Annotated[Optional[list[str]], typer.Option(
        "--tag", "-t",
        help="Tag (repeatable)"
    )] = None,
    store: StoreOption = None,
):
    """
    Store a note, generating its embedding when a provider is available.

    \b
    Examples:
        brainsearch put n1 "Borrowing rules" --title "Rust" -t rust
        cat notes.md | brainsearch put n2 -
    """
    if content == "-":
        content = sys.stdin.read()
    item = _run(store, "put",
                lambda brain: brain.put_note(id, title, content or "", tag or ()))
    suffix = "" if item.has_embedding else " (no embedding)"
    typer.echo(f"{item.id}\t{item.title}{suffix}")


@app.command()
def backfill(
    profile: ProfileOption = False,
    store: StoreOption = None,
):
    """Generate embeddings for items that have none."""
    kind = PROFILE if profile else None
    result = _run(store, "backfill", lambda brain: brain.backfill_embeddings(kind))
    typer.echo(f"updated={result.updated} failed={result.failed} chunks={result.chunks}")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        log_path = log_exception(e, context="brainsearch CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
