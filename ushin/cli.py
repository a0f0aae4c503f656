"""
CLI interface for the message/point graph.

Usage:
    ushin author --name "Ada"
    ushin point add "Cats bring me joy" --id cats
    ushin message add cats --shape feelings=cats
    ushin search cats
    ushin messages --point cats
"""

import json
import os
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from .api import USHINBase
from .config import resolve_store_path
from .errors import NotFound, UshinError, log_exception
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import Message, Point, ReferenceLog, ResponseLog, Shape, to_epoch_millis


# Configure quiet mode by default
# Set USHIN_VERBOSE=1 to enable debug mode via environment
if os.environ.get("USHIN_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


app = typer.Typer(
    name="ushin",
    help="Messages and points with closure-aware search.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
point_app = typer.Typer(name="point", help="Add and read points.", no_args_is_help=True)
message_app = typer.Typer(name="message", help="Add and read messages.", no_args_is_help=True)
app.add_typer(point_app)
app.add_typer(message_app)


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
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="USHIN_STORE_PATH",
        help="Path to the store directory (default: ~/.ushin/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Messages and points with closure-aware search."""


LimitOption = Annotated[
    Optional[int],
    typer.Option(
        "--limit", "-n",
        help="Maximum results to return"
    )
]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_db() -> USHINBase:
    """Open and initialize the store, exiting cleanly on failure."""
    try:
        return USHINBase(path=resolve_store_path(_store_override)).init()
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _fail(e: Exception, context: str) -> None:
    log_exception(e, context=f"ushin {context}", store_path=resolve_store_path(_store_override))
    typer.echo(f"Error: {e}", err=True)
    raise typer.Exit(1)


def _parse_pairs(values: Optional[list[str]], option: str) -> list[tuple[str, str]]:
    pairs = []
    for value in values or []:
        key, sep, val = value.partition("=")
        if not sep or not key or not val:
            typer.echo(f"Error: {option} expects key=value, got {value!r}", err=True)
            raise typer.Exit(1)
        pairs.append((key, val))
    return pairs


def _to_json(value: Any) -> str:
    def default(obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)
    return json.dumps(value, indent=2, ensure_ascii=False, default=default)


def _format_point(point: Point) -> str:
    refs = f"  (cites {', '.join(point.referenced_ids)})" if point.reference_history else ""
    return f"{point.id}  {point.content or ''}{refs}"


def _format_message(message: Message) -> str:
    created = message.created_at.isoformat() if message.created_at else ""
    return f"{message.id}  {created}  main={message.main}  ({len(message.all_points)} points)"


def _echo_points(points: list[Point]) -> None:
    if _json_output:
        typer.echo(_to_json([p.to_doc() for p in points]))
    else:
        for p in points:
            typer.echo(_format_point(p))


def _echo_messages(messages: list[Message]) -> None:
    if _json_output:
        typer.echo(_to_json([asdict(m) for m in messages]))
    else:
        for m in messages:
            typer.echo(_format_message(m))


# -----------------------------------------------------------------------------
# Author
# -----------------------------------------------------------------------------

@app.command()
def author(
    name: Annotated[Optional[str], typer.Option("--name", help="Set the author name")] = None,
    set_: Annotated[Optional[list[str]], typer.Option(
        "--set",
        help="Set an author field (key=value, repeatable)"
    )] = None,
):
    """Show or update the local author info."""
    fields = dict(_parse_pairs(set_, "--set"))
    if name is not None:
        fields["name"] = name
    with _get_db() as db:
        info = db.set_author_info(fields) if fields else db.get_author_info()
        if _json_output:
            typer.echo(_to_json({**info.fields, "url": db.author_url}))
        else:
            typer.echo(f"url: {db.author_url}")
            for key, value in info.fields.items():
                typer.echo(f"{key}: {value}")


# -----------------------------------------------------------------------------
# Points
# -----------------------------------------------------------------------------

@point_app.command("add")
def point_add(
    content: Annotated[str, typer.Argument(help="Point text")],
    id: Annotated[Optional[str], typer.Option("--id", help="Explicit point ID")] = None,
    ref: Annotated[Optional[list[str]], typer.Option(
        "--ref", "-r",
        help="ID of an earlier point this one cites (repeatable)"
    )] = None,
):
    """Add a point."""
    history = [ReferenceLog(point_id=r) for r in ref] if ref else None
    with _get_db() as db:
        try:
            for r in ref or []:
                db.get_point(r)
            point_id = db.add_point(Point(id=id, content=content, reference_history=history))
        except UshinError as e:
            _fail(e, "point add")
        typer.echo(point_id)


@point_app.command("get")
def point_get(id: Annotated[str, typer.Argument(help="Point ID")]):
    """Show a point."""
    with _get_db() as db:
        try:
            point = db.get_point(id)
        except UshinError as e:
            _fail(e, "point get")
        _echo_points([point])


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Words that must all appear in the point")],
    limit: LimitOption = None,
):
    """Find points by their text, newest first."""
    with _get_db() as db:
        _echo_points(db.search_points_by_content(query, limit=limit))


# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------

@message_app.command("add")
def message_add(
    main: Annotated[str, typer.Argument(help="ID of the main point")],
    shape: Annotated[Optional[list[str]], typer.Option(
        "--shape",
        help="Add a point to a shape (name=ID, repeatable)"
    )] = None,
    respond: Annotated[Optional[list[str]], typer.Option(
        "--respond",
        help="Respond to a point (MAIN or MAIN:SECONDARY, repeatable)"
    )] = None,
    created: Annotated[Optional[str], typer.Option(
        "--created",
        help="Creation time as an ISO timestamp (default: now)"
    )] = None,
    revision_of: Annotated[Optional[str], typer.Option(
        "--revision-of",
        help="ID of the message this one revises"
    )] = None,
):
    """Add a message built from points already in the store."""
    shapes: dict[str, list[str]] = {}
    for name, point_id in _parse_pairs(shape, "--shape"):
        shapes.setdefault(name, []).append(point_id)

    responses = []
    for value in respond or []:
        main_id, _, secondary = value.partition(":")
        responses.append(ResponseLog(main_point_id=main_id, secondary_point_id=secondary or None))

    message = Message(
        main=main,
        shapes=[Shape(name, ids) for name, ids in shapes.items()],
        response_history=responses,
        created_at=created,
        revision_of=revision_of,
    )

    with _get_db() as db:
        # Stored points carry a revision, so they are not rewritten
        point_store = {}
        for point_id in [main, *message.shape_point_ids]:
            try:
                point_store[point_id] = db.get_point(point_id)
            except NotFound:
                continue
        try:
            message_id = db.add_message(message, point_store)
        except UshinError as e:
            _fail(e, "message add")
        typer.echo(message_id)


@message_app.command("get")
def message_get(id: Annotated[str, typer.Argument(help="Message ID")]):
    """Show a message."""
    with _get_db() as db:
        try:
            message = db.get_message(id)
        except UshinError as e:
            _fail(e, "message get")
        if _json_output:
            _echo_messages([message])
        else:
            typer.echo(_format_message(message))
            typer.echo(f"author: {message.author}")
            for s in message.shapes:
                typer.echo(f"{s.name}: {', '.join(s.point_ids)}")
            typer.echo(f"allPoints: {', '.join(message.all_points)}")


@message_app.command("points")
def message_points(id: Annotated[str, typer.Argument(help="Message ID")]):
    """Show every point a message depends on."""
    with _get_db() as db:
        try:
            points = db.get_points_for_message(db.get_message(id))
        except UshinError as e:
            _fail(e, "message points")
        _echo_points(list(points.values()))


@app.command()
def messages(
    point: Annotated[Optional[list[str]], typer.Option(
        "--point", "-p",
        help="Only messages depending on this point (repeatable, any match)"
    )] = None,
    since: Annotated[Optional[str], typer.Option(
        "--since",
        help="Only messages created at or after this ISO timestamp"
    )] = None,
    limit: LimitOption = None,
):
    """List messages, newest first."""
    selector: dict[str, Any] = {}
    with _get_db() as db:
        try:
            if since:
                selector["createdAt"] = {"$gte": to_epoch_millis(since)}
            if point:
                results = db.search_messages_for_points(point, selector, limit=limit)
            else:
                results = db.search_messages(selector, limit=limit)
        except UshinError as e:
            _fail(e, "messages")
        _echo_messages(results)


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        log_path = log_exception(e, context="ushin CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
