"""
CLI interface for the glossary.

Usage:
    termbook add "API" -d "Application Programming Interface" -t web
    termbook find "api" -t web
    termbook list
"""

import json
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import Glossary
from .errors import NotFoundError, TermbookError, log_exception
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import Term, TermInput


# Configure quiet mode by default (suppress verbose library output)
# Set TERMBOOK_VERBOSE=1 to enable debug mode via environment
if os.environ.get("TERMBOOK_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from . import __version__
        print(f"termbook {__version__}")
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


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="termbook",
    help="Glossary of terms with tags and fuzzy search.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


# -----------------------------------------------------------------------------
# Output Formatting
# -----------------------------------------------------------------------------

def _format_term_line(term: Term, id_width: int = 0) -> str:
    """Format a term as: id  text  [tags]  description (first line)."""
    tags = f"  [{', '.join(term.tags)}]" if term.tags else ""
    description = term.description.splitlines()[0] if term.description else ""
    if description:
        description = f"  {description}"
    return f"{str(term.id).rjust(id_width)}  {term.text}{tags}{description}"


def _format_terms(terms: list[Term], as_json: bool = False) -> str:
    """Format multiple terms for display."""
    if as_json:
        return json.dumps([t.to_dict() for t in terms], indent=2, ensure_ascii=False)
    if not terms:
        return "No results."
    id_width = max(len(str(t.id)) for t in terms)
    return "\n".join(_format_term_line(t, id_width) for t in terms)


def _format_term(term: Term, as_json: bool = False) -> str:
    if as_json:
        return json.dumps(term.to_dict(), indent=2, ensure_ascii=False)
    return _format_term_line(term)


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

StoreOption = Annotated[
    Optional[Path],
    typer.Option(
        "--store", "-s",
        envvar="TERMBOOK_STORE_PATH",
        help="Path to the store directory (default: ~/.termbook/)"
    )
]

TagOption = Annotated[
    Optional[list[str]],
    typer.Option(
        "--tag", "-t",
        help="Tag name (repeatable)"
    )
]

DescriptionOption = Annotated[
    str,
    typer.Option(
        "--description", "-d",
        help="Description of the term"
    )
]


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
        envvar="TERMBOOK_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Glossary of terms with tags and fuzzy search."""


def _get_glossary(store: Optional[Path]) -> Glossary:
    """Open the glossary, reporting setup errors cleanly."""
    import atexit

    actual_store = store if store is not None else _get_store_override()
    try:
        gl = Glossary(actual_store)
    except (TermbookError, OSError, ValueError) as e:
        _fail(e, "open")
    atexit.register(gl.close)
    return gl


def _fail(exc: Exception, context: str):
    """Log the traceback, print a one-line error, exit 1."""
    log_exception(exc, context=f"termbook {context}")
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def add(
    text: Annotated[str, typer.Argument(help="Term text")],
    description: DescriptionOption = "",
    tag: TagOption = None,
    store: StoreOption = None,
):
    """
    Add a term.

    \b
    Examples:
        termbook add "API" -d "Application Programming Interface" -t web
        termbook add "データベース" -t db -t storage
    """
    gl = _get_glossary(store)
    try:
        term = gl.add_term(text, description, tag or [])
    except TermbookError as e:
        _fail(e, "add")
    typer.echo(_format_term(term, _get_json_output()))


@app.command("list")
def list_terms(
    store: StoreOption = None,
):
    """List all terms in text order."""
    gl = _get_glossary(store)
    typer.echo(_format_terms(gl.list_terms(), _get_json_output()))


@app.command()
def update(
    term_id: Annotated[int, typer.Argument(help="Term id")],
    text: Annotated[str, typer.Argument(help="New term text")],
    description: DescriptionOption = "",
    tag: TagOption = None,
    store: StoreOption = None,
):
    """
    Replace a term's text, description and tags.

    Tags not given are removed from the term.
    """
    gl = _get_glossary(store)
    try:
        term = gl.update_term(term_id, text, description, tag or [])
    except TermbookError as e:
        _fail(e, "update")
    typer.echo(_format_term(term, _get_json_output()))


@app.command()
def delete(
    term_id: Annotated[int, typer.Argument(help="Term id")],
    store: StoreOption = None,
):
    """Delete a term."""
    gl = _get_glossary(store)
    try:
        gl.delete_term(term_id)
    except TermbookError as e:
        _fail(e, "delete")
    typer.echo(f"Deleted {term_id}")


@app.command()
def untag(
    term_id: Annotated[int, typer.Argument(help="Term id")],
    tag_name: Annotated[str, typer.Argument(help="Tag to remove")],
    store: StoreOption = None,
):
    """Remove one tag from a term."""
    gl = _get_glossary(store)
    try:
        removed = gl.remove_tag(term_id, tag_name)
    except NotFoundError as e:
        _fail(e, "untag")
    if not removed:
        typer.echo(f"Term {term_id} has no tag {tag_name!r}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Removed {tag_name!r} from {term_id}")


@app.command()
def tags(
    contains: Annotated[Optional[str], typer.Option(
        "--contains", "-c",
        help="List terms whose tag names contain this text instead"
    )] = None,
    store: StoreOption = None,
):
    """List all tags, or terms by tag substring."""
    gl = _get_glossary(store)
    if contains is not None:
        typer.echo(_format_terms(gl.search_by_tag(contains), _get_json_output()))
        return
    all_tags = gl.list_tags()
    if _get_json_output():
        typer.echo(json.dumps([{"id": t.id, "name": t.name} for t in all_tags],
                              indent=2, ensure_ascii=False))
    elif not all_tags:
        typer.echo("No tags.")
    else:
        typer.echo("\n".join(t.name for t in all_tags))


@app.command()
def find(
    query: Annotated[Optional[str], typer.Argument(help="Search text (fuzzy)")] = None,
    tag: Annotated[Optional[list[str]], typer.Option(
        "--tag", "-t",
        help="Only terms with this tag (repeatable, any tag matches)"
    )] = None,
    store: StoreOption = None,
):
    """
    Find terms by text, tags, or both.

    \b
    Examples:
        termbook find "api"              # Fuzzy text search
        termbook find -t web             # All terms tagged web
        termbook find "base" -t db       # Both
    """
    gl = _get_glossary(store)
    results = gl.query(query or "", tag or [])
    if results.degraded:
        typer.echo(f"Warning: text search unavailable ({results.index_error}); "
                   "showing tag matches only", err=True)
    typer.echo(_format_terms(results, _get_json_output()))


@app.command("import")
def import_terms(
    source: Annotated[Path, typer.Argument(
        help="JSON file with a list of {text, description, tags} ('-' for stdin)"
    )],
    store: StoreOption = None,
):
    """
    Import terms from JSON, all or nothing.

    The format matches `termbook --json list` output and the output of
    term suggesters.
    """
    try:
        raw = sys.stdin.read() if str(source) == "-" else source.read_text(encoding="utf-8")
        data = json.loads(raw)
    except (OSError, json.JSONDecodeError) as e:
        _fail(e, "import")
    if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
        typer.echo("Error: expected a JSON list of term objects", err=True)
        raise typer.Exit(1)

    gl = _get_glossary(store)
    try:
        ids = gl.add_terms(TermInput.from_dict(d) for d in data)
    except TermbookError as e:
        _fail(e, "import")
    typer.echo(f"Imported {len(ids)} terms")


@app.command()
def sweep(
    store: StoreOption = None,
):
    """Delete tags that no term uses."""
    gl = _get_glossary(store)
    removed = gl.sweep_orphan_tags()
    typer.echo(f"Removed {removed} unused tags")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        log_path = log_exception(e, context="termbook CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
