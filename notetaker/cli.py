"""
CLI interface for notetaker.

Usage:
    note MyNote : Some text.
    note MyNote :+ Some more text.
    note 'MyNote*'
"""

import os
import sys
from datetime import date
from pathlib import Path
from typing import Optional, TextIO

import typer
from typing_extensions import Annotated

from .api import Notebook
from .backend import BUILTIN_BACKENDS
from .config import STORE_PATH_ENV
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import RenameResult, glob_to_regex

# Name that stands for today's date
TODAY_NAME = "@"

# Terminator for interactive stdin entry
STDIN_TERMINATOR = "::"

USAGE = """\
USAGE: note [name|search] [command] [contents]

COMMANDS:
  [search]                  --    Display all notes whose name matches [search]
                                  Can use '?'/'*' for wildcard/s
                                  Can use '@' (by itself) to mean the current date.
  [regex] ?                 --    Display all notes whose name matches [regex]
  [name] : [contents]       --    Write [contents] to [name]
  [name] :+ [contents]      --    Append [contents] to [name]
  [name] :@ [contents]      --    Append [contents] to [name] with timestamp
  [name] ::                 --    Write standard input to [name]
  [name] ::+                --    Append standard input to [name]
  [name] ::@                --    Append standard input to [name] with timestamp
                                  If not being redirected, standard input can
                                  be ended by ending line with "::"
  [name] -                  --    Deletes note with [name]
  [search] --               --    Deletes all notes whose name matches [search]
  [regex] --?               --    Deletes all notes whose name matches [regex]
  [old-name] = [new-name]   --    Renames note [old-name] to [new-name]

EXAMPLE:
  note MyNote : Some text.           -- Creates (or overwrites) a note named 'MyNote' with the contents 'Some text.'.
  note MyNote :+ Some more text.     -- Appends the text 'Some more text.' to the note named 'MyNote'.
  note MyNote                        -- Displays the contents of the note named 'MyNote'.
  note MyNote*                       -- Displays the contents of any note that starts with 'MyNote'.
  note @ :@ Today's Date and Time.   -- Appends to (or creates) a note with the current date,
                                        prepending the note contents with a timestamp.
  note @                             -- Displays the contents of a note whose name is the current date.
  note *                             -- Displays all notes."""

# Commands that take a trailing value, and commands that take none
VALUE_COMMANDS = (":", ":+", ":@", "=")
BARE_COMMANDS = ("?", "::", "::+", "::@", "-", "--", "--?")

# Global options that consume the following token
_OPTIONS_WITH_VALUE = ("--store", "-s", "--backend", "-b")
_FLAG_OPTIONS = ("--verbose", "-v", "--version", "--help", "-h")


# Configure quiet mode by default
# Set NOTETAKER_VERBOSE=1 to enable debug mode via environment
if os.environ.get("NOTETAKER_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"note {version('notetaker')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Store directory in use, for the crash log
_active_store: Optional[Path] = None


app = typer.Typer(
    name="note",
    help="Quick named notes from the command line.",
    add_completion=False,
    rich_markup_mode=None,
    context_settings={"help_option_names": ["-h", "--help"]},
)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def protect_note_tokens(argv: list[str]) -> list[str]:
    """Insert an explicit ``--`` before the first note token.

    Note commands such as ``-``, ``--`` and ``--?`` look like options; after
    the terminator the parser hands them through untouched. Global options
    are only recognised before the note name.
    """
    i = 0
    while i < len(argv):
        token = argv[i]
        if token == "--":
            return list(argv)
        if token in _OPTIONS_WITH_VALUE:
            i += 2
            continue
        if token in _FLAG_OPTIONS or token.startswith(("--store=", "--backend=")):
            i += 1
            continue
        break
    return argv[:i] + ["--"] + argv[i:]


def resolve_name(name: str, today: Optional[date] = None) -> str:
    """Map ``@`` to today's date (YYYY-MM-DD); other names pass through."""
    if name == TODAY_NAME:
        return (today or date.today()).strftime("%Y-%m-%d")
    return name


def read_stdin_value(stream: Optional[TextIO] = None) -> str:
    """
    Read a note value from standard input.

    Redirected input is read to EOF. At a terminal, lines are read until
    one ends with ``::``; the terminator and the final newline are dropped.
    """
    stream = stream if stream is not None else sys.stdin
    if not stream.isatty():
        return stream.read()

    lines = []
    for line in iter(stream.readline, ""):
        line = line.rstrip("\n")
        lines.append(line)
        if line.endswith(STDIN_TERMINATOR):
            break
    text = "\n".join(lines)
    if text.endswith(STDIN_TERMINATOR):
        text = text[:-len(STDIN_TERMINATOR)]
    return text


def _show_usage(err: bool = False) -> None:
    typer.echo(USAGE, err=err)


def _print_search(search: str, notes) -> bool:
    """Print matches: ``--name--`` to stderr, the value to stdout."""
    found = False
    for note in notes:
        found = True
        typer.echo(f"--{note.name}--", err=True)
        typer.echo(note.value)
        typer.echo()
    if not found:
        typer.echo(f'Could not find any notes with search pattern "{search}".', err=True)
    return found


def _get_notebook(store: Optional[Path], backend: Optional[str]) -> Notebook:
    """Open the notebook, reporting setup failures cleanly."""
    global _active_store
    try:
        nb = Notebook(store, backend=backend)
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    _active_store = nb.store_path
    return nb


def run_command(nb: Notebook, name: str, command: Optional[str], value: Optional[str]) -> int:
    """
    Apply one parsed note command.

    Returns:
        Process exit status (0 ok, 1 not found/collision, 2 usage error)
    """
    if command is None:
        _print_search(name, nb.search(glob_to_regex(name)))
        return 0

    if value is None and command in VALUE_COMMANDS:
        typer.echo(f'Error: Command "{command}" needs a value.', err=True)
        _show_usage(err=True)
        return 2
    if value is not None and command not in VALUE_COMMANDS:
        if command in BARE_COMMANDS:
            typer.echo(f'Error: Command "{command}" does not take a value.', err=True)
        else:
            typer.echo(f'Error: Unknown Command "{command}".', err=True)
        _show_usage(err=True)
        return 2

    if command == ":":
        nb.write(name, value)
    elif command == ":+":
        nb.append(name, value)
    elif command == ":@":
        nb.append_datetime(name, value)
    elif command == "=":
        result = nb.rename(name, value)
        if result is RenameResult.OLD_NAME_DOES_NOT_EXIST:
            typer.echo(f'Could not find note with name "{name}".', err=True)
            return 1
        if result is RenameResult.NEW_NAME_ALREADY_EXISTS:
            typer.echo(f'A note with name "{value}" already exists.', err=True)
            return 1
        typer.echo("Note successfully renamed.", err=True)
    elif command == "?":
        _print_search(name, nb.search(name))
    elif command == "::":
        nb.write(name, read_stdin_value())
    elif command == "::+":
        nb.append(name, read_stdin_value())
    elif command == "::@":
        nb.append_datetime(name, read_stdin_value())
    elif command == "-":
        if not nb.delete(name):
            typer.echo(f'Could not find note with name "{name}".', err=True)
            return 1
        typer.echo("Note successfully deleted.", err=True)
    elif command == "--":
        count = nb.delete_glob(name)
        typer.echo(f"Deleted {count} notes.", err=True)
    elif command == "--?":
        count = nb.delete_matching(name)
        typer.echo(f"Deleted {count} notes.", err=True)
    else:
        typer.echo(f'Error: Unknown Command "{command}".', err=True)
        _show_usage(err=True)
        return 2
    return 0


# -----------------------------------------------------------------------------
# Command
# -----------------------------------------------------------------------------

StoreOption = Annotated[
    Optional[Path],
    typer.Option(
        "--store", "-s",
        envvar=STORE_PATH_ENV,
        help="Path to the store directory (default: ~/.notetaker/)",
    )
]


BackendOption = Annotated[
    Optional[str],
    typer.Option(
        "--backend", "-b",
        help=f"Storage backend ({' or '.join(BUILTIN_BACKENDS)}); a new store keeps it",
    )
]


@app.command(context_settings={"ignore_unknown_options": True})
def note(
    tokens: Annotated[Optional[list[str]], typer.Argument(
        help="NAME [COMMAND] [CONTENTS...]",
        show_default=False,
    )] = None,
    store: StoreOption = None,
    backend: BackendOption = None,
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
):
    """
    Read, write, search and delete named notes.

    Run without arguments for the full command list.
    """
    if not tokens:
        _show_usage()
        raise typer.Exit()

    name = resolve_name(tokens[0])
    command = tokens[1] if len(tokens) > 1 else None
    value = " ".join(tokens[2:]) if len(tokens) > 2 else None

    nb = _get_notebook(store, backend)
    try:
        status = run_command(nb, name, command, value)
        nb.optimize()
    finally:
        nb.close()

    if status:
        raise typer.Exit(status)


def main():
    try:
        app(args=protect_note_tokens(sys.argv[1:]), prog_name="note")
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="note CLI", store_path=_active_store)
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
