"""
Data types for notetaker.
"""

import enum
import functools
import re
from datetime import datetime
from typing import NamedTuple, Union

DEFAULT_TIMESTAMP_FORMAT = "%A, %B %d, %Y %I:%M %p"

Pattern = Union[str, re.Pattern]


class Note(NamedTuple):
    """A uniquely-named text record. Unpacks as ``(name, value)``."""
    name: str
    value: str


class RenameResult(enum.Enum):
    """Outcome of a rename."""
    SUCCESS = "success"
    OLD_NAME_DOES_NOT_EXIST = "old_name_does_not_exist"
    NEW_NAME_ALREADY_EXISTS = "new_name_already_exists"


@functools.lru_cache(maxsize=128)
def _compile(source: str) -> "re.Pattern[str]":
    return re.compile(source)


def compile_pattern(pattern: Pattern) -> "re.Pattern[str]":
    """Return a compiled pattern, compiling (and caching) strings.

    Raises re.error for an invalid expression.
    """
    if isinstance(pattern, re.Pattern):
        return pattern
    return _compile(pattern)


# Inline letters for the global flags a compiled pattern can carry
_INLINE_FLAGS = (
    (re.ASCII, "a"),
    (re.IGNORECASE, "i"),
    (re.MULTILINE, "m"),
    (re.DOTALL, "s"),
    (re.VERBOSE, "x"),
)


def pattern_source(pattern: Pattern) -> str:
    """Render a pattern as self-contained source text.

    Flags on a compiled pattern become an inline ``(?flags)`` prefix, so the
    text can be handed to SQL and recompiled with identical behaviour.
    """
    compiled = compile_pattern(pattern)
    letters = "".join(ch for flag, ch in _INLINE_FLAGS if compiled.flags & flag)
    if letters:
        return f"(?{letters}){compiled.pattern}"
    return compiled.pattern


def glob_to_regex(glob: str) -> "re.Pattern[str]":
    """Translate a note glob into an anchored regular expression.

    ``*`` matches any run of characters (lazily), ``?`` a single character.
    Everything else is literal.
    """
    parts = ["^"]
    for ch in glob:
        if ch == "*":
            parts.append(".*?")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    parts.append("$")
    return re.compile("".join(parts))


def format_timestamp(moment: datetime, fmt: str = DEFAULT_TIMESTAMP_FORMAT) -> str:
    """Render a local date/time for timestamped appends."""
    return moment.strftime(fmt)


def appended_value(old: str | None, value: str) -> str:
    """Value after a plain append."""
    if old is None:
        return value
    return f"{old}\n{value}"


def timestamped_value(old: str | None, value: str, stamp: str) -> str:
    """Value after a timestamped append.

    A new note starts with the stamp line; an existing one gets a blank
    line, the stamp line, then the text.
    """
    if old is None:
        return f"[{stamp}]\n{value}"
    return f"{old}\n\n[{stamp}]\n{value}"
