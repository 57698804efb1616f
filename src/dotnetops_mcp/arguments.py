"""Command-line argument helpers for external .NET tools.

Operations build argv lists that are passed to the process runner without a
shell, so quoting only matters for two things: splitting user supplied
"additional arguments" strings and rendering commands for the log.
"""

from __future__ import annotations

import os
import shlex
import subprocess
from collections.abc import Iterable, Sequence

MASK: str = "XXXXX"


def split_arguments(text: str | None, windows: bool | None = None) -> list[str]:
    """Split a raw argument string into argv tokens.

    Args:
        text: Raw arguments as typed on a command line
        windows: Use Windows rules (backslashes are literal). Defaults to the
            current platform.

    Returns:
        List of tokens, empty for blank input
    """
    if not text or not text.strip():
        return []

    if windows is None:
        windows = os.name == "nt"

    if not windows:
        return shlex.split(text)

    tokens: list[str] = []
    current: list[str] = []
    in_token = False
    in_quotes = False
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text) and text[i + 1] == '"':
            current.append('"')
            in_token = True
            i += 2
            continue
        if ch == '"':
            in_quotes = not in_quotes
            in_token = True
        elif ch.isspace() and not in_quotes:
            if in_token:
                tokens.append("".join(current))
                current = []
                in_token = False
        else:
            current.append(ch)
            in_token = True
        i += 1

    if in_token:
        tokens.append("".join(current))

    return tokens


def trim_directory_separator(path: str | None) -> str | None:
    """Strip trailing path separators unless the path is a single character."""
    if not path or len(path) == 1:
        return path
    return path.rstrip("\\/")


def format_command(
    argv: Sequence[str],
    secrets: Iterable[str | None] = (),
    windows: bool | None = None,
) -> str:
    """Render argv as a single command line for logging.

    Every non-empty secret value is replaced with a mask.
    """
    if windows is None:
        windows = os.name == "nt"

    masked: list[str] = []
    hidden = [s for s in secrets if s]
    for arg in argv:
        for secret in hidden:
            arg = arg.replace(secret, MASK)
        masked.append(arg)

    if windows:
        return subprocess.list2cmdline(masked)
    return shlex.join(masked)


def is_blank(value: str | None) -> bool:
    """True for None, empty, or whitespace-only strings."""
    return value is None or not value.strip()
