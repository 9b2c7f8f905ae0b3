"""GitHub Actions runner helpers: workflow-command logging and step inputs.

Everything is written to stderr so stdout stays free for machine-readable output.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Mapping
from uuid import uuid4


def _emit(line: str) -> None:
    print(line, file=sys.stderr)


def _escape(message: str) -> str:
    # Workflow commands are line oriented; multi-line messages must be percent-encoded.
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def debug(message: str) -> None:
    """Debug."""
    _emit(f"::debug::{_escape(message)}")


def info(message: str) -> None:
    """Info."""
    _emit(message)


def notice(message: str) -> None:
    """Notice."""
    _emit(f"::notice::{_escape(message)}")


def warning(message: str) -> None:
    """Warning."""
    _emit(f"::warning::{_escape(message)}")


def error(message: str) -> None:
    """Error."""
    _emit(f"::error::{_escape(message)}")


def input_env_name(name: str) -> str:
    """Environment variable the runner uses for a ``with:`` input."""
    return "INPUT_" + name.replace(" ", "_").upper()


def get_input(name: str, *, env: Mapping[str, str] | None = None) -> str | None:
    """Return the trimmed value of an action input, or None when unset or blank."""
    source = os.environ if env is None else env
    value = source.get(input_env_name(name))
    if value is None:
        return None
    value = value.strip()
    return value or None


def set_output(path: Path, key: str, value: str) -> None:
    """Append ``key`` to a GITHUB_OUTPUT file using the heredoc form (safe for newlines)."""
    delimiter = f"POLICY_GATE_{key.upper()}_{uuid4().hex}"
    while delimiter in value:
        delimiter = f"POLICY_GATE_{key.upper()}_{uuid4().hex}"
    with path.open("a", encoding="utf-8") as fh:
        fh.write(f"{key}<<{delimiter}\n")
        fh.write(value)
        if not value.endswith("\n"):
            fh.write("\n")
        fh.write(f"{delimiter}\n")
