"""File name expansion through the shell."""

from __future__ import annotations

import os
import subprocess
from typing import Optional, Sequence

EXPAND_BUF = 2048
SPECIAL_CHARS = "$*(){}[]\\?`~"
_COMMAND_MAX = 254
_SHELL = "/bin/sh"


def safe_popen_out(command: Sequence[str], limit: int) -> bytes:
    """Run ``command`` and return at most ``limit`` bytes of its output.

    Standard error is discarded; a command that cannot be started yields
    empty output.
    """
    try:
        proc = subprocess.Popen(
            list(command),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
        )
    except (FileNotFoundError, PermissionError):
        return b""
    try:
        assert proc.stdout is not None
        output = proc.stdout.read(limit)
    finally:
        proc.kill()
        proc.wait()
        if proc.stdout is not None:
            proc.stdout.close()
    return output


def expand(text: Optional[str]) -> Optional[str]:
    """Expand shell metacharacters in ``text`` by echoing it through the shell."""
    if text is None:
        return None
    if text == "":
        return ""
    if os.name == "nt" or not any(c in SPECIAL_CHARS for c in text):
        return text[:EXPAND_BUF - 1]
    command_line = ("echo " + text)[:_COMMAND_MAX]
    output = safe_popen_out([_SHELL, "-c", command_line], EXPAND_BUF - 1)
    if not output:
        return text[:EXPAND_BUF - 1]
    return os.fsdecode(output[:-1])