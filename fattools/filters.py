"""Stream filters: DOS text conversion and whole-stream copying."""

from __future__ import annotations

import errno
from typing import BinaryIO, Optional, Protocol

COPY_CHUNK = 8 * 16384
_CTRL_Z = 0x1A


class _Readable(Protocol):
    def read(self, size: int = ...) -> bytes: ...


class Dos2UnixReader:
    """Reader that drops carriage returns and stops a read at Ctrl-Z."""

    def __init__(self, inner: _Readable) -> None:
        self.inner = inner

    def read(self, size: int = -1) -> bytes:
        data = self.inner.read(size)
        if not data:
            return b""
        cut = data.find(_CTRL_Z)
        if cut >= 0:
            data = data[:cut]
        return data.replace(b"\r", b"")


def _write_all(target: BinaryIO, data: bytes) -> None:
    view = memoryview(data)
    while view:
        written = target.write(view)
        if written is None:
            written = len(view)
        if written <= 0:
            raise OSError(errno.ENOSPC,
                          f"Short write {len(data) - len(view)} instead of {len(data)}")
        view = view[written:]


def copyfile(source: Optional[_Readable], target: Optional[BinaryIO]) -> int:
    """Copy everything from ``source`` to ``target``; return the byte count."""
    if source is None:
        raise ValueError("Couldn't open source file")
    if target is None:
        raise ValueError("Couldn't open target file")
    total = 0
    while True:
        chunk = source.read(COPY_CHUNK)
        if not chunk:
            break
        _write_all(target, chunk)
        total += len(chunk)
    return total