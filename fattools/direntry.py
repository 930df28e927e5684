"""Directory entries: building, reading and writing them, and printing paths."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from fattools.msdos import MAX32, DirEntry

DIR_ENTRY_SIZE = 32
END_MARK = b"\x00"
_NEED_ESCAPE = '"$\\'

NameLike = Union[str, bytes]


class _Stream(Protocol):
    def pread(self, offset: int, size: int) -> bytes: ...

    def pwrite(self, offset: int, data: bytes) -> int: ...


def _as_bytes(value: NameLike, width: int) -> bytes:
    raw = value.encode("latin-1") if isinstance(value, str) else bytes(value)
    return raw[:width].ljust(width, b" ")


def mk_entry(base: NameLike, ext: NameLike, attr: int, cluster: int,
             size: int, date: Optional[float] = None) -> DirEntry:
    """Build a directory entry stamped with the local time of ``date``."""
    if not 0 <= cluster <= MAX32:
        raise ValueError(f"bad cluster {cluster}")
    if not 0 <= size <= MAX32:
        raise ValueError(f"bad size {size}")
    if not 0 <= attr <= 0xFF:
        raise ValueError(f"bad attribute {attr}")
    now = time.localtime(time.time() if date is None else date)
    time_lo = (((now.tm_min << 5) & 0xFF) + now.tm_sec // 2) & 0xFF
    time_hi = (((now.tm_hour << 3) & 0xFF) + (now.tm_min >> 3)) & 0xFF
    date_hi = ((((now.tm_year - 1980) << 1) & 0xFF) + (now.tm_mon >> 3)) & 0xFF
    date_lo = (((now.tm_mon << 5) & 0xFF) + now.tm_mday) & 0xFF
    stamp_time = bytes((time_lo, time_hi))
    stamp_date = bytes((date_lo, date_hi))

    raw = bytearray(DIR_ENTRY_SIZE)
    raw[0:8] = _as_bytes(base, 8)
    raw[8:11] = _as_bytes(ext, 3)
    raw[11] = attr
    raw[12] = 0
    raw[13] = 0
    raw[14:16] = stamp_time
    raw[16:18] = stamp_date
    raw[18:20] = stamp_date
    raw[20:22] = ((cluster >> 16) & 0xFFFF).to_bytes(2, "little")
    raw[22:24] = stamp_time
    raw[24:26] = stamp_date
    raw[26:28] = (cluster & 0xFFFF).to_bytes(2, "little")
    raw[28:32] = size.to_bytes(4, "little")
    return DirEntry.from_bytes(bytes(raw))


def mk_entry_from_base(base: NameLike, attr: int, cluster: int, size: int,
                       date: Optional[float] = None) -> DirEntry:
    """Build a special entry such as '.' or '..' with a blank extension."""
    return mk_entry(base, "   ", attr, cluster, size, date)


def _force_pread(stream: _Stream, offset: int, size: int) -> bytes:
    out = bytearray()
    while len(out) < size:
        chunk = stream.pread(offset + len(out), size - len(out))
        if not chunk:
            break
        out += chunk
    return bytes(out[:size])


def _force_pwrite(stream: _Stream, offset: int, data: bytes) -> int:
    done = 0
    while done < len(data):
        written = stream.pwrite(offset + done, data[done:])
        if not written or written <= 0:
            break
        done += written
    return done


def read_entry(stream: _Stream, index: int) -> Optional[DirEntry]:
    """Read slot ``index`` of a directory; None past the end of the data."""
    if index < 0:
        raise ValueError(f"bad directory slot {index}")
    raw = _force_pread(stream, index * DIR_ENTRY_SIZE, DIR_ENTRY_SIZE)
    if len(raw) != DIR_ENTRY_SIZE:
        return None
    return DirEntry.from_bytes(raw)


def write_entry(stream: _Stream, index: int, dirent: DirEntry) -> int:
    """Write ``dirent`` into slot ``index``; return the bytes written."""
    if index < 0:
        raise ValueError(f"bad directory slot {index}")
    return _force_pwrite(stream, index * DIR_ENTRY_SIZE, dirent.to_bytes())


def write_end_mark(stream: _Stream, index: int) -> int:
    """Mark slot ``index`` as the end of the directory."""
    if index < 0:
        raise ValueError(f"bad directory slot {index}")
    return _force_pwrite(stream, index * DIR_ENTRY_SIZE, END_MARK)


@dataclass(eq=False)
class DirectoryEntry:
    """An entry in a directory tree; an entry without parent is the root."""

    name: str = ""
    dirent: Optional[DirEntry] = None
    parent: Optional["DirectoryEntry"] = None
    index: int = -1
    drive: str = "A"

    def is_root(self) -> bool:
        """True for the root directory."""
        return self.parent is None

    def _drive(self) -> str:
        node = self
        while node.parent is not None:
            node = node.parent
        return node.drive

    def pwd(self) -> str:
        """Full path such as ``A:/dir/file``."""
        if self.parent is None:
            return f"{self.drive}:/"
        prefix = self.parent.pwd()
        if not prefix.endswith("/"):
            prefix += "/"
        return prefix + self.name

    def _format(self, recurs: bool, escape: bool) -> str:
        if self.parent is None:
            return f"{self.drive}:" + ("" if recurs else "/")
        name = self.name
        if escape:
            name = "".join("\\" + ch if ch in _NEED_ESCAPE else ch for ch in name)
        return self.parent._format(True, escape) + "/" + name

    def format_pwd(self, escape: bool = False) -> str:
        """Path for printing, quoted and shell-escaped when ``escape`` is set."""
        text = self._format(False, escape)
        return f'"{text}"' if escape else text

    def _format_short(self, recurs: bool) -> str:
        if self.parent is None:
            return f"{self.drive}:" + ("" if recurs else "/")
        if self.dirent is None:
            raise ValueError("entry has no directory record")
        raw = self.dirent.to_bytes()
        base = raw[0:8].rstrip(b" ")
        ext = raw[8:11].rstrip(b" ")
        text = base.decode("latin-1")
        if len(ext) > 1:
            text += "."
        text += ext.decode("latin-1")
        return self.parent._format_short(True) + "/" + text

    def format_short_pwd(self) -> str:
        """Path built from the 8.3 names of the directory records."""
        return self._format_short(False)

    def is_subdir_of(self, other: "DirectoryEntry") -> bool:
        """True if this entry is ``other`` or lies below it."""
        node: DirectoryEntry = self
        while True:
            if node is other:
                return True
            if node.parent is None:
                return False
            node = node.parent