"""Sector-aligned read/write cache in front of a block device or image."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class BufferedStreamError(OSError):
    """Raised when the buffer cannot be filled or flushed."""


class _BlockStream(Protocol):
    def pread(self, offset: int, size: int) -> bytes: ...

    def pwrite(self, offset: int, data: bytes) -> int: ...


def _round_down(value: int, grain: int) -> int:
    return value - value % grain


def _round_up(value: int, grain: int) -> int:
    return _round_down(value + grain - 1, grain)


class BufferedStream:
    """Cache of up to ``size`` bytes that reads whole cylinders and writes whole sectors.

    The inner stream must offer ``pread(offset, size) -> bytes`` and
    ``pwrite(offset, data) -> int``; an optional ``pre_allocate(end)`` is
    called when the cached area grows by appending.
    """

    def __init__(self, inner: _BlockStream, size: int, cylinder_size: int,
                 sector_size: int) -> None:
        if inner is None:
            raise ValueError("inner stream is required")
        if size <= 0 or cylinder_size <= 0 or sector_size <= 0:
            raise ValueError("buffer, cylinder and sector sizes must be positive")
        if size % cylinder_size:
            raise BufferedStreamError("size not multiple of cylinder size")
        if cylinder_size % sector_size:
            raise BufferedStreamError("cylinder size not multiple of sector size")
        self.inner = inner
        self.size = size
        self.cylinder_size = cylinder_size
        self.sector_size = sector_size
        self.dirty = False
        self.ever_dirty = False
        self.dirty_pos = 0
        self.dirty_end = 0
        self.current = 0
        self.cur_size = 0
        self._buf: Optional[bytearray] = bytearray(size)

    # -- helpers -----------------------------------------------------------

    @property
    def _data(self) -> bytearray:
        if self._buf is None:
            raise ValueError("I/O operation on closed buffer")
        return self._buf

    def _cur_end(self) -> int:
        return self.current + self.cur_size

    def _to_next_full_cyl(self, pos: int) -> int:
        return self.cylinder_size - pos % self.cylinder_size

    def _force_pwrite(self, offset: int, data: bytes) -> int:
        done = 0
        while done < len(data):
            written = self.inner.pwrite(offset + done, data[done:])
            if not written or written <= 0:
                break
            done += written
        return done

    def _flush_dirty(self) -> None:
        if not self.dirty:
            return
        chunk = bytes(self._data[self.dirty_pos:self.dirty_end])
        written = self._force_pwrite(self.current + self.dirty_pos, chunk)
        if written != len(chunk):
            raise BufferedStreamError("buffer_flush: short write")
        self.dirty = False
        self.dirty_pos = 0
        self.dirty_end = 0

    def _invalidate(self, start: int) -> None:
        self._flush_dirty()
        self.current = _round_down(start, self.sector_size)
        self.cur_size = 0

    def _locate(self, start: int, length: int) -> tuple[str, int]:
        """Classify ``start`` against the buffer and clip ``length``."""
        if self.current <= start < self._cur_end():
            return "inside", min(length, self.cur_size - (start - self.current))
        if (start == self._cur_end() and self.cur_size < self.size
                and length >= self.sector_size):
            length = min(length, self.size - self.cur_size)
            return "append", _round_down(length, self.sector_size)
        self._invalidate(start)
        length = min(length, self.cylinder_size - (start - self.current))
        length = min(length, self._to_next_full_cyl(self.current))
        return "outside", length

    # -- public interface --------------------------------------------------

    def pread(self, offset: int, size: int) -> bytes:
        """Read up to ``size`` bytes at ``offset``; may return fewer."""
        buf = self._data
        if not size:
            return b""
        where, length = self._locate(offset, size)
        if where != "inside":
            want = self._to_next_full_cyl(self._cur_end())
            want = min(want, self.size - self.cur_size)
            got = self.inner.pread(self.current + self.cur_size, want)[:want]
            buf[self.cur_size:self.cur_size + len(got)] = got
            self.cur_size += len(got)
            if self._cur_end() < offset:
                raise BufferedStreamError("Short buffer fill")
        rel = offset - self.current
        length = min(length, self.cur_size - rel)
        return bytes(buf[rel:rel + length])

    def pwrite(self, offset: int, data: bytes) -> int:
        """Write a prefix of ``data`` at ``offset``; return how many bytes were taken."""
        buf = self._data
        length = len(data)
        if not length:
            return 0
        self.ever_dirty = True
        where, length = self._locate(offset, length)
        rel = 0
        if where == "outside" and (offset % self.cylinder_size
                                   or length < self.sector_size):
            read_size = self.cylinder_size - self.current % self.cylinder_size
            got = self.inner.pread(self.current, read_size)[:read_size]
            bytes_read = len(got)
            if bytes_read % self.sector_size:
                logger.warning(
                    "Weird: read size (%d) not a multiple of sector size (%d)",
                    bytes_read, self.sector_size)
                bytes_read -= bytes_read % self.sector_size
                if bytes_read == 0:
                    raise BufferedStreamError("Nothing left")
            buf[:bytes_read] = got[:bytes_read]
            self.cur_size = bytes_read
            if not self.cur_size:
                # Growing an empty image: start from zeros.
                buf[:read_size] = bytes(read_size)
                self.cur_size = read_size
            rel = offset - self.current
        elif where in ("outside", "append"):
            length = _round_down(length, self.sector_size)
            rel = offset - self.current
            length = min(length, self.size - rel)
            self.cur_size += length
            pre_allocate = getattr(self.inner, "pre_allocate", None)
            if pre_allocate is not None:
                pre_allocate(self._cur_end())
        else:
            rel = offset - self.current
            length = min(length, self.cur_size - rel)

        if rel + length > self.cur_size:
            length -= (rel + length) % self.sector_size
            self.cur_size = rel + length

        buf[rel:rel + length] = data[:length]
        if not self.dirty or rel < self.dirty_pos:
            self.dirty_pos = _round_down(rel, self.sector_size)
        if not self.dirty or rel + length > self.dirty_end:
            self.dirty_end = _round_up(rel + length, self.sector_size)
        if self.dirty_end > self.cur_size:
            raise BufferedStreamError(
                f"Internal error, dirty end too big dirty_end={self.dirty_end:x} "
                f"cur_size={self.cur_size:x} len={length:x} offset={rel} "
                f"sectorSize={self.sector_size:x}")
        self.dirty = True
        return length

    def flush(self) -> None:
        """Write any dirty sectors to the inner stream."""
        self._data
        if not self.ever_dirty:
            return
        self._flush_dirty()
        self.ever_dirty = False

    def close(self) -> None:
        """Flush and release the buffer."""
        if self._buf is None:
            return
        try:
            self.flush()
        finally:
            self._buf = None

    def __enter__(self) -> "BufferedStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()