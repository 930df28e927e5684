"""Cache of directory slots, with a bitmap filter for fast name lookups."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

from fattools.msdos import DirEntry

BITS_PER_INT = 32
DC_BITMAP_SIZE = 128
_MASK32 = 0xFFFFFFFF


class EntryType(enum.Enum):
    """Kind of a cached directory range."""

    FREE = 0
    USED = 1
    END = 2


@dataclass(eq=False)
class CacheEntry:
    """A run of directory slots ``[begin, end)`` sharing one meaning."""

    type: EntryType
    begin: int
    end: int
    short_name: Optional[str] = None
    long_name: Optional[str] = None
    dirent: Optional[DirEntry] = None
    end_mark_pos: Optional[int] = None


def _rol(value: int, shift: int) -> int:
    value &= _MASK32
    return ((value << shift) | (value >> (32 - shift))) & _MASK32


def calc_hash(name: str) -> int:
    """Case-insensitive 32-bit hash of a file name."""
    result = 0
    for i, ch in enumerate(name):
        result = _rol(result, 5)
        upper = ch.upper()
        c = ord(upper if len(upper) == 1 else ch)
        result ^= ((c * (c + 2)) & _MASK32) ^ ((i * (i + 2)) & _MASK32)
        result &= _MASK32
    result = (result * (result + 2)) & _MASK32
    result ^= ((result & 0xFFF) << 12) & _MASK32
    result ^= ((result & 0xFF000) << 24) & _MASK32
    return result


def _add_bit(bitmap: list[int], value: int, check_only: bool) -> bool:
    bit = 1 << (value % BITS_PER_INT)
    index = (value // BITS_PER_INT) % DC_BITMAP_SIZE
    if check_only:
        return bool(bitmap[index] & bit)
    bitmap[index] |= bit
    return True


class DirCache:
    """Slot-indexed cache of directory entries."""

    def __init__(self, slot: int = 0) -> None:
        if slot < 0:
            raise ValueError(f"Bad slot {slot}")
        self.entries: list[Optional[CacheEntry]] = [None] * ((slot + 1) * 2)
        self.nr_hashed = 0
        self._bitmaps: tuple[list[int], list[int], list[int]] = (
            [0] * DC_BITMAP_SIZE, [0] * DC_BITMAP_SIZE, [0] * DC_BITMAP_SIZE)

    @property
    def nr_entries(self) -> int:
        return len(self.entries)

    # -- hashing -----------------------------------------------------------

    def _hash(self, value: int, check_only: bool) -> bool:
        bm0, bm1, bm2 = self._bitmaps
        return (_add_bit(bm0, value, check_only)
                and _add_bit(bm1, _rol(value, 12), check_only)
                and _add_bit(bm2, _rol(value, 24), check_only))

    def _hash_entry(self, entry: CacheEntry) -> None:
        if entry.begin != self.nr_hashed:
            return
        self.nr_hashed = entry.end
        if entry.long_name:
            self._hash(calc_hash(entry.long_name), False)
        if entry.short_name is not None:
            self._hash(calc_hash(entry.short_name), False)

    def is_hashed(self, name: str) -> bool:
        """True if ``name`` may be present; False means it surely is not."""
        return self._hash(calc_hash(name), True)

    # -- slot management ---------------------------------------------------

    def grow(self, slot: int) -> None:
        """Make sure ``slot`` is a valid index."""
        if slot < 0:
            raise ValueError(f"Bad slot {slot}")
        if len(self.entries) <= slot:
            self.entries.extend([None] * ((slot + 1) * 2 - len(self.entries)))

    def _free_range(self, begin: int, end: int) -> Optional[int]:
        """Clear slots ``[begin, end)``.

        Returns the first slot of a dropped end range whose end mark moved,
        or None.
        """
        if end < begin:
            raise ValueError(f"Bad slots {begin} {end} in free range")
        while begin < end:
            entry = self.entries[begin]
            if entry is None:
                begin += 1
                continue
            clear_end = min(entry.end, end)
            for i in range(begin, clear_end):
                self.entries[i] = None
            entry.begin = clear_end
            if entry.begin == entry.end:
                if entry.end_mark_pos is not None and entry.end_mark_pos < begin:
                    return begin
            begin = clear_end
        return None

    def _alloc(self, begin: int, end: int, kind: EntryType) -> CacheEntry:
        self.grow(end)
        entry = CacheEntry(kind, begin, end)
        self._free_range(begin, end)
        for i in range(begin, end):
            self.entries[i] = entry
        return entry

    def add_used(self, begin: int, end: int, long_name: Optional[str],
                 short_name: str, dirent: DirEntry) -> CacheEntry:
        """Record a file occupying slots ``[begin, end)``."""
        if end < begin:
            raise ValueError(f"Bad slots {begin} {end} in add used entry")
        entry = self._alloc(begin, end, EntryType.USED)
        entry.long_name = long_name
        entry.short_name = short_name
        entry.dirent = dirent
        self._hash_entry(entry)
        return entry

    def _merge(self, slot: int) -> None:
        if slot == 0 or slot >= len(self.entries):
            return
        previous = self.entries[slot - 1]
        nxt = self.entries[slot]
        if (previous is not None and nxt is not None and previous is not nxt
                and previous.type is EntryType.FREE
                and nxt.type is EntryType.FREE):
            for i in range(nxt.begin, nxt.end):
                self.entries[i] = previous
            previous.end = nxt.end
            previous.end_mark_pos = nxt.end_mark_pos

    def add_free(self, begin: int, end: int,
                 at_end: bool = False) -> Optional[CacheEntry]:
        """Record free slots ``[begin, end)``, merged with free neighbours."""
        if begin < self.nr_hashed:
            self.nr_hashed = begin
        if end < begin:
            raise ValueError(f"Bad slots {begin} {end} in add free entry")
        if end == begin:
            return None
        entry = self._alloc(begin, end, EntryType.FREE)
        if at_end:
            entry.end_mark_pos = begin
        self._merge(begin)
        self._merge(end)
        return self.entries[begin]

    def add_end(self, pos: int) -> CacheEntry:
        """Record the end-of-directory mark at ``pos``."""
        return self._alloc(pos, pos + 1, EntryType.END)

    def lookup(self, pos: int) -> Optional[CacheEntry]:
        """The entry covering slot ``pos``, or None if unknown."""
        self.grow(pos + 1)
        return self.entries[pos]

    def release(self) -> Optional[int]:
        """Drop every entry.

        Returns the slot where an end mark has to be rewritten, or None.
        """
        slot = self._free_range(0, len(self.entries))
        self.entries = []
        self.nr_hashed = 0
        return slot