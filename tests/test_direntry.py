import time

import pytest

from fattools.direntry import (
    DIR_ENTRY_SIZE,
    DirectoryEntry,
    mk_entry,
    mk_entry_from_base,
    read_entry,
    write_end_mark,
    write_entry,
)
from fattools.msdos import dword, word


class MemStream:
    def __init__(self, size):
        self.data = bytearray(size)

    def pread(self, offset, size):
        return bytes(self.data[offset:offset + size])

    def pwrite(self, offset, data):
        data = bytes(data)
        self.data[offset:offset + len(data)] = data
        return len(data)


def test_mk_entry_layout():
    raw = mk_entry("FOO", "TXT", 0x20, 0x12345, 1000, 0).to_bytes()
    assert len(raw) == DIR_ENTRY_SIZE
    assert raw[0:8] == b"FOO     "
    assert raw[8:11] == b"TXT"
    assert raw[11] == 0x20
    assert word(raw, 26) == 0x2345
    assert word(raw, 20) == 0x1
    assert dword(raw, 28) == 1000


def test_mk_entry_timestamp_fields():
    stamp = time.mktime((2021, 3, 4, 5, 6, 8, 0, 0, -1))
    raw = mk_entry("A", "B", 0, 0, 0, stamp).to_bytes()
    date = word(raw, 24)
    clock = word(raw, 22)
    assert (date >> 9) + 1980 == 2021
    assert (date >> 5) & 0xF == 3
    assert date & 0x1F == 4
    assert clock >> 11 == 5
    assert (clock >> 5) & 0x3F == 6
    assert (clock & 0x1F) * 2 == 8
    assert raw[16:18] == raw[24:26]
    assert raw[14:16] == raw[22:24]


def test_mk_entry_from_base_blank_extension():
    raw = mk_entry_from_base("..", 0x10, 7, 0, 0).to_bytes()
    assert raw[0:8] == b"..      "
    assert raw[8:11] == b"   "
    assert raw[12] == 0
    assert word(raw, 26) == 7


def test_mk_entry_rejects_bad_size():
    with pytest.raises(ValueError):
        mk_entry("A", "B", 0, 0, -1, 0)


def test_write_then_read_round_trip():
    stream = MemStream(4 * DIR_ENTRY_SIZE)
    dirent = mk_entry("HELLO", "C", 0x20, 3, 42, 0)
    assert write_entry(stream, 2, dirent) == DIR_ENTRY_SIZE
    back = read_entry(stream, 2)
    assert back.to_bytes() == dirent.to_bytes()


def test_read_past_end_returns_none():
    stream = MemStream(2 * DIR_ENTRY_SIZE)
    assert read_entry(stream, 2) is None


def test_write_end_mark_clears_first_byte():
    stream = MemStream(2 * DIR_ENTRY_SIZE)
    write_entry(stream, 1, mk_entry("X", "Y", 0, 0, 0, 0))
    write_end_mark(stream, 1)
    assert stream.data[DIR_ENTRY_SIZE] == 0
    assert stream.data[DIR_ENTRY_SIZE + 8:DIR_ENTRY_SIZE + 11] == b"Y  "


def build_tree():
    root = DirectoryEntry(drive="A")
    sub = DirectoryEntry("dir", mk_entry("DIR", "", 0x10, 2, 0, 0), root, 0)
    leaf = DirectoryEntry("file.txt", mk_entry("FILE", "TXT", 0x20, 3, 0, 0),
                          sub, 4)
    return root, sub, leaf


def test_pwd():
    root, sub, leaf = build_tree()
    assert root.is_root()
    assert not leaf.is_root()
    assert root.pwd() == "A:/"
    assert leaf.pwd() == "A:/dir/file.txt"


def test_format_pwd_plain_and_escaped():
    root, sub, _ = build_tree()
    odd = DirectoryEntry('a$b"c', None, sub, 1)
    assert root.format_pwd() == "A:/"
    assert odd.format_pwd() == 'A:/dir/a$b"c'
    assert odd.format_pwd(escape=True) == '"A:/dir/a\\$b\\"c"'


def test_format_short_pwd():
    root, sub, leaf = build_tree()
    assert root.format_short_pwd() == "A:/"
    assert sub.format_short_pwd() == "A:/DIR"
    assert leaf.format_short_pwd() == "A:/DIR/FILE.TXT"


def test_is_subdir_of():
    root, sub, leaf = build_tree()
    other = DirectoryEntry("other", None, root, 2)
    assert leaf.is_subdir_of(sub)
    assert leaf.is_subdir_of(root)
    assert sub.is_subdir_of(sub)
    assert not sub.is_subdir_of(leaf)
    assert not leaf.is_subdir_of(other)