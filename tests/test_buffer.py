import pytest

from fattools.buffer import BufferedStream, BufferedStreamError


class MemoryDisk:
    def __init__(self, data=b""):
        self.data = bytearray(data)
        self.reads = 0
        self.writes = 0

    def pread(self, offset, size):
        self.reads += 1
        return bytes(self.data[offset:offset + size])

    def pwrite(self, offset, data):
        self.writes += 1
        end = offset + len(data)
        if end > len(self.data):
            self.data.extend(bytes(end - len(self.data)))
        self.data[offset:end] = data
        return len(data)


SECTOR = 512
CYL = 1024
SIZE = 4096


def pattern(n):
    return bytes((i * 7 + 3) % 251 for i in range(n))


def make(data=b""):
    disk = MemoryDisk(data)
    return disk, BufferedStream(disk, SIZE, CYL, SECTOR)


def read_all(stream, total):
    out = bytearray()
    while len(out) < total:
        chunk = stream.pread(len(out), total - len(out))
        if not chunk:
            break
        out += chunk
    return bytes(out)


def test_read_returns_disk_contents():
    original = pattern(8192)
    _, stream = make(original)
    chunk = stream.pread(100, 50)
    assert chunk == original[100:150]


def test_reading_everything_reconstructs_disk():
    original = pattern(10000)
    _, stream = make(original)
    assert read_all(stream, len(original)) == original


def test_second_read_inside_buffer_does_not_touch_disk():
    disk, stream = make(pattern(8192))
    stream.pread(0, 10)
    reads = disk.reads
    assert stream.pread(20, 10) == pattern(8192)[20:30]
    assert disk.reads == reads


def test_zero_length_read():
    _, stream = make(pattern(2048))
    assert stream.pread(0, 0) == b""


def test_write_is_deferred_until_flush():
    original = pattern(8192)
    disk, stream = make(original)
    data = b"\xaa" * SECTOR
    written = stream.pwrite(0, data)
    assert written == SECTOR
    assert bytes(disk.data[:SECTOR]) == original[:SECTOR]
    stream.flush()
    assert bytes(disk.data[:SECTOR]) == data
    assert bytes(disk.data[SECTOR:]) == original[SECTOR:]


def test_partial_sector_write_is_read_modify_write():
    original = pattern(8192)
    disk, stream = make(original)
    assert stream.pwrite(10, b"xyz") == 3
    stream.flush()
    expected = bytearray(original)
    expected[10:13] = b"xyz"
    assert bytes(disk.data) == bytes(expected)


def test_write_then_read_back():
    disk, stream = make(pattern(8192))
    stream.pwrite(300, b"hello")
    assert stream.pread(300, 5) == b"hello"


def test_empty_image_grows_by_whole_sector():
    disk, stream = make()
    assert stream.pwrite(10, b"abc") == 3
    stream.flush()
    assert len(disk.data) == SECTOR
    assert bytes(disk.data[10:13]) == b"abc"
    assert bytes(disk.data[:10]) == bytes(10)


def test_close_flushes():
    disk, stream = make(pattern(4096))
    stream.pwrite(SECTOR, b"Z" * SECTOR)
    stream.close()
    assert bytes(disk.data[SECTOR:2 * SECTOR]) == b"Z" * SECTOR


def test_context_manager_flushes_and_closes():
    disk = MemoryDisk(pattern(4096))
    with BufferedStream(disk, SIZE, CYL, SECTOR) as stream:
        stream.pwrite(0, b"Q" * SECTOR)
    assert bytes(disk.data[:SECTOR]) == b"Q" * SECTOR
    with pytest.raises(ValueError):
        stream.pread(0, 1)


def test_flush_without_writes_does_not_write():
    disk, stream = make(pattern(4096))
    stream.pread(0, 100)
    stream.flush()
    assert disk.writes == 0


def test_moving_to_other_area_flushes_dirty_data():
    original = pattern(16384)
    disk, stream = make(original)
    stream.pwrite(0, b"M" * SECTOR)
    stream.pread(12000, 10)
    assert bytes(disk.data[:SECTOR]) == b"M" * SECTOR


def test_bad_geometry_is_rejected():
    with pytest.raises(BufferedStreamError):
        BufferedStream(MemoryDisk(), 3000, CYL, SECTOR)
    with pytest.raises(BufferedStreamError):
        BufferedStream(MemoryDisk(), 4096, 1000, SECTOR)
    with pytest.raises(ValueError):
        BufferedStream(MemoryDisk(), 0, CYL, SECTOR)