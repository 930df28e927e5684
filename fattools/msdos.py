"""On-disk structures of the MS-DOS FAT file system and byte-order helpers."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import NamedTuple

MAX_SECTOR = 8192
MDIR_SIZE = 32
MAX_CLUSTER = 8192
MAX_PATH = 128
MAX_DIR_SECS = 64

DELMARK = 0xE5
ENDMARK = 0x00

EXTCASE = 0x10
BASECASE = 0x08

MAX16 = 0xFFFF
MAX32 = 0xFFFFFFFF
MAX_SIZE = 0x7FFFFFFF

INFOSECT_SIGNATURE1 = 0x41615252
INFOSECT_SIGNATURE2 = 0x61417272
INFOSECT_SIGNATURE3 = 0xAA55
INFO_SECTOR_SIZE = 512

MAX_BOOT = 4096

FAT12 = 0x0FF5
FAT16 = 0xFFF5
FAT32 = 0xFFFFFF5

MAX_BYTES_PER_CLUSTER = 32 * 1024


class Attr(enum.IntFlag):
    """Directory entry attribute bits."""

    READONLY = 0x01
    HIDDEN = 0x02
    SYSTEM = 0x04
    LABEL = 0x08
    DIR = 0x10
    ARCHIVE = 0x20


def word(data: bytes, offset: int = 0) -> int:
    """Read a little-endian 16-bit value."""
    return int.from_bytes(data[offset:offset + 2], "little")


def dword(data: bytes, offset: int = 0) -> int:
    """Read a little-endian 32-bit value."""
    return int.from_bytes(data[offset:offset + 4], "little")


def be_dword(data: bytes) -> int:
    """Read an unsigned big-endian 32-bit value."""
    return int.from_bytes(data[:4], "big")


def be_sdword(data: bytes) -> int:
    """Read a signed big-endian 32-bit value."""
    return int.from_bytes(data[:4], "big", signed=True)


def be_qword(data: bytes) -> int:
    """Read an unsigned big-endian 64-bit value."""
    return int.from_bytes(data[:8], "big")


def dword_to_be(value: int) -> bytes:
    """Encode an unsigned 32-bit value big-endian."""
    return (value & 0xFFFFFFFF).to_bytes(4, "big")


def sdword_to_be(value: int) -> bytes:
    """Encode a signed 32-bit value big-endian."""
    return (value & 0xFFFFFFFF).to_bytes(4, "big")


def qword_to_be(value: int) -> bytes:
    """Encode an unsigned 64-bit value big-endian."""
    return (value & 0xFFFFFFFFFFFFFFFF).to_bytes(8, "big")


def fat_size(bits: int, sector_size: int, clusters: int) -> int:
    """Number of sectors a FAT needs to describe ``clusters`` clusters."""
    return ((clusters + 2) * (bits // 4) - 1) // 2 // sector_size + 1


def disk_size(bits: int, sector_size: int, clusters: int, n: int,
              cluster_size: int) -> int:
    """Sectors taken by ``n`` FAT copies plus the data clusters."""
    return n * fat_size(bits, sector_size, clusters) + clusters * cluster_size


_DIRENT = struct.Struct("<8s3sBBBHHHHHHHI")


@dataclass
class DirEntry:
    """A raw 32-byte directory entry."""

    name: bytes = b" " * 8
    ext: bytes = b" " * 3
    attr: int = 0
    case: int = 0
    ctime_ms: int = 0
    ctime: int = 0
    cdate: int = 0
    adate: int = 0
    start_hi: int = 0
    time: int = 0
    date: int = 0
    start: int = 0
    size: int = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "DirEntry":
        if len(data) < MDIR_SIZE:
            raise ValueError(f"directory entry needs {MDIR_SIZE} bytes, got {len(data)}")
        return cls(*_DIRENT.unpack_from(data))

    def to_bytes(self) -> bytes:
        return _DIRENT.pack(
            self.name.ljust(8, b" ")[:8], self.ext.ljust(3, b" ")[:3],
            self.attr, self.case, self.ctime_ms, self.ctime, self.cdate,
            self.adate, self.start_hi, self.time, self.date, self.start,
            self.size,
        )

    def has_attr(self, attr: int) -> bool:
        return bool(self.attr & attr)

    @property
    def is_dir(self) -> bool:
        return self.has_attr(Attr.DIR)

    @property
    def is_label(self) -> bool:
        return self.has_attr(Attr.LABEL)

    @property
    def year(self) -> int:
        return (self.date >> 9) + 1980

    @property
    def month(self) -> int:
        return (self.date >> 5) & 0x0F

    @property
    def day(self) -> int:
        return self.date & 0x1F

    @property
    def hour(self) -> int:
        return self.time >> 11

    @property
    def minute(self) -> int:
        return (self.time >> 5) & 0x3F

    @property
    def second(self) -> int:
        return (self.time & 0x1F) * 2


_INFO = struct.Struct("<I480sIII14sH")


@dataclass
class InfoSector:
    """The FAT32 file system information sector."""

    signature1: int = INFOSECT_SIGNATURE1
    filler1: bytes = bytes(0x1E0)
    signature2: int = INFOSECT_SIGNATURE2
    count: int = MAX32
    pos: int = MAX32
    filler2: bytes = bytes(14)
    signature3: int = INFOSECT_SIGNATURE3

    @classmethod
    def from_bytes(cls, data: bytes) -> "InfoSector":
        if len(data) < INFO_SECTOR_SIZE:
            raise ValueError(f"info sector needs {INFO_SECTOR_SIZE} bytes, got {len(data)}")
        return cls(*_INFO.unpack_from(data))

    def to_bytes(self) -> bytes:
        return _INFO.pack(
            self.signature1, self.filler1.ljust(0x1E0, b"\0")[:0x1E0],
            self.signature2, self.count, self.pos,
            self.filler2.ljust(14, b"\0")[:14], self.signature3,
        )

    @property
    def is_valid(self) -> bool:
        return (self.signature1 == INFOSECT_SIGNATURE1
                and self.signature2 == INFOSECT_SIGNATURE2)


class LabelBlock(NamedTuple):
    """Extended BIOS parameter block holding serial number and label."""

    physdrive: int
    reserved: int
    dos4: int
    serial: int
    label: bytes
    fat_type: bytes

    @property
    def has_bpb4(self) -> bool:
        return self.dos4 in (0x28, 0x29)


_BOOT_HEAD = struct.Struct("<3s8sHBHBHHBHHHII")
_LABEL = struct.Struct("<BBBI11s8s")
_FAT32_EXT = struct.Struct("<IHHIHH")
_FAT32_LABEL_OFFSET = 64
_OLD_LABEL_OFFSET = 36
_BOOT_MIN = _FAT32_LABEL_OFFSET + _LABEL.size


@dataclass
class BootSector:
    """Parsed view of a boot sector; the raw bytes stay available in ``data``."""

    data: bytes
    jump: bytes
    banner: bytes
    sector_size: int
    cluster_size: int
    reserved_sectors: int
    nfat: int
    dir_entries: int
    psect: int
    descr: int
    fat_len: int
    sectors_per_track: int
    heads: int
    hidden: int
    big_sectors: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "BootSector":
        if len(data) < _BOOT_MIN:
            raise ValueError(f"boot sector needs at least {_BOOT_MIN} bytes, got {len(data)}")
        raw = bytes(data[:MAX_BOOT])
        return cls(raw, *_BOOT_HEAD.unpack_from(raw))

    @property
    def total_sectors(self) -> int:
        return self.psect or self.big_sectors

    def _fat32(self) -> tuple:
        return _FAT32_EXT.unpack_from(self.data, 36)

    @property
    def big_fat(self) -> int:
        return self._fat32()[0]

    @property
    def ext_flags(self) -> int:
        return self._fat32()[1]

    @property
    def fs_version(self) -> int:
        return self._fat32()[2]

    @property
    def root_cluster(self) -> int:
        return self._fat32()[3]

    @property
    def info_sector(self) -> int:
        return self._fat32()[4]

    @property
    def backup_boot(self) -> int:
        return self._fat32()[5]

    @property
    def fat32_label(self) -> LabelBlock:
        return LabelBlock(*_LABEL.unpack_from(self.data, _FAT32_LABEL_OFFSET))

    @property
    def old_label(self) -> LabelBlock:
        return LabelBlock(*_LABEL.unpack_from(self.data, _OLD_LABEL_OFFSET))

    def _byte(self, offset: int) -> int:
        return self.data[offset] if offset < len(self.data) else 0

    @property
    def res_2m(self) -> int:
        return self._byte(62)

    @property
    def fmt_2mf(self) -> int:
        return self._byte(64)

    @property
    def wt(self) -> int:
        return self._byte(65)

    @property
    def rate_0(self) -> int:
        return self._byte(66)

    @property
    def rate_any(self) -> int:
        return self._byte(67)