"""File allocation table access: decoding, encoding, loading and writing FAT copies."""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional, Protocol

from fattools.msdos import (
    FAT12,
    FAT16,
    INFO_SECTOR_SIZE,
    INFOSECT_SIGNATURE1,
    INFOSECT_SIGNATURE2,
    INFOSECT_SIGNATURE3,
    MAX32,
    BootSector,
    InfoSector,
    fat_size,
)

logger = logging.getLogger(__name__)

FAT32_HIGH = 0xF0000000
FAT32_ADDR = 0x0FFFFFFF
_CHECK_LIMIT = 4096

# fat_bits -> (end_fat, last_fat)
_FAT_LIMITS = {
    12: (0xFFF, 0xFF6),
    16: (0xFFFF, 0xFFF6),
    32: (0xFFFFFFF, 0xFFFFFF6),
}


class FatError(Exception):
    """Raised when the FAT cannot be read, checked or written."""


class _BlockDevice(Protocol):
    def pread(self, offset: int, size: int) -> bytes: ...

    def pwrite(self, offset: int, data: bytes) -> int: ...


def select_fat_bits(num_clus: int, big_fat_len: bool) -> int:
    """FAT width for a file system with ``num_clus`` clusters.

    A non-zero FAT32 FAT length field forces 32 bits, as Windows does.
    """
    if big_fat_len:
        return 32
    if num_clus < FAT12:
        return 12
    if num_clus < FAT16:
        return 16
    return 32


class FatFs:
    """The FAT of one file system, cached sector by sector in memory."""

    def __init__(self, device: _BlockDevice, sector_size: int, cluster_size: int,
                 fat_start: int, fat_len: int, num_fat: int, num_clus: int,
                 fat_bits: int) -> None:
        if fat_bits not in _FAT_LIMITS:
            raise ValueError(f"unsupported FAT width {fat_bits}")
        if sector_size <= 0 or num_fat <= 0:
            raise ValueError("sector size and number of FATs must be positive")
        self.device = device
        self.sector_size = sector_size
        self.cluster_size = cluster_size
        self.fat_start = fat_start
        self.fat_len = fat_len
        self.num_fat = num_fat
        self.num_clus = num_clus
        self.fat_bits = fat_bits
        self.end_fat, self.last_fat = _FAT_LIMITS[fat_bits]
        self.skip_check = False
        self.fat_error = 0
        self.fat_dirty = False
        self.last = MAX32
        self.free_space = MAX32
        self.write_all_fats = True
        self.primary_fat = 0
        self.root_cluster = 0
        self.info_sector_loc = MAX32
        self.dir_start = fat_start + num_fat * fat_len
        self.serialized = False
        self.serial_number = 0
        self._sectors: dict[int, bytearray] = {}
        self._dirty: set[int] = set()

    # -- raw device access -------------------------------------------------

    def _force_pread(self, sector: int, count: int = 1) -> bytes:
        offset = sector * self.sector_size
        want = count * self.sector_size
        out = bytearray()
        while len(out) < want:
            chunk = self.device.pread(offset + len(out), want - len(out))
            if not chunk:
                break
            out += chunk
        return bytes(out[:want])

    def _force_pwrite(self, sector: int, data: bytes) -> int:
        offset = sector * self.sector_size
        view = memoryview(bytes(data))
        done = 0
        while done < len(view):
            written = self.device.pwrite(offset + done, view[done:])
            if not written or written <= 0:
                break
            done += written
        return done

    # -- sector cache ------------------------------------------------------

    def _load_sector(self, sector: int, write: bool) -> Optional[bytearray]:
        if sector < 0 or sector >= self.fat_len:
            return None
        data = self._sectors.get(sector)
        if data is None:
            for i in range(self.num_fat):
                copy = (i + self.primary_fat) % self.num_fat
                raw = self._force_pread(self.fat_start + self.fat_len * copy + sector)
                if len(raw) < self.sector_size:
                    logger.error("Error reading fat number %d", i)
                    continue
                data = bytearray(raw)
                break
            if data is None:
                return None
            self._sectors[sector] = data
        if write:
            self._dirty.add(sector)
            self.fat_dirty = True
        return data

    def _locate(self, offset: int, write: bool) -> Optional[tuple[bytearray, int]]:
        data = self._load_sector(offset // self.sector_size, write)
        if data is None:
            return None
        return data, offset % self.sector_size

    def _read_byte(self, offset: int) -> int:
        found = self._locate(offset, False)
        if found is None:
            return -1
        data, idx = found
        return data[idx]

    def _writable(self, offset: int) -> tuple[bytearray, int]:
        found = self._locate(offset, True)
        if found is None:
            raise FatError(f"cannot access FAT byte {offset}")
        return found

    # -- raw entry coding --------------------------------------------------

    def _raw_decode(self, num: int) -> int:
        if self.fat_bits == 12:
            start = num * 3 // 2
            byte0 = self._read_byte(start)
            byte1 = self._read_byte(start + 1)
            if num < 2 or byte0 < 0 or byte1 < 0 or num > self.num_clus + 1:
                logger.error("[1] Bad address %d", num)
                return 1
            if num & 1:
                return (byte1 << 4) | ((byte0 & 0xF0) >> 4)
            return ((byte1 & 0x0F) << 8) | byte0
        width = self.fat_bits // 8
        found = self._locate(num * width, False)
        if found is None:
            return 1
        data, idx = found
        value = int.from_bytes(data[idx:idx + width], "little")
        return value & FAT32_ADDR if self.fat_bits == 32 else value

    def _raw_encode(self, num: int, code: int) -> None:
        if self.fat_bits == 12:
            start = num * 3 // 2
            data0, i0 = self._writable(start)
            data1, i1 = self._writable(start + 1)
            if num & 1:
                data0[i0] = (data0[i0] & 0x0F) | ((code << 4) & 0xF0)
                data1[i1] = (code >> 4) & 0xFF
            else:
                data0[i0] = code & 0xFF
                data1[i1] = (data1[i1] & 0xF0) | ((code >> 8) & 0x0F)
        elif self.fat_bits == 16:
            if code > 0xFFFF or code < 0:
                raise FatError(f"FAT16 code {code:x} too big")
            data, idx = self._writable(num * 2)
            data[idx:idx + 2] = code.to_bytes(2, "little")
        else:
            data, idx = self._writable(num * 4)
            old = int.from_bytes(data[idx:idx + 4], "little")
            value = (code & FAT32_ADDR) | (old & FAT32_HIGH)
            data[idx:idx + 4] = value.to_bytes(4, "little")

    # -- reading and checking ----------------------------------------------

    def _check_media_type(self, boot: BootSector) -> None:
        self._sectors.clear()
        self._dirty.clear()
        found = self._locate(0, False)
        if found is None:
            raise FatError("Could not read first FAT sector")
        data, _ = found
        if self.skip_check:
            return
        b0, b1, b2 = data[0], data[1], data[2]
        if not b0 and not b1 and not b2:
            # Some Atari disks have zeroes in place of the media descriptor.
            return
        descr = boot.descr
        if ((b0 != descr and descr >= 0xF0
             and (b0 not in (0xF9, 0xF7) or descr != 0xF0)) or b0 < 0xF0):
            raise FatError(
                f"Bad media types {b0:02x}/{descr:02x}, probably non-MSDOS disk")
        if b1 != 0xFF or b2 != 0xFF:
            raise FatError("Initial bytes of fat is not 0xff")

    def _check_fat(self) -> None:
        if self.skip_check:
            return
        if self.fat_len < fat_size(self.fat_bits, self.sector_size, self.num_clus):
            raise FatError("Too few sectors in FAT")
        if self.num_clus + 1 >= self.last_fat:
            raise FatError("Too many clusters in FAT")
        tocheck = min(self.num_clus, _CHECK_LIMIT)
        for i in range(3, tocheck):
            value = self._raw_decode(i)
            if value == 1 or self.num_clus < value < self.last_fat:
                raise FatError(
                    f"Cluster # at {i} too big({value:#x}); probably non MS-DOS disk")

    def _old_fat_read(self, boot: BootSector, nodups: bool) -> None:
        self.write_all_fats = True
        self.primary_fat = 0
        self.dir_start = self.fat_start + self.num_fat * self.fat_len
        self.info_sector_loc = MAX32
        if nodups:
            self.num_fat = 1
        self._check_media_type(boot)
        if self.fat_bits == 16 and not self.skip_check and self._read_byte(3) != 0xFF:
            raise FatError("third FAT byte is not 0xff")
        self._check_fat()

    def _fat32_read(self, boot: BootSector) -> None:
        self.fat_len = boot.big_fat
        flags = boot.ext_flags & 0xFF
        self.write_all_fats = not flags & 0x80
        self.primary_fat = flags & 0x0F
        self.root_cluster = boot.root_cluster
        self.info_sector_loc = boot.info_sector
        if (self.sector_size >= INFO_SECTOR_SIZE and self.info_sector_loc
                and self.info_sector_loc != MAX32):
            raw = self._force_pread(self.info_sector_loc)
            if len(raw) == self.sector_size:
                info = InfoSector.from_bytes(raw)
                if info.is_valid:
                    self.free_space = info.count
                    self.last = info.pos
        self._check_media_type(boot)
        self._check_fat()

    def read(self, boot: BootSector, nodups: bool = False) -> None:
        """Load the FAT described by ``boot`` and sanity-check it."""
        self.fat_error = 0
        self.fat_dirty = False
        self.last = MAX32
        self.free_space = MAX32
        if self.fat_bits < 12:
            raise FatError(f"bad FAT width {self.fat_bits}")
        if self.fat_bits <= 16:
            self._old_fat_read(boot, nodups)
        else:
            self._fat32_read(boot)

    # -- entry access ------------------------------------------------------

    def decode(self, cluster: int) -> int:
        """Value of the FAT entry for ``cluster``; 1 means it could not be read."""
        value = self._raw_decode(cluster)
        if value and (value < 2 or value > self.num_clus + 1) and value < self.last_fat:
            logger.error("Bad FAT entry %d at %d", value, cluster)
            self.fat_error += 1
        return value

    def _adjust_free(self, delta: int) -> None:
        if self.free_space != MAX32:
            self.free_space += delta

    def encode(self, cluster: int, value: int) -> None:
        """Set an entry, keeping the free-cluster count in step."""
        old = self._raw_decode(cluster)
        self._raw_encode(cluster, value)
        if self.free_space != MAX32:
            if old:
                self.free_space += 1
            if value:
                self.free_space -= 1

    def append(self, pos: int, newpos: int) -> None:
        """Chain ``newpos`` after ``pos`` and mark it as the end of the chain."""
        self._raw_encode(pos, newpos)
        self._raw_encode(newpos, self.end_fat)
        self._adjust_free(-1)

    def allocate(self, pos: int, value: int) -> None:
        """Mark a free cluster as used with ``value``."""
        self._raw_encode(pos, value)
        self._adjust_free(-1)

    def deallocate(self, pos: int) -> None:
        """Mark a cluster as free."""
        self._raw_encode(pos, 0)
        self._adjust_free(1)

    # -- writing -----------------------------------------------------------

    def _write_info_sector(self) -> None:
        raw = self._force_pread(self.info_sector_loc)
        if len(raw) != self.sector_size:
            logger.error("Trouble reading the info sector")
            raw = bytes(self.sector_size)
        padded = raw.ljust(INFO_SECTOR_SIZE, b"\0")
        info = dataclasses.replace(
            InfoSector.from_bytes(padded),
            signature1=INFOSECT_SIGNATURE1,
            signature2=INFOSECT_SIGNATURE2,
            pos=self.last & MAX32,
            count=self.free_space & MAX32,
            signature3=INFOSECT_SIGNATURE3,
        )
        out = (info.to_bytes() + padded[INFO_SECTOR_SIZE:])[:self.sector_size]
        if self._force_pwrite(self.info_sector_loc, out) != self.sector_size:
            logger.error("Trouble writing the info sector")

    def write(self) -> None:
        """Write modified FAT sectors to every copy, then the info sector."""
        if not self.fat_dirty:
            return
        dups = 1 if self.fat_error else self.num_fat
        for i in range(dups):
            copy = (i + self.primary_fat) % self.num_fat
            if copy and not self.write_all_fats:
                continue
            base = self.fat_start + self.fat_len * copy
            for sector in sorted(self._dirty):
                written = self._force_pwrite(base + sector, self._sectors[sector])
                if written < self.sector_size:
                    raise FatError("end of file in fat_write")
        self._dirty.clear()
        if self.info_sector_loc and self.info_sector_loc != MAX32:
            self._write_info_sector()
        self.fat_dirty = False

    def zero(self, media_descriptor: int) -> None:
        """Write empty FATs starting with the media descriptor."""
        for i in range(self.num_fat):
            start = self.fat_start + i * self.fat_len
            for j in range(self.fat_len):
                buf = bytearray(self.sector_size)
                if j == 0:
                    buf[0] = media_descriptor
                    buf[1] = buf[2] = 0xFF
                    if self.fat_bits > 12:
                        buf[3] = 0xFF
                    if self.fat_bits > 16:
                        buf[3] = 0x0F
                        buf[4:8] = b"\xff\xff\xff\xff"
                if self._force_pwrite(start + j, buf) != self.sector_size:
                    raise FatError("Trouble initializing a FAT sector")
        self._sectors.clear()
        self._dirty.clear()
        self.fat_error = 0

    # -- misc --------------------------------------------------------------

    def cluster_bytes(self) -> int:
        """Bytes per cluster."""
        return self.cluster_size * self.sector_size

    @property
    def fat32_root_cluster(self) -> int:
        """Root directory cluster on FAT32, 0 otherwise."""
        return self.root_cluster if self.fat_bits == 32 else 0