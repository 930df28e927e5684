"""Drive definitions and geometry helpers."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

UINT32_MAX = 0xFFFFFFFF


class MiscFlag(enum.IntFlag):
    """Miscellaneous per-drive flags."""

    NONE = 0
    SCSI = 0x001
    PRIV = 0x002
    NOLOCK = 0x004
    USE_XDF = 0x008
    MFORMAT_ONLY = 0x010
    VOLD = 0x020
    FLOPPYD = 0x040
    FILTER = 0x080
    SWAP = 0x100


class GeometryError(ValueError):
    """Raised when a device geometry cannot be represented."""


def check_if_sectors_fit(tot_sectors: int, max_bytes: int, sector_size: int) -> None:
    """Raise GeometryError if the sectors exceed ``max_bytes``; 0 means no limit."""
    if not max_bytes:
        return
    if tot_sectors > max_bytes // sector_size:
        raise GeometryError(f"{tot_sectors} sectors too large for this platform")


@dataclass
class Device:
    """One configured drive."""

    name: Optional[str] = None
    drive: str = ""
    fat_bits: int = 0
    mode: int = 0
    tracks: int = 0
    heads: int = 0
    sectors: int = 0
    hidden: int = 0
    offset: int = 0
    partition: int = 0
    misc_flags: MiscFlag = MiscFlag.NONE
    ssize: int = 2
    use_2m: int = 0
    precmd: Optional[str] = None
    file_nr: int = 0
    blocksize: int = 0
    codepage: int = 0
    data_map: Optional[str] = None
    tot_sectors: int = 0
    sector_size: int = 0
    postcmd: Optional[str] = None
    cfg_filename: Optional[str] = None

    def _has(self, flag: MiscFlag) -> bool:
        return bool(self.misc_flags & flag)

    @property
    def is_scsi(self) -> bool:
        return self._has(MiscFlag.SCSI)

    @property
    def is_privileged(self) -> bool:
        return self._has(MiscFlag.PRIV)

    @property
    def is_nolock(self) -> bool:
        return self._has(MiscFlag.NOLOCK)

    @property
    def is_mformat_only(self) -> bool:
        return self._has(MiscFlag.MFORMAT_ONLY)

    @property
    def should_use_vold(self) -> bool:
        return self._has(MiscFlag.VOLD)

    @property
    def should_use_xdf(self) -> bool:
        return self._has(MiscFlag.USE_XDF)

    @property
    def do_swap(self) -> bool:
        return self._has(MiscFlag.SWAP)

    def chs_to_totsectors(self) -> int:
        """Fill in ``tot_sectors`` from the CHS geometry if not yet known."""
        if self.tot_sectors:
            return self.tot_sectors
        if not self.heads or not self.sectors or not self.tracks:
            return self.tot_sectors
        sect_per_track = self.heads * self.sectors
        if self.tracks > UINT32_MAX // sect_per_track:
            raise GeometryError("Number of sectors larger than 2^32")
        tot_sectors = self.tracks * sect_per_track
        partial = self.hidden % sect_per_track
        if tot_sectors > partial:
            tot_sectors -= partial
        self.tot_sectors = tot_sectors
        return tot_sectors