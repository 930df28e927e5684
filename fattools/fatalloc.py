"""Cluster allocation queries and freeing of cluster chains."""

from __future__ import annotations

import logging
from itertools import chain

from fattools.fat import FatError, FatFs
from fattools.msdos import MAX32, DirEntry, word

logger = logging.getLogger(__name__)

_START_OFFSET = 26
_START_HI_OFFSET = 20
_NAME = slice(0, 8)
_EXT = slice(8, 11)


def _scan_order(fs: FatFs, last: int) -> chain:
    """Clusters after ``last`` first, then wrapping around from 2."""
    return chain(range(last + 1, fs.num_clus + 2), range(2, last + 1))


def next_free_cluster(fs: FatFs, last: int = 0) -> int:
    """Find a free cluster, starting after the last one handed out.

    Raises FatError when the FAT cannot be read or no cluster is free.
    """
    if fs.last != MAX32:
        last = fs.last
    if last < 2 or last >= fs.num_clus + 1:
        last = 1
    for cluster in _scan_order(fs, last):
        value = fs.decode(cluster)
        if value == 1:
            raise FatError("FAT error")
        if value == 0:
            fs.last = cluster
            return cluster
    raise FatError(f"No free cluster {fs.last}")


def free_bytes(fs: FatFs) -> int:
    """Amount of free space in bytes, counting free clusters if not known."""
    if fs.free_space in (MAX32, 0):
        total = 0
        for cluster in range(2, fs.num_clus + 2):
            value = fs.decode(cluster)
            if value == 1:
                raise FatError("FAT error")
            if value == 0:
                total += 1
        fs.free_space = total
    return fs.free_space * fs.cluster_size * fs.sector_size


def has_free_clusters(fs: FatFs, count: int) -> bool:
    """True if at least ``count`` clusters are free."""
    if fs.free_space != MAX32:
        if fs.free_space >= count:
            return True
        logger.error("Disk full")
        return False
    last = fs.last
    if last < 2 or last >= fs.num_clus + 2:
        last = 1
    total = 0
    for cluster in _scan_order(fs, last):
        value = fs.decode(cluster)
        if value == 1:
            raise FatError("FAT error")
        if value == 0:
            total += 1
        if total >= count:
            return True
    logger.error("Disk full")
    return False


def has_free_bytes(fs: FatFs, size: int) -> bool:
    """True if ``size`` bytes fit into the free clusters."""
    clusters = -(-size // fs.cluster_bytes())
    if clusters > MAX32:
        raise FatError("Requested size too big")
    return has_free_clusters(fs, clusters)


def start_cluster(fs: FatFs, dirent: DirEntry) -> int:
    """First cluster of the file a directory entry describes."""
    raw = dirent.to_bytes()
    first = word(raw, _START_OFFSET)
    if fs.fat32_root_cluster:
        first |= word(raw, _START_HI_OFFSET) << 16
    return first


def free_chain(fs: FatFs, cluster: int) -> None:
    """Free every cluster of the chain starting at ``cluster``.

    The file length is not considered: a corrupt FAT frees what it links.
    """
    if cluster == 0:
        return
    while not fs.fat_error:
        following = fs.decode(cluster)
        fs.deallocate(cluster)
        if following >= fs.last_fat:
            break
        cluster = following


def free_with_dir(fs: FatFs, dirent: DirEntry) -> None:
    """Free the clusters of the file a directory entry describes."""
    raw = dirent.to_bytes()
    if raw[_NAME].rstrip(b" ") in (b".", b"..") and raw[_EXT] == b"   ":
        raise FatError("Trying to remove . or .. entry")
    free_chain(fs, start_cluster(fs, dirent))