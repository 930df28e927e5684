import pytest

from fattools.dircache import CacheEntry, DirCache, EntryType, calc_hash
from fattools.msdos import DirEntry


def test_hash_is_case_insensitive():
    assert calc_hash("Readme.TXT") == calc_hash("README.txt")


def test_hash_of_empty_name_is_zero():
    assert calc_hash("") == 0


@pytest.mark.parametrize("name", ["a", "hello", "LONG FILE NAME.doc", "ünïcode"])
def test_hash_fits_in_32_bits(name):
    assert 0 <= calc_hash(name) <= 0xFFFFFFFF


def test_add_used_covers_its_slots():
    cache = DirCache(0)
    dirent = DirEntry(name=b"FOO     ", ext=b"TXT")
    entry = cache.add_used(0, 3, "foo long.txt", "FOO.TXT", dirent)
    assert all(cache.lookup(i) is entry for i in range(3))
    assert cache.lookup(3) is None
    assert entry.type is EntryType.USED
    assert entry.dirent is dirent


def test_added_names_are_hashed():
    cache = DirCache(0)
    cache.add_used(0, 2, "Long Name", "LONGNA~1", DirEntry())
    assert cache.is_hashed("long name")
    assert cache.is_hashed("LONGNA~1")
    assert cache.nr_hashed == 2


def test_names_after_a_gap_are_not_hashed():
    cache = DirCache(0)
    cache.add_used(5, 6, None, "LATER", DirEntry())
    assert not cache.is_hashed("LATER")
    assert cache.nr_hashed == 0


def test_adjacent_free_ranges_merge():
    cache = DirCache(0)
    cache.add_free(0, 2)
    merged = cache.add_free(2, 4)
    assert cache.lookup(0) is cache.lookup(3)
    assert merged is cache.lookup(0)
    assert (merged.begin, merged.end) == (0, 4)


def test_empty_free_range_returns_none():
    cache = DirCache(0)
    assert cache.add_free(3, 3) is None


def test_used_entry_shortens_free_range():
    cache = DirCache(0)
    free = cache.add_free(0, 4)
    used = cache.add_used(0, 2, None, "A", DirEntry())
    assert cache.lookup(1) is used
    assert cache.lookup(2) is free
    assert (free.begin, free.end) == (2, 4)


def test_add_free_resets_hash_progress():
    cache = DirCache(0)
    cache.add_used(0, 3, None, "X", DirEntry())
    cache.add_free(1, 3)
    assert cache.nr_hashed == 1


def test_add_end():
    cache = DirCache(0)
    entry = cache.add_end(7)
    assert cache.lookup(7) is entry
    assert entry.type is EntryType.END
    assert (entry.begin, entry.end) == (7, 8)


def test_release_without_moved_end_mark():
    cache = DirCache(0)
    cache.add_free(2, 6, at_end=True)
    cache.add_used(0, 2, None, "OLD", DirEntry())
    assert cache.release() is None


def test_grow_makes_slot_valid():
    cache = DirCache(0)
    cache.grow(10)
    assert cache.nr_entries > 10
    assert cache.lookup(10) is None


def test_bad_slots_raise():
    with pytest.raises(ValueError):
        DirCache(-1)
    cache = DirCache(0)
    with pytest.raises(ValueError):
        cache.add_used(5, 3, None, "X", DirEntry())
    with pytest.raises(ValueError):
        cache.add_free(4, 2)
    with pytest.raises(ValueError):
        cache.grow(-2)


def test_cache_entry_defaults():
    entry = CacheEntry(EntryType.FREE, 0, 1)
    assert entry.end_mark_pos is None
    assert entry.short_name is None