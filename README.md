# fattools

Building blocks for working with MS-DOS FAT file systems (FAT12, FAT16 and
FAT32) from Python: on-disk structures, the file allocation table, cluster
allocation, directory entries, a sector-aligned write-back buffer, a
directory slot cache and DOS code pages.

The package has no dependencies outside the standard library and supports
Python 3.10 and later.

## Modules

| Module               | What it holds                                                                 |
|----------------------|-------------------------------------------------------------------------------|
| `fattools.msdos`     | `BootSector`, `DirEntry` and `InfoSector` layouts, `Attr` flags; little/big-endian helpers; `fat_size`, `disk_size` |
| `fattools.device`    | `Device` descriptions, `MiscFlag` flags, `check_if_sectors_fit`, `Device.chs_to_totsectors` |
| `fattools.charset`   | `DosCodepage` for short names; `to_native` and `from_native` for the local character set |
| `fattools.expand`    | `expand`, which runs text containing shell metacharacters through `/bin/sh -c echo` |
| `fattools.filters`   | `Dos2UnixReader` for CR/LF text ending at Ctrl-Z, and `copyfile` between streams |
| `fattools.buffer`    | `BufferedStream`, a cylinder-sized read/write cache over a `pread`/`pwrite` device |
| `fattools.dircache`  | `DirCache`, the slot map and name hash filter used when scanning directories |
| `fattools.fat`       | `FatFs`: reading, checking, decoding, encoding, zeroing and writing the FAT  |
| `fattools.fatalloc`  | `next_free_cluster`, `free_bytes`, `has_free_clusters`, `has_free_bytes`, `free_chain`, `free_with_dir` |
| `fattools.direntry`  | `mk_entry`, `read_entry`, `write_entry`, `write_end_mark`; `DirectoryEntry` path formatting |

## Devices

`BufferedStream`, `FatFs` and the functions in `fattools.direntry` work on
any object with `pread(offset, size) -> bytes` and
`pwrite(offset, data) -> int`. An in-memory image is enough:

```python
class MemoryDevice:
    def __init__(self, size):
        self.data = bytearray(size)

    def pread(self, offset, size):
        return bytes(self.data[offset:offset + size])

    def pwrite(self, offset, data):
        self.data[offset:offset + len(data)] = data
        return len(data)
```

## Examples

Creating and using the FAT of a 1.44 MB floppy image:

```python
from fattools.fat import FatFs
from fattools.fatalloc import next_free_cluster

device = MemoryDevice(2880 * 512)
fs = FatFs(device, sector_size=512, cluster_size=1, fat_start=1,
           fat_len=9, num_fat=2, num_clus=2847, fat_bits=12)
fs.zero(0xF0)
fs.encode(2, fs.end_fat)          # cluster 2 holds a one-cluster file
fs.write()                        # both FAT copies are updated
print(next_free_cluster(fs))      # 3
```

Parsing a boot sector and directory entries:

```python
from fattools.msdos import BootSector, DirEntry

with open("floppy.img", "rb") as image:
    boot = BootSector.from_bytes(image.read(512))
print(boot.sector_size, boot.total_sectors)

raw = bytes(32)
entry = DirEntry.from_bytes(raw)
assert entry.to_bytes() == raw
```

Making a directory entry and printing paths:

```python
from fattools.direntry import DirectoryEntry, mk_entry
from fattools.msdos import Attr

dirent = mk_entry("README", "TXT", Attr.ARCHIVE, 3, 1234)
root = DirectoryEntry(drive="A")
docs = DirectoryEntry(name="DOCS", parent=root)
print(docs.pwd())                 # A:/DOCS
```

Converting names with a DOS code page:

```python
from fattools.charset import DosCodepage

cp = DosCodepage(850)
text = cp.dos_to_unicode(b"README  TXT")
data, mangled = cp.unicode_to_dos("résumé")
```

Stripping DOS line endings while copying:

```python
import io
from fattools.filters import Dos2UnixReader, copyfile

source = Dos2UnixReader(io.BytesIO(b"line one\r\nline two\r\n\x1a"))
target = io.BytesIO()
copyfile(source, target)
```

## Errors

Problems are reported as exceptions: `GeometryError` for impossible device
geometries, `CodepageError` for unknown code pages or undecodable bytes,
`BufferedStreamError` for short reads and writes on a buffered device, and
`FatError` for damaged or inconsistent allocation tables and for a full disk
in `next_free_cluster`.

## What it does not do

The package offers library building blocks only. It has no command-line
tools, does not read a drive configuration file, does not open images or
devices by drive letter, and does not look up files by path or walk
directories on its own: callers open the image, locate the FAT from the
boot sector and drive `FatFs`, `DirCache` and the directory functions
themselves.