"""Building blocks for reading and writing MS-DOS FAT file system images."""

__version__ = "0.1.0"

__all__ = [
    "buffer",
    "charset",
    "device",
    "dircache",
    "direntry",
    "expand",
    "fat",
    "fatalloc",
    "filters",
    "msdos",
]