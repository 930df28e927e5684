"""Conversions between DOS code pages, Unicode and the native character set."""

from __future__ import annotations

import codecs
import locale
from typing import Optional

DEFAULT_CODEPAGE = 850
MAX_CODEPAGE = 9999
REPLACEMENT = "_"


class CodepageError(ValueError):
    """Raised for unknown code pages or bytes a code page cannot decode."""


def _encode_mangling(text: str, encoding: str) -> tuple[bytes, bool]:
    """Encode ``text``; unencodable characters and question marks become '_'."""
    mangled = False
    out = bytearray()
    for ch in text:
        try:
            encoded = ch.encode(encoding)
        except UnicodeEncodeError:
            encoded = REPLACEMENT.encode(encoding)
            mangled = True
        out += encoded
    if b"?" in out:
        out = out.replace(b"?", REPLACEMENT.encode(encoding))
        mangled = True
    return bytes(out), mangled


class DosCodepage:
    """A DOS code page used for short file names."""

    def __init__(self, codepage: int = 0) -> None:
        if codepage == 0:
            codepage = DEFAULT_CODEPAGE
        if codepage < 0 or codepage > MAX_CODEPAGE:
            raise CodepageError(f"Bad codepage {codepage}")
        self.codepage = codepage
        self.encoding = f"cp{codepage}"
        try:
            codecs.lookup(self.encoding)
        except LookupError as exc:
            raise CodepageError(f"Error converting to codepage {codepage}") from exc

    def dos_to_unicode(self, data: bytes) -> str:
        """Decode bytes in this code page."""
        try:
            return bytes(data).decode(self.encoding)
        except UnicodeDecodeError as exc:
            raise CodepageError(
                f"cannot decode {data!r} in codepage {self.codepage}") from exc

    def unicode_to_dos(self, text: str) -> tuple[bytes, bool]:
        """Encode text; return the bytes and whether anything was replaced."""
        return _encode_mangling(text, self.encoding)


def _native_encoding(encoding: Optional[str]) -> str:
    return encoding or locale.getpreferredencoding(False)


def to_native(text: str, encoding: Optional[str] = None) -> bytes:
    """Encode text up to its first NUL in the native character set."""
    text = text.split("\0", 1)[0]
    encoded, _ = _encode_mangling(text, _native_encoding(encoding))
    return encoded


def _decode_one(data: bytes, pos: int, encoding: str) -> tuple[str, int]:
    for width in range(1, 5):
        chunk = data[pos:pos + width]
        if len(chunk) < width:
            break
        try:
            decoded = chunk.decode(encoding)
        except UnicodeDecodeError:
            continue
        if len(decoded) == 1:
            return decoded, width
    byte = data[pos]
    if 0xA0 <= byte < 0xFF:
        return chr(byte), 1
    return REPLACEMENT, 1


def from_native(data: bytes, length: int,
                encoding: Optional[str] = None) -> tuple[str, bool]:
    """Decode at most ``length`` characters of native bytes.

    Undecodable bytes are taken as Latin-1 when printable there, else '_'.
    Returns the text and whether input was left unconverted.
    """
    enc = _native_encoding(encoding)
    data = bytes(data)
    chars: list[str] = []
    pos = 0
    while len(chars) < length and pos < len(data):
        if data[pos] == 0:
            break
        ch, width = _decode_one(data, pos, enc)
        chars.append(ch)
        pos += width
    mangled = pos < len(data) and data[pos] != 0
    return "".join(chars), mangled