"""
emit.py — serialise a PDP-7 surface to disk.

Formats:
    simh   4 bytes per word, most significant byte first
    ptr    3 paper-tape frames per word (see words.pack_sixbit)
    list   octal listing: per block 8 lines of 8 words with the
           2-chars-per-word text rendering, then a blank line

All 8000 blocks are always written; unset words come out as zero.

The simh layout has historically been called little-endian, but the bytes
are and must stay most-significant first.
"""

from __future__ import annotations

import logging
import os
import struct
import tempfile
from pathlib import Path

from mkfs import NUM_BLOCKS, WORDS_PER_BLOCK, BlockTable
from words import pack_sixbit, printable, unpack_sixbit

logger = logging.getLogger(__name__)

WORDS_PER_LINE = 8

FORMATS = ("list", "ptr", "simh")
DEFAULT_FORMAT = "simh"


# ── Renderers ──────────────────────────────────────────────────────────

def format_line(words: list[int]) -> str:
    """One listing line: octal words, then their text rendering."""
    octal = " ".join(f"{w:06o}" for w in words)
    text = "".join(printable(w) for w in words)
    return f"{octal}  {text}"


def format_block(words: list[int]) -> list[str]:
    """Listing lines for one block, without the trailing blank line."""
    return [format_line(words[i:i + WORDS_PER_LINE])
            for i in range(0, len(words), WORDS_PER_LINE)]


def emit_list(table: BlockTable) -> bytes:
    lines = []
    for block in range(table.num_blocks):
        lines.extend(format_block(table.read(block)))
        lines.append("")
    return ("\n".join(lines) + "\n").encode("ascii")


def emit_ptr(table: BlockTable) -> bytes:
    return b"".join(pack_sixbit(w) for w in table.words)


def emit_simh(table: BlockTable) -> bytes:
    return struct.pack(f">{len(table.words)}I", *table.words)


EMITTERS = {
    "list": emit_list,
    "ptr": emit_ptr,
    "simh": emit_simh,
}


def emit(table: BlockTable, fmt: str = DEFAULT_FORMAT) -> bytes:
    """Serialise the whole table in format *fmt*."""
    try:
        emitter = EMITTERS[fmt]
    except KeyError:
        raise ValueError(
            f"Unknown format {fmt!r} (choose from {', '.join(FORMATS)})") from None
    return emitter(table)


def write_image(table: BlockTable, path: str | Path,
                fmt: str = DEFAULT_FORMAT) -> int:
    """Serialise *table* and write it to *path*; returns the byte count.

    The image is written to a temporary file beside *path* and renamed
    into place, so *path* never holds a partial image.
    """
    data = emit(table, fmt)
    path = Path(path)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=path.name,
                               suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        # mkstemp creates 0600; give the image the mode open() would
        umask = os.umask(0)
        os.umask(umask)
        os.chmod(tmp, 0o666 & ~umask)
        os.replace(tmp, path)
    except BaseException:
        os.unlink(tmp)
        raise
    logger.debug("wrote %s (%s, %d bytes)", path, fmt, len(data))
    return len(data)


# ── Readers ────────────────────────────────────────────────────────────

def decode_simh(data: bytes) -> list[int]:
    """Words of a simh image; a trailing partial word is ignored."""
    n = len(data) // 4
    return list(struct.unpack_from(f">{n}I", data))


def decode_ptr(data: bytes) -> list[int]:
    return unpack_sixbit(data)


DECODERS = {
    "simh": decode_simh,
    "ptr": decode_ptr,
}


def load_table(path: str | Path, fmt: str = DEFAULT_FORMAT,
               num_blocks: int = NUM_BLOCKS) -> BlockTable:
    """Read a binary image back into a BlockTable of *num_blocks* blocks."""
    if fmt not in DECODERS:
        raise ValueError(f"Cannot read back {fmt!r} images")
    words = DECODERS[fmt](Path(path).read_bytes())
    words = words[:num_blocks * WORDS_PER_BLOCK]
    words += [0] * (num_blocks * WORDS_PER_BLOCK - len(words))
    return BlockTable.from_words(words)
