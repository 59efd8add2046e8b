"""
words.py — 18-bit word codecs for PDP-7 Unix images.

The PDP-7 stores text two characters per 18-bit word, each character in a
9-bit half:

    word = (first << 9) | second

Paper-tape binary ("ptr") carries one word in three frames of six data
bits each.  Frame 1 has the framing bit 0200 punched; the loader only looks
at the low six bits of every frame:

    frame 1   0200 | bits 17-12
    frame 2          bits 11-6
    frame 3          bits  5-0

Usage:
    from words import pack_ascii, unpack_sixbit, decode_content
    words = decode_content(Path("hello.s").read_bytes())
"""

from __future__ import annotations

# ── Constants ──────────────────────────────────────────────────────────

WORD_BITS = 18
WORD_MASK = (1 << WORD_BITS) - 1      # 0o777777
HALF_MASK = 0o777            # one 9-bit character slot
SIXBIT_MASK = 0o77
PTR_FRAME_BIT = 0o200        # framing marker punched on the first frame
PTR_DETECT_MASK = 0o300      # top two bits of a byte

DIR_NAME_CHARS = 8           # characters in a directory entry name
NAME_WORDS = DIR_NAME_CHARS // 2


# ── Packed ASCII ───────────────────────────────────────────────────────

def pack_ascii(data: bytes) -> list[int]:
    """Pack bytes two per word, first byte in the high half.

    A trailing unpaired byte only fills the high half.
    """
    words = []
    for i in range(0, len(data) - 1, 2):
        words.append((data[i] << 9) | data[i + 1])
    if len(data) % 2:
        words.append(data[-1] << 9)
    return words


def word_chars(word: int) -> tuple[int, int]:
    """Split a word into its (high, low) 9-bit character codes."""
    return (word >> 9) & HALF_MASK, word & HALF_MASK


def unpack_ascii(words: list[int]) -> bytes:
    """Inverse of pack_ascii.  Zero halves are dropped."""
    out = bytearray()
    for w in words:
        for c in word_chars(w):
            if c:
                out.append(c & 0xFF)
    return bytes(out)


def printable(word: int) -> str:
    """Two-character rendering of a word; non-printables become spaces."""
    return "".join(chr(c) if 32 <= c <= 126 else " " for c in word_chars(word))


# ── Directory entry names ──────────────────────────────────────────────

def pack_name(name: str) -> list[int]:
    """Pack a name into 4 words: space padded, truncated to 8 chars."""
    padded = name[:DIR_NAME_CHARS].ljust(DIR_NAME_CHARS)
    return [((ord(padded[i]) & HALF_MASK) << 9) | (ord(padded[i + 1]) & HALF_MASK)
            for i in range(0, DIR_NAME_CHARS, 2)]


def unpack_name(words: list[int]) -> str:
    """Decode a packed name, stripping the space padding."""
    return "".join(chr(c) for w in words[:NAME_WORDS]
                   for c in word_chars(w)).rstrip(" \x00")


# ── Paper-tape binary ──────────────────────────────────────────────────

def is_sixbit(data: bytes) -> bool:
    """True if *data* looks like paper-tape binary (first byte is 10xxxxxx)."""
    return bool(data) and (data[0] & PTR_DETECT_MASK) == PTR_FRAME_BIT


def unpack_sixbit(data: bytes) -> list[int]:
    """Rebuild words from 3-frame groups, using the low 6 bits of each frame.

    An incomplete trailing group is zero-filled on the right.
    """
    words = []
    for i in range(0, len(data), 3):
        frame = data[i:i + 3].ljust(3, b"\x00")
        words.append(((frame[0] & SIXBIT_MASK) << 12)
                     | ((frame[1] & SIXBIT_MASK) << 6)
                     | (frame[2] & SIXBIT_MASK))
    return words


def pack_sixbit(word: int) -> bytes:
    """Encode one word as three paper-tape frames."""
    word &= WORD_MASK
    return bytes((((word >> 12) & SIXBIT_MASK) | PTR_FRAME_BIT,
                  (word >> 6) & SIXBIT_MASK,
                  word & SIXBIT_MASK))


# ── Content detection ──────────────────────────────────────────────────

def decode_content(data: bytes) -> list[int]:
    """Convert raw file content to native words.

    The first byte selects the encoding for the whole source: paper-tape
    binary if its top two bits are 10, packed ASCII otherwise.
    """
    if is_sixbit(data):
        return unpack_sixbit(data)
    return pack_ascii(data)
