"""
proto.py — proto file reader and interpreter.

A proto file describes the tree to build, one directive per line:

    <name> <perms> <owner> [payload]
    $

perms is 5 characters: a type letter (d = directory, s = special,
- = file) followed by owner-read, owner-write, world-read and world-write
flags; anything but '-' sets the flag.  owner is a decimal uid, -1 for
root.  The payload depends on the type:

    directory   optional explicit inode number; opens a scope closed by '$'
    file        content path, relative to the proto file (default: name)
    special     explicit inode number (required)

'#' starts a comment.  The outermost directory is the root; its own entry
has nowhere to go and is dropped, and it need not be closed.

Example:

    dd      drwr-  -1  4
    system  drwr-  -1
    init    -rwr-  -1  bin/init.ptr
    $
    ttyin   srwrw  -1  20

Usage:
    from proto import build_from_proto
    builder = build_from_proto("unix.proto")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from mkfs import (
    FTYPE_DIR, FTYPE_FILE, FTYPE_SPECIAL,
    I_OWNER_READ, I_OWNER_WRITE, I_WORLD_READ, I_WORLD_WRITE,
    FsError, ImageBuilder,
)
from words import WORD_MASK

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Directive syntax
# ---------------------------------------------------------------------------

PERM_LEN = 5
END_SCOPE = "$"
COMMENT = "#"

TYPE_CHARS = {
    "d": FTYPE_DIR,
    "s": FTYPE_SPECIAL,
    "-": FTYPE_FILE,
}

PERM_BITS = (I_OWNER_READ, I_OWNER_WRITE, I_WORLD_READ, I_WORLD_WRITE)

KIND_DIR = "directory"
KIND_FILE = "file"
KIND_SPECIAL = "special"
KIND_END = "end"

KIND_OF_TYPE = {
    FTYPE_DIR: KIND_DIR,
    FTYPE_FILE: KIND_FILE,
    FTYPE_SPECIAL: KIND_SPECIAL,
}


class ProtoError(FsError):
    def __init__(self, line: int, msg: str):
        self.line = line
        super().__init__(f"Line {line}: {msg}")


@dataclass
class Directive:
    """One normalised proto record."""
    kind: str
    name: str = ""
    perms: int = 0
    owner: int = 0
    payload: Optional[str] = None
    lineno: int = 0


# ---------------------------------------------------------------------------
#  Parser helpers
# ---------------------------------------------------------------------------

def parse_perms(lineno: int, text: str) -> tuple[int, int]:
    """Split a permission string into (file type, permission bits)."""
    if len(text) != PERM_LEN:
        raise ProtoError(lineno, f"Permission string must be {PERM_LEN} "
                                 f"characters, got {text!r}")
    ftype = TYPE_CHARS.get(text[0])
    if ftype is None:
        raise ProtoError(lineno, f"Unknown node type {text[0]!r} in {text!r}")
    perms = 0
    for ch, bit in zip(text[1:], PERM_BITS):
        if ch != "-":
            perms |= bit
    return ftype, perms


def _parse_int(lineno: int, tok: str, what: str) -> int:
    try:
        return int(tok, 10)
    except ValueError:
        raise ProtoError(lineno, f"Bad {what}: {tok!r}") from None


def _parse_owner(lineno: int, tok: str) -> int:
    uid = _parse_int(lineno, tok, "owner")
    if uid != -1 and not 0 <= uid <= WORD_MASK:
        raise ProtoError(lineno, f"Owner out of range: {uid}")
    return uid


def _strip_comment(raw: str) -> str:
    return raw.split(COMMENT, 1)[0].strip()


# ---------------------------------------------------------------------------
#  Parser
# ---------------------------------------------------------------------------

def parse_line(lineno: int, text: str) -> Directive:
    toks = text.split()
    if toks == [END_SCOPE]:
        return Directive(KIND_END, lineno=lineno)
    if len(toks) < 3:
        raise ProtoError(lineno, f"Expected: name perms owner [payload], "
                                 f"got: {text}")
    if len(toks) > 4:
        raise ProtoError(lineno, f"Trailing junk: {' '.join(toks[4:])}")

    name, perm_str, owner_str = toks[:3]
    payload = toks[3] if len(toks) == 4 else None
    ftype, perms = parse_perms(lineno, perm_str)
    owner = _parse_owner(lineno, owner_str)
    kind = KIND_OF_TYPE[ftype]

    if kind == KIND_SPECIAL and payload is None:
        raise ProtoError(lineno, f"Special file {name!r} needs an inode number")
    if kind in (KIND_DIR, KIND_SPECIAL) and payload is not None:
        _parse_int(lineno, payload, "inode number")
    return Directive(kind, name, perms, owner, payload, lineno)


def parse_proto(source: str) -> Iterator[Directive]:
    """Yield directives from proto text, skipping comments and blanks."""
    for lineno, raw in enumerate(source.split("\n"), 1):
        text = _strip_comment(raw)
        if text:
            yield parse_line(lineno, text)


# ---------------------------------------------------------------------------
#  Interpreter
# ---------------------------------------------------------------------------

def run_directives(directives, builder: ImageBuilder,
                   base_dir: str | Path = ".") -> ImageBuilder:
    """Drive *builder* with *directives*; returns the builder."""
    base_dir = Path(base_dir)
    for d in directives:
        try:
            if d.kind == KIND_END:
                if not builder.dirs:
                    raise ProtoError(d.lineno, "'$' with no open directory")
                builder.close_directory()
            elif d.kind == KIND_DIR:
                inum = int(d.payload) if d.payload is not None else None
                builder.open_directory(d.name, d.perms, d.owner, inum)
            elif d.kind == KIND_SPECIAL:
                builder.add_special(d.name, d.perms, d.owner, int(d.payload))
            else:
                builder.add_file(d.name, d.perms, d.owner,
                                 base_dir / (d.payload or d.name))
        except ProtoError:
            raise
        except FsError as e:
            raise type(e)(f"Line {d.lineno}: {e}") from e
    if len(builder.dirs) > 1:
        logger.debug("%d directories left open at end of proto",
                     len(builder.dirs) - 1)
    return builder


def build_from_proto(path: str | Path,
                     builder: ImageBuilder | None = None) -> ImageBuilder:
    """Build an image from a proto file; content paths are relative to it."""
    path = Path(path)
    try:
        source = path.read_text(encoding="ascii")
    except (OSError, UnicodeDecodeError) as e:
        raise FsError(f"Cannot read proto {str(path)!r}: {e}") from e
    if builder is None:
        builder = ImageBuilder()
    return run_directives(parse_proto(source), builder, path.parent)
