"""
fsdump.py — read-only views of PDP-7 Unix images.

dump_image() prints an octal/text listing of a simh image.  It expects a
two-surface pack (16000 blocks back to back) and skips the first surface,
as the original dump tool did.  mkfs only ever writes one surface, so
dumping a freshly built image prints nothing but a note; use --skip 0 to
see it.

ImageReader walks the filesystem structure of a single surface: inodes,
directories, and file contents through direct or indirect pointers.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterator, TextIO

from emit import decode_simh, format_block, load_table
from mkfs import (
    INODE_WORDS, NUM_BLOCKS, NUM_INODES, SELF_ENTRY, WORDS_PER_BLOCK,
    DIR_ENTRY_WORDS, BlockTable, Inode, inode_location,
)
from words import NAME_WORDS, unpack_ascii, unpack_name

DUMP_SURFACES = 2
DUMP_SKIP = 1


# ── Listing dump ───────────────────────────────────────────────────────

def dump_words(words: list[int], out: TextIO, first_block: int = 0) -> int:
    """Print whole blocks from *words*; returns the number printed."""
    nblocks = len(words) // WORDS_PER_BLOCK
    for i in range(nblocks):
        block = words[i * WORDS_PER_BLOCK:(i + 1) * WORDS_PER_BLOCK]
        out.write(f"block {first_block + i:05d}\n")
        for line in format_block(block):
            out.write(line + "\n")
        out.write("\n")
    return nblocks


def dump_image(path: str | Path, out: TextIO = sys.stdout,
               surfaces: int = DUMP_SURFACES, skip: int = DUMP_SKIP) -> int:
    """List the blocks of a simh image after skipping *skip* surfaces."""
    words = decode_simh(Path(path).read_bytes())
    surface = NUM_BLOCKS * WORDS_PER_BLOCK
    start, end = skip * surface, surfaces * surface
    if len(words) <= start:
        out.write(f"(image has {len(words) // surface} surface(s); "
                  f"nothing after skipping {skip})\n")
        return 0
    return dump_words(words[start:end], out, first_block=skip * NUM_BLOCKS)


# ── Filesystem reader ──────────────────────────────────────────────────

class ImageReader:
    """Decode the directory tree of one surface."""

    def __init__(self, table: BlockTable):
        self.table = table

    @classmethod
    def load(cls, path: str | Path, fmt: str = "simh") -> "ImageReader":
        return cls(load_table(path, fmt))

    def read_inode(self, inum: int) -> Inode:
        if not 0 <= inum < NUM_INODES:
            raise ValueError(f"Inode {inum} out of range")
        block, off = inode_location(inum)
        return Inode.decode(self.table.read(block, off, INODE_WORDS))

    def root_inode(self) -> int:
        """The root is the first directory built: the lowest directory inode."""
        for inum in range(NUM_INODES):
            inode = self.read_inode(inum)
            if inode.used and inode.is_dir:
                return inum
        raise FileNotFoundError("No directory in image")

    def data_blocks(self, inode: Inode) -> list[int]:
        """Data block numbers of *inode*, resolving indirect blocks."""
        if not inode.large:
            return list(inode.blocks)
        nblocks = (inode.size + WORDS_PER_BLOCK - 1) // WORDS_PER_BLOCK
        blocks: list[int] = []
        for ind in inode.blocks:
            blocks.extend(self.table.read(ind))
        return blocks[:nblocks]

    def read_words(self, inum: int) -> list[int]:
        """The *size* words of file or directory *inum*."""
        inode = self.read_inode(inum)
        words: list[int] = []
        for block in self.data_blocks(inode):
            words.extend(self.table.read(block))
        return words[:inode.size]

    def read_text(self, inum: int) -> bytes:
        return unpack_ascii(self.read_words(inum))

    def list_dir(self, inum: int) -> list[tuple[str, int]]:
        """(name, inode) pairs of directory *inum*, in slot order."""
        inode = self.read_inode(inum)
        if not inode.is_dir:
            raise NotADirectoryError(f"Inode {inum} is not a directory")
        words = self.read_words(inum)
        entries = []
        for off in range(0, len(words), DIR_ENTRY_WORDS):
            ent = words[off:off + DIR_ENTRY_WORDS]
            if ent[0]:
                entries.append((unpack_name(ent[1:1 + NAME_WORDS]), ent[0]))
        return entries

    def lookup(self, root: int, path: str) -> int:
        """Resolve a '/'-separated path below directory *root*."""
        inum = root
        for part in (p for p in path.split("/") if p):
            for name, child in self.list_dir(inum):
                if name == part:
                    inum = child
                    break
            else:
                raise FileNotFoundError(f"Not found: {part!r} in {path!r}")
        return inum

    def walk(self, root: int,
             prefix: str = "") -> Iterator[tuple[str, int, Inode]]:
        """Depth-first (path, inum, inode) listing below *root*.

        Self entries are not followed.
        """
        for name, inum in self.list_dir(root):
            if name == SELF_ENTRY and inum == root:
                continue
            inode = self.read_inode(inum)
            path = f"{prefix}/{name}"
            yield path, inum, inode
            if inode.is_dir and inum != root:
                yield from self.walk(inum, path)
