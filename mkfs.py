"""
mkfs.py — PDP-7 Unix filesystem image builder.

Builds a complete surface image in memory from directory, file and special
node requests.  The image can then be serialised with emit.py and attached
to an emulator.

Surface layout (8000 blocks × 64 words of 18 bits):
    Block 0          reserved
    Blocks 1-710     inode table (5 inodes per block, 12 words each)
    Blocks 711+      data area

Inode (12 words):
    +0   flags          used/large/special/directory + rw bits
    +1   ptr[7]         data blocks, or indirect blocks if large
    +8   uid            owner, -1 (root) stored as 0777777
    +9   nlinks         always 1
    +10  size           in words
    +11  uniq           build-wide unique id

Directory entry (8 words):
    +0   inum           0 = free slot
    +1   name[4]        2 chars per word, space padded
    +5   unused[3]      zeroed

A file with more than 7 data blocks is "large": its pointer slots hold
indirect blocks, each listing up to 64 data block numbers.  There is only
one level of indirection, so a file tops out at 7 × 64 × 64 words.

Allocation is strictly monotonic: blocks and inodes are handed out once, in
order, and never reclaimed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from words import WORD_MASK, decode_content, pack_name

logger = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────────────

WORDS_PER_BLOCK = 64
NUM_BLOCKS = 8000                   # one surface

INODE_WORDS = 12
INODES_PER_BLOCK = WORDS_PER_BLOCK // INODE_WORDS   # 5
FIRST_INODE_BLOCK = 1
NUM_INODE_BLOCKS = 710
FIRST_DATA_BLOCK = FIRST_INODE_BLOCK + NUM_INODE_BLOCKS
NUM_INODES = NUM_INODE_BLOCKS * INODES_PER_BLOCK
FIRST_INODE = 1

NUM_POINTERS = 7
SMALL_FILE_LIMIT = NUM_POINTERS * WORDS_PER_BLOCK          # 448 words
MAX_FILE_WORDS = NUM_POINTERS * WORDS_PER_BLOCK * WORDS_PER_BLOCK

DIR_ENTRY_WORDS = 8
ENTRIES_PER_BLOCK = WORDS_PER_BLOCK // DIR_ENTRY_WORDS
MAX_DIR_ENTRIES = NUM_POINTERS * ENTRIES_PER_BLOCK          # 56
SELF_ENTRY = "dd"

ROOT_UID = -1

# Inode word offsets
I_FLAGS = 0
I_PTRS = 1
I_UID = 8
I_NLINKS = 9
I_SIZE = 10
I_UNIQ = 11

# Flag bits
I_USED        = 0o400000
I_LARGE       = 0o200000
I_SPECIAL     = 0o000040
I_DIRECTORY   = 0o000020
I_OWNER_READ  = 0o000010
I_OWNER_WRITE = 0o000004
I_WORLD_READ  = 0o000002
I_WORLD_WRITE = 0o000001
I_PERMS       = 0o000017

# File types (plain files carry no type bit)
FTYPE_FILE    = 0
FTYPE_DIR     = I_DIRECTORY
FTYPE_SPECIAL = I_SPECIAL

FTYPE_NAMES = {
    FTYPE_FILE: "file", FTYPE_DIR: "directory", FTYPE_SPECIAL: "special",
}


# ── Errors ─────────────────────────────────────────────────────────────

class FsError(Exception):
    """Any constraint violation.  The build cannot continue."""


class CapacityError(FsError):
    """The block or inode cursor would run off the surface."""


class AllocationError(FsError):
    """An explicit inode number overlaps numbers already handed out."""


class PointerOverflowError(FsError):
    """An inode would need more than 7 block pointers."""


class ContentError(FsError):
    """A file's content source could not be read."""


# ── Low-level helpers ──────────────────────────────────────────────────

def _blocks_needed(nwords: int) -> int:
    """Number of 64-word blocks needed to hold *nwords*."""
    return (nwords + WORDS_PER_BLOCK - 1) // WORDS_PER_BLOCK


def inode_location(inum: int) -> tuple[int, int]:
    """(block, word offset) of inode *inum* in the inode table."""
    block, slot = divmod(inum, INODES_PER_BLOCK)
    return FIRST_INODE_BLOCK + block, slot * INODE_WORDS


def _encode_uid(uid: int) -> int:
    if uid == ROOT_UID:
        return WORD_MASK
    if not 0 <= uid <= WORD_MASK:
        raise ValueError(f"uid out of range: {uid}")
    return uid


# ── Block table ────────────────────────────────────────────────────────

class BlockTable:
    """Pre-zeroed word store for a whole surface.

    Every word not written explicitly reads back as zero.
    """

    def __init__(self, num_blocks: int = NUM_BLOCKS):
        self.num_blocks = num_blocks
        self.words = [0] * (num_blocks * WORDS_PER_BLOCK)

    @classmethod
    def from_words(cls, words: list[int]) -> "BlockTable":
        """Wrap a flat word list, zero-padded to whole blocks."""
        nblocks = _blocks_needed(len(words))
        table = cls(nblocks)
        table.words[:len(words)] = [w & WORD_MASK for w in words]
        return table

    def _index(self, block: int, offset: int) -> int:
        if not 0 <= block < self.num_blocks:
            raise IndexError(f"block {block} outside surface")
        if not 0 <= offset < WORDS_PER_BLOCK:
            raise IndexError(f"offset {offset} outside block")
        return block * WORDS_PER_BLOCK + offset

    def get(self, block: int, offset: int) -> int:
        return self.words[self._index(block, offset)]

    def set(self, block: int, offset: int, word: int):
        self.words[self._index(block, offset)] = word & WORD_MASK

    def read(self, block: int, offset: int = 0,
             count: int = WORDS_PER_BLOCK) -> list[int]:
        """Read *count* words starting at (*block*, *offset*)."""
        start = self._index(block, offset)
        if offset + count > WORDS_PER_BLOCK:
            raise IndexError(f"read of {count} words crosses block {block}")
        return self.words[start:start + count]

    def write(self, block: int, offset: int, words: list[int]):
        """Write *words* into one block starting at *offset*."""
        start = self._index(block, offset)
        if offset + len(words) > WORDS_PER_BLOCK:
            raise IndexError(f"write of {len(words)} words crosses block {block}")
        self.words[start:start + len(words)] = [w & WORD_MASK for w in words]


# ── Inodes ─────────────────────────────────────────────────────────────

@dataclass
class Inode:
    """One decoded 12-word inode."""
    flags: int = 0
    blocks: list[int] = field(default_factory=list)
    uid: int = 0
    nlinks: int = 0
    size: int = 0
    uniq: int = 0

    @property
    def used(self) -> bool:
        return bool(self.flags & I_USED)

    @property
    def large(self) -> bool:
        return bool(self.flags & I_LARGE)

    @property
    def ftype(self) -> int:
        return self.flags & (I_DIRECTORY | I_SPECIAL)

    @property
    def is_dir(self) -> bool:
        return self.ftype == FTYPE_DIR

    @property
    def is_special(self) -> bool:
        return self.ftype == FTYPE_SPECIAL

    @property
    def is_file(self) -> bool:
        return self.used and self.ftype == FTYPE_FILE

    @property
    def perms(self) -> int:
        return self.flags & I_PERMS

    def encode(self) -> list[int]:
        if len(self.blocks) > NUM_POINTERS:
            raise PointerOverflowError(
                f"{len(self.blocks)} block pointers (max {NUM_POINTERS})")
        ptrs = list(self.blocks) + [0] * (NUM_POINTERS - len(self.blocks))
        return [self.flags] + ptrs + [self.uid, self.nlinks, self.size, self.uniq]

    @classmethod
    def decode(cls, words: list[int]) -> "Inode":
        ptrs = [p for p in words[I_PTRS:I_PTRS + NUM_POINTERS] if p]
        return cls(words[I_FLAGS], ptrs, words[I_UID], words[I_NLINKS],
                   words[I_SIZE], words[I_UNIQ])


# ── Allocator ──────────────────────────────────────────────────────────

class Allocator:
    """Monotonic block and inode number cursors for one surface."""

    def __init__(self, first_block: int = FIRST_DATA_BLOCK,
                 num_blocks: int = NUM_BLOCKS,
                 first_inode: int = FIRST_INODE,
                 num_inodes: int = NUM_INODES):
        self.first_block = first_block
        self.num_blocks = num_blocks
        self.first_inode = first_inode
        self.num_inodes = num_inodes
        self.next_block = first_block
        self.next_inode = first_inode

    @property
    def blocks_used(self) -> int:
        return self.next_block - self.first_block

    @property
    def blocks_free(self) -> int:
        return self.num_blocks - self.next_block

    @property
    def inodes_used(self) -> int:
        return self.next_inode - self.first_inode

    def allocate_blocks(self, word_count: int) -> list[int]:
        """Grant enough contiguous blocks to hold *word_count* words."""
        count = _blocks_needed(word_count)
        if self.next_block + count > self.num_blocks:
            raise CapacityError(
                f"No space for {count} blocks "
                f"({self.blocks_free} of {self.num_blocks} left)")
        start = self.next_block
        self.next_block += count
        return list(range(start, start + count))

    def allocate_inode(self, explicit: int | None = None) -> int:
        """Return the next inode number, or pin the cursor to *explicit*.

        An explicit number below the cursor would reuse an inode already
        handed out and is refused.
        """
        if explicit is None:
            inum = self.next_inode
        elif explicit < self.next_inode:
            raise AllocationError(
                f"Inode {explicit} already allocated "
                f"(next free is {self.next_inode})")
        else:
            inum = explicit
        if inum >= self.num_inodes:
            raise CapacityError(
                f"Inode {inum} beyond inode table ({self.num_inodes} inodes)")
        self.next_inode = inum + 1
        return inum


# ── Image builder ──────────────────────────────────────────────────────

@dataclass
class DirCursor:
    """Insertion point of an open directory."""
    block: int
    offset: int
    inum: int


class ImageBuilder:
    """In-memory PDP-7 Unix surface under construction."""

    def __init__(self, allocator: Allocator | None = None):
        self.alloc = allocator if allocator is not None else Allocator()
        self.table = BlockTable(self.alloc.num_blocks)
        self.dirs: list[DirCursor] = []
        self.uniq = 0
        self.nfiles = 0
        self.ndirs = 0

    # ── inode encoder ──────────────────────────────────────────────

    def read_inode(self, inum: int) -> Inode:
        block, off = inode_location(inum)
        return Inode.decode(self.table.read(block, off, INODE_WORDS))

    def write_inode(self, inum: int, inode: Inode):
        block, off = inode_location(inum)
        self.table.write(block, off, inode.encode())

    def fill_inode(self, inum: int | None, perms: int, ftype: int, uid: int,
                   size: int, blocks: list[int]) -> int:
        """Write a fresh inode and return its number.

        With *inum* None the next sequential number is allocated; otherwise
        *inum* must already have been obtained from the allocator.
        """
        if ftype not in FTYPE_NAMES:
            raise ValueError(f"Unknown file type: {ftype:o}")
        if len(blocks) > NUM_POINTERS:
            raise PointerOverflowError(
                f"{len(blocks)} block pointers (max {NUM_POINTERS})")
        uid = _encode_uid(uid)
        if inum is None:
            inum = self.alloc.allocate_inode()

        flags = I_USED | ftype | (perms & I_PERMS)
        if size > SMALL_FILE_LIMIT:
            flags |= I_LARGE
        self.uniq += 1
        self.write_inode(inum, Inode(flags, list(blocks), uid, 1, size, self.uniq))
        return inum

    def add_extra_block(self, inum: int, block: int):
        """Append *block* to the first empty pointer slot of *inum*."""
        inode = self.read_inode(inum)
        if len(inode.blocks) >= NUM_POINTERS:
            raise PointerOverflowError(
                f"Inode {inum} has no free block pointer "
                f"({MAX_DIR_ENTRIES} entries per directory)")
        inode.blocks.append(block)
        self.write_inode(inum, inode)

    # ── directories ────────────────────────────────────────────────

    @property
    def cwd(self) -> DirCursor | None:
        """The open directory new entries go into, or None."""
        return self.dirs[-1] if self.dirs else None

    def add_entry(self, name: str, inum: int):
        """Append a name → inode record to the open directory.

        With no directory open the entry is dropped; that is how the root
        directory itself gets created.
        """
        cur = self.cwd
        if cur is None:
            logger.debug("no open directory, dropping entry %r", name)
            return
        if cur.offset >= WORDS_PER_BLOCK:
            block = self.alloc.allocate_blocks(WORDS_PER_BLOCK)[0]
            self.add_extra_block(cur.inum, block)
            logger.debug("directory %d grew into block %d", cur.inum, block)
            cur.block, cur.offset = block, 0

        self.table.write(cur.block, cur.offset, [inum] + pack_name(name))
        cur.offset += DIR_ENTRY_WORDS

        block, off = inode_location(cur.inum)
        size = self.table.get(block, off + I_SIZE)
        self.table.set(block, off + I_SIZE, size + DIR_ENTRY_WORDS)

    def open_directory(self, name: str, perms: int, uid: int,
                       inum: int | None = None) -> int:
        """Create a directory inside the open one and make it current."""
        block = self.alloc.allocate_blocks(WORDS_PER_BLOCK)[0]
        inum = self.alloc.allocate_inode(inum)
        self.add_entry(name, inum)
        self.fill_inode(inum, perms, FTYPE_DIR, uid, 0, [block])
        self.dirs.append(DirCursor(block, 0, inum))
        self.add_entry(SELF_ENTRY, inum)
        self.ndirs += 1
        logger.debug("mkdir %s -> inode %d block %d", name, inum, block)
        return inum

    def close_directory(self) -> int:
        """Leave the current directory; returns its inode number."""
        if not self.dirs:
            raise IndexError("close_directory with no open directory")
        return self.dirs.pop().inum

    # ── files ──────────────────────────────────────────────────────

    def _store(self, blocks: list[int], words: list[int]):
        for i, block in enumerate(blocks):
            chunk = words[i * WORDS_PER_BLOCK:(i + 1) * WORDS_PER_BLOCK]
            self.table.write(block, 0, chunk)

    def add_file(self, name: str, perms: int, uid: int,
                 source: str | Path | bytes) -> int:
        """Ingest a file from a path or raw bytes; returns its inode number.

        Files over 7 blocks get a run of indirect blocks.  Content needing
        more than 7 indirect blocks exceeds MAX_FILE_WORDS and fails with
        PointerOverflowError.
        """
        if isinstance(source, (bytes, bytearray)):
            data = bytes(source)
        else:
            try:
                data = Path(source).read_bytes()
            except OSError as e:
                raise ContentError(
                    f"Cannot read {str(source)!r}: {e.strerror}") from e

        words = decode_content(data)
        blocks = self.alloc.allocate_blocks(len(words))
        self._store(blocks, words)

        ptrs = blocks
        if len(blocks) > NUM_POINTERS:
            ptrs = self.alloc.allocate_blocks(len(blocks))
            self._store(ptrs, blocks)
            logger.debug("%s: %d data blocks via %d indirect blocks",
                         name, len(blocks), len(ptrs))

        inum = self.fill_inode(None, perms, FTYPE_FILE, uid, len(words), ptrs)
        self.add_entry(name, inum)
        self.nfiles += 1
        logger.debug("file %s -> inode %d, %d words", name, inum, len(words))
        return inum

    def add_special(self, name: str, perms: int, uid: int, inum: int) -> int:
        """Create a special (device) node at a fixed inode number."""
        inum = self.alloc.allocate_inode(inum)
        self.fill_inode(inum, perms, FTYPE_SPECIAL, uid, 0, [])
        self.add_entry(name, inum)
        return inum

    def info(self) -> dict:
        """Allocation summary."""
        return {
            "directories": self.ndirs,
            "files": self.nfiles,
            "inodes_used": self.alloc.inodes_used,
            "blocks_used": self.alloc.blocks_used,
            "blocks_free": self.alloc.blocks_free,
        }
