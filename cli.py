#!/usr/bin/env python3
"""
pdp7fs — PDP-7 Unix filesystem image tool
=========================================
Builds emulator-ready surface images from proto files and inspects them.

Provides:
  - build   proto file → image (simh, ptr or list format)
  - dump    octal/text listing of a two-surface simh pack
  - ls      directory tree of a built image
  - cat     text of one file in a built image

Usage:
  python cli.py build unix.proto -o image.fs [-f simh|ptr|list]
  python cli.py dump pack.fs [--surfaces 2] [--skip 1]
  python cli.py ls image.fs
  python cli.py cat image.fs system/init

The default build format comes from $PDP7FS_FORMAT, else simh.
"""

from __future__ import annotations
import argparse
import logging
import os
import sys

from emit import DEFAULT_FORMAT, FORMATS, write_image
from fsdump import DUMP_SKIP, DUMP_SURFACES, ImageReader, dump_image
from mkfs import FsError, ROOT_UID
from proto import build_from_proto
from words import WORD_MASK

FORMAT_ENV = "PDP7FS_FORMAT"


def _default_format() -> str:
    fmt = os.environ.get(FORMAT_ENV, DEFAULT_FORMAT)
    if fmt not in FORMATS:
        raise ValueError(f"${FORMAT_ENV}={fmt!r} is not one of "
                         f"{', '.join(FORMATS)}")
    return fmt


def _perm_str(inode) -> str:
    kind = "d" if inode.is_dir else "s" if inode.is_special else "-"
    bits = "rwrw"
    return kind + "".join(c if inode.perms & (8 >> i) else "-"
                          for i, c in enumerate(bits))


# ---------------------------------------------------------------------------
#  Commands
# ---------------------------------------------------------------------------

def cmd_build(args) -> int:
    fmt = args.format or _default_format()
    builder = build_from_proto(args.proto)
    nbytes = write_image(builder.table, args.output, fmt)
    info = builder.info()
    print(f"Created {args.output} ({nbytes} bytes, {fmt}, "
          f"{info['directories']} dirs, {info['files']} files, "
          f"{info['blocks_used']} blocks used, {info['blocks_free']} free)")
    return 0


def cmd_dump(args) -> int:
    dump_image(args.image, sys.stdout, surfaces=args.surfaces, skip=args.skip)
    return 0


def cmd_ls(args) -> int:
    reader = ImageReader.load(args.image, args.format)
    root = args.root if args.root is not None else reader.root_inode()
    print(f"{'Inode':>5}  {'Perms':<5}  {'Owner':>6}  {'Size':>6}  Path")
    print("-" * 48)
    for path, inum, inode in reader.walk(root):
        owner = ROOT_UID if inode.uid == WORD_MASK else inode.uid
        print(f"{inum:>5}  {_perm_str(inode):<5}  {owner:>6}  "
              f"{inode.size:>6}  {path}")
    return 0


def cmd_cat(args) -> int:
    reader = ImageReader.load(args.image, args.format)
    root = args.root if args.root is not None else reader.root_inode()
    inum = reader.lookup(root, args.path)
    sys.stdout.buffer.write(reader.read_text(inum))
    return 0


COMMANDS = {
    "build": cmd_build,
    "dump": cmd_dump,
    "ls": cmd_ls,
    "cat": cmd_cat,
}


# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="pdp7fs",
        description="PDP-7 Unix filesystem image tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  pdp7fs build unix.proto -o image.fs\n"
               "  pdp7fs build unix.proto -o image.ptr -f ptr\n"
               "  pdp7fs ls image.fs\n"
               "  pdp7fs dump pack.fs --skip 0\n"
    )
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log allocation details to stderr")
    sub = parser.add_subparsers(dest="cmd")

    p_build = sub.add_parser("build", help="Build an image from a proto file")
    p_build.add_argument("proto", help="Proto file")
    p_build.add_argument("-o", "--output", default="image.fs",
                         help="Output path (default: image.fs)")
    p_build.add_argument("-f", "--format", choices=FORMATS,
                         default=None,
                         help=f"Image format (default: ${FORMAT_ENV} "
                              f"or {DEFAULT_FORMAT})")

    p_dump = sub.add_parser("dump", help="List a simh pack in octal")
    p_dump.add_argument("image", help="Image path")
    p_dump.add_argument("--surfaces", type=int, default=DUMP_SURFACES,
                        help=f"Surfaces in the pack (default: {DUMP_SURFACES})")
    p_dump.add_argument("--skip", type=int, default=DUMP_SKIP,
                        help=f"Leading surfaces to skip (default: {DUMP_SKIP})")

    for name, help_text in (("ls", "List the directory tree of an image"),
                            ("cat", "Print a file from an image")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("image", help="Image path")
        if name == "cat":
            p.add_argument("path", help="Path below the root directory")
        p.add_argument("-f", "--format", choices=("simh", "ptr"),
                       default="simh", help="Image format (default: simh)")
        p.add_argument("--root", type=int, default=None,
                       help="Root directory inode (default: first directory)")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(message)s")

    if args.cmd is None:
        parser.print_help()
        return 0

    try:
        return COMMANDS[args.cmd](args)
    except (FsError, OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
