"""
Tests for the proto file parser and interpreter.
"""
import os
import tempfile
import unittest

from fsdump import ImageReader
from mkfs import (
    FTYPE_DIR, FTYPE_FILE, FTYPE_SPECIAL, I_OWNER_READ, I_OWNER_WRITE,
    I_WORLD_READ, I_WORLD_WRITE, AllocationError, ContentError, FsError,
    ImageBuilder,
)
from proto import (
    KIND_DIR, KIND_END, KIND_FILE, KIND_SPECIAL, ProtoError,
    build_from_proto, parse_line, parse_perms, parse_proto, run_directives,
)
from words import pack_sixbit

PROTO = """\
# root directory, pinned to inode 4
dd      drwr-  -1  4
system  drwr-  -1
  init    -rwr-  -1  bin/init.ptr
  motd    -rwr-  3
$
ttyin   srwrw  -1  20
readme  -rwrw  7   docs/README
"""


def write_tree(d: str, proto: str = PROTO):
    """Lay out a proto file and its content files under *d*."""
    os.makedirs(os.path.join(d, "bin"))
    os.makedirs(os.path.join(d, "docs"))
    with open(os.path.join(d, "bin", "init.ptr"), "wb") as f:
        f.write(b"".join(pack_sixbit(w) for w in (0o740040, 0o20, 1)))
    with open(os.path.join(d, "motd"), "wb") as f:
        f.write(b"hello\n")
    with open(os.path.join(d, "docs", "README"), "wb") as f:
        f.write(b"x" * 2000)
    path = os.path.join(d, "unix.proto")
    with open(path, "w") as f:
        f.write(proto)
    return path


class TestParser(unittest.TestCase):

    def test_perms(self):
        self.assertEqual(parse_perms(1, "drw-r"),
                         (FTYPE_DIR, I_OWNER_READ | I_OWNER_WRITE | I_WORLD_WRITE))
        self.assertEqual(parse_perms(1, "-----"), (FTYPE_FILE, 0))
        self.assertEqual(parse_perms(1, "sxxxx"),
                         (FTYPE_SPECIAL, I_OWNER_READ | I_OWNER_WRITE
                          | I_WORLD_READ | I_WORLD_WRITE))

    def test_perms_wrong_length(self):
        for bad in ("drw", "drwrwx", ""):
            with self.assertRaises(ProtoError) as cm:
                parse_perms(7, bad)
            self.assertEqual(cm.exception.line, 7)
            self.assertIn("Line 7", str(cm.exception))

    def test_perms_unknown_type(self):
        with self.assertRaises(ProtoError):
            parse_perms(1, "xrwrw")

    def test_records(self):
        recs = list(parse_proto(PROTO))
        self.assertEqual([r.kind for r in recs],
                         [KIND_DIR, KIND_DIR, KIND_FILE, KIND_FILE, KIND_END,
                          KIND_SPECIAL, KIND_FILE])
        root = recs[0]
        self.assertEqual((root.name, root.owner, root.payload, root.lineno),
                         ("dd", -1, "4", 2))
        self.assertIsNone(recs[3].payload)
        self.assertEqual(recs[-1].owner, 7)

    def test_comments_and_blank_lines(self):
        recs = list(parse_proto("\n# nothing\n  \ndd drwr- -1 # trailing\n"))
        self.assertEqual(len(recs), 1)
        self.assertEqual(recs[0].lineno, 4)
        self.assertIsNone(recs[0].payload)

    def test_bad_lines(self):
        for text in ("dd drwr-",                     # missing owner
                     "dd drwr- root",                # owner not a number
                     "dd drwr- -7",                  # negative non-root uid
                     "tty s-rw- -1",                 # special without inode
                     "tty s-rw- -1 two",             # inode not a number
                     "dd drwr- -1 4 extra"):         # trailing junk
            with self.assertRaises(ProtoError, msg=text):
                parse_line(3, text)

    def test_end_scope(self):
        self.assertEqual(parse_line(1, "$").kind, KIND_END)


class TestInterpreter(unittest.TestCase):

    def test_build_tree(self):
        with tempfile.TemporaryDirectory() as d:
            builder = build_from_proto(write_tree(d))
        r = ImageReader(builder.table)
        self.assertEqual(r.root_inode(), 4)
        self.assertEqual(r.list_dir(4),
                         [("dd", 4), ("system", 5), ("ttyin", 20),
                          ("readme", 21)])
        self.assertEqual(r.list_dir(5), [("dd", 5), ("init", 6), ("motd", 7)])
        self.assertEqual(r.read_words(6), [0o740040, 0o20, 1])
        self.assertEqual(r.read_text(7), b"hello\n")
        self.assertEqual(r.read_inode(7).uid, 3)
        self.assertTrue(r.read_inode(20).is_special)
        readme = r.read_inode(21)
        self.assertTrue(readme.large)
        self.assertEqual(readme.size, 1000)
        self.assertEqual(r.read_text(21), b"x" * 2000)

    def test_end_without_directory(self):
        with self.assertRaises(ProtoError) as cm:
            run_directives(parse_proto("\n$\n"), ImageBuilder())
        self.assertEqual(cm.exception.line, 2)

    def test_root_can_be_closed(self):
        b = run_directives(parse_proto("dd drwr- -1\n$\n"), ImageBuilder())
        self.assertEqual(b.dirs, [])

    def test_allocation_conflict_reports_line(self):
        text = "dd drwr- -1 4\ntty srwrw -1 2\n"
        with self.assertRaises(AllocationError) as cm:
            run_directives(parse_proto(text), ImageBuilder())
        self.assertIn("Line 2", str(cm.exception))

    def test_missing_content(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "p")
            with open(path, "w") as f:
                f.write("dd drwr- -1\nnothere -rw-- -1\n")
            with self.assertRaises(ContentError) as cm:
                build_from_proto(path)
        self.assertIn("Line 2", str(cm.exception))

    def test_unreadable_proto(self):
        with self.assertRaises(FsError) as cm:
            build_from_proto("/nonexistent/unix.proto")
        self.assertIn("Cannot read proto", str(cm.exception))


if __name__ == "__main__":
    unittest.main()
