"""
Tests for the 18-bit word codecs.
"""
import unittest

import pytest

from words import (
    DIR_NAME_CHARS, WORD_BITS, WORD_MASK, decode_content, is_sixbit,
    pack_ascii, pack_name, pack_sixbit, printable, unpack_ascii, unpack_name,
    unpack_sixbit, word_chars,
)


class TestConstants(unittest.TestCase):

    def test_word_width(self):
        self.assertEqual(WORD_BITS, 18)
        self.assertEqual(WORD_MASK, 0o777777)

    def test_name_width(self):
        """A packed name holds DIR_NAME_CHARS characters, two per word."""
        self.assertEqual(len(pack_name("x")) * 2, DIR_NAME_CHARS)
        self.assertEqual(unpack_name(pack_name("y" * 20)), "y" * DIR_NAME_CHARS)


class TestPackedAscii(unittest.TestCase):

    def test_two_chars_per_word(self):
        """First character goes in the high 9 bits."""
        self.assertEqual(pack_ascii(b"ab"), [(ord("a") << 9) | ord("b")])

    def test_trailing_char_fills_high_half(self):
        words = pack_ascii(b"hello")
        self.assertEqual(len(words), 3)
        self.assertEqual(words[-1], ord("o") << 9)

    def test_empty(self):
        self.assertEqual(pack_ascii(b""), [])

    def test_unpack_inverts_pack(self):
        text = b"main.s\nsys exit\n"
        self.assertEqual(unpack_ascii(pack_ascii(text)), text)
        self.assertEqual(unpack_ascii(pack_ascii(b"odd")), b"odd")

    def test_word_chars(self):
        self.assertEqual(word_chars(0o101102), (0o101, 0o102))

    def test_printable(self):
        self.assertEqual(printable(pack_ascii(b"hi")[0]), "hi")
        self.assertEqual(printable(0), "  ")
        self.assertEqual(printable((0o12 << 9) | ord("x")), " x")


class TestNames(unittest.TestCase):

    def test_short_name_is_space_padded(self):
        words = pack_name("dd")
        self.assertEqual(len(words), 4)
        self.assertEqual(words[0], (ord("d") << 9) | ord("d"))
        for w in words[1:]:
            self.assertEqual(w, (0o40 << 9) | 0o40)

    def test_long_name_is_truncated(self):
        self.assertEqual(unpack_name(pack_name("abcdefghij")), "abcdefgh")

    def test_round_trip(self):
        for name in ("dd", "system", "a.out", "12345678"):
            self.assertEqual(unpack_name(pack_name(name)), name)


class TestSixbit(unittest.TestCase):

    def test_frame_layout(self):
        frames = pack_sixbit(0o123456)
        self.assertEqual(frames, bytes([0o200 | 0o12, 0o34, 0o56]))

    def test_first_frame_marked(self):
        for w in (0, 1, 0o777777, 0o400000):
            frames = pack_sixbit(w)
            self.assertEqual(frames[0] & 0o300, 0o200)
            self.assertEqual(frames[1] & 0o300, 0)
            self.assertEqual(frames[2] & 0o300, 0)

    @pytest.mark.slow
    def test_every_word_round_trips(self):
        """pack_sixbit/unpack_sixbit is exact over the whole 18-bit range."""
        data = b"".join(pack_sixbit(w) for w in range(WORD_MASK + 1))
        self.assertEqual(unpack_sixbit(data), list(range(WORD_MASK + 1)))

    def test_high_bits_of_frames_ignored(self):
        self.assertEqual(unpack_sixbit(bytes([0o377, 0o377, 0o377])),
                         [0o777777])

    def test_partial_trailing_group(self):
        self.assertEqual(unpack_sixbit(bytes([0o201])), [0o010000])
        self.assertEqual(unpack_sixbit(bytes([0o201, 0o02])), [0o010200])


class TestContentDetection(unittest.TestCase):

    def test_ascii_source(self):
        self.assertFalse(is_sixbit(b"hello"))
        self.assertEqual(decode_content(b"hello"), pack_ascii(b"hello"))

    def test_sixbit_source(self):
        data = pack_sixbit(0o707070) + pack_sixbit(5)
        self.assertTrue(is_sixbit(data))
        self.assertEqual(decode_content(data), [0o707070, 5])

    def test_top_bits_11_is_ascii(self):
        """Only the 10xxxxxx pattern selects paper tape."""
        self.assertFalse(is_sixbit(bytes([0o300, 1, 2])))
        self.assertFalse(is_sixbit(bytes([0o100, 1, 2])))

    def test_empty_source(self):
        self.assertFalse(is_sixbit(b""))
        self.assertEqual(decode_content(b""), [])


if __name__ == "__main__":
    unittest.main()
