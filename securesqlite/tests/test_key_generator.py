import unittest
from unittest.mock import MagicMock

from securesqlite.key_generator import SecureRandomKeyGenerator, make_visible
from securesqlite.key_cache import ProcessKeyCache
from securesqlite.logger import Logger

# Disable logging output during tests
Logger.enabled = False


def is_visible(ch: str) -> bool:
    code = ord(ch)
    return 32 <= code <= 126 or 161 <= code <= 321


class TestMakeVisible(unittest.TestCase):
    def test_every_byte_maps_outside_control_range(self):
        """No byte value may produce a control character or DEL"""
        for byte in range(256):
            ch = make_visible(byte)
            self.assertTrue(is_visible(ch), f"byte {byte} mapped to {ord(ch)}")

    def test_boundaries(self):
        """Exact mapping must match keys persisted by earlier releases"""
        self.assertEqual(make_visible(0), ' ')
        self.assertEqual(make_visible(94), '~')
        self.assertEqual(make_visible(95), chr(161))
        self.assertEqual(make_visible(255), chr(321))

    def test_mapping_is_injective(self):
        mapped = {make_visible(b) for b in range(256)}
        self.assertEqual(len(mapped), 256)


class TestSecureRandomKeyGenerator(unittest.TestCase):
    def test_generate_length_and_alphabet(self):
        """Real random source yields 16 visible characters"""
        generator = SecureRandomKeyGenerator()
        for _ in range(50):
            key = generator.generate()
            self.assertEqual(len(key), 16)
            self.assertTrue(all(is_visible(ch) for ch in key))

    def test_generate_preserves_draw_order(self):
        source = MagicMock(return_value=bytes(range(16)))
        generator = SecureRandomKeyGenerator(random_source=source)

        key = generator.generate()

        source.assert_called_once_with(16)
        self.assertEqual(key, "".join(chr(32 + i) for i in range(16)))

    def test_unavailable_random_source_propagates(self):
        """Missing entropy is fatal, not swallowed"""
        source = MagicMock(side_effect=NotImplementedError("no urandom"))
        generator = SecureRandomKeyGenerator(random_source=source)

        with self.assertRaises(NotImplementedError):
            generator.generate()


class TestProcessKeyCache(unittest.TestCase):
    def test_lifecycle(self):
        cache = ProcessKeyCache()
        self.assertIsNone(cache.read())
        self.assertFalse(cache.populated)

        cache.write("K1")
        self.assertEqual(cache.read(), "K1")
        self.assertTrue(cache.populated)

        cache.clear()
        self.assertIsNone(cache.read())


if __name__ == '__main__':
    unittest.main()
