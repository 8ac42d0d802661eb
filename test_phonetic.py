# test_phonetic.py
"""
Unit tests for pinyin helpers.
Run with: python -m pytest test_phonetic.py -v
"""

import unittest

from phonetic import phonetic_contains, to_initials, to_pinyin


class TestToPinyin(unittest.TestCase):
    def test_chinese(self):
        self.assertEqual(to_pinyin("电子天平"), "dianzitianping")

    def test_mixed_text_keeps_latin_lowercased(self):
        self.assertEqual(to_pinyin("FA2004电子"), "fa2004dianzi")

    def test_non_string_and_empty(self):
        self.assertEqual(to_pinyin(""), "")
        self.assertEqual(to_pinyin(None), "")
        self.assertEqual(to_pinyin(220), "")


class TestToInitials(unittest.TestCase):
    def test_chinese(self):
        self.assertEqual(to_initials("电子天平"), "dztp")

    def test_latin_passthrough(self):
        self.assertEqual(to_initials("ABC"), "abc")

    def test_empty(self):
        self.assertEqual(to_initials(""), "")


class TestPhoneticContains(unittest.TestCase):
    def test_matches_any_form(self):
        self.assertTrue(phonetic_contains("电子天平", "电子"))
        self.assertTrue(phonetic_contains("电子天平", "dianzi"))
        self.assertTrue(phonetic_contains("电子天平", "DZ"))
        self.assertFalse(phonetic_contains("电子天平", "wendu"))

    def test_blank_needle(self):
        self.assertFalse(phonetic_contains("电子天平", ""))


if __name__ == "__main__":
    unittest.main()
