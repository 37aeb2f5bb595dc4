#!/usr/bin/env python3
"""Tests for decklist parsing."""

import unittest

from grimoire.decklist import normalize_line_endings, parse_decklist, parse_line
from grimoire.errors import ParseError


class TestParseLine(unittest.TestCase):
    """Test single-line parsing."""

    def test_basic_line(self):
        """Test the canonical quantity/name/set/number format."""
        entry = parse_line("4 Lightning Bolt (lea) 162")
        self.assertEqual(entry.quantity, 4)
        self.assertEqual(entry.display_name, "Lightning Bolt")
        self.assertEqual(entry.set_code, "lea")
        self.assertEqual(entry.collector_number, "162")
        self.assertFalse(entry.is_multi_face)

    def test_name_with_parentheses(self):
        """Test that only the last parenthesised group is the set code."""
        entry = parse_line("1 Erase (Not the Urza's Legacy One) (unh) 10")
        self.assertEqual(entry.display_name, "Erase (Not the Urza's Legacy One)")
        self.assertEqual(entry.set_code, "unh")
        self.assertEqual(entry.collector_number, "10")

    def test_collector_number_formats(self):
        """Test letters, hyphens and slashes in collector numbers."""
        self.assertEqual(parse_line("1 Forest (plst) M19-280").collector_number, "M19-280")
        self.assertEqual(parse_line("1 Island (sld) 63a").collector_number, "63a")
        self.assertEqual(parse_line("1 Swamp (pmei) 2019/1").collector_number, "2019/1")

    def test_multi_face_name(self):
        """Test that a // separator marks the entry as multi-face."""
        entry = parse_line("2 Delver of Secrets // Insectile Aberration (isd) 51")
        self.assertTrue(entry.is_multi_face)
        self.assertEqual(entry.display_name, "Delver of Secrets // Insectile Aberration")

    def test_fallback_keeps_remaining_text(self):
        """Test the permissive pattern when the collector number has spaces."""
        entry = parse_line("1 Plains (ust) 212 a ")
        self.assertEqual(entry.set_code, "ust")
        self.assertEqual(entry.collector_number, "212 a")

    def test_surrounding_whitespace(self):
        entry = parse_line("   3   Counterspell   (7ed)   67  ")
        self.assertEqual(entry.quantity, 3)
        self.assertEqual(entry.display_name, "Counterspell")
        self.assertEqual(entry.collector_number, "67")

    def test_malformed_lines(self):
        """Test lines that match neither pattern."""
        for line in ["Lightning Bolt (lea) 162", "4 Lightning Bolt 162", "4 Lightning Bolt (lea)"]:
            with self.subTest(line=line):
                with self.assertRaises(ParseError):
                    parse_line(line)

    def test_zero_quantity_rejected(self):
        with self.assertRaises(ParseError):
            parse_line("0 Lightning Bolt (lea) 162")


class TestParseDecklist(unittest.TestCase):
    """Test whole-decklist parsing."""

    def test_preserves_order_and_skips_blanks(self):
        """Test that blank lines vanish and order is kept."""
        text = "\n\n1 Ancestral Recall (lea) 48\n   \n4 Lightning Bolt (lea) 162\n1 Black Lotus (lea) 232\n\n"
        entries = parse_decklist(text)
        self.assertEqual(
            [e.display_name for e in entries],
            ["Ancestral Recall", "Lightning Bolt", "Black Lotus"],
        )

    def test_mixed_line_endings(self):
        text = "1 Ancestral Recall (lea) 48\r\n4 Lightning Bolt (lea) 162\r1 Black Lotus (lea) 232"
        self.assertEqual(len(parse_decklist(text)), 3)
        self.assertEqual(normalize_line_endings("a\r\nb\rc"), "a\nb\nc")

    def test_empty_decklist(self):
        self.assertEqual(parse_decklist(""), [])
        self.assertEqual(parse_decklist(" \n\t\n"), [])

    def test_error_reports_line(self):
        """Test that ParseError identifies the offending line and position."""
        text = "1 Ancestral Recall (lea) 48\n\nnot a card\n"
        with self.assertRaises(ParseError) as ctx:
            parse_decklist(text)
        self.assertEqual(ctx.exception.line, "not a card")
        self.assertEqual(ctx.exception.line_number, 3)
        self.assertIn("not a card", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
