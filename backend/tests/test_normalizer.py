import sys
import unittest
from pathlib import Path

import pandas as pd

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from chartprep.normalizer import (
    extract_day_token,
    extract_month_details,
    extract_quarter_details,
    looks_like_date,
    looks_numeric,
    normalize_currency_value,
    parse_date,
    parse_number,
    parse_year_token,
    split_numeric_string,
)


class ParseNumberTests(unittest.TestCase):
    def test_accounting_negative(self):
        self.assertEqual(parse_number("(123.45)"), -123.45)

    def test_currency_and_grouping(self):
        self.assertEqual(parse_number("$1,234.56"), 1234.56)
        self.assertEqual(parse_number("€ 2,000"), 2000.0)

    def test_european_decimal_comma(self):
        self.assertEqual(parse_number("1.234,56"), 1234.56)
        self.assertEqual(parse_number("12,5"), 12.5)

    def test_comma_grouped_integer_is_thousands(self):
        self.assertEqual(parse_number("1,234"), 1234.0)

    def test_percentage(self):
        self.assertEqual(parse_number("45%"), 45.0)

    def test_non_numeric_returns_none(self):
        for raw in ("", "   ", None, "abc", "12abc", "2024-01-02", True):
            with self.subTest(raw=raw):
                self.assertIsNone(parse_number(raw))

    def test_native_numbers_pass_through(self):
        self.assertEqual(parse_number(7), 7.0)
        self.assertIsNone(parse_number(float("nan")))


class SplitNumericStringTests(unittest.TestCase):
    def test_splits_two_grouped_numbers(self):
        self.assertEqual(split_numeric_string("1,500.00,2,000.00"), ["1,500.00", "2,000.00"])

    def test_single_number_is_kept_whole(self):
        self.assertEqual(split_numeric_string("1,234,567.89"), ["1,234,567.89"])

    def test_none_is_empty(self):
        self.assertEqual(split_numeric_string(None), [])


class TokenExtractionTests(unittest.TestCase):
    def test_month_in_noisy_label(self):
        self.assertEqual(extract_month_details("JAN/11"), (1, 2011))
        self.assertEqual(extract_month_details("Sep-2024"), (9, 2024))
        self.assertIsNone(extract_month_details("North"))

    def test_weekday_in_noisy_label(self):
        self.assertEqual(extract_day_token("Wed-"), "wed")

    def test_quarter_with_year_after_or_before(self):
        self.assertEqual(extract_quarter_details("Q3 2022"), (3, 2022))
        self.assertEqual(extract_quarter_details("Q2/23"), (2, 2023))
        self.assertEqual(extract_quarter_details("FY24 Q1"), (1, 2024))
        self.assertEqual(extract_quarter_details("Q4"), (4, 0))

    def test_two_digit_year_pivot(self):
        self.assertEqual(parse_year_token("49"), 2049)
        self.assertEqual(parse_year_token("50"), 1950)


class ShapeCheckTests(unittest.TestCase):
    def test_looks_numeric(self):
        self.assertTrue(looks_numeric("1,200"))
        self.assertTrue(looks_numeric("$15%"))
        self.assertFalse(looks_numeric("Region"))
        self.assertFalse(looks_numeric(""))

    def test_looks_like_date_requires_date_shape(self):
        self.assertTrue(looks_like_date("2024-03-01"))
        self.assertTrue(looks_like_date("03/01/2024"))
        self.assertFalse(looks_like_date("March"))
        self.assertFalse(looks_like_date("1200"))

    def test_parse_date_needs_a_digit_and_nanosecond_range(self):
        self.assertEqual(parse_date("2024-03-01"), pd.Timestamp("2024-03-01"))
        self.assertIsNone(parse_date("Jan"))
        self.assertIsNone(parse_date("Monday"))
        self.assertIsNone(parse_date("2500-01-01"))
        self.assertIsNone(parse_date("0001-01-01"))

    def test_normalize_currency_value(self):
        self.assertEqual(normalize_currency_value("$ 1,250"), 1250.0)
        self.assertIsNone(normalize_currency_value("-5", allow_negative=False))


if __name__ == "__main__":
    unittest.main()
