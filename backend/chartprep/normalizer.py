"""
Chartprep - Normalizer Module
Numeric/currency/percentage parsing and month/quarter/weekday token extraction
"""

import math
import re
import warnings
from typing import Any, Optional

import numpy as np
import pandas as pd

CURRENCY_SYMBOLS = "$€£¥"
SUMMARY_VALUE_PATTERN = re.compile(r"subtotal|total|summary", re.IGNORECASE)
IDENTIFIER_MAX_LENGTH = 80

_NUMERIC_LITERAL = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_PARSE_STRIP = re.compile(r"[$€£¥%\s]")
_LOOKS_NUMERIC_STRIP = re.compile(r"[$%,]")
_COMMA_GROUPED = re.compile(r"^[+-]?\d{1,3}(?:,\d{3})+$")
_THOUSANDS_GROUP = re.compile(r"^\d{3}(?:[.,]|$)")
_NUMBER_START = re.compile(r"^-?\d")
_HAS_DIGIT = re.compile(r"\d")
_DATE_SHAPE = re.compile(r"[0-9]{1,4}[-/][0-9]{1,2}[-/][0-9]{1,4}")

MONTHS = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

DAYS = {
    "monday": 1, "mon": 1,
    "tuesday": 2, "tue": 2, "tues": 2,
    "wednesday": 3, "wed": 3,
    "thursday": 4, "thu": 4, "thur": 4, "thurs": 4,
    "friday": 5, "fri": 5,
    "saturday": 6, "sat": 6,
    "sunday": 7, "sun": 7,
}


def normalize_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a raw cell into a float.
    Handles currency symbols, percent signs, accounting negatives "(1.5)" and
    both "1,234.56" and "1.234,56" grouping. Returns None when not numeric.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        number = float(value)
        if math.isnan(number) or math.isinf(number):
            return None
        return number

    text = str(value).strip()
    if not text:
        return None

    negative = False
    if text.startswith("(") and text.endswith(")"):
        text = text[1:-1]
        negative = True

    text = _PARSE_STRIP.sub("", text)
    if not text:
        return None

    last_comma = text.rfind(",")
    last_dot = text.rfind(".")
    if last_comma > last_dot and not _COMMA_GROUPED.match(text):
        # Comma is the decimal point; dots (and any earlier commas) group digits.
        text = text.replace(".", "")
        head, _, tail = text.rpartition(",")
        text = head.replace(",", "") + "." + tail
    else:
        text = text.replace(",", "")

    if not _NUMERIC_LITERAL.match(text):
        return None
    number = float(text)
    return -number if negative else number


def normalize_currency_value(value: Any, allow_negative: bool = True) -> Optional[float]:
    """Strip currency symbols, whitespace and commas, then parse."""
    if value is None:
        return None
    cleaned = re.sub(r"[$€£¥]", "", str(value))
    cleaned = re.sub(r"\s+", "", cleaned).replace(",", "").strip()
    if not cleaned or not _NUMERIC_LITERAL.match(cleaned):
        return None
    number = float(cleaned)
    if not allow_negative and number < 0:
        return None
    return number


def split_numeric_string(value: Any) -> list[str]:
    """
    Split a field holding several comma-grouped numbers.
    "1,500.00,2,000.00" -> ["1,500.00", "2,000.00"]
    A comma followed by a three-digit group continues the current number.
    """
    if value is None:
        return []
    text = str(value)
    parts: list[str] = []
    current = ""
    for index, char in enumerate(text):
        if char == ",":
            rest = text[index + 1:]
            continues_group = (
                "." not in current
                and bool(re.search(r"\d$", current))
                and bool(_THOUSANDS_GROUP.match(rest))
            )
            if not continues_group and _NUMBER_START.match(rest):
                parts.append(current)
                current = ""
                continue
        current += char
    parts.append(current)
    return parts


def looks_numeric(value: Any) -> bool:
    text = normalize_cell(value)
    if not text:
        return False
    cleaned = _LOOKS_NUMERIC_STRIP.sub("", text).strip()
    return bool(cleaned) and bool(_NUMERIC_LITERAL.match(cleaned))


def parse_date(value: Any) -> Optional[pd.Timestamp]:
    """Parse a single value with pandas; None when unparseable."""
    text = normalize_cell(value)
    # Bare month or weekday names would parse to year 1
    if not text or not _HAS_DIGIT.search(text):
        return None
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if not isinstance(parsed, pd.Timestamp) or pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert(None)
    if not pd.Timestamp.min <= parsed <= pd.Timestamp.max:
        return None
    return parsed.as_unit("ns")


def looks_like_date(value: Any) -> bool:
    """Date-shaped (d/m/y with - or /) and parseable."""
    text = normalize_cell(value)
    if not text or not _DATE_SHAPE.search(text):
        return False
    return parse_date(text) is not None


def is_currency_string(value: Any) -> bool:
    if value is None:
        return False
    return any(symbol in str(value) for symbol in CURRENCY_SYMBOLS)


def is_percentage_string(value: Any) -> bool:
    text = normalize_cell(value)
    return bool(text) and text.endswith("%")


def has_alpha_numeric_mix(value: Any) -> bool:
    if value is None:
        return False
    text = str(value)
    return bool(re.search(r"[a-z]", text, re.IGNORECASE)) and bool(re.search(r"\d", text))


def is_likely_identifier_value(value: Any) -> bool:
    text = normalize_cell(value)
    if not text or len(text) > IDENTIFIER_MAX_LENGTH:
        return False
    return not SUMMARY_VALUE_PATTERN.search(text)


def parse_year_token(token: Optional[str]) -> Optional[int]:
    """Two-digit years pivot at 50: 49 -> 2049, 50 -> 1950."""
    if not token:
        return None
    digits = re.sub(r"[^0-9]", "", token)
    if not digits:
        return None
    year = int(digits)
    if len(digits) == 2:
        year += 1900 if year >= 50 else 2000
    return year


def _extract_token(value: Any, dictionary: dict[str, int]) -> str:
    text = normalize_cell(value).lower()
    if not text:
        return ""
    if text in dictionary:
        return text
    for token in re.split(r"[^a-z]+", text):
        if token and token in dictionary:
            return token
    return ""


def extract_month_token(value: Any) -> str:
    return _extract_token(value, MONTHS)


def extract_day_token(value: Any) -> str:
    return _extract_token(value, DAYS)


def extract_month_details(value: Any) -> Optional[tuple[int, Optional[int]]]:
    """Return (month, year) for labels like "JAN/11" or "Sep-2024"."""
    token = extract_month_token(value)
    if not token:
        return None
    source = str(value)
    year = None
    long_year = re.search(r"(\d{4})", source)
    if long_year:
        year = parse_year_token(long_year.group(1))
    if year is None:
        short_year = re.search(r"(\d{2})(?!\d)", source)
        if short_year:
            year = parse_year_token(short_year.group(1))
    return MONTHS[token], year


def extract_quarter_details(value: Any) -> Optional[tuple[int, int]]:
    """
    Return (quarter, year) for labels like "Q3 2022", "Q2/23", "FY24 Q1".
    The year is looked up after the quarter first, then before it; 0 if absent.
    """
    if value is None:
        return None
    source = str(value).lower()
    match = re.search(r"q\s*([1-4])", source)
    if not match:
        return None
    quarter = int(match.group(1))

    after = source[match.end():]
    before = source[:match.start()]
    year_string = None
    after_year = re.search(r"'?(\d{2,4})", after)
    if after_year:
        year_string = after_year.group(1)
    else:
        before_year = re.search(r"(\d{2,4})'?[\s/_-]*$", before)
        if before_year:
            year_string = before_year.group(1)

    year = (parse_year_token(year_string) or 0) if year_string else 0
    return quarter, year
