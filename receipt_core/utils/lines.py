"""
Line-level helpers for OCR text.

The extractors all operate on the tuple returned by split_lines(); these
predicates classify individual lines.
"""

import re
from typing import Tuple

from .money import PRICE_TOKEN, find_prices
from .vocabulary import (
    CITY_PATTERN,
    PROMO_PATTERN,
    STREET_PATTERN,
    has_postcode,
)


SPACED_LETTERS = re.compile(r'(?<![\w])(?:[A-Za-z] ){3,}[A-Za-z](?![\w])')
TIME_TOKEN = re.compile(
    r'\b(?P<hour>[01]?\d|2[0-3]):(?P<minute>[0-5]\d)(?::(?P<second>[0-5]\d))?\s*(?P<ampm>[AaPp][Mm])?\b'
)
URL_PATTERN = re.compile(r'(?:https?://|www\.|\.com\b|\.co\.uk\b|\.org\b|\.net\b|@\w)', re.IGNORECASE)
PHONE_PATTERN = re.compile(
    r'(?:\b(?:tel|phone|telephone|fax)\b|\+?\d[\d ()-]{8,}\d)', re.IGNORECASE
)
BARCODE_PATTERN = re.compile(r'\b\d{8,}\b')
CURRENCY_CODE_WORDS = re.compile(r'\b(?:GBP|EUR|USD|CAD|AUD)\b', re.IGNORECASE)


def normalize_ocr_spaces(text: str) -> str:
    """
    Collapse letter-spaced OCR runs, line by line.

    "T E S C O  EXPRESS" → "TESCO  EXPRESS". Only runs of four or more
    single letters are joined so "2 x 1.50" and "M & S" survive untouched.
    """
    return '\n'.join(
        SPACED_LETTERS.sub(lambda m: m.group(0).replace(' ', ''), line)
        for line in text.splitlines()
    )


def split_lines(text: str) -> Tuple[str, ...]:
    """Split OCR text into stripped, whitespace-collapsed, non-empty lines."""
    if not text:
        return ()
    lines = (re.sub(r'[ \t]+', ' ', line).strip() for line in text.splitlines())
    return tuple(line for line in lines if line)


def letter_count(line: str) -> int:
    return sum(1 for c in line if c.isalpha())


def alpha_ratio(line: str) -> float:
    chars = [c for c in line if not c.isspace()]
    if not chars:
        return 0.0
    return letter_count(line) / len(chars)


def is_logo_artifact(line: str) -> bool:
    """
    Detect lines produced by OCR reading a graphical logo.

    Such lines have a very high share of special characters, or mostly
    single-letter tokens ("I l ' ~ T").
    """
    chars = [c for c in line if not c.isspace()]
    if len(chars) < 2:
        return True
    special = sum(1 for c in chars if not c.isalnum() and c not in "&'-.,")
    if special / len(chars) > 0.35:
        return True
    tokens = line.split()
    if len(tokens) >= 3:
        single = sum(1 for t in tokens if len(t) == 1 and t.isalpha() and t not in ('&', 'x', 'X'))
        if single / len(tokens) > 0.5:
            return True
    return False


def has_price(line: str) -> bool:
    return bool(find_prices(line))


def is_price_only(line: str) -> bool:
    """True when the line carries a price and no word of two or more letters."""
    if not has_price(line):
        return False
    remainder = CURRENCY_CODE_WORDS.sub(' ', PRICE_TOKEN.sub(' ', line))
    return not re.search(r'[A-Za-z]{2,}', remainder)


def has_time(line: str) -> bool:
    return bool(TIME_TOKEN.search(line))


def looks_like_url(line: str) -> bool:
    return bool(URL_PATTERN.search(line))


def looks_like_phone(line: str) -> bool:
    return bool(PHONE_PATTERN.search(line))


def looks_like_address(line: str) -> bool:
    """Postcode, a numbered street, or a known city."""
    if has_postcode(line):
        return True
    if STREET_PATTERN.search(line) and re.search(r'\d', line):
        return True
    return bool(CITY_PATTERN.search(line))


def is_promotional(line: str) -> bool:
    return bool(PROMO_PATTERN.search(line)) or looks_like_url(line)
