"""
Scoring functions for merchant and location candidate lines.

Each function returns a score from 0.0 (worst) to 1.0 (best). Scoring is
purely structural; known-merchant vocabulary only adds a bonus.
"""

import re

from .lines import alpha_ratio, has_price, is_promotional, looks_like_address, looks_like_phone
from .vocabulary import (
    CITY_PATTERN,
    MERCHANT_KEYWORD_PATTERN,
    RECEIPT_KEYWORD_PATTERN,
    STREET_PATTERN,
    find_known_merchant,
    has_postcode,
)

__all__ = ['score_merchant_line', 'score_location_line', 'EARLY_LINE_BOOST']


# Merchant names sit at the very top of a receipt
EARLY_LINE_BOOST = {
    0: 0.25,
    1: 0.15,
    2: 0.10,
}


def score_merchant_line(line: str, index: int) -> float:
    """
    Score a top-of-receipt line as a merchant name.

    Scoring factors (weights):
    - Base: 0.4
    - Early-line boost: +0.25 (line 0), +0.15 (line 1), +0.10 (line 2)
    - Line position penalty: -0.03 per line after line 2
    - Store-name casing (ALL CAPS or Title Case): +0.1
    - Short clean alphabetic line (1-4 words, >80% letters): +0.15
    - Business keyword (Store, Cafe, Ltd...): +0.1
    - Known merchant vocabulary: +0.2
    - Promotional / address / phone / price-bearing: -0.5
    - Receipt boilerplate ("Receipt", "VAT Reg"): -0.4
    - Digits in the line: -0.15
    - Long line (> 40 chars or > 6 words): -0.2

    Args:
        line: OCR line text
        index: Line position in the document

    Returns:
        Score from 0.0 to 1.0
    """
    score = 0.4

    if index in EARLY_LINE_BOOST:
        score += EARLY_LINE_BOOST[index]
    elif index > 2:
        score -= min(0.3, (index - 2) * 0.03)

    words = line.split()
    letters_only = re.sub(r'[^A-Za-z ]', '', line).strip()

    if letters_only and (letters_only.isupper() or letters_only.istitle()):
        score += 0.1

    if 1 <= len(words) <= 4 and alpha_ratio(line) > 0.8:
        score += 0.15

    if MERCHANT_KEYWORD_PATTERN.search(line):
        score += 0.1

    if find_known_merchant(line):
        score += 0.2

    if has_price(line) or looks_like_address(line) or looks_like_phone(line) or is_promotional(line):
        score -= 0.5

    if RECEIPT_KEYWORD_PATTERN.search(line):
        score -= 0.4

    if re.search(r'\d', line):
        score -= 0.15

    if len(line) > 40 or len(words) > 6:
        score -= 0.2

    return max(0.0, min(1.0, score))


def score_location_line(line: str) -> float:
    """
    Score a line as a store address.

    - Postcode (UK / US state+zip / Canadian): +0.5
    - Street keyword: +0.35 (+0.1 more with a house number)
    - Known city: +0.3
    - Price-bearing or promotional: 0.0

    Returns:
        Score from 0.0 to 1.0
    """
    if has_price(line) or is_promotional(line):
        return 0.0

    score = 0.0
    if has_postcode(line):
        score += 0.5
    if STREET_PATTERN.search(line):
        score += 0.35
        if re.match(r'^\s*\d+[A-Za-z]?\b', line):
            score += 0.1
    if CITY_PATTERN.search(line):
        score += 0.3

    return max(0.0, min(1.0, score))
