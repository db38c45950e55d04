"""
Payment method extraction.

Card numbers are only ever used to infer a brand; the digits themselves
never leave this module.
"""

import logging
import re
from typing import Optional, Sequence

from ..utils.candidates import FieldCandidate
from ..utils.money import find_prices

logger = logging.getLogger(__name__)

GIFT_CARD = re.compile(r'\bgift\s*card\b', re.IGNORECASE)
MASKED_CARD = re.compile(r'(?:[*xX#•]{2,}[\s-]*){1,4}\d{4}\b|\b\d{4}[\s-]*(?:[*xX#•]{4}[\s-]*){2,3}\d{4}\b')
CASH = re.compile(r'\bcash\b', re.IGNORECASE)
DEBIT = re.compile(r'\b(?:debit(?:\s*card)?|card\s*\(?\s*debit\s*\)?)\b', re.IGNORECASE)
CREDIT = re.compile(r'\b(?:credit(?:\s*card)?|card\s*\(?\s*credit\s*\)?)\b', re.IGNORECASE)
CHANGE = re.compile(r'\bchange(?:\s+due)?\b', re.IGNORECASE)

CARD_BRANDS = [
    ('Visa', re.compile(r'\bvisa\b', re.IGNORECASE)),
    ('Mastercard', re.compile(r'\bmaster\s*card\b|\bmc\b', re.IGNORECASE)),
    ('Amex', re.compile(r'\bamex\b|\bamerican\s+express\b', re.IGNORECASE)),
    ('Maestro', re.compile(r'\bmaestro\b', re.IGNORECASE)),
]

BRAND_SEARCH_RADIUS = 2


def _brand(text: str) -> Optional[str]:
    for name, pattern in CARD_BRANDS:
        if pattern.search(text):
            return name
    return None


def _masked_card(lines: Sequence[str]) -> Optional[FieldCandidate]:
    for index, line in enumerate(lines):
        if not MASKED_CARD.search(line):
            continue
        nearby = [line] + [
            lines[i] for i in range(max(0, index - BRAND_SEARCH_RADIUS), min(len(lines), index + BRAND_SEARCH_RADIUS + 1))
            if i != index
        ]
        brand = None
        for text in nearby:
            brand = _brand(text)
            if brand:
                break
        return FieldCandidate(brand or 'Card', 0.9 if brand else 0.7, 'masked_card', index)
    return None


def _literal(lines: Sequence[str]) -> Optional[FieldCandidate]:
    for index, line in enumerate(lines):
        if DEBIT.search(line):
            return FieldCandidate('Debit Card', 0.8, 'debit_literal', index)
        if CREDIT.search(line):
            return FieldCandidate('Credit Card', 0.8, 'credit_literal', index)
        if CASH.search(line) and not re.search(r'cash\s*back', line, re.IGNORECASE):
            return FieldCandidate('Cash', 0.8, 'cash_literal', index)
        brand = _brand(line)
        if brand:
            return FieldCandidate(brand, 0.75, 'brand_label', index)
    return None


def _change_given(lines: Sequence[str]) -> Optional[FieldCandidate]:
    for index, line in enumerate(lines):
        if not CHANGE.search(line):
            continue
        prices = find_prices(line)
        if not prices and index + 1 < len(lines):
            prices = find_prices(lines[index + 1])
        if any(price.value > 0 for price in prices):
            return FieldCandidate('Cash', 0.6, 'change_line', index)
    return None


def extract_payment_method(lines: Sequence[str]) -> Optional[FieldCandidate]:
    """
    Detect how the receipt was paid.

    Order: gift card label, masked card number (brand only), explicit
    cash/debit/credit literals, then a nonzero change line implying cash.
    """
    for index, line in enumerate(lines):
        if GIFT_CARD.search(line):
            return FieldCandidate('Gift Card', 0.9, 'gift_card', index)

    for finder in (_masked_card, _literal, _change_given):
        candidate = finder(lines)
        if candidate:
            logger.debug("Payment method found", extra={'payment': candidate.describe()})
            return candidate
    return None
