"""
Total, subtotal and tax extraction.

The total is found in three stages:
1. Label patterns over the whole text, allowing any whitespace (including
   line breaks) between the label and the price
2. Line scan: a label line with a price further along the same line or on
   the next line
3. Largest positive price that is not in a blacklisted context (points,
   savings, change, vouchers, loyalty schemes...)
"""

import logging
import re
from decimal import Decimal
from typing import List, Optional, Sequence

from ..utils.candidates import FieldCandidate
from ..utils.money import find_prices, parse_money
from ..utils.patterns import PatternSpec
from ..utils.vocabulary import BLACKLIST_PATTERN

logger = logging.getLogger(__name__)

LABEL_PRICE = r'\s*[:=]?\s*(?:(?:GBP|USD|EUR|CAD|AUD)\s*)?(?P<price>[$£€¥]?\s?(?:\d{1,3}(?:,\d{3})+\.\d{2}|\d+[.,]\d{2}))(?!\d)'

TOTAL_PATTERNS = [
    PatternSpec(
        name='grand_total',
        pattern=r'\bgrand\s+total\b' + LABEL_PRICE,
        example='GRAND TOTAL £23.10',
        priority=1,
        score=0.95,
    ),
    PatternSpec(
        name='amount_due',
        pattern=r'\b(?:amount|balance|total)\s+(?:due|to\s+pay|payable|paid)\b' + LABEL_PRICE,
        example='Amount Due: $12.40',
        priority=2,
        score=0.9,
    ),
    PatternSpec(
        name='total',
        pattern=r'(?<![A-Za-z])(?<!sub\s)(?<!sub-)total\b' + LABEL_PRICE,
        example='TOTAL\n£12.50',
        notes='Excludes subtotal and sub-total',
        priority=3,
        score=0.85,
    ),
    PatternSpec(
        name='balance',
        pattern=r'\bbalance\b' + LABEL_PRICE,
        example='Balance 7.20',
        priority=4,
        score=0.8,
    ),
]

TOTAL_LABEL = re.compile(
    r'\bgrand\s+total\b|(?<![A-Za-z])(?<!sub\s)(?<!sub-)total\b|\bamount\s+due\b|\bbalance(?:\s+due)?\b',
    re.IGNORECASE,
)
# A zero after these labels means the bill is settled, not that it was free
SETTLED_LABEL = re.compile(
    r'\b(?:amount|balance|total)\s+(?:due|to\s+pay|payable|paid)\b|\bbalance\b',
    re.IGNORECASE,
)
SETTLED_PATTERNS = {'amount_due', 'balance'}
TAX_WORD = re.compile(r'\b(?:vat|tax|gst|hst)\b', re.IGNORECASE)
TAX_TOTAL = re.compile(r'\btotal\s+(?:vat|tax|gst|hst)\b|\b(?:vat|tax|gst|hst)\s+total\b', re.IGNORECASE)
TAX_INCLUSIVE = re.compile(r'\b(?:inc|incl|including|inclusive)\b\.?', re.IGNORECASE)

SUBTOTAL_PATTERN = PatternSpec(
    name='subtotal',
    pattern=r'\bsub[\s-]?total\b[^\n\d$£€¥]*' + r'(?P<price>[$£€¥]?\s?(?:\d{1,3}(?:,\d{3})+\.\d{2}|\d+[.,]\d{2}))(?!\d)',
    example='Subtotal: 11.20',
    score=0.9,
)


def _line_of(text: str, offset: int) -> str:
    start = text.rfind('\n', 0, offset) + 1
    end = text.find('\n', offset)
    return text[start:] if end == -1 else text[start:end]


def _label_total(text: str) -> Optional[FieldCandidate]:
    for spec in TOTAL_PATTERNS:
        found = None
        for match in spec.compiled.finditer(text):
            line = _line_of(text, match.start())
            if BLACKLIST_PATTERN.search(line) or TAX_TOTAL.search(line):
                continue
            value = parse_money(match.group('price'))
            if value is None or value < 0:
                continue
            if value == 0 and spec.name in SETTLED_PATTERNS:
                continue
            found = FieldCandidate(value, spec.score, spec.name, text.count('\n', 0, match.start()), match.group(0))
        if found:
            return found
    return None


def _line_scan_total(lines: Sequence[str]) -> Optional[FieldCandidate]:
    found = None
    for index, line in enumerate(lines):
        if not TOTAL_LABEL.search(line) or BLACKLIST_PATTERN.search(line) or TAX_TOTAL.search(line):
            continue
        label_end = TOTAL_LABEL.search(line).end()
        prices = [p for p in find_prices(line) if p.start >= label_end and p.value >= 0]
        if prices and prices[-1].value == 0 and SETTLED_LABEL.search(line):
            continue
        if prices:
            found = FieldCandidate(prices[-1].value, 0.75, 'label_line', index, line)
            continue
        if index + 1 < len(lines):
            following = lines[index + 1]
            if BLACKLIST_PATTERN.search(following):
                continue
            prices = [p for p in find_prices(following) if p.value >= 0]
            if prices:
                found = FieldCandidate(prices[0].value, 0.7, 'label_next_line', index + 1, following)
    return found


def is_blacklisted(lines: Sequence[str], index: int) -> bool:
    """
    True when a price on this line must not be taken as a total.

    A price-only line inherits the context of a preceding label line that
    carries no price of its own ("Points earned" / "150.00").
    """
    if BLACKLIST_PATTERN.search(lines[index]):
        return True
    if index > 0 and not re.search(r'[A-Za-z]{2,}', lines[index]):
        previous = lines[index - 1]
        return bool(BLACKLIST_PATTERN.search(previous)) and not find_prices(previous)
    return False


def _largest_price(lines: Sequence[str]) -> Optional[FieldCandidate]:
    best = None
    for index, line in enumerate(lines):
        if is_blacklisted(lines, index):
            continue
        for price in find_prices(line):
            if price.value > 0 and (best is None or price.value > best.value):
                best = FieldCandidate(price.value, 0.4, 'largest_price', index, line)
    return best


def extract_total(text: str, lines: Sequence[str]) -> Optional[FieldCandidate]:
    """
    Find the amount paid.

    Args:
        text: Full receipt text (label patterns may span lines)
        lines: The same text from split_lines()

    Returns:
        FieldCandidate with a non-negative Decimal, or None
    """
    for finder in (lambda: _label_total(text), lambda: _line_scan_total(lines), lambda: _largest_price(lines)):
        candidate = finder()
        if candidate is not None:
            logger.debug("Total found", extra={'total': candidate.describe()})
            return candidate
    return None


def extract_subtotal(lines: Sequence[str]) -> Optional[FieldCandidate]:
    for index, line in enumerate(lines):
        match = SUBTOTAL_PATTERN.compiled.search(line)
        if match:
            value = parse_money(match.group('price'))
            if value is not None and value >= 0:
                return FieldCandidate(value, SUBTOTAL_PATTERN.score, SUBTOTAL_PATTERN.name, index, line)
    return None


def extract_tax(lines: Sequence[str]) -> Optional[FieldCandidate]:
    """
    Sum the tax lines.

    "VAT @ 20% 1.67" yields 1.67. Lines that only state prices are tax
    inclusive, and VAT registration lines, carry no tax amount. A line
    labelled as a tax total is taken on its own.
    """
    taxes: List[Decimal] = []
    first_index = None
    for index, line in enumerate(lines):
        if not TAX_WORD.search(line) or TAX_INCLUSIVE.search(line) or BLACKLIST_PATTERN.search(line):
            continue
        tax_end = TAX_WORD.search(line).end()
        prices = [p for p in find_prices(line) if p.start >= tax_end and p.value >= 0]
        if not prices:
            continue
        if TOTAL_LABEL.search(line):
            return FieldCandidate(prices[-1].value, 0.9, 'tax_total_line', index, line)
        taxes.append(prices[-1].value)
        if first_index is None:
            first_index = index

    if not taxes:
        return None
    logger.debug("Found %d tax line(s), total: %s", len(taxes), sum(taxes))
    return FieldCandidate(sum(taxes, Decimal('0')), 0.85, f'{len(taxes)}_tax_lines', first_index)
