"""
Receipt number, category and currency extraction.
"""

import logging
import re
from typing import Iterable, Optional, Sequence

from ..utils.candidates import FieldCandidate
from ..utils.money import detect_currency
from ..utils.patterns import PatternSpec

logger = logging.getLogger(__name__)

RECEIPT_NUMBER_PATTERNS = [
    PatternSpec(
        name='receipt_no',
        pattern=r'\b(?:receipt|rcpt)\s*(?:no\.?|number|num|#)?\s*[:#]?\s*(?P<number>[A-Z0-9][A-Z0-9-]{3,})\b',
        example='Receipt No: 4521-778',
        priority=1,
        score=0.9,
    ),
    PatternSpec(
        name='invoice_no',
        pattern=r'\binvoice\s*(?:no\.?|number|num|#)?\s*[:#]?\s*(?P<number>[A-Z0-9][A-Z0-9-]{3,})\b',
        example='Invoice #INV-2041',
        priority=2,
        score=0.85,
    ),
    PatternSpec(
        name='order_no',
        pattern=r'\border\s*(?:no\.?|number|num|#|id)\s*[:#]?\s*(?P<number>[A-Z0-9][A-Z0-9-]{3,})\b',
        example='Order #112-3456789',
        priority=3,
        score=0.8,
    ),
    PatternSpec(
        name='transaction_no',
        pattern=r'\b(?:transaction|trans|txn|ref(?:erence)?)\s*(?:no\.?|number|num|#|id)?\s*[:#]?\s*(?P<number>[A-Z0-9][A-Z0-9-]{3,})\b',
        example='Trans: 009812',
        priority=4,
        score=0.7,
    ),
]

# Checked in order; the first category with a keyword hit wins
CATEGORY_KEYWORDS = [
    ('Groceries', (
        'tesco', 'sainsbury', 'asda', 'morrisons', 'aldi', 'lidl', 'waitrose', 'co-op', 'coop',
        'iceland', 'grocery', 'groceries', 'supermarket', 'superstore', 'whole foods', 'kroger',
        'safeway', 'trader joe', 'milk', 'bread', 'eggs', 'bananas', 'vegetables', 'produce',
    )),
    ('Dining', (
        'starbucks', 'costa', 'pret', 'greggs', 'mcdonald', 'burger', 'kfc', 'subway', 'nando',
        'restaurant', 'cafe', 'café', 'coffee', 'latte', 'cappuccino', 'pizza', 'bar', 'pub',
        'grill', 'diner', 'bistro', 'kitchen', 'takeaway', 'deliveroo', 'just eat', 'gratuity', 'tip',
    )),
    ('Transport', (
        'shell', 'esso', 'texaco', 'bp', 'fuel', 'petrol', 'diesel', 'unleaded', 'parking', 'uber',
        'taxi', 'train', 'rail', 'bus', 'tfl', 'oyster', 'toll',
    )),
    ('Healthcare', (
        'pharmacy', 'chemist', 'boots', 'superdrug', 'walgreens', 'cvs', 'prescription', 'clinic',
        'dental', 'optician', 'medical',
    )),
    ('Electronics', (
        'currys', 'best buy', 'apple store', 'electronics', 'laptop', 'phone case', 'charger',
        'headphones', 'hdmi', 'usb',
    )),
    ('Entertainment', (
        'cinema', 'odeon', 'vue', 'theatre', 'theater', 'tickets', 'concert', 'museum', 'bowling',
        'netflix', 'spotify',
    )),
    ('Travel', (
        'hotel', 'airline', 'airways', 'flight', 'airport', 'booking', 'hostel', 'airbnb',
    )),
    ('Utilities', (
        'electricity', 'gas bill', 'water bill', 'broadband', 'internet', 'utility', 'energy',
    )),
    ('Shopping', (
        'primark', 'argos', 'ikea', 'john lewis', 'h&m', 'zara', 'uniqlo', 'amazon', 'walmart',
        'target', 'costco', 'shop', 'store', 'boutique', 'clothing', 'fashion',
    )),
]

_CATEGORY_PATTERNS = [
    (category, re.compile(
        r'(?<![\w])(?:' + '|'.join(re.escape(word) for word in words) + r')(?![\w])', re.IGNORECASE
    ))
    for category, words in CATEGORY_KEYWORDS
]


def extract_receipt_number(lines: Sequence[str]) -> Optional[FieldCandidate]:
    for spec in RECEIPT_NUMBER_PATTERNS:
        for index, line in enumerate(lines):
            match = spec.compiled.search(line)
            # Require a digit so "Receipt Copy" is not taken as a number
            if match and re.search(r'\d', match.group('number')):
                return FieldCandidate(match.group('number').upper(), spec.score, spec.name, index, line)
    return None


def infer_category(merchant: Optional[str], item_names: Iterable[str] = ()) -> Optional[str]:
    """
    Guess a spending category from the merchant and item names.

    Merchant keywords are checked before item keywords, so a coffee bought
    at Tesco still files under Groceries.
    """
    for text in [merchant or ''] + [' '.join(item_names)]:
        if not text.strip():
            continue
        for category, pattern in _CATEGORY_PATTERNS:
            if pattern.search(text):
                return category
    return None


def extract_currency(text: str) -> Optional[FieldCandidate]:
    currency = detect_currency(text)
    if currency:
        return FieldCandidate(currency, 0.8, 'currency_marker')
    return None
