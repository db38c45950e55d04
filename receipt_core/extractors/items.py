"""
Line item extraction.

The primary pass walks the lines once, recording every line it turns into
(part of) an item in a consumed set, and recognises four shapes:

    (a) Bananas          1.20        name ... price
    (b) Tomatoes
        0.404 kg @ £0.99/kg          weight @ unit price
        £0.40
    (c) Milk 2 x 1.50    3.00        quantity x unit price
    (d) Bread                        name block followed by a price block
        Butter
        1.10
        2.35

Price-only lines the primary pass could not place are handed to a
secondary pass, which attaches each to the nearest qualifying name line
above it.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Sequence, Set

from ..utils.lines import (
    BARCODE_PATTERN,
    has_time,
    is_logo_artifact,
    is_price_only,
    is_promotional,
    letter_count,
    looks_like_address,
    looks_like_phone,
    looks_like_url,
)
from ..utils.money import PRICE_TOKEN, find_prices
from ..utils.vocabulary import BLACKLIST_PATTERN, DISCOUNT_PATTERN, RECEIPT_KEYWORD_PATTERN
from .dates import DATE_TIERS
from .totals import SUBTOTAL_PATTERN, TAX_WORD, TOTAL_LABEL, is_blacklisted

logger = logging.getLogger(__name__)

WEIGHT_PATTERN = re.compile(
    r'(?P<weight>\d+(?:[.,]\d+)?)\s*(?P<unit>kg|g|lbs?|oz)\s*@\s*[$£€]?\s?(?P<unit_price>\d+[.,]\d{2})'
    r'\s*/\s*(?P<per>kg|g|lbs?|oz)\b',
    re.IGNORECASE,
)
QUANTITY_PATTERN = re.compile(
    r'(?<![\d.,])(?P<qty>\d{1,3})\s*[xX×]\s*[$£€]?\s?(?P<unit_price>\d+[.,]\d{2})(?!\d)'
)
PAYMENT_WORDS = re.compile(
    r'\b(?:cash|card|visa|mastercard|maestro|amex|debit|credit|contactless|chip|pin|auth(?:code)?|'
    r'approved|tendered|change|payment|paid|merchant\s+id|terminal|aid)\b',
    re.IGNORECASE,
)
ITEM_COUNT = re.compile(r'\b\d+\s+items?\b|\bitems?\s*(?:sold|count)?\s*:?\s*\d+\b|\bno\.?\s+of\s+items\b', re.IGNORECASE)
NAME_WORD = re.compile(r'[A-Za-z]{3,}')

# Conversion to kilograms for weight x unit price products
UNIT_TO_KG = {
    'kg': Decimal('1'),
    'g': Decimal('0.001'),
    'lb': Decimal('0.45359237'),
    'lbs': Decimal('0.45359237'),
    'oz': Decimal('0.028349523125'),
}

NAME_LOOKBACK = 3
WEIGHT_NAME_LOOKBACK = 2
TWO_PLACES = Decimal('0.01')


@dataclass(frozen=True)
class ItemCandidate:
    name: str
    price: Decimal
    quantity: Optional[float]
    line_index: int
    source: str


def clean_item_name(text: str) -> str:
    """Strip item codes, stray currency marks and separators from a name."""
    text = re.sub(r'[$£€¥]', ' ', text)
    text = re.sub(r'^\s*(?:\d{4,}\s+|[#*]+\s*)', '', text)
    text = re.sub(r'\s+(?:GBP|USD|EUR)\s*$', '', text, flags=re.IGNORECASE)
    text = re.sub(r'\s+', ' ', text)
    return text.strip(' .:;,*-_=|@')


def _qualifies_as_name(text: str) -> bool:
    return letter_count(text) >= 2 and bool(NAME_WORD.search(text))


def _is_date_line(line: str) -> bool:
    return has_time(line) or any(spec.compiled.search(line) for spec in DATE_TIERS)


def _is_discount(name: str, price: Decimal) -> bool:
    return price < 0 and bool(DISCOUNT_PATTERN.search(name))


def _is_noise(line: str) -> bool:
    """
    Lines that can never contribute to an item.

    Discount lines ("Clubcard Price -0.50") are not noise even though they
    mention loyalty schemes; they are only valid with a negative price.
    """
    prices = find_prices(line)
    if prices and prices[-1].value < 0 and DISCOUNT_PATTERN.search(line):
        return bool(TOTAL_LABEL.search(line) or SUBTOTAL_PATTERN.compiled.search(line))
    return bool(
        TOTAL_LABEL.search(line)
        or SUBTOTAL_PATTERN.compiled.search(line)
        or TAX_WORD.search(line)
        or PAYMENT_WORDS.search(line)
        or BLACKLIST_PATTERN.search(line)
        or RECEIPT_KEYWORD_PATTERN.search(line)
        or ITEM_COUNT.search(line)
        or BARCODE_PATTERN.search(line)
        or looks_like_phone(line)
        or looks_like_url(line)
        or looks_like_address(PRICE_TOKEN.sub(' ', line))
        or is_promotional(line)
        or _is_date_line(line)
        or is_logo_artifact(line)
    )


class _ItemScanner:
    """One scan over the receipt lines; holds the consumed-index set."""

    def __init__(self, lines: Sequence[str], exclude: Iterable[int], total: Optional[Decimal]):
        self.lines = lines
        self.exclude: Set[int] = set(exclude)
        self.total = total
        self.consumed: Set[int] = set()
        self.skipped_prices: List[int] = []
        self.items: List[ItemCandidate] = []

    def available(self, index: int) -> bool:
        return 0 <= index < len(self.lines) and index not in self.consumed and index not in self.exclude

    def is_name_line(self, index: int) -> bool:
        if not self.available(index):
            return False
        line = self.lines[index]
        return not find_prices(line) and _qualifies_as_name(line) and not _is_noise(line)

    def add(self, name: str, price: Decimal, quantity: Optional[float], index: int, source: str, used: Iterable[int]):
        name = clean_item_name(name)
        if not name or price == 0:
            return False
        if price < 0 and not _is_discount(name, price):
            return False
        self.items.append(ItemCandidate(name, price, quantity, index, source))
        self.consumed.update(used)
        return True

    def preceding_name(self, index: int, lookback: int) -> Optional[int]:
        for j in range(index - 1, max(-1, index - lookback - 1), -1):
            if self.is_name_line(j):
                return j
            if not self.available(j) or find_prices(self.lines[j]) or _is_noise(self.lines[j]):
                return None
        return None

    def next_price_only(self, index: int) -> Optional[Decimal]:
        nxt = index + 1
        if self.available(nxt) and is_price_only(self.lines[nxt]):
            return find_prices(self.lines[nxt])[-1].value
        return None

    # Shapes

    def weighted(self, index: int, match: re.Match) -> None:
        line = self.lines[index]
        used = {index}
        name = line[:match.start()]
        if not _qualifies_as_name(name):
            name_index = self.preceding_name(index, WEIGHT_NAME_LOOKBACK)
            if name_index is None:
                return
            name = self.lines[name_index]
            used.add(name_index)

        weight = Decimal(match.group('weight').replace(',', '.'))
        trailing = [p for p in find_prices(line) if p.start >= match.end()]
        following = self.next_price_only(index)
        if trailing:
            price = trailing[-1].value
        elif following is not None:
            price = following
            used.add(index + 1)
        else:
            unit_price = Decimal(match.group('unit_price').replace(',', '.'))
            weight_kg = weight * UNIT_TO_KG[match.group('unit').lower()]
            per_kg = UNIT_TO_KG[match.group('per').lower()]
            price = (weight_kg / per_kg * unit_price).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

        self.add(name, price, float(weight), index, 'weighted', used)

    def quantity(self, index: int, match: re.Match) -> None:
        line = self.lines[index]
        used = {index}
        qty = int(match.group('qty'))
        unit_price = Decimal(match.group('unit_price').replace(',', '.'))
        product = (unit_price * qty).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

        name = line[:match.start()]
        if not _qualifies_as_name(name):
            name_index = self.preceding_name(index, WEIGHT_NAME_LOOKBACK)
            if name_index is None:
                self._attach_quantity(qty, product, index)
                return
            name = self.lines[name_index]
            used.add(name_index)

        trailing = [p for p in find_prices(line) if p.start >= match.end()]
        following = self.next_price_only(index)
        if trailing:
            price = trailing[-1].value
        elif following is not None and abs(following - product) <= TWO_PLACES:
            price = following
            used.add(index + 1)
        else:
            price = product

        self.add(name, price, float(qty), index, 'quantity', used)

    def _attach_quantity(self, qty: int, product: Decimal, index: int) -> None:
        # "MILK 3.00" followed by "2 x 1.50": the quantity belongs to the item above
        if self.items and self.items[-1].line_index == index - 1 and self.items[-1].price == product:
            previous = self.items.pop()
            self.items.append(ItemCandidate(previous.name, previous.price, float(qty), previous.line_index, previous.source))
            self.consumed.add(index)

    def name_price(self, index: int) -> bool:
        line = self.lines[index]
        prices = find_prices(line)
        name = line[:prices[0].start]
        if not _qualifies_as_name(name):
            return False
        return self.add(name, prices[-1].value, None, index, 'name_price', {index})

    def block(self, index: int) -> Optional[int]:
        """Pair a run of name lines with the run of price lines below it."""
        names = []
        j = index
        while self.is_name_line(j):
            names.append(j)
            j += 1
        prices = []
        while self.available(j) and is_price_only(self.lines[j]):
            prices.append(j)
            j += 1
        if len(names) < 2 or len(prices) < 2:
            return None

        values = []
        for p in prices:
            value = find_prices(self.lines[p])[-1].value
            if value == 0 or (self.total is not None and value == self.total):
                continue
            values.append(value)
        if len(values) < 2:
            return None

        for name_index, value in zip(names, values):
            self.add(self.lines[name_index], value, None, name_index, 'block', {name_index})
        self.consumed.update(names)
        self.consumed.update(prices)
        return j

    # Passes

    def primary(self) -> None:
        index = 0
        while index < len(self.lines):
            if not self.available(index):
                index += 1
                continue
            line = self.lines[index]

            if self.items and TOTAL_LABEL.search(line) and not SUBTOTAL_PATTERN.compiled.search(line):
                break

            weight = WEIGHT_PATTERN.search(line)
            if weight:
                self.weighted(index, weight)
                index += 1
                continue

            quantity = QUANTITY_PATTERN.search(line)
            if quantity and not _is_noise(line):
                self.quantity(index, quantity)
                index += 1
                continue

            if _is_noise(line):
                index += 1
                continue

            if is_price_only(line):
                self.skipped_prices.append(index)
            elif find_prices(line):
                self.name_price(index)
            elif self.is_name_line(index):
                end = self.block(index)
                if end is not None:
                    index = end
                    continue
            index += 1

    def secondary(self) -> None:
        for index in self.skipped_prices:
            if not self.available(index) or is_blacklisted(self.lines, index):
                continue
            price = find_prices(self.lines[index])[-1].value
            if price == 0 or (self.total is not None and price == self.total):
                continue
            name_index = self.preceding_name(index, NAME_LOOKBACK)
            if name_index is None:
                continue
            name = self.lines[name_index]
            if looks_like_address(name) or looks_like_phone(name) or looks_like_url(name):
                continue
            self.add(name, price, None, name_index, 'secondary', {name_index, index})


def extract_items(
    lines: Sequence[str],
    exclude: Iterable[int] = (),
    total: Optional[Decimal] = None,
) -> List[ItemCandidate]:
    """
    Extract line items.

    Args:
        lines: Receipt lines from split_lines()
        exclude: Line indices already used for the merchant or location
        total: Extracted total, used to drop total-equal prices from blocks

    Returns:
        Items in receipt order; prices are never zero and are negative only
        for discount lines
    """
    scanner = _ItemScanner(lines, exclude, total)
    scanner.primary()
    scanner.secondary()
    items = sorted(scanner.items, key=lambda item: item.line_index)
    logger.debug(
        "Extracted %d item(s)", len(items),
        extra={'item_sources': [item.source for item in items], 'skipped_prices': len(scanner.skipped_prices)},
    )
    return items
