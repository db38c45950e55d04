"""
Money tokens on receipts: parsing, price detection, formatting, currency.

Amounts come in several shapes:
- US: 1,234.56
- European: 1.234,56 or 1 234,56
- Negative: -£1.50, (£1.50) or OCR-style trailing minus 1.50-
- No decimals: 1234 reads as 1234.00
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import List, NamedTuple, Optional
import re


class MoneyFormat(Enum):
    """Money format locale hints."""
    US = "US"  # 1,234.56
    EUROPEAN = "EUROPEAN"  # 1.234,56 or 1 234,56
    AUTO = "AUTO"  # Auto-detect based on patterns


CURRENCY_SYMBOLS = {
    '£': 'GBP',
    '€': 'EUR',
    '$': 'USD',
    '¥': 'JPY',
}

CURRENCY_CODES = ('GBP', 'EUR', 'USD', 'CAD', 'AUD', 'NZD', 'CHF', 'JPY')

# Price token as it appears on a receipt line. Always two decimals; the
# lookarounds keep weights (0.404), dates (12.10.2023) and long numbers out.
PRICE_TOKEN = re.compile(
    r'(?P<neg>(?<![\w-])-)?(?P<symbol>[$£€¥]\s?)?'
    r'(?<![\d.,])(?P<amount>\d{1,3}(?:,\d{3})+\.\d{2}|\d+[.,]\d{2})(?![\d])(?![.,]\d)'
    r'(?P<trailing_neg>-)?'
)

# Simple token used by the receipt-likeness validator.
SIMPLE_PRICE = re.compile(r'[$£€]?\d+\.\d{2}')

CURRENCY_SYMBOL_PATTERN = re.compile(r'[$£€¥]')

TWO_PLACES = Decimal('0.01')


class PriceToken(NamedTuple):
    """A price found in a line of text."""
    value: Decimal
    start: int
    end: int
    symbol: Optional[str]


def parse_money(
    amount_str: str,
    format_hint: Optional[MoneyFormat] = None,
    allow_negative: bool = False
) -> Optional[Decimal]:
    """
    Turn a price string into a Decimal.

    Currency symbols and three-letter codes are stripped first. Negative
    forms (leading or trailing minus, parentheses) give None unless
    ``allow_negative`` is set. Without a ``format_hint`` the separators
    decide between US and European grouping.

    Returns None for anything unparseable or above a million.

    Examples:
        >>> parse_money("$1,234.56")
        Decimal('1234.56')
        >>> parse_money("1.234,56", format_hint=MoneyFormat.EUROPEAN)
        Decimal('1234.56')
        >>> parse_money("(£12.34)", allow_negative=True)
        Decimal('-12.34')
    """
    if not amount_str or not isinstance(amount_str, str):
        return None

    negative = False
    cleaned = amount_str.strip()

    # Parentheses notation for negative amounts
    if cleaned.startswith('(') and cleaned.endswith(')'):
        if not allow_negative:
            return None
        negative = True
        cleaned = cleaned[1:-1].strip()

    if cleaned.startswith('-') or cleaned.endswith('-'):
        if not allow_negative:
            return None
        negative = True
        cleaned = cleaned.strip('-').strip()

    # Strip currency symbols and codes
    cleaned = re.sub(r'[$£€¥]\s*|\b[A-Z]{3}\b\s*', '', cleaned, flags=re.IGNORECASE)
    cleaned = cleaned.strip()

    if not cleaned:
        return None

    money_format = format_hint or MoneyFormat.AUTO
    if money_format == MoneyFormat.AUTO:
        money_format = _detect_money_format(cleaned)

    parse = _parse_european_format if money_format == MoneyFormat.EUROPEAN else _parse_us_format
    try:
        value = parse(cleaned)
    except (InvalidOperation, ValueError):
        return None

    if value is None or not value.is_finite() or abs(value) > 1_000_000:
        return None
    return -value if negative else value


def _detect_money_format(amount_str: str) -> MoneyFormat:
    """European when the string ends in ,XX or a dot precedes the last comma."""
    if re.search(r',\d{2}$', amount_str):
        return MoneyFormat.EUROPEAN

    if '.' in amount_str and ',' in amount_str:
        if amount_str.index('.') < amount_str.rindex(','):
            return MoneyFormat.EUROPEAN

    return MoneyFormat.US


def _parse_us_format(amount_str: str) -> Optional[Decimal]:
    """Parse US format: comma thousands, dot decimals."""
    cleaned = amount_str.replace(',', '').replace(' ', '')
    try:
        return Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return None


def _parse_european_format(amount_str: str) -> Optional[Decimal]:
    """Parse European format: dot or space thousands, comma decimals."""
    cleaned = amount_str.replace('.', '').replace(' ', '').replace(',', '.')
    try:
        return Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return None


def find_prices(line: str) -> List[PriceToken]:
    """
    Find every price token in a single line.

    Negative values are returned for leading or trailing minus signs, which
    is how receipts print discounts and refunds.
    """
    tokens = []
    for match in PRICE_TOKEN.finditer(line):
        value = parse_money(match.group('amount'))
        if value is None:
            continue
        if match.group('neg') or match.group('trailing_neg'):
            value = -value
        symbol = match.group('symbol')
        tokens.append(PriceToken(
            value, match.start(), match.end(), symbol.strip() if symbol else None
        ))
    return tokens


def format_amount(amount: Optional[Decimal]) -> Optional[str]:
    """
    Format a Decimal as a two-decimal string.

    Examples:
        >>> format_amount(Decimal('3.5'))
        '3.50'
        >>> format_amount(Decimal('0.39996'))
        '0.40'
    """
    if amount is None:
        return None
    return str(amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def detect_currency(text: str, near: Optional[int] = None, window: int = 12) -> Optional[str]:
    """
    Detect a currency from a symbol or three-letter code.

    When ``near`` is given, only the ``window`` characters on either side of
    that offset are inspected, so the currency adjacent to a matched amount
    wins over one mentioned elsewhere.
    """
    if not text:
        return None
    if near is not None:
        text = text[max(0, near - window):near + window]

    upper = text.upper()
    for code in CURRENCY_CODES:
        if re.search(rf'\b{code}\b', upper):
            return code
    if re.search(r'\bC\s?\$|\bCA\s?\$', text):
        return 'CAD'
    for symbol, code in CURRENCY_SYMBOLS.items():
        if symbol in text:
            return code
    return None
