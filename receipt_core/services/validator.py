"""
Receipt-likeness validation.

Decides whether recognized text plausibly is a purchase receipt before the
field parser runs. Any one of three tiers is sufficient:

- strong: a total-style label and at least one price
- medium: at least two prices and a merchant/store keyword
- weak:   a currency symbol, at least one price, and enough text
          (>= 4 non-empty lines and >= 40 characters) to rule out a stray number
"""

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from ..exceptions import NotAReceiptError
from ..extractors.dates import DATE_TIERS
from ..utils.lines import TIME_TOKEN, split_lines
from ..utils.money import CURRENCY_SYMBOL_PATTERN, SIMPLE_PRICE
from ..utils.vocabulary import MERCHANT_KEYWORD_PATTERN, find_known_merchant

logger = logging.getLogger(__name__)

TOTAL_STYLE_LABEL = re.compile(
    r'\b(?:sub[\s-]?total|total|vat|balance(?:\s+due)?|amount\s+due|amount\s+payable|grand\s+total)\b',
    re.IGNORECASE,
)

WEAK_MIN_LINES = 4
WEAK_MIN_CHARS = 40


@dataclass
class ValidationReport:
    """Signals computed from the text and the verdict derived from them."""
    is_receipt: bool
    score: float
    tier: Optional[str]
    price_count: int
    has_currency_symbol: bool
    has_total_label: bool
    has_date_or_time: bool
    has_merchant_keyword: bool
    line_count: int
    char_count: int

    def signals(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ('is_receipt', 'score', 'tier'):
            data.pop(key)
        return data


class ReceiptValidator:
    """Heuristic gate between OCR and field parsing."""

    def validate(self, text: str) -> ValidationReport:
        text = text or ''
        lines = split_lines(text)
        price_count = len(SIMPLE_PRICE.findall(text))
        has_symbol = bool(CURRENCY_SYMBOL_PATTERN.search(text))
        has_label = bool(TOTAL_STYLE_LABEL.search(text))
        has_date = bool(TIME_TOKEN.search(text)) or any(spec.compiled.search(text) for spec in DATE_TIERS)
        has_keyword = bool(MERCHANT_KEYWORD_PATTERN.search(text)) or find_known_merchant(text) is not None
        line_count = len(lines)
        char_count = len(text.strip())

        tier = None
        if has_label and price_count >= 1:
            tier = 'strong'
        elif price_count >= 2 and has_keyword:
            tier = 'medium'
        elif has_symbol and price_count >= 1 and line_count >= WEAK_MIN_LINES and char_count >= WEAK_MIN_CHARS:
            tier = 'weak'

        score = (
            0.35 * min(price_count, 3) / 3
            + 0.25 * has_label
            + 0.15 * has_symbol
            + 0.1 * has_date
            + 0.1 * has_keyword
            + 0.05 * (line_count >= WEAK_MIN_LINES)
        )

        report = ValidationReport(
            is_receipt=tier is not None,
            score=round(min(1.0, score), 2),
            tier=tier,
            price_count=price_count,
            has_currency_symbol=has_symbol,
            has_total_label=has_label,
            has_date_or_time=has_date,
            has_merchant_keyword=has_keyword,
            line_count=line_count,
            char_count=char_count,
        )
        logger.debug("Receipt validation", extra={'validation': asdict(report)})
        return report

    def ensure_receipt(self, text: str) -> ValidationReport:
        """Validate and raise NotAReceiptError when no tier is satisfied."""
        report = self.validate(text)
        if not report.is_receipt:
            logger.info(
                "Text rejected as not a receipt",
                extra={'score': report.score, 'line_count': report.line_count},
            )
            raise NotAReceiptError(report)
        return report
