"""
Receipt parser service for extracting structured data from OCR text.
"""

import logging
import re
from decimal import InvalidOperation
from typing import Any, Callable, Dict, Optional

from ..extractors import (
    extract_currency,
    extract_date,
    extract_items,
    extract_location,
    extract_merchant,
    extract_payment_method,
    extract_receipt_number,
    extract_subtotal,
    extract_tax,
    extract_total,
    infer_category,
)
from ..models.receipt import ExtractedReceiptData, ReceiptItem
from ..utils.candidates import FieldCandidate
from ..utils.lines import normalize_ocr_spaces, split_lines
from ..utils.money import format_amount

logger = logging.getLogger(__name__)


class ReceiptParser:
    """Service for parsing receipt text and extracting structured data."""

    def parse(self, text: str, debug: Optional[Dict[str, Any]] = None) -> ExtractedReceiptData:
        """
        Parse receipt text and extract all available fields.

        Every field falls back to its documented default when nothing is
        found; this method never raises for missing data.

        Args:
            text: OCR-extracted text from receipt
            debug: Optional dict filled with per-field provenance
                (patterns_matched, confidence_per_field, warnings)

        Returns:
            ExtractedReceiptData
        """
        if debug is None:
            debug = {}
        debug.setdefault('patterns_matched', {})
        debug.setdefault('confidence_per_field', {})
        debug.setdefault('warnings', [])

        # Handles cases like "T E S C O" → "TESCO"
        text = normalize_ocr_spaces(text or '')
        lines = split_lines(text)
        if not lines:
            debug['warnings'].append('No text to parse')
            return ExtractedReceiptData.empty()

        merchant = self._extract('merchant', extract_merchant, debug, lines)
        merchant_index = merchant.line_index if merchant else None
        location = self._extract('location', extract_location, debug, lines, merchant_index)
        total = self._extract('total', extract_total, debug, text, lines)
        subtotal = self._extract('subtotal', extract_subtotal, debug, lines)
        tax = self._extract('tax', extract_tax, debug, lines)
        date = self._extract('date', extract_date, debug, lines)
        payment = self._extract('payment_method', extract_payment_method, debug, lines)
        receipt_number = self._extract('receipt_number', extract_receipt_number, debug, lines)
        currency = self._extract('currency', extract_currency, debug, text)

        exclude = {c.line_index for c in (merchant, location) if c is not None and c.line_index is not None}
        if location is not None and location.line_index is not None:
            # merged address fragments sit right around the best line
            exclude.update(i for i in range(location.line_index - 1, location.line_index + 2)
                           if 0 <= i < len(lines) and lines[i].strip(' ,;|') in location.value)
        try:
            item_candidates = extract_items(lines, exclude=exclude, total=total.value if total else None)
        except (re.error, ValueError, InvalidOperation):
            logger.warning("Error extracting items", exc_info=True)
            debug['warnings'].append('Item extraction failed')
            item_candidates = []

        items = [
            ReceiptItem(name=item.name, price=format_amount(item.price), quantity=item.quantity)
            for item in item_candidates
        ]
        debug['patterns_matched']['items'] = [item.source for item in item_candidates]

        merchant_name = merchant.value if merchant else None
        category = infer_category(merchant_name, (item.name for item in items))

        record = ExtractedReceiptData(
            merchant_name=merchant_name,
            location=location.value if location else None,
            total=format_amount(total.value) if total else None,
            subtotal=format_amount(subtotal.value) if subtotal else None,
            tax=format_amount(tax.value) if tax else None,
            date=date.value if date else None,
            receipt_number=receipt_number.value if receipt_number else None,
            payment_method=payment.value if payment else None,
            category=category,
            currency=currency.value if currency else None,
            items=items,
        )

        logger.info(
            "Parsed receipt",
            extra={
                'merchant_name': record.merchant_name,
                'total': record.total,
                'item_count': len(items),
                'fields_found': sorted(debug['patterns_matched']),
            },
        )
        return record

    def _extract(self, field: str, extractor: Callable, debug: Dict[str, Any], *args) -> Optional[FieldCandidate]:
        """Run one extractor and record its provenance in debug."""
        try:
            candidate = extractor(*args)
        except (re.error, ValueError, InvalidOperation):
            logger.warning("Error extracting %s", field, exc_info=True)
            debug['warnings'].append(f'{field} extraction failed')
            return None

        if candidate is None:
            return None
        debug['patterns_matched'][field] = candidate.source
        debug['confidence_per_field'][field] = round(candidate.score, 2)
        return candidate
