"""
Field extractors for OCR receipt text.

Each extractor is a pure function over the tuple of receipt lines and
returns a FieldCandidate (or None); ReceiptParser composes them.
"""

from .dates import extract_date, find_date
from .items import ItemCandidate, extract_items
from .location import extract_location
from .merchant import extract_merchant
from .meta import extract_currency, extract_receipt_number, infer_category
from .payment import extract_payment_method
from .totals import extract_subtotal, extract_tax, extract_total

__all__ = [
    'ItemCandidate',
    'extract_currency',
    'extract_date',
    'extract_items',
    'extract_location',
    'extract_merchant',
    'extract_payment_method',
    'extract_receipt_number',
    'extract_subtotal',
    'extract_tax',
    'extract_total',
    'find_date',
    'infer_category',
]
