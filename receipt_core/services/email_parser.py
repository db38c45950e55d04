"""
Field parser for forwarded receipt emails.

HTML bodies are parsed with BeautifulSoup; a plain-text rendition comes from
the text part or, when the sender only sent HTML, from html2text. schema.org
``Order``/``Invoice`` JSON-LD is trusted first, then each field falls back
through progressively weaker heuristics.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from email.utils import parseaddr
from string import capwords
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import html2text
from bs4 import BeautifulSoup, Tag

from ..config import Settings, settings as default_settings
from ..extractors.dates import find_date
from ..models.receipt import (
    DEFAULT_EMAIL_MERCHANT,
    EmailLineItem,
    EmailParseResult,
    EmailPayload,
)
from ..utils.money import CURRENCY_CODES, detect_currency, format_amount, parse_money
from ..utils.vocabulary import BLACKLIST_PATTERN, find_known_merchant

logger = logging.getLogger(__name__)

# Two-decimal amount, optionally preceded by a currency symbol
PRICE_IN_TEXT = re.compile(
    r'(?P<symbol>[$£€¥])?\s?(?P<amount>\d{1,3}(?:,\d{3})+\.\d{2}|\d+[.,]\d{2})(?!\d)'
)

# Amount carrying an explicit currency marker, used for the bare-amount pass
MARKED_AMOUNT = re.compile(
    r'(?:[$£€¥]|\b(?:' + '|'.join(CURRENCY_CODES) + r')\b)\s?'
    r'(?P<amount>\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d+(?:[.,]\d{2})?)(?![\d])'
)

TOTAL_WORD = re.compile(r'(?<!sub)(?<!sub[\s-])\btotal\b', re.IGNORECASE)

TEXT_TOTAL = re.compile(
    r'(?<!sub)(?<!sub[\s-])\btotal\b[^\d\n$£€¥]{0,20}?'
    r'(?P<symbol>[$£€¥])?\s?(?P<amount>\d{1,3}(?:,\d{3})+\.\d{2}|\d+[.,]\d{2})(?!\d)',
    re.IGNORECASE,
)

NON_ITEM_LABEL = re.compile(
    r'\b(?:sub[\s-]?total|total|tax|taxes|vat|gst|shipping|delivery|handling|postage|'
    r'balance|amount\s+due|amount\s+paid|payment|paid)\b',
    re.IGNORECASE,
)

GENERIC_HEADING = re.compile(
    r'^(?:your\s+)?(?:order|receipt|invoice|confirmation|payment|purchase|thank\s+you|thanks|'
    r'hello|hi|dear)\b',
    re.IGNORECASE,
)

METADATA_SELECTORS = (
    ('meta', {'property': 'og:site_name'}),
    ('meta', {'name': 'application-name'}),
)

IGNORED_SENDER_DOMAINS = {
    'gmail', 'googlemail', 'yahoo', 'outlook', 'hotmail', 'live', 'msn', 'icloud',
    'me', 'aol', 'protonmail', 'proton', 'gmx', 'mail', 'example', 'test', 'localhost',
    'invalid',
}

SCHEMA_ORDER_TYPES = {'Order', 'Invoice'}

MAX_LINE_ITEMS = 20
MAX_NAME_LENGTH = 100

BASE_CONFIDENCE = 0.1
EXPLICIT_TOTAL_BONUS = 0.5
BARE_AMOUNT_BONUS = 0.25
LINE_ITEMS_BONUS = 0.1
SMALL_AMOUNT_PENALTY = 0.2
MERCHANT_BONUS = {
    'schema': 0.2,
    'known': 0.2,
    'heading': 0.05,
    'metadata': 0.05,
}


@dataclass
class SchemaOrder:
    """Fields lifted from a schema.org Order or Invoice block."""
    merchant: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    date: Optional[datetime] = None
    items: List[EmailLineItem] = field(default_factory=list)


@dataclass
class _Amount:
    value: Decimal
    explicit: bool
    currency: Optional[str]
    source: str


def _clean_text(text: Optional[str]) -> str:
    return re.sub(r'\s+', ' ', text or '').strip()


def _coerce_payload(payload: Union[EmailPayload, Dict[str, Any], str]) -> EmailPayload:
    if isinstance(payload, EmailPayload):
        return payload
    if isinstance(payload, str):
        if re.search(r'<[a-zA-Z!/]', payload):
            return EmailPayload(html=payload)
        return EmailPayload(text=payload)
    return EmailPayload.model_validate(payload or {})


def html_to_text(html_content: str) -> str:
    """Convert an HTML body to plain text, falling back to the raw markup."""
    try:
        h = html2text.HTML2Text()
        h.ignore_links = True
        h.ignore_images = True
        h.ignore_emphasis = True
        h.body_width = 0  # Don't wrap lines
        return h.handle(html_content)
    except Exception as e:
        logger.warning("Error converting HTML to text", extra={'error': str(e)})
        return html_content


# ========================
# schema.org JSON-LD
# ========================

def _walk_json(node: Any) -> Iterator[Dict[str, Any]]:
    if isinstance(node, list):
        for child in node:
            yield from _walk_json(child)
    elif isinstance(node, dict):
        yield node
        graph = node.get('@graph')
        if graph is not None:
            yield from _walk_json(graph)


def _is_order(node: Dict[str, Any]) -> bool:
    types = node.get('@type')
    if isinstance(types, str):
        types = [types]
    return bool(SCHEMA_ORDER_TYPES.intersection(types or []))


def _name_of(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get('name')
    if isinstance(value, str) and value.strip():
        return _clean_text(value)
    return None


def _schema_amount(value: Any) -> Optional[Decimal]:
    if isinstance(value, dict):
        value = value.get('value', value.get('price'))
    if isinstance(value, (int, float)):
        value = str(value)
    if isinstance(value, str):
        return parse_money(value)
    return None


def _schema_date(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith('Z'):
        raw = raw[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(raw).replace(tzinfo=None)
    except ValueError:
        return find_date(value)


def _schema_items(node: Dict[str, Any]) -> List[EmailLineItem]:
    entries = node.get('orderedItem') or node.get('lineItems') or node.get('acceptedOffer') or []
    if isinstance(entries, dict):
        entries = [entries]

    items = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        name = (
            _name_of(entry.get('orderedItem'))
            or _name_of(entry.get('itemOffered'))
            or _name_of(entry)
        )
        price = None
        for source in (entry, entry.get('orderedItem'), entry.get('itemOffered'), entry.get('offers')):
            if isinstance(source, dict):
                price = _schema_amount(source.get('price'))
                if price is not None:
                    break
        if name and price is not None:
            items.append(EmailLineItem(name=name[:MAX_NAME_LENGTH], price=format_amount(price)))
    return items[:MAX_LINE_ITEMS]


def extract_schema_order(soup: BeautifulSoup) -> Optional[SchemaOrder]:
    """First schema.org Order/Invoice found in the JSON-LD blocks, if any."""
    for script in soup.find_all('script', attrs={'type': 'application/ld+json'}):
        try:
            data = json.loads(script.string or '')
        except ValueError:
            logger.debug("Skipping malformed JSON-LD block")
            continue

        for node in _walk_json(data):
            if not _is_order(node):
                continue

            payment_due = node.get('totalPaymentDue')
            currency = None
            if isinstance(payment_due, dict):
                currency = payment_due.get('currency') or payment_due.get('priceCurrency')
            currency = currency or node.get('priceCurrency')

            amount = _schema_amount(payment_due)
            if amount is None:
                amount = _schema_amount(node.get('price'))
            if amount is None:
                amount = _schema_amount(node.get('total'))

            return SchemaOrder(
                merchant=(
                    _name_of(node.get('seller'))
                    or _name_of(node.get('merchant'))
                    or _name_of(node.get('provider'))
                    or _name_of(node.get('broker'))
                ),
                amount=amount,
                currency=currency.upper() if isinstance(currency, str) and currency.strip() else None,
                date=_schema_date(node.get('orderDate') or node.get('dateCreated')),
                items=_schema_items(node),
            )
    return None


# ========================
# Merchant
# ========================

def _usable_name(text: Optional[str]) -> Optional[str]:
    name = _clean_text(text)
    if not 2 <= len(name) <= 80:
        return None
    if sum(ch.isalpha() for ch in name) < 2:
        return None
    if PRICE_IN_TEXT.search(name) or TOTAL_WORD.search(name) or GENERIC_HEADING.match(name):
        return None
    return name


def merchant_from_sender(sender: Optional[str]) -> Optional[str]:
    """
    Merchant name guessed from the sender's domain.

    Free-mail and placeholder domains say nothing about the merchant and
    are ignored.

    Examples:
        >>> merchant_from_sender('Receipts <receipts@mail.coffee-house.co.uk>')
        'Coffee House'
    """
    _, address = parseaddr(sender or '')
    if '@' not in address:
        return None
    labels = [label for label in address.rsplit('@', 1)[1].lower().split('.') if label]
    if len(labels) < 2:
        return None

    if len(labels) >= 3 and len(labels[-1]) == 2 and labels[-2] in ('co', 'com', 'org', 'net', 'ac'):
        name = labels[-3]
    else:
        name = labels[-2]

    if name in IGNORED_SENDER_DOMAINS:
        return None
    return capwords(name.replace('-', ' ').replace('_', ' '))


def _merchant(
    payload: EmailPayload,
    soup: Optional[BeautifulSoup],
    text: str,
    schema: Optional[SchemaOrder],
) -> Tuple[str, Optional[str]]:
    """Returns (merchant, source)."""
    if schema and schema.merchant:
        return schema.merchant, 'schema'

    for haystack in (payload.subject, payload.sender, text):
        known = find_known_merchant(haystack or '')
        if known:
            return known, 'known'

    if soup is not None:
        for heading in soup.find_all(['h1', 'h2', 'h3']):
            name = _usable_name(heading.get_text(' '))
            if name:
                return name, 'heading'

        for tag_name, attrs in METADATA_SELECTORS:
            tag = soup.find(tag_name, attrs=attrs)
            name = _usable_name(tag.get('content') if tag else None)
            if name:
                return name, 'metadata'
        if soup.title:
            name = _usable_name(soup.title.get_text(' '))
            if name:
                return name, 'metadata'

        for emphasis in soup.find_all(['strong', 'b', 'em']):
            name = _usable_name(emphasis.get_text(' '))
            if name:
                return name, 'emphasis'

    name = merchant_from_sender(payload.sender)
    if name:
        return name, 'sender_domain'

    return DEFAULT_EMAIL_MERCHANT, None


# ========================
# Tables: line items and total rows
# ========================

def _layout_rows(soup: BeautifulSoup) -> Iterator[Tuple[str, str]]:
    """(label, price cell text) for every table row shaped like a priced entry."""
    for row in soup.find_all('tr'):
        if row.find('table') is not None:
            continue
        cells = row.find_all(['td', 'th'], recursive=False)
        if len(cells) < 2 or all(cell.name == 'th' for cell in cells):
            continue

        label = _clean_text(cells[0].get_text(' '))
        if not label or not any(ch.isalpha() for ch in label):
            continue

        for cell in reversed(cells[1:]):
            cell_text = _clean_text(cell.get_text(' '))
            if PRICE_IN_TEXT.search(cell_text):
                yield label, cell_text
                break


def _price_in(text: str) -> Optional[Decimal]:
    match = PRICE_IN_TEXT.search(text)
    if not match:
        return None
    return parse_money(match.group('amount'))


def extract_table_items(soup: BeautifulSoup) -> List[EmailLineItem]:
    items = []
    for label, price_text in _layout_rows(soup):
        if NON_ITEM_LABEL.search(label):
            continue
        price = _price_in(price_text)
        if price is None:
            continue
        items.append(EmailLineItem(name=label[:MAX_NAME_LENGTH], price=format_amount(price)))
        if len(items) >= MAX_LINE_ITEMS:
            break
    return items


def _table_total(soup: BeautifulSoup) -> Optional[_Amount]:
    found = None
    for label, price_text in _layout_rows(soup):
        if not TOTAL_WORD.search(label) or BLACKLIST_PATTERN.search(label):
            continue
        price = _price_in(price_text)
        if price is not None:
            found = _Amount(price, True, detect_currency(price_text), 'table_row')
    return found


def _element_total(soup: BeautifulSoup) -> Optional[_Amount]:
    """Any element whose own text says "total", priced inline or by the next text node."""
    found = None
    for node in soup.find_all(string=TOTAL_WORD):
        if node.parent is not None and node.parent.name in ('script', 'style', 'title'):
            continue
        # "Total savings", "Total points" and the like are not the amount paid
        if BLACKLIST_PATTERN.search(node):
            continue
        label = TOTAL_WORD.search(node)
        tail = str(node)[label.end():]
        price_text = tail if PRICE_IN_TEXT.search(tail) else None

        if price_text is None:
            for following in node.find_all_next(string=True, limit=4):
                following = _clean_text(following)
                if not following:
                    continue
                if PRICE_IN_TEXT.match(following):
                    price_text = following
                break

        if price_text is not None:
            price = _price_in(price_text)
            if price is not None:
                found = _Amount(price, True, detect_currency(price_text), 'element')
    return found


# ========================
# Plain-text passes
# ========================

def _text_total(text: str) -> Optional[_Amount]:
    found = None
    for match in TEXT_TOTAL.finditer(text):
        if BLACKLIST_PATTERN.search(match.group(0)):
            continue
        value = parse_money(match.group('amount'))
        if value is not None:
            found = _Amount(value, True, detect_currency(text, near=match.start('amount')), 'text_label')
    return found


def _largest_marked_amount(text: str) -> Optional[_Amount]:
    best = None
    for match in MARKED_AMOUNT.finditer(text):
        value = parse_money(match.group('amount'))
        if value is None or value <= 0:
            continue
        if best is None or value > best.value:
            best = _Amount(value, False, detect_currency(text, near=match.start('amount')), 'largest_amount')
    return best


def score_confidence(
    amount: Optional[Decimal],
    explicit_total: bool,
    has_items: bool,
    merchant_source: Optional[str],
) -> float:
    """
    Heuristic confidence for an email parse, on the 0-1 scale.

    base 0.1; +0.5 labelled total, or +0.25 for a bare amount; +0.1 with
    line items; merchant bonus by source; -0.2 for totals under 1.00.
    """
    confidence = BASE_CONFIDENCE
    if amount is not None:
        confidence += EXPLICIT_TOTAL_BONUS if explicit_total else BARE_AMOUNT_BONUS
        if 0 < amount < 1:
            confidence -= SMALL_AMOUNT_PENALTY
    if has_items:
        confidence += LINE_ITEMS_BONUS
    confidence += MERCHANT_BONUS.get(merchant_source, 0.0)
    return round(max(0.0, min(1.0, confidence)), 2)


class EmailParser:
    """Parses forwarded receipt emails into EmailParseResult records."""

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or default_settings

    def parse(self, payload: Union[EmailPayload, Dict[str, Any], str]) -> EmailParseResult:
        """
        Parse an email payload.

        Never raises for missing fields: unknown merchant, ``"0.00"`` and
        a low confidence are the result for an email with no receipt data.
        """
        payload = _coerce_payload(payload)
        html = payload.html or ''
        soup = BeautifulSoup(html, 'html.parser') if html.strip() else None

        plain = payload.text or ''
        if not plain.strip() and html.strip():
            plain = html_to_text(html)

        schema = None
        visible = ''
        if soup is not None:
            schema = extract_schema_order(soup)
            if schema:
                logger.debug("Found schema.org order markup", extra={'schema_merchant': schema.merchant})
            for tag in soup(['script', 'style']):
                tag.decompose()
            visible = soup.get_text('\n')
        combined = '\n'.join(part for part in (visible, plain) if part.strip())

        merchant, merchant_source = _merchant(payload, soup, combined, schema)

        items: List[EmailLineItem] = list(schema.items) if schema else []
        if not items and soup is not None:
            items = extract_table_items(soup)

        amount = self._amount(soup, combined, schema)
        currency = (
            (amount.currency if amount else None)
            or (schema.currency if schema else None)
            or self.settings.DEFAULT_CURRENCY
        )

        date = schema.date if schema and schema.date else find_date(combined)

        value = amount.value if amount else None
        confidence = score_confidence(value, bool(amount and amount.explicit), bool(items), merchant_source)

        result = EmailParseResult(
            merchant=merchant,
            amount=format_amount(value) if value is not None else None,
            currency=currency,
            date=date,
            line_items=items,
            confidence=confidence,
            attachments=payload.attachments,
        )
        logger.info(
            "Parsed email receipt",
            extra={
                'merchant': result.merchant,
                'merchant_source': merchant_source,
                'amount': result.amount,
                'amount_source': amount.source if amount else None,
                'items': len(items),
                'confidence': confidence,
            },
        )
        return result

    def _amount(
        self,
        soup: Optional[BeautifulSoup],
        combined: str,
        schema: Optional[SchemaOrder],
    ) -> Optional[_Amount]:
        if schema and schema.amount is not None:
            return _Amount(schema.amount, True, schema.currency, 'schema')

        if soup is not None:
            for finder in (_table_total, _element_total):
                found = finder(soup)
                if found:
                    return found

        return _text_total(combined) or _largest_marked_amount(combined)
