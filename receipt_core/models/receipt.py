"""
Pydantic models for receipts.
"""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Any
from datetime import datetime
from decimal import Decimal, InvalidOperation


DEFAULT_MERCHANT = "Store Receipt"
DEFAULT_LOCATION = "Unknown Location"
DEFAULT_PAYMENT_METHOD = "Unknown"
DEFAULT_EMAIL_MERCHANT = "Unknown"
ZERO_AMOUNT = "0.00"


def _two_places(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value).replace(',', '').strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"not a decimal amount: {value!r}")
    return amount.quantize(Decimal('0.01'))


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReceiptItem(_CamelModel):
    """A single purchased line on a receipt."""
    name: str
    price: str
    quantity: Optional[float] = None

    @field_validator('price', mode='before')
    @classmethod
    def _normalize_price(cls, value):
        amount = _two_places(value)
        if amount == 0:
            raise ValueError("item price cannot be zero")
        return str(amount)


class ExtractedReceiptData(_CamelModel):
    """Structured record produced by the OCR path."""
    merchant_name: str = DEFAULT_MERCHANT
    location: str = DEFAULT_LOCATION
    total: str = ZERO_AMOUNT
    subtotal: Optional[str] = None
    tax: Optional[str] = None
    date: Optional[datetime] = None
    receipt_number: Optional[str] = None
    payment_method: str = DEFAULT_PAYMENT_METHOD
    category: Optional[str] = None
    currency: Optional[str] = None
    items: List[ReceiptItem] = Field(default_factory=list)

    @field_validator('total', mode='before')
    @classmethod
    def _normalize_total(cls, value):
        if value is None or value == '':
            return ZERO_AMOUNT
        amount = _two_places(value)
        if amount < 0:
            raise ValueError("total cannot be negative")
        return str(amount)

    @field_validator('subtotal', 'tax', mode='before')
    @classmethod
    def _normalize_optional_amount(cls, value):
        if value is None or value == '':
            return None
        return str(_two_places(value))

    @field_validator('merchant_name', mode='before')
    @classmethod
    def _merchant_default(cls, value):
        return value or DEFAULT_MERCHANT

    @field_validator('location', mode='before')
    @classmethod
    def _location_default(cls, value):
        return value or DEFAULT_LOCATION

    @field_validator('payment_method', mode='before')
    @classmethod
    def _payment_default(cls, value):
        return value or DEFAULT_PAYMENT_METHOD

    @classmethod
    def empty(cls) -> 'ExtractedReceiptData':
        """Minimal well-formed record used when no text could be extracted."""
        return cls()


class EmailLineItem(_CamelModel):
    name: str
    price: str

    @field_validator('price', mode='before')
    @classmethod
    def _normalize_price(cls, value):
        return str(_two_places(value))


class EmailAttachment(_CamelModel):
    filename: str
    url: Optional[str] = None


class EmailPayload(_CamelModel):
    """Forwarded email as handed over by the intake layer."""
    subject: Optional[str] = None
    sender: Optional[str] = None
    html: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('html', 'htmlBody', 'html_body')
    )
    text: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('text', 'textBody', 'text_body')
    )
    attachments: List[EmailAttachment] = Field(default_factory=list)

    @field_validator('attachments', mode='before')
    @classmethod
    def _coerce_attachments(cls, value):
        coerced = []
        for att in value or []:
            if isinstance(att, str):
                coerced.append({'filename': att})
            elif isinstance(att, dict):
                coerced.append({
                    'filename': att.get('filename') or att.get('name') or 'attachment',
                    'url': att.get('url') or att.get('path'),
                })
            else:
                coerced.append(att)
        return coerced


class EmailParseResult(_CamelModel):
    """Structured record produced by the email path."""
    merchant: str = DEFAULT_EMAIL_MERCHANT
    amount: str = ZERO_AMOUNT
    currency: str = "USD"
    date: Optional[datetime] = None
    line_items: List[EmailLineItem] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    attachments: List[EmailAttachment] = Field(default_factory=list)

    @field_validator('amount', mode='before')
    @classmethod
    def _normalize_amount(cls, value):
        if value is None or value == '':
            return ZERO_AMOUNT
        return str(_two_places(value))
