"""
Tests for money parsing, price tokens and currency detection.
"""

from decimal import Decimal

import pytest

from receipt_core.utils.money import (
    MoneyFormat,
    detect_currency,
    find_prices,
    format_amount,
    parse_money,
)


class TestParseMoney:

    @pytest.mark.parametrize('raw, expected', [
        ('$1,234.56', Decimal('1234.56')),
        ('£12.50', Decimal('12.50')),
        ('1.234,56', Decimal('1234.56')),
        ('12,50 EUR', Decimal('12.50')),
        ('1234', Decimal('1234')),
    ])
    def test_formats(self, raw, expected):
        assert parse_money(raw) == expected, f"{raw!r} should parse to {expected}"

    def test_european_hint(self):
        assert parse_money('1.234,56', format_hint=MoneyFormat.EUROPEAN) == Decimal('1234.56')

    def test_negative_requires_flag(self):
        assert parse_money('-1.50') is None
        assert parse_money('-1.50', allow_negative=True) == Decimal('-1.50')
        assert parse_money('(£12.34)', allow_negative=True) == Decimal('-12.34')

    def test_rejects_garbage(self):
        assert parse_money('') is None
        assert parse_money('abc') is None
        assert parse_money(None) is None

    def test_rejects_absurd_amounts(self):
        assert parse_money('5000000.00') is None


class TestFindPrices:

    def test_single_price(self):
        tokens = find_prices('Bananas 1.20')
        assert [t.value for t in tokens] == [Decimal('1.20')]

    def test_symbol_recorded(self):
        tokens = find_prices('TOTAL £12.50')
        assert tokens[0].symbol == '£'

    def test_leading_and_trailing_minus(self):
        assert find_prices('Discount -0.50')[0].value == Decimal('-0.50')
        assert find_prices('Discount 0.50-')[0].value == Decimal('-0.50')

    def test_weights_and_dates_are_not_prices(self):
        assert find_prices('0.404 kg') == []
        assert find_prices('12.10.2023') == []


def test_format_amount_rounds_half_up():
    assert format_amount(Decimal('3.5')) == '3.50'
    assert format_amount(Decimal('0.395')) == '0.40'
    assert format_amount(None) is None


class TestDetectCurrency:

    def test_symbols(self):
        assert detect_currency('Total £3.00') == 'GBP'
        assert detect_currency('Total €3.00') == 'EUR'
        assert detect_currency('Total $3.00') == 'USD'

    def test_code_beats_symbol(self):
        assert detect_currency('CAD $14.00') == 'CAD'

    def test_near_offset_restricts_window(self):
        text = 'Gift voucher worth £5.00 ........................ Total $12.00'
        offset = text.index('12.00')
        assert detect_currency(text, near=offset) == 'USD'

    def test_nothing_found(self):
        assert detect_currency('no money here') is None
        assert detect_currency('') is None
