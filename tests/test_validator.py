"""
Tests for the receipt-likeness validator.
"""

import pytest

from receipt_core.exceptions import NotAReceiptError, ProcessingError
from receipt_core.services.validator import ReceiptValidator


@pytest.fixture
def validator():
    return ReceiptValidator()


class TestTiers:

    @pytest.mark.parametrize('text', [
        'Total: £4.50',
        'some header\nTOTAL £12.00',
        'Balance due $3.10',
        'AMOUNT DUE 19.99',
    ])
    def test_total_label_and_one_price_is_always_a_receipt(self, validator, text):
        report = validator.validate(text)
        assert report.is_receipt, f"{text!r} should be accepted"
        assert report.tier == 'strong'
        validator.ensure_receipt(text)

    def test_medium_tier(self, validator):
        report = validator.validate("CORNER SHOP\nApples 1.20\nPears 2.10")
        assert report.tier == 'medium'

    def test_weak_tier(self, validator):
        text = "Corner of 5th and Main\nOpen late every night\nLemonade\n$3.50\nSee you again soon friend"
        report = validator.validate(text)
        assert report.tier == 'weak', f"got {report}"

    def test_stray_number_is_not_enough(self, validator):
        report = validator.validate("$3.50")
        assert not report.is_receipt


class TestRejection:

    @pytest.mark.parametrize('text', [
        "The quick brown fox jumps over the lazy dog.\nIt was a sunny afternoon in the park.",
        "Meeting notes\nDiscuss roadmap\nAgree on owners",
        "",
    ])
    def test_prose_without_prices_is_rejected(self, validator, text):
        with pytest.raises(NotAReceiptError) as excinfo:
            validator.ensure_receipt(text)

        error = excinfo.value
        assert error.code == 'NOT_A_RECEIPT'
        assert error.report is not None and not error.report.is_receipt
        assert 'signals' in error.to_dict()['context']

    def test_not_a_receipt_is_not_a_processing_error(self):
        assert not issubclass(NotAReceiptError, ProcessingError)


def test_score_is_bounded(validator):
    text = "TESCO STORE\n12/10/2023 14:00\nMilk £1.20\nBread £0.95\nEggs £2.00\nTOTAL £4.15"
    report = validator.validate(text)
    assert 0.0 <= report.score <= 1.0
    assert report.score == 1.0
    assert report.has_date_or_time
    assert report.has_merchant_keyword
