"""
Tests for the command line entry point.
"""

import json

from receipt_core.cli import (
    EXIT_NOT_A_RECEIPT,
    EXIT_OK,
    EXIT_PROCESSING_ERROR,
    load_email_payload,
    main,
)


def test_text_command_prints_record(tmp_path, capsys, sample_receipt):
    path = tmp_path / 'receipt.txt'
    path.write_text(sample_receipt, encoding='utf-8')

    assert main(['text', str(path)]) == EXIT_OK

    record = json.loads(capsys.readouterr().out)
    assert record['merchantName'] == 'Tesco'
    assert record['total'] == '2.15'
    assert record['paymentMethod'] == 'Visa'


def test_prose_exits_with_not_a_receipt(tmp_path, capsys):
    path = tmp_path / 'notes.txt'
    path.write_text("Shopping list\nremember the milk\ncall grandma", encoding='utf-8')

    assert main(['text', str(path)]) == EXIT_NOT_A_RECEIPT
    assert json.loads(capsys.readouterr().out)['code'] == 'NOT_A_RECEIPT'


def test_missing_file_is_a_processing_error(tmp_path, capsys):
    assert main(['text', str(tmp_path / 'nope.txt')]) == EXIT_PROCESSING_ERROR
    assert 'Error:' in capsys.readouterr().err


def test_email_command(tmp_path, capsys):
    path = tmp_path / 'receipt.html'
    path.write_text(
        '<html><body><h1>Test Store</h1><table>'
        '<tr><td>Product A</td><td>$10.00</td></tr>'
        '<tr><td>Total</td><td>$10.00</td></tr>'
        '</table></body></html>',
        encoding='utf-8',
    )

    assert main(['email', str(path), '--sender', 'orders@teststore.com']) == EXIT_OK

    result = json.loads(capsys.readouterr().out)
    assert result['merchant'] == 'Test Store'
    assert result['amount'] == '10.00'
    assert result['lineItems'] == [{'name': 'Product A', 'price': '10.00'}]


class TestLoadEmailPayload:

    def test_json_payload_with_overrides(self, tmp_path):
        path = tmp_path / 'mail.json'
        path.write_text(json.dumps({'subject': 'old', 'htmlBody': '<p>hi</p>'}), encoding='utf-8')

        payload = load_email_payload(path, subject='new')
        assert payload == {'subject': 'new', 'htmlBody': '<p>hi</p>'}

    def test_plain_text_file(self, tmp_path):
        path = tmp_path / 'mail.txt'
        path.write_text('Total: $3.00', encoding='utf-8')
        assert load_email_payload(path, sender='a@b.com') == {'text': 'Total: $3.00', 'sender': 'a@b.com'}

    def test_html_detected_by_content(self, tmp_path):
        path = tmp_path / 'mail.eml'
        path.write_text('<HTML><body>x</body></HTML>', encoding='utf-8')
        assert 'html' in load_email_payload(path)
