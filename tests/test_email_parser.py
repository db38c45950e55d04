"""
Tests for the email field parser.
"""

from datetime import datetime

import pytest

from receipt_core.models.receipt import EmailPayload
from receipt_core.services.email_parser import (
    EmailParser,
    merchant_from_sender,
    score_confidence,
)

AMAZON_HTML = """
<!DOCTYPE html>
<html>
<head>
  <title>Your Amazon Order Receipt</title>
  <meta property="og:site_name" content="Amazon.com">
</head>
<body>
  <h1>Amazon.com</h1>
  <p>Order Date: December 15, 2023</p>
  <table>
    <tr><th>Item</th><th>Price</th></tr>
    <tr><td>Echo Dot (4th Gen) - Smart Speaker with Alexa</td><td>$29.99</td></tr>
    <tr><td>Shipping &amp; Handling</td><td>$5.99</td></tr>
    <tr><td><strong>Total</strong></td><td><strong>$35.98</strong></td></tr>
  </table>
</body>
</html>
"""

TABLE_HTML = """
<html><body>
  <h1>Test Store</h1>
  <table>
    <tr><td>Product A</td><td>$10.00</td></tr>
    <tr><td>Product B</td><td>$15.50</td></tr>
    <tr><td>Total</td><td>$25.50</td></tr>
  </table>
</body></html>
"""

SCHEMA_HTML = """
<html><head>
<script type="application/ld+json">
{
  "@context": "http://schema.org",
  "@type": "Order",
  "seller": {"@type": "Organization", "name": "Bookshop Ltd"},
  "orderDate": "2024-03-02T10:15:00Z",
  "priceCurrency": "GBP",
  "totalPaymentDue": {"@type": "PriceSpecification", "price": "18.40", "priceCurrency": "GBP"},
  "acceptedOffer": [
    {"@type": "Offer", "itemOffered": {"@type": "Product", "name": "Paperback novel"}, "price": "8.40"},
    {"@type": "Offer", "itemOffered": {"@type": "Product", "name": "Hardback atlas"}, "price": "10.00"}
  ]
}
</script>
</head><body><p>Thanks for your order!</p></body></html>
"""


@pytest.fixture
def parser():
    return EmailParser()


class TestEmailParser:

    def test_amazon_order(self, parser):
        result = parser.parse({
            'subject': 'Your Amazon.com order #123-4567890',
            'sender': 'auto-confirm@amazon.com',
            'html': AMAZON_HTML,
            'attachments': [{'filename': 'receipt-amazon-123456.pdf', 'url': 'https://example.com/r.pdf'}],
        })

        assert 'amazon' in result.merchant.lower()
        assert result.amount == '35.98'
        assert result.currency == 'USD'
        assert result.confidence > 0.8
        assert result.date == datetime(2023, 12, 15)
        assert result.line_items[0].name == 'Echo Dot (4th Gen) - Smart Speaker with Alexa'
        assert result.line_items[0].price == '29.99'
        assert all('Shipping' not in item.name for item in result.line_items)
        assert len(result.attachments) == 1
        assert result.attachments[0].filename == 'receipt-amazon-123456.pdf'

    def test_starbucks_heading_and_total(self, parser):
        result = parser.parse({
            'subject': 'Your receipt',
            'sender': 'receipts@starbucks.com',
            'html': '<h1>Starbucks Coffee Company</h1><p>Store #12345</p><p>Total: $5.45</p>',
        })

        assert 'starbucks' in result.merchant.lower()
        assert result.amount == '5.45'
        assert result.currency == 'USD'
        assert result.confidence >= 0.8, f"confidence {result.confidence}"

    def test_table_rows_become_line_items(self, parser):
        result = parser.parse(EmailPayload(html=TABLE_HTML))

        assert [(i.name, i.price) for i in result.line_items] == [
            ('Product A', '10.00'),
            ('Product B', '15.50'),
        ]
        assert result.amount == '25.50'
        assert result.merchant == 'Test Store'

    def test_no_receipt_data(self, parser):
        result = parser.parse({
            'subject': 'Random email',
            'sender': 'someone@example.com',
            'html': '<p>No receipt data here</p>',
        })

        assert result.merchant == 'Unknown'
        assert result.amount == '0.00'
        assert result.currency == 'USD'
        assert result.line_items == []
        assert result.confidence < 0.5

    def test_schema_org_order(self, parser):
        result = parser.parse({'html': SCHEMA_HTML})

        assert result.merchant == 'Bookshop Ltd'
        assert result.amount == '18.40'
        assert result.currency == 'GBP'
        assert result.date == datetime(2024, 3, 2, 10, 15)
        assert [(i.name, i.price) for i in result.line_items] == [
            ('Paperback novel', '8.40'),
            ('Hardback atlas', '10.00'),
        ]
        assert result.confidence == pytest.approx(0.9)

    def test_malformed_json_ld_is_ignored(self, parser):
        html = '<script type="application/ld+json">{not json</script><h1>Kiosk Nine</h1><p>Total: £7.00</p>'
        result = parser.parse({'html': html})
        assert result.merchant == 'Kiosk Nine'
        assert result.amount == '7.00'
        assert result.currency == 'GBP'

    def test_plain_text_bare_amount(self, parser):
        result = parser.parse({'text': 'Thanks for your purchase of a widget. Charged $4.99 to your card.'})

        assert result.amount == '4.99'
        assert result.merchant == 'Unknown'
        assert result.confidence == pytest.approx(0.35)

    def test_plain_text_total_label(self, parser):
        result = parser.parse('Order summary\nItems: 2\nTotal: EUR 42.00\n')
        assert result.amount == '42.00'
        assert result.currency == 'EUR'

    def test_small_total_is_penalised(self, parser):
        result = parser.parse({'html': '<h1>Corner Kiosk</h1><p>Total: $0.50</p>'})
        assert result.amount == '0.50'
        assert result.confidence == pytest.approx(0.45)

    def test_total_in_next_element(self, parser):
        html = '<h2>Pixel Games</h2><div><span>Order total</span> <span>$19.99</span></div>'
        result = parser.parse({'html': html})
        assert result.amount == '19.99'

    def test_savings_line_is_not_the_total(self, parser):
        html = '<h1>Corner Shop</h1><p>Total: $25.50</p><p>Total savings: $5.00</p>'
        result = parser.parse({'html': html})
        assert result.amount == '25.50'

    def test_savings_row_is_not_the_total(self, parser):
        html = (
            '<h1>Corner Shop</h1><table>'
            '<tr><td>Total</td><td>$25.50</td></tr>'
            '<tr><td>Total savings</td><td>$5.00</td></tr>'
            '</table>'
        )
        assert parser.parse({'html': html}).amount == '25.50'

    def test_metadata_and_sender_fallbacks(self, parser):
        with_meta = parser.parse({'html': '<head><meta property="og:site_name" content="Fern Tea Co"></head><p>x</p>'})
        assert with_meta.merchant == 'Fern Tea Co'

        from_sender = parser.parse({'sender': 'Orders <orders@bluebottle-roasters.com>', 'text': 'hello'})
        assert from_sender.merchant == 'Bluebottle Roasters'

    def test_html_body_aliases(self, parser):
        result = parser.parse({'htmlBody': TABLE_HTML})
        assert result.amount == '25.50'

    def test_output_is_camel_case(self, parser):
        dumped = parser.parse(EmailPayload(html=TABLE_HTML)).model_dump(by_alias=True)
        assert 'lineItems' in dumped
        assert set(dumped) == {'merchant', 'amount', 'currency', 'date', 'lineItems', 'confidence', 'attachments'}


class TestSenderDomain:

    def test_company_domain(self):
        assert merchant_from_sender('Receipts <receipts@mail.coffee-house.co.uk>') == 'Coffee House'
        assert merchant_from_sender('billing@acme.com') == 'Acme'

    @pytest.mark.parametrize('sender', [
        'someone@gmail.com',
        'me@outlook.com',
        'person@example.com',
        'not an address',
        None,
    ])
    def test_ignored(self, sender):
        assert merchant_from_sender(sender) is None


class TestConfidence:

    def test_bounds(self):
        assert score_confidence(None, False, False, None) == 0.1
        assert 0.0 <= score_confidence(None, False, True, 'known') <= 1.0

    def test_explicit_beats_bare(self):
        explicit = score_confidence(10, True, False, None)
        bare = score_confidence(10, False, False, None)
        assert explicit == pytest.approx(0.6)
        assert bare == pytest.approx(0.35)

    def test_weak_merchant_source(self):
        assert score_confidence(10, True, False, 'heading') == pytest.approx(0.65)
        assert score_confidence(10, True, False, 'sender_domain') == pytest.approx(0.6)
