"""
Tests for quote/invoice totals, conversion, payments, reminders and documents
"""
import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal

from database.models import Invoice
from services.billing_service import (
    BillingService,
    calculate_totals,
    is_overdue,
    line_total,
    to_money,
)
from services.event_logger import EventLogger
from services.tax_service import TaxService
from validators import ValidationError

ITEMS = [
    {'product_name': 'Standard Unit', 'quantity': 2, 'unit_price': 95},
    {'product_name': 'Handwash Station', 'quantity': 1, 'unit_price': 10},
]


@pytest.fixture
def billing(db_session, org_id, app_config, email_client):
    return BillingService(db_session, org_id, app_config, email_client=email_client)


@pytest.mark.unit
class TestTotals:
    """Tests for the totals math"""

    def test_percentage_discount_fees_and_tax(self):
        totals = calculate_totals(
            [{'quantity': 2, 'unit_price': 100}], 'percentage', 10, additional_fees=15, tax_rate=8.25
        )
        assert totals == {
            'subtotal': 200.0,
            'discount_amount': 20.0,
            'additional_fees': 15.0,
            'tax_amount': 16.09,
            'total_amount': 211.09,
        }

    def test_fixed_discount_clamped_to_subtotal(self):
        totals = calculate_totals([{'quantity': 1, 'unit_price': 50}], 'fixed', 80)
        assert totals['discount_amount'] == 50.0
        assert totals['total_amount'] == 0.0

    def test_rounds_half_up(self):
        assert to_money(0.125) == Decimal('0.13')
        assert line_total(3, '0.335') == Decimal('1.01')

    def test_empty_items(self):
        assert calculate_totals([])['total_amount'] == 0.0

    def test_is_overdue_only_for_unpaid(self):
        invoice = Invoice(status='sent', due_date=date(2026, 1, 1))
        assert is_overdue(invoice, date(2026, 1, 2)) is True
        assert is_overdue(invoice, date(2026, 1, 1)) is False
        invoice.status = 'paid'
        assert is_overdue(invoice, date(2026, 1, 2)) is False


@pytest.mark.unit
class TestQuotes:
    """Tests for quote lifecycle"""

    def test_create_quote_numbers_and_expiry(self, billing, factory):
        customer = factory.customer()
        quote = billing.create_quote({'customer_id': customer.id, 'items': ITEMS})
        year = date.today().year
        assert quote['quote_number'] == f'Q-{year}-0001'
        assert quote['status'] == 'draft'
        assert quote['subtotal'] == 200.0
        assert quote['expiration_date'] == (date.today() + timedelta(days=30)).isoformat()

        second = billing.create_quote({'customer_id': customer.id, 'items': ITEMS})
        assert second['quote_number'] == f'Q-{year}-0002'

    def test_quote_uses_resolved_tax_rate(self, billing, factory, db_session, org_id):
        TaxService(db_session, org_id).upsert_rate(8.25, zip_code='78701')
        customer = factory.customer(service_zip='78701')
        quote = billing.create_quote({'customer_id': customer.id, 'items': ITEMS})
        assert quote['tax_rate'] == 8.25
        assert quote['tax_amount'] == 16.5

    def test_explicit_tax_rate_wins(self, billing, factory):
        customer = factory.customer(tax_rate_override=9.0)
        quote = billing.create_quote({'customer_id': customer.id, 'items': ITEMS, 'tax_rate': 0})
        assert quote['tax_rate'] == 0.0

    def test_update_quote_recalculates(self, billing, factory):
        customer = factory.customer()
        quote = billing.create_quote({'customer_id': customer.id, 'items': ITEMS})
        updated = billing.update_quote(quote['id'], {'discount_type': 'fixed', 'discount_value': 50})
        assert updated['discount_amount'] == 50.0
        assert updated['total_amount'] == 150.0
        assert len(updated['items']) == 2

    def test_accepted_quote_is_final(self, billing, factory):
        customer = factory.customer()
        quote = billing.create_quote({'customer_id': customer.id, 'items': ITEMS})
        billing.update_quote_status(quote['id'], 'accepted')
        with pytest.raises(ValidationError):
            billing.update_quote_status(quote['id'], 'draft')
        with pytest.raises(ValidationError):
            billing.update_quote(quote['id'], {'notes': 'late change'})

    def test_expire_quotes(self, billing, factory):
        customer = factory.customer()
        billing.create_quote({'customer_id': customer.id, 'items': ITEMS, 'expiration_date': '2026-01-10'})
        billing.create_quote({'customer_id': customer.id, 'items': ITEMS, 'expiration_date': '2026-03-10'})
        assert billing.expire_quotes(today=date(2026, 2, 1)) == 1
        assert [q['status'] for q in billing.list_quotes(status='expired')] == ['expired']


@pytest.mark.unit
class TestQuoteConversion:
    """Tests for quote to invoice conversion"""

    def test_convert_copies_totals(self, billing, factory):
        customer = factory.customer()
        quote = billing.create_quote({'customer_id': customer.id, 'items': ITEMS,
                                      'discount_type': 'percentage', 'discount_value': 10})
        invoice = billing.convert_quote_to_invoice(quote['id'])

        assert invoice['invoice_number'] == f'INV-{date.today().year}-0001'
        assert invoice['quote_id'] == quote['id']
        assert invoice['total_amount'] == quote['total_amount']
        assert [i['product_name'] for i in invoice['items']] == ['Standard Unit', 'Handwash Station']
        assert invoice['due_date'] == (date.today() + timedelta(days=30)).isoformat()

        converted = billing.get_quote(quote['id'])
        assert converted['status'] == 'accepted'
        assert converted['invoice_id'] == invoice['id']

    def test_convert_twice_rejected(self, billing, factory):
        customer = factory.customer()
        quote = billing.create_quote({'customer_id': customer.id, 'items': ITEMS})
        billing.convert_quote_to_invoice(quote['id'])
        with pytest.raises(ValidationError):
            billing.convert_quote_to_invoice(quote['id'])

    def test_rejected_quote_cannot_convert(self, billing, factory):
        customer = factory.customer()
        quote = billing.create_quote({'customer_id': customer.id, 'items': ITEMS})
        billing.update_quote_status(quote['id'], 'rejected')
        with pytest.raises(ValidationError):
            billing.convert_quote_to_invoice(quote['id'])


@pytest.mark.unit
class TestJobInvoices:
    """Tests for invoicing a job"""

    def test_rental_days_and_consumables(self, billing, factory):
        job = factory.job()
        product = factory.product(default_price_per_day=25.0)
        factory.assignment(job, product, quantity=2, return_date=job.scheduled_date + timedelta(days=3))
        invoice = billing.create_invoice_from_job(job.id)

        rental = invoice['items'][0]
        assert rental['quantity'] == 2
        assert rental['unit_price'] == 75.0
        assert invoice['subtotal'] == 150.0
        assert invoice['tax_source'] == 'config_default'

    def test_same_day_rental_bills_one_day(self, billing, factory):
        job = factory.job()
        factory.assignment(job, factory.product(default_price_per_day=25.0))
        assert billing.create_invoice_from_job(job.id)['subtotal'] == 25.0

    def test_total_price_fallback(self, billing, factory):
        job = factory.job(job_type='on-site-survey', total_price=120.0)
        invoice = billing.create_invoice_from_job(job.id)
        assert invoice['items'][0]['product_name'] == 'On Site Survey service'
        assert invoice['total_amount'] == 120.0

    def test_nothing_billable(self, billing, factory):
        job = factory.job()
        with pytest.raises(ValidationError):
            billing.create_invoice_from_job(job.id)


@pytest.mark.unit
class TestPayments:
    """Tests for recording payments"""

    def _invoice(self, billing, factory, **customer_fields):
        customer = factory.customer(**customer_fields)
        return billing.create_invoice({'customer_id': customer.id, 'items': ITEMS})

    def test_partial_then_paid(self, billing, factory, email_client, db_session, org_id):
        invoice = self._invoice(billing, factory)
        first = billing.record_payment(invoice['id'], {'amount': 50, 'payment_method': 'check'})
        assert first['invoice']['status'] == 'partial'
        assert first['invoice']['amount_paid'] == 50.0
        assert first['email']['success'] is True

        second = billing.record_payment(invoice['id'], {'amount': 150})
        assert second['invoice']['status'] == 'paid'
        assert second['invoice']['paid_at'] is not None
        assert len(billing.get_invoice(invoice['id'])['payments']) == 2
        assert email_client.send_email.call_count == 2

        events = EventLogger(db_session, org_id).get_entity_history('invoice', invoice['id'])
        assert 'PAYMENT_RECEIVED' in [e['event_type'] for e in events]

    def test_overpayment_rejected(self, billing, factory):
        invoice = self._invoice(billing, factory)
        with pytest.raises(ValidationError):
            billing.record_payment(invoice['id'], {'amount': 200.01})

    def test_non_positive_rejected(self, billing, factory):
        invoice = self._invoice(billing, factory)
        with pytest.raises(ValidationError):
            billing.record_payment(invoice['id'], {'amount': 0})

    def test_no_email_without_address(self, billing, factory, email_client):
        invoice = self._invoice(billing, factory, email=None)
        result = billing.record_payment(invoice['id'], {'amount': 10})
        assert result['email'] is None
        email_client.send_email.assert_not_called()


@pytest.mark.unit
class TestOverdueReminders:
    """Tests for overdue invoice reminders"""

    def test_reminder_sent_once_per_interval(self, billing, factory, email_client):
        customer = factory.customer()
        billing.create_invoice({'customer_id': customer.id, 'items': ITEMS,
                                'invoice_date': '2026-01-01', 'due_date': '2026-01-31'})

        assert billing.send_overdue_reminders(today=date(2026, 3, 1)) == {'checked': 1, 'sent': 1, 'skipped': 0}
        assert billing.send_overdue_reminders(today=date(2026, 3, 2)) == {'checked': 1, 'sent': 0, 'skipped': 1}
        assert email_client.send_email.call_count == 1

    def test_stale_reminder_is_resent(self, billing, factory, db_session):
        customer = factory.customer()
        invoice = billing.create_invoice({'customer_id': customer.id, 'items': ITEMS,
                                          'invoice_date': '2026-01-01', 'due_date': '2026-01-31'})
        db_session.get(Invoice, invoice['id']).last_reminder_at = datetime.utcnow() - timedelta(days=8)
        assert billing.send_overdue_reminders(today=date(2026, 3, 1))['sent'] == 1

    def test_customer_without_email_skipped(self, billing, factory):
        customer = factory.customer(email=None)
        billing.create_invoice({'customer_id': customer.id, 'items': ITEMS,
                                'invoice_date': '2026-01-01', 'due_date': '2026-01-31'})
        assert billing.send_overdue_reminders(today=date(2026, 3, 1))['skipped'] == 1


@pytest.mark.unit
class TestDocuments:
    """Tests for PDF rendering and sending"""

    def test_render_pdf(self, billing, factory):
        customer = factory.customer()
        quote = billing.create_quote({'customer_id': customer.id, 'items': ITEMS})
        pdf, filename = billing.render_pdf('quote', quote['id'])
        assert pdf.startswith(b'%PDF')
        assert filename == f"{quote['quote_number']}.pdf"

    def test_send_marks_draft_sent_with_attachment(self, billing, factory, email_client):
        customer = factory.customer()
        invoice = billing.create_invoice({'customer_id': customer.id, 'items': ITEMS})
        result = billing.send_document('invoice', invoice['id'], message='Thanks for your business')

        assert result == {'success': True, 'email_id': 'em_test_1'}
        args, kwargs = email_client.send_email.call_args
        assert args[0] == 'ops@lakeside.test'
        assert kwargs['attachments'][0]['filename'] == f"{invoice['invoice_number']}.pdf"

        sent = billing.get_invoice(invoice['id'])
        assert sent['status'] == 'sent'
        assert sent['sent_at'] is not None

    def test_send_without_email(self, billing, factory):
        customer = factory.customer(email=None)
        quote = billing.create_quote({'customer_id': customer.id, 'items': ITEMS})
        assert billing.send_document('quote', quote['id']) == {
            'success': False, 'error': 'Customer has no email address'}

    def test_send_failure_keeps_status(self, billing, factory, email_client):
        email_client.send_email.return_value = {'success': False, 'error': 'Email provider error 500: boom'}
        customer = factory.customer()
        quote = billing.create_quote({'customer_id': customer.id, 'items': ITEMS})
        result = billing.send_document('quote', quote['id'])
        assert result['success'] is False
        assert billing.get_quote(quote['id'])['status'] == 'draft'

    def test_unknown_kind(self, billing):
        with pytest.raises(ValidationError):
            billing.render_pdf('receipt', 'x')
