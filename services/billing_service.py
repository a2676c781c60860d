"""
Billing Service - quotes, invoices, payments and document delivery.

Totals:
    subtotal  = sum(line_total)
    discount  = subtotal * value / 100 (percentage) or value (fixed), clamped to [0, subtotal]
    taxable   = subtotal - discount + additional_fees
    tax       = taxable * tax_rate / 100
    total     = taxable + tax

All money is rounded to cents with ROUND_HALF_UP.
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Dict, Any

from sqlalchemy.orm import Session

from database.models import Customer, Invoice, InvoiceItem, Job, Payment, Quote, QuoteItem
from database.seed import get_or_create_company_settings
from services.billing_pdf import render_billing_pdf
from services.email_service import EmailClient, config_value
from services.email_templates import (
    wrap_email, document_email, invoice_reminder_email, payment_confirmation_email
)
from services.event_logger import EventLogger
from services.tax_service import TaxService
from validators import (
    NotFoundError, ValidationError, parse_date, parse_number, validate_billing_request
)

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')

QUOTE_STATUSES = ['draft', 'sent', 'accepted', 'rejected', 'expired']
INVOICE_STATUSES = ['draft', 'sent', 'partial', 'paid', 'cancelled']
UNPAID_STATUSES = ('draft', 'sent', 'partial')
REMINDER_INTERVAL_DAYS = 7


def to_money(value) -> Decimal:
    """Round any number to cents, half up."""
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity, unit_price) -> Decimal:
    return to_money(Decimal(str(quantity or 0)) * Decimal(str(unit_price or 0)))


def calculate_totals(items: List[Dict], discount_type: str = 'percentage', discount_value=0,
                     additional_fees=0, tax_rate=0) -> Dict[str, float]:
    """Compute subtotal, discount, tax and total for a set of line items."""
    subtotal = to_money(sum((line_total(i.get('quantity'), i.get('unit_price')) for i in items), Decimal('0')))

    value = Decimal(str(discount_value or 0))
    if discount_type == 'percentage':
        discount = to_money(subtotal * value / 100)
    else:
        discount = to_money(value)
    discount = min(max(discount, Decimal('0')), subtotal)

    fees = to_money(additional_fees)
    taxable = subtotal - discount + fees
    tax = to_money(taxable * Decimal(str(tax_rate or 0)) / 100)
    total = to_money(taxable + tax)

    return {
        'subtotal': float(subtotal),
        'discount_amount': float(discount),
        'additional_fees': float(fees),
        'tax_amount': float(tax),
        'total_amount': float(total),
    }


def is_overdue(invoice: Invoice, today: date = None) -> bool:
    today = today or date.today()
    return (
        invoice.status in UNPAID_STATUSES
        and invoice.due_date is not None
        and invoice.due_date < today
    )


class BillingService:
    """Repository for quote, invoice and payment operations."""

    def __init__(self, session: Session, organization_id: str, config=None,
                 user_id: str = None, email_client: EmailClient = None):
        self.session = session
        self.organization_id = organization_id
        self.config = config
        self.email = email_client or EmailClient(config)
        self.events = EventLogger(session, organization_id, 'user' if user_id else 'system', user_id)
        self.tax = TaxService(session, organization_id, config)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _customer(self, customer_id: str) -> Customer:
        customer = self.session.query(Customer).filter(
            Customer.id == customer_id,
            Customer.organization_id == self.organization_id
        ).first()
        if not customer:
            raise NotFoundError('customer', customer_id)
        return customer

    def _quote(self, quote_id: str) -> Quote:
        quote = self.session.query(Quote).filter(
            Quote.id == quote_id,
            Quote.organization_id == self.organization_id
        ).first()
        if not quote:
            raise NotFoundError('quote', quote_id)
        return quote

    def _invoice(self, invoice_id: str) -> Invoice:
        invoice = self.session.query(Invoice).filter(
            Invoice.id == invoice_id,
            Invoice.organization_id == self.organization_id
        ).first()
        if not invoice:
            raise NotFoundError('invoice', invoice_id)
        return invoice

    def _next_number(self, model, column, prefix: str, year: int) -> str:
        """<prefix>-<YYYY>-<NNNN>, one sequence per organization per year."""
        stem = f"{prefix}-{year}-"
        numbers = self.session.query(column).filter(
            model.organization_id == self.organization_id,
            column.like(f"{stem}%")
        ).all()
        highest = 0
        for (number,) in numbers:
            suffix = number[len(stem):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{stem}{highest + 1:04d}"

    def _payment_terms(self) -> int:
        settings = get_or_create_company_settings(self.session, self.organization_id)
        if settings.payment_terms_days:
            return settings.payment_terms_days
        return int(config_value(self.config, 'DEFAULT_PAYMENT_TERMS_DAYS', 30))

    @staticmethod
    def _build_items(item_cls, items: List[Dict]):
        rows = []
        for index, item in enumerate(items):
            rows.append(item_cls(
                product_name=item['product_name'],
                description=item.get('description'),
                quantity=float(item.get('quantity') or 0),
                unit_price=float(item.get('unit_price') or 0),
                line_total=float(line_total(item.get('quantity'), item.get('unit_price'))),
                sort_order=index,
            ))
        return rows

    @staticmethod
    def _apply_totals(doc, items: List[Dict], data: Dict):
        doc.discount_type = data.get('discount_type') or doc.discount_type or 'percentage'
        doc.discount_value = parse_number(data.get('discount_value'), 'discount_value',
                                          doc.discount_value or 0, min_value=0)
        doc.additional_fees = parse_number(data.get('additional_fees'), 'additional_fees',
                                           doc.additional_fees or 0, min_value=0)
        totals = calculate_totals(items, doc.discount_type, doc.discount_value,
                                  doc.additional_fees, doc.tax_rate)
        for key, value in totals.items():
            setattr(doc, key, value)

    def _validate(self, data: Dict):
        is_valid, error = validate_billing_request(data)
        if not is_valid:
            raise ValidationError(error)

    # =========================================================================
    # QUOTES
    # =========================================================================

    def list_quotes(self, status: str = None, customer_id: str = None) -> List[Dict]:
        query = self.session.query(Quote).filter(Quote.organization_id == self.organization_id)
        if status:
            query = query.filter(Quote.status == status)
        if customer_id:
            query = query.filter(Quote.customer_id == customer_id)
        return [q.to_dict() for q in query.order_by(Quote.created_at.desc()).all()]

    def get_quote(self, quote_id: str) -> Dict:
        return self._quote(quote_id).to_dict()

    def create_quote(self, data: Dict) -> Dict:
        self._validate(data)
        customer = self._customer(data['customer_id'])
        settings = get_or_create_company_settings(self.session, self.organization_id)
        today = date.today()
        valid_days = int(config_value(self.config, 'QUOTE_VALID_DAYS', 30))

        if data.get('tax_rate') not in (None, ''):
            tax_rate = float(data['tax_rate'])
        else:
            tax_rate = self.tax.resolve_for_customer(customer.id)['rate_percent']

        items = data.get('items', [])
        quote = Quote(
            organization_id=self.organization_id,
            quote_number=self._next_number(Quote, Quote.quote_number, 'Q', today.year),
            customer_id=customer.id,
            job_id=data.get('job_id'),
            status='draft',
            tax_rate=tax_rate,
            expiration_date=parse_date(data.get('expiration_date'), 'expiration_date')
            or today + timedelta(days=valid_days),
            notes=data.get('notes'),
            terms=data.get('terms') or settings.quote_terms,
        )
        quote.items = self._build_items(QuoteItem, items)
        self._apply_totals(quote, items, data)
        self.session.add(quote)
        self.session.flush()

        self.events.log_create('quote', quote.id, {'quote_number': quote.quote_number,
                                                   'total_amount': quote.total_amount})
        logger.info(f"Created quote {quote.quote_number} for customer {customer.id}: {quote.total_amount}")
        return quote.to_dict()

    def update_quote(self, quote_id: str, data: Dict) -> Dict:
        quote = self._quote(quote_id)
        if quote.status == 'accepted' or quote.invoice_id:
            raise ValidationError('Accepted quotes cannot be edited', 'status')

        merged = {'customer_id': quote.customer_id, 'items': [i.to_dict() for i in quote.items]}
        merged.update(data)
        self._validate(merged)

        for key in ('notes', 'terms'):
            if key in data:
                setattr(quote, key, data[key])
        if 'expiration_date' in data:
            quote.expiration_date = parse_date(data['expiration_date'], 'expiration_date')
        if data.get('tax_rate') not in (None, ''):
            quote.tax_rate = float(data['tax_rate'])

        items = merged['items']
        if 'items' in data:
            quote.items = self._build_items(QuoteItem, items)
        self._apply_totals(quote, items, data)
        quote.updated_at = datetime.utcnow()
        self.session.flush()
        return quote.to_dict()

    def update_quote_status(self, quote_id: str, status: str) -> Dict:
        if status not in QUOTE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(QUOTE_STATUSES)}", 'status')
        quote = self._quote(quote_id)
        if quote.status == 'accepted' and status != 'accepted':
            raise ValidationError('Accepted quotes are final', 'status')

        old_status = quote.status
        quote.status = status
        self.session.flush()
        self.events.log_status_change('quote', quote.id, old_status, status)
        return quote.to_dict()

    def expire_quotes(self, today: date = None) -> int:
        """Mark draft/sent quotes past their expiration date as expired."""
        today = today or date.today()
        quotes = self.session.query(Quote).filter(
            Quote.organization_id == self.organization_id,
            Quote.status.in_(('draft', 'sent')),
            Quote.expiration_date < today
        ).all()
        for quote in quotes:
            self.events.log_status_change('quote', quote.id, quote.status, 'expired')
            quote.status = 'expired'
        self.session.flush()
        return len(quotes)

    def convert_quote_to_invoice(self, quote_id: str) -> Dict:
        """Copy a quote into a new invoice; the quote becomes accepted."""
        quote = self._quote(quote_id)
        if quote.invoice_id:
            raise ValidationError('Quote has already been converted to an invoice', 'invoice_id')
        if quote.status in ('rejected', 'expired'):
            raise ValidationError(f"Cannot convert a {quote.status} quote", 'status')

        today = date.today()
        settings = get_or_create_company_settings(self.session, self.organization_id)
        invoice = Invoice(
            organization_id=self.organization_id,
            invoice_number=self._next_number(Invoice, Invoice.invoice_number, 'INV', today.year),
            customer_id=quote.customer_id,
            job_id=quote.job_id,
            quote_id=quote.id,
            status='draft',
            invoice_date=today,
            due_date=today + timedelta(days=self._payment_terms()),
            subtotal=quote.subtotal,
            discount_type=quote.discount_type,
            discount_value=quote.discount_value,
            discount_amount=quote.discount_amount,
            additional_fees=quote.additional_fees,
            tax_rate=quote.tax_rate,
            tax_amount=quote.tax_amount,
            total_amount=quote.total_amount,
            amount_paid=0,
            notes=quote.notes,
            terms=settings.invoice_terms or quote.terms,
        )
        invoice.items = self._build_items(InvoiceItem, [i.to_dict() for i in quote.items])
        self.session.add(invoice)
        self.session.flush()

        old_status = quote.status
        quote.status = 'accepted'
        quote.invoice_id = invoice.id
        self.session.flush()

        self.events.log_status_change('quote', quote.id, old_status, 'accepted')
        self.events.log('quote', quote.id, 'QUOTE_ACCEPTED', metadata={'invoice_id': invoice.id})
        self.events.log('invoice', invoice.id, 'INVOICE_GENERATED',
                        metadata={'quote_id': quote.id, 'total_amount': invoice.total_amount})
        logger.info(f"Converted quote {quote.quote_number} to invoice {invoice.invoice_number}")
        return invoice.to_dict()

    # =========================================================================
    # INVOICES
    # =========================================================================

    def list_invoices(self, status: str = None, customer_id: str = None,
                      overdue_only: bool = False) -> List[Dict]:
        query = self.session.query(Invoice).filter(Invoice.organization_id == self.organization_id)
        if status:
            query = query.filter(Invoice.status == status)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        invoices = query.order_by(Invoice.invoice_date.desc()).all()
        if overdue_only:
            today = date.today()
            invoices = [i for i in invoices if is_overdue(i, today)]
        result = []
        for invoice in invoices:
            data = invoice.to_dict()
            data['is_overdue'] = is_overdue(invoice)
            result.append(data)
        return result

    def get_invoice(self, invoice_id: str) -> Dict:
        invoice = self._invoice(invoice_id)
        data = invoice.to_dict()
        data['payments'] = [p.to_dict() for p in invoice.payments]
        data['is_overdue'] = is_overdue(invoice)
        return data

    def _new_invoice(self, customer: Customer, items: List[Dict], data: Dict,
                     tax_rate: float, job_id: str = None) -> Invoice:
        today = parse_date(data.get('invoice_date'), 'invoice_date') or date.today()
        settings = get_or_create_company_settings(self.session, self.organization_id)
        invoice = Invoice(
            organization_id=self.organization_id,
            invoice_number=self._next_number(Invoice, Invoice.invoice_number, 'INV', today.year),
            customer_id=customer.id,
            job_id=job_id,
            status='draft',
            invoice_date=today,
            due_date=parse_date(data.get('due_date'), 'due_date')
            or today + timedelta(days=self._payment_terms()),
            tax_rate=tax_rate,
            amount_paid=0,
            notes=data.get('notes'),
            terms=data.get('terms') or settings.invoice_terms,
        )
        invoice.items = self._build_items(InvoiceItem, items)
        self._apply_totals(invoice, items, data)
        self.session.add(invoice)
        self.session.flush()
        self.events.log('invoice', invoice.id, 'INVOICE_GENERATED',
                        metadata={'job_id': job_id, 'total_amount': invoice.total_amount})
        logger.info(f"Created invoice {invoice.invoice_number} for customer {customer.id}: {invoice.total_amount}")
        return invoice

    def create_invoice(self, data: Dict) -> Dict:
        self._validate(data)
        customer = self._customer(data['customer_id'])
        if data.get('tax_rate') not in (None, ''):
            tax_rate = float(data['tax_rate'])
        else:
            tax_rate = self.tax.resolve_for_customer(customer.id)['rate_percent']
        return self._new_invoice(customer, data.get('items', []), data, tax_rate,
                                 job_id=data.get('job_id')).to_dict()

    @staticmethod
    def job_line_items(job: Job) -> List[Dict]:
        """Rental lines from equipment assignments plus consumable lines."""
        items = []
        for assignment in job.equipment_assignments:
            product = assignment.product
            end = assignment.return_date or assignment.assigned_date
            days = max(1, (end - assignment.assigned_date).days)
            items.append({
                'product_name': product.name if product else 'Rental unit',
                'description': f"{days} day{'s' if days != 1 else ''} rental",
                'quantity': assignment.quantity or 1,
                'unit_price': float(to_money((product.default_price_per_day or 0) * days)) if product else 0,
            })
        for usage in job.consumables:
            items.append({
                'product_name': usage.consumable.name if usage.consumable else 'Consumable',
                'description': f"{usage.billing_method} consumable",
                'quantity': usage.quantity or 0,
                'unit_price': usage.unit_price or 0,
            })
        if not items and job.total_price:
            items.append({
                'product_name': f"{job.job_type.replace('-', ' ').title()} service",
                'description': f"Job {job.job_number}",
                'quantity': 1,
                'unit_price': job.total_price,
            })
        return items

    def create_invoice_from_job(self, job_id: str, data: Dict = None) -> Dict:
        data = data or {}
        job = self.session.query(Job).filter(
            Job.id == job_id,
            Job.organization_id == self.organization_id
        ).first()
        if not job:
            raise NotFoundError('job', job_id)

        items = self.job_line_items(job)
        if not items:
            raise ValidationError('Job has no billable equipment, consumables or price')

        tax = self.tax.resolve_for_customer(job.customer_id)
        invoice = self._new_invoice(job.customer, items, data, tax['rate_percent'], job_id=job.id)
        result = invoice.to_dict()
        result['tax_source'] = tax['source']
        return result

    def update_invoice_status(self, invoice_id: str, status: str) -> Dict:
        if status not in INVOICE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(INVOICE_STATUSES)}", 'status')
        invoice = self._invoice(invoice_id)
        old_status = invoice.status
        invoice.status = status
        self.session.flush()
        self.events.log_status_change('invoice', invoice.id, old_status, status)
        return invoice.to_dict()

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    def record_payment(self, invoice_id: str, data: Dict) -> Dict[str, Any]:
        """Apply a payment; amount must be positive and no more than the balance."""
        invoice = self._invoice(invoice_id)
        if invoice.status == 'cancelled':
            raise ValidationError('Cannot record a payment on a cancelled invoice', 'status')

        amount = to_money(parse_number(data.get('amount'), 'amount', 0))
        balance = to_money(invoice.total_amount) - to_money(invoice.amount_paid)
        if amount <= 0:
            raise ValidationError('Payment amount must be greater than zero', 'amount')
        if amount > balance:
            raise ValidationError(f"Payment amount exceeds balance due of {balance}", 'amount')

        payment = Payment(
            organization_id=self.organization_id,
            invoice_id=invoice.id,
            amount=float(amount),
            payment_method=data.get('payment_method'),
            reference_number=data.get('reference_number'),
            payment_date=parse_date(data.get('payment_date'), 'payment_date') or date.today(),
            notes=data.get('notes'),
        )
        self.session.add(payment)

        paid = to_money(invoice.amount_paid) + amount
        invoice.amount_paid = float(paid)
        old_status = invoice.status
        if paid >= to_money(invoice.total_amount):
            invoice.status = 'paid'
            invoice.paid_at = datetime.utcnow()
        else:
            invoice.status = 'partial'
        self.session.flush()

        self.events.log('invoice', invoice.id, 'PAYMENT_RECEIVED',
                        description=f"Payment of {amount} received on {invoice.invoice_number}",
                        metadata={'payment_id': payment.id, 'amount': float(amount),
                                  'old_status': old_status, 'new_status': invoice.status})
        logger.info(f"Recorded payment {amount} on invoice {invoice.invoice_number} ({invoice.status})")

        email_result = None
        customer = invoice.customer
        if customer and customer.email:
            html = payment_confirmation_email(
                invoice_number=invoice.invoice_number,
                customer_name=customer.name,
                amount_paid=float(amount),
                payment_method=payment.payment_method,
                payment_date=payment.payment_date.isoformat(),
                invoice_id=invoice.id,
                remaining_balance=invoice.balance_due,
            )
            email_result = self.email.send_email(
                customer.email,
                f"Payment received - Invoice {invoice.invoice_number}",
                wrap_email('Payment Received', html, self._company_name()),
            )
            if not email_result.get('success'):
                logger.error(f"Payment confirmation for {invoice.invoice_number} failed: {email_result.get('error')}")

        return {'payment': payment.to_dict(), 'invoice': invoice.to_dict(), 'email': email_result}

    # =========================================================================
    # OVERDUE
    # =========================================================================

    def overdue_invoices(self, today: date = None) -> List[Invoice]:
        today = today or date.today()
        return self.session.query(Invoice).filter(
            Invoice.organization_id == self.organization_id,
            Invoice.status.in_(UNPAID_STATUSES),
            Invoice.due_date < today
        ).order_by(Invoice.due_date).all()

    def send_overdue_reminders(self, today: date = None) -> Dict[str, int]:
        """Email customers with overdue invoices, at most once per reminder interval."""
        today = today or date.today()
        cutoff = datetime.utcnow() - timedelta(days=REMINDER_INTERVAL_DAYS)
        result = {'checked': 0, 'sent': 0, 'skipped': 0}

        for invoice in self.overdue_invoices(today):
            result['checked'] += 1
            customer = invoice.customer
            if not customer or not customer.email or (
                    invoice.last_reminder_at and invoice.last_reminder_at > cutoff):
                result['skipped'] += 1
                continue

            days_overdue = (today - invoice.due_date).days
            html = invoice_reminder_email(
                invoice_number=invoice.invoice_number,
                customer_name=customer.name,
                amount=invoice.balance_due,
                due_date=invoice.due_date.isoformat(),
                invoice_id=invoice.id,
                days_overdue=days_overdue,
            )
            sent = self.email.send_email(
                customer.email,
                f"Overdue invoice {invoice.invoice_number}",
                wrap_email('Invoice Reminder', html, self._company_name()),
            )
            if sent.get('success'):
                invoice.last_reminder_at = datetime.utcnow()
                self.events.log('invoice', invoice.id, 'PAYMENT_OVERDUE',
                                metadata={'days_overdue': days_overdue})
                result['sent'] += 1
            else:
                logger.error(f"Reminder for {invoice.invoice_number} failed: {sent.get('error')}")
                result['skipped'] += 1

        self.session.flush()
        logger.info(f"Overdue reminders: {result}")
        return result

    # =========================================================================
    # DOCUMENTS
    # =========================================================================

    def _company_name(self) -> str:
        settings = get_or_create_company_settings(self.session, self.organization_id)
        return settings.company_name or config_value(self.config, 'COMPANY_NAME', 'PortaPro')

    def _load(self, kind: str, doc_id: str):
        if kind == 'quote':
            return self._quote(doc_id)
        if kind == 'invoice':
            return self._invoice(doc_id)
        raise ValidationError("kind must be 'quote' or 'invoice'", 'kind')

    def render_pdf(self, kind: str, doc_id: str):
        """Returns (pdf_bytes, filename)."""
        doc = self._load(kind, doc_id)
        settings = get_or_create_company_settings(self.session, self.organization_id)
        company = settings.to_dict()
        company['company_name'] = self._company_name()
        pdf = render_billing_pdf(doc.to_dict(), kind, company, doc.customer.to_dict())
        number = doc.quote_number if kind == 'quote' else doc.invoice_number
        return pdf, f"{number}.pdf"

    def send_document(self, kind: str, doc_id: str, to: str = None,
                      message: str = None) -> Dict[str, Any]:
        """
        Email a quote or invoice with its PDF attached.

        Returns:
            {'success': True, 'email_id': ...} or {'success': False, 'error': ...}
        """
        doc = self._load(kind, doc_id)
        recipient = to or (doc.customer.email if doc.customer else None)
        if not recipient:
            return {'success': False, 'error': 'Customer has no email address'}

        pdf, filename = self.render_pdf(kind, doc_id)
        company_name = self._company_name()
        if kind == 'quote':
            label, number = 'Quote', doc.quote_number
            date_label, date_value = 'Valid Until', doc.expiration_date
        else:
            label, number = 'Invoice', doc.invoice_number
            date_label, date_value = 'Due Date', doc.due_date

        html = document_email(
            doc_label=label,
            doc_number=number,
            customer_name=doc.customer.name,
            total=doc.total_amount,
            date_label=date_label,
            date_value=date_value.isoformat() if date_value else None,
            company_name=company_name,
            message=message,
        )
        result = self.email.send_email(
            recipient,
            f"{label} {number} from {company_name}",
            wrap_email(f"{label} {number}", html, company_name),
            attachments=[{'filename': filename, 'content': pdf}],
        )
        if not result.get('success'):
            logger.error(f"Sending {kind} {number} failed: {result.get('error')}")
            return {'success': False, 'error': result.get('error')}

        if doc.status == 'draft':
            self.events.log_status_change(kind, doc.id, 'draft', 'sent')
            doc.status = 'sent'
        doc.sent_at = datetime.utcnow()
        self.session.flush()
        self.events.log(kind, doc.id, 'QUOTE_SENT' if kind == 'quote' else 'INVOICE_SENT',
                        metadata={'to': recipient, 'email_id': result.get('email_id')})
        logger.info(f"Sent {kind} {number} to {recipient}")
        return {'success': True, 'email_id': result.get('email_id')}
