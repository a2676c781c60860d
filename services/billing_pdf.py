"""
Quote and invoice PDF rendering with reportlab.
"""

import io
import logging
from datetime import datetime
from typing import Dict, Any
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

logger = logging.getLogger(__name__)

BRAND_COLOR = colors.HexColor('#2563eb')


def _money(value) -> str:
    return f"${float(value or 0):,.2f}"


def _p(text, style):
    return Paragraph(escape(str(text or '')).replace('\n', '<br/>'), style)


def render_billing_pdf(document: Dict[str, Any], kind: str, company: Dict[str, Any],
                       customer: Dict[str, Any]) -> bytes:
    """
    Render a quote or invoice to PDF bytes.

    Args:
        document: Quote.to_dict() or Invoice.to_dict()
        kind: 'quote' or 'invoice'
        company: CompanySettings.to_dict() (company_name, address, phone, email)
        customer: Customer.to_dict()
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter,
                            leftMargin=0.75 * inch, rightMargin=0.75 * inch,
                            topMargin=0.75 * inch, bottomMargin=0.75 * inch)
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'DocTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=BRAND_COLOR,
        spaceAfter=12,
    )
    small = ParagraphStyle('Small', parent=styles['Normal'], fontSize=9, leading=12)

    is_quote = kind == 'quote'
    label = 'QUOTE' if is_quote else 'INVOICE'
    number = document.get('quote_number') if is_quote else document.get('invoice_number')

    story = []

    # Header: company block left, document block right
    company_lines = [company.get('company_name') or 'PortaPro']
    for key in ('company_address', 'company_phone', 'company_email'):
        if company.get(key):
            company_lines.append(company[key])

    if is_quote:
        created = (document.get('created_at') or datetime.utcnow().isoformat())[:10]
        doc_lines = [f"{label} #{number}", f"Date: {created}"]
        if document.get('expiration_date'):
            doc_lines.append(f"Valid until: {document['expiration_date']}")
    else:
        doc_lines = [f"{label} #{number}", f"Date: {document.get('invoice_date')}"]
        if document.get('due_date'):
            doc_lines.append(f"Due: {document['due_date']}")

    header = Table(
        [[_p('\n'.join(company_lines), small), _p('\n'.join(doc_lines), small)]],
        colWidths=[4 * inch, 3 * inch],
    )
    header.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('ALIGN', (1, 0), (1, 0), 'RIGHT'),
    ]))
    story.append(Paragraph(label, title_style))
    story.append(header)
    story.append(Spacer(1, 0.3 * inch))

    # Customer block
    bill_to = [customer.get('name') or '']
    street = customer.get('billing_street') or customer.get('service_street')
    city = customer.get('billing_city') or customer.get('service_city')
    state = customer.get('billing_state') or customer.get('service_state')
    zip_code = customer.get('billing_zip') or customer.get('service_zip')
    if street:
        bill_to.append(street)
    city_line = ', '.join(p for p in (city, ' '.join(p for p in (state, zip_code) if p)) if p)
    if city_line:
        bill_to.append(city_line)
    for key in ('email', 'phone'):
        if customer.get(key):
            bill_to.append(customer[key])
    story.append(Paragraph('Bill To', styles['Heading3']))
    story.append(_p('\n'.join(bill_to), styles['Normal']))
    story.append(Spacer(1, 0.3 * inch))

    # Items
    table_data = [['Item', 'Description', 'Qty', 'Unit Price', 'Total']]
    for item in document.get('items', []):
        quantity = item.get('quantity') or 0
        table_data.append([
            _p(item.get('product_name'), small),
            _p(item.get('description'), small),
            f"{quantity:g}",
            _money(item.get('unit_price')),
            _money(item.get('line_total')),
        ])
    items_table = Table(table_data, colWidths=[1.8 * inch, 2.6 * inch, 0.6 * inch, 1 * inch, 1 * inch],
                        repeatRows=1)
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), BRAND_COLOR),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('ALIGN', (2, 0), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.lightgrey),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
    ]))
    story.append(items_table)
    story.append(Spacer(1, 0.2 * inch))

    # Totals; optional rows only when non-zero
    totals = [['Subtotal', _money(document.get('subtotal'))]]
    if (document.get('discount_amount') or 0) > 0:
        if document.get('discount_type') == 'percentage':
            totals.append([f"Discount ({document.get('discount_value'):g}%)", f"-{_money(document['discount_amount'])}"])
        else:
            totals.append(['Discount', f"-{_money(document['discount_amount'])}"])
    if (document.get('additional_fees') or 0) > 0:
        totals.append(['Additional Fees', _money(document['additional_fees'])])
    if (document.get('tax_amount') or 0) > 0:
        totals.append([f"Tax ({document.get('tax_rate'):g}%)", _money(document['tax_amount'])])
    totals.append(['Total', _money(document.get('total_amount'))])
    if not is_quote and (document.get('amount_paid') or 0) > 0:
        totals.append(['Paid', _money(document['amount_paid'])])
        totals.append(['Balance Due', _money(document.get('balance_due'))])

    totals_table = Table(totals, colWidths=[1.5 * inch, 1.2 * inch], hAlign='RIGHT')
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, len(totals) - 1), (-1, len(totals) - 1), 'Helvetica-Bold'),
        ('LINEABOVE', (0, -1), (-1, -1), 1, colors.black),
    ]))
    story.append(totals_table)

    for heading, key in (('Notes', 'notes'), ('Terms & Conditions', 'terms')):
        if document.get(key):
            story.append(Spacer(1, 0.25 * inch))
            story.append(Paragraph(heading, styles['Heading3']))
            story.append(_p(document[key], small))

    doc.build(story)
    pdf = buffer.getvalue()
    logger.debug(f"Rendered {kind} PDF {number} ({len(pdf)} bytes)")
    return pdf
