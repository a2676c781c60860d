"""
Billing Routes Blueprint

Handles quotes, invoices and payments:
- /api/quotes: list/create; /api/quotes/<id>: get/update; /status; /convert
- /api/invoices: list (status, customer, overdue)/create; /from-job/<job_id>
- /api/invoices/<id>/payments: record a payment
- /api/<quotes|invoices>/<id>/pdf: PDF download
- /api/<quotes|invoices>/<id>/send: email the document with its PDF
- /api/invoices/send-reminders: overdue reminders (service role)
"""

import io
import logging
from flask import Blueprint, current_app, request, jsonify, send_file

from app.utils.helpers import (
    get_json_body, parse_bool, current_organization_id, current_user_id, json_errors
)
from database.connection import get_db_session
from security import require_api_key
from services.billing_service import BillingService
from validators import ValidationError

logger = logging.getLogger(__name__)

# Create blueprint
billing_bp = Blueprint('billing_bp', __name__)

DOCUMENT_KINDS = {'quotes': 'quote', 'invoices': 'invoice'}


def billing_service(session):
    return BillingService(session, current_organization_id(session), current_app.config, current_user_id())


def _status(data):
    if not data.get('status'):
        raise ValidationError('status is required', 'status')
    return data['status']


# ============================================================================
# QUOTES
# ============================================================================

@billing_bp.route('/api/quotes', methods=['GET'])
@json_errors('listing quotes')
def list_quotes():
    with get_db_session() as session:
        quotes = billing_service(session).list_quotes(
            status=request.args.get('status'),
            customer_id=request.args.get('customer_id'),
        )
        return jsonify({'success': True, 'quotes': quotes, 'count': len(quotes)})


@billing_bp.route('/api/quotes', methods=['POST'])
@json_errors('creating quote')
def create_quote():
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'quote': billing_service(session).create_quote(data)}), 201


@billing_bp.route('/api/quotes/<quote_id>', methods=['GET'])
@json_errors('getting quote')
def get_quote(quote_id):
    with get_db_session() as session:
        return jsonify({'success': True, 'quote': billing_service(session).get_quote(quote_id)})


@billing_bp.route('/api/quotes/<quote_id>', methods=['PUT', 'PATCH'])
@json_errors('updating quote')
def update_quote(quote_id):
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'quote': billing_service(session).update_quote(quote_id, data)})


@billing_bp.route('/api/quotes/<quote_id>/status', methods=['POST'])
@json_errors('updating quote status')
def update_quote_status(quote_id):
    status = _status(get_json_body())
    with get_db_session() as session:
        return jsonify({'success': True, 'quote': billing_service(session).update_quote_status(quote_id, status)})


@billing_bp.route('/api/quotes/<quote_id>/convert', methods=['POST'])
@json_errors('converting quote')
def convert_quote(quote_id):
    with get_db_session() as session:
        invoice = billing_service(session).convert_quote_to_invoice(quote_id)
        return jsonify({'success': True, 'invoice': invoice}), 201


# ============================================================================
# INVOICES & PAYMENTS
# ============================================================================

@billing_bp.route('/api/invoices', methods=['GET'])
@json_errors('listing invoices')
def list_invoices():
    with get_db_session() as session:
        invoices = billing_service(session).list_invoices(
            status=request.args.get('status'),
            customer_id=request.args.get('customer_id'),
            overdue_only=parse_bool(request.args.get('overdue')),
        )
        return jsonify({'success': True, 'invoices': invoices, 'count': len(invoices)})


@billing_bp.route('/api/invoices', methods=['POST'])
@json_errors('creating invoice')
def create_invoice():
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'invoice': billing_service(session).create_invoice(data)}), 201


@billing_bp.route('/api/invoices/from-job/<job_id>', methods=['POST'])
@json_errors('invoicing job')
def create_invoice_from_job(job_id):
    data = get_json_body()
    with get_db_session() as session:
        invoice = billing_service(session).create_invoice_from_job(job_id, data)
        return jsonify({'success': True, 'invoice': invoice}), 201


@billing_bp.route('/api/invoices/<invoice_id>', methods=['GET'])
@json_errors('getting invoice')
def get_invoice(invoice_id):
    with get_db_session() as session:
        return jsonify({'success': True, 'invoice': billing_service(session).get_invoice(invoice_id)})


@billing_bp.route('/api/invoices/<invoice_id>/status', methods=['POST'])
@json_errors('updating invoice status')
def update_invoice_status(invoice_id):
    status = _status(get_json_body())
    with get_db_session() as session:
        invoice = billing_service(session).update_invoice_status(invoice_id, status)
        return jsonify({'success': True, 'invoice': invoice})


@billing_bp.route('/api/invoices/<invoice_id>/payments', methods=['POST'])
@json_errors('recording payment')
def record_payment(invoice_id):
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, **billing_service(session).record_payment(invoice_id, data)}), 201


@billing_bp.route('/api/invoices/send-reminders', methods=['POST'])
@require_api_key
@json_errors('sending overdue reminders')
def send_overdue_reminders():
    with get_db_session() as session:
        return jsonify({'success': True, **billing_service(session).send_overdue_reminders()})


# ============================================================================
# DOCUMENTS
# ============================================================================

@billing_bp.route('/api/<collection>/<doc_id>/pdf', methods=['GET'])
@json_errors('rendering PDF')
def download_pdf(collection, doc_id):
    kind = DOCUMENT_KINDS.get(collection)
    if not kind:
        return jsonify({'success': False, 'error': 'Not found'}), 404
    with get_db_session() as session:
        pdf, filename = billing_service(session).render_pdf(kind, doc_id)
    return send_file(io.BytesIO(pdf), mimetype='application/pdf',
                     as_attachment=True, download_name=filename)


@billing_bp.route('/api/<collection>/<doc_id>/send', methods=['POST'])
@json_errors('sending document')
def send_document(collection, doc_id):
    kind = DOCUMENT_KINDS.get(collection)
    if not kind:
        return jsonify({'success': False, 'error': 'Not found'}), 404
    data = get_json_body()
    with get_db_session() as session:
        result = billing_service(session).send_document(kind, doc_id, to=data.get('to'),
                                                        message=data.get('message'))
    return jsonify(result), 200 if result['success'] else 502
