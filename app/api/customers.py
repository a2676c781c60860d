"""
Customer Routes Blueprint

Handles customers, service locations and tax rates:
- /api/customers: list (search, type) and create
- /api/customers/<id>: get, update, soft delete
- /api/customers/<id>/locations: service location CRUD
- /api/customers/import: CSV import (file upload or JSON 'csv' text)
- /api/customers/import/template: CSV template download
- /api/customers/<id>/tax-rate: resolved tax rate
- /api/tax-rates: upsert ZIP/state rates
"""

import logging
from flask import Blueprint, Response, current_app, request, jsonify

from app.utils.helpers import (
    get_json_body, parse_bool, current_organization_id, current_user_id, json_errors, not_found
)
from database.connection import get_db_session
from services.customer_repository import CustomerRepository
from services.tax_service import TaxService
from validators import ValidationError, parse_number, validate_import_upload

logger = logging.getLogger(__name__)

# Create blueprint
customers_bp = Blueprint('customers_bp', __name__)


# ============================================================================
# CUSTOMERS
# ============================================================================

@customers_bp.route('/api/customers', methods=['GET'])
@json_errors('listing customers')
def list_customers():
    with get_db_session() as session:
        repo = CustomerRepository(session, current_organization_id(session))
        customers = repo.list_customers(
            search=request.args.get('search'),
            customer_type=request.args.get('customer_type'),
            active_only=not parse_bool(request.args.get('include_inactive')),
        )
        return jsonify({'success': True, 'customers': customers, 'count': len(customers)})


@customers_bp.route('/api/customers', methods=['POST'])
@json_errors('creating customer')
def create_customer():
    data = get_json_body()
    with get_db_session() as session:
        repo = CustomerRepository(session, current_organization_id(session), current_user_id())
        return jsonify({'success': True, 'customer': repo.create_customer(data)}), 201


@customers_bp.route('/api/customers/<customer_id>', methods=['GET'])
@json_errors('getting customer')
def get_customer(customer_id):
    with get_db_session() as session:
        customer = CustomerRepository(session, current_organization_id(session)).get_customer(customer_id)
        if not customer:
            return not_found('Customer')
        return jsonify({'success': True, 'customer': customer})


@customers_bp.route('/api/customers/<customer_id>', methods=['PUT', 'PATCH'])
@json_errors('updating customer')
def update_customer(customer_id):
    data = get_json_body()
    with get_db_session() as session:
        repo = CustomerRepository(session, current_organization_id(session), current_user_id())
        customer = repo.update_customer(customer_id, data)
        if not customer:
            return not_found('Customer')
        return jsonify({'success': True, 'customer': customer})


@customers_bp.route('/api/customers/<customer_id>', methods=['DELETE'])
@json_errors('deleting customer')
def delete_customer(customer_id):
    with get_db_session() as session:
        if not CustomerRepository(session, current_organization_id(session)).delete_customer(customer_id):
            return not_found('Customer')
        return jsonify({'success': True})


# ============================================================================
# SERVICE LOCATIONS
# ============================================================================

@customers_bp.route('/api/customers/<customer_id>/locations', methods=['GET'])
@json_errors('listing service locations')
def list_locations(customer_id):
    with get_db_session() as session:
        locations = CustomerRepository(session, current_organization_id(session)).list_locations(customer_id)
        if locations is None:
            return not_found('Customer')
        return jsonify({'success': True, 'locations': locations})


@customers_bp.route('/api/customers/<customer_id>/locations', methods=['POST'])
@json_errors('adding service location')
def add_location(customer_id):
    data = get_json_body()
    with get_db_session() as session:
        location = CustomerRepository(session, current_organization_id(session)).add_location(customer_id, data)
        if location is None:
            return not_found('Customer')
        return jsonify({'success': True, 'location': location}), 201


@customers_bp.route('/api/customers/<customer_id>/locations/<location_id>', methods=['PUT', 'PATCH'])
@json_errors('updating service location')
def update_location(customer_id, location_id):
    data = get_json_body()
    with get_db_session() as session:
        repo = CustomerRepository(session, current_organization_id(session))
        location = repo.update_location(customer_id, location_id, data)
        if location is None:
            return not_found('Service location')
        return jsonify({'success': True, 'location': location})


@customers_bp.route('/api/customers/<customer_id>/locations/<location_id>', methods=['DELETE'])
@json_errors('deleting service location')
def delete_location(customer_id, location_id):
    with get_db_session() as session:
        repo = CustomerRepository(session, current_organization_id(session))
        if not repo.delete_location(customer_id, location_id):
            return not_found('Service location')
        return jsonify({'success': True})


# ============================================================================
# CSV IMPORT
# ============================================================================

@customers_bp.route('/api/customers/import', methods=['POST'])
@json_errors('importing customers')
def import_customers():
    """Import customers from an uploaded CSV file or a JSON body {'csv': text}."""
    upload = request.files.get('file')
    if upload is not None:
        is_valid, error, _ = validate_import_upload(upload)
        if not is_valid:
            raise ValidationError(error, 'file')
        text = upload.read().decode('utf-8-sig')
    else:
        text = get_json_body().get('csv') or ''

    with get_db_session() as session:
        repo = CustomerRepository(session, current_organization_id(session), current_user_id())
        result = repo.import_customers(text)
        return jsonify({'success': True, 'result': result})


@customers_bp.route('/api/customers/import/template', methods=['GET'])
def customer_import_template():
    return Response(
        CustomerRepository.generate_csv_template(),
        mimetype='text/csv',
        headers={'Content-Disposition': 'attachment; filename=customer_import_template.csv'},
    )


# ============================================================================
# TAX RATES
# ============================================================================

@customers_bp.route('/api/customers/<customer_id>/tax-rate', methods=['GET'])
@json_errors('resolving tax rate')
def customer_tax_rate(customer_id):
    with get_db_session() as session:
        service = TaxService(session, current_organization_id(session), current_app.config)
        return jsonify({'success': True, **service.resolve_for_customer(customer_id)})


@customers_bp.route('/api/tax-rates', methods=['POST'])
@json_errors('saving tax rate')
def upsert_tax_rate():
    data = get_json_body()
    rate = parse_number(data.get('rate_percent'), 'rate_percent', min_value=0)
    if rate is None:
        raise ValidationError('rate_percent is required', 'rate_percent')
    with get_db_session() as session:
        service = TaxService(session, current_organization_id(session), current_app.config)
        saved = service.upsert_rate(rate, zip_code=data.get('zip_code'), state=data.get('state'))
        return jsonify({'success': True, 'tax_rate': saved})
