"""
Compliance Routes Blueprint

Handles driver credentials, training records and expiration tracking:
- /api/drivers/<id>/credentials: license and medical card
- /api/drivers/<id>/training, /api/training/<id>: training records
- /api/compliance/expirations: expiring items dashboard
- /api/compliance/check-expirations: send reminders (service role)
"""

import logging
from flask import Blueprint, current_app, request, jsonify

from app.utils.helpers import get_json_body, date_arg, current_organization_id, json_errors, not_found
from database.connection import get_db_session
from security import require_api_key
from services.compliance_service import ComplianceService
from services.notification_service import NotificationService

logger = logging.getLogger(__name__)

# Create blueprint
compliance_bp = Blueprint('compliance_bp', __name__)


def compliance_service(session):
    org_id = current_organization_id(session)
    return ComplianceService(session, org_id, current_app.config,
                             notifications=NotificationService(session, org_id, current_app.config))


@compliance_bp.route('/api/drivers/<driver_id>/credentials', methods=['GET'])
@json_errors('getting driver credentials')
def get_credentials(driver_id):
    with get_db_session() as session:
        return jsonify({'success': True, 'credentials': compliance_service(session).get_credentials(driver_id)})


@compliance_bp.route('/api/drivers/<driver_id>/credentials', methods=['PUT', 'POST'])
@json_errors('updating driver credentials')
def upsert_credentials(driver_id):
    data = get_json_body()
    with get_db_session() as session:
        credentials = compliance_service(session).upsert_credentials(driver_id, data)
        return jsonify({'success': True, 'credentials': credentials})


@compliance_bp.route('/api/drivers/<driver_id>/training', methods=['GET'])
@json_errors('listing training records')
def list_training(driver_id):
    with get_db_session() as session:
        return jsonify({'success': True, 'training': compliance_service(session).list_training(driver_id)})


@compliance_bp.route('/api/drivers/<driver_id>/training', methods=['POST'])
@json_errors('adding training record')
def add_training(driver_id):
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'training': compliance_service(session).add_training(driver_id, data)}), 201


@compliance_bp.route('/api/training/<record_id>', methods=['DELETE'])
@json_errors('deleting training record')
def delete_training(record_id):
    with get_db_session() as session:
        if not compliance_service(session).delete_training(record_id):
            return not_found('Training record')
        return jsonify({'success': True})


@compliance_bp.route('/api/compliance/expirations', methods=['GET'])
@json_errors('loading expiration dashboard')
def expiration_dashboard():
    with get_db_session() as session:
        result = compliance_service(session).dashboard(
            driver_id=request.args.get('driver_id'),
            item_type=request.args.get('item_type'),
            status=request.args.get('status'),
            search=request.args.get('search'),
            today=date_arg('today'),
        )
        return jsonify({'success': True, **result})


@compliance_bp.route('/api/compliance/check-expirations', methods=['POST'])
@require_api_key
@json_errors('checking expirations')
def check_expirations():
    with get_db_session() as session:
        return jsonify({'success': True, **compliance_service(session).check_expirations()})
