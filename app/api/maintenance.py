"""
Maintenance Routes Blueprint

Handles vehicle maintenance records and work orders:
- /api/maintenance: records list/create; /api/maintenance/<id>: update
- /api/maintenance/upcoming, /overdue: open records by schedule
- /api/maintenance/alerts: alert owners about due maintenance (service role)
- /api/work-orders: list/create; /<id>: detail; /parts; /transition
"""

import logging
from flask import Blueprint, current_app, request, jsonify

from app.utils.helpers import (
    get_json_body, parse_bool, current_organization_id, current_user_id, json_errors, not_found
)
from database.connection import get_db_session
from security import require_api_key
from services.maintenance_service import MaintenanceService
from services.notification_service import NotificationService
from validators import ValidationError

logger = logging.getLogger(__name__)

# Create blueprint
maintenance_bp = Blueprint('maintenance_bp', __name__)


def maintenance_service(session):
    org_id = current_organization_id(session)
    return MaintenanceService(session, org_id, current_user_id(),
                              notifications=NotificationService(session, org_id, current_app.config))


# ============================================================================
# MAINTENANCE RECORDS
# ============================================================================

@maintenance_bp.route('/api/maintenance', methods=['GET'])
@json_errors('listing maintenance records')
def list_records():
    with get_db_session() as session:
        records = maintenance_service(session).list_records(
            vehicle_id=request.args.get('vehicle_id'),
            status=request.args.get('status'),
        )
        return jsonify({'success': True, 'records': records, 'count': len(records)})


@maintenance_bp.route('/api/maintenance', methods=['POST'])
@json_errors('creating maintenance record')
def create_record():
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'record': maintenance_service(session).create_record(data)}), 201


@maintenance_bp.route('/api/maintenance/<record_id>', methods=['PUT', 'PATCH'])
@json_errors('updating maintenance record')
def update_record(record_id):
    data = get_json_body()
    with get_db_session() as session:
        record = maintenance_service(session).update_record(record_id, data)
        if record is None:
            return not_found('Maintenance record')
        return jsonify({'success': True, 'record': record})


@maintenance_bp.route('/api/maintenance/upcoming', methods=['GET'])
@json_errors('listing upcoming maintenance')
def upcoming():
    days = request.args.get('days', 30, type=int)
    with get_db_session() as session:
        return jsonify({'success': True, 'records': maintenance_service(session).upcoming(days=days)})


@maintenance_bp.route('/api/maintenance/overdue', methods=['GET'])
@json_errors('listing overdue maintenance')
def overdue():
    with get_db_session() as session:
        return jsonify({'success': True, 'records': maintenance_service(session).overdue()})


@maintenance_bp.route('/api/maintenance/alerts', methods=['POST'])
@require_api_key
@json_errors('sending maintenance alerts')
def send_alerts():
    days_ahead = get_json_body().get('days_ahead', 7)
    with get_db_session() as session:
        return jsonify({'success': True, **maintenance_service(session).send_maintenance_alerts(int(days_ahead))})


# ============================================================================
# WORK ORDERS
# ============================================================================

@maintenance_bp.route('/api/work-orders', methods=['GET'])
@json_errors('listing work orders')
def list_work_orders():
    with get_db_session() as session:
        orders = maintenance_service(session).list_work_orders(
            status=request.args.get('status'),
            asset_id=request.args.get('asset_id'),
            overdue_only=parse_bool(request.args.get('overdue')),
        )
        return jsonify({'success': True, 'work_orders': orders, 'count': len(orders)})


@maintenance_bp.route('/api/work-orders', methods=['POST'])
@json_errors('creating work order')
def create_work_order():
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'work_order': maintenance_service(session).create(data)}), 201


@maintenance_bp.route('/api/work-orders/<work_order_id>', methods=['GET'])
@json_errors('getting work order')
def get_work_order(work_order_id):
    with get_db_session() as session:
        return jsonify({'success': True, 'work_order': maintenance_service(session).get_work_order(work_order_id)})


@maintenance_bp.route('/api/work-orders/<work_order_id>/parts', methods=['POST'])
@json_errors('adding work order part')
def add_part(work_order_id):
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'work_order': maintenance_service(session).add_part(work_order_id, data)})


@maintenance_bp.route('/api/work-orders/<work_order_id>/transition', methods=['POST'])
@json_errors('changing work order status')
def transition(work_order_id):
    """Body: {status, force?, message?, technician_signature?, driver_signature?, ...}"""
    data = get_json_body()
    if not data.get('status'):
        raise ValidationError('status is required', 'status')
    with get_db_session() as session:
        work_order = maintenance_service(session).transition(
            work_order_id, data['status'], data, force=parse_bool(data.get('force'))
        )
        return jsonify({'success': True, 'work_order': work_order})
