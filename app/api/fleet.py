"""
Fleet Routes Blueprint

Handles vehicles, daily loads, fuel and inspections:
- /api/vehicles: CRUD (delete retires the vehicle)
- /api/vehicles/<id>/capacities: per-product load capacities
- /api/fleet/loads: daily load utilization; /api/fleet/loads/override
- /api/fuel-logs: fuel log entries; /api/fuel/analytics: fleet fuel summary
- /api/dvir: driver vehicle inspection reports; /api/dvir/defects: open defects
"""

import logging
from datetime import date
from flask import Blueprint, current_app, request, jsonify

from app.utils.helpers import (
    get_json_body, parse_bool, date_arg, current_organization_id, current_user_id, json_errors
)
from database.connection import get_db_session
from services.dvir_service import DVIRService
from services.fleet_service import FleetService
from services.fuel_service import FuelService
from services.notification_service import NotificationService
from validators import ValidationError, parse_date

logger = logging.getLogger(__name__)

# Create blueprint
fleet_bp = Blueprint('fleet_bp', __name__)


def _notifications(session, org_id):
    return NotificationService(session, org_id, current_app.config)


def fleet_service(session):
    org_id = current_organization_id(session)
    return FleetService(session, org_id, current_user_id(), notifications=_notifications(session, org_id))


def dvir_service(session):
    org_id = current_organization_id(session)
    return DVIRService(session, org_id, current_user_id(), notifications=_notifications(session, org_id))


# ============================================================================
# VEHICLES
# ============================================================================

@fleet_bp.route('/api/vehicles', methods=['GET'])
@json_errors('listing vehicles')
def list_vehicles():
    with get_db_session() as session:
        vehicles = fleet_service(session).list_vehicles(status=request.args.get('status'))
        return jsonify({'success': True, 'vehicles': vehicles, 'count': len(vehicles)})


@fleet_bp.route('/api/vehicles', methods=['POST'])
@json_errors('creating vehicle')
def create_vehicle():
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'vehicle': fleet_service(session).create_vehicle(data)}), 201


@fleet_bp.route('/api/vehicles/<vehicle_id>', methods=['GET'])
@json_errors('getting vehicle')
def get_vehicle(vehicle_id):
    with get_db_session() as session:
        return jsonify({'success': True, 'vehicle': fleet_service(session).get_vehicle(vehicle_id)})


@fleet_bp.route('/api/vehicles/<vehicle_id>', methods=['PUT', 'PATCH'])
@json_errors('updating vehicle')
def update_vehicle(vehicle_id):
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, 'vehicle': fleet_service(session).update_vehicle(vehicle_id, data)})


@fleet_bp.route('/api/vehicles/<vehicle_id>', methods=['DELETE'])
@json_errors('retiring vehicle')
def delete_vehicle(vehicle_id):
    with get_db_session() as session:
        return jsonify({'success': fleet_service(session).delete_vehicle(vehicle_id)})


@fleet_bp.route('/api/vehicles/<vehicle_id>/capacities', methods=['GET'])
@json_errors('listing load capacities')
def list_capacities(vehicle_id):
    with get_db_session() as session:
        return jsonify({'success': True, 'capacities': fleet_service(session).list_capacities(vehicle_id)})


@fleet_bp.route('/api/vehicles/<vehicle_id>/capacities', methods=['POST'])
@json_errors('setting load capacity')
def set_capacity(vehicle_id):
    data = get_json_body()
    with get_db_session() as session:
        capacity = fleet_service(session).set_capacity(vehicle_id, data.get('product_id'), data.get('max_capacity'))
        return jsonify({'success': True, 'capacity': capacity})


# ============================================================================
# DAILY LOADS
# ============================================================================

@fleet_bp.route('/api/fleet/loads', methods=['GET'])
@json_errors('getting fleet loads')
def fleet_loads():
    load_date = date_arg('date', date.today())
    recalculate = parse_bool(request.args.get('recalculate'), default=True)
    with get_db_session() as session:
        return jsonify({'success': True, **fleet_service(session).fleet_loads(load_date, recalculate=recalculate)})


@fleet_bp.route('/api/fleet/loads/override', methods=['POST'])
@json_errors('overriding vehicle load')
def override_load():
    data = get_json_body()
    load_date = parse_date(data.get('load_date'), 'load_date')
    if load_date is None:
        raise ValidationError('load_date is required', 'load_date')
    with get_db_session() as session:
        load = fleet_service(session).set_load_override(
            data.get('vehicle_id'), data.get('product_id'), load_date,
            data.get('assigned_quantity'), notes=data.get('notes')
        )
        return jsonify({'success': True, 'load': load})


# ============================================================================
# FUEL
# ============================================================================

@fleet_bp.route('/api/fuel-logs', methods=['GET'])
@json_errors('listing fuel logs')
def list_fuel_logs():
    with get_db_session() as session:
        logs = FuelService(session, current_organization_id(session)).list_logs(
            vehicle_id=request.args.get('vehicle_id'),
            date_from=date_arg('date_from'),
            date_to=date_arg('date_to'),
        )
        return jsonify({'success': True, 'logs': logs, 'count': len(logs)})


@fleet_bp.route('/api/fuel-logs', methods=['POST'])
@json_errors('adding fuel log')
def add_fuel_log():
    data = get_json_body()
    with get_db_session() as session:
        log = FuelService(session, current_organization_id(session)).add_log(data)
        return jsonify({'success': True, 'log': log}), 201


@fleet_bp.route('/api/fuel/analytics', methods=['GET'])
@json_errors('computing fuel analytics')
def fuel_analytics():
    with get_db_session() as session:
        summary = FuelService(session, current_organization_id(session)).summary(
            date_from=date_arg('date_from'), date_to=date_arg('date_to')
        )
        return jsonify({'success': True, **summary})


# ============================================================================
# DVIR
# ============================================================================

@fleet_bp.route('/api/dvir', methods=['POST'])
@json_errors('submitting DVIR')
def submit_dvir():
    data = get_json_body()
    with get_db_session() as session:
        return jsonify({'success': True, **dvir_service(session).submit(data)}), 201


@fleet_bp.route('/api/dvir', methods=['GET'])
@json_errors('listing DVIRs')
def list_dvirs():
    with get_db_session() as session:
        reports = dvir_service(session).list_reports(
            vehicle_id=request.args.get('vehicle_id'),
            limit=request.args.get('limit', 100, type=int),
        )
        return jsonify({'success': True, 'reports': reports})


@fleet_bp.route('/api/dvir/defects', methods=['GET'])
@json_errors('listing open defects')
def open_defects():
    with get_db_session() as session:
        defects = dvir_service(session).open_defects(vehicle_id=request.args.get('vehicle_id'))
        return jsonify({'success': True, 'defects': defects})
