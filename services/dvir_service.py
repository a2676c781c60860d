"""
DVIR Service - driver vehicle inspection reports and their defects.

A major defect opens a defect row, raises a critical work order and takes
the vehicle out of service. A clean report can verify that the vehicle's
open defects are fixed.
"""

import logging
from datetime import datetime
from typing import List, Dict, Any

from sqlalchemy.orm import Session

from database.models import DVIRDefect, DVIRReport, Vehicle
from services.event_logger import EventLogger
from services.fleet_service import FleetService
from services.maintenance_service import MaintenanceService
from validators import NotFoundError, ValidationError, parse_number

logger = logging.getLogger(__name__)

REPORT_TYPES = ('pre_trip', 'post_trip')

DEFAULT_ITEMS = [
    'lights', 'tires', 'brakes', 'steering', 'mirrors', 'wipers', 'horn', 'seatbelts',
    'coupling', 'air_lines', 'battery', 'fluid_leaks', 'tank_hose_leaks', 'fire_extinguisher',
    'warning_triangles', 'spill_kit_present', 'ppe_available', 'registration_insurance_present',
]


def build_items(items: Dict = None, major_defect: bool = False, defect_key: str = None) -> Dict[str, Dict]:
    """Checklist with every default item passing, overlaid with submitted results."""
    result = {key: {'result': 'pass', 'notes': ''} for key in DEFAULT_ITEMS}
    for key, value in (items or {}).items():
        if isinstance(value, dict):
            result[key] = {'result': value.get('result', 'pass'), 'notes': value.get('notes', '')}
        else:
            result[key] = {'result': str(value), 'notes': ''}
    if major_defect and defect_key:
        result[defect_key] = {**result.get(defect_key, {'notes': ''}), 'result': 'fail'}
    return result


class DVIRService:
    def __init__(self, session: Session, organization_id: str, user_id: str = None,
                 notifications=None):
        self.session = session
        self.organization_id = organization_id
        self.events = EventLogger(session, organization_id, 'driver' if user_id else 'system', user_id)
        self.maintenance = MaintenanceService(session, organization_id, user_id)
        self.fleet = FleetService(session, organization_id, user_id, notifications=notifications)

    def submit(self, data: Dict) -> Dict[str, Any]:
        """
        Submit a DVIR.

        Args:
            data: vehicle_id, driver_id, report_type, odometer, items,
                  major_defect, defect_item_key, verify_prior_fixed, notes
        """
        vehicle = self.session.query(Vehicle).filter(
            Vehicle.id == data.get('vehicle_id'),
            Vehicle.organization_id == self.organization_id
        ).first()
        if not vehicle:
            raise NotFoundError('vehicle', data.get('vehicle_id'))

        report_type = data.get('report_type', 'pre_trip')
        if report_type not in REPORT_TYPES:
            raise ValidationError("report_type must be 'pre_trip' or 'post_trip'", 'report_type')

        odometer = parse_number(data.get('odometer'), 'odometer', min_value=0)
        major_defect = bool(data.get('major_defect'))
        defect_key = data.get('defect_item_key') or ('brakes' if major_defect else None)
        items = build_items(data.get('items'), major_defect, defect_key)
        defects_count = sum(1 for item in items.values() if item['result'] == 'fail')

        report = DVIRReport(
            organization_id=self.organization_id,
            vehicle_id=vehicle.id,
            driver_id=data.get('driver_id'),
            report_type=report_type,
            odometer=int(odometer) if odometer is not None else None,
            items=items,
            major_defect_present=major_defect,
            defects_count=defects_count,
            status='submitted',
            notes=data.get('notes'),
        )
        self.session.add(report)
        self.session.flush()
        self.events.log('dvir', report.id, 'DVIR_SUBMITTED',
                        metadata={'vehicle_id': vehicle.id, 'defects_count': defects_count})

        if report.odometer and report.odometer > (vehicle.current_mileage or 0):
            vehicle.current_mileage = report.odometer

        result = {'dvir': report.to_dict(), 'defect': None, 'work_order': None, 'closed_defects': 0}

        if major_defect:
            work_order = self.maintenance.create_work_order({
                'asset_type': 'vehicle',
                'asset_id': vehicle.id,
                'description': f"DVIR major defect: {defect_key.replace('_', ' ')}"
                               + (f" - {data['notes']}" if data.get('notes') else ''),
                'priority': 'critical',
                'meter_open': report.odometer,
                'driver_verification_required': True,
            }, source='dvir', source_id=report.id)

            defect = DVIRDefect(
                organization_id=self.organization_id,
                dvir_id=report.id,
                vehicle_id=vehicle.id,
                item_key=defect_key,
                severity='major',
                status='open',
                notes=data.get('notes'),
                work_order_id=work_order.id,
            )
            self.session.add(defect)
            self.session.flush()

            if vehicle.status == 'active':
                self.fleet.update_vehicle(vehicle.id, {'status': 'out_of_service',
                                                       'reason': f"DVIR major defect: {defect_key}"})
            self.events.log('vehicle', vehicle.id, 'DVIR_DEFECT',
                            description=f"Major defect '{defect_key}' on {vehicle.license_plate}",
                            metadata={'dvir_id': report.id, 'work_order_id': work_order.id})
            result['defect'] = defect.to_dict()
            result['work_order'] = work_order.to_dict()
            logger.warning(f"Major defect '{defect_key}' reported on vehicle {vehicle.license_plate}")

        elif data.get('verify_prior_fixed'):
            now = datetime.utcnow()
            open_defects = self.session.query(DVIRDefect).filter(
                DVIRDefect.organization_id == self.organization_id,
                DVIRDefect.vehicle_id == vehicle.id,
                DVIRDefect.status == 'open'
            ).all()
            for defect in open_defects:
                defect.status = 'closed'
                defect.closed_at = now
            self.session.flush()
            if open_defects:
                self.events.log('vehicle', vehicle.id, 'DEFECTS_CLEARED',
                                metadata={'dvir_id': report.id, 'closed': len(open_defects)})
            result['closed_defects'] = len(open_defects)
            logger.info(f"Closed {len(open_defects)} open defects on vehicle {vehicle.license_plate}")

        return result

    def list_reports(self, vehicle_id: str = None, limit: int = 100) -> List[Dict]:
        query = self.session.query(DVIRReport).filter(DVIRReport.organization_id == self.organization_id)
        if vehicle_id:
            query = query.filter(DVIRReport.vehicle_id == vehicle_id)
        return [r.to_dict() for r in query.order_by(DVIRReport.submitted_at.desc()).limit(limit).all()]

    def open_defects(self, vehicle_id: str = None) -> List[Dict]:
        query = self.session.query(DVIRDefect).filter(
            DVIRDefect.organization_id == self.organization_id,
            DVIRDefect.status == 'open'
        )
        if vehicle_id:
            query = query.filter(DVIRDefect.vehicle_id == vehicle_id)
        return [d.to_dict() for d in query.order_by(DVIRDefect.created_at).all()]
