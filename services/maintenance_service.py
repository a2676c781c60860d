"""
Maintenance Service - vehicle maintenance records and repair work orders.

Work order rules:
- creation requires an asset, a description and a priority
- the due date defaults from priority (critical +1d, high +3d, normal +7d, low none)
- status changes pass the transition guards and follow NEXT_STATUSES
- stocked parts (truck_stock, warehouse) short of on-hand move the order to awaiting_parts
"""

import logging
import math
from datetime import date, datetime, timedelta
from typing import List, Optional, Dict, Any, Tuple

from sqlalchemy.orm import Session

from database.models import (
    Consumable, MaintenanceRecord, User, Vehicle, WorkOrder, WorkOrderHistory, WorkOrderPart
)
from services.email_templates import maintenance_alert_email
from services.event_logger import EventLogger
from validators import NotFoundError, ValidationError, parse_date, parse_number

logger = logging.getLogger(__name__)

PRIORITIES = ['critical', 'high', 'normal', 'low']
PRIORITY_DUE_DAYS = {'critical': 1, 'high': 3, 'normal': 7, 'low': None}
WORK_ORDER_STATUSES = ['open', 'in_progress', 'awaiting_parts', 'vendor', 'on_hold',
                       'verification', 'completed']
STOCKED_SOURCES = ('truck_stock', 'warehouse')
PART_SOURCES = STOCKED_SOURCES + ('vendor',)

NEXT_STATUSES = {
    'open': ['in_progress'],
    'in_progress': ['awaiting_parts', 'vendor', 'on_hold', 'verification'],
    'awaiting_parts': ['in_progress'],
    'vendor': ['verification', 'in_progress'],
    'on_hold': ['in_progress'],
    'verification': ['completed', 'in_progress'],
    'completed': [],
}

TRANSITION_MESSAGES = {
    ('open', 'in_progress'): 'Work started',
    ('in_progress', 'awaiting_parts'): 'Waiting for parts to arrive',
    ('in_progress', 'vendor'): 'Sent to external vendor',
    ('in_progress', 'on_hold'): 'Work paused',
    ('awaiting_parts', 'in_progress'): 'Parts received, work resumed',
    ('vendor', 'verification'): 'Vendor work completed, awaiting verification',
    ('in_progress', 'verification'): 'Work completed, awaiting verification',
    ('verification', 'completed'): 'Verification passed, work order completed',
    ('on_hold', 'in_progress'): 'Work resumed',
}

MAINTENANCE_FIELDS = ['maintenance_type', 'description', 'cost', 'vendor_name',
                      'mileage_at_service', 'status', 'notes']
TRANSITION_FIELDS = ['technician_signature', 'driver_signature', 'resolution_notes',
                     'meter_close', 'vendor_id']


# =============================================================================
# WORK ORDER RULES
# =============================================================================

def default_due_date(priority: str, today: date = None) -> Optional[date]:
    """
    Due date for a priority. The helper itself does not validate, so any
    priority outside PRIORITIES falls back to the normal week.
    """
    today = today or date.today()
    days = PRIORITY_DUE_DAYS.get((priority or '').lower(), 7)
    return today + timedelta(days=days) if days is not None else None


def validate_work_order(data: Dict) -> Tuple[bool, Optional[str]]:
    if not data.get('asset_id'):
        return False, 'Asset/vehicle is required'
    if not (data.get('description') or '').strip():
        return False, 'Problem description is required'
    if not data.get('priority'):
        return False, 'Priority level is required'
    if data['priority'] not in PRIORITIES:
        return False, f"priority must be one of {', '.join(PRIORITIES)}"
    return True, None


def can_move_to_status(work_order: WorkOrder, new_status: str) -> Tuple[bool, Optional[str]]:
    """Transition guards. Returns (allowed, reason)."""
    if new_status == 'completed':
        if not work_order.technician_signature:
            return False, 'Technician signature is required before completion'
        if not work_order.resolution_notes:
            return False, 'Resolution notes are required before completion'
        if work_order.asset_type == 'vehicle' and work_order.meter_close is None:
            return False, 'Meter reading at close is required for vehicles before completion'
        if work_order.driver_verification_required and not work_order.driver_signature:
            return False, 'Driver verification is required before completion'

    if new_status == 'awaiting_parts' and not work_order.parts:
        return False, 'Add at least one part to move to Awaiting Parts status'

    if new_status == 'vendor' and not work_order.vendor_id:
        return False, 'Select a service provider/vendor before moving to Vendor status'

    if new_status == 'verification' and not work_order.technician_signature:
        return False, 'Technician must sign off on work before moving to Verification'

    return True, None


def transition_message(from_status: Optional[str], to_status: str) -> str:
    if not from_status:
        return f"Work order created with status: {to_status}"
    return TRANSITION_MESSAGES.get((from_status, to_status),
                                   f"Status changed from {from_status} to {to_status}")


def part_on_hand(part: WorkOrderPart) -> Optional[int]:
    if part.consumable is None:
        return None
    return part.consumable.on_hand_qty or 0


def short_parts(parts: List[WorkOrderPart]) -> List[WorkOrderPart]:
    """Stocked parts whose requested quantity exceeds on-hand stock."""
    short = []
    for part in parts:
        on_hand = part_on_hand(part)
        if part.source in STOCKED_SOURCES and on_hand is not None and on_hand < (part.quantity or 0):
            short.append(part)
    return short


def part_shortage(part: WorkOrderPart) -> int:
    on_hand = part_on_hand(part)
    if on_hand is None:
        return 0
    return max(0, (part.quantity or 0) - on_hand)


def is_work_order_overdue(work_order: WorkOrder, today: date = None) -> bool:
    if not work_order.due_date or work_order.status == 'completed':
        return False
    return work_order.due_date < (today or date.today())


def work_order_age_days(work_order: WorkOrder, now: datetime = None) -> int:
    end = work_order.completed_at or now or datetime.utcnow()
    seconds = abs((end - work_order.created_at).total_seconds())
    return math.ceil(seconds / 86400)


class MaintenanceService:
    """Repository for maintenance records and work orders."""

    def __init__(self, session: Session, organization_id: str, user_id: str = None,
                 notifications=None):
        self.session = session
        self.organization_id = organization_id
        self.user_id = user_id
        self.events = EventLogger(session, organization_id, 'user' if user_id else 'system', user_id)
        self.notifications = notifications

    def _vehicle(self, vehicle_id: str) -> Vehicle:
        vehicle = self.session.query(Vehicle).filter(
            Vehicle.id == vehicle_id,
            Vehicle.organization_id == self.organization_id
        ).first()
        if not vehicle:
            raise NotFoundError('vehicle', vehicle_id)
        return vehicle

    # =========================================================================
    # MAINTENANCE RECORDS
    # =========================================================================

    def list_records(self, vehicle_id: str = None, status: str = None) -> List[Dict]:
        query = self.session.query(MaintenanceRecord).filter(
            MaintenanceRecord.organization_id == self.organization_id
        )
        if vehicle_id:
            query = query.filter(MaintenanceRecord.vehicle_id == vehicle_id)
        if status:
            query = query.filter(MaintenanceRecord.status == status)
        return [r.to_dict() for r in query.order_by(MaintenanceRecord.scheduled_date.desc()).all()]

    def create_record(self, data: Dict) -> Dict:
        vehicle = self._vehicle(data.get('vehicle_id'))
        if not data.get('maintenance_type'):
            raise ValidationError('maintenance_type is required', 'maintenance_type')

        record = MaintenanceRecord(organization_id=self.organization_id, vehicle_id=vehicle.id)
        for key in MAINTENANCE_FIELDS:
            if key in data:
                setattr(record, key, data[key])
        record.scheduled_date = parse_date(data.get('scheduled_date'), 'scheduled_date')
        record.completed_date = parse_date(data.get('completed_date'), 'completed_date')
        record.cost = parse_number(data.get('cost'), 'cost', 0, min_value=0)
        if record.completed_date and not data.get('status'):
            record.status = 'completed'
        self.session.add(record)
        self.session.flush()
        logger.info(f"Created maintenance record {record.id} for vehicle {vehicle.license_plate}")
        return record.to_dict()

    def update_record(self, record_id: str, data: Dict) -> Optional[Dict]:
        record = self.session.query(MaintenanceRecord).filter(
            MaintenanceRecord.id == record_id,
            MaintenanceRecord.organization_id == self.organization_id
        ).first()
        if not record:
            return None
        for key in MAINTENANCE_FIELDS:
            if key in data:
                setattr(record, key, data[key])
        for key in ('scheduled_date', 'completed_date'):
            if key in data:
                setattr(record, key, parse_date(data[key], key))
        if record.completed_date and record.status in ('scheduled', 'in_progress'):
            record.status = 'completed'
        if record.status == 'completed' and record.mileage_at_service:
            vehicle = record.vehicle
            if vehicle and (vehicle.current_mileage or 0) < record.mileage_at_service:
                vehicle.current_mileage = record.mileage_at_service
        self.session.flush()
        return record.to_dict()

    def _open_records(self):
        return self.session.query(MaintenanceRecord).filter(
            MaintenanceRecord.organization_id == self.organization_id,
            MaintenanceRecord.status.in_(('scheduled', 'in_progress')),
            MaintenanceRecord.scheduled_date.isnot(None)
        )

    def upcoming(self, days: int = 30, today: date = None) -> List[Dict]:
        """Open records scheduled from today through today + days."""
        today = today or date.today()
        records = self._open_records().filter(
            MaintenanceRecord.scheduled_date >= today,
            MaintenanceRecord.scheduled_date <= today + timedelta(days=days)
        ).order_by(MaintenanceRecord.scheduled_date).all()
        return [r.to_dict() for r in records]

    def overdue(self, today: date = None) -> List[Dict]:
        today = today or date.today()
        records = self._open_records().filter(
            MaintenanceRecord.scheduled_date < today
        ).order_by(MaintenanceRecord.scheduled_date).all()
        result = []
        for record in records:
            data = record.to_dict()
            data['days_overdue'] = (today - record.scheduled_date).days
            result.append(data)
        return result

    def send_maintenance_alerts(self, days_ahead: int = 7, today: date = None) -> Dict[str, int]:
        """Alert owners/admins about overdue and soon-due maintenance."""
        if not self.notifications:
            return {'alerts': 0}
        today = today or date.today()
        alerts = 0
        recipients = self.session.query(User).filter(
            User.organization_id == self.organization_id,
            User.is_active == True,  # noqa: E712
            User.role.in_(('owner', 'admin'))
        ).all()

        due = [(r, 'critical') for r in self._open_records().filter(MaintenanceRecord.scheduled_date < today)]
        due += [(r, 'urgent') for r in self._open_records().filter(
            MaintenanceRecord.scheduled_date >= today,
            MaintenanceRecord.scheduled_date <= today + timedelta(days=days_ahead))]

        for record, priority in due:
            vehicle = record.vehicle
            html = maintenance_alert_email(
                vehicle_name=f"{vehicle.make or ''} {vehicle.model or ''} ({vehicle.license_plate})".strip(),
                vehicle_id=vehicle.id,
                maintenance_type=record.maintenance_type,
                priority=priority,
                due_date=record.scheduled_date.isoformat(),
                current_mileage=vehicle.current_mileage,
            )
            for user in recipients:
                self.notifications.notify_user(
                    user, 'maintenance_alert',
                    title=f"Maintenance {'overdue' if priority == 'critical' else 'due'}: {vehicle.license_plate}",
                    message=f"{record.maintenance_type} scheduled {record.scheduled_date.isoformat()}",
                    html_body=html,
                    notification_type='alert' if priority == 'critical' else 'reminder',
                    priority='high' if priority == 'critical' else 'normal',
                    entity_type='vehicle', entity_id=vehicle.id,
                )
            alerts += 1

        logger.info(f"Maintenance alerts: {alerts} records flagged")
        return {'alerts': alerts}

    # =========================================================================
    # WORK ORDERS
    # =========================================================================

    def _work_order(self, work_order_id: str) -> WorkOrder:
        work_order = self.session.query(WorkOrder).filter(
            WorkOrder.id == work_order_id,
            WorkOrder.organization_id == self.organization_id
        ).first()
        if not work_order:
            raise NotFoundError('work_order', work_order_id)
        return work_order

    def _next_number(self, year: int) -> str:
        stem = f"WO-{year}-"
        numbers = self.session.query(WorkOrder.work_order_number).filter(
            WorkOrder.organization_id == self.organization_id,
            WorkOrder.work_order_number.like(f"{stem}%")
        ).all()
        highest = max((int(n[len(stem):]) for (n,) in numbers if n[len(stem):].isdigit()), default=0)
        return f"{stem}{highest + 1:04d}"

    def _history(self, work_order: WorkOrder, from_status: Optional[str], to_status: str,
                 message: str = None):
        work_order.history.append(WorkOrderHistory(
            from_status=from_status,
            to_status=to_status,
            message=message or transition_message(from_status, to_status),
            changed_by=self.user_id,
        ))

    def _serialize(self, work_order: WorkOrder, include_history: bool = False) -> Dict:
        data = work_order.to_dict(include_history=include_history)
        data['is_overdue'] = is_work_order_overdue(work_order)
        data['age_days'] = work_order_age_days(work_order) if work_order.created_at else 0
        data['next_statuses'] = NEXT_STATUSES.get(work_order.status, [])
        data['short_parts'] = [
            {'part_name': p.part_name, 'shortage': part_shortage(p)} for p in short_parts(work_order.parts)
        ]
        return data

    def _build_part(self, data: Dict) -> WorkOrderPart:
        source = data.get('source', 'warehouse')
        if source not in PART_SOURCES:
            raise ValidationError(f"source must be one of {', '.join(PART_SOURCES)}", 'source')
        consumable = None
        if data.get('consumable_id'):
            consumable = self.session.query(Consumable).filter(
                Consumable.id == data['consumable_id'],
                Consumable.organization_id == self.organization_id
            ).first()
            if not consumable:
                raise NotFoundError('consumable', data['consumable_id'])
        part_name = data.get('part_name') or (consumable.name if consumable else None)
        if not part_name:
            raise ValidationError('part_name is required', 'part_name')
        return WorkOrderPart(
            consumable_id=consumable.id if consumable else None,
            consumable=consumable,
            part_name=part_name,
            quantity=int(parse_number(data.get('quantity'), 'quantity', 1, min_value=1)),
            unit_cost=parse_number(data.get('unit_cost'), 'unit_cost', consumable.unit_cost if consumable else 0,
                                   min_value=0),
            source=source,
        )

    def _auto_awaiting_parts(self, work_order: WorkOrder):
        short = short_parts(work_order.parts)
        if short and work_order.status in ('open', 'in_progress'):
            old_status = work_order.status
            work_order.status = 'awaiting_parts'
            names = ', '.join(p.part_name for p in short)
            self._history(work_order, old_status, 'awaiting_parts', f"Parts short on hand: {names}")

    def list_work_orders(self, status: str = None, asset_id: str = None,
                         overdue_only: bool = False) -> List[Dict]:
        query = self.session.query(WorkOrder).filter(WorkOrder.organization_id == self.organization_id)
        if status:
            query = query.filter(WorkOrder.status == status)
        if asset_id:
            query = query.filter(WorkOrder.asset_id == asset_id)
        orders = query.order_by(WorkOrder.created_at.desc()).all()
        if overdue_only:
            orders = [o for o in orders if is_work_order_overdue(o)]
        return [self._serialize(o) for o in orders]

    def get_work_order(self, work_order_id: str) -> Dict:
        return self._serialize(self._work_order(work_order_id), include_history=True)

    def create_work_order(self, data: Dict, source: str = 'manual', source_id: str = None) -> WorkOrder:
        is_valid, error = validate_work_order(data)
        if not is_valid:
            raise ValidationError(error)

        asset_type = data.get('asset_type', 'vehicle')
        if asset_type == 'vehicle':
            self._vehicle(data['asset_id'])

        due = parse_date(data.get('due_date'), 'due_date') if data.get('due_date') else default_due_date(data['priority'])
        work_order = WorkOrder(
            organization_id=self.organization_id,
            work_order_number=self._next_number(date.today().year),
            asset_type=asset_type,
            asset_id=data['asset_id'],
            description=data['description'].strip(),
            priority=data['priority'],
            status='open',
            due_date=due,
            source=source,
            source_id=source_id,
            assigned_to=data.get('assigned_to'),
            vendor_id=data.get('vendor_id'),
            driver_verification_required=bool(data.get('driver_verification_required')),
            meter_open=data.get('meter_open'),
        )
        for part in data.get('parts') or []:
            work_order.parts.append(self._build_part(part))
        self._history(work_order, None, 'open')
        self._auto_awaiting_parts(work_order)

        self.session.add(work_order)
        self.session.flush()
        self.events.log_create('work_order', work_order.id,
                               {'work_order_number': work_order.work_order_number, 'priority': work_order.priority})
        logger.info(f"Created work order {work_order.work_order_number} ({work_order.priority}) for "
                    f"{asset_type} {work_order.asset_id}")
        return work_order

    def create(self, data: Dict) -> Dict:
        return self._serialize(self.create_work_order(data), include_history=True)

    def add_part(self, work_order_id: str, data: Dict) -> Dict:
        work_order = self._work_order(work_order_id)
        if work_order.status == 'completed':
            raise ValidationError('Cannot add parts to a completed work order', 'status')
        work_order.parts.append(self._build_part(data))
        self._auto_awaiting_parts(work_order)
        self.session.flush()
        return self._serialize(work_order, include_history=True)

    def transition(self, work_order_id: str, new_status: str, data: Dict = None,
                   force: bool = False) -> Dict:
        """
        Move a work order to a new status. Signature, notes, meter and vendor
        fields in `data` are applied before the guards run.
        """
        data = data or {}
        if new_status not in WORK_ORDER_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(WORK_ORDER_STATUSES)}", 'status')

        work_order = self._work_order(work_order_id)
        old_status = work_order.status
        if new_status == old_status:
            return self._serialize(work_order, include_history=True)
        if not force and new_status not in NEXT_STATUSES.get(old_status, []):
            raise ValidationError(f"Cannot move work order from {old_status} to {new_status}", 'status')

        for key in TRANSITION_FIELDS:
            if key in data:
                setattr(work_order, key, data[key])

        allowed, reason = can_move_to_status(work_order, new_status)
        if not allowed:
            raise ValidationError(reason, 'status')

        work_order.status = new_status
        if new_status == 'completed':
            work_order.completed_at = datetime.utcnow()
        self._history(work_order, old_status, new_status, data.get('message'))
        work_order.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log('work_order', work_order.id, 'WORK_ORDER_TRANSITION',
                        description=transition_message(old_status, new_status),
                        metadata={'old_status': old_status, 'new_status': new_status})
        logger.info(f"Work order {work_order.work_order_number}: {old_status} -> {new_status}")
        return self._serialize(work_order, include_history=True)
