"""
Fleet Service - vehicles, load capacities and daily vehicle loads.
"""

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import List, Dict, Any

from sqlalchemy.orm import Session

from database.models import (
    DailyVehicleLoad, EquipmentAssignment, Job, Product, Vehicle, VehicleLoadCapacity
)
from services.event_logger import EventLogger
from validators import NotFoundError, ValidationError, parse_number

logger = logging.getLogger(__name__)

VEHICLE_STATUSES = ['active', 'maintenance', 'out_of_service', 'retired']
VEHICLE_FIELDS = ['license_plate', 'make', 'model', 'year', 'vin', 'vehicle_type',
                  'current_mileage', 'notes']


class FleetService:
    """Repository for vehicle and load database operations."""

    def __init__(self, session: Session, organization_id: str, user_id: str = None,
                 notifications=None):
        self.session = session
        self.organization_id = organization_id
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

    def _product(self, product_id: str) -> Product:
        product = self.session.query(Product).filter(
            Product.id == product_id,
            Product.organization_id == self.organization_id
        ).first()
        if not product:
            raise NotFoundError('product', product_id)
        return product

    # =========================================================================
    # VEHICLES
    # =========================================================================

    def list_vehicles(self, status: str = None) -> List[Dict]:
        query = self.session.query(Vehicle).filter(Vehicle.organization_id == self.organization_id)
        if status:
            query = query.filter(Vehicle.status == status)
        return [v.to_dict() for v in query.order_by(Vehicle.license_plate).all()]

    def get_vehicle(self, vehicle_id: str) -> Dict:
        vehicle = self._vehicle(vehicle_id)
        data = vehicle.to_dict()
        data['capacities'] = self.list_capacities(vehicle_id)
        return data

    def create_vehicle(self, data: Dict) -> Dict:
        if not data.get('license_plate'):
            raise ValidationError('license_plate is required', 'license_plate')
        status = data.get('status', 'active')
        if status not in VEHICLE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(VEHICLE_STATUSES)}", 'status')

        vehicle = Vehicle(organization_id=self.organization_id, status=status)
        for key in VEHICLE_FIELDS:
            if key in data:
                setattr(vehicle, key, data[key])
        self.session.add(vehicle)
        self.session.flush()
        self.events.log_create('vehicle', vehicle.id, {'license_plate': vehicle.license_plate})
        logger.info(f"Created vehicle: {vehicle.id} ({vehicle.license_plate})")
        return vehicle.to_dict()

    def update_vehicle(self, vehicle_id: str, data: Dict) -> Dict:
        """Update a vehicle; a status change notifies owners and admins."""
        vehicle = self._vehicle(vehicle_id)
        for key in VEHICLE_FIELDS:
            if key in data:
                setattr(vehicle, key, data[key])

        new_status = data.get('status')
        old_status = vehicle.status
        if new_status and new_status != old_status:
            if new_status not in VEHICLE_STATUSES:
                raise ValidationError(f"status must be one of {', '.join(VEHICLE_STATUSES)}", 'status')
            vehicle.status = new_status
            self.events.log_status_change('vehicle', vehicle.id, old_status, new_status, data.get('reason'))
            if self.notifications:
                self.notifications.notify_vehicle_status_change(vehicle, old_status, new_status, data.get('reason'))

        vehicle.updated_at = datetime.utcnow()
        self.session.flush()
        return vehicle.to_dict()

    def delete_vehicle(self, vehicle_id: str) -> bool:
        """Retire a vehicle."""
        return self.update_vehicle(vehicle_id, {'status': 'retired'})['status'] == 'retired'

    # =========================================================================
    # LOAD CAPACITIES
    # =========================================================================

    def list_capacities(self, vehicle_id: str) -> List[Dict]:
        rows = self.session.query(VehicleLoadCapacity).filter(
            VehicleLoadCapacity.organization_id == self.organization_id,
            VehicleLoadCapacity.vehicle_id == vehicle_id
        ).all()
        return [r.to_dict() for r in rows]

    def set_capacity(self, vehicle_id: str, product_id: str, max_capacity) -> Dict:
        """Upsert the max units of a product a vehicle can carry."""
        self._vehicle(vehicle_id)
        self._product(product_id)
        capacity = int(parse_number(max_capacity, 'max_capacity', min_value=0) or 0)

        row = self.session.query(VehicleLoadCapacity).filter(
            VehicleLoadCapacity.vehicle_id == vehicle_id,
            VehicleLoadCapacity.product_id == product_id
        ).first()
        if row is None:
            row = VehicleLoadCapacity(organization_id=self.organization_id,
                                      vehicle_id=vehicle_id, product_id=product_id)
            self.session.add(row)
        row.max_capacity = capacity
        self.session.flush()
        return row.to_dict()

    # =========================================================================
    # DAILY LOADS
    # =========================================================================

    def calculate_daily_loads(self, load_date: date) -> Dict[str, int]:
        """
        Rebuild daily_vehicle_loads for a date from the equipment on jobs
        scheduled that day, summed per (vehicle, product). Manual overrides
        are left untouched.
        """
        totals = defaultdict(int)
        rows = self.session.query(Job.vehicle_id, EquipmentAssignment.product_id,
                                  EquipmentAssignment.quantity).join(
            EquipmentAssignment, EquipmentAssignment.job_id == Job.id
        ).filter(
            Job.organization_id == self.organization_id,
            Job.scheduled_date == load_date,
            Job.vehicle_id.isnot(None),
            Job.status != 'cancelled'
        ).all()
        for vehicle_id, product_id, quantity in rows:
            totals[(vehicle_id, product_id)] += quantity or 0

        existing = {
            (r.vehicle_id, r.product_id): r
            for r in self.session.query(DailyVehicleLoad).filter(
                DailyVehicleLoad.organization_id == self.organization_id,
                DailyVehicleLoad.load_date == load_date
            ).all()
        }

        updated = created = kept = 0
        for key, row in existing.items():
            if row.is_manual_override:
                kept += 1
                continue
            row.assigned_quantity = totals.get(key, 0)
            updated += 1
        for key, quantity in totals.items():
            if key in existing:
                continue
            vehicle_id, product_id = key
            self.session.add(DailyVehicleLoad(
                organization_id=self.organization_id,
                vehicle_id=vehicle_id,
                product_id=product_id,
                load_date=load_date,
                assigned_quantity=quantity,
                is_manual_override=False,
            ))
            created += 1

        self.session.flush()
        logger.info(f"Daily loads for {load_date}: {created} created, {updated} updated, {kept} overrides kept")
        return {'created': created, 'updated': updated, 'overrides_kept': kept}

    def set_load_override(self, vehicle_id: str, product_id: str, load_date: date,
                          assigned_quantity, notes: str = None) -> Dict:
        """Upsert a manual load for (vehicle, product, date)."""
        self._vehicle(vehicle_id)
        self._product(product_id)
        quantity = int(parse_number(assigned_quantity, 'assigned_quantity', min_value=0) or 0)

        row = self.session.query(DailyVehicleLoad).filter(
            DailyVehicleLoad.vehicle_id == vehicle_id,
            DailyVehicleLoad.product_id == product_id,
            DailyVehicleLoad.load_date == load_date
        ).first()
        if row is None:
            row = DailyVehicleLoad(organization_id=self.organization_id, vehicle_id=vehicle_id,
                                   product_id=product_id, load_date=load_date)
            self.session.add(row)
        row.assigned_quantity = quantity
        row.is_manual_override = True
        row.notes = notes
        self.session.flush()
        logger.info(f"Manual load override: vehicle {vehicle_id} product {product_id} on {load_date} = {quantity}")
        return row.to_dict()

    def fleet_loads(self, load_date: date, recalculate: bool = True) -> Dict[str, Any]:
        """
        Utilization per active vehicle for a date.

        total_capacity_used is the mean of assigned / max(max_capacity, 1) * 100
        over the vehicle's configured capacities.
        """
        if recalculate:
            self.calculate_daily_loads(load_date)

        loads = {
            (r.vehicle_id, r.product_id): r.assigned_quantity or 0
            for r in self.session.query(DailyVehicleLoad).filter(
                DailyVehicleLoad.organization_id == self.organization_id,
                DailyVehicleLoad.load_date == load_date
            ).all()
        }
        overrides = {
            (r.vehicle_id, r.product_id)
            for r in self.session.query(DailyVehicleLoad).filter(
                DailyVehicleLoad.organization_id == self.organization_id,
                DailyVehicleLoad.load_date == load_date,
                DailyVehicleLoad.is_manual_override == True  # noqa: E712
            ).all()
        }

        vehicles = self.session.query(Vehicle).filter(
            Vehicle.organization_id == self.organization_id,
            Vehicle.status == 'active'
        ).order_by(Vehicle.license_plate).all()

        results = []
        for vehicle in vehicles:
            capacities = []
            for cap in self.session.query(VehicleLoadCapacity).filter(
                VehicleLoadCapacity.vehicle_id == vehicle.id
            ).all():
                assigned = loads.get((vehicle.id, cap.product_id), 0)
                capacities.append({
                    'product_id': cap.product_id,
                    'product_name': cap.product.name if cap.product else None,
                    'max_capacity': cap.max_capacity or 0,
                    'assigned_today': assigned,
                    'utilization_percent': round(assigned / max(cap.max_capacity or 0, 1) * 100, 1),
                    'is_manual_override': (vehicle.id, cap.product_id) in overrides,
                })

            if capacities:
                total = sum(c['assigned_today'] / max(c['max_capacity'], 1) * 100
                            for c in capacities) / len(capacities)
            else:
                total = 0
            results.append({
                'vehicle_id': vehicle.id,
                'license_plate': vehicle.license_plate,
                'vehicle_type': vehicle.vehicle_type,
                'capacities': capacities,
                'total_capacity_used': round(total, 1),
                'efficiency_score': round(min(100, total), 1),
                'over_capacity': any(c['assigned_today'] > c['max_capacity'] for c in capacities),
            })

        scored = [v['efficiency_score'] for v in results]
        return {
            'date': load_date.isoformat(),
            'vehicles': results,
            'summary': {
                'vehicle_count': len(results),
                'at_capacity': sum(1 for v in results if v['total_capacity_used'] >= 100),
                'near_capacity': sum(1 for v in results if 80 <= v['total_capacity_used'] < 100),
                'average_efficiency': round(sum(scored) / len(scored)) if scored else 0,
            },
        }
