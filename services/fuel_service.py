"""
Fuel Service - fuel log entry and fuel analytics.

Miles driven per vehicle are last minus first odometer reading inside the
date range; vehicles with fewer than two readings or no positive mileage
drop out of per-mile and MPG figures.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import List, Dict, Any, Optional

from sqlalchemy.orm import Session

from database.models import FuelLog, Vehicle
from validators import NotFoundError, ValidationError, parse_date, parse_number

logger = logging.getLogger(__name__)

SOURCE_TYPES = ('retail_station', 'yard_tank', 'mobile_service')


class FuelService:
    def __init__(self, session: Session, organization_id: str):
        self.session = session
        self.organization_id = organization_id

    def _logs(self, date_from: date = None, date_to: date = None) -> List[FuelLog]:
        query = self.session.query(FuelLog).filter(FuelLog.organization_id == self.organization_id)
        if date_from:
            query = query.filter(FuelLog.log_date >= date_from)
        if date_to:
            query = query.filter(FuelLog.log_date <= date_to)
        return query.order_by(FuelLog.log_date.asc(), FuelLog.created_at.asc()).all()

    def _plates(self) -> Dict[str, str]:
        return {
            v.id: v.license_plate for v in self.session.query(Vehicle).filter(
                Vehicle.organization_id == self.organization_id
            ).all()
        }

    def add_log(self, data: Dict) -> Dict:
        vehicle = self.session.query(Vehicle).filter(
            Vehicle.id == data.get('vehicle_id'),
            Vehicle.organization_id == self.organization_id
        ).first()
        if not vehicle:
            raise NotFoundError('vehicle', data.get('vehicle_id'))

        gallons = parse_number(data.get('gallons'), 'gallons')
        if not gallons or gallons <= 0:
            raise ValidationError('gallons must be greater than zero', 'gallons')
        cost = parse_number(data.get('cost'), 'cost', 0, min_value=0)
        cost_per_gallon = parse_number(data.get('cost_per_gallon'), 'cost_per_gallon', min_value=0)
        if cost_per_gallon is None:
            cost_per_gallon = round(cost / gallons, 3)
        source_type = data.get('source_type', 'retail_station')
        if source_type not in SOURCE_TYPES:
            raise ValidationError(f"source_type must be one of {', '.join(SOURCE_TYPES)}", 'source_type')
        odometer = parse_number(data.get('odometer'), 'odometer', min_value=0)

        log = FuelLog(
            organization_id=self.organization_id,
            vehicle_id=vehicle.id,
            driver_id=data.get('driver_id'),
            log_date=parse_date(data.get('log_date'), 'log_date') or date.today(),
            gallons=gallons,
            cost=cost,
            cost_per_gallon=cost_per_gallon,
            odometer=int(odometer) if odometer is not None else None,
            vendor_name=data.get('vendor_name'),
            source_type=source_type,
            notes=data.get('notes'),
        )
        self.session.add(log)
        if log.odometer and log.odometer > (vehicle.current_mileage or 0):
            vehicle.current_mileage = log.odometer
        self.session.flush()
        logger.info(f"Fuel log {log.id}: {gallons} gal for vehicle {vehicle.license_plate}")
        return log.to_dict()

    def list_logs(self, vehicle_id: str = None, date_from: date = None, date_to: date = None) -> List[Dict]:
        logs = self._logs(date_from, date_to)
        if vehicle_id:
            logs = [log for log in logs if log.vehicle_id == vehicle_id]
        return [log.to_dict() for log in reversed(logs)]

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    @staticmethod
    def _miles_by_vehicle(logs: List[FuelLog]) -> Dict[str, int]:
        readings = defaultdict(list)
        for log in logs:
            if log.odometer is not None:
                readings[log.vehicle_id].append((log.log_date, log.odometer))
        miles = {}
        for vehicle_id, values in readings.items():
            if len(values) < 2:
                continue
            values.sort(key=lambda r: r[0])
            driven = values[-1][1] - values[0][1]
            if driven > 0:
                miles[vehicle_id] = driven
        return miles

    def vendor_performance(self, date_from: date = None, date_to: date = None) -> List[Dict[str, Any]]:
        vendors: Dict[str, Dict[str, Any]] = {}
        for log in self._logs(date_from, date_to):
            name = log.vendor_name or 'Unknown'
            vendor = vendors.setdefault(name, {
                'vendor_name': name,
                'total_gallons': 0.0,
                'total_cost': 0.0,
                'transaction_count': 0,
                'last_purchase_date': log.log_date,
            })
            vendor['total_gallons'] += log.gallons or 0
            vendor['total_cost'] += log.cost or 0
            vendor['transaction_count'] += 1
            if log.log_date > vendor['last_purchase_date']:
                vendor['last_purchase_date'] = log.log_date

        result = []
        for vendor in vendors.values():
            gallons = vendor['total_gallons']
            vendor['avg_cost_per_gallon'] = round(vendor['total_cost'] / gallons, 3) if gallons > 0 else 0
            vendor['total_gallons'] = round(gallons, 2)
            vendor['total_cost'] = round(vendor['total_cost'], 2)
            vendor['last_purchase_date'] = vendor['last_purchase_date'].isoformat()
            result.append(vendor)
        return sorted(result, key=lambda v: v['total_cost'], reverse=True)

    def cost_per_mile(self, date_from: date = None, date_to: date = None) -> Dict[str, Any]:
        logs = self._logs(date_from, date_to)
        miles = self._miles_by_vehicle(logs)
        plates = self._plates()

        costs = defaultdict(float)
        for log in logs:
            costs[log.vehicle_id] += log.cost or 0

        by_vehicle = [
            {
                'vehicle_id': vehicle_id,
                'license_plate': plates.get(vehicle_id, 'Unknown'),
                'fuel_cost': round(cost, 2),
                'miles_driven': miles[vehicle_id],
                'cost_per_mile': round(cost / miles[vehicle_id], 4),
            }
            for vehicle_id, cost in costs.items() if miles.get(vehicle_id, 0) > 0
        ]
        by_vehicle.sort(key=lambda v: v['cost_per_mile'], reverse=True)

        total_cost = sum(v['fuel_cost'] for v in by_vehicle)
        total_miles = sum(v['miles_driven'] for v in by_vehicle)
        return {
            'total_fuel_cost': round(total_cost, 2),
            'total_miles_driven': total_miles,
            'cost_per_mile': round(total_cost / total_miles, 4) if total_miles else 0,
            'by_vehicle': by_vehicle,
        }

    def fleet_mpg(self, date_from: date = None, date_to: date = None) -> Dict[str, Any]:
        logs = self._logs(date_from, date_to)
        miles = self._miles_by_vehicle(logs)
        plates = self._plates()

        gallons = defaultdict(float)
        for log in logs:
            gallons[log.vehicle_id] += log.gallons or 0

        by_vehicle = [
            {
                'vehicle_id': vehicle_id,
                'license_plate': plates.get(vehicle_id, 'Unknown'),
                'gallons': round(total, 2),
                'miles': miles[vehicle_id],
                'mpg': round(miles[vehicle_id] / total, 2) if total > 0 else 0,
            }
            for vehicle_id, total in gallons.items() if miles.get(vehicle_id, 0) > 0
        ]
        by_vehicle.sort(key=lambda v: v['mpg'], reverse=True)

        total_gallons = sum(v['gallons'] for v in by_vehicle)
        total_miles = sum(v['miles'] for v in by_vehicle)
        return {
            'fleet_avg_mpg': round(total_miles / total_gallons, 2) if total_gallons else 0,
            'total_gallons': round(total_gallons, 2),
            'total_miles': total_miles,
            'by_vehicle': by_vehicle,
        }

    def source_comparison(self, date_from: date = None, date_to: date = None) -> List[Dict[str, Any]]:
        sources: Dict[str, Dict[str, Any]] = {}
        for log in self._logs(date_from, date_to):
            source = sources.setdefault(log.source_type or 'retail_station', {
                'source_type': log.source_type or 'retail_station',
                'total_gallons': 0.0,
                'total_cost': 0.0,
                'transaction_count': 0,
            })
            source['total_gallons'] += log.gallons or 0
            source['total_cost'] += log.cost or 0
            source['transaction_count'] += 1

        for source in sources.values():
            gallons = source['total_gallons']
            source['avg_cost_per_gallon'] = round(source['total_cost'] / gallons, 3) if gallons > 0 else 0
            source['total_gallons'] = round(gallons, 2)
            source['total_cost'] = round(source['total_cost'], 2)
        return sorted(sources.values(), key=lambda s: s['total_cost'], reverse=True)

    def summary(self, date_from: Optional[date] = None, date_to: Optional[date] = None) -> Dict[str, Any]:
        return {
            'vendor_performance': self.vendor_performance(date_from, date_to),
            'cost_per_mile': self.cost_per_mile(date_from, date_to),
            'fleet_mpg': self.fleet_mpg(date_from, date_to),
            'source_comparison': self.source_comparison(date_from, date_to),
        }
