"""
Map Service - GeoJSON markers for the dispatch and inventory maps.

Each collection carries a marker_hash over the marker positions so the
client redraws markers only when a position actually changed. HTTP caching
uses content_hash, which also covers marker properties.
"""

import hashlib
import json
import logging
from collections import defaultdict
from datetime import date
from typing import List, Dict, Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from database.models import EquipmentAssignment, Job, StorageLocation

logger = logging.getLogger(__name__)


def marker_hash(features: List[Dict[str, Any]]) -> str:
    """SHA-256 of the sorted (id, lat, lng, kind) tuples of a feature list."""
    positions = sorted(
        (f['properties']['id'], f['geometry']['coordinates'][1],
         f['geometry']['coordinates'][0], f['properties']['kind'])
        for f in features
    )
    return hashlib.sha256(json.dumps(positions).encode('utf-8')).hexdigest()


def content_hash(features: List[Dict[str, Any]]) -> str:
    """SHA-256 of the full serialized features, properties included."""
    payload = json.dumps(features, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


def feature(marker_id: str, kind: str, lat: float, lng: float, **properties) -> Dict[str, Any]:
    return {
        'type': 'Feature',
        'geometry': {'type': 'Point', 'coordinates': [lng, lat]},
        'properties': {'id': marker_id, 'kind': kind, **properties},
    }


def feature_collection(features: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        'type': 'FeatureCollection',
        'features': features,
        'marker_hash': marker_hash(features),
    }


class MapService:
    def __init__(self, session: Session, organization_id: str):
        self.session = session
        self.organization_id = organization_id

    def inventory_markers(self, as_of: date = None) -> Dict[str, Any]:
        """Storage locations plus job sites holding equipment on the given day."""
        as_of = as_of or date.today()
        features = []

        locations = self.session.query(StorageLocation).filter(
            StorageLocation.organization_id == self.organization_id,
            StorageLocation.is_active == True,  # noqa: E712
            StorageLocation.latitude.isnot(None),
            StorageLocation.longitude.isnot(None)
        ).all()
        for location in locations:
            features.append(feature(
                location.id, 'storage_location', location.latitude, location.longitude,
                name=location.name, is_default=bool(location.is_default),
            ))

        assignments = self.session.query(EquipmentAssignment).filter(
            EquipmentAssignment.organization_id == self.organization_id,
            EquipmentAssignment.status != 'returned',
            EquipmentAssignment.assigned_date <= as_of,
            or_(EquipmentAssignment.return_date.is_(None), EquipmentAssignment.return_date >= as_of)
        ).all()

        sites = defaultdict(lambda: {'units': 0, 'products': set()})
        site_info = {}
        for assignment in assignments:
            location = assignment.job.service_location if assignment.job else None
            if not location or location.latitude is None or location.longitude is None:
                continue
            sites[location.id]['units'] += assignment.quantity or 0
            if assignment.product:
                sites[location.id]['products'].add(assignment.product.name)
            site_info[location.id] = (location, assignment.job)

        for location_id, totals in sites.items():
            location, job = site_info[location_id]
            features.append(feature(
                location_id, 'job_site', location.latitude, location.longitude,
                name=location.location_name,
                customer_name=job.customer.name if job.customer else None,
                unit_count=totals['units'],
                products=sorted(totals['products']),
            ))

        return feature_collection(features)

    def job_markers(self, scheduled_date: date, driver_id: str = None) -> Dict[str, Any]:
        """Jobs on a date whose service location has GPS coordinates."""
        query = self.session.query(Job).filter(
            Job.organization_id == self.organization_id,
            Job.scheduled_date == scheduled_date,
            Job.status != 'cancelled'
        )
        if driver_id:
            query = query.filter(Job.driver_id == driver_id)

        features = []
        skipped = 0
        for job in query.order_by(Job.scheduled_time).all():
            location = job.service_location
            if not location or location.latitude is None or location.longitude is None:
                skipped += 1
                continue
            features.append(feature(
                job.id, 'job', location.latitude, location.longitude,
                job_number=job.job_number,
                job_type=job.job_type,
                status=job.status,
                scheduled_time=job.scheduled_time,
                customer_name=job.customer.name if job.customer else None,
                driver_id=job.driver_id,
            ))
        if skipped:
            logger.debug(f"{skipped} jobs on {scheduled_date} have no GPS location")
        return feature_collection(features)
