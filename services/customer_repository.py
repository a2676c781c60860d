"""
Customer Repository - Database access layer for customers and their service locations.
Includes CSV import/template generation for bulk onboarding.
"""

import csv
import io
import logging
from datetime import datetime
from typing import List, Optional, Dict, Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from database.models import Customer, CustomerServiceLocation
from services.event_logger import EventLogger
from validators import ValidationError, sanitize_string, validate_customer_request

logger = logging.getLogger(__name__)

CUSTOMER_TYPES = [
    'commercial',
    'events_festivals',
    'sports_recreation',
    'municipal_government',
    'private_events_weddings',
    'construction',
    'emergency_disaster_relief',
    'not_selected',
]

CUSTOMER_FIELDS = [
    'name', 'customer_type', 'email', 'phone', 'notes',
    'billing_street', 'billing_city', 'billing_state', 'billing_zip',
    'service_street', 'service_city', 'service_state', 'service_zip',
    'tax_rate_override', 'is_active',
]

LOCATION_FIELDS = [
    'location_name', 'street', 'city', 'state', 'zip',
    'latitude', 'longitude', 'is_default', 'access_instructions',
]

MAX_IMPORT_LOCATIONS = 10
TEMPLATE_LOCATIONS = 2
LOCATION_CSV_SUFFIXES = ['name', 'street', 'city', 'state', 'zip', 'is_default', 'gps_lat', 'gps_lng']


def _float_or_none(value) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _clean(value):
    return sanitize_string(value) if isinstance(value, str) else value


class CustomerRepository:
    """Repository for customer database operations."""

    def __init__(self, session: Session, organization_id: str, user_id: str = None):
        self.session = session
        self.organization_id = organization_id
        self.events = EventLogger(session, organization_id, 'user' if user_id else 'system', user_id)

    def _get(self, customer_id: str) -> Optional[Customer]:
        return self.session.query(Customer).filter(
            Customer.id == customer_id,
            Customer.organization_id == self.organization_id
        ).first()

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    def list_customers(self, search: str = None, customer_type: str = None,
                       active_only: bool = True) -> List[Dict]:
        """List customers, optionally filtered by a case-insensitive search."""
        query = self.session.query(Customer).filter(
            Customer.organization_id == self.organization_id
        )
        if active_only:
            query = query.filter(Customer.is_active == True)  # noqa: E712
        if customer_type:
            query = query.filter(Customer.customer_type == customer_type)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                Customer.name.ilike(pattern),
                Customer.email.ilike(pattern),
                Customer.phone.ilike(pattern),
            ))
        return [c.to_dict() for c in query.order_by(Customer.name).all()]

    def get_customer(self, customer_id: str) -> Optional[Dict]:
        """Get a customer with its service locations."""
        customer = self._get(customer_id)
        return customer.to_dict(include_locations=True) if customer else None

    def create_customer(self, data: Dict) -> Dict:
        """Create a new customer."""
        is_valid, error = validate_customer_request(data)
        if not is_valid:
            raise ValidationError(error)

        customer = Customer(organization_id=self.organization_id)
        for key in CUSTOMER_FIELDS:
            if key in data:
                setattr(customer, key, _clean(data[key]))
        customer.customer_type = data.get('customer_type') or 'not_selected'
        self.session.add(customer)
        self.session.flush()

        self.events.log_create('customer', customer.id, {'name': customer.name})
        logger.info(f"Created customer: {customer.id} ({customer.name})")
        return customer.to_dict()

    def update_customer(self, customer_id: str, data: Dict) -> Optional[Dict]:
        """Update a customer."""
        customer = self._get(customer_id)
        if not customer:
            return None

        merged = customer.to_dict()
        merged.update(data)
        is_valid, error = validate_customer_request(merged)
        if not is_valid:
            raise ValidationError(error)

        for key in CUSTOMER_FIELDS:
            if key in data:
                setattr(customer, key, _clean(data[key]))
        customer.updated_at = datetime.utcnow()
        self.session.flush()
        logger.info(f"Updated customer: {customer_id}")
        return customer.to_dict()

    def delete_customer(self, customer_id: str) -> bool:
        """Soft delete a customer."""
        customer = self._get(customer_id)
        if not customer:
            return False
        customer.is_active = False
        customer.updated_at = datetime.utcnow()
        self.session.flush()
        logger.info(f"Deleted (deactivated) customer: {customer_id}")
        return True

    # =========================================================================
    # SERVICE LOCATIONS
    # =========================================================================

    def list_locations(self, customer_id: str) -> Optional[List[Dict]]:
        customer = self._get(customer_id)
        if not customer:
            return None
        return [loc.to_dict() for loc in customer.service_locations]

    def _clear_default(self, customer_id: str, keep_id: str = None):
        query = self.session.query(CustomerServiceLocation).filter(
            CustomerServiceLocation.customer_id == customer_id,
            CustomerServiceLocation.is_default == True  # noqa: E712
        )
        for location in query.all():
            if location.id != keep_id:
                location.is_default = False

    def add_location(self, customer_id: str, data: Dict) -> Optional[Dict]:
        """Add a service location; a new default replaces the previous one."""
        customer = self._get(customer_id)
        if not customer:
            return None
        if not data.get('location_name'):
            raise ValidationError('location_name is required', 'location_name')

        location = CustomerServiceLocation(
            organization_id=self.organization_id,
            customer_id=customer.id,
        )
        for key in LOCATION_FIELDS:
            if key in data:
                setattr(location, key, data[key])
        if location.is_default:
            self._clear_default(customer.id)
        self.session.add(location)
        self.session.flush()
        logger.info(f"Added service location {location.id} to customer {customer_id}")
        return location.to_dict()

    def update_location(self, customer_id: str, location_id: str, data: Dict) -> Optional[Dict]:
        location = self.session.query(CustomerServiceLocation).filter(
            CustomerServiceLocation.id == location_id,
            CustomerServiceLocation.customer_id == customer_id,
            CustomerServiceLocation.organization_id == self.organization_id
        ).first()
        if not location:
            return None

        for key in LOCATION_FIELDS:
            if key in data:
                setattr(location, key, data[key])
        if data.get('is_default'):
            self._clear_default(customer_id, keep_id=location.id)
        self.session.flush()
        return location.to_dict()

    def delete_location(self, customer_id: str, location_id: str) -> bool:
        location = self.session.query(CustomerServiceLocation).filter(
            CustomerServiceLocation.id == location_id,
            CustomerServiceLocation.customer_id == customer_id,
            CustomerServiceLocation.organization_id == self.organization_id
        ).first()
        if not location:
            return False
        self.session.delete(location)
        self.session.flush()
        return True

    # =========================================================================
    # CSV IMPORT / TEMPLATE
    # =========================================================================

    @staticmethod
    def parse_csv(text: str) -> List[Dict[str, str]]:
        """
        Parse customer CSV text into row dicts.

        Blank lines and lines starting with '#' are ignored. A header row
        and at least one data row are required.
        """
        lines = [
            line for line in (text or '').splitlines()
            if line.strip() and not line.lstrip().startswith('#')
        ]
        if len(lines) < 2:
            raise ValidationError('CSV must contain a header row and at least one data row')

        reader = csv.DictReader(io.StringIO('\n'.join(lines)))
        rows = []
        for row in reader:
            rows.append({
                (key or '').strip(): (value or '').strip()
                for key, value in row.items()
                if key is not None
            })
        return rows

    def import_customers(self, text: str) -> Dict[str, Any]:
        """
        Import customers from CSV text.

        Returns:
            {'success': int, 'failed': int, 'errors': [str]}
        """
        rows = self.parse_csv(text)
        result = {'success': 0, 'failed': 0, 'errors': []}

        for index, row in enumerate(rows, start=1):
            name = row.get('name')
            if not name:
                result['failed'] += 1
                result['errors'].append(f"Row {index}: name is required")
                continue
            if not row.get('phone') and not row.get('email'):
                result['failed'] += 1
                result['errors'].append(f"Row {index} ({name}): phone or email is required")
                continue

            customer_type = row.get('customer_type') or 'not_selected'
            if customer_type not in CUSTOMER_TYPES:
                customer_type = 'not_selected'

            customer = Customer(
                organization_id=self.organization_id,
                name=name,
                customer_type=customer_type,
                email=row.get('email') or None,
                phone=row.get('phone') or None,
                notes=row.get('notes') or None,
                billing_street=row.get('billing_street') or None,
                billing_city=row.get('billing_city') or None,
                billing_state=row.get('billing_state') or None,
                billing_zip=row.get('billing_zip') or None,
                service_street=row.get('service_street') or None,
                service_city=row.get('service_city') or None,
                service_state=row.get('service_state') or None,
                service_zip=row.get('service_zip') or None,
            )
            self.session.add(customer)
            self.session.flush()
            self._import_locations(customer, row)
            result['success'] += 1

        logger.info(f"Customer CSV import: {result['success']} imported, {result['failed']} failed")
        return result

    def _import_locations(self, customer: Customer, row: Dict[str, str]):
        has_default = False
        for i in range(1, MAX_IMPORT_LOCATIONS + 1):
            prefix = f'service_location_{i}_'
            location_name = row.get(f'{prefix}name')
            if not location_name:
                continue

            lat = _float_or_none(row.get(f'{prefix}gps_lat'))
            lng = _float_or_none(row.get(f'{prefix}gps_lng'))
            if lat is None or lng is None:
                lat = lng = None

            is_default = row.get(f'{prefix}is_default', '').lower() == 'true' and not has_default
            has_default = has_default or is_default

            self.session.add(CustomerServiceLocation(
                organization_id=self.organization_id,
                customer_id=customer.id,
                location_name=location_name,
                street=row.get(f'{prefix}street') or None,
                city=row.get(f'{prefix}city') or None,
                state=row.get(f'{prefix}state') or None,
                zip=row.get(f'{prefix}zip') or None,
                latitude=lat,
                longitude=lng,
                is_default=is_default,
            ))
        self.session.flush()

    @staticmethod
    def generate_csv_template() -> str:
        """Header row plus one example row, with instruction comments."""
        headers = [
            'name', 'customer_type', 'phone', 'email', 'notes',
            'billing_street', 'billing_city', 'billing_state', 'billing_zip',
            'service_street', 'service_city', 'service_state', 'service_zip',
        ]
        for i in range(1, TEMPLATE_LOCATIONS + 1):
            headers.extend(f'service_location_{i}_{suffix}' for suffix in LOCATION_CSV_SUFFIXES)

        example = {
            'name': 'ABC Construction Inc',
            'customer_type': 'construction',
            'phone': '(555) 123-4567',
            'email': 'contact@abcconstruction.com',
            'notes': 'Prefers morning deliveries',
            'billing_street': '123 Business Ave',
            'billing_city': 'Albany',
            'billing_state': 'NY',
            'billing_zip': '12207',
            'service_street': '456 Construction Site Rd',
            'service_city': 'Albany',
            'service_state': 'NY',
            'service_zip': '12208',
            'service_location_1_name': 'Main Office',
            'service_location_1_street': '123 Business Ave',
            'service_location_1_city': 'Albany',
            'service_location_1_state': 'NY',
            'service_location_1_zip': '12207',
            'service_location_1_is_default': 'true',
            'service_location_1_gps_lat': '42.6526',
            'service_location_1_gps_lng': '-73.7562',
        }

        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=headers, lineterminator='\n')
        writer.writeheader()
        buffer.write('# Delete comment rows before uploading\n')
        buffer.write(f"# Customer types: {', '.join(CUSTOMER_TYPES)}\n")
        buffer.write('# Required: name, and phone or email\n')
        writer.writerow({h: example.get(h, '') for h in headers})
        return buffer.getvalue()
