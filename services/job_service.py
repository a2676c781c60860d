"""
Job Service - scheduling, numbering, status lifecycle, template assignment,
consumable usage and equipment assignment for field jobs.
"""

import logging
from datetime import datetime, date
from typing import List, Optional, Dict, Any

from sqlalchemy.orm import Session

from app.utils.timezones import get_timezone_from_zip
from database.models import (
    Consumable, ConsumableBundle, Customer, CustomerServiceLocation,
    EquipmentAssignment, Job, JobConsumable, MaintenanceReportTemplate,
    ProductItem, User, Vehicle
)
from database.seed import get_or_create_company_settings
from services.event_logger import EventLogger
from services.inventory_service import InventoryService
from validators import (
    NotFoundError, ValidationError, parse_date, parse_number, validate_job_request
)

logger = logging.getLogger(__name__)

JOB_STATUSES = ['assigned', 'unassigned', 'in_progress', 'completed', 'cancelled']
FINAL_STATUSES = ('completed', 'cancelled')
BILLING_METHODS = ('per-use', 'bundle', 'subscription')

# job_type -> CompanySettings column prefix for <prefix>_prefix / <prefix>_next_number
NUMBERING_KEYS = {
    'delivery': 'delivery',
    'pickup': 'pickup',
    'service': 'service',
    'on-site-survey': 'survey',
}

JOB_FIELDS = [
    'scheduled_time', 'timezone', 'service_location_id', 'driver_id', 'vehicle_id',
    'notes', 'special_instructions', 'total_price',
]


class JobService:
    """Repository for job database operations."""

    def __init__(self, session: Session, organization_id: str, user_id: str = None,
                 notifications=None):
        self.session = session
        self.organization_id = organization_id
        self.events = EventLogger(session, organization_id, 'user' if user_id else 'system', user_id)
        self.inventory = InventoryService(session, organization_id, user_id)
        self.notifications = notifications

    def _get(self, job_id: str) -> Job:
        job = self.session.query(Job).filter(
            Job.id == job_id,
            Job.organization_id == self.organization_id
        ).first()
        if not job:
            raise NotFoundError('job', job_id)
        return job

    # =========================================================================
    # QUERIES
    # =========================================================================

    def list_jobs(self, scheduled_date: date = None, status: str = None,
                  driver_id: str = None, job_type: str = None,
                  customer_id: str = None) -> List[Dict]:
        query = self.session.query(Job).filter(Job.organization_id == self.organization_id)
        if scheduled_date:
            query = query.filter(Job.scheduled_date == scheduled_date)
        if status:
            query = query.filter(Job.status == status)
        if driver_id:
            query = query.filter(Job.driver_id == driver_id)
        if job_type:
            query = query.filter(Job.job_type == job_type)
        if customer_id:
            query = query.filter(Job.customer_id == customer_id)
        jobs = query.order_by(Job.scheduled_date.asc(), Job.scheduled_time.asc()).all()
        return [j.to_dict() for j in jobs]

    def get_job(self, job_id: str) -> Dict:
        job = self._get(job_id)
        data = job.to_dict()
        data['equipment'] = [a.to_dict() for a in job.equipment_assignments]
        data['consumables'] = [c.to_dict() for c in job.consumables]
        return data

    def driver_schedule(self, driver_id: str, day: date) -> List[Dict]:
        """A driver's jobs for one day, by scheduled time with untimed jobs last."""
        jobs = self.session.query(Job).filter(
            Job.organization_id == self.organization_id,
            Job.driver_id == driver_id,
            Job.scheduled_date == day,
            Job.status != 'cancelled'
        ).all()
        jobs.sort(key=lambda j: (j.scheduled_time is None, j.scheduled_time or ''))
        return [j.to_dict() for j in jobs]

    # =========================================================================
    # CREATE / UPDATE
    # =========================================================================

    def next_job_number(self, job_type: str) -> str:
        """Take the next number for a job type and advance the counter."""
        settings = get_or_create_company_settings(self.session, self.organization_id)
        key = NUMBERING_KEYS.get(job_type, 'job')
        prefix = getattr(settings, f'{key}_prefix') or key.upper()
        number = getattr(settings, f'{key}_next_number') or 1
        setattr(settings, f'{key}_next_number', number + 1)
        return f"{prefix}-{number:03d}"

    def _resolve_timezone(self, customer: Customer, location: Optional[CustomerServiceLocation]) -> str:
        if location and location.zip:
            return get_timezone_from_zip(location.zip, location.state)
        return get_timezone_from_zip(customer.service_zip or customer.billing_zip,
                                     customer.service_state or customer.billing_state)

    def _apply_fields(self, job: Job, data: Dict):
        """Check references and price, then copy editable fields onto a job."""
        values = {key: data[key] or None for key in JOB_FIELDS if key in data}
        if 'total_price' in values or job.total_price is None:
            values['total_price'] = parse_number(data.get('total_price'), 'total_price', 0, min_value=0)

        if values.get('driver_id'):
            driver = self.session.query(User).filter(
                User.id == values['driver_id'],
                User.organization_id == self.organization_id
            ).first()
            if not driver:
                raise NotFoundError('driver', values['driver_id'])
        if values.get('vehicle_id'):
            vehicle = self.session.query(Vehicle).filter(
                Vehicle.id == values['vehicle_id'],
                Vehicle.organization_id == self.organization_id
            ).first()
            if not vehicle:
                raise NotFoundError('vehicle', values['vehicle_id'])
        if values.get('service_location_id'):
            location = self.session.query(CustomerServiceLocation).filter(
                CustomerServiceLocation.id == values['service_location_id'],
                CustomerServiceLocation.customer_id == job.customer_id
            ).first()
            if not location:
                raise NotFoundError('service_location', values['service_location_id'])

        for key, value in values.items():
            setattr(job, key, value)

    def create_job(self, data: Dict) -> Dict:
        """Create a job. Status is 'assigned' when a driver is given."""
        is_valid, error = validate_job_request(data)
        if not is_valid:
            raise ValidationError(error)

        customer = self.session.query(Customer).filter(
            Customer.id == data['customer_id'],
            Customer.organization_id == self.organization_id
        ).first()
        if not customer:
            raise NotFoundError('customer', data['customer_id'])

        location = None
        if data.get('service_location_id'):
            location = self.session.query(CustomerServiceLocation).filter(
                CustomerServiceLocation.id == data['service_location_id'],
                CustomerServiceLocation.customer_id == customer.id
            ).first()
            if not location:
                raise NotFoundError('service_location', data['service_location_id'])

        job = Job(
            organization_id=self.organization_id,
            job_number=self.next_job_number(data['job_type']),
            job_type=data['job_type'],
            customer_id=customer.id,
            scheduled_date=parse_date(data['scheduled_date'], 'scheduled_date'),
            status='assigned' if data.get('driver_id') else 'unassigned',
            assigned_template_ids=list(data.get('assigned_template_ids') or []),
        )
        self._apply_fields(job, data)
        if not job.timezone:
            job.timezone = self._resolve_timezone(customer, location)

        self.session.add(job)
        self.session.flush()

        self.events.log('job', job.id, 'JOB_SCHEDULED',
                        description=f"Job {job.job_number} scheduled for {job.scheduled_date.isoformat()}",
                        metadata={'job_type': job.job_type, 'driver_id': job.driver_id})
        if job.driver_id and self.notifications:
            self.notifications.notify_job_assignment(job)

        logger.info(f"Created job: {job.job_number} ({job.id})")
        return job.to_dict()

    def update_job(self, job_id: str, data: Dict) -> Dict:
        job = self._get(job_id)
        if job.status in FINAL_STATUSES:
            raise ValidationError(f"Cannot edit a {job.status} job", 'status')

        previous_driver = job.driver_id
        previous_date, previous_time = job.scheduled_date, job.scheduled_time
        self._apply_fields(job, data)
        if 'scheduled_date' in data:
            job.scheduled_date = parse_date(data['scheduled_date'], 'scheduled_date')
            if job.scheduled_date is None:
                raise ValidationError('scheduled_date is required', 'scheduled_date')

        if job.driver_id and job.status == 'unassigned':
            job.status = 'assigned'
            self.events.log_status_change('job', job.id, 'unassigned', 'assigned')
        elif not job.driver_id and job.status == 'assigned':
            job.status = 'unassigned'
            self.events.log_status_change('job', job.id, 'assigned', 'unassigned')

        job.updated_at = datetime.utcnow()
        self.session.flush()

        if self.notifications and job.driver_id:
            if job.driver_id != previous_driver:
                self.notifications.notify_job_assignment(job)
            elif (job.scheduled_date, job.scheduled_time) != (previous_date, previous_time):
                self.events.log('job', job.id, 'JOB_RESCHEDULED', metadata={
                    'from': f"{previous_date.isoformat()} {previous_time or ''}".strip(),
                    'to': f"{job.scheduled_date.isoformat()} {job.scheduled_time or ''}".strip(),
                })
                self.notifications.notify_route_change(job, previous_date, data.get('reason'))
        return job.to_dict()

    def update_status(self, job_id: str, new_status: str, force: bool = False,
                      note: str = None) -> Dict:
        """Move a job to a new status; finished jobs need `force`."""
        if new_status not in JOB_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(JOB_STATUSES)}", 'status')

        job = self._get(job_id)
        old_status = job.status
        if old_status in FINAL_STATUSES and new_status != old_status and not force:
            raise ValidationError(f"Job is {old_status}; status changes require force", 'status')

        job.status = new_status
        if new_status == 'completed':
            job.actual_completion_time = datetime.utcnow()
        job.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log_status_change('job', job.id, old_status, new_status, note)
        if new_status == 'completed':
            self.events.log('job', job.id, 'JOB_COMPLETED')
        elif new_status == 'cancelled':
            self.events.log('job', job.id, 'JOB_CANCELLED', metadata={'note': note} if note else None)

        logger.info(f"Job {job.job_number} status {old_status} -> {new_status}")
        return job.to_dict()

    # =========================================================================
    # SERVICE REPORT TEMPLATES
    # =========================================================================

    def bulk_assign_templates(self, job_ids: List[str], template_ids: List[str]) -> Dict[str, Any]:
        """Replace assigned_template_ids on each job, one update per job."""
        if not isinstance(job_ids, list) or not job_ids:
            raise ValidationError('job_ids must be a non-empty list', 'job_ids')
        if not isinstance(template_ids, list):
            raise ValidationError('template_ids must be a list', 'template_ids')

        if template_ids:
            found = {
                t.id for t in self.session.query(MaintenanceReportTemplate).filter(
                    MaintenanceReportTemplate.organization_id == self.organization_id,
                    MaintenanceReportTemplate.id.in_(template_ids)
                ).all()
            }
            unknown = [t for t in template_ids if t not in found]
            if unknown:
                raise ValidationError(f"Unknown template ids: {', '.join(unknown)}", 'template_ids')

        updated, missing = 0, []
        for job_id in job_ids:
            job = self.session.query(Job).filter(
                Job.id == job_id,
                Job.organization_id == self.organization_id
            ).first()
            if not job:
                missing.append(job_id)
                continue
            job.assigned_template_ids = list(template_ids)
            job.updated_at = datetime.utcnow()
            self.session.flush()
            self.events.log('job', job.id, 'TEMPLATES_ASSIGNED', metadata={'template_ids': template_ids})
            updated += 1

        logger.info(f"Assigned {len(template_ids)} templates to {updated} jobs ({len(missing)} missing)")
        return {'updated': updated, 'missing': missing}

    def list_templates(self) -> List[Dict]:
        templates = self.session.query(MaintenanceReportTemplate).filter(
            MaintenanceReportTemplate.organization_id == self.organization_id,
            MaintenanceReportTemplate.is_active == True  # noqa: E712
        ).order_by(MaintenanceReportTemplate.name).all()
        return [t.to_dict() for t in templates]

    def create_template(self, data: Dict) -> Dict:
        if not data.get('name'):
            raise ValidationError('name is required', 'name')
        template = MaintenanceReportTemplate(
            organization_id=self.organization_id,
            name=data['name'],
            template_type=data.get('template_type', 'service'),
            sections=data.get('sections') or [],
            rules=data.get('rules') or {},
        )
        self.session.add(template)
        self.session.flush()
        return template.to_dict()

    def get_template(self, template_id: str) -> MaintenanceReportTemplate:
        template = self.session.query(MaintenanceReportTemplate).filter(
            MaintenanceReportTemplate.id == template_id,
            MaintenanceReportTemplate.organization_id == self.organization_id
        ).first()
        if not template:
            raise NotFoundError('template', template_id)
        return template

    # =========================================================================
    # CONSUMABLES
    # =========================================================================

    def _consumable(self, consumable_id: str) -> Consumable:
        consumable = self.session.query(Consumable).filter(
            Consumable.id == consumable_id,
            Consumable.organization_id == self.organization_id
        ).first()
        if not consumable:
            raise NotFoundError('consumable', consumable_id)
        return consumable

    def _use(self, job: Job, consumable: Consumable, quantity: int, unit_price: float,
             billing_method: str, bundle_id: str = None) -> JobConsumable:
        row = JobConsumable(
            organization_id=self.organization_id,
            job_id=job.id,
            consumable_id=consumable.id,
            bundle_id=bundle_id,
            billing_method=billing_method,
            quantity=quantity,
            unit_price=unit_price,
            line_total=round(quantity * unit_price, 2),
        )
        self.session.add(row)
        self.inventory.consume(consumable, quantity, job.id)
        return row

    def add_consumables(self, job_id: str, data: Dict) -> Dict[str, Any]:
        """
        Record consumables on a job.

        per-use: {'billing_method': 'per-use', 'items': [{consumable_id, quantity, unit_price?}]}
        bundle: {'billing_method': 'bundle', 'bundle_id': ..., 'quantity'?: n}
        subscription: no rows and no stock change
        """
        job = self._get(job_id)
        method = data.get('billing_method')
        if method not in BILLING_METHODS:
            raise ValidationError(f"billing_method must be one of {', '.join(BILLING_METHODS)}", 'billing_method')

        rows = []
        if method == 'per-use':
            for item in data.get('items') or []:
                quantity = int(parse_number(item.get('quantity'), 'quantity', 0, min_value=0))
                if not item.get('consumable_id') or quantity <= 0:
                    continue
                consumable = self._consumable(item['consumable_id'])
                unit_price = parse_number(item.get('unit_price'), 'unit_price', consumable.unit_price or 0, min_value=0)
                rows.append(self._use(job, consumable, quantity, unit_price, method))
        elif method == 'bundle':
            bundle = self.session.query(ConsumableBundle).filter(
                ConsumableBundle.id == data.get('bundle_id'),
                ConsumableBundle.organization_id == self.organization_id
            ).first()
            if not bundle:
                raise NotFoundError('bundle', data.get('bundle_id'))
            multiplier = int(parse_number(data.get('quantity'), 'quantity', 1, min_value=1))
            for bundle_item in bundle.items:
                consumable = bundle_item.consumable
                rows.append(self._use(job, consumable, (bundle_item.quantity or 1) * multiplier,
                                      consumable.unit_price or 0, method, bundle_id=bundle.id))
        else:
            logger.info(f"Job {job.job_number} uses a consumables subscription; no stock change")

        self.session.flush()
        if rows:
            self.events.log('job', job.id, 'STOCK_USED',
                            metadata={'billing_method': method, 'lines': len(rows)})
        return {
            'job_id': job.id,
            'billing_method': method,
            'consumables': [r.to_dict() for r in rows],
        }

    # =========================================================================
    # EQUIPMENT
    # =========================================================================

    def assign_equipment(self, job_id: str, data: Dict) -> Dict:
        """Place a product quantity or a tracked unit on a job after an availability check."""
        job = self._get(job_id)
        if not data.get('product_id'):
            raise ValidationError('product_id is required', 'product_id')

        assigned_date = parse_date(data.get('assigned_date'), 'assigned_date') or job.scheduled_date
        return_date = parse_date(data.get('return_date'), 'return_date')
        if return_date and return_date < assigned_date:
            raise ValidationError('return_date must be on or after assigned_date', 'return_date')

        item = None
        if data.get('product_item_id'):
            item = self.session.query(ProductItem).filter(
                ProductItem.id == data['product_item_id'],
                ProductItem.organization_id == self.organization_id
            ).first()
            if not item or item.product_id != data['product_id']:
                raise NotFoundError('product_item', data['product_item_id'])
            if item.status != 'available':
                raise ValidationError(f"Unit {item.item_code} is {item.status}", 'product_item_id')
            quantity = 1
        else:
            quantity = int(parse_number(data.get('quantity'), 'quantity', 1, min_value=1))

        availability = self.inventory.check_availability(
            data['product_id'], assigned_date, return_date or assigned_date, quantity
        )
        if availability['summary']['min_available'] < quantity:
            raise ValidationError(
                f"Only {availability['summary']['min_available']} units available for the requested dates",
                'quantity'
            )

        assignment = EquipmentAssignment(
            organization_id=self.organization_id,
            job_id=job.id,
            product_id=data['product_id'],
            product_item_id=item.id if item else None,
            quantity=quantity,
            assigned_date=assigned_date,
            return_date=return_date,
            status='assigned',
        )
        if item:
            item.status = 'assigned'
        self.session.add(assignment)
        self.session.flush()
        self.events.log('job', job.id, 'ASSIGNED',
                        description=f"{quantity} unit(s) assigned to job {job.job_number}",
                        metadata={'product_id': assignment.product_id, 'product_item_id': assignment.product_item_id})
        logger.info(f"Assigned {quantity} x product {assignment.product_id} to job {job.job_number}")
        return assignment.to_dict()

    def return_equipment(self, assignment_id: str, return_date: date = None) -> Dict:
        assignment = self.session.query(EquipmentAssignment).filter(
            EquipmentAssignment.id == assignment_id,
            EquipmentAssignment.organization_id == self.organization_id
        ).first()
        if not assignment:
            raise NotFoundError('equipment_assignment', assignment_id)

        assignment.status = 'returned'
        assignment.return_date = return_date or date.today()
        if assignment.product_item:
            assignment.product_item.status = 'available'
        self.session.flush()
        return assignment.to_dict()
