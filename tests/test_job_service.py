"""
Tests for job scheduling, status lifecycle, consumables and equipment
"""
import pytest
from datetime import date
from unittest.mock import Mock

from database.models import Consumable, StockMovement
from services.event_logger import EventLogger
from services.inventory_service import InventoryService
from services.job_service import JobService
from validators import NotFoundError, ValidationError


@pytest.fixture
def notifier():
    return Mock()


@pytest.fixture
def jobs(db_session, org_id, notifier):
    return JobService(db_session, org_id, notifications=notifier)


def _event_types(db_session, org_id, job_id):
    return [e['event_type'] for e in EventLogger(db_session, org_id).get_entity_history('job', job_id)]


@pytest.mark.unit
class TestJobNumbering:
    """Tests for per-type job number counters"""

    def test_prefix_per_job_type(self, jobs):
        assert jobs.next_job_number('delivery') == 'DEL-001'
        assert jobs.next_job_number('delivery') == 'DEL-002'
        assert jobs.next_job_number('pickup') == 'PKP-001'
        assert jobs.next_job_number('service') == 'SVC-001'
        assert jobs.next_job_number('on-site-survey') == 'SURVEY-001'

    def test_other_types_share_job_counter(self, jobs):
        assert jobs.next_job_number('return') == 'JOB-001'
        assert jobs.next_job_number('partial-pickup') == 'JOB-002'


@pytest.mark.unit
class TestCreateJob:
    """Tests for job creation"""

    def test_unassigned_without_driver(self, jobs, factory, notifier):
        customer = factory.customer(service_zip='78701')
        job = jobs.create_job({'customer_id': customer.id, 'job_type': 'delivery',
                               'scheduled_date': '2026-06-01'})
        assert job['status'] == 'unassigned'
        assert job['job_number'] == 'DEL-001'
        assert job['timezone'] == 'America/Chicago'
        notifier.notify_job_assignment.assert_not_called()

    def test_assigned_with_driver_notifies(self, jobs, factory, notifier, db_session, org_id):
        customer = factory.customer()
        driver = factory.user()
        job = jobs.create_job({'customer_id': customer.id, 'job_type': 'service',
                               'scheduled_date': '2026-06-01', 'driver_id': driver.id})
        assert job['status'] == 'assigned'
        notifier.notify_job_assignment.assert_called_once()
        assert 'JOB_SCHEDULED' in _event_types(db_session, org_id, job['id'])

    def test_location_zip_sets_timezone(self, jobs, factory):
        customer = factory.customer(service_zip='10001')
        location = factory.location(customer, zip='83702', state='ID')
        job = jobs.create_job({'customer_id': customer.id, 'job_type': 'pickup',
                               'scheduled_date': '2026-06-01', 'service_location_id': location.id})
        assert job['timezone'] == 'America/Boise'

    def test_unknown_customer(self, jobs):
        with pytest.raises(NotFoundError):
            jobs.create_job({'customer_id': 'nope', 'job_type': 'delivery', 'scheduled_date': '2026-06-01'})

    def test_invalid_job_type(self, jobs, factory):
        customer = factory.customer()
        with pytest.raises(ValidationError):
            jobs.create_job({'customer_id': customer.id, 'job_type': 'teleport', 'scheduled_date': '2026-06-01'})


@pytest.mark.unit
class TestUpdateJob:
    """Tests for edits, driver changes and reschedules"""

    def test_setting_driver_assigns(self, jobs, factory, notifier):
        job = factory.job()
        driver = factory.user()
        updated = jobs.update_job(job.id, {'driver_id': driver.id})
        assert updated['status'] == 'assigned'
        notifier.notify_job_assignment.assert_called_once()

    def test_clearing_driver_unassigns(self, jobs, factory):
        driver = factory.user()
        job = factory.job(driver_id=driver.id, status='assigned')
        assert jobs.update_job(job.id, {'driver_id': None})['status'] == 'unassigned'

    def test_edits_are_validated(self, jobs, factory):
        job = factory.job()
        with pytest.raises(ValidationError):
            jobs.update_job(job.id, {'total_price': 'lots'})
        with pytest.raises(ValidationError):
            jobs.update_job(job.id, {'total_price': -5})
        with pytest.raises(NotFoundError):
            jobs.update_job(job.id, {'driver_id': 'ghost'})
        with pytest.raises(NotFoundError):
            jobs.update_job(job.id, {'vehicle_id': 'ghost'})

    def test_price_and_vehicle_update(self, jobs, factory):
        job = factory.job()
        vehicle = factory.vehicle()
        updated = jobs.update_job(job.id, {'total_price': '180.50', 'vehicle_id': vehicle.id})
        assert updated['total_price'] == 180.5
        assert updated['vehicle_id'] == vehicle.id

    def test_driver_from_other_organization_rejected(self, jobs, factory, db_session):
        from database.models import Organization, User
        other = Organization(name='Other Co', slug='other-co')
        db_session.add(other)
        db_session.flush()
        outsider = User(organization_id=other.id, role='driver', email='outsider@other.test',
                        first_name='Out', last_name='Sider')
        db_session.add(outsider)
        db_session.flush()
        with pytest.raises(NotFoundError):
            jobs.create_job({'customer_id': factory.customer().id, 'job_type': 'delivery',
                             'scheduled_date': '2026-06-01', 'driver_id': outsider.id})

    def test_reschedule_same_driver_notifies_route_change(self, jobs, factory, notifier, db_session, org_id):
        driver = factory.user()
        job = factory.job(driver_id=driver.id, status='assigned')
        jobs.update_job(job.id, {'scheduled_date': '2026-06-03', 'reason': 'Site not ready'})

        notifier.notify_route_change.assert_called_once()
        args = notifier.notify_route_change.call_args[0]
        assert args[1] == date(2026, 6, 1)
        assert args[2] == 'Site not ready'
        assert 'JOB_RESCHEDULED' in _event_types(db_session, org_id, job.id)

    def test_finished_job_is_read_only(self, jobs, factory):
        job = factory.job(status='completed')
        with pytest.raises(ValidationError):
            jobs.update_job(job.id, {'notes': 'late edit'})


@pytest.mark.unit
class TestJobStatus:
    """Tests for status transitions"""

    def test_complete_sets_completion_time(self, jobs, factory, db_session, org_id):
        job = factory.job(status='in_progress')
        result = jobs.update_status(job.id, 'completed')
        assert result['actual_completion_time'] is not None
        events = _event_types(db_session, org_id, job.id)
        assert 'STATUS_CHANGED' in events
        assert 'JOB_COMPLETED' in events

    def test_final_status_needs_force(self, jobs, factory):
        job = factory.job(status='cancelled')
        with pytest.raises(ValidationError):
            jobs.update_status(job.id, 'assigned')
        assert jobs.update_status(job.id, 'assigned', force=True)['status'] == 'assigned'

    def test_unknown_status(self, jobs, factory):
        job = factory.job()
        with pytest.raises(ValidationError):
            jobs.update_status(job.id, 'teleported')


@pytest.mark.unit
class TestTemplateAssignment:
    """Tests for bulk template assignment"""

    def test_bulk_assign_reports_missing(self, jobs, factory):
        template = jobs.create_template({'name': 'Standard Service'})
        first, second = factory.job(), factory.job()
        result = jobs.bulk_assign_templates([first.id, second.id, 'gone'], [template['id']])
        assert result == {'updated': 2, 'missing': ['gone']}
        assert jobs.get_job(first.id)['assigned_template_ids'] == [template['id']]

    def test_unknown_template_rejected(self, jobs, factory):
        job = factory.job()
        with pytest.raises(ValidationError):
            jobs.bulk_assign_templates([job.id], ['no-such-template'])

    def test_empty_job_list_rejected(self, jobs):
        with pytest.raises(ValidationError):
            jobs.bulk_assign_templates([], [])

    def test_template_name_required(self, jobs):
        with pytest.raises(ValidationError):
            jobs.create_template({})


@pytest.mark.unit
class TestJobConsumables:
    """Tests for consumable usage on jobs"""

    def test_per_use_defaults_to_consumable_price(self, jobs, factory, db_session):
        job = factory.job()
        paper = factory.consumable(on_hand_qty=5)
        result = jobs.add_consumables(job.id, {'billing_method': 'per-use',
                                               'items': [{'consumable_id': paper.id, 'quantity': 2}]})
        line = result['consumables'][0]
        assert line['unit_price'] == 4.5
        assert line['line_total'] == 9.0
        assert db_session.get(Consumable, paper.id).on_hand_qty == 3

    def test_stock_clamps_at_zero(self, jobs, factory, db_session):
        job = factory.job()
        paper = factory.consumable(on_hand_qty=1)
        jobs.add_consumables(job.id, {'billing_method': 'per-use',
                                      'items': [{'consumable_id': paper.id, 'quantity': 4}]})
        assert db_session.get(Consumable, paper.id).on_hand_qty == 0
        movement = db_session.query(StockMovement).filter_by(consumable_id=paper.id).one()
        assert movement.movement_type == 'job_usage'
        assert movement.quantity_change == -1

    def test_bundle_expands_with_multiplier(self, jobs, factory, db_session, org_id):
        job = factory.job()
        paper = factory.consumable()
        soap = factory.consumable(name='Hand Soap', sku='HS-1', unit_price=3.0)
        bundle = InventoryService(db_session, org_id).create_bundle({
            'name': 'Service Kit',
            'items': [{'consumable_id': paper.id, 'quantity': 2}, {'consumable_id': soap.id, 'quantity': 1}],
        })
        result = jobs.add_consumables(job.id, {'billing_method': 'bundle',
                                               'bundle_id': bundle['id'], 'quantity': 3})
        lines = {line['consumable_id']: line for line in result['consumables']}
        assert lines[paper.id]['quantity'] == 6
        assert lines[paper.id]['line_total'] == 27.0
        assert lines[soap.id]['quantity'] == 3
        assert all(line['bundle_id'] == bundle['id'] for line in lines.values())

    def test_subscription_changes_nothing(self, jobs, factory, db_session):
        job = factory.job()
        paper = factory.consumable()
        result = jobs.add_consumables(job.id, {'billing_method': 'subscription'})
        assert result['consumables'] == []
        assert db_session.get(Consumable, paper.id).on_hand_qty == 50

    def test_unknown_billing_method(self, jobs, factory):
        job = factory.job()
        with pytest.raises(ValidationError):
            jobs.add_consumables(job.id, {'billing_method': 'barter'})


@pytest.mark.unit
class TestJobEquipment:
    """Tests for equipment assignment and return"""

    def test_assign_quantity_within_availability(self, jobs, factory):
        job = factory.job()
        product = factory.product(stock_total=3)
        assignment = jobs.assign_equipment(job.id, {'product_id': product.id, 'quantity': 3})
        assert assignment['assigned_date'] == '2026-06-01'

        with pytest.raises(ValidationError):
            jobs.assign_equipment(factory.job().id, {'product_id': product.id, 'quantity': 1})

    def test_tracked_unit_must_be_available(self, jobs, factory):
        job = factory.job()
        product = factory.product()
        unit = factory.item(product, status='maintenance')
        with pytest.raises(ValidationError):
            jobs.assign_equipment(job.id, {'product_id': product.id, 'product_item_id': unit.id})

    def test_return_frees_tracked_unit(self, jobs, factory):
        job = factory.job()
        product = factory.product()
        unit = factory.item(product)
        assignment = jobs.assign_equipment(job.id, {'product_id': product.id, 'product_item_id': unit.id})
        assert unit.status == 'assigned'

        returned = jobs.return_equipment(assignment['id'], date(2026, 6, 5))
        assert returned['status'] == 'returned'
        assert unit.status == 'available'

    def test_return_date_before_assigned_date(self, jobs, factory):
        job = factory.job()
        product = factory.product()
        with pytest.raises(ValidationError):
            jobs.assign_equipment(job.id, {'product_id': product.id, 'return_date': '2026-05-01'})
