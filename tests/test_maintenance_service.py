"""
Tests for maintenance records and repair work orders
"""
import pytest
from datetime import date, datetime, timedelta
from unittest.mock import Mock

from database.models import WorkOrder
from services.maintenance_service import (
    MaintenanceService,
    can_move_to_status,
    default_due_date,
    is_work_order_overdue,
    validate_work_order,
    work_order_age_days,
)
from validators import ValidationError


@pytest.fixture
def maintenance(db_session, org_id):
    return MaintenanceService(db_session, org_id)


def _order_data(vehicle, **overrides):
    data = {'asset_id': vehicle.id, 'description': 'Brake pedal soft', 'priority': 'high'}
    data.update(overrides)
    return data


@pytest.mark.unit
class TestWorkOrderRules:
    """Tests for the pure work order helpers"""

    def test_validation_messages(self):
        assert validate_work_order({}) == (False, 'Asset/vehicle is required')
        assert validate_work_order({'asset_id': 'v1', 'description': '  '}) == (False, 'Problem description is required')
        assert validate_work_order({'asset_id': 'v1', 'description': 'x'}) == (False, 'Priority level is required')
        assert validate_work_order({'asset_id': 'v1', 'description': 'x', 'priority': 'normal'}) == (True, None)

    def test_due_date_by_priority(self):
        today = date(2026, 6, 1)
        assert default_due_date('critical', today) == date(2026, 6, 2)
        assert default_due_date('high', today) == date(2026, 6, 4)
        assert default_due_date('normal', today) == date(2026, 6, 8)
        assert default_due_date('low', today) is None
        assert default_due_date('urgent', today) == date(2026, 6, 8)
        assert default_due_date(None, today) == date(2026, 6, 8)

    def test_completion_guards(self):
        order = WorkOrder(asset_type='vehicle', status='verification')
        assert can_move_to_status(order, 'completed')[0] is False
        order.technician_signature = 'T. Lee'
        order.resolution_notes = 'Replaced pads'
        allowed, reason = can_move_to_status(order, 'completed')
        assert allowed is False
        assert 'Meter reading' in reason
        order.meter_close = 120500
        assert can_move_to_status(order, 'completed') == (True, None)

    def test_driver_verification_guard(self):
        order = WorkOrder(asset_type='product_item', technician_signature='T. Lee',
                          resolution_notes='Fixed', driver_verification_required=True)
        assert can_move_to_status(order, 'completed')[0] is False
        order.driver_signature = 'D. Reyes'
        assert can_move_to_status(order, 'completed')[0] is True

    def test_vendor_and_parts_guards(self):
        order = WorkOrder(asset_type='vehicle')
        assert can_move_to_status(order, 'vendor')[0] is False
        assert can_move_to_status(order, 'awaiting_parts')[0] is False

    def test_overdue_and_age(self):
        order = WorkOrder(status='open', due_date=date(2026, 6, 1), created_at=datetime(2026, 5, 30, 12, 0))
        assert is_work_order_overdue(order, date(2026, 6, 2)) is True
        order.status = 'completed'
        assert is_work_order_overdue(order, date(2026, 6, 2)) is False
        assert work_order_age_days(order, now=datetime(2026, 6, 1, 13, 0)) == 3


@pytest.mark.unit
class TestWorkOrders:
    """Tests for work order persistence and transitions"""

    def test_create_numbers_and_history(self, maintenance, factory):
        vehicle = factory.vehicle()
        order = maintenance.create(_order_data(vehicle))
        assert order['work_order_number'] == f'WO-{date.today().year}-0001'
        assert order['status'] == 'open'
        assert order['due_date'] == (date.today() + timedelta(days=3)).isoformat()
        assert order['history'][0]['message'] == 'Work order created with status: open'
        assert order['next_statuses'] == ['in_progress']

        second = maintenance.create(_order_data(vehicle))
        assert second['work_order_number'] == f'WO-{date.today().year}-0002'

    def test_invalid_priority(self, maintenance, factory):
        vehicle = factory.vehicle()
        with pytest.raises(ValidationError):
            maintenance.create(_order_data(vehicle, priority='whenever'))

    def test_short_stocked_part_awaits_parts(self, maintenance, factory):
        vehicle = factory.vehicle()
        pads = factory.consumable(name='Brake Pads', sku='BP-1', on_hand_qty=1)
        order = maintenance.create(_order_data(vehicle, parts=[
            {'consumable_id': pads.id, 'quantity': 4, 'source': 'warehouse'},
        ]))
        assert order['status'] == 'awaiting_parts'
        assert order['short_parts'] == [{'part_name': 'Brake Pads', 'shortage': 3}]
        assert order['parts'][0]['unit_cost'] == 2.0

    def test_vendor_parts_never_short(self, maintenance, factory):
        vehicle = factory.vehicle()
        pads = factory.consumable(name='Brake Pads', sku='BP-1', on_hand_qty=0)
        order = maintenance.create(_order_data(vehicle, parts=[
            {'consumable_id': pads.id, 'quantity': 4, 'source': 'vendor'},
        ]))
        assert order['status'] == 'open'

    def test_transition_path_to_completed(self, maintenance, factory):
        vehicle = factory.vehicle()
        order = maintenance.create(_order_data(vehicle))

        maintenance.transition(order['id'], 'in_progress')
        with pytest.raises(ValidationError):
            maintenance.transition(order['id'], 'verification')
        maintenance.transition(order['id'], 'verification', {'technician_signature': 'T. Lee'})
        done = maintenance.transition(order['id'], 'completed', {
            'resolution_notes': 'Replaced pads', 'meter_close': 120500,
        })

        assert done['status'] == 'completed'
        assert done['completed_at'] is not None
        assert done['next_statuses'] == []
        assert [h['to_status'] for h in done['history']] == ['open', 'in_progress', 'verification', 'completed']

    def test_illegal_move_needs_force(self, maintenance, factory):
        vehicle = factory.vehicle()
        order = maintenance.create(_order_data(vehicle))
        with pytest.raises(ValidationError) as exc_info:
            maintenance.transition(order['id'], 'on_hold')
        assert str(exc_info.value) == 'Cannot move work order from open to on_hold'
        assert maintenance.transition(order['id'], 'on_hold', force=True)['status'] == 'on_hold'

    def test_same_status_is_noop(self, maintenance, factory):
        vehicle = factory.vehicle()
        order = maintenance.create(_order_data(vehicle))
        assert len(maintenance.transition(order['id'], 'open')['history']) == 1

    def test_no_parts_on_completed_order(self, maintenance, factory):
        vehicle = factory.vehicle()
        order = maintenance.create(_order_data(vehicle))
        maintenance.transition(order['id'], 'completed', {
            'technician_signature': 'T. Lee', 'resolution_notes': 'ok', 'meter_close': 1,
        }, force=True)
        with pytest.raises(ValidationError):
            maintenance.add_part(order['id'], {'part_name': 'Wiper blade'})


@pytest.mark.unit
class TestMaintenanceRecords:
    """Tests for scheduled maintenance and alerts"""

    def test_completing_record_raises_mileage(self, maintenance, factory):
        vehicle = factory.vehicle(current_mileage=1000)
        record = maintenance.create_record({'vehicle_id': vehicle.id, 'maintenance_type': 'Oil change',
                                            'scheduled_date': '2026-06-01'})
        updated = maintenance.update_record(record['id'], {'completed_date': '2026-06-02',
                                                           'mileage_at_service': 1500})
        assert updated['status'] == 'completed'
        assert vehicle.current_mileage == 1500

    def test_update_missing_record(self, maintenance):
        assert maintenance.update_record('missing', {}) is None

    def test_upcoming_and_overdue(self, maintenance, factory):
        vehicle = factory.vehicle()
        maintenance.create_record({'vehicle_id': vehicle.id, 'maintenance_type': 'Oil change',
                                   'scheduled_date': '2026-05-25'})
        maintenance.create_record({'vehicle_id': vehicle.id, 'maintenance_type': 'Tires',
                                   'scheduled_date': '2026-06-10'})
        today = date(2026, 6, 1)
        assert [r['maintenance_type'] for r in maintenance.upcoming(30, today)] == ['Tires']
        overdue = maintenance.overdue(today)
        assert overdue[0]['days_overdue'] == 7

    def test_alerts_go_to_owners_and_admins(self, db_session, org_id, factory):
        notifier = Mock()
        service = MaintenanceService(db_session, org_id, notifications=notifier)
        vehicle = factory.vehicle()
        factory.user(role='admin')
        factory.user(role='driver')
        service.create_record({'vehicle_id': vehicle.id, 'maintenance_type': 'Oil change',
                               'scheduled_date': '2026-05-25'})
        service.create_record({'vehicle_id': vehicle.id, 'maintenance_type': 'Tires',
                               'scheduled_date': '2026-07-30'})

        assert service.send_maintenance_alerts(days_ahead=7, today=date(2026, 6, 1)) == {'alerts': 1}
        roles = sorted(call.args[0].role for call in notifier.notify_user.call_args_list)
        assert roles == ['admin', 'owner']
        assert notifier.notify_user.call_args.kwargs['priority'] == 'high'

    def test_alerts_without_notifier(self, maintenance):
        assert maintenance.send_maintenance_alerts() == {'alerts': 0}
