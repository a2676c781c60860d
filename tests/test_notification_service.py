"""
Tests for in-app notifications, delivery preferences and alert fan-out
"""
import pytest
from datetime import date, datetime, timedelta

from database.models import Notification


@pytest.mark.unit
class TestInAppNotifications:
    """Tests for creating and reading notifications"""

    def test_broadcasts_reach_every_user(self, notifications, factory):
        driver = factory.user()
        other = factory.user()
        notifications.create_notification('Yard closed', 'Snow day')
        notifications.create_notification('Your route', 'Route 4', user_id=driver.id)

        assert notifications.get_unread_count(driver.id) == 2
        assert notifications.get_unread_count(other.id) == 1
        assert notifications.get_unread_count() == 2

    def test_mark_read(self, notifications, factory):
        driver = factory.user()
        first = notifications.create_notification('One', 'x', user_id=driver.id)
        notifications.create_notification('Two', 'y', user_id=driver.id)

        assert notifications.mark_as_read(first['id']) is True
        assert notifications.mark_as_read('missing') is False
        assert [n['title'] for n in notifications.get_notifications(driver.id, unread_only=True)] == ['Two']
        assert notifications.mark_all_as_read(driver.id) == 1
        assert notifications.get_unread_count(driver.id) == 0

    def test_cleanup_removes_old_read_only(self, notifications, db_session):
        old_read = notifications.create_notification('Old', 'read')
        old_unread = notifications.create_notification('Old', 'unread')
        for item in (old_read, old_unread):
            row = db_session.get(Notification, item['id'])
            row.created_at = datetime.utcnow() - timedelta(days=40)
        notifications.mark_as_read(old_read['id'])

        assert notifications.cleanup_old_notifications(days=30) == 1
        assert notifications.delete_notification(old_unread['id']) is True


@pytest.mark.unit
class TestPreferences:
    """Tests for per-user channel preferences"""

    def test_defaults(self, notifications, factory):
        user = factory.user()
        assert notifications.get_preferences(user.id)['email_enabled'] is True
        assert notifications.wants(user.id, 'job_assignment', 'sms') is False

    def test_event_override_beats_global_toggle(self, notifications, factory):
        user = factory.user()
        prefs = notifications.update_preferences(user.id, {
            'email_enabled': False,
            'event_preferences': {'job_assignment': {'sms': True, 'push': True}, 'made_up': {'sms': True}},
        })
        assert prefs['event_preferences'] == {'job_assignment': {'sms': True}}
        assert notifications.wants(user.id, 'job_assignment', 'sms') is True
        assert notifications.wants(user.id, 'job_assignment', 'email') is False
        assert notifications.wants(user.id, 'low_stock_alert', 'sms') is False


@pytest.mark.unit
class TestDelivery:
    """Tests for email and SMS fan-out"""

    def test_notify_user_sends_email_and_marks_notification(self, notifications, factory, email_client, sms_client):
        user = factory.user()
        result = notifications.notify_user(user, 'maintenance_alert', 'Oil change due', 'Truck 4',
                                           html_body='<p>Due</p>', sms_text='Oil change due')
        assert result['notification']['sent_email'] is True
        email_client.send_email.assert_called_once()
        assert email_client.send_email.call_args[0][0] == user.email
        sms_client.send_sms.assert_not_called()

    def test_sms_when_opted_in(self, notifications, factory, sms_client):
        user = factory.user()
        notifications.update_preferences(user.id, {'sms_enabled': True})
        notifications.notify_user(user, 'job_assignment', 'New job', 'DEL-001', sms_text='New job DEL-001')
        sms_client.send_sms.assert_called_once_with(user.phone, 'New job DEL-001')

    def test_email_failure_is_reported(self, notifications, factory, email_client):
        email_client.send_email.return_value = {'success': False, 'error': 'rate limited'}
        user = factory.user()
        result = notifications.notify_user(user, 'maintenance_alert', 'Due', 'x', html_body='<p>x</p>')
        assert result['email']['error'] == 'rate limited'
        assert result['notification']['sent_email'] is False

    def test_job_assignment_targets_driver(self, notifications, factory, email_client):
        driver = factory.user()
        job = factory.job(driver_id=driver.id, job_number='DEL-007', scheduled_time='08:30')
        result = notifications.notify_job_assignment(job)
        assert result['notification']['title'] == 'New job assigned: DEL-007'
        assert email_client.send_email.call_args[0][0] == driver.email

    def test_job_without_driver(self, notifications, factory):
        assert notifications.notify_job_assignment(factory.job()) is None

    def test_route_change_for_moved_job(self, notifications, factory):
        driver = factory.user()
        job = factory.job(driver_id=driver.id, job_number='PKP-002', scheduled_date=date(2026, 6, 3))
        result = notifications.notify_route_change(job, date(2026, 6, 1), 'Rain')
        assert result['notification']['message'] == 'Now 2026-06-03'
        assert result['notification']['notification_type'] == 'warning'

    def test_vehicle_status_change_goes_to_admins(self, notifications, factory):
        factory.user(role='admin')
        factory.user(role='driver')
        vehicle = factory.vehicle(license_plate='TRK-9')
        results = notifications.notify_vehicle_status_change(vehicle, 'active', 'maintenance')
        assert len(results) == 2
        assert results[0]['notification']['title'] == 'Vehicle TRK-9 is now maintenance'

    def test_low_stock_alerts(self, notifications, factory, email_client):
        factory.consumable(name='Deodorizer', sku='DEO-1', on_hand_qty=2, reorder_threshold=5)
        factory.consumable(name='Sanitizer', sku='SAN-1', on_hand_qty=40)
        assert notifications.send_low_stock_alerts() == {'low_stock_items': 1, 'emails_sent': 1}
        assert email_client.send_email.call_args[0][1] == 'Low stock: Deodorizer'
