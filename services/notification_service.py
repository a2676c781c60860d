"""
Notification Service - Manages in-app, email and SMS notifications.

This service handles:
- Creating notifications for users
- Marking notifications as read
- Per-user delivery preferences (email/SMS per event type)
- Sending email and SMS through the configured providers
- Low stock alerts
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Any, Optional

from sqlalchemy import func

from database.models import Consumable, Notification, NotificationPreference, User
from services.email_service import EmailClient, config_value
from services.email_templates import (
    wrap_email, job_assignment_email, low_stock_alert_email, route_schedule_change_email,
    vehicle_status_change_email,
)
from services.sms_service import SMSClient

logger = logging.getLogger(__name__)

NOTIFICATION_EVENTS = [
    'job_assignment',
    'route_schedule_change',
    'maintenance_alert',
    'invoice_reminder',
    'payment_confirmation',
    'low_stock_alert',
    'vehicle_status_change',
    'driver_expiration',
]

ALERT_ROLES = ('owner', 'admin')


class NotificationService:
    """Service for managing notifications."""

    def __init__(self, session, organization_id: str, config=None,
                 email_client: EmailClient = None, sms_client: SMSClient = None):
        self.session = session
        self.organization_id = organization_id
        self.config = config
        self.email = email_client or EmailClient(config)
        self.sms = sms_client or SMSClient(config)

    def create_notification(self, title: str, message: str,
                            notification_type: str = 'info',
                            priority: str = 'normal',
                            user_id: str = None,
                            entity_type: str = None,
                            entity_id: str = None,
                            metadata: Dict = None) -> Dict:
        """
        Create a new notification.

        Args:
            title: Notification title
            message: Notification message
            notification_type: Type (info, warning, alert, reminder, success)
            priority: Priority level (low, normal, high, urgent)
            user_id: Specific user to notify (None = all users)
            entity_type: Related entity type
            entity_id: Related entity ID
            metadata: Additional data

        Returns:
            Created notification dict
        """
        notification = Notification(
            organization_id=self.organization_id,
            user_id=user_id,
            title=title,
            message=message,
            notification_type=notification_type,
            priority=priority,
            entity_type=entity_type,
            entity_id=entity_id,
            extra_data=metadata or {},
            is_read=False,
            sent_email=False
        )

        self.session.add(notification)
        self.session.flush()

        logger.info(f"Created notification: {title}")
        return notification.to_dict()

    def _scoped(self, user_id: str = None):
        query = self.session.query(Notification).filter(
            Notification.organization_id == self.organization_id
        )
        if user_id:
            # Notifications for this user OR broadcasts
            query = query.filter(
                (Notification.user_id == user_id) |
                (Notification.user_id == None)  # noqa: E711
            )
        return query

    def get_notifications(self, user_id: str = None, unread_only: bool = False,
                          limit: int = 50) -> List[Dict]:
        """Get notifications for a user or all users."""
        query = self._scoped(user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)  # noqa: E712

        notifications = query.order_by(
            Notification.created_at.desc()
        ).limit(limit).all()

        return [n.to_dict() for n in notifications]

    def get_unread_count(self, user_id: str = None) -> int:
        """Get count of unread notifications."""
        query = self.session.query(func.count(Notification.id)).filter(
            Notification.organization_id == self.organization_id,
            Notification.is_read == False  # noqa: E712
        )
        if user_id:
            query = query.filter(
                (Notification.user_id == user_id) |
                (Notification.user_id == None)  # noqa: E711
            )
        return query.scalar() or 0

    def mark_as_read(self, notification_id: str) -> bool:
        """Mark a notification as read."""
        notification = self.session.query(Notification).filter(
            Notification.id == notification_id,
            Notification.organization_id == self.organization_id
        ).first()

        if not notification:
            return False

        notification.is_read = True
        notification.read_at = datetime.utcnow()
        self.session.flush()
        return True

    def mark_all_as_read(self, user_id: str = None) -> int:
        """Mark all notifications as read for a user."""
        query = self._scoped(user_id).filter(Notification.is_read == False)  # noqa: E712

        count = 0
        now = datetime.utcnow()
        for notification in query.all():
            notification.is_read = True
            notification.read_at = now
            count += 1

        self.session.flush()
        return count

    def delete_notification(self, notification_id: str) -> bool:
        """Delete a notification."""
        notification = self.session.query(Notification).filter(
            Notification.id == notification_id,
            Notification.organization_id == self.organization_id
        ).first()

        if not notification:
            return False

        self.session.delete(notification)
        self.session.flush()
        return True

    def cleanup_old_notifications(self, days: int = 30) -> int:
        """Delete read notifications older than specified days."""
        cutoff = datetime.utcnow() - timedelta(days=days)

        query = self.session.query(Notification).filter(
            Notification.organization_id == self.organization_id,
            Notification.is_read == True,  # noqa: E712
            Notification.created_at < cutoff
        )

        count = query.count()
        query.delete(synchronize_session=False)
        self.session.flush()

        logger.info(f"Cleaned up {count} read notifications older than {days} days")
        return count

    # =========================================================================
    # PREFERENCES
    # =========================================================================

    def get_preferences(self, user_id: str) -> Dict:
        pref = self.session.query(NotificationPreference).filter(
            NotificationPreference.user_id == user_id
        ).first()
        if pref is None:
            return {'user_id': user_id, 'email_enabled': True, 'sms_enabled': False, 'event_preferences': {}}
        return pref.to_dict()

    def update_preferences(self, user_id: str, data: Dict) -> Dict:
        pref = self.session.query(NotificationPreference).filter(
            NotificationPreference.user_id == user_id
        ).first()
        if pref is None:
            pref = NotificationPreference(organization_id=self.organization_id, user_id=user_id)
            self.session.add(pref)

        if 'email_enabled' in data:
            pref.email_enabled = bool(data['email_enabled'])
        if 'sms_enabled' in data:
            pref.sms_enabled = bool(data['sms_enabled'])
        if 'event_preferences' in data:
            events = dict(pref.event_preferences or {})
            for event, channels in (data['event_preferences'] or {}).items():
                if event in NOTIFICATION_EVENTS and isinstance(channels, dict):
                    events[event] = {k: bool(v) for k, v in channels.items() if k in ('email', 'sms')}
            pref.event_preferences = events

        self.session.flush()
        return pref.to_dict()

    def wants(self, user_id: str, event_type: str, channel: str) -> bool:
        """Whether a user accepts `channel` ('email' or 'sms') for an event type."""
        prefs = self.get_preferences(user_id)
        channel_default = prefs['email_enabled'] if channel == 'email' else prefs['sms_enabled']
        event_prefs = prefs['event_preferences'].get(event_type) or {}
        return bool(event_prefs.get(channel, channel_default))

    # =========================================================================
    # DELIVERY
    # =========================================================================

    def company_name(self) -> str:
        return config_value(self.config, 'COMPANY_NAME', 'PortaPro')

    def notify_user(self, user: User, event_type: str, title: str, message: str,
                    html_body: str = None, sms_text: str = None,
                    notification_type: str = 'info', priority: str = 'normal',
                    entity_type: str = None, entity_id: str = None) -> Dict[str, Any]:
        """
        Create the in-app notification and send email/SMS as the user's
        preferences allow. Provider failures come back in the result.
        """
        result = {
            'notification': self.create_notification(
                title, message, notification_type=notification_type, priority=priority,
                user_id=user.id, entity_type=entity_type, entity_id=entity_id,
                metadata={'event_type': event_type},
            ),
            'email': None,
            'sms': None,
        }

        if html_body and user.email and self.wants(user.id, event_type, 'email'):
            result['email'] = self.email.send_email(
                user.email, title, wrap_email(title, html_body, self.company_name())
            )
            if result['email'].get('success'):
                notification = self.session.get(Notification, result['notification']['id'])
                notification.sent_email = True
                result['notification']['sent_email'] = True
            else:
                logger.error(f"Email for {event_type} to {user.email} failed: {result['email'].get('error')}")

        if sms_text and user.phone and self.wants(user.id, event_type, 'sms'):
            result['sms'] = self.sms.send_sms(user.phone, sms_text)
            if not result['sms'].get('success'):
                logger.error(f"SMS for {event_type} to {user.phone} failed: {result['sms'].get('error')}")

        self.session.flush()
        return result

    def _alert_recipients(self) -> List[User]:
        return self.session.query(User).filter(
            User.organization_id == self.organization_id,
            User.is_active == True,  # noqa: E712
            User.role.in_(ALERT_ROLES)
        ).all()

    def notify_job_assignment(self, job) -> Optional[Dict[str, Any]]:
        """Tell the assigned driver about a job."""
        if not job.driver_id:
            return None
        driver = self.session.get(User, job.driver_id)
        if not driver:
            return None

        location = job.service_location
        if location:
            address = ', '.join(p for p in (location.street, location.city, location.state) if p)
        else:
            customer = job.customer
            address = ', '.join(p for p in (customer.service_street, customer.service_city,
                                            customer.service_state) if p) if customer else ''

        html = job_assignment_email(
            job_number=job.job_number,
            customer_name=job.customer.name if job.customer else '',
            service_type=job.job_type,
            scheduled_date=job.scheduled_date.isoformat(),
            scheduled_time=job.scheduled_time,
            location_address=address or 'See job details',
            job_id=job.id,
            special_instructions=job.special_instructions,
        )
        return self.notify_user(
            driver, 'job_assignment',
            title=f"New job assigned: {job.job_number}",
            message=f"{job.job_type} on {job.scheduled_date.isoformat()}",
            html_body=html,
            sms_text=f"New job {job.job_number} on {job.scheduled_date.isoformat()}"
                     f"{' at ' + job.scheduled_time if job.scheduled_time else ''}",
            entity_type='job', entity_id=job.id,
        )

    def notify_route_change(self, job, original_date, reason: str = None) -> Optional[Dict[str, Any]]:
        """Tell the assigned driver that a job moved to another date or time."""
        driver = self.session.get(User, job.driver_id) if job.driver_id else None
        if not driver:
            return None

        moved = original_date != job.scheduled_date
        html = route_schedule_change_email(
            driver_name=driver.full_name,
            change_type='Rescheduled' if moved else 'Time change',
            affected_jobs=[{
                'job_number': job.job_number,
                'customer_name': job.customer.name if job.customer else '',
                'new_time': job.scheduled_time,
            }],
            original_date=original_date.isoformat() if moved else None,
            new_date=job.scheduled_date.isoformat() if moved else None,
            reason=reason,
        )
        return self.notify_user(
            driver, 'route_schedule_change',
            title=f"Schedule change: {job.job_number}",
            message=f"Now {job.scheduled_date.isoformat()}"
                    f"{' at ' + job.scheduled_time if job.scheduled_time else ''}",
            html_body=html,
            sms_text=f"Job {job.job_number} moved to {job.scheduled_date.isoformat()}"
                     f"{' ' + job.scheduled_time if job.scheduled_time else ''}",
            notification_type='warning',
            entity_type='job', entity_id=job.id,
        )

    def notify_vehicle_status_change(self, vehicle, old_status: str, new_status: str,
                                     reason: str = None) -> List[Dict[str, Any]]:
        """Alert owners/admins that a vehicle changed status."""
        name = ' '.join(str(p) for p in (vehicle.year, vehicle.make, vehicle.model) if p) or vehicle.license_plate
        html = vehicle_status_change_email(
            vehicle_name=f"{name} ({vehicle.license_plate})",
            vehicle_id=vehicle.id,
            old_status=old_status or 'unknown',
            new_status=new_status,
            reason=reason,
        )
        results = []
        for user in self._alert_recipients():
            results.append(self.notify_user(
                user, 'vehicle_status_change',
                title=f"Vehicle {vehicle.license_plate} is now {new_status}",
                message=f"Status changed from {old_status} to {new_status}",
                html_body=html,
                notification_type='warning' if new_status != 'active' else 'info',
                entity_type='vehicle', entity_id=vehicle.id,
            ))
        return results

    def send_low_stock_alerts(self) -> Dict[str, int]:
        """Alert owners/admins about every active consumable at or below its reorder threshold."""
        low = self.session.query(Consumable).filter(
            Consumable.organization_id == self.organization_id,
            Consumable.is_active == True,  # noqa: E712
            Consumable.on_hand_qty <= Consumable.reorder_threshold
        ).all()
        recipients = self._alert_recipients()

        sent = 0
        for item in low:
            threshold = item.reorder_threshold or 0
            html = low_stock_alert_email(
                item_name=item.name,
                current_quantity=item.on_hand_qty or 0,
                threshold=threshold,
                item_id=item.id,
                item_sku=item.sku,
                suggested_reorder_qty=max(threshold * 2 - (item.on_hand_qty or 0), 0) or None,
            )
            for user in recipients:
                result = self.notify_user(
                    user, 'low_stock_alert',
                    title=f"Low stock: {item.name}",
                    message=f"{item.on_hand_qty} on hand (threshold {threshold})",
                    html_body=html,
                    notification_type='warning', priority='high',
                    entity_type='consumable', entity_id=item.id,
                )
                if result['email'] and result['email'].get('success'):
                    sent += 1

        logger.info(f"Low stock check: {len(low)} items low, {sent} emails sent")
        return {'low_stock_items': len(low), 'emails_sent': sent}


def get_notification_service(session, organization_id: str, config=None) -> NotificationService:
    """Factory function to create a NotificationService instance."""
    return NotificationService(session, organization_id, config)
