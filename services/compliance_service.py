"""
Compliance Service - driver credentials, training records and expirations.

Licenses, DOT medical cards and training due dates feed one expiration list.
The dashboard buckets those items by days remaining; the daily expiration
check emails drivers on fixed reminder days.
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Dict, Any, Optional

from sqlalchemy.orm import Session

from database.models import DriverCredential, DriverTrainingRecord, ExpirationNotificationLog, User
from database.seed import get_or_create_company_settings
from services.email_templates import compliance_digest_email, driver_expiration_email, wrap_email
from validators import NotFoundError, ValidationError, parse_date

logger = logging.getLogger(__name__)

ITEM_TYPES = ('license', 'medical_card', 'training')
STATUSES = ('overdue', 'expiring_30', 'expiring_60', 'expiring_90')

DASHBOARD_WINDOW_DAYS = 90
CHECK_GRACE_DAYS = 30
NOTIFY_ON_DAYS = (90, 60, 30, 7, 0, -7, -14, -30)
DEDUPE_HOURS = 24
CRITICAL_DAYS = 7

CREDENTIAL_FIELDS = ['license_number', 'license_class', 'license_state']


def expiry_status(days_until: int) -> str:
    """Bucket days-until-expiry into one of the four dashboard ranges."""
    if days_until < 0:
        return 'overdue'
    if days_until <= 30:
        return 'expiring_30'
    if days_until <= 60:
        return 'expiring_60'
    return 'expiring_90'


class ComplianceService:
    def __init__(self, session: Session, organization_id: str, config=None, notifications=None):
        self.session = session
        self.organization_id = organization_id
        self.config = config
        self.notifications = notifications

    def _driver(self, driver_id: str) -> User:
        driver = self.session.query(User).filter(
            User.id == driver_id,
            User.organization_id == self.organization_id
        ).first()
        if not driver:
            raise NotFoundError('driver', driver_id)
        return driver

    # =========================================================================
    # CREDENTIALS & TRAINING
    # =========================================================================

    def get_credentials(self, driver_id: str) -> Optional[Dict]:
        self._driver(driver_id)
        cred = self.session.query(DriverCredential).filter(
            DriverCredential.driver_id == driver_id
        ).first()
        return cred.to_dict() if cred else None

    def upsert_credentials(self, driver_id: str, data: Dict) -> Dict:
        driver = self._driver(driver_id)
        cred = self.session.query(DriverCredential).filter(
            DriverCredential.driver_id == driver_id
        ).first()
        if cred is None:
            cred = DriverCredential(organization_id=self.organization_id, driver_id=driver_id)
            self.session.add(cred)

        for key in CREDENTIAL_FIELDS:
            if key in data:
                setattr(cred, key, data[key])
        if 'license_expiry_date' in data:
            cred.license_expiry_date = parse_date(data['license_expiry_date'], 'license_expiry_date')
        if 'medical_card_expiry_date' in data:
            cred.medical_card_expiry_date = parse_date(data['medical_card_expiry_date'],
                                                       'medical_card_expiry_date')
        self.session.flush()
        logger.info(f"Updated credentials for driver {driver.full_name}")
        return cred.to_dict()

    def list_training(self, driver_id: str = None) -> List[Dict]:
        query = self.session.query(DriverTrainingRecord).filter(
            DriverTrainingRecord.organization_id == self.organization_id
        )
        if driver_id:
            query = query.filter(DriverTrainingRecord.driver_id == driver_id)
        return [r.to_dict() for r in query.order_by(DriverTrainingRecord.next_due).all()]

    def add_training(self, driver_id: str, data: Dict) -> Dict:
        self._driver(driver_id)
        if not data.get('training_type'):
            raise ValidationError('training_type is required', 'training_type')
        record = DriverTrainingRecord(
            organization_id=self.organization_id,
            driver_id=driver_id,
            training_type=data['training_type'],
            completed_on=parse_date(data.get('completed_on'), 'completed_on'),
            next_due=parse_date(data.get('next_due'), 'next_due'),
            notes=data.get('notes'),
        )
        self.session.add(record)
        self.session.flush()
        logger.info(f"Added {record.training_type} training for driver {driver_id}")
        return record.to_dict()

    def delete_training(self, record_id: str) -> bool:
        record = self.session.query(DriverTrainingRecord).filter(
            DriverTrainingRecord.id == record_id,
            DriverTrainingRecord.organization_id == self.organization_id
        ).first()
        if not record:
            return False
        self.session.delete(record)
        self.session.flush()
        return True

    # =========================================================================
    # EXPIRATIONS
    # =========================================================================

    def expiration_items(self, today: date = None, min_days: int = None,
                         max_days: int = DASHBOARD_WINDOW_DAYS) -> List[Dict[str, Any]]:
        """
        Every license, medical card and training due date whose days until
        expiry falls in [min_days, max_days]. min_days of None means no lower bound.
        """
        today = today or date.today()
        items = []

        def add(driver, item_type, item_name, expiry):
            days = (expiry - today).days
            if days > max_days or (min_days is not None and days < min_days):
                return
            items.append({
                'driver_id': driver.id,
                'driver_name': driver.full_name,
                'driver_email': driver.email,
                'item_type': item_type,
                'item_name': item_name,
                'expiry_date': expiry.isoformat(),
                'days_until_expiry': days,
                'status': expiry_status(days),
            })

        credentials = self.session.query(DriverCredential).filter(
            DriverCredential.organization_id == self.organization_id
        ).all()
        for cred in credentials:
            if not cred.driver:
                continue
            if cred.license_expiry_date:
                add(cred.driver, 'license', 'Driver License', cred.license_expiry_date)
            if cred.medical_card_expiry_date:
                add(cred.driver, 'medical_card', 'Medical Card', cred.medical_card_expiry_date)

        training = self.session.query(DriverTrainingRecord).filter(
            DriverTrainingRecord.organization_id == self.organization_id,
            DriverTrainingRecord.next_due.isnot(None)
        ).all()
        for record in training:
            if record.driver:
                add(record.driver, 'training', record.training_type, record.next_due)

        return items

    def dashboard(self, driver_id: str = None, item_type: str = None, status: str = None,
                  search: str = None, today: date = None) -> Dict[str, Any]:
        """Expiring items within 90 days, filtered and sorted soonest first."""
        all_items = self.expiration_items(today)

        summary = {bucket: 0 for bucket in STATUSES}
        for item in all_items:
            summary[item['status']] += 1
        summary['total'] = len(all_items)

        items = all_items
        if driver_id:
            items = [i for i in items if i['driver_id'] == driver_id]
        if item_type and item_type != 'all':
            items = [i for i in items if i['item_type'] == item_type]
        if status and status != 'all':
            items = [i for i in items if i['status'] == status]
        if search:
            term = search.lower()
            items = [i for i in items
                     if term in i['driver_name'].lower() or term in i['item_name'].lower()]

        items.sort(key=lambda i: i['days_until_expiry'])
        return {'items': items, 'summary': summary}

    def _recently_notified(self, item: Dict, now: datetime) -> bool:
        return self.session.query(ExpirationNotificationLog).filter(
            ExpirationNotificationLog.driver_id == item['driver_id'],
            ExpirationNotificationLog.item_type == item['item_type'],
            ExpirationNotificationLog.item_name == item['item_name'],
            ExpirationNotificationLog.days_until_expiry == item['days_until_expiry'],
            ExpirationNotificationLog.sent_at >= now - timedelta(hours=DEDUPE_HOURS)
        ).first() is not None

    def check_expirations(self, today: date = None) -> Dict[str, int]:
        """
        Send expiration reminders for items on a reminder day, then email the
        company's support address a digest of critical items.

        A reminder is logged only once it is delivered, so a failed email is
        retried on the next run. Drivers without an email address or who
        turned email off get the in-app notification, which counts as sent.

        Returns:
            {'checked', 'sent', 'failed', 'skipped', 'critical', 'digest_sent'};
            skipped counts reminders already logged in the last 24 hours.
        """
        now = datetime.utcnow()
        items = self.expiration_items(today, min_days=-CHECK_GRACE_DAYS)
        sent = failed = skipped = 0

        for item in items:
            days = item['days_until_expiry']
            if days not in NOTIFY_ON_DAYS:
                continue
            if self._recently_notified(item, now):
                skipped += 1
                continue
            if not self.notifications:
                failed += 1
                logger.warning(f"No notifier configured, expiration reminder not sent: "
                               f"{item['driver_name']} {item['item_name']} ({days} days)")
                continue

            driver = self.session.get(User, item['driver_id'])
            if days <= 0:
                title = f"URGENT: Your {item['item_name']} has expired"
            else:
                title = f"Reminder: Your {item['item_name']} expires in {days} days"
            html = driver_expiration_email(
                driver_name=item['driver_name'],
                item_type=item['item_type'],
                item_name=item['item_name'],
                expiration_date=item['expiry_date'],
                days_until_expiry=days,
            )

            result = self.notifications.notify_user(
                driver, 'driver_expiration', title=title,
                message=f"{item['item_name']} expiry date: {item['expiry_date']}",
                html_body=html,
                notification_type='alert' if days <= 0 else 'reminder',
                priority='urgent' if days <= 0 else 'high',
                entity_type='driver', entity_id=driver.id,
            )
            email = result.get('email')
            if email is not None and not email.get('success'):
                failed += 1
                logger.error(f"Expiration reminder failed: {item['driver_name']} {item['item_name']} "
                             f"({days} days): {email.get('error')}")
                continue

            self.session.add(ExpirationNotificationLog(
                organization_id=self.organization_id,
                driver_id=item['driver_id'],
                item_type=item['item_type'],
                item_name=item['item_name'],
                days_until_expiry=days,
                channel='email' if email is not None else 'in_app',
                sent_at=now,
            ))
            self.session.flush()
            sent += 1
            logger.info(f"Expiration reminder: {item['driver_name']} {item['item_name']} ({days} days)")

        critical = [item for item in items if item['days_until_expiry'] <= CRITICAL_DAYS]
        digest_sent = self.send_manager_digest(critical)

        logger.info(f"Expiration check: {len(items)} items checked, {sent} sent, "
                    f"{failed} failed, {skipped} skipped, {len(critical)} critical")
        return {'checked': len(items), 'sent': sent, 'failed': failed, 'skipped': skipped,
                'critical': len(critical), 'digest_sent': digest_sent}

    def send_manager_digest(self, critical_items: List[Dict]) -> bool:
        """Email the support address a table of critical items. True when delivered."""
        if not critical_items or not self.notifications:
            return False
        settings = get_or_create_company_settings(self.session, self.organization_id)
        if not settings.support_email:
            logger.info("Compliance digest skipped: no support email configured")
            return False

        title = f"Driver Compliance Alert - {len(critical_items)} Critical Items"
        result = self.notifications.email.send_email(
            settings.support_email, title,
            wrap_email(title, compliance_digest_email(critical_items), self.notifications.company_name())
        )
        if not result.get('success'):
            logger.error(f"Compliance digest to {settings.support_email} failed: {result.get('error')}")
            return False
        logger.info(f"Compliance digest sent to {settings.support_email} ({len(critical_items)} items)")
        return True
