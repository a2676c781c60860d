"""
Background Job Scheduler - Runs periodic polling tasks.

This service manages background jobs that:
- Check driver credential and training expirations
- Alert on low consumable stock
- Remind customers about overdue invoices
- Clean up old read notifications

Each job walks every organization in one database session.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, Any, Optional, Callable

logger = logging.getLogger(__name__)

HOUR = 60 * 60
DAY = 24 * HOUR

# Global scheduler instance
_scheduler = None


class BackgroundScheduler:
    """Simple background scheduler for running periodic tasks."""

    def __init__(self, poll_seconds: int = 10):
        self.jobs: Dict[str, Dict] = {}
        self.running = False
        self.poll_seconds = poll_seconds
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()

    def add_job(self, job_id: str, func: Callable, interval_seconds: int,
                run_immediately: bool = False, kwargs: Dict = None):
        """
        Add a job to the scheduler.

        Args:
            job_id: Unique identifier for the job
            func: Function to call
            interval_seconds: How often to run (in seconds)
            run_immediately: Whether to run once immediately
            kwargs: Keyword arguments to pass to the function
        """
        now = datetime.utcnow()
        with self._lock:
            self.jobs[job_id] = {
                'func': func,
                'interval': interval_seconds,
                'kwargs': kwargs or {},
                'last_run': None,
                'next_run': now if run_immediately else now + timedelta(seconds=interval_seconds),
                'run_count': 0,
                'last_error': None,
                'last_result': None,
                'enabled': True
            }
        logger.info(f"Added job '{job_id}' with interval {interval_seconds}s")

    def remove_job(self, job_id: str) -> bool:
        with self._lock:
            if job_id not in self.jobs:
                return False
            del self.jobs[job_id]
        logger.info(f"Removed job '{job_id}'")
        return True

    def enable_job(self, job_id: str) -> bool:
        with self._lock:
            if job_id not in self.jobs:
                return False
            self.jobs[job_id]['enabled'] = True
            return True

    def disable_job(self, job_id: str) -> bool:
        """Disable a job without removing it."""
        with self._lock:
            if job_id not in self.jobs:
                return False
            self.jobs[job_id]['enabled'] = False
            return True

    def get_job_status(self) -> Dict[str, Any]:
        """Get status of all jobs."""
        with self._lock:
            return {
                job_id: {
                    'interval': job['interval'],
                    'last_run': job['last_run'].isoformat() if job['last_run'] else None,
                    'next_run': job['next_run'].isoformat() if job['next_run'] else None,
                    'run_count': job['run_count'],
                    'last_error': job['last_error'],
                    'last_result': job['last_result'],
                    'enabled': job['enabled']
                }
                for job_id, job in self.jobs.items()
            }

    def start(self):
        """Start the scheduler in a background thread."""
        if self.running:
            logger.warning("Scheduler is already running")
            return

        self.running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name='scheduler', daemon=True)
        self._thread.start()
        logger.info("Background scheduler started")

    def stop(self):
        """Stop the scheduler."""
        self.running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Background scheduler stopped")

    def _execute(self, job_id: str, job: Dict, reschedule: bool) -> Dict[str, Any]:
        started = datetime.utcnow()
        try:
            logger.debug(f"Running job '{job_id}'")
            result = job['func'](**job['kwargs'])
        except Exception as e:
            logger.error(f"Job '{job_id}' failed: {e}", exc_info=True)
            with self._lock:
                job['last_error'] = str(e)
                if reschedule:
                    job['next_run'] = started + timedelta(seconds=job['interval'])
            return {'success': False, 'error': str(e)}

        with self._lock:
            job['last_run'] = started
            job['run_count'] += 1
            job['last_error'] = None
            job['last_result'] = result
            if reschedule:
                job['next_run'] = started + timedelta(seconds=job['interval'])
        return {'success': True, 'result': result}

    def _run_loop(self):
        """Main scheduler loop."""
        while self.running and not self._stop_event.is_set():
            now = datetime.utcnow()

            with self._lock:
                due = [(job_id, job) for job_id, job in self.jobs.items()
                       if job['enabled'] and job['next_run'] and now >= job['next_run']]

            for job_id, job in due:
                self._execute(job_id, job, reschedule=True)

            self._stop_event.wait(timeout=self.poll_seconds)

    def run_job_now(self, job_id: str) -> Optional[Dict[str, Any]]:
        """
        Manually trigger a job to run immediately.

        Returns:
            {'success', 'result'} or {'success': False, 'error'}; None for an unknown job
        """
        with self._lock:
            job = self.jobs.get(job_id)
        if job is None:
            return None
        return self._execute(job_id, job, reschedule=False)


def get_scheduler() -> BackgroundScheduler:
    """Get or create the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = BackgroundScheduler()
    return _scheduler


# =============================================================================
# SCHEDULED JOBS
# =============================================================================

def for_each_organization(task: Callable, config=None) -> Dict[str, Any]:
    """
    Run task(session, organization_id, notifications) for every organization
    and return its results keyed by organization id.

    Each organization gets its own session and transaction; a failing
    organization is rolled back alone and reported as {'error': ...}.
    """
    from database.connection import get_db_session
    from database.models import Organization
    from services.notification_service import NotificationService

    with get_db_session() as session:
        org_ids = [org_id for (org_id,) in session.query(Organization.id).all()]

    results = {}
    for org_id in org_ids:
        try:
            with get_db_session() as session:
                notifications = NotificationService(session, org_id, config)
                results[org_id] = task(session, org_id, notifications)
        except Exception as e:
            logger.exception(f"Scheduled task failed for organization {org_id}")
            results[org_id] = {'error': str(e)}
    return results


def check_expirations_job(config=None) -> Dict[str, Any]:
    """Email drivers whose credentials or training are on a reminder day."""
    from services.compliance_service import ComplianceService

    return for_each_organization(
        lambda session, org_id, notifications: ComplianceService(
            session, org_id, config, notifications=notifications
        ).check_expirations(),
        config,
    )


def low_stock_alerts_job(config=None) -> Dict[str, Any]:
    """Alert owners and admins about consumables at or below their threshold."""
    return for_each_organization(
        lambda session, org_id, notifications: notifications.send_low_stock_alerts(),
        config,
    )


def overdue_invoice_reminders_job(config=None) -> Dict[str, Any]:
    from services.billing_service import BillingService

    return for_each_organization(
        lambda session, org_id, notifications: BillingService(
            session, org_id, config, email_client=notifications.email
        ).send_overdue_reminders(),
        config,
    )


def maintenance_alerts_job(config=None) -> Dict[str, Any]:
    from services.maintenance_service import MaintenanceService

    return for_each_organization(
        lambda session, org_id, notifications: MaintenanceService(
            session, org_id, notifications=notifications
        ).send_maintenance_alerts(),
        config,
    )


def cleanup_notifications_job(config=None) -> Dict[str, Any]:
    """Delete read notifications past the retention window."""
    from services.email_service import config_value

    days = int(config_value(config, 'NOTIFICATION_RETENTION_DAYS', 30))
    return for_each_organization(
        lambda session, org_id, notifications: notifications.cleanup_old_notifications(days=days),
        config,
    )


DEFAULT_JOBS = [
    ('check_expirations', check_expirations_job, DAY),
    ('low_stock_alerts', low_stock_alerts_job, 6 * HOUR),
    ('overdue_invoice_reminders', overdue_invoice_reminders_job, DAY),
    ('maintenance_alerts', maintenance_alerts_job, DAY),
    ('cleanup_notifications', cleanup_notifications_job, DAY),
]


def register_default_jobs(scheduler: BackgroundScheduler, config=None) -> BackgroundScheduler:
    for job_id, func, interval in DEFAULT_JOBS:
        scheduler.add_job(job_id, func, interval_seconds=interval, kwargs={'config': config})
    return scheduler


def init_scheduler(config=None, start: bool = True) -> BackgroundScheduler:
    """Initialize the scheduler with default jobs."""
    scheduler = register_default_jobs(get_scheduler(), config)
    if start:
        scheduler.start()
    logger.info("Scheduler initialized with default jobs")
    return scheduler
