"""
Event Logger Service - append-only audit trail of field operations.

Job status changes, quotes sent, payments, stock movements and DVIR
defects are written here inside the same transaction as the change
itself, so an event exists exactly when its mutation was committed.
"""

import logging
from typing import Dict, Optional, List
from datetime import datetime

from database.models import EventLog

logger = logging.getLogger(__name__)

# Event types for different operations
EVENT_TYPES = {
    # CRUD Operations
    'CREATED': 'Entity was created',
    'UPDATED': 'Entity was updated',
    'DELETED': 'Entity was deleted',

    # Status changes
    'STATUS_CHANGED': 'Status was changed',
    'ASSIGNED': 'Entity was assigned to someone',

    # Job lifecycle
    'JOB_SCHEDULED': 'Job was scheduled',
    'JOB_COMPLETED': 'Job was completed',
    'JOB_CANCELLED': 'Job was cancelled',
    'JOB_RESCHEDULED': 'Job was moved to another date or time',
    'SERVICE_REPORT_SUBMITTED': 'Service report was submitted',
    'TEMPLATES_ASSIGNED': 'Service report templates were assigned',

    # Billing
    'QUOTE_SENT': 'Quote was sent to customer',
    'QUOTE_ACCEPTED': 'Quote was accepted',
    'INVOICE_GENERATED': 'Invoice was generated',
    'INVOICE_SENT': 'Invoice was sent to customer',
    'PAYMENT_RECEIVED': 'Payment was received',
    'PAYMENT_OVERDUE': 'Payment is overdue',

    # Inventory
    'STOCK_ADJUSTED': 'Master stock was adjusted',
    'STOCK_USED': 'Consumables were used on a job',
    'STOCK_TRANSFERRED': 'Stock was transferred between locations',
    'STOCK_COUNTED': 'Stock count was recorded',
    'LOW_STOCK_ALERT': 'Low stock alert triggered',

    # Fleet
    'DVIR_SUBMITTED': 'Vehicle inspection was submitted',
    'DVIR_DEFECT': 'Major defect reported on inspection',
    'DEFECTS_CLEARED': 'Prior defects verified fixed',
    'WORK_ORDER_TRANSITION': 'Work order status changed',

    # Notifications
    'EMAIL_SENT': 'Email was sent',
    'SMS_SENT': 'SMS was sent',
    'EXPIRATION_NOTICE': 'Driver expiration notice sent',
}

ENTITY_TYPES = [
    'customer', 'job', 'quote', 'invoice', 'payment', 'product', 'consumable',
    'vehicle', 'work_order', 'dvir', 'driver', 'notification'
]


class EventLogger:
    """Service for logging system events to the database."""

    def __init__(self, session, organization_id: str, actor_type: str = 'system', actor_id: str = None):
        """
        Initialize the event logger.

        Args:
            session: SQLAlchemy database session
            organization_id: The organization ID for multi-tenancy
            actor_type: Type of actor (user, system, driver)
            actor_id: ID of the actor (user ID if user, None if system)
        """
        self.session = session
        self.organization_id = organization_id
        self.actor_type = actor_type
        self.actor_id = actor_id

    def log(self, entity_type: str, entity_id: str, event_type: str,
            description: str = None, metadata: Dict = None) -> Dict:
        """
        Log an event to the database.

        Args:
            entity_type: Type of entity (job, invoice, consumable...)
            entity_id: ID of the entity
            event_type: Type of event (CREATED, STATUS_CHANGED...)
            description: Human-readable description of the event
            metadata: Additional data about the event

        Returns:
            The created event log entry as a dict
        """
        event = EventLog(
            organization_id=self.organization_id,
            timestamp=datetime.utcnow(),
            actor_type=self.actor_type,
            actor_id=self.actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            event_type=event_type,
            description=description or EVENT_TYPES.get(event_type, event_type),
            extra_data=metadata or {}
        )

        self.session.add(event)
        self.session.flush()

        logger.debug(f"Event logged: {event_type} on {entity_type}:{entity_id}")
        return event.to_dict()

    def log_create(self, entity_type: str, entity_id: str, entity_data: Dict = None) -> Dict:
        """Log a creation event."""
        return self.log(
            entity_type=entity_type,
            entity_id=entity_id,
            event_type='CREATED',
            description=f"New {entity_type} created",
            metadata={'data': entity_data} if entity_data else None
        )

    def log_status_change(self, entity_type: str, entity_id: str,
                          old_status: str, new_status: str, note: str = None) -> Dict:
        """Log a status change event."""
        metadata = {'old_status': old_status, 'new_status': new_status}
        if note:
            metadata['note'] = note
        return self.log(
            entity_type=entity_type,
            entity_id=entity_id,
            event_type='STATUS_CHANGED',
            description=f"{entity_type.capitalize()} status changed from '{old_status}' to '{new_status}'",
            metadata=metadata
        )

    def get_entity_history(self, entity_type: str, entity_id: str,
                           limit: int = 50) -> List[Dict]:
        """Get the event history for a specific entity, newest first."""
        events = self.session.query(EventLog).filter(
            EventLog.organization_id == self.organization_id,
            EventLog.entity_type == entity_type,
            EventLog.entity_id == entity_id
        ).order_by(EventLog.timestamp.desc()).limit(limit).all()

        return [e.to_dict() for e in events]


def get_event_logger(session, organization_id: str, user_id: str = None) -> EventLogger:
    """
    Factory function to create an EventLogger instance.

    Args:
        session: SQLAlchemy database session
        organization_id: Organization ID
        user_id: Optional user ID if the actor is a user

    Returns:
        EventLogger instance
    """
    actor_type = 'user' if user_id else 'system'
    return EventLogger(session, organization_id, actor_type, user_id)
