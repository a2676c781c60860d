"""
Notification Routes Blueprint

Handles in-app notifications, delivery preferences and the event log:
- /api/notifications: list (unread_only, limit); /unread-count
- /api/notifications/<id>/read, /api/notifications/read-all
- /api/notifications/<id>: delete; /api/notifications/cleanup
- /api/users/<id>/notification-preferences: get/update
- /api/events/<entity_type>/<entity_id>: audit history for any entity
"""

import logging
from flask import Blueprint, current_app, request, jsonify

from app.utils.helpers import (
    get_json_body, parse_bool, current_organization_id, current_user_id, json_errors, not_found
)
from database.connection import get_db_session
from services.event_logger import get_event_logger
from services.notification_service import get_notification_service

logger = logging.getLogger(__name__)

# Create blueprint
notifications_bp = Blueprint('notifications_bp', __name__)


def notification_service(session):
    return get_notification_service(session, current_organization_id(session), current_app.config)


def _user_filter():
    """Explicit ?user_id= wins over the acting user header."""
    return request.args.get('user_id') or current_user_id()


# ============================================================================
# NOTIFICATIONS
# ============================================================================

@notifications_bp.route('/api/notifications', methods=['GET'])
@json_errors('listing notifications')
def list_notifications():
    with get_db_session() as session:
        notifications = notification_service(session).get_notifications(
            user_id=_user_filter(),
            unread_only=parse_bool(request.args.get('unread_only')),
            limit=request.args.get('limit', 50, type=int),
        )
        return jsonify({'success': True, 'notifications': notifications})


@notifications_bp.route('/api/notifications/unread-count', methods=['GET'])
@json_errors('counting unread notifications')
def unread_count():
    with get_db_session() as session:
        return jsonify({'success': True, 'count': notification_service(session).get_unread_count(_user_filter())})


@notifications_bp.route('/api/notifications/<notification_id>/read', methods=['POST'])
@json_errors('marking notification read')
def mark_read(notification_id):
    with get_db_session() as session:
        if not notification_service(session).mark_as_read(notification_id):
            return not_found('Notification')
        return jsonify({'success': True})


@notifications_bp.route('/api/notifications/read-all', methods=['POST'])
@json_errors('marking notifications read')
def mark_all_read():
    with get_db_session() as session:
        return jsonify({'success': True, 'updated': notification_service(session).mark_all_as_read(_user_filter())})


@notifications_bp.route('/api/notifications/<notification_id>', methods=['DELETE'])
@json_errors('deleting notification')
def delete_notification(notification_id):
    with get_db_session() as session:
        if not notification_service(session).delete_notification(notification_id):
            return not_found('Notification')
        return jsonify({'success': True})


@notifications_bp.route('/api/notifications/cleanup', methods=['POST'])
@json_errors('cleaning up notifications')
def cleanup_notifications():
    days = int(get_json_body().get('days') or current_app.config.get('NOTIFICATION_RETENTION_DAYS', 30))
    with get_db_session() as session:
        return jsonify({'success': True, 'deleted': notification_service(session).cleanup_old_notifications(days)})


# ============================================================================
# PREFERENCES
# ============================================================================

@notifications_bp.route('/api/users/<user_id>/notification-preferences', methods=['GET'])
@json_errors('getting notification preferences')
def get_preferences(user_id):
    with get_db_session() as session:
        return jsonify({'success': True, 'preferences': notification_service(session).get_preferences(user_id)})


@notifications_bp.route('/api/users/<user_id>/notification-preferences', methods=['PUT', 'POST'])
@json_errors('updating notification preferences')
def update_preferences(user_id):
    data = get_json_body()
    with get_db_session() as session:
        preferences = notification_service(session).update_preferences(user_id, data)
        return jsonify({'success': True, 'preferences': preferences})


# ============================================================================
# EVENT LOG
# ============================================================================

@notifications_bp.route('/api/events/<entity_type>/<entity_id>', methods=['GET'])
@json_errors('getting entity history')
def entity_history(entity_type, entity_id):
    with get_db_session() as session:
        events = get_event_logger(session, current_organization_id(session)).get_entity_history(
            entity_type, entity_id, limit=request.args.get('limit', 50, type=int)
        )
        return jsonify({'success': True, 'events': events})
