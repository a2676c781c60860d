"""
Helper utility functions for request parsing, tenancy and error responses.
"""

import logging
from functools import wraps

from flask import request, jsonify

from database.models import Organization
from database.seed import get_or_create_default_organization
from validators import ValidationError, NotFoundError, parse_date

logger = logging.getLogger(__name__)


def get_json_body():
    """
    Return the request JSON body as a dict.

    Raises:
        ValidationError: if the body is not a JSON object
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def parse_bool(value, default=False):
    """Interpret query-string style booleans ('true', '1', 'yes')."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def date_arg(name, default=None):
    """
    Read an ISO date from the query string.

    Args:
        name: Query parameter name
        default: Value when the parameter is absent

    Returns:
        datetime.date or default
    """
    value = request.args.get(name)
    if not value:
        return default
    return parse_date(value, name)


def current_organization_id(session):
    """
    Organization for the current request: the X-Organization-Id header when
    it names an existing organization, otherwise the default organization.
    """
    org_id = request.headers.get('X-Organization-Id')
    if org_id:
        org = session.get(Organization, org_id)
        if not org:
            raise NotFoundError('organization', org_id)
        return org.id
    return get_or_create_default_organization(session).id


def json_errors(action):
    """
    Map service exceptions to JSON error responses.

    ValidationError -> 400, NotFoundError -> 404, anything else -> 500.
    """
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                logger.warning(f"Validation failed while {action}: {e.message}")
                body = {'success': False, 'error': e.message}
                if e.field:
                    body['field'] = e.field
                return jsonify(body), 400
            except NotFoundError as e:
                return jsonify({'success': False, 'error': str(e)}), 404
            except Exception as e:
                logger.error(f"Error {action}: {e}", exc_info=True)
                return jsonify({'success': False, 'error': str(e)}), 500
        return wrapper
    return decorator


def not_found(entity):
    return jsonify({'success': False, 'error': f'{entity} not found'}), 404


def current_user_id():
    """Acting user from the X-User-Id header, or None for anonymous/system calls."""
    return request.headers.get('X-User-Id') or None
