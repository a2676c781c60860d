"""
Utilities Package

Shared helper functions used across the application.
"""

from app.utils.helpers import (
    get_json_body,
    parse_bool,
    date_arg,
    current_organization_id,
    current_user_id,
    json_errors,
    not_found,
)

from app.utils.timezones import (
    get_timezone_from_zip,
    to_utc,
)

__all__ = [
    'get_json_body',
    'parse_bool',
    'date_arg',
    'current_organization_id',
    'current_user_id',
    'json_errors',
    'not_found',
    'get_timezone_from_zip',
    'to_utc',
]
