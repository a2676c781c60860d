"""
Input Validation & Sanitization Utilities
Provides validation for API requests, CSV uploads, and user input
"""
import re
from datetime import date, datetime
from typing import Dict, Any, List, Optional, Tuple
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename
import logging

logger = logging.getLogger(__name__)

# Allowed file extensions by category
ALLOWED_IMPORT_EXTENSIONS = {'csv', 'txt'}
ALLOWED_DOCUMENT_EXTENSIONS = {'pdf', 'png', 'jpg', 'jpeg'}

MAX_IMPORT_SIZE = 5 * 1024 * 1024  # 5MB

# Regex patterns
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
PHONE_PATTERN = re.compile(r'^\+?1?\d{9,15}$')
ZIP_PATTERN = re.compile(r'^\d{5}(-\d{4})?$')
STATE_PATTERN = re.compile(r'^[A-Za-z]{2}$')

JOB_TYPES = {'delivery', 'pickup', 'service', 'on-site-survey', 'partial-pickup', 'return'}
DISCOUNT_TYPES = {'percentage', 'fixed'}


class ValidationError(Exception):
    """Custom exception for validation errors"""
    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(self.message)


class NotFoundError(Exception):
    """Raised by services when a referenced row does not exist in the organization"""
    def __init__(self, entity: str, entity_id: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        message = f"{entity.replace('_', ' ').capitalize()} not found"
        if entity_id:
            message = f"{message}: {entity_id}"
        super().__init__(message)


def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate that all required fields are present in the data

    Args:
        data: Dictionary of input data
        required_fields: List of required field names

    Returns:
        Tuple of (is_valid, error_message)
    """
    missing_fields = [field for field in required_fields if field not in data or data[field] is None or data[field] == '']

    if missing_fields:
        return False, f"Missing required fields: {', '.join(missing_fields)}"

    return True, None


def validate_email(email: str) -> Tuple[bool, Optional[str]]:
    """
    Validate email format

    Args:
        email: Email address to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not email or not isinstance(email, str):
        return False, "Email must be a non-empty string"

    if not EMAIL_PATTERN.match(email):
        return False, "Invalid email format"

    if len(email) > 254:  # RFC 5321
        return False, "Email address too long"

    return True, None


def validate_phone(phone: str) -> Tuple[bool, Optional[str]]:
    """
    Validate phone number format

    Args:
        phone: Phone number to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not phone or not isinstance(phone, str):
        return False, "Phone must be a non-empty string"

    # Remove common separators
    cleaned_phone = re.sub(r'[\s\-\(\)\.]', '', phone)

    if not PHONE_PATTERN.match(cleaned_phone):
        return False, "Invalid phone number format"

    return True, None


def validate_zip(zip_code: str) -> Tuple[bool, Optional[str]]:
    """Validate a US ZIP or ZIP+4 code"""
    if not zip_code or not isinstance(zip_code, str):
        return False, "ZIP code must be a non-empty string"

    if not ZIP_PATTERN.match(zip_code.strip()):
        return False, "Invalid ZIP code format"

    return True, None


def validate_state(state: str) -> Tuple[bool, Optional[str]]:
    """Validate a two-letter state code"""
    if not state or not isinstance(state, str) or not STATE_PATTERN.match(state.strip()):
        return False, "State must be a two-letter code"

    return True, None


def validate_string_length(value: str, min_length: int = 0, max_length: int = 1000) -> Tuple[bool, Optional[str]]:
    """
    Validate string length is within acceptable range

    Args:
        value: String to validate
        min_length: Minimum allowed length
        max_length: Maximum allowed length

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, "Value must be a string"

    if len(value) < min_length:
        return False, f"Value too short (minimum {min_length} characters)"

    if len(value) > max_length:
        return False, f"Value too long (maximum {max_length} characters)"

    return True, None


def validate_number_range(value: float, min_value: Optional[float] = None, max_value: Optional[float] = None) -> Tuple[bool, Optional[str]]:
    """
    Validate number is within acceptable range

    Args:
        value: Number to validate
        min_value: Minimum allowed value
        max_value: Maximum allowed value

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False, "Value must be a number"

    if min_value is not None and value < min_value:
        return False, f"Value too small (minimum {min_value})"

    if max_value is not None and value > max_value:
        return False, f"Value too large (maximum {max_value})"

    return True, None


def parse_date(value: Any, field: str = 'date') -> Optional[date]:
    """
    Parse an ISO date (YYYY-MM-DD) or datetime string into a date.

    Returns None for empty values and raises ValidationError for garbage.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            pass
    raise ValidationError(f"Invalid {field}: expected YYYY-MM-DD", field)


def parse_number(value: Any, field: str, default: Optional[float] = None,
                 min_value: Optional[float] = None) -> Optional[float]:
    """Coerce request input to float, raising ValidationError on bad values."""
    if value is None or value == '':
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field)
    if min_value is not None and number < min_value:
        raise ValidationError(f"{field} must be at least {min_value}", field)
    return number


def require_fields(data: Dict[str, Any], required_fields: List[str]):
    """Raise ValidationError when any required field is missing."""
    is_valid, error = validate_required_fields(data or {}, required_fields)
    if not is_valid:
        missing = [f for f in required_fields if not (data or {}).get(f) and (data or {}).get(f) != 0]
        raise ValidationError(error, missing[0] if missing else None)


def sanitize_string(value: str, max_length: int = 1000) -> str:
    """
    Sanitize string input by removing potentially dangerous characters

    Args:
        value: String to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized string
    """
    if not isinstance(value, str):
        return str(value)

    # Remove null bytes
    sanitized = value.replace('\x00', '')

    # Trim whitespace
    sanitized = sanitized.strip()

    # Limit length
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename to prevent directory traversal attacks

    Args:
        filename: Original filename

    Returns:
        Sanitized filename
    """
    safe_name = secure_filename(filename)

    if not safe_name:
        safe_name = 'file'

    return safe_name


def validate_file_extension(filename: str, allowed_extensions: set) -> Tuple[bool, Optional[str]]:
    """
    Validate file has an allowed extension

    Args:
        filename: Filename to check
        allowed_extensions: Set of allowed extensions (without dots)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not filename or '.' not in filename:
        return False, "File must have an extension"

    extension = filename.rsplit('.', 1)[1].lower()

    if extension not in allowed_extensions:
        return False, f"File type not allowed. Allowed types: {', '.join(sorted(allowed_extensions))}"

    return True, None


def validate_import_upload(file: FileStorage) -> Tuple[bool, Optional[str], Optional[str]]:
    """
    Validate a CSV import upload

    Returns:
        Tuple of (is_valid, error_message, sanitized_filename)
    """
    if not file or not file.filename:
        return False, "No file provided", None

    safe_filename = sanitize_filename(file.filename)

    is_valid, error = validate_file_extension(safe_filename, ALLOWED_IMPORT_EXTENSIONS)
    if not is_valid:
        return False, error, None

    file.seek(0, 2)
    file_size = file.tell()
    file.seek(0)

    if file_size > MAX_IMPORT_SIZE:
        return False, f"File too large (maximum {MAX_IMPORT_SIZE / (1024 * 1024):.1f}MB)", None

    if file_size == 0:
        return False, "File is empty", None

    logger.info(f"Import file validated: {safe_filename} ({file_size} bytes)")
    return True, None, safe_filename


def validate_customer_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate customer create/update payload

    Args:
        data: Request data dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    is_valid, error = validate_required_fields(data, ['name'])
    if not is_valid:
        return False, error

    is_valid, error = validate_string_length(data['name'], min_length=1, max_length=255)
    if not is_valid:
        return False, f"Invalid name: {error}"

    if data.get('email'):
        is_valid, error = validate_email(data['email'])
        if not is_valid:
            return False, f"Invalid email: {error}"

    if data.get('phone'):
        is_valid, error = validate_phone(data['phone'])
        if not is_valid:
            return False, f"Invalid phone: {error}"

    for field in ('service_zip', 'billing_zip'):
        if data.get(field):
            is_valid, error = validate_zip(data[field])
            if not is_valid:
                return False, f"Invalid {field}: {error}"

    for field in ('service_state', 'billing_state'):
        if data.get(field):
            is_valid, error = validate_state(data[field])
            if not is_valid:
                return False, f"Invalid {field}: {error}"

    if data.get('tax_rate_override') not in (None, ''):
        try:
            rate = float(data['tax_rate_override'])
        except (TypeError, ValueError):
            return False, "tax_rate_override must be a number"
        is_valid, error = validate_number_range(rate, 0, 100)
        if not is_valid:
            return False, f"Invalid tax_rate_override: {error}"

    return True, None


def validate_job_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate a job creation payload"""
    is_valid, error = validate_required_fields(data, ['customer_id', 'job_type', 'scheduled_date'])
    if not is_valid:
        return False, error

    if data['job_type'] not in JOB_TYPES:
        return False, f"Invalid job_type. Allowed: {', '.join(sorted(JOB_TYPES))}"

    try:
        parse_date(data['scheduled_date'], 'scheduled_date')
    except ValidationError as e:
        return False, e.message

    return True, None


def validate_line_items(items: Any) -> Tuple[bool, Optional[str]]:
    """Validate quote/invoice line items"""
    if not isinstance(items, list):
        return False, "items must be an array"

    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            return False, f"Item {idx} must be an object"
        if not item.get('product_name'):
            return False, f"Item {idx} is missing product_name"
        for field in ('quantity', 'unit_price'):
            try:
                value = float(item.get(field, 0))
            except (TypeError, ValueError):
                return False, f"Item {idx} {field} must be a number"
            if value < 0:
                return False, f"Item {idx} {field} cannot be negative"

    return True, None


def validate_billing_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate a quote or invoice payload"""
    is_valid, error = validate_required_fields(data, ['customer_id'])
    if not is_valid:
        return False, error

    is_valid, error = validate_line_items(data.get('items', []))
    if not is_valid:
        return False, error

    if data.get('discount_type') and data['discount_type'] not in DISCOUNT_TYPES:
        return False, "discount_type must be 'percentage' or 'fixed'"

    for field in ('discount_value', 'additional_fees', 'tax_rate'):
        if data.get(field) not in (None, ''):
            try:
                value = float(data[field])
            except (TypeError, ValueError):
                return False, f"{field} must be a number"
            if value < 0:
                return False, f"{field} cannot be negative"

    return True, None

