"""
Audit Logging Utility.
Every registration and status change of a tracked record leaves an
AuditLog row: who, what, when, from where, and the before/after values.
"""
import json
from decimal import Decimal

from .middleware import get_current_user, get_current_request
from .utils import get_client_ip


def serialize_value(value):
    """Convert value to JSON-serializable format."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    if hasattr(value, 'pk'):
        return str(value)
    return value


def serialize_changes(changes):
    """Serialize every value of a changes dictionary."""
    return {key: serialize_value(value) for key, value in (changes or {}).items()}


def log_audit(user, action, model_name, record_id=None, changes=None, request=None):
    """
    Create an audit log entry.

    Args:
        user: The user performing the action (falls back to the request user)
        action: One of AuditLog.ACTION_CHOICES
        model_name: Name of the model being modified
        record_id: Primary key of the record
        changes: Dictionary of changes (e.g. from_status, to_status)
        request: HTTP request object (optional)
    """
    from apps.core.models import AuditLog

    if request is None:
        request = get_current_request()
    ip_address = get_client_ip(request) if request else None

    if user is None:
        user = get_current_user()
    if user is not None and not getattr(user, 'is_authenticated', False):
        user = None

    changes = serialize_changes(changes)
    try:
        json.dumps(changes)
    except (TypeError, ValueError):
        changes = {'message': str(changes)}

    return AuditLog.objects.create(
        user=user,
        action=action,
        model=model_name,
        record_id=str(record_id) if record_id else '',
        changes=changes,
        ip_address=ip_address
    )


def get_entity_audit_history(model_name, record_id):
    """
    Audit history for a single record, newest first.
    Used for the history section of detail payloads.
    """
    from apps.core.models import AuditLog

    return AuditLog.objects.filter(
        model=model_name,
        record_id=str(record_id)
    ).select_related('user').order_by('-timestamp', '-id')
