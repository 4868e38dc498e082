# utils/context.py

"""
Thread-local audit context.

Holds who is acting and from where for the current thread, so that
``BaseModel.save()`` can stamp created_by/updated_by and IP fields
without every service passing the request around.

Populated by ``AuditContextMiddleware`` for web requests and by
``RequestContext`` for management commands.
"""

from threading import local
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_ipv46_address
import logging

logger = logging.getLogger(__name__)

_thread_locals = local()


def set_request_context(user=None, ip_address=None, request_path=None):
    """
    Set the audit context for this thread.

    Anonymous users are stored as None.
    """
    if user is not None and not getattr(user, 'is_authenticated', False):
        user = None
    _thread_locals.request_context = {
        'user': user,
        'ip_address': ip_address,
        'request_path': request_path or '',
    }


def get_request_context():
    """Return the current context dict, or None outside a request/command."""
    return getattr(_thread_locals, 'request_context', None)


def clear_request_context():
    if hasattr(_thread_locals, 'request_context'):
        delattr(_thread_locals, 'request_context')


def get_client_ip(request):
    """
    Client IP address for audit fields.

    X-Forwarded-For is only honoured when ``AUDIT_TRUST_X_FORWARDED_FOR``
    is set (the app runs behind a proxy that sets it). Values that are not
    valid IPv4/IPv6 addresses give None.
    """
    ip = request.META.get('REMOTE_ADDR')
    if getattr(settings, 'AUDIT_TRUST_X_FORWARDED_FOR', False):
        forwarded = request.META.get('HTTP_X_FORWARDED_FOR', '')
        if forwarded:
            # Leftmost entry is the originating client
            ip = forwarded.split(',')[0].strip()

    if not ip:
        return None
    try:
        validate_ipv46_address(ip)
    except ValidationError:
        logger.warning(f"Ignoring invalid client IP in audit context: {ip!r}")
        return None
    return ip


# ============================================================================
# CONTEXT MANAGER
# ============================================================================

class RequestContext:
    """
    Set the audit context for a block of code, restoring the previous one after.

    Example:
        with RequestContext(request_path='manage.py send_fee_reminders'):
            ReminderService.generate_reminders()
    """

    def __init__(self, user=None, ip_address=None, request_path=None):
        self.user = user
        self.ip_address = ip_address
        self.request_path = request_path
        self.previous_context = None

    def __enter__(self):
        self.previous_context = get_request_context()
        set_request_context(self.user, self.ip_address, self.request_path)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.previous_context is not None:
            _thread_locals.request_context = self.previous_context
        else:
            clear_request_context()
