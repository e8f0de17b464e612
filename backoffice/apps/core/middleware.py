"""
Request-scoped actor tracking.

Models and the audit log read the acting user from thread local storage,
so service functions do not have to thread a user argument through every
call. Management commands and tests set the actor with `acting_user`.
"""
import threading
from contextlib import contextmanager

from django.utils.deprecation import MiddlewareMixin

_thread_locals = threading.local()


def get_current_user():
    """Get the current user from thread local storage."""
    return getattr(_thread_locals, 'user', None)


def get_current_request():
    """Get the current request from thread local storage."""
    return getattr(_thread_locals, 'request', None)


def _clear():
    for attr in ('user', 'request'):
        if hasattr(_thread_locals, attr):
            delattr(_thread_locals, attr)


@contextmanager
def acting_user(user):
    """Run a block of code on behalf of `user` outside a request."""
    previous = get_current_user()
    _thread_locals.user = user
    try:
        yield user
    finally:
        if previous is None:
            if hasattr(_thread_locals, 'user'):
                del _thread_locals.user
        else:
            _thread_locals.user = previous


class AuditMiddleware(MiddlewareMixin):
    """
    Stores the current user and request in thread local storage so that
    BaseModel.save() and log_audit() can record who made a change.
    """

    def process_request(self, request):
        _thread_locals.user = getattr(request, 'user', None)
        _thread_locals.request = request

    def process_response(self, request, response):
        _clear()
        return response

    def process_exception(self, request, exception):
        _clear()
        return None
