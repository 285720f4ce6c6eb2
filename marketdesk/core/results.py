"""
Action Results
==============

Every store/service action returns an ActionResult instead of raising.
Only unexpected failures are exceptions, and ``@action`` turns those into
a generic ``internal`` result after logging them.
"""

from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Dict, Optional

from flask import jsonify

from .logging_service import LoggingService

VALIDATION = 'validation'
NOT_FOUND = 'not_found'
STATE = 'state'
CONFLICT = 'conflict'
UNAUTHORIZED = 'unauthorized'
INTERNAL = 'internal'
# Batch operations where some items succeeded
PARTIAL = 'partial'

STATUS_CODES = {
    VALIDATION: 400,
    NOT_FOUND: 404,
    STATE: 409,
    CONFLICT: 409,
    UNAUTHORIZED: 403,
    INTERNAL: 500,
    PARTIAL: 207,
}


@dataclass
class ActionResult:
    success: bool
    error: Optional[str] = None
    kind: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **data):
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind, error, **data):
        return cls(success=False, error=error, kind=kind, data=data)

    @classmethod
    def validation(cls, error, **data):
        return cls.fail(VALIDATION, error, **data)

    @classmethod
    def not_found(cls, error, **data):
        return cls.fail(NOT_FOUND, error, **data)

    @classmethod
    def state(cls, error, **data):
        return cls.fail(STATE, error, **data)

    @classmethod
    def conflict(cls, error, **data):
        return cls.fail(CONFLICT, error, **data)

    @classmethod
    def unauthorized(cls, error, **data):
        return cls.fail(UNAUTHORIZED, error, **data)

    @classmethod
    def internal(cls, error, **data):
        return cls.fail(INTERNAL, error, **data)

    def get(self, key, default=None):
        return self.data.get(key, default)

    @property
    def status_code(self):
        if self.success:
            return 200
        return STATUS_CODES.get(self.kind, 400)

    def to_dict(self):
        payload = {'success': self.success}
        if self.error:
            payload['error'] = self.error
        payload.update(self.data)
        return payload


def action(source, message, **failure_data):
    """Catch unexpected exceptions from an action, log them, return a generic failure"""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except Exception as e:
                LoggingService.log_error_with_traceback(source, e, {'action': f.__name__})
                return ActionResult.internal(message, **failure_data)
        return wrapper
    return decorator


def respond(result, success_status=200):
    """JSON response for an ActionResult"""
    status = success_status if result.success else result.status_code
    return jsonify(result.to_dict()), status
