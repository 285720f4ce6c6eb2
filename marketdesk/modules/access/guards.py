"""
Route guards for the JSON API.
The OAuth callback stores the provider identity in the session; these
decorators resolve it and check page permissions before a view runs.
"""

from functools import wraps

from flask import session, jsonify

from marketdesk.core.database import get_db
from .models import Identity, get_allowed_pages, verify_super_admin


def get_current_identity():
    """Identity of the signed-in caller, or None"""
    auth_user_id = session.get('auth_user_id')
    if not auth_user_id:
        return None
    return Identity(id=auth_user_id, email=session.get('auth_email'))


def _unauthenticated():
    return jsonify({'success': False, 'error': 'Authentication required'}), 401


def _forbidden():
    return jsonify({'success': False, 'error': 'Access denied'}), 403


def login_required_json(f):
    """Decorator to require a signed-in caller"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if get_current_identity() is None:
            return _unauthenticated()
        return f(*args, **kwargs)
    return decorated_function


def page_required(*pages):
    """Decorator to require permission to view any one of the given dashboard pages"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            identity = get_current_identity()
            if identity is None:
                return _unauthenticated()
            allowed = get_allowed_pages(get_db(), identity)
            if not any(page in allowed for page in pages):
                return _forbidden()
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def super_admin_required(f):
    """Decorator to require the super_admin role"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        identity = get_current_identity()
        if identity is None:
            return _unauthenticated()
        if not verify_super_admin(get_db(), identity):
            return _forbidden()
        return f(*args, **kwargs)
    return decorated_function
