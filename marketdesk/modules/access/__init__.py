"""
Access Module
=============

Provides:
- Google OAuth sign-in and the session identity
- Role and page-permission lookups for the dashboard
- Super-admin-only user management (roles, activation, permissions)
"""

from flask import Blueprint

auth_bp = Blueprint('access_auth', __name__, url_prefix='/auth')
admin_bp = Blueprint('access_admin', __name__, url_prefix='/api/admin')

from . import routes
from .guards import get_current_identity, login_required_json, page_required, super_admin_required
from .models import Identity, ALL_DASHBOARD_PAGES, ROUTE_PAGE_MAP
from .oauth import configure_oauth

__all__ = [
    'auth_bp', 'admin_bp', 'Identity', 'ALL_DASHBOARD_PAGES', 'ROUTE_PAGE_MAP',
    'get_current_identity', 'login_required_json', 'page_required', 'super_admin_required',
    'configure_oauth',
]
