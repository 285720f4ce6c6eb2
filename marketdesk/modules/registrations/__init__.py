"""
Registrations Module
====================

Read-only views over the registrations captured by the signup funnel:
- Filtered, sorted, paginated listing and a detail view
- Filter options for the registrations page
- CSV export of the current filter
"""

from flask import Blueprint

registrations_bp = Blueprint('registrations', __name__, url_prefix='/api/registrations')

from . import routes

__all__ = ['registrations_bp']
