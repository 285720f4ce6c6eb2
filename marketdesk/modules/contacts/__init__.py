"""
Contacts Module
===============

Provides:
- Contact CRUD with filtered, paginated listing
- CSV import (upsert by email) and CSV export
- Bulk tag and status changes
- Public unsubscribe links
"""

from flask import Blueprint

contacts_bp = Blueprint('contacts', __name__, url_prefix='/api/contacts')
unsubscribe_bp = Blueprint('unsubscribe', __name__, url_prefix='/unsubscribe')

from . import routes

__all__ = ['contacts_bp', 'unsubscribe_bp']
