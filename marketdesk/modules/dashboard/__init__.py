"""
Dashboard Module
================

Read-only statistics for the dashboard home page:
- Registration totals, monthly counts and daily trends
- Priority and engagement pool breakdowns
- Recent registration activity and email action stats
- A marketing overview of contacts and campaigns
"""

from flask import Blueprint

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')

# Import routes after blueprint is created
from . import routes

__all__ = ['dashboard_bp']
