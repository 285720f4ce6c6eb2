"""
Campaigns Module
================

Provides:
- Campaign CRUD with filtered, paginated listing
- The draft/sending/paused/completed/archived lifecycle
- Audience preview and queueing of recipients at start
- Per-campaign stats and recipient logs
"""

from flask import Blueprint

campaigns_bp = Blueprint('campaigns', __name__, url_prefix='/api/campaigns')

from . import routes

__all__ = ['campaigns_bp']
