"""
Email Templates Module
======================

CRUD over named HTML email templates, plus auto-saving of one-off
emails as templates with generated codes.
"""

from flask import Blueprint

templates_bp = Blueprint('email_templates', __name__, url_prefix='/api/templates')

from . import routes

__all__ = ['templates_bp']
