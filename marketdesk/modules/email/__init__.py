"""
Email Module
============

Provides one-off and batch email sending with Resend API integration,
per-recipient {{email}}/{{name}} placeholders and a preview endpoint.
"""

from flask import Blueprint

email_bp = Blueprint('email', __name__, url_prefix='/api/email')

from .email_service import EmailService, email_service
from . import routes

__all__ = ['email_bp', 'EmailService', 'email_service']
