"""
MarketDesk - Marketing Admin Dashboard Backend
==============================================

A Flask extension bundling the marketing admin API:
- Contacts with CSV import/export, tags and unsubscribe links
- Email templates and one-off/batch sending through Resend
- Campaign lifecycle with audience targeting
- Role-based page access on top of Google sign-in
- Registration browsing, CSV export and dashboard statistics

Usage:
    from flask import Flask
    from marketdesk import MarketDesk

    app = Flask(__name__)
    app.config['MARKETING_DB'] = '/path/to/marketing.db'
    MarketDesk(app)
"""

import atexit
import logging
import os

from .core.config import Config
from .core.database import Database
from .core.logging_service import LoggingService

__version__ = '0.1.0'

logger = logging.getLogger(__name__)

# Config keys copied onto app.config when the application leaves them unset
DEFAULT_CONFIG_KEYS = (
    'SECRET_KEY', 'DB_DIR', 'MARKETING_DB', 'DB_POOL_SIZE', 'DB_TIMEOUT',
    'RESEND_API_KEY', 'EMAIL_ADDRESS', 'EMAIL_WEBSITE_URL', 'MAIN_ADMIN_EMAIL',
    'GOOGLE_CLIENT_ID', 'GOOGLE_CLIENT_SECRET',
)


class MarketDesk:
    """
    Composition root: owns the Database and registers every blueprint.

    The instance is stored in ``app.extensions['marketdesk']`` so request
    code reaches the database through ``get_db()``.
    """

    def __init__(self, app=None, config=None):
        self.db = None
        self.config = config
        self._registered_modules = []
        if app is not None:
            self.init_app(app, config)

    def init_app(self, app, config=None):
        config = config or self.config or Config
        for key in DEFAULT_CONFIG_KEYS:
            if app.config.get(key) is None:
                app.config[key] = getattr(config, key, None)

        db_path = app.config.get('MARKETING_DB') or os.path.join(
            app.config.get('DB_DIR') or os.getcwd(), 'marketing.db'
        )
        self.db = Database(
            db_path,
            pool_size=app.config.get('DB_POOL_SIZE') or 5,
            timeout=app.config.get('DB_TIMEOUT') or 30.0,
        )
        self.db.init_schema()
        atexit.register(self.db.close)
        LoggingService.configure(self.db)

        from .modules.email import email_service
        from .modules.access import configure_oauth
        email_service.init_app(app)
        configure_oauth(app)

        for blueprint in _blueprints():
            app.register_blueprint(blueprint)
            self._registered_modules.append(blueprint.name)

        app.extensions['marketdesk'] = self
        logger.info(f"MarketDesk initialised with database {db_path}")

    def get_registered_modules(self):
        """Names of the blueprints registered on the app"""
        return list(self._registered_modules)

    def close(self):
        if self.db is not None:
            self.db.close()


def _blueprints():
    """Every MarketDesk blueprint, in registration order"""
    from .modules.access import auth_bp, admin_bp
    from .modules.contacts import contacts_bp, unsubscribe_bp
    from .modules.email_templates import templates_bp
    from .modules.campaigns import campaigns_bp
    from .modules.email import email_bp
    from .modules.dashboard import dashboard_bp
    from .modules.registrations import registrations_bp

    return [
        auth_bp, admin_bp, contacts_bp, unsubscribe_bp, templates_bp,
        campaigns_bp, email_bp, dashboard_bp, registrations_bp,
    ]


__all__ = ['MarketDesk', '__version__']
