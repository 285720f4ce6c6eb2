import os
from dotenv import load_dotenv

load_dotenv(override=True)


class Config:
    """
    Base configuration for MarketDesk.
    Deployments provide secrets and database paths via environment variables.
    """
    # Flask settings
    SECRET_KEY = os.getenv('FLASK_SECRET_KEY')

    # Get DB_DIR from environment, or use a default if not set
    DB_DIR = os.getenv('DB_DIR', os.path.join(os.getcwd(), 'databases'))

    # Marketing database (contacts, campaigns, templates, users, registrations)
    MARKETING_DB = os.getenv('MARKETING_DB', os.path.join(DB_DIR, 'marketing.db'))
    DB_POOL_SIZE = int(os.getenv('DB_POOL_SIZE', '5'))
    DB_TIMEOUT = float(os.getenv('DB_TIMEOUT', '30'))

    # Resend API settings
    RESEND_API_KEY = os.getenv('RESEND_API_KEY') or os.getenv('RESEND')
    EMAIL_ADDRESS = os.getenv('EMAIL_ADDRESS', 'onboarding@resend.dev')
    EMAIL_WEBSITE_URL = os.getenv('EMAIL_WEBSITE_URL', os.getenv('BASE_URL', 'http://localhost:5000'))

    # The one account that always holds super_admin
    MAIN_ADMIN_EMAIL = os.getenv('MAIN_ADMIN_EMAIL') or os.getenv('ADMIN_EMAIL')

    # OAuth settings
    GOOGLE_CLIENT_ID = os.getenv('GOOGLE_CLIENT_ID')
    GOOGLE_CLIENT_SECRET = os.getenv('GOOGLE_CLIENT_SECRET')

    # Port for local server
    port = int(os.getenv('PORT', '5000'))


def get_config_value(key, default=None):
    """Get configuration value: Flask app config first, then Config, then env var"""
    try:
        from flask import current_app
        val = current_app.config.get(key)
        if val is not None:
            return val
    except RuntimeError:
        pass
    val = getattr(Config, key, None)
    if val is not None:
        return val
    return os.getenv(key, default)
