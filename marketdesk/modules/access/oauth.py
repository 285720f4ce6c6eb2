from authlib.integrations.flask_client import OAuth
import logging

from marketdesk.core.config import get_config_value

logger = logging.getLogger(__name__)

# OAuth configuration
oauth = OAuth()


def configure_oauth(app):
    """Register the Google OpenID provider; skipped when no client credentials are set"""
    oauth.init_app(app)

    client_id = app.config.get('GOOGLE_CLIENT_ID') or get_config_value('GOOGLE_CLIENT_ID')
    client_secret = app.config.get('GOOGLE_CLIENT_SECRET') or get_config_value('GOOGLE_CLIENT_SECRET')
    if not client_id or not client_secret:
        logger.warning("GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET not configured - OAuth login disabled")
        return None

    google = oauth.register(
        name='google',
        client_id=client_id,
        client_secret=client_secret,
        server_metadata_url='https://accounts.google.com/.well-known/openid-configuration',
        client_kwargs={
            'scope': 'openid email profile'
        }
    )
    return google


def get_google_client():
    return oauth.create_client('google')
