"""
Shared fixtures for the MarketDesk test suite.

Run with: pytest tests/ -v

NOTE: pytest is listed under extras_require["dev"] in setup.py.
Install with: pip install -e ".[dev]"
"""

import json
import os
import shutil
import tempfile
import uuid

import pytest
from flask import Flask

from marketdesk import MarketDesk
from marketdesk.modules.access import Identity

MAIN_ADMIN_EMAIL = "owner@example.com"


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_db_dir():
    """Create a temporary directory for the test database, cleaned up after."""
    d = tempfile.mkdtemp(prefix="marketdesk-test-")
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def app(tmp_db_dir):
    """Fully initialised Flask app with every MarketDesk module registered."""
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.config["SECRET_KEY"] = "test-secret"
    app.config["DB_DIR"] = tmp_db_dir
    app.config["MARKETING_DB"] = os.path.join(tmp_db_dir, "marketing.db")
    app.config["MAIN_ADMIN_EMAIL"] = MAIN_ADMIN_EMAIL
    app.config["RESEND_API_KEY"] = "re_test_fake_key_123"
    app.config["EMAIL_ADDRESS"] = "Team <team@example.com>"
    app.config["EMAIL_WEBSITE_URL"] = "https://marketing.example.com"
    # Prevent real OAuth registration -- no credentials set
    app.config["GOOGLE_CLIENT_ID"] = ""
    app.config["GOOGLE_CLIENT_SECRET"] = ""

    extension = MarketDesk(app)
    yield app
    extension.close()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    """The extension's Database, with an app context pushed for config lookups."""
    with app.app_context():
        yield app.extensions["marketdesk"].db


# ---------------------------------------------------------------------------
# Users and sessions
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db):
    """Insert an app user; returns (Identity, app user id)."""
    def _make_user(email, role=None, is_active=True):
        auth_user_id = f"auth-{uuid.uuid4().hex[:12]}"
        user_id = str(uuid.uuid4())
        db.query(
            "INSERT INTO app_users (id, auth_user_id, email, role, is_active) VALUES (?, ?, ?, ?, ?)",
            (user_id, auth_user_id, email, role, 1 if is_active else 0),
        )
        return Identity(id=auth_user_id, email=email), user_id
    return _make_user


@pytest.fixture
def main_admin(make_user):
    return make_user(MAIN_ADMIN_EMAIL, role="super_admin")


@pytest.fixture
def grant(db):
    """Give a role access to pages."""
    def _grant(role, *pages):
        for page in pages:
            db.query(
                "INSERT INTO role_permissions (role, page) VALUES (?, ?) ON CONFLICT DO NOTHING",
                (role, page),
            )
    return _grant


@pytest.fixture
def login(client):
    """Put an identity in the test client's session, as the OAuth callback would."""
    def _login(identity):
        with client.session_transaction() as sess:
            sess["auth_user_id"] = identity.id
            sess["auth_email"] = identity.email
    return _login


@pytest.fixture
def admin_client(client, main_admin, login):
    """Test client signed in as the main super admin."""
    login(main_admin[0])
    return client


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

@pytest.fixture
def seed_contact(db):
    def _seed_contact(email, tags=None, status="active", engagement_level="none",
                      templates_received=None, first_name=None):
        contact_id = str(uuid.uuid4())
        db.query("""
            INSERT INTO marketing_contacts
                (id, email, first_name, tags, status, engagement_level, templates_received, unsubscribe_token)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            contact_id, email, first_name, json.dumps(tags or []), status, engagement_level,
            json.dumps(templates_received or []), uuid.uuid4().hex,
        ))
        return contact_id
    return _seed_contact


@pytest.fixture
def seed_campaign(db):
    def _seed_campaign(status="draft", template_code="WELCOME", audience_filter=None,
                       name="Spring launch", **stats):
        campaign_id = str(uuid.uuid4())
        db.query("""
            INSERT INTO marketing_campaigns (id, name, status, template_code, audience_filter)
            VALUES (?, ?, ?, ?, ?)
        """, (campaign_id, name, status, template_code, json.dumps(audience_filter or {})))
        for column, value in stats.items():
            db.query(f"UPDATE marketing_campaigns SET {column} = ? WHERE id = ?", (value, campaign_id))
        return campaign_id
    return _seed_campaign


@pytest.fixture
def seed_registration(db):
    def _seed_registration(email, created_at, is_qualified=False, is_completed=False, **fields):
        registration_id = str(uuid.uuid4())
        columns = {
            "id": registration_id,
            "email": email,
            "is_qualified": 1 if is_qualified else 0,
            "is_completed": 1 if is_completed else 0,
            "created_at": created_at,
            "updated_at": fields.pop("updated_at", created_at),
        }
        columns.update(fields)
        names = ", ".join(columns)
        marks = ", ".join("?" for _ in columns)
        db.query(f"INSERT INTO qas_registrations ({names}) VALUES ({marks})", list(columns.values()))
        return registration_id
    return _seed_registration
