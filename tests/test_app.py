"""
Integration tests for the MarketDesk extension
==============================================

Initialisation, blueprint registration, config resolution and the
route guards shared by every module.
"""

import os

from flask import Flask

from marketdesk import MarketDesk


EXPECTED_MODULES = [
    "access_auth",
    "access_admin",
    "contacts",
    "unsubscribe",
    "email_templates",
    "campaigns",
    "email",
    "dashboard",
    "registrations",
]


def test_extension_initialisation(tmp_db_dir):
    """MarketDesk(app) boots without errors and stores itself on the app."""
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.config["SECRET_KEY"] = "test-secret"
    app.config["MARKETING_DB"] = os.path.join(tmp_db_dir, "sub", "marketing.db")
    app.config["GOOGLE_CLIENT_ID"] = ""

    marketdesk = MarketDesk(app)
    try:
        assert app.extensions["marketdesk"] is marketdesk
        assert os.path.isfile(app.config["MARKETING_DB"])
    finally:
        marketdesk.close()


def test_all_blueprints_registered(app):
    registered = app.extensions["marketdesk"].get_registered_modules()
    assert registered == EXPECTED_MODULES
    for name in EXPECTED_MODULES:
        assert name in app.blueprints


def test_schema_creates_every_table(db):
    rows = db.query("SELECT name FROM sqlite_master WHERE type = 'table'").rows
    tables = {row["name"] for row in rows}
    for table in (
        "marketing_contacts", "marketing_campaigns", "marketing_campaign_logs",
        "email_templates", "app_users", "role_permissions", "qas_registrations", "app_logs",
    ):
        assert table in tables


def test_app_config_wins_over_defaults(app):
    assert app.config["MAIN_ADMIN_EMAIL"] == "owner@example.com"
    assert app.config["EMAIL_ADDRESS"] == "Team <team@example.com>"


def test_unauthenticated_api_request_is_rejected(client):
    response = client.get("/api/contacts")
    assert response.status_code == 401
    assert response.get_json() == {"success": False, "error": "Authentication required"}


def test_user_without_role_sees_nothing(client, make_user, login):
    identity, _ = make_user("newcomer@example.com")
    login(identity)

    for path in ("/api/contacts", "/api/campaigns", "/api/templates", "/api/dashboard/stats"):
        response = client.get(path)
        assert response.status_code == 403, path


def test_page_permission_opens_only_that_page(client, make_user, login, grant):
    identity, _ = make_user("staff@example.com", role="internal")
    grant("internal", "contacts")
    login(identity)

    assert client.get("/api/contacts").status_code == 200
    assert client.get("/api/campaigns").status_code == 403


def test_email_sender_permission_can_read_templates(client, make_user, login, grant):
    identity, _ = make_user("sender@example.com", role="internal")
    grant("internal", "email-sender")
    login(identity)

    assert client.get("/api/templates").status_code == 200
    response = client.post("/api/templates", json={
        "template_code": "X", "subject": "s", "html_content": "<p>h</p>",
    })
    assert response.status_code == 403


def test_action_failure_is_logged_to_app_logs(db, monkeypatch):
    """Unexpected exceptions become a generic internal failure plus a persistent log entry."""
    from marketdesk.modules.contacts import models

    def boom(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(models, "get_contact_by_email", boom)
    result = models.create_contact(db, {"email": "a@example.com"})

    assert not result.success
    assert result.kind == "internal"
    assert result.error == "Failed to create contact"
    assert "disk on fire" not in result.error

    logs = db.query("SELECT * FROM app_logs WHERE source = 'contacts' AND level = 'ERROR'").rows
    assert logs
    assert "disk on fire" in logs[0]["details"]
