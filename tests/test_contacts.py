"""
Contact store tests
===================

CRUD, CSV import/export, duplicate checks, bulk operations, engagement
tracking and the public unsubscribe link.
"""

import io
from unittest.mock import patch

from marketdesk.core.database import Pagination
from marketdesk.modules.contacts.csv_io import parse_contacts_csv, export_contacts_csv
from marketdesk.modules.contacts.models import (
    create_contact, update_contact, delete_contact, get_contact, get_contact_by_email,
    list_contacts, import_contacts, check_duplicates, add_tags, remove_tags, update_status,
    update_engagement, process_unsubscribe, get_all_tags, get_contact_stats, get_contact_history,
    validate_contact_rows, normalize_tags, unsubscribe_url,
)


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def test_create_contact_normalises_email(db):
    result = create_contact(db, {"email": "  Jane@Example.COM ", "first_name": "Jane", "tags": "vip, spring"})
    assert result.success
    contact = result.get("contact")
    assert contact["email"] == "jane@example.com"
    assert contact["tags"] == ["vip", "spring"]
    assert contact["status"] == "active"
    assert contact["engagement_level"] == "none"
    assert len(contact["unsubscribe_token"]) == 64


def test_create_contact_validation(db):
    assert create_contact(db, {}).error == "Email is required"
    invalid = create_contact(db, {"email": "not-an-email"})
    assert invalid.kind == "validation"
    assert invalid.error == "Invalid email format"


def test_create_contact_duplicate_email(db):
    assert create_contact(db, {"email": "a@example.com"}).success
    duplicate = create_contact(db, {"email": "A@example.com"})
    assert duplicate.kind == "conflict"
    assert duplicate.error == "Email already exists"


def test_update_contact_is_sparse(db, seed_contact):
    contact_id = seed_contact("a@example.com", tags=["vip"], first_name="Ann")

    assert update_contact(db, contact_id, {"last_name": "Lee"}).success
    contact = get_contact(db, contact_id)
    assert contact["first_name"] == "Ann"
    assert contact["last_name"] == "Lee"
    assert contact["tags"] == ["vip"]


def test_update_contact_errors(db, seed_contact):
    contact_id = seed_contact("a@example.com")
    assert update_contact(db, contact_id, {}).error == "No fields to update"
    assert update_contact(db, contact_id, {"status": "gone"}).error == "Invalid status"
    missing = update_contact(db, "missing", {"first_name": "X"})
    assert missing.kind == "not_found"


def test_unsubscribing_via_update_stamps_time(db, seed_contact):
    contact_id = seed_contact("a@example.com")
    assert update_contact(db, contact_id, {"status": "unsubscribed"}).success
    assert get_contact(db, contact_id)["unsubscribed_at"] is not None


def test_delete_contact(db, seed_contact):
    contact_id = seed_contact("a@example.com")
    assert delete_contact(db, contact_id).success
    assert get_contact(db, contact_id) is None
    assert delete_contact(db, contact_id).kind == "not_found"


def test_list_contacts_filters_and_sorts(db, seed_contact):
    seed_contact("amy@example.com", tags=["vip"], first_name="Amy")
    seed_contact("bob@example.com", tags=["spring"], status="unsubscribed")
    seed_contact("cat@example.com", tags=["vip", "spring"], engagement_level="opened")

    page = list_contacts(db, {"tags": ["vip"]}, Pagination(sort_by="email", sort_order="asc"))
    assert [c["email"] for c in page.data] == ["amy@example.com", "cat@example.com"]
    assert page.total == 2

    assert list_contacts(db, {"status": "unsubscribed"}).total == 1
    assert list_contacts(db, {"engagement_level": "opened"}).total == 1
    assert list_contacts(db, {"search": "amy"}).total == 1


def test_list_contacts_ignores_unknown_sort_column(db, seed_contact):
    seed_contact("a@example.com")
    page = list_contacts(db, {}, Pagination(sort_by="email; DROP TABLE marketing_contacts"))
    assert page.total == 1


def test_tags_and_stats(db, seed_contact):
    seed_contact("a@example.com", tags=["vip", "spring"])
    seed_contact("b@example.com", tags=["autumn"], status="bounced")

    assert get_all_tags(db) == ["autumn", "spring", "vip"]
    assert get_contact_stats(db) == {"total": 2, "active": 1, "unsubscribed": 0, "bounced": 1}


def test_normalize_tags():
    assert normalize_tags(" a, b ,a,, ") == ["a", "b"]
    assert normalize_tags(["x", "x", " y "]) == ["x", "y"]
    assert normalize_tags(None) == []


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

def test_import_same_email_twice_unions_tags(db):
    rows = [
        {"email": "dup@example.com", "first_name": "First", "tags": "vip"},
        {"email": "DUP@example.com", "first_name": "Second", "tags": "spring, vip"},
    ]
    result = import_contacts(db, rows)

    assert result.success
    assert result.get("inserted") == 1
    assert result.get("updated") == 0
    assert result.get("total") == 1

    count = db.query("SELECT COUNT(*) FROM marketing_contacts").scalar()
    assert count == 1
    contact = get_contact_by_email(db, "dup@example.com")
    assert set(contact["tags"]) == {"vip", "spring"}
    assert contact["first_name"] == "Second"


def test_reimport_counts_as_update(db):
    import_contacts(db, [{"email": "a@example.com", "tags": "vip"}])
    result = import_contacts(db, [{"email": "a@example.com", "tags": "spring"}])

    assert result.get("inserted") == 0
    assert result.get("updated") == 1
    assert get_contact_by_email(db, "a@example.com")["tags"] == ["vip", "spring"]


def test_reimport_keeps_names_when_blank(db, seed_contact):
    seed_contact("a@example.com", first_name="Ann")
    import_contacts(db, [{"email": "a@example.com", "first_name": ""}])
    assert get_contact_by_email(db, "a@example.com")["first_name"] == "Ann"


def test_import_validation_rejects_whole_batch(db):
    result = import_contacts(db, [
        {"email": "good@example.com"},
        {"email": ""},
        {"email": "bad"},
    ])
    assert result.kind == "validation"
    assert result.get("inserted") == 0
    assert result.get("failed") == 2
    assert [e["row"] for e in result.get("errors")] == [3, 4]
    assert db.query("SELECT COUNT(*) FROM marketing_contacts").scalar() == 0


def test_csv_row_numbers_survive_blank_lines(db):
    rows = parse_contacts_csv("email\na@example.com\n\n\nbroken\n")
    assert [row["row"] for row in rows] == [2, 5]

    result = import_contacts(db, rows)
    assert result.get("errors") == [{"row": 5, "field": "email", "message": "Invalid email format"}]


def test_failed_write_reports_the_rows_own_line(db):
    text = "email,first_name\na@example.com,Ann\n\nb@example.com,Bob\na@example.com,Anna\n"
    rows = parse_contacts_csv(text)

    with patch("marketdesk.modules.contacts.models.generate_unsubscribe_token",
               side_effect=[RuntimeError("token store down"), "tok_b"]):
        result = import_contacts(db, rows)

    assert result.kind == "partial"
    assert result.get("inserted") == 1
    assert result.get("failed") == 1
    [error] = result.get("errors")
    assert error["row"] == 5
    assert error["field"] == "general"
    assert "token store down" in error["message"]


def test_validate_contact_rows():
    report = validate_contact_rows([{"email": "a@example.com"}, {"email": "nope"}])
    assert report["valid"] is False
    assert report["valid_rows"] == 1
    assert report["invalid_rows"] == 1
    assert report["errors"] == [{"row": 3, "field": "email", "message": "Invalid email format"}]


def test_check_duplicates(db, seed_contact):
    seed_contact("a@x.com", templates_received=["WELCOME"])

    result = check_duplicates(db, ["a@x.com", "A@X.COM", "b@x.com"])
    assert result.success
    existing = result.get("existing")
    assert [e["email"] for e in existing] == ["a@x.com"]
    assert existing[0]["templates_received"] == ["WELCOME"]
    assert result.get("new") == ["b@x.com"]


# ---------------------------------------------------------------------------
# Bulk
# ---------------------------------------------------------------------------

def test_bulk_add_and_remove_tags(db, seed_contact):
    first = seed_contact("a@example.com", tags=["vip"])
    second = seed_contact("b@example.com")

    result = add_tags(db, [first, second], ["spring", "vip"])
    assert result.get("affected") == 2
    assert get_contact(db, first)["tags"] == ["vip", "spring"]
    assert get_contact(db, second)["tags"] == ["spring", "vip"]

    remove_tags(db, [first, second], ["vip"])
    assert get_contact(db, first)["tags"] == ["spring"]
    assert get_contact(db, second)["tags"] == ["spring"]


def test_bulk_operations_validate_input(db, seed_contact):
    contact_id = seed_contact("a@example.com")
    assert add_tags(db, [], ["x"]).error == "No contacts or tags provided"
    assert remove_tags(db, [contact_id], []).error == "No contacts or tags provided"
    assert update_status(db, [], "active").error == "No contacts provided"
    assert update_status(db, [contact_id], "deleted").error == "Invalid status"


def test_bulk_status(db, seed_contact):
    ids = [seed_contact("a@example.com"), seed_contact("b@example.com")]
    result = update_status(db, ids, "bounced")
    assert result.get("affected") == 2
    assert get_contact_stats(db)["bounced"] == 2


# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------

def test_engagement_never_downgrades(db, seed_contact):
    contact_id = seed_contact("a@example.com")

    update_engagement(db, contact_id, "clicked")
    update_engagement(db, contact_id, "sent")
    update_engagement(db, contact_id, "opened")

    contact = get_contact(db, contact_id)
    assert contact["engagement_level"] == "clicked"
    assert contact["last_email_at"] is not None
    assert contact["last_opened_at"] is not None


def test_engagement_upgrades(db, seed_contact):
    contact_id = seed_contact("a@example.com")
    update_engagement(db, contact_id, "sent")
    assert get_contact(db, contact_id)["engagement_level"] == "sent"
    update_engagement(db, contact_id, "opened")
    assert get_contact(db, contact_id)["engagement_level"] == "opened"


def test_engagement_records_template_once(db, seed_contact):
    contact_id = seed_contact("a@example.com", templates_received=["OLD"])
    update_engagement(db, contact_id, "sent", "WELCOME")
    update_engagement(db, contact_id, "opened", "WELCOME")
    assert get_contact(db, contact_id)["templates_received"] == ["OLD", "WELCOME"]


def test_engagement_errors(db, seed_contact):
    contact_id = seed_contact("a@example.com")
    assert update_engagement(db, contact_id, "none").kind == "validation"
    assert update_engagement(db, "missing", "sent").kind == "not_found"


def test_contact_history_lists_campaign_events(db, seed_contact, seed_campaign):
    contact_id = seed_contact("a@example.com")
    campaign_id = seed_campaign(name="Spring launch")
    db.query("""
        INSERT INTO marketing_campaign_logs (campaign_id, contact_id, status, sent_at, opened_at)
        VALUES (?, ?, 'opened', '2026-03-01 10:00:00', '2026-03-01 11:00:00')
    """, (campaign_id, contact_id))

    events = get_contact_history(db, contact_id)
    assert len(events) == 1
    assert events[0]["type"] == "opened"
    assert events[0]["campaign_name"] == "Spring launch"
    assert events[0]["template_code"] == "WELCOME"
    assert events[0]["timestamp"] == "2026-03-01 11:00:00"
    assert get_contact_history(db, "missing") == []


# ---------------------------------------------------------------------------
# Unsubscribe
# ---------------------------------------------------------------------------

def test_unsubscribe_token_flow(db, seed_contact):
    contact_id = seed_contact("a@example.com")
    token = get_contact(db, contact_id)["unsubscribe_token"]

    assert process_unsubscribe(db, token).success
    contact = get_contact(db, contact_id)
    assert contact["status"] == "unsubscribed"
    assert contact["unsubscribed_at"] is not None

    again = process_unsubscribe(db, token)
    assert again.kind == "not_found"
    assert again.error == "Invalid or expired unsubscribe link"
    assert process_unsubscribe(db, "nope").error == "Invalid or expired unsubscribe link"


def test_unsubscribe_url_uses_site_url(db):
    assert unsubscribe_url("abc") == "https://marketing.example.com/unsubscribe/abc"


def test_public_unsubscribe_route(client, db, seed_contact):
    contact_id = seed_contact("a@example.com")
    token = get_contact(db, contact_id)["unsubscribe_token"]

    response = client.get(f"/unsubscribe/{token}")
    assert response.status_code == 200
    assert response.get_json() == {"success": True, "message": "You have been unsubscribed"}
    assert client.get(f"/unsubscribe/{token}").status_code == 404


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def test_parse_contacts_csv_accepts_aliases_and_bom():
    text = "\ufeffE-mail,First Name,Surname,Tags,Company\na@example.com,Ann,Lee,\"vip, spring\",Acme\n,,,,\n"
    assert parse_contacts_csv(text) == [
        {"email": "a@example.com", "first_name": "Ann", "last_name": "Lee", "tags": "vip, spring", "row": 2},
    ]
    assert parse_contacts_csv("") == []


def test_export_contacts_csv():
    text = export_contacts_csv([{"email": "a@example.com", "tags": ["vip", "spring"], "status": "active"}])
    lines = text.strip().splitlines()
    assert lines[0] == "email,first_name,last_name,status,engagement_level,tags,source,created_at"
    assert lines[1] == 'a@example.com,,,active,,"vip, spring",,'


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def test_contacts_api_crud(admin_client):
    created = admin_client.post("/api/contacts", json={"email": "new@example.com", "tags": ["vip"]})
    assert created.status_code == 201
    contact_id = created.get_json()["contact"]["id"]

    detail = admin_client.get(f"/api/contacts/{contact_id}").get_json()
    assert detail["contact"]["unsubscribe_url"].startswith("https://marketing.example.com/unsubscribe/")

    assert admin_client.post("/api/contacts", json={"email": "new@example.com"}).status_code == 409
    assert admin_client.patch(f"/api/contacts/{contact_id}", json={"first_name": "N"}).status_code == 200

    listing = admin_client.get("/api/contacts?tags=vip").get_json()
    assert listing["total"] == 1
    assert listing["page"] == 1

    assert admin_client.delete(f"/api/contacts/{contact_id}").status_code == 200
    assert admin_client.get(f"/api/contacts/{contact_id}").status_code == 404


def test_contacts_api_csv_import(admin_client):
    data = {
        "file": (io.BytesIO(b"email,first_name,tags\na@example.com,Ann,vip\nb@example.com,Bob,\n"), "contacts.csv"),
    }
    response = admin_client.post("/api/contacts/import", data=data, content_type="multipart/form-data")
    assert response.status_code == 200
    body = response.get_json()
    assert body["inserted"] == 2
    assert body["updated"] == 0

    export = admin_client.get("/api/contacts/export")
    assert export.mimetype == "text/csv"
    assert "a@example.com" in export.get_data(as_text=True)


def test_contacts_api_import_requires_rows(admin_client):
    response = admin_client.post("/api/contacts/import", json={"rows": []})
    assert response.status_code == 400
    assert response.get_json()["error"] == "No rows to import"


def test_contacts_api_bulk_tags(admin_client, seed_contact):
    contact_id = seed_contact("a@example.com")
    response = admin_client.post("/api/contacts/bulk/tags", json={
        "ids": [contact_id], "tags": ["vip"], "action": "add",
    })
    assert response.get_json() == {"success": True, "affected": 1}
    bad = admin_client.post("/api/contacts/bulk/tags", json={"ids": [contact_id], "tags": ["x"], "action": "swap"})
    assert bad.status_code == 400
