"""Email template store and template code generation."""

import re

from marketdesk.modules.email_templates.models import (
    create_template, update_template, delete_template, get_template, list_templates, find_by_content,
    base_code, generate_code, save_custom_template, MAX_TEMPLATE_CODE_LENGTH,
)


def _template(code="WELCOME", subject="Welcome {{name}}", html="<p>Hi {{name}}</p>"):
    return {"template_code": code, "subject": subject, "html_content": html}


def test_create_and_read_template(db):
    result = create_template(db, dict(_template(), description="First touch"))
    assert result.success
    assert result.get("template_code") == "WELCOME"

    template = get_template(db, "WELCOME")
    assert template["subject"] == "Welcome {{name}}"
    assert template["description"] == "First touch"


def test_create_template_validation(db):
    assert create_template(db, _template(code=" ")).error == "Template code is required"
    assert create_template(db, _template(subject="  ")).error == "Subject cannot be empty"
    assert create_template(db, _template(html="")).error == "HTML content cannot be empty"


def test_create_template_duplicate_code(db):
    create_template(db, _template())
    duplicate = create_template(db, _template())
    assert duplicate.kind == "conflict"
    assert duplicate.error == "Template code already exists"


def test_update_template_keeps_code(db):
    create_template(db, _template())
    result = update_template(db, "WELCOME", {"subject": "New", "html_content": "<p>New</p>"})
    assert result.success
    assert get_template(db, "WELCOME")["subject"] == "New"

    assert update_template(db, "MISSING", {"subject": "s", "html_content": "h"}).kind == "not_found"


def test_delete_template(db):
    create_template(db, _template())
    assert delete_template(db, "WELCOME").success
    assert get_template(db, "WELCOME") is None
    assert delete_template(db, "WELCOME").error == "Template not found"


def test_list_templates_search(db):
    create_template(db, _template("WELCOME"))
    create_template(db, _template("BLACK_FRIDAY", subject="Deals"))
    assert [t["template_code"] for t in list_templates(db)] == ["BLACK_FRIDAY", "WELCOME"]
    assert [t["template_code"] for t in list_templates(db, "deal")] == ["BLACK_FRIDAY"]


def test_base_code():
    assert base_code("Welcome to the Spring Launch party!") == "WELCOME_THE_SPRING_LAUNCH"
    assert base_code("Hi") == "CUSTOM"
    assert base_code("") == "CUSTOM"


def test_generate_code_uses_timestamp_suffix(db):
    code = generate_code(db, "Spring launch news", now=0)
    assert code == "SPRING_LAUNCH_NEWS_0"


def test_generate_code_skips_taken_codes(db):
    create_template(db, _template("SPRING_LAUNCH_0"))
    create_template(db, _template("SPRING_LAUNCH_1"))
    assert generate_code(db, "Spring launch", now=0) == "SPRING_LAUNCH_2"


def test_generate_code_falls_back_to_random_suffix(db):
    for attempt in range(5):
        create_template(db, _template(f"SPRING_LAUNCH_{attempt}"))
    code = generate_code(db, "Spring launch", now=0)
    assert re.fullmatch(r"SPRING_LAUNCH_[0-9A-F]{8}", code)


def test_generate_code_respects_max_length(db):
    subject = "Extraordinarily Unbelievable Supercalifragilistic Announcements"
    code = generate_code(db, subject)
    assert len(code) <= MAX_TEMPLATE_CODE_LENGTH


def test_save_custom_template_reuses_identical_content(db):
    first = save_custom_template(db, "Spring offer", "<p>Offer</p>")
    assert first.success
    assert first.get("already_exists") is False
    assert get_template(db, first.get("template_code"))["description"] == "Auto-saved custom template"

    second = save_custom_template(db, "Spring offer", "<p>Offer</p>")
    assert second.get("already_exists") is True
    assert second.get("template_code") == first.get("template_code")


def test_templates_api(admin_client):
    created = admin_client.post("/api/templates", json=_template())
    assert created.status_code == 201

    listing = admin_client.get("/api/templates").get_json()
    assert [t["template_code"] for t in listing["templates"]] == ["WELCOME"]

    assert admin_client.get("/api/templates/MISSING").status_code == 404
    assert admin_client.post("/api/templates", json=_template()).status_code == 409
    assert admin_client.delete("/api/templates/WELCOME").status_code == 200


def test_find_by_content_needs_exact_match(db):
    create_template(db, _template())
    assert find_by_content(db, "Welcome {{name}}", "<p>Hi {{name}}</p>")["template_code"] == "WELCOME"
    assert find_by_content(db, "Welcome {{name}}", "<p>Hi {{name}} </p>") is None
