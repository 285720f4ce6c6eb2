"""
Email Templates Models
======================

Named (subject, HTML) pairs keyed by a human-readable template code.
Codes are immutable; updates overwrite the content in place.
"""

import logging
import re
import secrets
import sqlite3
import time

from marketdesk.core.results import ActionResult, action

logger = logging.getLogger(__name__)

# Template code generation
MIN_WORD_LENGTH = 3
MAX_WORDS_IN_CODE = 4
MAX_TEMPLATE_CODE_LENGTH = 50
MAX_CODE_ATTEMPTS = 5
RANDOM_SUFFIX_BYTES = 4

DEFAULT_CUSTOM_DESCRIPTION = "Auto-saved custom template"

_BASE36 = '0123456789abcdefghijklmnopqrstuvwxyz'


def _db_log(level, message, details=None):
    """Log to the persistent DB logger"""
    try:
        from marketdesk.core import db_log
        db_log(level, 'templates', message, details)
    except Exception as e:
        logger.debug(f"db_log unavailable: {e}")


def list_templates(db, search=None):
    """All templates ordered by code, optionally filtered by code/subject/description"""
    sql = "SELECT * FROM email_templates"
    params = []
    search = (search or '').strip()
    if search:
        sql += " WHERE template_code LIKE ? OR subject LIKE ? OR description LIKE ?"
        params = [f'%{search}%'] * 3
    sql += " ORDER BY template_code ASC"
    return db.query(sql, params).rows


def get_template(db, code):
    return db.query("SELECT * FROM email_templates WHERE template_code = ?", (code,)).first()


def find_by_content(db, subject, html_content):
    """Exact match on subject and HTML"""
    return db.query(
        "SELECT * FROM email_templates WHERE subject = ? AND html_content = ? LIMIT 1",
        (subject, html_content),
    ).first()


def _validate_content(subject, html_content):
    if not subject or not subject.strip():
        return "Subject cannot be empty"
    if not html_content or not html_content.strip():
        return "HTML content cannot be empty"
    return None


@action('templates', 'Failed to create template')
def create_template(db, data):
    code = (data.get('template_code') or '').strip()
    if not code:
        return ActionResult.validation("Template code is required")
    error = _validate_content(data.get('subject'), data.get('html_content'))
    if error:
        return ActionResult.validation(error)

    if get_template(db, code):
        return ActionResult.conflict("Template code already exists")

    try:
        db.query("""
            INSERT INTO email_templates (template_code, subject, html_content, description)
            VALUES (?, ?, ?, ?)
        """, (code, data['subject'], data['html_content'], data.get('description') or None))
    except sqlite3.IntegrityError:
        return ActionResult.conflict("Template code already exists")

    _db_log('info', f'Template created: {code}')
    return ActionResult.ok(template_code=code)


@action('templates', 'Failed to update template')
def update_template(db, code, data):
    """Overwrite subject, HTML and description; the code never changes"""
    error = _validate_content(data.get('subject'), data.get('html_content'))
    if error:
        return ActionResult.validation(error)

    result = db.query("""
        UPDATE email_templates
        SET subject = ?, html_content = ?, description = ?, updated_at = CURRENT_TIMESTAMP
        WHERE template_code = ?
    """, (data['subject'], data['html_content'], data.get('description') or None, code))

    if result.row_count == 0:
        return ActionResult.not_found("Template not found")
    return ActionResult.ok()


@action('templates', 'Failed to delete template')
def delete_template(db, code):
    result = db.query("DELETE FROM email_templates WHERE template_code = ?", (code,))
    if result.row_count == 0:
        return ActionResult.not_found("Template not found")
    _db_log('info', f'Template deleted: {code}')
    return ActionResult.ok()


# ===================
# CODE GENERATION
# ===================

def _to_base36(number):
    if number == 0:
        return '0'
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return ''.join(reversed(digits))


def base_code(subject):
    """Uppercase snake case from the first meaningful words of a subject"""
    cleaned = re.sub(r'[^a-zA-Z0-9\s]', '', subject or '')
    words = [w.upper() for w in cleaned.split() if len(w) >= MIN_WORD_LENGTH]
    words = words[:MAX_WORDS_IN_CODE]
    return '_'.join(words) if words else 'CUSTOM'


def _with_suffix(base, suffix):
    code = f"{base}_{suffix}"
    if len(code) > MAX_TEMPLATE_CODE_LENGTH:
        code = f"{base[:MAX_TEMPLATE_CODE_LENGTH - len(suffix) - 1]}_{suffix}"
    return code


def _random_suffix():
    return secrets.token_hex(RANDOM_SUFFIX_BYTES).upper()


def generate_code(db, subject, now=None):
    """
    Human-recognisable unique code, e.g. WELCOME_SPRING_LAUNCH_LQ2K8F3A.

    The suffix is the base-36 millisecond timestamp. Up to five candidates
    are checked by advancing the timestamp; after that a random hex suffix
    is used.
    """
    base = base_code(subject)
    millis = int((now if now is not None else time.time()) * 1000)

    for attempt in range(MAX_CODE_ATTEMPTS):
        code = _with_suffix(base, _to_base36(millis + attempt).upper())
        if not get_template(db, code):
            return code

    logger.warning(f"Template code collisions for {base}; falling back to random suffix")
    return _with_suffix(base, _random_suffix())


@action('templates', 'Failed to save custom template')
def save_custom_template(db, subject, html_content, description=None):
    """Store ad-hoc email content as a template unless identical content already exists"""
    error = _validate_content(subject, html_content)
    if error:
        return ActionResult.validation(error)

    subject = subject.strip()
    html_content = html_content.strip()
    description = description or DEFAULT_CUSTOM_DESCRIPTION

    existing = find_by_content(db, subject, html_content)
    if existing:
        return ActionResult.ok(template_code=existing['template_code'], already_exists=True)

    code = generate_code(db, subject)
    inserted = db.query("""
        INSERT INTO email_templates (template_code, subject, html_content, description)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (template_code) DO NOTHING
        RETURNING template_code
    """, (code, subject, html_content, description)).first()

    if not inserted:
        code = _with_suffix(base_code(subject), _random_suffix())
        try:
            db.query("""
                INSERT INTO email_templates (template_code, subject, html_content, description)
                VALUES (?, ?, ?, ?)
            """, (code, subject, html_content, description))
        except sqlite3.IntegrityError:
            return ActionResult.conflict("Failed to generate unique template code")

    _db_log('info', f'Custom template saved: {code}')
    return ActionResult.ok(template_code=code, already_exists=False)
