"""
Contacts Models
===============

Store functions for marketing contacts: CRUD, CSV import with
upsert-by-email, bulk tag/status changes, engagement tracking and the
public unsubscribe flow. Every function takes the Database as its first
argument.
"""

import logging
import secrets
import sqlite3
import uuid

from marketdesk.core.config import get_config_value
from marketdesk.core.database import (
    Pagination, paginate, order_by_clause, json_overlap, placeholders,
    to_json, from_json,
)
from marketdesk.core.results import ActionResult, action
from marketdesk.modules.email.compose import is_valid_email

logger = logging.getLogger(__name__)

CONTACT_STATUSES = ('active', 'unsubscribed', 'bounced', 'complained')
ENGAGEMENT_RANKS = {'none': 0, 'sent': 1, 'opened': 2, 'clicked': 3}

# Last-activity column stamped for each engagement event
ENGAGEMENT_TIMESTAMPS = {
    'sent': 'last_email_at',
    'opened': 'last_opened_at',
    'clicked': 'last_clicked_at',
}

CONTACT_SORT_COLUMNS = (
    'id', 'created_at', 'updated_at', 'email', 'first_name', 'last_name',
    'status', 'engagement_level', 'last_email_at',
)


def _db_log(level, message, details=None):
    """Log to the persistent DB logger"""
    try:
        from marketdesk.core import db_log
        db_log(level, 'contacts', message, details)
    except Exception as e:
        logger.debug(f"db_log unavailable: {e}")


def _row_to_dict(row):
    if row is None:
        return None
    contact = dict(row)
    contact['tags'] = from_json(contact.get('tags'), [])
    contact['templates_received'] = from_json(contact.get('templates_received'), [])
    return contact


def normalize_email(email):
    return (email or '').strip().lower()


def normalize_tags(tags):
    """List of unique, non-empty tags; accepts a list or a comma-separated string"""
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(',')
    result = []
    for tag in tags:
        tag = str(tag).strip()
        if tag and tag not in result:
            result.append(tag)
    return result


def generate_unsubscribe_token():
    """64 hex characters (32 random bytes)"""
    return secrets.token_hex(32)


def unsubscribe_url(token):
    """Public link that unsubscribes the contact owning ``token``"""
    base = get_config_value('EMAIL_WEBSITE_URL') or ''
    return f"{base.rstrip('/')}/unsubscribe/{token}"


def _clean(value):
    value = (value or '').strip()
    return value or None


def _build_filters(filters):
    filters = filters or {}
    conditions = []
    params = []

    search = (filters.get('search') or '').strip()
    if search:
        conditions.append("(email LIKE ? OR first_name LIKE ? OR last_name LIKE ?)")
        params.extend([f'%{search}%'] * 3)

    if filters.get('status'):
        conditions.append("status = ?")
        params.append(filters['status'])

    if filters.get('engagement_level'):
        conditions.append("engagement_level = ?")
        params.append(filters['engagement_level'])

    tags = normalize_tags(filters.get('tags'))
    if tags:
        conditions.append(json_overlap('tags'))
        params.append(to_json(tags))

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return where, params


# ===================
# READS
# ===================

def list_contacts(db, filters=None, pagination=None):
    """Filtered, sorted page of contacts"""
    pagination = pagination or Pagination()
    where, params = _build_filters(filters)
    page = paginate(
        db,
        f"SELECT * FROM marketing_contacts {where}",
        f"SELECT COUNT(*) FROM marketing_contacts {where}",
        params,
        order_by_clause(pagination.sort_by, pagination.sort_order, CONTACT_SORT_COLUMNS),
        pagination,
    )
    page.data = [_row_to_dict(row) for row in page.data]
    return page


def export_contacts(db, filters=None):
    """Every contact matching the filters, newest first"""
    where, params = _build_filters(filters)
    rows = db.query(
        f"SELECT * FROM marketing_contacts {where} ORDER BY created_at DESC", params
    ).rows
    return [_row_to_dict(row) for row in rows]


def get_contact(db, contact_id):
    row = db.query("SELECT * FROM marketing_contacts WHERE id = ?", (contact_id,)).first()
    return _row_to_dict(row)


def get_contact_by_email(db, email):
    row = db.query(
        "SELECT * FROM marketing_contacts WHERE LOWER(email) = ?", (normalize_email(email),)
    ).first()
    return _row_to_dict(row)


def get_contact_history(db, contact_id):
    """Campaign events for a contact, most recent first"""
    rows = db.query("""
        SELECT l.id, l.campaign_id, c.name AS campaign_name, c.template_code,
               l.status, l.sent_at, l.opened_at, l.clicked_at, l.created_at
        FROM marketing_campaign_logs l
        JOIN marketing_campaigns c ON l.campaign_id = c.id
        WHERE l.contact_id = ?
        ORDER BY l.created_at DESC
    """, (contact_id,)).rows

    events = []
    for row in rows:
        if row['clicked_at']:
            event_type = 'clicked'
        elif row['opened_at']:
            event_type = 'opened'
        else:
            event_type = 'campaign_sent'
        events.append({
            'id': row['id'],
            'type': event_type,
            'campaign_id': row['campaign_id'],
            'campaign_name': row['campaign_name'],
            'template_code': row['template_code'],
            'status': row['status'],
            'timestamp': row['clicked_at'] or row['opened_at'] or row['sent_at'] or row['created_at'],
        })
    return events


def get_all_tags(db):
    """Every distinct tag in use, alphabetical"""
    rows = db.query("""
        SELECT DISTINCT t.value AS tag
        FROM marketing_contacts, json_each(marketing_contacts.tags) AS t
        ORDER BY tag
    """).rows
    return [row['tag'] for row in rows]


def get_contact_stats(db):
    row = db.query("""
        SELECT
            COUNT(*) AS total,
            COALESCE(SUM(CASE WHEN status = 'active' THEN 1 ELSE 0 END), 0) AS active,
            COALESCE(SUM(CASE WHEN status = 'unsubscribed' THEN 1 ELSE 0 END), 0) AS unsubscribed,
            COALESCE(SUM(CASE WHEN status = 'bounced' THEN 1 ELSE 0 END), 0) AS bounced
        FROM marketing_contacts
    """).first()
    return {key: int(row[key]) for key in ('total', 'active', 'unsubscribed', 'bounced')}


# ===================
# WRITES
# ===================

@action('contacts', 'Failed to create contact')
def create_contact(db, data):
    """Create a contact with a fresh unsubscribe token"""
    email = normalize_email(data.get('email'))
    if not email:
        return ActionResult.validation("Email is required")
    if not is_valid_email(email):
        return ActionResult.validation("Invalid email format")

    if get_contact_by_email(db, email):
        return ActionResult.conflict("Email already exists")

    try:
        row = db.query("""
            INSERT INTO marketing_contacts
                (id, email, first_name, last_name, source, tags, unsubscribe_token)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING *
        """, (
            str(uuid.uuid4()),
            email,
            _clean(data.get('first_name')),
            _clean(data.get('last_name')),
            data.get('source') or 'manual',
            to_json(normalize_tags(data.get('tags'))),
            generate_unsubscribe_token(),
        )).first()
    except sqlite3.IntegrityError:
        # Lost a race with a concurrent insert of the same address
        return ActionResult.conflict("Email already exists")

    _db_log('info', f'Contact created: {email}', {'id': row['id']})
    return ActionResult.ok(contact=_row_to_dict(row))


@action('contacts', 'Failed to update contact')
def update_contact(db, contact_id, data):
    """Sparse update: only supplied fields are written"""
    updates = []
    params = []

    if 'first_name' in data:
        updates.append("first_name = ?")
        params.append((data.get('first_name') or '').strip())

    if 'last_name' in data:
        updates.append("last_name = ?")
        params.append((data.get('last_name') or '').strip())

    if 'tags' in data:
        updates.append("tags = ?")
        params.append(to_json(normalize_tags(data.get('tags'))))

    if 'status' in data:
        status = data.get('status')
        if status not in CONTACT_STATUSES:
            return ActionResult.validation("Invalid status")
        updates.append("status = ?")
        params.append(status)
        if status == 'unsubscribed':
            updates.append("unsubscribed_at = CURRENT_TIMESTAMP")

    if not updates:
        return ActionResult.validation("No fields to update")

    updates.append("updated_at = CURRENT_TIMESTAMP")
    result = db.query(
        f"UPDATE marketing_contacts SET {', '.join(updates)} WHERE id = ?",
        params + [contact_id],
    )
    if result.row_count == 0:
        return ActionResult.not_found("Contact not found")

    return ActionResult.ok()


@action('contacts', 'Failed to delete contact')
def delete_contact(db, contact_id):
    result = db.query("DELETE FROM marketing_contacts WHERE id = ?", (contact_id,))
    if result.row_count == 0:
        return ActionResult.not_found("Contact not found")
    _db_log('info', 'Contact deleted', {'id': contact_id})
    return ActionResult.ok()


# ===================
# IMPORT
# ===================

def _row_number(row, index):
    """The row's own line number when the parser supplied one, else its position after the header"""
    number = row.get('row')
    if isinstance(number, int) and not isinstance(number, bool):
        return number
    return index + 2


def validate_contact_rows(rows):
    """Check every row; unnumbered rows count from 2 because row 1 is the CSV header"""
    errors = []
    valid_rows = 0
    invalid_rows = 0

    for index, row in enumerate(rows):
        row_num = _row_number(row, index)
        email = (row.get('email') or '').strip()
        if not email:
            errors.append({'row': row_num, 'field': 'email', 'message': 'Email is required'})
            invalid_rows += 1
        elif not is_valid_email(email):
            errors.append({'row': row_num, 'field': 'email', 'message': 'Invalid email format'})
            invalid_rows += 1
        else:
            valid_rows += 1

    return {
        'valid': not errors,
        'valid_rows': valid_rows,
        'invalid_rows': invalid_rows,
        'errors': errors,
    }


def _dedupe_rows(rows):
    """One row per normalized email; later rows win (row number included), tags accumulate"""
    unique = {}
    for index, row in enumerate(rows):
        email = normalize_email(row.get('email'))
        merged = dict(row)
        merged['row'] = _row_number(row, index)
        merged['tags'] = normalize_tags(row.get('tags'))
        if email in unique:
            previous_tags = unique[email]['tags']
            merged['tags'] = previous_tags + [t for t in merged['tags'] if t not in previous_tags]
        unique[email] = merged
    return unique


@action('contacts', 'Failed to import contacts')
def import_contacts(db, rows, source='csv_import'):
    """
    Validate all rows, then upsert each unique email.

    Existing contacts keep their tags and gain any new ones; names are only
    overwritten by non-empty values. A failing row is reported and the rest
    of the batch continues.
    """
    validation = validate_contact_rows(rows)
    if not validation['valid']:
        return ActionResult.validation(
            "Validation failed",
            total=len(rows),
            inserted=0,
            updated=0,
            failed=validation['invalid_rows'],
            errors=validation['errors'],
        )

    unique = _dedupe_rows(rows)
    inserted = 0
    updated = 0
    failed = 0
    errors = []

    for email, row in unique.items():
        try:
            with db.transaction() as tx:
                existing = tx.query(
                    "SELECT id, tags FROM marketing_contacts WHERE LOWER(email) = ?", (email,)
                ).first()

                if existing:
                    current = from_json(existing['tags'], [])
                    new_tags = [t for t in row['tags'] if t not in current]
                    tx.query("""
                        UPDATE marketing_contacts SET
                            first_name = COALESCE(?, first_name),
                            last_name = COALESCE(?, last_name),
                            tags = ?,
                            source = ?,
                            updated_at = CURRENT_TIMESTAMP
                        WHERE id = ?
                    """, (
                        _clean(row.get('first_name')),
                        _clean(row.get('last_name')),
                        to_json(current + new_tags),
                        source,
                        existing['id'],
                    ))
                    updated += 1
                else:
                    tx.query("""
                        INSERT INTO marketing_contacts
                            (id, email, first_name, last_name, source, tags, unsubscribe_token)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                    """, (
                        str(uuid.uuid4()),
                        email,
                        _clean(row.get('first_name')),
                        _clean(row.get('last_name')),
                        source,
                        to_json(row['tags']),
                        generate_unsubscribe_token(),
                    ))
                    inserted += 1
        except Exception as e:
            failed += 1
            errors.append({
                'row': row['row'],
                'field': 'general',
                'message': f'Failed to import row: {e}',
            })
            logger.warning(f"Contact import row failed for {email}: {e}")

    _db_log('info', f'Contacts imported from {source}', {
        'total': len(unique), 'inserted': inserted, 'updated': updated, 'failed': failed,
    })

    return ActionResult(
        success=failed == 0,
        error=f"{failed} row(s) failed to import" if failed else None,
        kind='partial' if failed else None,
        data={
            'total': len(unique),
            'inserted': inserted,
            'updated': updated,
            'failed': failed,
            'errors': errors,
        },
    )


@action('contacts', 'Failed to check duplicates')
def check_duplicates(db, emails):
    """Split addresses into existing contacts and new addresses"""
    unique_emails = []
    for email in emails or []:
        email = normalize_email(email)
        if email and email not in unique_emails:
            unique_emails.append(email)

    if not unique_emails:
        return ActionResult.ok(existing=[], new=[])

    rows = db.query(
        f"SELECT id, email, templates_received FROM marketing_contacts "
        f"WHERE LOWER(email) IN ({placeholders(len(unique_emails))})",
        unique_emails,
    ).rows

    existing = [{
        'id': row['id'],
        'email': row['email'],
        'templates_received': from_json(row['templates_received'], []),
    } for row in rows]
    known = {row['email'].lower() for row in rows}

    return ActionResult.ok(
        existing=existing,
        new=[email for email in unique_emails if email not in known],
    )


# ===================
# BULK OPERATIONS
# ===================

def _rewrite_tags(db, contact_ids, transform):
    """Apply transform(current_tags) to each listed contact inside one transaction"""
    with db.transaction() as tx:
        rows = tx.query(
            f"SELECT id, tags FROM marketing_contacts WHERE id IN ({placeholders(len(contact_ids))})",
            list(contact_ids),
        ).rows
        for row in rows:
            tags = transform(from_json(row['tags'], []))
            tx.query(
                "UPDATE marketing_contacts SET tags = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (to_json(tags), row['id']),
            )
    return len(rows)


@action('contacts', 'Failed to add tags', affected=0)
def add_tags(db, contact_ids, tags):
    tags = normalize_tags(tags)
    if not contact_ids or not tags:
        return ActionResult.validation("No contacts or tags provided", affected=0)

    affected = _rewrite_tags(db, contact_ids, lambda current: current + [t for t in tags if t not in current])
    return ActionResult.ok(affected=affected)


@action('contacts', 'Failed to remove tags', affected=0)
def remove_tags(db, contact_ids, tags):
    tags = normalize_tags(tags)
    if not contact_ids or not tags:
        return ActionResult.validation("No contacts or tags provided", affected=0)

    affected = _rewrite_tags(db, contact_ids, lambda current: [t for t in current if t not in tags])
    return ActionResult.ok(affected=affected)


@action('contacts', 'Failed to update status', affected=0)
def update_status(db, contact_ids, status):
    if not contact_ids:
        return ActionResult.validation("No contacts provided", affected=0)
    if status not in CONTACT_STATUSES:
        return ActionResult.validation("Invalid status", affected=0)

    stamp = ", unsubscribed_at = CURRENT_TIMESTAMP" if status == 'unsubscribed' else ""
    result = db.query(
        f"UPDATE marketing_contacts SET status = ?, updated_at = CURRENT_TIMESTAMP{stamp} "
        f"WHERE id IN ({placeholders(len(contact_ids))})",
        [status] + list(contact_ids),
    )
    return ActionResult.ok(affected=result.row_count)


# ===================
# ENGAGEMENT & UNSUBSCRIBE
# ===================

@action('contacts', 'Failed to update contact engagement')
def update_engagement(db, contact_id, level, template_code=None):
    """
    Record an email event for a contact.

    The level only ever moves up (none < sent < opened < clicked). The rank
    comparison happens inside the UPDATE so concurrent webhook events cannot
    lose an upgrade.
    """
    if level not in ENGAGEMENT_TIMESTAMPS:
        return ActionResult.validation("Invalid engagement level")

    updates = ["""engagement_level = CASE
        WHEN ? > (CASE engagement_level
            WHEN 'none' THEN 0
            WHEN 'sent' THEN 1
            WHEN 'opened' THEN 2
            WHEN 'clicked' THEN 3
            ELSE 0
        END) THEN ?
        ELSE engagement_level
    END"""]
    params = [ENGAGEMENT_RANKS[level], level]

    updates.append(f"{ENGAGEMENT_TIMESTAMPS[level]} = CURRENT_TIMESTAMP")

    if template_code:
        updates.append("""templates_received = CASE
            WHEN EXISTS (SELECT 1 FROM json_each(templates_received) WHERE value = ?)
            THEN templates_received
            ELSE json_insert(templates_received, '$[#]', ?)
        END""")
        params.extend([template_code, template_code])

    updates.append("updated_at = CURRENT_TIMESTAMP")
    result = db.query(
        f"UPDATE marketing_contacts SET {', '.join(updates)} WHERE id = ?",
        params + [contact_id],
    )
    if result.row_count == 0:
        return ActionResult.not_found("Contact not found")
    return ActionResult.ok()


@action('contacts', 'Failed to process unsubscribe request')
def process_unsubscribe(db, token):
    """Unsubscribe the active contact owning token; any other case gets the same answer"""
    result = db.query("""
        UPDATE marketing_contacts
        SET status = 'unsubscribed', unsubscribed_at = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP
        WHERE unsubscribe_token = ? AND status = 'active'
    """, ((token or '').strip(),))

    if result.row_count == 0:
        return ActionResult.not_found("Invalid or expired unsubscribe link")

    _db_log('info', 'Contact unsubscribed via link')
    return ActionResult.ok()
