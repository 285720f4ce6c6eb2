"""
Campaigns Models
================

Campaign CRUD, the status state machine, audience targeting and stats.

Lifecycle::

    draft ──start──> sending ──pause──> paused ──resume──> sending
    scheduled ─┘        └──complete──> completed ──archive──> archived
                                        paused ──archive──> archived

Only drafts can be deleted. Starting a campaign queues one log row per
matching contact; it does not send anything itself.
"""

import logging
import uuid

from marketdesk.core.database import (
    Pagination, paginate, order_by_clause, json_overlap, placeholders,
    to_json, from_json,
)
from marketdesk.core.results import ActionResult, action

logger = logging.getLogger(__name__)

CAMPAIGN_STATUSES = ('draft', 'scheduled', 'sending', 'paused', 'completed', 'archived')
EDITABLE_STATUSES = ('draft', 'scheduled', 'paused')
STARTABLE_STATUSES = ('draft', 'scheduled')

# Webhook event -> counter column
STAT_COLUMNS = {
    'sent': 'stats_sent',
    'delivered': 'stats_delivered',
    'opened': 'stats_opened',
    'clicked': 'stats_clicked',
    'bounced': 'stats_bounced',
}

RATE_COLUMNS = {
    'open_rate': 'stats_opened',
    'click_rate': 'stats_clicked',
    'bounce_rate': 'stats_bounced',
    'delivery_rate': 'stats_delivered',
}

AUDIENCE_LIST_KEYS = ('tags', 'status', 'engagement_level', 'exclude_templates')

CAMPAIGN_SORT_COLUMNS = (
    'id', 'created_at', 'updated_at', 'name', 'status', 'scheduled_at',
    'started_at', 'finished_at', 'total_recipients',
)
RECIPIENT_SORT_COLUMNS = ('created_at', 'sent_at', 'status')

PREVIEW_SAMPLE_SIZE = 10


def _db_log(level, message, details=None):
    """Log to the persistent DB logger"""
    try:
        from marketdesk.core import db_log
        db_log(level, 'campaigns', message, details)
    except Exception as e:
        logger.debug(f"db_log unavailable: {e}")


# ===================
# RATES
# ===================

def rate(numerator, sent):
    """Percentage of sent; nothing sent means a rate of 0"""
    if not sent:
        return 0
    return (numerator or 0) * 100 / sent


def compute_rates(row):
    sent = row.get('stats_sent') or 0
    return {name: rate(row.get(column), sent) for name, column in RATE_COLUMNS.items()}


def _row_to_campaign(row):
    if row is None:
        return None
    campaign = dict(row)
    campaign['audience_filter'] = from_json(campaign.get('audience_filter'), {}) or {}
    campaign.update(compute_rates(campaign))
    return campaign


# ===================
# AUDIENCE
# ===================

def normalize_audience_filter(audience_filter):
    """Keep only the known list keys, dropping blanks and empty lists"""
    normalized = {}
    for key in AUDIENCE_LIST_KEYS:
        values = (audience_filter or {}).get(key) or []
        if isinstance(values, str):
            values = values.split(',')
        values = [str(v).strip() for v in values if str(v).strip()]
        if values:
            normalized[key] = values
    return normalized


def _audience_conditions(audience_filter, with_status_lists):
    """
    WHERE conditions selecting a campaign audience.

    The preview also honours the status and engagement lists; the start
    query does not, so only active contacts are ever queued.
    """
    audience = normalize_audience_filter(audience_filter)
    conditions = ["status = 'active'"]
    params = []

    if audience.get('tags'):
        conditions.append(json_overlap('tags'))
        params.append(to_json(audience['tags']))

    if with_status_lists:
        if audience.get('status'):
            conditions.append(f"status IN ({placeholders(len(audience['status']))})")
            params.extend(audience['status'])
        if audience.get('engagement_level'):
            conditions.append(f"engagement_level IN ({placeholders(len(audience['engagement_level']))})")
            params.extend(audience['engagement_level'])

    if audience.get('exclude_templates'):
        conditions.append(f"NOT {json_overlap('templates_received')}")
        params.append(to_json(audience['exclude_templates']))

    return ' AND '.join(conditions), params


def preview_audience(db, audience_filter):
    """Matching contact count plus a sample of the first ten"""
    where, params = _audience_conditions(audience_filter, with_status_lists=True)
    count = db.query(f"SELECT COUNT(*) FROM marketing_contacts WHERE {where}", params).scalar(0)
    sample = db.query(
        f"SELECT id, email, first_name, last_name, tags FROM marketing_contacts "
        f"WHERE {where} LIMIT {PREVIEW_SAMPLE_SIZE}",
        params,
    ).rows
    for contact in sample:
        contact['tags'] = from_json(contact['tags'], [])
    return {'count': int(count), 'sample': sample}


def queue_audience(db, campaign_id, audience_filter):
    """Insert a queued log row per matching contact; returns how many were new"""
    where, params = _audience_conditions(audience_filter, with_status_lists=False)
    result = db.query(f"""
        INSERT INTO marketing_campaign_logs (campaign_id, contact_id, status)
        SELECT ?, id, 'queued'
        FROM marketing_contacts
        WHERE {where}
        ON CONFLICT (campaign_id, contact_id) DO NOTHING
    """, [campaign_id] + params)
    return result.row_count


# ===================
# READS
# ===================

def list_campaigns(db, filters=None, pagination=None):
    filters = filters or {}
    pagination = pagination or Pagination()
    conditions = []
    params = []

    search = (filters.get('search') or '').strip()
    if search:
        conditions.append("(name LIKE ? OR objective LIKE ?)")
        params.extend([f'%{search}%'] * 2)

    if filters.get('status'):
        conditions.append("status = ?")
        params.append(filters['status'])

    if filters.get('template_code'):
        conditions.append("template_code = ?")
        params.append(filters['template_code'])

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    page = paginate(
        db,
        f"SELECT * FROM marketing_campaigns {where}",
        f"SELECT COUNT(*) FROM marketing_campaigns {where}",
        params,
        order_by_clause(pagination.sort_by, pagination.sort_order, CAMPAIGN_SORT_COLUMNS),
        pagination,
    )
    page.data = [_row_to_campaign(row) for row in page.data]
    return page


def get_campaign(db, campaign_id):
    row = db.query("SELECT * FROM marketing_campaigns WHERE id = ?", (campaign_id,)).first()
    return _row_to_campaign(row)


def get_campaign_stats(db, campaign_id):
    row = db.query("""
        SELECT total_recipients, stats_sent, stats_delivered, stats_opened, stats_clicked, stats_bounced
        FROM marketing_campaigns WHERE id = ?
    """, (campaign_id,)).first()
    if not row:
        return None

    stats = {'total_recipients': row['total_recipients'] or 0}
    for event, column in STAT_COLUMNS.items():
        stats[event] = row[column] or 0
    stats.update(compute_rates(row))
    return stats


def get_campaign_recipients(db, campaign_id, pagination=None):
    """Log rows for a campaign joined with contact details"""
    pagination = pagination or Pagination()
    page = paginate(
        db,
        """SELECT l.*, c.email, c.first_name, c.last_name
           FROM marketing_campaign_logs l
           JOIN marketing_contacts c ON l.contact_id = c.id
           WHERE l.campaign_id = ?""",
        "SELECT COUNT(*) FROM marketing_campaign_logs WHERE campaign_id = ?",
        [campaign_id],
        order_by_clause(pagination.sort_by, pagination.sort_order, RECIPIENT_SORT_COLUMNS, prefix='l.'),
        pagination,
    )
    return page


def get_campaign_options(db):
    """id/name/status for every campaign, newest first"""
    return db.query(
        "SELECT id, name, status FROM marketing_campaigns ORDER BY created_at DESC"
    ).rows


# ===================
# CRUD
# ===================

@action('campaigns', 'Failed to create campaign')
def create_campaign(db, data, created_by=None):
    name = (data.get('name') or '').strip()
    if not name:
        return ActionResult.validation("Campaign name is required")

    row = db.query("""
        INSERT INTO marketing_campaigns
            (id, name, objective, template_code, audience_filter, scheduled_at, created_by)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        RETURNING *
    """, (
        str(uuid.uuid4()),
        name,
        (data.get('objective') or '').strip() or None,
        data.get('template_code') or None,
        to_json(normalize_audience_filter(data.get('audience_filter'))),
        data.get('scheduled_at') or None,
        created_by,
    )).first()

    _db_log('info', f'Campaign created: {name}', {'id': row['id']})
    return ActionResult.ok(campaign=_row_to_campaign(row))


@action('campaigns', 'Failed to update campaign')
def update_campaign(db, campaign_id, data):
    """Sparse update, allowed while the campaign is draft, scheduled or paused"""
    existing = get_campaign(db, campaign_id)
    if not existing:
        return ActionResult.not_found("Campaign not found")
    if existing['status'] not in EDITABLE_STATUSES:
        return ActionResult.state("Cannot edit campaign in current status")

    updates = []
    params = []

    if 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            return ActionResult.validation("Campaign name is required")
        updates.append("name = ?")
        params.append(name)

    if 'objective' in data:
        updates.append("objective = ?")
        params.append((data.get('objective') or '').strip() or None)

    if 'template_code' in data:
        updates.append("template_code = ?")
        params.append(data.get('template_code') or None)

    if 'audience_filter' in data:
        updates.append("audience_filter = ?")
        params.append(to_json(normalize_audience_filter(data.get('audience_filter'))))

    if 'scheduled_at' in data:
        updates.append("scheduled_at = ?")
        params.append(data.get('scheduled_at') or None)

    if 'status' in data:
        if data.get('status') not in CAMPAIGN_STATUSES:
            return ActionResult.validation("Invalid status")
        updates.append("status = ?")
        params.append(data['status'])

    if not updates:
        return ActionResult.validation("No fields to update")

    updates.append("updated_at = CURRENT_TIMESTAMP")
    result = db.query(
        f"UPDATE marketing_campaigns SET {', '.join(updates)} "
        f"WHERE id = ? AND status IN ({placeholders(len(EDITABLE_STATUSES))})",
        params + [campaign_id] + list(EDITABLE_STATUSES),
    )
    if result.row_count == 0:
        return ActionResult.state("Cannot edit campaign in current status")

    return ActionResult.ok()


@action('campaigns', 'Failed to delete campaign')
def delete_campaign(db, campaign_id):
    existing = get_campaign(db, campaign_id)
    if not existing:
        return ActionResult.not_found("Campaign not found")
    if existing['status'] != 'draft':
        return ActionResult.state("Only draft campaigns can be deleted")

    result = db.query(
        "DELETE FROM marketing_campaigns WHERE id = ? AND status = 'draft'", (campaign_id,)
    )
    if result.row_count == 0:
        return ActionResult.state("Only draft campaigns can be deleted")

    _db_log('info', f'Campaign deleted: {existing["name"]}', {'id': campaign_id})
    return ActionResult.ok()


@action('campaigns', 'Failed to duplicate campaign')
def duplicate_campaign(db, campaign_id):
    """New draft copying name, objective, template and audience"""
    original = get_campaign(db, campaign_id)
    if not original:
        return ActionResult.not_found("Campaign not found")

    row = db.query("""
        INSERT INTO marketing_campaigns (id, name, objective, template_code, audience_filter, created_by)
        VALUES (?, ?, ?, ?, ?, ?)
        RETURNING *
    """, (
        str(uuid.uuid4()),
        f"{original['name']} (Copy)",
        original['objective'],
        original['template_code'],
        to_json(original['audience_filter']),
        original.get('created_by'),
    )).first()

    return ActionResult.ok(campaign=_row_to_campaign(row))


# ===================
# LIFECYCLE
# ===================

@action('campaigns', 'Failed to start campaign', total_queued=0)
def start_campaign(db, campaign_id):
    """
    Queue the audience and move the campaign to sending.

    total_recipients is the number of log rows actually inserted, which can
    differ from the preview count if contacts change in between.
    """
    def fail(factory, message):
        return factory(message, campaign_id=campaign_id, total_queued=0)

    with db.transaction() as tx:
        campaign = _row_to_campaign(
            tx.query("SELECT * FROM marketing_campaigns WHERE id = ?", (campaign_id,)).first()
        )
        if not campaign:
            return fail(ActionResult.not_found, "Campaign not found")
        if campaign['status'] not in STARTABLE_STATUSES:
            return fail(ActionResult.state, "Campaign cannot be started in current status")
        if not campaign['template_code']:
            return fail(ActionResult.state, "Campaign template is not set")

        audience = preview_audience(tx, campaign['audience_filter'])
        if audience['count'] == 0:
            return fail(ActionResult.state, "No contacts match the audience criteria")

        queued = queue_audience(tx, campaign_id, campaign['audience_filter'])
        tx.query("""
            UPDATE marketing_campaigns
            SET status = 'sending', started_at = CURRENT_TIMESTAMP,
                total_recipients = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND status IN ('draft', 'scheduled')
        """, (queued, campaign_id))

    _db_log('info', f'Campaign started: {campaign["name"]}', {'id': campaign_id, 'queued': queued})
    return ActionResult.ok(campaign_id=campaign_id, total_queued=queued)


def _transition(db, campaign_id, target, allowed_from, error, finish=False):
    """Conditional status change; the guard lives in the WHERE clause"""
    stamp = ", finished_at = CURRENT_TIMESTAMP" if finish else ""
    result = db.query(
        f"UPDATE marketing_campaigns SET status = ?, updated_at = CURRENT_TIMESTAMP{stamp} "
        f"WHERE id = ? AND status IN ({placeholders(len(allowed_from))})",
        [target, campaign_id] + list(allowed_from),
    )
    if result.row_count == 0:
        exists = db.query("SELECT 1 FROM marketing_campaigns WHERE id = ?", (campaign_id,)).first()
        if not exists:
            return ActionResult.not_found(error)
        return ActionResult.state(error)

    _db_log('info', f'Campaign {campaign_id} -> {target}')
    return ActionResult.ok(status=target)


@action('campaigns', 'Failed to pause campaign')
def pause_campaign(db, campaign_id):
    return _transition(db, campaign_id, 'paused', ('sending',),
                       "Campaign not found or cannot be paused")


@action('campaigns', 'Failed to resume campaign')
def resume_campaign(db, campaign_id):
    return _transition(db, campaign_id, 'sending', ('paused',),
                       "Campaign not found or cannot be resumed")


@action('campaigns', 'Failed to complete campaign')
def complete_campaign(db, campaign_id):
    return _transition(db, campaign_id, 'completed', ('sending',),
                       "Campaign not found or already completed", finish=True)


@action('campaigns', 'Failed to archive campaign')
def archive_campaign(db, campaign_id):
    return _transition(db, campaign_id, 'archived', ('completed', 'paused'),
                       "Campaign not found or cannot be archived")


# ===================
# STATS
# ===================

@action('campaigns', 'Failed to update campaign stats')
def increment_campaign_stat(db, campaign_id, event):
    """Add one to a single counter in one statement"""
    column = STAT_COLUMNS.get(event)
    if not column:
        return ActionResult.validation("Invalid stat event")

    result = db.query(
        f"UPDATE marketing_campaigns SET {column} = {column} + 1, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
        (campaign_id,),
    )
    if result.row_count == 0:
        return ActionResult.not_found("Campaign not found")
    return ActionResult.ok()
