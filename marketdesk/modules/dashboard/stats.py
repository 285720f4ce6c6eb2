"""
Dashboard Statistics
====================

Read-only aggregates for the dashboard home page. Registration figures
come from qas_registrations, which is written by the registration
pipeline and never modified here.
"""

import logging
from datetime import date, datetime, timedelta

from marketdesk.modules.contacts.models import get_contact_stats

logger = logging.getLogger(__name__)

PRIORITY_COLORS = {
    1: 'emerald',
    2: 'blue',
    3: 'amber',
    4: 'orange',
    5: 'rose',
}

POOL_LABELS = {
    'Sales': 'Sales',
    'Consulting': 'Consulting',
    'Experience': 'Experience',
    'Nurture': 'Nurture',
    'Education': 'Education',
    'Giveaway': 'Giveaway',
}

_TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


def normalize_pool_name(pool_name):
    """'sALES' -> 'Sales'; unknown pools keep the capitalised form"""
    capitalized = pool_name[:1].upper() + pool_name[1:].lower()
    return POOL_LABELS.get(capitalized, capitalized)


def _month_start(day):
    return datetime(day.year, day.month, 1)


def _previous_month_start(day):
    if day.month == 1:
        return datetime(day.year - 1, 12, 1)
    return datetime(day.year, day.month - 1, 1)


def get_dashboard_stats(db, now=None):
    """Registration totals plus this month and last month counts"""
    now = now or datetime.now()
    this_month = _month_start(now).strftime(_TIMESTAMP_FORMAT)
    last_month = _previous_month_start(now).strftime(_TIMESTAMP_FORMAT)

    row = db.query("""
        SELECT
            COUNT(*) AS total,
            SUM(CASE WHEN is_qualified = 1 THEN 1 ELSE 0 END) AS qualified,
            SUM(CASE WHEN is_completed = 1 THEN 1 ELSE 0 END) AS completed,
            SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END) AS this_month,
            SUM(CASE WHEN created_at >= ? AND created_at < ?
                     THEN 1 ELSE 0 END) AS last_month,
            SUM(CASE WHEN is_qualified = 1 AND created_at >= ? AND created_at < ?
                     THEN 1 ELSE 0 END) AS qualified_last_month,
            SUM(CASE WHEN is_completed = 1 AND created_at >= ? AND created_at < ?
                     THEN 1 ELSE 0 END) AS completed_last_month
        FROM qas_registrations
    """, (this_month, last_month, this_month, last_month, this_month, last_month, this_month)).first() or {}

    return {
        'total_registrations': int(row.get('total') or 0),
        'qualified_count': int(row.get('qualified') or 0),
        'completed_count': int(row.get('completed') or 0),
        'this_month_count': int(row.get('this_month') or 0),
        'last_month_count': int(row.get('last_month') or 0),
        'qualified_last_month': int(row.get('qualified_last_month') or 0),
        'completed_last_month': int(row.get('completed_last_month') or 0),
    }


def get_registration_trends(db, days=30, today=None):
    """Daily registration counts for the last ``days`` days, missing days filled with 0"""
    today = today or date.today()
    days = max(1, int(days))
    start = today - timedelta(days=days - 1)

    rows = db.query("""
        SELECT date(created_at) AS day, COUNT(*) AS count
        FROM qas_registrations
        WHERE date(created_at) >= ? AND date(created_at) <= ?
        GROUP BY date(created_at)
    """, (start.isoformat(), today.isoformat())).rows
    counts = {row['day']: int(row['count']) for row in rows}

    trend = []
    for offset in range(days):
        day = (start + timedelta(days=offset)).isoformat()
        trend.append({'date': day, 'registrations': counts.get(day, 0)})
    return trend


def get_priority_distribution(db):
    rows = db.query("""
        SELECT priority_level, COUNT(*) AS count
        FROM qas_registrations
        WHERE priority_level IS NOT NULL
        GROUP BY priority_level
        ORDER BY priority_level ASC
    """).rows
    return [
        {
            'name': f"P{row['priority_level']}",
            'value': int(row['count']),
            'color': PRIORITY_COLORS.get(row['priority_level'], 'gray'),
        }
        for row in rows
    ]


def get_pool_breakdown(db):
    """Registrations per engagement pool, largest first"""
    rows = db.query("""
        SELECT engagement_pool, COUNT(*) AS count
        FROM qas_registrations
        WHERE engagement_pool IS NOT NULL AND engagement_pool != ''
        GROUP BY engagement_pool
        ORDER BY count DESC
    """).rows
    # Spellings that normalise to the same label are merged
    totals = {}
    for row in rows:
        name = normalize_pool_name(row['engagement_pool'])
        totals[name] = totals.get(name, 0) + int(row['count'])
    return [
        {'name': name, 'value': value}
        for name, value in sorted(totals.items(), key=lambda item: -item[1])
    ]


def _activity_type(row):
    if row['is_completed']:
        return 'completed'
    if row['is_qualified']:
        return 'qualified'
    return 'registration'


def get_recent_activities(db, limit=10):
    """Most recently updated registrations, newest first"""
    rows = db.query("""
        SELECT id, first_name, last_name, email, is_qualified, is_completed,
               submission_type, created_at, updated_at, last_action,
               last_email_sent_code, next_email_date
        FROM qas_registrations
        ORDER BY updated_at DESC
        LIMIT ?
    """, (int(limit),)).rows

    activities = []
    for row in rows:
        name = ' '.join(part for part in (row['first_name'], row['last_name']) if part)
        activities.append({
            'id': row['id'],
            'name': name,
            'email': row['email'],
            'submission_type': 'partial' if row['submission_type'] == 'partial' else 'completed',
            'timestamp': row['updated_at'],
            'type': _activity_type(row),
            'last_action': row['last_action'],
            'last_email_sent_code': row['last_email_sent_code'],
            'next_email_date': row['next_email_date'],
        })
    return activities


def _percent(count, total):
    # Half rounds up: 2.5% -> 3
    if not total:
        return 0
    return int(count * 100 / total + 0.5)


def get_email_action_stats(db):
    """Registrations per last email action, with whole-number percentages"""
    rows = db.query("""
        SELECT COALESCE(last_action, 'None') AS action, COUNT(*) AS count
        FROM qas_registrations
        GROUP BY COALESCE(last_action, 'None')
        ORDER BY count DESC
    """).rows
    total = sum(int(row['count']) for row in rows)
    return [
        {
            'action': row['action'],
            'count': int(row['count']),
            'percentage': _percent(int(row['count']), total),
        }
        for row in rows
    ]


def get_marketing_overview(db):
    """Contact totals by status and campaign counts by status"""
    rows = db.query(
        "SELECT status, COUNT(*) AS count FROM marketing_campaigns GROUP BY status"
    ).rows
    campaigns = {row['status']: int(row['count']) for row in rows}
    return {
        'contacts': get_contact_stats(db),
        'campaigns': {
            'total': sum(campaigns.values()),
            'by_status': campaigns,
        },
    }
