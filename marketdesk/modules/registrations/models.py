"""
Registrations Models
====================

Queries over ``qas_registrations``. Rows are written by the signup funnel,
so everything here reads. Every function takes the Database as its first
argument.
"""

import logging

from marketdesk.core.database import Pagination, paginate, order_by_clause

logger = logging.getLogger(__name__)

REGISTRATION_SORT_COLUMNS = (
    'id', 'created_at', 'updated_at', 'first_name', 'last_name', 'email',
    'priority_level', 'engagement_pool', 'is_qualified', 'is_completed',
)


def _row_to_dict(row):
    if row is None:
        return None
    registration = dict(row)
    registration['is_qualified'] = bool(registration.get('is_qualified'))
    registration['is_completed'] = bool(registration.get('is_completed'))
    return registration


def _build_filters(filters):
    filters = filters or {}
    conditions = []
    params = []

    search = (filters.get('search') or '').strip()
    if search:
        conditions.append("(first_name LIKE ? OR last_name LIKE ? OR email LIKE ?)")
        params.extend([f'%{search}%'] * 3)

    if filters.get('priority_level') is not None:
        conditions.append("priority_level = ?")
        params.append(filters['priority_level'])

    if filters.get('engagement_pool'):
        conditions.append("engagement_pool = ?")
        params.append(filters['engagement_pool'])

    for flag in ('is_qualified', 'is_completed'):
        if filters.get(flag) is not None:
            conditions.append(f"{flag} = ?")
            params.append(1 if filters[flag] else 0)

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return where, params


def list_registrations(db, filters=None, pagination=None):
    """Filtered, sorted page of registrations"""
    pagination = pagination or Pagination()
    where, params = _build_filters(filters)
    page = paginate(
        db,
        f"SELECT * FROM qas_registrations {where}",
        f"SELECT COUNT(*) FROM qas_registrations {where}",
        params,
        order_by_clause(pagination.sort_by, pagination.sort_order, REGISTRATION_SORT_COLUMNS),
        pagination,
    )
    page.data = [_row_to_dict(row) for row in page.data]
    return page


def get_registration(db, registration_id):
    row = db.query("SELECT * FROM qas_registrations WHERE id = ?", (registration_id,)).first()
    return _row_to_dict(row)


def get_filter_options(db):
    """Distinct engagement pools and priority levels present in the data"""
    pools = db.query("""
        SELECT DISTINCT engagement_pool FROM qas_registrations
        WHERE engagement_pool IS NOT NULL AND engagement_pool != ''
        ORDER BY engagement_pool
    """).rows
    priorities = db.query("""
        SELECT DISTINCT priority_level FROM qas_registrations
        WHERE priority_level IS NOT NULL
        ORDER BY priority_level
    """).rows
    return {
        'engagement_pools': [row['engagement_pool'] for row in pools],
        'priority_levels': [row['priority_level'] for row in priorities],
    }


def export_registrations(db, filters=None):
    """Every registration matching the filters, newest first"""
    where, params = _build_filters(filters)
    rows = db.query(
        f"SELECT * FROM qas_registrations {where} ORDER BY created_at DESC", params
    ).rows
    return [_row_to_dict(row) for row in rows]
