"""
Dashboard Routes
================

All endpoints need the 'dashboard' page permission and only read.
"""

import logging

from flask import request, jsonify

from marketdesk.core.database import get_db
from marketdesk.modules.access.guards import page_required
from . import dashboard_bp
from .stats import (
    get_dashboard_stats, get_registration_trends, get_priority_distribution,
    get_pool_breakdown, get_recent_activities, get_email_action_stats,
    get_marketing_overview,
)

logger = logging.getLogger(__name__)

MAX_TREND_DAYS = 365
MAX_ACTIVITY_LIMIT = 100


def _int_arg(name, default, maximum):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        value = default
    return min(max(1, value), maximum)


def _fetch(key, message, func, *args):
    try:
        return jsonify({'success': True, key: func(get_db(), *args)})
    except Exception as e:
        logger.error(f"{message}: {e}")
        return jsonify({'success': False, 'error': message}), 500


@dashboard_bp.route('/stats', methods=['GET'])
@page_required('dashboard')
def dashboard_stats():
    return _fetch('stats', 'Failed to fetch dashboard stats', get_dashboard_stats)


@dashboard_bp.route('/trends', methods=['GET'])
@page_required('dashboard')
def dashboard_trends():
    days = _int_arg('days', 30, MAX_TREND_DAYS)
    return _fetch('trends', 'Failed to fetch registration trends', get_registration_trends, days)


@dashboard_bp.route('/priorities', methods=['GET'])
@page_required('dashboard')
def dashboard_priorities():
    return _fetch('priorities', 'Failed to fetch priority distribution', get_priority_distribution)


@dashboard_bp.route('/pools', methods=['GET'])
@page_required('dashboard')
def dashboard_pools():
    return _fetch('pools', 'Failed to fetch pool breakdown', get_pool_breakdown)


@dashboard_bp.route('/activities', methods=['GET'])
@page_required('dashboard')
def dashboard_activities():
    limit = _int_arg('limit', 10, MAX_ACTIVITY_LIMIT)
    return _fetch('activities', 'Failed to fetch recent activities', get_recent_activities, limit)


@dashboard_bp.route('/email-actions', methods=['GET'])
@page_required('dashboard')
def dashboard_email_actions():
    return _fetch('email_actions', 'Failed to fetch email action stats', get_email_action_stats)


@dashboard_bp.route('/marketing', methods=['GET'])
@page_required('dashboard')
def dashboard_marketing():
    return _fetch('overview', 'Failed to fetch marketing overview', get_marketing_overview)
