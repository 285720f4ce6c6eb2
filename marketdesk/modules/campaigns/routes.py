"""
Campaigns Routes
================

JSON API for the campaigns page. Every route needs the 'campaigns'
page permission.
"""

import logging

from flask import request, jsonify

from marketdesk.core.database import get_db, Pagination
from marketdesk.core.results import respond
from marketdesk.modules.access.guards import page_required, get_current_identity
from . import campaigns_bp
from .models import (
    list_campaigns, get_campaign, get_campaign_stats, get_campaign_recipients,
    get_campaign_options, create_campaign, update_campaign, delete_campaign,
    duplicate_campaign, start_campaign, pause_campaign, resume_campaign,
    complete_campaign, archive_campaign, preview_audience,
)

logger = logging.getLogger(__name__)

LIFECYCLE_ACTIONS = {
    'start': start_campaign,
    'pause': pause_campaign,
    'resume': resume_campaign,
    'complete': complete_campaign,
    'archive': archive_campaign,
}


def _server_error(message, e):
    logger.error(f"{message}: {e}")
    return jsonify({'success': False, 'error': message}), 500


@campaigns_bp.route('', methods=['GET'])
@page_required('campaigns')
def campaigns_list():
    filters = {
        'search': request.args.get('search'),
        'status': request.args.get('status'),
        'template_code': request.args.get('template_code'),
    }
    try:
        page = list_campaigns(get_db(), filters, Pagination.from_args(request.args))
        return jsonify({'success': True, **page.to_dict()})
    except Exception as e:
        return _server_error('Failed to fetch campaigns', e)


@campaigns_bp.route('', methods=['POST'])
@page_required('campaigns')
def campaigns_create():
    data = request.get_json(silent=True) or {}
    identity = get_current_identity()
    return respond(create_campaign(get_db(), data, created_by=identity.id), success_status=201)


@campaigns_bp.route('/options', methods=['GET'])
@page_required('campaigns')
def campaigns_options():
    try:
        return jsonify({'success': True, 'campaigns': get_campaign_options(get_db())})
    except Exception as e:
        return _server_error('Failed to fetch campaigns', e)


@campaigns_bp.route('/audience-preview', methods=['POST'])
@page_required('campaigns')
def campaigns_audience_preview():
    data = request.get_json(silent=True) or {}
    try:
        preview = preview_audience(get_db(), data.get('audience_filter') or data)
        return jsonify({'success': True, **preview})
    except Exception as e:
        return _server_error('Failed to preview audience', e)


@campaigns_bp.route('/<campaign_id>', methods=['GET'])
@page_required('campaigns')
def campaigns_detail(campaign_id):
    try:
        campaign = get_campaign(get_db(), campaign_id)
    except Exception as e:
        return _server_error('Failed to fetch campaign', e)
    if not campaign:
        return jsonify({'success': False, 'error': 'Campaign not found'}), 404
    return jsonify({'success': True, 'campaign': campaign})


@campaigns_bp.route('/<campaign_id>', methods=['PUT', 'PATCH'])
@page_required('campaigns')
def campaigns_update(campaign_id):
    data = request.get_json(silent=True) or {}
    return respond(update_campaign(get_db(), campaign_id, data))


@campaigns_bp.route('/<campaign_id>', methods=['DELETE'])
@page_required('campaigns')
def campaigns_delete(campaign_id):
    return respond(delete_campaign(get_db(), campaign_id))


@campaigns_bp.route('/<campaign_id>/duplicate', methods=['POST'])
@page_required('campaigns')
def campaigns_duplicate(campaign_id):
    return respond(duplicate_campaign(get_db(), campaign_id), success_status=201)


@campaigns_bp.route('/<campaign_id>/<lifecycle_action>', methods=['POST'])
@page_required('campaigns')
def campaigns_lifecycle(campaign_id, lifecycle_action):
    """start, pause, resume, complete or archive"""
    handler = LIFECYCLE_ACTIONS.get(lifecycle_action)
    if handler is None:
        return jsonify({'success': False, 'error': 'Unknown campaign action'}), 404
    return respond(handler(get_db(), campaign_id))


@campaigns_bp.route('/<campaign_id>/stats', methods=['GET'])
@page_required('campaigns')
def campaigns_stats(campaign_id):
    try:
        stats = get_campaign_stats(get_db(), campaign_id)
    except Exception as e:
        return _server_error('Failed to fetch campaign stats', e)
    if stats is None:
        return jsonify({'success': False, 'error': 'Campaign not found'}), 404
    return jsonify({'success': True, 'stats': stats})


@campaigns_bp.route('/<campaign_id>/recipients', methods=['GET'])
@page_required('campaigns')
def campaigns_recipients(campaign_id):
    try:
        page = get_campaign_recipients(get_db(), campaign_id, Pagination.from_args(request.args))
        return jsonify({'success': True, **page.to_dict()})
    except Exception as e:
        return _server_error('Failed to fetch campaign recipients', e)
