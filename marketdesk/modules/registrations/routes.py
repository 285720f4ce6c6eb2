"""
Registrations Routes
====================

JSON API for the registrations page. Every route requires the
'registrations' page permission.
"""

import logging
from datetime import datetime

from flask import request, jsonify, Response

from marketdesk.core.database import get_db, Pagination
from marketdesk.modules.access.guards import page_required
from . import registrations_bp
from .csv_io import export_registrations_csv
from .models import list_registrations, get_registration, get_filter_options, export_registrations

logger = logging.getLogger(__name__)

TRUE_VALUES = ('true', '1', 'yes')
FALSE_VALUES = ('false', '0', 'no')


def _db_log(level, message, details=None):
    """Log to the persistent DB logger"""
    try:
        from marketdesk.core import db_log
        db_log(level, 'registrations', message, details)
    except Exception as e:
        logger.debug(f"db_log unavailable: {e}")


def _flag(args, name):
    value = (args.get(name) or '').strip().lower()
    if not value:
        return None
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be true or false")


def _filters_from_args(args):
    """Filters from the query string; raises ValueError on a malformed value"""
    priority = (args.get('priority_level') or '').strip() or None
    if priority is not None:
        try:
            priority = int(priority)
        except ValueError:
            raise ValueError("priority_level must be an integer")
    return {
        'search': args.get('search'),
        'priority_level': priority,
        'engagement_pool': args.get('engagement_pool'),
        'is_qualified': _flag(args, 'is_qualified'),
        'is_completed': _flag(args, 'is_completed'),
    }


def _bad_request(e):
    return jsonify({'success': False, 'error': str(e)}), 400


def _server_error(message, e):
    logger.error(f"{message}: {e}")
    _db_log('error', message, {'error': str(e)})
    return jsonify({'success': False, 'error': message}), 500


@registrations_bp.route('', methods=['GET'])
@page_required('registrations')
def registrations_list():
    try:
        filters = _filters_from_args(request.args)
    except ValueError as e:
        return _bad_request(e)
    try:
        page = list_registrations(get_db(), filters, Pagination.from_args(request.args))
        return jsonify({'success': True, **page.to_dict()})
    except Exception as e:
        return _server_error('Failed to fetch registrations', e)


@registrations_bp.route('/filters', methods=['GET'])
@page_required('registrations')
def registrations_filter_options():
    try:
        return jsonify({'success': True, **get_filter_options(get_db())})
    except Exception as e:
        return _server_error('Failed to fetch filter options', e)


@registrations_bp.route('/export', methods=['GET'])
@page_required('registrations')
def registrations_export():
    try:
        filters = _filters_from_args(request.args)
    except ValueError as e:
        return _bad_request(e)
    try:
        registrations = export_registrations(get_db(), filters)
    except Exception as e:
        return _server_error('Failed to export registrations', e)

    filename = f"registrations-{datetime.now().strftime('%Y%m%d')}.csv"
    return Response(
        export_registrations_csv(registrations),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


@registrations_bp.route('/<registration_id>', methods=['GET'])
@page_required('registrations')
def registrations_detail(registration_id):
    try:
        registration = get_registration(get_db(), registration_id)
    except Exception as e:
        return _server_error('Failed to fetch registration', e)
    if not registration:
        return jsonify({'success': False, 'error': 'Registration not found'}), 404
    return jsonify({'success': True, 'registration': registration})
