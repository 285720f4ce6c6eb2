"""
Contacts Routes
===============

JSON API for the contacts page plus the public unsubscribe endpoint.
Everything under /api/contacts requires the 'contacts' page permission.
"""

import logging
from datetime import datetime

from flask import request, jsonify, Response

from marketdesk.core.database import get_db, Pagination
from marketdesk.core.results import respond
from marketdesk.modules.access.guards import page_required
from . import contacts_bp, unsubscribe_bp
from .csv_io import parse_contacts_csv, export_contacts_csv
from .models import (
    list_contacts, export_contacts, get_contact, get_contact_history, get_all_tags,
    get_contact_stats, create_contact, update_contact, delete_contact, import_contacts,
    check_duplicates, add_tags, remove_tags, update_status, process_unsubscribe,
    normalize_tags, unsubscribe_url,
)

logger = logging.getLogger(__name__)


def _db_log(level, message, details=None):
    """Log to the persistent DB logger"""
    try:
        from marketdesk.core import db_log
        db_log(level, 'contacts', message, details)
    except Exception as e:
        logger.debug(f"db_log unavailable: {e}")


def _filters_from_args(args):
    tags = []
    for value in args.getlist('tags'):
        tags.extend(normalize_tags(value))
    return {
        'search': args.get('search'),
        'status': args.get('status'),
        'engagement_level': args.get('engagement_level'),
        'tags': tags,
    }


def _server_error(message, e):
    logger.error(f"{message}: {e}")
    _db_log('error', message, {'error': str(e)})
    return jsonify({'success': False, 'error': message}), 500


# ===================
# LIST / CRUD
# ===================

@contacts_bp.route('', methods=['GET'])
@page_required('contacts')
def contacts_list():
    try:
        page = list_contacts(
            get_db(),
            _filters_from_args(request.args),
            Pagination.from_args(request.args),
        )
        return jsonify({'success': True, **page.to_dict()})
    except Exception as e:
        return _server_error('Failed to fetch contacts', e)


@contacts_bp.route('', methods=['POST'])
@page_required('contacts')
def contacts_create():
    data = request.get_json(silent=True) or {}
    return respond(create_contact(get_db(), data), success_status=201)


@contacts_bp.route('/<contact_id>', methods=['GET'])
@page_required('contacts')
def contacts_detail(contact_id):
    try:
        contact = get_contact(get_db(), contact_id)
    except Exception as e:
        return _server_error('Failed to fetch contact', e)
    if not contact:
        return jsonify({'success': False, 'error': 'Contact not found'}), 404
    contact['unsubscribe_url'] = unsubscribe_url(contact['unsubscribe_token'])
    return jsonify({'success': True, 'contact': contact})


@contacts_bp.route('/<contact_id>', methods=['PUT', 'PATCH'])
@page_required('contacts')
def contacts_update(contact_id):
    data = request.get_json(silent=True) or {}
    return respond(update_contact(get_db(), contact_id, data))


@contacts_bp.route('/<contact_id>', methods=['DELETE'])
@page_required('contacts')
def contacts_delete(contact_id):
    return respond(delete_contact(get_db(), contact_id))


@contacts_bp.route('/<contact_id>/history', methods=['GET'])
@page_required('contacts')
def contacts_history(contact_id):
    try:
        return jsonify({'success': True, 'events': get_contact_history(get_db(), contact_id)})
    except Exception as e:
        return _server_error('Failed to fetch contact history', e)


@contacts_bp.route('/tags', methods=['GET'])
@page_required('contacts')
def contacts_tags():
    try:
        return jsonify({'success': True, 'tags': get_all_tags(get_db())})
    except Exception as e:
        return _server_error('Failed to fetch tags', e)


@contacts_bp.route('/stats', methods=['GET'])
@page_required('contacts')
def contacts_stats():
    try:
        return jsonify({'success': True, 'stats': get_contact_stats(get_db())})
    except Exception as e:
        return _server_error('Failed to fetch contact stats', e)


# ===================
# IMPORT / EXPORT
# ===================

@contacts_bp.route('/import', methods=['POST'])
@page_required('contacts')
def contacts_import():
    """Import JSON rows or an uploaded CSV file"""
    upload = request.files.get('file')
    if upload is not None:
        try:
            text = upload.read().decode('utf-8-sig')
        except UnicodeDecodeError:
            return jsonify({'success': False, 'error': 'CSV file must be UTF-8 encoded'}), 400
        rows = parse_contacts_csv(text)
        source = request.form.get('source') or 'csv_import'
    else:
        data = request.get_json(silent=True) or {}
        rows = data.get('rows')
        source = data.get('source') or 'csv_import'
        if not isinstance(rows, list):
            return jsonify({'success': False, 'error': 'rows must be a list'}), 400

    if not rows:
        return jsonify({'success': False, 'error': 'No rows to import'}), 400

    return respond(import_contacts(get_db(), rows, source))


@contacts_bp.route('/export', methods=['GET'])
@page_required('contacts')
def contacts_export():
    try:
        contacts = export_contacts(get_db(), _filters_from_args(request.args))
    except Exception as e:
        return _server_error('Failed to export contacts', e)

    filename = f"contacts-{datetime.now().strftime('%Y%m%d')}.csv"
    return Response(
        export_contacts_csv(contacts),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


@contacts_bp.route('/check-duplicates', methods=['POST'])
@page_required('contacts')
def contacts_check_duplicates():
    data = request.get_json(silent=True) or {}
    emails = data.get('emails')
    if not isinstance(emails, list):
        return jsonify({'success': False, 'error': 'emails must be a list'}), 400
    return respond(check_duplicates(get_db(), emails))


# ===================
# BULK
# ===================

@contacts_bp.route('/bulk/tags', methods=['POST'])
@page_required('contacts')
def contacts_bulk_tags():
    """Add or remove tags on many contacts ({'ids', 'tags', 'action': 'add'|'remove'})"""
    data = request.get_json(silent=True) or {}
    ids = data.get('ids') or []
    tags = data.get('tags') or []
    operation = data.get('action', 'add')

    if operation == 'add':
        return respond(add_tags(get_db(), ids, tags))
    if operation == 'remove':
        return respond(remove_tags(get_db(), ids, tags))
    return jsonify({'success': False, 'error': 'action must be add or remove'}), 400


@contacts_bp.route('/bulk/status', methods=['POST'])
@page_required('contacts')
def contacts_bulk_status():
    data = request.get_json(silent=True) or {}
    return respond(update_status(get_db(), data.get('ids') or [], data.get('status')))


# ===================
# PUBLIC
# ===================

@unsubscribe_bp.route('/<token>', methods=['GET', 'POST'])
def unsubscribe(token):
    """Unauthenticated unsubscribe link target"""
    result = process_unsubscribe(get_db(), token)
    if result.success:
        return jsonify({'success': True, 'message': 'You have been unsubscribed'})
    return respond(result)
