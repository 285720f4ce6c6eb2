import logging

from flask import request, jsonify

from marketdesk.core.database import get_db
from marketdesk.core.results import respond
from marketdesk.modules.access.guards import page_required
from . import templates_bp
from .models import list_templates, get_template, create_template, update_template, delete_template

logger = logging.getLogger(__name__)


@templates_bp.route('', methods=['GET'])
@page_required('templates', 'email-sender')
def templates_list():
    try:
        templates = list_templates(get_db(), request.args.get('search'))
        return jsonify({'success': True, 'templates': templates})
    except Exception as e:
        logger.error(f"Error fetching templates: {e}")
        return jsonify({'success': False, 'error': 'Failed to fetch templates'}), 500


@templates_bp.route('', methods=['POST'])
@page_required('templates')
def templates_create():
    data = request.get_json(silent=True) or {}
    return respond(create_template(get_db(), data), success_status=201)


@templates_bp.route('/<code>', methods=['GET'])
@page_required('templates', 'email-sender')
def templates_detail(code):
    template = get_template(get_db(), code)
    if not template:
        return jsonify({'success': False, 'error': 'Template not found'}), 404
    return jsonify({'success': True, 'template': template})


@templates_bp.route('/<code>', methods=['PUT'])
@page_required('templates')
def templates_update(code):
    data = request.get_json(silent=True) or {}
    return respond(update_template(get_db(), code, data))


@templates_bp.route('/<code>', methods=['DELETE'])
@page_required('templates')
def templates_delete(code):
    return respond(delete_template(get_db(), code))
