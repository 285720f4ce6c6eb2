import logging

from flask import request, jsonify

from marketdesk.core.database import get_db
from marketdesk.core.results import respond
from marketdesk.modules.access.guards import page_required
from marketdesk.modules.email_templates.models import save_custom_template
from . import email_bp
from .email_service import email_service

logger = logging.getLogger(__name__)

PREVIEW_SAMPLE_EMAIL = 'recipient@example.com'


def _form_from_json(data):
    return {
        'from': data.get('from'),
        'to': data.get('to'),
        'names': data.get('names'),
        'cc': data.get('cc'),
        'subject': data.get('subject'),
        'html_content': data.get('html_content'),
        'plain_text': data.get('plain_text'),
    }


@email_bp.route('/send', methods=['POST'])
@page_required('email-sender')
def email_send():
    """Send the email-sender form; optionally keep the content as a template"""
    data = request.get_json(silent=True) or {}
    form = _form_from_json(data)
    result = email_service.send_emails(form)

    if result.success and data.get('save_template'):
        saved = save_custom_template(
            get_db(), form['subject'], form['html_content'], data.get('template_description'),
        )
        if saved.success:
            result.data['template_code'] = saved.get('template_code')
            result.data['template_already_exists'] = saved.get('already_exists')
        else:
            # The emails are already out; report the template failure alongside
            logger.warning(f"Sent emails but could not save template: {saved.error}")
            result.data['template_error'] = saved.error

    return respond(result)


@email_bp.route('/preview', methods=['POST'])
@page_required('email-sender')
def email_preview():
    data = request.get_json(silent=True) or {}
    preview = email_service.preview_email(
        data.get('html_content'),
        data.get('subject'),
        data.get('sample_email') or PREVIEW_SAMPLE_EMAIL,
        data.get('sample_name') or None,
    )
    return jsonify({'success': True, **preview})
