"""
Access Routes
=============

OAuth sign-in plus the user-management API.
Authorization for admin actions is enforced by the actions themselves;
these views only require a signed-in caller.
"""

import logging
from urllib.parse import quote

from authlib.integrations.base_client import OAuthError
from flask import request, jsonify, session, redirect, url_for

from marketdesk.core.database import get_db
from marketdesk.core.logging_service import LoggingService
from marketdesk.core.results import respond
from . import auth_bp, admin_bp
from .guards import get_current_identity, login_required_json, super_admin_required
from .models import (
    Identity, get_current_user, get_allowed_pages, get_first_allowed_page, sync_app_user,
    get_all_users, get_user, assign_role, toggle_user_active,
    get_all_role_permissions, update_role_permissions,
)
from .oauth import get_google_client

logger = logging.getLogger(__name__)


def _login_redirect(message):
    return redirect(f"/login?message={quote(message)}")


# ===================
# OAUTH
# ===================

@auth_bp.route('/login')
def login():
    """Start the Google OpenID flow"""
    client = get_google_client()
    if client is None:
        return jsonify({'success': False, 'error': 'OAuth login is not configured'}), 503
    redirect_uri = url_for('access_auth.callback', _external=True)
    return client.authorize_redirect(redirect_uri)


@auth_bp.route('/callback')
def callback():
    """Finish the OAuth flow, sync the app user and open a session"""
    client = get_google_client()
    if client is None:
        return jsonify({'success': False, 'error': 'OAuth login is not configured'}), 503

    try:
        token = client.authorize_access_token()
        userinfo = token.get('userinfo') or client.userinfo(token=token)
    except OAuthError as e:
        logger.error(f"OAuth callback error: {e}")
        LoggingService.log_security_event('OAuth callback failed', {'error': str(e)})
        return _login_redirect("Authentication failed. Please try again.")

    auth_user_id = userinfo.get('sub')
    email = (userinfo.get('email') or '').lower()
    if not auth_user_id or not email:
        return _login_redirect("Authentication failed. Please try again.")

    db = get_db()
    result = sync_app_user(
        db, auth_user_id, email,
        full_name=userinfo.get('name'),
        avatar_url=userinfo.get('picture'),
    )
    if not result.success:
        # Sign-in still succeeds; the user simply has no pages until provisioned
        logger.error(f"Error creating/updating app_user: {result.error}")

    session['auth_user_id'] = auth_user_id
    session['auth_email'] = email

    allowed = get_allowed_pages(db, Identity(id=auth_user_id, email=email))
    return redirect(get_first_allowed_page(allowed))


@auth_bp.route('/logout', methods=['GET', 'POST'])
def logout():
    session.pop('auth_user_id', None)
    session.pop('auth_email', None)
    return jsonify({'success': True})


@auth_bp.route('/me')
@login_required_json
def me():
    """Current user, allowed pages and landing route"""
    db = get_db()
    identity = get_current_identity()
    allowed = get_allowed_pages(db, identity)
    return jsonify({
        'success': True,
        'user': get_current_user(db, identity),
        'allowed_pages': allowed,
        'home': get_first_allowed_page(allowed),
    })


# ===================
# USER MANAGEMENT API
# ===================

@admin_bp.route('/users', methods=['GET'])
@login_required_json
def list_users():
    return respond(get_all_users(get_db(), get_current_identity()))


@admin_bp.route('/users/<user_id>', methods=['GET'])
@login_required_json
def user_detail(user_id):
    return respond(get_user(get_db(), get_current_identity(), user_id))


@admin_bp.route('/users/<user_id>/role', methods=['PUT', 'POST'])
@login_required_json
def change_role(user_id):
    data = request.get_json(silent=True) or {}
    return respond(assign_role(get_db(), get_current_identity(), user_id, data.get('role')))


@admin_bp.route('/users/<user_id>/active', methods=['PUT', 'POST'])
@login_required_json
def change_active(user_id):
    data = request.get_json(silent=True) or {}
    if 'is_active' not in data:
        return jsonify({'success': False, 'error': 'is_active is required'}), 400
    if not isinstance(data['is_active'], bool):
        return jsonify({'success': False, 'error': 'is_active must be a boolean'}), 400
    return respond(toggle_user_active(get_db(), get_current_identity(), user_id, data['is_active']))


@admin_bp.route('/permissions', methods=['GET'])
@login_required_json
def list_permissions():
    return respond(get_all_role_permissions(get_db(), get_current_identity()))


@admin_bp.route('/permissions', methods=['PUT', 'POST'])
@login_required_json
def save_permissions():
    data = request.get_json(silent=True) or {}
    pages = data.get('pages')
    if not isinstance(pages, list):
        return jsonify({'success': False, 'error': 'pages must be a list'}), 400
    return respond(update_role_permissions(get_db(), get_current_identity(), data.get('role'), pages))


@admin_bp.route('/logs', methods=['GET'])
@super_admin_required
def recent_logs():
    """Recent application log entries"""
    try:
        limit = min(500, max(1, int(request.args.get('limit', 100))))
    except ValueError:
        limit = 100
    logs = LoggingService.get_recent_logs(
        limit=limit,
        level=request.args.get('level'),
        source=request.args.get('source'),
    )
    return jsonify({'success': True, 'logs': logs})
