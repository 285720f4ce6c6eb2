"""
Access Models
=============

Dashboard users, roles and page permissions.

Roles are ``super_admin``, ``admin`` and ``internal``; a user with no role
has not been provisioned yet and can see nothing. ``super_admin`` sees
every page and its permission set is never stored. The account matching
MAIN_ADMIN_EMAIL always keeps ``super_admin`` and stays active.

Admin-only actions take the acting Identity as their second argument and
are wrapped with ``@requires_super_admin``.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from functools import wraps
from typing import Optional

from marketdesk.core.config import get_config_value
from marketdesk.core.logging_service import LoggingService
from marketdesk.core.results import ActionResult, action

logger = logging.getLogger(__name__)

SUPER_ADMIN = 'super_admin'
ROLES = (SUPER_ADMIN, 'admin', 'internal')

ALL_DASHBOARD_PAGES = [
    'dashboard',
    'templates',
    'email-sender',
    'registrations',
    'contacts',
    'campaigns',
    'user-management',
]

ROUTE_PAGE_MAP = {
    '/dashboard': 'dashboard',
    '/dashboard/templates': 'templates',
    '/dashboard/email-sender': 'email-sender',
    '/dashboard/registrations': 'registrations',
    '/dashboard/contacts': 'contacts',
    '/dashboard/campaigns': 'campaigns',
    '/dashboard/admin/users': 'user-management',
}

_LOCALE_PREFIX = re.compile(r'^/[a-z]{2}(?=/|$)')


@dataclass(frozen=True)
class Identity:
    """The authenticated caller as reported by the identity provider"""
    id: str
    email: Optional[str] = None


def _db_log(level, message, details=None):
    """Log to the persistent DB logger"""
    try:
        from marketdesk.core import db_log
        db_log(level, 'access', message, details)
    except Exception as e:
        logger.debug(f"db_log unavailable: {e}")


def _row_to_user(row):
    if row is None:
        return None
    user = dict(row)
    user['is_active'] = bool(user.get('is_active'))
    return user


def main_admin_email():
    email = get_config_value('MAIN_ADMIN_EMAIL')
    return email.strip().lower() if email else None


def is_main_admin_email(email):
    main = main_admin_email()
    return bool(main and email and email.strip().lower() == main)


# ===================
# ROUTE HELPERS
# ===================

def page_from_route(pathname):
    """Dashboard page owning a path; nested paths resolve to their closest mapped parent"""
    clean_path = _LOCALE_PREFIX.sub('', pathname or '')

    if clean_path in ROUTE_PAGE_MAP:
        return ROUTE_PAGE_MAP[clean_path]

    parts = [p for p in clean_path.split('/') if p]
    while parts:
        test_path = '/' + '/'.join(parts)
        if test_path in ROUTE_PAGE_MAP:
            return ROUTE_PAGE_MAP[test_path]
        parts.pop()
    return None


def get_first_allowed_page(allowed_pages):
    """Landing route for a user; unprovisioned users wait for a role"""
    if not allowed_pages:
        return '/waiting-for-role'
    for route, page in ROUTE_PAGE_MAP.items():
        if page == allowed_pages[0]:
            return route
    return '/dashboard'


# ===================
# AUTHORIZATION
# ===================

def get_current_user(db, identity):
    if identity is None:
        return None
    row = db.query("SELECT * FROM app_users WHERE auth_user_id = ?", (identity.id,)).first()
    return _row_to_user(row)


def verify_super_admin(db, identity):
    """True only for an active app user whose role is super_admin"""
    user = get_current_user(db, identity)
    return bool(user and user['is_active'] and user['role'] == SUPER_ADMIN)


def requires_super_admin(message):
    """Reject the wrapped action unless its actor (second argument) is a super admin"""
    def decorator(f):
        @wraps(f)
        def wrapper(db, actor, *args, **kwargs):
            if not verify_super_admin(db, actor):
                LoggingService.warning('security', f'Unauthorized call to {f.__name__}', {
                    'actor': actor.id if actor else None,
                })
                return ActionResult.unauthorized(message)
            return f(db, actor, *args, **kwargs)
        return wrapper
    return decorator


def get_role_permissions(db, role):
    """Pages a role may view, in menu order"""
    if role == SUPER_ADMIN:
        return list(ALL_DASHBOARD_PAGES)
    if not role:
        return []
    rows = db.query("SELECT page FROM role_permissions WHERE role = ?", (role,)).rows
    stored = {row['page'] for row in rows}
    return [page for page in ALL_DASHBOARD_PAGES if page in stored]


def get_allowed_pages(db, identity):
    """Pages the caller may view; unknown, inactive or role-less users get none"""
    user = get_current_user(db, identity)
    if not user or not user['is_active'] or not user['role']:
        return []
    return get_role_permissions(db, user['role'])


# ===================
# USER MANAGEMENT
# ===================

@action('access', 'Failed to load users')
@requires_super_admin("Unauthorized: Only super_admin can view all users")
def get_all_users(db, actor):
    rows = db.query("SELECT * FROM app_users ORDER BY created_at DESC").rows
    return ActionResult.ok(users=[_row_to_user(row) for row in rows])


@action('access', 'Failed to load user')
@requires_super_admin("Unauthorized: Only super_admin can view user details")
def get_user(db, actor, user_id):
    user = _row_to_user(db.query("SELECT * FROM app_users WHERE id = ?", (user_id,)).first())
    if not user:
        return ActionResult.not_found("User not found")
    return ActionResult.ok(user=user)


@action('access', 'Failed to assign role')
@requires_super_admin("Unauthorized: Only super_admin can assign roles")
def assign_role(db, actor, user_id, role):
    """Set a user's role; the main admin account can only ever hold super_admin"""
    role = role or None
    if role is not None and role not in ROLES:
        return ActionResult.validation("Invalid role")

    target = db.query("SELECT email FROM app_users WHERE id = ?", (user_id,)).first()
    if not target:
        return ActionResult.not_found("User not found")

    if is_main_admin_email(target['email']) and role != SUPER_ADMIN:
        return ActionResult.state("Cannot change role of the main super_admin account")

    db.query(
        "UPDATE app_users SET role = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
        (role, user_id),
    )
    LoggingService.log_user_action('access', f'assign role {role}', actor.id, {'user_id': user_id})
    return ActionResult.ok(message="Role assigned successfully")


@action('access', 'Failed to change user status')
@requires_super_admin("Unauthorized: Only super_admin can change user status")
def toggle_user_active(db, actor, user_id, is_active):
    if not isinstance(is_active, bool):
        return ActionResult.validation("is_active must be a boolean")
    target = db.query("SELECT email FROM app_users WHERE id = ?", (user_id,)).first()
    if not target:
        return ActionResult.not_found("User not found")

    if is_main_admin_email(target['email']) and not is_active:
        return ActionResult.state("Cannot deactivate the main super_admin account")

    db.query(
        "UPDATE app_users SET is_active = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
        (1 if is_active else 0, user_id),
    )
    LoggingService.log_user_action(
        'access', 'activate user' if is_active else 'deactivate user', actor.id, {'user_id': user_id}
    )
    return ActionResult.ok(message="User activated" if is_active else "User deactivated")


# ===================
# ROLE PERMISSIONS
# ===================

@action('access', 'Failed to load role permissions')
@requires_super_admin("Unauthorized: Only super_admin can view role permissions")
def get_all_role_permissions(db, actor):
    permissions = {role: [] for role in ROLES}
    permissions[SUPER_ADMIN] = list(ALL_DASHBOARD_PAGES)

    rows = db.query("SELECT role, page FROM role_permissions ORDER BY role, page").rows
    for row in rows:
        if row['role'] in permissions and row['role'] != SUPER_ADMIN:
            permissions[row['role']].append(row['page'])
    return ActionResult.ok(permissions=permissions)


@action('access', 'Failed to update permissions')
@requires_super_admin("Unauthorized: Only super_admin can update permissions")
def update_role_permissions(db, actor, role, pages):
    """Replace a role's page set"""
    if role == SUPER_ADMIN:
        return ActionResult.validation("Cannot modify super_admin permissions")
    if role not in ROLES:
        return ActionResult.validation("Invalid role")

    unique_pages = []
    for page in pages or []:
        if page not in ALL_DASHBOARD_PAGES:
            return ActionResult.validation(f"Invalid page: {page}")
        if page not in unique_pages:
            unique_pages.append(page)

    with db.transaction() as tx:
        tx.query("DELETE FROM role_permissions WHERE role = ?", (role,))
        if unique_pages:
            values = ', '.join('(?, ?)' for _ in unique_pages)
            params = []
            for page in unique_pages:
                params.extend([role, page])
            tx.query(f"INSERT INTO role_permissions (role, page) VALUES {values}", params)

    LoggingService.log_user_action('access', f'update permissions for {role}', actor.id, {'pages': unique_pages})
    return ActionResult.ok(message="Permissions updated successfully")


# ===================
# LOGIN SYNC
# ===================

@action('access', 'Failed to sync user')
def sync_app_user(db, auth_user_id, email, full_name=None, avatar_url=None):
    """
    Create or refresh the app user behind a provider login.

    New users get no role, except the main admin who is provisioned as
    super_admin. Existing users keep their stored avatar when the provider
    sends none.
    """
    if not auth_user_id or not email:
        return ActionResult.validation("Identity provider returned no user")

    email = email.strip().lower()
    is_main = is_main_admin_email(email)

    row = db.query("""
        INSERT INTO app_users (id, auth_user_id, email, full_name, avatar_url, role, is_active, last_login_at)
        VALUES (?, ?, ?, ?, ?, ?, 1, CURRENT_TIMESTAMP)
        ON CONFLICT (auth_user_id) DO UPDATE SET
            last_login_at = CURRENT_TIMESTAMP,
            avatar_url = COALESCE(excluded.avatar_url, app_users.avatar_url),
            role = CASE WHEN ? THEN 'super_admin' ELSE app_users.role END,
            is_active = CASE WHEN ? THEN 1 ELSE app_users.is_active END
        RETURNING *
    """, (
        str(uuid.uuid4()), auth_user_id, email, full_name, avatar_url,
        SUPER_ADMIN if is_main else None,
        1 if is_main else 0,
        1 if is_main else 0,
    )).first()

    _db_log('info', f'User signed in: {email}', {'auth_user_id': auth_user_id})
    return ActionResult.ok(user=_row_to_user(row))

