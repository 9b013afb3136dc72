"""Authentication blueprint - register, login, logout and store selection."""
import logging

from flask import Blueprint, request, session as flask_session, g, jsonify
from flask_wtf.csrf import generate_csrf

from storeflex.database import get_session
from storeflex.exceptions import UnauthorizedError, ValidationError
from storeflex.middleware import require_login
from storeflex.services.account_service import (
    authenticate, get_membership, get_user_tenants, register_store
)

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def _membership_to_dict(membership):
    return {
        'tenant_id': membership.tenant_id,
        'name': membership.tenant.name,
        'slug': membership.tenant.slug,
        'role': membership.role,
    }


def _user_payload(user, memberships):
    return {
        'user': {'id': user.id, 'email': user.email, 'full_name': user.full_name},
        'tenants': [_membership_to_dict(m) for m in memberships],
        'tenant_id': flask_session.get('tenant_id'),
    }


@auth_bp.route('/csrf-token', methods=['GET'])
def csrf_token():
    """Token for clients that post JSON with CSRF protection on."""
    return jsonify({'csrf_token': generate_csrf()})


@auth_bp.route('/register', methods=['POST'])
def register():
    """Create a store and its owner, then log the owner in."""
    db_session = get_session()
    data = request.get_json(silent=True) or {}

    user, tenant = register_store(db_session, data)

    flask_session.clear()
    flask_session['user_id'] = user.id
    flask_session['tenant_id'] = tenant.id
    flask_session.permanent = True

    return jsonify(_user_payload(user, get_user_tenants(db_session, user.id))), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    """Log in. With a single store it is selected right away."""
    db_session = get_session()
    data = request.get_json(silent=True) or {}

    user = authenticate(db_session, data.get('email'), data.get('password'))
    memberships = get_user_tenants(db_session, user.id)

    flask_session.clear()
    flask_session['user_id'] = user.id
    flask_session.permanent = True
    if len(memberships) == 1:
        flask_session['tenant_id'] = memberships[0].tenant_id

    logger.info(f"User {user.id} logged in ({len(memberships)} store(s))")
    return jsonify(_user_payload(user, memberships))


@auth_bp.route('/logout', methods=['POST'])
def logout():
    flask_session.clear()
    return jsonify({'status': 'ok'})


@auth_bp.route('/me', methods=['GET'])
@require_login
def me():
    db_session = get_session()
    return jsonify(_user_payload(g.user, get_user_tenants(db_session, g.user.id)))


@auth_bp.route('/select-tenant', methods=['POST'])
@require_login
def select_tenant():
    """Switch the active store."""
    db_session = get_session()
    data = request.get_json(silent=True) or {}
    try:
        tenant_id = int(data.get('tenant_id'))
    except (TypeError, ValueError):
        raise ValidationError('tenant_id is required')

    membership = get_membership(db_session, g.user.id, tenant_id)
    if not membership or not membership.tenant.active:
        raise UnauthorizedError('You do not have access to this store')

    flask_session['tenant_id'] = tenant_id
    return jsonify({'status': 'ok', 'tenant': _membership_to_dict(membership)})
