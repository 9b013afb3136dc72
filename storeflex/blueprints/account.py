"""Account blueprint - store profile and tenant users."""
from flask import Blueprint, request, g, jsonify, current_app

from storeflex.database import get_session
from storeflex.middleware import require_login, require_tenant, require_role
from storeflex.services.account_service import (
    get_store_profile, list_users, manage_user, update_store_profile, user_to_dict
)

account_bp = Blueprint('account', __name__, url_prefix='/api/account')


@account_bp.route('/profile', methods=['GET'])
@require_login
@require_tenant
def profile():
    session = get_session()
    return jsonify(get_store_profile(session, g.tenant_id, current_app.config.get('DEFAULT_BUSINESS_NAME')))


@account_bp.route('/profile', methods=['PUT'])
@require_login
@require_tenant
@require_role('ADMIN')
def update_profile():
    session = get_session()
    return jsonify(update_store_profile(session, g.tenant_id, request.get_json(silent=True) or {}))


@account_bp.route('/users', methods=['GET'])
@require_login
@require_tenant
@require_role('ADMIN')
def users():
    session = get_session()
    return jsonify([user_to_dict(m) for m in list_users(session, g.tenant_id)])


@account_bp.route('/users', methods=['POST'])
@require_login
@require_tenant
@require_role('ADMIN')
def create_user():
    session = get_session()
    membership = manage_user(session, g.tenant_id, request.get_json(silent=True) or {})
    return jsonify(user_to_dict(membership)), 201


@account_bp.route('/users/<code>', methods=['PUT'])
@require_login
@require_tenant
@require_role('ADMIN')
def update_user(code):
    session = get_session()
    membership = manage_user(session, g.tenant_id, request.get_json(silent=True) or {}, user_code=code)
    return jsonify(user_to_dict(membership))
