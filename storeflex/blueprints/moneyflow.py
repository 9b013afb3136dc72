"""Moneyflow blueprint - outstanding credit, pending checks and settlements."""
from flask import Blueprint, request, g, jsonify

from storeflex.database import get_session
from storeflex.exceptions import ValidationError
from storeflex.middleware import require_login, require_tenant
from storeflex.services.activity_service import activity_to_dict, fetch_financial_activities
from storeflex.services.moneyflow_service import fetch_moneyflow_data, settle_payment
from storeflex.utils.money import jsonable

moneyflow_bp = Blueprint('moneyflow', __name__, url_prefix='/api/moneyflow')


@moneyflow_bp.route('', methods=['GET'])
@require_login
@require_tenant
def overview():
    session = get_session()
    return jsonify(jsonable(fetch_moneyflow_data(session, g.tenant_id)))


@moneyflow_bp.route('/settle', methods=['POST'])
@require_login
@require_tenant
def settle():
    """
    Settle one moneyflow entry.

    Body: entry (as listed by GET /api/moneyflow), status ('paid' | 'rejected'),
    amount (optional, credit entries only).
    """
    session = get_session()
    data = request.get_json(silent=True) or {}
    entry = data.get('entry')
    if not isinstance(entry, dict):
        raise ValidationError('entry is required')

    result = settle_payment(
        session, g.tenant_id, entry, data.get('status'), amount=data.get('amount'), user_id=g.user.id
    )
    return jsonify(jsonable(result))


@moneyflow_bp.route('/activities', methods=['GET'])
@require_login
@require_tenant
def activities():
    session = get_session()
    limit = request.args.get('limit', type=int)
    return jsonify([activity_to_dict(a) for a in fetch_financial_activities(session, g.tenant_id, limit=limit)])
