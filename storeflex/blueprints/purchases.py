"""Purchases blueprint - stock purchases and returns to suppliers."""
from flask import Blueprint, request, g, jsonify

from storeflex.database import get_session
from storeflex.middleware import require_login, require_tenant
from storeflex.services.purchase_service import create_purchase, get_purchase, list_purchases, purchase_to_dict
from storeflex.services.return_service import (
    create_purchase_return, list_purchase_returns, purchase_return_to_dict
)

purchases_bp = Blueprint('purchases', __name__, url_prefix='/api/purchases')


@purchases_bp.route('', methods=['POST'])
@require_login
@require_tenant
def create():
    """Body: supplier_id (code), items, payment_method, amount_paid, check_number and bill breakdown."""
    session = get_session()
    purchase = create_purchase(session, g.tenant_id, request.get_json(silent=True) or {}, user_id=g.user.id)
    return jsonify(purchase_to_dict(purchase)), 201


@purchases_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_all():
    session = get_session()
    purchases = list_purchases(
        session,
        g.tenant_id,
        supplier_code=request.args.get('supplier_id') or None,
        limit=request.args.get('limit', type=int)
    )
    return jsonify([purchase_to_dict(p, include_items=False) for p in purchases])


@purchases_bp.route('/<code>', methods=['GET'])
@require_login
@require_tenant
def detail(code):
    session = get_session()
    return jsonify(purchase_to_dict(get_purchase(session, g.tenant_id, code)))


@purchases_bp.route('/<code>/returns', methods=['GET'])
@require_login
@require_tenant
def returns(code):
    session = get_session()
    get_purchase(session, g.tenant_id, code)
    return jsonify([
        purchase_return_to_dict(r) for r in list_purchase_returns(session, g.tenant_id, purchase_code=code)
    ])


@purchases_bp.route('/<code>/returns', methods=['POST'])
@require_login
@require_tenant
def create_return(code):
    """Body: items [{product_id, return_quantity}], reason."""
    session = get_session()
    data = request.get_json(silent=True) or {}
    purchase_return = create_purchase_return(
        session, g.tenant_id, code, data.get('items'), reason=data.get('reason'), user_id=g.user.id
    )
    return jsonify(purchase_return_to_dict(purchase_return)), 201
