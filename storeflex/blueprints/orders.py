"""Orders blueprint - pending sales/purchase orders and their processing."""
from flask import Blueprint, request, g, jsonify

from storeflex.database import get_session
from storeflex.middleware import require_login, require_tenant
from storeflex.services.order_service import (
    create_purchase_order, create_sales_order, fetch_pending_orders, order_to_dict, process_order
)

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


@orders_bp.route('/pending', methods=['GET'])
@require_login
@require_tenant
def pending():
    session = get_session()
    return jsonify([order_to_dict(o) for o in fetch_pending_orders(session, g.tenant_id)])


@orders_bp.route('/sales', methods=['POST'])
@require_login
@require_tenant
def create_sales():
    """Body: customer_id (code), items [{product_id, quantity, price_per_unit}]."""
    session = get_session()
    order = create_sales_order(session, g.tenant_id, request.get_json(silent=True) or {}, user_id=g.user.id)
    return jsonify(order_to_dict(order)), 201


@orders_bp.route('/purchases', methods=['POST'])
@require_login
@require_tenant
def create_purchases():
    """Body: supplier_id (code), items [{product_id, quantity, cost_price}]."""
    session = get_session()
    order = create_purchase_order(session, g.tenant_id, request.get_json(silent=True) or {}, user_id=g.user.id)
    return jsonify(order_to_dict(order)), 201


@orders_bp.route('/<code>/process', methods=['POST'])
@require_login
@require_tenant
def process(code):
    """Book the order as a sale or purchase. Optional body: payment details."""
    session = get_session()
    order = process_order(session, g.tenant_id, code, payment=request.get_json(silent=True) or None,
                          user_id=g.user.id)
    return jsonify(order_to_dict(order))
