"""Products blueprint - catalog CRUD and per-product stock history."""
from flask import Blueprint, request, g, jsonify, current_app

from storeflex.database import get_session
from storeflex.middleware import require_login, require_tenant
from storeflex.services.product_service import (
    create_product, delete_product, get_product, list_products, product_to_dict,
    products_for_select, update_product
)
from storeflex.services.report_service import fetch_product_history
from storeflex.utils.money import jsonable

products_bp = Blueprint('products', __name__, url_prefix='/api/products')


@products_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_all():
    """List active products. Query params: q (search), low_stock=1."""
    session = get_session()
    products = list_products(
        session,
        g.tenant_id,
        search=request.args.get('q', '').strip() or None,
        low_stock_only=request.args.get('low_stock') == '1'
    )
    return jsonify([product_to_dict(p) for p in products])


@products_bp.route('/select', methods=['GET'])
@require_login
@require_tenant
def select():
    """Compact list for the sale and purchase carts."""
    session = get_session()
    return jsonify(products_for_select(session, g.tenant_id))


@products_bp.route('', methods=['POST'])
@require_login
@require_tenant
def create():
    session = get_session()
    product = create_product(
        session,
        g.tenant_id,
        request.get_json(silent=True) or {},
        default_threshold=current_app.config.get('LOW_STOCK_THRESHOLD', 10)
    )
    return jsonify(product_to_dict(product)), 201


@products_bp.route('/<code>', methods=['GET'])
@require_login
@require_tenant
def detail(code):
    session = get_session()
    return jsonify(product_to_dict(get_product(session, g.tenant_id, code)))


@products_bp.route('/<code>', methods=['PUT', 'PATCH'])
@require_login
@require_tenant
def update(code):
    session = get_session()
    product = update_product(session, g.tenant_id, code, request.get_json(silent=True) or {})
    return jsonify(product_to_dict(product))


@products_bp.route('/<code>', methods=['DELETE'])
@require_login
@require_tenant
def delete(code):
    session = get_session()
    delete_product(session, g.tenant_id, code)
    return jsonify({'status': 'ok'})


@products_bp.route('/<code>/history', methods=['GET'])
@require_login
@require_tenant
def history(code):
    session = get_session()
    return jsonify(jsonable(fetch_product_history(session, g.tenant_id, code)))
