"""
AI blueprint - price suggestions, barcode lookup and the business assistant.

Every endpoint is advisory: nothing here writes to the ledger.
"""
from flask import Blueprint, request, g, jsonify

from storeflex.database import get_session
from storeflex.middleware import require_login, require_tenant
from storeflex.services.ai_service import GeminiClient, build_assistant_context
from storeflex.services.product_service import get_product
from storeflex.services.report_service import fetch_inventory_records

ai_bp = Blueprint('ai', __name__, url_prefix='/api/ai')


@ai_bp.route('/suggest-price', methods=['POST'])
@require_login
@require_tenant
def suggest_price():
    """
    Body: product_id (code) or name/category/cost_price/selling_price for a new product.
    """
    session = get_session()
    data = request.get_json(silent=True) or {}
    client = GeminiClient()

    product_code = data.get('product_id')
    if product_code:
        product = get_product(session, g.tenant_id, product_code)
        history = fetch_inventory_records(session, g.tenant_id, {'product_id': product.code, 'type': 'sale'})
        result = client.suggest_price(
            product.name, product.category, product.cost_price, product.selling_price,
            sales_history=[
                {'date': r['date'], 'quantity': r['quantity'], 'unit_price': float(r['unit_price'])}
                for r in history[:20]
            ]
        )
    else:
        result = client.suggest_price(
            (data.get('name') or '').strip(), data.get('category'), data.get('cost_price'), data.get('selling_price')
        )
    return jsonify(result)


@ai_bp.route('/barcode', methods=['POST'])
@require_login
@require_tenant
def barcode():
    data = request.get_json(silent=True) or {}
    return jsonify(GeminiClient().lookup_barcode(data.get('barcode')))


@ai_bp.route('/assistant', methods=['POST'])
@require_login
@require_tenant
def assistant():
    session = get_session()
    data = request.get_json(silent=True) or {}
    client = GeminiClient()
    context = build_assistant_context(session, g.tenant_id)
    return jsonify(client.ask_assistant(data.get('question'), context))
