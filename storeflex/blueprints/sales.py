"""Sales blueprint - checkout, sale history, returns and receipts."""
from flask import Blueprint, request, g, jsonify, send_file, current_app

from storeflex.database import get_session
from storeflex.middleware import require_login, require_tenant, require_role
from storeflex.services.account_service import get_store_profile
from storeflex.services.receipt_service import generate_sale_receipt_pdf
from storeflex.services.return_service import create_sale_return, list_sale_returns, sale_return_to_dict
from storeflex.services.sales_service import create_sale, delete_sale, get_sale, list_sales, sale_to_dict

sales_bp = Blueprint('sales', __name__, url_prefix='/api/sales')


@sales_bp.route('', methods=['POST'])
@require_login
@require_tenant
def checkout():
    """
    Confirm a sale.

    Body: items, payment_method, amount_paid, customer_id (code), check_number,
    tax_percentage, discount_amount, service_charge and optional client totals.
    """
    session = get_session()
    sale = create_sale(session, g.tenant_id, request.get_json(silent=True) or {}, user_id=g.user.id)
    return jsonify(sale_to_dict(sale)), 201


@sales_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_all():
    session = get_session()
    limit = request.args.get('limit', type=int)
    sales = list_sales(session, g.tenant_id, customer_code=request.args.get('customer_id') or None, limit=limit)
    return jsonify([sale_to_dict(s, include_items=False) for s in sales])


@sales_bp.route('/<code>', methods=['GET'])
@require_login
@require_tenant
def detail(code):
    session = get_session()
    return jsonify(sale_to_dict(get_sale(session, g.tenant_id, code)))


@sales_bp.route('/<code>', methods=['DELETE'])
@require_login
@require_tenant
@require_role('ADMIN')
def delete(code):
    """Reverse a sale: restock and take its credit off the customer."""
    session = get_session()
    delete_sale(session, g.tenant_id, code)
    return jsonify({'status': 'ok'})


@sales_bp.route('/<code>/receipt.pdf', methods=['GET'])
@require_login
@require_tenant
def receipt(code):
    session = get_session()
    sale = get_sale(session, g.tenant_id, code)
    profile = get_store_profile(session, g.tenant_id, current_app.config.get('DEFAULT_BUSINESS_NAME'))
    pdf = generate_sale_receipt_pdf(sale, profile)
    return send_file(pdf, mimetype='application/pdf', as_attachment=False, download_name=f'{sale.code}.pdf')


@sales_bp.route('/<code>/returns', methods=['GET'])
@require_login
@require_tenant
def returns(code):
    session = get_session()
    get_sale(session, g.tenant_id, code)
    return jsonify([sale_return_to_dict(r) for r in list_sale_returns(session, g.tenant_id, sale_code=code)])


@sales_bp.route('/<code>/returns', methods=['POST'])
@require_login
@require_tenant
def create_return(code):
    """Body: items [{product_id, return_quantity}], refund_method (cash | credit_balance), reason."""
    session = get_session()
    data = request.get_json(silent=True) or {}
    sale_return = create_sale_return(
        session,
        g.tenant_id,
        code,
        data.get('items'),
        refund_method=data.get('refund_method') or 'cash',
        reason=data.get('reason'),
        user_id=g.user.id
    )
    return jsonify(sale_return_to_dict(sale_return)), 201
