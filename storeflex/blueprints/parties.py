"""Customers and suppliers blueprints - party CRUD with transaction history."""
from flask import Blueprint, request, g, jsonify

from storeflex.database import get_session
from storeflex.middleware import require_login, require_tenant
from storeflex.services.party_service import (
    create_customer, create_supplier, delete_customer, delete_supplier, get_customer, get_supplier,
    list_customers, list_suppliers, party_to_dict, update_customer, update_supplier
)
from storeflex.services.purchase_service import list_purchases, purchase_to_dict
from storeflex.services.sales_service import list_sales, sale_to_dict

customers_bp = Blueprint('customers', __name__, url_prefix='/api/customers')
suppliers_bp = Blueprint('suppliers', __name__, url_prefix='/api/suppliers')


# =====================================================
# CUSTOMERS
# =====================================================

@customers_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_customers_view():
    session = get_session()
    return jsonify([party_to_dict(c) for c in list_customers(session, g.tenant_id)])


@customers_bp.route('', methods=['POST'])
@require_login
@require_tenant
def create_customer_view():
    session = get_session()
    customer = create_customer(session, g.tenant_id, request.get_json(silent=True) or {})
    return jsonify(party_to_dict(customer)), 201


@customers_bp.route('/<code>', methods=['GET'])
@require_login
@require_tenant
def customer_detail(code):
    """Customer with its sales, newest first."""
    session = get_session()
    customer = get_customer(session, g.tenant_id, code)
    data = party_to_dict(customer)
    data['transactions'] = [
        sale_to_dict(s, include_items=False)
        for s in list_sales(session, g.tenant_id, customer_code=customer.code)
    ]
    return jsonify(data)


@customers_bp.route('/<code>', methods=['PUT', 'PATCH'])
@require_login
@require_tenant
def update_customer_view(code):
    session = get_session()
    customer = update_customer(session, g.tenant_id, code, request.get_json(silent=True) or {})
    return jsonify(party_to_dict(customer))


@customers_bp.route('/<code>', methods=['DELETE'])
@require_login
@require_tenant
def delete_customer_view(code):
    session = get_session()
    delete_customer(session, g.tenant_id, code)
    return jsonify({'status': 'ok'})


# =====================================================
# SUPPLIERS
# =====================================================

@suppliers_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_suppliers_view():
    session = get_session()
    return jsonify([party_to_dict(s) for s in list_suppliers(session, g.tenant_id)])


@suppliers_bp.route('', methods=['POST'])
@require_login
@require_tenant
def create_supplier_view():
    session = get_session()
    supplier = create_supplier(session, g.tenant_id, request.get_json(silent=True) or {})
    return jsonify(party_to_dict(supplier)), 201


@suppliers_bp.route('/<code>', methods=['GET'])
@require_login
@require_tenant
def supplier_detail(code):
    """Supplier with its purchases, newest first."""
    session = get_session()
    supplier = get_supplier(session, g.tenant_id, code)
    data = party_to_dict(supplier)
    data['transactions'] = [
        purchase_to_dict(p, include_items=False)
        for p in list_purchases(session, g.tenant_id, supplier_code=supplier.code)
    ]
    return jsonify(data)


@suppliers_bp.route('/<code>', methods=['PUT', 'PATCH'])
@require_login
@require_tenant
def update_supplier_view(code):
    session = get_session()
    supplier = update_supplier(session, g.tenant_id, code, request.get_json(silent=True) or {})
    return jsonify(party_to_dict(supplier))


@suppliers_bp.route('/<code>', methods=['DELETE'])
@require_login
@require_tenant
def delete_supplier_view(code):
    session = get_session()
    delete_supplier(session, g.tenant_id, code)
    return jsonify({'status': 'ok'})
