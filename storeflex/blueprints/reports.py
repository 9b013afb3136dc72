"""Dashboard and reports blueprint."""
from datetime import datetime, time, timedelta

from flask import Blueprint, request, g, jsonify

from storeflex.database import get_session
from storeflex.middleware import require_login, require_tenant
from storeflex.services.dashboard_service import calculate_profit, get_dashboard_data
from storeflex.services.report_service import (
    parse_report_date, fetch_inventory_records, get_sales_series, get_top_selling_products
)
from storeflex.utils.money import jsonable

reports_bp = Blueprint('reports', __name__, url_prefix='/api/reports')


@reports_bp.route('/dashboard', methods=['GET'])
@require_login
@require_tenant
def dashboard():
    """Inventory value, today's sales, balances, profit and recent activity."""
    session = get_session()
    return jsonify(jsonable(get_dashboard_data(session, g.tenant_id)))


@reports_bp.route('/sales-series', methods=['GET'])
@require_login
@require_tenant
def sales_series():
    session = get_session()
    period = request.args.get('period', 'daily')
    return jsonify(jsonable(get_sales_series(session, g.tenant_id, period)))


@reports_bp.route('/top-products', methods=['GET'])
@require_login
@require_tenant
def top_products():
    session = get_session()
    limit = request.args.get('limit', 5, type=int)
    return jsonify(jsonable(get_top_selling_products(session, g.tenant_id, limit=limit)))


@reports_bp.route('/inventory-records', methods=['GET'])
@require_login
@require_tenant
def inventory_records():
    """Query params: start_date, end_date, type, product_id, party."""
    session = get_session()
    filters = {key: request.args.get(key) for key in ('start_date', 'end_date', 'type', 'product_id', 'party')}
    return jsonify(jsonable(fetch_inventory_records(session, g.tenant_id, filters)))


@reports_bp.route('/profit', methods=['GET'])
@require_login
@require_tenant
def profit():
    """Revenue, cost of goods sold, expenses and profit for an optional date range."""
    session = get_session()
    start = parse_report_date(request.args.get('start_date'), 'start_date')
    end = parse_report_date(request.args.get('end_date'), 'end_date')
    start_dt = datetime.combine(start, time.min) if start else None
    end_dt = datetime.combine(end + timedelta(days=1), time.min) if end else None
    return jsonify(jsonable(calculate_profit(session, g.tenant_id, start_dt, end_dt)))
