"""
Dashboard service for multi-tenant StoreFlex.
Provides aggregated metrics (stock value, sales, profit, balances) for the home view.
"""

from datetime import datetime, date, time, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func

from storeflex.models import Product, Sale, SaleItem
from storeflex.services.activity_service import activity_to_dict, list_recent_activities
from storeflex.services.cache_service import cached_view
from storeflex.services.expense_service import total_expenses
from storeflex.services.moneyflow_service import fetch_moneyflow_data
from storeflex.services.product_service import inventory_value
from storeflex.utils.money import ZERO, quantize_money


def get_dashboard_data(session, tenant_id: Optional[int]) -> dict:
    """
    Get all dashboard data for a tenant.

    Args:
        session: SQLAlchemy session
        tenant_id: Current tenant ID

    Returns:
        dict with keys:
            - inventory_value: Decimal (sum of stock x cost_price)
            - product_count: int
            - sales_today / total_sales: Decimal
            - receivables_total / payables_total: Decimal
            - profit_today / profit_month / profit_year: Decimal
            - recent_activities: list of dicts (5 newest)
            - low_stock_products: list of dicts (up to 5)
    """
    if not tenant_id:
        return _empty_dashboard()
    return cached_view(
        tenant_id, 'dashboard', 'summary',
        lambda: _build_dashboard(session, tenant_id),
        ttl_config_key='CACHE_DASHBOARD_TTL'
    )


def _empty_dashboard() -> dict:
    return {
        'inventory_value': ZERO,
        'product_count': 0,
        'sales_today': ZERO,
        'total_sales': ZERO,
        'receivables_total': ZERO,
        'payables_total': ZERO,
        'profit_today': ZERO,
        'profit_month': ZERO,
        'profit_year': ZERO,
        'recent_activities': [],
        'low_stock_products': [],
    }


def _build_dashboard(session, tenant_id: int) -> dict:
    # 1. Products (only active)
    products = session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.active == True  # noqa: E712
    ).all()

    low_stock = sorted(
        (p for p in products if p.is_low_stock),
        key=lambda p: (p.stock, p.name)
    )[:5]

    # 2. Sales
    start_today, end_today = get_today_datetime_range()
    sales_today = sales_total(session, tenant_id, start_today, end_today)
    total_sales = sales_total(session, tenant_id)

    # 3. Balances
    moneyflow = fetch_moneyflow_data(session, tenant_id)

    # 4. Profit per period
    now = datetime.now()
    start_month = datetime.combine(date(now.year, now.month, 1), time.min)
    start_year = datetime.combine(date(now.year, 1, 1), time.min)

    return {
        'inventory_value': inventory_value(products),
        'product_count': len(products),
        'sales_today': sales_today,
        'total_sales': total_sales,
        'receivables_total': moneyflow['receivables_total'],
        'payables_total': moneyflow['payables_total'],
        'profit_today': calculate_profit(session, tenant_id, start_today, end_today)['profit'],
        'profit_month': calculate_profit(session, tenant_id, start_month, end_today)['profit'],
        'profit_year': calculate_profit(session, tenant_id, start_year, end_today)['profit'],
        'recent_activities': [activity_to_dict(a) for a in list_recent_activities(session, tenant_id, limit=5)],
        'low_stock_products': [
            {
                'id': p.code,
                'name': p.name,
                'stock': p.stock,
                'low_stock_threshold': p.low_stock_threshold,
            }
            for p in low_stock
        ],
    }


def sales_total(session, tenant_id: int, start: Optional[datetime] = None,
                end: Optional[datetime] = None) -> Decimal:
    """Sum of sale totals in [start, end)."""
    query = session.query(func.coalesce(func.sum(Sale.total_amount), 0)).filter(Sale.tenant_id == tenant_id)
    if start is not None:
        query = query.filter(Sale.sale_date >= start)
    if end is not None:
        query = query.filter(Sale.sale_date < end)
    return quantize_money(query.scalar() or 0)


def cost_of_goods_sold(session, tenant_id: int, start: Optional[datetime] = None,
                       end: Optional[datetime] = None) -> Decimal:
    """Sum of unit cost (as captured at sale time) x quantity."""
    query = session.query(
        func.coalesce(func.sum(SaleItem.cost_price * SaleItem.quantity), 0)
    ).join(
        Sale, Sale.id == SaleItem.sale_id
    ).filter(
        Sale.tenant_id == tenant_id  # CRITICAL: tenant filter
    )
    if start is not None:
        query = query.filter(Sale.sale_date >= start)
    if end is not None:
        query = query.filter(Sale.sale_date < end)
    return quantize_money(query.scalar() or 0)


def calculate_profit(session, tenant_id: int, start: Optional[datetime] = None,
                     end: Optional[datetime] = None) -> dict:
    """
    Revenue - COGS - expenses over [start, end).

    Returns:
        dict with revenue, cogs, expenses and profit (Decimals)
    """
    revenue = sales_total(session, tenant_id, start, end)
    cogs = cost_of_goods_sold(session, tenant_id, start, end)
    expenses = quantize_money(total_expenses(session, tenant_id, start, end))
    return {
        'revenue': revenue,
        'cogs': cogs,
        'expenses': expenses,
        'profit': quantize_money(revenue - cogs - expenses),
    }


def get_today_datetime_range():
    """
    Get datetime range for today (local server time).

    Returns:
        tuple: (start_dt, end_dt) where start is 00:00:00 and end is the next midnight
    """
    today = date.today()
    start_dt = datetime.combine(today, time.min)
    end_dt = start_dt + timedelta(days=1)

    return start_dt, end_dt
