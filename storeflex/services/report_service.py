"""
Reports - sales series, top products and inventory movement history.

All queries are tenant-scoped reads; none of them lock or write.
"""
from datetime import datetime, date, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func

from storeflex.exceptions import ValidationError
from storeflex.models import (
    Expense, LOSS_EXPENSE_TYPE, Product, Purchase, PurchaseItem, PurchaseReturn, PurchaseReturnItem,
    Sale, SaleItem, SaleReturn, SaleReturnItem
)
from storeflex.services.cache_service import cached_view
from storeflex.services.product_service import get_product
from storeflex.utils.money import ZERO, quantize_money

SERIES_PERIODS = ('daily', 'weekly', 'monthly', 'yearly')

RECORD_TYPES = ('sale', 'purchase', 'sale_return', 'purchase_return', 'loss')


# =====================================================
# SALES SERIES
# =====================================================

def _series_buckets(period: str, today: date) -> List[Dict[str, Any]]:
    """Consecutive [start, end) buckets, oldest first, ending with the current one."""
    buckets = []
    if period == 'daily':
        for offset in range(6, -1, -1):
            day = today - timedelta(days=offset)
            buckets.append({'label': day.isoformat(), 'start': day, 'end': day + timedelta(days=1)})
    elif period == 'weekly':
        for offset in range(3, -1, -1):
            end = today + timedelta(days=1) - timedelta(weeks=offset)
            start = end - timedelta(days=7)
            buckets.append({'label': f'Week of {start.isoformat()}', 'start': start, 'end': end})
    elif period == 'monthly':
        year, month = today.year, today.month
        months = []
        for _ in range(12):
            months.append((year, month))
            month -= 1
            if month == 0:
                year, month = year - 1, 12
        for year, month in reversed(months):
            start = date(year, month, 1)
            end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
            buckets.append({'label': f'{year:04d}-{month:02d}', 'start': start, 'end': end})
    else:
        for offset in range(4, -1, -1):
            year = today.year - offset
            buckets.append({'label': str(year), 'start': date(year, 1, 1), 'end': date(year + 1, 1, 1)})
    return buckets


def get_sales_series(session, tenant_id: Optional[int], period: str = 'daily',
                     today: Optional[date] = None) -> List[Dict[str, Any]]:
    """
    Sales totals grouped by period.

    Args:
        period: 'daily' (7 days), 'weekly' (4 weeks), 'monthly' (12 months) or 'yearly' (5 years)
        today: Reference date (defaults to today)

    Returns:
        List of dicts {label, total, count}, oldest first
    """
    if period not in SERIES_PERIODS:
        raise ValidationError(f'period must be one of: {", ".join(SERIES_PERIODS)}')
    if not tenant_id:
        return []

    today = today or date.today()
    buckets = _series_buckets(period, today)

    def load():
        range_start = datetime.combine(buckets[0]['start'], time.min)
        range_end = datetime.combine(buckets[-1]['end'], time.min)
        rows = session.query(Sale.sale_date, Sale.total_amount).filter(
            Sale.tenant_id == tenant_id,
            Sale.sale_date >= range_start,
            Sale.sale_date < range_end
        ).all()

        series = []
        for bucket in buckets:
            total = ZERO
            count = 0
            for sale_date, amount in rows:
                day = sale_date.date()
                if bucket['start'] <= day < bucket['end']:
                    total += Decimal(str(amount))
                    count += 1
            series.append({'label': bucket['label'], 'total': quantize_money(total), 'count': count})
        return series

    return cached_view(tenant_id, 'reports', f'series:{period}:{today.isoformat()}', load)


# =====================================================
# TOP PRODUCTS
# =====================================================

def get_top_selling_products(session, tenant_id: Optional[int], limit: int = 5) -> List[Dict[str, Any]]:
    """
    Get top selling products based on total quantity sold (tenant-scoped).

    Returns:
        list of dicts: id (product code), name, total_sold, revenue
    """
    if not tenant_id:
        return []

    rows = (
        session.query(
            SaleItem.product_code.label('product_code'),
            SaleItem.name.label('name'),
            func.sum(SaleItem.quantity).label('total_sold'),
            func.sum(SaleItem.total_amount).label('revenue'),
        )
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(Sale.tenant_id == tenant_id)  # CRITICAL: tenant filter
        .group_by(SaleItem.product_code, SaleItem.name)
        .order_by(desc('total_sold'), SaleItem.product_code)
        .limit(limit)
        .all()
    )
    return [
        {
            'id': row.product_code,
            'name': row.name,
            'total_sold': int(row.total_sold or 0),
            'revenue': quantize_money(row.revenue or 0),
        }
        for row in rows
    ]


# =====================================================
# INVENTORY RECORDS
# =====================================================

def parse_report_date(value: Any, field: str) -> Optional[date]:
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f'{field} must be a date (YYYY-MM-DD)')


def _record(record_type, reference, when, party_name, product_code, product_name, quantity, unit_price, total):
    return {
        'type': record_type,
        'reference': reference,
        'date': when,
        'party_name': party_name,
        'product_id': product_code,
        'product_name': product_name,
        'quantity': quantity,
        'unit_price': quantize_money(unit_price),
        'total': quantize_money(total),
    }


def fetch_inventory_records(session, tenant_id: Optional[int], filters: Optional[Dict[str, Any]] = None,
                            include_losses: bool = False) -> List[Dict[str, Any]]:
    """
    Unified stock movement history (sales, purchases and returns), newest first.

    Filters:
        start_date / end_date: inclusive dates
        type: one of RECORD_TYPES
        product_id: product code
        party: substring of the customer/supplier name (case-insensitive)
    """
    if not tenant_id:
        return []
    filters = filters or {}
    start = parse_report_date(filters.get('start_date'), 'start_date')
    end = parse_report_date(filters.get('end_date'), 'end_date')
    record_type = filters.get('type') or None
    if record_type and record_type not in RECORD_TYPES:
        raise ValidationError(f'type must be one of: {", ".join(RECORD_TYPES)}')
    product_code = filters.get('product_id') or None
    party = (filters.get('party') or '').strip().lower() or None

    start_dt = datetime.combine(start, time.min) if start else None
    end_dt = datetime.combine(end + timedelta(days=1), time.min) if end else None

    def in_range(query, column):
        if start_dt is not None:
            query = query.filter(column >= start_dt)
        if end_dt is not None:
            query = query.filter(column < end_dt)
        return query

    records = []

    if record_type in (None, 'sale'):
        query = session.query(Sale, SaleItem).join(SaleItem, SaleItem.sale_id == Sale.id).filter(
            Sale.tenant_id == tenant_id
        )
        if product_code:
            query = query.filter(SaleItem.product_code == product_code)
        for sale, item in in_range(query, Sale.sale_date).all():
            records.append(_record('sale', sale.code, sale.sale_date, sale.customer_name, item.product_code,
                                   item.name, item.quantity, item.price_per_unit, item.total_amount))

    if record_type in (None, 'purchase'):
        query = session.query(Purchase, PurchaseItem).join(
            PurchaseItem, PurchaseItem.purchase_id == Purchase.id
        ).filter(Purchase.tenant_id == tenant_id)
        if product_code:
            query = query.filter(PurchaseItem.product_code == product_code)
        for purchase, item in in_range(query, Purchase.purchase_date).all():
            records.append(_record('purchase', purchase.code, purchase.purchase_date, purchase.supplier_name,
                                   item.product_code, item.name, item.quantity, item.cost_price, item.total_cost))

    if record_type in (None, 'sale_return'):
        query = session.query(SaleReturn, SaleReturnItem, Sale.code, Product.code).join(
            SaleReturnItem, SaleReturnItem.sale_return_id == SaleReturn.id
        ).join(Sale, Sale.id == SaleReturn.sale_id).join(
            Product, Product.id == SaleReturnItem.product_id
        ).filter(SaleReturn.tenant_id == tenant_id)
        if product_code:
            query = query.filter(Product.code == product_code)
        for sale_return, item, sale_code, code in in_range(query, SaleReturn.return_date).all():
            records.append(_record('sale_return', sale_code, sale_return.return_date, sale_return.customer_name,
                                   code, item.name, item.return_quantity, item.price_per_unit, item.line_total))

    if record_type in (None, 'purchase_return'):
        query = session.query(PurchaseReturn, PurchaseReturnItem, Purchase.code, Product.code).join(
            PurchaseReturnItem, PurchaseReturnItem.purchase_return_id == PurchaseReturn.id
        ).join(Purchase, Purchase.id == PurchaseReturn.purchase_id).join(
            Product, Product.id == PurchaseReturnItem.product_id
        ).filter(PurchaseReturn.tenant_id == tenant_id)
        if product_code:
            query = query.filter(Product.code == product_code)
        for purchase_return, item, purchase_code, code in in_range(query, PurchaseReturn.return_date).all():
            records.append(_record('purchase_return', purchase_code, purchase_return.return_date,
                                   purchase_return.supplier_name, code, item.name, item.return_quantity,
                                   item.cost_price, item.line_total))

    if (include_losses and record_type is None) or record_type == 'loss':
        query = session.query(Expense, Product).join(Product, Product.id == Expense.product_id).filter(
            Expense.tenant_id == tenant_id,
            Expense.expense_type == LOSS_EXPENSE_TYPE
        )
        if product_code:
            query = query.filter(Product.code == product_code)
        for expense, product in in_range(query, Expense.expense_date).all():
            quantity = expense.quantity or 0
            unit_cost = Decimal(str(expense.amount)) / quantity if quantity else ZERO
            records.append(_record('loss', product.code, expense.expense_date, None, product.code,
                                   product.name, quantity, unit_cost, expense.amount))

    if party:
        records = [r for r in records if r['party_name'] and party in r['party_name'].lower()]

    records.sort(key=lambda r: r['date'], reverse=True)
    for record in records:
        record['date'] = record['date'].isoformat() if record['date'] else None
    return records


def fetch_product_history(session, tenant_id: Optional[int], product_code: str) -> Dict[str, Any]:
    """
    Movements of one product, losses included.

    Raises:
        ProductNotFoundError: unknown product
    """
    product = get_product(session, tenant_id, product_code, include_inactive=True)
    records = fetch_inventory_records(session, tenant_id, {'product_id': product.code}, include_losses=True)
    return {
        'product': {'id': product.code, 'name': product.name, 'stock': product.stock},
        'records': records,
    }
