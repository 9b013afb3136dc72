"""
Product catalog and product ledger (stock and weighted-average cost).

``stock`` and ``cost_price`` are only changed on rows locked inside
``run_in_transaction``; the helpers here never commit on their own.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, or_

from storeflex.database import run_in_transaction
from storeflex.exceptions import (
    BusinessLogicError, InsufficientStockError, ProductNotFoundError, ValidationError
)
from storeflex.models import ActivityType, Product
from storeflex.services.activity_service import record_activity
from storeflex.services.cache_service import invalidate_ledger_views
from storeflex.services.sequence_service import allocate_code
from storeflex.utils.money import ZERO, as_float, quantize_cost, quantize_money, to_decimal

logger = logging.getLogger(__name__)

TEXT_FIELDS = ('sku', 'barcode', 'category', 'sub_category', 'brand', 'image_url')


# =====================================================
# LEDGER OPERATIONS
# =====================================================

def lock_products(session, tenant_id: int, codes: Iterable[str]) -> Dict[str, Product]:
    """
    Lock product rows FOR UPDATE (in id order) and return them by code.

    Raises:
        ProductNotFoundError: if any code does not belong to the tenant
    """
    codes = list(dict.fromkeys(codes))
    if not codes:
        return {}

    # CRITICAL: tenant filter
    products = session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.code.in_(codes)
    ).order_by(Product.id).with_for_update().all()

    by_code = {p.code: p for p in products}
    for code in codes:
        if code not in by_code:
            raise ProductNotFoundError(code)
    return by_code


def adjust_stock(product: Product, delta: int, error_message: Optional[str] = None) -> int:
    """
    Add ``delta`` to the product stock.

    Raises:
        InsufficientStockError: if stock would drop below zero (nothing is written)
    """
    current = product.stock or 0
    new_stock = current + delta
    if new_stock < 0:
        raise InsufficientStockError(product.name, -delta, current, message=error_message)
    product.stock = new_stock
    return new_stock


def ensure_stock_available(products: Dict[str, Product], requested: Dict[str, int]) -> None:
    """Check every line before any stock is written; the first shortfall aborts."""
    for code, qty in requested.items():
        product = products[code]
        if (product.stock or 0) < qty:
            raise InsufficientStockError(product.name, qty, product.stock or 0)


def recompute_weighted_average_cost(product: Product, incoming_qty: int, incoming_unit_cost) -> Decimal:
    """
    Blend existing stock value with a purchase.

    new_cost = (stock * cost + qty * unit_cost) / (stock + qty); when the total
    is zero the incoming unit cost is used. Call before adding the stock.
    """
    current_stock = Decimal(product.stock or 0)
    current_cost = Decimal(str(product.cost_price or 0))
    incoming_qty = Decimal(incoming_qty)
    incoming_unit_cost = Decimal(str(incoming_unit_cost))

    total_stock = current_stock + incoming_qty
    if total_stock == 0:
        new_cost = incoming_unit_cost
    else:
        new_cost = (current_stock * current_cost + incoming_qty * incoming_unit_cost) / total_stock

    product.cost_price = quantize_cost(new_cost)
    return product.cost_price


# =====================================================
# CATALOG
# =====================================================

def validate_product_data(data: Dict[str, Any], partial: bool = False, default_threshold: int = 10) -> Dict[str, Any]:
    """
    Clean product input.

    Raises:
        ValidationError: on missing or invalid fields
    """
    cleaned: Dict[str, Any] = {}
    try:
        if not partial or 'name' in data:
            name = (data.get('name') or '').strip()
            if not name:
                raise ValidationError('Product name is required')
            cleaned['name'] = name

        if not partial or 'selling_price' in data:
            selling_price = to_decimal(data.get('selling_price'), 'selling_price')
            if selling_price < 0:
                raise ValidationError('Selling price cannot be negative')
            cleaned['selling_price'] = quantize_money(selling_price)

        if not partial or 'cost_price' in data:
            cost_price = to_decimal(data.get('cost_price'), 'cost_price')
            if cost_price <= 0:
                raise ValidationError('Cost price must be greater than 0')
            cleaned['cost_price'] = quantize_cost(cost_price)

        if not partial or 'stock' in data:
            stock = to_decimal(data.get('stock', 0), 'stock')
            if stock < 0 or stock != stock.to_integral_value():
                raise ValidationError('Stock must be a whole number of 0 or more')
            cleaned['stock'] = int(stock)

        if not partial or 'low_stock_threshold' in data:
            threshold = to_decimal(data.get('low_stock_threshold', default_threshold), 'low_stock_threshold')
            if threshold < 0 or threshold != threshold.to_integral_value():
                raise ValidationError('Low stock threshold must be a whole number of 0 or more')
            cleaned['low_stock_threshold'] = int(threshold)
    except ValueError as e:
        raise ValidationError(str(e))

    for field in TEXT_FIELDS:
        if field in data:
            value = data.get(field)
            cleaned[field] = (value.strip() or None) if isinstance(value, str) else value

    return cleaned


def create_product(session, tenant_id: int, data: Dict[str, Any], default_threshold: int = 10) -> Product:
    """
    Create a product with an allocated ``prod`` code and log a ``new`` activity.

    Returns:
        The committed Product
    """
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')
    cleaned = validate_product_data(data, default_threshold=default_threshold)

    def work(session):
        code = allocate_code(session, tenant_id, 'products')
        product = Product(tenant_id=tenant_id, code=code, **cleaned)
        if not product.sku:
            product.sku = code
        session.add(product)
        session.flush()

        record_activity(
            session, tenant_id, ActivityType.NEW, 'New product added to inventory',
            product_id=product.id, product_name=product.name, reference_code=code
        )
        return product

    product = run_in_transaction(session, work)
    invalidate_ledger_views(tenant_id)
    logger.info(f"Product {product.code} created for tenant {tenant_id}")
    return product


def update_product(session, tenant_id: int, code: str, data: Dict[str, Any]) -> Product:
    """Edit product details (stock edits stay >= 0) and log an ``update`` activity."""
    cleaned = validate_product_data(data, partial=True)
    if not cleaned:
        raise ValidationError('Nothing to update')

    def work(session):
        product = lock_products(session, tenant_id, [code])[code]
        if not product.active:
            raise ProductNotFoundError(code)
        for field, value in cleaned.items():
            setattr(product, field, value)
        session.flush()

        record_activity(
            session, tenant_id, ActivityType.UPDATE, 'Product details updated',
            product_id=product.id, product_name=product.name, reference_code=product.code
        )
        return product

    product = run_in_transaction(session, work)
    invalidate_ledger_views(tenant_id)
    return product


def delete_product(session, tenant_id: int, code: str) -> None:
    """Remove a product from the catalog; its history stays intact."""
    def work(session):
        product = lock_products(session, tenant_id, [code])[code]
        if not product.active:
            raise ProductNotFoundError(code)
        product.active = False
        record_activity(
            session, tenant_id, ActivityType.DELETE, 'Product removed from inventory',
            product_id=product.id, product_name=product.name, reference_code=product.code
        )

    run_in_transaction(session, work)
    invalidate_ledger_views(tenant_id)
    logger.info(f"Product {code} removed for tenant {tenant_id}")


def get_product(session, tenant_id: Optional[int], code: str, include_inactive: bool = False) -> Product:
    query = session.query(Product).filter(Product.tenant_id == tenant_id, Product.code == code)
    if not include_inactive:
        query = query.filter(Product.active == True)  # noqa: E712
    product = query.first() if tenant_id else None
    if not product:
        raise ProductNotFoundError(code)
    return product


def list_products(session, tenant_id: Optional[int], search: Optional[str] = None,
                  low_stock_only: bool = False) -> List[Product]:
    """Active products sorted by name."""
    if not tenant_id:
        return []
    query = session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.active == True  # noqa: E712
    )
    if search:
        term = f'%{search.lower()}%'
        query = query.filter(or_(
            func.lower(Product.name).like(term),
            func.lower(Product.sku).like(term),
            func.lower(Product.code).like(term),
            Product.barcode == search
        ))
    if low_stock_only:
        query = query.filter(Product.stock < Product.low_stock_threshold)
    return query.order_by(Product.name).all()


def products_for_select(session, tenant_id: Optional[int]) -> List[Dict[str, Any]]:
    """Lightweight list for POS / purchase carts."""
    return [
        {
            'id': p.code,
            'name': p.name,
            'sku': p.sku,
            'stock': p.stock,
            'selling_price': as_float(p.selling_price),
            'cost_price': float(p.cost_price),
            'sub_category': p.sub_category,
        }
        for p in list_products(session, tenant_id)
    ]


def inventory_value(products: Iterable[Product]) -> Decimal:
    return quantize_money(sum((Decimal(p.stock or 0) * Decimal(str(p.cost_price)) for p in products), ZERO))


def product_to_dict(product: Product) -> Dict[str, Any]:
    return {
        'id': product.code,
        'sku': product.sku,
        'barcode': product.barcode,
        'name': product.name,
        'category': product.category,
        'sub_category': product.sub_category,
        'brand': product.brand,
        'image_url': product.image_url,
        'stock': product.stock,
        'cost_price': float(product.cost_price),
        'selling_price': as_float(product.selling_price),
        'low_stock_threshold': product.low_stock_threshold,
        'is_low_stock': product.is_low_stock,
        'active': product.active,
        'created_at': product.created_at.isoformat() if product.created_at else None,
    }
