"""
Return processors - Multi-Tenant.

A purchase return sends goods back to the supplier (stock out, supplier balance
down, no floor). A sale return takes goods back from a customer (stock in,
optional credit against the customer balance, floored at 0).
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from storeflex.blueprints.metrics import record_ledger_operation
from storeflex.database import run_in_transaction
from storeflex.exceptions import BusinessLogicError, NotFoundError, ValidationError
from storeflex.models import (
    ActivityType, Customer, Purchase, PurchaseReturn, PurchaseReturnItem,
    RefundMethod, Sale, SaleReturn, SaleReturnItem, Supplier
)
from storeflex.services.activity_service import record_activity
from storeflex.services.cache_service import invalidate_ledger_views
from storeflex.services.party_service import apply_delta
from storeflex.services.product_service import adjust_stock, lock_products
from storeflex.utils.money import ZERO, as_float, format_money, quantize_money, to_decimal

logger = logging.getLogger(__name__)


def parse_return_items(raw_items: Any) -> Dict[str, int]:
    """
    Validate requested return lines.

    Lines look like ``{"product_id": "prod0001", "return_quantity": 3}``. Lines
    with a zero quantity are skipped; at least one must be positive.

    Returns:
        Dict product code -> quantity
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError('Select at least one item to return')

    requested: Dict[str, int] = {}
    for index, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f'Return line {index} is malformed')
        code = str(raw.get('product_id') or raw.get('id') or '').strip()
        if not code:
            raise ValidationError(f'Return line {index}: product_id is required')
        try:
            qty = to_decimal(raw.get('return_quantity', 0) or 0, f'Return line {index}: return_quantity')
        except ValueError as e:
            raise ValidationError(str(e))
        if qty < 0 or qty != qty.to_integral_value():
            raise ValidationError(f'Return line {index}: return_quantity must be a whole number of 0 or more')
        if qty > 0:
            requested[code] = requested.get(code, 0) + int(qty)

    if not requested:
        raise ValidationError('Select at least one item to return')
    return requested


def _allocate_against_items(items, returned_by_item: Dict[int, int], requested: Dict[str, int]):
    """
    Spread requested quantities over the original lines of each product.

    Returns:
        List of (original_item, quantity)

    Raises:
        BusinessLogicError: unknown product or more than remains returnable
    """
    allocations = []
    for code, qty in requested.items():
        lines = [item for item in items if item.product_code == code]
        if not lines:
            raise BusinessLogicError(f'Product {code} is not part of this transaction')
        remaining_total = sum(item.quantity - returned_by_item.get(item.id, 0) for item in lines)
        if qty > remaining_total:
            raise BusinessLogicError(
                f'Cannot return {qty} of {lines[0].name}: only {remaining_total} left to return'
            )
        left = qty
        for item in lines:
            available = item.quantity - returned_by_item.get(item.id, 0)
            take = min(available, left)
            if take > 0:
                allocations.append((item, take))
                left -= take
            if left == 0:
                break
    return allocations


# =====================================================
# PURCHASE RETURNS
# =====================================================

def create_purchase_return(session, tenant_id: int, purchase_code: str, raw_items: Any,
                           reason: Optional[str] = None, user_id: Optional[int] = None) -> PurchaseReturn:
    """
    Return part of a purchase to its supplier.

    total_credit_amount = sum(cost_price x return_quantity); the supplier balance
    drops by that amount and may go negative (the supplier then owes the store).

    Raises:
        ValidationError: malformed lines
        NotFoundError: unknown purchase
        BusinessLogicError: quantity above what remains returnable
        InsufficientStockError: "Not enough stock to return for X."
    """
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')
    requested = parse_return_items(raw_items)

    def work(session):
        # CRITICAL: tenant filter
        purchase = session.query(Purchase).filter(
            Purchase.tenant_id == tenant_id,
            Purchase.code == purchase_code
        ).with_for_update().first()
        if not purchase:
            raise NotFoundError(f'Purchase {purchase_code} not found')

        supplier = session.query(Supplier).filter(
            Supplier.tenant_id == tenant_id,
            Supplier.id == purchase.supplier_id
        ).with_for_update().first()

        returned = _returned_quantities(
            session, PurchaseReturnItem.purchase_item_id, PurchaseReturnItem.return_quantity,
            [item.id for item in purchase.items]
        )
        allocations = _allocate_against_items(purchase.items, returned, requested)

        # 1. Stock leaves the store
        products = lock_products(session, tenant_id, requested.keys())
        for code, qty in requested.items():
            product = products[code]
            adjust_stock(product, -qty, error_message=f"Not enough stock to return for {product.name}.")

        # 2. Return record
        purchase_return = PurchaseReturn(
            tenant_id=tenant_id,
            purchase_id=purchase.id,
            supplier_id=purchase.supplier_id,
            supplier_name=purchase.supplier_name,
            reason=(reason or '').strip() or None,
            created_by=user_id,
            total_credit_amount=ZERO,
        )
        total_credit = ZERO
        for item, qty in allocations:
            line_total = quantize_money(Decimal(str(item.cost_price)) * qty)
            total_credit += line_total
            purchase_return.items.append(PurchaseReturnItem(
                purchase_item_id=item.id,
                product_id=item.product_id,
                name=item.name,
                return_quantity=qty,
                cost_price=item.cost_price,
                line_total=line_total,
            ))
        purchase_return.total_credit_amount = quantize_money(total_credit)
        session.add(purchase_return)

        # 3. Supplier balance, no floor
        if supplier:
            apply_delta(supplier, -total_credit)

        session.flush()
        record_activity(
            session, tenant_id, ActivityType.PURCHASE_RETURN,
            f"Return to {purchase.supplier_name} for {format_money(total_credit)} credited",
            supplier_id=purchase.supplier_id,
            reference_code=purchase.code,
            amount=purchase_return.total_credit_amount,
            user_id=user_id,
        )
        return purchase_return

    purchase_return = run_in_transaction(session, work)
    invalidate_ledger_views(tenant_id)
    record_ledger_operation('purchase_return', purchase_return.total_credit_amount)
    logger.info(
        f"Purchase return on {purchase_code} for tenant {tenant_id}: credit={purchase_return.total_credit_amount}"
    )
    return purchase_return


# =====================================================
# SALE RETURNS
# =====================================================

def create_sale_return(session, tenant_id: int, sale_code: str, raw_items: Any,
                       refund_method: str = RefundMethod.CASH.value, reason: Optional[str] = None,
                       user_id: Optional[int] = None) -> SaleReturn:
    """
    Take back part of a sale.

    With ``credit_balance`` the refund is taken off what the customer owes
    (never below 0); ``cash`` refunds happen outside the ledger.
    """
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')
    requested = parse_return_items(raw_items)
    try:
        method = RefundMethod((refund_method or RefundMethod.CASH.value).lower())
    except ValueError:
        raise ValidationError(f'Unknown refund method: {refund_method}')

    def work(session):
        sale = session.query(Sale).filter(
            Sale.tenant_id == tenant_id,
            Sale.code == sale_code
        ).with_for_update().first()
        if not sale:
            raise NotFoundError(f'Sale {sale_code} not found')
        if method == RefundMethod.CREDIT_BALANCE and not sale.customer_id:
            raise BusinessLogicError('Walk-in sales can only be refunded in cash')

        returned = _returned_quantities(
            session, SaleReturnItem.sale_item_id, SaleReturnItem.return_quantity,
            [item.id for item in sale.items]
        )
        allocations = _allocate_against_items(sale.items, returned, requested)

        # 1. Goods come back
        products = lock_products(session, tenant_id, requested.keys())
        for code, qty in requested.items():
            adjust_stock(products[code], qty)

        sale_return = SaleReturn(
            tenant_id=tenant_id,
            sale_id=sale.id,
            customer_id=sale.customer_id,
            customer_name=sale.customer_name,
            refund_method=method.value,
            reason=(reason or '').strip() or None,
            created_by=user_id,
            total_refund_amount=ZERO,
        )
        total_refund = ZERO
        for item, qty in allocations:
            line_total = quantize_money(Decimal(str(item.price_per_unit)) * qty)
            total_refund += line_total
            sale_return.items.append(SaleReturnItem(
                sale_item_id=item.id,
                product_id=item.product_id,
                name=item.name,
                return_quantity=qty,
                price_per_unit=item.price_per_unit,
                line_total=line_total,
            ))
        sale_return.total_refund_amount = quantize_money(total_refund)

        # 2. Customer credit, floored at 0
        credited = ZERO
        if method == RefundMethod.CREDIT_BALANCE:
            customer = session.query(Customer).filter(
                Customer.tenant_id == tenant_id,
                Customer.id == sale.customer_id
            ).with_for_update().first()
            if customer:
                balance = Decimal(str(customer.credit_balance or 0))
                new_balance = max(ZERO, balance - total_refund)
                credited = balance - new_balance
                customer.credit_balance = quantize_money(new_balance)
        sale_return.credited_amount = quantize_money(credited)

        session.add(sale_return)
        session.flush()
        record_activity(
            session, tenant_id, ActivityType.SALE_RETURN,
            f"Return from {sale.customer_name} for {format_money(total_refund)} credited",
            customer_id=sale.customer_id,
            reference_code=sale.code,
            amount=sale_return.total_refund_amount,
            user_id=user_id,
        )
        return sale_return

    sale_return = run_in_transaction(session, work)
    invalidate_ledger_views(tenant_id)
    record_ledger_operation('sale_return', sale_return.total_refund_amount)
    logger.info(
        f"Sale return on {sale_code} for tenant {tenant_id}: refund={sale_return.total_refund_amount} "
        f"method={sale_return.refund_method}"
    )
    return sale_return


# =====================================================
# QUERIES
# =====================================================

def list_purchase_returns(session, tenant_id: Optional[int], purchase_code: Optional[str] = None) -> List[PurchaseReturn]:
    if not tenant_id:
        return []
    query = session.query(PurchaseReturn).filter(PurchaseReturn.tenant_id == tenant_id)
    if purchase_code:
        query = query.join(Purchase, PurchaseReturn.purchase_id == Purchase.id).filter(Purchase.code == purchase_code)
    return query.order_by(PurchaseReturn.return_date.desc(), PurchaseReturn.id.desc()).all()


def list_sale_returns(session, tenant_id: Optional[int], sale_code: Optional[str] = None) -> List[SaleReturn]:
    if not tenant_id:
        return []
    query = session.query(SaleReturn).filter(SaleReturn.tenant_id == tenant_id)
    if sale_code:
        query = query.join(Sale, SaleReturn.sale_id == Sale.id).filter(Sale.code == sale_code)
    return query.order_by(SaleReturn.return_date.desc(), SaleReturn.id.desc()).all()


def purchase_return_to_dict(purchase_return: PurchaseReturn) -> Dict[str, Any]:
    return {
        'id': purchase_return.id,
        'purchase_id': purchase_return.purchase.code if purchase_return.purchase else None,
        'supplier_name': purchase_return.supplier_name,
        'total_credit_amount': as_float(purchase_return.total_credit_amount),
        'reason': purchase_return.reason,
        'return_date': purchase_return.return_date.isoformat() if purchase_return.return_date else None,
        'items': [
            {
                'name': item.name,
                'return_quantity': item.return_quantity,
                'cost_price': float(item.cost_price),
                'line_total': as_float(item.line_total),
            }
            for item in purchase_return.items
        ],
    }


def sale_return_to_dict(sale_return: SaleReturn) -> Dict[str, Any]:
    return {
        'id': sale_return.id,
        'sale_id': sale_return.sale.code if sale_return.sale else None,
        'customer_name': sale_return.customer_name,
        'total_refund_amount': as_float(sale_return.total_refund_amount),
        'refund_method': sale_return.refund_method,
        'credited_amount': as_float(sale_return.credited_amount),
        'reason': sale_return.reason,
        'return_date': sale_return.return_date.isoformat() if sale_return.return_date else None,
        'items': [
            {
                'name': item.name,
                'return_quantity': item.return_quantity,
                'price_per_unit': as_float(item.price_per_unit),
                'line_total': as_float(item.line_total),
            }
            for item in sale_return.items
        ],
    }


def _returned_quantities(session, item_fk, quantity_column, item_ids: List[int]) -> Dict[int, int]:
    """Quantities already returned per original line."""
    if not item_ids:
        return {}
    rows = session.query(item_fk, func.sum(quantity_column)).filter(
        item_fk.in_(item_ids)
    ).group_by(item_fk).all()
    return {item_id: int(qty or 0) for item_id, qty in rows}
