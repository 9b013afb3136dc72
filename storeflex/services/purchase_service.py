"""
Purchase service with transactional logic - Multi-Tenant.
Stock comes in, weighted-average cost is recomputed and the supplier balance moves.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from storeflex.blueprints.metrics import record_ledger_operation
from storeflex.database import run_in_transaction
from storeflex.exceptions import BusinessLogicError, NotFoundError, SupplierNotFoundError
from storeflex.models import ActivityType, PaymentMethod, Purchase, PurchaseItem, Supplier
from storeflex.services.activity_service import record_activity
from storeflex.services.cache_service import invalidate_ledger_views
from storeflex.services.checkout_service import classify_payment_status, parse_checkout
from storeflex.services.party_service import lock_party
from storeflex.services.product_service import adjust_stock, lock_products, recompute_weighted_average_cost
from storeflex.services.sequence_service import allocate_code
from storeflex.utils.money import ZERO, as_float, format_money, quantize_money

logger = logging.getLogger(__name__)


def create_purchase(session, tenant_id: int, payload: Dict[str, Any], user_id: Optional[int] = None) -> Purchase:
    """
    Record a purchase from a supplier atomically.

    Args:
        session: Database session
        tenant_id: Tenant ID
        payload: items (product_id, quantity, cost_price), supplier_id, bill breakdown,
            payment_method, amount_paid, check_number
        user_id: User recording the purchase

    Returns:
        The committed Purchase

    Raises:
        ValidationError: malformed cart
        SupplierNotFoundError: missing or unknown supplier
        ProductNotFoundError: unknown product code
    """
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')

    checkout = parse_checkout(payload, 'purchase')
    if not checkout['party_code']:
        raise SupplierNotFoundError()

    purchase = run_in_transaction(session, lambda s: purchase_work(s, tenant_id, checkout, user_id))

    invalidate_ledger_views(tenant_id)
    record_ledger_operation('purchase', purchase.total_amount)
    logger.info(
        f"Purchase {purchase.code} recorded for tenant {tenant_id}: total={purchase.total_amount} "
        f"supplier_balance={purchase.credit_amount}"
    )
    return purchase


def purchase_work(session, tenant_id: int, checkout: Dict[str, Any], user_id: Optional[int] = None) -> Purchase:
    """Unit-of-work body of a purchase; also used when a purchase order is processed."""
    lines = checkout['lines']
    totals = checkout['totals']
    method = checkout['payment_method']
    amount_paid = checkout['amount_paid']
    total = totals['total_amount']

    # 1. Supplier (live balance under lock)
    supplier = lock_party(session, Supplier, tenant_id, checkout['party_code'])
    if not supplier.active:
        raise SupplierNotFoundError(checkout['party_code'])
    previous_balance = Decimal(str(supplier.credit_balance or 0))

    # 2. Products: blend cost, then add stock (line by line, a product may repeat)
    products = lock_products(session, tenant_id, [line['product_code'] for line in lines])
    for product in products.values():
        if not product.active:
            raise BusinessLogicError(f'Product "{product.name}" is no longer available')
    for line in lines:
        product = products[line['product_code']]
        recompute_weighted_average_cost(product, line['quantity'], line['unit_price'])
        adjust_stock(product, line['quantity'])

    # 3. Supplier balance, no floor
    new_balance = quantize_money(previous_balance + total - amount_paid)
    supplier.credit_balance = new_balance

    # 4. Overpayment settles prior debt
    settled_amount = ZERO
    if amount_paid > total and previous_balance > 0:
        settled_amount = quantize_money(min(amount_paid - total, previous_balance))

    payment_status = classify_payment_status(method, new_balance)

    # 5. Purchase with item snapshots
    code = allocate_code(session, tenant_id, 'purchases')
    purchase = Purchase(
        tenant_id=tenant_id,
        code=code,
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        purchase_date=datetime.now(),
        subtotal=totals['subtotal'],
        tax_percentage=totals['tax_percentage'],
        tax_amount=totals['tax_amount'],
        discount_amount=totals['discount_amount'],
        service_charge=totals['service_charge'],
        total_amount=total,
        payment_method=method.value,
        amount_paid=amount_paid,
        previous_balance=quantize_money(previous_balance),
        credit_amount=new_balance,
        check_number=checkout['check_number'] if method == PaymentMethod.CHECK else None,
        payment_status=payment_status.value,
        created_by=user_id,
    )
    for line in lines:
        product = products[line['product_code']]
        purchase.items.append(PurchaseItem(
            product_id=product.id,
            product_code=product.code,
            name=product.name,
            sku=product.sku,
            quantity=line['quantity'],
            cost_price=line['unit_price'],
            total_cost=line['line_total'],
        ))
    session.add(purchase)
    session.flush()

    # 6. Activities
    record_activity(
        session, tenant_id, ActivityType.PURCHASE,
        f"Purchase from {supplier.name} for {format_money(total)}",
        supplier_id=supplier.id,
        reference_code=code,
        amount=total,
        user_id=user_id,
    )
    if settled_amount > 0:
        record_activity(
            session, tenant_id, ActivityType.CREDIT_SETTLED,
            f"Settled {format_money(settled_amount)} with {supplier.name}",
            supplier_id=supplier.id,
            reference_code=code,
            amount=settled_amount,
            user_id=user_id,
        )
        logger.info(f"Purchase {code} settled {settled_amount} of prior debt with supplier {supplier.code}")
    return purchase


def get_purchase(session, tenant_id: Optional[int], code: str) -> Purchase:
    purchase = None
    if tenant_id:
        purchase = session.query(Purchase).filter(
            Purchase.tenant_id == tenant_id,
            Purchase.code == code
        ).first()
    if not purchase:
        raise NotFoundError(f'Purchase {code} not found')
    return purchase


def list_purchases(session, tenant_id: Optional[int], supplier_code: Optional[str] = None,
                   limit: Optional[int] = None) -> List[Purchase]:
    """Purchases newest first, optionally for one supplier."""
    if not tenant_id:
        return []
    query = session.query(Purchase).filter(Purchase.tenant_id == tenant_id)
    if supplier_code:
        query = query.join(Supplier, Purchase.supplier_id == Supplier.id).filter(
            Supplier.tenant_id == tenant_id,
            Supplier.code == supplier_code
        )
    query = query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def purchase_to_dict(purchase: Purchase, include_items: bool = True) -> Dict[str, Any]:
    data = {
        'id': purchase.code,
        'supplier_id': purchase.supplier.code if purchase.supplier else None,
        'supplier_name': purchase.supplier_name,
        'purchase_date': purchase.purchase_date.isoformat() if purchase.purchase_date else None,
        'subtotal': as_float(purchase.subtotal),
        'tax_percentage': as_float(purchase.tax_percentage),
        'tax_amount': as_float(purchase.tax_amount),
        'discount_amount': as_float(purchase.discount_amount),
        'service_charge': as_float(purchase.service_charge),
        'total_amount': as_float(purchase.total_amount),
        'payment_method': purchase.payment_method,
        'amount_paid': as_float(purchase.amount_paid),
        'previous_balance': as_float(purchase.previous_balance),
        'credit_amount': as_float(purchase.credit_amount),
        'check_number': purchase.check_number,
        'payment_status': purchase.payment_status,
    }
    if include_items:
        data['items'] = [
            {
                'id': item.product_code,
                'name': item.name,
                'sku': item.sku,
                'quantity': item.quantity,
                'cost_price': float(item.cost_price),
                'total_cost': as_float(item.total_cost),
            }
            for item in purchase.items
        ]
    return data
