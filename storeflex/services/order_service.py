"""
Sales and purchase orders - Multi-Tenant.

An order stages a cart without touching stock or balances. Processing it runs
the sale/purchase work in one unit of work and marks the order processed.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from storeflex.blueprints.metrics import record_ledger_operation
from storeflex.database import run_in_transaction
from storeflex.exceptions import (
    BusinessLogicError, CustomerNotFoundError, NotFoundError, SupplierNotFoundError, ValidationError
)
from storeflex.models import (
    ActivityType, Customer, OrderItem, OrderStatus, PaymentMethod, PurchaseOrder, SalesOrder,
    Supplier, TradeOrder
)
from storeflex.services.activity_service import record_activity
from storeflex.services.cache_service import invalidate_ledger_views
from storeflex.services.checkout_service import PRICE_FIELDS, parse_cart_items, parse_checkout
from storeflex.services.party_service import lock_party
from storeflex.services.product_service import lock_products
from storeflex.services.purchase_service import purchase_work
from storeflex.services.sales_service import sale_work
from storeflex.services.sequence_service import allocate_code
from storeflex.utils.money import ZERO, as_float, format_money, quantize_money

logger = logging.getLogger(__name__)

_ORDER_KINDS = {
    'sale': (SalesOrder, Customer, 'customer_id', 'sales_orders'),
    'purchase': (PurchaseOrder, Supplier, 'supplier_id', 'purchase_orders'),
}

PAYMENT_FIELDS = (
    'payment_method', 'amount_paid', 'check_number', 'tax_percentage',
    'discount_amount', 'service_charge',
)


def create_sales_order(session, tenant_id: int, payload: Dict[str, Any], user_id: Optional[int] = None) -> SalesOrder:
    """Stage a sale for a registered customer."""
    return _create_order(session, tenant_id, 'sale', payload, user_id)


def create_purchase_order(session, tenant_id: int, payload: Dict[str, Any],
                          user_id: Optional[int] = None) -> PurchaseOrder:
    """Stage a purchase from a supplier."""
    return _create_order(session, tenant_id, 'purchase', payload, user_id)


def _create_order(session, tenant_id: int, kind: str, payload: Dict[str, Any], user_id: Optional[int]) -> TradeOrder:
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')
    if not isinstance(payload, dict):
        raise ValidationError('Invalid request body')

    model, party_model, party_field, entity = _ORDER_KINDS[kind]
    lines = parse_cart_items(payload.get('items'), kind)
    party_code = str(payload.get(party_field) or '').strip()
    if not party_code:
        raise (CustomerNotFoundError() if party_model is Customer else SupplierNotFoundError())

    def work(session):
        # CRITICAL: tenant filter
        party = session.query(party_model).filter(
            party_model.tenant_id == tenant_id,
            party_model.code == party_code,
            party_model.active == True  # noqa: E712
        ).first()
        if not party:
            raise (CustomerNotFoundError(party_code) if party_model is Customer
                   else SupplierNotFoundError(party_code))

        products = lock_products(session, tenant_id, [line['product_code'] for line in lines])
        total = quantize_money(sum((line['line_total'] for line in lines), ZERO))

        code = allocate_code(session, tenant_id, entity)
        order = model(
            tenant_id=tenant_id,
            code=code,
            party_code=party.code,
            party_name=party.name,
            total_amount=total,
            status=OrderStatus.PENDING.value,
            order_date=datetime.now(),
            created_by=user_id,
        )
        setattr(order, party_field, party.id)
        for line in lines:
            product = products[line['product_code']]
            order.items.append(OrderItem(
                product_id=product.id,
                product_code=product.code,
                name=product.name,
                quantity=line['quantity'],
                unit_price=line['unit_price'],
                total_amount=line['line_total'],
            ))
        session.add(order)
        session.flush()

        fields = {'customer_id': party.id} if party_model is Customer else {'supplier_id': party.id}
        record_activity(
            session, tenant_id, ActivityType.ORDER_CREATED,
            f"{'Sales' if kind == 'sale' else 'Purchase'} order {code} for {party.name} ({format_money(total)})",
            reference_code=code,
            amount=total,
            user_id=user_id,
            **fields
        )
        return order

    order = run_in_transaction(session, work)
    logger.info(f"Order {order.code} created for tenant {tenant_id}: total={order.total_amount}")
    return order


def process_order(session, tenant_id: int, code: str, payment: Optional[Dict[str, Any]] = None,
                  user_id: Optional[int] = None) -> TradeOrder:
    """
    Turn a pending order into a committed sale or purchase.

    ``payment`` may carry payment_method, amount_paid, check_number and the bill
    breakdown; by default the order is booked on credit with nothing paid.

    Raises:
        NotFoundError: unknown order
        BusinessLogicError: order already processed
        InsufficientStockError / InvalidPaymentAmountError: from the processors
    """
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')
    payment = payment or {}

    def work(session):
        order = session.query(TradeOrder).filter(
            TradeOrder.tenant_id == tenant_id,
            TradeOrder.code == code
        ).with_for_update().first()
        if not order:
            raise NotFoundError(f'Order {code} not found')
        if not order.is_pending:
            raise BusinessLogicError(f'Order {code} has already been processed')

        kind = 'sale' if isinstance(order, SalesOrder) else 'purchase'
        _, party_model, party_field, _ = _ORDER_KINDS[kind]
        # Party must still exist; raises CustomerNotFoundError / SupplierNotFoundError
        lock_party(session, party_model, tenant_id, order.party_code)

        payload = {
            'items': [
                {
                    'product_id': item.product_code,
                    'quantity': item.quantity,
                    PRICE_FIELDS[kind]: str(item.unit_price),
                }
                for item in order.items
            ],
            party_field: order.party_code,
            'payment_method': PaymentMethod.CREDIT.value,
        }
        for field in PAYMENT_FIELDS:
            if payment.get(field) is not None:
                payload[field] = payment[field]
        # Cash and check default to the bill total in parse_checkout
        if str(payload['payment_method']).lower() == PaymentMethod.CREDIT.value:
            payload.setdefault('amount_paid', '0')
        checkout = parse_checkout(payload, kind)

        if kind == 'sale':
            record = sale_work(session, tenant_id, checkout, user_id)
        else:
            record = purchase_work(session, tenant_id, checkout, user_id)

        order.status = OrderStatus.PROCESSED.value
        order.processed_at = datetime.now()
        order.transaction_code = record.code
        return order

    order = run_in_transaction(session, work)
    invalidate_ledger_views(tenant_id)
    record_ledger_operation('order_processed', order.total_amount)
    logger.info(f"Order {code} processed for tenant {tenant_id} as {order.transaction_code}")
    return order


def fetch_pending_orders(session, tenant_id: Optional[int]) -> List[TradeOrder]:
    """Pending sales and purchase orders, newest first."""
    if not tenant_id:
        return []
    return session.query(TradeOrder).filter(
        TradeOrder.tenant_id == tenant_id,
        TradeOrder.status == OrderStatus.PENDING.value
    ).order_by(TradeOrder.order_date.desc(), TradeOrder.id.desc()).all()


def order_to_dict(order: TradeOrder) -> Dict[str, Any]:
    return {
        'id': order.code,
        'order_type': order.order_type,
        'party_id': order.party_code,
        'party_name': order.party_name,
        'total_amount': as_float(order.total_amount),
        'status': order.status,
        'order_date': order.order_date.isoformat() if order.order_date else None,
        'processed_at': order.processed_at.isoformat() if order.processed_at else None,
        'transaction_id': order.transaction_code,
        'items': [
            {
                'id': item.product_code,
                'name': item.name,
                'quantity': item.quantity,
                'unit_price': float(Decimal(str(item.unit_price))),
                'total_amount': as_float(item.total_amount),
            }
            for item in order.items
        ],
    }
