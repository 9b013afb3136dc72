"""
Sales service with transactional logic - Multi-Tenant.
Handles checkout (stock decrement, customer balance, payment status) and sale deletion.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from storeflex.blueprints.metrics import record_ledger_operation
from storeflex.database import run_in_transaction
from storeflex.exceptions import BusinessLogicError, CustomerNotFoundError, InvalidPaymentAmountError, NotFoundError
from storeflex.models import (
    ActivityType, Customer, PaymentMethod, Sale, SaleItem, SaleReturn
)
from storeflex.services.activity_service import record_activity
from storeflex.services.cache_service import invalidate_ledger_views
from storeflex.services.checkout_service import (
    classify_payment_status, line_count_label, parse_checkout, requested_quantities
)
from storeflex.services.party_service import lock_party
from storeflex.services.product_service import adjust_stock, ensure_stock_available, lock_products
from storeflex.services.sequence_service import allocate_code
from storeflex.utils.money import EPSILON, ZERO, as_float, format_money, quantize_money

logger = logging.getLogger(__name__)

WALK_IN_CUSTOMER = 'Walk-in Customer'


def create_sale(session, tenant_id: int, payload: Dict[str, Any], user_id: Optional[int] = None) -> Sale:
    """
    Record a POS sale atomically.

    Args:
        session: Database session
        tenant_id: Tenant ID
        payload: items, customer_id?, tax/discount/service charge, payment_method,
            amount_paid, check_number, previous_balance?
        user_id: Cashier

    Returns:
        The committed Sale

    Raises:
        ValidationError: malformed cart (before the transaction)
        InvalidPaymentAmountError: credit payment above the total payable
        InsufficientStockError: a line asks for more than is in stock
        CustomerNotFoundError: unknown customer code
    """
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')

    checkout = parse_checkout(payload, 'sale')
    method = checkout['payment_method']
    total = checkout['totals']['total_amount']
    amount_paid = checkout['amount_paid']

    if method == PaymentMethod.CREDIT and not checkout['party_code']:
        raise BusinessLogicError('A registered customer is required for credit sales')

    # Caller-side check with the balance the cashier saw; re-checked under lock below
    if method == PaymentMethod.CREDIT and checkout['previous_balance'] is not None:
        _check_credit_payment(amount_paid, total, checkout['previous_balance'])

    sale = run_in_transaction(session, lambda s: sale_work(s, tenant_id, checkout, user_id))

    invalidate_ledger_views(tenant_id)
    record_ledger_operation('sale', sale.total_amount)
    logger.info(
        f"Sale {sale.code} recorded for tenant {tenant_id}: total={sale.total_amount} "
        f"method={sale.payment_method} status={sale.payment_status}"
    )
    return sale


def sale_work(session, tenant_id: int, checkout: Dict[str, Any], user_id: Optional[int] = None) -> Sale:
    """
    Unit-of-work body of a sale. Runs inside ``run_in_transaction``; also
    reused when a sales order is processed.
    """
    lines = checkout['lines']
    totals = checkout['totals']
    method = checkout['payment_method']
    amount_paid = checkout['amount_paid']
    total = totals['total_amount']

    # 1. Lock products and validate stock for every line before writing any
    requested = requested_quantities(lines)
    products = lock_products(session, tenant_id, requested.keys())
    for product in products.values():
        if not product.active:
            raise BusinessLogicError(f'Product "{product.name}" is no longer available')
    ensure_stock_available(products, requested)

    # 2. Decrement stock
    for code, qty in requested.items():
        adjust_stock(products[code], -qty)

    # 3. Customer balance (live value under lock)
    customer = None
    previous_balance = ZERO
    if checkout['party_code']:
        customer = lock_party(session, Customer, tenant_id, checkout['party_code'])
        if not customer.active:
            raise CustomerNotFoundError(checkout['party_code'])
        previous_balance = Decimal(str(customer.credit_balance or 0))
        if method == PaymentMethod.CREDIT:
            _check_credit_payment(amount_paid, total, previous_balance)
        new_balance = max(ZERO, previous_balance + total - amount_paid)
        customer.credit_balance = quantize_money(new_balance)
    else:
        new_balance = max(ZERO, total - amount_paid)

    # 4. Payment status
    payment_status = classify_payment_status(method, new_balance)

    # 5. Sale with item snapshots
    code = allocate_code(session, tenant_id, 'sales')
    sale = Sale(
        tenant_id=tenant_id,
        code=code,
        customer_id=customer.id if customer else None,
        customer_name=customer.name if customer else WALK_IN_CUSTOMER,
        sale_date=datetime.now(),
        subtotal=totals['subtotal'],
        tax_percentage=totals['tax_percentage'],
        tax_amount=totals['tax_amount'],
        discount_amount=totals['discount_amount'],
        service_charge=totals['service_charge'],
        total_amount=total,
        payment_method=method.value,
        amount_paid=amount_paid,
        previous_balance=quantize_money(previous_balance),
        credit_amount=quantize_money(new_balance),
        check_number=checkout['check_number'] if method == PaymentMethod.CHECK else None,
        payment_status=payment_status.value,
        created_by=user_id,
    )
    for line in lines:
        product = products[line['product_code']]
        sale.items.append(SaleItem(
            product_id=product.id,
            product_code=product.code,
            name=product.name,
            sku=product.sku,
            sub_category=product.sub_category,
            quantity=line['quantity'],
            price_per_unit=line['unit_price'],
            cost_price=product.cost_price,
            total_amount=line['line_total'],
        ))
    session.add(sale)
    session.flush()

    # 6. Activity
    record_activity(
        session, tenant_id, ActivityType.SALE,
        f"Sale to {sale.customer_name} for {format_money(total)}",
        product_name=line_count_label(lines),
        customer_id=sale.customer_id,
        reference_code=code,
        amount=total,
        user_id=user_id,
    )
    return sale


def delete_sale(session, tenant_id: int, code: str) -> None:
    """
    Delete a sale, putting its items back in stock and undoing its effect on the
    customer balance.

    Raises:
        NotFoundError: unknown sale
        BusinessLogicError: the sale already has returns recorded
    """
    def work(session):
        sale = session.query(Sale).filter(
            Sale.tenant_id == tenant_id,
            Sale.code == code
        ).with_for_update().first()
        if not sale:
            raise NotFoundError(f'Sale {code} not found')

        has_returns = session.query(SaleReturn.id).filter(
            SaleReturn.tenant_id == tenant_id,
            SaleReturn.sale_id == sale.id
        ).first()
        if has_returns:
            raise BusinessLogicError(f'Sale {code} has returns recorded and cannot be deleted')

        # 1. Restore stock
        restock: Dict[str, int] = {}
        for item in sale.items:
            restock[item.product_code] = restock.get(item.product_code, 0) + item.quantity
        products = lock_products(session, tenant_id, restock.keys())
        for product_code, qty in restock.items():
            adjust_stock(products[product_code], qty)

        # 2. Undo the net balance change of this sale
        if sale.customer_id:
            customer = session.query(Customer).filter(
                Customer.tenant_id == tenant_id,
                Customer.id == sale.customer_id
            ).with_for_update().first()
            if customer:
                delta = Decimal(str(sale.credit_amount)) - Decimal(str(sale.previous_balance))
                balance = Decimal(str(customer.credit_balance or 0)) - delta
                customer.credit_balance = quantize_money(max(ZERO, balance))

        record_activity(
            session, tenant_id, ActivityType.DELETE,
            f"Sale {code} deleted and stock restored",
            customer_id=sale.customer_id,
            reference_code=code,
            amount=sale.total_amount,
        )
        session.delete(sale)

    run_in_transaction(session, work)
    invalidate_ledger_views(tenant_id)
    record_ledger_operation('sale_delete')
    logger.info(f"Sale {code} deleted for tenant {tenant_id}")


def get_sale(session, tenant_id: Optional[int], code: str) -> Sale:
    sale = None
    if tenant_id:
        sale = session.query(Sale).filter(Sale.tenant_id == tenant_id, Sale.code == code).first()
    if not sale:
        raise NotFoundError(f'Sale {code} not found')
    return sale


def list_sales(session, tenant_id: Optional[int], customer_code: Optional[str] = None,
               limit: Optional[int] = None) -> List[Sale]:
    """Sales newest first, optionally for one customer."""
    if not tenant_id:
        return []
    query = session.query(Sale).filter(Sale.tenant_id == tenant_id)
    if customer_code:
        query = query.join(Customer, Sale.customer_id == Customer.id).filter(
            Customer.tenant_id == tenant_id,
            Customer.code == customer_code
        )
    query = query.order_by(Sale.sale_date.desc(), Sale.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def sale_to_dict(sale: Sale, include_items: bool = True) -> Dict[str, Any]:
    data = {
        'id': sale.code,
        'customer_id': sale.customer.code if sale.customer else None,
        'customer_name': sale.customer_name,
        'sale_date': sale.sale_date.isoformat() if sale.sale_date else None,
        'subtotal': as_float(sale.subtotal),
        'tax_percentage': as_float(sale.tax_percentage),
        'tax_amount': as_float(sale.tax_amount),
        'discount_amount': as_float(sale.discount_amount),
        'service_charge': as_float(sale.service_charge),
        'total_amount': as_float(sale.total_amount),
        'payment_method': sale.payment_method,
        'amount_paid': as_float(sale.amount_paid),
        'previous_balance': as_float(sale.previous_balance),
        'credit_amount': as_float(sale.credit_amount),
        'check_number': sale.check_number,
        'payment_status': sale.payment_status,
    }
    if include_items:
        data['items'] = [
            {
                'id': item.product_code,
                'name': item.name,
                'sku': item.sku,
                'sub_category': item.sub_category,
                'quantity': item.quantity,
                'price_per_unit': as_float(item.price_per_unit),
                'total_amount': as_float(item.total_amount),
            }
            for item in sale.items
        ]
    return data


def _check_credit_payment(amount_paid: Decimal, total: Decimal, previous_balance: Decimal) -> None:
    total_payable = total + previous_balance
    if amount_paid > total_payable + EPSILON:
        raise InvalidPaymentAmountError(amount_paid, total_payable)
