"""
Moneyflow - receivables, payables and pending checks, and their settlement.

The aggregation is a cached, non-transactional read model. Settlements go
through ``run_in_transaction`` and re-read every balance under lock.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from storeflex.blueprints.metrics import record_ledger_operation
from storeflex.database import run_in_transaction
from storeflex.exceptions import BusinessLogicError, NotFoundError, ValidationError
from storeflex.models import (
    ActivityType, Customer, PaymentMethod, PaymentStatus, Purchase, Sale, Supplier
)
from storeflex.services.activity_service import record_activity
from storeflex.services.cache_service import cached_view, invalidate_ledger_views
from storeflex.services.party_service import lock_party, outstanding_amount, settle
from storeflex.utils.money import ZERO, format_money, quantize_money, to_decimal

logger = logging.getLogger(__name__)

RECEIVABLE = 'receivable'
PAYABLE = 'payable'

SETTLEMENT_STATUSES = ('paid', 'rejected')


# =====================================================
# AGGREGATION
# =====================================================

def fetch_moneyflow_data(session, tenant_id: Optional[int]) -> Dict[str, Any]:
    """
    Outstanding balances and pending checks for a tenant.

    Returns:
        Dict with receivables_total, payables_total, pending_checks_total and
        transactions (entries, newest first). No tenant -> empty result.
    """
    if not tenant_id:
        return _empty_moneyflow()
    return cached_view(
        tenant_id, 'moneyflow', 'summary',
        lambda: _build_moneyflow(session, tenant_id),
        ttl_config_key='CACHE_MONEYFLOW_TTL'
    )


def _empty_moneyflow() -> Dict[str, Any]:
    return {
        'receivables_total': ZERO,
        'payables_total': ZERO,
        'pending_checks_total': ZERO,
        'transactions': [],
    }


def _build_moneyflow(session, tenant_id: int) -> Dict[str, Any]:
    entries = []
    receivables_total = ZERO
    payables_total = ZERO
    pending_checks_total = ZERO

    # Customers who owe the store
    customers = session.query(Customer).filter(
        Customer.tenant_id == tenant_id,
        Customer.credit_balance > 0
    ).all()
    for customer in customers:
        amount = Decimal(str(customer.credit_balance))
        receivables_total += amount
        entries.append(_party_entry(f'customer-receivable-{customer.code}', RECEIVABLE, customer, amount))

    # Suppliers: positive = store owes, negative = overpaid supplier owes the store
    suppliers = session.query(Supplier).filter(
        Supplier.tenant_id == tenant_id,
        Supplier.credit_balance != 0
    ).all()
    for supplier in suppliers:
        balance = Decimal(str(supplier.credit_balance))
        if balance > 0:
            payables_total += balance
            entries.append(_party_entry(f'supplier-payable-{supplier.code}', PAYABLE, supplier, balance))
        elif balance < 0:
            receivables_total += -balance
            entries.append(_party_entry(f'supplier-receivable-{supplier.code}', RECEIVABLE, supplier, -balance))

    # Checks waiting for clearance
    pending = PaymentStatus.PENDING_CHECK_CLEARANCE.value
    sales = session.query(Sale).filter(Sale.tenant_id == tenant_id, Sale.payment_status == pending).all()
    for sale in sales:
        # A pending check counts for its face value; any unpaid remainder is already in the party balance
        amount = Decimal(str(sale.amount_paid))
        pending_checks_total += amount
        entries.append({
            'id': f'sale-check-{sale.code}',
            'transaction_id': sale.code,
            'type': RECEIVABLE,
            'party_type': 'customer',
            'party_name': sale.customer_name,
            'party_id': sale.customer.code if sale.customer else None,
            'payment_method': PaymentMethod.CHECK.value,
            'amount': amount,
            'date': sale.sale_date,
            'check_number': sale.check_number,
        })

    purchases = session.query(Purchase).filter(
        Purchase.tenant_id == tenant_id,
        Purchase.payment_status == pending
    ).all()
    for purchase in purchases:
        # Face value of the check, not the bill total
        amount = Decimal(str(purchase.amount_paid))
        pending_checks_total += amount
        entries.append({
            'id': f'purchase-check-{purchase.code}',
            'transaction_id': purchase.code,
            'type': PAYABLE,
            'party_type': 'supplier',
            'party_name': purchase.supplier_name,
            'party_id': purchase.supplier.code if purchase.supplier else None,
            'payment_method': PaymentMethod.CHECK.value,
            'amount': amount,
            'date': purchase.purchase_date,
            'check_number': purchase.check_number,
        })

    entries.sort(key=lambda e: (e['date'] is not None, e['date']), reverse=True)
    for entry in entries:
        entry['date'] = entry['date'].isoformat() if entry['date'] else None

    return {
        'receivables_total': quantize_money(receivables_total),
        'payables_total': quantize_money(payables_total),
        'pending_checks_total': quantize_money(pending_checks_total),
        'transactions': entries,
    }


def _party_entry(entry_id: str, entry_type: str, party, amount: Decimal) -> Dict[str, Any]:
    return {
        'id': entry_id,
        'transaction_id': party.code,
        'type': entry_type,
        'party_type': party.party_type,
        'party_name': party.name,
        'party_id': party.code,
        'payment_method': PaymentMethod.CREDIT.value,
        'amount': quantize_money(amount),
        'date': party.updated_at or party.created_at,
        'check_number': None,
    }


# =====================================================
# SETTLEMENT
# =====================================================

def parse_settlement_entry(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate the moneyflow entry a settlement refers to.

    Credit entries need ``party_type`` and ``party_id``; check entries need
    ``party_type`` and ``transaction_id`` (sale code for customers, purchase
    code for suppliers).
    """
    if not isinstance(data, dict):
        raise ValidationError('Invalid moneyflow entry')

    method = (data.get('payment_method') or '').lower()
    if method not in (PaymentMethod.CREDIT.value, PaymentMethod.CHECK.value):
        raise ValidationError('Only credit and check entries can be settled')

    party_type = (data.get('party_type') or '').lower()
    if party_type not in ('customer', 'supplier'):
        raise ValidationError('party_type must be customer or supplier')

    reference_field = 'party_id' if method == PaymentMethod.CREDIT.value else 'transaction_id'
    reference = str(data.get(reference_field) or '').strip()
    if not reference:
        raise ValidationError(f'{reference_field} is required')

    return {
        'payment_method': PaymentMethod(method),
        'party_type': party_type,
        'reference': reference,
    }


def settle_payment(session, tenant_id: int, entry: Dict[str, Any], status: str,
                   amount: Any = None, user_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Settle a moneyflow entry.

    Args:
        session: Database session
        tenant_id: Tenant ID
        entry: Moneyflow entry (see parse_settlement_entry)
        status: 'paid' or 'rejected' ('rejected' only for checks)
        amount: Settlement amount for credit entries; defaults to the outstanding balance
        user_id: User recording the settlement

    Returns:
        Dict describing the outcome (reference, status, amount, balance for credit)

    Raises:
        InvalidSettlementAmountError: amount <= 0 or above outstanding (+ epsilon)
        BusinessLogicError: unsupported status, or a check no longer pending
    """
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')
    parsed = parse_settlement_entry(entry)
    status = (status or '').lower()
    if status not in SETTLEMENT_STATUSES:
        raise ValidationError("status must be 'paid' or 'rejected'")

    if amount is not None and amount != '':
        try:
            amount = to_decimal(amount, 'amount')
        except ValueError as e:
            raise ValidationError(str(e))
    else:
        amount = None

    if parsed['payment_method'] == PaymentMethod.CREDIT:
        if status != 'paid':
            raise BusinessLogicError('Credit balances can only be settled as paid')
        result = run_in_transaction(
            session, lambda s: _settle_credit(s, tenant_id, parsed, amount, user_id)
        )
        record_ledger_operation('credit_settlement', result['amount'])
    else:
        result = run_in_transaction(
            session, lambda s: _settle_check(s, tenant_id, parsed, status, user_id)
        )
        record_ledger_operation('check_settlement', result['amount'])

    invalidate_ledger_views(tenant_id)
    logger.info(f"Moneyflow settlement tenant={tenant_id}: {result}")
    return result


def _settle_credit(session, tenant_id: int, parsed: Dict[str, Any], amount: Optional[Decimal],
                   user_id: Optional[int]) -> Dict[str, Any]:
    model = Customer if parsed['party_type'] == 'customer' else Supplier
    party = lock_party(session, model, tenant_id, parsed['reference'])

    if amount is None:
        amount = outstanding_amount(party)
    balance_before = Decimal(str(party.credit_balance or 0))
    new_balance = settle(party, amount)

    # Direction: customers and overpaid suppliers pay the store; otherwise the store pays
    direction = 'from' if (model is Customer or balance_before < 0) else 'to'
    fields = {'customer_id': party.id} if model is Customer else {'supplier_id': party.id}
    record_activity(
        session, tenant_id, ActivityType.CREDIT_SETTLED,
        f"Credit payment of {format_money(amount)} {direction} {party.name} settled.",
        reference_code=party.code,
        amount=amount,
        user_id=user_id,
        **fields
    )
    return {
        'reference': party.code,
        'status': 'paid',
        'amount': amount,
        'credit_balance': new_balance,
    }


def _settle_check(session, tenant_id: int, parsed: Dict[str, Any], status: str,
                  user_id: Optional[int]) -> Dict[str, Any]:
    is_sale = parsed['party_type'] == 'customer'
    model = Sale if is_sale else Purchase
    record = session.query(model).filter(
        model.tenant_id == tenant_id,
        model.code == parsed['reference']
    ).with_for_update().first()
    if not record:
        raise NotFoundError(f"{'Sale' if is_sale else 'Purchase'} {parsed['reference']} not found")
    if record.payment_status != PaymentStatus.PENDING_CHECK_CLEARANCE.value:
        raise BusinessLogicError(f'Check on {record.code} is not pending clearance')

    cleared = status == 'paid'
    record.payment_status = PaymentStatus.PAID.value if cleared else PaymentStatus.REJECTED.value

    amount = Decimal(str(record.amount_paid))
    party_name = record.customer_name if is_sale else record.supplier_name
    direction = 'from' if is_sale else 'to'
    fields = {'customer_id': record.customer_id} if is_sale else {'supplier_id': record.supplier_id}
    record_activity(
        session, tenant_id,
        ActivityType.CHECK_CLEARED if cleared else ActivityType.CHECK_REJECTED,
        f"Check {direction} {party_name} for {format_money(amount)} was {'cleared' if cleared else 'rejected'}.",
        reference_code=record.code,
        amount=amount,
        user_id=user_id,
        **fields
    )
    return {
        'reference': record.code,
        'status': record.payment_status,
        'amount': amount,
    }
