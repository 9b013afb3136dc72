"""
Customers, suppliers and their credit balances.

Balance convention:
- Customer.credit_balance > 0: the customer owes the store. Sales floor it at 0.
- Supplier.credit_balance > 0: the store owes the supplier.
- Supplier.credit_balance < 0: the supplier owes the store (overpayment, returns).
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Type, Union

from storeflex.database import run_in_transaction
from storeflex.exceptions import (
    BusinessLogicError, CustomerNotFoundError, InvalidSettlementAmountError,
    SupplierNotFoundError, ValidationError
)
from storeflex.models import Customer, Supplier
from storeflex.services.cache_service import invalidate_ledger_views
from storeflex.services.sequence_service import allocate_code
from storeflex.utils.money import EPSILON, ZERO, as_float, quantize_money

logger = logging.getLogger(__name__)

Party = Union[Customer, Supplier]

_PARTY_CONFIG = {
    Customer: ('customers', CustomerNotFoundError),
    Supplier: ('suppliers', SupplierNotFoundError),
}


# =====================================================
# BALANCE LEDGER
# =====================================================

def lock_party(session, model: Type[Party], tenant_id: int, code: str) -> Party:
    """
    Lock a customer/supplier row FOR UPDATE.

    Raises:
        CustomerNotFoundError / SupplierNotFoundError
    """
    _, not_found = _PARTY_CONFIG[model]
    if not code:
        raise not_found()
    # CRITICAL: tenant filter
    party = session.query(model).filter(
        model.tenant_id == tenant_id,
        model.code == code
    ).with_for_update().first()
    if not party:
        raise not_found(code)
    return party


def apply_delta(party: Party, delta) -> Decimal:
    """Add a signed delta to the party balance and return the new balance."""
    party.credit_balance = quantize_money(Decimal(str(party.credit_balance or 0)) + Decimal(str(delta)))
    return party.credit_balance


def outstanding_amount(party: Party) -> Decimal:
    """Amount that a settlement may clear: the absolute balance."""
    return abs(Decimal(str(party.credit_balance or 0)))


def settle(party: Party, amount) -> Decimal:
    """
    Reduce an outstanding balance by ``amount``, moving it toward zero.

    Raises:
        InvalidSettlementAmountError: if amount <= 0 or above outstanding (+ epsilon)
    """
    amount = Decimal(str(amount))
    outstanding = outstanding_amount(party)
    if amount <= 0 or amount > outstanding + EPSILON:
        raise InvalidSettlementAmountError(amount, outstanding)

    balance = Decimal(str(party.credit_balance or 0))
    if balance >= 0:
        new_balance = balance - amount
    else:
        # Supplier owes the store: a settlement brings it back up to zero
        new_balance = balance + amount
    if abs(new_balance) <= EPSILON:
        new_balance = ZERO
    party.credit_balance = quantize_money(new_balance)
    return party.credit_balance


# =====================================================
# CRUD
# =====================================================

def _clean_party_data(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    cleaned = {}
    if not partial or 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            raise ValidationError('Name is required')
        cleaned['name'] = name
    if 'phone' in data:
        cleaned['phone'] = (data.get('phone') or '').strip() or None
    return cleaned


def _create_party(session, model: Type[Party], tenant_id: int, data: Dict[str, Any]) -> Party:
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')
    entity, _ = _PARTY_CONFIG[model]
    cleaned = _clean_party_data(data)

    def work(session):
        code = allocate_code(session, tenant_id, entity)
        party = model(tenant_id=tenant_id, code=code, credit_balance=ZERO, **cleaned)
        session.add(party)
        session.flush()
        return party

    party = run_in_transaction(session, work)
    logger.info(f"{model.__name__} {party.code} created for tenant {tenant_id}")
    return party


def _update_party(session, model: Type[Party], tenant_id: int, code: str, data: Dict[str, Any]) -> Party:
    cleaned = _clean_party_data(data, partial=True)

    def work(session):
        party = lock_party(session, model, tenant_id, code)
        if not party.active:
            raise _PARTY_CONFIG[model][1](code)
        for field, value in cleaned.items():
            setattr(party, field, value)
        return party

    party = run_in_transaction(session, work)
    invalidate_ledger_views(tenant_id)
    return party


def _delete_party(session, model: Type[Party], tenant_id: int, code: str) -> None:
    def work(session):
        party = lock_party(session, model, tenant_id, code)
        party.active = False

    run_in_transaction(session, work)
    invalidate_ledger_views(tenant_id)
    logger.info(f"{model.__name__} {code} deactivated for tenant {tenant_id}")


def _get_party(session, model: Type[Party], tenant_id: Optional[int], code: str) -> Party:
    party = None
    if tenant_id:
        party = session.query(model).filter(
            model.tenant_id == tenant_id,
            model.code == code,
            model.active == True  # noqa: E712
        ).first()
    if not party:
        raise _PARTY_CONFIG[model][1](code)
    return party


def _list_parties(session, model: Type[Party], tenant_id: Optional[int]) -> List[Party]:
    if not tenant_id:
        return []
    return session.query(model).filter(
        model.tenant_id == tenant_id,
        model.active == True  # noqa: E712
    ).order_by(model.created_at.desc(), model.id.desc()).all()


def create_customer(session, tenant_id: int, data: Dict[str, Any]) -> Customer:
    return _create_party(session, Customer, tenant_id, data)


def update_customer(session, tenant_id: int, code: str, data: Dict[str, Any]) -> Customer:
    return _update_party(session, Customer, tenant_id, code, data)


def delete_customer(session, tenant_id: int, code: str) -> None:
    _delete_party(session, Customer, tenant_id, code)


def get_customer(session, tenant_id: Optional[int], code: str) -> Customer:
    return _get_party(session, Customer, tenant_id, code)


def list_customers(session, tenant_id: Optional[int]) -> List[Customer]:
    """Active customers, newest first."""
    return _list_parties(session, Customer, tenant_id)


def create_supplier(session, tenant_id: int, data: Dict[str, Any]) -> Supplier:
    return _create_party(session, Supplier, tenant_id, data)


def update_supplier(session, tenant_id: int, code: str, data: Dict[str, Any]) -> Supplier:
    return _update_party(session, Supplier, tenant_id, code, data)


def delete_supplier(session, tenant_id: int, code: str) -> None:
    _delete_party(session, Supplier, tenant_id, code)


def get_supplier(session, tenant_id: Optional[int], code: str) -> Supplier:
    return _get_party(session, Supplier, tenant_id, code)


def list_suppliers(session, tenant_id: Optional[int]) -> List[Supplier]:
    """Active suppliers, newest first."""
    return _list_parties(session, Supplier, tenant_id)


def party_to_dict(party: Party) -> Dict[str, Any]:
    return {
        'id': party.code,
        'name': party.name,
        'phone': party.phone,
        'credit_balance': as_float(party.credit_balance),
        'created_at': party.created_at.isoformat() if party.created_at else None,
    }
