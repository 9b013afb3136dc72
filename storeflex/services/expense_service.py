"""Expense service - operating expenses and product losses."""
import logging
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from storeflex.blueprints.metrics import record_ledger_operation
from storeflex.database import run_in_transaction
from storeflex.exceptions import BusinessLogicError, ValidationError
from storeflex.models import ActivityType, EXPENSE_TYPES, Expense, LOSS_EXPENSE_TYPE
from storeflex.services.activity_service import record_activity
from storeflex.services.cache_service import invalidate_ledger_views
from storeflex.services.product_service import adjust_stock, lock_products
from storeflex.utils.money import ZERO, as_float, quantize_money, to_decimal, to_quantity

logger = logging.getLogger(__name__)


def _parse_expense_date(value: Any) -> datetime:
    if value in (None, ''):
        return datetime.now()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.now().time())
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError('expense_date must be an ISO date (YYYY-MM-DD)')
    return parsed


def create_expense(session, tenant_id: int, payload: Dict[str, Any], user_id: Optional[int] = None) -> Expense:
    """
    Record an expense.

    For ``Lost / Damaged Product`` a product and quantity are required: the stock
    is written off and the amount is cost_price x quantity.

    Raises:
        ValidationError: unknown type, bad amount or date
        InsufficientStockError: loss quantity above the stock on hand
    """
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')
    if not isinstance(payload, dict):
        raise ValidationError('Invalid request body')

    expense_type = (payload.get('expense_type') or payload.get('type') or '').strip()
    if expense_type not in EXPENSE_TYPES:
        raise ValidationError(f'Unknown expense type: {expense_type or "(empty)"}')
    description = (payload.get('description') or '').strip() or None
    expense_date = _parse_expense_date(payload.get('expense_date') or payload.get('date'))
    is_loss = expense_type == LOSS_EXPENSE_TYPE

    try:
        if is_loss:
            product_code = str(payload.get('product_id') or '').strip()
            if not product_code:
                raise ValidationError('A product is required for lost or damaged stock')
            quantity = to_quantity(payload.get('quantity'), 'quantity')
            amount = None
        else:
            amount = to_decimal(payload.get('amount'), 'amount')
            if amount <= 0:
                raise ValidationError('Amount must be greater than 0')
    except ValueError as e:
        raise ValidationError(str(e))

    def work(session):
        expense = Expense(
            tenant_id=tenant_id,
            expense_type=expense_type,
            description=description,
            expense_date=expense_date,
            created_by=user_id,
        )
        if not is_loss:
            expense.amount = quantize_money(amount)
            session.add(expense)
            session.flush()
            return expense

        product = lock_products(session, tenant_id, [product_code])[product_code]
        adjust_stock(product, -quantity)
        loss_amount = quantize_money(Decimal(str(product.cost_price)) * quantity)
        expense.amount = loss_amount
        expense.product_id = product.id
        expense.quantity = quantity
        session.add(expense)
        session.flush()

        record_activity(
            session, tenant_id, ActivityType.LOSS,
            f"Loss of {quantity} unit(s) of {product.name} recorded",
            product_id=product.id,
            product_name=product.name,
            reference_code=product.code,
            amount=loss_amount,
            user_id=user_id,
        )
        return expense

    expense = run_in_transaction(session, work)
    invalidate_ledger_views(tenant_id)
    record_ledger_operation('expense', expense.amount)
    logger.info(f"Expense {expense.id} ({expense.expense_type}) tenant={tenant_id}: {expense.amount}")
    return expense


def list_expenses(session, tenant_id: Optional[int], expense_type: Optional[str] = None) -> List[Expense]:
    """Expenses newest first."""
    if not tenant_id:
        return []
    query = session.query(Expense).filter(Expense.tenant_id == tenant_id)
    if expense_type:
        query = query.filter(Expense.expense_type == expense_type)
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


def total_expenses(session, tenant_id: int, start: Optional[datetime] = None,
                   end: Optional[datetime] = None) -> Decimal:
    """Sum of expenses in [start, end)."""
    query = session.query(func.coalesce(func.sum(Expense.amount), 0)).filter(Expense.tenant_id == tenant_id)
    if start is not None:
        query = query.filter(Expense.expense_date >= start)
    if end is not None:
        query = query.filter(Expense.expense_date < end)
    return Decimal(str(query.scalar() or 0))


def expense_summary(session, tenant_id: Optional[int]) -> Dict[str, Any]:
    """Totals per expense type plus the grand total."""
    if not tenant_id:
        return {'by_type': {}, 'total': ZERO}
    rows = session.query(
        Expense.expense_type, func.sum(Expense.amount)
    ).filter(
        Expense.tenant_id == tenant_id
    ).group_by(Expense.expense_type).all()

    by_type = {expense_type: quantize_money(total or 0) for expense_type, total in rows}
    return {
        'by_type': by_type,
        'total': quantize_money(sum(by_type.values(), ZERO)),
    }


def expense_to_dict(expense: Expense) -> Dict[str, Any]:
    return {
        'id': expense.id,
        'expense_type': expense.expense_type,
        'description': expense.description,
        'amount': as_float(expense.amount),
        'expense_date': expense.expense_date.isoformat() if expense.expense_date else None,
        'product_id': expense.product_id,
        'quantity': expense.quantity,
    }
