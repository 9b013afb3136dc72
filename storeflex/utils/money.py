"""Money and quantity helpers shared by the ledger services."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional, Union

# Tolerance used wherever two money amounts are compared.
EPSILON = Decimal('0.001')

CENTS = Decimal('0.01')
COST_PLACES = Decimal('0.0001')
ZERO = Decimal('0')

Number = Union[int, float, Decimal, str]


def to_decimal(value: Any, field: str = 'value') -> Decimal:
    """
    Convert user input to Decimal.

    Floats go through ``str`` so 0.1 stays 0.1.

    Raises:
        ValueError: if the value is empty or not a number.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError(f'{field} is required')
    if isinstance(value, bool):
        raise ValueError(f'{field} must be a number')
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f'{field} must be a number')
    if not result.is_finite():
        raise ValueError(f'{field} must be a number')
    return result


def to_quantity(value: Any, field: str = 'quantity') -> int:
    """Parse a strictly positive whole quantity."""
    number = to_decimal(value, field)
    if number != number.to_integral_value():
        raise ValueError(f'{field} must be a whole number')
    if number <= 0:
        raise ValueError(f'{field} must be greater than 0')
    return int(number)


def quantize_money(value: Number) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def quantize_cost(value: Number) -> Decimal:
    return Decimal(str(value)).quantize(COST_PLACES, rounding=ROUND_HALF_UP)


def money_equal(a: Number, b: Number, tolerance: Decimal = Decimal('0.01')) -> bool:
    return abs(Decimal(str(a)) - Decimal(str(b))) <= tolerance


def compute_bill_totals(line_totals: Iterable[Number], tax_percentage: Number = 0,
                        discount_amount: Number = 0, service_charge: Number = 0) -> dict:
    """
    Totals breakdown for a cart.

    tax = subtotal * tax% / 100
    total = max(0, subtotal + tax + service_charge - discount)
    """
    subtotal = sum((Decimal(str(x)) for x in line_totals), ZERO)
    tax_percentage = Decimal(str(tax_percentage))
    discount_amount = Decimal(str(discount_amount))
    service_charge = Decimal(str(service_charge))
    tax_amount = subtotal * tax_percentage / Decimal('100')
    total = max(ZERO, subtotal + tax_amount + service_charge - discount_amount)
    return {
        'subtotal': quantize_money(subtotal),
        'tax_percentage': tax_percentage.quantize(CENTS),
        'tax_amount': quantize_money(tax_amount),
        'discount_amount': quantize_money(discount_amount),
        'service_charge': quantize_money(service_charge),
        'total_amount': quantize_money(total),
    }


def as_float(value: Optional[Number]) -> Optional[float]:
    """JSON-friendly money value."""
    if value is None:
        return None
    return float(Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP))


def format_money(value: Optional[Number], currency: Optional[str] = None) -> str:
    """Format an amount the way activity details and receipts show it (``LKR 1234.50``)."""
    amount = quantize_money(value or 0)
    currency = currency or configured_currency()
    return f"{currency} {amount:.2f}"


def configured_currency() -> str:
    from flask import current_app, has_app_context
    if has_app_context():
        return current_app.config.get('CURRENCY', 'LKR')
    return 'LKR'


def jsonable(value: Any) -> Any:
    """Recursively turn Decimals into 2-place floats for JSON responses."""
    if isinstance(value, Decimal):
        return as_float(value)
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return value
