"""
Cart and payment validation shared by the sales and purchase processors.

Everything here runs before a transaction opens: invalid input raises
ValidationError and touches nothing.
"""
from decimal import Decimal
from typing import Any, Dict, List

from storeflex.exceptions import ValidationError
from storeflex.models import PaymentMethod, PaymentStatus
from storeflex.utils.money import (
    EPSILON, compute_bill_totals, money_equal, quantize_cost, quantize_money, to_decimal, to_quantity
)

# Cart price field per transaction kind
PRICE_FIELDS = {
    'sale': 'price_per_unit',
    'purchase': 'cost_price',
}

TOTAL_FIELDS = ('subtotal', 'tax_amount', 'total_amount')


def parse_cart_items(raw_items: Any, kind: str) -> List[Dict[str, Any]]:
    """
    Validate cart lines.

    Each line needs ``product_id`` (product code), ``quantity`` and the unit
    price (``price_per_unit`` for sales, ``cost_price`` for purchases). A
    supplied ``total_amount`` must equal quantity x unit price.

    Returns:
        List of dicts: product_code, quantity, unit_price, line_total
    """
    price_field = PRICE_FIELDS[kind]
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError('The cart is empty')

    lines = []
    for index, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f'Cart line {index} is malformed')
        code = str(raw.get('product_id') or raw.get('id') or '').strip()
        if not code:
            raise ValidationError(f'Cart line {index}: product_id is required')
        try:
            quantity = to_quantity(raw.get('quantity'), f'Cart line {index}: quantity')
            unit_price = to_decimal(raw.get(price_field), f'Cart line {index}: {price_field}')
        except ValueError as e:
            raise ValidationError(str(e))
        if unit_price < 0:
            raise ValidationError(f'Cart line {index}: {price_field} cannot be negative')

        line_total = quantize_money(unit_price * quantity)
        supplied_total = raw.get('total_amount', raw.get('total_cost'))
        if supplied_total is not None:
            try:
                supplied_total = to_decimal(supplied_total, f'Cart line {index}: total')
            except ValueError as e:
                raise ValidationError(str(e))
            if not money_equal(supplied_total, line_total):
                raise ValidationError(f'Cart line {index}: total does not match quantity x price')

        lines.append({
            'product_code': code,
            'quantity': quantity,
            'unit_price': quantize_cost(unit_price) if kind == 'purchase' else quantize_money(unit_price),
            'line_total': line_total,
        })
    return lines


def parse_checkout(payload: Dict[str, Any], kind: str) -> Dict[str, Any]:
    """
    Validate a sale/purchase request body.

    Returns:
        Dict with lines, totals (see compute_bill_totals), payment_method,
        amount_paid, check_number, party_code and previous_balance (caller's
        view, may be None).
    """
    if not isinstance(payload, dict):
        raise ValidationError('Invalid request body')

    lines = parse_cart_items(payload.get('items'), kind)

    try:
        tax_percentage = to_decimal(payload.get('tax_percentage', 0) or 0, 'tax_percentage')
        discount_amount = to_decimal(payload.get('discount_amount', 0) or 0, 'discount_amount')
        service_charge = to_decimal(payload.get('service_charge', 0) or 0, 'service_charge')
    except ValueError as e:
        raise ValidationError(str(e))
    if tax_percentage < 0 or discount_amount < 0 or service_charge < 0:
        raise ValidationError('Tax, discount and service charge cannot be negative')

    totals = compute_bill_totals(
        (line['line_total'] for line in lines), tax_percentage, discount_amount, service_charge
    )
    for field in TOTAL_FIELDS:
        if payload.get(field) is not None:
            try:
                supplied = to_decimal(payload[field], field)
            except ValueError as e:
                raise ValidationError(str(e))
            if not money_equal(supplied, totals[field]):
                raise ValidationError(f'{field} does not match the cart ({totals[field]})')

    method_raw = (payload.get('payment_method') or PaymentMethod.CASH.value).lower()
    try:
        payment_method = PaymentMethod(method_raw)
    except ValueError:
        raise ValidationError(f'Unknown payment method: {method_raw}')

    check_number = (payload.get('check_number') or '').strip() or None
    if payment_method == PaymentMethod.CHECK and not check_number:
        raise ValidationError('Check number is required for check payments')

    default_paid = Decimal('0') if payment_method == PaymentMethod.CREDIT else totals['total_amount']
    try:
        amount_paid = to_decimal(payload.get('amount_paid', default_paid), 'amount_paid')
        previous_balance = payload.get('previous_balance')
        if previous_balance is not None:
            previous_balance = to_decimal(previous_balance, 'previous_balance')
    except ValueError as e:
        raise ValidationError(str(e))
    if amount_paid < 0:
        raise ValidationError('Amount paid cannot be negative')

    party_field = 'customer_id' if kind == 'sale' else 'supplier_id'
    party_code = str(payload.get(party_field) or '').strip() or None

    return {
        'lines': lines,
        'totals': totals,
        'payment_method': payment_method,
        'amount_paid': quantize_money(amount_paid),
        'check_number': check_number,
        'party_code': party_code,
        'previous_balance': previous_balance,
    }


def requested_quantities(lines: List[Dict[str, Any]]) -> Dict[str, int]:
    """Total quantity per product code (a product may appear on several lines)."""
    requested: Dict[str, int] = {}
    for line in lines:
        requested[line['product_code']] = requested.get(line['product_code'], 0) + line['quantity']
    return requested


def classify_payment_status(payment_method: PaymentMethod, resulting_balance: Decimal) -> PaymentStatus:
    """
    paid by default; partial for credit with a balance left; checks wait for clearance.
    """
    if payment_method == PaymentMethod.CHECK:
        return PaymentStatus.PENDING_CHECK_CLEARANCE
    if payment_method == PaymentMethod.CREDIT and resulting_balance > EPSILON:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PAID


def line_count_label(lines: List[Dict[str, Any]]) -> str:
    count = len(lines)
    return f"{count} item(s)"
