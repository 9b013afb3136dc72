"""
Unit tests for the sales processor.
"""

from decimal import Decimal

import pytest

from storeflex.exceptions import (
    BusinessLogicError, CustomerNotFoundError, InsufficientStockError, InvalidPaymentAmountError,
    ValidationError
)
from storeflex.models import Activity, ActivityType, Customer, Product, Sale
from storeflex.services.return_service import create_sale_return
from storeflex.services.sales_service import create_sale, delete_sale, get_sale, list_sales


def _cart(product, quantity, price=None):
    return {'product_id': product.code, 'quantity': quantity,
            'price_per_unit': str(price if price is not None else product.selling_price)}


class TestCreateSale:
    """Tests for committing a sale."""

    def test_cash_sale_decrements_stock(self, session, tenant, make_product):
        product = make_product(stock=10, selling_price='150')
        sale = create_sale(session, tenant.id, {'items': [_cart(product, 3)]})

        assert sale.code == 'sale000001'
        assert sale.total_amount == Decimal('450.00')
        assert sale.amount_paid == Decimal('450.00')
        assert sale.payment_status == 'paid'
        assert sale.customer_name == 'Walk-in Customer'
        assert session.get(Product, product.id).stock == 7

    def test_items_snapshot_name_and_cost(self, session, tenant, make_product):
        product = make_product('Dhal', stock=5, cost_price='80', selling_price='100')
        sale = create_sale(session, tenant.id, {'items': [_cart(product, 2)]})

        item = sale.items[0]
        assert item.name == 'Dhal'
        assert item.product_code == product.code
        assert item.cost_price == Decimal('80.0000')
        assert item.total_amount == Decimal('200.00')

    def test_bill_breakdown(self, session, tenant, make_product):
        product = make_product(stock=10, selling_price='100')
        sale = create_sale(session, tenant.id, {
            'items': [_cart(product, 2)],
            'tax_percentage': '10',
            'discount_amount': '15',
            'service_charge': '5',
        })
        assert sale.subtotal == Decimal('200.00')
        assert sale.tax_amount == Decimal('20.00')
        assert sale.total_amount == Decimal('210.00')

    def test_credit_sale_updates_balance(self, session, tenant, make_product, make_customer):
        """prev 0, total 1000, paid 400 -> balance 600, partial."""
        product = make_product(stock=10, selling_price='500')
        customer = make_customer()
        sale = create_sale(session, tenant.id, {
            'items': [_cart(product, 2)],
            'customer_id': customer.code,
            'payment_method': 'credit',
            'amount_paid': '400',
        })

        assert sale.payment_status == 'partial'
        assert sale.credit_amount == Decimal('600.00')
        assert sale.previous_balance == Decimal('0.00')
        assert session.get(Customer, customer.id).credit_balance == Decimal('600.00')

    def test_credit_sale_can_pay_down_previous_balance(self, session, tenant, make_product, make_customer):
        product = make_product(stock=10, selling_price='100')
        customer = make_customer(balance='300')
        sale = create_sale(session, tenant.id, {
            'items': [_cart(product, 1)],
            'customer_id': customer.code,
            'payment_method': 'credit',
            'amount_paid': '400',
        })
        assert sale.payment_status == 'paid'
        assert session.get(Customer, customer.id).credit_balance == Decimal('0.00')

    def test_credit_payment_above_total_payable(self, session, tenant, make_product, make_customer):
        product = make_product(stock=10, selling_price='100')
        customer = make_customer(balance='50')
        with pytest.raises(InvalidPaymentAmountError):
            create_sale(session, tenant.id, {
                'items': [_cart(product, 1)],
                'customer_id': customer.code,
                'payment_method': 'credit',
                'amount_paid': '151',
            })
        assert session.get(Product, product.id).stock == 10
        assert session.query(Sale).count() == 0

    def test_credit_sale_requires_customer(self, session, tenant, make_product):
        product = make_product()
        with pytest.raises(BusinessLogicError):
            create_sale(session, tenant.id, {'items': [_cart(product, 1)], 'payment_method': 'credit'})

    def test_check_sale_waits_for_clearance(self, session, tenant, make_product, make_customer):
        product = make_product(selling_price='100')
        customer = make_customer()
        sale = create_sale(session, tenant.id, {
            'items': [_cart(product, 1)],
            'customer_id': customer.code,
            'payment_method': 'check',
            'check_number': 'CHK-1',
        })
        assert sale.payment_status == 'pending_check_clearance'
        assert sale.check_number == 'CHK-1'

    def test_check_number_required(self, session, tenant, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            create_sale(session, tenant.id, {'items': [_cart(product, 1)], 'payment_method': 'check'})

    def test_unknown_customer(self, session, tenant, make_product):
        product = make_product()
        with pytest.raises(CustomerNotFoundError):
            create_sale(session, tenant.id, {'items': [_cart(product, 1)], 'customer_id': 'cus9999'})
        assert session.get(Product, product.id).stock == 10

    def test_supplied_totals_must_match(self, session, tenant, make_product):
        product = make_product(selling_price='100')
        with pytest.raises(ValidationError):
            create_sale(session, tenant.id, {'items': [_cart(product, 1)], 'total_amount': '90'})


class TestOverselling:
    """A sale that oversells any line is rejected as a whole."""

    def test_no_partial_writes(self, session, tenant, make_product):
        plenty = make_product('Plenty', stock=100)
        scarce = make_product('Scarce', stock=1)

        with pytest.raises(InsufficientStockError) as exc:
            create_sale(session, tenant.id, {'items': [_cart(plenty, 5), _cart(scarce, 2)]})

        assert exc.value.message == 'Not enough stock for Scarce. Only 1 available.'
        assert session.get(Product, plenty.id).stock == 100
        assert session.get(Product, scarce.id).stock == 1
        assert session.query(Sale).count() == 0
        assert session.query(Activity).filter_by(type=ActivityType.SALE.value).count() == 0

    def test_repeated_lines_are_summed(self, session, tenant, make_product):
        product = make_product(stock=3)
        with pytest.raises(InsufficientStockError):
            create_sale(session, tenant.id, {'items': [_cart(product, 2), _cart(product, 2)]})

    def test_inactive_product(self, session, tenant, make_product):
        from storeflex.services.product_service import delete_product
        product = make_product()
        delete_product(session, tenant.id, product.code)
        with pytest.raises(BusinessLogicError):
            create_sale(session, tenant.id, {'items': [_cart(product, 1, price=150)]})

    def test_removed_customer_cannot_be_charged(self, session, tenant, make_product, make_customer):
        """A soft-deleted customer is treated as unknown and nothing is written."""
        from storeflex.services.party_service import delete_customer
        product = make_product(stock=5)
        customer = make_customer()
        delete_customer(session, tenant.id, customer.code)

        with pytest.raises(CustomerNotFoundError):
            create_sale(session, tenant.id, {
                'items': [_cart(product, 2, price=100)],
                'payment_method': 'credit',
                'customer_id': customer.code,
            })

        assert session.get(Product, product.id).stock == 5
        assert session.get(Customer, customer.id).credit_balance == Decimal('0.00')
        assert session.query(Sale).count() == 0


class TestSaleActivity:
    def test_activity_recorded(self, session, tenant, make_product, make_customer):
        product = make_product(selling_price='250')
        customer = make_customer('Nimal')
        sale = create_sale(session, tenant.id, {'items': [_cart(product, 2)], 'customer_id': customer.code})

        activity = session.query(Activity).filter_by(type=ActivityType.SALE.value).one()
        assert activity.details == 'Sale to Nimal for LKR 500.00'
        assert activity.reference_code == sale.code
        assert activity.amount == Decimal('500.00')
        assert activity.product_name == '1 item(s)'
        assert activity.customer_id == customer.id


class TestDeleteSale:
    """Tests for sale reversal."""

    def test_restores_stock_and_balance(self, session, tenant, make_product, make_customer):
        product = make_product(stock=10, selling_price='100')
        customer = make_customer(balance='50')
        sale = create_sale(session, tenant.id, {
            'items': [_cart(product, 4)],
            'customer_id': customer.code,
            'payment_method': 'credit',
            'amount_paid': '0',
        })
        assert session.get(Customer, customer.id).credit_balance == Decimal('450.00')

        delete_sale(session, tenant.id, sale.code)

        assert session.get(Product, product.id).stock == 10
        assert session.get(Customer, customer.id).credit_balance == Decimal('50.00')
        assert session.query(Sale).count() == 0
        deleted = session.query(Activity).filter_by(type=ActivityType.DELETE.value, reference_code=sale.code).one()
        assert deleted.details == f'Sale {sale.code} deleted and stock restored'

    def test_blocked_after_return(self, session, tenant, make_product):
        product = make_product(stock=10)
        sale = create_sale(session, tenant.id, {'items': [_cart(product, 2)]})
        create_sale_return(session, tenant.id, sale.code, [{'product_id': product.code, 'return_quantity': 1}])

        with pytest.raises(BusinessLogicError):
            delete_sale(session, tenant.id, sale.code)


class TestSaleQueries:
    def test_list_for_customer(self, session, tenant, make_product, make_customer):
        product = make_product(stock=10)
        customer = make_customer()
        create_sale(session, tenant.id, {'items': [_cart(product, 1)]})
        mine = create_sale(session, tenant.id, {'items': [_cart(product, 1)], 'customer_id': customer.code})

        assert [s.code for s in list_sales(session, tenant.id)] == [mine.code, 'sale000001']
        assert [s.code for s in list_sales(session, tenant.id, customer_code=customer.code)] == [mine.code]
        assert get_sale(session, tenant.id, mine.code).customer_id == customer.id
