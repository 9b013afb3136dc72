"""
Unit tests for purchase and sale returns.
"""

from decimal import Decimal

import pytest

from storeflex.exceptions import BusinessLogicError, InsufficientStockError, NotFoundError, ValidationError
from storeflex.models import Activity, ActivityType, Customer, Product, Supplier
from storeflex.services.purchase_service import create_purchase
from storeflex.services.return_service import (
    create_purchase_return, create_sale_return, list_purchase_returns, parse_return_items
)
from storeflex.services.sales_service import create_sale


@pytest.fixture
def purchased(session, tenant, make_product, make_supplier):
    """10 units bought at 50 on credit from a supplier (balance 500)."""
    product = make_product('Flour', stock=0, cost_price='50')
    supplier = make_supplier('Mill Co')
    purchase = create_purchase(session, tenant.id, {
        'supplier_id': supplier.code,
        'items': [{'product_id': product.code, 'quantity': 10, 'cost_price': '50'}],
        'payment_method': 'credit',
        'amount_paid': '0',
    })
    return product, supplier, purchase


class TestParseReturnItems:
    def test_zero_lines_are_skipped(self):
        assert parse_return_items([
            {'product_id': 'prod0001', 'return_quantity': 2},
            {'product_id': 'prod0002', 'return_quantity': 0},
        ]) == {'prod0001': 2}

    def test_nothing_to_return(self):
        with pytest.raises(ValidationError):
            parse_return_items([{'product_id': 'prod0001', 'return_quantity': 0}])

    def test_fractional_quantity(self):
        with pytest.raises(ValidationError):
            parse_return_items([{'product_id': 'prod0001', 'return_quantity': '1.5'}])


class TestPurchaseReturn:
    """Tests for returning goods to a supplier."""

    def test_credit_arithmetic(self, session, tenant, purchased):
        """3 units at cost 50 -> credit 150, stock -3, supplier balance -150."""
        product, supplier, purchase = purchased
        purchase_return = create_purchase_return(
            session, tenant.id, purchase.code, [{'product_id': product.code, 'return_quantity': 3}],
            reason='Damaged bags'
        )

        assert purchase_return.total_credit_amount == Decimal('150.00')
        assert purchase_return.reason == 'Damaged bags'
        assert session.get(Product, product.id).stock == 7
        assert session.get(Supplier, supplier.id).credit_balance == Decimal('350.00')

        activity = session.query(Activity).filter_by(type=ActivityType.PURCHASE_RETURN.value).one()
        assert activity.details == 'Return to Mill Co for LKR 150.00 credited'
        assert activity.amount == Decimal('150.00')

    def test_supplier_balance_can_go_negative(self, session, tenant, make_product, make_supplier):
        product = make_product(stock=0, cost_price='50')
        supplier = make_supplier()
        purchase = create_purchase(session, tenant.id, {
            'supplier_id': supplier.code,
            'items': [{'product_id': product.code, 'quantity': 5, 'cost_price': '50'}],
        })
        create_purchase_return(session, tenant.id, purchase.code,
                               [{'product_id': product.code, 'return_quantity': 3}])
        assert session.get(Supplier, supplier.id).credit_balance == Decimal('-150.00')

    def test_cannot_return_more_than_bought(self, session, tenant, purchased):
        product, supplier, purchase = purchased
        create_purchase_return(session, tenant.id, purchase.code,
                               [{'product_id': product.code, 'return_quantity': 8}])
        with pytest.raises(BusinessLogicError):
            create_purchase_return(session, tenant.id, purchase.code,
                                   [{'product_id': product.code, 'return_quantity': 3}])
        assert session.get(Product, product.id).stock == 2
        assert len(list_purchase_returns(session, tenant.id, purchase_code=purchase.code)) == 1

    def test_stock_already_sold(self, session, tenant, purchased):
        product, supplier, purchase = purchased
        create_sale(session, tenant.id, {
            'items': [{'product_id': product.code, 'quantity': 9, 'price_per_unit': '80'}]
        })
        with pytest.raises(InsufficientStockError, match='Not enough stock to return for Flour.'):
            create_purchase_return(session, tenant.id, purchase.code,
                                   [{'product_id': product.code, 'return_quantity': 2}])
        assert session.get(Supplier, supplier.id).credit_balance == Decimal('500.00')

    def test_product_not_in_purchase(self, session, tenant, purchased, make_product):
        other = make_product('Other')
        purchase = purchased[2]
        with pytest.raises(BusinessLogicError):
            create_purchase_return(session, tenant.id, purchase.code,
                                   [{'product_id': other.code, 'return_quantity': 1}])

    def test_unknown_purchase(self, session, tenant):
        with pytest.raises(NotFoundError):
            create_purchase_return(session, tenant.id, 'pur999999',
                                   [{'product_id': 'prod0001', 'return_quantity': 1}])


class TestSaleReturn:
    """Tests for taking goods back from customers."""

    def test_credit_balance_refund(self, session, tenant, make_product, make_customer):
        product = make_product(stock=10, selling_price='100')
        customer = make_customer()
        sale = create_sale(session, tenant.id, {
            'items': [{'product_id': product.code, 'quantity': 4, 'price_per_unit': '100'}],
            'customer_id': customer.code,
            'payment_method': 'credit',
            'amount_paid': '0',
        })

        sale_return = create_sale_return(session, tenant.id, sale.code,
                                         [{'product_id': product.code, 'return_quantity': 1}],
                                         refund_method='credit_balance')

        assert sale_return.total_refund_amount == Decimal('100.00')
        assert sale_return.credited_amount == Decimal('100.00')
        assert session.get(Product, product.id).stock == 7
        assert session.get(Customer, customer.id).credit_balance == Decimal('300.00')

    def test_credit_refund_floors_at_zero(self, session, tenant, make_product, make_customer):
        product = make_product(stock=10, selling_price='100')
        customer = make_customer()
        sale = create_sale(session, tenant.id, {
            'items': [{'product_id': product.code, 'quantity': 2, 'price_per_unit': '100'}],
            'customer_id': customer.code,
        })
        sale_return = create_sale_return(session, tenant.id, sale.code,
                                         [{'product_id': product.code, 'return_quantity': 2}],
                                         refund_method='credit_balance')
        assert sale_return.credited_amount == Decimal('0.00')
        assert session.get(Customer, customer.id).credit_balance == Decimal('0.00')

    def test_walk_in_only_cash(self, session, tenant, make_product):
        product = make_product()
        sale = create_sale(session, tenant.id, {
            'items': [{'product_id': product.code, 'quantity': 1, 'price_per_unit': '150'}]
        })
        with pytest.raises(BusinessLogicError):
            create_sale_return(session, tenant.id, sale.code,
                               [{'product_id': product.code, 'return_quantity': 1}],
                               refund_method='credit_balance')

        sale_return = create_sale_return(session, tenant.id, sale.code,
                                         [{'product_id': product.code, 'return_quantity': 1}])
        assert sale_return.refund_method == 'cash'
        assert session.get(Product, product.id).stock == 10

    def test_unknown_refund_method(self, session, tenant):
        with pytest.raises(ValidationError):
            create_sale_return(session, tenant.id, 'sale000001',
                               [{'product_id': 'prod0001', 'return_quantity': 1}], refund_method='voucher')
