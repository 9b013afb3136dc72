"""
Unit tests for the purchase processor.
"""

from decimal import Decimal

import pytest

from storeflex.exceptions import BusinessLogicError, SupplierNotFoundError, ValidationError
from storeflex.models import Activity, ActivityType, Product, Purchase, Supplier
from storeflex.services.purchase_service import create_purchase, list_purchases, purchase_to_dict


def _line(product, quantity, cost):
    return {'product_id': product.code, 'quantity': quantity, 'cost_price': str(cost)}


class TestCreatePurchase:
    """Tests for committing a purchase."""

    def test_adds_stock_and_blends_cost(self, session, tenant, make_product, make_supplier):
        """stock 10 @100 + 5 @130 -> stock 15, cost 110."""
        product = make_product(stock=10, cost_price='100')
        supplier = make_supplier()
        purchase = create_purchase(session, tenant.id, {
            'supplier_id': supplier.code,
            'items': [_line(product, 5, 130)],
        })

        refreshed = session.get(Product, product.id)
        assert refreshed.stock == 15
        assert refreshed.cost_price == Decimal('110.0000')
        assert purchase.code == 'pur000001'
        assert purchase.total_amount == Decimal('650.00')
        assert purchase.payment_status == 'paid'

    def test_repeated_product_lines_blend_in_order(self, session, tenant, make_product, make_supplier):
        product = make_product(stock=0, cost_price='1')
        supplier = make_supplier()
        create_purchase(session, tenant.id, {
            'supplier_id': supplier.code,
            'items': [_line(product, 2, 10), _line(product, 2, 20)],
        })
        refreshed = session.get(Product, product.id)
        assert refreshed.stock == 4
        assert refreshed.cost_price == Decimal('15.0000')

    def test_credit_purchase_raises_payable(self, session, tenant, make_product, make_supplier):
        product = make_product()
        supplier = make_supplier(balance='200')
        purchase = create_purchase(session, tenant.id, {
            'supplier_id': supplier.code,
            'items': [_line(product, 3, 100)],
            'payment_method': 'credit',
            'amount_paid': '100',
        })
        assert purchase.previous_balance == Decimal('200.00')
        assert purchase.credit_amount == Decimal('400.00')
        assert purchase.payment_status == 'partial'
        assert session.get(Supplier, supplier.id).credit_balance == Decimal('400.00')

    def test_supplier_required(self, session, tenant, make_product):
        product = make_product()
        with pytest.raises(SupplierNotFoundError):
            create_purchase(session, tenant.id, {'items': [_line(product, 1, 10)]})
        assert session.get(Product, product.id).stock == 10

    def test_empty_cart(self, session, tenant, make_supplier):
        supplier = make_supplier()
        with pytest.raises(ValidationError):
            create_purchase(session, tenant.id, {'supplier_id': supplier.code, 'items': []})
        assert session.query(Purchase).count() == 0


class TestOverpayment:
    """Overpaying a purchase settles older debt with the supplier."""

    def test_overpayment_settles_old_debt(self, session, tenant, make_product, make_supplier):
        """prev 500, total 300, paid 900 -> settled 500, balance -100."""
        product = make_product()
        supplier = make_supplier('Lanka Traders', balance='500')
        purchase = create_purchase(session, tenant.id, {
            'supplier_id': supplier.code,
            'items': [_line(product, 3, 100)],
            'payment_method': 'cash',
            'amount_paid': '900',
        })

        assert session.get(Supplier, supplier.id).credit_balance == Decimal('-100.00')
        assert purchase.credit_amount == Decimal('-100.00')

        types = [a.type for a in session.query(Activity).filter_by(reference_code=purchase.code).order_by(Activity.id)]
        assert types == [ActivityType.PURCHASE.value, ActivityType.CREDIT_SETTLED.value]
        settled = session.query(Activity).filter_by(type=ActivityType.CREDIT_SETTLED.value).one()
        assert settled.amount == Decimal('500.00')
        assert settled.details == 'Settled LKR 500.00 with Lanka Traders'

    def test_no_settlement_without_prior_debt(self, session, tenant, make_product, make_supplier):
        product = make_product()
        supplier = make_supplier()
        create_purchase(session, tenant.id, {
            'supplier_id': supplier.code,
            'items': [_line(product, 1, 100)],
            'amount_paid': '150',
        })
        assert session.get(Supplier, supplier.id).credit_balance == Decimal('-50.00')
        assert session.query(Activity).filter_by(type=ActivityType.CREDIT_SETTLED.value).count() == 0


class TestInactiveProduct:
    """Removed products cannot be restocked."""

    def test_purchase_rejected_without_writes(self, session, tenant, make_product, make_supplier):
        from storeflex.services.product_service import delete_product
        product = make_product(stock=4, cost_price='10')
        supplier = make_supplier()
        delete_product(session, tenant.id, product.code)

        with pytest.raises(BusinessLogicError):
            create_purchase(session, tenant.id, {
                'supplier_id': supplier.code,
                'items': [_line(product, 3, 20)],
            })

        refreshed = session.get(Product, product.id)
        assert refreshed.stock == 4
        assert refreshed.cost_price == Decimal('10.0000')
        assert session.query(Purchase).count() == 0


class TestPurchaseQueries:
    def test_list_and_serialize(self, session, tenant, make_product, make_supplier):
        product = make_product()
        supplier = make_supplier()
        other = make_supplier('Other Supplier')
        create_purchase(session, tenant.id, {'supplier_id': other.code, 'items': [_line(product, 1, 10)]})
        purchase = create_purchase(session, tenant.id, {'supplier_id': supplier.code,
                                                        'items': [_line(product, 2, 10)]})

        listed = list_purchases(session, tenant.id, supplier_code=supplier.code)
        assert [p.code for p in listed] == [purchase.code]

        data = purchase_to_dict(purchase)
        assert data['supplier_id'] == supplier.code
        assert data['total_amount'] == 20.0
        assert data['items'][0]['quantity'] == 2
