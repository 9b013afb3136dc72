"""
Unit tests for moneyflow: receivables, payables, pending checks and settlements.
"""

from decimal import Decimal

import pytest

from storeflex.exceptions import (
    BusinessLogicError, CustomerNotFoundError, InvalidSettlementAmountError, ValidationError
)
from storeflex.models import Activity, ActivityType, Customer, Product, Sale, Supplier
from storeflex.services.moneyflow_service import fetch_moneyflow_data, parse_settlement_entry, settle_payment
from storeflex.services.purchase_service import create_purchase
from storeflex.services.sales_service import create_sale


def _check_sale(session, tenant, product, customer, quantity=1):
    return create_sale(session, tenant.id, {
        'items': [{'product_id': product.code, 'quantity': quantity, 'price_per_unit': '100'}],
        'customer_id': customer.code,
        'payment_method': 'check',
        'check_number': 'CHK-001',
    })


class TestFetchMoneyflow:
    """Tests for the moneyflow read model."""

    def test_entries_and_totals(self, session, tenant, make_customer, make_supplier):
        make_customer('Owes Us', balance='250')
        make_customer('Settled', balance='0')
        make_supplier('We Owe', balance='400')
        make_supplier('Overpaid', balance='-60')

        data = fetch_moneyflow_data(session, tenant.id)

        assert data['receivables_total'] == Decimal('310.00')
        assert data['payables_total'] == Decimal('400.00')
        assert data['pending_checks_total'] == Decimal('0.00')
        ids = {e['id'] for e in data['transactions']}
        assert ids == {'customer-receivable-cus0001', 'supplier-payable-sup0001', 'supplier-receivable-sup0002'}
        overpaid = next(e for e in data['transactions'] if e['id'] == 'supplier-receivable-sup0002')
        assert overpaid['type'] == 'receivable'
        assert overpaid['amount'] == Decimal('60.00')
        assert overpaid['payment_method'] == 'credit'

    def test_pending_check_entries(self, session, tenant, make_product, make_customer):
        product = make_product()
        customer = make_customer()
        sale = _check_sale(session, tenant, product, customer, quantity=2)

        data = fetch_moneyflow_data(session, tenant.id)
        entry = next(e for e in data['transactions'] if e['id'] == f'sale-check-{sale.code}')
        assert entry['transaction_id'] == sale.code
        assert entry['check_number'] == 'CHK-001'
        assert entry['amount'] == Decimal('200.00')
        assert data['pending_checks_total'] == Decimal('200.00')

    def test_partial_check_counts_its_face_value(self, session, tenant, make_product, make_customer):
        """The unpaid remainder shows up as a receivable, not in the check."""
        product = make_product()
        customer = make_customer()
        sale = create_sale(session, tenant.id, {
            'items': [{'product_id': product.code, 'quantity': 2, 'price_per_unit': '100'}],
            'customer_id': customer.code,
            'payment_method': 'check',
            'check_number': 'CHK-002',
            'amount_paid': '150',
        })

        data = fetch_moneyflow_data(session, tenant.id)
        entry = next(e for e in data['transactions'] if e['id'] == f'sale-check-{sale.code}')
        assert entry['amount'] == Decimal('150.00')
        assert data['pending_checks_total'] == Decimal('150.00')
        assert data['receivables_total'] == Decimal('50.00')

    def test_no_tenant(self, session):
        assert fetch_moneyflow_data(session, None)['transactions'] == []


class TestParseSettlementEntry:
    def test_only_credit_and_check(self):
        with pytest.raises(ValidationError):
            parse_settlement_entry({'payment_method': 'cash', 'party_type': 'customer', 'party_id': 'cus0001'})

    def test_check_needs_transaction_id(self):
        with pytest.raises(ValidationError):
            parse_settlement_entry({'payment_method': 'check', 'party_type': 'customer', 'party_id': 'cus0001'})

    def test_credit_reference_is_party(self):
        parsed = parse_settlement_entry({'payment_method': 'credit', 'party_type': 'supplier', 'party_id': 'sup0003'})
        assert parsed['reference'] == 'sup0003'
        assert parsed['party_type'] == 'supplier'


class TestCreditSettlement:
    """Tests for settling outstanding balances."""

    def test_partial_settlement(self, session, tenant, make_customer):
        customer = make_customer('Kamal', balance='600')
        result = settle_payment(session, tenant.id, {
            'payment_method': 'credit', 'party_type': 'customer', 'party_id': customer.code
        }, 'paid', amount='250')

        assert result['credit_balance'] == Decimal('350.00')
        assert session.get(Customer, customer.id).credit_balance == Decimal('350.00')
        activity = session.query(Activity).filter_by(type=ActivityType.CREDIT_SETTLED.value).one()
        assert activity.details == 'Credit payment of LKR 250.00 from Kamal settled.'

    def test_defaults_to_full_outstanding(self, session, tenant, make_supplier):
        supplier = make_supplier('Acme', balance='400')
        settle_payment(session, tenant.id, {
            'payment_method': 'credit', 'party_type': 'supplier', 'party_id': supplier.code
        }, 'paid')
        assert session.get(Supplier, supplier.id).credit_balance == Decimal('0.00')
        activity = session.query(Activity).filter_by(type=ActivityType.CREDIT_SETTLED.value).one()
        assert activity.details == 'Credit payment of LKR 400.00 to Acme settled.'

    def test_negative_supplier_balance_moves_up_to_zero(self, session, tenant, make_supplier):
        supplier = make_supplier(balance='-100')
        settle_payment(session, tenant.id, {
            'payment_method': 'credit', 'party_type': 'supplier', 'party_id': supplier.code
        }, 'paid', amount='100')
        assert session.get(Supplier, supplier.id).credit_balance == Decimal('0.00')

    def test_cannot_overdraw(self, session, tenant, make_customer):
        customer = make_customer(balance='100')
        with pytest.raises(InvalidSettlementAmountError):
            settle_payment(session, tenant.id, {
                'payment_method': 'credit', 'party_type': 'customer', 'party_id': customer.code
            }, 'paid', amount='100.50')
        assert session.get(Customer, customer.id).credit_balance == Decimal('100.00')
        assert session.query(Activity).filter_by(type=ActivityType.CREDIT_SETTLED.value).count() == 0

    @pytest.mark.parametrize('amount', ['0', '-5'])
    def test_amount_must_be_positive(self, session, tenant, make_customer, amount):
        customer = make_customer(balance='100')
        with pytest.raises(InvalidSettlementAmountError):
            settle_payment(session, tenant.id, {
                'payment_method': 'credit', 'party_type': 'customer', 'party_id': customer.code
            }, 'paid', amount=amount)

    def test_credit_cannot_be_rejected(self, session, tenant, make_customer):
        customer = make_customer(balance='100')
        with pytest.raises(BusinessLogicError):
            settle_payment(session, tenant.id, {
                'payment_method': 'credit', 'party_type': 'customer', 'party_id': customer.code
            }, 'rejected')

    def test_unknown_party(self, session, tenant):
        with pytest.raises(CustomerNotFoundError):
            settle_payment(session, tenant.id, {
                'payment_method': 'credit', 'party_type': 'customer', 'party_id': 'cus9999'
            }, 'paid', amount='1')


class TestCheckLifecycle:
    """Pending checks are cleared or rejected without touching stock."""

    def test_clear(self, session, tenant, make_product, make_customer):
        product = make_product(stock=10)
        customer = make_customer('Sunil')
        sale = _check_sale(session, tenant, product, customer)

        result = settle_payment(session, tenant.id, {
            'payment_method': 'check', 'party_type': 'customer', 'transaction_id': sale.code
        }, 'paid')

        assert result['status'] == 'paid'
        assert session.get(Sale, sale.id).payment_status == 'paid'
        assert session.get(Product, product.id).stock == 9
        assert fetch_moneyflow_data(session, tenant.id)['pending_checks_total'] == Decimal('0.00')
        activity = session.query(Activity).filter_by(type=ActivityType.CHECK_CLEARED.value).one()
        assert activity.details == 'Check from Sunil for LKR 100.00 was cleared.'

    def test_reject(self, session, tenant, make_product, make_customer):
        product = make_product(stock=10)
        customer = make_customer()
        sale = _check_sale(session, tenant, product, customer)

        settle_payment(session, tenant.id, {
            'payment_method': 'check', 'party_type': 'customer', 'transaction_id': sale.code
        }, 'rejected')

        assert session.get(Sale, sale.id).payment_status == 'rejected'
        assert session.get(Product, product.id).stock == 9
        assert fetch_moneyflow_data(session, tenant.id)['transactions'] == []
        assert session.query(Activity).filter_by(type=ActivityType.CHECK_REJECTED.value).count() == 1

    def test_purchase_check(self, session, tenant, make_product, make_supplier):
        product = make_product()
        supplier = make_supplier('Paper Mill')
        purchase = create_purchase(session, tenant.id, {
            'supplier_id': supplier.code,
            'items': [{'product_id': product.code, 'quantity': 2, 'cost_price': '100'}],
            'payment_method': 'check',
            'check_number': 'P-77',
        })
        assert fetch_moneyflow_data(session, tenant.id)['pending_checks_total'] == Decimal('200.00')

        settle_payment(session, tenant.id, {
            'payment_method': 'check', 'party_type': 'supplier', 'transaction_id': purchase.code
        }, 'paid')
        activity = session.query(Activity).filter_by(type=ActivityType.CHECK_CLEARED.value).one()
        assert activity.details == 'Check to Paper Mill for LKR 200.00 was cleared.'

    def test_settled_check_cannot_be_settled_again(self, session, tenant, make_product, make_customer):
        product = make_product()
        customer = make_customer()
        sale = _check_sale(session, tenant, product, customer)
        entry = {'payment_method': 'check', 'party_type': 'customer', 'transaction_id': sale.code}
        settle_payment(session, tenant.id, entry, 'paid')

        with pytest.raises(BusinessLogicError):
            settle_payment(session, tenant.id, entry, 'rejected')
