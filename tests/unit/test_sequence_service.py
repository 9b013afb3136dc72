"""
Unit tests for per-tenant code allocation.
"""

import pytest

from storeflex.database import run_in_transaction
from storeflex.exceptions import BusinessLogicError
from storeflex.models import Counter
from storeflex.services.sequence_service import allocate_code, format_code


class TestFormatCode:
    """Tests for code formatting."""

    @pytest.mark.parametrize('entity,number,expected', [
        ('customers', 1, 'cus0001'),
        ('suppliers', 42, 'sup0042'),
        ('sales', 7, 'sale000007'),
        ('purchases', 123456, 'pur123456'),
        ('products', 3, 'prod0003'),
        ('users', 12, 'user0012'),
    ])
    def test_prefix_and_padding(self, entity, number, expected):
        assert format_code(entity, number) == expected

    def test_number_wider_than_padding_is_kept(self):
        assert format_code('customers', 12345) == 'cus12345'

    def test_unknown_entity(self):
        with pytest.raises(BusinessLogicError):
            format_code('invoices', 1)


class TestAllocateCode:
    """Tests for counter-backed allocation."""

    def test_sequential_and_gapless(self, session, tenant, make_customer):
        """N customers get cus0001..cus000N with no skips."""
        codes = [make_customer(f'Customer {i}').code for i in range(1, 6)]
        assert codes == ['cus0001', 'cus0002', 'cus0003', 'cus0004', 'cus0005']

    def test_counters_are_per_tenant(self, session, tenant, tenant2, make_customer):
        first = make_customer('Tenant One Customer')
        second = make_customer('Tenant Two Customer', tenant_id=tenant2.id)
        assert first.code == 'cus0001'
        assert second.code == 'cus0001'

    def test_counters_are_per_entity(self, session, tenant, make_customer, make_supplier):
        make_customer()
        make_customer('Bob')
        supplier = make_supplier()
        assert supplier.code == 'sup0001'

    def test_rolled_back_work_does_not_consume_a_number(self, session, tenant, make_customer):
        """A failed unit of work leaves the counter untouched."""
        def work(session):
            allocate_code(session, tenant.id, 'customers')
            raise BusinessLogicError('abort')

        with pytest.raises(BusinessLogicError):
            run_in_transaction(session, work)

        assert make_customer().code == 'cus0001'
        counter = session.query(Counter).filter_by(tenant_id=tenant.id, entity='customers').one()
        assert counter.last_id == 1

    def test_requires_tenant(self, session):
        with pytest.raises(BusinessLogicError):
            allocate_code(session, None, 'customers')
