"""
Unit tests for the unit-of-work helper.
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from storeflex.database import run_in_transaction
from storeflex.exceptions import BusinessLogicError, TransactionConflictError
from storeflex.models import Customer
from storeflex.services.sequence_service import allocate_code


def _conflict():
    return OperationalError('UPDATE customer', {}, Exception('deadlock detected'))


class TestRunInTransaction:
    """Commit on success, roll back on error, retry on write conflicts."""

    def test_commits_and_returns_result(self, session, tenant):
        def work(session):
            customer = Customer(tenant_id=tenant.id, code=allocate_code(session, tenant.id, 'customers'),
                                name='Kasun', credit_balance=0)
            session.add(customer)
            return customer.code

        assert run_in_transaction(session, work) == 'cus0001'
        session.rollback()
        assert session.query(Customer).filter_by(code='cus0001').count() == 1

    def test_domain_errors_roll_back_and_propagate(self, session, tenant):
        def work(session):
            session.add(Customer(tenant_id=tenant.id, code='cus0001', name='Ghost', credit_balance=0))
            session.flush()
            raise BusinessLogicError('nope')

        with pytest.raises(BusinessLogicError):
            run_in_transaction(session, work)
        assert session.query(Customer).count() == 0

    def test_retries_conflicts(self, session, tenant):
        calls = []

        def work(session):
            calls.append(1)
            if len(calls) < 3:
                raise _conflict()
            return 'ok'

        assert run_in_transaction(session, work, attempts=3, backoff_base=0) == 'ok'
        assert len(calls) == 3

    def test_gives_up_after_attempts(self, session, tenant):
        calls = []

        def work(session):
            calls.append(1)
            raise StaleDataError('version mismatch')

        with pytest.raises(TransactionConflictError) as exc:
            run_in_transaction(session, work, attempts=2, backoff_base=0)
        assert len(calls) == 2
        assert exc.value.status_code == 409

    def test_unexpected_errors_are_not_retried(self, session, tenant):
        calls = []

        def work(session):
            calls.append(1)
            raise KeyError('boom')

        with pytest.raises(KeyError):
            run_in_transaction(session, work, attempts=3, backoff_base=0)
        assert len(calls) == 1
