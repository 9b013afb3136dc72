import uuid
from decimal import Decimal

import pytest

from storeflex import create_app
from storeflex.database import create_all, drop_all, get_session
from storeflex.services.account_service import register_store
from storeflex.services.party_service import create_customer, create_supplier
from storeflex.services.product_service import create_product


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite, cache off)."""
    return create_app('config.TestConfig')


@pytest.fixture(scope='function', autouse=True)
def database(app):
    """Fresh schema for every test, inside an application context."""
    with app.app_context():
        create_all()
        yield
        get_session().remove()
        drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Database session for testing."""
    return get_session()


def _register(session, label):
    suffix = str(uuid.uuid4())[:8]
    return register_store(session, {
        'business_name': f'{label} Store {suffix}',
        'full_name': f'{label} Owner',
        'email': f'{label.lower()}-{suffix}@test.com',
        'password': 'password123',
    })


@pytest.fixture(scope='function')
def owner(session):
    """(user, tenant) for the main test store."""
    return _register(session, 'Main')


@pytest.fixture(scope='function')
def other_owner(session):
    """(user, tenant) for a second store, used by isolation tests."""
    return _register(session, 'Other')


@pytest.fixture(scope='function')
def tenant(owner):
    return owner[1]


@pytest.fixture(scope='function')
def tenant2(other_owner):
    return other_owner[1]


@pytest.fixture(scope='function')
def make_product(session, tenant):
    """Factory: make_product(name, stock=..., cost_price=..., selling_price=..., tenant_id=...)."""
    def _make(name='Widget', stock=10, cost_price='100', selling_price='150', tenant_id=None, **extra):
        data = {
            'name': name,
            'stock': stock,
            'cost_price': cost_price,
            'selling_price': selling_price,
        }
        data.update(extra)
        return create_product(session, tenant_id or tenant.id, data)
    return _make


@pytest.fixture(scope='function')
def make_customer(session, tenant):
    """Factory: make_customer(name, balance=..., tenant_id=...)."""
    def _make(name='Alice', balance=None, tenant_id=None):
        customer = create_customer(session, tenant_id or tenant.id, {'name': name, 'phone': '0771234567'})
        if balance is not None:
            customer.credit_balance = Decimal(str(balance))
            session.commit()
        return customer
    return _make


@pytest.fixture(scope='function')
def make_supplier(session, tenant):
    """Factory: make_supplier(name, balance=..., tenant_id=...). Negative balances allowed."""
    def _make(name='Acme Supplies', balance=None, tenant_id=None):
        supplier = create_supplier(session, tenant_id or tenant.id, {'name': name, 'phone': '0112345678'})
        if balance is not None:
            supplier.credit_balance = Decimal(str(balance))
            session.commit()
        return supplier
    return _make


@pytest.fixture(scope='function')
def authenticated_client(client, owner):
    """Client logged in as the owner of the main store."""
    user, tenant = owner
    user_id, tenant_id = user.id, tenant.id
    with client.session_transaction() as sess:
        sess['user_id'] = user_id
        sess['tenant_id'] = tenant_id
    return client
