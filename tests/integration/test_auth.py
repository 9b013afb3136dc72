"""
Integration tests for authentication and authorization.
"""

from storeflex.models import AppUser, Tenant, UserTenant
from storeflex.services.account_service import manage_user


REGISTRATION = {
    'email': 'owner@corner-shop.lk',
    'password': 'securepass123',
    'password_confirm': 'securepass123',
    'full_name': 'Nimal Perera',
    'business_name': 'Corner Shop',
}


class TestRegistration:
    """Test store registration flow."""

    def test_register_creates_user_tenant_and_owner_membership(self, client, session):
        response = client.post('/auth/register', json=REGISTRATION)

        assert response.status_code == 201
        data = response.get_json()
        assert data['user']['email'] == 'owner@corner-shop.lk'
        assert data['tenants'][0]['role'] == 'OWNER'
        assert data['tenants'][0]['slug'] == 'corner-shop'
        assert data['tenant_id'] == data['tenants'][0]['tenant_id']

        user = session.query(AppUser).filter_by(email='owner@corner-shop.lk').first()
        tenant = session.query(Tenant).filter_by(name='Corner Shop').first()
        membership = session.query(UserTenant).filter_by(user_id=user.id, tenant_id=tenant.id).first()
        assert membership.role == 'OWNER'
        assert membership.code == 'user0001'

    def test_register_logs_the_owner_in(self, client):
        client.post('/auth/register', json=REGISTRATION)
        response = client.get('/api/products')
        assert response.status_code == 200
        assert response.get_json() == []

    def test_register_with_existing_email_fails(self, client):
        client.post('/auth/register', json=REGISTRATION)
        client.post('/auth/logout')

        response = client.post('/auth/register', json=dict(REGISTRATION, business_name='Second Shop'))

        assert response.status_code == 400
        assert 'already registered' in response.get_json()['message']

    def test_register_with_mismatched_passwords_fails(self, client):
        response = client.post('/auth/register', json=dict(REGISTRATION, password_confirm='different'))
        assert response.status_code == 400
        assert response.get_json()['status'] == 'error'

    def test_duplicate_business_names_get_distinct_slugs(self, client):
        client.post('/auth/register', json=REGISTRATION)
        client.post('/auth/logout')
        response = client.post('/auth/register', json=dict(REGISTRATION, email='other@corner-shop.lk'))
        assert response.get_json()['tenants'][0]['slug'] == 'corner-shop-1'


class TestLogin:
    """Test login, logout and session handling."""

    def test_login_selects_the_only_store(self, client):
        client.post('/auth/register', json=REGISTRATION)
        client.post('/auth/logout')

        response = client.post('/auth/login', json={
            'email': 'OWNER@corner-shop.lk',
            'password': 'securepass123',
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data['tenant_id'] == data['tenants'][0]['tenant_id']
        assert client.get('/api/products').status_code == 200

    def test_login_with_wrong_password(self, client):
        client.post('/auth/register', json=REGISTRATION)
        client.post('/auth/logout')

        response = client.post('/auth/login', json={'email': REGISTRATION['email'], 'password': 'nope'})

        assert response.status_code == 403
        assert response.get_json()['message'] == 'Incorrect email or password.'

    def test_login_requires_credentials(self, client):
        response = client.post('/auth/login', json={})
        assert response.status_code == 400

    def test_logout_clears_session(self, authenticated_client):
        assert authenticated_client.get('/auth/me').status_code == 200

        authenticated_client.post('/auth/logout')

        response = authenticated_client.get('/auth/me')
        assert response.status_code == 401
        assert response.get_json()['message'] == 'Authentication required'

    def test_api_requires_login(self, client):
        for path in ('/api/products', '/api/sales', '/api/moneyflow', '/api/reports/dashboard'):
            assert client.get(path).status_code == 401

    def test_csrf_token_endpoint(self, client):
        response = client.get('/auth/csrf-token')
        assert response.status_code == 200
        assert response.get_json()['csrf_token']


class TestTenantSelection:
    """Test switching between stores."""

    def test_select_own_tenant(self, client, owner):
        user, tenant = owner
        user_id, tenant_id = user.id, tenant.id
        with client.session_transaction() as sess:
            sess['user_id'] = user_id

        assert client.get('/api/products').status_code == 403

        response = client.post('/auth/select-tenant', json={'tenant_id': tenant_id})
        assert response.status_code == 200
        assert response.get_json()['tenant']['tenant_id'] == tenant_id
        assert client.get('/api/products').status_code == 200

    def test_cannot_select_foreign_tenant(self, authenticated_client, tenant2):
        response = authenticated_client.post('/auth/select-tenant', json={'tenant_id': tenant2.id})
        assert response.status_code == 403

    def test_select_tenant_requires_id(self, authenticated_client):
        response = authenticated_client.post('/auth/select-tenant', json={'tenant_id': 'abc'})
        assert response.status_code == 400


class TestRoles:
    """Test role-restricted endpoints."""

    def _staff_client(self, client, session, tenant):
        membership = manage_user(session, tenant.id, {
            'name': 'Kamal Staff',
            'email': 'kamal@corner-shop.lk',
            'role': 'staff',
            'password': 'staffpass',
        })
        user_id, tenant_id = membership.user_id, tenant.id
        with client.session_transaction() as sess:
            sess['user_id'] = user_id
            sess['tenant_id'] = tenant_id
        return client

    def test_staff_can_sell_but_not_delete_sales(self, client, session, tenant, make_product):
        product = make_product('Tea', stock=5)
        product_code = product.code
        staff = self._staff_client(client, session, tenant)

        response = staff.post('/api/sales', json={
            'items': [{'product_id': product_code, 'quantity': 1, 'price_per_unit': '150'}],
            'payment_method': 'cash',
        })
        assert response.status_code == 201
        sale_code = response.get_json()['id']

        response = staff.delete(f'/api/sales/{sale_code}')
        assert response.status_code == 403
        assert response.get_json()['message'] == 'ADMIN role or higher required'

    def test_staff_cannot_manage_users(self, client, session, tenant):
        staff = self._staff_client(client, session, tenant)
        assert staff.get('/api/account/users').status_code == 403
        assert staff.put('/api/account/profile', json={'business_name': 'Mine'}).status_code == 403
        assert staff.get('/api/account/profile').status_code == 200

    def test_owner_manages_users(self, authenticated_client):
        response = authenticated_client.post('/api/account/users', json={
            'name': 'Sunil', 'email': 'sunil@corner-shop.lk', 'role': 'ADMIN', 'password': 'adminpass',
        })
        assert response.status_code == 201
        created = response.get_json()
        assert created['id'] == 'user0002'

        response = authenticated_client.put(f"/api/account/users/{created['id']}", json={
            'name': 'Sunil Silva', 'email': 'sunil@corner-shop.lk', 'role': 'STAFF',
        })
        assert response.get_json()['role'] == 'STAFF'

        users = authenticated_client.get('/api/account/users').get_json()
        assert [u['role'] for u in users] == ['OWNER', 'STAFF']

    def test_owner_cannot_be_edited(self, authenticated_client):
        response = authenticated_client.put('/api/account/users/user0001', json={
            'name': 'X', 'email': 'x@corner-shop.lk', 'role': 'STAFF',
        })
        assert response.status_code == 400
