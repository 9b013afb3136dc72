"""
Account service: store registration, login, store profile and tenant users.
"""
import logging
import re
import unicodedata
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func

from storeflex.database import run_in_transaction
from storeflex.exceptions import BusinessLogicError, NotFoundError, UnauthorizedError, ValidationError
from storeflex.models import AppUser, Tenant, UserRole, UserTenant
from storeflex.services.sequence_service import allocate_code

logger = logging.getLogger(__name__)

ASSIGNABLE_ROLES = (UserRole.ADMIN.value, UserRole.STAFF.value)


def is_valid_email(email: str) -> bool:
    """Validate email format."""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return re.match(pattern, email) is not None


def generate_slug(name: str) -> str:
    """Generate URL-safe slug from business name."""
    slug = unicodedata.normalize('NFKD', name)
    slug = slug.encode('ascii', 'ignore').decode('ascii')
    slug = re.sub(r'[^a-z0-9]+', '-', slug.lower()).strip('-')
    return slug[:80] or 'store'


def _unique_tenant_slug(session, business_name: str) -> str:
    slug = generate_slug(business_name)
    base_slug = slug
    counter = 1
    while session.query(Tenant.id).filter_by(slug=slug).first():
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


def _email_taken(session, email: str, exclude_user_id: Optional[int] = None) -> bool:
    query = session.query(AppUser.id).filter(func.lower(AppUser.email) == email.lower())
    if exclude_user_id:
        query = query.filter(AppUser.id != exclude_user_id)
    return query.first() is not None


def validate_registration(data: Dict[str, Any]) -> List[str]:
    """Validate registration fields and return list of errors."""
    errors = []
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''
    password_confirm = data.get('password_confirm', password)

    if not email or not is_valid_email(email):
        errors.append('Invalid email.')
    if len(password) < 6:
        errors.append('Password must be at least 6 characters.')
    if password != password_confirm:
        errors.append('Passwords do not match.')
    if not (data.get('full_name') or '').strip():
        errors.append('Name is required.')
    if not (data.get('business_name') or '').strip():
        errors.append('Business name is required.')
    return errors


# =====================================================
# REGISTRATION / LOGIN
# =====================================================

def register_store(session, data: Dict[str, Any]) -> Tuple[AppUser, Tenant]:
    """
    Create a tenant with its OWNER user.

    Returns:
        (user, tenant)

    Raises:
        ValidationError: invalid fields
        BusinessLogicError: email already registered
    """
    errors = validate_registration(data)
    if errors:
        raise ValidationError(' '.join(errors))

    email = data['email'].strip()
    full_name = data['full_name'].strip()
    business_name = data['business_name'].strip()

    def work(session):
        if _email_taken(session, email):
            raise BusinessLogicError('This email is already registered. Log in or use another one.')

        # 1. Tenant
        tenant = Tenant(slug=_unique_tenant_slug(session, business_name), name=business_name, active=True)
        session.add(tenant)
        session.flush()

        # 2. User
        user = AppUser(email=email, full_name=full_name, active=True)
        user.set_password(data['password'])
        session.add(user)
        session.flush()

        # 3. Membership (OWNER)
        session.add(UserTenant(
            user_id=user.id,
            tenant_id=tenant.id,
            code=allocate_code(session, tenant.id, 'users'),
            role=UserRole.OWNER.value,
            active=True
        ))
        return user, tenant

    user, tenant = run_in_transaction(session, work)
    logger.info(f"Registered store {tenant.slug} (tenant {tenant.id}) for {email}")
    return user, tenant


def authenticate(session, email: str, password: str) -> AppUser:
    """
    Raises:
        ValidationError: missing credentials
        UnauthorizedError: unknown email, inactive user or wrong password
    """
    email = (email or '').strip()
    if not email or not password:
        raise ValidationError('Email and password are required.')

    user = session.query(AppUser).filter(func.lower(AppUser.email) == email.lower()).first()
    if not user or not user.active or not user.check_password(password):
        logger.warning(f"Failed login for {email}")
        raise UnauthorizedError('Incorrect email or password.')
    return user


def get_user_tenants(session, user_id: int) -> List[UserTenant]:
    """Active memberships of a user."""
    return session.query(UserTenant).join(Tenant, Tenant.id == UserTenant.tenant_id).filter(
        UserTenant.user_id == user_id,
        UserTenant.active == True,  # noqa: E712
        Tenant.active == True  # noqa: E712
    ).order_by(UserTenant.id).all()


def get_membership(session, user_id: int, tenant_id: int) -> Optional[UserTenant]:
    return session.query(UserTenant).filter_by(user_id=user_id, tenant_id=tenant_id, active=True).first()


# =====================================================
# STORE PROFILE
# =====================================================

def get_store_profile(session, tenant_id: Optional[int], default_name: str = 'StoreFlex Lite') -> Dict[str, Any]:
    """Business details shown on receipts; defaults when the tenant is missing."""
    tenant = session.query(Tenant).filter_by(id=tenant_id).first() if tenant_id else None
    if not tenant:
        return {'business_name': default_name, 'address': None, 'contact_number': None, 'logo_url': None}
    return {
        'business_name': tenant.name or default_name,
        'address': tenant.address,
        'contact_number': tenant.contact_number,
        'logo_url': tenant.logo_url,
    }


def update_store_profile(session, tenant_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Raises:
        ValidationError: empty business name or a logo that is not an http(s) URL
    """
    name = (data.get('business_name') or '').strip()
    if not name:
        raise ValidationError('Business name is required')
    logo_url = (data.get('logo_url') or '').strip() or None
    if logo_url and not logo_url.startswith(('http://', 'https://')):
        raise ValidationError('Logo must be an http(s) URL')

    def work(session):
        tenant = session.query(Tenant).filter_by(id=tenant_id).with_for_update().first()
        if not tenant:
            raise NotFoundError('Store not found')
        tenant.name = name
        tenant.address = (data.get('address') or '').strip() or None
        tenant.contact_number = (data.get('contact_number') or '').strip() or None
        tenant.logo_url = logo_url

    run_in_transaction(session, work)
    return get_store_profile(session, tenant_id)


# =====================================================
# USERS
# =====================================================

def list_users(session, tenant_id: Optional[int]) -> List[UserTenant]:
    if not tenant_id:
        return []
    return session.query(UserTenant).filter(
        UserTenant.tenant_id == tenant_id,
        UserTenant.active == True  # noqa: E712
    ).order_by(UserTenant.code).all()


def manage_user(session, tenant_id: int, data: Dict[str, Any], user_code: Optional[str] = None) -> UserTenant:
    """
    Create a user in the store, or edit one when ``user_code`` is given.

    Name, email and role are required; a password is required for new users
    and optional on edits. OWNER memberships cannot be assigned or edited here.
    """
    if not tenant_id:
        raise BusinessLogicError('tenant_id is required')

    full_name = (data.get('name') or data.get('full_name') or '').strip()
    email = (data.get('email') or '').strip()
    role = (data.get('role') or '').strip().upper()
    password = data.get('password') or ''

    if not full_name or not email or not role:
        raise ValidationError('Name, email and role are required')
    if not is_valid_email(email):
        raise ValidationError('Invalid email')
    if role not in ASSIGNABLE_ROLES:
        raise ValidationError(f'Role must be one of: {", ".join(ASSIGNABLE_ROLES)}')
    if not user_code and not password:
        raise ValidationError('Password is required for new users')
    if password and len(password) < 6:
        raise ValidationError('Password must be at least 6 characters')

    def work(session):
        if user_code:
            membership = session.query(UserTenant).filter_by(
                tenant_id=tenant_id, code=user_code
            ).with_for_update().first()
            if not membership:
                raise NotFoundError(f'User {user_code} not found')
            if membership.is_owner():
                raise BusinessLogicError('The store owner cannot be edited here')
            user = membership.user
            if _email_taken(session, email, exclude_user_id=user.id):
                raise BusinessLogicError('This email is already registered')
            user.full_name = full_name
            user.email = email
            if password:
                user.set_password(password)
            membership.role = role
            return membership

        if _email_taken(session, email):
            raise BusinessLogicError('This email is already registered')
        user = AppUser(email=email, full_name=full_name, active=True)
        user.set_password(password)
        session.add(user)
        session.flush()
        membership = UserTenant(
            user_id=user.id,
            tenant_id=tenant_id,
            code=allocate_code(session, tenant_id, 'users'),
            role=role,
            active=True,
        )
        session.add(membership)
        session.flush()
        return membership

    membership = run_in_transaction(session, work)
    logger.info(f"User {membership.code} saved for tenant {tenant_id} (role={membership.role})")
    return membership


def user_to_dict(membership: UserTenant) -> Dict[str, Any]:
    return {
        'id': membership.code,
        'name': membership.user.full_name,
        'email': membership.user.email,
        'role': membership.role,
    }
