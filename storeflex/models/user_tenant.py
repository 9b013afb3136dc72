"""UserTenant model - membership of users in stores, with roles."""
import enum
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storeflex.database import Base, BigIntegerPK


class UserRole(enum.Enum):
    """User roles within a tenant."""
    OWNER = 'OWNER'
    ADMIN = 'ADMIN'
    STAFF = 'STAFF'


ROLE_HIERARCHY = {'OWNER': 3, 'ADMIN': 2, 'STAFF': 1}


class UserTenant(Base):
    """UserTenant model - links users to tenants with roles and a store-local user code."""

    __tablename__ = 'user_tenant'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_user_tenant_code'),
        UniqueConstraint('tenant_id', 'user_id', name='uq_user_tenant_member'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False)
    code = Column(String(20), nullable=False)  # user0001
    role = Column(String(20), nullable=False, default=UserRole.STAFF.value)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    user = relationship('AppUser', back_populates='user_tenants')
    tenant = relationship('Tenant', back_populates='user_tenants')

    def __repr__(self):
        return f"<UserTenant(user_id={self.user_id}, tenant_id={self.tenant_id}, role='{self.role}')>"

    def is_owner(self):
        """Check if user is owner of tenant."""
        return self.role == UserRole.OWNER.value
