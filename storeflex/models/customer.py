"""Customer model."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storeflex.database import Base, BigIntegerPK


class Customer(Base):
    """Customer. ``credit_balance`` > 0 means the customer owes the store; never below 0."""

    __tablename__ = 'customer'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_customer_tenant_code'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    code = Column(String(20), nullable=False)  # cus0001
    name = Column(String(200), nullable=False)
    phone = Column(String(50), nullable=True)
    credit_balance = Column(Numeric(14, 2), nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    sales = relationship('Sale', back_populates='customer')

    party_type = 'customer'

    def __repr__(self):
        return f"<Customer(id={self.id}, code='{self.code}', name='{self.name}', balance={self.credit_balance})>"
