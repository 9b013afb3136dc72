"""Supplier model."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storeflex.database import Base, BigIntegerPK


class Supplier(Base):
    """
    Supplier.

    ``credit_balance`` > 0: the store owes the supplier (payable).
    ``credit_balance`` < 0: the supplier owes the store after an overpayment or return.
    """

    __tablename__ = 'supplier'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_supplier_tenant_code'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    code = Column(String(20), nullable=False)  # sup0001
    name = Column(String(200), nullable=False)
    phone = Column(String(50), nullable=True)
    credit_balance = Column(Numeric(14, 2), nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    purchases = relationship('Purchase', back_populates='supplier')

    party_type = 'supplier'

    def __repr__(self):
        return f"<Supplier(id={self.id}, code='{self.code}', name='{self.name}', balance={self.credit_balance})>"
