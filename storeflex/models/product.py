"""Product model."""
from sqlalchemy import (
    Column, BigInteger, Integer, String, Boolean, Numeric, DateTime, ForeignKey,
    CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storeflex.database import Base, BigIntegerPK


class Product(Base):
    """Product model. ``stock`` and ``cost_price`` are ledger fields: write them only inside a transaction."""

    __tablename__ = 'product'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_product_tenant_code'),
        CheckConstraint('stock >= 0', name='ck_product_stock_non_negative'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    code = Column(String(20), nullable=False)  # prod0001
    sku = Column(String(100), nullable=True)
    barcode = Column(String(100), nullable=True)
    name = Column(String(200), nullable=False)
    category = Column(String(100), nullable=True)
    sub_category = Column(String(100), nullable=True)
    brand = Column(String(100), nullable=True)
    image_url = Column(String(500), nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    cost_price = Column(Numeric(14, 4), nullable=False)  # Weighted-average unit cost
    selling_price = Column(Numeric(14, 2), nullable=False)
    low_stock_threshold = Column(Integer, nullable=False, default=10)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')

    @property
    def is_low_stock(self):
        return (self.stock or 0) < (self.low_stock_threshold or 0)

    def __repr__(self):
        return f"<Product(id={self.id}, code='{self.code}', name='{self.name}', stock={self.stock})>"
