"""Purchase and PurchaseItem models."""
from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storeflex.database import Base, BigIntegerPK
from storeflex.models.sale import PaymentStatus


class Purchase(Base):
    """Purchase (stock bought from a supplier)."""

    __tablename__ = 'purchase'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_purchase_tenant_code'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    code = Column(String(20), nullable=False)  # pur000001
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=False)
    supplier_name = Column(String(200), nullable=False)
    purchase_date = Column(DateTime(timezone=True), nullable=False, default=datetime.now)

    subtotal = Column(Numeric(14, 2), nullable=False)
    tax_percentage = Column(Numeric(6, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(14, 2), nullable=False, default=0)
    service_charge = Column(Numeric(14, 2), nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False)

    payment_method = Column(String(20), nullable=False)
    amount_paid = Column(Numeric(14, 2), nullable=False, default=0)
    previous_balance = Column(Numeric(14, 2), nullable=False, default=0)
    credit_amount = Column(Numeric(14, 2), nullable=False, default=0)  # Supplier balance after this purchase
    check_number = Column(String(50), nullable=True)
    payment_status = Column(String(30), nullable=False, default=PaymentStatus.PAID.value)

    created_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    supplier = relationship('Supplier', back_populates='purchases')
    items = relationship('PurchaseItem', back_populates='purchase', cascade='all, delete-orphan',
                         order_by='PurchaseItem.id')

    def __repr__(self):
        return f"<Purchase(id={self.id}, code='{self.code}', total={self.total_amount}, status='{self.payment_status}')>"


class PurchaseItem(Base):
    """Snapshot of a purchased product line."""

    __tablename__ = 'purchase_item'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    purchase_id = Column(BigInteger, ForeignKey('purchase.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    product_code = Column(String(20), nullable=False)
    name = Column(String(200), nullable=False)
    sku = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False)
    cost_price = Column(Numeric(14, 4), nullable=False)
    total_cost = Column(Numeric(14, 2), nullable=False)

    # Relationships
    purchase = relationship('Purchase', back_populates='items')

    def __repr__(self):
        return f"<PurchaseItem(id={self.id}, product_code='{self.product_code}', quantity={self.quantity})>"
