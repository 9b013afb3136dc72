"""PurchaseReturn and PurchaseReturnItem models."""
from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from storeflex.database import Base, BigIntegerPK


class PurchaseReturn(Base):
    """Goods sent back to a supplier; credits the supplier balance."""

    __tablename__ = 'purchase_return'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    purchase_id = Column(BigInteger, ForeignKey('purchase.id'), nullable=False, index=True)
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=False)
    supplier_name = Column(String(200), nullable=False)
    total_credit_amount = Column(Numeric(14, 2), nullable=False)
    reason = Column(Text, nullable=True)
    return_date = Column(DateTime(timezone=True), nullable=False, default=datetime.now)
    created_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)

    # Relationships
    purchase = relationship('Purchase')
    items = relationship('PurchaseReturnItem', back_populates='purchase_return', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<PurchaseReturn(id={self.id}, purchase_id={self.purchase_id}, credit={self.total_credit_amount})>"


class PurchaseReturnItem(Base):
    __tablename__ = 'purchase_return_item'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    purchase_return_id = Column(BigInteger, ForeignKey('purchase_return.id'), nullable=False, index=True)
    purchase_item_id = Column(BigInteger, ForeignKey('purchase_item.id'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    name = Column(String(200), nullable=False)
    return_quantity = Column(Integer, nullable=False)
    cost_price = Column(Numeric(14, 4), nullable=False)
    line_total = Column(Numeric(14, 2), nullable=False)

    purchase_return = relationship('PurchaseReturn', back_populates='items')
