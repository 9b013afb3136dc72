"""Staged sales and purchase orders (single-table inheritance on ``order_type``)."""
import enum
from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from storeflex.database import Base, BigIntegerPK


class OrderStatus(str, enum.Enum):
    PENDING = 'pending'
    PROCESSED = 'processed'


class TradeOrder(Base):
    """Order not yet committed to the ledger."""

    __tablename__ = 'trade_order'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_trade_order_tenant_code'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    order_type = Column(String(20), nullable=False)
    code = Column(String(20), nullable=False)
    party_code = Column(String(20), nullable=True)  # cus0001 / sup0001
    party_name = Column(String(200), nullable=False)
    total_amount = Column(Numeric(14, 2), nullable=False)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    order_date = Column(DateTime(timezone=True), nullable=False, default=datetime.now)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    transaction_code = Column(String(20), nullable=True)  # Sale/purchase created on processing
    created_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)

    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan',
                         order_by='OrderItem.id')

    __mapper_args__ = {
        'polymorphic_on': order_type,
        'polymorphic_identity': 'order',
    }

    @property
    def is_pending(self):
        return self.status == OrderStatus.PENDING.value

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, code='{self.code}', status='{self.status}')>"


class SalesOrder(TradeOrder):
    customer_id = Column(BigInteger, ForeignKey('customer.id'), nullable=True)

    __mapper_args__ = {'polymorphic_identity': 'sale'}


class PurchaseOrder(TradeOrder):
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=True)

    __mapper_args__ = {'polymorphic_identity': 'purchase'}


class OrderItem(Base):
    __tablename__ = 'order_item'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('trade_order.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    product_code = Column(String(20), nullable=False)
    name = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(14, 4), nullable=False)  # Selling price (sales) or cost (purchases)
    total_amount = Column(Numeric(14, 2), nullable=False)

    order = relationship('TradeOrder', back_populates='items')
