"""SaleReturn and SaleReturnItem models."""
import enum
from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from storeflex.database import Base, BigIntegerPK


class RefundMethod(str, enum.Enum):
    CASH = 'cash'
    CREDIT_BALANCE = 'credit_balance'


class SaleReturn(Base):
    """Goods brought back by a customer."""

    __tablename__ = 'sale_return'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    sale_id = Column(BigInteger, ForeignKey('sale.id'), nullable=False, index=True)
    customer_id = Column(BigInteger, ForeignKey('customer.id'), nullable=True)
    customer_name = Column(String(200), nullable=False)
    total_refund_amount = Column(Numeric(14, 2), nullable=False)
    refund_method = Column(String(20), nullable=False, default=RefundMethod.CASH.value)
    credited_amount = Column(Numeric(14, 2), nullable=False, default=0)  # Taken off the customer balance
    reason = Column(Text, nullable=True)
    return_date = Column(DateTime(timezone=True), nullable=False, default=datetime.now)
    created_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)

    # Relationships
    sale = relationship('Sale')
    items = relationship('SaleReturnItem', back_populates='sale_return', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<SaleReturn(id={self.id}, sale_id={self.sale_id}, refund={self.total_refund_amount})>"


class SaleReturnItem(Base):
    __tablename__ = 'sale_return_item'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    sale_return_id = Column(BigInteger, ForeignKey('sale_return.id'), nullable=False, index=True)
    sale_item_id = Column(BigInteger, ForeignKey('sale_item.id'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    name = Column(String(200), nullable=False)
    return_quantity = Column(Integer, nullable=False)
    price_per_unit = Column(Numeric(14, 2), nullable=False)
    line_total = Column(Numeric(14, 2), nullable=False)

    sale_return = relationship('SaleReturn', back_populates='items')
