"""Sale and SaleItem models."""
import enum
from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storeflex.database import Base, BigIntegerPK


class PaymentMethod(str, enum.Enum):
    """How a sale or purchase was paid."""
    CASH = 'cash'
    CREDIT = 'credit'
    CHECK = 'check'


class PaymentStatus(str, enum.Enum):
    """Payment status of a sale or purchase. Only check payments move after creation."""
    PAID = 'paid'
    PARTIAL = 'partial'
    PENDING_CHECK_CLEARANCE = 'pending_check_clearance'
    REJECTED = 'rejected'


class Sale(Base):
    """Sale - immutable once recorded, except ``payment_status`` of check sales."""

    __tablename__ = 'sale'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_sale_tenant_code'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    code = Column(String(20), nullable=False)  # sale000001
    customer_id = Column(BigInteger, ForeignKey('customer.id'), nullable=True)
    customer_name = Column(String(200), nullable=False, default='Walk-in Customer')
    sale_date = Column(DateTime(timezone=True), nullable=False, default=datetime.now)

    subtotal = Column(Numeric(14, 2), nullable=False)
    tax_percentage = Column(Numeric(6, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(14, 2), nullable=False, default=0)
    service_charge = Column(Numeric(14, 2), nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False)

    payment_method = Column(String(20), nullable=False)
    amount_paid = Column(Numeric(14, 2), nullable=False, default=0)
    previous_balance = Column(Numeric(14, 2), nullable=False, default=0)
    credit_amount = Column(Numeric(14, 2), nullable=False, default=0)  # Customer balance after this sale
    check_number = Column(String(50), nullable=True)
    payment_status = Column(String(30), nullable=False, default=PaymentStatus.PAID.value)

    created_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    customer = relationship('Customer', back_populates='sales')
    items = relationship('SaleItem', back_populates='sale', cascade='all, delete-orphan',
                         order_by='SaleItem.id')

    def __repr__(self):
        return f"<Sale(id={self.id}, code='{self.code}', total={self.total_amount}, status='{self.payment_status}')>"


class SaleItem(Base):
    """Snapshot of a product line at sale time; never follows later product edits."""

    __tablename__ = 'sale_item'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    sale_id = Column(BigInteger, ForeignKey('sale.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    product_code = Column(String(20), nullable=False)
    name = Column(String(200), nullable=False)
    sku = Column(String(100), nullable=True)
    sub_category = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False)
    price_per_unit = Column(Numeric(14, 2), nullable=False)
    cost_price = Column(Numeric(14, 4), nullable=False, default=0)  # Unit cost at sale time (COGS)
    total_amount = Column(Numeric(14, 2), nullable=False)

    # Relationships
    sale = relationship('Sale', back_populates='items')

    def __repr__(self):
        return f"<SaleItem(id={self.id}, product_code='{self.product_code}', quantity={self.quantity})>"
