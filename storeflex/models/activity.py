"""Activity model - append-only event log behind dashboards and reports."""
import enum
from datetime import datetime
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, ForeignKey, Text, Index
from storeflex.database import Base, BigIntegerPK


class ActivityType(str, enum.Enum):
    """Activity type enum."""
    SALE = 'sale'
    PURCHASE = 'purchase'
    NEW = 'new'
    UPDATE = 'update'
    DELETE = 'delete'
    CREDIT_SETTLED = 'credit_settled'
    CHECK_CLEARED = 'check_cleared'
    CHECK_REJECTED = 'check_rejected'
    SALE_RETURN = 'sale_return'
    PURCHASE_RETURN = 'purchase_return'
    LOSS = 'loss'
    ORDER_CREATED = 'order_created'


# Columns each activity type must carry besides type/details/timestamp.
REQUIRED_FIELDS = {
    ActivityType.SALE: ('reference_code', 'amount', 'product_name'),
    ActivityType.PURCHASE: ('reference_code', 'amount', 'supplier_id'),
    ActivityType.NEW: ('product_id', 'product_name'),
    ActivityType.UPDATE: ('product_id', 'product_name'),
    ActivityType.DELETE: ('reference_code',),
    ActivityType.CREDIT_SETTLED: ('amount',),
    ActivityType.CHECK_CLEARED: ('reference_code', 'amount'),
    ActivityType.CHECK_REJECTED: ('reference_code', 'amount'),
    ActivityType.SALE_RETURN: ('reference_code', 'amount'),
    ActivityType.PURCHASE_RETURN: ('reference_code', 'amount', 'supplier_id'),
    ActivityType.LOSS: ('product_id', 'product_name', 'amount'),
    ActivityType.ORDER_CREATED: ('reference_code', 'amount'),
}

FINANCIAL_TYPES = (
    ActivityType.SALE, ActivityType.PURCHASE, ActivityType.CREDIT_SETTLED,
    ActivityType.CHECK_CLEARED, ActivityType.CHECK_REJECTED,
    ActivityType.SALE_RETURN, ActivityType.PURCHASE_RETURN,
)


class Activity(Base):
    """One ledger event. Rows are never updated or deleted."""

    __tablename__ = 'activity'
    __table_args__ = (
        Index('ix_activity_tenant_timestamp', 'tenant_id', 'timestamp'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    type = Column(String(30), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=True)
    product_name = Column(String(200), nullable=True)
    customer_id = Column(BigInteger, ForeignKey('customer.id'), nullable=True)
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=True)
    reference_code = Column(String(40), nullable=True)  # Code of the sale/purchase/order/product involved
    amount = Column(Numeric(14, 2), nullable=True)
    details = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=datetime.now)

    def __repr__(self):
        return f"<Activity(id={self.id}, type='{self.type}', reference='{self.reference_code}')>"
