"""Expense model."""
from datetime import datetime
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, ForeignKey, Text
from storeflex.database import Base, BigIntegerPK

EXPENSE_TYPES = (
    'Bill Payment',
    'Supplies',
    'Lost / Damaged Product',
    'Marketing',
    'Rent',
    'Salaries',
    'Other',
)

LOSS_EXPENSE_TYPE = 'Lost / Damaged Product'


class Expense(Base):
    """Operating expense. Loss expenses also take stock off a product."""

    __tablename__ = 'expense'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    expense_type = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Numeric(14, 2), nullable=False)
    expense_date = Column(DateTime(timezone=True), nullable=False, default=datetime.now)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=True)
    quantity = Column(Integer, nullable=True)
    created_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)

    def __repr__(self):
        return f"<Expense(id={self.id}, type='{self.expense_type}', amount={self.amount})>"
