"""Models package - exports all SQLAlchemy models."""
# Platform models
from storeflex.models.app_user import AppUser
from storeflex.models.tenant import Tenant
from storeflex.models.user_tenant import UserTenant, UserRole, ROLE_HIERARCHY
from storeflex.models.counter import Counter

# Ledger models
from storeflex.models.product import Product
from storeflex.models.customer import Customer
from storeflex.models.supplier import Supplier
from storeflex.models.sale import Sale, SaleItem, PaymentMethod, PaymentStatus
from storeflex.models.purchase import Purchase, PurchaseItem
from storeflex.models.purchase_return import PurchaseReturn, PurchaseReturnItem
from storeflex.models.sale_return import SaleReturn, SaleReturnItem, RefundMethod
from storeflex.models.activity import Activity, ActivityType, REQUIRED_FIELDS, FINANCIAL_TYPES
from storeflex.models.order import TradeOrder, SalesOrder, PurchaseOrder, OrderItem, OrderStatus
from storeflex.models.expense import Expense, EXPENSE_TYPES, LOSS_EXPENSE_TYPE

__all__ = [
    # Platform
    'Tenant', 'AppUser', 'UserTenant', 'UserRole', 'ROLE_HIERARCHY', 'Counter',
    # Ledger
    'Product', 'Customer', 'Supplier',
    'Sale', 'SaleItem', 'PaymentMethod', 'PaymentStatus',
    'Purchase', 'PurchaseItem',
    'PurchaseReturn', 'PurchaseReturnItem', 'SaleReturn', 'SaleReturnItem', 'RefundMethod',
    'Activity', 'ActivityType', 'REQUIRED_FIELDS', 'FINANCIAL_TYPES',
    'TradeOrder', 'SalesOrder', 'PurchaseOrder', 'OrderItem', 'OrderStatus',
    'Expense', 'EXPENSE_TYPES', 'LOSS_EXPENSE_TYPE',
]
