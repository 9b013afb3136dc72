"""Custom exceptions for the StoreFlex application."""


class StoreflexError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(StoreflexError):
    """Malformed input rejected before any transaction opens."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class BusinessLogicError(StoreflexError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(StoreflexError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_ref=None):
        super().__init__('Product not found', {'product': product_ref} if product_ref else None)


class CustomerNotFoundError(NotFoundError):
    def __init__(self, customer_ref=None):
        super().__init__('Customer not found', {'customer': customer_ref} if customer_ref else None)


class SupplierNotFoundError(NotFoundError):
    def __init__(self, supplier_ref=None):
        super().__init__('Supplier not found', {'supplier': supplier_ref} if supplier_ref else None)


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_name, requested, available, message=None):
        self.product_name = product_name
        self.requested = requested
        self.available = available
        if message is None:
            message = f"Not enough stock for {product_name}. Only {available} available."
        super().__init__(
            message,
            status_code=409,
            payload={'product_name': product_name, 'requested': requested, 'available': available}
        )


class InvalidPaymentAmountError(BusinessLogicError):
    """Raised when the amount paid on a credit sale exceeds the total payable."""
    def __init__(self, amount_paid, total_payable):
        self.amount_paid = amount_paid
        self.total_payable = total_payable
        super().__init__(
            f"Amount paid ({amount_paid:.2f}) cannot exceed the total payable ({total_payable:.2f})",
            payload={'amount_paid': str(amount_paid), 'total_payable': str(total_payable)}
        )


class InvalidSettlementAmountError(BusinessLogicError):
    """Raised when a settlement is zero, negative or larger than what is outstanding."""
    def __init__(self, amount, outstanding):
        self.amount = amount
        self.outstanding = outstanding
        super().__init__(
            f"Invalid settlement amount {amount:.2f}: must be greater than 0 and at most {outstanding:.2f}",
            payload={'amount': str(amount), 'outstanding': str(outstanding)}
        )


class TransactionConflictError(StoreflexError):
    """Concurrent writes kept conflicting after all retries."""
    def __init__(self, message="Failed to record transaction. Please try again."):
        super().__init__(message, 409)


class UnauthorizedError(StoreflexError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)


class AIServiceUnavailableError(StoreflexError):
    """The hosted language model could not be reached or gave an unusable answer."""
    def __init__(self, message="AI service is not available"):
        super().__init__(message, 503)
