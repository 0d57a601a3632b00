# haatbazaar/modules/payments/exceptions.py
from haatbazaar.core.exceptions import IntegrationError, PermissionDeniedError, StateConflictError, ValidationFailedError


class PaymentError(Exception):
    """Base exception for payment errors."""
    pass


class PaymentPermissionError(PaymentError, PermissionDeniedError):
    def __init__(self, order_id: str):
        super().__init__("Not authorized to pay for this order")
        self.order_id = order_id


class PaymentMethodMismatchError(PaymentError, ValidationFailedError):
    def __init__(self, order_id: str, method: str):
        super().__init__(f"Order payment method is {method}, not esewa")
        self.order_id = order_id


class AlreadyPaidError(PaymentError, StateConflictError):
    def __init__(self, order_id: str):
        super().__init__("Order is already paid")
        self.order_id = order_id


class InvalidCallbackError(PaymentError, ValidationFailedError):
    """Callback payload could not be decoded or is missing signed fields."""
    pass


class SignatureMismatchError(PaymentError, ValidationFailedError):
    def __init__(self):
        super().__init__("Invalid eSewa signature")


class TransactionMismatchError(PaymentError, ValidationFailedError):
    def __init__(self, order_id: str, transaction_uuid: str = ""):
        msg = "Transaction does not belong to this order" if transaction_uuid else "Missing transaction_uuid"
        super().__init__(msg)
        self.order_id = order_id
        self.transaction_uuid = transaction_uuid


class MissingCheckoutFieldError(PaymentError, ValidationFailedError):
    def __init__(self, field: str):
        super().__init__(f"Missing required field: {field}")
        self.field = field


class ProviderUnavailableError(PaymentError, IntegrationError):
    def __init__(self, reason: str):
        super().__init__(f"eSewa status check failed: {reason}")
        self.reason = reason
