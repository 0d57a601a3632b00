# haatbazaar/modules/negotiations/exceptions.py
from haatbazaar.core.exceptions import NotFoundError, PermissionDeniedError, StateConflictError, ValidationFailedError


class NegotiationError(Exception):
    """Base exception for negotiation errors."""
    pass


class NegotiationNotFoundError(NegotiationError, NotFoundError):
    def __init__(self, negotiation_id: str):
        super().__init__("Negotiation not found")
        self.negotiation_id = negotiation_id


class NegotiationPermissionError(NegotiationError, PermissionDeniedError):
    def __init__(self, negotiation_id: str):
        super().__init__("Unauthorized")
        self.negotiation_id = negotiation_id


class NegotiationClosedError(NegotiationError, StateConflictError):
    def __init__(self, negotiation_id: str, status: str):
        super().__init__(f"Negotiation is {status} and can no longer be updated")
        self.negotiation_id = negotiation_id
        self.status = status


class CounterOfferIncompleteError(NegotiationError, ValidationFailedError):
    def __init__(self):
        super().__init__("Counter offers need both price and quantity")


class SelfNegotiationError(NegotiationError, ValidationFailedError):
    def __init__(self):
        super().__init__("You cannot negotiate on your own product")
