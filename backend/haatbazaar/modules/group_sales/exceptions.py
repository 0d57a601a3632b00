# haatbazaar/modules/group_sales/exceptions.py
from haatbazaar.core.exceptions import NotFoundError, PermissionDeniedError, StateConflictError, ValidationFailedError


class GroupSaleError(Exception):
    """Base exception for group sale errors."""
    pass


class GroupSaleNotFoundError(GroupSaleError, NotFoundError):
    def __init__(self, sale_id: str):
        super().__init__("Group sale not found")
        self.sale_id = sale_id


class GroupSalePermissionError(GroupSaleError, PermissionDeniedError):
    def __init__(self, sale_id: str):
        super().__init__("Not authorized to manage this group sale")
        self.sale_id = sale_id


class GroupSaleNotOpenError(GroupSaleError, StateConflictError):
    def __init__(self, sale_id: str, status: str):
        super().__init__(f"Group sale is {status}, not open for joining")
        self.sale_id = sale_id
        self.status = status


class AlreadyJoinedError(GroupSaleError, StateConflictError):
    def __init__(self, sale_id: str, buyer_id: str):
        super().__init__("You have already joined this group sale")
        self.sale_id = sale_id
        self.buyer_id = buyer_id


class DeadlinePassedError(GroupSaleError, StateConflictError):
    def __init__(self, sale_id: str):
        super().__init__("Group sale deadline has passed")
        self.sale_id = sale_id


class CapacityExceededError(GroupSaleError, StateConflictError):
    def __init__(self, sale_id: str, remaining: float):
        super().__init__(f"Requested quantity exceeds remaining capacity. Only {remaining:g} units left")
        self.sale_id = sale_id
        self.remaining = remaining


class InvalidDeadlineError(GroupSaleError, ValidationFailedError):
    def __init__(self):
        super().__init__("Deadline must be in the future")


class InvalidGroupSaleTransitionError(GroupSaleError, StateConflictError):
    def __init__(self, current: str, target: str, reason: str = ""):
        msg = f"Cannot change group sale status from '{current}' to '{target}'"
        super().__init__(f"{msg}: {reason}" if reason else msg)
        self.current = current
        self.target = target
