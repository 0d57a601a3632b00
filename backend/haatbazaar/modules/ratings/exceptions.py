# haatbazaar/modules/ratings/exceptions.py
from haatbazaar.core.exceptions import NotFoundError, PermissionDeniedError, ValidationFailedError


class RatingError(Exception):
    """Base exception for rating errors."""
    pass


class RatingNotAllowedError(RatingError, PermissionDeniedError):
    def __init__(self):
        super().__init__("Only buyers can submit ratings")


class RatingTargetNotFoundError(RatingError, NotFoundError):
    def __init__(self, target_id: str):
        super().__init__("Target user not found")
        self.target_id = target_id


class InvalidRatingTargetError(RatingError, ValidationFailedError):
    def __init__(self, reason: str):
        super().__init__(reason)
