# haatbazaar/modules/users/exceptions.py
from haatbazaar.core.exceptions import (
    AuthenticationError, NotFoundError, PermissionDeniedError, StateConflictError, ValidationFailedError,
)


class UserError(Exception):
    """Base exception for user and auth errors."""
    pass


class UserAlreadyExistsError(UserError, StateConflictError):
    def __init__(self, phone: str):
        super().__init__("User already exists")
        self.phone = phone


class InvalidCredentialsError(UserError, AuthenticationError):
    def __init__(self):
        super().__init__("Invalid phone number or password")


class FarmerNotApprovedError(UserError, PermissionDeniedError):
    def __init__(self, user_id: str):
        super().__init__("Farmer account not approved yet")
        self.user_id = user_id


class UserNotFoundError(UserError, NotFoundError):
    def __init__(self, user_id: str):
        super().__init__("User not found")
        self.user_id = user_id


class AdminRegistrationDisabledError(UserError, ValidationFailedError):
    def __init__(self):
        super().__init__("Admin accounts cannot be self-registered")
