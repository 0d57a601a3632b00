# haatbazaar/core/exceptions.py
# Cross-cutting error categories. Module exceptions derive from one of these
# so main.py can map them to HTTP status codes in one place.


class HaatBazaarError(Exception):
    """Root of every error raised deliberately by the backend."""
    pass


class RepositoryError(HaatBazaarError):
    """Database operation failed."""
    pass


class IntegrationError(HaatBazaarError):
    """An upstream provider (eSewa, Expo push) failed or was unreachable."""
    pass


class ValidationFailedError(HaatBazaarError):
    """Input is well-formed JSON but violates a business rule."""
    pass


class AuthenticationError(HaatBazaarError):
    pass


class PermissionDeniedError(HaatBazaarError):
    pass


class NotFoundError(HaatBazaarError):
    pass


class StateConflictError(HaatBazaarError):
    """Requested change is not allowed from the entity's current state."""
    pass
