# haatbazaar/modules/admin/exceptions.py
from haatbazaar.core.exceptions import ValidationFailedError


class AdminError(Exception):
    pass


class NotAFarmerError(AdminError, ValidationFailedError):
    def __init__(self, user_id: str):
        super().__init__("User is not a farmer")
        self.user_id = user_id


class CannotDeleteSelfError(AdminError, ValidationFailedError):
    def __init__(self):
        super().__init__("Admins cannot delete their own account")
