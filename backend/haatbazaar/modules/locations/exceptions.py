# haatbazaar/modules/locations/exceptions.py
from haatbazaar.core.exceptions import NotFoundError


class LocationError(Exception):
    pass


class ActiveLocationNotFoundError(LocationError, NotFoundError):
    def __init__(self, user_id: str):
        super().__init__("No active location found")
        self.user_id = user_id
