# haatbazaar/modules/products/exceptions.py
from haatbazaar.core.exceptions import NotFoundError, PermissionDeniedError, ValidationFailedError


class ProductError(Exception):
    """Base exception for product catalogue errors."""
    pass


class ProductNotFoundError(ProductError, NotFoundError):
    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class ProductPermissionError(ProductError, PermissionDeniedError):
    def __init__(self, product_id: str):
        super().__init__("Not authorized to modify this product")
        self.product_id = product_id


class FarmerNotApprovedForListingError(ProductError, PermissionDeniedError):
    def __init__(self, farmer_id: str):
        super().__init__("Farmer account must be approved before listing products")
        self.farmer_id = farmer_id


class BuyerLocationRequiredError(ProductError, ValidationFailedError):
    def __init__(self):
        super().__init__("Buyer location required")


class InvalidProductStatusError(ProductError, ValidationFailedError):
    def __init__(self, status: str):
        super().__init__(f"Invalid product status '{status}'")
        self.status = status
