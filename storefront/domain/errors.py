# storefront/domain/errors.py
from typing import Dict


class StorefrontError(Exception):
    """Base for every error the cart/order/payment pipeline raises on purpose."""


class NotAuthenticated(StorefrontError):
    def __init__(self, message: str = "Sign in to use the cart and orders"):
        super().__init__(message)


class ValidationError(StorefrontError):
    """
    Missing or malformed checkout input.
    `fields` maps the offending field to a message the form can show next to it.
    """

    def __init__(self, message: str, fields: Dict[str, str] | None = None):
        super().__init__(message)
        self.fields = fields or {}


class NotFound(StorefrontError):
    pass


class PersistenceError(StorefrontError):
    pass


class GatewayError(StorefrontError):
    pass


class VerificationPending(StorefrontError):
    """Processor has no definitive paid/unpaid answer yet. Not a failure."""


class CheckoutInProgress(StorefrontError):
    pass
