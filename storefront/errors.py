"""Exceptions raised by the checkout and payment workflow.

Every exception carries a human-readable message that is relayed to the
client verbatim as ``{"error": message}``; the HTTP status comes from
``ERROR_STATUS_CODES``.
"""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# --- validation ---


class InvalidAmount(StorefrontError):
    """Raised when a gateway order is requested for a non-positive amount."""

    def __init__(self):
        super().__init__("Invalid amount")


class EmptyCart(StorefrontError):
    def __init__(self):
        super().__init__("Cart is empty")


class CouponRejected(StorefrontError):
    """Raised when a coupon fails one of the pricing-stage checks."""


# --- identity ---


class Unauthorized(StorefrontError):
    def __init__(self):
        super().__init__("Unauthorized")


class Forbidden(StorefrontError):
    def __init__(self, message: str = "Admin access required"):
        super().__init__(message)


# --- trust boundary ---


class PaymentVerificationFailed(StorefrontError):
    """Raised when the gateway signature does not match, or the payment
    belongs to a different gateway order."""

    def __init__(self):
        super().__init__("Payment verification failed")


class OrderTotalMismatch(StorefrontError):
    def __init__(self, expected: float, actual: float):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Order total mismatch: order is {expected:.2f}, cart is {actual:.2f}"
        )


# --- orders ---


class OrderNotFound(StorefrontError):
    def __init__(self, order_id=None):
        self.order_id = order_id
        super().__init__("Order not found")


class InvalidStatusTransition(StorefrontError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move order from {current} to {target}")


# --- settlement ---


class SettlementError(StorefrontError):
    """Raised when a settlement step fails after the signature was verified."""


class SettlementOrderNotFound(SettlementError):
    def __init__(self):
        super().__init__("Order not found")


class InsufficientStock(SettlementError):
    def __init__(self, product_name: str):
        self.product_name = product_name
        super().__init__(f"Insufficient stock for {product_name}")


class CouponLimitReached(SettlementError):
    def __init__(self):
        super().__init__("This coupon has reached its usage limit")


# --- upstream / server ---


class ConfigurationError(StorefrontError):
    pass


class OrderPersistenceError(StorefrontError):
    def __init__(self):
        super().__init__("Failed to create order. Please restart checkout.")


class GatewayError(StorefrontError):
    """Raised when the payment gateway rejects a request."""


ERROR_STATUS_CODES = {
    InvalidAmount: 400,
    EmptyCart: 400,
    CouponRejected: 400,
    PaymentVerificationFailed: 400,
    OrderTotalMismatch: 400,
    InvalidStatusTransition: 400,
    Unauthorized: 401,
    Forbidden: 403,
    OrderNotFound: 404,
    ConfigurationError: 500,
    OrderPersistenceError: 500,
    GatewayError: 500,
    SettlementError: 500,
    SettlementOrderNotFound: 500,
    InsufficientStock: 500,
    CouponLimitReached: 500,
}


def status_code_for(exc: StorefrontError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500
