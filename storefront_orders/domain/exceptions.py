class DomainException(Exception):
    pass


class ValidationError(DomainException):
    pass


class CatalogServiceError(DomainException):
    pass


class PaymentGatewayError(DomainException):
    pass


class ProductNotFoundError(DomainException):
    pass


class ProductOutOfStockError(DomainException):
    pass


class OrderNotFoundError(DomainException):
    pass


class CouponError(DomainException):
    pass


class CouponNotFound(CouponError):
    def __init__(self, code: str):
        self.code = code
        super().__init__("Invalid coupon code")


class CouponInactive(CouponError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Coupon {code} is no longer active")


class CouponMinCartNotMet(CouponError):
    def __init__(self, code: str, min_cart_value, cart_value):
        self.code = code
        self.min_cart_value = min_cart_value
        self.cart_value = cart_value
        super().__init__(f"Minimum cart value of {min_cart_value} required for this coupon")


class CouponUsageExceeded(CouponError):
    def __init__(self, code: str):
        self.code = code
        super().__init__("Coupon usage limit exceeded")


class CouponAlreadyExists(CouponError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Coupon code {code} already exists")


class InvalidTransition(DomainException):
    def __init__(self, current, target, reason: str = ""):
        self.current = current
        self.target = target
        message = f"Invalid status transition: {_value(current)} -> {_value(target)}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ConcurrentUpdateError(DomainException):
    pass


class PaymentVerificationFailed(DomainException):
    pass


class NumberingConflict(DomainException):
    pass


class PersistenceUnavailable(DomainException):
    pass


def _value(status) -> str:
    return getattr(status, "value", status)
