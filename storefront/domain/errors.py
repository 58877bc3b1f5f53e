# storefront/domain/errors.py
from enum import Enum


class StorefrontError(Exception):
    """Baza taksonomii bledow domeny. `retryable` mowi wywolujacemu czy warto ponowic."""

    code = "error"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


class ValidationError(StorefrontError):
    code = "validation_error"


class NotFound(StorefrontError):
    code = "not_found"


class StockExceeded(StorefrontError):
    code = "stock_exceeded"

    def __init__(self, service_title: str, remaining: int):
        super().__init__(f"Only {remaining} items available for {service_title}")
        self.service_title = service_title
        self.remaining = remaining

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(service_title=self.service_title, remaining=self.remaining)
        return data


class CouponRejection(str, Enum):
    INVALID_CODE = "INVALID_CODE"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"
    EXHAUSTED = "EXHAUSTED"
    BELOW_MINIMUM = "BELOW_MINIMUM"


class CouponRejected(StorefrontError):
    code = "coupon_rejected"

    def __init__(self, reason: CouponRejection, message: str = ""):
        super().__init__(message or f"Coupon rejected: {reason.value}")
        self.reason = reason

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason.value
        return data


class GatewayUnavailable(StorefrontError):
    code = "gateway_unavailable"
    retryable = True


class InvalidSignature(StorefrontError):
    code = "invalid_signature"


class InvalidStateTransition(StorefrontError):
    code = "invalid_state_transition"

    def __init__(self, current: str, target: str, message: str = ""):
        super().__init__(message or f"Cannot move from {current} to {target}")
        self.current = current
        self.target = target


class PersistenceConflict(StorefrontError):
    code = "persistence_conflict"
    retryable = True
