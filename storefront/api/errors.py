# storefront/api/errors.py
from fastapi import HTTPException

from storefront.domain.errors import (
    CouponRejected,
    GatewayUnavailable,
    InvalidSignature,
    InvalidStateTransition,
    NotFound,
    PersistenceConflict,
    StockExceeded,
    StorefrontError,
    ValidationError,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_CODES = {
    ValidationError: 400,
    NotFound: 404,
    StockExceeded: 409,
    CouponRejected: 400,
    GatewayUnavailable: 503,
    InvalidSignature: 403,
    InvalidStateTransition: 409,
    PersistenceConflict: 409,
}


def http_error(e: StorefrontError, status_code: int | None = None) -> HTTPException:
    """Blad domeny -> HTTPException z kodem z taksonomii i body z to_dict()."""
    if status_code is None:
        status_code = STATUS_CODES.get(type(e), 400)
    if status_code >= 500:
        logger.warning(f"{type(e).__name__}: {e.message}")
    return HTTPException(status_code=status_code, detail=e.to_dict())
