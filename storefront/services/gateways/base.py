# storefront/services/gateways/base.py
import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import requests

from storefront.domain.errors import GatewayUnavailable, InvalidSignature, ValidationError
from storefront.domain.state_machine import OrderStatus, PaymentStatus
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class InitiationResult:
    gateway: str
    correlation_id: str
    redirect_url: Optional[str] = None
    iframe_url: Optional[str] = None
    client_secret: Optional[str] = None
    # status zdalny gdy bramka odpowiada synchronicznie (karta)
    remote_status: Optional[str] = None
    # kolumny do zapisania na zamowieniu
    order_values: dict = field(default_factory=dict)
    raw: str = ""

    def public(self) -> dict:
        return {
            "gateway": self.gateway,
            "correlation_id": self.correlation_id,
            "redirect_url": self.redirect_url,
            "iframe_url": self.iframe_url,
            "client_secret": self.client_secret,
        }


@dataclass(frozen=True)
class GatewayEvent:
    correlation_id: str
    remote_status: str
    # referencja zamowienia z body - tylko do porownania, nigdy do wyszukiwania
    order_reference: Optional[str] = None
    transaction_id: Optional[str] = None
    order_values: dict = field(default_factory=dict)


class PaymentGateway(ABC):
    """Wspolny interfejs bramek; szczegoly payloadow zostaja w implementacjach."""

    name: str = ""
    correlation_column: str = ""
    signature_header: str = ""
    signature_failure_status: int = 403
    status_map: dict = {}
    # waluta zdalnej platnosci; None = settings.CURRENCY
    currency: str | None = None

    @abstractmethod
    def initiate(self, order, billing_data: dict | None = None) -> InitiationResult:
        ...

    @abstractmethod
    def existing(self, order) -> InitiationResult | None:
        """Odtworzenie wyniku inicjacji z zapisanych identyfikatorow (idempotencja)."""

    @abstractmethod
    def verify_signature(self, raw_body: bytes, signature: str) -> None:
        """Rzuca InvalidSignature. Dziala na surowych bajtach, przed parsowaniem."""

    @abstractmethod
    def parse_event(self, raw_body: bytes) -> GatewayEvent:
        ...

    def map_status(self, remote_status: str) -> tuple[OrderStatus, PaymentStatus] | None:
        return self.status_map.get((remote_status or "").lower())

    def matches_order(self, order, event: GatewayEvent) -> bool:
        return event.order_reference is None or str(event.order_reference) == str(order.id)


def verify_hmac(secret: str, raw_body: bytes, signature: str, digestmod=hashlib.sha256) -> None:
    if not secret:
        # bez sekretu nie da sie niczego zweryfikowac - odrzucamy wszystko
        raise InvalidSignature("Webhook secret is not configured")
    if not signature:
        raise InvalidSignature("Missing signature")
    expected = hmac.new(secret.encode("utf-8"), raw_body, digestmod).hexdigest()
    # porownanie w stalym czasie
    if not hmac.compare_digest(expected, signature.strip().lower()):
        raise InvalidSignature("Signature mismatch")


def raise_for_gateway(resp: requests.Response, gateway: str):
    """5xx = przejsciowe (retryable), 4xx = odrzucone zadanie."""
    if resp.status_code >= 500:
        raise GatewayUnavailable(f"{gateway} returned {resp.status_code}")
    if resp.status_code >= 400:
        logger.error(f"{gateway} rejected request: {resp.status_code} {resp.text[:500]}")
        raise ValidationError(f"{gateway} rejected the payment request")
