# storefront/services/gateways/moyasar.py
import hashlib
import json

import requests
from requests import RequestException

from storefront.domain.errors import GatewayUnavailable, ValidationError
from storefront.domain.state_machine import OrderStatus, PaymentStatus
from storefront.services.gateways.base import (
    GatewayEvent,
    InitiationResult,
    PaymentGateway,
    raise_for_gateway,
    verify_hmac,
)
from storefront.utils import settings
from storefront.utils.logging import get_logger
from storefront.utils.money import to_minor_units
from storefront.utils.retry import http_retry

logger = get_logger(__name__)


class MoyasarGateway(PaymentGateway):
    """Bramka A: hosted checkout, klient jest przekierowany na strone bramki."""

    name = "moyasar"
    correlation_column = "moyasar_payment_id"
    signature_header = "x-moyasar-signature"
    signature_failure_status = 403
    status_map = {
        "paid": (OrderStatus.PROCESSING, PaymentStatus.COMPLETED),
        "captured": (OrderStatus.PROCESSING, PaymentStatus.COMPLETED),
        "failed": (OrderStatus.CANCELLED, PaymentStatus.FAILED),
        "voided": (OrderStatus.CANCELLED, PaymentStatus.FAILED),
        "refunded": (OrderStatus.REFUNDED, PaymentStatus.REFUNDED),
        "initiated": (OrderStatus.RECEIVED, PaymentStatus.PENDING),
        "authorized": (OrderStatus.RECEIVED, PaymentStatus.PENDING),
        "pending": (OrderStatus.RECEIVED, PaymentStatus.PENDING),
    }

    def __init__(
        self,
        secret_key: str | None = None,
        webhook_secret: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.MOYASAR_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.MOYASAR_WEBHOOK_SECRET
        self.base_url = (base_url or settings.MOYASAR_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS

    def payment_url(self, payment_id: str) -> str:
        return f"{settings.MOYASAR_CHECKOUT_URL.rstrip('/')}/{payment_id}"

    def initiate(self, order, billing_data: dict | None = None) -> InitiationResult:
        payload = {
            "amount": to_minor_units(order.amount_due),
            "currency": settings.CURRENCY,
            "description": f"Order {order.order_number}",
            "callback_url": f"{settings.PUBLIC_BASE_URL.rstrip('/')}/payments/{order.id}/return",
            "metadata": {"order_id": str(order.id), "order_number": order.order_number},
        }
        url = f"{self.base_url}/payments"
        logger.info(f"Moyasar POST {url} for order {order.order_number}")

        # bez retry - ponowiony POST moglby zalozyc druga platnosc
        try:
            resp = requests.post(url, json=payload, auth=(self.secret_key, ""), timeout=self.timeout)
        except RequestException as e:
            raise GatewayUnavailable(f"Moyasar unreachable: {e}") from e
        raise_for_gateway(resp, self.name)

        data = resp.json()
        payment_id = data.get("id")
        if not payment_id:
            raise GatewayUnavailable("Moyasar response without payment id")

        return InitiationResult(
            gateway=self.name,
            correlation_id=payment_id,
            redirect_url=self.payment_url(payment_id),
            remote_status=data.get("status"),
            order_values={"moyasar_payment_id": payment_id},
            raw=json.dumps(data),
        )

    def existing(self, order) -> InitiationResult | None:
        if not order.moyasar_payment_id:
            return None
        return InitiationResult(
            gateway=self.name,
            correlation_id=order.moyasar_payment_id,
            redirect_url=self.payment_url(order.moyasar_payment_id),
        )

    @http_retry()
    def _get_payment(self, payment_id: str) -> requests.Response:
        url = f"{self.base_url}/payments/{payment_id}"
        logger.info(f"Moyasar GET {url}")
        return requests.get(url, auth=(self.secret_key, ""), timeout=self.timeout)

    def fetch_payment(self, payment_id: str) -> dict:
        try:
            resp = self._get_payment(payment_id)
        except RequestException as e:
            raise GatewayUnavailable(f"Moyasar unreachable: {e}") from e
        raise_for_gateway(resp, self.name)
        return resp.json()

    def verify_signature(self, raw_body: bytes, signature: str) -> None:
        verify_hmac(self.webhook_secret, raw_body, signature, hashlib.sha256)

    def parse_event(self, raw_body: bytes) -> GatewayEvent:
        try:
            body = json.loads(raw_body)
        except ValueError as e:
            raise ValidationError("Malformed Moyasar payload") from e
        if not isinstance(body, dict):
            raise ValidationError("Malformed Moyasar payload")

        # webhook bywa opakowany w {"type": ..., "data": {...}}
        data = body.get("data") if isinstance(body.get("data"), dict) else body
        return self.event_from_payment(data)

    def event_from_payment(self, data: dict) -> GatewayEvent:
        payment_id = data.get("id")
        if not payment_id:
            raise ValidationError("Moyasar payload without payment id")
        metadata = data.get("metadata") or {}
        return GatewayEvent(
            correlation_id=str(payment_id),
            remote_status=str(data.get("status", "")),
            order_reference=metadata.get("order_id"),
            transaction_id=str(payment_id),
        )
