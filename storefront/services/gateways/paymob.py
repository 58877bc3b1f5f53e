# storefront/services/gateways/paymob.py
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

BILLING_FIELDS = (
    "first_name",
    "last_name",
    "phone_number",
    "email",
    "street",
    "city",
    "country",
    "zip_code",
)


class PaymobGateway(PaymentGateway):
    """
    Bramka B: iframe / hosted fields.
    1. token autoryzacyjny
    2. zdalne zamowienie
    3. krotkotrwaly payment key do iframe
    """

    name = "paymob"
    correlation_column = "paymob_order_id"
    signature_header = "x-paymob-signature"
    signature_failure_status = 401
    status_map = {
        "success": (OrderStatus.CONFIRMED, PaymentStatus.COMPLETED),
        "pending": (OrderStatus.RECEIVED, PaymentStatus.PENDING),
        "failed": (OrderStatus.CANCELLED, PaymentStatus.FAILED),
        "refunded": (OrderStatus.REFUNDED, PaymentStatus.REFUNDED),
    }

    def __init__(
        self,
        api_key: str | None = None,
        hmac_secret: str | None = None,
        base_url: str | None = None,
        integration_id: int | None = None,
        timeout: float | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.PAYMOB_API_KEY
        self.hmac_secret = hmac_secret if hmac_secret is not None else settings.PAYMOB_HMAC_SECRET
        self.base_url = (base_url or settings.PAYMOB_BASE_URL).rstrip("/")
        self.integration_id = integration_id or settings.PAYMOB_INTEGRATION_ID
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self.currency = settings.PAYMOB_CURRENCY

    def iframe_url(self, payment_key: str) -> str:
        return f"{self.base_url}/acceptance/iframes/{settings.PAYMOB_IFRAME_ID}?payment_token={payment_key}"

    # auth i payment key mozna bezpiecznie ponawiac
    @http_retry()
    def _post_idempotent(self, path: str, payload: dict) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.info(f"Paymob POST {url}")
        return requests.post(url, json=payload, timeout=self.timeout)

    def _post(self, path: str, payload: dict, retry: bool) -> dict:
        try:
            if retry:
                resp = self._post_idempotent(path, payload)
            else:
                url = f"{self.base_url}{path}"
                logger.info(f"Paymob POST {url}")
                resp = requests.post(url, json=payload, timeout=self.timeout)
        except RequestException as e:
            raise GatewayUnavailable(f"Paymob unreachable: {e}") from e
        raise_for_gateway(resp, self.name)
        return resp.json()

    def authenticate(self) -> str:
        data = self._post("/auth/tokens", {"api_key": self.api_key}, retry=True)
        token = data.get("token")
        if not token:
            raise GatewayUnavailable("Paymob authentication returned no token")
        return token

    def initiate(self, order, billing_data: dict | None = None) -> InitiationResult:
        billing_data = billing_data or {}
        missing = [f for f in BILLING_FIELDS if not billing_data.get(f)]
        if missing:
            raise ValidationError(f"Brak danych rozliczeniowych: {', '.join(missing)}")

        amount_cents = to_minor_units(order.amount_due)
        token = self.authenticate()

        remote_order = self._post(
            "/ecommerce/orders",
            {
                "auth_token": token,
                "delivery_needed": False,
                "amount_cents": amount_cents,
                "currency": self.currency,
                # merchant_order_id jest unikalny po stronie bramki
                "merchant_order_id": order.order_number,
                "items": [
                    {
                        "name": item.service_id,
                        "amount_cents": to_minor_units(item.total_price),
                        "description": item.notes or item.service_id,
                        "quantity": item.quantity,
                    }
                    for item in order.items
                ],
            },
            retry=False,
        )
        remote_order_id = remote_order.get("id")
        if not remote_order_id:
            raise GatewayUnavailable("Paymob order creation returned no id")

        key = self._post(
            "/acceptance/payment_keys",
            {
                "auth_token": token,
                "amount_cents": amount_cents,
                "expiration": settings.PAYMOB_KEY_EXPIRATION_SECONDS,
                "order_id": remote_order_id,
                "billing_data": {f: billing_data[f] for f in BILLING_FIELDS},
                "currency": self.currency,
                "integration_id": self.integration_id,
                "lock_order_when_paid": True,
            },
            retry=True,
        )
        payment_key = key.get("token")
        if not payment_key:
            raise GatewayUnavailable("Paymob payment key generation returned no token")

        return InitiationResult(
            gateway=self.name,
            correlation_id=str(remote_order_id),
            iframe_url=self.iframe_url(payment_key),
            order_values={
                "paymob_order_id": str(remote_order_id),
                "paymob_payment_key": payment_key,
            },
            raw=json.dumps({"order": remote_order, "payment_key": {"token": payment_key}}),
        )

    def existing(self, order) -> InitiationResult | None:
        if not (order.paymob_order_id and order.paymob_payment_key):
            return None
        return InitiationResult(
            gateway=self.name,
            correlation_id=order.paymob_order_id,
            iframe_url=self.iframe_url(order.paymob_payment_key),
        )

    def verify_signature(self, raw_body: bytes, signature: str) -> None:
        verify_hmac(self.hmac_secret, raw_body, signature, hashlib.sha512)

    def parse_event(self, raw_body: bytes) -> GatewayEvent:
        try:
            obj = json.loads(raw_body)["obj"]
            remote_order = obj["order"]
            remote_order_id = remote_order["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise ValidationError("Malformed Paymob payload") from e

        if obj.get("is_refunded") or obj.get("is_refund"):
            status = "refunded"
        elif obj.get("pending"):
            status = "pending"
        elif obj.get("success"):
            status = "success"
        else:
            status = "failed"

        transaction_id = str(obj["id"]) if obj.get("id") is not None else None
        return GatewayEvent(
            correlation_id=str(remote_order_id),
            remote_status=status,
            order_reference=remote_order.get("merchant_order_id"),
            transaction_id=transaction_id,
            order_values={"paymob_transaction_id": transaction_id} if transaction_id else {},
        )

    def matches_order(self, order, event: GatewayEvent) -> bool:
        # u Paymob referencja w body to numer zamowienia, nie id
        return event.order_reference is None or str(event.order_reference) == order.order_number
