# storefront/services/gateways/stripe_gateway.py
import json

import stripe

from storefront.domain.errors import GatewayUnavailable, InvalidSignature, ValidationError
from storefront.domain.state_machine import OrderStatus, PaymentStatus
from storefront.services.gateways.base import GatewayEvent, InitiationResult, PaymentGateway
from storefront.utils import settings
from storefront.utils.logging import get_logger
from storefront.utils.money import to_minor_units

logger = get_logger(__name__)

# tolerancja znacznika czasu w naglowku podpisu (sekundy)
SIGNATURE_TOLERANCE = 300

# typ zdarzenia -> status zdalny
_EVENT_STATUS = {
    "payment_intent.succeeded": "succeeded",
    "payment_intent.payment_failed": "failed",
    "payment_intent.canceled": "canceled",
    "payment_intent.processing": "processing",
    "charge.refunded": "refunded",
}


def idempotency_key(order, payment_method: str | None = None) -> str:
    """
    Ten sam klucz = ten sam intent przy ponowieniu requestu.
    Odrzucona karta nie zostawia intentu na zamowieniu, kolejna karta dostaje wlasny klucz.
    """
    if payment_method:
        return f"order-{order.order_number}-{payment_method}"
    return f"order-{order.order_number}"


class StripeGateway(PaymentGateway):
    """
    Bramka C: token karty -> PaymentIntent.
    Wynik bywa synchroniczny (succeeded od razu), wtedy idzie ta sama sciezka co webhook.
    """

    name = "stripe"
    correlation_column = "stripe_payment_intent_id"
    signature_header = "stripe-signature"
    signature_failure_status = 403
    status_map = {
        "succeeded": (OrderStatus.CONFIRMED, PaymentStatus.COMPLETED),
        "processing": (OrderStatus.RECEIVED, PaymentStatus.PENDING),
        "requires_payment_method": (OrderStatus.RECEIVED, PaymentStatus.PENDING),
        "requires_confirmation": (OrderStatus.RECEIVED, PaymentStatus.PENDING),
        "requires_action": (OrderStatus.RECEIVED, PaymentStatus.PENDING),
        "requires_capture": (OrderStatus.RECEIVED, PaymentStatus.PENDING),
        "failed": (OrderStatus.CANCELLED, PaymentStatus.FAILED),
        "canceled": (OrderStatus.CANCELLED, PaymentStatus.FAILED),
        "refunded": (OrderStatus.REFUNDED, PaymentStatus.REFUNDED),
    }

    def __init__(
        self,
        secret_key: str | None = None,
        webhook_secret: str | None = None,
        timeout: float | None = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout)

    def initiate(self, order, billing_data: dict | None = None) -> InitiationResult:
        billing_data = billing_data or {}
        params = {
            "amount": to_minor_units(order.amount_due),
            "currency": settings.CURRENCY.lower(),
            "description": f"Order {order.order_number}",
            "metadata": {"order_id": str(order.id), "order_number": order.order_number},
        }
        if billing_data.get("payment_method"):
            # token karty z frontu - potwierdzamy od razu
            params.update(
                payment_method=billing_data["payment_method"],
                confirm=True,
                return_url=f"{settings.PUBLIC_BASE_URL.rstrip('/')}/payments/{order.id}/return",
            )

        logger.info(f"Stripe PaymentIntent.create for order {order.order_number}")
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.secret_key,
                idempotency_key=idempotency_key(order, billing_data.get("payment_method")),
                **params,
            )
        except stripe.CardError as e:
            logger.info(f"Card declined for order {order.order_number}: {e.user_message}")
            raise ValidationError(e.user_message or "Karta zostala odrzucona") from e
        except (stripe.APIConnectionError, stripe.RateLimitError) as e:
            raise GatewayUnavailable(f"Stripe unreachable: {e}") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe error for order {order.order_number}: {e}")
            raise GatewayUnavailable(f"Stripe error: {e}") from e

        return InitiationResult(
            gateway=self.name,
            correlation_id=intent.id,
            client_secret=intent.client_secret,
            remote_status=intent.status,
            order_values={"stripe_payment_intent_id": intent.id},
            raw=str(intent),
        )

    def existing(self, order) -> InitiationResult | None:
        if not order.stripe_payment_intent_id:
            return None
        try:
            intent = stripe.PaymentIntent.retrieve(order.stripe_payment_intent_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            raise GatewayUnavailable(f"Stripe error: {e}") from e
        return InitiationResult(
            gateway=self.name,
            correlation_id=intent.id,
            client_secret=intent.client_secret,
        )

    def verify_signature(self, raw_body: bytes, signature: str) -> None:
        if not self.webhook_secret:
            raise InvalidSignature("Webhook secret is not configured")
        if not signature:
            raise InvalidSignature("Missing signature")
        try:
            stripe.WebhookSignature.verify_header(
                raw_body.decode("utf-8"),
                signature,
                self.webhook_secret,
                SIGNATURE_TOLERANCE,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
            raise InvalidSignature("Signature mismatch") from e

    def parse_event(self, raw_body: bytes) -> GatewayEvent:
        try:
            event = json.loads(raw_body)
            event_type = event["type"]
            obj = event["data"]["object"]
        except (ValueError, KeyError, TypeError) as e:
            raise ValidationError("Malformed Stripe payload") from e
        if not isinstance(obj, dict) or not isinstance(event_type, str):
            raise ValidationError("Malformed Stripe payload")

        if event_type.startswith("charge."):
            intent_id = obj.get("payment_intent")
            transaction_id = obj.get("id")
        else:
            intent_id = obj.get("id")
            transaction_id = obj.get("latest_charge") or obj.get("id")

        if not intent_id:
            raise ValidationError("Stripe event without payment intent id")

        metadata = obj.get("metadata") or {}
        return GatewayEvent(
            correlation_id=str(intent_id),
            # nieznany typ zdarzenia nie ma mapowania -> potwierdzony bez zmian
            remote_status=_EVENT_STATUS.get(event_type, event_type),
            order_reference=metadata.get("order_id"),
            transaction_id=str(transaction_id) if transaction_id else None,
        )
