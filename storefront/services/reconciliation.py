# storefront/services/reconciliation.py
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from storefront.domain.errors import InvalidSignature, NotFound
from storefront.domain.state_machine import Outcome, plan_payment_event
from storefront.repos.order_repo import OrderRepo
from storefront.services.gateways.base import GatewayEvent, PaymentGateway
from storefront.services.notification_service import NotificationService
from storefront.services.transitions import OrderTransitions
from storefront.utils.logging import get_logger
from storefront.utils.retry import conflict_retry

logger = get_logger(__name__)


@dataclass(frozen=True)
class WebhookResult:
    outcome: Outcome
    order_number: Optional[str] = None
    order_status: Optional[str] = None
    payment_status: Optional[str] = None
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "order_number": self.order_number,
            "order_status": self.order_status,
            "payment_status": self.payment_status,
            "reason": self.reason,
        }


class ReconciliationEngine:
    """
    Zdarzenia bramek -> maszyna stanow -> jedna transakcja.

    1. podpis na surowych bajtach (zanim cokolwiek sparsujemy)
    2. zamowienie tylko po id korelacji zapisanym na zamowieniu
    3. mapowanie statusu bramki, plan, zapis z kontrola wersji
    4. powiadomienie po commicie
    """

    def __init__(
        self,
        db: Session,
        gateways: dict[str, PaymentGateway],
        notification_service: NotificationService | None = None,
    ):
        self.repo = OrderRepo(db)
        self.transitions = OrderTransitions(db)
        self.gateways = gateways
        self.notification_service = notification_service or NotificationService()

    def gateway(self, name: str) -> PaymentGateway:
        gateway = self.gateways.get(name)
        if gateway is None:
            raise NotFound(f"Nieznana bramka {name}")
        return gateway

    def handle_webhook(self, gateway_name: str, raw_body: bytes, signature: str | None) -> WebhookResult:
        gateway = self.gateway(gateway_name)

        try:
            gateway.verify_signature(raw_body, signature or "")
        except InvalidSignature as e:
            # mozliwy atak albo zle skonfigurowany sekret - stan nietkniety
            logger.warning(f"[SECURITY] Rejected {gateway.name} webhook: {e.message}")
            raise

        event = gateway.parse_event(raw_body)
        logger.info(
            f"Webhook {gateway.name}: {gateway.correlation_column}={event.correlation_id} "
            f"status={event.remote_status}"
        )
        return self.apply_event(gateway, event, raw_body.decode("utf-8", errors="replace"))

    @conflict_retry()
    def apply_event(self, gateway: PaymentGateway, event: GatewayEvent, raw_payload: str | None = None) -> WebhookResult:
        """
        Wspolna sciezka dla webhooka, powrotu z przekierowania i synchronicznej odpowiedzi karty.
        Przegrany wyscig wersji -> PersistenceConflict, ponowienie czyta swiezy stan (zwykle NOOP).
        """
        try:
            order = self.repo.get_by_correlation_id(gateway.correlation_column, event.correlation_id)
            if order is None:
                logger.warning(f"{gateway.name}: no order for {gateway.correlation_column}={event.correlation_id}")
                raise NotFound("Zamowienie nie istnieje")

            if not gateway.matches_order(order, event):
                logger.warning(
                    f"{gateway.name}: order reference {event.order_reference} does not match "
                    f"order {order.order_number} resolved by {event.correlation_id}"
                )
                raise NotFound("Zamowienie nie istnieje")

            mapped = gateway.map_status(event.remote_status)
            if mapped is None:
                logger.warning(f"{gateway.name}: unknown status '{event.remote_status}' for {order.order_number}, ignored")
                return self._result(Outcome.NOOP, order, reason=f"unknown status {event.remote_status}")

            target_order, target_payment = mapped
            plan = plan_payment_event(order.status, order.payment_status, target_order, target_payment)

            if plan.outcome == Outcome.NOOP:
                logger.info(f"{gateway.name}: {order.order_number} already {order.payment_status}, duplicate ignored")
                return self._result(Outcome.NOOP, order, reason=plan.reason)

            if plan.outcome == Outcome.REJECT:
                logger.error(
                    f"[ANOMALY] {gateway.name}: {order.order_number} "
                    f"({order.status}/{order.payment_status}) cannot take "
                    f"{target_order.value}/{target_payment.value}: {plan.reason}"
                )
                return self._result(Outcome.REJECT, order, reason=plan.reason)

            payment = self.repo.get_payment(order.id, gateway.name)
            if payment is None:
                logger.warning(f"{gateway.name}: no payment row for {order.order_number}")
            elif event.transaction_id:
                payment.transaction_id = event.transaction_id

            user_id, order_number = order.user_id, order.order_number
            self.transitions.apply(
                order,
                plan,
                payment=payment,
                raw_payload=raw_payload,
                extra=event.order_values,
                description=f"{gateway.name}: {event.remote_status}",
            )
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        self.notification_service.send_status_change(
            user_id,
            order_number,
            plan.order_status.value,
            plan.payment_status.value,
        )
        return WebhookResult(
            Outcome.APPLY,
            order_number,
            plan.order_status.value,
            plan.payment_status.value,
            plan.reason,
        )

    @staticmethod
    def _result(outcome: Outcome, order, reason: str = "") -> WebhookResult:
        return WebhookResult(outcome, order.order_number, order.status, order.payment_status, reason)
