# storefront/services/payment_service.py
import json
import uuid
from typing import Any, Dict

from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentModel
from storefront.domain.errors import (
    GatewayUnavailable,
    InvalidStateTransition,
    NotFound,
    PersistenceConflict,
    ValidationError,
)
from storefront.domain.state_machine import PaymentMethod, PaymentStatus, is_terminal
from storefront.repos.order_repo import OrderRepo
from storefront.services.bank_transfer_service import BankTransferService
from storefront.services.gateways import build_gateways
from storefront.services.gateways.base import GatewayEvent, InitiationResult, PaymentGateway
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.reconciliation import ReconciliationEngine
from storefront.services.transitions import OrderTransitions
from storefront.utils import settings
from storefront.utils.logging import get_logger
from storefront.utils.money import ZERO

logger = get_logger(__name__)


class PaymentService:
    """
    Inicjacja platnosci przez wybrana bramke.
    Zdalne wywolanie przed jakimkolwiek zapisem; zapis identyfikatorow w jednej transakcji.
    """

    def __init__(
        self,
        db: Session,
        gateways: dict[str, PaymentGateway] | None = None,
        lock_service: LockService | None = None,
        notification_service: NotificationService | None = None,
    ):
        self.repo = OrderRepo(db)
        self.transitions = OrderTransitions(db)
        self.gateways = gateways if gateways is not None else build_gateways()
        self.lock_service = lock_service or LockService()
        self.notification_service = notification_service or NotificationService()
        self.reconciliation = ReconciliationEngine(db, self.gateways, self.notification_service)
        self.bank_transfers = BankTransferService(db, self.notification_service)

    def initiate(
        self,
        order_id: int,
        user_id: int,
        method: str,
        billing_data: dict | None = None,
    ) -> Dict[str, Any]:
        try:
            method = PaymentMethod(method).value
        except ValueError as e:
            raise ValidationError(f"Nieznana metoda platnosci {method}") from e

        if method == PaymentMethod.BANK_TRANSFER.value:
            return self.bank_transfers.submit_receipt(order_id, user_id, (billing_data or {}).get("receipt_ref"))

        gateway = self.gateways.get(method)
        if gateway is None:
            raise ValidationError(f"Metoda platnosci {method} jest niedostepna")

        order = self._owned_order(order_id, user_id)
        self._check_payable(order, method)

        # idempotencja: zapisany identyfikator bramki -> ten sam wynik
        existing = gateway.existing(order)
        if existing is not None:
            logger.info(f"Payment for {order.order_number} already initiated via {method}, reusing")
            return self._view(order, existing)

        token = uuid.uuid4().hex
        try:
            acquired = self.lock_service.acquire_order_lock(order.id, token, settings.PAYMENT_LOCK_TTL_SECONDS)
        except RedisError as e:
            raise GatewayUnavailable("Lock service unavailable") from e
        if not acquired:
            raise PersistenceConflict("Platnosc dla tego zamowienia jest juz inicjowana")

        try:
            result = self._initiate_locked(order_id, user_id, method, gateway, billing_data)
        finally:
            self._release(order_id, token)

        # karta moze zwrocic wynik od razu - ta sama sciezka co webhook
        mapped = gateway.map_status(result.remote_status) if result.remote_status else None
        if mapped is not None and mapped[1] != PaymentStatus.PENDING:
            self.reconciliation.apply_event(
                gateway,
                GatewayEvent(correlation_id=result.correlation_id, remote_status=result.remote_status),
                result.raw,
            )

        return self._view(self.repo.get_order_fresh(order_id), result)

    def _initiate_locked(
        self,
        order_id: int,
        user_id: int,
        method: str,
        gateway: PaymentGateway,
        billing_data: dict | None,
    ) -> InitiationResult:
        # swiezy odczyt pod lockiem - rownolegly request mogl juz skonczyc
        order = self._owned_order(order_id, user_id, fresh=True)
        self._check_payable(order, method)
        existing = gateway.existing(order)
        if existing is not None:
            return existing

        # nic nie jest zapisane dopoki bramka nie odpowie
        result = gateway.initiate(order, billing_data)

        try:
            values = dict(result.order_values)
            values["payment_method"] = method
            if self.repo.update_order_versioned(order.id, order.version, values) == 0:
                raise PersistenceConflict(f"Zamowienie {order.order_number} zostalo zmienione rownolegle")

            self.repo.add_payment(
                PaymentModel(
                    order_id=order.id,
                    amount=order.amount_due,
                    currency=gateway.currency or settings.CURRENCY,
                    gateway=gateway.name,
                    transaction_id=result.correlation_id,
                    status=PaymentStatus.PENDING.value,
                    raw_payload=result.raw or None,
                )
            )
            self.transitions.append_tracking(
                order.id,
                order.status,
                "Payment initiated",
                f"{gateway.name}: {result.correlation_id}",
            )
            self.repo.commit()
        except IntegrityError as e:
            self.repo.rollback()
            logger.error(f"Storing {gateway.name} payment for {order.order_number} failed: {e.orig}")
            raise PersistenceConflict("Platnosc zostala zapisana rownolegle") from e
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Payment for {order.order_number} initiated via {gateway.name}: {result.correlation_id}")
        return result

    def confirm_redirect(self, order_id: int, user_id: int) -> Dict[str, Any]:
        """Powrot klienta z hosted checkout: pytamy bramke o stan zamiast ufac parametrom URL."""
        gateway = self.gateways.get(PaymentMethod.MOYASAR.value)
        if gateway is None:
            raise ValidationError("Bramka przekierowania jest niedostepna")

        order = self._owned_order(order_id, user_id)
        if not order.moyasar_payment_id:
            raise ValidationError("Platnosc nie zostala rozpoczeta")

        data = gateway.fetch_payment(order.moyasar_payment_id)
        result = self.reconciliation.apply_event(gateway, gateway.event_from_payment(data), json.dumps(data))
        return result.to_dict()

    def _owned_order(self, order_id: int, user_id: int, fresh: bool = False):
        order = self.repo.get_order_fresh(order_id) if fresh else self.repo.get_order(order_id)
        if not order or order.user_id != user_id:
            raise NotFound("Zamowienie nie istnieje")
        return order

    @staticmethod
    def _check_payable(order, method: str):
        if order.payment_status in (PaymentStatus.COMPLETED.value, PaymentStatus.REFUNDED.value):
            raise ValidationError("Zamowienie jest juz oplacone")
        if is_terminal(order.status):
            raise InvalidStateTransition(order.status, "PAID", f"Zamowienie {order.order_number} jest zamkniete")
        if order.payment_method and order.payment_method != method:
            raise ValidationError(f"Platnosc rozpoczeta metoda {order.payment_method}")
        if order.amount_due <= ZERO:
            raise ValidationError("Brak kwoty do zaplaty")

    def _release(self, order_id: int, token: str):
        try:
            self.lock_service.release_order_lock(order_id, token)
        except RedisError as e:
            # lock i tak wygasnie po TTL
            logger.warning(f"Releasing payment lock for order {order_id} failed: {e}")

    @staticmethod
    def _view(order, result: InitiationResult) -> Dict[str, Any]:
        data = result.public()
        data.update(
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            payment_status=order.payment_status,
        )
        return data
