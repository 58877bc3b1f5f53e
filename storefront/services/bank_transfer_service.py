# storefront/services/bank_transfer_service.py
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentModel
from storefront.domain.errors import InvalidStateTransition, NotFound, PersistenceConflict, ValidationError
from storefront.domain.state_machine import (
    BankTransferStatus,
    OrderStatus,
    Outcome,
    PaymentMethod,
    PaymentStatus,
    is_terminal,
    plan_order_transition,
    plan_payment_event,
)
from storefront.repos.order_repo import OrderRepo
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import serialize_order
from storefront.services.transitions import OrderTransitions
from storefront.utils import settings
from storefront.utils.logging import get_logger
from storefront.utils.money import as_utc, utc_now

logger = get_logger(__name__)

BANK_TRANSFER = PaymentMethod.BANK_TRANSFER.value


def serialize_bank_transfer(order) -> Dict[str, Any]:
    data = serialize_order(order)
    data.update(
        bank_transfer_receipt=order.bank_transfer_receipt,
        admin_approved_by=order.admin_approved_by,
        admin_approved_at=as_utc(order.admin_approved_at),
        admin_notes=order.admin_notes,
    )
    return data


class BankTransferService:
    """
    Reczna sciezka platnosci: klient wysyla referencje potwierdzenia przelewu,
    admin akceptuje albo odrzuca. Ta sama maszyna stanow co webhooki.
    """

    def __init__(self, db: Session, notification_service: NotificationService | None = None):
        self.repo = OrderRepo(db)
        self.transitions = OrderTransitions(db)
        self.notification_service = notification_service or NotificationService()

    def submit_receipt(self, order_id: int, user_id: int, receipt_ref: str | None) -> Dict[str, Any]:
        receipt_ref = (receipt_ref or "").strip()
        if not receipt_ref:
            raise ValidationError("Brak potwierdzenia przelewu")

        try:
            order = self.repo.get_order_fresh(order_id)
            if not order or order.user_id != user_id:
                raise NotFound("Zamowienie nie istnieje")
            if order.payment_status in (PaymentStatus.COMPLETED.value, PaymentStatus.REFUNDED.value):
                raise ValidationError("Zamowienie jest juz oplacone")
            if is_terminal(order.status):
                raise InvalidStateTransition(order.status, OrderStatus.PENDING_ADMIN_APPROVAL.value)
            if order.payment_method and order.payment_method != BANK_TRANSFER:
                raise ValidationError(f"Platnosc rozpoczeta metoda {order.payment_method}")

            plan = plan_order_transition(order.status, OrderStatus.PENDING_ADMIN_APPROVAL)
            if plan.outcome == Outcome.REJECT:
                raise InvalidStateTransition(order.status, OrderStatus.PENDING_ADMIN_APPROVAL.value, plan.reason)

            payment = self.repo.get_payment(order.id, BANK_TRANSFER)
            if payment is None:
                payment = self.repo.add_payment(
                    PaymentModel(
                        order_id=order.id,
                        amount=order.amount_due,
                        currency=settings.CURRENCY,
                        gateway=BANK_TRANSFER,
                        transaction_id=receipt_ref,
                        status=PaymentStatus.PENDING.value,
                    )
                )
            else:
                # nowe potwierdzenie podmienia stare dopoki admin nie zdecyduje
                payment.transaction_id = receipt_ref

            user_id, order_number = order.user_id, order.order_number
            self.transitions.apply(
                order,
                plan,
                extra={
                    "payment_method": BANK_TRANSFER,
                    "bank_transfer_receipt": receipt_ref,
                    "bank_transfer_status": BankTransferStatus.PENDING_ADMIN_APPROVAL.value,
                },
                description=f"Receipt {receipt_ref}",
            )
            self.repo.commit()
        except IntegrityError as e:
            self.repo.rollback()
            raise PersistenceConflict("Potwierdzenie przelewu zapisane rownolegle") from e
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Bank transfer receipt {receipt_ref} submitted for {order_number}")
        self.notification_service.send_status_change(
            user_id, order_number, OrderStatus.PENDING_ADMIN_APPROVAL.value, PaymentStatus.PENDING.value
        )
        return serialize_bank_transfer(self.repo.get_order_fresh(order_id))

    def admin_decide(self, order_id: int, admin_id: int, approve: bool, notes: str | None = None) -> Dict[str, Any]:
        target_bt = BankTransferStatus.APPROVED if approve else BankTransferStatus.REJECTED
        target_order, target_payment = (
            (OrderStatus.CONFIRMED, PaymentStatus.COMPLETED)
            if approve
            else (OrderStatus.CANCELLED, PaymentStatus.FAILED)
        )

        try:
            order = self.repo.get_order_fresh(order_id)
            if not order:
                raise NotFound("Zamowienie nie istnieje")
            if order.payment_method != BANK_TRANSFER or not order.bank_transfer_status:
                raise ValidationError("Zamowienie nie ma przelewu do akceptacji")

            if order.bank_transfer_status == target_bt.value:
                logger.info(f"Bank transfer for {order.order_number} already {target_bt.value}, no-op")
                return serialize_bank_transfer(order)
            if order.bank_transfer_status != BankTransferStatus.PENDING_ADMIN_APPROVAL.value:
                raise InvalidStateTransition(order.bank_transfer_status, target_bt.value)

            plan = plan_payment_event(order.status, order.payment_status, target_order, target_payment)
            if plan.outcome == Outcome.REJECT:
                raise InvalidStateTransition(order.status, target_order.value, plan.reason)

            user_id, order_number = order.user_id, order.order_number
            self.transitions.apply(
                order,
                plan,
                payment=self.repo.get_payment(order.id, BANK_TRANSFER),
                extra={
                    "bank_transfer_status": target_bt.value,
                    "admin_approved_by": admin_id,
                    "admin_approved_at": utc_now(),
                    "admin_notes": notes,
                },
                title="Bank transfer approved" if approve else "Bank transfer rejected",
                description=notes,
                admin_id=admin_id,
            )
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Admin {admin_id} {target_bt.value.lower()} bank transfer for {order_number}")
        self.notification_service.send_status_change(
            user_id, order_number, plan.order_status.value, plan.payment_status.value
        )
        return serialize_bank_transfer(self.repo.get_order_fresh(order_id))

    def list_bank_transfers(self, status: str | None = None) -> list[Dict[str, Any]]:
        if status is not None:
            try:
                status = BankTransferStatus(status).value
            except ValueError as e:
                raise ValidationError(f"Nieznany status przelewu {status}") from e
        return [serialize_bank_transfer(o) for o in self.repo.list_by_payment_method(BANK_TRANSFER, status)]
