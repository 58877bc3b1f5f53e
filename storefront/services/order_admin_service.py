# storefront/services/order_admin_service.py
from typing import Any, Dict

from sqlalchemy.orm import Session

from storefront.domain.errors import InvalidStateTransition, NotFound, ValidationError
from storefront.domain.state_machine import (
    OrderStatus,
    Outcome,
    PaymentStatus,
    TransitionPlan,
    plan_order_transition,
)
from storefront.repos.order_repo import OrderRepo
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import serialize_order, serialize_tracking
from storefront.services.transitions import OrderTransitions
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class OrderAdminService:
    """Reczne zmiany statusu i notatki admina, przez te sama maszyne stanow."""

    def __init__(self, db: Session, notification_service: NotificationService | None = None):
        self.repo = OrderRepo(db)
        self.transitions = OrderTransitions(db)
        self.notification_service = notification_service or NotificationService()

    def add_tracking(
        self,
        order_id: int,
        admin_id: int,
        status: str,
        title: str | None = None,
        description: str | None = None,
    ) -> Dict[str, Any]:
        try:
            target = OrderStatus(status)
        except ValueError as e:
            raise ValidationError(f"Nieznany status {status}") from e

        changed = False
        try:
            order = self.repo.get_order_fresh(order_id)
            if not order:
                raise NotFound("Zamowienie nie istnieje")

            plan = plan_order_transition(order.status, target)
            if plan.outcome == Outcome.REJECT:
                raise InvalidStateTransition(order.status, target.value, plan.reason)
            if plan.outcome == Outcome.APPLY and order.status == OrderStatus.PENDING_ADMIN_APPROVAL.value:
                # przelew czeka na decyzje - status, platnosc i bank_transfer_status zmienia tylko admin_decide
                raise InvalidStateTransition(
                    order.status,
                    target.value,
                    "Przelew czeka na decyzje, uzyj akceptacji albo odrzucenia przelewu",
                )

            if plan.outcome == Outcome.NOOP:
                # ten sam status = notatka w historii
                self.transitions.append_tracking(
                    order.id, target, title or "Status update", description, admin_id
                )
            else:
                payment_status = None
                if target == OrderStatus.REFUNDED and order.payment_status == PaymentStatus.COMPLETED.value:
                    payment_status = PaymentStatus.REFUNDED
                plan = TransitionPlan(plan.outcome, plan.order_status, payment_status)
                payment = (
                    self.repo.get_payment(order.id, order.payment_method) if order.payment_method else None
                )
                self.transitions.apply(
                    order,
                    plan,
                    payment=payment,
                    title=title,
                    description=description,
                    admin_id=admin_id,
                )
                changed = True
            user_id, order_number = order.user_id, order.order_number
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        order = self.repo.get_order_fresh(order_id)
        if changed:
            logger.info(f"Admin {admin_id} moved {order_number} to {target.value}")
            self.notification_service.send_status_change(user_id, order_number, order.status, order.payment_status)

        return {
            "order": serialize_order(order),
            "tracking": [serialize_tracking(t) for t in self.repo.get_tracking(order_id)],
        }
