# storefront/services/transitions.py
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_tracking import OrderTrackingModel
from storefront.data.models.payment import PaymentModel
from storefront.domain.errors import PersistenceConflict
from storefront.domain.state_machine import OrderStatus, TransitionPlan
from storefront.repos.order_repo import OrderRepo
from storefront.repos.service_repo import ServiceRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TITLES = {
    OrderStatus.RECEIVED: "Order received",
    OrderStatus.PENDING_ADMIN_APPROVAL: "Bank transfer receipt submitted",
    OrderStatus.CONFIRMED: "Order confirmed",
    OrderStatus.PROCESSING: "Payment received, order in progress",
    OrderStatus.COMPLETED: "Order completed",
    OrderStatus.CANCELLED: "Order cancelled",
    OrderStatus.REFUNDED: "Order refunded",
}


class OrderTransitions:
    """
    Zapis zaplanowanego przejscia stanu (plan z maszyny stanow).

    Nie commituje - wolajacy trzyma granice transakcji, zeby sprawdzenie
    i zapis byly w tej samej transakcji.
    """

    def __init__(self, db: Session):
        self.repo = OrderRepo(db)
        self.services = ServiceRepo(db)

    def apply(
        self,
        order: OrderModel,
        plan: TransitionPlan,
        *,
        payment: PaymentModel | None = None,
        raw_payload: str | None = None,
        extra: dict | None = None,
        title: str | None = None,
        description: str | None = None,
        admin_id: int | None = None,
    ) -> OrderStatus:
        previous = OrderStatus(order.status)
        new_status = OrderStatus(plan.order_status)

        values = dict(extra or {})
        if new_status != previous:
            values["status"] = new_status.value
        if plan.payment_status is not None and plan.payment_status.value != order.payment_status:
            values["payment_status"] = plan.payment_status.value

        # check-then-act w jednej transakcji: update where version = odczytana wersja
        rowcount = self.repo.update_order_versioned(order.id, order.version, values)
        if rowcount == 0:
            raise PersistenceConflict(f"Zamowienie {order.order_number} zostalo zmienione rownolegle")

        if payment is not None:
            if plan.payment_status is not None:
                payment.status = plan.payment_status.value
            if raw_payload is not None:
                payment.raw_payload = raw_payload
            payment.updated_at = datetime.now(timezone.utc)

        if new_status == OrderStatus.CANCELLED and previous != OrderStatus.CANCELLED:
            self._restock(order)

        self.append_tracking(
            order.id,
            new_status,
            title or DEFAULT_TITLES[new_status],
            description,
            admin_id,
        )

        logger.info(
            f"Order {order.order_number}: {previous.value} -> {new_status.value}"
            f" (payment {values.get('payment_status', order.payment_status)})"
        )
        return new_status

    def append_tracking(
        self,
        order_id: int,
        status: OrderStatus,
        title: str,
        description: str | None = None,
        admin_id: int | None = None,
    ) -> OrderTrackingModel | None:
        """Dopisanie do logu; wpis identyczny z ostatnim nie jest dublowany."""
        status = OrderStatus(status)
        last = self.repo.last_tracking(order_id)
        if (
            last is not None
            and last.status == status.value
            and last.title == title
            and (last.description or None) == (description or None)
        ):
            return None
        return self.repo.add_tracking(
            OrderTrackingModel(
                order_id=order_id,
                status=status.value,
                title=title,
                description=description,
                admin_id=admin_id,
            )
        )

    def _restock(self, order: OrderModel):
        for item in order.items:
            if self.services.restock(item.service_id, item.quantity):
                logger.info(f"Restocked {item.quantity} x {item.service_id} after cancelling {order.order_number}")
