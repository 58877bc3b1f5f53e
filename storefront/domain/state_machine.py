# storefront/domain/state_machine.py
"""
Wspolna maszyna stanow zamowienia i platnosci.

Uzywana przez skladanie zamowien, bramki platnosci, webhooki i akcje admina,
dzieki czemu sciezka automatyczna i reczna zapisuja przejscia tak samo.
"""
from dataclasses import dataclass
from enum import Enum


class OrderStatus(str, Enum):
    RECEIVED = "RECEIVED"
    PENDING_ADMIN_APPROVAL = "PENDING_ADMIN_APPROVAL"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    MOYASAR = "moyasar"
    PAYMOB = "paymob"
    STRIPE = "stripe"
    BANK_TRANSFER = "bank_transfer"


class BankTransferStatus(str, Enum):
    PENDING_ADMIN_APPROVAL = "PENDING_ADMIN_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Outcome(str, Enum):
    APPLY = "APPLY"
    NOOP = "NOOP"
    REJECT = "REJECT"


TERMINAL_ORDER_STATES = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)

ORDER_TRANSITIONS = {
    OrderStatus.RECEIVED: {
        OrderStatus.PENDING_ADMIN_APPROVAL,
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PENDING_ADMIN_APPROVAL: {
        OrderStatus.CONFIRMED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.CONFIRMED: {
        OrderStatus.PROCESSING,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

# kolejnosc postepu, uzywana do rozpoznania "pozniejszego" zdarzenia
PROGRESS_RANK = {
    OrderStatus.RECEIVED: 0,
    OrderStatus.PENDING_ADMIN_APPROVAL: 1,
    OrderStatus.CONFIRMED: 2,
    OrderStatus.PROCESSING: 3,
    OrderStatus.COMPLETED: 4,
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


@dataclass(frozen=True)
class TransitionPlan:
    outcome: Outcome
    order_status: OrderStatus
    payment_status: PaymentStatus | None = None
    reason: str = ""

    @property
    def changes_state(self) -> bool:
        return self.outcome == Outcome.APPLY


def is_terminal(status) -> bool:
    return OrderStatus(status) in TERMINAL_ORDER_STATES


def can_transition(current, target) -> bool:
    current, target = OrderStatus(current), OrderStatus(target)
    return target in ORDER_TRANSITIONS[current]


def plan_order_transition(current, target) -> TransitionPlan:
    """Przejscie samego statusu zamowienia (akcje admina, tracking)."""
    current, target = OrderStatus(current), OrderStatus(target)
    if current == target:
        return TransitionPlan(Outcome.NOOP, current, reason="already in state")
    if target in ORDER_TRANSITIONS[current]:
        return TransitionPlan(Outcome.APPLY, target)
    return TransitionPlan(Outcome.REJECT, current, reason=f"{current.value} -> {target.value} not allowed")


def plan_payment_event(order_status, payment_status, target_order, target_payment) -> TransitionPlan:
    """
    Decyzja dla zdarzenia platnosci (webhook, odpowiedz synchroniczna, decyzja admina).

    Platnosc juz w docelowym stanie -> NOOP (ponowne doreczenie).
    Platnosc rozliczona inaczej i brak krawedzi -> REJECT (cofanie lub konflikt).
    Zamowienie juz dalej w postepie -> APPLY tylko dla platnosci.
    Zamowienie nie moze przejsc do docelowego stanu -> REJECT.
    """
    order_status = OrderStatus(order_status)
    payment_status = PaymentStatus(payment_status)
    target_order = OrderStatus(target_order)
    target_payment = PaymentStatus(target_payment)

    if payment_status == target_payment:
        return TransitionPlan(Outcome.NOOP, order_status, payment_status, "event already applied")

    if target_payment not in PAYMENT_TRANSITIONS[payment_status]:
        return TransitionPlan(
            Outcome.REJECT,
            order_status,
            payment_status,
            f"payment {payment_status.value} -> {target_payment.value} not allowed",
        )

    if order_status == target_order or target_order in ORDER_TRANSITIONS[order_status]:
        return TransitionPlan(Outcome.APPLY, target_order, target_payment)

    # zamowienie juz dalej niz zdarzenie (np. admin zakonczyl przed webhookiem) - tylko platnosc
    if _is_ahead(order_status, target_order):
        return TransitionPlan(Outcome.APPLY, order_status, target_payment, "order already ahead")

    return TransitionPlan(
        Outcome.REJECT,
        order_status,
        payment_status,
        f"order {order_status.value} -> {target_order.value} not allowed",
    )


def _is_ahead(current: OrderStatus, target: OrderStatus) -> bool:
    if current not in PROGRESS_RANK or target not in PROGRESS_RANK:
        return False
    return PROGRESS_RANK[current] > PROGRESS_RANK[target]
