# storefront/services/notification_service.py
from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Serwis do wysylania powiadomien.
    Uzywa Celery (fire-and-forget). Blad kolejki jest logowany i nigdy nie wraca do wywolujacego.
    """

    def send_order_confirmation(self, user_id: int, order_number: str):
        self._enqueue(send_order_confirmation_task, user_id, order_number)

    def send_status_change(self, user_id: int, order_number: str, status: str, payment_status: str):
        self._enqueue(send_status_change_task, user_id, order_number, status, payment_status)

    @staticmethod
    def _enqueue(task, *args):
        try:
            task.delay(*args)
        except Exception as e:
            # powiadomienie nie moze wycofac zamowienia ani przejscia stanu
            logger.warning(f"[NOTIFICATION] enqueue of {task.name} failed for {args}: {e}")


@celery_app.task(name="storefront.services.notification_service.send_order_confirmation_task")
def send_order_confirmation_task(user_id: int, order_number: str):
    """
    Celery task - w prawdziwym systemie wyslalby email.
    Teraz tylko loguje.
    """
    logger.info(f"[NOTIFICATION] User {user_id}: order {order_number} received")
    return {"user_id": user_id, "order_number": order_number, "status": "sent"}


@celery_app.task(name="storefront.services.notification_service.send_status_change_task")
def send_status_change_task(user_id: int, order_number: str, status: str, payment_status: str):
    logger.info(
        f"[NOTIFICATION] User {user_id}: order {order_number} is now {status} (payment {payment_status})"
    )
    return {
        "user_id": user_id,
        "order_number": order_number,
        "order_status": status,
        "payment_status": payment_status,
        "status": "sent",
    }
