# storefront/repos/order_repo.py
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_tracking import OrderTrackingModel
from storefront.data.models.payment import PaymentModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_order_fresh(self, order_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_by_correlation_id(self, column: str, value: str) -> OrderModel | None:
        """Szukanie zamowienia po identyfikatorze bramki zapisanym na wierszu zamowienia."""
        attr = getattr(OrderModel, column)
        return self.db.execute(
            select(OrderModel)
            .where(attr == str(value))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_user_orders(self, user_id: int) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            ).scalars()
        )

    def list_by_payment_method(self, method: str, bank_transfer_status: str | None = None) -> list[OrderModel]:
        stmt = select(OrderModel).where(OrderModel.payment_method == method)
        if bank_transfer_status:
            stmt = stmt.where(OrderModel.bank_transfer_status == bank_transfer_status)
        return list(self.db.execute(stmt.order_by(OrderModel.created_at.desc(), OrderModel.id.desc())).scalars())

    def update_order_versioned(self, order_id: int, old_version: int, values: dict) -> int:
        """Warunkowy update zamowienia; 0 = ktos zmienil wiersz w miedzyczasie."""
        values = dict(values)
        values["version"] = old_version + 1
        values["updated_at"] = datetime.now(timezone.utc)
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.version == old_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # --- platnosci ---
    def get_payment(self, order_id: int, gateway: str) -> PaymentModel | None:
        return self.db.execute(
            select(PaymentModel).where(
                PaymentModel.order_id == order_id,
                PaymentModel.gateway == gateway,
            )
        ).scalar_one_or_none()

    def add_payment(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        self.db.flush()
        return payment

    # --- tracking ---
    def get_tracking(self, order_id: int) -> list[OrderTrackingModel]:
        return list(
            self.db.execute(
                select(OrderTrackingModel)
                .where(OrderTrackingModel.order_id == order_id)
                .order_by(OrderTrackingModel.timestamp, OrderTrackingModel.id)
            ).scalars()
        )

    def last_tracking(self, order_id: int) -> OrderTrackingModel | None:
        return self.db.execute(
            select(OrderTrackingModel)
            .where(OrderTrackingModel.order_id == order_id)
            .order_by(OrderTrackingModel.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def add_tracking(self, entry: OrderTrackingModel) -> OrderTrackingModel:
        self.db.add(entry)
        self.db.flush()
        return entry

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
