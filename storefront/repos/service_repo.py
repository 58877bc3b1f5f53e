# storefront/repos/service_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.service import ServiceModel, ServiceOptionModel


class ServiceRepo:
    """Odczyt katalogu + warunkowa zmiana stanu magazynowego."""

    def __init__(self, db: Session):
        self.db = db

    def get_service(self, service_id: str) -> ServiceModel | None:
        return self.db.get(ServiceModel, service_id)

    def get_service_fresh(self, service_id: str) -> ServiceModel | None:
        # populate_existing: nie ufamy temu co juz siedzi w identity map
        return self.db.execute(
            select(ServiceModel)
            .where(ServiceModel.id == service_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_option(self, option_id: str) -> ServiceOptionModel | None:
        return self.db.get(ServiceOptionModel, option_id)

    def decrement_stock(self, service_id: str, quantity: int) -> int:
        """0 zmienionych wierszy = brak towaru (albo ktos nas wyprzedzil)."""
        result = self.db.execute(
            update(ServiceModel)
            .where(
                ServiceModel.id == service_id,
                ServiceModel.stock.is_not(None),
                ServiceModel.stock >= quantity,
            )
            .values(stock=ServiceModel.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def restock(self, service_id: str, quantity: int) -> int:
        result = self.db.execute(
            update(ServiceModel)
            .where(ServiceModel.id == service_id, ServiceModel.stock.is_not(None))
            .values(stock=ServiceModel.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
