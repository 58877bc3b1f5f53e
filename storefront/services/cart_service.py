# storefront/services/cart_service.py
from decimal import Decimal
from typing import Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import NotFound, PersistenceConflict, StockExceeded, ValidationError
from storefront.repos.cart_repo import CartRepo
from storefront.repos.service_repo import ServiceRepo
from storefront.services.service_cache import ServiceMetadataCache, ServiceSnapshot, service_cache
from storefront.utils.logging import get_logger
from storefront.utils.money import ZERO, round_money

logger = get_logger(__name__)


class CartService:
    """
    Koszyk uzytkownika (1:1).
    commands (add, update, remove, clear) modyfikuja stan w jednej transakcji z bumpem wersji
    query (get) tylko odczyt
    """

    def __init__(self, db: Session, cache: ServiceMetadataCache | None = None):
        self.repo = CartRepo(db)
        self.services = ServiceRepo(db)
        self.cache = cache if cache is not None else service_cache

    # query - odczyt
    def get_cart(self, user_id: int) -> Dict[str, Any]:
        cart = self.repo.get_cart_by_user(user_id)
        if not cart:
            return {"cart_id": None, "user_id": user_id, "items": [], "total": ZERO}
        return self._serialize(cart)

    def _serialize(self, cart: CartModel) -> Dict[str, Any]:
        items = self.repo.get_cart_items(cart.id)
        lines = []
        for i in items:
            unit_price = i.option.price if i.option is not None else i.service.base_price
            lines.append(
                {
                    "id": i.id,
                    "service_id": i.service_id,
                    "option_id": i.option_id,
                    "title": i.service.title,
                    "quantity": i.quantity,
                    "unit_price": round_money(unit_price),
                    "line_total": round_money(unit_price * i.quantity),
                }
            )
        total = sum((line["line_total"] for line in lines), Decimal("0.00"))

        # dict przeksztalcany w jsona
        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "items": lines,
            "total": round_money(total),
        }

    def _load_service(self, service_id: str) -> ServiceSnapshot | None:
        service = self.services.get_service(service_id)
        return ServiceSnapshot.from_model(service) if service else None

    def _check_service(self, service_id: str) -> ServiceSnapshot:
        service = self.cache.get(service_id, self._load_service)
        if service is None:
            raise NotFound("Usluga nie istnieje")
        if not service.active or not service.available:
            raise ValidationError(f"Usluga {service.title} jest niedostepna")
        return service

    @staticmethod
    def _check_stock(service: ServiceSnapshot, quantity: int):
        if service.stock is not None and quantity > service.stock:
            raise StockExceeded(service.title, service.stock)

    # commands
    def add_item(
        self,
        user_id: int,
        service_id: str,
        option_id: str | None = None,
        quantity: int = 1,
    ) -> Dict[str, Any]:

        if quantity <= 0:
            raise ValidationError("Ilosc musi byc wieksza niz 0")

        # metadane z cache - koszyk nie jest zrodlem prawdy dla magazynu
        service = self._check_service(service_id)

        if option_id is not None:
            option = self.services.get_option(option_id)
            if option is None or option.service_id != service_id:
                raise ValidationError("Opcja nie nalezy do tej uslugi")

        try:
            cart = self.repo.get_cart_by_user(user_id)
            if not cart:
                cart = self.repo.create_cart(CartModel(user_id=user_id, version=1))
                logger.info(f"Utworzono nowy koszyk {cart.id} dla uzytkownika {user_id}")

            existing_item = self.repo.get_cart_item(cart.id, service_id, option_id)
            total_quantity = existing_item.quantity + quantity if existing_item else quantity

            self._check_stock(service, total_quantity)

            if existing_item:
                logger.info(
                    f"Usluga {service_id} juz jest w koszyku, zwiekszam ilosc "
                    f"z {existing_item.quantity} do {total_quantity}"
                )
                existing_item.quantity = total_quantity
            else:
                logger.info(f"Dodaje usluge {service_id} do koszyka {cart.id}")
                self.repo.add_cart_item(
                    CartItemModel(
                        cart_id=cart.id,
                        service_id=service_id,
                        option_id=option_id,
                        quantity=quantity,
                    )
                )

            # Optimistic locking warunek na wersje
            # np w bazie update set version 2 where id 1 and version 1
            self._bump_version(cart)
            self.repo.commit()

        except IntegrityError as e:
            # np. dwa requesty naraz tworza koszyk tego samego usera
            self.repo.rollback()
            logger.warning(f"Konflikt zapisu koszyka uzytkownika {user_id}: {e.orig}")
            raise PersistenceConflict("Koszyk zostal zmodyfikowany rownolegle") from e
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Usluga {service_id} dodana do koszyka {cart.id}, nowa wersja: {cart.version}")
        return self.get_cart(user_id)

    def update_quantity(self, user_id: int, item_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValidationError("Ilosc musi byc wieksza niz 0")

        try:
            item = self.repo.get_owned_item(item_id, user_id)
            # nie zdradzamy czy pozycja istnieje w cudzym koszyku
            if not item:
                raise NotFound("Pozycja koszyka nie istnieje")

            service = self._check_service(item.service_id)
            self._check_stock(service, quantity)

            item.quantity = quantity
            self._bump_version(item.cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        return self.get_cart(user_id)

    def remove_item(self, user_id: int, item_id: int) -> Dict[str, Any]:
        try:
            item = self.repo.get_owned_item(item_id, user_id)
            if not item:
                raise NotFound("Pozycja koszyka nie istnieje")

            cart = item.cart
            logger.info(f"Usuwanie pozycji {item_id} z koszyka {cart.id}")
            self.repo.delete_cart_item(item)
            self._bump_version(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        return self.get_cart(user_id)

    def clear(self, user_id: int) -> Dict[str, Any]:
        try:
            cart = self.repo.get_cart_by_user(user_id)
            if not cart:
                raise NotFound("Koszyk nie istnieje")
            removed = self.repo.clear_items(cart.id)
            self._bump_version(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Koszyk {cart.id} wyczyszczony ({removed} pozycji)")
        return self.get_cart(user_id)

    def _bump_version(self, cart: CartModel):
        rowcount = self.repo.update_cart_version(cart_id=cart.id, old_version=cart.version)
        if rowcount == 0:  # jesli 0 rows affected
            raise PersistenceConflict(
                "Konflikt wspolbieznosci - koszyk zostal zmodyfikowany przez inna operacje"
            )
