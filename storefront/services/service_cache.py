# storefront/services/service_cache.py
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from storefront.utils.settings import SERVICE_CACHE_TTL_SECONDS, SERVICE_CACHE_MAX_ENTRIES
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ServiceSnapshot:
    """Niemutowalna kopia metadanych uslugi - nigdy wiersz ORM."""

    id: str
    title: str
    base_price: Decimal
    active: bool
    available: bool
    stock: Optional[int]

    @classmethod
    def from_model(cls, service) -> "ServiceSnapshot":
        return cls(
            id=service.id,
            title=service.title,
            base_price=service.base_price,
            active=bool(service.active),
            available=bool(service.available),
            stock=service.stock,
        )


class ServiceMetadataCache:
    """
    Read-through cache metadanych uslug dla koszyka.

    - TTL liczony od wstawienia, trafienie nigdy nie jest starsze niz TTL
    - limit wpisow, przy przekroczeniu wylatuje najdawniej wstawiony
    - tylko optymalizacja; stan magazynu przy zamowieniu czyta sie z bazy
    """

    def __init__(
        self,
        ttl_seconds: float = SERVICE_CACHE_TTL_SECONDS,
        max_entries: int = SERVICE_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[float, ServiceSnapshot]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, service_id: str, loader: Callable[[str], Optional[ServiceSnapshot]]) -> Optional[ServiceSnapshot]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(service_id)
            if entry is not None:
                stored_at, snapshot = entry
                if now - stored_at < self.ttl_seconds:
                    self.hits += 1
                    return snapshot
                del self._entries[service_id]
            self.misses += 1

        # odczyt z bazy poza lockiem; wyscig tutaj jest nieszkodliwy
        snapshot = loader(service_id)
        if snapshot is not None:
            self.put(snapshot)
        return snapshot

    def put(self, snapshot: ServiceSnapshot) -> None:
        with self._lock:
            # ponowne wstawienie przesuwa wpis na koniec kolejki
            self._entries.pop(snapshot.id, None)
            self._entries[snapshot.id] = (self._clock(), snapshot)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Service cache evicted {evicted}")

    def invalidate(self, service_id: str | None = None) -> None:
        with self._lock:
            if service_id is None:
                self._entries.clear()
            else:
                self._entries.pop(service_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, service_id: str) -> bool:
        with self._lock:
            return service_id in self._entries


class NullServiceCache:
    """Wylaczony cache - zawsze czyta ze zrodla (np. w testach)."""

    def get(self, service_id, loader):
        return loader(service_id)

    def put(self, snapshot):
        pass

    def invalidate(self, service_id=None):
        pass


service_cache = ServiceMetadataCache()
