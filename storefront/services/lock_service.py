# storefront/services/lock_service.py
import redis

from storefront.utils.logging import get_logger
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL

logger = get_logger(__name__)

# LUA porownaj i usun, atomowo
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

# redis wykonuje skrypt jako jedna nieprzerywalna operacje,
# nikt nie wcisnie sie miedzy GET a DEL


class LockService:
    """
    Krotki lock na zamowienie podczas inicjacji platnosci:
    dwa rownolegle "zaplac" nie zaloza dwoch zdalnych platnosci.
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(order_id: int) -> str:
        return f"order:{order_id}:payment-lock"

    @redis_retry()
    def acquire_order_lock(self, order_id: int, token: str, ttl: int) -> bool:
        key = self._key(order_id)
        logger.info(f"Acquire lock {key} ({token})")
        # SET order:1:payment-lock "<token>" NX EX 30
        return bool(
            self.redis.set(
                name=key,
                value=token,
                nx=True,  # tylko gdy klucz nie istnieje
                ex=ttl,  # wygasa sam, nie trzeba sprzatac po padnietym procesie
            )
        )

    @redis_retry()
    def release_order_lock(self, order_id: int, token: str) -> bool:
        key = self._key(order_id)
        logger.info(f"Release lock {key} ({token})")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)
