# fulfillment/services/lock_service.py
import time
import uuid
from contextlib import contextmanager

import redis
from redis.exceptions import RedisError

from fulfillment.domain.errors import ConflictError
from fulfillment.utils.retry import redis_retry
from fulfillment.utils.settings import REDIS_URL, CART_LOCK_TTL_SECONDS, CART_LOCK_WAIT_SECONDS
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje lua atomowo, nie mozna wcisnac sie miedzy GET a DEL


def cart_lock_key(owner_id: int) -> str:
    return f"cart:{owner_id}:lock"


class LockService:
    """
    -zakres wzajemnego wykluczania per klucz (np. koszyk uzytkownika)
    -zwalnianie tylko przez wlasciciela tokenu (lua)
    -TTL, wiec martwy worker nie blokuje na zawsze
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @redis_retry()
    def acquire(self, key: str, token: str, ttl: int) -> bool:
        #SET cart:1:lock "<token>" NX EX 10
        return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))

    @redis_retry()
    def release(self, key: str, token: str) -> bool:
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)

    @contextmanager
    def hold(self, key: str, ttl: int = CART_LOCK_TTL_SECONDS, wait: float = CART_LOCK_WAIT_SECONDS):
        token = uuid.uuid4().hex
        deadline = time.monotonic() + wait

        while not self.acquire(key, token, ttl):
            if time.monotonic() >= deadline:
                logger.warning(f"Lock {key} busy after {wait}s")
                raise ConflictError("Resource is busy, try again", details={"lock": key})
            time.sleep(0.05)

        try:
            yield token
        finally:
            try:
                self.release(key, token)
            except RedisError as e:
                # lock i tak wygasnie po TTL
                logger.warning(f"Failed to release lock {key}: {e}")
