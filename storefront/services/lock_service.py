import uuid

import redis

from storefront.utils.retry import redis_retry
from storefront.utils.settings import CHECKOUT_LOCK_TTL_SECONDS, REDIS_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

#LUA compare-and-delete, runs atomically
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    -checkout lock per order (one session minted at a time)
    -release only by the token that acquired it
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def new_token() -> str:
        return uuid.uuid4().hex

    @redis_retry()
    def acquire_checkout_lock(self, order_id: str, token: str, ttl: int = CHECKOUT_LOCK_TTL_SECONDS) -> bool:
        key = f"order:{order_id}:checkout"
        logger.info(f"Acquire lock {key}")
        #SET order:<id>:checkout <token> NX EX 30
        return bool(
            self.redis.set(
                name=key,
                value=token,
                nx=True,  #only if nobody holds it
                ex=ttl,  #expires on its own if the holder dies
            )
        )

    @redis_retry()
    def release_checkout_lock(self, order_id: str, token: str) -> bool:
        key = f"order:{order_id}:checkout"
        logger.info(f"Release lock {key}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)
