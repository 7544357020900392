# storefront/utils/retry.py
import redis
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential


def redis_retry(attempts: int = 3):
    """Transport-level retry for lock calls. Business operations are never retried."""
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type((redis.ConnectionError, redis.TimeoutError)),
    )
