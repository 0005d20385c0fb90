# fulfillment/utils/retry.py
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
import requests
import redis

from fulfillment.utils.settings import STATE_CAS_RETRIES


class StaleStateError(Exception):
    """Compare-and-swap przegral wyscig, rekord zmienil sie od odczytu."""


def http_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(requests.RequestException),
    )


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )


def cas_retry():
    # ponow cala operacje (odczyt + warunek + zapis) gdy CAS nie trafil
    return retry(
        reraise=True,
        stop=stop_after_attempt(STATE_CAS_RETRIES),
        wait=wait_exponential(multiplier=0.01, min=0.01, max=0.1),
        retry=retry_if_exception_type(StaleStateError),
    )
