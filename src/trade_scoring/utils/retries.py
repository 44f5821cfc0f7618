"""
Centralized retry logic for outbound market-data calls using Tenacity.
"""

import logging
import os

import requests
from loguru import logger
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)


def _is_test_env():
    return os.environ.get("PYTEST_CURRENT_TEST") or os.environ.get("TEST_MODE") == "True"


# Retry settings for test environment
_TEST_RETRY_ATTEMPTS = 3
_TEST_RETRY_WAIT_MULTIPLIER = 0.1
_TEST_RETRY_WAIT_MIN = 0.1
_TEST_RETRY_WAIT_MAX = 0.5

# Retry settings for production environment (free-tier rate limits reset per minute)
_PROD_RETRY_ATTEMPTS = 4
_PROD_RETRY_WAIT_MULTIPLIER = 2
_PROD_RETRY_WAIT_MIN = 2
_PROD_RETRY_WAIT_MAX = 30

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def is_transient(exc: BaseException) -> bool:
    """Connection problems, timeouts, rate limits and 5xx responses."""
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code in _RETRYABLE_STATUS
    return False


def dynamic_stop(retry_state):
    """Dynamic stop condition based on environment."""
    if _is_test_env():
        return stop_after_attempt(_TEST_RETRY_ATTEMPTS)(retry_state)
    return stop_after_attempt(_PROD_RETRY_ATTEMPTS)(retry_state)


def dynamic_wait(retry_state):
    """Dynamic wait condition based on environment."""
    if _is_test_env():
        return wait_exponential(
            multiplier=_TEST_RETRY_WAIT_MULTIPLIER,
            min=_TEST_RETRY_WAIT_MIN,
            max=_TEST_RETRY_WAIT_MAX,
        )(retry_state)
    return wait_exponential(
        multiplier=_PROD_RETRY_WAIT_MULTIPLIER,
        min=_PROD_RETRY_WAIT_MIN,
        max=_PROD_RETRY_WAIT_MAX,
    )(retry_state)


def dynamic_before_sleep(retry_state):
    """Dynamic logging based on environment."""
    if _is_test_env():
        # Minimal logging in tests
        pass
    else:
        # tenacity.before_sleep_log expects standard logging levels (int)
        return before_sleep_log(logger, logging.WARNING)(retry_state)


retry_market_data = retry(
    retry=retry_if_exception(is_transient),
    stop=dynamic_stop,
    wait=dynamic_wait,
    before_sleep=dynamic_before_sleep,
    reraise=True,
)
