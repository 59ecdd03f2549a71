import asyncio
import logging
import time
from enum import Enum
from typing import Any, Optional

import redis
import redis.asyncio

from db.config import settings

logger = logging.getLogger(__name__)

pool_settings = {
    "max_connections": settings.redis_max_connections,
    "socket_timeout": 10.0,
    "socket_connect_timeout": 5.0,
    "socket_keepalive": True,
    "health_check_interval": 30,
    "retry_on_timeout": True,
    "decode_responses": False,
}


class CircuitBreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class RedisCircuitBreaker:
    """
    Temporarily disables Redis operations once the failure count passes the
    threshold, so a dead Redis does not stall every request.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        expected_exception: tuple = (
            redis.exceptions.ConnectionError,
            redis.exceptions.TimeoutError,
            RuntimeError,
        ),
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.failure_count = 0
        self.last_failure_time = None
        self.state = CircuitBreakerState.CLOSED

    def call(self, func, suppress: bool = True):
        """Wrap func. Unless suppress is False, failures come back as None."""

        async def async_wrapper(*args, **kwargs):
            if self.state == CircuitBreakerState.OPEN:
                if self._should_attempt_reset():
                    self.state = CircuitBreakerState.HALF_OPEN
                else:
                    logger.warning("Circuit breaker is OPEN, skipping Redis operation")
                    if not suppress:
                        raise redis.exceptions.ConnectionError("Circuit breaker is open")
                    return None

            try:
                result = await func(*args, **kwargs)
                self._on_success()
                return result
            except self.expected_exception as e:
                self._on_failure()
                logger.warning(f"Redis operation failed: {e}")
                if not suppress:
                    raise
                return None

        return async_wrapper

    def _should_attempt_reset(self) -> bool:
        return (
            time.time() - self.last_failure_time > self.recovery_timeout
            if self.last_failure_time
            else True
        )

    def _on_success(self):
        self.failure_count = 0
        self.state = CircuitBreakerState.CLOSED

    def _on_failure(self):
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.failure_count >= self.failure_threshold:
            self.state = CircuitBreakerState.OPEN
            logger.warning(
                f"Circuit breaker opened after {self.failure_count} failures"
            )


redis_circuit_breaker = RedisCircuitBreaker()


class RedisWrapper:
    """
    Async Redis client wrapper with retry logic and circuit breaker.
    Failed reads degrade to None so callers fall back to fresh data.
    """

    def __init__(self, client: redis.asyncio.Redis):
        self.client = client

    async def _execute_with_retry(self, operation, *args, **kwargs):
        last_exception = None

        for attempt in range(settings.redis_retry_attempts):
            try:
                return await operation(*args, **kwargs)
            except (
                redis.exceptions.ConnectionError,
                redis.exceptions.TimeoutError,
            ) as e:
                last_exception = e
                if attempt < settings.redis_retry_attempts - 1:
                    await asyncio.sleep(settings.redis_retry_delay * (2**attempt))
                    logger.warning(
                        f"Redis operation failed (attempt {attempt + 1}/{settings.redis_retry_attempts}): {e}"
                    )
                else:
                    logger.error(f"Redis operation failed after all retries: {e}")

        raise last_exception

    def _create_method(self, method_name: str, suppress: bool = True):
        async def async_method(*args, **kwargs):
            operation = getattr(self.client, method_name)
            return await self._execute_with_retry(operation, *args, **kwargs)

        return redis_circuit_breaker.call(async_method, suppress=suppress)

    async def aclose(self):
        await self.client.aclose()

    def get(self, key: str, raise_on_error: bool = False):
        return self._create_method("get", suppress=not raise_on_error)(key)

    def set(self, key: str, value: Any, ex: Optional[int] = None, **kwargs):
        return self._create_method("set")(key, value, ex=ex, **kwargs)

    def lock(self, key: str, timeout: int = None, sleep: float = 0.1):
        # The lock object is returned directly, not wrapped by the circuit breaker
        return self.client.lock(key, timeout=timeout, sleep=sleep)


REDIS_ASYNC_CLIENT = RedisWrapper(
    redis.asyncio.Redis(
        connection_pool=redis.asyncio.ConnectionPool.from_url(
            settings.redis_url, **pool_settings
        )
    )
)
