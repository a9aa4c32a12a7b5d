from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    error = "Internal server error"
    recoverable = True

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        body = {"error": self.error, "message": self.message}
        if self.field is not None:
            body["field"] = self.field
        return body


class ValidationError(AppError):
    status_code = 400
    error = "Validation failed"


class RateLimitError(AppError):
    status_code = 429
    error = "Too many requests"

    def __init__(self, retry_after_ms: int, limit: int):
        seconds = retry_after_seconds(retry_after_ms)
        super().__init__(f"Rate limit exceeded. Try again in {seconds} seconds.")
        self.retry_after_ms = retry_after_ms
        self.limit = limit

    def headers(self) -> dict:
        return {
            "Retry-After": str(retry_after_seconds(self.retry_after_ms)),
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": "0",
        }


class GatewayError(AppError):
    status_code = 502
    error = "Upstream service unavailable"

    def to_dict(self) -> dict:
        # Upstream URLs can carry provider keys; the detail stays in the log.
        return {"error": self.error, "message": "Upstream service unavailable. Please try again."}


class ServiceUnavailableError(AppError):
    status_code = 503
    error = "Service unavailable"
    recoverable = False


class ConfigurationError(AppError):
    status_code = 500
    error = "Internal server error"
    recoverable = False

    def to_dict(self) -> dict:
        # Never say which setting is missing.
        return {"error": self.error, "message": "Service is not configured correctly"}


def retry_after_seconds(ms: int) -> int:
    return max(1, -(-int(ms) // 1000))


def classify_error(exc: BaseException) -> AppError:
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, (httpx.TransportError, httpx.HTTPStatusError)):
        return GatewayError(str(exc) or exc.__class__.__name__)
    return AppError(str(exc) or exc.__class__.__name__)


def _is_recoverable(exc: BaseException) -> bool:
    return classify_error(exc).recoverable


async def retry_operation(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay: float = 1.0,
    context: str = "Operation",
) -> T:
    """Run ``operation`` until it succeeds, retrying recoverable failures only."""
    async for attempt in AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=delay, min=0, max=10),
        retry=retry_if_exception(_is_recoverable),
    ):
        with attempt:
            n = attempt.retry_state.attempt_number
            if n > 1:
                logger.warning(f"{context} attempt {n - 1} failed, retrying")
            return await operation()
    raise RuntimeError("retry loop exited without a result")


async def handle_async_operation(
    operation: Callable[[], Awaitable[T]],
    context: str = "Operation",
    attempts: int = 1,
    delay: float = 0.5,
) -> Optional[T]:
    """Return the operation's result, or None after logging a classified failure."""
    try:
        return await retry_operation(operation, attempts=attempts, delay=delay, context=context)
    except Exception as e:
        err = classify_error(e)
        logger.warning(f"{context} failed: {err.error}: {err.message}")
        return None
