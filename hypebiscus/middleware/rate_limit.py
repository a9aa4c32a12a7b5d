from __future__ import annotations
import inspect
import logging
from typing import Any, Callable

from fastapi import Request
from fastapi.responses import JSONResponse

from hypebiscus.config import get_settings
from hypebiscus.errors import AppError, RateLimitError
from hypebiscus.services.rate_limiter import client_identifier
from hypebiscus.services.validation import validate_request_size
from hypebiscus.utils.loki import log_rate_limit_event

logger = logging.getLogger(__name__)

GUARDED_ROUTES = {("POST", "/api/chat")}


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def check_rate_limit(limiter: Any, key: str) -> None:
    """Raise RateLimitError when ``key`` has used up its window."""
    if await _maybe_await(limiter.is_allowed(key)):
        return
    remaining_ms = await _maybe_await(limiter.get_remaining_time(key))
    raise RateLimitError(remaining_ms, limiter.max_requests)


async def rate_limiter(request: Request, call_next: Callable):
    if (request.method, request.url.path) not in GUARDED_ROUTES:
        return await call_next(request)

    limiter = getattr(request.app.state, "rate_limiter", None)
    key = client_identifier(request)
    try:
        # Size first so oversized bodies never count against the window.
        validate_request_size(request.headers.get("content-length"), get_settings().MAX_BODY_BYTES)
        if limiter is not None:
            await check_rate_limit(limiter, key)
    except RateLimitError as e:
        count = await _maybe_await(limiter.get_count(key))
        await log_rate_limit_event(getattr(request.app.state, "http", None), key, request.url.path, count)
        return JSONResponse(status_code=e.status_code, content=e.to_dict(), headers=e.headers())
    except AppError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_dict())

    return await call_next(request)
