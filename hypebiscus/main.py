from __future__ import annotations

import json
import logging
from typing import AsyncGenerator, AsyncIterator, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from redis.asyncio import Redis

from hypebiscus.clients.meteora import fetch_pools
from hypebiscus.clients.solana import LAMPORTS_PER_SOL, SolanaRpcClient, resolve_rpc_url
from hypebiscus.config import get_settings
from hypebiscus.errors import AppError, ConfigurationError, ServiceUnavailableError, ValidationError
from hypebiscus.http import HttpClient
from hypebiscus.middleware.rate_limit import rate_limiter
from hypebiscus.middleware.security import security_headers
from hypebiscus.models import PoolGroupsSummary, PoolSearchRequest, PoolSearchResponse, ServiceStatus, WalletBalance
from hypebiscus.services.chat import ChatRelay
from hypebiscus.services.formatters import format_pool_data
from hypebiscus.services.rate_limiter import RateLimiter, RedisRateLimiter
from hypebiscus.services.search import PoolSearchConfig, PoolSearchService
from hypebiscus.services.validation import validate_chat_request, validate_request_size
from hypebiscus.utils.logging import setup_logging
from hypebiscus.utils.loki import loki_log

app = FastAPI(title="Hypebiscus Pool Advisor", version="1.0.0")

logger = logging.getLogger(__name__)

SETTINGS = get_settings()

# Middleware registered later wraps the earlier ones.
@app.middleware("http")
async def _rate_limit(request, call_next):
    return await rate_limiter(request, call_next)


@app.middleware("http")
async def _security(request, call_next):
    return await security_headers(request, call_next)


@app.middleware("http")
async def _access_log(request, call_next):
    response = await call_next(request)
    await loki_log(
        getattr(app.state, "http", None),
        "INFO",
        "request",
        extra={
            "path": str(request.url.path),
            "method": request.method,
            "status": response.status_code,
            "client_ip": request.client.host if request.client else None,
        },
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=SETTINGS.allowed_origins(),
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=86400,
)


async def stream_until_disconnect(request: Request, chunks: AsyncGenerator[str, None]) -> AsyncIterator[bytes]:
    """Forward text chunks until the client goes away, then close the upstream stream."""
    try:
        async for chunk in chunks:
            if await request.is_disconnected():
                logger.info("Client disconnected, aborting completion stream")
                break
            yield chunk.encode("utf-8")
    finally:
        await chunks.aclose()


@app.exception_handler(AppError)
async def _app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.__class__.__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = "An unexpected error occurred. Please try again."
    if get_settings().ENV == "development":
        message = f"{exc.__class__.__name__}: {exc}"
    return JSONResponse(status_code=500, content={"error": "Internal server error", "message": message})


@app.on_event("startup")
async def startup_event() -> None:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    app.state.http = HttpClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    app.state.search = PoolSearchService(app.state.http, PoolSearchConfig.from_settings())
    app.state.solana = SolanaRpcClient(app.state.http, resolve_rpc_url(settings.SOLANA_RPC_URL, settings.is_production()))

    if settings.ENABLE_REDIS:
        app.state.redis = Redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        app.state.rate_limiter = RedisRateLimiter(
            app.state.redis, settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_MS
        )
    else:
        app.state.redis = None
        app.state.rate_limiter = RateLimiter(
            settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_MS, settings.RATE_LIMIT_MAX_KEYS
        )

    try:
        app.state.chat_relay = ChatRelay.from_settings()
    except ConfigurationError:
        logger.error("ANTHROPIC_API_KEY environment variable is not set; /api/chat will fail")
        app.state.chat_relay = None

    logger.info(f"✅ Hypebiscus pool advisor ready (env={settings.ENV}, rpc={app.state.solana.url})")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    if getattr(app.state, "chat_relay", None):
        await app.state.chat_relay.aclose()
    if getattr(app.state, "redis", None):
        await app.state.redis.aclose()
    if getattr(app.state, "http", None):
        await app.state.http.aclose()


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/status", response_model=ServiceStatus)
async def get_status():
    solana: Optional[SolanaRpcClient] = getattr(app.state, "solana", None)
    rpc_healthy = await solana.get_health() if solana else False
    return ServiceStatus(
        status="ok",
        env=get_settings().ENV,
        rpc_healthy=rpc_healthy,
        chat_configured=getattr(app.state, "chat_relay", None) is not None,
    )


@app.get("/api/chat")
async def chat_status():
    return {"status": "API route is working"}


@app.post("/api/chat")
async def post_chat(request: Request):
    raw = await request.body()
    # Chunked uploads carry no Content-Length for the middleware to check.
    validate_request_size(str(len(raw)), get_settings().MAX_BODY_BYTES)
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON")
    req = validate_chat_request(body)

    relay: Optional[ChatRelay] = getattr(app.state, "chat_relay", None)
    if relay is None:
        raise ConfigurationError("ANTHROPIC_API_KEY is not set")

    return StreamingResponse(
        stream_until_disconnect(request, relay.stream(req)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.post("/api/pools/search", response_model=PoolSearchResponse)
async def post_pool_search(req: PoolSearchRequest):
    return await app.state.search.recommend(req)


@app.get("/api/pools/groups", response_model=PoolGroupsSummary)
async def get_pool_groups(search_term: str = Query(..., min_length=1, max_length=64)):
    data = await fetch_pools(app.state.http, search_term)
    return PoolGroupsSummary(
        search_term=search_term,
        total=data.total,
        groups=data.groups,
        summary=format_pool_data(search_term, data),
    )


@app.get("/api/wallet/balance", response_model=WalletBalance)
async def get_wallet_balance(address: str = Query(..., min_length=32, max_length=44)):
    solana: Optional[SolanaRpcClient] = getattr(app.state, "solana", None)
    if solana is None:
        raise ServiceUnavailableError("Solana RPC client is not configured")
    lamports = await solana.get_balance(address)
    return WalletBalance(address=address, lamports=lamports, sol=lamports / LAMPORTS_PER_SOL)
