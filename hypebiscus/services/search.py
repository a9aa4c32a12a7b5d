from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from hypebiscus.clients.meteora import fetch_pools
from hypebiscus.config import get_settings
from hypebiscus.errors import handle_async_operation
from hypebiscus.http import HttpClient
from hypebiscus.models import ApiPool, PoolGroupResponse, PoolSearchRequest, PoolSearchResponse, PortfolioStyle
from hypebiscus.services.formatters import format_pool
from hypebiscus.services.pools import (
    ALLOWED_BIN_STEPS,
    MIN_APY,
    MIN_FEES_24H,
    filter_pairs_by_token,
    filter_pools_by_quality,
    remove_duplicate_pools,
    select_optimal_pool,
    sort_pools_by_style,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Fetcher = Callable[[HttpClient, str], Awaitable[PoolGroupResponse]]
ErrorHandler = Callable[[Callable[[], Awaitable[T]], str], Awaitable[Optional[T]]]

SEARCH_TERMS: Tuple[str, ...] = ("wbtc-sol", "zbtc-sol", "cbbtc-sol")
BROADER_SEARCH_TERMS: Tuple[str, ...] = ("wbtc", "zbtc", "cbbtc")

TOKEN_LABELS = {
    "wbtc-sol": "wBTC-SOL",
    "zbtc-sol": "zBTC-SOL",
    "cbbtc-sol": "cbBTC-SOL",
    "btc": "All BTC",
}


@dataclass
class PoolSearchConfig:
    search_terms: Sequence[str] = SEARCH_TERMS
    broader_terms: Sequence[str] = BROADER_SEARCH_TERMS
    allowed_bin_steps: Sequence[int] = ALLOWED_BIN_STEPS
    min_apy: float = MIN_APY
    min_fees: float = MIN_FEES_24H
    broaden_threshold: int = 6
    delay_ms: int = 0
    concurrent: bool = False
    retry_attempts: int = 1
    default_investment_usd: float = 10000.0

    @classmethod
    def from_settings(cls) -> "PoolSearchConfig":
        s = get_settings()
        return cls(
            min_apy=s.POOL_MIN_APY,
            min_fees=s.POOL_MIN_FEES_24H,
            broaden_threshold=s.SEARCH_BROADEN_THRESHOLD,
            delay_ms=s.SEARCH_DELAY_MS,
            concurrent=s.SEARCH_CONCURRENT,
            retry_attempts=s.SEARCH_RETRY_ATTEMPTS,
            default_investment_usd=s.DEFAULT_INVESTMENT_USD,
        )


@dataclass
class _TermResult:
    search_term: str
    pools: List[ApiPool] = field(default_factory=list)


def token_label(token_filter: str | None, default: str = "BTC") -> str:
    if not token_filter:
        return default
    return TOKEN_LABELS.get(token_filter, token_filter)


class PoolSearchService:
    """Multi-term pool discovery over the Meteora index.

    A search runs a direct phase over the canonical pair terms, broadens to
    single-token terms when too few candidates were found, then applies the
    quality floor. A failing term counts as zero results; the search itself
    never raises because of one term.
    """

    def __init__(self, http: HttpClient, config: PoolSearchConfig | None = None, fetcher: Fetcher = fetch_pools):
        self.http = http
        self.config = config or PoolSearchConfig()
        self._fetcher = fetcher

    def get_search_terms_for_filter(self, token_filter: str | None = None) -> List[str]:
        if token_filter in TOKEN_LABELS and token_filter != "btc":
            return [token_filter, token_filter.split("-")[0]]
        return list(self.config.search_terms)

    def get_broader_terms_for_filter(self, token_filter: str | None = None) -> List[str]:
        if token_filter and token_filter != "btc":
            return [token_filter.split("-")[0]]
        return list(self.config.broader_terms)

    def loading_message(self, style: str | None, token_filter: str | None = None) -> str:
        label = token_label(token_filter)
        if style:
            return f"Finding the best {style} {label} liquidity pools for you..."
        return f"Finding the best {label} liquidity pools based on your request..."

    def get_no_pools_found_message(self, token_filter: str | None = None, style: str | None = None) -> str:
        label = token_label(token_filter) if token_filter != "btc" else "BTC"
        subject = f"{style} {label}" if style else label
        return (
            f"I searched specifically for {subject} liquidity pools paired with SOL on Solana "
            "but couldn't find any matching pools at the moment. This could be due to:\n"
            "1. API limitations or temporary unavailability\n"
            f"2. These specific {label} pools might not be indexed by our data provider\n"
            "3. The pools might exist but with different naming conventions\n\n"
            "Try selecting a different Bitcoin token filter or check back in a few moments."
        )

    async def _default_error_handler(self, operation, context: str):
        return await handle_async_operation(operation, context, attempts=self.config.retry_attempts)

    async def _fetch_term(self, term: str, token_filter: str | None, error_handler: ErrorHandler) -> _TermResult:
        try:
            data = await error_handler(lambda: self._fetcher(self.http, term), f"Fetching {term} pools")
        except Exception as e:
            logger.error(f"Error fetching pools for {term}: {e}")
            return _TermResult(term)

        result = _TermResult(term)
        if not data or not data.groups:
            return result
        logger.info(f"Found {len(data.groups)} groups for {term}")
        for group in data.groups:
            if group.pairs:
                result.pools.extend(filter_pairs_by_token(group.pairs, token_filter, self.config.allowed_bin_steps))
        return result

    async def _fetch_terms(self, terms: Sequence[str], token_filter: str | None, error_handler: ErrorHandler):
        if self.config.concurrent:
            results = await asyncio.gather(*(self._fetch_term(t, token_filter, error_handler) for t in terms))
            for r in results:
                yield r
            return
        for t in terms:
            yield await self._fetch_term(t, token_filter, error_handler)

    async def _collect(
        self,
        terms: Sequence[str],
        existing: List[ApiPool],
        token_filter: str | None,
        error_handler: ErrorHandler,
    ) -> List[ApiPool]:
        added: List[ApiPool] = []
        async for result in self._fetch_terms(terms, token_filter, error_handler):
            fresh = remove_duplicate_pools(existing + added, result.pools)
            if fresh:
                logger.info(f"Search term {result.search_term} added {len(fresh)} pairs")
            added.extend(fresh)
        return added

    async def search_pools(
        self,
        style: str | None = None,
        token_filter: str | None = None,
        on_loading_message: Callable[[str], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        error_handler: ErrorHandler | None = None,
    ) -> List[ApiPool]:
        if error_handler is None:
            error_handler = self._default_error_handler
        if on_error is not None:
            error_handler = _reporting(error_handler, on_error)

        if on_loading_message is not None:
            on_loading_message(self.loading_message(style, token_filter))

        if self.config.delay_ms > 0:
            await asyncio.sleep(self.config.delay_ms / 1000)

        logger.info(f"Searching for {token_filter or 'all'} BTC-SOL pairs with standard bin steps")
        pools = await self._collect(self.get_search_terms_for_filter(token_filter), [], token_filter, error_handler)

        if len(pools) < self.config.broaden_threshold:
            logger.info(f"Only found {len(pools)} pools with direct searches, trying broader search")
            pools += await self._collect(self.get_broader_terms_for_filter(token_filter), pools, token_filter, error_handler)

        pools = filter_pools_by_quality(pools, self.config.min_apy, self.config.min_fees)
        logger.info(
            f"Total {token_label(token_filter)} pools found after filtering: {len(pools)} "
            f"({', '.join(f'{p.name}: {p.bin_step}' for p in pools)})"
        )
        return pools

    def get_best_pool(self, pools: Sequence[ApiPool], style: str | None, shown_addresses: Sequence[str] = ()) -> Optional[ApiPool]:
        if not pools:
            return None
        style = style or PortfolioStyle.CONSERVATIVE.value
        return select_optimal_pool(sort_pools_by_style(pools, style), style, shown_addresses)

    async def recommend(self, req: PoolSearchRequest) -> PoolSearchResponse:
        messages: List[str] = []
        pools = await self.search_pools(req.style, req.token_filter, on_loading_message=messages.append)
        shown = list(req.shown_pool_addresses)
        status = messages[0] if messages else self.loading_message(req.style, req.token_filter)

        best = self.get_best_pool(pools, req.style, shown)
        if best is None:
            return PoolSearchResponse(
                status_message=status,
                shown_pool_addresses=shown,
                no_pools_message=self.get_no_pools_found_message(req.token_filter, req.style),
            )

        if best.address not in shown:
            shown.append(best.address)
        amount = req.investment_amount or self.config.default_investment_usd
        return PoolSearchResponse(
            status_message=status,
            pools=sort_pools_by_style(pools, req.style or PortfolioStyle.CONSERVATIVE.value),
            best_pool=best,
            formatted_pool=format_pool(best, req.style or PortfolioStyle.CONSERVATIVE.value, amount),
            shown_pool_addresses=shown,
        )


def _reporting(handler: ErrorHandler, on_error: Callable[[BaseException], None]) -> ErrorHandler:
    async def wrapped(operation, context: str):
        async def reporting_operation():
            try:
                return await operation()
            except Exception as e:
                on_error(e)
                raise
        return await handler(reporting_operation, context)
    return wrapped
