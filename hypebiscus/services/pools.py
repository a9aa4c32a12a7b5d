from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from hypebiscus.models import ApiPool

logger = logging.getLogger(__name__)


VALID_PAIR_NAMES = frozenset({"wbtc-sol", "zbtc-sol", "cbbtc-sol"})
ALLOWED_BIN_STEPS: Tuple[int, ...] = (5, 10, 15, 50)
TOKEN_FILTERS = ("wbtc-sol", "zbtc-sol", "cbbtc-sol")

MIN_APY = 0.03
MIN_FEES_24H = 5.0

# Bin step a style favours: wider bins for conservative, tighter for aggressive.
PREFERRED_BIN_STEPS: Dict[str, Tuple[int, ...]] = {
    "conservative": (50,),
    "moderate": (10, 15),
    "aggressive": (5,),
}


def bin_step_of(pool: ApiPool) -> int:
    return pool.bin_step or 0


def liquidity_of(pool: ApiPool) -> float:
    try:
        return float(pool.liquidity)
    except (TypeError, ValueError):
        return 0.0


def is_valid_pair(pool: ApiPool, allowed_bin_steps: Sequence[int] = ALLOWED_BIN_STEPS) -> bool:
    name = pool.name.lower()
    return name in VALID_PAIR_NAMES and "jito" not in name and bin_step_of(pool) in allowed_bin_steps


def filter_valid_pairs(pairs: Iterable[ApiPool], allowed_bin_steps: Sequence[int] = ALLOWED_BIN_STEPS) -> List[ApiPool]:
    out: List[ApiPool] = []
    for pair in pairs:
        if is_valid_pair(pair, allowed_bin_steps):
            logger.debug(f"Found valid pair: {pair.name} with bin step: {bin_step_of(pair)}")
            out.append(pair)
    return out


def filter_pairs_by_token(
    pairs: Iterable[ApiPool],
    token_filter: str | None = None,
    allowed_bin_steps: Sequence[int] = ALLOWED_BIN_STEPS,
) -> List[ApiPool]:
    """Validity filter narrowed to one BTC token when a token filter is given."""
    if not token_filter or token_filter == "btc":
        return filter_valid_pairs(pairs, allowed_bin_steps)

    out: List[ApiPool] = []
    for pair in pairs:
        name = pair.name.lower()
        if bin_step_of(pair) not in allowed_bin_steps or "jito" in name:
            continue
        if token_filter in TOKEN_FILTERS:
            token = token_filter.split("-")[0]
            keep = token in name and "sol" in name
        else:
            keep = is_valid_pair(pair, allowed_bin_steps)
        if keep:
            out.append(pair)
    return out


def remove_duplicate_pools(existing: Iterable[ApiPool], new_pools: Iterable[ApiPool]) -> List[ApiPool]:
    """Return the pools of ``new_pools`` whose (name, bin_step) is not already known."""
    seen = {(p.name, p.bin_step) for p in existing}
    out: List[ApiPool] = []
    for pair in new_pools:
        ident = (pair.name, pair.bin_step)
        if ident in seen:
            continue
        seen.add(ident)
        out.append(pair)
        logger.debug(f"Added new pool: {pair.name} with bin step: {pair.bin_step or 'unknown'}")
    return out


def filter_pools_by_quality(
    pools: Iterable[ApiPool],
    min_apy: float = MIN_APY,
    min_fees: float = MIN_FEES_24H,
) -> List[ApiPool]:
    out: List[ApiPool] = []
    for pool in pools:
        if pool.apy < min_apy or pool.fees_24h < min_fees:
            logger.debug(
                f"Removing pool with low metrics: {pool.name} (Bin Step: {pool.bin_step}) "
                f"- APY: {pool.apy}, 24h Fees: ${pool.fees_24h}"
            )
            continue
        out.append(pool)
    return out


def _conservative_key(pool: ApiPool):
    return (bin_step_of(pool) != 50, -liquidity_of(pool))


def _moderate_key(pool: ApiPool):
    step = bin_step_of(pool)
    preferred = step in (10, 15)
    score = liquidity_of(pool) * 0.6 + pool.apy * 0.4
    return (not preferred, preferred and step != 10, -score)


def _aggressive_key(pool: ApiPool):
    return (bin_step_of(pool) != 5, -pool.apy)


_STYLE_KEYS = {
    "conservative": _conservative_key,
    "moderate": _moderate_key,
    "aggressive": _aggressive_key,
}


def sort_pools_by_style(pools: Iterable[ApiPool], style: str | None) -> List[ApiPool]:
    """Stable ordering per portfolio style. Unknown styles keep the input order."""
    key = _STYLE_KEYS.get(_style_value(style))
    if key is None:
        return list(pools)
    return sorted(pools, key=key)


def get_preferred_bin_steps(style: str | None) -> Tuple[int, ...]:
    return PREFERRED_BIN_STEPS.get(_style_value(style), ())


def select_optimal_pool(
    pools: Sequence[ApiPool],
    style: str | None,
    shown_addresses: Iterable[str] = (),
) -> Optional[ApiPool]:
    """Pick the pool to recommend, preferring unseen pools on the style's bin steps."""
    if not pools:
        return None

    preferred = get_preferred_bin_steps(style)
    shown = set(shown_addresses)
    ranked = sort_pools_by_style(pools, style)

    for pool in ranked:
        if pool.address not in shown and bin_step_of(pool) in preferred:
            return pool

    for pool in ranked:
        if pool.address not in shown:
            return pool

    for pool in ranked:
        if bin_step_of(pool) in preferred:
            return pool

    return ranked[0]


def _style_value(style) -> str:
    if style is None:
        return ""
    return getattr(style, "value", style)
