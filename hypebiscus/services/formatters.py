from __future__ import annotations

from typing import Any, List

from hypebiscus.models import ApiPool, FormattedPool, PoolGroupResponse


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def format_currency_value(
    value: Any,
    decimals: int = 0,
    prefix: str = "",
    suffix: str = "",
    fallback: str = "0",
) -> str:
    num = _to_float(value)
    if num is None or num != num:
        return fallback
    return f"{prefix}{num:,.{decimals}f}{suffix}"


def calculate_fee_apy(fees_24h: float, tvl: float) -> float:
    """Daily fee yield in percent of TVL."""
    if tvl <= 0:
        return 0.0
    return (fees_24h / tvl) * 100


def format_pool(pool: ApiPool, style: str = "conservative", investment_amount: float = 10000.0) -> FormattedPool:
    fees_24h = float(pool.fees_24h or 0.0)
    liquidity = _to_float(pool.liquidity) or 0.0
    fee_apy = calculate_fee_apy(fees_24h, liquidity)
    daily_rate = fees_24h / liquidity if liquidity > 0 else 0.0

    return FormattedPool(
        name=pool.name,
        address=pool.address,
        liquidity=format_currency_value(liquidity, 0),
        current_price=format_currency_value(pool.current_price, 2),
        apy=f"{fee_apy:.2f}%",
        fees24h=format_currency_value(fees_24h, 2),
        volume24h=format_currency_value(pool.trade_volume_24h, 0),
        bin_step=str(pool.bin_step) if pool.bin_step else "N/A",
        estimated_daily_earnings=f"{daily_rate * investment_amount:.2f}",
        investment_amount=format_currency_value(investment_amount, 0),
        risk_level=str(getattr(style, "value", style)),
    )


def _format_pair(pair: ApiPool, index: int) -> str:
    return (
        f"{index + 1}. Pool: {pair.name}\n"
        f"   - Liquidity: ${format_currency_value(pair.liquidity, 0)}\n"
        f"   - Current Price: ${format_currency_value(pair.current_price, 2)}\n"
        f"   - APY: {pair.apy:.2f}%\n"
        f"   - 24h Fees: ${pair.fees_24h:.2f}\n"
        f"   - 24h Volume: ${format_currency_value(pair.trade_volume_24h, 2)}\n\n"
    )


def format_pool_data(search_term: str, data: PoolGroupResponse) -> str:
    """Render a pool-group response as a chat message."""
    label = search_term.upper()
    parts: List[str] = [f"Here are the {label} pools I found:\n\n"]
    if not data.groups:
        parts.append(f"No {label} pools found.")
        return "".join(parts)

    parts.append("You can interact with these pools using the buttons below each pool listing.\n\n")
    for group in data.groups:
        parts.append(f"**{group.name} Pools**\n\n")
        if not group.pairs:
            parts.append("No pairs found for this group.\n\n")
            continue
        for i, pair in enumerate(group.pairs):
            parts.append(_format_pair(pair, i))
    return "".join(parts)
