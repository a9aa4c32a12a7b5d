from conftest import make_pool
from hypebiscus.models import PoolGroup, PoolGroupResponse
from hypebiscus.services.formatters import (
    calculate_fee_apy,
    format_currency_value,
    format_pool,
    format_pool_data,
)


def test_format_currency_value():
    assert format_currency_value("1234567.891", 0) == "1,234,568"
    assert format_currency_value(1234.5, 2, prefix="$") == "$1,234.50"
    assert format_currency_value("not-a-number") == "0"
    assert format_currency_value(None, fallback="N/A") == "N/A"


def test_calculate_fee_apy_guards_zero_tvl():
    assert calculate_fee_apy(50, 10000) == 0.5
    assert calculate_fee_apy(50, 0) == 0.0


def test_format_pool_derives_display_fields():
    pool = make_pool("wBTC-SOL", 50, liquidity="200000", fees_24h=100.0, current_price=95123.456, trade_volume_24h=1500000)
    formatted = format_pool(pool, "conservative", 10000)

    assert formatted.liquidity == "200,000"
    assert formatted.current_price == "95,123.46"
    assert formatted.apy == "0.05%"
    assert formatted.fees24h == "100.00"
    assert formatted.volume24h == "1,500,000"
    assert formatted.bin_step == "50"
    assert formatted.estimated_daily_earnings == "5.00"
    assert formatted.investment_amount == "10,000"
    assert formatted.risk_level == "conservative"

    wire = formatted.model_dump(by_alias=True)
    assert wire["binStep"] == "50"
    assert wire["estimatedDailyEarnings"] == "5.00"
    assert wire["riskLevel"] == "conservative"


def test_format_pool_without_bin_step_or_liquidity():
    formatted = format_pool(make_pool("wBTC-SOL", None, liquidity="0"), "aggressive")
    assert formatted.bin_step == "N/A"
    assert formatted.estimated_daily_earnings == "0.00"
    assert formatted.apy == "0.00%"


def test_format_pool_data_lists_groups_and_pairs():
    data = PoolGroupResponse(
        groups=[
            PoolGroup(name="wBTC-SOL", pairs=[make_pool("wBTC-SOL", 10, liquidity="1500", apy=1.234, fees_24h=7.5)]),
            PoolGroup(name="empty", pairs=[]),
        ],
        total=1,
    )
    text = format_pool_data("wbtc-sol", data)

    assert text.startswith("Here are the WBTC-SOL pools I found:")
    assert "**wBTC-SOL Pools**" in text
    assert "1. Pool: wBTC-SOL" in text
    assert "Liquidity: $1,500" in text
    assert "APY: 1.23%" in text
    assert "24h Fees: $7.50" in text
    assert "No pairs found for this group." in text


def test_format_pool_data_without_groups():
    text = format_pool_data("zbtc", PoolGroupResponse())
    assert text.endswith("No ZBTC pools found.")
