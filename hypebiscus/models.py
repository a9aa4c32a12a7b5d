from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class PortfolioStyle(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class ApiPool(BaseModel):
    """A DLMM pair as returned by the pools index."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    address: str
    liquidity: str = Field(..., description="TVL as a string-encoded decimal")
    current_price: Union[float, str] = 0.0
    apy: float = Field(0.0, description="Fee APY as a fraction, 0.03 == 3%")
    fees_24h: float = 0.0
    trade_volume_24h: float = 0.0
    bin_step: Optional[int] = None

    @field_validator("liquidity", mode="before")
    @classmethod
    def _liquidity_as_str(cls, v: Any) -> Any:
        if isinstance(v, (int, float)):
            return str(v)
        return v


class PoolGroup(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    pairs: List[ApiPool] = Field(default_factory=list)


class PoolGroupResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    groups: List[PoolGroup] = Field(default_factory=list)
    total: int = 0


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FormattedPool(_CamelModel):
    name: str
    address: str
    liquidity: str
    current_price: str
    apy: str
    fees24h: str
    volume24h: str
    bin_step: str
    estimated_daily_earnings: str
    investment_amount: str
    risk_level: str


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list)
    pool_data: Optional[Dict[str, Any]] = None
    portfolio_style: Optional[str] = None


class PoolSearchRequest(_CamelModel):
    model_config = ConfigDict(use_enum_values=True)

    style: Optional[PortfolioStyle] = None
    token_filter: Optional[str] = Field(default=None, max_length=32)
    shown_pool_addresses: List[str] = Field(default_factory=list)
    investment_amount: Optional[float] = Field(default=None, gt=0)


class PoolSearchResponse(_CamelModel):
    status_message: str
    pools: List[ApiPool] = Field(default_factory=list)
    best_pool: Optional[ApiPool] = None
    formatted_pool: Optional[FormattedPool] = None
    shown_pool_addresses: List[str] = Field(default_factory=list)
    no_pools_message: Optional[str] = None


class PoolGroupsSummary(_CamelModel):
    search_term: str
    total: int
    groups: List[PoolGroup]
    summary: str


class ServiceStatus(BaseModel):
    status: str
    env: str
    rpc_healthy: bool
    chat_configured: bool


class WalletBalance(BaseModel):
    address: str
    lamports: int
    sol: float
