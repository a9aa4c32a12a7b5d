from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from anthropic import AsyncAnthropic, APIError

from hypebiscus.config import get_settings
from hypebiscus.errors import ConfigurationError, GatewayError
from hypebiscus.models import ChatRequest

logger = logging.getLogger(__name__)

BASE_SYSTEM_PROMPT = (
    "You are a helpful assistant for Hypebiscus, a cryptocurrency app focused on DeFi, bridges, "
    "and wallets. Provide concise, accurate information about crypto topics and Meteora DLMM "
    "liquidity pools, and help users navigate the platform. When appropriate, end your responses "
    "with 1-2 curiosity-provoking questions to encourage further conversation."
)

POOL_ANALYSIS_PROMPT = (
    " When analyzing a liquidity pool, tailor the analysis to the user's portfolio style and answer "
    "in short bullet points, in this order:\n"
    "**Why this pool suits you**\n"
    "- 2-4 bullets on suitability: bin step relevance for the style, TVL depth, fee APY and "
    "estimated daily earnings.\n"
    "**Risk considerations**\n"
    "- 2-4 bullets on risks: impermanent loss, price range exits for the bin step, liquidity and "
    "volume concentration.\n"
    "Finish with 1-2 questions about the user's investment goals or risk preferences."
)

GREETING = "Hello"


def build_system_prompt(has_pool_data: bool) -> str:
    if has_pool_data:
        return BASE_SYSTEM_PROMPT + POOL_ANALYSIS_PROMPT
    return BASE_SYSTEM_PROMPT


def build_pool_analysis_message(pool_data: Dict[str, Any], portfolio_style: Optional[str]) -> Dict[str, str]:
    style = portfolio_style or "general"
    bin_step = pool_data.get("binStep", "N/A")
    return {
        "role": "user",
        "content": (
            f"I need you to analyze this {style} crypto liquidity pool and provide insights: "
            f"{json.dumps(pool_data)}. Focus on explaining why this pool is appropriate for a {style} "
            f"investor, discuss the bin step ({bin_step}) relevance, evaluate the risk level, explain "
            "potential returns, and highlight key metrics."
        ),
    }


def build_messages(req: ChatRequest) -> List[Dict[str, str]]:
    """History, then the virtual pool message when pool data is attached.

    The upstream API rejects an empty list, so a greeting is sent when
    nothing else would be.
    """
    messages = [{"role": m.role, "content": m.content} for m in req.messages]
    if req.pool_data is not None:
        messages.append(build_pool_analysis_message(req.pool_data, req.portfolio_style))
    if not messages:
        messages.append({"role": "user", "content": GREETING})
    return messages


class ChatRelay:
    def __init__(self, client: Any, model: str, max_tokens: int = 1024):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls) -> "ChatRelay":
        s = get_settings()
        if not s.ANTHROPIC_API_KEY:
            raise ConfigurationError("ANTHROPIC_API_KEY is not set")
        return cls(AsyncAnthropic(api_key=s.ANTHROPIC_API_KEY), s.ANTHROPIC_MODEL, s.ANTHROPIC_MAX_TOKENS)

    async def stream(self, req: ChatRequest) -> AsyncIterator[str]:
        """Yield text deltas from the model as they arrive."""
        messages = build_messages(req)
        system = build_system_prompt(req.pool_data is not None)
        logger.info(
            f"Relaying chat: {len(req.messages)} messages, pool_data={req.pool_data is not None}, "
            f"style={req.portfolio_style or 'none'}"
        )
        try:
            async with self.client.messages.stream(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=messages,
            ) as stream:
                async for text in stream.text_stream:
                    yield text
        except APIError as e:
            logger.error(f"Upstream completion failed: {e.__class__.__name__}: {e}")
            raise GatewayError("Failed to get response from language model") from e

    async def aclose(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()
