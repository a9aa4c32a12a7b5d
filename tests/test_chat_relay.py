import httpx
import pytest
from anthropic import APIConnectionError

from conftest import FakeAnthropic
from hypebiscus.errors import ConfigurationError, GatewayError
from hypebiscus.models import ChatMessage, ChatRequest
from hypebiscus.services import chat
from hypebiscus.services.chat import (
    BASE_SYSTEM_PROMPT,
    ChatRelay,
    build_messages,
    build_system_prompt,
)

POOL = {"name": "wBTC-SOL", "address": "abc", "binStep": "50", "apy": "0.05%"}


def test_system_prompt_extends_only_with_pool_data():
    assert build_system_prompt(False) == BASE_SYSTEM_PROMPT
    with_pool = build_system_prompt(True)
    assert with_pool.startswith(BASE_SYSTEM_PROMPT)
    assert "Why this pool suits you" in with_pool
    assert with_pool.index("Why this pool suits you") < with_pool.index("Risk considerations")


def test_pool_data_adds_exactly_one_virtual_user_message():
    messages = build_messages(ChatRequest(messages=[], pool_data=POOL, portfolio_style="conservative"))

    assert len(messages) == 1
    assert messages[0]["role"] == "user"
    assert "conservative crypto liquidity pool" in messages[0]["content"]
    assert "bin step (50)" in messages[0]["content"]
    assert '"address": "abc"' in messages[0]["content"]


def test_virtual_message_goes_after_history():
    history = [ChatMessage(role="user", content="hi"), ChatMessage(role="assistant", content="hello")]
    messages = build_messages(ChatRequest(messages=history, pool_data=POOL))

    assert [m["content"] for m in messages[:2]] == ["hi", "hello"]
    assert "general crypto liquidity pool" in messages[2]["content"]


def test_empty_conversation_gets_a_greeting():
    assert build_messages(ChatRequest()) == [{"role": "user", "content": "Hello"}]


async def test_stream_forwards_text_fragments_in_order():
    client = FakeAnthropic(["The ", "pool ", "looks fine."])
    relay = ChatRelay(client, model="test-model", max_tokens=256)
    req = ChatRequest(messages=[], pool_data=POOL, portfolio_style="aggressive")

    chunks = [c async for c in relay.stream(req)]

    assert chunks == ["The ", "pool ", "looks fine."]
    call = client.messages.calls[0]
    assert call["model"] == "test-model"
    assert call["max_tokens"] == 256
    assert call["system"] == build_system_prompt(True)
    assert len(call["messages"]) == 1
    assert client.messages.streams[0].closed


async def test_upstream_failure_mid_stream_raises_gateway_error():
    error = APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
    relay = ChatRelay(FakeAnthropic(["partial"], error=error), model="m")
    received = []

    with pytest.raises(GatewayError):
        async for chunk in relay.stream(ChatRequest(messages=[ChatMessage(role="user", content="hi")])):
            received.append(chunk)
    assert received == ["partial"]


def test_from_settings_requires_api_key(monkeypatch):
    class NoKey:
        ANTHROPIC_API_KEY = None

    monkeypatch.setattr(chat, "get_settings", lambda: NoKey())
    with pytest.raises(ConfigurationError) as exc:
        ChatRelay.from_settings()
    assert "ANTHROPIC_API_KEY" not in str(exc.value.to_dict())
