from __future__ import annotations

import json
import re
from typing import Any

from hypebiscus.errors import ValidationError
from hypebiscus.models import ChatMessage, ChatRequest

MAX_BODY_BYTES = 1024 * 1024
MAX_MESSAGES = 50
MAX_MESSAGE_CHARS = 10_000
MAX_STYLE_CHARS = 100
MAX_POOL_DATA_BYTES = 50_000

SCRIPT_PATTERN = re.compile(r"<script|javascript:|\bon[a-z]+\s*=", re.IGNORECASE)

_MISSING = object()


def validate_request_size(content_length: str | None, max_bytes: int = MAX_BODY_BYTES) -> None:
    if not content_length:
        return
    try:
        size = int(content_length)
    except ValueError:
        raise ValidationError("Invalid Content-Length header")
    if size > max_bytes:
        raise ValidationError(f"Request body too large. Maximum {max_bytes // (1024 * 1024)}MB allowed")


def _validate_message(i: int, message: Any) -> ChatMessage:
    if not isinstance(message, dict):
        raise ValidationError(f"Message at index {i} is invalid", "messages")
    if message.get("role") not in ("user", "assistant"):
        raise ValidationError(f"Message at index {i} has invalid role", "messages")
    content = message.get("content")
    if not isinstance(content, str):
        raise ValidationError(f"Message at index {i} content must be a string", "messages")
    if not content:
        raise ValidationError(f"Message at index {i} content cannot be empty", "messages")
    if len(content) > MAX_MESSAGE_CHARS:
        raise ValidationError(
            f"Message at index {i} content too long. Maximum {MAX_MESSAGE_CHARS:,} characters allowed", "messages"
        )
    if SCRIPT_PATTERN.search(content):
        raise ValidationError(f"Message at index {i} contains potentially malicious content", "messages")
    return ChatMessage(role=message["role"], content=content)


def validate_chat_request(body: Any) -> ChatRequest:
    """Check a decoded chat body, raising ValidationError on the first problem found."""
    if not isinstance(body, dict):
        raise ValidationError("Invalid request body")

    messages = body.get("messages")
    pool_data = body.get("poolData", _MISSING)
    style = body.get("portfolioStyle", _MISSING)

    if not isinstance(messages, list):
        raise ValidationError("Messages must be an array", "messages")
    if not messages and (pool_data is _MISSING or pool_data is None):
        raise ValidationError("Messages array cannot be empty when no pool data provided", "messages")
    if len(messages) > MAX_MESSAGES:
        raise ValidationError(f"Too many messages. Maximum {MAX_MESSAGES} messages allowed", "messages")

    parsed = [_validate_message(i, m) for i, m in enumerate(messages)]

    if style is not _MISSING:
        if not isinstance(style, str):
            raise ValidationError("Portfolio style must be a string", "portfolioStyle")
        if len(style) > MAX_STYLE_CHARS:
            raise ValidationError(
                f"Portfolio style too long. Maximum {MAX_STYLE_CHARS} characters allowed", "portfolioStyle"
            )

    if pool_data is not _MISSING:
        if not isinstance(pool_data, dict):
            raise ValidationError("Pool data must be an object", "poolData")
        serialized = json.dumps(pool_data, separators=(",", ":"), ensure_ascii=False)
        if len(serialized.encode("utf-8")) > MAX_POOL_DATA_BYTES:
            raise ValidationError("Pool data too large. Maximum 50KB allowed", "poolData")

    return ChatRequest(
        messages=parsed,
        pool_data=None if pool_data is _MISSING else pool_data,
        portfolio_style=None if style is _MISSING else style,
    )
