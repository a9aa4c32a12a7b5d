from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import urlparse

from hypebiscus.errors import GatewayError, ValidationError
from hypebiscus.http import HttpClient

logger = logging.getLogger(__name__)

FALLBACK_RPC_URL = "https://api.mainnet-beta.solana.com"

ALLOWED_RPC_HOSTS = (
    "api.mainnet-beta.solana.com",
    "api.devnet.solana.com",
    "api.testnet.solana.com",
    "solana-mainnet.g.alchemy.com",
    "mainnet.helius-rpc.com",
    "rpc.ankr.com",
)

LAMPORTS_PER_SOL = 1_000_000_000

# base58, 32-44 chars
_BASE58 = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


def validate_rpc_url(url: str, production: bool = False) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        logger.warning("Invalid RPC URL format")
        return False
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    if production and parsed.scheme != "https":
        logger.warning("RPC URL must use HTTPS in production")
        return False
    host = parsed.hostname
    if not any(host == allowed or host.endswith(f".{allowed}") for allowed in ALLOWED_RPC_HOSTS):
        logger.warning(f"RPC URL host not in allowed list: {host}")
        return False
    return True


def resolve_rpc_url(configured: Optional[str], production: bool = False) -> str:
    if configured and validate_rpc_url(configured, production):
        return configured
    if configured:
        logger.warning(f"Invalid RPC URL in environment, falling back to: {FALLBACK_RPC_URL}")
    return FALLBACK_RPC_URL


def is_valid_address(address: str) -> bool:
    return 32 <= len(address) <= 44 and all(c in _BASE58 for c in address)


class SolanaRpcClient:
    """JSON-RPC client for one Solana endpoint. Built at startup and passed down, never global."""

    def __init__(self, http: HttpClient, url: str):
        self.http = http
        self.url = url

    async def _rpc(self, method: str, params: Optional[list] = None) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params or []}
        resp = await self.http.post(self.url, json=payload)
        data = resp.json()
        if "error" in data:
            err = data["error"]
            detail = err.get("message", "unknown") if isinstance(err, dict) else err
            raise GatewayError(f"Solana RPC error in {method}: {detail}")
        return data.get("result")

    async def get_balance(self, address: str) -> int:
        """Balance in lamports."""
        if not is_valid_address(address):
            raise ValidationError("Invalid Solana address", "address")
        result = await self._rpc("getBalance", [address, {"commitment": "confirmed"}])
        value = result.get("value") if isinstance(result, dict) else result
        return int(value or 0)

    async def get_health(self) -> bool:
        try:
            return await self._rpc("getHealth") == "ok"
        except GatewayError as e:
            logger.warning(f"Solana RPC health check failed: {e.message}")
            return False
