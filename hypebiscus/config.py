from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


DEV_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Runtime
    ENV: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # Anthropic
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = Field(default="claude-3-haiku-20240307")
    ANTHROPIC_MAX_TOKENS: int = Field(default=1024)

    # CORS, comma separated
    ALLOWED_ORIGINS: str | None = None

    # Meteora DLMM pools index
    METEORA_API_BASE: str = Field(default="https://dlmm-api.meteora.ag")
    HTTP_TIMEOUT_SECONDS: float = Field(default=15.0)

    # Pool search policy
    SEARCH_BROADEN_THRESHOLD: int = Field(default=6)
    SEARCH_DELAY_MS: int = Field(default=0)
    SEARCH_CONCURRENT: bool = Field(default=False)
    SEARCH_RETRY_ATTEMPTS: int = Field(default=2)
    POOL_MIN_APY: float = Field(default=0.03)
    POOL_MIN_FEES_24H: float = Field(default=5.0)
    DEFAULT_INVESTMENT_USD: float = Field(default=10000.0)

    # Chat relay limits
    MAX_BODY_BYTES: int = Field(default=1024 * 1024)
    RATE_LIMIT_MAX_REQUESTS: int = Field(default=10)
    RATE_LIMIT_WINDOW_MS: int = Field(default=60_000)
    RATE_LIMIT_MAX_KEYS: int = Field(default=10_000)

    # Shared counter store for multi-instance deployments
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    ENABLE_REDIS: bool = Field(default=False)

    # Observability
    LOKI_URL: str = Field(default="http://localhost:3100")
    ENABLE_LOKI: bool = Field(default=False)

    # Solana RPC (balance lookups)
    SOLANA_RPC_URL: str | None = None

    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    def allowed_origins(self) -> List[str]:
        raw = self.ALLOWED_ORIGINS
        if raw is None:
            raw = "" if self.is_production() else DEV_ORIGINS
        return [o.strip() for o in raw.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
