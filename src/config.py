from __future__ import annotations

from functools import cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    db_file: Path = Path("artifacts/portfolio_ledger.db")
    price_cache_dir: Path = Path(".cache/prices")
    coingecko_api_key: str | None = None
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    price_request_interval_seconds: float = 1.5
    price_rate_limit_backoff_seconds: float = 60.0
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@cache
def config() -> AppSettings:
    return AppSettings()
