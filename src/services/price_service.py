from __future__ import annotations

import logging
import time
from datetime import date, datetime, timezone
from typing import Callable

from config import AppSettings, config
from domain.assets import StaticAssetCatalog
from domain.pricing import FiatCode, HistoricalPrice, PriceOracle

from .coingecko_client import CoinGeckoAPIError, CoinGeckoClient
from .price_store import JsonlPriceStore, PriceStore

logger = logging.getLogger(__name__)


class HistoricalPriceService(PriceOracle):
    """CoinGecko backed price oracle with a daily cache.

    Requests are spaced at least ``min_interval_seconds`` apart. After a rate
    limit answer (HTTP 429) or a network failure no request is sent for
    ``backoff_seconds``; lookups in that window return ``None``.
    """

    def __init__(
        self,
        client: CoinGeckoClient,
        store: PriceStore,
        *,
        catalog: StaticAssetCatalog | None = None,
        min_interval_seconds: float = 1.5,
        backoff_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.store = store
        self.catalog = catalog or StaticAssetCatalog()
        self.min_interval_seconds = min_interval_seconds
        self.backoff_seconds = backoff_seconds
        self._clock = clock
        self._sleep = sleep
        self._memory: dict[str, HistoricalPrice] = {}
        self._last_request_at: float | None = None
        self._blocked_until = 0.0

    def historical_price(self, symbol: str, fiat: FiatCode, timestamp: datetime) -> HistoricalPrice | None:
        symbol = symbol.strip().upper()
        day = timestamp.astimezone(timezone.utc).date()
        key = f"{symbol}:{day.isoformat()}"

        cached = self._memory.get(key) or self.store.read(symbol, day)
        if cached is not None:
            self._memory[key] = cached
            return cached

        if self._clock() < self._blocked_until:
            logger.debug("Skipping price lookup for %s, rate limit backoff active", key)
            return None

        fetched = self._fetch(symbol, day)
        if fetched is None:
            return None
        self._memory[key] = fetched
        self.store.write(symbol, day, fetched)
        return fetched

    def _fetch(self, symbol: str, day: date) -> HistoricalPrice | None:
        coin_id = self.catalog.coingecko_id(symbol) or symbol.lower()
        self._throttle()
        try:
            history = self.client.get_coin_history(coin_id=coin_id, day=day)
        except CoinGeckoAPIError as exc:
            if exc.status_code is None or exc.status_code == 429:
                self._blocked_until = self._clock() + self.backoff_seconds
                logger.warning(
                    "CoinGecko unavailable (%s), pausing price lookups for %.0fs",
                    exc.status_code or "network error",
                    self.backoff_seconds,
                )
            else:
                logger.warning("CoinGecko lookup for %s on %s failed: %s", coin_id, day, exc)
            return None

        if history.eur is None and history.usd is None:
            logger.info("No CoinGecko price for %s on %s", coin_id, day)
            return None
        return HistoricalPrice(eur=history.eur, usd=history.usd)

    def _throttle(self) -> None:
        now = self._clock()
        if self._last_request_at is not None:
            wait = self._last_request_at + self.min_interval_seconds - now
            if wait > 0:
                self._sleep(wait)
                now += wait
        self._last_request_at = now


def build_default_service(settings: AppSettings | None = None, *, api_key: str | None = None) -> HistoricalPriceService:
    resolved = settings or config()
    client = CoinGeckoClient(api_key=api_key or resolved.coingecko_api_key, base_url=resolved.coingecko_base_url)
    store = JsonlPriceStore(root_dir=resolved.price_cache_dir)
    return HistoricalPriceService(
        client,
        store,
        min_interval_seconds=resolved.price_request_interval_seconds,
        backoff_seconds=resolved.price_rate_limit_backoff_seconds,
    )


__all__ = ["HistoricalPriceService", "build_default_service"]
