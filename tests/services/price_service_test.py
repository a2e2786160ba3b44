from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock

from domain.pricing import HistoricalPrice
from services.coingecko_client import CoinGeckoAPIError, CoinHistory
from services.price_service import HistoricalPriceService
from services.price_store import JsonlPriceStore

TIMESTAMP = datetime(2024, 1, 5, 18, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _service(tmp_path: Path, client: Mock, clock: FakeClock) -> HistoricalPriceService:
    return HistoricalPriceService(
        client,
        JsonlPriceStore(root_dir=tmp_path),
        min_interval_seconds=1.5,
        backoff_seconds=60,
        clock=clock,
        sleep=clock.sleep,
    )


def _history(coin_id: str = "bitcoin") -> CoinHistory:
    return CoinHistory(coin_id=coin_id, day=date(2024, 1, 5), eur=Decimal("40000"), usd=Decimal("44000"))


def test_fetches_once_and_caches_per_day(tmp_path: Path) -> None:
    client = Mock()
    client.get_coin_history.return_value = _history()
    clock = FakeClock()
    service = _service(tmp_path, client, clock)

    first = service.historical_price("btc", "EUR", TIMESTAMP)
    second = service.historical_price("BTC", "USD", TIMESTAMP.replace(hour=2))

    assert first == HistoricalPrice(eur=Decimal("40000"), usd=Decimal("44000"))
    assert second == first
    client.get_coin_history.assert_called_once_with(coin_id="bitcoin", day=date(2024, 1, 5))


def test_disk_cache_survives_a_new_service(tmp_path: Path) -> None:
    client = Mock()
    client.get_coin_history.return_value = _history()
    _service(tmp_path, client, FakeClock()).historical_price("BTC", "EUR", TIMESTAMP)

    fresh_client = Mock()
    price = _service(tmp_path, fresh_client, FakeClock()).historical_price("BTC", "EUR", TIMESTAMP)

    assert price is not None and price.eur == Decimal("40000")
    fresh_client.get_coin_history.assert_not_called()


def test_requests_are_spaced_out(tmp_path: Path) -> None:
    client = Mock()
    client.get_coin_history.return_value = _history()
    clock = FakeClock()
    service = _service(tmp_path, client, clock)

    service.historical_price("BTC", "EUR", TIMESTAMP)
    clock.now += 0.5
    service.historical_price("BTC", "EUR", datetime(2024, 1, 6, tzinfo=timezone.utc))

    assert clock.sleeps == [1.0]


def test_rate_limit_starts_backoff_window(tmp_path: Path) -> None:
    client = Mock()
    client.get_coin_history.side_effect = CoinGeckoAPIError("Rate limited", status_code=429)
    clock = FakeClock()
    service = _service(tmp_path, client, clock)

    assert service.historical_price("BTC", "EUR", TIMESTAMP) is None
    assert service.historical_price("ETH", "EUR", TIMESTAMP) is None
    assert client.get_coin_history.call_count == 1

    clock.now += 61
    client.get_coin_history.side_effect = None
    client.get_coin_history.return_value = _history("ethereum")
    assert service.historical_price("ETH", "EUR", TIMESTAMP) is not None
    assert client.get_coin_history.call_args.kwargs["coin_id"] == "ethereum"


def test_other_api_errors_do_not_block(tmp_path: Path) -> None:
    client = Mock()
    client.get_coin_history.side_effect = CoinGeckoAPIError("Not found", status_code=404)
    service = _service(tmp_path, client, FakeClock())

    assert service.historical_price("BTC", "EUR", TIMESTAMP) is None
    assert service.historical_price("ETH", "EUR", TIMESTAMP) is None
    assert client.get_coin_history.call_count == 2


def test_missing_prices_are_not_cached(tmp_path: Path) -> None:
    client = Mock()
    client.get_coin_history.return_value = CoinHistory(coin_id="xyz", day=date(2024, 1, 5), eur=None, usd=None)
    service = _service(tmp_path, client, FakeClock())

    assert service.historical_price("XYZ", "EUR", TIMESTAMP) is None
    assert client.get_coin_history.call_args.kwargs["coin_id"] == "xyz"
    assert not (tmp_path / "XYZ.jsonl").exists()
