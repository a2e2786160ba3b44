from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from domain.holdings import compute_expiring, compute_holdings
from domain.ledger import ProfileConfig, TxType
from tests.helpers.ledger_factory import make_tx

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_single_buy_yields_one_holding() -> None:
    transactions = [make_tx(1, asset="BTC", amount="1.5", timestamp=datetime(2023, 1, 1, tzinfo=timezone.utc))]

    items = compute_holdings(transactions)

    assert len(items) == 1
    assert items[0].asset_symbol == "BTC"
    assert items[0].total_amount == Decimal("1.5")
    assert items[0].value_eur is None


def test_fiat_symbols_never_appear() -> None:
    transactions = [
        make_tx(1, asset="EUR", amount="100000"),
        make_tx(2, asset="CHF", amount="5"),
        make_tx(3, asset="ETH", amount="2"),
    ]

    assert [item.asset_symbol for item in compute_holdings(transactions)] == ["ETH"]


def test_signed_sum_and_internal_transfers() -> None:
    transactions = [
        make_tx(1, asset="SOL", amount="10"),
        make_tx(2, asset="SOL", tx_type=TxType.SELL, amount="4"),
        make_tx(3, asset="SOL", tx_type=TxType.TRANSFER_INTERNAL, amount="100"),
        make_tx(4, asset="SOL", tx_type=TxType.STAKING_REWARD, amount="0.5"),
        make_tx(5, asset="ADA", amount="3"),
        make_tx(6, asset="ADA", tx_type=TxType.TRANSFER_OUT, amount="3"),
        make_tx(7, asset="BTC", amount="1"),
    ]

    items = compute_holdings(transactions)

    assert [(item.asset_symbol, item.total_amount) for item in items] == [
        ("BTC", Decimal("1")),
        ("SOL", Decimal("6.5")),
    ]


def test_dust_below_tolerance_is_dropped() -> None:
    transactions = [
        make_tx(1, asset="ETH", amount="1.0000000000001"),
        make_tx(2, asset="ETH", tx_type=TxType.SELL, amount="1"),
    ]

    assert compute_holdings(transactions) == []


def test_expiring_window_scenario() -> None:
    config = ProfileConfig(holding_period_days=365, upcoming_holding_window_days=30)
    transactions = [
        make_tx(1, asset="BTC", timestamp=NOW - timedelta(days=366)),
        make_tx(2, asset="ETH", timestamp=NOW - timedelta(days=350)),
    ]

    items = compute_expiring(transactions, config, now=NOW)

    assert len(items) == 1
    assert items[0].transaction_id == 2
    assert items[0].days_remaining == 15
    assert items[0].holding_period_end == NOW + timedelta(days=15)


def test_expiring_skips_disposals_fiat_and_far_future() -> None:
    config = ProfileConfig(holding_period_days=365, upcoming_holding_window_days=30)
    transactions = [
        make_tx(1, asset="BTC", tx_type=TxType.SELL, timestamp=NOW - timedelta(days=350)),
        make_tx(2, asset="EUR", timestamp=NOW - timedelta(days=350)),
        make_tx(3, asset="ETH", timestamp=NOW - timedelta(days=100)),
        make_tx(4, asset="ADA", tx_type=TxType.AIRDROP, timestamp=NOW - timedelta(days=365)),
    ]

    items = compute_expiring(transactions, config, now=NOW)

    assert [(item.transaction_id, item.days_remaining) for item in items] == [(4, 0)]


def test_expiring_sorted_soonest_first() -> None:
    config = ProfileConfig(holding_period_days=365, upcoming_holding_window_days=30)
    transactions = [
        make_tx(1, asset="BTC", timestamp=NOW - timedelta(days=340)),
        make_tx(2, asset="ETH", timestamp=NOW - timedelta(days=360)),
        make_tx(3, asset="SOL", tx_type=TxType.REWARD, timestamp=NOW - timedelta(days=350)),
    ]

    items = compute_expiring(transactions, config, now=NOW)

    assert [item.transaction_id for item in items] == [2, 3, 1]
    assert [item.days_remaining for item in items] == [5, 15, 25]


def test_half_days_round_up() -> None:
    config = ProfileConfig(holding_period_days=365, upcoming_holding_window_days=30)
    transactions = [make_tx(1, timestamp=NOW - timedelta(days=355, hours=12))]

    items = compute_expiring(transactions, config, now=NOW)

    assert items[0].days_remaining == 10


def test_expiring_disabled_with_zero_holding_period() -> None:
    config = ProfileConfig(holding_period_days=0)
    transactions = [make_tx(1, timestamp=NOW)]

    assert compute_expiring(transactions, config, now=NOW) == []
