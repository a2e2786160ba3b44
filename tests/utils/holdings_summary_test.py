from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.ledger import ExpiringHolding, HoldingsItem
from utils.formatting import format_currency, format_decimal, format_timestamp
from utils.holdings_summary import render_expiring, render_holdings


def test_format_helpers() -> None:
    assert format_decimal(Decimal("1.500")) == "1.5"
    assert format_decimal(Decimal("2E+3")) == "2000"
    assert format_decimal(Decimal("0.00000001")) == "0.00000001"
    assert format_currency(None) == "-"
    assert format_currency(Decimal("12.346")) == "12.35"
    assert format_timestamp(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)).startswith("2024-01-02")


def test_render_holdings_table(capsys: pytest.CaptureFixture[str]) -> None:
    render_holdings(
        [
            HoldingsItem(asset_symbol="BTC", total_amount=Decimal("1.5"), value_eur=Decimal("60000")),
            HoldingsItem(asset_symbol="ETH", total_amount=Decimal("10")),
        ]
    )

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "Holdings:"
    assert lines[1].split() == ["Asset", "Quantity", "Value", "EUR", "Value", "USD"]
    assert lines[3].split() == ["BTC", "1.5", "60000.00", "-"]
    assert lines[4].split() == ["ETH", "10", "-", "-"]


def test_render_empty_tables(capsys: pytest.CaptureFixture[str]) -> None:
    render_holdings([])
    render_expiring([], 30)

    assert capsys.readouterr().out.splitlines() == [
        "Holdings:",
        "  (empty)",
        "Holding periods ending within 30 days:",
        "  (none)",
    ]


def test_render_expiring_rows(capsys: pytest.CaptureFixture[str]) -> None:
    acquired = datetime(2023, 1, 10, tzinfo=timezone.utc)
    render_expiring(
        [
            ExpiringHolding(
                transaction_id=3,
                asset_symbol="SOL",
                amount=Decimal("4"),
                timestamp=acquired,
                holding_period_end=datetime(2024, 1, 10, tzinfo=timezone.utc),
                days_remaining=11,
            )
        ],
        30,
    )

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "Holding periods ending within 30 days:"
    row = lines[3].split()
    assert row[:3] == ["3", "SOL", "4"]
    assert row[-1] == "11"
