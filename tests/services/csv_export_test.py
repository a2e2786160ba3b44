from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from domain.fingerprint import DedupIndex
from domain.ledger import ProfileConfig, TxType
from importers.generic_csv import GenericCsvImporter
from services.csv_export import EXPORT_COLUMNS, export_transactions_csv, render_transactions_csv
from tests.helpers.ledger_factory import make_tx

HEADER = (
    "asset_symbol,tx_type,amount,timestamp,price_fiat,fiat_currency,fiat_value,value_eur,value_usd,"
    "source,note,tx_id,csv_schema_version,holding_period_days,base_currency"
)


def test_header_and_quoted_cells() -> None:
    tx = make_tx(
        1,
        amount="1.50",
        price_fiat=Decimal("20000"),
        fiat_value=Decimal("30000"),
        source="manual",
        note='cold "vault"\nsecond line',
    )

    text = render_transactions_csv([tx], ProfileConfig(holding_period_days=365, base_currency="USD"))

    header, row = text.splitlines()
    assert text.endswith("\n")
    assert header == HEADER
    assert header.split(",") == list(EXPORT_COLUMNS)
    assert row == (
        '"BTC","BUY","1.5","2024-01-01T12:00:00+00:00","20000","EUR","30000","","",'
        '"manual","cold ""vault"" second line","","3","365","USD"'
    )


def test_empty_ledger_is_header_only() -> None:
    assert render_transactions_csv([], ProfileConfig()) == HEADER + "\n"


def test_export_reimports_as_duplicates(tmp_path: Path) -> None:
    ledger = [
        make_tx(1, amount="0.25", price_fiat=Decimal("40000"), note="dca, weekly"),
        make_tx(
            2,
            asset="ETH",
            tx_type=TxType.TRANSFER_OUT,
            amount="1",
            timestamp=datetime(2024, 2, 1, tzinfo=timezone.utc),
            tx_id="0xabc",
        ),
    ]

    path = export_transactions_csv(ledger, ProfileConfig(), tmp_path / "out" / "ledger.csv")
    parsed = GenericCsvImporter(path).parse()

    assert parsed.errors == []
    assert [row.draft.asset_symbol for row in parsed.rows] == ["BTC", "ETH"]
    assert parsed.rows[0].draft.note == "dca, weekly"
    index = DedupIndex(ledger)
    assert all(not index.accept(row.draft) for row in parsed.rows)


def test_carriage_returns_and_quotes_in_free_text(tmp_path: Path) -> None:
    tx = make_tx(1, source='desk "A"', note="line one\r\nline two\rline three")

    path = export_transactions_csv([tx], ProfileConfig(), tmp_path / "ledger.csv")
    text = path.read_text(encoding="utf-8")

    assert len(text.splitlines()) == 2
    assert '"desk ""A"""' in text
    [row] = GenericCsvImporter(path).parse().rows
    assert row.draft.source == 'desk "A"'
    assert row.draft.note == "line one line two line three"
