from __future__ import annotations

import csv
import io
import logging
from decimal import Decimal
from pathlib import Path
from typing import Sequence, TextIO

from domain.ledger import ProfileConfig, Transaction
from importers.generic_csv import CSV_SCHEMA_VERSION_COLUMN, CURRENT_CSV_SCHEMA_VERSION
from utils.formatting import format_decimal

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = (
    "asset_symbol",
    "tx_type",
    "amount",
    "timestamp",
    "price_fiat",
    "fiat_currency",
    "fiat_value",
    "value_eur",
    "value_usd",
    "source",
    "note",
    "tx_id",
    CSV_SCHEMA_VERSION_COLUMN,
    "holding_period_days",
    "base_currency",
)


def _decimal_cell(value: Decimal | None) -> str:
    return format_decimal(value) if value is not None else ""


def _flatten(value: str) -> str:
    return value.replace("\r\n", " ").replace("\r", " ").replace("\n", " ")


def transaction_row(tx: Transaction, config: ProfileConfig) -> list[str]:
    return [
        tx.asset_symbol,
        tx.tx_type.value,
        _decimal_cell(tx.amount),
        tx.timestamp.isoformat(),
        _decimal_cell(tx.price_fiat),
        tx.fiat_currency,
        _decimal_cell(tx.fiat_value),
        _decimal_cell(tx.value_eur),
        _decimal_cell(tx.value_usd),
        tx.source or "",
        tx.note or "",
        tx.tx_id or "",
        str(CURRENT_CSV_SCHEMA_VERSION),
        str(config.holding_period_days),
        config.base_currency,
    ]


def write_transactions_csv(handle: TextIO, transactions: Sequence[Transaction], config: ProfileConfig) -> None:
    """Write the ledger as generic CSV; every cell is quoted and newlines are flattened."""
    csv.writer(handle, lineterminator="\n").writerow(EXPORT_COLUMNS)
    writer = csv.writer(handle, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for tx in transactions:
        writer.writerow([_flatten(cell) for cell in transaction_row(tx, config)])


def render_transactions_csv(transactions: Sequence[Transaction], config: ProfileConfig) -> str:
    buffer = io.StringIO()
    write_transactions_csv(buffer, transactions, config)
    return buffer.getvalue()


def export_transactions_csv(transactions: Sequence[Transaction], config: ProfileConfig, path: str | Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8", newline="") as handle:
        write_transactions_csv(handle, transactions, config)
    logger.info("Exported %d transactions to %s", len(transactions), target)
    return target


__all__ = ["EXPORT_COLUMNS", "export_transactions_csv", "render_transactions_csv", "write_transactions_csv"]
