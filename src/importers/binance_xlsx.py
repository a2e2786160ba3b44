from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import BaseModel, field_validator

from domain.assets import AssetCatalog
from domain.ledger import TransactionDraft, TxType, parse_timestamp

from .common import (
    ROW_ERRORS,
    ImportFileError,
    ParsedRow,
    ParseResult,
    describe_error,
    parse_locale_decimal,
    parse_plain_decimal,
)

logger = logging.getLogger(__name__)

BINANCE_SOURCE = "BINANCE"
EXPECTED_COLUMNS = (
    "Date(UTC)",
    "Pair",
    "Base Asset",
    "Quote Asset",
    "Type",
    "Price",
    "Amount",
    "Total",
    "Fee",
    "Fee Coin",
)


def classify_binance_type(raw_type: str) -> TxType:
    """Map the free-text ``Type`` column of a spot trade to a transaction type.

    Anything that does not mention SELL is treated as a purchase.
    """
    if "SELL" in raw_type.upper():
        return TxType.SELL
    return TxType.BUY


class BinanceTradeRow(BaseModel):
    date: datetime
    pair: str = ""
    base_asset: str
    quote_asset: str = ""
    type: str
    price: Decimal | None = None
    amount: Decimal
    total: Decimal | None = None
    fee: str = ""
    fee_coin: str = ""

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: str | datetime) -> datetime:
        if isinstance(value, datetime):
            return parse_timestamp(value)
        # Plain "YYYY-MM-DD HH:MM:SS" strings are documented as UTC.
        return parse_timestamp(str(value).strip().replace(" ", "T", 1))

    @field_validator("price", "amount", "total", mode="before")
    @classmethod
    def _parse_number(cls, value: Any) -> Decimal | None:
        if isinstance(value, str):
            return parse_locale_decimal(value)
        return parse_plain_decimal(value)

    @field_validator("pair", "base_asset", "quote_asset", "type", "fee", "fee_coin", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()


def _resolve_price(row: BinanceTradeRow) -> Decimal | None:
    if row.price is not None:
        return row.price
    if row.total is not None and row.amount != 0:
        return row.total / row.amount
    return None


def binance_row_to_draft(row: BinanceTradeRow, catalog: AssetCatalog) -> TransactionDraft:
    base_asset = row.base_asset.upper()
    quote_asset = row.quote_asset.upper()
    if catalog.lookup(base_asset) is None:
        raise ValueError(f"unsupported asset {base_asset}")

    price_fiat = _resolve_price(row)
    fiat_value = price_fiat * row.amount if price_fiat is not None else None

    note = f"Binance trade {row.pair or f'{base_asset}/{quote_asset}'}"
    if row.fee and row.fee_coin:
        note += f" (fee {row.fee} {row.fee_coin})"

    return TransactionDraft(
        asset_symbol=base_asset,
        tx_type=classify_binance_type(row.type),
        amount=row.amount,
        timestamp=row.date,
        price_fiat=price_fiat,
        fiat_currency=quote_asset or "USDT",
        fiat_value=fiat_value,
        source=BINANCE_SOURCE,
        note=note,
    )


class BinanceXlsxImporter:
    """Parser for the Binance spot trade history export (first sheet of an XLSX)."""

    def __init__(self, source_path: str | Path, *, catalog: AssetCatalog) -> None:
        self._source_path = Path(source_path)
        self._catalog = catalog

    def parse(self) -> ParseResult:
        rows = self._read_rows()
        if not rows:
            raise ImportFileError("The spreadsheet does not contain any rows.")

        header = [str(cell or "").strip() for cell in rows[0]]
        missing = [column for column in EXPECTED_COLUMNS if column not in header]
        if missing:
            raise ImportFileError(f"Missing columns: {', '.join(missing)}")
        positions = {column: header.index(column) for column in EXPECTED_COLUMNS}

        result = ParseResult()
        # Row 1 is the header in spreadsheet numbering.
        for row_number, cells in enumerate(rows[1:], start=2):
            if all(cell is None or str(cell).strip() == "" for cell in cells):
                continue
            record = {column: cells[idx] if idx < len(cells) else None for column, idx in positions.items()}
            if not all(record[column] not in (None, "") for column in ("Date(UTC)", "Base Asset", "Type", "Amount")):
                result.add_error(row_number, "missing required fields")
                continue
            try:
                trade = BinanceTradeRow(
                    date=record["Date(UTC)"],
                    pair=record["Pair"],
                    base_asset=record["Base Asset"],
                    quote_asset=record["Quote Asset"],
                    type=record["Type"],
                    price=record["Price"],
                    amount=record["Amount"],
                    total=record["Total"],
                    fee=record["Fee"],
                    fee_coin=record["Fee Coin"],
                )
                draft = binance_row_to_draft(trade, self._catalog)
            except ROW_ERRORS as err:
                logger.debug("Skipping Binance row %d: %s", row_number, err)
                result.add_error(row_number, describe_error(err))
                continue
            result.rows.append(ParsedRow(line_number=row_number, draft=draft))

        logger.info("Parsed %d Binance trades (%d errors)", len(result.rows), len(result.errors))
        return result

    def _read_rows(self) -> list[tuple[Any, ...]]:
        try:
            workbook = load_workbook(self._source_path, read_only=True, data_only=True)
        except (OSError, ValueError, KeyError, BadZipFile, InvalidFileException) as err:
            raise ImportFileError(f"Unable to read spreadsheet: {err}") from err
        try:
            if not workbook.worksheets:
                return []
            sheet = workbook.worksheets[0]
            return [tuple(row) for row in sheet.iter_rows(values_only=True)]
        finally:
            workbook.close()
