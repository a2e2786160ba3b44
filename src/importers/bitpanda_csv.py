from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from domain.assets import AssetCatalog
from domain.ledger import TransactionDraft, TxType, parse_timestamp
from utils.formatting import format_decimal

from .common import (
    ROW_ERRORS,
    ImportFileError,
    ParsedRow,
    ParseResult,
    describe_error,
    non_blank_lines,
    normalize_csv_text,
    parse_locale_decimal,
    split_csv_line,
    strip_quotes,
)

logger = logging.getLogger(__name__)

BITPANDA_SOURCE = "BITPANDA"
REQUIRED_COLUMNS = (
    "Transaction ID",
    "Timestamp",
    "Transaction Type",
    "In/Out",
    "Amount Fiat",
    "Fiat",
    "Amount Asset",
    "Asset",
    "Asset class",
)
CRYPTO_ASSET_CLASS = "Cryptocurrency"
MIOTA_CUTOVER = datetime(2023, 10, 4, tzinfo=timezone.utc)

_TRANSFER_TYPES = frozenset({"transfer", "transfer(stake)", "transfer(unstake)"})
_EMPTY_MARKERS = frozenset({"", "-", "–"})


class BitpandaRow(BaseModel):
    """One line of a Bitpanda trade history export, keyed by its column headers."""

    model_config = ConfigDict(populate_by_name=True)

    transaction_id: str = Field("", alias="Transaction ID")
    timestamp: str = Field("", alias="Timestamp")
    transaction_type: str = Field("", alias="Transaction Type")
    direction: str = Field("", alias="In/Out")
    amount_fiat: str = Field("", alias="Amount Fiat")
    fiat: str = Field("", alias="Fiat")
    amount_asset: str = Field("", alias="Amount Asset")
    asset: str = Field("", alias="Asset")
    asset_class: str = Field("", alias="Asset class")
    asset_market_price: str = Field("", alias="Asset market price")
    fee: str = Field("", alias="Fee")
    fee_asset: str = Field("", alias="Fee asset")
    fee_percent: str = Field("", alias="Fee percent")
    spread: str = Field("", alias="Spread")
    spread_currency: str = Field("", alias="Spread Currency")
    tax_fiat: str = Field("", alias="Tax Fiat")

    @property
    def is_reward_like(self) -> bool:
        kind = self.transaction_type.lower()
        return kind == "reward" or "staking" in kind or "airdrop" in kind


def classify_bitpanda_type(transaction_type: str, direction: str) -> TxType:
    """Map Bitpanda's ``Transaction Type`` and ``In/Out`` columns to a transaction type.

    Rules are checked in priority order; the first match wins and anything
    unrecognised is a purchase.
    """
    kind = transaction_type.strip().lower()
    incoming = direction.strip().lower() == "incoming"

    if kind == "reward" or "staking" in kind:
        return TxType.STAKING_REWARD
    if "airdrop" in kind:
        return TxType.AIRDROP
    if "deposit" in kind or "savings" in kind or kind in _TRANSFER_TYPES:
        return TxType.TRANSFER_IN if incoming else TxType.TRANSFER_OUT
    if "withdraw" in kind:
        return TxType.TRANSFER_OUT
    if "trade" in kind or kind in ("buy", "sell"):
        return TxType.SELL if kind == "sell" else TxType.BUY
    return TxType.BUY


def migrate_symbol(symbol: str, timestamp: datetime) -> str:
    """Bitpanda kept reporting MIOTA after the IOTA token migration."""
    if symbol == "MIOTA" and timestamp >= MIOTA_CUTOVER:
        return "IOTA"
    return symbol


def _optional_field(raw: str) -> str:
    value = raw.strip()
    return "" if value in _EMPTY_MARKERS else value


def _optional_decimal(raw: str) -> Decimal | None:
    return parse_locale_decimal(_optional_field(raw))


def _lenient_decimal(raw: str) -> Decimal | None:
    try:
        return _optional_decimal(raw)
    except ValueError:
        return None


def _resolve_price(amount_fiat: Decimal | None, amount_asset: Decimal, market_price: Decimal | None) -> Decimal | None:
    if amount_fiat is not None and amount_asset != 0:
        return amount_fiat / amount_asset
    if market_price is not None and market_price > 0:
        return market_price
    return None


def build_bitpanda_note(row: BitpandaRow, symbol: str, fiat_currency: str) -> str:
    note = f"Bitpanda {row.transaction_type} ({row.direction})"
    parts: list[str] = []

    fee = _lenient_decimal(row.fee)
    if fee is not None and fee != 0:
        parts.append(f"fee {format_decimal(fee)} {row.fee_asset.strip() or symbol}")
    fee_percent = _optional_field(row.fee_percent)
    if fee_percent:
        parts.append(f"fee% {fee_percent}")
    spread = _optional_field(row.spread)
    if spread:
        parts.append(f"spread {spread} {_optional_field(row.spread_currency) or fiat_currency}")
    tax = _optional_field(row.tax_fiat)
    if tax:
        parts.append(f"tax {tax} {fiat_currency}")

    if parts:
        note += f" [{', '.join(parts)}]"
    return note


def bitpanda_row_to_draft(row: BitpandaRow, catalog: AssetCatalog) -> TransactionDraft | None:
    """Convert one Bitpanda row.

    Returns ``None`` for rows that are silently ignored (non-crypto assets,
    zero amounts) and raises ``ValueError`` for rows that deserve an error
    line. Reward-like rows are always reported when they are dropped.
    """
    reward_like = row.is_reward_like

    if row.asset_class.strip() != CRYPTO_ASSET_CLASS:
        if reward_like:
            raise ValueError("reward skipped, asset class is not Cryptocurrency")
        return None

    if not row.timestamp.strip():
        raise ValueError("missing timestamp")
    try:
        timestamp = parse_timestamp(row.timestamp)
    except ValueError as err:
        raise ValueError(f"invalid timestamp {row.timestamp}") from err

    symbol = migrate_symbol(row.asset.strip().upper(), timestamp)
    amount_asset = _optional_decimal(row.amount_asset)
    if not symbol or amount_asset is None or amount_asset == 0:
        if reward_like:
            raise ValueError("reward skipped, amount is zero or missing")
        return None

    if catalog.lookup(symbol) is None:
        if reward_like:
            raise ValueError(f"reward skipped, unsupported asset {symbol}")
        raise ValueError(f"unsupported asset {symbol}")

    amount_asset = abs(amount_asset)
    fiat_currency = row.fiat.strip().upper() or "EUR"
    tx_type = classify_bitpanda_type(row.transaction_type, row.direction)

    amount_fiat = _optional_decimal(row.amount_fiat)
    price_fiat = _resolve_price(amount_fiat, amount_asset, _lenient_decimal(row.asset_market_price))
    if price_fiat is not None:
        fiat_value: Decimal | None = price_fiat * amount_asset
    else:
        fiat_value = amount_fiat

    # A Bitpanda id is shared by the legs of one trade; only transfers keep it.
    keeps_id = tx_type in (TxType.TRANSFER_IN, TxType.TRANSFER_OUT)

    return TransactionDraft(
        asset_symbol=symbol,
        tx_type=tx_type,
        amount=amount_asset,
        timestamp=timestamp,
        price_fiat=price_fiat,
        fiat_currency=fiat_currency,
        fiat_value=fiat_value,
        source=BITPANDA_SOURCE,
        note=build_bitpanda_note(row, symbol, fiat_currency),
        tx_id=(row.transaction_id.strip() or None) if keeps_id else None,
    )


class BitpandaCsvImporter:
    """Parser for the Bitpanda transaction history CSV.

    The export starts with a free-form preamble; the header is the first line
    naming both ``Transaction ID`` and ``Timestamp``.
    """

    def __init__(self, source_path: str | Path, *, catalog: AssetCatalog) -> None:
        self._source_path = Path(source_path)
        self._catalog = catalog

    def parse(self) -> ParseResult:
        text = self._source_path.read_text(encoding="utf-8-sig")
        return self.parse_text(text)

    def parse_text(self, text: str) -> ParseResult:
        lines = non_blank_lines(normalize_csv_text(text))
        if len(lines) < 2:
            raise ImportFileError("Bitpanda file is too short.")

        header_index = next(
            (idx for idx, line in enumerate(lines) if "Transaction ID" in line and "Timestamp" in line),
            None,
        )
        if header_index is None:
            raise ImportFileError("Bitpanda header line not found.")

        header = [strip_quotes(column) for column in split_csv_line(lines[header_index])]
        missing = [column for column in REQUIRED_COLUMNS if column not in header]
        if missing:
            raise ImportFileError(f"Missing columns: {', '.join(missing)}")

        data_lines = lines[header_index + 1 :]
        multi_leg_ids = self._multi_leg_ids(header, data_lines)
        warned_ids: set[str] = set()

        result = ParseResult()
        for offset, line in enumerate(data_lines):
            line_number = header_index + offset + 2
            cells = split_csv_line(line)
            record = {column: strip_quotes(cells[idx]) if idx < len(cells) else "" for idx, column in enumerate(header)}
            try:
                row = BitpandaRow.model_validate(record)
                draft = bitpanda_row_to_draft(row, self._catalog)
            except ROW_ERRORS as err:
                logger.debug("Skipping Bitpanda line %d: %s", line_number, err)
                result.add_error(line_number, describe_error(err))
                continue
            if draft is None:
                continue

            tx_id = row.transaction_id.strip()
            if tx_id in multi_leg_ids and tx_id not in warned_ids:
                warned_ids.add(tx_id)
                result.add_error(line_number, f"transaction spans multiple legs {tx_id}")

            result.rows.append(
                ParsedRow(
                    line_number=line_number,
                    draft=draft,
                    dedup_key=draft.model_copy(update={"tx_id": None}),
                )
            )

        logger.info(
            "Parsed %d Bitpanda rows (%d multi-leg ids, %d messages)",
            len(result.rows),
            len(multi_leg_ids),
            len(result.errors),
        )
        return result

    @staticmethod
    def _multi_leg_ids(header: list[str], data_lines: list[str]) -> set[str]:
        position = header.index("Transaction ID")
        counts: Counter[str] = Counter()
        for line in data_lines:
            cells = split_csv_line(line)
            if len(cells) <= position:
                continue
            tx_id = strip_quotes(cells[position])
            if tx_id:
                counts[tx_id] += 1
        return {tx_id for tx_id, count in counts.items() if count > 1}
