from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel

from domain.ledger import TransactionDraft

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
)

logger = logging.getLogger(__name__)

CURRENT_CSV_SCHEMA_VERSION = 3
CSV_SCHEMA_VERSION_COLUMN = "csv_schema_version"
REQUIRED_COLUMNS = ("asset_symbol", "tx_type", "amount", "timestamp")
SCHEMA_NEWER_WARNING = (
    "The CSV file was created with a newer schema version than this application supports; "
    "unknown columns are ignored."
)


class GenericCsvRow(BaseModel):
    """Raw, string-typed view of one row of the generic CSV format."""

    asset_symbol: str
    tx_type: str
    amount: str
    timestamp: str
    price_fiat: str = ""
    fiat_currency: str = ""
    fiat_value: str = ""
    value_eur: str = ""
    value_usd: str = ""
    source: str = ""
    note: str = ""
    tx_id: str = ""
    linked_tx_prev_id: str = ""
    linked_tx_next_id: str = ""


def _has_top_level(line: str, char: str) -> bool:
    in_quotes = False
    for current in line:
        if current == '"':
            in_quotes = not in_quotes
        elif current == char and not in_quotes:
            return True
    return False


def detect_delimiter(header_line: str) -> str:
    """Semicolon files are recognised by a header without any top-level comma."""
    if _has_top_level(header_line, ";") and not _has_top_level(header_line, ","):
        return ";"
    return ","


def parse_schema_version(value: str | None) -> int:
    if not value:
        return 1
    try:
        parsed = int(value.strip())
    except ValueError:
        return 1
    return parsed if parsed > 0 else 1


def _optional_decimal(raw: str) -> Decimal | None:
    try:
        return parse_locale_decimal(raw)
    except ValueError:
        return None


def _optional_int(raw: str) -> int | None:
    try:
        return int(raw.strip())
    except ValueError:
        return None


def generic_row_to_draft(row: GenericCsvRow) -> TransactionDraft:
    amount = parse_locale_decimal(row.amount)
    if amount is None:
        raise ValueError("invalid amount")

    price_fiat = _optional_decimal(row.price_fiat)
    fiat_value = price_fiat * amount if price_fiat is not None else None
    explicit_fiat_value = _optional_decimal(row.fiat_value)
    if explicit_fiat_value is not None:
        fiat_value = explicit_fiat_value

    return TransactionDraft(
        asset_symbol=row.asset_symbol,
        tx_type=row.tx_type,
        amount=amount,
        timestamp=row.timestamp,
        price_fiat=price_fiat,
        fiat_currency=row.fiat_currency or "EUR",
        fiat_value=fiat_value,
        value_eur=_optional_decimal(row.value_eur),
        value_usd=_optional_decimal(row.value_usd),
        source=row.source or None,
        note=row.note or None,
        tx_id=row.tx_id or None,
        linked_tx_prev_id=_optional_int(row.linked_tx_prev_id),
        linked_tx_next_id=_optional_int(row.linked_tx_next_id),
    )


class GenericCsvImporter:
    """Parser for the application's own CSV format (also its export format)."""

    def __init__(self, source_path: str | Path) -> None:
        self._source_path = Path(source_path)

    def parse(self) -> ParseResult:
        text = self._source_path.read_text(encoding="utf-8-sig")
        return self.parse_text(text)

    def parse_text(self, text: str) -> ParseResult:
        lines = non_blank_lines(normalize_csv_text(text))
        if len(lines) < 2:
            raise ImportFileError("CSV has no data rows.")

        delimiter = detect_delimiter(lines[0])
        header = [column.strip() for column in split_csv_line(lines[0], delimiter)]
        missing = [column for column in REQUIRED_COLUMNS if column not in header]
        if missing:
            raise ImportFileError(f"Missing required columns: {', '.join(missing)}")

        result = ParseResult()
        if self._schema_version(header, lines[1], delimiter) > CURRENT_CSV_SCHEMA_VERSION:
            result.errors.append(SCHEMA_NEWER_WARNING)

        known_fields = set(GenericCsvRow.model_fields)
        for line_index, line in enumerate(lines[1:], start=2):
            parts = split_csv_line(line, delimiter)
            if len(parts) != len(header):
                result.add_error(line_index, "column count does not match the header")
                continue

            record = {
                column: value.strip()
                for column, value in zip(header, parts)
                if column in known_fields
            }
            try:
                draft = generic_row_to_draft(GenericCsvRow.model_validate(record))
            except ROW_ERRORS as err:
                logger.debug("Skipping CSV line %d: %s", line_index, err)
                result.add_error(line_index, describe_error(err))
                continue
            result.rows.append(ParsedRow(line_number=line_index, draft=draft))

        logger.info(
            "Parsed %d rows from %s (%d errors)",
            len(result.rows),
            self._source_path.name,
            len(result.errors),
        )
        return result

    @staticmethod
    def _schema_version(header: list[str], first_row: str, delimiter: str) -> int:
        if CSV_SCHEMA_VERSION_COLUMN not in header:
            return 1
        index = header.index(CSV_SCHEMA_VERSION_COLUMN)
        parts = split_csv_line(first_row, delimiter)
        return parse_schema_version(parts[index] if index < len(parts) else None)
