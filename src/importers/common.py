from __future__ import annotations

import csv
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from pydantic import ValidationError

from domain.ledger import TransactionDraft

# Exceptions that make a single row unusable without aborting the file.
ROW_ERRORS: tuple[type[Exception], ...] = (ValueError, ValidationError, ArithmeticError, KeyError)


class ImportFileError(ValueError):
    """The file as a whole cannot be imported (nothing is written)."""


@dataclass(frozen=True)
class ParsedRow:
    line_number: int
    draft: TransactionDraft
    # Some sources deduplicate on a variant of the record, e.g. without its external id.
    dedup_key: TransactionDraft | None = None


@dataclass
class ParseResult:
    rows: list[ParsedRow] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def add_error(self, line_number: int, message: str) -> None:
        self.errors.append(line_error(line_number, message))


def line_error(line_number: int, message: str) -> str:
    return f"Line {line_number}: {message}"


def describe_error(err: Exception) -> str:
    if isinstance(err, ValidationError):
        return "; ".join(str(item["msg"]) for item in err.errors())
    return str(err) or err.__class__.__name__


def parse_locale_decimal(raw: str | None) -> Decimal | None:
    """Parse a number written with either European or US separators.

    When both ``,`` and ``.`` occur, the right-most one is the decimal
    separator and the other is a thousands separator. A lone ``,`` is a
    decimal separator. Blank input yields ``None``.
    """
    if raw is None:
        return None
    text = "".join(raw.split())
    if not text:
        return None

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        text = text.replace(",", ".")

    try:
        value = Decimal(text)
    except InvalidOperation as err:
        raise ValueError(f"invalid number {raw!r}") from err
    if not value.is_finite():
        raise ValueError(f"invalid number {raw!r}")
    return value


def parse_plain_decimal(raw: object) -> Decimal | None:
    """Parse spreadsheet numbers (already numeric or in plain notation)."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, (int, float)):
        value = Decimal(str(raw))
    else:
        try:
            value = Decimal(str(raw).strip())
        except InvalidOperation as err:
            raise ValueError(f"invalid number {raw!r}") from err
    if not value.is_finite():
        return None
    return value


def normalize_csv_text(text: str) -> str:
    """Replace newlines inside quoted fields with spaces."""
    result: list[str] = []
    in_quotes = False
    i = 0
    length = len(text)
    while i < length:
        ch = text[i]
        if ch == '"':
            if in_quotes and i + 1 < length and text[i + 1] == '"':
                result.append('""')
                i += 2
                continue
            in_quotes = not in_quotes
            result.append(ch)
        elif ch in "\r\n" and in_quotes:
            result.append(" ")
            if ch == "\r" and i + 1 < length and text[i + 1] == "\n":
                i += 1
        else:
            result.append(ch)
        i += 1
    return "".join(result)


def split_csv_line(line: str, delimiter: str = ",") -> list[str]:
    """Split one CSV line, honouring quotes and doubled quotes."""
    return next(csv.reader([line], delimiter=delimiter, skipinitialspace=True), [""])


def non_blank_lines(text: str) -> list[str]:
    return [line for line in text.splitlines() if line.strip()]


def strip_quotes(value: str) -> str:
    return value.strip().strip('"').strip()
