from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Literal, NewType
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

TransactionId = NewType("TransactionId", int)
AssetSymbol = NewType("AssetSymbol", str)

DEFAULT_HOLDING_PERIOD_DAYS = 365
DEFAULT_UPCOMING_WINDOW_DAYS = 30


class TxType(StrEnum):
    BUY = "BUY"
    SELL = "SELL"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_INTERNAL = "TRANSFER_INTERNAL"
    STAKING_REWARD = "STAKING_REWARD"
    AIRDROP = "AIRDROP"
    REWARD = "REWARD"


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO-8601 instant and normalize it to UTC.

    Naive values are interpreted as UTC; a trailing ``Z`` is accepted.
    """
    if isinstance(value, datetime):
        ts = value
    else:
        normalized = value.strip()
        if not normalized:
            raise ValueError("timestamp must be non-empty")
        if normalized.endswith(("Z", "z")):
            normalized = f"{normalized[:-1]}+00:00"
        ts = datetime.fromisoformat(normalized)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class TransactionDraft(BaseModel):
    """A transaction that has not been assigned a ledger id yet.

    Amounts are always stored positive; the direction of a movement is
    implied by ``tx_type``.
    """

    asset_symbol: AssetSymbol
    tx_type: TxType
    amount: Decimal
    timestamp: datetime
    price_fiat: Decimal | None = None
    fiat_currency: str = "EUR"
    fiat_value: Decimal | None = None
    value_eur: Decimal | None = None
    value_usd: Decimal | None = None
    source: str | None = None
    note: str | None = None
    tx_id: str | None = None
    linked_tx_prev_id: int | None = None
    linked_tx_next_id: int | None = None

    @field_validator("asset_symbol", "fiat_currency", mode="before")
    @classmethod
    def _upper(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("tx_type", mode="before")
    @classmethod
    def _tx_type(cls, value: str | TxType) -> str | TxType:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp(cls, value: str | datetime) -> datetime:
        return parse_timestamp(value)

    @field_validator("source", "note", "tx_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _validate_fields(self) -> TransactionDraft:
        if not self.asset_symbol:
            raise ValueError("asset_symbol must be non-empty")
        if not self.amount.is_finite() or self.amount <= 0:
            raise ValueError("amount must be a positive number")
        if not self.fiat_currency:
            self.fiat_currency = "EUR"
        return self


class Transaction(TransactionDraft):
    id: TransactionId

    @model_validator(mode="after")
    def _validate_id(self) -> Transaction:
        if self.id <= 0:
            raise ValueError("Transaction.id must be positive")
        return self

    @classmethod
    def from_draft(cls, draft: TransactionDraft, tx_id: int) -> Transaction:
        return cls(id=TransactionId(tx_id), **draft.model_dump())


class ProfileConfig(BaseModel):
    holding_period_days: int = DEFAULT_HOLDING_PERIOD_DAYS
    upcoming_holding_window_days: int = DEFAULT_UPCOMING_WINDOW_DAYS
    base_currency: Literal["EUR", "USD"] = "EUR"
    price_fetch_enabled: bool = True
    coingecko_api_key: str | None = None

    @model_validator(mode="after")
    def _validate(self) -> ProfileConfig:
        if self.holding_period_days < 0:
            raise ValueError("holding_period_days must be >= 0")
        if self.upcoming_holding_window_days <= 0:
            raise ValueError("upcoming_holding_window_days must be > 0")
        return self


class HoldingsItem(BaseModel):
    asset_symbol: str
    total_amount: Decimal
    value_eur: Decimal | None = None
    value_usd: Decimal | None = None


class ExpiringHolding(BaseModel):
    transaction_id: TransactionId
    asset_symbol: str
    amount: Decimal
    timestamp: datetime
    holding_period_end: datetime
    days_remaining: int


class ImportResult(BaseModel):
    imported: int = 0
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def failed(cls, message: str) -> ImportResult:
        return cls(imported=0, errors=[message])


class Profile(BaseModel):
    id: UUID
    name: str
    created_at: datetime

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        if isinstance(value, str):
            value = value.strip()
        if not value:
            raise ValueError("profile name must be non-empty")
        return value
