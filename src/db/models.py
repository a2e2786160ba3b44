from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


class DecimalAsString(TypeDecorator):
    impl = String
    cache_ok = True

    def process_bind_param(self, value: Decimal | None, dialect: object) -> str | None:
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value: str | None, dialect: object) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ProfileOrm(Base):
    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    next_transaction_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utc_now)

    config: Mapped["ProfileConfigOrm | None"] = relationship(
        back_populates="profile", cascade="all, delete-orphan", uselist=False
    )
    transactions: Mapped[list["TransactionOrm"]] = relationship(
        back_populates="profile", cascade="all, delete-orphan"
    )


class ProfileConfigOrm(Base):
    __tablename__ = "profile_configs"

    profile_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("profiles.id"), primary_key=True)
    holding_period_days: Mapped[int] = mapped_column(Integer, nullable=False)
    upcoming_holding_window_days: Mapped[int] = mapped_column(Integer, nullable=False)
    base_currency: Mapped[str] = mapped_column(String, nullable=False)
    price_fetch_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    coingecko_api_key: Mapped[str | None] = mapped_column(String, nullable=True)

    profile: Mapped[ProfileOrm] = relationship(back_populates="config")


class TransactionOrm(Base):
    __tablename__ = "transactions"

    profile_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("profiles.id"), primary_key=True)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    asset_symbol: Mapped[str] = mapped_column(String, nullable=False)
    tx_type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    price_fiat: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
    fiat_currency: Mapped[str] = mapped_column(String, nullable=False)
    fiat_value: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
    value_eur: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
    value_usd: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
    source: Mapped[str | None] = mapped_column(String, nullable=True)
    note: Mapped[str | None] = mapped_column(String, nullable=True)
    tx_id: Mapped[str | None] = mapped_column(String, nullable=True)
    linked_tx_prev_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    linked_tx_next_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    profile: Mapped[ProfileOrm] = relationship(back_populates="transactions")
