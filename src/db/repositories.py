from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from db import models
from domain.ledger import Profile, ProfileConfig, Transaction, TransactionId, TxType

logger = logging.getLogger(__name__)


class ProfileNotFoundError(LookupError):
    pass


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ProfileRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, name: str) -> Profile:
        if not name.strip():
            raise ValueError("profile name must be non-empty")
        orm_profile = models.ProfileOrm(name=name.strip())
        self._session.add(orm_profile)
        try:
            self._session.commit()
        except IntegrityError as err:
            self._session.rollback()
            raise ValueError(f"Profile {name.strip()!r} already exists") from err
        self._session.refresh(orm_profile)
        logger.info("Created profile %s (%s)", orm_profile.name, orm_profile.id)
        return self._to_domain(orm_profile)

    def get(self, profile_id: UUID) -> Profile | None:
        orm_profile = self._session.get(models.ProfileOrm, profile_id)
        if orm_profile is None:
            return None
        return self._to_domain(orm_profile)

    def get_by_name(self, name: str) -> Profile | None:
        orm_profile = self._session.scalars(
            select(models.ProfileOrm).where(models.ProfileOrm.name == name.strip())
        ).first()
        if orm_profile is None:
            return None
        return self._to_domain(orm_profile)

    def list(self) -> list[Profile]:
        orm_profiles = self._session.scalars(
            select(models.ProfileOrm).order_by(models.ProfileOrm.created_at.asc(), models.ProfileOrm.name.asc())
        )
        return [self._to_domain(profile) for profile in orm_profiles]

    def delete(self, profile_id: UUID) -> None:
        orm_profile = self._session.get(models.ProfileOrm, profile_id)
        if orm_profile is None:
            raise ProfileNotFoundError(f"Unknown profile {profile_id}")
        self._session.delete(orm_profile)
        self._session.commit()
        logger.info("Deleted profile %s", profile_id)

    @staticmethod
    def _to_domain(orm_profile: models.ProfileOrm) -> Profile:
        return Profile(id=orm_profile.id, name=orm_profile.name, created_at=_as_utc(orm_profile.created_at))


class TransactionRepository:
    """Full-list storage of one profile's ledger.

    Ids come from a per-profile counter that only ever grows, so an id is
    never handed out twice even after the record is deleted.
    """

    def __init__(self, session: Session, profile_id: UUID) -> None:
        self._session = session
        self._profile_id = profile_id

    def list(self) -> list[Transaction]:
        rows = self._session.scalars(
            select(models.TransactionOrm)
            .where(models.TransactionOrm.profile_id == self._profile_id)
            .order_by(models.TransactionOrm.id.asc())
        )
        return [self._to_domain(row) for row in rows]

    def allocate_id(self) -> TransactionId:
        profile = self._profile()
        max_id = self._session.scalar(
            select(func.max(models.TransactionOrm.id)).where(models.TransactionOrm.profile_id == self._profile_id)
        )
        next_id = max(profile.next_transaction_id, (max_id or 0) + 1)
        profile.next_transaction_id = next_id + 1
        return TransactionId(next_id)

    def replace_all(self, transactions: Sequence[Transaction]) -> None:
        """Replace the stored ledger with ``transactions`` in one database transaction."""
        try:
            profile = self._profile()
            stored = {
                row.id: row
                for row in self._session.scalars(
                    select(models.TransactionOrm).where(models.TransactionOrm.profile_id == self._profile_id)
                )
            }
            for tx in transactions:
                row = stored.pop(tx.id, None)
                if row is None:
                    row = models.TransactionOrm(id=tx.id, profile=profile)
                    self._session.add(row)
                self._copy_fields(row, tx)
            for row in stored.values():
                self._session.delete(row)
            highest = max((tx.id for tx in transactions), default=0)
            if profile.next_transaction_id <= highest:
                profile.next_transaction_id = highest + 1
            self._session.commit()
        except SQLAlchemyError:
            self._session.rollback()
            logger.exception("Failed to persist %d transactions for profile %s", len(transactions), self._profile_id)
            raise
        logger.debug("Persisted %d transactions for profile %s", len(transactions), self._profile_id)

    def _profile(self) -> models.ProfileOrm:
        profile = self._session.get(models.ProfileOrm, self._profile_id)
        if profile is None:
            raise ProfileNotFoundError(f"Unknown profile {self._profile_id}")
        return profile

    @staticmethod
    def _copy_fields(row: models.TransactionOrm, tx: Transaction) -> None:
        row.asset_symbol = tx.asset_symbol
        row.tx_type = tx.tx_type.value
        row.amount = tx.amount
        row.timestamp = tx.timestamp
        row.price_fiat = tx.price_fiat
        row.fiat_currency = tx.fiat_currency
        row.fiat_value = tx.fiat_value
        row.value_eur = tx.value_eur
        row.value_usd = tx.value_usd
        row.source = tx.source
        row.note = tx.note
        row.tx_id = tx.tx_id
        row.linked_tx_prev_id = tx.linked_tx_prev_id
        row.linked_tx_next_id = tx.linked_tx_next_id

    @staticmethod
    def _to_domain(row: models.TransactionOrm) -> Transaction:
        return Transaction(
            id=TransactionId(row.id),
            asset_symbol=row.asset_symbol,
            tx_type=TxType(row.tx_type),
            amount=row.amount,
            timestamp=_as_utc(row.timestamp),
            price_fiat=row.price_fiat,
            fiat_currency=row.fiat_currency,
            fiat_value=row.fiat_value,
            value_eur=row.value_eur,
            value_usd=row.value_usd,
            source=row.source,
            note=row.note,
            tx_id=row.tx_id,
            linked_tx_prev_id=row.linked_tx_prev_id,
            linked_tx_next_id=row.linked_tx_next_id,
        )


class ProfileConfigRepository:
    def __init__(self, session: Session, profile_id: UUID) -> None:
        self._session = session
        self._profile_id = profile_id

    def get(self) -> ProfileConfig:
        """Return the profile's settings, storing the defaults on first use."""
        orm_config = self._session.get(models.ProfileConfigOrm, self._profile_id)
        if orm_config is None:
            self._profile()
            config = ProfileConfig()
            self.save(config)
            return config
        return ProfileConfig(
            holding_period_days=orm_config.holding_period_days,
            upcoming_holding_window_days=orm_config.upcoming_holding_window_days,
            base_currency=orm_config.base_currency,
            price_fetch_enabled=orm_config.price_fetch_enabled,
            coingecko_api_key=orm_config.coingecko_api_key,
        )

    def save(self, config: ProfileConfig) -> None:
        orm_config = self._session.get(models.ProfileConfigOrm, self._profile_id)
        if orm_config is None:
            orm_config = models.ProfileConfigOrm(profile=self._profile())
            self._session.add(orm_config)
        orm_config.holding_period_days = config.holding_period_days
        orm_config.upcoming_holding_window_days = config.upcoming_holding_window_days
        orm_config.base_currency = config.base_currency
        orm_config.price_fetch_enabled = config.price_fetch_enabled
        orm_config.coingecko_api_key = config.coingecko_api_key
        self._session.commit()

    def _profile(self) -> models.ProfileOrm:
        profile = self._session.get(models.ProfileOrm, self._profile_id)
        if profile is None:
            raise ProfileNotFoundError(f"Unknown profile {self._profile_id}")
        return profile
