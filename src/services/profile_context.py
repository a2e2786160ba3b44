from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from db.repositories import (
    ProfileConfigRepository,
    ProfileNotFoundError,
    ProfileRepository,
    TransactionRepository,
)
from domain.assets import AssetCatalog, StaticAssetCatalog
from domain.ledger import Profile, ProfileConfig


@dataclass
class ProfileContext:
    """Everything a ledger operation needs to act on one open profile.

    Passed explicitly to the services instead of living in module state, so
    several profiles can be open side by side.
    """

    session: Session
    profile: Profile
    catalog: AssetCatalog = field(default_factory=StaticAssetCatalog)

    @property
    def profile_id(self) -> UUID:
        return self.profile.id

    @property
    def transactions(self) -> TransactionRepository:
        return TransactionRepository(self.session, self.profile.id)

    @property
    def configs(self) -> ProfileConfigRepository:
        return ProfileConfigRepository(self.session, self.profile.id)

    def config(self) -> ProfileConfig:
        return self.configs.get()


def open_profile(session: Session, name_or_id: str | UUID) -> ProfileContext:
    profiles = ProfileRepository(session)
    profile: Profile | None = None
    if isinstance(name_or_id, UUID):
        profile = profiles.get(name_or_id)
    else:
        try:
            profile = profiles.get(UUID(name_or_id))
        except ValueError:
            profile = None
        if profile is None:
            profile = profiles.get_by_name(name_or_id)
    if profile is None:
        raise ProfileNotFoundError(f"Unknown profile {name_or_id}")
    return ProfileContext(session=session, profile=profile)


__all__ = ["ProfileContext", "open_profile"]
