from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from db.repositories import (
    ProfileConfigRepository,
    ProfileNotFoundError,
    ProfileRepository,
    TransactionRepository,
)
from domain.ledger import ProfileConfig, TxType
from services.profile_context import open_profile
from tests.helpers.ledger_factory import make_tx


@pytest.fixture()
def profiles(test_session: Session) -> ProfileRepository:
    return ProfileRepository(test_session)


def test_create_and_find_profiles(profiles: ProfileRepository) -> None:
    alice = profiles.create("  alice ")
    bob = profiles.create("bob")

    assert alice.name == "alice"
    assert profiles.get(alice.id) == alice
    assert profiles.get_by_name("bob") == bob
    assert profiles.get(uuid4()) is None
    assert [profile.name for profile in profiles.list()] == ["alice", "bob"]


def test_profile_names_are_unique_and_non_empty(profiles: ProfileRepository) -> None:
    profiles.create("alice")

    with pytest.raises(ValueError, match="already exists"):
        profiles.create("alice")
    with pytest.raises(ValueError):
        profiles.create("   ")
    assert len(profiles.list()) == 1


def test_open_profile_by_name_or_id(test_session: Session, profiles: ProfileRepository) -> None:
    alice = profiles.create("alice")

    assert open_profile(test_session, "alice").profile_id == alice.id
    assert open_profile(test_session, str(alice.id)).profile.name == "alice"
    with pytest.raises(ProfileNotFoundError):
        open_profile(test_session, "carol")


def test_config_defaults_are_stored_on_first_read(test_session: Session, profiles: ProfileRepository) -> None:
    alice = profiles.create("alice")
    configs = ProfileConfigRepository(test_session, alice.id)

    assert configs.get() == ProfileConfig()

    configs.save(ProfileConfig(holding_period_days=0, base_currency="USD", coingecko_api_key="key"))
    stored = ProfileConfigRepository(test_session, alice.id).get()
    assert stored.holding_period_days == 0
    assert stored.base_currency == "USD"
    assert stored.coingecko_api_key == "key"

    with pytest.raises(ProfileNotFoundError):
        ProfileConfigRepository(test_session, uuid4()).get()


def test_replace_all_round_trips_and_isolates_profiles(test_session: Session, profiles: ProfileRepository) -> None:
    alice = profiles.create("alice")
    bob = profiles.create("bob")
    alice_txs = TransactionRepository(test_session, alice.id)
    bob_txs = TransactionRepository(test_session, bob.id)
    timestamp = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)

    alice_txs.replace_all(
        [
            make_tx(2, nxt=5, amount="0.123456789012345678", timestamp=timestamp, value_eur=Decimal("10.5")),
            make_tx(5, prev=2, asset="ETH", tx_type=TxType.TRANSFER_OUT, timestamp=timestamp, tx_id="0xabc"),
        ]
    )
    bob_txs.replace_all([make_tx(1)])

    stored = alice_txs.list()
    assert [tx.id for tx in stored] == [2, 5]
    assert stored[0].amount == Decimal("0.123456789012345678")
    assert stored[0].timestamp == timestamp
    assert stored[0].value_eur == Decimal("10.5")
    assert stored[0].linked_tx_next_id == 5
    assert stored[1].tx_type == TxType.TRANSFER_OUT
    assert stored[1].tx_id == "0xabc"
    assert [tx.id for tx in bob_txs.list()] == [1]

    alice_txs.replace_all([stored[1]])
    assert [tx.id for tx in alice_txs.list()] == [5]


def test_allocate_id_is_monotonic(test_session: Session, profiles: ProfileRepository) -> None:
    alice = profiles.create("alice")
    repository = TransactionRepository(test_session, alice.id)

    repository.replace_all([make_tx(4)])
    first = repository.allocate_id()
    second = repository.allocate_id()
    repository.replace_all([make_tx(4), make_tx(first), make_tx(second)])
    repository.replace_all([])

    assert (first, second) == (5, 6)
    assert repository.allocate_id() == 7


def test_delete_profile_removes_its_data(test_session: Session, profiles: ProfileRepository) -> None:
    alice = profiles.create("alice")
    ProfileConfigRepository(test_session, alice.id).get()
    TransactionRepository(test_session, alice.id).replace_all([make_tx(1), make_tx(2)])

    profiles.delete(alice.id)

    assert profiles.list() == []
    assert TransactionRepository(test_session, alice.id).list() == []
    with pytest.raises(ProfileNotFoundError):
        profiles.delete(alice.id)
