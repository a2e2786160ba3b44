from __future__ import annotations

from decimal import Decimal

import pytest

from domain.ledger import TxType
from importers.transfer_merger import merge_internal_transfers, merged_note
from tests.helpers.ledger_factory import make_draft


def _leg(tx_type: TxType, offset_seconds: int, *, amount: str = "2", note: str | None = None, **fields):
    fields.setdefault("source", "BITPANDA")
    return make_draft(asset="ETH", tx_type=tx_type, amount=amount, offset_seconds=offset_seconds, note=note, **fields)


@pytest.mark.parametrize(("gap", "merged"), [(59, True), (60, True), (61, False)])
def test_merge_window_is_inclusive(gap: int, merged: bool) -> None:
    drafts = [_leg(TxType.TRANSFER_OUT, 0), _leg(TxType.TRANSFER_IN, gap)]

    result = merge_internal_transfers(drafts)

    if merged:
        assert len(result) == 1
        assert result[0].tx_type == TxType.TRANSFER_INTERNAL
        assert result[0].amount == Decimal("2")
        assert result[0].timestamp == drafts[0].timestamp
    else:
        assert [draft.tx_type for draft in result] == [TxType.TRANSFER_OUT, TxType.TRANSFER_IN]


def test_merged_record_is_based_on_outgoing_leg() -> None:
    incoming = _leg(TxType.TRANSFER_IN, 0, tx_id="IN-1", price_fiat=Decimal("10"))
    outgoing = _leg(TxType.TRANSFER_OUT, 30, tx_id="OUT-1", price_fiat=Decimal("12"))

    [merged] = merge_internal_transfers([incoming, outgoing])

    assert merged.timestamp == outgoing.timestamp
    assert merged.price_fiat == Decimal("12")
    assert merged.tx_id is None
    assert merged.note == "Internal transfer IN 2 ETH"


def test_stake_and_unstake_labels() -> None:
    stake = merge_internal_transfers(
        [
            _leg(TxType.TRANSFER_OUT, 0, note="Bitpanda transfer(stake) (outgoing)"),
            _leg(TxType.TRANSFER_IN, 5, note="Bitpanda transfer(stake) (incoming)"),
        ]
    )
    unstake = merge_internal_transfers(
        [
            _leg(TxType.TRANSFER_OUT, 0, note="Bitpanda transfer(unstake) (outgoing)"),
            _leg(TxType.TRANSFER_IN, 5, note="Bitpanda transfer(unstake) (incoming)"),
        ]
    )

    assert stake[0].note == "Internal staking transfer"
    assert unstake[0].note == "Internal unstaking transfer"


def test_generic_label_keeps_distinct_notes_once() -> None:
    a = _leg(TxType.TRANSFER_OUT, 0, amount="0.5", note="moved to vault")
    b = _leg(TxType.TRANSFER_IN, 1, amount="0.5", note="moved to vault")
    c = _leg(TxType.TRANSFER_IN, 1, amount="0.5", note="arrived")

    assert merged_note(a, b, Decimal("0.5"), "ETH") == "Moved to vault | Internal transfer OUT 0.5 ETH"
    assert merged_note(a, c, Decimal("0.5"), "ETH") == "Moved to vault | arrived | Internal transfer OUT 0.5 ETH"


def test_nearest_opposite_leg_is_paired() -> None:
    out = _leg(TxType.TRANSFER_OUT, 0, note="out")
    far_in = _leg(TxType.TRANSFER_IN, 50, note="far")
    near_in = _leg(TxType.TRANSFER_IN, 10, note="near")

    result = merge_internal_transfers([out, far_in, near_in])

    assert result[0] == far_in
    assert result[1].tx_type == TxType.TRANSFER_INTERNAL
    assert result[1].note.startswith("Out | near")


def test_only_matching_source_symbol_and_amount_are_merged() -> None:
    drafts = [
        _leg(TxType.TRANSFER_OUT, 0, source="BINANCE"),
        _leg(TxType.TRANSFER_IN, 1, source="BINANCE"),
        _leg(TxType.TRANSFER_OUT, 0, amount="1"),
        _leg(TxType.TRANSFER_IN, 1, amount="1.5"),
        make_draft(asset="BTC", tx_type=TxType.TRANSFER_IN, offset_seconds=1, source="BITPANDA"),
    ]

    result = merge_internal_transfers(drafts)

    assert all(draft.tx_type != TxType.TRANSFER_INTERNAL for draft in result)
    assert len(result) == 5


def test_output_order_non_candidates_then_unmatched_then_merged() -> None:
    buy = make_draft(asset="BTC", source="BITPANDA")
    lonely = _leg(TxType.TRANSFER_IN, 0, amount="7")
    out = _leg(TxType.TRANSFER_OUT, 0)
    back = _leg(TxType.TRANSFER_IN, 20)

    result = merge_internal_transfers([out, lonely, buy, back])

    assert result[0] == buy
    assert result[1] == lonely
    assert result[2].tx_type == TxType.TRANSFER_INTERNAL


def test_amount_grouping_ignores_trailing_zeros() -> None:
    drafts = [_leg(TxType.TRANSFER_OUT, 0, amount="2.50"), _leg(TxType.TRANSFER_IN, 3, amount="2.5")]

    assert len(merge_internal_transfers(drafts)) == 1
