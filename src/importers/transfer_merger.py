"""Collapse the two legs of an exchange-internal move into one record.

Exchanges such as Bitpanda book a stake/unstake (or a move between wallets of
the same account) as a TRANSFER_OUT and a TRANSFER_IN of the same amount a few
seconds apart. Only the rows of one import batch are considered.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Sequence

from domain.ledger import TransactionDraft, TxType
from utils.formatting import format_decimal

logger = logging.getLogger(__name__)

MERGE_WINDOW = timedelta(seconds=60)

_TRANSFER_TYPES = frozenset({TxType.TRANSFER_IN, TxType.TRANSFER_OUT})


def _is_opposite(a: TransactionDraft, b: TransactionDraft) -> bool:
    return {a.tx_type, b.tx_type} == _TRANSFER_TYPES


def _capitalize_first(text: str) -> str:
    return text[:1].upper() + text[1:]


def merged_note(a: TransactionDraft, b: TransactionDraft, amount: Decimal, symbol: str) -> str | None:
    """Note of a merged pair; ``a`` is the earlier leg."""
    note_parts = [note for note in (a.note, b.note) if note]
    if len(note_parts) == 2 and note_parts[0] == note_parts[1]:
        note_parts = note_parts[:1]
    combined = " | ".join(note_parts) or None

    haystack = f"{a.note or ''} {b.note or ''}".lower()
    stake_in = "transfer(stake" in haystack
    stake_out = "transfer(unstake" in haystack
    if stake_in or stake_out or "staking" in haystack:
        return "Internal unstaking transfer" if stake_out else "Internal staking transfer"

    if amount <= 0 or not symbol:
        return _capitalize_first(combined) if combined else None

    direction = "OUT" if a.tx_type == TxType.TRANSFER_OUT else "IN"
    label = f"Internal transfer {direction} {format_decimal(amount)} {symbol}"
    final = f"{combined} | {label}" if combined else label
    return _capitalize_first(final)


def _merge_pair(a: TransactionDraft, b: TransactionDraft) -> TransactionDraft:
    base = a if a.tx_type == TxType.TRANSFER_OUT else b
    symbol = base.asset_symbol.upper()
    amount = abs(a.amount) or abs(b.amount)
    return base.model_copy(
        update={
            "tx_type": TxType.TRANSFER_INTERNAL,
            "amount": amount,
            "note": merged_note(a, b, amount, symbol),
            "tx_id": None,
        }
    )


def merge_internal_transfers(
    drafts: Sequence[TransactionDraft],
    source: str = "BITPANDA",
    window: timedelta = MERGE_WINDOW,
) -> list[TransactionDraft]:
    """Pair opposite transfer legs of ``source`` and replace them by one TRANSFER_INTERNAL.

    Legs are grouped by symbol and absolute amount and sorted by time; each
    unconsumed leg takes the nearest opposite leg no more than ``window`` away
    (the first one wins a tie). The result lists the rows that were never
    candidates in their original order, then unmatched legs, then the merged
    records, both in group order.
    """
    remaining: list[TransactionDraft] = []
    groups: dict[tuple[str, Decimal], list[TransactionDraft]] = {}

    for draft in drafts:
        if (draft.source or "").upper() == source.upper() and draft.tx_type in _TRANSFER_TYPES:
            key = (draft.asset_symbol.upper(), abs(draft.amount).normalize())
            groups.setdefault(key, []).append(draft)
        else:
            remaining.append(draft)

    merged: list[TransactionDraft] = []
    for group in groups.values():
        pool = sorted(group, key=lambda draft: draft.timestamp)
        used: set[int] = set()

        for i, a in enumerate(pool):
            if i in used:
                continue
            best_index: int | None = None
            best_delta: timedelta | None = None
            for j in range(i + 1, len(pool)):
                if j in used or not _is_opposite(a, pool[j]):
                    continue
                delta = abs(pool[j].timestamp - a.timestamp)
                if delta <= window and (best_delta is None or delta < best_delta):
                    best_index, best_delta = j, delta

            used.add(i)
            if best_index is None:
                remaining.append(a)
                continue
            used.add(best_index)
            merged.append(_merge_pair(a, pool[best_index]))

    if merged:
        logger.info("Merged %d internal transfer pairs from %s", len(merged), source)
    return remaining + merged
