"""Maintenance of the prev/next link graph between transactions.

Links model split or related entries. At rest the graph must satisfy:

- no transaction links to itself,
- every link resolves to an existing transaction,
- links are symmetric (``A.next == B.id`` iff ``B.prev == A.id``),
- every transaction has at most one predecessor and one successor,
- ``prev`` and ``next`` never point at the same transaction.

``normalize_links`` repairs any input into that shape. It is run over the whole
ledger after every structural change because an edit can displace links of
unrelated third-party transactions.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from .ledger import Transaction

logger = logging.getLogger(__name__)


def sanitize_link_id(candidate: object) -> int | None:
    if isinstance(candidate, bool) or not isinstance(candidate, int):
        return None
    return candidate if candidate > 0 else None


def _index(transactions: Iterable[Transaction]) -> dict[int, Transaction]:
    return {tx.id: tx for tx in transactions}


class _LinkWriter:
    def __init__(self, index: dict[int, Transaction]) -> None:
        self.index = index
        self.changed = False

    def set_prev(self, tx: Transaction, value: int | None) -> None:
        if tx.linked_tx_prev_id != value:
            tx.linked_tx_prev_id = value
            self.changed = True

    def set_next(self, tx: Transaction, value: int | None) -> None:
        if tx.linked_tx_next_id != value:
            tx.linked_tx_next_id = value
            self.changed = True

    def detach_prev(self, tx_id: int, expected_prev: int) -> None:
        tx = self.index.get(tx_id)
        if tx is not None and tx.linked_tx_prev_id == expected_prev:
            self.set_prev(tx, None)

    def detach_next(self, tx_id: int, expected_next: int) -> None:
        tx = self.index.get(tx_id)
        if tx is not None and tx.linked_tx_next_id == expected_next:
            self.set_next(tx, None)

    def link_after(self, prev: Transaction, tx_id: int) -> None:
        """Make ``tx_id`` the successor of ``prev``, displacing the old one."""
        displaced = sanitize_link_id(prev.linked_tx_next_id)
        if displaced is not None and displaced != tx_id:
            self.detach_prev(displaced, prev.id)
        self.set_next(prev, tx_id)

    def link_before(self, nxt: Transaction, tx_id: int) -> None:
        """Make ``tx_id`` the predecessor of ``nxt``, displacing the old one."""
        displaced = sanitize_link_id(nxt.linked_tx_prev_id)
        if displaced is not None and displaced != tx_id:
            self.detach_next(displaced, nxt.id)
        self.set_prev(nxt, tx_id)


def normalize_links(transactions: Sequence[Transaction]) -> bool:
    """Repair the link graph in place. Returns True when anything changed.

    Idempotent, and independent of the order of ``transactions``: every pass
    walks the records in ascending id order.
    """
    index = _index(transactions)
    ordered = [index[tx_id] for tx_id in sorted(index)]
    writer = _LinkWriter(index)

    for tx in ordered:
        prev_id = sanitize_link_id(tx.linked_tx_prev_id)
        next_id = sanitize_link_id(tx.linked_tx_next_id)
        if prev_id is not None and (prev_id not in index or prev_id == tx.id):
            prev_id = None
        if next_id is not None and (next_id not in index or next_id == tx.id):
            next_id = None
        writer.set_prev(tx, prev_id)
        writer.set_next(tx, next_id)

    for tx in ordered:
        prev_id = tx.linked_tx_prev_id
        if prev_id is not None:
            writer.link_after(index[prev_id], tx.id)
        next_id = tx.linked_tx_next_id
        if next_id is not None:
            writer.link_before(index[next_id], tx.id)

    for tx in ordered:
        prev_id = tx.linked_tx_prev_id
        if prev_id is not None and index[prev_id].linked_tx_next_id != tx.id:
            writer.set_prev(tx, None)
        next_id = tx.linked_tx_next_id
        if next_id is not None and index[next_id].linked_tx_prev_id != tx.id:
            writer.set_next(tx, None)

    for tx in ordered:
        if tx.linked_tx_prev_id is not None and tx.linked_tx_prev_id == tx.linked_tx_next_id:
            writer.set_prev(tx, None)
            writer.set_next(tx, None)

    if writer.changed:
        logger.debug("Link graph normalized over %d transactions", len(ordered))
    return writer.changed


def apply_links(
    transactions: Sequence[Transaction],
    tx: Transaction,
    *,
    old_prev_id: int | None,
    old_next_id: int | None,
) -> None:
    """Propagate the links of an edited or created ``tx`` onto its neighbours.

    Neighbours the record no longer links to are detached if they still point
    back at it; new neighbours are re-pointed at it, displacing whatever they
    were linked to before.
    """
    writer = _LinkWriter(_index(transactions))
    new_prev_id = sanitize_link_id(tx.linked_tx_prev_id)
    new_next_id = sanitize_link_id(tx.linked_tx_next_id)

    if old_prev_id is not None and old_prev_id != new_prev_id:
        writer.detach_next(old_prev_id, tx.id)
    if old_next_id is not None and old_next_id != new_next_id:
        writer.detach_prev(old_next_id, tx.id)

    if new_prev_id is not None and new_prev_id in writer.index and new_prev_id != tx.id:
        writer.link_after(writer.index[new_prev_id], tx.id)
    if new_next_id is not None and new_next_id in writer.index and new_next_id != tx.id:
        writer.link_before(writer.index[new_next_id], tx.id)


def bridge_on_delete(remaining: Sequence[Transaction], deleted: Transaction) -> None:
    """Re-point the neighbours of a deleted record at each other."""
    index = _index(remaining)
    prev_id = sanitize_link_id(deleted.linked_tx_prev_id)
    next_id = sanitize_link_id(deleted.linked_tx_next_id)

    if prev_id is not None:
        prev = index.get(prev_id)
        if prev is not None and prev.linked_tx_next_id == deleted.id:
            prev.linked_tx_next_id = next_id
    if next_id is not None:
        nxt = index.get(next_id)
        if nxt is not None and nxt.linked_tx_prev_id == deleted.id:
            nxt.linked_tx_prev_id = prev_id
