from __future__ import annotations

from datetime import timezone
from decimal import Decimal
from typing import Iterable

from utils.formatting import format_decimal

from .ledger import TransactionDraft

_SEPARATOR = "|"


def _decimal_text(value: Decimal | None) -> str:
    if value is None:
        return ""
    return format_decimal(value)


def fingerprint(tx: TransactionDraft) -> str:
    """Deterministic deduplication key for a transaction.

    An external transaction id wins when present; otherwise the key is built
    from the content fields, including the free-text source and note.
    """
    if tx.tx_id and tx.tx_id.strip():
        return f"id:{tx.tx_id.strip()}"

    parts = [
        "asset",
        tx.asset_symbol.upper(),
        "type",
        tx.tx_type.value.upper(),
        "amount",
        _decimal_text(tx.amount),
        "price",
        _decimal_text(tx.price_fiat),
        "cur",
        (tx.fiat_currency or "").upper(),
        "ts",
        tx.timestamp.astimezone(timezone.utc).isoformat(),
        "source",
        tx.source or "",
        "note",
        tx.note or "",
    ]
    return _SEPARATOR.join(parts)


class DedupIndex:
    """Set of fingerprints seeded from the stored ledger and grown per batch."""

    def __init__(self, transactions: Iterable[TransactionDraft] = ()) -> None:
        self._keys: set[str] = {fingerprint(tx) for tx in transactions}

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, tx: TransactionDraft) -> bool:
        return fingerprint(tx) in self._keys

    def add(self, tx: TransactionDraft) -> None:
        self._keys.add(fingerprint(tx))

    def accept(self, tx: TransactionDraft, *, key_tx: TransactionDraft | None = None) -> bool:
        """Record ``tx`` unless it is a duplicate; returns whether it was new.

        ``key_tx`` lets a caller fingerprint a variant of the record (for
        example with the external id stripped) while accepting ``tx`` itself.
        """
        key = fingerprint(key_tx if key_tx is not None else tx)
        if key in self._keys:
            return False
        self._keys.add(key)
        return True
