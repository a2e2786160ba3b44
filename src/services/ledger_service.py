from __future__ import annotations

import logging
from datetime import datetime

from domain.holdings import compute_expiring, compute_holdings
from domain.ledger import ExpiringHolding, HoldingsItem, ProfileConfig, Transaction, TransactionDraft
from domain.link_graph import apply_links, bridge_on_delete, normalize_links

from .profile_context import ProfileContext

logger = logging.getLogger(__name__)


class TransactionNotFoundError(LookupError):
    pass


class LedgerService:
    """Create, edit, delete and read the transactions of one profile.

    Every mutation re-normalizes the whole link graph and persists the full
    list before returning.
    """

    def __init__(self, context: ProfileContext) -> None:
        self.context = context

    def load(self) -> list[Transaction]:
        repository = self.context.transactions
        transactions = repository.list()
        if normalize_links(transactions):
            logger.info("Repaired transaction links of profile %s on load", self.context.profile.name)
            repository.replace_all(transactions)
        return transactions

    def get(self, tx_id: int) -> Transaction:
        for tx in self.load():
            if tx.id == tx_id:
                return tx
        raise TransactionNotFoundError(f"Transaction {tx_id} not found")

    def save_transaction(self, payload: TransactionDraft, tx_id: int | None = None) -> Transaction:
        """Create a transaction, or replace transaction ``tx_id`` with ``payload``."""
        repository = self.context.transactions
        transactions = self.load()
        fiat_value = payload.price_fiat * payload.amount if payload.price_fiat is not None else payload.fiat_value

        if tx_id is None:
            saved = Transaction.from_draft(payload.model_copy(update={"fiat_value": fiat_value}), repository.allocate_id())
            transactions.append(saved)
            old_prev_id = old_next_id = None
        else:
            position = next((idx for idx, tx in enumerate(transactions) if tx.id == tx_id), None)
            if position is None:
                raise TransactionNotFoundError(f"Transaction {tx_id} not found")
            existing = transactions[position]
            old_prev_id, old_next_id = existing.linked_tx_prev_id, existing.linked_tx_next_id
            # Fiat valuations come from enrichment, not from the editor.
            saved = Transaction.from_draft(
                payload.model_copy(
                    update={
                        "fiat_value": fiat_value,
                        "value_eur": existing.value_eur,
                        "value_usd": existing.value_usd,
                    }
                ),
                tx_id,
            )
            transactions[position] = saved

        apply_links(transactions, saved, old_prev_id=old_prev_id, old_next_id=old_next_id)
        normalize_links(transactions)
        repository.replace_all(transactions)
        logger.info("Saved transaction %d (%s %s)", saved.id, saved.tx_type, saved.asset_symbol)
        return saved

    def delete_transaction(self, tx_id: int) -> None:
        transactions = self.load()
        deleted = next((tx for tx in transactions if tx.id == tx_id), None)
        if deleted is None:
            raise TransactionNotFoundError(f"Transaction {tx_id} not found")

        remaining = [tx for tx in transactions if tx.id != tx_id]
        bridge_on_delete(remaining, deleted)
        normalize_links(remaining)
        self.context.transactions.replace_all(remaining)
        logger.info("Deleted transaction %d", tx_id)

    def holdings(self) -> list[HoldingsItem]:
        return compute_holdings(self.load())

    def expiring(self, now: datetime | None = None) -> list[ExpiringHolding]:
        return compute_expiring(self.load(), self.context.config(), now=now)

    def config(self) -> ProfileConfig:
        return self.context.config()

    def save_config(self, config: ProfileConfig) -> None:
        self.context.configs.save(config)
        logger.info("Updated settings of profile %s", self.context.profile.name)


__all__ = ["LedgerService", "TransactionNotFoundError"]
