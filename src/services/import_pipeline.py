"""Import orchestration: parse, deduplicate, merge, append, normalize, persist.

Every entry point returns an ``ImportResult``; file level problems become a
single error message and leave the stored ledger untouched.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from domain.fingerprint import DedupIndex
from domain.ledger import ImportResult, Transaction, TransactionDraft, TxType
from domain.link_graph import normalize_links
from domain.pricing import PriceOracle
from importers.binance_xlsx import BinanceXlsxImporter
from importers.bitpanda_csv import BITPANDA_SOURCE, BitpandaCsvImporter
from importers.common import ImportFileError, ParseResult, line_error
from importers.generic_csv import GenericCsvImporter
from importers.transfer_merger import merge_internal_transfers

from .enrichment import enrich_transactions
from .ledger_service import LedgerService
from .profile_context import ProfileContext

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "duplicate transaction detected (skipped)."


def _outgoing_leg_line(parsed: ParseResult, merged: TransactionDraft) -> int:
    """Line number of the outgoing leg a merged transfer was built from."""
    return next(
        (
            row.line_number
            for row in parsed.rows
            if row.draft.tx_type == TxType.TRANSFER_OUT
            and row.draft.timestamp == merged.timestamp
            and row.draft.asset_symbol == merged.asset_symbol
            and row.draft.amount == merged.amount
        ),
        0,
    )


class Importer(Protocol):
    def parse(self) -> ParseResult: ...


class ImportPipeline:
    def __init__(self, context: ProfileContext, *, oracle: PriceOracle | None = None) -> None:
        self.context = context
        self.oracle = oracle

    def import_generic_csv(self, path: str | Path) -> ImportResult:
        return self.run(GenericCsvImporter(path))

    def import_binance_xlsx(self, path: str | Path) -> ImportResult:
        return self.run(BinanceXlsxImporter(path, catalog=self.context.catalog))

    def import_bitpanda_csv(self, path: str | Path) -> ImportResult:
        return self.run(BitpandaCsvImporter(path, catalog=self.context.catalog), merge_source=BITPANDA_SOURCE)

    def run(self, importer: Importer, *, merge_source: str | None = None) -> ImportResult:
        try:
            parsed = importer.parse()
        except ImportFileError as err:
            logger.warning("Import rejected: %s", err)
            return ImportResult.failed(str(err))
        except (OSError, UnicodeDecodeError) as err:
            logger.warning("Import file could not be read: %s", err)
            return ImportResult.failed(f"Unable to read file: {err}")

        try:
            existing = LedgerService(self.context).load()
        except SQLAlchemyError as err:
            return ImportResult.failed(f"Unable to load the ledger: {err}")

        errors = list(parsed.errors)
        index = DedupIndex(existing)
        accepted: list[TransactionDraft] = []
        for row in parsed.rows:
            if index.accept(row.draft, key_tx=row.dedup_key):
                accepted.append(row.draft)
            else:
                errors.append(line_error(row.line_number, DUPLICATE_MESSAGE))
        duplicates = len(parsed.rows) - len(accepted)

        if merge_source is not None:
            reported = len(errors)
            accepted = self._merge(accepted, parsed, index, errors, merge_source)
            duplicates += len(errors) - reported

        repository = self.context.transactions
        try:
            new_transactions = [Transaction.from_draft(draft, repository.allocate_id()) for draft in accepted]
            ledger = existing + new_transactions
            normalize_links(ledger)
            repository.replace_all(ledger)
        except SQLAlchemyError as err:
            self.context.session.rollback()
            return ImportResult.failed(f"Unable to save imported transactions: {err}")

        logger.info(
            "Imported %d transactions into profile %s (%d duplicates, %d messages)",
            len(new_transactions),
            self.context.profile.name,
            duplicates,
            len(errors),
        )
        self._enrich(new_transactions, ledger)
        return ImportResult(imported=len(new_transactions), errors=errors)

    @staticmethod
    def _merge(
        drafts: list[TransactionDraft],
        parsed: ParseResult,
        index: DedupIndex,
        errors: list[str],
        source: str,
    ) -> list[TransactionDraft]:
        """Merge transfer legs; a merged record already in the ledger is a duplicate."""
        legs = {id(draft) for draft in drafts}
        kept: list[TransactionDraft] = []
        for draft in merge_internal_transfers(drafts, source=source):
            if id(draft) in legs or index.accept(draft):
                kept.append(draft)
                continue
            errors.append(line_error(_outgoing_leg_line(parsed, draft), DUPLICATE_MESSAGE))
        return kept

    def _enrich(self, new_transactions: list[Transaction], ledger: list[Transaction]) -> None:
        if self.oracle is None or not new_transactions:
            return
        try:
            profile_config = self.context.config()
            if not profile_config.price_fetch_enabled:
                return
            if enrich_transactions(new_transactions, self.oracle, profile_config.base_currency) == 0:
                return
            self.context.transactions.replace_all(ledger)
        except SQLAlchemyError:
            logger.warning("Could not store fiat values after import", exc_info=True)


__all__ = ["DUPLICATE_MESSAGE", "ImportPipeline"]
