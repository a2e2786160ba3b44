from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import ROUND_FLOOR, Decimal
from typing import Iterable

from .assets import FIAT_SYMBOLS
from .ledger import ExpiringHolding, HoldingsItem, ProfileConfig, Transaction, TxType

QUANTITY_TOLERANCE = Decimal("1e-12")

_OUTGOING_TYPES = frozenset({TxType.SELL, TxType.TRANSFER_OUT})
_ACQUISITION_TYPES = frozenset({TxType.BUY, TxType.AIRDROP, TxType.REWARD, TxType.STAKING_REWARD})
# Only the obvious fiat symbols are skipped for holding periods.
_HOLDING_PERIOD_FIAT = frozenset({"EUR", "USD"})

_SECONDS_PER_DAY = Decimal(86400)


def _round_days(seconds: Decimal) -> int:
    # Half days round towards the future.
    return int((seconds / _SECONDS_PER_DAY + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR))


def signed_amount(tx: Transaction) -> Decimal:
    if tx.tx_type == TxType.TRANSFER_INTERNAL:
        return Decimal(0)
    if tx.tx_type in _OUTGOING_TYPES:
        return -tx.amount
    return tx.amount


def compute_holdings(transactions: Iterable[Transaction]) -> list[HoldingsItem]:
    """Current quantity per asset; fiat and non-positive balances are omitted."""
    totals: dict[str, Decimal] = defaultdict(lambda: Decimal(0))
    for tx in transactions:
        if tx.tx_type == TxType.TRANSFER_INTERNAL:
            continue
        totals[tx.asset_symbol or "UNKNOWN"] += signed_amount(tx)

    items: list[HoldingsItem] = []
    for symbol in sorted(totals):
        quantity = totals[symbol]
        if symbol.upper() in FIAT_SYMBOLS:
            continue
        if not quantity.is_finite() or quantity <= 0 or abs(quantity) < QUANTITY_TOLERANCE:
            continue
        items.append(HoldingsItem(asset_symbol=symbol, total_amount=quantity))
    return items


def compute_expiring(
    transactions: Iterable[Transaction],
    config: ProfileConfig,
    *,
    now: datetime | None = None,
) -> list[ExpiringHolding]:
    """Acquisitions whose holding period ends within the configured window.

    ``days_remaining`` is rounded to the nearest whole day; entries are sorted
    with the soonest expiry first.
    """
    if config.holding_period_days <= 0:
        return []

    current = now or datetime.now(timezone.utc)
    period = timedelta(days=config.holding_period_days)
    results: list[ExpiringHolding] = []

    for tx in transactions:
        if tx.tx_type not in _ACQUISITION_TYPES:
            continue
        if tx.asset_symbol.upper() in _HOLDING_PERIOD_FIAT:
            continue

        end = tx.timestamp + period
        remaining_seconds = Decimal(str((end - current).total_seconds()))
        days_remaining = _round_days(remaining_seconds)
        if days_remaining < 0 or days_remaining > config.upcoming_holding_window_days:
            continue

        results.append(
            ExpiringHolding(
                transaction_id=tx.id,
                asset_symbol=tx.asset_symbol,
                amount=tx.amount,
                timestamp=tx.timestamp,
                holding_period_end=end,
                days_remaining=days_remaining,
            )
        )

    results.sort(key=lambda item: (item.days_remaining, item.holding_period_end))
    return results
