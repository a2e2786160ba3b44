from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Sequence

from domain.assets import FIAT_SYMBOLS
from domain.ledger import HoldingsItem, Transaction
from domain.pricing import FiatCode, HistoricalPrice, PriceOracle

logger = logging.getLogger(__name__)


def _lookup(oracle: PriceOracle, symbol: str, fiat: FiatCode, timestamp: datetime) -> HistoricalPrice | None:
    # Price lookups are best effort; any failure only leaves values empty.
    try:
        return oracle.historical_price(symbol, fiat, timestamp)
    except Exception:
        logger.warning("Price lookup for %s at %s failed", symbol, timestamp.isoformat(), exc_info=True)
        return None


def enrich_transactions(
    transactions: Sequence[Transaction],
    oracle: PriceOracle,
    base_currency: FiatCode = "EUR",
) -> int:
    """Fill missing ``value_eur``/``value_usd`` from historical prices, in place.

    Returns the number of transactions that received at least one value.
    """
    enriched = 0
    for tx in transactions:
        if tx.asset_symbol.upper() in FIAT_SYMBOLS or tx.amount == 0:
            continue
        if tx.value_eur is not None and tx.value_usd is not None:
            continue

        price = _lookup(oracle, tx.asset_symbol, base_currency, tx.timestamp)
        if price is None:
            continue

        changed = False
        if tx.value_eur is None and price.eur is not None:
            tx.value_eur = price.eur * tx.amount
            changed = True
        if tx.value_usd is None and price.usd is not None:
            tx.value_usd = price.usd * tx.amount
            changed = True
        if changed:
            enriched += 1

    logger.info("Enriched %d of %d transactions with fiat values", enriched, len(transactions))
    return enriched


def apply_prices_to_holdings(
    items: Sequence[HoldingsItem],
    oracle: PriceOracle,
    base_currency: FiatCode = "EUR",
    now: datetime | None = None,
) -> list[HoldingsItem]:
    at = now or datetime.now(timezone.utc)
    valued: list[HoldingsItem] = []
    for item in items:
        price = _lookup(oracle, item.asset_symbol, base_currency, at)
        if price is None:
            valued.append(item)
            continue
        valued.append(
            item.model_copy(
                update={
                    "value_eur": price.eur * item.total_amount if price.eur is not None else None,
                    "value_usd": price.usd * item.total_amount if price.usd is not None else None,
                }
            )
        )
    return valued


__all__ = ["apply_prices_to_holdings", "enrich_transactions"]
