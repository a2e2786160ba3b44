from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Literal, Protocol

FiatCode = Literal["EUR", "USD"]


@dataclass(frozen=True)
class HistoricalPrice:
    eur: Decimal | None
    usd: Decimal | None

    def for_currency(self, fiat: str) -> Decimal | None:
        return self.usd if fiat.upper() == "USD" else self.eur


class PriceOracle(Protocol):
    """Lookup interface for historical fiat prices of an asset.

    Implementations may fail or be rate limited; ``None`` means unavailable.
    """

    def historical_price(self, symbol: str, fiat: FiatCode, timestamp: datetime) -> HistoricalPrice | None: ...
