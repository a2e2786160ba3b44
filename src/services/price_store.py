from __future__ import annotations

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Protocol

from domain.pricing import HistoricalPrice


class PriceStore(Protocol):
    def write(self, symbol: str, day: date, price: HistoricalPrice) -> None: ...

    def read(self, symbol: str, day: date) -> HistoricalPrice | None: ...


class JsonlPriceStore(PriceStore):
    """Append-only daily price cache, one JSONL file per asset symbol.

    The most recently written record for a day wins.
    """

    def __init__(self, *, root_dir: Path) -> None:
        self.root_dir = root_dir

    def write(self, symbol: str, day: date, price: HistoricalPrice) -> None:
        path = self._file_path(symbol)
        path.parent.mkdir(parents=True, exist_ok=True)
        record = {
            "symbol": symbol.upper(),
            "date": day.isoformat(),
            "eur": str(price.eur) if price.eur is not None else None,
            "usd": str(price.usd) if price.usd is not None else None,
            "fetched_at": datetime.now(timezone.utc).isoformat(),
        }
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record))
            handle.write("\n")

    def read(self, symbol: str, day: date) -> HistoricalPrice | None:
        path = self._file_path(symbol)
        if not path.exists():
            return None

        target = day.isoformat()
        best_record: dict[str, str | None] | None = None
        with path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                record = json.loads(line)
                if record.get("date") == target:
                    best_record = record

        if best_record is None:
            return None
        return HistoricalPrice(eur=self._to_decimal(best_record.get("eur")), usd=self._to_decimal(best_record.get("usd")))

    @staticmethod
    def _to_decimal(value: str | None) -> Decimal | None:
        return Decimal(value) if value is not None else None

    def _file_path(self, symbol: str) -> Path:
        return self.root_dir / f"{symbol.upper()}.jsonl"


__all__ = ["JsonlPriceStore", "PriceStore"]
