from __future__ import annotations

from typing import Sequence

from domain.ledger import ExpiringHolding, HoldingsItem

from .formatting import format_currency, format_decimal, format_timestamp


def _render_table(headers: Sequence[str], rows: Sequence[Sequence[str]], left_aligned: int = 1) -> str:
    widths = [max(len(header), max((len(row[idx]) for row in rows), default=0)) for idx, header in enumerate(headers)]

    def line(cells: Sequence[str]) -> str:
        parts = [
            f"{cell:<{width}}" if idx < left_aligned else f"{cell:>{width}}"
            for idx, (cell, width) in enumerate(zip(cells, widths))
        ]
        return " ".join(parts)

    header = line(headers)
    lines = [header, "-" * len(header)]
    lines.extend(line(row) for row in rows)
    lines.append("-" * len(header))
    return "\n".join(lines)


def render_holdings(items: Sequence[HoldingsItem]) -> None:
    print("Holdings:")
    if not items:
        print("  (empty)")
        return

    rows = [
        (item.asset_symbol, format_decimal(item.total_amount), format_currency(item.value_eur), format_currency(item.value_usd))
        for item in items
    ]
    print(_render_table(("Asset", "Quantity", "Value EUR", "Value USD"), rows))


def render_expiring(items: Sequence[ExpiringHolding], window_days: int) -> None:
    print(f"Holding periods ending within {window_days} days:")
    if not items:
        print("  (none)")
        return

    rows = [
        (
            str(item.transaction_id),
            item.asset_symbol,
            format_decimal(item.amount),
            format_timestamp(item.timestamp),
            format_timestamp(item.holding_period_end),
            str(item.days_remaining),
        )
        for item in items
    ]
    print(_render_table(("Id", "Asset", "Amount", "Acquired", "Period ends", "Days left"), rows, left_aligned=2))
