from __future__ import annotations

from datetime import datetime
from decimal import Decimal


def format_decimal(value: Decimal) -> str:
    quantized = value.normalize()
    # Avoid scientific notation for integers.
    if quantized == quantized.to_integral():
        return f"{quantized:.0f}"
    return format(quantized, "f")


def format_currency(value: Decimal | None) -> str:
    if value is None:
        return "-"
    cents = value.quantize(Decimal("0.01"))
    return f"{cents:.2f}"


def format_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S")
