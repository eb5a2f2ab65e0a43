# Overview: Integer-cent money helpers shared by models and services.

from __future__ import annotations


def format_cents(cents: int | None) -> str | None:
    """Render integer cents as a two-decimal string ("2500" -> "25.00")."""
    if cents is None:
        return None
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(int(cents)), 100)
    return f"{sign}{whole}.{frac:02d}"


def line_amount_cents(quantity: int, unit_price_cents: int) -> int:
    """Exact per-line amount; totals are sums of these, never re-rounded."""
    return int(quantity) * int(unit_price_cents)
