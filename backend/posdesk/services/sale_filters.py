# Overview: Composable, parameterized filter predicates for sale searches.

"""
Sale Search Filters

WHY: The reception desk searches sales by free text, receipt number and
date range, in any combination. Filters are built as typed predicate
objects (field, operator, value) and compiled into SQLAlchemy clauses, so
user input only ever travels as bound parameters.

Malformed input (an unparseable date, a receipt number without digits) is
dropped from the filter set and reported back to the caller instead of
aborting the search.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from ..extensions import db
from ..models import Sale
from posdesk.time_utils import parse_date_bound


RECEIPT_NUMBER_DIGITS = 6

# Longest digit run we will bind as an integer id
MAX_ID_DIGITS = 18

# "RCP-000123", "rcp000123", "#123", "000123"
_RECEIPT_LIKE = re.compile(r"^[A-Za-z]*-?#?\d+$")

_LIKE_ESCAPE = "\\"


@dataclass(frozen=True)
class Predicate:
    """A single comparison: <field> <op> <value>."""
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class AnyOf:
    """Predicates joined with OR; the group itself is ANDed with its siblings."""
    predicates: tuple[Predicate, ...]


# Public field name -> mapped column. Anything else is rejected at compile time.
SEARCHABLE_FIELDS = {
    "id": Sale.id,
    "created_at": Sale.created_at,
    "customer_name": Sale.customer_name,
    "customer_phone": Sale.customer_phone,
    "customer_email": Sale.customer_email,
}

TEXT_SEARCH_FIELDS = ("customer_name", "customer_phone", "customer_email")


def _escape_like(value: str) -> str:
    return (
        value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


OPERATORS = {
    "eq": lambda col, value: col == value,
    "gte": lambda col, value: col >= value,
    "lt": lambda col, value: col < value,
    "lte": lambda col, value: col <= value,
    "contains": lambda col, value: col.ilike(f"%{_escape_like(value)}%", escape=_LIKE_ESCAPE),
}


def format_receipt_number(sale_id: int, prefix: str = "RCP") -> str:
    """Receipt numbers are derived from the sale id: 123 -> "RCP-000123"."""
    return f"{prefix}-{sale_id:0{RECEIPT_NUMBER_DIGITS}d}"


def receipt_number_to_sale_id(value: str | None) -> int | None:
    """Strip everything but digits and read the sale id; None if nothing usable."""
    digits = re.sub(r"\D", "", value or "")
    if not digits or len(digits) > MAX_ID_DIGITS:
        return None
    return int(digits)


def compile_predicate(predicate: Predicate):
    column = SEARCHABLE_FIELDS.get(predicate.field)
    if column is None:
        raise ValueError(f"Unknown search field: {predicate.field}")
    operator = OPERATORS.get(predicate.op)
    if operator is None:
        raise ValueError(f"Unknown search operator: {predicate.op}")
    return operator(column, predicate.value)


def compile_filters(filters: list[Predicate | AnyOf]) -> list:
    """Translate predicates into SQLAlchemy clauses, to be ANDed by the caller."""
    clauses = []
    for item in filters:
        if isinstance(item, AnyOf):
            clauses.append(db.or_(*(compile_predicate(p) for p in item.predicates)))
        else:
            clauses.append(compile_predicate(item))
    return clauses


def _date_predicate(raw: str, *, upper: bool) -> Predicate:
    bound = parse_date_bound(raw, end=upper)
    if not upper:
        return Predicate("created_at", "gte", bound)
    # A calendar date covers the whole day; an explicit datetime is inclusive
    is_calendar_date = len(raw.strip()) == 10
    return Predicate("created_at", "lt" if is_calendar_date else "lte", bound)


def build_sale_filters(
    *,
    term: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    receipt_number: str | None = None,
) -> tuple[list[Predicate | AnyOf], list[str]]:
    """
    Build search predicates from raw request values.

    Returns (filters, dropped) where `dropped` names the inputs that were
    malformed and left out. Empty inputs are not filters at all.
    """
    filters: list[Predicate | AnyOf] = []
    dropped: list[str] = []

    term = (term or "").strip()
    if term:
        alternatives = [Predicate(field, "contains", term) for field in TEXT_SEARCH_FIELDS]
        if _RECEIPT_LIKE.match(term):
            sale_id = receipt_number_to_sale_id(term)
            if sale_id is not None:
                alternatives.append(Predicate("id", "eq", sale_id))
        filters.append(AnyOf(tuple(alternatives)))

    for name, raw, upper in (("date_from", date_from, False), ("date_to", date_to, True)):
        if raw is None or not raw.strip():
            continue
        try:
            filters.append(_date_predicate(raw, upper=upper))
        except ValueError:
            dropped.append(name)

    if receipt_number is not None and receipt_number.strip():
        sale_id = receipt_number_to_sale_id(receipt_number)
        if sale_id is None:
            dropped.append("receipt_number")
        else:
            filters.append(Predicate("id", "eq", sale_id))

    return filters, dropped
