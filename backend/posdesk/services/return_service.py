# Overview: Service-layer operations for reception-desk returns; encapsulates business logic and database work.

"""
Return Reconciliation Service

WHY: Customers bring back part of a sale, sometimes in several visits.
Every return must be checked against what is still returnable on each sale
line, and a return must never leave a partial record behind.

DESIGN PRINCIPLES:
- Returns are append-only: SaleReturn/SaleReturnLine rows are never updated
- Already-returned quantity is always a live aggregate over return lines,
  never a counter trusted from the client or from an earlier lookup
- Validation and insert happen in ONE transaction, with the sale and its
  lines locked, so concurrent returns cannot jointly over-return a line
- Line amount = quantity x the sale line's stored unit price (integer cents);
  the return total is the sum of those exact amounts

LIFECYCLE:
1. search_sales / lookup_returnable - find the sale, see what is left
2. submit_return - validate and commit (or reject with no effect)
3. get_return - display/reprint the committed return
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Product, Sale, SaleLine, SaleReturn, SaleReturnLine
from ..money import format_cents, line_amount_cents
from .concurrency import lock_for_update
from .document_service import next_document_number
from .sale_filters import build_sale_filters, compile_filters, format_receipt_number
from posdesk.time_utils import utcnow


# =============================================================================
# RETURN CONSTANTS
# =============================================================================

RETURN_TYPE_REFUND = "refund"
RETURN_TYPE_EXCHANGE = "exchange"

REFUND_METHOD_CASH = "cash"
REFUND_METHOD_STORE_CREDIT = "store_credit"
REFUND_METHOD_CARD = "card"

REFUND_METHODS = (REFUND_METHOD_CASH, REFUND_METHOD_STORE_CREDIT, REFUND_METHOD_CARD)

# Refunds go back as cash, exchanges as store credit
ALLOWED_REFUND_METHODS = {
    RETURN_TYPE_REFUND: {REFUND_METHOD_CASH},
    RETURN_TYPE_EXCHANGE: {REFUND_METHOD_STORE_CREDIT},
}

ITEM_CONDITIONS = ("new", "used", "damaged")
RESTOCKABLE_CONDITIONS = {"new", "used"}

RETURN_REASONS = (
    ("defective", "Defective Product"),
    ("wrong_item", "Wrong Item"),
    ("not_as_described", "Not as Described"),
    ("changed_mind", "Changed Mind"),
    ("size_issue", "Size/Fit Issue"),
    ("other", "Other"),
)

RETURN_DOCUMENT_TYPE = "SALE_RETURN"


# =============================================================================
# ERRORS
# =============================================================================

class ReturnError(Exception):
    """Base class for return operation errors."""

    def to_dict(self) -> dict:
        return {"error": str(self)}


class ReturnNotFoundError(ReturnError):
    """Referenced sale, return or sale line does not exist."""


class InvalidReturnError(ReturnError):
    """Malformed or semantically invalid return request."""

    def __init__(self, message: str, *, field: str | None = None, sale_line_item_id: int | None = None):
        super().__init__(message)
        self.field = field
        self.sale_line_item_id = sale_line_item_id

    def to_dict(self) -> dict:
        payload = {"error": str(self)}
        if self.field:
            payload["field"] = self.field
        if self.sale_line_item_id is not None:
            payload["sale_line_item_id"] = self.sale_line_item_id
        return payload


class ConflictingStateError(ReturnError):
    """A concurrent return changed the sale while this one was committing."""


class StorageFailureError(ReturnError):
    """The database could not commit the return; nothing was applied."""


# =============================================================================
# CALLER CONTEXT
# =============================================================================

@dataclass(frozen=True)
class ReturnContext:
    """
    Who is calling, resolved by the web layer before the engine runs.

    user_id is recorded on committed returns. Without
    can_view_customer_contact, phone numbers and emails are masked.
    """
    user_id: int | None = None
    can_view_customer_contact: bool = False


ANONYMOUS_CONTEXT = ReturnContext()


@dataclass(frozen=True)
class ReturnItemRequest:
    sale_line_item_id: int
    quantity: int | None
    condition: str
    condition_notes: str | None = None


# =============================================================================
# PRIVACY
# =============================================================================

def mask_phone(phone: str | None) -> str | None:
    """Keep the last four digits: "555-123-4567" -> "***-***-4567"."""
    if not phone:
        return phone
    total_digits = sum(ch.isdigit() for ch in phone)
    seen = 0
    masked = []
    for ch in phone:
        if ch.isdigit():
            seen += 1
            masked.append(ch if seen > total_digits - 4 else "*")
        else:
            masked.append(ch)
    return "".join(masked)


def mask_email(email: str | None) -> str | None:
    """Keep the first character of the mailbox: "jane@x.com" -> "j***@x.com"."""
    if not email or "@" not in email:
        return email
    local, domain = email.split("@", 1)
    if not local:
        return email
    return f"{local[0]}{'*' * max(len(local) - 1, 3)}@{domain}"


def _receipt_number(sale_id: int) -> str:
    return format_receipt_number(sale_id, current_app.config.get("RECEIPT_PREFIX", "RCP"))


def _sale_header(sale: Sale, context: ReturnContext) -> dict:
    header = sale.to_dict()
    header["receipt_number"] = _receipt_number(sale.id)
    if not context.can_view_customer_contact:
        header["customer_phone"] = mask_phone(sale.customer_phone)
        header["customer_email"] = mask_email(sale.customer_email)
    return header


# =============================================================================
# RETURNABILITY
# =============================================================================

def _returned_quantities(sale_id: int) -> dict[int, int]:
    """
    Already-returned quantity for every line of a sale.

    One grouped aggregate over all lines; lines with no returns come back
    as 0 through COALESCE, not as missing keys or NULL.
    """
    rows = (
        db.session.query(
            SaleLine.id,
            db.func.coalesce(db.func.sum(SaleReturnLine.quantity), 0),
        )
        .outerjoin(SaleReturnLine, SaleReturnLine.sale_line_id == SaleLine.id)
        .filter(SaleLine.sale_id == sale_id)
        .group_by(SaleLine.id)
        .all()
    )
    return {line_id: int(returned) for line_id, returned in rows}


def lookup_returnable(sale_id: int, context: ReturnContext = ANONYMOUS_CONTEXT) -> dict:
    """
    Get a sale with the returnable quantity of every line.

    A fully returned sale is not an error: every line simply shows
    available_for_return = 0 and `fully_returned` is True.

    Raises:
        ReturnNotFoundError: If the sale does not exist
    """
    sale = db.session.get(Sale, sale_id) if sale_id and sale_id > 0 else None
    if not sale:
        raise ReturnNotFoundError(f"Sale {sale_id} not found")

    returned = _returned_quantities(sale.id)
    lines = (
        db.session.query(SaleLine)
        .filter(SaleLine.sale_id == sale.id)
        .order_by(SaleLine.id.asc())
        .all()
    )

    items = []
    for line in lines:
        already_returned = returned.get(line.id, 0)
        items.append({
            "sale_line_item_id": line.id,
            "product_id": line.product_id,
            "product_name": line.product.name if line.product else None,
            "sku": line.product.sku if line.product else None,
            "quantity": line.quantity,
            "unit_price_cents": line.unit_price_cents,
            "unit_price": format_cents(line.unit_price_cents),
            "line_total": format_cents(line.line_total_cents),
            "already_returned": already_returned,
            "available_for_return": max(line.quantity - already_returned, 0),
        })

    return {
        "sale": _sale_header(sale, context),
        "items": items,
        "fully_returned": all(item["available_for_return"] == 0 for item in items),
    }


# =============================================================================
# SEARCH
# =============================================================================

def search_sales(
    *,
    term: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    receipt_number: str | None = None,
    context: ReturnContext = ANONYMOUS_CONTEXT,
    limit: int | None = None,
) -> dict:
    """
    Search sales for the returns desk, newest first.

    No filters at all returns the most recent sales. Malformed filters are
    dropped (and listed under `ignored_filters`) rather than failing the search.
    Each sale carries the total already returned against it.
    """
    if limit is None:
        limit = current_app.config.get("RETURN_SEARCH_LIMIT", 50)

    filters, dropped = build_sale_filters(
        term=term,
        date_from=date_from,
        date_to=date_to,
        receipt_number=receipt_number,
    )
    if dropped:
        current_app.logger.warning("Ignoring malformed sale search filters: %s", ", ".join(dropped))

    returned_totals = (
        db.session.query(
            SaleReturn.sale_id.label("sale_id"),
            db.func.sum(SaleReturnLine.amount_cents).label("returned_cents"),
        )
        .join(SaleReturnLine, SaleReturnLine.return_id == SaleReturn.id)
        .group_by(SaleReturn.sale_id)
        .subquery()
    )

    query = (
        db.session.query(Sale, db.func.coalesce(returned_totals.c.returned_cents, 0))
        .outerjoin(returned_totals, returned_totals.c.sale_id == Sale.id)
    )

    clauses = compile_filters(filters)
    if clauses:
        query = query.filter(*clauses)

    rows = query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()

    sales = []
    for sale, returned_cents in rows:
        header = _sale_header(sale, context)
        sales.append({
            "id": sale.id,
            "receipt_number": header["receipt_number"],
            "created_at": header["created_at"],
            "customer_name": header["customer_name"],
            "customer_phone": header["customer_phone"],
            "customer_email": header["customer_email"],
            "payment_method": sale.payment_method,
            "final_amount_cents": sale.final_amount_cents,
            "final_amount": format_cents(sale.final_amount_cents),
            "total_returned_cents": int(returned_cents),
            "total_returned": format_cents(int(returned_cents)),
        })

    return {"sales": sales, "count": len(sales), "ignored_filters": dropped}


# =============================================================================
# VALIDATION
# =============================================================================

def _as_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"\s*-?\d+\s*", value):
        return int(value)
    return None


def _optional_text(value, field: str, sale_line_item_id: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidReturnError(
            f"{field} must be text", field=field, sale_line_item_id=sale_line_item_id,
        )
    return value.strip() or None


def _validate_return_header(return_type, refund_method, reason) -> None:
    if not isinstance(return_type, str) or return_type not in ALLOWED_REFUND_METHODS:
        raise InvalidReturnError(
            f"Invalid return type: {return_type!r}. Must be 'refund' or 'exchange'",
            field="return_type",
        )
    if not isinstance(refund_method, str) or refund_method not in ALLOWED_REFUND_METHODS[return_type]:
        allowed = ", ".join(sorted(ALLOWED_REFUND_METHODS[return_type]))
        raise InvalidReturnError(
            f"Refund method {refund_method!r} is not allowed for {return_type} returns (allowed: {allowed})",
            field="refund_method",
        )
    if not isinstance(reason, str) or not reason.strip():
        raise InvalidReturnError("Return reason is required", field="reason")


def _parse_item(raw) -> ReturnItemRequest:
    if isinstance(raw, ReturnItemRequest):
        return raw
    if not isinstance(raw, dict):
        raise InvalidReturnError("Each return item must be an object", field="items")

    sale_line_item_id = _as_int(raw.get("sale_line_item_id"))
    if sale_line_item_id is None:
        raise InvalidReturnError("Each return item needs a sale_line_item_id", field="sale_line_item_id")

    return ReturnItemRequest(
        sale_line_item_id=sale_line_item_id,
        quantity=_as_int(raw.get("quantity")),
        condition=raw.get("condition"),
        condition_notes=_optional_text(raw.get("condition_notes"), "condition_notes", sale_line_item_id),
    )


def _validate_items_belong_to_sale(
    requested: list[ReturnItemRequest],
    lines: dict[int, SaleLine],
    sale_id: int,
) -> None:
    seen: set[int] = set()
    for item in requested:
        if item.sale_line_item_id not in lines:
            raise InvalidReturnError(
                f"Sale line {item.sale_line_item_id} does not belong to sale {sale_id}",
                field="sale_line_item_id",
                sale_line_item_id=item.sale_line_item_id,
            )
        if item.sale_line_item_id in seen:
            raise InvalidReturnError(
                f"Sale line {item.sale_line_item_id} is listed more than once",
                field="sale_line_item_id",
                sale_line_item_id=item.sale_line_item_id,
            )
        seen.add(item.sale_line_item_id)
        if item.condition not in ITEM_CONDITIONS:
            raise InvalidReturnError(
                f"Invalid condition {item.condition!r} for sale line {item.sale_line_item_id}. "
                f"Must be one of: {', '.join(ITEM_CONDITIONS)}",
                field="condition",
                sale_line_item_id=item.sale_line_item_id,
            )


def _validate_quantities(
    requested: list[ReturnItemRequest],
    lines: dict[int, SaleLine],
    returned: dict[int, int],
) -> None:
    for item in requested:
        line = lines[item.sale_line_item_id]
        available = line.quantity - returned.get(line.id, 0)
        name = line.product.name if line.product else f"line {line.id}"
        if item.quantity is None or item.quantity <= 0:
            raise InvalidReturnError(
                f"Return quantity for {name} must be a positive whole number",
                field="quantity",
                sale_line_item_id=line.id,
            )
        if item.quantity > available:
            raise InvalidReturnError(
                f"Cannot return {item.quantity} of {name}. Original quantity: {line.quantity}, "
                f"already returned: {returned.get(line.id, 0)}, available: {max(available, 0)}",
                field="quantity",
                sale_line_item_id=line.id,
            )


# =============================================================================
# COMMIT
# =============================================================================

def submit_return(
    sale_id: int,
    return_type: str,
    refund_method: str,
    reason: str,
    notes: str | None = None,
    items: list | None = None,
    context: ReturnContext = ANONYMOUS_CONTEXT,
) -> dict:
    """
    Validate and commit a return against a sale, all or nothing.

    Validation order (first violation wins):
    1. Sale exists
    2. Return type / refund method pairing
    3. Reason present
    4. At least one item
    5. Every item's line belongs to the sale (once), condition is known
    6. Every quantity is positive and within what is still returnable

    The sale and its lines are locked and availability is recomputed inside
    the same transaction that inserts the return, then the sale's
    returned_amount_cents is bumped (version-checked).

    Raises:
        ReturnNotFoundError: Sale does not exist
        InvalidReturnError: Request rejected by validation
        ConflictingStateError: A concurrent return committed first
        StorageFailureError: Database failure; nothing was applied
    """
    try:
        sale = lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id)).first()
        if not sale:
            raise ReturnNotFoundError(f"Sale {sale_id} not found")

        _validate_return_header(return_type, refund_method, reason)
        notes = _optional_text(notes, "notes")

        if items is not None and not isinstance(items, list):
            raise InvalidReturnError("Return items must be a list", field="items")
        if not items:
            raise InvalidReturnError("No items selected for return", field="items")
        requested = [_parse_item(raw) for raw in items]

        sale_lines = lock_for_update(
            db.session.query(SaleLine).filter(SaleLine.sale_id == sale.id).order_by(SaleLine.id)
        ).all()
        lines = {line.id: line for line in sale_lines}

        _validate_items_belong_to_sale(requested, lines, sale.id)
        _validate_quantities(requested, lines, _returned_quantities(sale.id))

        amounts = [
            line_amount_cents(item.quantity, lines[item.sale_line_item_id].unit_price_cents)
            for item in requested
        ]
        total_cents = sum(amounts)

        return_doc = SaleReturn(
            return_number=next_document_number(
                document_type=RETURN_DOCUMENT_TYPE,
                prefix=current_app.config.get("RETURN_NUMBER_PREFIX", "RET"),
            ),
            sale_id=sale.id,
            return_type=return_type,
            refund_method=refund_method,
            reason=reason.strip(),
            notes=notes,
            total_amount_cents=total_cents,
            created_by_user_id=context.user_id,
            created_at=utcnow(),
        )
        db.session.add(return_doc)
        db.session.flush()

        for item, amount in zip(requested, amounts):
            line = lines[item.sale_line_item_id]
            restock = item.condition in RESTOCKABLE_CONDITIONS
            db.session.add(SaleReturnLine(
                return_doc=return_doc,
                sale_line_id=line.id,
                product_id=line.product_id,
                quantity=item.quantity,
                condition=item.condition,
                condition_notes=item.condition_notes,
                unit_price_cents=line.unit_price_cents,
                amount_cents=amount,
                restocked=restock,
                created_at=utcnow(),
            ))
            if restock:
                db.session.query(Product).filter(Product.id == line.product_id).update(
                    {Product.stock_quantity: Product.stock_quantity + item.quantity},
                    synchronize_session=False,
                )
            db.session.flush()

        sale.returned_amount_cents = (sale.returned_amount_cents or 0) + total_cents
        # zero-cent returns still need the version-checked UPDATE
        flag_modified(sale, "returned_amount_cents")
        db.session.commit()

    except ReturnError:
        db.session.rollback()
        raise
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictingStateError(
            f"Sale {sale_id} was changed by another return. Reload the sale and try again"
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to commit return for sale %s (user %s, %d items)",
            sale_id, context.user_id, len(items or []),
        )
        raise StorageFailureError("Return could not be saved") from exc

    current_app.logger.info(
        "Return %s committed for sale %s: %d lines, total %s",
        return_doc.return_number, sale_id, len(amounts), format_cents(total_cents),
    )

    return {
        "return_id": return_doc.id,
        "return_number": return_doc.return_number,
        "return": _return_record(return_doc),
        "line_items": [line.to_dict() for line in return_doc.lines],
        "total_amount_cents": total_cents,
        "total_amount": format_cents(total_cents),
    }


# =============================================================================
# QUERIES
# =============================================================================

def _return_record(return_doc: SaleReturn) -> dict:
    record = return_doc.to_dict()
    record["receipt_number"] = _receipt_number(return_doc.sale_id)
    return record


def get_return(return_id: int, context: ReturnContext = ANONYMOUS_CONTEXT) -> dict:
    """
    Get a committed return with its lines, for display or printing.

    Raises:
        ReturnNotFoundError: If the return does not exist
    """
    return_doc = db.session.get(SaleReturn, return_id) if return_id and return_id > 0 else None
    if not return_doc:
        raise ReturnNotFoundError(f"Return {return_id} not found")

    return {
        "return_record": _return_record(return_doc),
        "line_items": [line.to_dict() for line in return_doc.lines],
        "sale": _sale_header(return_doc.sale, context),
    }


def list_sale_returns(sale_id: int) -> list[dict]:
    """All returns committed against a sale, newest first."""
    if not db.session.get(Sale, sale_id):
        raise ReturnNotFoundError(f"Sale {sale_id} not found")

    returns = (
        db.session.query(SaleReturn)
        .filter(SaleReturn.sale_id == sale_id)
        .order_by(SaleReturn.created_at.desc(), SaleReturn.id.desc())
        .all()
    )
    return [_return_record(r) for r in returns]


def return_options() -> dict:
    """Choices the returns form offers (types, refund methods, reasons, conditions)."""
    return {
        "return_types": [
            {"value": return_type, "refund_methods": sorted(methods)}
            for return_type, methods in ALLOWED_REFUND_METHODS.items()
        ],
        "refund_methods": list(REFUND_METHODS),
        "reasons": [{"value": value, "label": label} for value, label in RETURN_REASONS],
        "conditions": list(ITEM_CONDITIONS),
    }
