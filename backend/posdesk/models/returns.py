from __future__ import annotations

from ..extensions import db
from posdesk.money import format_cents
from posdesk.time_utils import to_utc_z

class SaleReturn(db.Model):
    """
    Customer return against a completed sale.

    APPEND-ONLY: A return and its lines are written once, in the same
    transaction, and never updated or deleted. Availability of a sale line
    is always derived from the sum of its return lines.
    """
    __tablename__ = "sale_returns"
    __table_args__ = (
        db.Index("ix_sale_returns_sale_created", "sale_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable return number (e.g., "RET-000123")
    return_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    return_type = db.Column(db.String(16), nullable=False)    # refund, exchange
    refund_method = db.Column(db.String(16), nullable=False)  # cash, store_credit, card

    reason = db.Column(db.String(64), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    # Sum of line amounts
    total_amount_cents = db.Column(db.Integer, nullable=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))
    created_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_number": self.return_number,
            "sale_id": self.sale_id,
            "return_type": self.return_type,
            "refund_method": self.refund_method,
            "reason": self.reason,
            "notes": self.notes,
            "total_amount_cents": self.total_amount_cents,
            "total_amount": format_cents(self.total_amount_cents),
            "created_by_user_id": self.created_by_user_id,
            "created_by": self.created_by.username if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }

class SaleReturnLine(db.Model):
    """One returned sale line. Amount = quantity x the sale line's unit price."""
    __tablename__ = "sale_return_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("sale_returns.id"), nullable=False, index=True)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sale_lines.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    condition = db.Column(db.String(16), nullable=False)  # new, used, damaged
    condition_notes = db.Column(db.Text, nullable=True)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    # True when the units went back into sellable stock
    restocked = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    return_doc = db.relationship("SaleReturn", backref=db.backref("lines", lazy=True, order_by="SaleReturnLine.id"))
    sale_line = db.relationship("SaleLine", backref=db.backref("return_lines", lazy=True))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "sale_line_item_id": self.sale_line_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "sku": self.product.sku if self.product else None,
            "quantity": self.quantity,
            "condition": self.condition,
            "condition_notes": self.condition_notes,
            "unit_price_cents": self.unit_price_cents,
            "unit_price": format_cents(self.unit_price_cents),
            "amount_cents": self.amount_cents,
            "amount": format_cents(self.amount_cents),
            "restocked": self.restocked,
            "created_at": to_utc_z(self.created_at),
        }
