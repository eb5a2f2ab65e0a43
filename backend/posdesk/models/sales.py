from __future__ import annotations

from ..extensions import db
from posdesk.money import format_cents
from posdesk.time_utils import to_utc_z

class Sale(db.Model):
    """
    Completed point-of-sale transaction.

    Created by the checkout flow and read-only here. The only column the
    returns engine writes is `returned_amount_cents`; writing it bumps
    `version_id`, so two returns committing against the same sale cannot
    both succeed from the same snapshot.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Walk-in customers leave these empty
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    payment_method = db.Column(db.String(32), nullable=False, default="cash")

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    final_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    cashier_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # Sum of committed return line amounts (bookkeeping only)
    returned_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    cashier = db.relationship("User")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": to_utc_z(self.created_at),
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "payment_method": self.payment_method,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "final_amount_cents": self.final_amount_cents,
            "final_amount": format_cents(self.final_amount_cents),
            "cashier_user_id": self.cashier_user_id,
            "cashier_name": self.cashier.username if self.cashier else None,
            "returned_amount_cents": self.returned_amount_cents,
        }

class SaleLine(db.Model):
    """Individual line items on a sale. Immutable."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True, order_by="SaleLine.id"))
    product = db.relationship("Product")
