from __future__ import annotations

from ..extensions import db
from tyrepos.time_utils import to_utc_z, utcnow
from tyrepos.validation import money_out

PAYMENT_METHODS = ("cash", "card", "credit", "cheque")
PAYMENT_STATUSES = ("pending", "completed", "failed")
WALK_IN_CUSTOMER = "Walk-in Customer"


class Sale(db.Model):
    """
    Recorded sale (bill).

    LIFECYCLE:
    A sale is written once, in the same transaction that decrements stock
    for every line. It is never edited; an admin may delete it, which
    restores the stock it consumed.

    total is stored as submitted by the till. subtotal + tax mismatches
    are logged, not rejected.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("bill_number", name="uq_sales_bill_number"),
        db.Index("ix_sales_status_created", "payment_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable bill number (e.g., "INV-00042")
    bill_number = db.Column(db.String(32), nullable=False)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False)
    tax = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 2), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(100), nullable=False, default=WALK_IN_CUSTOMER)
    customer_nic = db.Column(db.String(12), nullable=True, index=True)
    customer_phone = db.Column(db.String(20), nullable=True)

    amount_paid = db.Column(db.Numeric(14, 2), nullable=True)
    balance = db.Column(db.Numeric(14, 2), nullable=True)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    cashier = db.relationship("User", foreign_keys=[cashier_id])
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
    )

    def __repr__(self) -> str:
        return f"<Sale id={self.id} bill={self.bill_number!r} total={self.total}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "bill_number": self.bill_number,
            "subtotal": money_out(self.subtotal),
            "tax": money_out(self.tax),
            "total": money_out(self.total),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_nic": self.customer_nic,
            "customer_phone": self.customer_phone,
            "amount_paid": money_out(self.amount_paid),
            "balance": money_out(self.balance),
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier.name if self.cashier else None,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    # Snapshots at sale time
    item_name = db.Column(db.String(100), nullable=False)
    item_code = db.Column(db.String(10), nullable=False)
    purchase_price = db.Column(db.Numeric(12, 2), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    line_total = db.Column(db.Numeric(14, 2), nullable=False)

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "item_id": self.item_id,
            "name": self.item_name,
            "item_code": self.item_code,
            "quantity": self.quantity,
            "price": money_out(self.price),
            "discount": money_out(self.discount),
            "total": money_out(self.line_total),
        }
