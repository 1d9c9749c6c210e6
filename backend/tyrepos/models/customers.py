from __future__ import annotations

from datetime import datetime

from ..extensions import db
from tyrepos.time_utils import to_utc_z, utcnow
from tyrepos.validation import money_out

CUSTOMER_TYPES = ("regular", "wholesale", "vip", "banned")
GENDERS = ("male", "female", "other")

ACTIVE_WINDOW_DAYS = 30
INACTIVE_WINDOW_DAYS = 90


def activity_status_for(last_purchase_at: datetime | None, now: datetime | None = None) -> str:
    """new (never bought) / active (<=30d) / inactive (<=90d) / dormant."""
    if last_purchase_at is None:
        return "new"
    days = ((now or utcnow()) - last_purchase_at).days
    if days <= ACTIVE_WINDOW_DAYS:
        return "active"
    if days <= INACTIVE_WINDOW_DAYS:
        return "inactive"
    return "dormant"


class Customer(db.Model):
    """
    Named customer identified by national ID (NIC).

    Purchase statistics (purchase_count, total_spent, loyalty_points,
    first/last purchase dates) are maintained by customer_service after each
    recorded sale. Deleting a customer only deactivates it.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("nic", name="uq_customers_nic"),
        db.Index("ix_customers_type_active", "customer_type", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    nic = db.Column(db.String(12), nullable=False)
    name = db.Column(db.String(100), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)

    street = db.Column(db.String(200), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    district = db.Column(db.String(100), nullable=True)
    postal_code = db.Column(db.String(10), nullable=True)

    date_of_birth = db.Column(db.Date, nullable=True)
    gender = db.Column(db.String(10), nullable=True)

    customer_type = db.Column(db.String(16), nullable=False, default="regular")
    credit_limit = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    outstanding_balance = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    total_spent = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    purchase_count = db.Column(db.Integer, nullable=False, default=0)
    first_purchase_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_purchase_at = db.Column(db.DateTime(timezone=True), nullable=True)
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)

    preferred_payment_method = db.Column(db.String(16), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Customer id={self.id} nic={self.nic!r} name={self.name!r}>"

    @property
    def average_purchase_amount(self) -> float:
        if not self.purchase_count:
            return 0.0
        return round(float(self.total_spent) / self.purchase_count, 2)

    @property
    def activity_status(self) -> str:
        return activity_status_for(self.last_purchase_at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "nic": self.nic,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": {
                "street": self.street,
                "city": self.city,
                "district": self.district,
                "postal_code": self.postal_code,
            },
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "gender": self.gender,
            "customer_type": self.customer_type,
            "credit_limit": money_out(self.credit_limit),
            "outstanding_balance": money_out(self.outstanding_balance),
            "total_spent": money_out(self.total_spent),
            "purchase_count": self.purchase_count,
            "average_purchase_amount": self.average_purchase_amount,
            "first_purchase_at": to_utc_z(self.first_purchase_at),
            "last_purchase_at": to_utc_z(self.last_purchase_at),
            "loyalty_points": self.loyalty_points,
            "preferred_payment_method": self.preferred_payment_method,
            "notes": self.notes,
            "is_active": self.is_active,
            "activity_status": self.activity_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
