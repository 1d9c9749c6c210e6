from __future__ import annotations

from ..extensions import db
from tyrepos.time_utils import to_utc_z, utcnow

REPORT_TYPES = ("sales-reports", "inventory-reports", "customer-reports")


class SequenceCounter(db.Model):
    """
    Atomic named counters for displayable numbers.

    WHY: Item codes, bill numbers, log ids and stock-log sequence numbers
    must stay unique under concurrent writers. A single UPDATE ... SET
    next_value = next_value + 1 serializes allocation in the database.
    """
    __tablename__ = "sequence_counters"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_sequence_counters_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False)
    next_value = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "next_value": self.next_value,
            "updated_at": to_utc_z(self.updated_at),
        }


class EmailSubscription(db.Model):
    """
    A recipient of a daily report, delivered at schedule_time (HH:MM,
    business timezone). One subscription per (email, report_type).
    """
    __tablename__ = "email_subscriptions"
    __table_args__ = (
        db.UniqueConstraint("email", "report_type", name="uq_email_subscriptions_email_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    report_type = db.Column(db.String(32), nullable=False, default="sales-reports", index=True)
    schedule_time = db.Column(db.String(5), nullable=False, default="18:00")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    created_by = db.relationship("User", foreign_keys=[created_by_id])

    def __repr__(self) -> str:
        return f"<EmailSubscription id={self.id} email={self.email!r} at={self.schedule_time}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "report_type": self.report_type,
            "schedule_time": self.schedule_time,
            "is_active": self.is_active,
            "last_sent_at": to_utc_z(self.last_sent_at),
            "created_by": {
                "id": self.created_by.id,
                "name": self.created_by.name,
                "email": self.created_by.email,
            } if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
