from __future__ import annotations

from ..extensions import db
from tyrepos.time_utils import to_utc_z, utcnow
from tyrepos.validation import money_out

# Audit trail invariants:
# - Both tables are append-only; rows are never updated or deleted by the app.
# - log_id / sequence_number come from the sequence counter, never max()+1.
# - Stock edit rows written during a sale share the sale's transaction.

STOCK_OPERATIONS = (
    "stock_update",
    "price_update",
    "purchase_update",
    "discount_update",
    "general_update",
    "sale",
    "sale_reversal",
)


class ActivityLog(db.Model):
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.UniqueConstraint("log_id", name="uq_activity_logs_log_id"),
        db.Index("ix_activity_logs_activity_created", "activity", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable id (e.g., "LOG-000123")
    log_id = db.Column(db.String(20), nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    user_name = db.Column(db.String(100), nullable=True)

    activity = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(500), nullable=False)

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    entity_type = db.Column(db.String(32), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)

    # "metadata" is reserved on declarative models
    details = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "log_id": self.log_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "activity": self.activity,
            "description": self.description,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "related_entity": {
                "entity_type": self.entity_type,
                "entity_id": self.entity_id,
            } if self.entity_type else None,
            "metadata": self.details or {},
            "created_at": to_utc_z(self.created_at),
        }


class StockEditLog(db.Model):
    __tablename__ = "stock_edit_logs"
    __table_args__ = (
        db.UniqueConstraint("sequence_number", name="uq_stock_edit_logs_sequence"),
        db.Index("ix_stock_edit_logs_item_created", "item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sequence_number = db.Column(db.Integer, nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    user_name = db.Column(db.String(100), nullable=True)

    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True, index=True)
    item_code = db.Column(db.String(10), nullable=False)
    item_name = db.Column(db.String(100), nullable=False)

    operation = db.Column(db.String(32), nullable=False, index=True)

    old_stock = db.Column(db.Integer, nullable=True)
    new_stock = db.Column(db.Integer, nullable=True)
    purchase_quantity = db.Column(db.Integer, nullable=True)

    old_purchase_price = db.Column(db.Numeric(12, 2), nullable=True)
    new_purchase_price = db.Column(db.Numeric(12, 2), nullable=True)
    old_retail_price = db.Column(db.Numeric(12, 2), nullable=True)
    new_retail_price = db.Column(db.Numeric(12, 2), nullable=True)
    old_discount = db.Column(db.Numeric(5, 2), nullable=True)
    new_discount = db.Column(db.Numeric(5, 2), nullable=True)

    reason = db.Column(db.String(500), nullable=True)
    related_sale_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence_number": self.sequence_number,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "item_id": self.item_id,
            "item_code": self.item_code,
            "item_name": self.item_name,
            "operation": self.operation,
            "current_stock": {"old_value": self.old_stock, "new_value": self.new_stock},
            "purchase_quantity": self.purchase_quantity,
            "purchase_price": {
                "old_value": money_out(self.old_purchase_price),
                "new_value": money_out(self.new_purchase_price),
            },
            "retail_price": {
                "old_value": money_out(self.old_retail_price),
                "new_value": money_out(self.new_retail_price),
            },
            "discount": {
                "old_value": money_out(self.old_discount),
                "new_value": money_out(self.new_discount),
            },
            "reason": self.reason,
            "related_sale_id": self.related_sale_id,
            "created_at": to_utc_z(self.created_at),
        }
