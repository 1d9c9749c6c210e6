from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from tyrepos.time_utils import to_utc_z, utcnow
from tyrepos.validation import money_out


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    description = db.Column(db.String(200), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Item(db.Model):
    """
    Sellable stock item (tyres, tubes, services sold by unit).

    CODE DESIGN:
    item_code ("RT0001") is system-assigned from the "item_code" sequence
    and never reused. Barcode is optional but unique when present.

    quantity_in_stock is only changed through guarded UPDATE statements
    in stock_service / sales_service so it can never go negative.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.UniqueConstraint("item_code", name="uq_items_item_code"),
        db.UniqueConstraint("name", name="uq_items_name"),
        db.UniqueConstraint("barcode", name="uq_items_barcode"),
        db.CheckConstraint("quantity_in_stock >= 0", name="ck_items_quantity_non_negative"),
        db.Index("ix_items_category_active", "category_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    item_code = db.Column(db.String(10), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    barcode = db.Column(db.String(50), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    description = db.Column(db.String(500), nullable=True)

    quantity_in_stock = db.Column(db.Integer, nullable=False, default=0)
    location = db.Column(db.String(100), nullable=True)
    lower_limit = db.Column(db.Integer, nullable=True)

    purchase_price = db.Column(db.Numeric(12, 2), nullable=False)
    retail_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", backref=db.backref("items", lazy=True))

    def __repr__(self) -> str:
        return f"<Item id={self.id} code={self.item_code!r} name={self.name!r} qty={self.quantity_in_stock}>"

    @property
    def is_low_stock(self) -> bool:
        if self.lower_limit is None:
            return False
        return self.quantity_in_stock <= self.lower_limit

    @property
    def profit_margin(self) -> float:
        purchase = Decimal(self.purchase_price or 0)
        if purchase <= 0:
            return 0.0
        retail = Decimal(self.retail_price or 0)
        return round(float((retail - purchase) / purchase * 100), 2)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_code": self.item_code,
            "name": self.name,
            "barcode": self.barcode,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "description": self.description,
            "quantity_in_stock": self.quantity_in_stock,
            "location": self.location,
            "lower_limit": self.lower_limit,
            "purchase_price": money_out(self.purchase_price),
            "retail_price": money_out(self.retail_price),
            "discount": money_out(self.discount),
            "is_active": self.is_active,
            "is_low_stock": self.is_low_stock,
            "profit_margin": self.profit_margin,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockPurchase(db.Model):
    """
    One received batch of stock (an "add" adjustment with a cost).

    total_purchase_value is always quantity * purchase_price at write time.
    """
    __tablename__ = "stock_purchases"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_stock_purchases_quantity_positive"),
        db.Index("ix_stock_purchases_item_created", "item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    # Snapshots survive item renames
    item_code = db.Column(db.String(10), nullable=False)
    item_name = db.Column(db.String(100), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    purchase_price = db.Column(db.Numeric(12, 2), nullable=False)
    retail_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_purchase_value = db.Column(db.Numeric(14, 2), nullable=False)

    added_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    added_by_name = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    item = db.relationship("Item", backref=db.backref("purchases", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_code": self.item_code,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "purchase_price": money_out(self.purchase_price),
            "retail_price": money_out(self.retail_price),
            "total_purchase_value": money_out(self.total_purchase_value),
            "added_by_id": self.added_by_id,
            "added_by_name": self.added_by_name,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
