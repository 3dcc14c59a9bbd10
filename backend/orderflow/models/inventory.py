from __future__ import annotations

from ..extensions import db
from orderflow.time_utils import to_utc_z


class StockItem(db.Model):
    """
    Materialized stock levels for one (product, store) pair.

    current_stock is physically on hand. reserved_stock is held by pending
    orders. available_stock is what new orders may still claim.

    Invariant after every mutation:
        current_stock >= 0, available_stock >= 0, available_stock <= current_stock

    The row is shared by every order referencing the pair, so all writes go
    through stock_service under a row lock with version_id checking.
    """
    __tablename__ = "stock_items"
    __table_args__ = (
        db.UniqueConstraint("org_id", "product_id", "store_id", name="uq_stock_items_org_product_store"),
        db.Index("ix_stock_items_org_store", "org_id", "store_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)
    available_stock = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_restocked = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("stock_items", lazy=True))
    store = db.relationship("Store", backref=db.backref("stock_items", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.product is not None and self.current_stock <= (self.product.min_stock_level or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "store_id": self.store_id,
            "store_name": self.store.name if self.store else None,
            "current_stock": self.current_stock,
            "reserved_stock": self.reserved_stock,
            "available_stock": self.available_stock,
            "is_low_stock": self.is_low_stock,
            "last_updated": to_utc_z(self.last_updated),
            "last_restocked": to_utc_z(self.last_restocked) if self.last_restocked else None,
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """
    Applied stock delta, one row per ledger operation.

    RESERVE and DEDUCT rows record what was actually taken after flooring,
    so a later RESTORE can put back exactly that amount. reversed_at marks a
    debit that has already been given back; a debit is "outstanding" while
    reversed_at is NULL.

    order_id / order_item_id are plain integers so the audit trail survives
    deletion of the order itself.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_order_item", "order_id", "order_item_id"),
        db.Index("ix_stock_movements_stock_item", "stock_item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    stock_item_id = db.Column(db.Integer, db.ForeignKey("stock_items.id"), nullable=False)

    order_id = db.Column(db.Integer, nullable=True)
    order_item_id = db.Column(db.Integer, nullable=True)

    # RESERVE | DEDUCT | RESTORE | COUNT | RESTOCK
    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    current_delta = db.Column(db.Integer, nullable=False, default=0)
    reserved_delta = db.Column(db.Integer, nullable=False, default=0)
    available_delta = db.Column(db.Integer, nullable=False, default=0)

    # Set on RESERVE/DEDUCT rows once given back; RESTORE rows point at what they reversed
    reversed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reverses_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    reference = db.Column(db.String(64), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    stock_item = db.relationship("StockItem", backref=db.backref("movements", lazy=True))

    @property
    def is_outstanding(self) -> bool:
        return self.movement_type in ("RESERVE", "DEDUCT") and self.reversed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_item_id": self.stock_item_id,
            "order_id": self.order_id,
            "order_item_id": self.order_item_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "current_delta": self.current_delta,
            "reserved_delta": self.reserved_delta,
            "available_delta": self.available_delta,
            "reversed_at": to_utc_z(self.reversed_at) if self.reversed_at else None,
            "reverses_movement_id": self.reverses_movement_id,
            "is_outstanding": self.is_outstanding,
            "reference": self.reference,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
