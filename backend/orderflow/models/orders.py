from __future__ import annotations

from ..extensions import db
from orderflow.time_utils import to_utc_z


class Order(db.Model):
    """
    Customer order driving the stock and credit ledgers.

    LIFECYCLE (see order_service / fulfillment_service):
    pending -> approved -> processing -> shipped -> delivered
    pending -> approved -> accepted -> packing -> done_packing
            -> handed_to_delivery -> transported
    Any non-terminal state may move to cancelled.

    Customer, product and store names are denormalized at creation so the
    order reads the same after catalog edits.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "order_number", name="uq_orders_org_number"),
        db.Index("ix_orders_org_status", "org_id", "status"),
        db.Index("ix_orders_org_created", "org_id", "created_at"),
        db.Index("ix_orders_packer_status", "assigned_packer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    order_number = db.Column(db.String(32), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(32), nullable=False, index=True)

    # cash | credit | bank_transfer | mobile_money
    payment_type = db.Column(db.String(32), nullable=False)
    # pending | paid | partial | overdue
    payment_status = db.Column(db.String(16), nullable=False, default="pending")

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    items_count = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    assigned_packer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # customer_pickup | local_delivery | cargo_delivery
    delivery_method = db.Column(db.String(32), nullable=True)
    delivery_street = db.Column(db.String(255), nullable=True)
    delivery_city = db.Column(db.String(120), nullable=True)
    delivery_state = db.Column(db.String(120), nullable=True)
    delivery_zip_code = db.Column(db.String(32), nullable=True)
    delivery_country = db.Column(db.String(120), nullable=True)

    transporter_name = db.Column(db.String(128), nullable=True)
    transporter_phone = db.Column(db.String(32), nullable=True)
    transporter_vehicle_number = db.Column(db.String(32), nullable=True)
    transporter_company = db.Column(db.String(128), nullable=True)

    cargo_receipt_number = db.Column(db.String(64), nullable=True)
    cargo_transporter_name = db.Column(db.String(128), nullable=True)
    cargo_transporter_phone = db.Column(db.String(32), nullable=True)
    cargo_image_url = db.Column(db.String(512), nullable=True)
    cargo_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    prepared_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    prepared_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    assigned_packer = db.relationship("User", foreign_keys=[assigned_packer_id])
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.line_number",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def delivery_address(self) -> dict | None:
        fields = {
            "street": self.delivery_street,
            "city": self.delivery_city,
            "state": self.delivery_state,
            "zip_code": self.delivery_zip_code,
            "country": self.delivery_country,
        }
        if not any(fields.values()):
            return None
        return fields

    @property
    def transporter_details(self) -> dict | None:
        if not self.transporter_name:
            return None
        return {
            "name": self.transporter_name,
            "phone": self.transporter_phone,
            "vehicle_number": self.transporter_vehicle_number,
            "company": self.transporter_company,
        }

    @property
    def cargo_receipt(self) -> dict | None:
        if not self.cargo_receipt_number:
            return None
        return {
            "receipt_number": self.cargo_receipt_number,
            "transporter_name": self.cargo_transporter_name,
            "transporter_phone": self.cargo_transporter_phone,
            "image_url": self.cargo_image_url,
            "uploaded_at": to_utc_z(self.cargo_uploaded_at) if self.cargo_uploaded_at else None,
        }

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status!r}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "status": self.status,
            "payment_type": self.payment_type,
            "payment_status": self.payment_status,
            "total_amount_cents": self.total_amount_cents,
            "items_count": self.items_count,
            "notes": self.notes,
            "assigned_packer_id": self.assigned_packer_id,
            "delivery_method": self.delivery_method,
            "delivery_address": self.delivery_address,
            "transporter_details": self.transporter_details,
            "cargo_receipt": self.cargo_receipt,
            "created_by_user_id": self.created_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "prepared_by_user_id": self.prepared_by_user_id,
            "prepared_at": to_utc_z(self.prepared_at) if self.prepared_at else None,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Order line. total_price_cents == unit_price_cents * quantity."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "line_number", name="uq_order_items_order_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(32), nullable=True)

    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    store_name = db.Column(db.String(120), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "unit": self.unit,
            "store_id": self.store_id,
            "store_name": self.store_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }


class OrderSequence(db.Model):
    """
    Atomic per-organization order number sequence.

    Incremented with a single UPDATE so concurrent creators never share a number.
    """
    __tablename__ = "order_sequences"
    __table_args__ = (
        db.UniqueConstraint("org_id", name="uq_order_sequences_org"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class LedgerIntent(db.Model):
    """
    Write-ahead record of a best-effort ledger side effect.

    PENDING is written before the effect runs, then moved to APPLIED or
    FAILED. FAILED intents can be replayed; SUPERSEDED means the order moved
    on and replaying would no longer be correct.

    Enough of the payload (product/store/quantity, customer/amount) is kept
    on the row to replay after the order itself has been deleted.
    """
    __tablename__ = "ledger_intents"
    __table_args__ = (
        db.Index("ix_ledger_intents_org_status", "org_id", "status"),
        db.Index("ix_ledger_intents_order", "order_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False)

    # STOCK_RESERVE | STOCK_DEDUCT | STOCK_RESTORE | CREDIT_INVOICE | CREDIT_REFUND
    intent_type = db.Column(db.String(32), nullable=False)
    # PENDING | APPLIED | FAILED | SUPERSEDED
    status = db.Column(db.String(16), nullable=False, default="PENDING")

    order_id = db.Column(db.Integer, nullable=True)
    order_item_id = db.Column(db.Integer, nullable=True)
    reference = db.Column(db.String(64), nullable=True)

    product_id = db.Column(db.Integer, nullable=True)
    store_id = db.Column(db.Integer, nullable=True)
    quantity = db.Column(db.Integer, nullable=True)

    customer_id = db.Column(db.Integer, nullable=True)
    amount_cents = db.Column(db.Integer, nullable=True)

    attempts = db.Column(db.Integer, nullable=False, default=0)
    error_message = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    applied_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "intent_type": self.intent_type,
            "status": self.status,
            "order_id": self.order_id,
            "order_item_id": self.order_item_id,
            "reference": self.reference,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "quantity": self.quantity,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "attempts": self.attempts,
            "error_message": self.error_message,
            "created_at": to_utc_z(self.created_at),
            "applied_at": to_utc_z(self.applied_at) if self.applied_at else None,
        }
