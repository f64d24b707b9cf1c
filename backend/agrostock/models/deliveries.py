from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_str


DELIVERY_DELIVERED = "delivered"
DELIVERY_CANCELLED = "cancelled"


class Delivery(db.Model):
    """
    Essential-oil vendor delivery (simple flow).

    The full requested quantity is reserved out of the source stock entry
    at creation; cancelling restores all of it. Cancelled is terminal.
    """
    __tablename__ = "deliveries"
    __table_args__ = (
        db.CheckConstraint("delivered_quantity <= requested_quantity", name="delivered_le_requested"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_entry_id = db.Column(db.Integer, db.ForeignKey("stock_entries.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    requested_quantity = db.Column(db.Numeric(18, 3), nullable=False)
    delivered_quantity = db.Column(db.Numeric(18, 3), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=DELIVERY_DELIVERED, index=True)

    destination = db.Column(db.String(255), nullable=True)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    stock_entry = db.relationship("StockEntry", backref=db.backref("deliveries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_entry_id": self.stock_entry_id,
            "material_type": self.stock_entry.material_type if self.stock_entry else None,
            "owner": self.stock_entry.owner_key if self.stock_entry else None,
            "created_by_user_id": self.created_by_user_id,
            "recipient_id": self.recipient_id,
            "requested_quantity": decimal_str(self.requested_quantity),
            "delivered_quantity": decimal_str(self.delivered_quantity),
            "status": self.status,
            "destination": self.destination,
            "cancellation_reason": self.cancellation_reason,
            "created_at": to_utc_z(self.created_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
