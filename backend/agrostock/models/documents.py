from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_str


FAMILY_RAW_MATERIAL = "raw_material"
FAMILY_ESSENTIAL_OIL = "essential_oil"

# Canonical status vocabulary, one per document family.
# The two families share payment states but diverge on delivery states.
STATUS_UNPAID = "unpaid"
STATUS_PARTIALLY_PAID = "partially_paid"
STATUS_PAID = "paid"
STATUS_AWAITING_DELIVERY = "awaiting_delivery"
STATUS_PARTIALLY_DELIVERED = "partially_delivered"
STATUS_IN_DELIVERY = "in_delivery"
STATUS_DELIVERED = "delivered"

RAW_MATERIAL_STATUSES = (
    STATUS_UNPAID,
    STATUS_PARTIALLY_PAID,
    STATUS_PAID,
    STATUS_AWAITING_DELIVERY,
    STATUS_PARTIALLY_DELIVERED,
    STATUS_DELIVERED,
)

ESSENTIAL_OIL_STATUSES = (
    STATUS_UNPAID,
    STATUS_PARTIALLY_PAID,
    STATUS_PAID,
    STATUS_AWAITING_DELIVERY,
    STATUS_IN_DELIVERY,
    STATUS_DELIVERED,
)

STATUSES_BY_FAMILY = {
    FAMILY_RAW_MATERIAL: RAW_MATERIAL_STATUSES,
    FAMILY_ESSENTIAL_OIL: ESSENTIAL_OIL_STATUSES,
}

# States in which the supplier debt can still be paid down
PAYABLE_STATUSES = (STATUS_UNPAID, STATUS_PARTIALLY_PAID)


class ReceptionDocument(db.Model):
    """
    Goods received from a supplier (PV de réception / fiche de réception).

    PAYMENT: status is derived from debt_to_supplier; reaching zero debt
    moves the document to paid, which is the sole trigger for stock-in.
    stocked_in records that stock-in fired so it never fires twice.

    DELIVERY: remaining_quantity tracks the weight not yet delivered out.
    """
    __tablename__ = "reception_documents"
    __table_args__ = (
        db.CheckConstraint("debt_to_supplier >= 0", name="debt_non_negative"),
        db.CheckConstraint("remaining_quantity >= 0", name="remaining_non_negative"),
        db.Index("ix_reception_documents_family_status", "family", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(32), nullable=True, unique=True)
    family = db.Column(db.String(16), nullable=False, default=FAMILY_RAW_MATERIAL)
    material_type = db.Column(db.String(8), nullable=False, index=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    # Collector who received the goods; owner of the per-user stock pool
    collector_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    net_weight = db.Column(db.Numeric(18, 3), nullable=False)
    unit_price = db.Column(db.Numeric(18, 2), nullable=False)
    total_price = db.Column(db.Numeric(18, 2), nullable=False)
    debt_to_supplier = db.Column(db.Numeric(18, 2), nullable=False)
    remaining_quantity = db.Column(db.Numeric(18, 3), nullable=False)

    status = db.Column(db.String(24), nullable=False, default=STATUS_UNPAID, index=True)
    stocked_in = db.Column(db.Boolean, nullable=False, default=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("reception_documents", lazy=True))
    collector = db.relationship("User", backref=db.backref("reception_documents", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def delivered_quantity(self) -> Decimal:
        return self.net_weight - self.remaining_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "family": self.family,
            "material_type": self.material_type,
            "supplier_id": self.supplier_id,
            "collector_id": self.collector_id,
            "net_weight": decimal_str(self.net_weight),
            "unit_price": decimal_str(self.unit_price),
            "total_price": decimal_str(self.total_price),
            "debt_to_supplier": decimal_str(self.debt_to_supplier),
            "remaining_quantity": decimal_str(self.remaining_quantity),
            "delivered_quantity": decimal_str(self.delivered_quantity),
            "status": self.status,
            "stocked_in": self.stocked_in,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Settlement(db.Model):
    """
    Invoice settlement (facturation) of one reception document.

    At most one per document; further payments are SettlementPayment rows.
    """
    __tablename__ = "settlements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)
    document_id = db.Column(db.Integer, db.ForeignKey("reception_documents.id"), nullable=False, unique=True)

    total_amount = db.Column(db.Numeric(18, 2), nullable=False)
    paid_amount = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    document = db.relationship("ReceptionDocument", backref=db.backref("settlement", uselist=False, lazy=True))
    payments = db.relationship(
        "SettlementPayment",
        backref="settlement",
        lazy=True,
        order_by="SettlementPayment.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "document_id": self.document_id,
            "total_amount": decimal_str(self.total_amount),
            "paid_amount": decimal_str(self.paid_amount),
            "outstanding": decimal_str(self.document.debt_to_supplier) if self.document else None,
            "created_at": to_utc_z(self.created_at),
            "payments": [p.to_dict() for p in self.payments],
        }


class SettlementPayment(db.Model):
    """Single payment against a settlement; payer's balance was debited by amount."""
    __tablename__ = "settlement_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("settlements.id"), nullable=False, index=True)
    payer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(18, 2), nullable=False)
    method = db.Column(db.String(32), nullable=False)
    reference = db.Column(db.String(64), nullable=True)
    # Status of the document right after this payment was applied
    resulting_status = db.Column(db.String(24), nullable=False)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    payer = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "settlement_id": self.settlement_id,
            "payer_id": self.payer_id,
            "amount": decimal_str(self.amount),
            "method": self.method,
            "reference": self.reference,
            "resulting_status": self.resulting_status,
            "paid_at": to_utc_z(self.paid_at),
        }


class DeliveryNote(db.Model):
    """
    Partial delivery (fiche de livraison) out of a raw-material document.

    A note is pending until completed_at is set. Only one pending note may
    exist per document.
    """
    __tablename__ = "delivery_notes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("reception_documents.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    quantity_to_deliver = db.Column(db.Numeric(18, 3), nullable=False)
    remaining_quantity = db.Column(db.Numeric(18, 3), nullable=False)
    delivered_quantity = db.Column(db.Numeric(18, 3), nullable=False, default=Decimal("0"))
    is_partial = db.Column(db.Boolean, nullable=False, default=False)

    departure = db.Column(db.String(255), nullable=True)
    destination = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    document = db.relationship("ReceptionDocument", backref=db.backref("delivery_notes", lazy=True))

    @property
    def is_pending(self) -> bool:
        return self.completed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "created_by_user_id": self.created_by_user_id,
            "quantity_to_deliver": decimal_str(self.quantity_to_deliver),
            "remaining_quantity": decimal_str(self.remaining_quantity),
            "delivered_quantity": decimal_str(self.delivered_quantity),
            "is_partial": self.is_partial,
            "departure": self.departure,
            "destination": self.destination,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
