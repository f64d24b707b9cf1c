from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_str


# Raw-material codes plus essential oil
MATERIAL_FG = "FG"
MATERIAL_CG = "CG"
MATERIAL_GG = "GG"
MATERIAL_HE = "HE"

RAW_MATERIAL_TYPES = (MATERIAL_FG, MATERIAL_CG, MATERIAL_GG)
VALID_MATERIAL_TYPES = RAW_MATERIAL_TYPES + (MATERIAL_HE,)

OWNER_GLOBAL = "global"
OWNER_USER = "user"


@dataclass(frozen=True)
class Owner:
    """
    Which pool a stock entry belongs to: Global or User(id).

    Build with Owner.global_pool() or Owner.user(user_id); the pool is
    always explicit at the call site.
    """
    user_id: int | None = None

    @classmethod
    def global_pool(cls) -> "Owner":
        return cls(None)

    @classmethod
    def user(cls, user_id: int) -> "Owner":
        if user_id is None:
            raise ValueError("User owner requires a user id")
        return cls(int(user_id))

    @classmethod
    def from_key(cls, key: str) -> "Owner":
        if key == OWNER_GLOBAL:
            return cls.global_pool()
        prefix = f"{OWNER_USER}:"
        if key.startswith(prefix) and key[len(prefix):].isdigit():
            return cls.user(int(key[len(prefix):]))
        raise ValueError(f"Invalid stock owner key: {key!r}")

    @property
    def is_global(self) -> bool:
        return self.user_id is None

    @property
    def level(self) -> str:
        return OWNER_GLOBAL if self.is_global else OWNER_USER

    @property
    def key(self) -> str:
        return OWNER_GLOBAL if self.is_global else f"{OWNER_USER}:{self.user_id}"

    def __str__(self) -> str:
        return self.key


class StockEntry(db.Model):
    """
    One quantity pool per (material_type, owner).

    INVARIANT: 0 <= available <= total_in. total_in only grows through
    stock-in; reservations lower available, releases raise it back up to
    total_in at most.

    owner_key is "global" or "user:<id>" so the unique constraint also
    covers the global row (NULL owner ids would not collide).
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.UniqueConstraint("material_type", "owner_key", name="uq_stock_entries_material_owner"),
        db.CheckConstraint("available >= 0", name="available_non_negative"),
        db.CheckConstraint("available <= total_in", name="available_le_total"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    material_type = db.Column(db.String(8), nullable=False, index=True)
    owner_key = db.Column(db.String(32), nullable=False)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    total_in = db.Column(db.Numeric(18, 3), nullable=False, default=Decimal("0"))
    available = db.Column(db.Numeric(18, 3), nullable=False, default=Decimal("0"))
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    owner_user = db.relationship("User", backref=db.backref("stock_entries", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def owner(self) -> Owner:
        return Owner.from_key(self.owner_key)

    def __repr__(self) -> str:
        return (
            f"<StockEntry {self.material_type}/{self.owner_key} "
            f"total_in={self.total_in} available={self.available}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "material_type": self.material_type,
            "owner": self.owner_key,
            "owner_level": self.owner.level,
            "owner_user_id": self.owner_user_id,
            "total_in": decimal_str(self.total_in),
            "available": decimal_str(self.available),
            "used": decimal_str(self.total_in - self.available),
            "updated_at": to_utc_z(self.updated_at),
        }
