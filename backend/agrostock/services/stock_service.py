# Overview: Two-tier stock pools (global + per-owner) per material type.

"""
Stock pool service.

WHY: Paid receptions put material into stock at two levels at once: the
shared global pool and the collecting user's own pool. Deliveries take it
back out. The two levels are independent ledgers; nothing here keeps them
summing to a system total.

INVARIANT: 0 <= available <= total_in for every entry. Violations are
rejected, never clamped, except release(), which caps a restore at total_in.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Owner, StockEntry, User
from ..models.stock import VALID_MATERIAL_TYPES
from ..validation import ValidationError, to_quantity
from .concurrency import lock_for_update, log_event, run_atomic
from .errors import InsufficientStock, NotFound


ZERO = Decimal("0.000")


def validate_material_type(material_type: str) -> str:
    if material_type not in VALID_MATERIAL_TYPES:
        raise ValidationError(
            f"Invalid material type: {material_type}. Must be one of {list(VALID_MATERIAL_TYPES)}"
        )
    return material_type


def get_entry(material_type: str, owner: Owner) -> StockEntry | None:
    return db.session.query(StockEntry).filter_by(
        material_type=material_type,
        owner_key=owner.key,
    ).first()


def list_entries(material_type: str | None = None, owner: Owner | None = None) -> list[StockEntry]:
    query = db.session.query(StockEntry)
    if material_type:
        query = query.filter_by(material_type=material_type)
    if owner is not None:
        query = query.filter_by(owner_key=owner.key)
    return query.order_by(StockEntry.material_type, StockEntry.owner_key).all()


def stock_in(material_type: str, owner: Owner, quantity) -> StockEntry:
    """Add quantity to both total_in and available, creating the entry if absent."""
    validate_material_type(material_type)
    quantity = to_quantity(quantity)

    def _op():
        return stock_in_locked(material_type, owner, quantity)

    return run_atomic(_op)


def reserve(material_type: str, owner: Owner, quantity) -> StockEntry:
    """
    Take quantity out of available (total_in untouched).

    Raises:
        InsufficientStock: quantity > available, or no entry for this pool
    """
    validate_material_type(material_type)
    quantity = to_quantity(quantity)

    def _op():
        return reserve_locked(material_type, owner, quantity)

    return run_atomic(_op)


def release(material_type: str, owner: Owner, quantity) -> StockEntry:
    """
    Give back a prior reservation. available is capped at total_in.

    Raises:
        NotFound: no entry for this pool
    """
    validate_material_type(material_type)
    quantity = to_quantity(quantity)

    def _op():
        return release_locked(material_type, owner, quantity)

    return run_atomic(_op)


def available_for(material_type: str, requester_id: int) -> Decimal:
    """
    Quantity usable by this actor: global available + the actor's own pool.

    Other owners' pools are deliberately excluded; see system_total().
    """
    validate_material_type(material_type)
    total = ZERO
    for owner in (Owner.global_pool(), Owner.user(requester_id)):
        entry = get_entry(material_type, owner)
        if entry:
            total += entry.available
    return total


def system_total(material_type: str) -> dict:
    """Sum over every entry of a material type (privileged/reporting callers)."""
    validate_material_type(material_type)
    total_in, available = db.session.query(
        func.coalesce(func.sum(StockEntry.total_in), 0),
        func.coalesce(func.sum(StockEntry.available), 0),
    ).filter(StockEntry.material_type == material_type).one()
    return {
        "material_type": material_type,
        "total_in": Decimal(str(total_in)),
        "available": Decimal(str(available)),
    }


def _lock_entry(material_type: str, owner: Owner) -> StockEntry | None:
    return lock_for_update(
        db.session.query(StockEntry).filter_by(material_type=material_type, owner_key=owner.key)
    ).first()


def stock_in_locked(material_type: str, owner: Owner, quantity: Decimal) -> StockEntry:
    if not owner.is_global and not db.session.get(User, owner.user_id):
        raise NotFound.entity("User", owner.user_id)

    entry = _lock_entry(material_type, owner)
    if entry is None:
        entry = StockEntry(
            material_type=material_type,
            owner_key=owner.key,
            owner_user_id=owner.user_id,
            total_in=quantity,
            available=quantity,
        )
        db.session.add(entry)
    else:
        entry.total_in = entry.total_in + quantity
        entry.available = entry.available + quantity

    db.session.flush()
    log_event(
        "stock in: %s %s +%s (total_in=%s available=%s)",
        material_type, owner.key, quantity, entry.total_in, entry.available,
    )
    return entry


def reserve_locked(material_type: str, owner: Owner, quantity: Decimal) -> StockEntry:
    entry = _lock_entry(material_type, owner)
    available = entry.available if entry else ZERO

    if entry is None or quantity > available:
        raise InsufficientStock(
            f"Insufficient {material_type} stock in {owner.key} pool: available {available}, requested {quantity}",
            material_type=material_type,
            owner=owner.key,
            available=available,
            requested=quantity,
        )

    entry.available = available - quantity
    db.session.flush()
    return entry


def release_locked(material_type: str, owner: Owner, quantity: Decimal) -> StockEntry:
    entry = _lock_entry(material_type, owner)
    if entry is None:
        raise NotFound(
            f"No {material_type} stock entry for {owner.key}",
            entity="StockEntry",
            material_type=material_type,
            owner=owner.key,
        )

    entry.available = min(entry.total_in, entry.available + quantity)
    db.session.flush()
    return entry
