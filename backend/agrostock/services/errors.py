"""
Ledger error taxonomy.

Every core operation either returns a value or raises one of these.
Each error carries a machine-readable kind plus the structured context
(amounts involved, entity ids) a request handler needs to build a
response. Messages are for logs, not for end users.
"""
from __future__ import annotations


class LedgerError(Exception):
    """Base class for invariant violations detected by the core."""

    kind = "LedgerError"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": self.kind,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }


class InsufficientFunds(LedgerError):
    """A Balance or cash-register debit exceeds available funds."""
    kind = "InsufficientFunds"


class InsufficientStock(LedgerError):
    """A stock reservation exceeds the available quantity."""
    kind = "InsufficientStock"


class InsufficientEscrowFunds(LedgerError):
    """Advance consumption exceeds its remaining amount."""
    kind = "InsufficientEscrowFunds"


class InvalidState(LedgerError):
    """Operation not permitted from the entity's current state."""
    kind = "InvalidState"


class DuplicateSettlement(LedgerError):
    kind = "DuplicateSettlement"


class SupplierHasUnsettledAdvance(LedgerError):
    kind = "SupplierHasUnsettledAdvance"


class InvalidRecipient(LedgerError):
    """Self-transfer or role-incompatible transfer target."""
    kind = "InvalidRecipient"


class QuantityExceedsRemaining(LedgerError):
    kind = "QuantityExceedsRemaining"


class NotFound(LedgerError):
    kind = "NotFound"

    @classmethod
    def entity(cls, entity: str, entity_id) -> "NotFound":
        return cls(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)


def _jsonable(value):
    # Decimal and other numeric wrappers render as plain strings
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)
