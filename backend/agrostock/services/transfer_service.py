# Overview: Balance transfers between users and the balance-request approval workflow.

"""
Transfer workflow.

WHY: Money reaches collectors either from the admin cash register or from
another user's balance. The initiator's role decides which ledger is
debited:

- admin:  cash register expense (the aggregate register is the source)
- vendor: own Balance, plus an income row on the register (vendor deposit)
- other:  own Balance

The recipient's Balance is always credited. A vendor may only send to an
admin, and nobody may send to themselves.

Balance requests (demandes de solde) are a user asking an admin for funds;
approving one performs an admin transfer and links it.
"""

from __future__ import annotations

from ..extensions import db
from ..models import BalanceRequest, Transfer, User
from ..models.ledger import ENTRY_EXPENSE, ENTRY_INCOME, REQUEST_APPROVED, REQUEST_PENDING, REQUEST_REJECTED
from ..models.users import ROLE_ADMIN, ROLE_VENDOR
from ..time_utils import utcnow
from ..validation import ValidationError, to_money
from . import balance_service, cash_register_service
from .concurrency import lock_for_update, log_event, run_atomic
from .errors import InvalidRecipient, InvalidState, NotFound


SOURCE_CASH_REGISTER = "cash_register"
SOURCE_BALANCE = "balance"

VALID_METHODS = ("cash", "mobile", "bank_transfer")


def transfer(
    initiator_id: int,
    recipient_id: int,
    amount,
    method: str = "cash",
    reason: str | None = None,
    reference: str | None = None,
) -> Transfer:
    """
    Move amount from the initiator's source ledger to the recipient's Balance.

    Raises:
        InvalidRecipient: self-transfer, or vendor targeting a non-admin
        InsufficientFunds: source ledger (Balance or cash register) is short
        NotFound: unknown initiator or recipient
    """
    amount = to_money(amount)
    _validate_method(method)

    def _op():
        return _transfer_locked(initiator_id, recipient_id, amount, method, reason, reference)

    return run_atomic(_op)


def list_transfers(user_id: int | None = None, limit: int | None = None) -> list[Transfer]:
    query = db.session.query(Transfer)
    if user_id is not None:
        query = query.filter((Transfer.initiator_id == user_id) | (Transfer.recipient_id == user_id))
    query = query.order_by(Transfer.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def _transfer_locked(initiator_id, recipient_id, amount, method, reason, reference) -> Transfer:
    initiator = _get_user(initiator_id)
    recipient = _get_user(recipient_id)

    if initiator.id == recipient.id:
        raise InvalidRecipient(
            "Cannot transfer to yourself",
            violation="self",
            user_id=initiator.id,
        )

    if initiator.role == ROLE_VENDOR and recipient.role != ROLE_ADMIN:
        raise InvalidRecipient(
            "A vendor may only transfer to an admin",
            violation="role",
            initiator_role=initiator.role,
            recipient_id=recipient.id,
            recipient_role=recipient.role,
        )

    # Balances in ascending id order, register head last
    if initiator.role == ROLE_ADMIN:
        balance_service.lock_balances(recipient.id)
    else:
        balance_service.lock_balances(initiator.id, recipient.id)

    cash_entry = None
    if initiator.role == ROLE_ADMIN:
        source = SOURCE_CASH_REGISTER
        head = cash_register_service.lock_head()
        cash_entry = cash_register_service.append_locked(
            head,
            ENTRY_EXPENSE,
            amount,
            method=method,
            reason=reason or f"Transfer to {recipient.username}",
            reference=reference,
            user_id=initiator.id,
        )
    else:
        source = SOURCE_BALANCE
        balance_service.debit_locked(initiator.id, amount)

    balance_service.credit_locked(recipient.id, amount)

    if initiator.role == ROLE_VENDOR:
        head = cash_register_service.lock_head()
        cash_entry = cash_register_service.append_locked(
            head,
            ENTRY_INCOME,
            amount,
            method=method,
            reason=reason or f"Deposit from {initiator.username}",
            reference=reference,
            user_id=initiator.id,
        )

    record = Transfer(
        initiator_id=initiator.id,
        recipient_id=recipient.id,
        amount=amount,
        method=method,
        source=source,
        reason=reason,
        reference=reference,
        cash_entry_id=cash_entry.id if cash_entry else None,
    )
    db.session.add(record)
    db.session.flush()

    log_event(
        "transfer %s: %s -> %s amount=%s source=%s",
        record.id, initiator.id, recipient.id, amount, source,
    )
    return record


# =============================================================================
# BALANCE REQUESTS
# =============================================================================

def create_request(user_id: int, amount, reason: str) -> BalanceRequest:
    amount = to_money(amount)
    if not reason or not str(reason).strip():
        raise ValidationError("reason is required")

    def _op():
        _get_user(user_id)
        request = BalanceRequest(
            user_id=user_id,
            amount=amount,
            reason=str(reason).strip(),
            status=REQUEST_PENDING,
        )
        db.session.add(request)
        db.session.flush()
        return request

    return run_atomic(_op)


def approve_request(request_id: int, admin_id: int, comment: str | None = None, method: str = "cash") -> BalanceRequest:
    """
    Approve a pending request: the admin transfers the requested amount
    from the cash register to the requester.

    Raises:
        InvalidRecipient: approver is not an admin
        InvalidState: request already processed
        InsufficientFunds: cash register is short
    """
    _validate_method(method)

    def _op():
        request = _lock_pending_request(request_id)
        admin = _require_admin(admin_id)

        record = _transfer_locked(
            admin.id,
            request.user_id,
            request.amount,
            method,
            f"Balance request #{request.id}: {request.reason}",
            f"REQ-{request.id}",
        )

        request.status = REQUEST_APPROVED
        request.admin_id = admin.id
        request.admin_comment = comment
        request.transfer_id = record.id
        request.processed_at = utcnow()
        db.session.flush()
        return request

    return run_atomic(_op)


def reject_request(request_id: int, admin_id: int, comment: str | None = None) -> BalanceRequest:
    def _op():
        request = _lock_pending_request(request_id)
        admin = _require_admin(admin_id)

        request.status = REQUEST_REJECTED
        request.admin_id = admin.id
        request.admin_comment = comment
        request.processed_at = utcnow()
        db.session.flush()
        return request

    return run_atomic(_op)


def delete_request(request_id: int) -> None:
    """Only pending requests can be withdrawn."""
    def _op():
        request = _lock_pending_request(request_id)
        db.session.delete(request)
        db.session.flush()

    run_atomic(_op)


def get_request(request_id: int) -> BalanceRequest:
    request = db.session.get(BalanceRequest, request_id)
    if not request:
        raise NotFound.entity("BalanceRequest", request_id)
    return request


def list_requests(user_id: int | None = None, status: str | None = None) -> list[BalanceRequest]:
    query = db.session.query(BalanceRequest)
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(BalanceRequest.id.desc()).all()


def _lock_pending_request(request_id: int) -> BalanceRequest:
    request = lock_for_update(db.session.query(BalanceRequest).filter_by(id=request_id)).first()
    if not request:
        raise NotFound.entity("BalanceRequest", request_id)
    if request.status != REQUEST_PENDING:
        raise InvalidState(
            f"Balance request {request_id} is already {request.status}",
            request_id=request_id,
            status=request.status,
        )
    return request


def _require_admin(user_id: int) -> User:
    user = _get_user(user_id)
    if user.role != ROLE_ADMIN:
        raise InvalidRecipient(
            "Only an admin can process balance requests",
            violation="role",
            user_id=user.id,
            role=user.role,
        )
    return user


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound.entity("User", user_id)
    return user


def _validate_method(method: str) -> None:
    if method not in VALID_METHODS:
        raise ValidationError(f"method must be one of {list(VALID_METHODS)}")
