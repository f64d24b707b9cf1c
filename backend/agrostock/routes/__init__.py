# Overview: Shared request parsing and translation of ledger errors into JSON responses.

from flask import jsonify, request

from ..services.errors import (
    DuplicateSettlement,
    InvalidRecipient,
    InvalidState,
    LedgerError,
    NotFound,
    SupplierHasUnsettledAdvance,
)
from ..validation import ValidationError


def json_body() -> dict:
    """Request JSON as a dict; an empty body is {}."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def ledger_error_status(error: LedgerError) -> int:
    if isinstance(error, NotFound):
        return 404
    if isinstance(error, (InvalidState, DuplicateSettlement, SupplierHasUnsettledAdvance)):
        return 409
    if isinstance(error, InvalidRecipient):
        return 403 if error.context.get("violation") == "role" else 400
    return 400


def ledger_error_response(error: LedgerError):
    return jsonify(error.to_dict()), ledger_error_status(error)
