# Overview: Flask API routes for deliveries (reserved vendor deliveries and delivery notes).

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Owner
from ..models.stock import MATERIAL_HE
from ..services import delivery_service
from ..services.errors import LedgerError
from ..decorators import require_actor
from . import json_body, ledger_error_response


deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/api/deliveries")


@deliveries_bp.post("")
@require_actor
def create_delivery_route():
    """
    Reserve stock for a delivery.

    Request body:
    {
        "quantity": "40.000",
        "material_type": "HE" (optional),
        "owner": "global" | "user:3" (optional, defaults to the caller's pool),
        "recipient_id": int (optional),
        "destination": str (optional)
    }
    """
    try:
        data = json_body()
        raw_owner = data.get("owner")
        owner = Owner.from_key(raw_owner) if raw_owner else Owner.user(g.current_user.id)

        delivery = delivery_service.create_delivery(
            data.get("material_type", MATERIAL_HE),
            owner,
            data["quantity"],
            actor_id=g.current_user.id,
            recipient_id=data.get("recipient_id"),
            destination=data.get("destination"),
        )
        return jsonify(delivery.to_dict()), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create delivery")
        return jsonify({"error": "Internal server error"}), 500


@deliveries_bp.get("")
@require_actor
def list_deliveries_route():
    deliveries = delivery_service.list_deliveries(status=request.args.get("status"))
    return jsonify({"deliveries": [d.to_dict() for d in deliveries]}), 200


@deliveries_bp.post("/<int:delivery_id>/cancel")
@require_actor
def cancel_delivery_route(delivery_id: int):
    try:
        data = json_body()
        delivery = delivery_service.cancel_delivery(delivery_id, reason=data.get("reason"))
        return jsonify(delivery.to_dict()), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel delivery")
        return jsonify({"error": "Internal server error"}), 500


@deliveries_bp.post("/notes")
@require_actor
def create_note_route():
    """
    Open a delivery note against a paid raw-material document.

    Request body:
    {
        "document_id": 12,
        "quantity": "60.000",
        "departure": str (optional),
        "destination": str (optional)
    }
    """
    try:
        data = json_body()
        note = delivery_service.create_delivery_note(
            data["document_id"],
            data["quantity"],
            actor_id=g.current_user.id,
            departure=data.get("departure"),
            destination=data.get("destination"),
        )
        return jsonify(note.to_dict()), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create delivery note")
        return jsonify({"error": "Internal server error"}), 500


@deliveries_bp.get("/notes")
@require_actor
def list_notes_route():
    document_id = request.args.get("document_id", type=int)
    if document_id is None:
        return jsonify({"error": "document_id required"}), 400
    notes = delivery_service.list_delivery_notes(document_id)
    return jsonify({"notes": [n.to_dict() for n in notes]}), 200


@deliveries_bp.post("/notes/<int:note_id>/complete")
@require_actor
def complete_note_route(note_id: int):
    """Finish the delivery; body {"quantity": "..."} delivers less than the note."""
    try:
        data = json_body()
        note = delivery_service.complete_delivery_note(note_id, quantity=data.get("quantity"))
        return jsonify(note.to_dict()), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to complete delivery note")
        return jsonify({"error": "Internal server error"}), 500
