# Overview: Flask API routes for reception documents, their settlement and oil dispatch.

# backend/agrostock/routes/documents.py
"""
Reception Document API Routes

- Documents are created unpaid with the full price owed to the supplier
- One settlement per document; further payments are added to it
- Reaching paid stocks the net weight in (global + collector pool)
- Essential-oil documents are dispatched and completed here; raw-material
  deliveries go through /api/deliveries/notes
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import delivery_service, settlement_service
from ..services.errors import LedgerError, NotFound
from ..decorators import require_actor
from . import json_body, ledger_error_response


documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


@documents_bp.post("")
@require_actor
def create_document_route():
    """
    Request body:
    {
        "family": "raw_material" | "essential_oil",
        "material_type": "FG" | "CG" | "GG" | "HE",
        "supplier_id": 1,
        "collector_id": 3 (optional, defaults to caller),
        "net_weight": "100.000",
        "unit_price": "10.00",
        "document_number": str (optional)
    }
    """
    try:
        data = json_body()
        document = settlement_service.create_reception_document(
            family=data.get("family", "raw_material"),
            material_type=data["material_type"],
            supplier_id=data["supplier_id"],
            collector_id=data.get("collector_id", g.current_user.id),
            net_weight=data["net_weight"],
            unit_price=data["unit_price"],
            document_number=data.get("document_number"),
        )
        return jsonify(document.to_dict()), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create reception document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("")
@require_actor
def list_documents_route():
    documents = settlement_service.list_documents(
        family=request.args.get("family"),
        status=request.args.get("status"),
        collector_id=request.args.get("collector_id", type=int),
    )
    return jsonify({"documents": [d.to_dict() for d in documents]}), 200


@documents_bp.get("/<int:document_id>")
@require_actor
def get_document_route(document_id: int):
    try:
        document = settlement_service.get_document(document_id)
        result = document.to_dict()
        result["settlement"] = document.settlement.to_dict() if document.settlement else None
        return jsonify(result), 200
    except LedgerError as e:
        return ledger_error_response(e)


@documents_bp.post("/<int:document_id>/settle")
@require_actor
def settle_document_route(document_id: int):
    """
    Open the settlement with a first payment from the caller's balance.

    Request body: {"amount": "1000.00", "method": "cash", "reference": str (optional)}
    """
    try:
        data = json_body()
        settlement = settlement_service.settle(
            document_id,
            data["amount"],
            payer_id=g.current_user.id,
            method=data.get("method", "cash"),
            reference=data.get("reference"),
        )
        return jsonify(settlement.to_dict()), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to settle document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/payments")
@require_actor
def add_payment_route(document_id: int):
    """Further payment from the caller's balance against the document's settlement."""
    try:
        data = json_body()
        document = settlement_service.get_document(document_id)
        if not document.settlement:
            raise NotFound(
                f"Document {document_id} has no settlement",
                entity="Settlement",
                document_id=document_id,
            )

        settlement = settlement_service.add_payment(
            document.settlement.id,
            data["amount"],
            payer_id=g.current_user.id,
            method=data.get("method", "cash"),
            reference=data.get("reference"),
        )
        return jsonify(settlement.to_dict()), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to add settlement payment")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/oil-delivery/start")
@require_actor
def start_oil_delivery_route(document_id: int):
    try:
        document = delivery_service.start_oil_delivery(document_id)
        return jsonify(document.to_dict()), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to start oil delivery")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/oil-delivery/finish")
@require_actor
def finish_oil_delivery_route(document_id: int):
    try:
        document = delivery_service.finish_oil_delivery(document_id)
        return jsonify(document.to_dict()), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to finish oil delivery")
        return jsonify({"error": "Internal server error"}), 500
