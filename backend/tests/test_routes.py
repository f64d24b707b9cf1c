"""HTTP surface: caller identification, role gates and error mapping."""

import pytest
from decimal import Decimal

from agrostock.services import cash_register_service

from conftest import actor_headers, fund


class TestCallerIdentification:
    def test_missing_header(self, client, db_session):
        resp = client.get("/api/balances/me")
        assert resp.status_code == 401

    def test_unknown_user(self, client, db_session):
        resp = client.get("/api/balances/me", headers={"X-User-Id": "999"})
        assert resp.status_code == 401

    def test_malformed_header(self, client, db_session):
        resp = client.get("/api/balances/me", headers={"X-User-Id": "abc"})
        assert resp.status_code == 401

    def test_whoami(self, client, collector):
        resp = client.get("/api/me", headers=actor_headers(collector))
        assert resp.status_code == 200
        assert resp.json["user"]["role"] == "collector"


def test_health(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json["status"] == "healthy"


def test_balance_visibility(client, collector, other_collector, admin):
    fund(collector, 42)

    resp = client.get("/api/balances/me", headers=actor_headers(collector))
    assert Decimal(resp.json["amount"]) == Decimal("42")

    resp = client.get(f"/api/balances/{collector.id}", headers=actor_headers(other_collector))
    assert resp.status_code == 403

    resp = client.get(f"/api/balances/{collector.id}", headers=actor_headers(admin))
    assert resp.status_code == 200


class TestTransfers:
    def test_vendor_to_collector_forbidden(self, client, vendor, collector):
        fund(vendor, 100)
        resp = client.post(
            "/api/transfers",
            json={"recipient_id": collector.id, "amount": "50"},
            headers=actor_headers(vendor),
        )
        assert resp.status_code == 403
        assert resp.json["kind"] == "InvalidRecipient"

    def test_self_transfer_bad_request(self, client, collector):
        fund(collector, 100)
        resp = client.post(
            "/api/transfers",
            json={"recipient_id": collector.id, "amount": "50"},
            headers=actor_headers(collector),
        )
        assert resp.status_code == 400
        assert resp.json["context"]["violation"] == "self"

    def test_insufficient_funds_reports_context(self, client, collector, distiller):
        fund(collector, 10)
        resp = client.post(
            "/api/transfers",
            json={"recipient_id": distiller.id, "amount": "50.00"},
            headers=actor_headers(collector),
        )
        assert resp.status_code == 400
        assert resp.json["kind"] == "InsufficientFunds"
        assert resp.json["context"]["requested"] == "50.00"

    def test_malformed_amount(self, client, collector, distiller):
        resp = client.post(
            "/api/transfers",
            json={"recipient_id": distiller.id, "amount": "lots"},
            headers=actor_headers(collector),
        )
        assert resp.status_code == 400

    def test_missing_field(self, client, collector):
        resp = client.post("/api/transfers", json={"amount": "5"}, headers=actor_headers(collector))
        assert resp.status_code == 400
        assert "recipient_id" in resp.json["error"]

    def test_successful_transfer(self, client, collector, distiller):
        fund(collector, 100)
        resp = client.post(
            "/api/transfers",
            json={"recipient_id": distiller.id, "amount": "60", "method": "mobile"},
            headers=actor_headers(collector),
        )
        assert resp.status_code == 201
        assert resp.json["source"] == "balance"

        resp = client.get("/api/balances/me", headers=actor_headers(distiller))
        assert Decimal(resp.json["amount"]) == Decimal("60")


class TestDocumentsAndSettlement:
    def _create(self, client, collector, supplier):
        resp = client.post(
            "/api/documents",
            json={
                "material_type": "FG",
                "supplier_id": supplier.id,
                "net_weight": "100",
                "unit_price": "10",
            },
            headers=actor_headers(collector),
        )
        assert resp.status_code == 201
        return resp.json

    def test_settle_then_duplicate(self, client, collector, supplier, admin):
        document = self._create(client, collector, supplier)
        assert document["status"] == "unpaid"
        assert document["collector_id"] == collector.id
        fund(collector, 1500)

        resp = client.post(
            f"/api/documents/{document['id']}/settle",
            json={"amount": "1000"},
            headers=actor_headers(collector),
        )
        assert resp.status_code == 201
        assert Decimal(resp.json["outstanding"]) == Decimal("0")

        resp = client.post(
            f"/api/documents/{document['id']}/settle",
            json={"amount": "100"},
            headers=actor_headers(collector),
        )
        assert resp.status_code == 409
        assert resp.json["kind"] == "DuplicateSettlement"

        resp = client.get("/api/stock/system-total?material_type=FG", headers=actor_headers(admin))
        assert resp.status_code == 200
        assert Decimal(resp.json["total_in"]) == Decimal("200")

        resp = client.get("/api/stock/available?material_type=FG", headers=actor_headers(collector))
        assert Decimal(resp.json["available"]) == Decimal("200")

    def test_additional_payment(self, client, collector, supplier):
        document = self._create(client, collector, supplier)
        fund(collector, 1000)

        client.post(f"/api/documents/{document['id']}/settle", json={"amount": "400"}, headers=actor_headers(collector))
        resp = client.post(
            f"/api/documents/{document['id']}/payments",
            json={"amount": "600"},
            headers=actor_headers(collector),
        )
        assert resp.status_code == 201
        assert len(resp.json["payments"]) == 2

        resp = client.get(f"/api/documents/{document['id']}", headers=actor_headers(collector))
        assert resp.json["status"] == "paid"
        assert resp.json["settlement"]["invoice_number"].startswith("FAC-")

    def test_payment_without_settlement_is_not_found(self, client, collector, supplier):
        document = self._create(client, collector, supplier)
        resp = client.post(
            f"/api/documents/{document['id']}/payments",
            json={"amount": "10"},
            headers=actor_headers(collector),
        )
        assert resp.status_code == 404

    def test_unknown_document(self, client, collector):
        resp = client.get("/api/documents/9999", headers=actor_headers(collector))
        assert resp.status_code == 404
        assert resp.json["kind"] == "NotFound"

    def test_system_total_is_privileged(self, client, collector):
        resp = client.get("/api/stock/system-total?material_type=FG", headers=actor_headers(collector))
        assert resp.status_code == 403


class TestCashRegister:
    def test_admin_only(self, client, collector):
        resp = client.get("/api/cash-register", headers=actor_headers(collector))
        assert resp.status_code == 403

    def test_append_and_correct(self, client, admin):
        resp = client.post(
            "/api/cash-register/entries",
            json={"entry_type": "income", "amount": "500"},
            headers=actor_headers(admin),
        )
        assert resp.status_code == 201
        entry_id = resp.json["entry"]["id"]

        resp = client.post(
            "/api/cash-register/withdraw",
            json={"amount": "600"},
            headers=actor_headers(admin),
        )
        assert resp.status_code == 400
        assert resp.json["kind"] == "InsufficientFunds"

        resp = client.patch(
            f"/api/cash-register/entries/{entry_id}",
            json={"amount": "800"},
            headers=actor_headers(admin),
        )
        assert resp.status_code == 200
        assert Decimal(resp.json["current_balance"]) == Decimal("800")

        resp = client.get("/api/cash-register", headers=actor_headers(admin))
        assert Decimal(resp.json["current_balance"]) == Decimal("800")

    @pytest.mark.parametrize("body", [["amount", "800"], "800", 800, {"entry_id": 5}])
    def test_correction_body_must_be_an_object_of_fields(self, client, admin, body):
        entry = cash_register_service.record_income("500", user_id=admin.id)

        resp = client.patch(
            f"/api/cash-register/entries/{entry.id}",
            json=body,
            headers=actor_headers(admin),
        )

        assert resp.status_code == 400
        assert "error" in resp.json
        assert Decimal(cash_register_service.current_balance()) == Decimal("500")

    def test_list_body_rejected_on_other_routes(self, client, admin):
        resp = client.post("/api/cash-register/withdraw", json=["600"], headers=actor_headers(admin))
        assert resp.status_code == 400


class TestAdvances:
    def test_lifecycle_over_http(self, client, collector, supplier):
        fund(collector, 500)
        headers = actor_headers(collector)

        resp = client.post("/api/advances", json={"supplier_id": supplier.id, "amount": "500"}, headers=headers)
        assert resp.status_code == 201
        advance_id = resp.json["id"]

        resp = client.post("/api/advances", json={"supplier_id": supplier.id, "amount": "1"}, headers=headers)
        assert resp.status_code == 409
        assert resp.json["kind"] == "SupplierHasUnsettledAdvance"

        resp = client.post(f"/api/advances/{advance_id}/confirm", headers=headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "arrived"

        resp = client.post(f"/api/advances/{advance_id}/confirm", headers=headers)
        assert resp.status_code == 409

        resp = client.post(f"/api/advances/{advance_id}/cancel", json={"reason": "No goods"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "cancelled"

        resp = client.get("/api/balances/me", headers=headers)
        assert Decimal(resp.json["amount"]) == Decimal("500")

    def test_expire_is_admin_only(self, client, collector):
        resp = client.post("/api/advances/expire", headers=actor_headers(collector))
        assert resp.status_code == 403


class TestDeliveries:
    def test_vendor_delivery_and_cancel(self, client, vendor, admin):
        resp = client.post(
            "/api/stock/stock-in",
            json={"material_type": "HE", "owner": f"user:{vendor.id}", "quantity": "40"},
            headers=actor_headers(admin),
        )
        assert resp.status_code == 200

        resp = client.post("/api/deliveries", json={"quantity": "40"}, headers=actor_headers(vendor))
        assert resp.status_code == 201
        delivery_id = resp.json["id"]

        resp = client.post("/api/deliveries", json={"quantity": "1"}, headers=actor_headers(vendor))
        assert resp.status_code == 400
        assert resp.json["kind"] == "InsufficientStock"

        resp = client.post(f"/api/deliveries/{delivery_id}/cancel", headers=actor_headers(vendor))
        assert resp.status_code == 200

        resp = client.post(f"/api/deliveries/{delivery_id}/cancel", headers=actor_headers(vendor))
        assert resp.status_code == 409


class TestBalanceRequests:
    def test_request_approval(self, client, admin, collector):
        cash_register_service.record_income(1000, "cash", "Float")

        resp = client.post(
            "/api/balance-requests",
            json={"amount": "250", "reason": "Collection round"},
            headers=actor_headers(collector),
        )
        assert resp.status_code == 201
        request_id = resp.json["id"]

        resp = client.post(f"/api/balance-requests/{request_id}/approve", headers=actor_headers(collector))
        assert resp.status_code == 403

        resp = client.post(f"/api/balance-requests/{request_id}/approve", headers=actor_headers(admin))
        assert resp.status_code == 200
        assert resp.json["status"] == "approved"

        resp = client.delete(f"/api/balance-requests/{request_id}", headers=actor_headers(collector))
        assert resp.status_code == 409
