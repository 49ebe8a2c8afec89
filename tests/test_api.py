"""
API tests with FastAPI TestClient.

Tests cover:
- Bill routes, lookup by id and by invoice number
- Error mapping to status codes and the error body
- Invoice counter administration
"""

BILLS = "/api/v1/bills"
COUNTER = "/api/v1/admin/counter"

TEA = {"name": "Masala Chai", "quantity": 10, "unit_rate": "40"}
SAMOSA = {"name": "Samosa", "quantity": 20, "unit_rate": "30"}


def create_draft(client, **extra):
    body = {"lines": [TEA, SAMOSA]}
    body.update(extra)
    response = client.post(BILLS, json=body)
    assert response.status_code == 201
    return response.json()


class TestBillRoutes:

    def test_create_draft(self, client):
        bill = create_draft(client)
        assert bill["status"] == "DRAFT"
        assert bill["invoice_number"] is None
        assert bill["totals"]["subtotal"] == "1000.00"
        assert bill["totals"]["cgst"] == "90.00"
        assert bill["totals"]["sgst"] == "90.00"
        assert bill["totals"]["grand_total"] == "1180.00"

    def test_finalize_and_lookup_by_number(self, client):
        draft = create_draft(client)
        response = client.post(f"{BILLS}/{draft['id']}/finalize")
        assert response.status_code == 200
        final = response.json()
        assert final["status"] == "FINAL"
        assert final["invoice_number"] == "2025-26/000001"

        response = client.get(f"{BILLS}/2025-26/000001")
        assert response.status_code == 200
        assert response.json()["id"] == draft["id"]

    def test_finalize_with_body(self, client):
        draft = create_draft(client)
        response = client.post(
            f"{BILLS}/{draft['id']}/finalize",
            json={"cashier_email": "asha@example.com", "bill_date": "2025-03-31"},
        )
        assert response.status_code == 200
        assert response.json()["invoice_number"] == "2024-25/000001"
        assert response.json()["cashier_email"] == "asha@example.com"

    def test_create_final(self, client):
        response = client.post(f"{BILLS}/final", json={"lines": [TEA], "inter_state": True})
        assert response.status_code == 201
        bill = response.json()
        assert bill["status"] == "FINAL"
        assert bill["totals"]["igst"] == "72.00"
        assert bill["totals"]["tax"]["kind"] == "INTER_STATE"

    def test_print_is_idempotent(self, client):
        final = client.post(f"{BILLS}/final", json={"lines": [TEA]}).json()
        first = client.post(f"{BILLS}/{final['invoice_number']}/print")
        second = client.post(f"{BILLS}/{final['invoice_number']}/print")
        assert first.status_code == second.status_code == 200
        assert first.json()["printed_at"] == second.json()["printed_at"]

    def test_void_keeps_number(self, client):
        final = client.post(f"{BILLS}/final", json={"lines": [TEA]}).json()
        response = client.post(f"{BILLS}/{final['id']}/void")
        assert response.status_code == 200
        assert response.json()["status"] == "VOID"
        assert response.json()["invoice_number"] == final["invoice_number"]

        nxt = client.post(f"{BILLS}/final", json={"lines": [TEA]}).json()
        assert nxt["invoice_number"] == "2025-26/000002"

    def test_update_draft(self, client):
        draft = create_draft(client)
        response = client.put(f"{BILLS}/{draft['id']}", json={"discount_pct": "10", "notes": "regular"})
        assert response.status_code == 200
        assert response.json()["totals"]["discount"] == "100.00"
        assert response.json()["notes"] == "regular"

    def test_list_by_status(self, client):
        create_draft(client)
        client.post(f"{BILLS}/final", json={"lines": [TEA]})

        response = client.get(BILLS, params={"status": "FINAL"})
        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["items"][0]["status"] == "FINAL"

        assert client.get(BILLS).json()["total"] == 2


class TestErrorMapping:

    def test_not_found(self, client):
        response = client.get(f"{BILLS}/D404")
        assert response.status_code == 404
        body = response.json()
        assert body["ok"] is False
        assert body["type"] == "BillNotFoundError"

    def test_finalize_twice_conflict(self, client):
        draft = create_draft(client)
        client.post(f"{BILLS}/{draft['id']}/finalize")
        response = client.post(f"{BILLS}/{draft['id']}/finalize")
        assert response.status_code == 409
        assert response.json()["type"] == "InvalidTransitionError"

    def test_edit_printed_conflict(self, client):
        final = client.post(f"{BILLS}/final", json={"lines": [TEA]}).json()
        client.post(f"{BILLS}/{final['id']}/print")
        response = client.put(f"{BILLS}/{final['id']}", json={"notes": "late"})
        assert response.status_code == 409

    def test_edit_final_lines_conflict(self, client):
        final = client.post(f"{BILLS}/final", json={"lines": [TEA]}).json()
        response = client.put(f"{BILLS}/{final['id']}", json={"lines": [SAMOSA]})
        assert response.status_code == 409

    def test_empty_bill_rejected(self, client):
        response = client.post(f"{BILLS}/final", json={"lines": []})
        assert response.status_code == 400
        assert response.json()["type"] == "BillValidationError"

    def test_bad_quantity_rejected(self, client):
        response = client.post(BILLS, json={"lines": [{"name": "Tea", "quantity": 0, "unit_rate": "10"}]})
        assert response.status_code == 400

    def test_bad_discount_rejected(self, client):
        response = client.post(BILLS, json={"lines": [TEA], "discount_pct": "120"})
        assert response.status_code == 400

    def test_ledger_down(self, client, flaky_ledger):
        draft = create_draft(client)
        flaky_ledger.fail_reads = True

        response = client.post(f"{BILLS}/{draft['id']}/finalize")
        assert response.status_code == 503
        assert response.json()["type"] == "LedgerUnavailableError"

        flaky_ledger.fail_reads = False
        assert client.get(f"{BILLS}/{draft['id']}").json()["status"] == "DRAFT"


class TestCounterAdmin:

    def test_preview(self, client):
        response = client.get(COUNTER)
        assert response.status_code == 200
        assert response.json()["next_invoice_number"] == "2025-26/000001"
        assert response.json()["last_issued_serial"] == 0

    def test_set_next_serial(self, client):
        response = client.post(COUNTER, json={"next_serial": 100})
        assert response.status_code == 200
        assert response.json()["next_invoice_number"] == "2025-26/000100"

        final = client.post(f"{BILLS}/final", json={"lines": [TEA]}).json()
        assert final["invoice_number"] == "2025-26/000100"

    def test_regression_rejected(self, client):
        client.post(COUNTER, json={"next_serial": 100})
        client.post(f"{BILLS}/final", json={"lines": [TEA]})

        response = client.post(COUNTER, json={"next_serial": 50})
        assert response.status_code == 409
        assert response.json()["type"] == "SequenceRegressionError"

    def test_override_and_reset(self, client):
        response = client.post(COUNTER, json={"financial_year": "2024-25"})
        assert response.json()["override_fiscal_year"] == "2024-25"
        assert response.json()["next_invoice_number"] == "2024-25/000001"

        response = client.post(COUNTER, json={"reset": True})
        assert response.json()["override_fiscal_year"] is None
        assert response.json()["next_invoice_number"] == "2025-26/000001"

    def test_bad_financial_year(self, client):
        response = client.post(COUNTER, json={"financial_year": "2024-26"})
        assert response.status_code == 422

    def test_empty_update_rejected(self, client):
        response = client.post(COUNTER, json={})
        assert response.status_code == 422


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_lists_jobs(self, client):
        # Scheduler disabled in tests: no jobs registered
        assert client.get("/health").json()["jobs"] == []


class TestStorageErrorMapping:

    def test_storage_failure_is_service_unavailable(self, client, services):
        draft = create_draft(client)

        async def refuse(bill):
            raise RuntimeError("disk I/O error")

        services.repository.save = refuse
        response = client.post(f"{BILLS}/{draft['id']}/finalize")
        assert response.status_code == 503
        body = response.json()
        assert body["type"] == "BillStorageError"
        assert "2025-26/000001" in body["error"]
