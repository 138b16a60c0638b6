"""
Invoice API routes.

Verifies:
- Manual issuance answers 409 when the order already has an invoice
- Only status and notes are writable after issuance
- Listing with status filter and search
"""

from storefront.models import Invoice, Order


def _invoice_id(db_session, order_id):
    return db_session.query(Invoice).filter_by(order_id=order_id).one().id


class TestIssueRoute:

    def test_duplicate_is_conflict(self, client, db_session, staff_headers, placed_order):
        resp = client.post("/api/invoices", json={"order_id": placed_order.id}, headers=staff_headers)

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["error"] == f"Invoice already exists for order {placed_order.order_number}"
        assert body["details"]["invoice_id"] == _invoice_id(db_session, placed_order.id)

    def test_issue_after_invoice_removed(self, client, db_session, staff_headers, placed_order):
        db_session.query(Invoice).filter_by(order_id=placed_order.id).delete()
        db_session.commit()

        resp = client.post(
            "/api/invoices",
            json={"order_id": placed_order.id, "notes": "Reemitida"},
            headers=staff_headers,
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["message"] == "Invoice created"
        assert body["invoice"]["notes"] == "Reemitida"
        assert body["invoice"]["total_cents"] == db_session.get(Order, placed_order.id).total_cents

    def test_order_id_required(self, client, db_session, staff_headers):
        resp = client.post("/api/invoices", json={"order_id": "1"}, headers=staff_headers)
        assert resp.status_code == 400

    def test_unknown_order(self, client, db_session, staff_headers):
        resp = client.post("/api/invoices", json={"order_id": 9999}, headers=staff_headers)
        assert resp.status_code == 404

    def test_customer_forbidden(self, client, db_session, customer_headers, placed_order):
        resp = client.post("/api/invoices", json={"order_id": placed_order.id}, headers=customer_headers)
        assert resp.status_code == 403


class TestUpdateRoute:

    def test_mark_paid(self, client, db_session, staff_headers, placed_order):
        invoice_id = _invoice_id(db_session, placed_order.id)
        resp = client.patch(f"/api/invoices/{invoice_id}", json={"status": "PAID"}, headers=staff_headers)

        assert resp.status_code == 200
        assert resp.get_json()["invoice"]["paid_at"] is not None

    def test_amounts_are_immutable(self, client, db_session, staff_headers, placed_order):
        invoice_id = _invoice_id(db_session, placed_order.id)
        resp = client.patch(
            f"/api/invoices/{invoice_id}",
            json={"status": "PAID", "total_cents": 1},
            headers=staff_headers,
        )

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Field not allowed: total_cents"
        assert db_session.get(Invoice, invoice_id, populate_existing=True).status == "PENDING"

    def test_invalid_status(self, client, db_session, staff_headers, placed_order):
        invoice_id = _invoice_id(db_session, placed_order.id)
        resp = client.patch(f"/api/invoices/{invoice_id}", json={"status": "VOID"}, headers=staff_headers)
        assert resp.status_code == 400

    def test_unknown_invoice(self, client, db_session, staff_headers):
        resp = client.patch("/api/invoices/9999", json={"status": "PAID"}, headers=staff_headers)
        assert resp.status_code == 404


class TestReadRoutes:

    def test_get(self, client, db_session, staff_headers, placed_order):
        invoice_id = _invoice_id(db_session, placed_order.id)
        resp = client.get(f"/api/invoices/{invoice_id}", headers=staff_headers)

        assert resp.status_code == 200
        assert resp.get_json()["invoice"]["order_number"] == placed_order.order_number

    def test_list(self, client, db_session, staff_headers, placed_order):
        resp = client.get("/api/invoices?status=PENDING&search=ana", headers=staff_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["total"] == 1
        assert body["pages"] == 1

        resp = client.get("/api/invoices?status=PAID", headers=staff_headers)
        assert resp.get_json()["total"] == 0

    def test_list_bad_limit(self, client, db_session, staff_headers):
        resp = client.get("/api/invoices?limit=lots", headers=staff_headers)
        assert resp.status_code == 400
