# Overview: Pytest coverage for HTTP context checks, error mapping and end-to-end API flows.

"""
API Route Tests

Covers:
- Gateway headers: 401 without tenant/user, 400 without POS context
- Domain error kinds mapped to HTTP status with {"error", "kind"} bodies
- Purchase order create -> lifecycle -> receive over HTTP
- POS session, checkout (JSON numbers parsed as Decimal), suspend and resume
- /health
"""

from conftest import context_headers, pos_headers, set_stock


class TestRequestContext:
    def test_missing_identity_is_401(self, client, db_session):
        resp = client.get("/api/purchase-orders")
        assert resp.status_code == 401
        assert resp.get_json()["kind"] == "UNAUTHENTICATED"

    def test_non_numeric_tenant_is_401(self, client, db_session):
        resp = client.get("/api/purchase-orders", headers={"X-Tenant-Id": "abc", "X-User-Id": "1"})
        assert resp.status_code == 401

    def test_pos_route_needs_terminal(self, client, db_session, tenant):
        resp = client.post("/api/pos/sessions/start", json={"starting_cash": 10}, headers=context_headers(tenant))
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "VALIDATION_FAILED"


class TestErrorMapping:
    def test_not_found_is_404(self, client, db_session, tenant):
        resp = client.get("/api/purchase-orders/999", headers=context_headers(tenant))
        assert resp.status_code == 404
        assert resp.get_json()["kind"] == "NOT_FOUND"

    def test_cross_tenant_read_is_404(self, client, db_session, tenant, other_tenant, supplier, location, product):
        created = client.post(
            "/api/purchase-orders",
            json={
                "supplier_id": supplier.id,
                "location_id": location.id,
                "items": [{"product_id": product.id, "quantity_ordered": 1, "unit_cost": 1}],
            },
            headers=context_headers(tenant),
        ).get_json()["purchase_order"]

        resp = client.get(f"/api/purchase-orders/{created['id']}", headers=context_headers(other_tenant))
        assert resp.status_code == 404

    def test_validation_is_400(self, client, db_session, tenant):
        resp = client.post("/api/purchase-orders", json={"supplier_id": 1}, headers=context_headers(tenant))
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["kind"] == "VALIDATION_FAILED"
        assert "error" in body

    def test_non_object_body_is_400(self, client, db_session, tenant):
        resp = client.post("/api/purchase-orders", json=[1, 2], headers=context_headers(tenant))
        assert resp.status_code == 400

    def test_invalid_state_is_400(self, client, db_session, tenant, location):
        resp = client.post(
            "/api/pos/checkout",
            json={
                "session_id": 1,
                "items": [{"product_id": 1, "quantity": 1}],
                "payments": [{"payment_method": "CASH", "amount": 10}],
            },
            headers=pos_headers(tenant, location),
        )
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "INVALID_STATE"

    def test_conflict_is_409(self, client, db_session, tenant, location):
        headers = pos_headers(tenant, location)
        assert client.post("/api/pos/sessions/start", json={"starting_cash": 50}, headers=headers).status_code == 201

        resp = client.post("/api/pos/sessions/start", json={"starting_cash": 50}, headers=headers)

        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "CONFLICT"


class TestPurchaseOrderApi:
    def test_lifecycle_and_receive(self, client, db_session, tenant, supplier, location, product):
        headers = context_headers(tenant)

        assert client.get("/api/purchase-orders/next-number", headers=headers).get_json() == {
            "next_po_number": "PO-000001"
        }

        resp = client.post(
            "/api/purchase-orders",
            json={
                "supplier_id": supplier.id,
                "location_id": location.id,
                "items": [{"product_id": product.id, "quantity_ordered": 10, "unit_cost": 2.5, "tax_rate": 0.1}],
                "shipping_cost": 4,
                "expected_delivery_date": "2026-11-30",
            },
            headers=headers,
        )
        assert resp.status_code == 201
        po = resp.get_json()["purchase_order"]
        assert po["po_number"] == "PO-000001"
        assert po["total_amount"] == "31.5"
        assert po["expected_delivery_date"] == "2026-11-30"

        for action, status in (("submit", "PENDING_APPROVAL"), ("approve", "APPROVED"), ("send", "SENT")):
            resp = client.post(f"/api/purchase-orders/{po['id']}/{action}", headers=headers)
            assert resp.status_code == 200
            assert resp.get_json()["purchase_order"]["status"] == status

        item_id = po["items"][0]["id"]
        resp = client.post(
            f"/api/purchase-orders/{po['id']}/receive",
            json={"items": [{"po_item_id": item_id, "quantity_received": 4}]},
            headers=headers,
        )
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["updated_status"] == "PARTIALLY_RECEIVED"
        assert body["ledger_entries"] == 1
        assert body["purchase_order"]["items"][0]["quantity_outstanding"] == "6"

        resp = client.post(
            f"/api/purchase-orders/{po['id']}/receive",
            json={"items": [{"po_item_id": item_id, "quantity_received": 7}]},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["details"]["outstanding"] == "6"

    def test_unknown_action(self, client, db_session, tenant, supplier, location, product):
        headers = context_headers(tenant)
        po = client.post(
            "/api/purchase-orders",
            json={
                "supplier_id": supplier.id,
                "location_id": location.id,
                "items": [{"product_id": product.id, "quantity_ordered": 1, "unit_cost": 1}],
            },
            headers=headers,
        ).get_json()["purchase_order"]

        resp = client.post(f"/api/purchase-orders/{po['id']}/explode", headers=headers)
        assert resp.status_code == 400

    def test_list_and_patch(self, client, db_session, tenant, supplier, location, product):
        headers = context_headers(tenant)
        po = client.post(
            "/api/purchase-orders",
            json={
                "supplier_id": supplier.id,
                "location_id": location.id,
                "items": [{"product_id": product.id, "quantity_ordered": 1, "unit_cost": 1}],
            },
            headers=headers,
        ).get_json()["purchase_order"]

        resp = client.patch(f"/api/purchase-orders/{po['id']}", json={"notes": "Call before delivery"}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["purchase_order"]["notes"] == "Call before delivery"

        listing = client.get("/api/purchase-orders?status=DRAFT", headers=headers).get_json()
        assert listing["total"] == 1
        assert "items" not in listing["purchase_orders"][0]


class TestPosApi:
    def test_session_checkout_and_close(self, client, db_session, tenant, location, product):
        set_stock(db_session, tenant, product, location, on_hand=10)
        headers = pos_headers(tenant, location)

        resp = client.post("/api/pos/sessions/start", json={"starting_cash": 100}, headers=headers)
        assert resp.status_code == 201
        session_id = resp.get_json()["session"]["id"]

        resp = client.post(
            "/api/pos/checkout",
            json={
                "session_id": session_id,
                "items": [{"product_id": product.id, "quantity": 3, "discount_percent": 0.1}],
                "payments": [{"payment_method": "cash", "amount": 27.0}],
            },
            headers=headers,
        )
        assert resp.status_code == 201
        order = resp.get_json()["order"]
        assert order["status"] == "COMPLETED"
        assert order["total_amount"] == "27"
        assert order["payments"][0]["payment_method"] == "CASH"

        current = client.get("/api/pos/sessions/current", headers=headers).get_json()
        assert current["payment_summary"]["totals_by_type"]["CASH_SALE"] == "27"

        resp = client.post(f"/api/pos/sessions/{session_id}/end", json={"ending_cash": 127}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["session"]["difference"] == "0"

        assert client.get("/api/pos/sessions/current", headers=headers).get_json() == {"session": None}

    def test_payment_mismatch_is_400(self, client, db_session, tenant, location, product):
        set_stock(db_session, tenant, product, location, on_hand=10)
        headers = pos_headers(tenant, location)
        session_id = client.post(
            "/api/pos/sessions/start", json={"starting_cash": 0}, headers=headers
        ).get_json()["session"]["id"]

        resp = client.post(
            "/api/pos/checkout",
            json={
                "session_id": session_id,
                "items": [{"product_id": product.id, "quantity": 1}],
                "payments": [{"payment_method": "CASH", "amount": 9.99}],
            },
            headers=headers,
        )

        assert resp.status_code == 400
        assert resp.get_json()["details"] == {"payment_total": "9.99", "order_total": "10"}

    def test_suspend_list_resume(self, client, db_session, tenant, location, product):
        set_stock(db_session, tenant, product, location, on_hand=10)
        headers = pos_headers(tenant, location)
        session_id = client.post(
            "/api/pos/sessions/start", json={"starting_cash": 0}, headers=headers
        ).get_json()["session"]["id"]

        resp = client.post(
            "/api/pos/suspend",
            json={"session_id": session_id, "items": [{"product_id": product.id, "quantity": 2}]},
            headers=headers,
        )
        assert resp.status_code == 201
        order_id = resp.get_json()["order"]["id"]

        listing = client.get("/api/pos/sales/suspended", headers=headers).get_json()
        assert listing["count"] == 1

        resp = client.delete(f"/api/pos/sales/suspended/{order_id}", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["resumed_into_session_id"] == session_id

        resp = client.delete(f"/api/pos/sales/suspended/{order_id}", headers=headers)
        assert resp.status_code == 409

    def test_cash_movement(self, client, db_session, tenant, location):
        headers = pos_headers(tenant, location)
        session_id = client.post(
            "/api/pos/sessions/start", json={"starting_cash": 20}, headers=headers
        ).get_json()["session"]["id"]

        resp = client.post(
            f"/api/pos/sessions/{session_id}/cash",
            json={"transaction_type": "pay_out", "amount": 5.5, "notes": "Milk for staff room"},
            headers=headers,
        )

        assert resp.status_code == 201
        assert resp.get_json()["transaction"]["amount"] == "5.5"


class TestHealth:
    def test_health_ok(self, client, db_session):
        resp = client.get("/health")
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "healthy"
