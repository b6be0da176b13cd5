import unittest

from app import create_app
from app.config import Config
from app.db import close_db
from app.observability import reset_metrics_for_tests
from tests.helpers.temp_db import TempDbSandbox


def _headers(user_id: str, role: str, tenant_id: str = "tenant-routes") -> dict:
    return {"X-Tenant-Id": tenant_id, "X-User-Id": user_id, "X-User-Role": role}


REQUESTOR = _headers("req-1", "requestor")
DEPT_HEAD = _headers("dh-1", "department_head")
BRANCH_MANAGER = _headers("bm-1", "branch_manager")
BUYER_LEADER = _headers("lead-1", "buyer_leader")
BUYER = _headers("buyer-1", "buyer")
ACCOUNTANT = _headers("acc-1", "accountant")
BOARD = _headers("board-1", "BGD")
SALES = _headers("sales-1", "sales")


class ProcurementRoutesTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="procurement_routes")
        cfg = self._temp_db.make_config(Config, TESTING=True)
        self.app = create_app(cfg)
        self.client = self.app.test_client()
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()
        reset_metrics_for_tests()

    def _create_request(self, **overrides) -> dict:
        body = {
            "department": "Operations",
            "purpose": "Spare parts",
            "items": [
                {"description": "Bearing", "quantity": "4", "unit_price": "125", "purchase_type": "domestic"},
                {"description": "Gearbox", "quantity": "1", "unit_price": "500", "purchase_type": "overseas"},
            ],
        }
        body.update(overrides)
        response = self.client.post("/api/procurement/purchase-requests", headers=REQUESTOR, json=body)
        self.assertEqual(response.status_code, 201, response.get_data(as_text=True))
        return response.get_json()

    def _transition(self, pr_id: int, headers: dict, action: str, **extra):
        return self.client.post(
            f"/api/procurement/purchase-requests/{pr_id}/transitions",
            headers=headers,
            json={"action": action, **extra},
        )

    def _approve_and_assign(self, pr_id: int) -> None:
        self.assertEqual(self._transition(pr_id, REQUESTOR, "submit").status_code, 200)
        self.assertEqual(self._transition(pr_id, DEPT_HEAD, "department_head_approve").status_code, 200)
        self.assertEqual(self._transition(pr_id, BRANCH_MANAGER, "branch_manager_approve").status_code, 200)
        assign_res = self.client.post(
            f"/api/procurement/purchase-requests/{pr_id}/assignments",
            headers=BUYER_LEADER,
            json={"buyer_id": "buyer-1", "scope": "FULL", "note": "one buyer for everything"},
        )
        self.assertEqual(assign_res.status_code, 201, assign_res.get_data(as_text=True))

    def test_create_returns_detail_with_flow(self) -> None:
        created = self._create_request()

        self.assertEqual(created["status"], "DRAFT")
        self.assertEqual(created["total_amount"], "1000.00")
        self.assertEqual(len(created["items"]), 2)
        self.assertEqual(created["allowed_actions"], ["submit", "cancel"])
        self.assertEqual(created["flow"]["primary_action"], "submit")
        self.assertTrue(created["message"])

        listing = self.client.get("/api/procurement/purchase-requests", headers=REQUESTOR).get_json()
        self.assertEqual([row["id"] for row in listing["items"]], [created["id"]])

    def test_full_flow_with_budget_exception(self) -> None:
        created = self._create_request()
        pr_id = created["id"]
        self._approve_and_assign(pr_id)

        detail = self.client.get(f"/api/procurement/purchase-requests/{pr_id}", headers=BUYER).get_json()
        self.assertEqual(detail["status"], "ASSIGNED_TO_BUYER")
        self.assertTrue(detail["coverage"]["complete"])

        rfq_res = self.client.post(f"/api/procurement/purchase-requests/{pr_id}/rfqs", headers=BUYER)
        self.assertEqual(rfq_res.status_code, 201)
        rfq_id = rfq_res.get_json()["id"]

        for supplier, amount, lead_time in (("s-1", "1150", 7), ("s-2", "1300", 3)):
            quote_res = self.client.post(
                f"/api/procurement/rfqs/{rfq_id}/quotations",
                headers=BUYER,
                json={"supplier_id": supplier, "total_amount": amount, "lead_time_days": lead_time},
            )
            self.assertEqual(quote_res.status_code, 201, quote_res.get_data(as_text=True))

        ranking = self.client.get(
            f"/api/procurement/purchase-requests/{pr_id}/quotations/ranking", headers=BUYER_LEADER
        ).get_json()
        recommended_id = ranking["recommended_quotation_id"]
        self.assertEqual(ranking["ranked"][0]["quotation"]["supplier_id"], "s-1")

        missing = self.client.post(
            f"/api/procurement/purchase-requests/{pr_id}/supplier-selection",
            headers=BUYER_LEADER,
            json={"quotation_id": recommended_id, "selection_reason": "cheapest"},
        )
        self.assertEqual(missing.status_code, 422)
        self.assertEqual(missing.get_json()["error"], "missing_justification")
        self.assertEqual(missing.get_json()["over_budget"]["over_percent"], "15.00")

        selected = self.client.post(
            f"/api/procurement/purchase-requests/{pr_id}/supplier-selection",
            headers=BUYER_LEADER,
            json={
                "quotation_id": recommended_id,
                "selection_reason": "cheapest",
                "over_budget_reason": "prices rose since the request",
            },
        )
        self.assertEqual(selected.status_code, 201)
        selection = selected.get_json()
        self.assertEqual(selection["status"], "BUDGET_EXCEPTION")
        self.assertEqual(selection["budget_exception"]["over_amount"], "150.00")

        board_inbox = self.client.get("/api/procurement/notifications?unread=1", headers=BOARD).get_json()
        self.assertEqual(len(board_inbox["items"]), 1)
        foreign_read = self.client.post(
            f"/api/procurement/notifications/{board_inbox['items'][0]['id']}/read", headers=REQUESTOR
        )
        self.assertFalse(foreign_read.get_json()["updated"])
        read_res = self.client.post(
            f"/api/procurement/notifications/{board_inbox['items'][0]['id']}/read", headers=BOARD
        )
        self.assertTrue(read_res.get_json()["updated"])
        self.assertEqual(
            self.client.get("/api/procurement/notifications?unread=1", headers=BOARD).get_json()["items"], []
        )

        decision = self.client.post(
            f"/api/procurement/purchase-requests/{pr_id}/budget-exception/decision",
            headers=BOARD,
            json={"decision": "approve", "note": "customer pays the difference"},
        )
        self.assertEqual(decision.status_code, 200)
        self.assertEqual(decision.get_json()["status"], "APPROVED")

        payment_res = self.client.post(
            f"/api/procurement/purchase-requests/{pr_id}/payments", headers=ACCOUNTANT, json={"amount": "1150"}
        )
        self.assertEqual(payment_res.status_code, 201)
        payment_id = payment_res.get_json()["id"]
        done = self.client.post(f"/api/procurement/payments/{payment_id}/complete", headers=ACCOUNTANT)
        self.assertEqual(done.get_json()["status"], "DONE")

        final = self.client.get(f"/api/procurement/purchase-requests/{pr_id}", headers=REQUESTOR).get_json()
        self.assertEqual(final["status"], "PAYMENT_DONE")
        self.assertTrue(final["flow"]["terminal"])

        history = self.client.get(f"/api/procurement/purchase-requests/{pr_id}/history", headers=REQUESTOR).get_json()
        actions = [entry["action"] for entry in history["items"]]
        self.assertEqual(actions[0], "create")
        self.assertIn("raise_budget_exception", actions)
        self.assertEqual(actions[-1], "mark_payment_done")

    def test_selecting_a_quotation_of_another_request_is_a_500(self) -> None:
        quotation_ids = []
        pr_ids = []
        for amount in ("900", "950"):
            pr_id = self._create_request()["id"]
            self._approve_and_assign(pr_id)
            rfq_res = self.client.post(f"/api/procurement/purchase-requests/{pr_id}/rfqs", headers=BUYER)
            rfq_id = rfq_res.get_json()["id"]
            quote_res = self.client.post(
                f"/api/procurement/rfqs/{rfq_id}/quotations",
                headers=BUYER,
                json={"supplier_id": "s-1", "total_amount": amount, "lead_time_days": 5},
            )
            self.assertEqual(quote_res.status_code, 201, quote_res.get_data(as_text=True))
            pr_ids.append(pr_id)
            quotation_ids.append(quote_res.get_json()["id"])

        response = self.client.post(
            f"/api/procurement/purchase-requests/{pr_ids[0]}/supplier-selection",
            headers=BUYER_LEADER,
            json={"quotation_id": quotation_ids[1], "selection_reason": "cheapest"},
        )
        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload["error"], "quotation_not_in_request")
        self.assertTrue(payload["message"])
        self.assertTrue((payload.get("request_id") or "").strip())
        self.assertNotIn("Traceback", response.get_data(as_text=True))

        detail = self.client.get(f"/api/procurement/purchase-requests/{pr_ids[0]}", headers=BUYER).get_json()
        self.assertEqual(detail["status"], "QUOTATION_RECEIVED")

    def test_transition_errors_carry_allowed_actions(self) -> None:
        pr_id = self._create_request()["id"]

        invalid = self._transition(pr_id, REQUESTOR, "branch_manager_approve")
        self.assertEqual(invalid.status_code, 409)
        payload = invalid.get_json()
        self.assertEqual(payload["error"], "invalid_transition")
        self.assertEqual(payload["allowed_actions"], ["submit", "cancel"])
        self.assertTrue(payload["request_id"])

        forbidden = self._transition(pr_id, BUYER, "submit")
        self.assertEqual(forbidden.status_code, 403)
        self.assertEqual(forbidden.get_json()["error"], "role_not_permitted")

    def test_stale_expected_version_is_409(self) -> None:
        created = self._create_request()
        first = self._transition(created["id"], REQUESTOR, "submit", expected_version=created["version"])
        self.assertEqual(first.status_code, 200)
        stale = self._transition(
            created["id"], DEPT_HEAD, "department_head_approve", expected_version=created["version"]
        )
        self.assertEqual(stale.status_code, 409)
        self.assertEqual(stale.get_json()["error"], "concurrent_modification")

    def test_return_requires_reason(self) -> None:
        pr_id = self._create_request()["id"]
        self._transition(pr_id, REQUESTOR, "submit")
        missing = self._transition(pr_id, DEPT_HEAD, "department_head_return")
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.get_json()["error"], "reason_required")

        returned = self._transition(pr_id, DEPT_HEAD, "department_head_return", reason="attach a quote")
        self.assertEqual(returned.get_json()["status"], "NEED_MORE_INFO")
        self.assertEqual(returned.get_json()["return_count"], 1)

    def test_edit_items_while_draft(self) -> None:
        created = self._create_request()
        pr_id = created["id"]
        add_res = self.client.post(
            f"/api/procurement/purchase-requests/{pr_id}/items",
            headers=REQUESTOR,
            json={"description": "Seal kit", "quantity": "2", "unit_price": "25"},
        )
        self.assertEqual(add_res.status_code, 201)
        self.assertEqual(add_res.get_json()["total_amount"], "1050.00")

        patch_res = self.client.patch(
            f"/api/procurement/purchase-requests/{pr_id}",
            headers=REQUESTOR,
            json={"purpose": "Line 3 maintenance"},
        )
        self.assertEqual(patch_res.status_code, 200)
        self.assertEqual(patch_res.get_json()["purpose"], "Line 3 maintenance")

        bad_amount = self.client.post(
            f"/api/procurement/purchase-requests/{pr_id}/items",
            headers=REQUESTOR,
            json={"description": "Oil", "quantity": "lots", "unit_price": "5"},
        )
        self.assertEqual(bad_amount.status_code, 400)
        self.assertEqual(bad_amount.get_json()["error"], "amount_invalid")

    def test_sales_po_budget_usage(self) -> None:
        sales_po = self.client.post(
            "/api/procurement/sales-pos",
            headers=SALES,
            json={"number": "SO-77", "amount": "10000", "customer_name": "Northwind"},
        )
        self.assertEqual(sales_po.status_code, 201)
        sales_po_id = sales_po.get_json()["id"]

        inactive = self.client.post(
            "/api/procurement/purchase-requests",
            headers=REQUESTOR,
            json={"items": [{"description": "x", "quantity": "1", "unit_price": "1"}], "sales_po_id": sales_po_id},
        )
        self.assertEqual(inactive.status_code, 409)

        activated = self.client.post(
            f"/api/procurement/sales-pos/{sales_po_id}/status", headers=SALES, json={"status": "ACTIVE"}
        )
        self.assertEqual(activated.get_json()["status"], "ACTIVE")
        self._create_request(sales_po_id=sales_po_id)

        usage = self.client.get(f"/api/procurement/sales-pos/{sales_po_id}/budget-usage", headers=SALES).get_json()
        self.assertEqual(usage["actual_cost"], "0.00")
        self.assertEqual(usage["remaining"], "10000.00")
        self.assertEqual(usage["warning_level"], "ok")

    def test_missing_identity_is_rejected(self) -> None:
        response = self.client.get("/api/procurement/purchase-requests", headers={"X-Tenant-Id": "tenant-routes"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"], "identity_required")

        system = self.client.get("/api/procurement/purchase-requests", headers=_headers("robot", "system"))
        self.assertEqual(system.status_code, 401)

    def test_tenants_are_isolated(self) -> None:
        pr_id = self._create_request()["id"]
        other = self.client.get(
            f"/api/procurement/purchase-requests/{pr_id}", headers=_headers("req-1", "requestor", "tenant-other")
        )
        self.assertEqual(other.status_code, 404)
        self.assertEqual(other.get_json()["error"], "purchase_request_not_found")

    def test_ui_strings_bundle(self) -> None:
        payload = self.client.get("/api/procurement/ui-strings").get_json()
        self.assertIn("PAYMENT_DONE", payload["status_labels"])
        self.assertIn("submit", payload["flow"]["action_labels"])

    def test_health_and_metrics(self) -> None:
        pr_id = self._create_request()["id"]
        self._transition(pr_id, REQUESTOR, "submit")
        self._transition(pr_id, BUYER, "department_head_approve")

        health = self.client.get("/health").get_json()
        self.assertEqual(health["status"], "ok")
        self.assertEqual(health["db"], "sqlite")
        self.assertEqual(health["metrics"]["workflow"]["transitions_total"], 2)
        self.assertEqual(health["metrics"]["workflow"]["rejected_by_reason"], {"role_not_permitted": 1})

        metrics = self.client.get("/metrics")
        self.assertIn("text/plain", metrics.headers.get("Content-Type") or "")
        body = metrics.get_data(as_text=True)
        self.assertIn('pr_transition_total{action="submit",from="DRAFT",to="SUBMITTED"} 1', body)
        self.assertIn('pr_transition_rejected_total{reason="role_not_permitted"} 1', body)
        self.assertIn('domain_event_emitted_total{event_type="PurchaseRequestCreated"} 1', body)
        self.assertIn("http_request_duration_ms_bucket", body)


if __name__ == "__main__":
    unittest.main()
