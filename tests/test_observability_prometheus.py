import json
import logging
import unittest

from app import create_app
from app.config import Config
from app.core import PurchaseRequestCreated
from app.db import close_db
from app.observability import (
    JsonLogFormatter,
    observe_budget_exception,
    observe_concurrent_modification,
    reset_metrics_for_tests,
    set_log_request_id,
)
from tests.helpers.temp_db import TempDbSandbox


class _MetricsConfig(Config):
    TESTING = False
    DB_AUTO_INIT = False


class ObservabilityPrometheusTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="observability_metrics")
        cfg = self._temp_db.make_config(_MetricsConfig)
        self.app = create_app(cfg)
        self.client = self.app.test_client()
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()
        reset_metrics_for_tests()

    def test_metrics_endpoint_exposes_prometheus_metrics(self) -> None:
        self.client.get("/api/unknown")
        self.app.extensions["procurement_workflow"].event_bus.publish(
            PurchaseRequestCreated(
                tenant_id="tenant-metrics",
                purchase_request_id=99,
                pr_number="PR-2026-0099",
                status="DRAFT",
                actor_id="req-1",
                items_created=1,
            )
        )
        observe_concurrent_modification()
        observe_budget_exception()

        response = self.client.get("/metrics")
        self.assertEqual(response.status_code, 200)
        content_type = response.headers.get("Content-Type") or ""
        self.assertIn("text/plain", content_type)

        payload = response.get_data(as_text=True)
        self.assertIn('http_request_total{method="GET",route="/api/unknown",status="404"} 1', payload)
        self.assertIn("http_request_duration_ms_bucket", payload)
        self.assertIn('domain_event_emitted_total{event_type="PurchaseRequestCreated"} 1', payload)
        self.assertIn("# TYPE pr_transition_total counter", payload)
        self.assertIn("# TYPE pr_transition_rejected_total counter", payload)
        self.assertIn("pr_concurrent_modification_total 1", payload)
        self.assertIn("pr_budget_exception_total 1", payload)

    def test_log_formatter_includes_request_id_outside_request_context(self) -> None:
        set_log_request_id("worker-req-123")
        formatter = JsonLogFormatter()
        record = logging.LogRecord(
            name="app",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="pr_status_changed",
            args=(),
            exc_info=None,
        )
        record.purchase_request_id = 7
        parsed = json.loads(formatter.format(record))
        self.assertEqual(parsed.get("request_id"), "worker-req-123")
        self.assertEqual(parsed.get("purchase_request_id"), 7)
        self.assertEqual(parsed.get("message"), "pr_status_changed")

    def test_health_reports_backend_and_metrics(self) -> None:
        response = self.client.get("/health", headers={"X-Request-Id": "health-req-1"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers.get("X-Request-Id"), "health-req-1")
        payload = response.get_json() or {}

        self.assertEqual(payload.get("status"), "ok")
        self.assertEqual(payload.get("db"), "sqlite")
        self.assertIn("env", payload)
        metrics = payload.get("metrics") or {}
        self.assertIn("workflow", metrics)
        self.assertIn("domain_events", metrics)


if __name__ == "__main__":
    unittest.main()
