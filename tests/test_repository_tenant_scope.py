import unittest
from decimal import Decimal

from app import create_app
from app.config import Config
from app.contexts.procurement.infrastructure.repositories import NotificationRepository, PurchaseRequestRepository
from app.db import close_db, get_db
from app.infrastructure.repositories.base import TenantScopeRequiredError
from tests.helpers.temp_db import TempDbSandbox


class ProcurementRepositoryTenantScopeTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="repo_scope")
        TempConfig = self._temp_db.make_config(Config, TESTING=True)
        self.app = create_app(TempConfig)

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _create(self, db, repo: PurchaseRequestRepository, number: str) -> int:
        return repo.create(
            db,
            number=number,
            requestor_id="req-1",
            department="Operations",
            purpose=None,
            total_amount=Decimal("10.00"),
            currency="VND",
            status="DRAFT",
            sales_po_id=None,
        )

    def test_repository_requires_tenant_scope(self) -> None:
        with self.assertRaises(TenantScopeRequiredError):
            PurchaseRequestRepository()
        with self.assertRaises(TenantScopeRequiredError):
            NotificationRepository(tenant_id="   ")

    def test_purchase_request_repository_isolates_tenant_data(self) -> None:
        with self.app.app_context():
            db = get_db()
            repo_a = PurchaseRequestRepository(tenant_id="tenant-a")
            repo_b = PurchaseRequestRepository(tenant_id="tenant-b")

            with db.transaction():
                a_id = self._create(db, repo_a, "PR-2026-0001")
                b_id = self._create(db, repo_b, "PR-2026-0001")

            self.assertEqual([row["id"] for row in repo_a.list_summary(db)], [a_id])
            self.assertEqual([row["id"] for row in repo_b.list_summary(db)], [b_id])
            self.assertIsNone(repo_a.get_row(db, b_id))
            self.assertEqual(repo_b.list_numbers_like(db, "PR-2026-"), ["PR-2026-0001"])

    def test_soft_deleted_request_keeps_its_number(self) -> None:
        with self.app.app_context():
            db = get_db()
            repo = PurchaseRequestRepository(tenant_id="tenant-a")
            with db.transaction():
                pr_id = self._create(db, repo, "PR-2026-0001")
                self.assertTrue(repo.soft_delete(db, pr_id, expected_version=1))

            self.assertIsNone(repo.get_row(db, pr_id))
            self.assertIsNotNone(repo.get_row(db, pr_id, include_deleted=True))
            self.assertEqual(repo.list_summary(db), [])
            self.assertEqual(repo.list_numbers_like(db, "PR-2026-"), ["PR-2026-0001"])

    def test_notification_read_is_tenant_scoped(self) -> None:
        with self.app.app_context():
            db = get_db()
            repo_a = NotificationRepository(tenant_id="tenant-a")
            repo_b = NotificationRepository(tenant_id="tenant-b")
            with db.transaction():
                inserted = repo_a.add_once(
                    db,
                    event_id="evt-1",
                    notification_type="PR_STATUS_CHANGED",
                    recipient_role="department_head",
                    recipient_id=None,
                    purchase_request_id=1,
                    message="PR-2026-0001 needs approval",
                    payload={"to_status": "DEPT_HEAD_PENDING"},
                )
            self.assertTrue(inserted)
            notification = repo_a.list_for_recipient(db, recipient_role="department_head")[0]

            with db.transaction():
                self.assertFalse(repo_b.mark_read(db, notification.id, recipient_role="department_head"))
                self.assertFalse(repo_a.mark_read(db, notification.id, recipient_role="requestor"))
                self.assertTrue(repo_a.mark_read(db, notification.id, recipient_role="department_head"))
                self.assertFalse(repo_a.mark_read(db, notification.id, recipient_role="department_head"))
            self.assertEqual(repo_a.list_for_recipient(db, recipient_role="department_head", unread_only=True), [])


if __name__ == "__main__":
    unittest.main()
