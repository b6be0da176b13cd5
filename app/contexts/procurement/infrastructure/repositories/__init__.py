from app.contexts.procurement.infrastructure.repositories.assignment_repository import AssignmentRepository
from app.contexts.procurement.infrastructure.repositories.budget_exception_repository import BudgetExceptionRepository
from app.contexts.procurement.infrastructure.repositories.notification_repository import NotificationRepository
from app.contexts.procurement.infrastructure.repositories.payment_repository import PaymentRepository
from app.contexts.procurement.infrastructure.repositories.purchase_request_item_repository import (
    PurchaseRequestItemRepository,
)
from app.contexts.procurement.infrastructure.repositories.purchase_request_repository import PurchaseRequestRepository
from app.contexts.procurement.infrastructure.repositories.quotation_repository import QuotationRepository
from app.contexts.procurement.infrastructure.repositories.rfq_repository import RfqRepository
from app.contexts.procurement.infrastructure.repositories.sales_po_repository import SalesPORepository
from app.contexts.procurement.infrastructure.repositories.status_event_repository import StatusEventRepository
from app.contexts.procurement.infrastructure.repositories.supplier_selection_repository import (
    SupplierSelectionRepository,
)

__all__ = [
    "AssignmentRepository",
    "BudgetExceptionRepository",
    "NotificationRepository",
    "PaymentRepository",
    "PurchaseRequestItemRepository",
    "PurchaseRequestRepository",
    "QuotationRepository",
    "RfqRepository",
    "SalesPORepository",
    "StatusEventRepository",
    "SupplierSelectionRepository",
]
