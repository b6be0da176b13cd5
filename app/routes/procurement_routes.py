from __future__ import annotations

from typing import Any, Dict, List

from flask import Blueprint, current_app, jsonify, request

from app.db import get_db
from app.domain.contracts import ItemInput, PurchaseRequestCreateInput, QuotationInput, to_money
from app.errors import ValidationError
from app.policies import current_actor
from app.tenant import scoped_tenant_id
from app.ui_strings import frontend_bundle, success_message


procurement_bp = Blueprint("procurement", __name__, url_prefix="/api/procurement")


def _service():
    return current_app.extensions["procurement_workflow"]


def _payload() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _parse_optional_int(value) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _parse_int_field(payload: Dict[str, Any], field: str) -> int | None:
    value = payload.get(field)
    parsed = _parse_optional_int(value)
    if value not in (None, "") and parsed is None:
        raise ValidationError(code="field_invalid", details=f"{field} must be an integer", payload={"field": field})
    return parsed


def _parse_money(value, field: str, *, required: bool = True):
    if value in (None, "") and not required:
        return None
    try:
        return to_money(value)
    except ValueError as exc:
        raise ValidationError(
            code="amount_invalid",
            details=f"{field}: {exc}",
            payload={"field": field},
        ) from exc


def _parse_item_ids(value) -> List[int] | None:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValidationError(code="field_invalid", details="item_ids must be a list", payload={"field": "item_ids"})
    parsed = [_parse_optional_int(item) for item in value]
    if any(item is None for item in parsed):
        raise ValidationError(code="field_invalid", details="item_ids must be integers", payload={"field": "item_ids"})
    return parsed


def _parse_item(raw: Any, index: int | None = None) -> ItemInput:
    field = "item" if index is None else f"items[{index}]"
    if not isinstance(raw, dict):
        raise ValidationError(code="field_invalid", details=f"{field} must be an object", payload={"field": field})
    return ItemInput(
        description=str(raw.get("description") or "").strip(),
        quantity=_parse_money(raw.get("quantity"), f"{field}.quantity"),
        unit_price=_parse_money(raw.get("unit_price"), f"{field}.unit_price"),
        uom=(raw.get("uom") or "").strip() or None,
        manufacturer=(raw.get("manufacturer") or "").strip() or None,
        specification=(raw.get("specification") or "").strip() or None,
        purchase_type=(raw.get("purchase_type") or "").strip() or None,
    )


def _context():
    return get_db(), scoped_tenant_id(), current_actor()


@procurement_bp.route("/purchase-requests", methods=["GET", "POST"])
def purchase_requests_api():
    db, tenant_id, actor = _context()
    if request.method == "GET":
        status = (request.args.get("status") or "").strip().upper() or None
        items = _service().list_purchase_requests(db, tenant_id=tenant_id, status=status)
        return jsonify({"items": items})

    payload = _payload()
    raw_items = payload.get("items") if isinstance(payload.get("items"), list) else []
    data = PurchaseRequestCreateInput(
        department=payload.get("department"),
        purpose=payload.get("purpose"),
        items=[_parse_item(raw, index) for index, raw in enumerate(raw_items)],
        total_amount=_parse_money(payload.get("total_amount"), "total_amount", required=False),
        currency=payload.get("currency"),
        sales_po_id=_parse_int_field(payload, "sales_po_id"),
    )
    pr = _service().create_purchase_request(db, tenant_id=tenant_id, actor=actor, data=data)
    detail = _service().purchase_request_detail(db, tenant_id=tenant_id, actor=actor, purchase_request_id=pr.id)
    detail["message"] = success_message("purchase_request_created")
    return jsonify(detail), 201


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>", methods=["GET", "PATCH", "DELETE"])
def purchase_request_api(purchase_request_id: int):
    db, tenant_id, actor = _context()
    service = _service()
    if request.method == "GET":
        return jsonify(service.purchase_request_detail(db, tenant_id=tenant_id, actor=actor, purchase_request_id=purchase_request_id))

    payload = _payload()
    expected_version = _parse_int_field(payload, "expected_version")
    if request.method == "DELETE":
        service.delete_purchase_request(
            db,
            tenant_id=tenant_id,
            actor=actor,
            purchase_request_id=purchase_request_id,
            expected_version=expected_version,
        )
        return jsonify({"id": purchase_request_id, "deleted": True})

    changes = {key: payload[key] for key in ("department", "purpose", "currency") if key in payload}
    if "total_amount" in payload:
        changes["total_amount"] = _parse_money(payload.get("total_amount"), "total_amount")
    service.update_purchase_request(
        db,
        tenant_id=tenant_id,
        actor=actor,
        purchase_request_id=purchase_request_id,
        changes=changes,
        expected_version=expected_version,
    )
    return jsonify(service.purchase_request_detail(db, tenant_id=tenant_id, actor=actor, purchase_request_id=purchase_request_id))


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>/items", methods=["POST"])
def purchase_request_items_api(purchase_request_id: int):
    db, tenant_id, actor = _context()
    payload = _payload()
    pr = _service().add_item(
        db,
        tenant_id=tenant_id,
        actor=actor,
        purchase_request_id=purchase_request_id,
        item=_parse_item(payload),
        expected_version=_parse_int_field(payload, "expected_version"),
    )
    return jsonify(pr.to_dict()), 201


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>/items/<int:item_id>", methods=["DELETE"])
def purchase_request_item_api(purchase_request_id: int, item_id: int):
    db, tenant_id, actor = _context()
    pr = _service().remove_item(
        db,
        tenant_id=tenant_id,
        actor=actor,
        purchase_request_id=purchase_request_id,
        item_id=item_id,
        expected_version=_parse_int_field(_payload(), "expected_version"),
    )
    return jsonify(pr.to_dict())


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>/transitions", methods=["POST"])
def purchase_request_transition_api(purchase_request_id: int):
    db, tenant_id, actor = _context()
    payload = _payload()
    action = str(payload.get("action") or "").strip()
    if not action:
        raise ValidationError(code="action_required", details="action is required")
    pr = _service().transition(
        db,
        tenant_id=tenant_id,
        actor=actor,
        purchase_request_id=purchase_request_id,
        action=action,
        reason=payload.get("reason"),
        expected_version=_parse_int_field(payload, "expected_version"),
    )
    return jsonify({"id": pr.id, "status": pr.status, "version": pr.version, "return_count": pr.return_count})


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>/history", methods=["GET"])
def purchase_request_history_api(purchase_request_id: int):
    db, tenant_id, _actor = _context()
    events = _service().history(db, tenant_id=tenant_id, purchase_request_id=purchase_request_id)
    return jsonify({"items": events})


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>/assignments", methods=["POST"])
def purchase_request_assign_api(purchase_request_id: int):
    db, tenant_id, actor = _context()
    payload = _payload()
    assignment = _service().assign(
        db,
        tenant_id=tenant_id,
        actor=actor,
        purchase_request_id=purchase_request_id,
        buyer_id=str(payload.get("buyer_id") or "").strip(),
        scope=payload.get("scope"),
        item_ids=_parse_item_ids(payload.get("item_ids")),
        note=payload.get("note"),
        expected_version=_parse_int_field(payload, "expected_version"),
    )
    return jsonify(assignment.to_dict()), 201


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>/assignments/quick", methods=["POST"])
def purchase_request_quick_assign_api(purchase_request_id: int):
    db, tenant_id, actor = _context()
    payload = _payload()
    buyers_by_type = payload.get("buyers_by_type")
    if buyers_by_type is not None and not isinstance(buyers_by_type, dict):
        raise ValidationError(code="field_invalid", details="buyers_by_type must be an object")
    assignments = _service().quick_assign(
        db,
        tenant_id=tenant_id,
        actor=actor,
        purchase_request_id=purchase_request_id,
        note=payload.get("note"),
        buyer_id=(payload.get("buyer_id") or "").strip() or None,
        buyers_by_type=buyers_by_type,
    )
    return jsonify({"items": [assignment.to_dict() for assignment in assignments]}), 201


@procurement_bp.route(
    "/purchase-requests/<int:purchase_request_id>/assignments/<int:assignment_id>",
    methods=["DELETE"],
)
def purchase_request_revoke_assignment_api(purchase_request_id: int, assignment_id: int):
    db, tenant_id, actor = _context()
    payload = _payload()
    coverage = _service().revoke_assignment(
        db,
        tenant_id=tenant_id,
        actor=actor,
        purchase_request_id=purchase_request_id,
        assignment_id=assignment_id,
        reason=payload.get("reason"),
        expected_version=_parse_int_field(payload, "expected_version"),
    )
    return jsonify({"assignment_id": assignment_id, "revoked": True, "coverage": coverage.to_dict()})


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>/coverage", methods=["GET"])
def purchase_request_coverage_api(purchase_request_id: int):
    db, tenant_id, _actor = _context()
    coverage = _service().assignment_coverage(db, tenant_id=tenant_id, purchase_request_id=purchase_request_id)
    return jsonify(coverage.to_dict())


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>/rfqs", methods=["POST"])
def purchase_request_rfq_api(purchase_request_id: int):
    db, tenant_id, actor = _context()
    rfq = _service().create_rfq(db, tenant_id=tenant_id, actor=actor, purchase_request_id=purchase_request_id)
    return jsonify(rfq.to_dict()), 201


@procurement_bp.route("/rfqs/<int:rfq_id>/send", methods=["POST"])
def rfq_send_api(rfq_id: int):
    db, tenant_id, actor = _context()
    rfq = _service().send_rfq(db, tenant_id=tenant_id, actor=actor, rfq_id=rfq_id)
    return jsonify(rfq.to_dict())


@procurement_bp.route("/rfqs/<int:rfq_id>/quotations", methods=["POST"])
def rfq_quotations_api(rfq_id: int):
    db, tenant_id, actor = _context()
    payload = _payload()
    quotation = QuotationInput(
        supplier_id=str(payload.get("supplier_id") or "").strip(),
        supplier_name=(payload.get("supplier_name") or "").strip() or None,
        total_amount=_parse_money(payload.get("total_amount"), "total_amount"),
        currency=(payload.get("currency") or "").strip() or None,
        lead_time_days=_parse_int_field(payload, "lead_time_days"),
        payment_terms=(payload.get("payment_terms") or "").strip() or None,
        warranty=(payload.get("warranty") or "").strip() or None,
        status=str(payload.get("status") or "VALID"),
    )
    saved = _service().add_quotation(db, tenant_id=tenant_id, actor=actor, rfq_id=rfq_id, quotation=quotation)
    return jsonify(saved.to_dict()), 201


@procurement_bp.route("/quotations/<int:quotation_id>", methods=["PATCH"])
def quotation_status_api(quotation_id: int):
    db, tenant_id, actor = _context()
    quotation = _service().set_quotation_status(
        db,
        tenant_id=tenant_id,
        actor=actor,
        quotation_id=quotation_id,
        status=_payload().get("status"),
    )
    return jsonify(quotation.to_dict())


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>/quotations/ranking", methods=["GET"])
def purchase_request_ranking_api(purchase_request_id: int):
    db, tenant_id, _actor = _context()
    ranking = _service().rank_quotations(db, tenant_id=tenant_id, purchase_request_id=purchase_request_id)
    return jsonify(ranking.to_dict())


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>/supplier-selection", methods=["POST"])
def purchase_request_select_supplier_api(purchase_request_id: int):
    db, tenant_id, actor = _context()
    payload = _payload()
    quotation_id = _parse_int_field(payload, "quotation_id")
    if quotation_id is None:
        raise ValidationError(code="field_invalid", details="quotation_id is required", payload={"field": "quotation_id"})
    result = _service().select_supplier(
        db,
        tenant_id=tenant_id,
        actor=actor,
        purchase_request_id=purchase_request_id,
        quotation_id=quotation_id,
        selection_reason=payload.get("selection_reason"),
        over_budget_reason=payload.get("over_budget_reason"),
        expected_version=_parse_int_field(payload, "expected_version"),
    )
    message_key = "budget_exception_raised" if result["budget_exception"] else "supplier_selected"
    result["message"] = success_message(message_key)
    return jsonify(result), 201


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>/budget-exception/decision", methods=["POST"])
def purchase_request_budget_decision_api(purchase_request_id: int):
    db, tenant_id, actor = _context()
    payload = _payload()
    decision = str(payload.get("decision") or "").strip().lower()
    if decision not in ("approve", "reject"):
        raise ValidationError(code="decision_invalid", details="decision must be approve or reject")
    budget_exception = _service().decide_budget_exception(
        db,
        tenant_id=tenant_id,
        actor=actor,
        purchase_request_id=purchase_request_id,
        approve=decision == "approve",
        note=payload.get("note"),
        expected_version=_parse_int_field(payload, "expected_version"),
    )
    return jsonify(budget_exception.to_dict())


@procurement_bp.route("/purchase-requests/<int:purchase_request_id>/payments", methods=["POST"])
def purchase_request_payments_api(purchase_request_id: int):
    db, tenant_id, actor = _context()
    payload = _payload()
    payment = _service().record_payment(
        db,
        tenant_id=tenant_id,
        actor=actor,
        purchase_request_id=purchase_request_id,
        amount=_parse_money(payload.get("amount"), "amount"),
        currency=(payload.get("currency") or "").strip() or None,
    )
    return jsonify(payment.to_dict()), 201


@procurement_bp.route("/payments/<int:payment_id>/complete", methods=["POST"])
def payment_complete_api(payment_id: int):
    db, tenant_id, actor = _context()
    payment = _service().complete_payment(db, tenant_id=tenant_id, actor=actor, payment_id=payment_id)
    return jsonify(payment.to_dict())


@procurement_bp.route("/payments/<int:payment_id>/cancel", methods=["POST"])
def payment_cancel_api(payment_id: int):
    db, tenant_id, actor = _context()
    payment = _service().cancel_payment(db, tenant_id=tenant_id, actor=actor, payment_id=payment_id)
    return jsonify(payment.to_dict())


@procurement_bp.route("/sales-pos", methods=["POST"])
def sales_pos_api():
    db, tenant_id, actor = _context()
    payload = _payload()
    sales_po = _service().create_sales_po(
        db,
        tenant_id=tenant_id,
        actor=actor,
        number=payload.get("number"),
        amount=_parse_money(payload.get("amount"), "amount"),
        customer_name=payload.get("customer_name"),
        currency=payload.get("currency"),
    )
    return jsonify(sales_po.to_dict()), 201


@procurement_bp.route("/sales-pos/<int:sales_po_id>/status", methods=["POST"])
def sales_po_status_api(sales_po_id: int):
    db, tenant_id, actor = _context()
    sales_po = _service().set_sales_po_status(
        db,
        tenant_id=tenant_id,
        actor=actor,
        sales_po_id=sales_po_id,
        status=_payload().get("status"),
    )
    return jsonify(sales_po.to_dict())


@procurement_bp.route("/sales-pos/<int:sales_po_id>/budget-usage", methods=["GET"])
def sales_po_budget_usage_api(sales_po_id: int):
    db, tenant_id, _actor = _context()
    usage = _service().budget_usage(db, tenant_id=tenant_id, sales_po_id=sales_po_id)
    return jsonify(usage.to_dict())


@procurement_bp.route("/notifications", methods=["GET"])
def notifications_api():
    db, tenant_id, actor = _context()
    unread_only = request.args.get("unread") == "1"
    notifications = _service().notifications(db, tenant_id=tenant_id, actor=actor, unread_only=unread_only)
    return jsonify({"items": [notification.to_dict() for notification in notifications]})


@procurement_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def notification_read_api(notification_id: int):
    db, tenant_id, actor = _context()
    updated = _service().mark_notification_read(db, tenant_id=tenant_id, actor=actor, notification_id=notification_id)
    return jsonify({"id": notification_id, "read": True, "updated": updated})


@procurement_bp.route("/ui-strings", methods=["GET"])
def ui_strings_api():
    return jsonify(frontend_bundle())
