"""
Boundary payload mapper (``procurement_kernel.adapters.payload_mapper``).

Responsibility
--------------
The single place where loosely shaped host payloads become canonical
domain inputs.  Host screens and older API clients send the same field in
camelCase or snake_case (``estimatedCost`` / ``estimated_cost``), use
alternative names (``total_amount`` for a quotation price) and legacy
status strings (``"pending"``, ``"executive_review"``, ``"Approved"``).
Everything behind this module sees only ``MRFDraft``, ``QuotationDraft``,
``Vendor`` and the stage/status enums.

Architecture position
---------------------
**Kernel adapters layer** -- pure functions, no I/O.  Called by the host's
HTTP/RPC layer before invoking a service command.

Failure modes
-------------
* ``ValidationError`` -- a required field is missing under every alias, a
  number or date does not parse, or a status string is unknown.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from procurement_kernel.domain.mrf import MRF, MRFDraft, MRFStage, Urgency
from procurement_kernel.domain.rfq import (
    QuotationDraft,
    QuotationLine,
    QuotationStatus,
    Vendor,
)
from procurement_kernel.exceptions import ValidationError

_MISSING = object()

LEGACY_STAGES: dict[str, MRFStage] = {
    "pending": MRFStage.SUBMITTED,
    "new": MRFStage.SUBMITTED,
    "procurement_review": MRFStage.PROCUREMENT,
    "executive_review": MRFStage.EXECUTIVE,
    "pending executive approval": MRFStage.EXECUTIVE,
    "chairman_review": MRFStage.CHAIRMAN,
    "supply_chain_review": MRFStage.SUPPLY_CHAIN,
    "vendor_selected": MRFStage.SUPPLY_CHAIN,
    "with finance": MRFStage.FINANCE,
    "payment_approval": MRFStage.CHAIRMAN_PAYMENT,
    "awaiting chairman payment approval": MRFStage.CHAIRMAN_PAYMENT,
    "cancelled": MRFStage.REJECTED,
}

LEGACY_QUOTATION_STATUSES: dict[str, QuotationStatus] = {
    "pending": QuotationStatus.SUBMITTED,
    "under review": QuotationStatus.SUBMITTED,
    "awarded": QuotationStatus.APPROVED,
    "selected": QuotationStatus.APPROVED,
}

_ACTIVE_VENDOR_STATUSES = frozenset({"active", "approved", "verified"})


def _pick(payload: Mapping[str, Any], *keys: str, default: Any = _MISSING) -> Any:
    """First present, non-empty value among ``keys``."""
    for key in keys:
        value = payload.get(key)
        if value is not None and value != "":
            return value
    if default is _MISSING:
        raise ValidationError(keys[0], f"{keys[0]} is required")
    return default


def _decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(field, f"{value!r} is not a number") from None
    if not result.is_finite():
        raise ValidationError(field, f"{value!r} is not a finite number")
    return result


def _int(value: Any, field: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(field, f"{value!r} is not a whole number") from None


def _date(value: Any, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise ValidationError(field, f"{value!r} is not an ISO date") from None


def _bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "verified", "active"}


def normalize_stage(value: str) -> MRFStage:
    """Map a current or legacy stage string to ``MRFStage``."""
    text = (value or "").strip().lower()
    try:
        return MRFStage(text)
    except ValueError:
        pass
    if text in LEGACY_STAGES:
        return LEGACY_STAGES[text]
    raise ValidationError("current_stage", f"unknown stage {value!r}")


def normalize_quotation_status(value: str) -> QuotationStatus:
    text = (value or "").strip().lower()
    try:
        return QuotationStatus(text)
    except ValueError:
        pass
    if text in LEGACY_QUOTATION_STATUSES:
        return LEGACY_QUOTATION_STATUSES[text]
    raise ValidationError("status", f"unknown quotation status {value!r}")


def mrf_from_payload(payload: Mapping[str, Any]) -> MRFDraft:
    """Build a submission from a host MRF form payload."""
    urgency = str(_pick(payload, "urgency", "priority", default="medium")).strip().lower()
    try:
        urgency_value = Urgency(urgency)
    except ValueError:
        raise ValidationError("urgency", f"unknown urgency {urgency!r}") from None
    return MRFDraft(
        title=str(_pick(payload, "title")).strip(),
        category=str(_pick(payload, "category")).strip(),
        description=str(_pick(payload, "description", default="")).strip(),
        quantity=_decimal(_pick(payload, "quantity", default="1"), "quantity"),
        estimated_cost=_decimal(
            _pick(payload, "estimated_cost", "estimatedCost"), "estimated_cost",
        ),
        urgency=urgency_value,
        justification=str(_pick(payload, "justification", default="")).strip(),
        department=str(_pick(payload, "department", default="")).strip(),
        currency=str(_pick(payload, "currency", default="NGN")).strip().upper(),
        pfi_url=_pick(payload, "pfi_url", "pfiUrl", "pfi_share_url", "pfiShareUrl", default=None),
    )


def _line_from_payload(item: Mapping[str, Any]) -> QuotationLine:
    return QuotationLine(
        name=str(_pick(item, "name", "item", "description")).strip(),
        quantity=_decimal(_pick(item, "quantity", "qty", default="1"), "quantity"),
        unit_price=_decimal(
            _pick(item, "unit_price", "unitPrice", "price"), "unit_price",
        ),
    )


def quotation_from_payload(payload: Mapping[str, Any]) -> QuotationDraft:
    """Build a bid from a vendor portal payload."""
    raw_price = _pick(payload, "price", "total_amount", "totalAmount", default=None)
    raw_lines = _pick(payload, "line_items", "lineItems", "items", default=())
    validity = _pick(payload, "validity_days", "validityDays", default=None)
    return QuotationDraft(
        vendor_id=str(_pick(payload, "vendor_id", "vendorId")).strip(),
        delivery_date=_date(
            _pick(payload, "delivery_date", "deliveryDate"), "delivery_date",
        ),
        price=_decimal(raw_price, "price") if raw_price is not None else None,
        line_items=tuple(_line_from_payload(item) for item in raw_lines),
        payment_terms=_pick(payload, "payment_terms", "paymentTerms", default=None),
        validity_days=_int(validity, "validity_days") if validity is not None else None,
        warranty_period=_pick(payload, "warranty_period", "warrantyPeriod", default=None),
        notes=_pick(payload, "notes", "comments", default=None),
        document_ref=_pick(
            payload, "document_ref", "documentRef", "document_url", "documentUrl",
            default=None,
        ),
    )


def vendor_from_payload(payload: Mapping[str, Any]) -> Vendor:
    """Build a vendor record from a vendor-registry payload."""
    status = _pick(payload, "status", default=None)
    if status is not None:
        active = str(status).strip().lower() in _ACTIVE_VENDOR_STATUSES
    else:
        active = _bool(_pick(payload, "active", "is_active", "isActive", default=True))
    kyc = _pick(payload, "kyc_verified", "kycVerified", "kyc_status", "kycStatus", default=True)
    return Vendor(
        id=str(_pick(payload, "id", "vendor_id", "vendorId")).strip(),
        name=str(_pick(payload, "name", "company_name", "companyName")).strip(),
        category=str(_pick(payload, "category", default="")).strip(),
        rating=_decimal(_pick(payload, "rating", default="0"), "rating"),
        completed_orders=_int(_pick(
            payload, "completed_orders", "completedOrders", "orders", default=0,
        ), "completed_orders"),
        active=active,
        kyc_verified=_bool(kyc),
        email=_pick(payload, "email", "contact_email", "contactEmail", default=None),
    )


def mrf_to_payload(mrf: MRF) -> dict[str, Any]:
    """Render an MRF snapshot in the camelCase shape host screens expect."""
    return {
        "id": str(mrf.id),
        "controlNumber": mrf.control_number,
        "title": mrf.title,
        "category": mrf.category,
        "description": mrf.description,
        "quantity": str(mrf.quantity),
        "estimatedCost": str(mrf.estimated_cost),
        "currency": mrf.currency,
        "urgency": mrf.urgency.value,
        "justification": mrf.justification,
        "department": mrf.department,
        "requesterId": str(mrf.requester_id),
        "requesterName": mrf.requester_name,
        "currentStage": mrf.current_stage.value,
        "rejectionReason": mrf.rejection_reason,
        "isResubmission": mrf.is_resubmission,
        "originalMrfId": str(mrf.original_mrf_id) if mrf.original_mrf_id else None,
        "poNumber": mrf.po_number,
        "unsignedPOUrl": mrf.unsigned_po_url,
        "signedPOUrl": mrf.signed_po_url,
        "poVersion": mrf.po_version,
        "poRejectionReason": mrf.po_rejection_reason,
        "pfiUrl": mrf.pfi_url,
        "proposedVendorId": mrf.proposed_vendor_id,
        "vendorRejectionReason": mrf.vendor_rejection_reason,
        "paymentStatus": mrf.payment_status.value,
        "grnRequested": mrf.grn_requested,
        "grnUrl": mrf.grn_url,
        "submittedAt": mrf.submitted_at.isoformat() if mrf.submitted_at else None,
        "approvalHistory": [
            {
                "sequence": e.sequence,
                "stage": e.stage.value,
                "action": e.action.value,
                "resultingStage": e.resulting_stage.value,
                "approverId": str(e.approver_id),
                "approverName": e.approver_name,
                "approverRole": e.approver_role,
                "timestamp": e.timestamp.isoformat(),
                "remarks": e.remarks,
            }
            for e in mrf.history
        ],
    }
