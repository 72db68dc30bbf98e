"""
Tests for the boundary payload mapper: alias resolution, legacy status
strings and the camelCase MRF rendering.
"""

from datetime import date
from decimal import Decimal

import pytest

from procurement_kernel.adapters.payload_mapper import (
    mrf_from_payload,
    mrf_to_payload,
    normalize_quotation_status,
    normalize_stage,
    quotation_from_payload,
    vendor_from_payload,
)
from procurement_kernel.domain.mrf import MRFStage, Urgency
from procurement_kernel.domain.rfq import QuotationStatus
from procurement_kernel.exceptions import ValidationError


class TestStages:

    @pytest.mark.parametrize("raw, expected", [
        ("executive", MRFStage.EXECUTIVE),
        (" Supply_Chain ", MRFStage.SUPPLY_CHAIN),
        ("pending", MRFStage.SUBMITTED),
        ("executive_review", MRFStage.EXECUTIVE),
        ("Pending Executive Approval", MRFStage.EXECUTIVE),
        ("vendor_selected", MRFStage.SUPPLY_CHAIN),
        ("cancelled", MRFStage.REJECTED),
        ("chairman_payment", MRFStage.CHAIRMAN_PAYMENT),
        ("Payment_Approval", MRFStage.CHAIRMAN_PAYMENT),
    ])
    def test_legacy_and_current(self, raw, expected):
        assert normalize_stage(raw) == expected

    def test_unknown_stage(self):
        with pytest.raises(ValidationError):
            normalize_stage("archived")

    @pytest.mark.parametrize("raw, expected", [
        ("pending", QuotationStatus.SUBMITTED),
        ("Awarded", QuotationStatus.APPROVED),
        ("closed", QuotationStatus.CLOSED),
    ])
    def test_quotation_status(self, raw, expected):
        assert normalize_quotation_status(raw) == expected


class TestMRFPayload:

    def test_camel_case_aliases(self):
        draft = mrf_from_payload({
            "title": " Laptops ",
            "category": "IT",
            "estimatedCost": "1,250,000.50",
            "priority": "HIGH",
            "quantity": 5,
        })

        assert draft.title == "Laptops"
        assert draft.estimated_cost == Decimal("1250000.50")
        assert draft.urgency == Urgency.HIGH
        assert draft.quantity == Decimal("5")
        assert draft.currency == "NGN"

    def test_missing_cost(self):
        with pytest.raises(ValidationError) as exc_info:
            mrf_from_payload({"title": "x", "category": "IT", "estimated_cost": ""})
        assert exc_info.value.field == "estimated_cost"

    def test_bad_number(self):
        with pytest.raises(ValidationError):
            mrf_from_payload({"title": "x", "category": "IT", "estimated_cost": "lots"})

    def test_unknown_urgency(self):
        with pytest.raises(ValidationError):
            mrf_from_payload({"title": "x", "category": "IT", "estimated_cost": 1, "urgency": "asap"})

    def test_render_round_trip_fields(self, gate, requester):
        mrf = gate.submit_mrf(requester, mrf_from_payload({
            "title": "Laptops", "category": "IT", "estimated_cost": "900000",
        }))

        payload = mrf_to_payload(mrf)

        assert payload["controlNumber"] == mrf.control_number
        assert payload["currentStage"] == "submitted"
        assert payload["estimatedCost"] == str(mrf.estimated_cost)
        assert payload["poVersion"] == 1
        assert payload["originalMrfId"] is None
        assert [e["action"] for e in payload["approvalHistory"]] == ["submitted"]

    def test_pfi_reference_is_carried(self, gate, requester):
        draft = mrf_from_payload({
            "title": "Generators", "category": "Power", "estimated_cost": "400000",
            "pfiUrl": " memory://pfi-4471.pdf ",
        })

        payload = mrf_to_payload(gate.submit_mrf(requester, draft))

        assert payload["pfiUrl"] == "memory://pfi-4471.pdf"
        assert payload["paymentStatus"] == "pending"
        assert payload["grnRequested"] is False


class TestQuotationPayload:

    def test_aliases_and_lines(self):
        draft = quotation_from_payload({
            "vendorId": "V-ACME",
            "deliveryDate": "2024-03-01T00:00:00Z",
            "lineItems": [{"item": "Chair", "qty": "2", "unitPrice": "150.25"}],
            "validityDays": "45",
            "comments": "firm",
        })

        assert draft.vendor_id == "V-ACME"
        assert draft.delivery_date == date(2024, 3, 1)
        assert draft.price is None
        assert draft.line_items[0].unit_price == Decimal("150.25")
        assert draft.validity_days == 45
        assert draft.notes == "firm"

    def test_total_amount_is_price(self):
        draft = quotation_from_payload({
            "vendor_id": "V-ACME", "delivery_date": "2024-03-01", "total_amount": 9999,
        })

        assert draft.price == Decimal("9999")

    def test_bad_date(self):
        with pytest.raises(ValidationError):
            quotation_from_payload({"vendor_id": "V-ACME", "delivery_date": "next week"})


class TestVendorPayload:

    def test_status_string_drives_active(self):
        vendor = vendor_from_payload({
            "vendorId": "V-9", "companyName": "Nine", "status": "Suspended",
            "completedOrders": "12", "rating": 4.4,
        })

        assert not vendor.active
        assert vendor.completed_orders == 12
        assert vendor.rating == Decimal("4.4")

    def test_defaults(self):
        vendor = vendor_from_payload({"id": "V-1", "name": "One"})

        assert vendor.active
        assert vendor.is_eligible
        assert vendor.rating == Decimal("0")

    def test_unverified_kyc(self):
        vendor = vendor_from_payload({"id": "V-2", "name": "Two", "kycStatus": "pending"})

        assert not vendor.is_eligible
