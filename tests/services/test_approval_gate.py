"""
Tests for the Approval Gate.

Covers:
- submit_mrf(): control numbers, validation, PFI reference, submission event
- approve(): chairman escalation boundary, role checks, stale views
- reject(): reason required, rejected MRFs are terminal, sourcing closed
- cancel_mrf(): requester cancellation, open RFQ closed with the MRF
- resubmit_mrf(): linkage to the original, requester-only
- update_estimated_cost(): escalation decision is not revisited
- available_actions()
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from procurement_kernel.domain.actor import Role
from procurement_kernel.domain.events import EventType
from procurement_kernel.domain.mrf import HistoryAction, MRFStage
from procurement_kernel.domain.rfq import QuotationStatus, RFQStatus
from procurement_kernel.exceptions import (
    ConcurrentModificationError,
    InvalidStateError,
    InvalidTransitionError,
    MRFNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from procurement_kernel.selectors import MRFSelector, RFQSelector
from tests.conftest import make_actor, make_bid, make_draft


class TestSubmit:

    def test_assigns_sequential_control_numbers(self, gate, requester):
        first = gate.submit_mrf(requester, make_draft())
        second = gate.submit_mrf(requester, make_draft(title="Desks"))

        assert first.control_number == "MRF-2024-0001"
        assert second.control_number == "MRF-2024-0002"
        assert first.current_stage == MRFStage.SUBMITTED
        assert first.requester_id == requester.actor_id
        assert first.history[0].action == HistoryAction.SUBMITTED

    def test_emits_submission_event(self, gate, requester, sink):
        mrf = gate.submit_mrf(requester, make_draft())

        events = sink.of_type(EventType.MRF_SUBMITTED)
        assert len(events) == 1
        assert events[0].aggregate_id == mrf.id
        assert events[0].payload["control_number"] == mrf.control_number

    def test_logs_commit(self, gate, requester, captured_logs):
        mrf = gate.submit_mrf(requester, make_draft())

        committed = [r for r in captured_logs() if r["message"] == "procurement_mrf_submit_committed"]
        assert len(committed) == 1
        assert committed[0]["control_number"] == mrf.control_number

    def test_invalid_draft_persists_nothing(self, gate, session, requester, sink):
        with pytest.raises(ValidationError) as exc_info:
            gate.submit_mrf(requester, make_draft(title="  "))

        assert exc_info.value.field == "title"
        assert MRFSelector(session).list_for_requester(requester.actor_id) == []
        assert sink.events == []

    def test_negative_cost_rejected(self, gate, requester):
        with pytest.raises(ValidationError):
            gate.submit_mrf(requester, make_draft(estimated_cost="-1"))

    def test_pfi_reference(self, gate, requester):
        mrf = gate.submit_mrf(requester, make_draft(pfi_url=" s3://pfi/771.pdf "))
        assert mrf.pfi_url == "s3://pfi/771.pdf"

        assert gate.submit_mrf(requester, make_draft(pfi_url="   ")).pfi_url is None

        with pytest.raises(ValidationError) as exc_info:
            gate.submit_mrf(requester, make_draft(pfi_url="s3://" + "x" * 2048))
        assert exc_info.value.field == "pfi_url"

    def test_history_is_persisted(self, gate, session, submitted_mrf, procurement_manager):
        gate.approve(submitted_mrf.id, procurement_manager, remarks="checked")

        history = MRFSelector(session).history(submitted_mrf.id)
        assert [e.sequence for e in history] == [1, 2]
        assert history[1].remarks == "checked"
        assert history[1].approver_role == "procurement_manager"


class TestApprove:

    @pytest.mark.parametrize("cost, expected", [
        ("1000001", MRFStage.CHAIRMAN),
        ("1000000", MRFStage.SUPPLY_CHAIN),
    ])
    def test_chairman_escalation_boundary(
        self, gate, requester, advance_mrf, executive, cost, expected,
    ):
        mrf = gate.submit_mrf(requester, make_draft(estimated_cost=cost))
        advance_mrf(mrf.id, MRFStage.EXECUTIVE)

        approved = gate.approve(mrf.id, executive, remarks="ok")

        assert approved.current_stage == expected

    def test_wrong_role_leaves_mrf_unchanged(
        self, gate, session, submitted_mrf, advance_mrf, procurement_manager, captured_logs, sink,
    ):
        advance_mrf(submitted_mrf.id, MRFStage.EXECUTIVE)
        before = MRFSelector(session).get(submitted_mrf.id)
        sink.clear()

        with pytest.raises(UnauthorizedError) as exc_info:
            gate.approve(submitted_mrf.id, procurement_manager)

        assert exc_info.value.required_roles == ("executive",)
        after = MRFSelector(session).get(submitted_mrf.id)
        assert after.current_stage == MRFStage.EXECUTIVE
        assert after.history == before.history
        assert sink.events == []
        rejected = [r for r in captured_logs() if r["message"] == "procurement_mrf_approve_rejected"]
        assert rejected[0]["error_code"] == "UNAUTHORIZED"

    def test_unknown_mrf(self, gate, procurement_manager):
        with pytest.raises(MRFNotFoundError):
            gate.approve(uuid4(), procurement_manager)

    def test_expected_stage_mismatch(self, gate, submitted_mrf, procurement_manager):
        gate.approve(submitted_mrf.id, procurement_manager)

        with pytest.raises(InvalidTransitionError):
            gate.approve(
                submitted_mrf.id, procurement_manager, expected_stage=MRFStage.SUBMITTED,
            )

    def test_expected_version_mismatch(self, gate, submitted_mrf, procurement_manager):
        gate.approve(submitted_mrf.id, procurement_manager)

        with pytest.raises(ConcurrentModificationError):
            gate.approve(
                submitted_mrf.id, procurement_manager, expected_version=submitted_mrf.version,
            )

    def test_approve_after_rejection(self, gate, submitted_mrf, procurement_manager):
        gate.reject(submitted_mrf.id, procurement_manager, reason="no budget")

        with pytest.raises(InvalidTransitionError):
            gate.approve(submitted_mrf.id, procurement_manager)


class TestReject:

    def test_reason_is_required(self, gate, session, submitted_mrf, procurement_manager):
        with pytest.raises(ValidationError):
            gate.reject(submitted_mrf.id, procurement_manager, reason="")

        assert MRFSelector(session).get(submitted_mrf.id).current_stage == MRFStage.SUBMITTED

    def test_records_reason_and_notifies(self, gate, submitted_mrf, procurement_manager, sink):
        mrf = gate.reject(submitted_mrf.id, procurement_manager, reason="duplicate")

        assert mrf.current_stage == MRFStage.REJECTED
        assert mrf.rejection_reason == "duplicate"
        assert sink.of_type(EventType.MRF_REJECTED)[0].payload["remarks"] == "duplicate"

    def test_rejection_closes_sourcing(
        self, gate, session, rfq_service, quotation_service, advance_mrf,
        submitted_mrf, procurement_manager, executive, vendor_login, sink,
    ):
        advance_mrf(submitted_mrf.id, MRFStage.EXECUTIVE)
        rfq = rfq_service.create_rfq(
            submitted_mrf.id, procurement_manager,
            method="manual", deadline=date(2024, 2, 1), vendor_ids=["V-ACME"],
        )
        early = quotation_service.submit_quotation(
            rfq.id, vendor_login("V-ACME"), make_bid("V-ACME", "1000"),
        )

        gate.reject(submitted_mrf.id, executive, reason="not needed")

        selector = RFQSelector(session)
        closed = selector.get(rfq.id)
        assert closed.status == RFQStatus.CLOSED
        assert closed.closed_reason == "MRF rejected: not needed"
        assert selector.quotation(early.id).status == QuotationStatus.CLOSED
        assert len(sink.of_type(EventType.RFQ_CLOSED)) == 1
        with pytest.raises(InvalidStateError):
            quotation_service.submit_quotation(
                rfq.id, procurement_manager, make_bid("V-ACME", "900"),
            )
        assert len(selector.quotations(rfq.id)) == 1


class TestCancel:

    def test_requester_cancels(self, gate, submitted_mrf, requester):
        mrf = gate.cancel_mrf(submitted_mrf.id, requester, reason="not needed")

        assert mrf.current_stage == MRFStage.REJECTED
        assert mrf.history[-1].action == HistoryAction.CANCELLED

    def test_other_employee_cannot_cancel(self, gate, submitted_mrf):
        with pytest.raises(UnauthorizedError):
            gate.cancel_mrf(submitted_mrf.id, make_actor(Role.EMPLOYEE), reason="mine now")

    def test_cancel_closes_open_rfq_and_quotations(
        self, gate, session, open_rfq, quotation_service, requester, procurement_manager, sink,
    ):
        quotation = quotation_service.submit_quotation(
            open_rfq.id, procurement_manager, make_bid("V-ACME", "1000"),
        )

        gate.cancel_mrf(open_rfq.mrf_id, requester, reason="project dropped")

        rfq = RFQSelector(session).get(open_rfq.id)
        assert rfq.status == RFQStatus.CLOSED
        assert "project dropped" in rfq.closed_reason
        assert RFQSelector(session).quotation(quotation.id).status == QuotationStatus.CLOSED
        assert len(sink.of_type(EventType.RFQ_CLOSED)) == 1
        assert len(sink.of_type(EventType.MRF_CANCELLED)) == 1


class TestResubmit:

    def test_resubmission_links_original(self, gate, session, submitted_mrf, requester, procurement_manager):
        gate.reject(submitted_mrf.id, procurement_manager, reason="too expensive")

        again = gate.resubmit_mrf(
            requester, submitted_mrf.id, make_draft(estimated_cost="180000"),
        )

        assert again.id != submitted_mrf.id
        assert again.is_resubmission
        assert again.original_mrf_id == submitted_mrf.id
        assert again.control_number == "MRF-2024-0002"
        assert again.estimated_cost == Decimal("180000")
        assert again.history[0].action == HistoryAction.RESUBMITTED
        assert [m.id for m in MRFSelector(session).resubmissions_of(submitted_mrf.id)] == [again.id]

    def test_reuses_original_content_without_draft(self, gate, submitted_mrf, requester, procurement_manager):
        gate.reject(submitted_mrf.id, procurement_manager, reason="later")

        again = gate.resubmit_mrf(requester, submitted_mrf.id)

        assert again.title == submitted_mrf.title
        assert again.estimated_cost == submitted_mrf.estimated_cost

    def test_only_rejected_mrfs(self, gate, submitted_mrf, requester):
        with pytest.raises(InvalidStateError):
            gate.resubmit_mrf(requester, submitted_mrf.id)

    def test_only_the_requester(self, gate, submitted_mrf, procurement_manager):
        gate.reject(submitted_mrf.id, procurement_manager, reason="no")

        with pytest.raises(UnauthorizedError) as exc_info:
            gate.resubmit_mrf(procurement_manager, submitted_mrf.id)
        assert exc_info.value.operation == "resubmit"


class TestEstimatedCost:

    def test_increase_before_executive_changes_routing(
        self, gate, submitted_mrf, requester, advance_mrf, executive,
    ):
        gate.update_estimated_cost(submitted_mrf.id, requester, Decimal("5000000"))
        advance_mrf(submitted_mrf.id, MRFStage.EXECUTIVE)

        assert gate.approve(submitted_mrf.id, executive).current_stage == MRFStage.CHAIRMAN

    def test_decrease_after_escalation_keeps_chairman(
        self, gate, requester, advance_mrf, executive, chairman, procurement_manager,
    ):
        mrf = gate.submit_mrf(requester, make_draft(estimated_cost="2000000"))
        advance_mrf(mrf.id, MRFStage.EXECUTIVE)
        gate.approve(mrf.id, executive)

        updated = gate.update_estimated_cost(mrf.id, procurement_manager, Decimal("100"))

        assert updated.current_stage == MRFStage.CHAIRMAN
        assert gate.available_actions(mrf.id, Role.CHAIRMAN).requires_chairman
        assert gate.approve(mrf.id, chairman).current_stage == MRFStage.SUPPLY_CHAIN

    def test_terminal_mrf_cannot_be_edited(self, gate, submitted_mrf, requester, procurement_manager):
        gate.reject(submitted_mrf.id, procurement_manager, reason="no")

        with pytest.raises(InvalidStateError):
            gate.update_estimated_cost(submitted_mrf.id, requester, Decimal("1"))

    def test_unrelated_actor_cannot_edit(self, gate, submitted_mrf, executive):
        with pytest.raises(UnauthorizedError):
            gate.update_estimated_cost(submitted_mrf.id, executive, Decimal("1"))


class TestAvailableActions:

    def test_active_rfq_blocks_new_rfq(self, gate, open_rfq):
        view = gate.available_actions(open_rfq.mrf_id, Role.PROCUREMENT_MANAGER)

        assert not view.can_create_rfq
        assert view.can_select_vendor

    def test_unknown_mrf(self, gate):
        with pytest.raises(MRFNotFoundError):
            gate.available_actions(uuid4(), Role.EXECUTIVE)
