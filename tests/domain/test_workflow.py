"""
Tests for the MRF workflow state machine.

Covers:
- approval chain routing, including the chairman escalation boundary
- rejection and cancellation rules
- role authorization
- the award and purchase-order loop, with optional vendor review
- payment settlement and the goods-received note
- the derived per-role action view
- history invariants under arbitrary command sequences (hypothesis)
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from procurement_config import WorkflowConfig
from procurement_kernel.domain.actor import Actor, Role
from procurement_kernel.domain.events import EventType
from procurement_kernel.domain.mrf import HistoryAction, MRFDraft, MRFStage, PaymentStatus, Urgency
from procurement_kernel.domain.workflow import (
    AwardRecord,
    TransitionCommand,
    WorkflowAction,
    apply_transition,
    authorize,
    available_actions,
    requires_chairman,
    start_mrf,
)
from procurement_kernel.exceptions import (
    InvalidTransitionError,
    POVersionLimitError,
    UnauthorizedError,
    ValidationError,
)

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
CONFIG = WorkflowConfig()


def actor(role: Role) -> Actor:
    return Actor(actor_id=uuid4(), name=role.value, role=role)


REQUESTER = actor(Role.EMPLOYEE)
PROCUREMENT = actor(Role.PROCUREMENT_MANAGER)
EXECUTIVE = actor(Role.EXECUTIVE)
CHAIRMAN = actor(Role.CHAIRMAN)
SUPPLY_CHAIN = actor(Role.SUPPLY_CHAIN)
FINANCE = actor(Role.FINANCE)


def new_mrf(cost="500000"):
    draft = MRFDraft(
        title="Generators",
        category="Power",
        description="Standby generators",
        quantity=Decimal("2"),
        estimated_cost=Decimal(cost),
        urgency=Urgency.HIGH,
        justification="Outages",
        department="Facilities",
    )
    mrf, _ = start_mrf(
        draft, REQUESTER, mrf_id=uuid4(), control_number="MRF-2024-0001", at=T0,
    )
    return mrf


def run(mrf, action, who, config=CONFIG, **kwargs):
    command = TransitionCommand(action=action, actor=who, at=T0 + timedelta(minutes=len(mrf.history)), **kwargs)
    authorize(mrf, action, who, config)
    return apply_transition(mrf, command, config)


def to_supply_chain(cost="500000"):
    mrf = new_mrf(cost)
    for who in (PROCUREMENT, PROCUREMENT, EXECUTIVE):
        mrf = run(mrf, WorkflowAction.APPROVE, who).mrf
    if mrf.current_stage == MRFStage.CHAIRMAN:
        mrf = run(mrf, WorkflowAction.APPROVE, CHAIRMAN).mrf
    return mrf


def awarded(mrf):
    award = AwardRecord(rfq_id=uuid4(), quotation_id=uuid4(), vendor_id="V-1")
    return run(mrf, WorkflowAction.SELECT_VENDOR, PROCUREMENT, award=award).mrf


class TestSubmission:

    def test_start_mrf_creates_first_history_entry(self):
        mrf = new_mrf()

        assert mrf.current_stage == MRFStage.SUBMITTED
        assert len(mrf.history) == 1
        assert mrf.history[0].action == HistoryAction.SUBMITTED
        assert mrf.history_is_consistent()

    def test_resubmission_links_original(self):
        original = new_mrf()
        draft = MRFDraft(
            title=original.title, category=original.category,
            description="", quantity=Decimal("1"), estimated_cost=Decimal("10"),
            urgency=Urgency.LOW, justification="", department="",
        )
        mrf, event = start_mrf(
            draft, REQUESTER, mrf_id=uuid4(), control_number="MRF-2024-0002",
            at=T0, original=original,
        )

        assert mrf.is_resubmission
        assert mrf.original_mrf_id == original.id
        assert mrf.history[0].action == HistoryAction.RESUBMITTED
        assert "MRF-2024-0001" in mrf.history[0].remarks
        assert event.event_type == EventType.MRF_RESUBMITTED


class TestApprovalChain:

    def test_standard_value_skips_chairman(self):
        mrf = to_supply_chain("1000000")

        assert mrf.current_stage == MRFStage.SUPPLY_CHAIN
        stages = [e.resulting_stage for e in mrf.history]
        assert MRFStage.CHAIRMAN not in stages

    def test_high_value_routes_through_chairman(self):
        mrf = new_mrf("1000001")
        for who in (PROCUREMENT, PROCUREMENT):
            mrf = run(mrf, WorkflowAction.APPROVE, who).mrf

        result = run(mrf, WorkflowAction.APPROVE, EXECUTIVE)

        assert result.mrf.current_stage == MRFStage.CHAIRMAN
        assert result.entry.estimated_cost_snapshot == Decimal("1000001")

    def test_escalation_decision_is_not_revisited(self):
        mrf = new_mrf("2000000")
        for who in (PROCUREMENT, PROCUREMENT, EXECUTIVE):
            mrf = run(mrf, WorkflowAction.APPROVE, who).mrf
        corrected = replace(mrf, estimated_cost=Decimal("100"))

        assert requires_chairman(corrected, CONFIG)
        assert run(corrected, WorkflowAction.APPROVE, CHAIRMAN).mrf.current_stage == MRFStage.SUPPLY_CHAIN

    def test_each_transition_appends_one_entry(self):
        mrf = new_mrf()
        result = run(mrf, WorkflowAction.APPROVE, PROCUREMENT, remarks="budget ok")

        assert len(result.mrf.history) == 2
        assert result.entry.sequence == 2
        assert result.entry.stage == MRFStage.SUBMITTED
        assert result.entry.resulting_stage == MRFStage.PROCUREMENT
        assert result.entry.remarks == "budget ok"
        assert result.event.event_type == EventType.MRF_APPROVED
        assert result.event.discriminator == "2"
        # Input snapshot untouched
        assert len(mrf.history) == 1

    def test_terminal_stage_rejects_every_action(self):
        mrf = run(new_mrf(), WorkflowAction.REJECT, PROCUREMENT, remarks="no budget").mrf

        for action in WorkflowAction:
            with pytest.raises(InvalidTransitionError):
                apply_transition(
                    mrf, TransitionCommand(action=action, actor=PROCUREMENT, at=T0, remarks="x"), CONFIG,
                )


class TestRejectionAndCancellation:

    def test_reject_requires_reason(self):
        with pytest.raises(ValidationError) as exc_info:
            run(new_mrf(), WorkflowAction.REJECT, PROCUREMENT, remarks="   ")
        assert exc_info.value.field == "reason"

    def test_reject_records_reason(self):
        result = run(new_mrf(), WorkflowAction.REJECT, PROCUREMENT, remarks="duplicate request")

        assert result.mrf.current_stage == MRFStage.REJECTED
        assert result.mrf.rejection_reason == "duplicate request"
        assert result.entry.action == HistoryAction.REJECTED

    def test_requester_may_cancel_own_mrf(self):
        result = run(new_mrf(), WorkflowAction.CANCEL, REQUESTER, remarks="no longer needed")

        assert result.mrf.current_stage == MRFStage.REJECTED
        assert result.entry.action == HistoryAction.CANCELLED
        assert result.event.event_type == EventType.MRF_CANCELLED

    def test_cancel_after_award_is_refused(self):
        mrf = awarded(to_supply_chain())

        with pytest.raises(InvalidTransitionError):
            run(mrf, WorkflowAction.CANCEL, PROCUREMENT, remarks="changed mind")


class TestAuthorization:

    def test_procurement_cannot_approve_at_executive(self):
        mrf = new_mrf()
        for who in (PROCUREMENT, PROCUREMENT):
            mrf = run(mrf, WorkflowAction.APPROVE, who).mrf

        with pytest.raises(UnauthorizedError) as exc_info:
            authorize(mrf, WorkflowAction.APPROVE, PROCUREMENT, CONFIG)

        err = exc_info.value
        assert err.stage == "executive"
        assert err.actor_role == "procurement_manager"
        assert err.required_roles == ("executive",)

    def test_requester_cannot_approve(self):
        with pytest.raises(UnauthorizedError):
            authorize(new_mrf(), WorkflowAction.APPROVE, REQUESTER, CONFIG)

    def test_other_employee_cannot_cancel(self):
        with pytest.raises(UnauthorizedError):
            authorize(new_mrf(), WorkflowAction.CANCEL, actor(Role.EMPLOYEE), CONFIG)

    def test_supply_chain_signs_but_procurement_does_not(self):
        mrf = to_supply_chain()

        authorize(mrf, WorkflowAction.UPLOAD_SIGNED_PO, SUPPLY_CHAIN, CONFIG)
        with pytest.raises(UnauthorizedError):
            authorize(mrf, WorkflowAction.UPLOAD_SIGNED_PO, PROCUREMENT, CONFIG)


class TestPurchaseOrderLoop:

    def test_full_loop_with_one_rejection(self):
        mrf = awarded(to_supply_chain())
        mrf = run(mrf, WorkflowAction.UPLOAD_UNSIGNED_PO, PROCUREMENT,
                  po_number="PO-1", document_ref="docs/po-1.pdf").mrf
        assert mrf.unsigned_po_url == "docs/po-1.pdf"

        mrf = run(mrf, WorkflowAction.REJECT_PO, SUPPLY_CHAIN,
                  remarks="wrong quantity", comments="should be 40").mrf
        assert mrf.current_stage == MRFStage.PROCUREMENT
        assert mrf.po_version == 2
        assert mrf.unsigned_po_url is None
        assert mrf.po_rejection_reason == "wrong quantity"
        assert mrf.po_rejection_comments == "should be 40"

        mrf = run(mrf, WorkflowAction.UPLOAD_UNSIGNED_PO, PROCUREMENT,
                  po_number="PO-1", document_ref="docs/po-1-v2.pdf").mrf
        assert mrf.current_stage == MRFStage.SUPPLY_CHAIN

        mrf = run(mrf, WorkflowAction.UPLOAD_SIGNED_PO, SUPPLY_CHAIN,
                  document_ref="docs/po-1-signed.pdf").mrf
        assert mrf.current_stage == MRFStage.FINANCE
        assert mrf.po_version == 2

        result = run(mrf, WorkflowAction.APPROVE, FINANCE)
        assert result.mrf.current_stage == MRFStage.COMPLETED
        assert result.event.event_type == EventType.MRF_COMPLETED
        assert result.mrf.history_is_consistent()

    def test_sign_without_unsigned_po_is_refused(self):
        mrf = awarded(to_supply_chain())

        with pytest.raises(InvalidTransitionError):
            run(mrf, WorkflowAction.UPLOAD_SIGNED_PO, SUPPLY_CHAIN, document_ref="x.pdf")

    def test_signed_po_upload_is_the_supply_chain_approval(self):
        mrf = awarded(to_supply_chain())
        mrf = run(mrf, WorkflowAction.UPLOAD_UNSIGNED_PO, PROCUREMENT,
                  po_number="PO-1", document_ref="x.pdf").mrf

        with pytest.raises(InvalidTransitionError, match="not defined"):
            run(mrf, WorkflowAction.APPROVE, SUPPLY_CHAIN)
        assert not available_actions(mrf, Role.SUPPLY_CHAIN, CONFIG).can_approve

    def test_unsigned_po_requires_award(self):
        with pytest.raises(InvalidTransitionError):
            run(to_supply_chain(), WorkflowAction.UPLOAD_UNSIGNED_PO, PROCUREMENT,
                po_number="PO-1", document_ref="x.pdf")

    def test_second_award_is_refused(self):
        mrf = awarded(to_supply_chain())

        with pytest.raises(InvalidTransitionError):
            awarded(mrf)

    def test_po_version_limit(self):
        config = WorkflowConfig(max_po_versions=1)
        mrf = awarded(to_supply_chain())
        mrf = run(mrf, WorkflowAction.UPLOAD_UNSIGNED_PO, PROCUREMENT, config,
                  po_number="PO-1", document_ref="x.pdf").mrf

        with pytest.raises(POVersionLimitError) as exc_info:
            run(mrf, WorkflowAction.REJECT_PO, SUPPLY_CHAIN, config, remarks="again")
        assert exc_info.value.max_versions == 1

    def test_withdraw_clears_unsigned_po(self):
        mrf = awarded(to_supply_chain())
        mrf = run(mrf, WorkflowAction.UPLOAD_UNSIGNED_PO, PROCUREMENT,
                  po_number="PO-1", document_ref="x.pdf").mrf

        mrf = run(mrf, WorkflowAction.WITHDRAW_PO, PROCUREMENT).mrf

        assert mrf.current_stage == MRFStage.SUPPLY_CHAIN
        assert mrf.unsigned_po_url is None
        assert mrf.po_number is None
        assert mrf.po_version == 1

    def test_document_ref_length_is_bounded(self):
        mrf = awarded(to_supply_chain())

        with pytest.raises(ValidationError):
            run(mrf, WorkflowAction.UPLOAD_UNSIGNED_PO, PROCUREMENT,
                po_number="PO-1", document_ref="x" * 2049)


class TestAvailableActions:

    def test_executive_view_at_executive_stage(self):
        mrf = new_mrf("1500000")
        for who in (PROCUREMENT, PROCUREMENT):
            mrf = run(mrf, WorkflowAction.APPROVE, who).mrf

        view = available_actions(mrf, Role.EXECUTIVE, CONFIG)
        assert view.can_approve
        assert view.can_reject
        assert view.is_high_value
        assert view.requires_chairman
        assert not view.can_create_rfq

    def test_procurement_view_at_executive_stage(self):
        mrf = new_mrf()
        for who in (PROCUREMENT, PROCUREMENT):
            mrf = run(mrf, WorkflowAction.APPROVE, who).mrf

        view = available_actions(mrf, "procurement_manager", CONFIG)
        assert not view.can_approve
        assert view.can_create_rfq
        assert not available_actions(mrf, "procurement_manager", CONFIG, has_active_rfq=True).can_create_rfq

    def test_terminal_mrf_offers_nothing(self):
        mrf = run(new_mrf(), WorkflowAction.REJECT, PROCUREMENT, remarks="no").mrf

        view = available_actions(mrf, Role.PROCUREMENT_MANAGER, CONFIG)
        assert not any([
            view.can_approve, view.can_reject, view.can_cancel, view.can_create_rfq,
            view.can_select_vendor, view.can_upload_unsigned_po,
        ])

    def test_po_flags_follow_recorded_facts(self):
        mrf = awarded(to_supply_chain())
        assert available_actions(mrf, Role.PROCUREMENT_MANAGER, CONFIG).can_upload_unsigned_po
        assert not available_actions(mrf, Role.SUPPLY_CHAIN, CONFIG).can_upload_signed_po

        mrf = run(mrf, WorkflowAction.UPLOAD_UNSIGNED_PO, PROCUREMENT,
                  po_number="PO-1", document_ref="x.pdf").mrf
        view = available_actions(mrf, Role.SUPPLY_CHAIN, CONFIG)
        assert view.can_upload_signed_po
        assert view.can_reject_po


def signed(config=CONFIG):
    mrf = awarded(to_supply_chain())
    mrf = run(mrf, WorkflowAction.UPLOAD_UNSIGNED_PO, PROCUREMENT, config,
              po_number="PO-1", document_ref="x.pdf").mrf
    return run(mrf, WorkflowAction.UPLOAD_SIGNED_PO, SUPPLY_CHAIN, config,
               document_ref="x-signed.pdf").mrf


class TestVendorReview:

    def proposal(self, mrf):
        award = AwardRecord(rfq_id=uuid4(), quotation_id=uuid4(), vendor_id="V-2")
        return run(mrf, WorkflowAction.SEND_VENDOR_FOR_APPROVAL, PROCUREMENT, award=award).mrf

    def test_approval_moves_proposal_to_award(self):
        mrf = self.proposal(to_supply_chain())
        assert mrf.has_pending_proposal

        result = run(mrf, WorkflowAction.APPROVE_VENDOR_SELECTION, SUPPLY_CHAIN)

        assert result.mrf.awarded_vendor_id == "V-2"
        assert result.mrf.awarded_quotation_id == mrf.proposed_quotation_id
        assert not result.mrf.has_pending_proposal
        assert result.mrf.current_stage == MRFStage.SUPPLY_CHAIN
        assert result.event.event_type == EventType.VENDOR_SELECTED

    def test_rejection_records_reason_and_reopens_choice(self):
        mrf = self.proposal(to_supply_chain())

        mrf = run(mrf, WorkflowAction.REJECT_VENDOR_SELECTION, SUPPLY_CHAIN, remarks="rating").mrf

        assert mrf.vendor_rejection_reason == "rating"
        assert not mrf.has_pending_proposal
        assert not mrf.has_award
        assert available_actions(mrf, Role.PROCUREMENT_MANAGER, CONFIG).can_select_vendor

    def test_review_config_replaces_direct_award(self):
        review = WorkflowConfig(vendor_selection_review=True)
        mrf = to_supply_chain()

        view = available_actions(mrf, Role.PROCUREMENT_MANAGER, review)
        assert not view.can_select_vendor
        assert view.can_send_vendor_for_approval
        with pytest.raises(InvalidTransitionError):
            run(mrf, WorkflowAction.SELECT_VENDOR, PROCUREMENT, review,
                award=AwardRecord(rfq_id=uuid4(), quotation_id=uuid4(), vendor_id="V-1"))

    def test_supply_chain_view_of_pending_proposal(self):
        mrf = self.proposal(to_supply_chain())

        view = available_actions(mrf, Role.SUPPLY_CHAIN, CONFIG)
        assert view.can_approve_vendor_selection
        assert view.can_reject_vendor_selection
        assert not available_actions(mrf, Role.PROCUREMENT_MANAGER, CONFIG).can_select_vendor

    def test_procurement_cannot_review(self):
        mrf = self.proposal(to_supply_chain())

        with pytest.raises(UnauthorizedError):
            authorize(mrf, WorkflowAction.APPROVE_VENDOR_SELECTION, PROCUREMENT, CONFIG)


class TestSettlement:

    def test_payment_through_chairman(self):
        mrf = run(signed(), WorkflowAction.PROCESS_PAYMENT, FINANCE).mrf
        assert mrf.current_stage == MRFStage.CHAIRMAN_PAYMENT
        assert mrf.payment_status == PaymentStatus.PROCESSING

        result = run(mrf, WorkflowAction.APPROVE_PAYMENT, CHAIRMAN)
        assert result.mrf.current_stage == MRFStage.COMPLETED
        assert result.mrf.payment_status == PaymentStatus.APPROVED
        assert result.event.event_type == EventType.MRF_COMPLETED

    def test_finance_view(self):
        view = available_actions(signed(), Role.FINANCE, CONFIG)
        assert view.can_approve
        assert view.can_process_payment
        assert view.can_request_grn
        assert not view.can_complete_grn
        assert not view.can_approve_payment

        strict = WorkflowConfig(chairman_payment_approval=True)
        assert not available_actions(signed(strict), Role.FINANCE, strict).can_approve

    def test_grn_gates_completion(self):
        mrf = run(signed(), WorkflowAction.REQUEST_GRN, FINANCE).mrf
        assert mrf.grn_outstanding
        assert available_actions(mrf, Role.PROCUREMENT_MANAGER, CONFIG).can_complete_grn
        assert not available_actions(mrf, Role.FINANCE, CONFIG).can_approve

        with pytest.raises(InvalidTransitionError) as exc_info:
            run(mrf, WorkflowAction.APPROVE, FINANCE)
        assert "GRN" in exc_info.value.reason

        mrf = run(mrf, WorkflowAction.COMPLETE_GRN, PROCUREMENT, document_ref="grn.pdf").mrf
        assert not mrf.grn_outstanding
        assert run(mrf, WorkflowAction.APPROVE, FINANCE).mrf.current_stage == MRFStage.COMPLETED

    def test_grn_before_signature_is_refused(self):
        with pytest.raises(InvalidTransitionError):
            run(awarded(to_supply_chain()), WorkflowAction.REQUEST_GRN, FINANCE)

    def test_chairman_cannot_process_payment(self):
        with pytest.raises(UnauthorizedError):
            authorize(signed(), WorkflowAction.PROCESS_PAYMENT, CHAIRMAN, CONFIG)


# =============================================================================
# Property: history only grows, one entry per accepted command
# =============================================================================

_EVERYONE = Actor(actor_id=uuid4(), name="any", role=Role.PROCUREMENT_MANAGER)


@settings(max_examples=200, deadline=None)
@given(
    actions=st.lists(st.sampled_from(list(WorkflowAction)), max_size=20),
    cost=st.sampled_from(["10", "1000000", "1000001"]),
)
def test_history_is_append_only_under_any_command_sequence(actions, cost):
    mrf = new_mrf(cost)
    for step, action in enumerate(actions):
        command = TransitionCommand(
            action=action,
            actor=_EVERYONE,
            at=T0 + timedelta(minutes=step),
            remarks="r",
            po_number="PO-9",
            document_ref=f"doc-{step}.pdf",
            award=AwardRecord(rfq_id=uuid4(), quotation_id=uuid4(), vendor_id="V"),
        )
        before = mrf
        try:
            mrf = apply_transition(mrf, command, CONFIG).mrf
        except (InvalidTransitionError, ValidationError):
            assert mrf == before
            continue
        assert len(mrf.history) == len(before.history) + 1
        assert mrf.history[: len(before.history)] == before.history
        assert mrf.history_is_consistent()
        assert mrf.signed_po_url is None or mrf.unsigned_po_url is not None
        assert mrf.po_version >= before.po_version
