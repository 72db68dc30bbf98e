"""
MRF workflow state machine (``procurement_kernel.domain.workflow``).

Responsibility
--------------
Defines the MRF stage graph as data (``MRF_WORKFLOW``) and the pure
transition function that applies one command to one MRF snapshot.  Also
derives the per-role "what can I do now" view from the same table, so the
rules live in exactly one place.

Architecture position
---------------------
**Kernel domain layer** -- pure functions over frozen value objects.
ZERO I/O.  The Approval Gate and the Award service load the MRF, call
``authorize`` and ``apply_transition``, and persist the result.

Invariants enforced
-------------------
* Only actions listed in ``MRF_WORKFLOW.transitions`` for the current stage
  are accepted; everything else raises ``InvalidTransitionError``
  regardless of the actor's role.
* Each accepted command appends exactly one history entry whose
  ``resulting_stage`` becomes ``current_stage``.
* The chairman escalation is decided once, at the executive approval,
  against the estimated cost at that moment; the decision is recorded in
  the history entry.
* A vendor award is selected at most once per MRF, either directly or by
  supply-chain approval of a proposed vendor; the PO cannot be signed
  without an unsigned PO on file.
* An MRF completes only with a signed PO and no outstanding GRN.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable
from uuid import UUID

from procurement_config.schema import WorkflowConfig
from procurement_kernel.domain.actor import Actor, Role
from procurement_kernel.domain.events import EventType, WorkflowEvent
from procurement_kernel.domain.mrf import (
    MRF,
    TERMINAL_STAGES,
    ApprovalHistoryEntry,
    HistoryAction,
    MRFDraft,
    MRFStage,
    PaymentStatus,
)
from procurement_kernel.exceptions import (
    InvalidTransitionError,
    POVersionLimitError,
    UnauthorizedError,
    ValidationError,
)


@dataclass(frozen=True)
class Guard:
    """A named condition that must hold before a transition fires."""

    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""

    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def transitions_from(self, state: str, action: str) -> tuple[Transition, ...]:
        return tuple(
            t for t in self.transitions
            if t.from_state == state and t.action == action
        )


class WorkflowAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    SELECT_VENDOR = "select_vendor"
    UPLOAD_UNSIGNED_PO = "upload_unsigned_po"
    UPLOAD_SIGNED_PO = "upload_signed_po"
    REJECT_PO = "reject_po"
    WITHDRAW_PO = "withdraw_po"
    SEND_VENDOR_FOR_APPROVAL = "send_vendor_for_approval"
    APPROVE_VENDOR_SELECTION = "approve_vendor_selection"
    REJECT_VENDOR_SELECTION = "reject_vendor_selection"
    PROCESS_PAYMENT = "process_payment"
    APPROVE_PAYMENT = "approve_payment"
    REQUEST_GRN = "request_grn"
    COMPLETE_GRN = "complete_grn"


# =========================================================================
# Guards
# =========================================================================

NO_AWARD = Guard(
    "award_not_recorded", "no vendor has been awarded for this MRF yet",
)
HIGH_VALUE = Guard(
    "high_value", "estimated cost exceeds the high-value threshold",
)
STANDARD_VALUE = Guard(
    "standard_value", "estimated cost is at or below the high-value threshold",
)
READY_FOR_PO = Guard(
    "award_recorded_without_po",
    "a vendor must be awarded and no unsigned PO may be on file",
)
AWAITING_SIGNATURE = Guard(
    "unsigned_po_awaiting_signature",
    "an unsigned PO must be on file and not yet signed",
)
PO_SIGNED = Guard("po_signed", "the signed PO must be on file")
SELECTION_OPEN = Guard(
    "vendor_selection_open",
    "no vendor may be awarded or awaiting supply-chain review",
)
DIRECT_SELECTION = Guard(
    "direct_selection_allowed",
    "vendor choice must be open and direct award not replaced by review",
)
PROPOSAL_PENDING = Guard(
    "vendor_proposal_pending", "a vendor choice must be awaiting review",
)
DIRECT_SETTLEMENT = Guard(
    "direct_settlement",
    "finance settles directly only with a signed PO and no outstanding GRN,"
    " when payments do not need the chairman",
)
PAYMENT_READY = Guard(
    "payment_ready", "the signed PO must be on file and payment not yet processed",
)
GRN_SETTLED = Guard("grn_settled", "a requested GRN must be completed first")
GRN_REQUESTABLE = Guard(
    "grn_requestable", "the signed PO must be on file and no GRN requested yet",
)
GRN_OUTSTANDING = Guard(
    "grn_outstanding", "a GRN must be requested and not yet completed",
)

_GuardFn = Callable[[MRF, WorkflowConfig], bool]

_GUARD_EVALUATORS: dict[str, _GuardFn] = {
    NO_AWARD.name: lambda mrf, cfg: not mrf.has_award,
    HIGH_VALUE.name: lambda mrf, cfg: mrf.estimated_cost > cfg.high_value_threshold,
    STANDARD_VALUE.name: lambda mrf, cfg: mrf.estimated_cost <= cfg.high_value_threshold,
    READY_FOR_PO.name: lambda mrf, cfg: mrf.has_award and mrf.unsigned_po_url is None,
    AWAITING_SIGNATURE.name: (
        lambda mrf, cfg: mrf.unsigned_po_url is not None and mrf.signed_po_url is None
    ),
    PO_SIGNED.name: lambda mrf, cfg: mrf.signed_po_url is not None,
    SELECTION_OPEN.name: lambda mrf, cfg: not mrf.has_award and not mrf.has_pending_proposal,
    DIRECT_SELECTION.name: (
        lambda mrf, cfg: (
            not cfg.vendor_selection_review
            and not mrf.has_award
            and not mrf.has_pending_proposal
        )
    ),
    PROPOSAL_PENDING.name: lambda mrf, cfg: mrf.has_pending_proposal and not mrf.has_award,
    DIRECT_SETTLEMENT.name: (
        lambda mrf, cfg: (
            mrf.signed_po_url is not None
            and not mrf.grn_outstanding
            and not cfg.chairman_payment_approval
        )
    ),
    PAYMENT_READY.name: (
        lambda mrf, cfg: (
            mrf.signed_po_url is not None and mrf.payment_status == PaymentStatus.PENDING
        )
    ),
    GRN_SETTLED.name: lambda mrf, cfg: not mrf.grn_outstanding,
    GRN_REQUESTABLE.name: (
        lambda mrf, cfg: mrf.signed_po_url is not None and not mrf.grn_requested
    ),
    GRN_OUTSTANDING.name: lambda mrf, cfg: mrf.grn_outstanding,
}


def _guard_holds(guard: Guard | None, mrf: MRF, config: WorkflowConfig) -> bool:
    if guard is None:
        return True
    return _GUARD_EVALUATORS[guard.name](mrf, config)


# =========================================================================
# Stage graph
# =========================================================================

_S = MRFStage
_A = WorkflowAction

_ACTIVE_STAGES = (
    _S.SUBMITTED, _S.PROCUREMENT, _S.EXECUTIVE,
    _S.CHAIRMAN, _S.SUPPLY_CHAIN, _S.FINANCE, _S.CHAIRMAN_PAYMENT,
)
_SETTLEMENT_STAGES = (_S.FINANCE, _S.CHAIRMAN_PAYMENT)

_TRANSITIONS: tuple[Transition, ...] = (
    # Approval chain
    Transition(_S.SUBMITTED, _S.PROCUREMENT, _A.APPROVE),
    Transition(_S.PROCUREMENT, _S.EXECUTIVE, _A.APPROVE, guard=NO_AWARD),
    Transition(_S.EXECUTIVE, _S.CHAIRMAN, _A.APPROVE, guard=HIGH_VALUE),
    Transition(_S.EXECUTIVE, _S.SUPPLY_CHAIN, _A.APPROVE, guard=STANDARD_VALUE),
    Transition(_S.CHAIRMAN, _S.SUPPLY_CHAIN, _A.APPROVE),
    # Award, optionally through supply-chain review
    Transition(_S.SUPPLY_CHAIN, _S.SUPPLY_CHAIN, _A.SELECT_VENDOR, guard=DIRECT_SELECTION),
    Transition(
        _S.SUPPLY_CHAIN, _S.SUPPLY_CHAIN, _A.SEND_VENDOR_FOR_APPROVAL, guard=SELECTION_OPEN,
    ),
    Transition(
        _S.SUPPLY_CHAIN, _S.SUPPLY_CHAIN, _A.APPROVE_VENDOR_SELECTION, guard=PROPOSAL_PENDING,
    ),
    Transition(
        _S.SUPPLY_CHAIN, _S.SUPPLY_CHAIN, _A.REJECT_VENDOR_SELECTION, guard=PROPOSAL_PENDING,
    ),
    # Purchase order loop
    Transition(_S.SUPPLY_CHAIN, _S.SUPPLY_CHAIN, _A.UPLOAD_UNSIGNED_PO, guard=READY_FOR_PO),
    Transition(_S.PROCUREMENT, _S.SUPPLY_CHAIN, _A.UPLOAD_UNSIGNED_PO, guard=READY_FOR_PO),
    Transition(_S.SUPPLY_CHAIN, _S.FINANCE, _A.UPLOAD_SIGNED_PO, guard=AWAITING_SIGNATURE),
    Transition(_S.SUPPLY_CHAIN, _S.PROCUREMENT, _A.REJECT_PO, guard=AWAITING_SIGNATURE),
    Transition(_S.SUPPLY_CHAIN, _S.SUPPLY_CHAIN, _A.WITHDRAW_PO, guard=AWAITING_SIGNATURE),
    # Settlement: direct, or through the chairman's payment approval
    Transition(_S.FINANCE, _S.COMPLETED, _A.APPROVE, guard=DIRECT_SETTLEMENT),
    Transition(_S.FINANCE, _S.CHAIRMAN_PAYMENT, _A.PROCESS_PAYMENT, guard=PAYMENT_READY),
    Transition(_S.CHAIRMAN_PAYMENT, _S.COMPLETED, _A.APPROVE_PAYMENT, guard=GRN_SETTLED),
    *(
        Transition(stage, stage, _A.REQUEST_GRN, guard=GRN_REQUESTABLE)
        for stage in _SETTLEMENT_STAGES
    ),
    *(
        Transition(stage, stage, _A.COMPLETE_GRN, guard=GRN_OUTSTANDING)
        for stage in _SETTLEMENT_STAGES
    ),
    # Rejection and cancellation from any active stage
    *(Transition(stage, _S.REJECTED, _A.REJECT) for stage in _ACTIVE_STAGES),
    *(Transition(stage, _S.REJECTED, _A.CANCEL, guard=NO_AWARD) for stage in _ACTIVE_STAGES),
)

MRF_WORKFLOW = Workflow(
    name="mrf",
    description="Material/service requisition approval and purchase order lifecycle",
    initial_state=_S.SUBMITTED,
    states=tuple(MRFStage),
    transitions=_TRANSITIONS,
    terminal_states=tuple(TERMINAL_STAGES),
)

_HISTORY_ACTIONS: dict[WorkflowAction, HistoryAction] = {
    _A.APPROVE: HistoryAction.APPROVED,
    _A.REJECT: HistoryAction.REJECTED,
    _A.CANCEL: HistoryAction.CANCELLED,
    _A.SELECT_VENDOR: HistoryAction.VENDOR_SELECTED,
    _A.UPLOAD_UNSIGNED_PO: HistoryAction.PO_UPLOADED,
    _A.UPLOAD_SIGNED_PO: HistoryAction.PO_SIGNED,
    _A.REJECT_PO: HistoryAction.PO_REJECTED,
    _A.WITHDRAW_PO: HistoryAction.PO_WITHDRAWN,
    _A.SEND_VENDOR_FOR_APPROVAL: HistoryAction.VENDOR_PROPOSED,
    _A.APPROVE_VENDOR_SELECTION: HistoryAction.VENDOR_APPROVED,
    _A.REJECT_VENDOR_SELECTION: HistoryAction.VENDOR_REJECTED,
    _A.PROCESS_PAYMENT: HistoryAction.PAYMENT_PROCESSED,
    _A.APPROVE_PAYMENT: HistoryAction.PAYMENT_APPROVED,
    _A.REQUEST_GRN: HistoryAction.GRN_REQUESTED,
    _A.COMPLETE_GRN: HistoryAction.GRN_COMPLETED,
}

_EVENT_TYPES: dict[WorkflowAction, EventType] = {
    _A.APPROVE: EventType.MRF_APPROVED,
    _A.REJECT: EventType.MRF_REJECTED,
    _A.CANCEL: EventType.MRF_CANCELLED,
    _A.SELECT_VENDOR: EventType.VENDOR_SELECTED,
    _A.UPLOAD_UNSIGNED_PO: EventType.PO_UPLOADED,
    _A.UPLOAD_SIGNED_PO: EventType.PO_SIGNED,
    _A.REJECT_PO: EventType.PO_REJECTED,
    _A.WITHDRAW_PO: EventType.PO_WITHDRAWN,
    _A.SEND_VENDOR_FOR_APPROVAL: EventType.VENDOR_PROPOSED,
    _A.APPROVE_VENDOR_SELECTION: EventType.VENDOR_SELECTED,
    _A.REJECT_VENDOR_SELECTION: EventType.VENDOR_SELECTION_REJECTED,
    _A.PROCESS_PAYMENT: EventType.PAYMENT_PROCESSED,
    _A.APPROVE_PAYMENT: EventType.MRF_COMPLETED,
    _A.REQUEST_GRN: EventType.GRN_REQUESTED,
    _A.COMPLETE_GRN: EventType.GRN_COMPLETED,
}


# =========================================================================
# Commands and results
# =========================================================================


@dataclass(frozen=True)
class AwardRecord:
    rfq_id: UUID
    quotation_id: UUID
    vendor_id: str


@dataclass(frozen=True)
class TransitionCommand:
    """One requested change to an MRF.

    ``remarks`` doubles as the rejection reason for reject, cancel and
    reject_po.  ``document_ref`` is the URL returned by the document store.
    """

    action: WorkflowAction
    actor: Actor
    at: datetime
    remarks: str | None = None
    po_number: str | None = None
    document_ref: str | None = None
    comments: str | None = None
    award: AwardRecord | None = None


@dataclass(frozen=True)
class TransitionResult:
    mrf: MRF
    entry: ApprovalHistoryEntry
    event: WorkflowEvent
    transition: Transition


# =========================================================================
# Authorization
# =========================================================================

_PROCUREMENT_ACTIONS = frozenset({
    _A.SELECT_VENDOR, _A.SEND_VENDOR_FOR_APPROVAL, _A.UPLOAD_UNSIGNED_PO,
    _A.WITHDRAW_PO, _A.CANCEL, _A.COMPLETE_GRN,
})
_SUPPLY_CHAIN_ACTIONS = frozenset({
    _A.UPLOAD_SIGNED_PO, _A.REJECT_PO,
    _A.APPROVE_VENDOR_SELECTION, _A.REJECT_VENDOR_SELECTION,
})
_FINANCE_ACTIONS = frozenset({_A.PROCESS_PAYMENT, _A.REQUEST_GRN})


def required_roles(
    action: WorkflowAction, stage: MRFStage, config: WorkflowConfig,
) -> tuple[str, ...]:
    """Roles allowed to perform ``action`` while the MRF sits at ``stage``."""
    if action in _PROCUREMENT_ACTIONS:
        return config.procurement_roles
    if action in _SUPPLY_CHAIN_ACTIONS:
        return config.supply_chain_roles
    if action in _FINANCE_ACTIONS:
        return config.finance_roles
    return config.roles_for(stage)


def authorize(
    mrf: MRF, action: WorkflowAction, actor: Actor, config: WorkflowConfig,
) -> None:
    """Raise ``UnauthorizedError`` unless ``actor`` may perform ``action`` now.

    Terminal MRFs are not role-checked; the transition table rejects every
    action on them with ``InvalidTransitionError``.  The requester may always
    cancel their own MRF.
    """
    if mrf.current_stage in TERMINAL_STAGES:
        return
    if action == _A.CANCEL and actor.actor_id == mrf.requester_id:
        return
    roles = required_roles(action, mrf.current_stage, config)
    if not actor.has_role(roles):
        raise UnauthorizedError(
            stage=mrf.current_stage.value,
            actor_role=actor.role.value,
            required_roles=roles,
            operation=action.value,
        )


# =========================================================================
# Transition function
# =========================================================================


def resolve_transition(
    mrf: MRF, action: WorkflowAction, config: WorkflowConfig,
) -> Transition:
    """Pick the transition ``action`` takes from the MRF's current stage.

    Raises:
        InvalidTransitionError: No transition for this stage/action, or
            every candidate's guard fails.
    """
    stage = mrf.current_stage
    candidates = MRF_WORKFLOW.transitions_from(stage, action)
    if not candidates:
        raise InvalidTransitionError(
            stage.value, action.value, "action not defined for this stage",
        )
    for transition in candidates:
        if _guard_holds(transition.guard, mrf, config):
            return transition
    failed = candidates[0].guard
    raise InvalidTransitionError(
        stage.value, action.value, failed.description if failed else "",
    )


def _require_text(value: str | None, field: str, reason: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(field, reason)
    return value.strip()


def _require_document_ref(value: str | None, config: WorkflowConfig) -> str:
    ref = _require_text(value, "document_ref", "document reference is required")
    if len(ref) > config.max_document_ref_length:
        raise ValidationError(
            "document_ref",
            f"longer than {config.max_document_ref_length} characters",
        )
    return ref


def _apply_effects(
    mrf: MRF, command: TransitionCommand, config: WorkflowConfig,
) -> dict:
    """Field changes (besides stage and history) produced by ``command``."""
    action = command.action

    if action in (_A.REJECT, _A.CANCEL):
        reason = _require_text(command.remarks, "reason", "a rejection reason is required")
        return {"rejection_reason": reason}

    if action == _A.SELECT_VENDOR:
        if command.award is None:
            raise ValidationError("award", "the awarded quotation is required")
        return {
            "awarded_rfq_id": command.award.rfq_id,
            "awarded_quotation_id": command.award.quotation_id,
            "awarded_vendor_id": command.award.vendor_id,
        }

    if action == _A.SEND_VENDOR_FOR_APPROVAL:
        if command.award is None:
            raise ValidationError("award", "the proposed quotation is required")
        return {
            "proposed_rfq_id": command.award.rfq_id,
            "proposed_quotation_id": command.award.quotation_id,
            "proposed_vendor_id": command.award.vendor_id,
            "vendor_rejection_reason": None,
        }

    if action == _A.APPROVE_VENDOR_SELECTION:
        return {
            "awarded_rfq_id": mrf.proposed_rfq_id,
            "awarded_quotation_id": mrf.proposed_quotation_id,
            "awarded_vendor_id": mrf.proposed_vendor_id,
            "proposed_rfq_id": None,
            "proposed_quotation_id": None,
            "proposed_vendor_id": None,
        }

    if action == _A.REJECT_VENDOR_SELECTION:
        reason = _require_text(
            command.remarks, "reason", "a reason for rejecting the vendor is required",
        )
        return {
            "proposed_rfq_id": None,
            "proposed_quotation_id": None,
            "proposed_vendor_id": None,
            "vendor_rejection_reason": reason,
        }

    if action == _A.PROCESS_PAYMENT:
        return {"payment_status": PaymentStatus.PROCESSING}

    settles = action == _A.APPROVE and mrf.current_stage == _S.FINANCE
    if action == _A.APPROVE_PAYMENT or settles:
        return {"payment_status": PaymentStatus.APPROVED}

    if action == _A.REQUEST_GRN:
        return {"grn_requested": True}

    if action == _A.COMPLETE_GRN:
        return {"grn_url": _require_document_ref(command.document_ref, config)}

    if action == _A.UPLOAD_UNSIGNED_PO:
        return {
            "po_number": _require_text(command.po_number, "po_number", "PO number is required"),
            "unsigned_po_url": _require_document_ref(command.document_ref, config),
            "signed_po_url": None,
        }

    if action == _A.UPLOAD_SIGNED_PO:
        return {"signed_po_url": _require_document_ref(command.document_ref, config)}

    if action == _A.REJECT_PO:
        reason = _require_text(command.remarks, "reason", "a PO rejection reason is required")
        if config.max_po_versions is not None and mrf.po_version >= config.max_po_versions:
            raise POVersionLimitError(
                mrf.current_stage.value, mrf.po_version, config.max_po_versions,
            )
        return {
            "po_version": mrf.po_version + 1,
            "unsigned_po_url": None,
            "signed_po_url": None,
            "po_rejection_reason": reason,
            "po_rejection_comments": command.comments,
        }

    if action == _A.WITHDRAW_PO:
        return {"po_number": None, "unsigned_po_url": None}

    return {}


def apply_transition(
    mrf: MRF, command: TransitionCommand, config: WorkflowConfig,
) -> TransitionResult:
    """Apply ``command`` to ``mrf`` and return the new snapshot.

    Pure: the input MRF is not modified, and nothing is returned unless the
    whole command is valid.  Role authorization is not checked here; see
    ``authorize``.

    Raises:
        InvalidTransitionError: Action not legal for the current stage.
        POVersionLimitError: PO rejected ``max_po_versions`` times already.
        ValidationError: Required input (reason, PO number, document) missing.
    """
    transition = resolve_transition(mrf, command.action, config)
    changes = _apply_effects(mrf, command, config)
    to_stage = MRFStage(transition.to_state)

    entry = ApprovalHistoryEntry(
        sequence=len(mrf.history) + 1,
        stage=mrf.current_stage,
        action=_HISTORY_ACTIONS[command.action],
        resulting_stage=to_stage,
        approver_id=command.actor.actor_id,
        approver_name=command.actor.name,
        approver_role=command.actor.role.value,
        timestamp=command.at,
        remarks=command.remarks,
        estimated_cost_snapshot=mrf.estimated_cost,
    )

    new_mrf = replace(
        mrf,
        current_stage=to_stage,
        history=mrf.history + (entry,),
        **changes,
    )

    event_type = _EVENT_TYPES[command.action]
    if to_stage == MRFStage.COMPLETED:
        event_type = EventType.MRF_COMPLETED

    event = WorkflowEvent(
        event_type=event_type,
        aggregate_id=mrf.id,
        occurred_at=command.at,
        discriminator=str(entry.sequence),
        actor_id=command.actor.actor_id,
        mrf_id=mrf.id,
        payload={
            "control_number": mrf.control_number,
            "from_stage": mrf.current_stage.value,
            "next_stage": to_stage.value,
            "actor_role": command.actor.role.value,
            "remarks": command.remarks,
            "po_version": new_mrf.po_version,
            "payment_status": new_mrf.payment_status.value,
        },
    )
    return TransitionResult(
        mrf=new_mrf, entry=entry, event=event, transition=transition,
    )


def start_mrf(
    draft: MRFDraft,
    actor: Actor,
    *,
    mrf_id: UUID,
    control_number: str,
    at: datetime,
    original: MRF | None = None,
) -> tuple[MRF, WorkflowEvent]:
    """Create a freshly submitted MRF with its first history entry.

    When ``original`` is given the new MRF is a resubmission of it: it is
    flagged ``is_resubmission`` and its first entry names the original's
    control number.
    """
    action = HistoryAction.RESUBMITTED if original else HistoryAction.SUBMITTED
    remarks = f"Resubmission of {original.control_number}" if original else None
    entry = ApprovalHistoryEntry(
        sequence=1,
        stage=MRFStage.SUBMITTED,
        action=action,
        resulting_stage=MRFStage.SUBMITTED,
        approver_id=actor.actor_id,
        approver_name=actor.name,
        approver_role=actor.role.value,
        timestamp=at,
        remarks=remarks,
        estimated_cost_snapshot=draft.estimated_cost,
    )
    mrf = MRF(
        id=mrf_id,
        control_number=control_number,
        title=draft.title,
        category=draft.category,
        description=draft.description,
        quantity=draft.quantity,
        estimated_cost=draft.estimated_cost,
        urgency=draft.urgency,
        justification=draft.justification,
        department=draft.department,
        currency=draft.currency,
        pfi_url=draft.pfi_url,
        requester_id=actor.actor_id,
        requester_name=actor.name,
        current_stage=MRFStage.SUBMITTED,
        history=(entry,),
        is_resubmission=original is not None,
        original_mrf_id=original.id if original else None,
        submitted_at=at,
    )
    event = WorkflowEvent(
        event_type=(
            EventType.MRF_RESUBMITTED if original else EventType.MRF_SUBMITTED
        ),
        aggregate_id=mrf_id,
        occurred_at=at,
        discriminator="1",
        actor_id=actor.actor_id,
        mrf_id=mrf_id,
        payload={
            "control_number": control_number,
            "title": draft.title,
            "estimated_cost": draft.estimated_cost,
            "original_control_number": original.control_number if original else None,
        },
    )
    return mrf, event


# =========================================================================
# Derived view
# =========================================================================


@dataclass(frozen=True)
class AvailableActions:
    """What a given role may do with an MRF right now."""

    can_approve: bool
    can_reject: bool
    can_cancel: bool
    can_create_rfq: bool
    can_select_vendor: bool
    can_upload_unsigned_po: bool
    can_upload_signed_po: bool
    can_reject_po: bool
    can_withdraw_po: bool
    can_send_vendor_for_approval: bool
    can_approve_vendor_selection: bool
    can_reject_vendor_selection: bool
    can_process_payment: bool
    can_approve_payment: bool
    can_request_grn: bool
    can_complete_grn: bool
    is_high_value: bool
    requires_chairman: bool


def is_high_value(mrf: MRF, config: WorkflowConfig) -> bool:
    return mrf.estimated_cost > config.high_value_threshold


def requires_chairman(mrf: MRF, config: WorkflowConfig) -> bool:
    """Whether the MRF routes (or was routed) through the chairman.

    Once the executive has approved, the recorded decision wins over the
    current estimated cost.
    """
    decision = mrf.executive_decision()
    if decision is not None:
        return decision.resulting_stage == MRFStage.CHAIRMAN
    return is_high_value(mrf, config)


def _permitted(
    mrf: MRF, action: WorkflowAction, role: str, config: WorkflowConfig,
) -> bool:
    if mrf.current_stage in TERMINAL_STAGES:
        return False
    if role not in required_roles(action, mrf.current_stage, config):
        return False
    return any(
        _guard_holds(t.guard, mrf, config)
        for t in MRF_WORKFLOW.transitions_from(mrf.current_stage, action)
    )


def available_actions(
    mrf: MRF,
    role: Role | str,
    config: WorkflowConfig,
    *,
    has_active_rfq: bool = False,
) -> AvailableActions:
    """Derive every per-screen flag from stage and recorded facts."""
    role_value = role.value if isinstance(role, Role) else Role(role).value
    can_create_rfq = (
        mrf.current_stage in config.rfq_eligible_stages
        and not mrf.has_award
        and not has_active_rfq
        and role_value in config.procurement_roles
    )
    return AvailableActions(
        can_approve=_permitted(mrf, _A.APPROVE, role_value, config),
        can_reject=_permitted(mrf, _A.REJECT, role_value, config),
        can_cancel=_permitted(mrf, _A.CANCEL, role_value, config),
        can_create_rfq=can_create_rfq,
        can_select_vendor=_permitted(mrf, _A.SELECT_VENDOR, role_value, config),
        can_upload_unsigned_po=_permitted(mrf, _A.UPLOAD_UNSIGNED_PO, role_value, config),
        can_upload_signed_po=_permitted(mrf, _A.UPLOAD_SIGNED_PO, role_value, config),
        can_reject_po=_permitted(mrf, _A.REJECT_PO, role_value, config),
        can_withdraw_po=_permitted(mrf, _A.WITHDRAW_PO, role_value, config),
        can_send_vendor_for_approval=_permitted(
            mrf, _A.SEND_VENDOR_FOR_APPROVAL, role_value, config,
        ),
        can_approve_vendor_selection=_permitted(
            mrf, _A.APPROVE_VENDOR_SELECTION, role_value, config,
        ),
        can_reject_vendor_selection=_permitted(
            mrf, _A.REJECT_VENDOR_SELECTION, role_value, config,
        ),
        can_process_payment=_permitted(mrf, _A.PROCESS_PAYMENT, role_value, config),
        can_approve_payment=_permitted(mrf, _A.APPROVE_PAYMENT, role_value, config),
        can_request_grn=_permitted(mrf, _A.REQUEST_GRN, role_value, config),
        can_complete_grn=_permitted(mrf, _A.COMPLETE_GRN, role_value, config),
        is_high_value=is_high_value(mrf, config),
        requires_chairman=requires_chairman(mrf, config),
    )
