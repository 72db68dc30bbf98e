"""
Typed Exception Hierarchy for the Procurement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejected workflow operation has to tell the caller *which* stage,
*which* role was expected and *which* precondition failed, so a dashboard can
render a corrective message instead of "something went wrong".  Parsing
message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (stage, role, entity id, reason)

Example:
    try:
        gate.approve(mrf_id, actor, remarks="ok")
    except UnauthorizedError as e:
        api_response(code=e.code, stage=e.stage, required=e.required_roles)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ProcurementKernelError:

    ProcurementKernelError (base)
    |
    +-- ValidationError
    |
    +-- UnauthorizedError
    |
    +-- WorkflowStateError
    |   +-- InvalidTransitionError
    |   |   +-- POVersionLimitError
    |   +-- InvalidStateError
    |
    +-- NotFoundError
    |   +-- MRFNotFoundError
    |   +-- RFQNotFoundError
    |   +-- QuotationNotFoundError
    |   +-- VendorNotFoundError
    |
    +-- ConflictError
    |   +-- DuplicateRFQError
    |   +-- DuplicateQuotationError
    |   +-- NoEligibleVendorsError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                     | When Raised
----------------|--------------------------|------------------------------------------
Validation      | VALIDATION_ERROR         | Missing/malformed input (empty reason...)
Authorization   | UNAUTHORIZED             | Actor role does not match the stage role
Workflow        | INVALID_TRANSITION       | Action not legal for the current MRF stage
                | PO_VERSION_LIMIT         | PO rejected more times than configured
                | INVALID_STATE            | RFQ/Quotation/PO not in a usable state
Lookup          | MRF_NOT_FOUND            | MRF id does not exist
                | RFQ_NOT_FOUND            | RFQ id does not exist
                | QUOTATION_NOT_FOUND      | Quotation id does not exist
                | VENDOR_NOT_FOUND         | Vendor id unknown to the vendor directory
Conflict        | DUPLICATE_RFQ            | MRF already has a non-terminal RFQ
                | DUPLICATE_QUOTATION      | Vendor already has an open quotation
                | NO_ELIGIBLE_VENDORS      | Vendor resolution produced an empty set
Concurrency     | CONCURRENT_MODIFICATION  | Aggregate row changed under the caller
Immutability    | IMMUTABILITY_VIOLATION   | Approval history row update/delete

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH SPECIFIC EXCEPTIONS FIRST, CATEGORIES LAST:

    try:
        award.select_vendor(rfq_id, quotation_id, actor)
    except InvalidStateError as e:
        notify_user(f"{e.entity_type} {e.entity_id} is {e.state}: {e.reason}")
    except ProcurementKernelError as e:
        log.error("select_vendor failed", extra={"code": e.code})

2. CONCURRENCY ERRORS ARE RETRYABLE, EVERYTHING ELSE IS NOT:

    except ConcurrentModificationError:
        reload_and_retry()

===============================================================================
"""


class ProcurementKernelError(Exception):
    """
    Base exception for all procurement kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PROCUREMENT_KERNEL_ERROR"

    def to_dict(self) -> dict:
        """Structured payload for API responses and log records."""
        payload = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if not key.startswith("_"):
                payload[key] = value
        return payload


# Validation


class ValidationError(ProcurementKernelError):
    """Input is missing or malformed."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Authorization


class UnauthorizedError(ProcurementKernelError):
    """Actor role is not permitted to act on the MRF at its current stage."""

    code: str = "UNAUTHORIZED"

    def __init__(
        self,
        stage: str,
        actor_role: str,
        required_roles: tuple[str, ...],
        operation: str = "approve",
    ):
        self.stage = stage
        self.actor_role = actor_role
        self.required_roles = tuple(required_roles)
        self.operation = operation
        expected = ", ".join(self.required_roles) or "<none>"
        super().__init__(
            f"Role '{actor_role}' may not {operation} at stage '{stage}' "
            f"(expected one of: {expected})"
        )


# Workflow state


class WorkflowStateError(ProcurementKernelError):
    """Base exception for out-of-order or illegal workflow operations."""

    code: str = "WORKFLOW_STATE_ERROR"


class InvalidTransitionError(WorkflowStateError):
    """The requested action is not legal for the MRF's current stage."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, stage: str, action: str, reason: str = ""):
        self.stage = stage
        self.action = action
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Action '{action}' is not allowed at stage '{stage}'{detail}"
        )


class POVersionLimitError(InvalidTransitionError):
    """The PO has been rejected the configured maximum number of times."""

    code: str = "PO_VERSION_LIMIT"

    def __init__(self, stage: str, po_version: int, max_versions: int):
        self.po_version = po_version
        self.max_versions = max_versions
        super().__init__(
            stage,
            "reject_po",
            f"PO version {po_version} reached the limit of {max_versions}",
        )


class InvalidStateError(WorkflowStateError):
    """An RFQ, quotation or PO is not in a state that permits the operation."""

    code: str = "INVALID_STATE"

    def __init__(self, entity_type: str, entity_id: str, state: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.state = state
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id} is '{state}': {reason}")


# Lookup


class NotFoundError(ProcurementKernelError):
    """Referenced record does not exist."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class MRFNotFoundError(NotFoundError):
    code: str = "MRF_NOT_FOUND"
    entity_type: str = "MRF"


class RFQNotFoundError(NotFoundError):
    code: str = "RFQ_NOT_FOUND"
    entity_type: str = "RFQ"


class QuotationNotFoundError(NotFoundError):
    code: str = "QUOTATION_NOT_FOUND"
    entity_type: str = "Quotation"


class VendorNotFoundError(NotFoundError):
    code: str = "VENDOR_NOT_FOUND"
    entity_type: str = "Vendor"


# Domain conflicts


class ConflictError(ProcurementKernelError):
    """Base exception for domain-specific conflicts."""

    code: str = "CONFLICT"


class DuplicateRFQError(ConflictError):
    """An MRF may have at most one non-terminal RFQ."""

    code: str = "DUPLICATE_RFQ"

    def __init__(self, mrf_id: str, existing_rfq_id: str):
        self.mrf_id = mrf_id
        self.existing_rfq_id = existing_rfq_id
        super().__init__(
            f"MRF {mrf_id} already has an active RFQ: {existing_rfq_id}"
        )


class DuplicateQuotationError(ConflictError):
    """A vendor may have at most one open quotation per RFQ."""

    code: str = "DUPLICATE_QUOTATION"

    def __init__(self, rfq_id: str, vendor_id: str, existing_quotation_id: str):
        self.rfq_id = rfq_id
        self.vendor_id = vendor_id
        self.existing_quotation_id = existing_quotation_id
        super().__init__(
            f"Vendor {vendor_id} already has open quotation "
            f"{existing_quotation_id} on RFQ {rfq_id}"
        )


class NoEligibleVendorsError(ConflictError):
    """Vendor resolution produced an empty invitee set."""

    code: str = "NO_ELIGIBLE_VENDORS"

    def __init__(self, method: str, criteria: str = ""):
        self.method = method
        self.criteria = criteria
        detail = f" ({criteria})" if criteria else ""
        super().__init__(
            f"Vendor selection '{method}' found no eligible vendors{detail}"
        )


# Concurrency


class ConcurrencyError(ProcurementKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """The aggregate was modified by another transaction."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability


class ImmutabilityError(ProcurementKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
