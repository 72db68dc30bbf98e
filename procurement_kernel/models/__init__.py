"""ORM models for the procurement kernel."""

from procurement_kernel.models.mrf import MRFHistoryModel, MRFModel
from procurement_kernel.models.rfq import (
    QuotationLineModel,
    QuotationModel,
    RFQInvitationModel,
    RFQModel,
)
from procurement_kernel.models.sequence import SequenceCounter

__all__ = [
    "MRFModel",
    "MRFHistoryModel",
    "RFQModel",
    "RFQInvitationModel",
    "QuotationModel",
    "QuotationLineModel",
    "SequenceCounter",
    "import_all_models",
]


def import_all_models() -> tuple[type, ...]:
    """Return every mapped class so ``Base.metadata`` is fully populated."""
    return (
        MRFModel,
        MRFHistoryModel,
        RFQModel,
        RFQInvitationModel,
        QuotationModel,
        QuotationLineModel,
        SequenceCounter,
    )
