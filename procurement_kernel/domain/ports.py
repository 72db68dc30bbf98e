"""
External collaborator contracts (``procurement_kernel.domain.ports``).

The workflow core consumes four collaborators it does not implement:
the vendor directory, the document store, the notification sink and the
identity provider.  They are declared here as ``Protocol`` classes so that
host services can plug in real implementations and tests can plug in the
in-memory ones under ``procurement_kernel.services``.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from procurement_kernel.domain.actor import Actor
from procurement_kernel.domain.events import WorkflowEvent
from procurement_kernel.domain.rfq import Vendor, VendorFilter


class VendorDirectory(Protocol):
    """Read access to registered vendors."""

    def list_vendors(self, vendor_filter: VendorFilter) -> Sequence[Vendor]:
        """Return vendors matching ``vendor_filter``, in any order."""
        ...

    def get_vendor(self, vendor_id: str) -> Vendor | None:
        ...


class DocumentStore(Protocol):
    """Stores PFI/PO artifacts and returns an opaque URL reference.

    The kernel only ever persists the returned reference, never the bytes.
    """

    def store_document(self, content: bytes | str, filename: str) -> str:
        ...


class NotificationSink(Protocol):
    """Fire-and-forget consumer of workflow events."""

    def emit(self, event: WorkflowEvent) -> None:
        ...


class IdentityProvider(Protocol):
    """Resolves the calling principal for a request."""

    def resolve_actor(self, credential: str) -> Actor:
        ...
