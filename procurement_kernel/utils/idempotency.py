"""
Event key generation.

Event keys make notification delivery idempotent: the same workflow fact
(an approval at history position 3, an invitation of vendor V-7 to an RFQ)
always yields the same key, so a redelivered event is recognized and
dropped instead of producing a second notification.
"""

from uuid import UUID


def generate_event_key(
    aggregate_id: UUID | str,
    event_type: str,
    discriminator: UUID | str | int,
) -> str:
    """
    Generate an idempotency key for a workflow event.

    Format: aggregate_id:event_type:discriminator

    Args:
        aggregate_id: Id of the MRF, RFQ or quotation the event is about.
        event_type: Event type name (e.g. ``mrf.approved``).
        discriminator: What makes this occurrence unique within the
            aggregate: a history sequence number, a vendor id, a PO version.

    Example:
        >>> generate_event_key(rfq_id, "rfq.vendor_invited", "V-001")
        "550e8400-e29b-41d4-a716-446655440000:rfq.vendor_invited:V-001"
    """
    return f"{aggregate_id}:{event_type}:{discriminator}"

