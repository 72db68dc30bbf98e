"""Utility helpers for the procurement kernel."""

from procurement_kernel.utils.idempotency import generate_event_key

__all__ = ["generate_event_key"]
