"""
Actor identity (``procurement_kernel.domain.actor``).

Every Approval-Gate and Award call receives the acting principal
explicitly.  The kernel never looks up "the current user" from ambient
state; the host service resolves the caller through an
``IdentityProvider`` and passes the resulting ``Actor`` in.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from procurement_kernel.exceptions import ValidationError


class Role(str, Enum):
    """Organizational roles recognized by the workflow."""

    EMPLOYEE = "employee"
    PROCUREMENT_MANAGER = "procurement_manager"
    PROCUREMENT = "procurement"
    EXECUTIVE = "executive"
    CHAIRMAN = "chairman"
    SUPPLY_CHAIN_DIRECTOR = "supply_chain_director"
    SUPPLY_CHAIN = "supply_chain"
    FINANCE = "finance"
    VENDOR = "vendor"


@dataclass(frozen=True)
class Actor:
    """The caller of a workflow operation."""

    actor_id: UUID
    name: str
    role: Role
    # Set for vendor-portal users: the one vendor they may bid for.
    vendor_id: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            try:
                object.__setattr__(self, "role", Role(self.role))
            except ValueError:
                raise ValidationError("role", f"unknown role {self.role!r}") from None
        if not self.name or not self.name.strip():
            raise ValidationError("name", "actor name must not be empty")

    def has_role(self, roles: tuple[str, ...]) -> bool:
        return self.role.value in roles
