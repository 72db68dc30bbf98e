"""
Module: procurement_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.

Selectors accept a Session from the caller, run queries, and return frozen
domain DTOs rather than ORM instances.  They never add, delete, flush or
commit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from procurement_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Base for all selectors; stores the caller's session."""

    def __init__(self, session: Session):
        self.session = session
