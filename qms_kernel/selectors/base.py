"""
Module: qms_kernel.selectors.base
Responsibility: Base class for read-only query selectors -- the read side
    that inboxes, document lists and review screens use.
Architecture position: Kernel > Selectors.  May import from models/ and
    domain/ value objects.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - DTO return convention: selectors return frozen domain dataclasses,
      never ORM instances.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from qms_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Holds the caller's session for subclass queries."""

    def __init__(self, session: Session):
        self.session = session
