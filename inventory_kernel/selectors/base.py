"""
Module: inventory_kernel.selectors.base
Responsibility: Abstract base class for read-only stock queries.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Derived figures only: reserved and free stock are computed from the
      transaction log at query time, never read from a stored counter.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Accepts a Session owned by the caller and returns DTOs.
    """

    def __init__(self, session: Session):
        self.session = session
