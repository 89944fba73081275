"""
Module: shipment_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/ DTOs.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Selectors return frozen DTOs, never ORM instances.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from shipment_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Base class for all selectors.

    Contract:
        Accepts a Session from the caller and performs read-only queries.
        The caller owns the session and its transaction scope.
    """

    def __init__(self, session: Session):
        self.session = session
