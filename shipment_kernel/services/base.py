"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service.  Services receive a SQLAlchemy ``Session``
    and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back.  The caller (ShipmentLifecycleCoordinator
    with auto_commit, session_scope(), or a test harness) owns the boundary,
    which is what keeps a status change, its history entry and its task
    updates in one atomic unit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from shipment_kernel.db.base import Base
from shipment_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT provide read-model queries; those live in selectors/.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        """
        Args:
            session: SQLAlchemy session for database operations.
            clock: Time source.  Defaults to SystemClock.
        """
        self.session = session
        self.clock = clock or SystemClock()
