"""
SequenceService -- monotonic shipment-number allocation via locked counter rows.

Responsibility:
    Provides strictly increasing per-service-type shipment numbers.  Uses
    a dedicated counter table with row-level locking (``SELECT ... FOR UPDATE``) to
    guarantee uniqueness and ordering under concurrent access.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by ShipmentService when a shipment is created without an
    explicit number.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth
      for the next value.  MAX()+1 over the shipments table is never used.
    - Transactional: a rolled-back transaction does not consume a value.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from shipment_kernel.db.base import Base
from shipment_kernel.domain.values import ServiceType
from shipment_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    # e.g. "shipment_number.OBC"
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Guarantees:
        - Strictly monotonic values per sequence name.
        - ``SELECT ... FOR UPDATE`` serializes concurrent allocations.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def shipment_number_sequence(service_type: ServiceType | str) -> str:
        return f"shipment_number.{ServiceType(service_type).value}"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Locks the counter row (creating it on first use), increments it and
        returns the new value.  The increment is only committed when the
        caller's transaction commits.

        Returns:
            The next sequence value (always > 0).
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use.  A concurrent creator may win the race; the
            # savepoint keeps the rest of the caller's transaction intact.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
