"""
Module: shipment_kernel.models.status_history
Responsibility: Append-only log of shipment status changes.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Exactly one entry per committed status change (plus the creation
      entry), written in the same transaction as the status write.
    - Entries are immutable from creation: UPDATE and DELETE are rejected by
      db/immutability.py.
    - sequence is the shipment version the change produced, unique per
      shipment.  Ordering a shipment's entries by sequence is the order
      its status changes committed in.

Audit relevance:
    This table is the shipment's audit trail.  It remains readable after
    the shipment is soft-deleted.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shipment_kernel.db.base import Base, UTCDateTime, UUIDString


class StatusHistoryEntry(Base):
    """
    One immutable status change.

    Guarantees:
        - (shipment_id, sequence) is unique; sequence starts at 1 with the
          creation entry.
        - from_status is None only for the creation entry.
    """

    __tablename__ = "shipment_status_history"

    __table_args__ = (
        UniqueConstraint(
            "shipment_id", "sequence", name="uq_status_history_shipment_sequence"
        ),
    )

    shipment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shipments.id"),
        nullable=False,
    )

    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    recorded_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    # "metadata" is reserved on declarative classes
    entry_metadata: Mapped[dict] = mapped_column(
        "metadata",
        JSON,
        default=dict,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<StatusHistoryEntry #{self.sequence} {self.from_status} -> {self.status}>"

    def to_dto(self) -> "StatusHistoryDTO":
        """Convert ORM model to frozen domain DTO."""
        from shipment_kernel.domain.dtos import StatusHistoryDTO
        from shipment_kernel.domain.values import ShipmentStatus

        return StatusHistoryDTO(
            id=self.id,
            shipment_id=self.shipment_id,
            sequence=self.sequence,
            status=ShipmentStatus(self.status),
            from_status=ShipmentStatus(self.from_status) if self.from_status else None,
            recorded_at=self.recorded_at,
            recorded_by_id=self.recorded_by_id,
            location=self.location,
            notes=self.notes,
            metadata=dict(self.entry_metadata or {}),
        )
