"""
StatusHistoryService -- append-only shipment status log.

Responsibility:
    Writes StatusHistoryEntry rows.  An entry's sequence is the shipment
    version its status change produced: 1 for the creation entry, then
    the post-swap version for every transition.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  Called by
    ShipmentService (creation entry) and ShipmentLifecycleCoordinator
    (one entry per committed transition), always inside the same
    transaction as the status write it records.

Invariants enforced:
    - Per-shipment ordering: the coordinator's compare-and-swap on
      (status, version) serializes writers of one shipment, so each
      version is recorded once.  Writers of different shipments share
      no lock.
    - Append-only: the service exposes no update or delete, and the ORM
      listeners in db/immutability.py reject both.

Failure modes:
    - IntegrityError on a duplicate (shipment_id, sequence).
"""

from typing import Any
from uuid import UUID

from shipment_kernel.domain.values import ShipmentStatus
from shipment_kernel.logging_config import get_logger
from shipment_kernel.models.status_history import StatusHistoryEntry
from shipment_kernel.services.base import BaseService

logger = get_logger("services.history")


class StatusHistoryService(BaseService[StatusHistoryEntry]):
    """Appends immutable status history entries."""

    def append(
        self,
        shipment_id: UUID,
        sequence: int,
        status: ShipmentStatus,
        actor_id: UUID,
        from_status: ShipmentStatus | None = None,
        location: str | None = None,
        notes: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> StatusHistoryEntry:
        if sequence < 1:
            raise ValueError(f"History sequence must be positive, got {sequence}")
        entry = StatusHistoryEntry(
            shipment_id=shipment_id,
            sequence=sequence,
            status=ShipmentStatus(status).value,
            from_status=ShipmentStatus(from_status).value if from_status else None,
            recorded_at=self.clock.now(),
            recorded_by_id=actor_id,
            location=location,
            notes=notes,
            entry_metadata=dict(metadata or {}),
        )
        self.session.add(entry)
        self.session.flush()
        logger.debug(
            "status_history_appended",
            extra={
                "shipment_id": str(shipment_id),
                "sequence": sequence,
                "status": entry.status,
                "from_status": entry.from_status,
            },
        )
        return entry
