"""
ShipmentSelector -- read paths for shipments, their history and tasks.

Responsibility:
    Shipment detail, the commit-ordered status history, the task list and
    the SLA board across active shipments.

Architecture position:
    Kernel > Selectors -- read-only.

Invariants enforced:
    - History is ordered by per-shipment sequence (commit order) and stays
      readable for soft-deleted shipments.
    - The SLA board only lists live, non-terminal shipments with a
      deadline, most urgent first.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from shipment_kernel.domain import sla as sla_clock
from shipment_kernel.domain.dtos import (
    ShipmentDTO,
    SlaBoardRow,
    StatusHistoryDTO,
    TaskDTO,
)
from shipment_kernel.domain.status_graph import TERMINAL_SHIPMENT_STATUSES
from shipment_kernel.domain.values import OPEN_TASK_STATUSES, ServiceType, ShipmentPriority, ShipmentStatus
from shipment_kernel.exceptions import ShipmentNotFoundError
from shipment_kernel.models.shipment import Shipment
from shipment_kernel.models.status_history import StatusHistoryEntry
from shipment_kernel.models.task import Task
from shipment_kernel.selectors.base import BaseSelector

_TERMINAL = tuple(s.value for s in TERMINAL_SHIPMENT_STATUSES)
_OPEN = tuple(s.value for s in OPEN_TASK_STATUSES)


class ShipmentSelector(BaseSelector[Shipment]):
    """Read-only shipment queries returning DTOs."""

    def _exists(self, shipment_id: UUID) -> bool:
        return self.session.execute(
            select(Shipment.id).where(Shipment.id == shipment_id)
        ).first() is not None

    def get(self, shipment_id: UUID, include_deleted: bool = False) -> ShipmentDTO:
        """
        Raises:
            ShipmentNotFoundError: missing, or soft-deleted unless
                include_deleted is set.
        """
        shipment = self.session.execute(
            select(Shipment)
            .where(Shipment.id == shipment_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if shipment is None or (shipment.is_deleted and not include_deleted):
            raise ShipmentNotFoundError(str(shipment_id))
        return shipment.to_dto()

    def find_by_number(self, shipment_number: str) -> ShipmentDTO | None:
        shipment = self.session.execute(
            select(Shipment).where(
                Shipment.shipment_number == shipment_number,
                Shipment.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        return shipment.to_dto() if shipment is not None else None

    def history(self, shipment_id: UUID) -> list[StatusHistoryDTO]:
        """
        Status history in commit order, including soft-deleted shipments.

        Raises:
            ShipmentNotFoundError: no such shipment.
        """
        if not self._exists(shipment_id):
            raise ShipmentNotFoundError(str(shipment_id))
        entries = self.session.execute(
            select(StatusHistoryEntry)
            .where(StatusHistoryEntry.shipment_id == shipment_id)
            .order_by(StatusHistoryEntry.sequence)
        ).scalars().all()
        return [e.to_dto() for e in entries]

    def tasks(self, shipment_id: UUID, open_only: bool = False) -> list[TaskDTO]:
        stmt = select(Task).where(Task.shipment_id == shipment_id)
        if open_only:
            stmt = stmt.where(Task.status.in_(_OPEN))
        stmt = stmt.order_by(Task.created_at, Task.title)
        return [t.to_dto() for t in self.session.execute(stmt).scalars().all()]

    def sla_board(self, now: datetime, warning_minutes: int | None = None) -> list[SlaBoardRow]:
        """
        SLA readings for every active shipment, most urgent first.

        Args:
            now: Caller's current time; readings are a pure function of it.
            warning_minutes: Overrides each shipment's own warning window.
        """
        shipments = self.session.execute(
            select(Shipment).where(
                Shipment.deleted_at.is_(None),
                Shipment.sla_deadline.is_not(None),
                Shipment.current_status.not_in(_TERMINAL),
            )
        ).scalars().all()

        rows = []
        for s in shipments:
            window = s.sla_warning_minutes if warning_minutes is None else warning_minutes
            rows.append(
                SlaBoardRow(
                    shipment_id=s.id,
                    shipment_number=s.shipment_number,
                    service_type=ServiceType(s.service_type),
                    current_status=ShipmentStatus(s.current_status),
                    priority=ShipmentPriority(s.priority),
                    sla_deadline=s.sla_deadline,
                    reading=sla_clock.compute(s.sla_deadline, window, now),
                )
            )
        rows.sort(key=lambda r: (r.reading.remaining_ms, r.shipment_number))
        return rows
