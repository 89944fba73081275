"""
Module: shipment_kernel.models.task
Responsibility: ORM persistence for operator tasks attached to a shipment.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - required_fields is captured from TaskPolicyEngine when the task is
      created and never recomputed on the row.
    - Status moves pending -> in_progress -> completed, or to cancelled
      from any open status (TaskService enforces this).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from shipment_kernel.db.base import TrackedBase, UTCDateTime, UUIDString


class Task(TrackedBase):
    """Manual or automatic task for a shipment."""

    __tablename__ = "shipment_tasks"

    __table_args__ = (
        Index("idx_task_shipment_status", "shipment_id", "status"),
        Index("idx_task_due", "due_date"),
    )

    shipment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shipments.id"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    priority: Mapped[str] = mapped_column(String(20), nullable=False)

    due_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Shipment status that generated this task (automatic tasks only)
    trigger_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    required_fields: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    assigned_to_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    completion_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def __repr__(self) -> str:
        return f"<Task {self.title!r}: {self.status}>"

    def to_dto(self) -> "TaskDTO":
        """Convert ORM model to frozen domain DTO."""
        from shipment_kernel.domain.dtos import TaskDTO
        from shipment_kernel.domain.values import (
            ShipmentStatus,
            TaskKind,
            TaskPriority,
            TaskStatus,
        )

        return TaskDTO(
            id=self.id,
            shipment_id=self.shipment_id,
            title=self.title,
            kind=TaskKind(self.kind),
            status=TaskStatus(self.status),
            priority=TaskPriority(self.priority),
            created_at=self.created_at,
            description=self.description,
            due_date=self.due_date,
            trigger_status=ShipmentStatus(self.trigger_status) if self.trigger_status else None,
            required_fields=tuple(self.required_fields or ()),
            assigned_to_id=self.assigned_to_id,
            started_at=self.started_at,
            completed_at=self.completed_at,
            completed_by_id=self.completed_by_id,
            completion_notes=self.completion_notes,
        )
