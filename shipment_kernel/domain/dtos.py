"""
Data Transfer Objects for the shipment kernel.

Responsibility:
    Immutable snapshots returned by services and selectors.  Callers never
    receive ORM instances, so nothing outside the kernel can assign
    ``current_status`` behind the coordinator's back.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from shipment_kernel.domain.sla import SlaReading
from shipment_kernel.domain.status_graph import TERMINAL_SHIPMENT_STATUSES
from shipment_kernel.domain.values import (
    OPEN_TASK_STATUSES,
    Address,
    Dimensions,
    ServiceType,
    ShipmentPriority,
    ShipmentStatus,
    TaskKind,
    TaskPriority,
    TaskStatus,
)


@dataclass(frozen=True)
class ShipmentDTO:
    """
    Snapshot of a shipment record.

    Guarantees:
        - Immutable (frozen dataclass).
        - ``version`` increases by one on every committed status change.
    """

    id: UUID
    shipment_number: str
    service_type: ServiceType
    current_status: ShipmentStatus
    priority: ShipmentPriority
    version: int
    sla_deadline: datetime | None
    sla_warning_minutes: int
    created_at: datetime
    updated_at: datetime
    dimensions: Dimensions | None = None
    chargeable_weight: Decimal | None = None
    origin: Address | None = None
    destination: Address | None = None
    customer_reference: str | None = None
    hawb: str | None = None
    mawb: str | None = None
    customs_costs_confirmed: bool = False
    excess_baggage_confirmed: bool = False
    pod_received: bool = False
    courier_id: UUID | None = None
    employee_id: UUID | None = None
    partner_id: UUID | None = None
    pickup_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    deleted_at: datetime | None = None
    deleted_by_id: UUID | None = None

    @property
    def is_terminal(self) -> bool:
        return self.current_status in TERMINAL_SHIPMENT_STATUSES

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class StatusHistoryDTO:
    """One append-only history entry."""

    id: UUID
    shipment_id: UUID
    sequence: int
    status: ShipmentStatus
    from_status: ShipmentStatus | None
    recorded_at: datetime
    recorded_by_id: UUID
    location: str | None = None
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TaskDTO:
    """Snapshot of a task."""

    id: UUID
    shipment_id: UUID
    title: str
    kind: TaskKind
    status: TaskStatus
    priority: TaskPriority
    created_at: datetime
    description: str | None = None
    due_date: datetime | None = None
    trigger_status: ShipmentStatus | None = None
    required_fields: tuple[str, ...] = ()
    assigned_to_id: UUID | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    completed_by_id: UUID | None = None
    completion_notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_TASK_STATUSES


@dataclass(frozen=True)
class SlaBoardRow:
    """One active shipment on the SLA monitoring board."""

    shipment_id: UUID
    shipment_number: str
    service_type: ServiceType
    current_status: ShipmentStatus
    priority: ShipmentPriority
    sla_deadline: datetime
    reading: SlaReading
