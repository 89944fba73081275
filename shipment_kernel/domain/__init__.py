"""
Pure domain layer.

Value objects, the status graph, the weight calculator, the SLA clock,
the task policy engine and next-task planning, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (a Clock is injected where time matters)
"""

from shipment_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from shipment_kernel.domain.dtos import (
    ShipmentDTO,
    SlaBoardRow,
    StatusHistoryDTO,
    TaskDTO,
)
from shipment_kernel.domain.sla import NO_SLA, SlaReading, SlaState
from shipment_kernel.domain.status_graph import (
    DEFAULT_STATUS_GRAPH,
    SHIPMENT_TRANSITIONS,
    TERMINAL_SHIPMENT_STATUSES,
    StatusGraph,
)
from shipment_kernel.domain.task_policy import (
    TaskContext,
    TaskPolicyConfig,
    TaskPolicyEngine,
)
from shipment_kernel.domain.values import (
    Address,
    Dimensions,
    DimensionUnit,
    ServiceType,
    ShipmentPriority,
    ShipmentStatus,
    StatusMetadata,
    TaskKind,
    TaskPriority,
    TaskStatus,
    WeightUnit,
)
from shipment_kernel.domain.weight import chargeable_weight

__all__ = [
    "Address",
    "Clock",
    "DEFAULT_STATUS_GRAPH",
    "DeterministicClock",
    "DimensionUnit",
    "Dimensions",
    "NO_SLA",
    "SHIPMENT_TRANSITIONS",
    "ServiceType",
    "ShipmentDTO",
    "ShipmentPriority",
    "ShipmentStatus",
    "SlaBoardRow",
    "SlaReading",
    "SlaState",
    "StatusGraph",
    "StatusHistoryDTO",
    "StatusMetadata",
    "SystemClock",
    "TERMINAL_SHIPMENT_STATUSES",
    "TaskContext",
    "TaskDTO",
    "TaskKind",
    "TaskPolicyConfig",
    "TaskPolicyEngine",
    "TaskPriority",
    "TaskStatus",
    "WeightUnit",
    "chargeable_weight",
]
