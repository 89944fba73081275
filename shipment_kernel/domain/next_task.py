"""
Next-task templates -- the automatic follow-up task for each status.

Responsibility:
    Given a shipment's new status, plan the automatic task an operator
    must work next: title, priority, due date and the payload fields its
    completion will require.

Architecture position:
    Kernel > Domain -- pure functional core.  TaskService persists the
    PlannedTask; nothing here touches the session.

Due dates:
    ``min(now + template offset, sla_deadline)``.  The in-transit template
    has no offset and is due at the SLA deadline itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from shipment_kernel.domain.status_graph import DEFAULT_STATUS_GRAPH, StatusGraph
from shipment_kernel.domain.task_policy import FIELD_ORDER, TaskContext, TaskPolicyEngine
from shipment_kernel.domain.values import (
    TASK_PRIORITY_RANK,
    ServiceType,
    ShipmentPriority,
    ShipmentStatus,
    TaskPriority,
)


@dataclass(frozen=True)
class TaskTemplate:
    title: str
    description: str
    due_after: timedelta | None
    priority: TaskPriority | None  # None: derived from shipment priority


TASK_TEMPLATES: dict[ShipmentStatus, TaskTemplate] = {
    ShipmentStatus.QUOTED: TaskTemplate(
        title="Follow up on quote with customer",
        description="Confirm the customer accepts the quote and book the shipment.",
        due_after=timedelta(hours=24),
        priority=TaskPriority.MEDIUM,
    ),
    ShipmentStatus.BOOKED: TaskTemplate(
        title="Arrange pickup with courier",
        description="Assign a courier and agree the pickup time with the shipper.",
        due_after=timedelta(hours=2),
        priority=TaskPriority.HIGH,
    ),
    ShipmentStatus.PICKUP: TaskTemplate(
        title="Confirm pickup completion",
        description="Confirm the goods were collected and record waybill numbers.",
        due_after=timedelta(hours=4),
        priority=TaskPriority.HIGH,
    ),
    ShipmentStatus.IN_TRANSIT: TaskTemplate(
        title="Monitor shipment progress",
        description="Track flights and connections until delivery.",
        due_after=None,
        priority=None,
    ),
    ShipmentStatus.CUSTOMS: TaskTemplate(
        title="Clear customs inspection",
        description="Provide documents requested by customs and release the hold.",
        due_after=timedelta(hours=4),
        priority=TaskPriority.HIGH,
    ),
    ShipmentStatus.DELIVERED: TaskTemplate(
        title="Obtain proof of delivery",
        description="Collect the signed POD from the consignee.",
        due_after=timedelta(hours=24),
        priority=TaskPriority.MEDIUM,
    ),
    ShipmentStatus.DOCUMENT: TaskTemplate(
        title="Prepare and send invoice",
        description="Confirm final costs and issue the invoice.",
        due_after=timedelta(hours=48),
        priority=TaskPriority.MEDIUM,
    ),
}

SHIPMENT_TO_TASK_PRIORITY: dict[ShipmentPriority, TaskPriority] = {
    ShipmentPriority.STANDARD: TaskPriority.MEDIUM,
    ShipmentPriority.URGENT: TaskPriority.HIGH,
    ShipmentPriority.CRITICAL: TaskPriority.CRITICAL,
}


@dataclass(frozen=True)
class PlannedTask:
    """An automatic task ready to be persisted."""

    trigger_status: ShipmentStatus
    title: str
    description: str
    priority: TaskPriority
    due_date: datetime | None
    required_fields: tuple[str, ...]


def task_priority_for(
    template_priority: TaskPriority | None,
    shipment_priority: ShipmentPriority,
) -> TaskPriority:
    """The template priority, raised to the shipment's mapped priority."""
    mapped = SHIPMENT_TO_TASK_PRIORITY[ShipmentPriority(shipment_priority)]
    if template_priority is None:
        return mapped
    if TASK_PRIORITY_RANK[mapped] > TASK_PRIORITY_RANK[template_priority]:
        return mapped
    return template_priority


def due_date_for(
    due_after: timedelta | None,
    now: datetime,
    sla_deadline: datetime | None,
) -> datetime | None:
    if due_after is None:
        return sla_deadline
    due = now + due_after
    if sla_deadline is not None and sla_deadline < due:
        return sla_deadline
    return due


def plan_next_task(
    status: ShipmentStatus,
    service_type: ServiceType,
    shipment_priority: ShipmentPriority,
    sla_deadline: datetime | None,
    now: datetime,
    policy: TaskPolicyEngine,
    graph: StatusGraph = DEFAULT_STATUS_GRAPH,
) -> PlannedTask | None:
    """
    Plan the automatic task for a shipment that just entered ``status``.

    Returns None for statuses without a template (terminal statuses).
    """
    template = TASK_TEMPLATES.get(ShipmentStatus(status))
    if template is None:
        return None

    required: tuple[str, ...] = ()
    next_status = graph.next_on_main_path(ShipmentStatus(status))
    if next_status is not None:
        fields = policy.required_fields(
            service_type, TaskContext(to_status=next_status, from_status=status)
        )
        required = tuple(f for f in FIELD_ORDER if f in fields)

    return PlannedTask(
        trigger_status=ShipmentStatus(status),
        title=template.title,
        description=template.description,
        priority=task_priority_for(template.priority, shipment_priority),
        due_date=due_date_for(template.due_after, now, sla_deadline),
        required_fields=required,
    )
