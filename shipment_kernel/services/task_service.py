"""
TaskService -- operator tasks attached to shipments.

Responsibility:
    Creates manual tasks, generates the automatic follow-up task for a
    shipment's status, and moves tasks through pending -> in_progress ->
    completed (or cancelled).

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  Called directly by
    API handlers and, inside the lifecycle transaction, by the coordinator
    and ShipmentService.

Invariants enforced:
    - A task's required_fields are derived from TaskPolicyEngine when the
      task is created and stored on the row.
    - ``complete_task`` refuses to complete a task whose required fields
      are neither on record for the shipment nor in the completion payload.
    - Only pending tasks can be started; only open tasks can be completed
      or cancelled.
    - A shipment has at most one open automatic task; the coordinator
      supersedes leftovers of earlier statuses through
      ``supersede_automatic_tasks``.

Failure modes:
    - TaskNotFoundError, ShipmentNotFoundError.
    - InvalidTaskStateError for an operation not allowed from the task's
      current status.
    - ValidationFailedError from ``complete_task``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from shipment_kernel.domain import sla as sla_clock
from shipment_kernel.domain.clock import Clock
from shipment_kernel.domain.dtos import TaskDTO
from shipment_kernel.domain.next_task import plan_next_task
from shipment_kernel.domain.sla import SlaReading
from shipment_kernel.domain.status_graph import DEFAULT_STATUS_GRAPH, StatusGraph
from shipment_kernel.domain.task_policy import (
    FIELD_ORDER,
    TaskContext,
    TaskPolicyEngine,
    is_present,
)
from shipment_kernel.domain.values import (
    OPEN_TASK_STATUSES,
    ShipmentStatus,
    TaskKind,
    TaskPriority,
    TaskStatus,
)
from shipment_kernel.exceptions import (
    InvalidTaskStateError,
    ShipmentNotFoundError,
    TaskNotFoundError,
    ValidationFailedError,
)
from shipment_kernel.logging_config import get_logger
from shipment_kernel.models.shipment import Shipment
from shipment_kernel.models.task import Task
from shipment_kernel.services.base import BaseService

logger = get_logger("services.task")

_OPEN = tuple(s.value for s in OPEN_TASK_STATUSES)


class TaskService(BaseService[Task]):
    """
    Task lifecycle service.

    Contract:
        Flushes within the caller's transaction; never commits.

    Non-goals:
        - Does NOT change shipment status.  Completing the task that drives
          a transition is done through the coordinator.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: TaskPolicyEngine | None = None,
        graph: StatusGraph = DEFAULT_STATUS_GRAPH,
    ):
        super().__init__(session, clock)
        self._policy = policy or TaskPolicyEngine()
        self._graph = graph

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self, task_id: UUID) -> Task:
        task = self.session.execute(
            select(Task).where(Task.id == task_id).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if task is None:
            raise TaskNotFoundError(str(task_id))
        return task

    def _load_live_shipment(self, shipment_id: UUID) -> Shipment:
        shipment = self.session.execute(
            select(Shipment)
            .where(Shipment.id == shipment_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if shipment is None or shipment.is_deleted:
            raise ShipmentNotFoundError(str(shipment_id))
        return shipment

    def get_task(self, task_id: UUID) -> TaskDTO:
        return self._load(task_id).to_dto()

    def open_automatic_task(
        self,
        shipment_id: UUID,
        trigger_status: ShipmentStatus | str,
    ) -> Task | None:
        """
        The open automatic task generated for ``trigger_status``, if any.

        Ties on created_at resolve on id so the same row is always chosen.
        """
        return self.session.execute(
            select(Task)
            .where(
                Task.shipment_id == shipment_id,
                Task.kind == TaskKind.AUTOMATIC.value,
                Task.trigger_status == ShipmentStatus(trigger_status).value,
                Task.status.in_(_OPEN),
            )
            .order_by(Task.created_at.desc(), Task.id)
            .limit(1)
        ).scalar_one_or_none()

    def open_task_for_shipment(self, shipment_id: UUID, task_id: UUID) -> Task:
        """
        Load an open task and check it belongs to ``shipment_id``.

        Raises:
            TaskNotFoundError: unknown task or task of another shipment.
            InvalidTaskStateError: task is not open.
        """
        task = self._load(task_id)
        if task.shipment_id != shipment_id:
            raise TaskNotFoundError(str(task_id))
        if task.status not in _OPEN:
            raise InvalidTaskStateError(str(task_id), task.status, "complete")
        return task

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_task(
        self,
        shipment_id: UUID,
        title: str,
        actor_id: UUID,
        description: str | None = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        due_date: datetime | None = None,
        assigned_to_id: UUID | None = None,
    ) -> TaskDTO:
        """
        Create a manual task.

        required_fields are derived for the shipment's next main-path
        transition, the same way automatic tasks derive theirs.
        """
        if not title or not title.strip():
            raise ValueError("Task title is required")
        shipment = self._load_live_shipment(shipment_id)
        now = self.clock.now()

        required: tuple[str, ...] = ()
        next_status = self._graph.next_on_main_path(shipment.status)
        if next_status is not None:
            fields = self._policy.required_fields(
                shipment.service,
                TaskContext(to_status=next_status, from_status=shipment.status),
            )
            required = tuple(f for f in FIELD_ORDER if f in fields)

        task = Task(
            shipment_id=shipment.id,
            title=title.strip(),
            description=description,
            kind=TaskKind.MANUAL.value,
            status=TaskStatus.PENDING.value,
            priority=TaskPriority(priority).value,
            due_date=due_date,
            required_fields=list(required),
            assigned_to_id=assigned_to_id,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )
        self.session.add(task)
        self.session.flush()
        logger.info(
            "task_created",
            extra={
                "task_id": str(task.id),
                "shipment_id": str(shipment.id),
                "kind": TaskKind.MANUAL.value,
            },
        )
        return task.to_dto()

    def generate_for_status(self, shipment: Shipment, actor_id: UUID) -> Task | None:
        """
        Create the automatic task for the shipment's current status.

        Returns None when the status has no template (terminal statuses).
        """
        now = self.clock.now()
        planned = plan_next_task(
            status=shipment.status,
            service_type=shipment.service,
            shipment_priority=shipment.priority,
            sla_deadline=shipment.sla_deadline,
            now=now,
            policy=self._policy,
            graph=self._graph,
        )
        if planned is None:
            return None

        task = Task(
            shipment_id=shipment.id,
            title=planned.title,
            description=planned.description,
            kind=TaskKind.AUTOMATIC.value,
            status=TaskStatus.PENDING.value,
            priority=planned.priority.value,
            due_date=planned.due_date,
            trigger_status=planned.trigger_status.value,
            required_fields=list(planned.required_fields),
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )
        self.session.add(task)
        self.session.flush()
        logger.info(
            "task_generated",
            extra={
                "task_id": str(task.id),
                "shipment_id": str(shipment.id),
                "trigger_status": planned.trigger_status.value,
                "priority": planned.priority.value,
                "required_fields": list(planned.required_fields),
            },
        )
        return task

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def start_task(self, task_id: UUID, actor_id: UUID) -> TaskDTO:
        """
        Move a pending task to in_progress.

        Raises:
            InvalidTaskStateError: if the task is not pending.
        """
        task = self._load(task_id)
        if task.status != TaskStatus.PENDING.value:
            raise InvalidTaskStateError(str(task_id), task.status, "start")
        now = self.clock.now()
        task.status = TaskStatus.IN_PROGRESS.value
        task.started_at = now
        task.updated_at = now
        task.updated_by_id = actor_id
        self.session.flush()
        logger.info("task_started", extra={"task_id": str(task.id)})
        return task.to_dto()

    def complete_task(
        self,
        task_id: UUID,
        actor_id: UUID,
        payload: Mapping[str, Any] | None = None,
        notes: str | None = None,
    ) -> TaskDTO:
        """
        Complete an open task without changing shipment status.

        The task's stored required_fields must be satisfied by the
        shipment's recorded values overlaid with ``payload``.

        Raises:
            InvalidTaskStateError: task already completed or cancelled.
            ValidationFailedError: required fields missing.
        """
        task = self._load(task_id)
        if task.status not in _OPEN:
            raise InvalidTaskStateError(str(task_id), task.status, "complete")
        shipment = self._load_live_shipment(task.shipment_id)

        effective = shipment.recorded_policy_fields()
        effective.update(payload or {})
        missing = [f for f in task.required_fields or () if not is_present(f, effective)]
        if missing:
            raise ValidationFailedError(
                missing,
                service_type=shipment.service_type,
                to_status=task.trigger_status,
            )
        self.record_completion(task, actor_id, notes)
        return task.to_dto()

    def record_completion(self, task: Task, actor_id: UUID, notes: str | None = None) -> None:
        """Mark an already-validated open task completed."""
        now = self.clock.now()
        task.status = TaskStatus.COMPLETED.value
        task.completed_at = now
        task.completed_by_id = actor_id
        task.completion_notes = notes.strip() if notes else None
        task.updated_at = now
        task.updated_by_id = actor_id
        self.session.flush()
        logger.info("task_completed", extra={"task_id": str(task.id)})

    def cancel_task(self, task_id: UUID, actor_id: UUID, reason: str | None = None) -> TaskDTO:
        """
        Raises:
            InvalidTaskStateError: task already completed or cancelled.
        """
        task = self._load(task_id)
        if task.status not in _OPEN:
            raise InvalidTaskStateError(str(task_id), task.status, "cancel")
        self._cancel(task, actor_id, reason)
        return task.to_dto()

    def cancel_open_tasks(
        self,
        shipment_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> int:
        """Cancel every open task of a shipment; returns the count."""
        tasks = self.session.execute(
            select(Task).where(Task.shipment_id == shipment_id, Task.status.in_(_OPEN))
        ).scalars().all()
        for task in tasks:
            self._cancel(task, actor_id, reason)
        return len(tasks)

    def supersede_automatic_tasks(
        self,
        shipment_id: UUID,
        actor_id: UUID,
        new_status: ShipmentStatus,
    ) -> int:
        """
        Cancel open automatic tasks left over from earlier statuses.

        A shipment carries at most one open automatic task, the one for
        its current status.  Manual tasks are left alone.
        """
        stale = self.session.execute(
            select(Task).where(
                Task.shipment_id == shipment_id,
                Task.kind == TaskKind.AUTOMATIC.value,
                Task.status.in_(_OPEN),
                Task.trigger_status != new_status.value,
            )
        ).scalars().all()
        for task in stale:
            self._cancel(task, actor_id, f"Superseded by {new_status.value}")
        return len(stale)

    def _cancel(self, task: Task, actor_id: UUID, reason: str | None) -> None:
        now = self.clock.now()
        task.status = TaskStatus.CANCELLED.value
        task.completion_notes = reason
        task.updated_at = now
        task.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "task_cancelled",
            extra={"task_id": str(task.id), "reason": reason},
        )

    # ------------------------------------------------------------------
    # SLA
    # ------------------------------------------------------------------

    @staticmethod
    def task_sla(task: TaskDTO, now: datetime, warning_minutes: int) -> SlaReading:
        """SLA reading for a task's due date; closed tasks are never overdue."""
        return sla_clock.compute(
            task.due_date,
            warning_minutes,
            now,
            completed=not task.is_open,
        )
