"""
TaskService tests.

Invariants tested:
- Manual tasks derive required_fields the same way automatic tasks do.
- Only pending tasks start; only open tasks complete or cancel.
- Completion enforces the task's stored required_fields against the
  shipment's recorded values plus the completion payload.
- Task SLA never reports a closed task as overdue.
- The automatic task for a status is found by its trigger status, the
  same row every time, and leftovers from earlier statuses are superseded.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from shipment_kernel.domain.values import (
    ServiceType,
    ShipmentPriority,
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
from shipment_kernel.models.task import Task
from shipment_kernel.services.task_service import TaskService


def _only_task(selector, shipment_id):
    tasks = selector.tasks(shipment_id)
    assert len(tasks) == 1
    return tasks[0]


def _open_task_for(selector, shipment_id, trigger_status):
    return next(
        t for t in selector.tasks(shipment_id, open_only=True)
        if t.trigger_status is not None and t.trigger_status.value == trigger_status
    )


# =============================================================================
# Manual tasks
# =============================================================================


class TestCreateTask:

    def test_manual_task(self, create_shipment, task_service, test_actor_id):
        shipment = create_shipment(ServiceType.OBC)
        assignee = uuid4()
        task = task_service.create_task(
            shipment.id,
            "  Call customer  ",
            test_actor_id,
            priority=TaskPriority.HIGH,
            assigned_to_id=assignee,
        )
        assert task.title == "Call customer"
        assert task.kind is TaskKind.MANUAL
        assert task.status is TaskStatus.PENDING
        assert task.priority is TaskPriority.HIGH
        assert task.assigned_to_id == assignee
        assert task.trigger_status is None

    def test_manual_task_required_fields(self, create_shipment, advance_to, task_service, test_actor_id):
        shipment = create_shipment(ServiceType.NFO)
        advance_to(shipment.id, "booked")
        task = task_service.create_task(shipment.id, "Check waybills", test_actor_id)
        assert task.required_fields == ("hawb", "mawb")

    def test_blank_title_rejected(self, create_shipment, task_service, test_actor_id):
        shipment = create_shipment(ServiceType.OBC)
        with pytest.raises(ValueError):
            task_service.create_task(shipment.id, "   ", test_actor_id)

    def test_unknown_shipment(self, task_service, test_actor_id):
        with pytest.raises(ShipmentNotFoundError):
            task_service.create_task(uuid4(), "Orphan", test_actor_id)


# =============================================================================
# State machine
# =============================================================================


class TestTaskStates:

    def test_start_then_complete(self, create_shipment, task_service, selector, test_actor_id):
        shipment = create_shipment(ServiceType.OBC)
        task = _only_task(selector, shipment.id)

        started = task_service.start_task(task.id, test_actor_id)
        assert started.status is TaskStatus.IN_PROGRESS
        assert started.started_at is not None

        completed = task_service.complete_task(task.id, test_actor_id, notes="Customer confirmed")
        assert completed.status is TaskStatus.COMPLETED
        assert completed.completed_by_id == test_actor_id
        assert completed.completion_notes == "Customer confirmed"

    def test_start_twice_rejected(self, create_shipment, task_service, selector, test_actor_id):
        shipment = create_shipment(ServiceType.OBC)
        task = _only_task(selector, shipment.id)
        task_service.start_task(task.id, test_actor_id)
        with pytest.raises(InvalidTaskStateError) as exc_info:
            task_service.start_task(task.id, test_actor_id)
        assert exc_info.value.code == "INVALID_TASK_STATE"
        assert exc_info.value.operation == "start"

    def test_complete_cancelled_rejected(self, create_shipment, task_service, selector, test_actor_id):
        shipment = create_shipment(ServiceType.OBC)
        task = _only_task(selector, shipment.id)
        task_service.cancel_task(task.id, test_actor_id, "duplicate")
        with pytest.raises(InvalidTaskStateError):
            task_service.complete_task(task.id, test_actor_id)
        with pytest.raises(InvalidTaskStateError):
            task_service.cancel_task(task.id, test_actor_id)

    def test_unknown_task(self, task_service, test_actor_id):
        with pytest.raises(TaskNotFoundError) as exc_info:
            task_service.start_task(uuid4(), test_actor_id)
        assert exc_info.value.code == "TASK_NOT_FOUND"

    def test_get_task(self, create_shipment, task_service, selector):
        shipment = create_shipment(ServiceType.OBC)
        task = _only_task(selector, shipment.id)
        assert task_service.get_task(task.id) == task


# =============================================================================
# Completion policy
# =============================================================================


class TestCompletionPolicy:

    def test_recorded_waybills_allow_completion(
        self, create_shipment, advance_to, task_service, selector, test_actor_id,
    ):
        shipment = create_shipment(ServiceType.NFO)
        advance_to(shipment.id, "booked")
        task = _open_task_for(selector, shipment.id, "booked")
        assert task.required_fields == ("hawb", "mawb")
        assert task_service.complete_task(task.id, test_actor_id).status is TaskStatus.COMPLETED

    def test_payload_supplies_missing_fields(
        self, session, shipment_service, task_service, coordinator, selector, test_actor_id,
    ):
        shipment = shipment_service.create_shipment(ServiceType.NFO, test_actor_id)
        session.commit()
        coordinator.request_transition(shipment.id, "booked", actor_id=test_actor_id)
        task = _open_task_for(selector, shipment.id, "booked")

        with pytest.raises(ValidationFailedError) as exc_info:
            task_service.complete_task(task.id, test_actor_id, payload={"hawb": "H-1"})
        assert exc_info.value.missing_fields == ["mawb"]

        done = task_service.complete_task(
            task.id, test_actor_id, payload={"hawb": "H-1", "mawb": "M-1"},
        )
        assert done.status is TaskStatus.COMPLETED

    def test_recorded_values_satisfy_policy(
        self, session, shipment_service, task_service, coordinator, selector, test_actor_id,
    ):
        shipment = shipment_service.create_shipment(
            ServiceType.NFO, test_actor_id, hawb="H-1", mawb="M-1",
        )
        session.commit()
        coordinator.request_transition(shipment.id, "booked", actor_id=test_actor_id)
        task = _open_task_for(selector, shipment.id, "booked")
        assert task_service.complete_task(task.id, test_actor_id).status is TaskStatus.COMPLETED


# =============================================================================
# Automatic tasks
# =============================================================================


class TestAutomaticTaskLookup:

    def test_lookup_by_trigger_status_on_timestamp_tie(
        self, session, create_shipment, task_service, test_actor_id,
    ):
        shipment = create_shipment(ServiceType.OBC)
        quote_task = task_service.open_automatic_task(shipment.id, ShipmentStatus.QUOTED)
        leftover = Task(
            shipment_id=shipment.id,
            title="Arrange pickup with courier",
            kind=TaskKind.AUTOMATIC.value,
            status=TaskStatus.PENDING.value,
            priority=TaskPriority.MEDIUM.value,
            trigger_status=ShipmentStatus.BOOKED.value,
            required_fields=[],
            created_at=quote_task.created_at,
            updated_at=quote_task.created_at,
            created_by_id=test_actor_id,
        )
        session.add(leftover)
        session.flush()

        for _ in range(3):
            found = task_service.open_automatic_task(shipment.id, ShipmentStatus.QUOTED)
            assert found.id == quote_task.id
        assert task_service.open_automatic_task(shipment.id, "booked").id == leftover.id
        assert task_service.open_automatic_task(shipment.id, ShipmentStatus.PICKUP) is None

    def test_supersede_keeps_current_status_task(
        self, create_shipment, task_service, selector, test_actor_id,
    ):
        shipment = create_shipment(ServiceType.OBC)
        assert task_service.supersede_automatic_tasks(
            shipment.id, test_actor_id, ShipmentStatus.QUOTED,
        ) == 0
        assert task_service.supersede_automatic_tasks(
            shipment.id, test_actor_id, ShipmentStatus.BOOKED,
        ) == 1

        task = _only_task(selector, shipment.id)
        assert task.status is TaskStatus.CANCELLED
        assert task.completion_notes == "Superseded by booked"


# =============================================================================
# Task SLA
# =============================================================================


class TestTaskSla:

    def test_open_task_overdue(self, create_shipment, selector, deterministic_clock):
        shipment = create_shipment(ServiceType.OBC)
        task = _only_task(selector, shipment.id)
        later = deterministic_clock.now() + timedelta(hours=25)
        assert TaskService.task_sla(task, later, 15).is_overdue

    def test_completed_task_not_overdue(
        self, create_shipment, task_service, selector, deterministic_clock, test_actor_id,
    ):
        shipment = create_shipment(ServiceType.OBC)
        task = task_service.complete_task(_only_task(selector, shipment.id).id, test_actor_id)
        later = deterministic_clock.now() + timedelta(hours=25)
        reading = TaskService.task_sla(task, later, 15)
        assert not reading.is_overdue
        assert reading.remaining_ms < 0

    def test_task_priority_follows_shipment(self, create_shipment, advance_to, selector, sla_deadline):
        shipment = create_shipment(
            ServiceType.OBC, priority=ShipmentPriority.CRITICAL, sla_deadline=sla_deadline,
        )
        advance_to(shipment.id, "booked", "pickup", "in_transit")
        task = selector.tasks(shipment.id, open_only=True)[0]
        assert task.title == "Monitor shipment progress"
        assert task.priority is TaskPriority.CRITICAL
        assert task.due_date == sla_deadline
