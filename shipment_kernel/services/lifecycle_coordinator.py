"""
ShipmentLifecycleCoordinator -- the single write path for status changes.

Responsibility:
    Moves a shipment from its current status to a requested target:
    validates the edge against the StatusGraph, enforces task-completion
    policy, recomputes chargeable weight, writes the new status with a
    compare-and-swap and appends the history entry, all in one
    transaction.

Architecture position:
    Kernel > Services -- imperative shell.  Owns the transaction boundary
    when ``auto_commit`` is set; otherwise flushes into the caller's.

Pipeline (request_transition):
    1. Load the shipment (NOT_FOUND if missing or soft-deleted).
    2. Check the caller's ``expected_status`` against what was read.
    3. Reject terminal shipments (IMMUTABLE_TERMINAL_STATE).
    4. StatusGraph.validate(current, target) (INVALID_TRANSITION).
    5. Validate status-update metadata (INVALID_STATUS_UPDATE).
    6. If the payload completes a task, TaskPolicyEngine.validate on the
       recorded values overlaid with the payload (VALIDATION_FAILED).
    7. If the payload carries dimensions, validate and recompute
       chargeable weight (INVALID_DIMENSIONS).
    8. Compare-and-swap the status row (CONCURRENT_MODIFICATION).
    9. Append one StatusHistoryEntry whose sequence is the new version.
       Complete the driving task.  On a terminal target cancel every open
       task; otherwise supersede stale automatic tasks and generate the
       one for the new status.
   10. Commit (auto_commit) and return the updated ShipmentDTO.

Invariants enforced:
    - Only edges of the StatusGraph are written.
    - Terminal statuses are never left.
    - Status write and history entry commit together or not at all.
    - The status write is conditional on the status and version read in
      step 1; a lost race never overwrites the winner.
    - A live shipment has at most one open automatic task, and a terminal
      shipment has no open tasks.
    - ``version`` increases by exactly one per committed transition.

Failure modes:
    Every failure is a typed ShipmentKernelError raised before or inside
    the transaction.  With auto_commit the session is rolled back before
    the error propagates; nothing is retried here.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Mapping
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from shipment_kernel.domain import sla as sla_clock
from shipment_kernel.domain.clock import Clock, SystemClock
from shipment_kernel.domain.dtos import ShipmentDTO
from shipment_kernel.domain.sla import SlaReading
from shipment_kernel.domain.status_graph import (
    DEFAULT_STATUS_GRAPH,
    StatusGraph,
    coerce_status,
)
from shipment_kernel.domain.task_policy import TaskContext, TaskPolicyEngine
from shipment_kernel.domain.validation import validate_status_update
from shipment_kernel.domain.values import (
    Dimensions,
    ShipmentStatus,
    StatusMetadata,
    validate_dimensions,
)
from shipment_kernel.domain.weight import chargeable_weight
from shipment_kernel.exceptions import (
    ConcurrentModificationError,
    ImmutableTerminalStateError,
    InvalidStatusUpdateError,
    ShipmentNotFoundError,
)
from shipment_kernel.logging_config import LogContext, get_logger
from shipment_kernel.models.shipment import Shipment
from shipment_kernel.services.history_service import StatusHistoryService
from shipment_kernel.services.task_service import TaskService

logger = get_logger("services.lifecycle")

# Payload keys written onto the shipment row with the status change
_RECORDED_TEXT_FIELDS = ("customer_reference", "hawb", "mawb")
_RECORDED_FLAG_FIELDS = ("customs_costs_confirmed", "excess_baggage_confirmed", "pod_received")


def _payload_dimensions(value: Dimensions | Mapping[str, Any]) -> Dimensions:
    if isinstance(value, Dimensions):
        return value
    return Dimensions.from_payload(value)


def _payload_metadata(value: Mapping[str, Any] | None) -> StatusMetadata | None:
    if not value:
        return None
    try:
        return StatusMetadata.from_payload(value)
    except (TypeError, ValueError) as exc:
        raise InvalidStatusUpdateError([f"Malformed status metadata: {exc}"]) from exc


def recorded_values(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Shipment column values carried by a transition payload."""
    values: dict[str, Any] = {}
    for key in _RECORDED_TEXT_FIELDS:
        raw = payload.get(key)
        if isinstance(raw, str) and raw.strip():
            values[key] = raw.strip()
    for key in _RECORDED_FLAG_FIELDS:
        if key in payload and payload[key] is not None:
            values[key] = payload[key] is True
    return values


def implies_task_completion(payload: Mapping[str, Any]) -> bool:
    return payload.get("task_id") is not None or payload.get("complete_task") is True


class ShipmentLifecycleCoordinator:
    """
    Status-transition orchestrator.

    Contract:
        ``request_transition`` either returns the updated ShipmentDTO with
        the status change, its history entry and its task updates
        persisted, or raises with none of them persisted.

    Guarantees:
        - auto_commit=True: commit on success, rollback on failure.
        - auto_commit=False: flush only; the caller owns the transaction.

    Non-goals:
        - Does NOT retry on CONCURRENT_MODIFICATION.
        - Does NOT check permissions; the actor is already authorized.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: TaskPolicyEngine | None = None,
        graph: StatusGraph = DEFAULT_STATUS_GRAPH,
        task_automation: bool = True,
        auto_commit: bool = True,
        sla_warning_minutes: int = 15,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or TaskPolicyEngine()
        self._graph = graph
        self._task_automation = task_automation
        self._auto_commit = auto_commit
        self._sla_warning_minutes = sla_warning_minutes

        self._history = StatusHistoryService(session, self._clock)
        self._tasks = TaskService(session, self._clock, self._policy, graph)

    @classmethod
    def from_config(
        cls,
        session: Session,
        config: Any,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ) -> ShipmentLifecycleCoordinator:
        """
        Build from a loaded ShipmentConfig.

        The config object is consumed by attribute (``task_policy()``,
        ``task_automation.enabled``, ``sla.warning_minutes_before``) so the
        kernel stays free of configuration imports.
        """
        return cls(
            session,
            clock=clock,
            policy=TaskPolicyEngine(config.task_policy()),
            task_automation=config.task_automation.enabled,
            auto_commit=auto_commit,
            sla_warning_minutes=config.sla.warning_minutes_before,
        )

    @property
    def session(self) -> Session:
        return self._session

    @property
    def graph(self) -> StatusGraph:
        return self._graph

    @property
    def policy(self) -> TaskPolicyEngine:
        return self._policy

    # ------------------------------------------------------------------
    # Pass-throughs for presentation layers
    # ------------------------------------------------------------------

    def list_allowed_next_statuses(self, status: ShipmentStatus | str) -> list[ShipmentStatus]:
        """Allowed targets from ``status`` in main-path order; [] if terminal."""
        allowed = self._graph.allowed_next(status)
        return sorted(allowed, key=lambda s: list(ShipmentStatus).index(s))

    def compute_sla(
        self,
        deadline: datetime | None,
        warning_threshold_minutes: int | None = None,
        now: datetime | None = None,
        *,
        completed: bool = False,
    ) -> SlaReading:
        warning = (
            self._sla_warning_minutes
            if warning_threshold_minutes is None
            else warning_threshold_minutes
        )
        return sla_clock.compute(
            deadline,
            warning,
            now or self._clock.now(),
            completed=completed,
        )

    def compute_chargeable_weight(self, dimensions: Dimensions | Mapping[str, Any]):
        """
        Raises:
            InvalidDimensionsError: malformed or out-of-range dimensions.
        """
        dims = _payload_dimensions(dimensions)
        validate_dimensions(dims)
        return chargeable_weight(dims)

    # ------------------------------------------------------------------
    # Transition
    # ------------------------------------------------------------------

    def request_transition(
        self,
        shipment_id: UUID,
        target_status: ShipmentStatus | str,
        payload: Mapping[str, Any] | None = None,
        *,
        actor_id: UUID,
        expected_status: ShipmentStatus | str | None = None,
    ) -> ShipmentDTO:
        """
        Move a shipment to ``target_status``.

        Payload keys:
            task_id / complete_task: complete a task with this transition.
            dimensions: mapping (or Dimensions) to recompute chargeable weight.
            customer_reference, hawb, mawb, customs_costs_confirmed,
            excess_baggage_confirmed, pod_received: recorded on the shipment.
            metadata.pod_received counts as pod_received.
            location, notes, metadata: attached to the history entry.

        Raises:
            ShipmentNotFoundError, ImmutableTerminalStateError,
            InvalidTransitionError, InvalidStatusUpdateError,
            ValidationFailedError, InvalidDimensionsError,
            ConcurrentModificationError, TaskNotFoundError,
            InvalidTaskStateError.
        """
        data = dict(payload or {})
        target_value = getattr(target_status, "value", target_status)

        with LogContext.bind(
            correlation_id=str(uuid4()),
            shipment_id=str(shipment_id),
            actor_id=str(actor_id),
        ):
            logger.info(
                "transition_started",
                extra={
                    "target_status": target_value,
                    "completes_task": implies_task_completion(data),
                },
            )
            t0 = time.monotonic()

            try:
                shipment, from_status = self._do_transition(
                    shipment_id, target_status, data, actor_id, expected_status,
                )
                dto = shipment.to_dto()

                if self._auto_commit:
                    self._session.commit()

                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.info(
                    "transition_completed",
                    extra={
                        "from_status": from_status.value,
                        "to_status": dto.current_status.value,
                        "version": dto.version,
                        "duration_ms": duration_ms,
                    },
                )
                return dto

            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    "transition_failed",
                    extra={"target_status": target_value, "duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

    def _load(self, shipment_id: UUID) -> Shipment:
        shipment = self._session.execute(
            select(Shipment)
            .where(Shipment.id == shipment_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if shipment is None or shipment.is_deleted:
            raise ShipmentNotFoundError(str(shipment_id))
        return shipment

    def _do_transition(
        self,
        shipment_id: UUID,
        target_status: ShipmentStatus | str,
        data: dict[str, Any],
        actor_id: UUID,
        expected_status: ShipmentStatus | str | None,
    ) -> tuple[Shipment, ShipmentStatus]:
        now = self._clock.now()

        shipment = self._load(shipment_id)
        current = shipment.status

        if expected_status is not None and coerce_status(expected_status) != current:
            raise ConcurrentModificationError(
                str(shipment_id), getattr(expected_status, "value", expected_status),
            )

        if self._graph.is_terminal(current):
            raise ImmutableTerminalStateError(str(shipment_id), current.value)

        self._graph.validate(current, target_status)
        target = ShipmentStatus(target_status)

        metadata = _payload_metadata(data.get("metadata"))
        validate_status_update(metadata, now)
        if metadata is not None and metadata.pod_received is True and "pod_received" not in data:
            data = {**data, "pod_received": True}

        task = None
        if implies_task_completion(data):
            effective = shipment.recorded_policy_fields()
            effective.update(data)
            self._policy.validate(
                shipment.service,
                TaskContext(to_status=target, from_status=current),
                effective,
            )
            if data.get("task_id") is not None:
                task = self._tasks.open_task_for_shipment(shipment.id, UUID(str(data["task_id"])))
            else:
                task = self._tasks.open_automatic_task(shipment.id, current)

        values: dict[str, Any] = recorded_values(data)
        if data.get("dimensions") is not None:
            dims = _payload_dimensions(data["dimensions"])
            validate_dimensions(dims)
            values.update(
                length=dims.length,
                width=dims.width,
                height=dims.height,
                weight=dims.weight,
                dimension_unit=dims.unit.value,
                weight_unit=dims.weight_unit.value,
                chargeable_weight=chargeable_weight(dims),
            )

        if target == ShipmentStatus.PICKUP:
            values["pickup_at"] = now
        elif target == ShipmentStatus.DELIVERED:
            values["delivered_at"] = now
        if self._graph.is_terminal(target):
            values["completed_at"] = now

        read_version = shipment.version
        self._compare_and_swap(shipment, current, read_version, target, values, actor_id, now)

        self._history.append(
            shipment_id=shipment.id,
            sequence=read_version + 1,
            status=target,
            actor_id=actor_id,
            from_status=current,
            location=data.get("location"),
            notes=data.get("notes"),
            metadata=metadata.to_dict() if metadata else None,
        )

        if task is not None:
            self._tasks.record_completion(task, actor_id, data.get("notes"))

        self._session.refresh(shipment)

        if self._graph.is_terminal(target):
            self._tasks.cancel_open_tasks(
                shipment.id, actor_id, f"Shipment {target.value}",
            )
        else:
            self._tasks.supersede_automatic_tasks(shipment.id, actor_id, target)
            if self._task_automation:
                self._tasks.generate_for_status(shipment, actor_id)

        return shipment, current

    def _compare_and_swap(
        self,
        shipment: Shipment,
        read_status: ShipmentStatus,
        read_version: int,
        target: ShipmentStatus,
        values: dict[str, Any],
        actor_id: UUID,
        now: datetime,
    ) -> None:
        """
        Conditional status write.

        The UPDATE matches only while the row still holds the status and
        version read at load time and is not soft-deleted.

        Raises:
            ConcurrentModificationError: no row matched.
        """
        result = self._session.execute(
            update(Shipment)
            .where(
                Shipment.id == shipment.id,
                Shipment.current_status == read_status.value,
                Shipment.version == read_version,
                Shipment.deleted_at.is_(None),
            )
            .values(
                current_status=target.value,
                version=Shipment.version + 1,
                updated_at=now,
                updated_by_id=actor_id,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "transition_cas_conflict",
                extra={"expected_status": read_status.value, "target_status": target.value},
            )
            raise ConcurrentModificationError(str(shipment.id), read_status.value)
