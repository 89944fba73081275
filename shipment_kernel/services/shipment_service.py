"""
ShipmentService -- shipment records outside of status transitions.

Responsibility:
    Creates shipments (status ``quoted`` with exactly one history entry),
    records waybills / references / cost confirmations, and applies the
    soft-delete tombstone.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  Status changes
    after creation belong to ShipmentLifecycleCoordinator.

Invariants enforced:
    - A new shipment starts in ``quoted`` with one history entry
      ("Shipment created") written in the same transaction.
    - chargeable_weight = max(actual, volumetric) whenever dimensions are
      supplied; dimensions are validated before they reach the calculator.
    - Shipment numbers come from a per-service-type locked sequence;
      values already taken by an explicit number are skipped.
    - The tombstone is permanent.  A soft-deleted shipment keeps its
      history and never transitions again.

Failure modes:
    - InvalidDimensionsError on bad dimensions.
    - ShipmentAlreadyExistsError on a duplicate explicit shipment number.
    - ShipmentNotFoundError.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from shipment_kernel.domain.clock import Clock
from shipment_kernel.domain.dtos import ShipmentDTO
from shipment_kernel.domain.status_graph import DEFAULT_STATUS_GRAPH, StatusGraph
from shipment_kernel.domain.task_policy import TaskPolicyEngine
from shipment_kernel.domain.values import (
    Address,
    Dimensions,
    ServiceType,
    ShipmentPriority,
    ShipmentStatus,
    validate_dimensions,
)
from shipment_kernel.domain.weight import chargeable_weight
from shipment_kernel.exceptions import (
    ShipmentAlreadyExistsError,
    ShipmentNotFoundError,
)
from shipment_kernel.logging_config import get_logger
from shipment_kernel.models.shipment import Shipment
from shipment_kernel.services.base import BaseService
from shipment_kernel.services.history_service import StatusHistoryService
from shipment_kernel.services.sequence_service import SequenceService
from shipment_kernel.services.task_service import TaskService

logger = get_logger("services.shipment")

DEFAULT_SLA_WARNING_MINUTES = 15


def format_shipment_number(service_type: ServiceType, sequence: int) -> str:
    return f"{ServiceType(service_type).value}-{sequence:06d}"


def dimension_columns(dims: Dimensions) -> dict[str, Any]:
    """Validated dimensions flattened to Shipment column values."""
    validate_dimensions(dims)
    return {
        "length": dims.length,
        "width": dims.width,
        "height": dims.height,
        "weight": dims.weight,
        "dimension_unit": dims.unit.value,
        "weight_unit": dims.weight_unit.value,
        "chargeable_weight": chargeable_weight(dims),
    }


def _address(value: Address | Mapping[str, Any] | None) -> dict | None:
    if value is None:
        return None
    if isinstance(value, Address):
        return value.to_dict()
    return Address.from_payload(value).to_dict()


class ShipmentService(BaseService[Shipment]):
    """
    Shipment record service.

    Contract:
        Flushes within the caller's transaction; never commits.

    Non-goals:
        - Does NOT change current_status after creation.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: TaskPolicyEngine | None = None,
        graph: StatusGraph = DEFAULT_STATUS_GRAPH,
        default_sla_warning_minutes: int = DEFAULT_SLA_WARNING_MINUTES,
        task_automation: bool = True,
    ):
        super().__init__(session, clock)
        self._sequences = SequenceService(session)
        self._history = StatusHistoryService(session, self.clock)
        self._tasks = TaskService(session, self.clock, policy, graph)
        self._default_warning = default_sla_warning_minutes
        self._task_automation = task_automation

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self, shipment_id: UUID) -> Shipment:
        shipment = self.session.execute(
            select(Shipment)
            .where(Shipment.id == shipment_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if shipment is None or shipment.is_deleted:
            raise ShipmentNotFoundError(str(shipment_id))
        return shipment

    def _number_taken(self, shipment_number: str) -> bool:
        return self.session.execute(
            select(Shipment.id).where(Shipment.shipment_number == shipment_number)
        ).first() is not None

    def _allocate_number(self, service: ServiceType) -> str:
        """Next free sequence-backed number; skips explicitly claimed values."""
        sequence_name = SequenceService.shipment_number_sequence(service)
        while True:
            candidate = format_shipment_number(service, self._sequences.next_value(sequence_name))
            if not self._number_taken(candidate):
                return candidate
            logger.info(
                "shipment_number_skipped",
                extra={"shipment_number": candidate, "service_type": service.value},
            )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_shipment(
        self,
        service_type: ServiceType | str,
        actor_id: UUID,
        priority: ShipmentPriority | str = ShipmentPriority.STANDARD,
        dimensions: Dimensions | None = None,
        origin: Address | Mapping[str, Any] | None = None,
        destination: Address | Mapping[str, Any] | None = None,
        sla_deadline: datetime | None = None,
        sla_warning_minutes: int | None = None,
        customer_reference: str | None = None,
        hawb: str | None = None,
        mawb: str | None = None,
        courier_id: UUID | None = None,
        employee_id: UUID | None = None,
        partner_id: UUID | None = None,
        shipment_number: str | None = None,
    ) -> ShipmentDTO:
        """
        Create a shipment in status ``quoted``.

        Postconditions:
            - One StatusHistoryEntry (quoted, "Shipment created").
            - The first automatic task, when task automation is enabled.

        Raises:
            InvalidDimensionsError: dimensions fail validation.
            ShipmentAlreadyExistsError: explicit shipment_number in use.
        """
        service = ServiceType(service_type)
        now = self.clock.now()

        dims = dimension_columns(dimensions) if dimensions is not None else {}

        if shipment_number is not None:
            if self._number_taken(shipment_number):
                raise ShipmentAlreadyExistsError(shipment_number)
        else:
            shipment_number = self._allocate_number(service)

        warning = self._default_warning if sla_warning_minutes is None else sla_warning_minutes
        if warning < 0:
            raise ValueError("sla_warning_minutes must not be negative")

        shipment = Shipment(
            shipment_number=shipment_number,
            service_type=service.value,
            current_status=ShipmentStatus.QUOTED.value,
            priority=ShipmentPriority(priority).value,
            version=1,
            origin=_address(origin),
            destination=_address(destination),
            sla_deadline=sla_deadline,
            sla_warning_minutes=warning,
            customer_reference=customer_reference,
            hawb=hawb,
            mawb=mawb,
            customs_costs_confirmed=False,
            excess_baggage_confirmed=False,
            courier_id=courier_id,
            employee_id=employee_id,
            partner_id=partner_id,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
            **dims,
        )
        self.session.add(shipment)
        self.session.flush()

        self._history.append(
            shipment_id=shipment.id,
            sequence=shipment.version,
            status=ShipmentStatus.QUOTED,
            actor_id=actor_id,
            notes="Shipment created",
        )
        if self._task_automation:
            self._tasks.generate_for_status(shipment, actor_id)

        logger.info(
            "shipment_created",
            extra={
                "shipment_id": str(shipment.id),
                "shipment_number": shipment.shipment_number,
                "service_type": service.value,
                "chargeable_weight": shipment.chargeable_weight,
            },
        )
        return shipment.to_dto()

    # ------------------------------------------------------------------
    # Record updates
    # ------------------------------------------------------------------

    def record_documents(
        self,
        shipment_id: UUID,
        actor_id: UUID,
        customer_reference: str | None = None,
        hawb: str | None = None,
        mawb: str | None = None,
        customs_costs_confirmed: bool | None = None,
        excess_baggage_confirmed: bool | None = None,
        pod_received: bool | None = None,
    ) -> ShipmentDTO:
        """
        Record waybills, reference, cost confirmations and proof of delivery.

        Only arguments that are not None are written.  Status is untouched.
        """
        shipment = self._load(shipment_id)
        changes = {
            "customer_reference": customer_reference,
            "hawb": hawb,
            "mawb": mawb,
            "customs_costs_confirmed": customs_costs_confirmed,
            "excess_baggage_confirmed": excess_baggage_confirmed,
            "pod_received": pod_received,
        }
        applied = {k: v for k, v in changes.items() if v is not None}
        for key, value in applied.items():
            setattr(shipment, key, value)
        shipment.updated_at = self.clock.now()
        shipment.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "shipment_documents_recorded",
            extra={"shipment_id": str(shipment.id), "fields": sorted(applied)},
        )
        return shipment.to_dto()

    # ------------------------------------------------------------------
    # Tombstone
    # ------------------------------------------------------------------

    def soft_delete(self, shipment_id: UUID, actor_id: UUID) -> ShipmentDTO:
        """
        Set the tombstone and cancel open tasks.  History stays readable.

        Raises:
            ShipmentNotFoundError: missing or already deleted.
        """
        shipment = self._load(shipment_id)
        now = self.clock.now()
        shipment.deleted_at = now
        shipment.deleted_by_id = actor_id
        shipment.updated_at = now
        shipment.updated_by_id = actor_id
        self.session.flush()
        cancelled = self._tasks.cancel_open_tasks(shipment.id, actor_id, "Shipment deleted")
        logger.info(
            "shipment_soft_deleted",
            extra={"shipment_id": str(shipment.id), "tasks_cancelled": cancelled},
        )
        return shipment.to_dto()

