"""
TaskPolicyEngine -- mandatory payload fields for task completions.

Responsibility:
    Maps (service type, transition context) to the set of payload fields a
    task completion must carry, and validates a payload against that set.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O, side-effect free.
    Constructed with an explicit ``TaskPolicyConfig``; there is no
    module-level mutable configuration.  ``shipment_config`` translates
    YAML validation rules into a TaskPolicyConfig for callers.

Decision table (rows apply cumulatively, in this order):

    condition                                      | required fields
    -----------------------------------------------|------------------------------------
    any task completion (toggle)                   | customer_reference
    NFO, target at or after pickup (toggles)       | hawb, mawb
    OBC, delivered -> document / invoiced (toggle) | customs_costs_confirmed,
                                                   |   excess_baggage_confirmed
    target invoiced (toggle)                       | pod_received

Invariants enforced:
    - ``missing_fields`` returns exactly requiredFields minus the fields
      present in the payload: never a superset, never a subset.
    - Output order is canonical (FIELD_ORDER), so results are deterministic.

Presence rules:
    - Confirmation flags count as present only when the value is ``True``.
    - Text fields count as present when not None and not blank.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from shipment_kernel.domain.status_graph import STATUS_RANK, coerce_status
from shipment_kernel.domain.values import ServiceType, ShipmentStatus
from shipment_kernel.exceptions import ValidationFailedError

CUSTOMER_REFERENCE = "customer_reference"
HAWB = "hawb"
MAWB = "mawb"
CUSTOMS_COSTS_CONFIRMED = "customs_costs_confirmed"
EXCESS_BAGGAGE_CONFIRMED = "excess_baggage_confirmed"
POD_RECEIVED = "pod_received"

FIELD_ORDER: tuple[str, ...] = (
    CUSTOMER_REFERENCE,
    HAWB,
    MAWB,
    CUSTOMS_COSTS_CONFIRMED,
    EXCESS_BAGGAGE_CONFIRMED,
    POD_RECEIVED,
)

CONFIRMATION_FIELDS: frozenset[str] = frozenset({
    CUSTOMS_COSTS_CONFIRMED,
    EXCESS_BAGGAGE_CONFIRMED,
    POD_RECEIVED,
})

_COST_CHECK_TARGETS = frozenset({ShipmentStatus.DOCUMENT, ShipmentStatus.INVOICED})


@dataclass(frozen=True)
class TaskPolicyConfig:
    """Feature toggles for the decision table."""

    require_customer_reference: bool = False
    require_hawb_for_nfo: bool = True
    require_mawb_for_nfo: bool = True
    require_cost_confirmations: bool = True
    require_pod_before_invoice: bool = False


@dataclass(frozen=True)
class TaskContext:
    """
    The transition a task completion drives.

    ``from_status`` may be None when only the target is known; rules that
    depend on the source status then apply on the target alone.
    """

    to_status: ShipmentStatus
    from_status: ShipmentStatus | None = None

    def __post_init__(self) -> None:
        to_status = coerce_status(self.to_status)
        if to_status is None:
            raise ValueError(f"Unknown status: {self.to_status!r}")
        object.__setattr__(self, "to_status", to_status)
        if self.from_status is not None:
            from_status = coerce_status(self.from_status)
            if from_status is None:
                raise ValueError(f"Unknown status: {self.from_status!r}")
            object.__setattr__(self, "from_status", from_status)

    @classmethod
    def of(cls, context: TaskContext | ShipmentStatus | str) -> TaskContext:
        if isinstance(context, TaskContext):
            return context
        return cls(to_status=context)


def is_present(field_name: str, payload: Mapping[str, Any]) -> bool:
    value = payload.get(field_name)
    if field_name in CONFIRMATION_FIELDS:
        return value is True
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


class TaskPolicyEngine:
    """
    Decision table for task-completion payload requirements.

    Contract:
        Pure functions of (config, service type, context, payload).

    Guarantees:
        - ``required_fields`` depends only on config, service type and context.
        - ``missing_fields`` is exactly ``required_fields`` minus present fields.
        - ``validate`` raises ValidationFailedError iff ``missing_fields`` is
          non-empty.

    Non-goals:
        - Does NOT decide whether a payload implies a task completion; the
          coordinator does.
        - Does NOT look at stored shipment data; callers merge recorded
          values into the payload first.
    """

    def __init__(self, config: TaskPolicyConfig | None = None):
        self._config = config or TaskPolicyConfig()

    @property
    def config(self) -> TaskPolicyConfig:
        return self._config

    def required_fields(
        self,
        service_type: ServiceType | str,
        context: TaskContext | ShipmentStatus | str,
    ) -> frozenset[str]:
        return frozenset(self._ordered_required(ServiceType(service_type), TaskContext.of(context)))

    def _ordered_required(
        self,
        service_type: ServiceType,
        ctx: TaskContext,
    ) -> list[str]:
        cfg = self._config
        required: list[str] = []

        if cfg.require_customer_reference:
            required.append(CUSTOMER_REFERENCE)

        if service_type == ServiceType.NFO:
            rank = STATUS_RANK.get(ctx.to_status)
            if rank is not None and rank >= STATUS_RANK[ShipmentStatus.PICKUP]:
                if cfg.require_hawb_for_nfo:
                    required.append(HAWB)
                if cfg.require_mawb_for_nfo:
                    required.append(MAWB)

        if (
            service_type == ServiceType.OBC
            and cfg.require_cost_confirmations
            and ctx.to_status in _COST_CHECK_TARGETS
            and ctx.from_status in (None, ShipmentStatus.DELIVERED)
        ):
            required.append(CUSTOMS_COSTS_CONFIRMED)
            required.append(EXCESS_BAGGAGE_CONFIRMED)

        if cfg.require_pod_before_invoice and ctx.to_status == ShipmentStatus.INVOICED:
            required.append(POD_RECEIVED)

        return required

    def missing_fields(
        self,
        service_type: ServiceType | str,
        context: TaskContext | ShipmentStatus | str,
        payload: Mapping[str, Any] | None,
    ) -> tuple[str, ...]:
        """Required fields absent from ``payload``, in FIELD_ORDER."""
        data = payload or {}
        required = set(self._ordered_required(ServiceType(service_type), TaskContext.of(context)))
        return tuple(f for f in FIELD_ORDER if f in required and not is_present(f, data))

    def validate(
        self,
        service_type: ServiceType | str,
        context: TaskContext | ShipmentStatus | str,
        payload: Mapping[str, Any] | None,
    ) -> None:
        """
        Raise ValidationFailedError listing every missing field.

        Raises:
            ValidationFailedError: missing_fields is exactly the absent set.
        """
        missing = self.missing_fields(service_type, context, payload)
        if missing:
            ctx = TaskContext.of(context)
            raise ValidationFailedError(
                missing,
                service_type=ServiceType(service_type).value,
                to_status=ctx.to_status.value,
            )
