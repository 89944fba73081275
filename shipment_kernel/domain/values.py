"""
Values -- Immutable, self-validating shipment value objects and enums.

Responsibility:
    Provides the vocabulary shared by every layer: service types, shipment
    and task statuses, priorities, measurement units, and the Dimensions,
    Address and StatusMetadata value objects.  Also hosts the upstream
    dimension validation that guards the WeightCalculator preconditions.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module, by models and by services.

Invariants enforced:
    - Dimension and weight values are always Decimal (never float).
    - validate_dimensions() rejects negative, non-finite and oversized
      values before they reach the WeightCalculator.

Failure modes:
    - ValueError on construction with non-numeric values or unknown units.
    - InvalidDimensionsError from validate_dimensions().
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from shipment_kernel.exceptions import InvalidDimensionsError


class ServiceType(str, Enum):
    """Courier service types."""

    OBC = "OBC"  # On-Board Courier
    NFO = "NFO"  # Next-Flight-Out


class ShipmentStatus(str, Enum):
    """Shipment lifecycle states."""

    QUOTED = "quoted"
    BOOKED = "booked"
    PICKUP = "pickup"
    IN_TRANSIT = "in_transit"
    CUSTOMS = "customs"
    DELIVERED = "delivered"
    DOCUMENT = "document"
    INVOICED = "invoiced"
    CANCELLED = "cancelled"


class ShipmentPriority(str, Enum):
    STANDARD = "standard"
    URGENT = "urgent"
    CRITICAL = "critical"


class TaskKind(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


OPEN_TASK_STATUSES: frozenset[TaskStatus] = frozenset({
    TaskStatus.PENDING,
    TaskStatus.IN_PROGRESS,
})


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


TASK_PRIORITY_RANK: dict[TaskPriority, int] = {
    TaskPriority.LOW: 0,
    TaskPriority.MEDIUM: 1,
    TaskPriority.HIGH: 2,
    TaskPriority.CRITICAL: 3,
}


class DimensionUnit(str, Enum):
    CM = "cm"
    INCH = "inch"


class WeightUnit(str, Enum):
    KG = "kg"
    LB = "lb"


# Upstream validation limits
MAX_DIMENSION_VALUE = Decimal("10000")
MAX_WEIGHT_VALUE = Decimal("1000")
MAX_FLIGHT_NUMBER_LENGTH = 10


def _to_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid {field_name}: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid {field_name}: {value!r}") from e


@dataclass(frozen=True, slots=True)
class Dimensions:
    """
    Physical dimensions and actual weight of a shipment.

    Contract:
        Numeric values are coerced to Decimal on construction; units are
        coerced to their enums.  Range checks are NOT performed here (see
        validate_dimensions) so that the WeightCalculator can document its
        preconditions separately from enforcement.

    Guarantees:
        - Immutable and hashable.
        - length/width/height/weight are Decimal.
    """

    length: Decimal
    width: Decimal
    height: Decimal
    weight: Decimal
    unit: DimensionUnit = DimensionUnit.CM
    weight_unit: WeightUnit = WeightUnit.KG

    def __post_init__(self) -> None:
        for name in ("length", "width", "height", "weight"):
            object.__setattr__(self, name, _to_decimal(getattr(self, name), name))
        object.__setattr__(self, "unit", DimensionUnit(self.unit))
        object.__setattr__(self, "weight_unit", WeightUnit(self.weight_unit))

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> Dimensions:
        """
        Build Dimensions from a payload mapping.

        Raises:
            InvalidDimensionsError: if keys are missing or values are not
                numeric / units unknown.
        """
        missing = [k for k in ("length", "width", "height", "weight") if k not in data]
        if missing:
            raise InvalidDimensionsError([f"missing {k}" for k in missing])
        try:
            return cls(
                length=data["length"],
                width=data["width"],
                height=data["height"],
                weight=data["weight"],
                unit=data.get("unit", DimensionUnit.CM),
                weight_unit=data.get("weight_unit", WeightUnit.KG),
            )
        except ValueError as e:
            raise InvalidDimensionsError([str(e)]) from e

    def to_dict(self) -> dict[str, Any]:
        return {
            "length": str(self.length),
            "width": str(self.width),
            "height": str(self.height),
            "weight": str(self.weight),
            "unit": self.unit.value,
            "weight_unit": self.weight_unit.value,
        }


def validate_dimensions(dims: Dimensions) -> None:
    """
    Upstream validation for WeightCalculator inputs.

    Every problem is collected so callers can report them together.

    Raises:
        InvalidDimensionsError: if any value is non-finite, negative, or
            above the configured maximum.
    """
    errors: list[str] = []
    for name in ("length", "width", "height"):
        value: Decimal = getattr(dims, name)
        if not value.is_finite():
            errors.append(f"{name} must be finite")
        elif value < 0:
            errors.append(f"{name} must not be negative")
        elif value > MAX_DIMENSION_VALUE:
            errors.append(f"{name} must not exceed {MAX_DIMENSION_VALUE}")
    if not dims.weight.is_finite():
        errors.append("weight must be finite")
    elif dims.weight < 0:
        errors.append("weight must not be negative")
    elif dims.weight > MAX_WEIGHT_VALUE:
        errors.append(f"weight must not exceed {MAX_WEIGHT_VALUE}")
    if errors:
        raise InvalidDimensionsError(errors)


@dataclass(frozen=True, slots=True)
class Address:
    """Origin or destination address."""

    city: str
    country: str
    country_code: str
    street: str | None = None
    postal_code: str | None = None

    def __post_init__(self) -> None:
        if not self.city or not self.country:
            raise ValueError("Address requires city and country")
        if len(self.country_code) != 2:
            raise ValueError(f"Invalid country code: {self.country_code!r}")
        object.__setattr__(self, "country_code", self.country_code.upper())

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> Address:
        return cls(
            city=data["city"],
            country=data["country"],
            country_code=data["country_code"],
            street=data.get("street"),
            postal_code=data.get("postal_code"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "street": self.street,
            "city": self.city,
            "postal_code": self.postal_code,
            "country": self.country,
            "country_code": self.country_code,
        }


@dataclass(frozen=True, slots=True)
class StatusMetadata:
    """Optional metadata attached to a status history entry."""

    flight_number: str | None = None
    estimated_arrival: datetime | None = None
    delay_reason: str | None = None
    pod_received: bool | None = None
    customer_signature: str | None = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> StatusMetadata:
        eta = data.get("estimated_arrival")
        if isinstance(eta, str):
            eta = datetime.fromisoformat(eta)
        return cls(
            flight_number=data.get("flight_number"),
            estimated_arrival=eta,
            delay_reason=data.get("delay_reason"),
            pod_received=data.get("pod_received"),
            customer_signature=data.get("customer_signature"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Non-empty fields only, JSON-safe."""
        out: dict[str, Any] = {}
        if self.flight_number is not None:
            out["flight_number"] = self.flight_number
        if self.estimated_arrival is not None:
            out["estimated_arrival"] = self.estimated_arrival.isoformat()
        if self.delay_reason is not None:
            out["delay_reason"] = self.delay_reason
        if self.pod_received is not None:
            out["pod_received"] = self.pod_received
        if self.customer_signature is not None:
            out["customer_signature"] = self.customer_signature
        return out
