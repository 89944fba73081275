"""
Module: shipment_kernel.models.shipment
Responsibility: ORM persistence for the shipment record -- identity, service
    type, lifecycle status, dimensions, SLA, waybills and the soft-delete
    tombstone.
Architecture position: Kernel > Models.  May import from db/ and domain/values.

Invariants enforced:
    - current_status is written only by ShipmentService (insert, always
      ``quoted``) and by the coordinator's compare-and-swap UPDATE.  ORM
      attribute changes to current_status are rejected by
      db/immutability.py.
    - version increases by one on every committed status change.
    - Rows are never hard-deleted; deleted_at is the tombstone.

Failure modes:
    - IntegrityError on duplicate shipment_number (uq_shipment_number).
    - ImmutabilityViolationError on ORM status assignment or DELETE.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shipment_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from shipment_kernel.db.types import weight_column_type
from shipment_kernel.domain.values import (
    Address,
    Dimensions,
    ServiceType,
    ShipmentPriority,
    ShipmentStatus,
)


class Shipment(TrackedBase):
    """
    A courier shipment moving from quote to invoice.

    Contract:
        Mutated through ShipmentService (create, documents, soft delete) and ShipmentLifecycleCoordinator (status).  Callers outside
        the kernel receive ShipmentDTO snapshots.

    Guarantees:
        - shipment_number is unique.
        - chargeable_weight is max(actual, volumetric) for the stored
          dimensions whenever dimensions are present.
    """

    __tablename__ = "shipments"

    __table_args__ = (
        UniqueConstraint("shipment_number", name="uq_shipment_number"),
        Index("idx_shipment_status", "current_status"),
        Index("idx_shipment_deleted", "deleted_at"),
        Index("idx_shipment_sla", "sla_deadline"),
    )

    # Business identifier, e.g. "OBC-000042"
    shipment_number: Mapped[str] = mapped_column(String(20), nullable=False)

    service_type: Mapped[str] = mapped_column(String(3), nullable=False)

    current_status: Mapped[str] = mapped_column(
        String(20),
        default=ShipmentStatus.QUOTED.value,
        nullable=False,
    )

    priority: Mapped[str] = mapped_column(
        String(20),
        default=ShipmentPriority.STANDARD.value,
        nullable=False,
    )

    # Compare-and-swap counter
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Dimensions as supplied (unit / weight_unit give the scale)
    length: Mapped[Decimal | None] = mapped_column(weight_column_type(), nullable=True)
    width: Mapped[Decimal | None] = mapped_column(weight_column_type(), nullable=True)
    height: Mapped[Decimal | None] = mapped_column(weight_column_type(), nullable=True)
    weight: Mapped[Decimal | None] = mapped_column(weight_column_type(), nullable=True)
    dimension_unit: Mapped[str | None] = mapped_column(String(8), nullable=True)
    weight_unit: Mapped[str | None] = mapped_column(String(4), nullable=True)

    # Derived: kilograms
    chargeable_weight: Mapped[Decimal | None] = mapped_column(
        weight_column_type(), nullable=True
    )

    origin: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    destination: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    sla_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    sla_warning_minutes: Mapped[int] = mapped_column(Integer, default=15, nullable=False)

    customer_reference: Mapped[str | None] = mapped_column(String(50), nullable=True)
    hawb: Mapped[str | None] = mapped_column(String(50), nullable=True)
    mawb: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customs_costs_confirmed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    excess_baggage_confirmed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    pod_received: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Assignment references (opaque)
    courier_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    employee_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    partner_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Lifecycle timestamps
    pickup_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Tombstone
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    deleted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<Shipment {self.shipment_number}: {self.current_status}>"

    @property
    def status(self) -> ShipmentStatus:
        return ShipmentStatus(self.current_status)

    @property
    def service(self) -> ServiceType:
        return ServiceType(self.service_type)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def dimensions(self) -> Dimensions | None:
        if self.length is None or self.width is None or self.height is None or self.weight is None:
            return None
        return Dimensions(
            length=self.length,
            width=self.width,
            height=self.height,
            weight=self.weight,
            unit=self.dimension_unit or "cm",
            weight_unit=self.weight_unit or "kg",
        )

    @property
    def origin_address(self) -> Address | None:
        return Address.from_payload(self.origin) if self.origin else None

    @property
    def destination_address(self) -> Address | None:
        return Address.from_payload(self.destination) if self.destination else None

    def recorded_policy_fields(self) -> dict:
        """Values already on record that satisfy task policy requirements."""
        return {
            "customer_reference": self.customer_reference,
            "hawb": self.hawb,
            "mawb": self.mawb,
            "customs_costs_confirmed": bool(self.customs_costs_confirmed),
            "excess_baggage_confirmed": bool(self.excess_baggage_confirmed),
            "pod_received": bool(self.pod_received),
        }

    def to_dto(self) -> "ShipmentDTO":
        """Convert ORM model to frozen domain DTO."""
        from shipment_kernel.domain.dtos import ShipmentDTO

        return ShipmentDTO(
            id=self.id,
            shipment_number=self.shipment_number,
            service_type=ServiceType(self.service_type),
            current_status=ShipmentStatus(self.current_status),
            priority=ShipmentPriority(self.priority),
            version=self.version,
            sla_deadline=self.sla_deadline,
            sla_warning_minutes=self.sla_warning_minutes,
            created_at=self.created_at,
            updated_at=self.updated_at,
            dimensions=self.dimensions,
            chargeable_weight=self.chargeable_weight,
            origin=self.origin_address,
            destination=self.destination_address,
            customer_reference=self.customer_reference,
            hawb=self.hawb,
            mawb=self.mawb,
            customs_costs_confirmed=bool(self.customs_costs_confirmed),
            excess_baggage_confirmed=bool(self.excess_baggage_confirmed),
            pod_received=bool(self.pod_received),
            courier_id=self.courier_id,
            employee_id=self.employee_id,
            partner_id=self.partner_id,
            pickup_at=self.pickup_at,
            delivered_at=self.delivered_at,
            completed_at=self.completed_at,
            deleted_at=self.deleted_at,
            deleted_by_id=self.deleted_by_id,
        )
