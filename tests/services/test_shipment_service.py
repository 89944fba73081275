"""
ShipmentService tests.

Invariants tested:
- A new shipment starts in quoted with version 1 and exactly one history
  entry ("Shipment created").
- Shipment numbers are <TYPE>-<6 digits>, allocated per service type.
- Chargeable weight is computed from validated dimensions at creation.
- Sequence-backed numbers skip values already claimed explicitly.
- Soft delete keeps history readable and cancels open tasks.  The
  tombstone is permanent: a deleted shipment never transitions again.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from shipment_kernel.db.types import round_weight
from shipment_kernel.domain.values import (
    Address,
    Dimensions,
    DimensionUnit,
    ServiceType,
    ShipmentPriority,
    ShipmentStatus,
    TaskKind,
    TaskStatus,
    WeightUnit,
)
from shipment_kernel.exceptions import (
    InvalidDimensionsError,
    ShipmentAlreadyExistsError,
    ShipmentNotFoundError,
)


# =============================================================================
# Creation
# =============================================================================


class TestCreateShipment:

    def test_initial_state(self, create_shipment, selector, test_actor_id):
        shipment = create_shipment(ServiceType.OBC)

        assert shipment.current_status is ShipmentStatus.QUOTED
        assert shipment.version == 1
        assert shipment.priority is ShipmentPriority.STANDARD
        assert shipment.chargeable_weight is None
        assert not shipment.is_deleted

        history = selector.history(shipment.id)
        assert len(history) == 1
        assert history[0].status is ShipmentStatus.QUOTED
        assert history[0].from_status is None
        assert history[0].notes == "Shipment created"
        assert history[0].recorded_by_id == test_actor_id

    def test_shipment_numbers_per_service_type(self, create_shipment):
        first = create_shipment(ServiceType.OBC)
        second = create_shipment(ServiceType.OBC)
        nfo = create_shipment(ServiceType.NFO)

        assert first.shipment_number == "OBC-000001"
        assert second.shipment_number == "OBC-000002"
        assert nfo.shipment_number == "NFO-000001"

    def test_explicit_shipment_number(self, create_shipment):
        shipment = create_shipment(ServiceType.NFO, shipment_number="NFO-CUSTOM")
        assert shipment.shipment_number == "NFO-CUSTOM"

    def test_auto_number_skips_explicitly_claimed(self, create_shipment, captured_logs):
        create_shipment(ServiceType.OBC, shipment_number="OBC-000002")

        first = create_shipment(ServiceType.OBC)
        second = create_shipment(ServiceType.OBC)

        assert first.shipment_number == "OBC-000001"
        assert second.shipment_number == "OBC-000003"
        skipped = [r for r in captured_logs() if r["message"] == "shipment_number_skipped"]
        assert [r["shipment_number"] for r in skipped] == ["OBC-000002"]

    def test_duplicate_shipment_number_rejected(self, create_shipment):
        create_shipment(ServiceType.OBC, shipment_number="OBC-777")
        with pytest.raises(ShipmentAlreadyExistsError) as exc_info:
            create_shipment(ServiceType.OBC, shipment_number="OBC-777")
        assert exc_info.value.code == "SHIPMENT_ALREADY_EXISTS"

    def test_chargeable_weight_computed(self, create_shipment):
        shipment = create_shipment(
            ServiceType.OBC,
            dimensions=Dimensions(
                length=24, width=16, height=12, weight=15,
                unit=DimensionUnit.INCH, weight_unit=WeightUnit.LB,
            ),
        )
        assert round_weight(shipment.chargeable_weight, 2) == Decimal("12.59")
        assert shipment.dimensions.unit is DimensionUnit.INCH

    def test_invalid_dimensions_rejected(self, shipment_service, test_actor_id):
        with pytest.raises(InvalidDimensionsError):
            shipment_service.create_shipment(
                ServiceType.OBC,
                test_actor_id,
                dimensions=Dimensions(length=-5, width=1, height=1, weight=1),
            )

    def test_addresses_stored(self, create_shipment):
        shipment = create_shipment(
            ServiceType.OBC,
            origin={"city": "Frankfurt", "country": "Germany", "country_code": "DE"},
            destination=Address(city="Chicago", country="USA", country_code="US"),
        )
        assert shipment.origin.city == "Frankfurt"
        assert shipment.destination.country_code == "US"

    def test_first_task_generated(self, create_shipment, selector):
        shipment = create_shipment(ServiceType.OBC)
        tasks = selector.tasks(shipment.id)
        assert len(tasks) == 1
        assert tasks[0].kind is TaskKind.AUTOMATIC
        assert tasks[0].title == "Follow up on quote with customer"
        assert tasks[0].trigger_status is ShipmentStatus.QUOTED

    def test_task_automation_disabled(
        self, session, deterministic_clock, policy, selector, test_actor_id,
    ):
        from shipment_kernel.services.shipment_service import ShipmentService

        service = ShipmentService(session, deterministic_clock, policy, task_automation=False)
        shipment = service.create_shipment(ServiceType.OBC, test_actor_id)
        session.commit()
        assert selector.tasks(shipment.id) == []

    def test_default_sla_warning(self, create_shipment, sla_deadline):
        shipment = create_shipment(ServiceType.OBC, sla_deadline=sla_deadline)
        assert shipment.sla_warning_minutes == 15
        assert shipment.sla_deadline == sla_deadline

    def test_creation_logged(self, create_shipment, captured_logs):
        shipment = create_shipment(ServiceType.NFO)
        records = [r for r in captured_logs() if r["message"] == "shipment_created"]
        assert len(records) == 1
        assert records[0]["shipment_number"] == shipment.shipment_number


# =============================================================================
# Documents
# =============================================================================


class TestRecordDocuments:

    def test_records_only_given_fields(self, create_shipment, shipment_service, test_actor_id):
        shipment = create_shipment(ServiceType.NFO, hawb="H-1")
        updated = shipment_service.record_documents(
            shipment.id, test_actor_id, mawb="M-1", customs_costs_confirmed=True, pod_received=True,
        )
        assert updated.hawb == "H-1"
        assert updated.mawb == "M-1"
        assert updated.customs_costs_confirmed is True
        assert updated.pod_received is True
        assert updated.excess_baggage_confirmed is False
        assert updated.current_status is ShipmentStatus.QUOTED
        assert updated.version == 1

    def test_rejected_on_deleted_shipment(self, create_shipment, shipment_service, test_actor_id):
        shipment = create_shipment(ServiceType.NFO)
        shipment_service.soft_delete(shipment.id, test_actor_id)
        with pytest.raises(ShipmentNotFoundError):
            shipment_service.record_documents(shipment.id, test_actor_id, hawb="H")


# =============================================================================
# Tombstone
# =============================================================================


class TestSoftDelete:

    def test_soft_delete_keeps_history(
        self, session, create_shipment, shipment_service, selector, test_actor_id,
    ):
        shipment = create_shipment(ServiceType.OBC)
        deleted = shipment_service.soft_delete(shipment.id, test_actor_id)
        session.commit()

        assert deleted.is_deleted
        assert deleted.deleted_by_id == test_actor_id
        with pytest.raises(ShipmentNotFoundError):
            selector.get(shipment.id)
        assert selector.get(shipment.id, include_deleted=True).is_deleted
        assert len(selector.history(shipment.id)) == 1

    def test_soft_delete_cancels_open_tasks(
        self, session, create_shipment, shipment_service, selector, test_actor_id,
    ):
        shipment = create_shipment(ServiceType.OBC)
        shipment_service.soft_delete(shipment.id, test_actor_id)
        session.commit()
        tasks = selector.tasks(shipment.id)
        assert [t.status for t in tasks] == [TaskStatus.CANCELLED]

    def test_double_delete_not_found(self, create_shipment, shipment_service, test_actor_id):
        shipment = create_shipment(ServiceType.OBC)
        shipment_service.soft_delete(shipment.id, test_actor_id)
        with pytest.raises(ShipmentNotFoundError):
            shipment_service.soft_delete(shipment.id, test_actor_id)

    def test_missing_shipment(self, shipment_service, test_actor_id):
        with pytest.raises(ShipmentNotFoundError) as exc_info:
            shipment_service.soft_delete(uuid4(), test_actor_id)
        assert exc_info.value.code == "NOT_FOUND"


class TestTombstoneIsPermanent:

    def test_no_restore_operation(self, shipment_service):
        assert not hasattr(shipment_service, "restore")

    def test_deleted_shipment_never_transitions(
        self, session, create_shipment, shipment_service, coordinator, selector, test_actor_id,
    ):
        shipment = create_shipment(ServiceType.OBC)
        shipment_service.soft_delete(shipment.id, test_actor_id)
        session.commit()

        for target in (ShipmentStatus.BOOKED, ShipmentStatus.CANCELLED):
            with pytest.raises(ShipmentNotFoundError):
                coordinator.request_transition(shipment.id, target, actor_id=test_actor_id)

        tombstoned = selector.get(shipment.id, include_deleted=True)
        assert tombstoned.current_status is ShipmentStatus.QUOTED
        assert tombstoned.version == 1
        assert tombstoned.is_deleted
        assert [h.status for h in selector.history(shipment.id)] == [ShipmentStatus.QUOTED]
