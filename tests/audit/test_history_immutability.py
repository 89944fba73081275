"""
Audit trail protection tests.

Invariants tested:
- Status history entries are never updated or deleted through the ORM.
- Shipments are never hard-deleted, and a tombstone is never cleared.
- current_status cannot be assigned through the ORM; only the
  coordinator's conditional write changes it.
- Status write and history entry commit together or not at all.
- History sequence is the per-shipment version; shipments share no
  history counter.
- Initializing an engine registers the listeners, with no extra call.
"""

import pytest
from sqlalchemy import event, select
from sqlalchemy.exc import IntegrityError

from shipment_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from shipment_kernel.db.immutability import (
    _LISTENERS,
    _models,
    unregister_immutability_listeners,
)
from shipment_kernel.domain.values import ServiceType, ShipmentStatus as S
from shipment_kernel.exceptions import ImmutabilityViolationError
from shipment_kernel.models.shipment import Shipment
from shipment_kernel.models.status_history import StatusHistoryEntry
from shipment_kernel.services.history_service import StatusHistoryService
from shipment_kernel.services.sequence_service import SequenceService
from shipment_kernel.services.shipment_service import ShipmentService


def _first_entry(session, shipment_id):
    return session.execute(
        select(StatusHistoryEntry)
        .where(StatusHistoryEntry.shipment_id == shipment_id)
        .order_by(StatusHistoryEntry.sequence)
    ).scalars().first()


class TestHistoryEntries:

    def test_update_blocked(self, session, create_shipment):
        shipment = create_shipment(ServiceType.OBC)
        entry = _first_entry(session, shipment.id)
        entry.notes = "rewritten"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StatusHistoryEntry"
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"

    def test_delete_blocked(self, session, create_shipment):
        shipment = create_shipment(ServiceType.OBC)
        session.delete(_first_entry(session, shipment.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_violation_logged(self, session, create_shipment, captured_logs):
        shipment = create_shipment(ServiceType.OBC)
        session.delete(_first_entry(session, shipment.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["operation"] == "DELETE"


class TestShipmentRow:

    def test_hard_delete_blocked(self, session, create_shipment):
        shipment = create_shipment(ServiceType.OBC)
        session.delete(session.get(Shipment, shipment.id))
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Shipment"

    def test_status_assignment_blocked(self, session, create_shipment):
        shipment = create_shipment(ServiceType.OBC)
        row = session.get(Shipment, shipment.id)
        row.current_status = S.INVOICED.value
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_tombstone_cannot_be_cleared(
        self, session, create_shipment, shipment_service, test_actor_id,
    ):
        shipment = create_shipment(ServiceType.OBC)
        shipment_service.soft_delete(shipment.id, test_actor_id)
        session.commit()

        row = session.get(Shipment, shipment.id)
        row.deleted_at = None
        row.deleted_by_id = None
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert "restored" in exc_info.value.reason

    def test_other_columns_may_change(self, session, create_shipment):
        shipment = create_shipment(ServiceType.OBC)
        row = session.get(Shipment, shipment.id)
        row.customer_reference = "PO-2"
        session.flush()
        assert row.customer_reference == "PO-2"


class TestAtomicity:

    def test_history_failure_rolls_back_status(
        self, create_shipment, coordinator, selector, test_actor_id, monkeypatch,
    ):
        shipment = create_shipment(ServiceType.OBC)

        def _fail(**kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(coordinator._history, "append", _fail)
        with pytest.raises(RuntimeError):
            coordinator.request_transition(shipment.id, S.BOOKED, actor_id=test_actor_id)

        current = selector.get(shipment.id)
        assert current.current_status is S.QUOTED
        assert current.version == 1
        assert [h.status for h in selector.history(shipment.id)] == [S.QUOTED]

    def test_history_entry_per_committed_transition(
        self, create_shipment, advance_to, selector,
    ):
        shipment = create_shipment(ServiceType.NFO)
        final = advance_to(shipment.id, S.BOOKED, S.PICKUP, S.IN_TRANSIT)
        history = selector.history(shipment.id)
        assert len(history) == final.version
        assert history[-1].status is final.current_status


class TestHistorySequence:

    def test_sequence_follows_each_shipments_version(
        self, create_shipment, coordinator, selector, test_actor_id,
    ):
        first = create_shipment(ServiceType.OBC)
        second = create_shipment(ServiceType.NFO)
        for status in (S.BOOKED, S.PICKUP):
            coordinator.request_transition(first.id, status, actor_id=test_actor_id)
            coordinator.request_transition(second.id, status, actor_id=test_actor_id)

        for shipment_id in (first.id, second.id):
            history = selector.history(shipment_id)
            assert [h.sequence for h in history] == [1, 2, 3]
            assert history[-1].sequence == selector.get(shipment_id).version

    def test_no_global_history_counter(self, session, create_shipment, advance_to):
        shipment = create_shipment(ServiceType.OBC)
        advance_to(shipment.id, S.BOOKED, S.PICKUP)
        assert SequenceService(session).current_value("status_history") is None

    def test_duplicate_sequence_rejected(
        self, session, create_shipment, deterministic_clock, test_actor_id,
    ):
        shipment = create_shipment(ServiceType.OBC)
        history = StatusHistoryService(session, deterministic_clock)
        with pytest.raises(IntegrityError):
            history.append(
                shipment_id=shipment.id, sequence=1, status=S.BOOKED, actor_id=test_actor_id,
            )
        session.rollback()


class TestListenerRegistration:
    """Runs without the db_engine fixture."""

    def test_engine_init_registers_listeners(self):
        unregister_immutability_listeners()
        models = _models()
        assert not any(event.contains(models[m], e, fn) for m, e, fn in _LISTENERS)

        init_engine_from_url("sqlite://")
        try:
            assert all(event.contains(models[m], e, fn) for m, e, fn in _LISTENERS)
        finally:
            reset_engine()

    def test_history_protected_outside_test_fixtures(self, test_actor_id):
        unregister_immutability_listeners()
        init_engine_from_url("sqlite://")
        create_tables()
        session = get_session()
        try:
            shipment = ShipmentService(session).create_shipment(ServiceType.OBC, test_actor_id)
            session.commit()
            session.delete(_first_entry(session, shipment.id))
            with pytest.raises(ImmutabilityViolationError):
                session.flush()
        finally:
            session.rollback()
            session.close()
            reset_engine()
