"""
Pytest fixtures for the shipment kernel test suite.

Provides:
- Structured logging configuration and log capture
- A fresh database per test (in-memory SQLite unless DATABASE_URL is set)
- Deterministic clock, actor id, and service / coordinator factories

Environment Variables:
- DATABASE_URL: SQLAlchemy URL for the test database.  Defaults to an
  in-memory SQLite database.  A PostgreSQL URL needs the ``postgres`` extra.
"""

import json
import logging
import os
from datetime import datetime, timedelta
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from shipment_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from shipment_kernel.domain.clock import DeterministicClock
from shipment_kernel.domain.task_policy import TaskPolicyConfig, TaskPolicyEngine
from shipment_kernel.domain.values import ServiceType, ShipmentStatus
from shipment_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from shipment_kernel.selectors.shipment_selector import ShipmentSelector
from shipment_kernel.services.lifecycle_coordinator import ShipmentLifecycleCoordinator
from shipment_kernel.services.shipment_service import ShipmentService
from shipment_kernel.services.task_service import TaskService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite://"

# Payload fields that satisfy every default policy rule
FULL_PAYLOAD = {
    "customer_reference": "PO-4711",
    "hawb": "HAWB-001",
    "mawb": "176-12345675",
    "customs_costs_confirmed": True,
    "excess_baggage_confirmed": True,
}


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture shipment_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, coordinator):
            coordinator.request_transition(...)
            logs = captured_logs()
            assert any(r["message"] == "transition_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("shipment_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


@pytest.fixture(scope="function")
def db_engine():
    """A freshly created schema per test."""
    engine = init_engine_from_url(get_database_url())
    drop_tables()
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture(scope="function")
def session(db_engine) -> Generator[Session, None, None]:
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Clock / identity fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock (2024-01-01 12:00 UTC)."""
    return DeterministicClock()


@pytest.fixture
def sla_deadline(deterministic_clock) -> datetime:
    """A deadline three days after the clock's start time."""
    return deterministic_clock.now() + timedelta(days=3)


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def full_payload() -> dict:
    """A task-completion payload satisfying every default policy rule."""
    return dict(FULL_PAYLOAD)


@pytest.fixture
def policy() -> TaskPolicyEngine:
    return TaskPolicyEngine(TaskPolicyConfig())


@pytest.fixture
def shipment_service(session, deterministic_clock, policy) -> ShipmentService:
    return ShipmentService(session, deterministic_clock, policy)


@pytest.fixture
def task_service(session, deterministic_clock, policy) -> TaskService:
    return TaskService(session, deterministic_clock, policy)


@pytest.fixture
def coordinator(session, deterministic_clock, policy) -> ShipmentLifecycleCoordinator:
    return ShipmentLifecycleCoordinator(session, deterministic_clock, policy)


@pytest.fixture
def selector(session) -> ShipmentSelector:
    return ShipmentSelector(session)


@pytest.fixture
def create_shipment(session, shipment_service, test_actor_id):
    """
    Factory creating a committed shipment.

    Usage::

        shipment = create_shipment(ServiceType.NFO, hawb="H1")
    """

    def _create(service_type: ServiceType | str = ServiceType.OBC, **kwargs):
        dto = shipment_service.create_shipment(service_type, test_actor_id, **kwargs)
        session.commit()
        return dto

    return _create


@pytest.fixture
def advance_to(coordinator, test_actor_id):
    """
    Factory walking a shipment along a list of statuses, completing
    the open automatic task at each step with a full payload.

    Returns the final ShipmentDTO.
    """

    def _advance(shipment_id: UUID, *statuses: ShipmentStatus):
        dto = None
        for status in statuses:
            dto = coordinator.request_transition(
                shipment_id,
                status,
                {**FULL_PAYLOAD, "complete_task": True},
                actor_id=test_actor_id,
            )
        return dto

    return _advance
