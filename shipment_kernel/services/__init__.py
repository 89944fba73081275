"""
Imperative shell.

Services take a SQLAlchemy ``Session`` and flush; only the
ShipmentLifecycleCoordinator (with ``auto_commit``) commits.
"""

from shipment_kernel.services.history_service import StatusHistoryService
from shipment_kernel.services.lifecycle_coordinator import ShipmentLifecycleCoordinator
from shipment_kernel.services.sequence_service import SequenceService
from shipment_kernel.services.shipment_service import ShipmentService
from shipment_kernel.services.task_service import TaskService

__all__ = [
    "SequenceService",
    "ShipmentLifecycleCoordinator",
    "ShipmentService",
    "StatusHistoryService",
    "TaskService",
]
