"""ORM models for the shipment kernel."""

from shipment_kernel.models.shipment import Shipment
from shipment_kernel.models.status_history import StatusHistoryEntry
from shipment_kernel.models.task import Task


def import_all_models() -> None:
    """Import every ORM module so Base.metadata knows all tables."""
    import shipment_kernel.models.shipment  # noqa: F401
    import shipment_kernel.models.status_history  # noqa: F401
    import shipment_kernel.models.task  # noqa: F401
    import shipment_kernel.services.sequence_service  # noqa: F401


__all__ = [
    "Shipment",
    "StatusHistoryEntry",
    "Task",
    "import_all_models",
]
