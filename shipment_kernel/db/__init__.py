"""Database layer - engine, base classes, types, and immutability listeners."""

from shipment_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from shipment_kernel.db.engine import create_tables, get_engine, get_session
from shipment_kernel.db.types import round_weight, weight_column_type

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "round_weight",
    "weight_column_type",
]
