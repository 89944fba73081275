"""
Lifecycle Invariants Contract.

These invariants are structural law for the shipment lifecycle. No
``ShipmentConfig`` toggle may override them; configuration decides which
payload fields a task completion needs, never whether a transition is
legal or whether history is written.

This module exists solely to declare the invariants explicitly. The
enforcement is distributed across StatusGraph, ShipmentLifecycleCoordinator,
and the ORM immutability listeners.
"""

from enum import Enum, unique


@unique
class LifecycleInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    REACHABLE_STATUS = "reachable_status"
    """``current_status`` is always reachable from ``quoted`` via graph
    edges. Enforced by StatusGraph validation at construction and by the
    coordinator being the only writer of ``current_status``."""

    ATOMIC_HISTORY = "atomic_history"
    """Every status change produces exactly one StatusHistoryEntry in the
    same transaction as the status write."""

    HISTORY_IMMUTABILITY = "history_immutability"
    """History entries are append-only. Enforced by ORM listeners
    (shipment_kernel.db.immutability)."""

    TERMINAL_IRREVERSIBILITY = "terminal_irreversibility"
    """``invoiced`` and ``cancelled`` have no outgoing edges."""

    CHARGEABLE_WEIGHT = "chargeable_weight"
    """``chargeable_weight = max(actual_kg, volumetric_kg)``, recomputed
    whenever dimensions are supplied."""

    COMPARE_AND_SWAP = "compare_and_swap"
    """A status write succeeds only if the stored status and version still
    equal the values read at the start of the request."""

    TOMBSTONE = "tombstone"
    """Soft-deleted shipments accept no transitions, ever; their history
    stays readable.  The tombstone cannot be cleared."""

    SEQUENCE_MONOTONICITY = "sequence_monotonicity"
    """A shipment's history sequence numbers are strictly monotonic and
    reflect commit order.  The sequence is the version produced by the
    compare-and-swap, so no lock is shared between shipments."""


ALL_LIFECYCLE_INVARIANTS: frozenset[LifecycleInvariant] = frozenset(LifecycleInvariant)

# The kernel package may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "shipment_config",
)
