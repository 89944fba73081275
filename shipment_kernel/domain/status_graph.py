"""
StatusGraph -- the legal shipment statuses and the transitions between them.

Responsibility:
    Holds the shipment transition table as an explicit adjacency map and
    answers two questions: which statuses may follow a given status, and
    whether a proposed (from, to) pair is a legal edge.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Consumed by ShipmentLifecycleCoordinator (write path), by the task
    generator (main-path lookahead) and by presentation layers through
    ``list_allowed_next_statuses``.

Invariants enforced:
    - Terminal statuses (invoiced, cancelled) have no outgoing edges, so a
      committed transition into either is irreversible.
    - Graph consistency is checked once, at construction: every status has
      an adjacency entry, every edge targets a known status, every status
      is reachable from ``quoted``, and every non-terminal status has at
      least one outgoing edge.  A bad table fails fast at import.

Failure modes:
    - StatusGraphConfigurationError at construction for an inconsistent table.
    - InvalidTransitionError from ``validate`` for any pair absent from the
      table, including unknown status strings.
"""

from __future__ import annotations

from collections import deque
from typing import Mapping

from shipment_kernel.domain.values import ShipmentStatus
from shipment_kernel.exceptions import (
    InvalidTransitionError,
    StatusGraphConfigurationError,
)
from shipment_kernel.logging_config import get_logger

logger = get_logger("domain.status_graph")

S = ShipmentStatus

SHIPMENT_TRANSITIONS: dict[ShipmentStatus, frozenset[ShipmentStatus]] = {
    S.QUOTED: frozenset({S.BOOKED, S.CANCELLED}),
    S.BOOKED: frozenset({S.PICKUP, S.CANCELLED}),
    S.PICKUP: frozenset({S.IN_TRANSIT, S.CANCELLED}),
    S.IN_TRANSIT: frozenset({S.DELIVERED, S.CUSTOMS, S.CANCELLED}),
    # customs is a re-entrant inspection hold
    S.CUSTOMS: frozenset({S.IN_TRANSIT, S.DELIVERED, S.CANCELLED}),
    S.DELIVERED: frozenset({S.DOCUMENT, S.INVOICED}),
    S.DOCUMENT: frozenset({S.INVOICED}),
    S.INVOICED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_SHIPMENT_STATUSES: frozenset[ShipmentStatus] = frozenset({
    S.INVOICED,
    S.CANCELLED,
})

INITIAL_SHIPMENT_STATUS = S.QUOTED

# Forward progress order; cancelled is off the ordered path.
MAIN_PATH: tuple[ShipmentStatus, ...] = (
    S.QUOTED,
    S.BOOKED,
    S.PICKUP,
    S.IN_TRANSIT,
    S.CUSTOMS,
    S.DELIVERED,
    S.DOCUMENT,
    S.INVOICED,
)

STATUS_RANK: dict[ShipmentStatus, int] = {s: i for i, s in enumerate(MAIN_PATH)}

# The forward step an operator normally takes next from each status.
_MAIN_PATH_NEXT: dict[ShipmentStatus, ShipmentStatus] = {
    S.QUOTED: S.BOOKED,
    S.BOOKED: S.PICKUP,
    S.PICKUP: S.IN_TRANSIT,
    S.IN_TRANSIT: S.DELIVERED,
    S.CUSTOMS: S.DELIVERED,
    S.DELIVERED: S.DOCUMENT,
    S.DOCUMENT: S.INVOICED,
}


def coerce_status(value: ShipmentStatus | str) -> ShipmentStatus | None:
    """Return the ShipmentStatus for ``value``, or None if unknown."""
    if isinstance(value, ShipmentStatus):
        return value
    try:
        return ShipmentStatus(value)
    except ValueError:
        return None


class StatusGraph:
    """
    Validated shipment transition graph.

    Contract:
        Constructed from an adjacency map (defaults to
        ``SHIPMENT_TRANSITIONS``).  The map is copied and frozen; later
        edits to the source dict have no effect.

    Guarantees:
        - ``allowed_next`` never raises for a known status and returns an
          empty set for terminal statuses.
        - ``validate`` raises InvalidTransitionError for every pair absent
          from the table and returns None otherwise.

    Non-goals:
        - Does NOT know about shipments, payloads or persistence.
    """

    def __init__(
        self,
        transitions: Mapping[ShipmentStatus, frozenset[ShipmentStatus]] | None = None,
        terminal: frozenset[ShipmentStatus] = TERMINAL_SHIPMENT_STATUSES,
        initial: ShipmentStatus = INITIAL_SHIPMENT_STATUS,
    ):
        source = SHIPMENT_TRANSITIONS if transitions is None else transitions
        self._transitions: dict[ShipmentStatus, frozenset[ShipmentStatus]] = {
            status: frozenset(targets) for status, targets in source.items()
        }
        self._terminal = frozenset(terminal)
        self._initial = initial
        self._check_consistency()

    # ------------------------------------------------------------------
    # Startup validation
    # ------------------------------------------------------------------

    def _check_consistency(self) -> None:
        problems: list[str] = []
        known = set(ShipmentStatus)

        for status in ShipmentStatus:
            if status not in self._transitions:
                problems.append(f"status '{status.value}' has no adjacency entry")

        for status, targets in self._transitions.items():
            for target in targets:
                if target not in known:
                    problems.append(
                        f"edge {status.value} -> {target!r} targets an unknown status"
                    )
            if status in self._terminal and targets:
                problems.append(
                    f"terminal status '{status.value}' has outgoing edges"
                )
            if status not in self._terminal and not targets:
                problems.append(
                    f"non-terminal status '{status.value}' has no outgoing edges"
                )

        unreachable = known - self.reachable_from(self._initial)
        for status in sorted(unreachable, key=lambda s: s.value):
            problems.append(
                f"status '{status.value}' is unreachable from '{self._initial.value}'"
            )

        if problems:
            raise StatusGraphConfigurationError(problems)

        logger.debug(
            "status_graph_validated",
            extra={
                "status_count": len(self._transitions),
                "edge_count": sum(len(t) for t in self._transitions.values()),
            },
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def initial(self) -> ShipmentStatus:
        return self._initial

    @property
    def terminal_statuses(self) -> frozenset[ShipmentStatus]:
        return self._terminal

    def statuses(self) -> frozenset[ShipmentStatus]:
        return frozenset(self._transitions)

    def allowed_next(self, status: ShipmentStatus | str) -> frozenset[ShipmentStatus]:
        """Statuses reachable from ``status`` in one step."""
        resolved = coerce_status(status)
        if resolved is None:
            return frozenset()
        return self._transitions.get(resolved, frozenset())

    def is_terminal(self, status: ShipmentStatus | str) -> bool:
        return coerce_status(status) in self._terminal

    def can_transition(
        self,
        from_status: ShipmentStatus | str,
        to_status: ShipmentStatus | str,
    ) -> bool:
        target = coerce_status(to_status)
        return target is not None and target in self.allowed_next(from_status)

    def validate(
        self,
        from_status: ShipmentStatus | str,
        to_status: ShipmentStatus | str,
    ) -> None:
        """
        Raise InvalidTransitionError unless (from, to) is an edge.

        Unknown status strings are reported with their raw value.
        """
        if not self.can_transition(from_status, to_status):
            raise InvalidTransitionError(
                getattr(from_status, "value", from_status),
                getattr(to_status, "value", to_status),
            )

    def reachable_from(self, status: ShipmentStatus) -> set[ShipmentStatus]:
        """All statuses reachable from ``status`` (inclusive), breadth-first."""
        seen = {status}
        queue = deque([status])
        while queue:
            current = queue.popleft()
            for target in self._transitions.get(current, frozenset()):
                if target not in seen:
                    seen.add(target)
                    queue.append(target)
        return seen

    def next_on_main_path(self, status: ShipmentStatus) -> ShipmentStatus | None:
        """
        The forward step normally taken from ``status``.

        Returns None for terminal statuses, or when the forward step is not
        an edge of this graph.
        """
        nxt = _MAIN_PATH_NEXT.get(status)
        if nxt is None or nxt not in self.allowed_next(status):
            return None
        return nxt


DEFAULT_STATUS_GRAPH = StatusGraph()
