"""
Typed Exception Hierarchy for the Shipment Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the lifecycle engine (API handlers, batch jobs, UI adapters) must
react differently to a stale read, a missing waybill, and an illegal
transition.  Parsing messages for that is fragile, so every failure is:

  1. A TYPED exception class (catch by type, not message)
  2. Carrying a CODE attribute (machine-readable, API-safe)
  3. Carrying structured DATA (not just a message string)

Example - WRONG way:
try:
        coordinator.request_transition(shipment_id, "pickup", payload, actor_id=actor)
    except Exception as e:
        if "hawb" in str(e):
            ...

Example - RIGHT way:
    try:
        coordinator.request_transition(shipment_id, "pickup", payload, actor_id=actor)
    except ValidationFailedError as e:
        form.highlight(e.missing_fields)
    except ConcurrentModificationError:
        reload_and_retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ShipmentKernelError (base)
    |
    +-- ShipmentError
    |   +-- ShipmentNotFoundError
    |   +-- ShipmentAlreadyExistsError
    |   +-- InvalidDimensionsError
    |   +-- InvalidStatusUpdateError
    |
    +-- TransitionError
    |   +-- ImmutableTerminalStateError
    |   +-- InvalidTransitionError
    |   +-- StatusGraphConfigurationError
    |
    +-- PolicyError
    |   +-- ValidationFailedError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- TaskError
    |   +-- TaskNotFoundError
    |   +-- InvalidTaskStateError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code         | When Raised
-------------|---------------------------|-------------------------------------------
Shipment     | NOT_FOUND                 | Shipment missing or soft-deleted
             | SHIPMENT_ALREADY_EXISTS   | Duplicate shipment number
             | INVALID_DIMENSIONS        | Negative, non-finite or oversized values
             | INVALID_STATUS_UPDATE     | Bad flight number / past arrival estimate
-------------|---------------------------|-------------------------------------------
Transition   | IMMUTABLE_TERMINAL_STATE  | Shipment already invoiced or cancelled
             | INVALID_TRANSITION        | Edge absent from the status graph
             | STATUS_GRAPH_INVALID      | Graph table inconsistent at startup
-------------|---------------------------|-------------------------------------------
Policy       | VALIDATION_FAILED         | Task completion payload missing fields
-------------|---------------------------|-------------------------------------------
Concurrency  | CONCURRENT_MODIFICATION   | Compare-and-swap on status failed
-------------|---------------------------|-------------------------------------------
Task         | TASK_NOT_FOUND            | Task id unknown
             | INVALID_TASK_STATE        | e.g. starting a task that is not pending
-------------|---------------------------|-------------------------------------------
Immutability | IMMUTABILITY_VIOLATION    | UPDATE/DELETE of history, hard delete
"""

from __future__ import annotations

from typing import Sequence


class ShipmentKernelError(Exception):
    """Base exception for all shipment kernel errors."""

    code: str = "SHIPMENT_KERNEL_ERROR"


# Shipment-related exceptions


class ShipmentError(ShipmentKernelError):
    """Base exception for shipment record errors."""

    code: str = "SHIPMENT_ERROR"


class ShipmentNotFoundError(ShipmentError):
    """Shipment does not exist or has been soft-deleted."""

    code: str = "NOT_FOUND"

    def __init__(self, shipment_id: str):
        self.shipment_id = shipment_id
        super().__init__(f"Shipment not found: {shipment_id}")


class ShipmentAlreadyExistsError(ShipmentError):
    """A shipment with the same shipment number already exists."""

    code: str = "SHIPMENT_ALREADY_EXISTS"

    def __init__(self, shipment_number: str):
        self.shipment_number = shipment_number
        super().__init__(f"Shipment number already in use: {shipment_number}")


class InvalidDimensionsError(ShipmentError):
    """Dimension or weight values failed upstream validation."""

    code: str = "INVALID_DIMENSIONS"

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__("Invalid dimensions: " + "; ".join(self.errors))


class InvalidStatusUpdateError(ShipmentError):
    """Status update metadata failed validation."""

    code: str = "INVALID_STATUS_UPDATE"

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__("Invalid status update: " + "; ".join(self.errors))


# Transition-related exceptions


class TransitionError(ShipmentKernelError):
    """Base exception for status transition errors."""

    code: str = "TRANSITION_ERROR"


class ImmutableTerminalStateError(TransitionError):
    """Shipment is in a terminal status and can no longer change."""

    code: str = "IMMUTABLE_TERMINAL_STATE"

    def __init__(self, shipment_id: str, status: str):
        self.shipment_id = shipment_id
        self.status = status
        super().__init__(
            f"Shipment {shipment_id} is in terminal status '{status}'"
        )


class InvalidTransitionError(TransitionError):
    """The requested edge does not exist in the status graph."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid transition: {from_status} -> {to_status}"
        )


class StatusGraphConfigurationError(TransitionError):
    """The transition table is internally inconsistent."""

    code: str = "STATUS_GRAPH_INVALID"

    def __init__(self, problems: Sequence[str]):
        self.problems = list(problems)
        super().__init__(
            "Status graph is inconsistent: " + "; ".join(self.problems)
        )


# Policy-related exceptions


class PolicyError(ShipmentKernelError):
    """Base exception for task policy errors."""

    code: str = "POLICY_ERROR"


class ValidationFailedError(PolicyError):
    """
    Task completion payload is missing required fields.

    ``missing_fields`` is exactly the set of absent fields, in the
    engine's canonical order.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(
        self,
        missing_fields: Sequence[str],
        service_type: str | None = None,
        to_status: str | None = None,
    ):
        self.missing_fields = list(missing_fields)
        self.service_type = service_type
        self.to_status = to_status
        super().__init__(
            f"Missing required fields: {', '.join(self.missing_fields)}"
        )


# Concurrency-related exceptions


class ConcurrencyError(ShipmentKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """Stored status no longer matches the status the request was based on."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, shipment_id: str, expected_status: str):
        self.shipment_id = shipment_id
        self.expected_status = expected_status
        super().__init__(
            f"Shipment {shipment_id} was modified concurrently: "
            f"expected status '{expected_status}'"
        )


# Task-related exceptions


class TaskError(ShipmentKernelError):
    """Base exception for task errors."""

    code: str = "TASK_ERROR"


class TaskNotFoundError(TaskError):
    """Task does not exist."""

    code: str = "TASK_NOT_FOUND"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class InvalidTaskStateError(TaskError):
    """Task operation not allowed from the task's current status."""

    code: str = "INVALID_TASK_STATE"

    def __init__(self, task_id: str, status: str, operation: str):
        self.task_id = task_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} task {task_id} in status '{status}'"
        )


# Immutability-related exceptions


class ImmutabilityError(ShipmentKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    StatusHistoryEntry rows are immutable from creation; Shipment rows
    are never hard-deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
