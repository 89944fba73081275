"""
Status-update validation.

Checks the optional metadata attached to a status change before the
coordinator writes it into the history log.
"""

from __future__ import annotations

from datetime import datetime

from shipment_kernel.domain.values import MAX_FLIGHT_NUMBER_LENGTH, StatusMetadata
from shipment_kernel.exceptions import InvalidStatusUpdateError


def status_update_errors(metadata: StatusMetadata | None, now: datetime) -> list[str]:
    """Every problem with ``metadata`` at ``now`` (empty list when valid)."""
    if metadata is None:
        return []
    errors: list[str] = []
    flight = metadata.flight_number
    if flight is not None and not isinstance(flight, str):
        errors.append("Flight number must be text")
    elif flight and len(flight) > MAX_FLIGHT_NUMBER_LENGTH:
        errors.append(
            f"Flight number must be at most {MAX_FLIGHT_NUMBER_LENGTH} characters"
        )
    eta = metadata.estimated_arrival
    if eta is not None:
        if not isinstance(eta, datetime):
            errors.append("Estimated arrival must be a datetime")
        elif eta.tzinfo is None:
            errors.append("Estimated arrival must be timezone-aware")
        elif eta <= now:
            errors.append("Estimated arrival must be in the future")
    return errors


def validate_status_update(metadata: StatusMetadata | None, now: datetime) -> None:
    """
    Raises:
        InvalidStatusUpdateError: listing every problem found.
    """
    errors = status_update_errors(metadata, now)
    if errors:
        raise InvalidStatusUpdateError(errors)
