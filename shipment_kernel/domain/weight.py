"""
WeightCalculator -- billable (chargeable) weight from physical dimensions.

Responsibility:
    Normalizes dimensions to centimeters and kilograms, computes the
    air-freight volumetric weight, and returns the greater of actual and
    volumetric weight.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O, no shared state.
    Called by the coordinator when a transition payload carries new
    dimensions, by ShipmentService on creation, and directly by read paths.

Invariants enforced:
    - chargeable_weight(d) == max(actual_kg(d), volumetric_kg(d)).
    - Scaling: multiplying L, W and H by k multiplies the volumetric term
      by k**3; changing only the weight leaves it unchanged.

Failure modes:
    None.  Inputs must be finite and non-negative; that precondition is
    enforced upstream by ``validate_dimensions`` and never re-checked here.
"""

from __future__ import annotations

from decimal import Decimal

from shipment_kernel.domain.values import Dimensions, DimensionUnit, WeightUnit

CM_PER_INCH = Decimal("2.54")
KG_PER_LB = Decimal("0.453592")

# Standard air-freight volumetric divisor (cm^3 per kg).
VOLUMETRIC_DIVISOR = Decimal("6000")


def to_centimeters(value: Decimal, unit: DimensionUnit) -> Decimal:
    if unit == DimensionUnit.INCH:
        return value * CM_PER_INCH
    return value


def to_kilograms(value: Decimal, unit: WeightUnit) -> Decimal:
    if unit == WeightUnit.LB:
        return value * KG_PER_LB
    return value


def actual_weight_kg(dims: Dimensions) -> Decimal:
    """Actual weight in kilograms."""
    return to_kilograms(dims.weight, dims.weight_unit)


def volumetric_weight_kg(dims: Dimensions) -> Decimal:
    """(L_cm * W_cm * H_cm) / VOLUMETRIC_DIVISOR."""
    length = to_centimeters(dims.length, dims.unit)
    width = to_centimeters(dims.width, dims.unit)
    height = to_centimeters(dims.height, dims.unit)
    return (length * width * height) / VOLUMETRIC_DIVISOR


def chargeable_weight(dims: Dimensions) -> Decimal:
    """
    Billable weight in kilograms.

    Preconditions:
        All dimension and weight values are finite and non-negative.

    Returns:
        max(actual weight, volumetric weight), unrounded.  Use
        ``shipment_kernel.db.types.round_weight`` for display.
    """
    return max(actual_weight_kg(dims), volumetric_weight_kg(dims))
