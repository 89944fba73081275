"""Read-only selectors returning DTOs."""

from shipment_kernel.selectors.base import BaseSelector
from shipment_kernel.selectors.shipment_selector import ShipmentSelector

__all__ = ["BaseSelector", "ShipmentSelector"]
