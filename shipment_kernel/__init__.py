"""
Shipment Kernel - lifecycle engine for courier shipments.

A transactional state machine that moves OBC and NFO shipments from
quote to invoice with:
- A validated, immutable transition graph
- Per-service-type task completion policies
- Chargeable (volumetric) weight calculation
- Pull-based SLA monitoring
- Atomic status change plus append-only history
"""

__version__ = "0.1.0"
