"""
Shipment configuration schema.

Frozen dataclasses the loader parses YAML into.  ``ShipmentConfig`` is
the runtime artifact returned by ``get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from shipment_kernel.domain.task_policy import TaskPolicyConfig


@dataclass(frozen=True)
class SlaSettings:
    """Default SLA warning window applied to new shipments and the SLA board."""

    warning_minutes_before: int = 15


@dataclass(frozen=True)
class ValidationRules:
    """Toggles for the task-completion decision table."""

    require_customer_reference: bool = False
    require_hawb_for_nfo: bool = True
    require_mawb_for_nfo: bool = True
    require_cost_confirmations: bool = True
    require_pod_before_invoice: bool = False


@dataclass(frozen=True)
class TaskAutomationSettings:
    enabled: bool = True


@dataclass(frozen=True)
class ShipmentConfig:
    """
    Loaded shipment configuration.

    Guarantees:
        - Immutable.
        - ``checksum`` is the SHA-256 of the canonical source data, so two
          configs with the same settings carry the same checksum.
    """

    config_id: str
    version: int
    sla: SlaSettings = field(default_factory=SlaSettings)
    validation_rules: ValidationRules = field(default_factory=ValidationRules)
    task_automation: TaskAutomationSettings = field(default_factory=TaskAutomationSettings)
    checksum: str = ""

    def task_policy(self) -> TaskPolicyConfig:
        """The kernel-side policy toggles for TaskPolicyEngine."""
        rules = self.validation_rules
        return TaskPolicyConfig(
            require_customer_reference=rules.require_customer_reference,
            require_hawb_for_nfo=rules.require_hawb_for_nfo,
            require_mawb_for_nfo=rules.require_mawb_for_nfo,
            require_cost_confirmations=rules.require_cost_confirmations,
            require_pod_before_invoice=rules.require_pod_before_invoice,
        )
