"""
shipment_config -- single public entrypoint for shipment configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  It returns a frozen ``ShipmentConfig``; callers translate it
    into kernel inputs (``ShipmentConfig.task_policy()`` for
    TaskPolicyEngine, ``ShipmentLifecycleCoordinator.from_config``).

Architecture position:
    Configuration -- sits above ``shipment_kernel``.  The kernel MUST NEVER
    import from ``shipment_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- schema violations.
    - ``yaml.YAMLError`` -- malformed YAML.

Audit relevance:
    Every successful call emits a ``SHIPMENT_CONFIG_TRACE`` log entry with
    the config_id, version and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from shipment_config.loader import load_config
from shipment_config.schema import (
    ShipmentConfig,
    SlaSettings,
    TaskAutomationSettings,
    ValidationRules,
)

_logger = logging.getLogger("shipment_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> ShipmentConfig:
    """
    The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the bundled
            ``sets/default.yaml``.

    Raises:
        FileNotFoundError: config_path does not exist.
        ValueError: configuration fails schema validation.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = load_config(path)

    rules = config.validation_rules
    _logger.info(
        "SHIPMENT_CONFIG_TRACE",
        extra={
            "trace_type": "SHIPMENT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(path),
            "sla_warning_minutes": config.sla.warning_minutes_before,
            "task_automation": config.task_automation.enabled,
            "require_customer_reference": rules.require_customer_reference,
            "require_pod_before_invoice": rules.require_pod_before_invoice,
        },
    )
    return config


__all__ = [
    "ShipmentConfig",
    "SlaSettings",
    "TaskAutomationSettings",
    "ValidationRules",
    "get_active_config",
]
