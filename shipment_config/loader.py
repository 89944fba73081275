"""
Configuration loader (``shipment_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``shipment_config.schema`` dataclasses.  Runtime callers go through
``shipment_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError``; a typo never silently
  falls back to a default.
* Booleans must be YAML booleans and integers must be integers.
* ``compute_checksum`` is a deterministic SHA-256 over canonical JSON.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Schema violations  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from shipment_config.schema import (
    ShipmentConfig,
    SlaSettings,
    TaskAutomationSettings,
    ValidationRules,
)

_SECTIONS = {
    "sla": SlaSettings,
    "validation_rules": ValidationRules,
    "task_automation": TaskAutomationSettings,
}
_TOP_LEVEL = {"config_id", "version", *_SECTIONS}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_section(name: str, data: Any):
    cls = _SECTIONS[name]
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"Section '{name}' must be a mapping, got {type(data).__name__}")

    defaults = {f.name: f.default for f in fields(cls)}
    unknown = sorted(set(data) - set(defaults))
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {', '.join(unknown)}")

    for key, value in data.items():
        expected = type(defaults[key])
        # bool is an int subclass; reject it where an integer is expected
        if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
            raise ValueError(f"'{name}.{key}' must be an integer, got {value!r}")
        if expected is bool and not isinstance(value, bool):
            raise ValueError(f"'{name}.{key}' must be a boolean, got {value!r}")
        if expected is int and value < 0:
            raise ValueError(f"'{name}.{key}' must not be negative")
    return cls(**data)


def parse_config(data: dict[str, Any]) -> ShipmentConfig:
    """
    Parse a ShipmentConfig from a dict.

    Raises:
        ValueError: unknown keys, wrong types, or missing config_id.
    """
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping")
    unknown = sorted(set(data) - _TOP_LEVEL)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

    config_id = data.get("config_id")
    if not isinstance(config_id, str) or not config_id.strip():
        raise ValueError("config_id is required")
    version = data.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ValueError(f"version must be a positive integer, got {version!r}")

    return ShipmentConfig(
        config_id=config_id,
        version=version,
        sla=_parse_section("sla", data.get("sla")),
        validation_rules=_parse_section("validation_rules", data.get("validation_rules")),
        task_automation=_parse_section("task_automation", data.get("task_automation")),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> ShipmentConfig:
    return parse_config(load_yaml_file(path))
