"""
Configuration loading utilities.

A config file may reference environment variables as ${VAR} or
${VAR:default} and inherits from a `base.yaml` next to it.
Minimal configs only need: project, source.path
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from featurelab.config.settings import RunnerConfig

_ENV_REFERENCE = re.compile(r"\$\{(?P<name>[^}:]+)(?::(?P<default>[^}]*))?\}")

BASE_CONFIG_NAME = "base.yaml"


def _expand_env(text: str) -> str:
    """Replace ${VAR} references; unset variables without a default become ''."""
    return _ENV_REFERENCE.sub(
        lambda m: os.environ.get(m["name"], m["default"] or ""),
        text,
    )


def _interpolate(node: Any) -> Any:
    if isinstance(node, str):
        return _expand_env(node)
    if isinstance(node, list):
        return [_interpolate(item) for item in node]
    if isinstance(node, dict):
        return {key: _interpolate(value) for key, value in node.items()}
    return node


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Merge two raw config mappings.

    Nested mappings merge key by key; any other value in `override`
    (lists included) replaces the base value.
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_configs(current, value)
        else:
            merged[key] = value
    return merged


def load_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping with environment references expanded."""
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        msg = f"{path} must contain a mapping, got {type(data).__name__}"
        raise ValueError(msg)
    return _interpolate(data)


def _inherited(config_path: Path, base_path: Path | None) -> dict[str, Any]:
    if base_path is not None:
        return load_yaml(base_path)
    sibling = config_path.parent / BASE_CONFIG_NAME
    if sibling.exists() and sibling.resolve() != config_path.resolve():
        return load_yaml(sibling)
    return {}


def load_config(
    config_path: Path,
    base_path: Path | None = None,
) -> RunnerConfig:
    """
    Load runner configuration from YAML file(s).

    Args:
        config_path: Path to the main configuration file.
        base_path: Base configuration to inherit from (default: a
            `base.yaml` in the same directory, if present).

    Returns:
        Fully validated RunnerConfig instance.

    Raises:
        ValueError: If required keys are missing or values are invalid.
    """
    config_path = Path(config_path)
    raw = merge_configs(_inherited(config_path, base_path), load_yaml(config_path))

    if not raw.get("project"):
        msg = "Config must specify 'project' name"
        raise ValueError(msg)

    source = dict(raw.get("source") or {})
    if not source.get("path"):
        msg = "Config must specify 'source.path'"
        raise ValueError(msg)

    # Relative data paths are relative to the config file, not the cwd
    data_path = Path(source["path"])
    if not data_path.is_absolute():
        data_path = config_path.parent / data_path
    raw["source"] = {**source, "path": data_path}

    return RunnerConfig.model_validate(raw)
