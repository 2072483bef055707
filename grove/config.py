"""
Configuration loader.

Precedence, lowest to highest:
  built-in defaults  <  ~/.config/grove/config.json  <  <project>/.grove.json
  <  GROVE_PORT_RANGE="MIN-MAX" in the environment (or a loaded .env)
"""
from __future__ import annotations

import json
import os
import pathlib
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from . import paths
from .registry import DEFAULT_PORT_RANGE

DEFAULT_BASE_BRANCH = "main"
DEFAULT_PORT_VAR_PATTERNS = ["*_PORT"]
PROJECT_CONFIG_NAME = ".grove.json"

MIN_PORT, MAX_PORT = 1, 65535


class ConfigError(ValueError):
    pass


@dataclass
class GlobalConfig:
    default_port_range: Tuple[int, int] = DEFAULT_PORT_RANGE
    default_base_branch: str = DEFAULT_BASE_BRANCH


@dataclass
class ProjectConfig:
    base_branch: str = DEFAULT_BASE_BRANCH
    port_var_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_PORT_VAR_PATTERNS))
    port_range: Tuple[int, int] = DEFAULT_PORT_RANGE


def parse_port_range(value, source: str) -> Tuple[int, int]:
    """Accept `[min, max]` or `"min-max"`; both ends inclusive."""
    if isinstance(value, str):
        parts = value.replace(" ", "").split("-")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ConfigError(f"{source}: port range must look like MIN-MAX, got {value!r}")
        lo, hi = int(parts[0]), int(parts[1])
    elif (
        isinstance(value, (list, tuple))
        and len(value) == 2
        and all(isinstance(v, int) and not isinstance(v, bool) for v in value)
    ):
        lo, hi = value
    else:
        raise ConfigError(f"{source}: port range must be two integers, got {value!r}")

    if not MIN_PORT <= lo <= hi <= MAX_PORT:
        raise ConfigError(
            f"{source}: invalid port range {lo}-{hi} "
            f"(need {MIN_PORT} <= min <= max <= {MAX_PORT})"
        )
    return lo, hi


def _read_json(path: pathlib.Path) -> Optional[dict]:
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a JSON object")
    return data


def load_global_config() -> GlobalConfig:
    path = paths.config_path()
    data = _read_json(path)
    config = GlobalConfig()
    if data is None:
        return config

    if "defaultPortRange" in data:
        config.default_port_range = parse_port_range(data["defaultPortRange"], str(path))
    if "defaultBaseBranch" in data:
        config.default_base_branch = str(data["defaultBaseBranch"])
    return config


def load_project_config(project_root) -> ProjectConfig:
    """Merge `.grove.json` in *project_root* over the global defaults."""
    defaults = load_global_config()
    config = ProjectConfig(
        base_branch=defaults.default_base_branch,
        port_range=defaults.default_port_range,
    )

    path = pathlib.Path(project_root) / PROJECT_CONFIG_NAME
    data = _read_json(path)
    if data is not None:
        if "baseBranch" in data:
            config.base_branch = str(data["baseBranch"])
        if "portVarPatterns" in data:
            patterns = data["portVarPatterns"]
            if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
                raise ConfigError(f"{path}: portVarPatterns must be a list of strings")
            config.port_var_patterns = patterns
        if "portRange" in data:
            config.port_range = parse_port_range(data["portRange"], str(path))

    override = os.environ.get("GROVE_PORT_RANGE")
    if override:
        config.port_range = parse_port_range(override, "GROVE_PORT_RANGE")
    return config
