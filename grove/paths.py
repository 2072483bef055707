"""
Well-known per-user locations for grove's state and configuration.

State (the port registry) follows XDG_STATE_HOME, configuration follows
XDG_CONFIG_HOME.  GROVE_STATE_DIR / GROVE_CONFIG_DIR win over both.
"""
from __future__ import annotations

import os
import pathlib

APP_NAME = "grove"


def _xdg_dir(override_var: str, xdg_var: str, *fallback: str) -> pathlib.Path:
    override = os.environ.get(override_var)
    if override:
        return pathlib.Path(override).expanduser()
    base = os.environ.get(xdg_var)
    if base:
        return pathlib.Path(base).expanduser() / APP_NAME
    return pathlib.Path.home().joinpath(*fallback) / APP_NAME


def state_dir() -> pathlib.Path:
    return _xdg_dir("GROVE_STATE_DIR", "XDG_STATE_HOME", ".local", "state")


def config_dir() -> pathlib.Path:
    return _xdg_dir("GROVE_CONFIG_DIR", "XDG_CONFIG_HOME", ".config")


def config_path() -> pathlib.Path:
    return config_dir() / "config.json"


def port_registry_path() -> pathlib.Path:
    """Registry file, unless GROVE_REGISTRY points somewhere else."""
    override = os.environ.get("GROVE_REGISTRY")
    if override:
        return pathlib.Path(override).expanduser()
    return state_dir() / "ports.json"
