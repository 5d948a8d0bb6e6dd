# nozzleswap/config.py
from __future__ import annotations
import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigError
from .policy import PurgeConfig, SWAP_MANUAL, SWAP_TOOL_SELECT, ToolPair, WipeMove

log = logging.getLogger("nozzleswap.config")

# Options file keys
PURGE_VOLUMES = "purge_volumes"
DEFAULT_PURGE_VOLUME = "default_purge_volume"
FILAMENT_DIAMETER = "filament_diameter"
PURGE_FEED_RATE = "purge_feed_rate"
RETRACT_LENGTH = "retract_length"
RETRACT_FEED_RATE = "retract_feed_rate"
TEMPERATURES = "temperatures"
TEMPERATURE_WAIT_THRESHOLD = "temperature_wait_threshold"
WIPE = "wipe"
WIPES = "wipes"
TRAVEL_FEED_RATE = "travel_feed_rate"
INITIAL_TOOL = "initial_tool"
SWAP_COMMAND = "swap_command"
WIPE_TOWER = "wipe_tower"
PURGE_ON_WIPE_TOWER = "purge_on_wipe_tower"

_FLOAT_OPTIONS = {
    FILAMENT_DIAMETER: "filament_diameter",
    PURGE_FEED_RATE: "purge_feed_rate",
    RETRACT_LENGTH: "retract_length",
    RETRACT_FEED_RATE: "retract_feed_rate",
    TEMPERATURE_WAIT_THRESHOLD: "temperature_wait_threshold",
    TRAVEL_FEED_RATE: "travel_feed_rate",
}
_BOOL_OPTIONS = {
    WIPE_TOWER: "wipe_tower",
    PURGE_ON_WIPE_TOWER: "purge_on_wipe_tower",
}
KNOWN_OPTIONS = set(_FLOAT_OPTIONS) | set(_BOOL_OPTIONS) | {
    PURGE_VOLUMES, DEFAULT_PURGE_VOLUME, TEMPERATURES, WIPE, WIPES, INITIAL_TOOL, SWAP_COMMAND,
}

def _number(key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key}: expected a number, got {value!r}")
    return float(value)

def _tool(key: str, value: Any) -> int:
    try:
        tool = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key}: {value!r} is not a tool index") from None
    if tool < 0:
        raise ConfigError(f"{key}: tool index must not be negative")
    return tool

def parse_pair(key: str) -> ToolPair:
    """'0-1', '0>1' or '0,1' -> (0, 1)."""
    for sep in ("->", "-", ">", ","):
        if sep in key:
            a, b = key.split(sep, 1)
            return (_tool(key, a.strip()), _tool(key, b.strip()))
    raise ConfigError(f"{key!r} is not a tool pair like '0-1'")

def parse_volumes(value: Any) -> Dict[ToolPair, float]:
    """Mapping of 'from-to' keys, or a square matrix (list of rows)."""
    out: Dict[ToolPair, float] = {}
    if isinstance(value, dict):
        for k, v in value.items():
            out[parse_pair(k)] = _number(PURGE_VOLUMES, v)
    elif isinstance(value, list):
        n = len(value)
        for a, row in enumerate(value):
            if not isinstance(row, list) or len(row) != n:
                raise ConfigError(f"{PURGE_VOLUMES}: matrix must be square")
            for b, v in enumerate(row):
                if a != b:
                    out[(a, b)] = _number(PURGE_VOLUMES, v)
    else:
        raise ConfigError(f"{PURGE_VOLUMES}: expected a mapping or a matrix")
    return out

def parse_temperatures(value: Any) -> Dict[int, float]:
    if isinstance(value, dict):
        return {_tool(TEMPERATURES, k): _number(TEMPERATURES, v) for k, v in value.items()}
    if isinstance(value, list):
        return {i: _number(TEMPERATURES, v) for i, v in enumerate(value)}
    raise ConfigError(f"{TEMPERATURES}: expected a mapping or a list")

def parse_wipe(value: Any) -> WipeMove:
    if not isinstance(value, dict) or "x" not in value or "y" not in value:
        raise ConfigError(f"{WIPE}: expected an object with x and y")
    z_hop = value.get("z_hop")
    return WipeMove(
        x=_number("wipe.x", value["x"]),
        y=_number("wipe.y", value["y"]),
        z_hop=_number("wipe.z_hop", z_hop) if z_hop is not None else None,
    )

def config_from_options(options: Dict[str, Any], base: Optional[PurgeConfig] = None) -> PurgeConfig:
    """Build a PurgeConfig from already-loaded options; unknown keys are ignored with a log line."""
    if not isinstance(options, dict):
        raise ConfigError("options must be a JSON object")
    kwargs: Dict[str, Any] = {}
    for key in sorted(set(options) - KNOWN_OPTIONS):
        log.warning("Ignoring unknown option %r", key)

    for key, field_name in _FLOAT_OPTIONS.items():
        if key in options:
            kwargs[field_name] = _number(key, options[key])
    for key, field_name in _BOOL_OPTIONS.items():
        if key in options:
            if not isinstance(options[key], bool):
                raise ConfigError(f"{key}: expected true or false")
            kwargs[field_name] = options[key]

    if PURGE_VOLUMES in options:
        kwargs["volumes"] = parse_volumes(options[PURGE_VOLUMES])
    if options.get(DEFAULT_PURGE_VOLUME) is not None:
        kwargs["default_volume"] = _number(DEFAULT_PURGE_VOLUME, options[DEFAULT_PURGE_VOLUME])
    if TEMPERATURES in options:
        kwargs["temperatures"] = parse_temperatures(options[TEMPERATURES])
    if options.get(WIPE) is not None:
        kwargs["default_wipe"] = parse_wipe(options[WIPE])
    if WIPES in options:
        if not isinstance(options[WIPES], dict):
            raise ConfigError(f"{WIPES}: expected a mapping of tool pairs")
        kwargs["wipes"] = {parse_pair(k): parse_wipe(v) for k, v in options[WIPES].items()}
    if options.get(INITIAL_TOOL) is not None:
        kwargs["initial_tool"] = _tool(INITIAL_TOOL, options[INITIAL_TOOL])
    if SWAP_COMMAND in options:
        cmd = str(options[SWAP_COMMAND]).upper()
        if cmd not in (SWAP_TOOL_SELECT, SWAP_MANUAL):
            raise ConfigError(f"{SWAP_COMMAND}: expected 'T' or 'M600'")
        kwargs["swap_command"] = cmd

    if kwargs.get("filament_diameter", 1.0) <= 0:
        raise ConfigError(f"{FILAMENT_DIAMETER}: must be positive")

    base = base if base is not None else PurgeConfig()
    return dataclasses.replace(base, **kwargs)

def load_config(path: Path, base: Optional[PurgeConfig] = None) -> PurgeConfig:
    """Read a JSON options file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            options = json.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e
    except ValueError as e:
        raise ConfigError(f"{path} is not valid JSON: {e}") from e
    log.info("Loaded options from %s", path)
    return config_from_options(options, base)
