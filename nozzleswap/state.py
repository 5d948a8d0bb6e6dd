# nozzleswap/state.py
from __future__ import annotations
import copy
import enum
import math
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Tuple

from .gcode import Command

class ExtrusionMode(enum.Enum):
    ABSOLUTE = "M82"
    RELATIVE = "M83"

class PositionMode(enum.Enum):
    ABSOLUTE = "G90"
    RELATIVE = "G91"

AXES = ("X", "Y", "Z")

@dataclass
class MachineState:
    """Best-effort shadow of the firmware registers a swap sequence depends on."""
    tool: Optional[int] = None
    mode: ExtrusionMode = ExtrusionMode.ABSOLUTE
    positioning: PositionMode = PositionMode.ABSOLUTE
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    e_position: float = 0.0
    feed_rate: Optional[float] = None                       # mm/min
    temperatures: Dict[int, float] = field(default_factory=dict)
    nozzle_temperature: Optional[float] = None
    bed_temperature: Optional[float] = None
    precision: Optional[int] = None                          # decimals used by the stream

    def snapshot(self) -> "MachineState":
        return copy.deepcopy(self)

@dataclass
class StateDelta:
    changes: Dict[str, Tuple[Any, Any]] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.changes)

    def __contains__(self, name: str) -> bool:
        return name in self.changes

class StateTracker:
    """
    Applies commands to a MachineState in stream order.
    Unknown opcodes are no-ops; nothing here raises.
    """
    def __init__(self, state: Optional[MachineState] = None, ignored_tools: Tuple[int, ...] = ()):
        self.state = state if state is not None else MachineState()
        self.ignored_tools = ignored_tools
        self.position = 0                                    # commands consumed so far

    def apply(self, cmd: Command) -> StateDelta:
        before = {f.name: copy.copy(getattr(self.state, f.name)) for f in fields(self.state)}
        self.position += 1
        s = self.state

        if s.precision is None and cmd.decimals is not None:
            s.precision = cmd.decimals

        op = cmd.opcode
        if op == "M82":
            s.mode = ExtrusionMode.ABSOLUTE
        elif op == "M83":
            s.mode = ExtrusionMode.RELATIVE
        elif op == "G90":
            s.positioning = PositionMode.ABSOLUTE
        elif op == "G91":
            s.positioning = PositionMode.RELATIVE
        elif cmd.is_tool_select():
            if cmd.tool not in self.ignored_tools:
                s.tool = cmd.tool
                if s.tool in s.temperatures:
                    s.nozzle_temperature = s.temperatures[s.tool]
        elif op == "G92":
            e = cmd.get("E")
            if e is not None:
                s.e_position = e
            for axis in AXES:
                v = cmd.get(axis)
                if v is not None:
                    setattr(s, axis.lower(), v)
        elif op == "G28":
            # homed axes end wherever the firmware puts them; "G28 Z" names an axis bare
            words = cmd.raw.split(";", 1)[0].upper().split()[1:]
            homed = [a for a in AXES if any(w.startswith(a) for w in words)] or list(AXES)
            for axis in homed:
                setattr(s, axis.lower(), None)
        elif cmd.is_motion():
            for axis in AXES:
                v = cmd.get(axis)
                if v is not None:
                    setattr(s, axis.lower(), self._next_axis(getattr(s, axis.lower()), v))
            f = cmd.get("F")
            if f is not None and f > 0:
                s.feed_rate = f
            e = cmd.get("E")
            if e is not None:
                s.e_position = self._next_e(e)
        elif op in {"M104", "M109"}:
            t = cmd.get("S")
            if t is not None:
                tool = cmd.get("T")
                tool = int(tool) if tool is not None else s.tool
                if tool is not None:
                    s.temperatures[tool] = t
                if tool is None or tool == s.tool:
                    s.nozzle_temperature = t
        elif op in {"M140", "M190"}:
            t = cmd.get("S")
            if t is not None:
                s.bed_temperature = t

        after = {f.name: getattr(s, f.name) for f in fields(s)}
        return StateDelta({k: (before[k], after[k]) for k in after if before[k] != after[k]})

    def _next_axis(self, current: Optional[float], v: float) -> Optional[float]:
        if self.state.positioning is PositionMode.ABSOLUTE:
            nxt = v
        elif current is None:
            return None
        else:
            nxt = current + v
        if not math.isfinite(nxt):
            return current
        return nxt

    def _next_e(self, e: float) -> float:
        if self.state.mode is ExtrusionMode.ABSOLUTE:
            nxt = e
        else:
            nxt = self.state.e_position + e
        if not math.isfinite(nxt):
            return self.state.e_position
        return nxt

    def extrusion_delta(self, cmd: Command) -> float:
        """E advance a motion command would produce under the current mode."""
        e = cmd.get("E")
        if e is None:
            return 0.0
        if self.state.mode is ExtrusionMode.ABSOLUTE:
            return e - self.state.e_position
        return e

    def is_printing_move(self, cmd: Command) -> bool:
        """Positive extrusion combined with XY motion: the slicer is laying down material."""
        if cmd.opcode not in {"G1", "G2", "G3"}:
            return False
        if not (cmd.has("X") or cmd.has("Y")):
            return False
        return self.extrusion_delta(cmd) > 1e-6
