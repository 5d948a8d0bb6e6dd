# nozzleswap/policy.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple
import math

ToolPair = Tuple[int, int]

# Slicer markers around a tool change
MARKER_STARTS: Tuple[str, ...] = (r"^;\s*CP TOOLCHANGE START", r"^;\s*MFM TOOLCHANGE START")
MARKER_ENDS: Tuple[str, ...] = (r"^;\s*CP TOOLCHANGE END", r"^;\s*MFM TOOLCHANGE END")
# Nested unload span used when the slicer prints a wipe tower
UNLOAD_START = r"^;\s*CP TOOLCHANGE UNLOAD"
UNLOAD_END = r"^;\s*CP TOOLCHANGE WIPE"

# Nonstandard tool indices some firmwares use for non-change purposes
IGNORED_TOOLS: Tuple[int, ...] = (255, 1000, 1100)

SWAP_TOOL_SELECT = "T"
SWAP_MANUAL = "M600"

@dataclass(frozen=True)
class WipeMove:
    x: float
    y: float
    z_hop: Optional[float] = None   # relative lift before travelling, None = no lift

@dataclass(frozen=True)
class PurgeConfig:
    volumes: Dict[ToolPair, float] = field(default_factory=dict)       # mm^3 per (from, to)
    default_volume: Optional[float] = None                               # mm^3
    filament_diameter: float = 1.75                                      # mm
    purge_feed_rate: float = 300.0                                       # mm/min
    retract_length: float = 2.0                                          # mm
    retract_feed_rate: float = 2100.0                                    # mm/min
    temperatures: Dict[int, float] = field(default_factory=dict)         # tool -> nozzle C
    temperature_wait_threshold: float = 10.0                             # C
    wipes: Dict[ToolPair, WipeMove] = field(default_factory=dict)
    default_wipe: Optional[WipeMove] = None
    travel_feed_rate: float = 9000.0                                     # mm/min
    initial_tool: Optional[int] = None
    swap_command: str = SWAP_TOOL_SELECT                                 # "T" | "M600"
    wipe_tower: bool = False
    purge_on_wipe_tower: bool = False
    total_toolchanges: Optional[int] = None
    marker_starts: Tuple[str, ...] = MARKER_STARTS
    marker_ends: Tuple[str, ...] = MARKER_ENDS
    ignored_tools: Tuple[int, ...] = IGNORED_TOOLS

    def volume_for(self, pair: ToolPair) -> Optional[float]:
        if pair in self.volumes:
            return self.volumes[pair]
        return self.default_volume

    def wipe_for(self, pair: ToolPair) -> Optional[WipeMove]:
        return self.wipes.get(pair, self.default_wipe)

    def purge_length(self, volume: float) -> float:
        """Filament length (mm) that carries ``volume`` mm^3."""
        area = math.pi * (self.filament_diameter / 2.0) ** 2
        if area <= 0:
            return 0.0
        return volume / area
