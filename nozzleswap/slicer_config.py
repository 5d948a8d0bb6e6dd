# nozzleswap/slicer_config.py
"""
Settings a slicer writes into the G-code as comments, e.g. the PrusaSlicer
trailer:

    ; total toolchanges = 4
    ; wipe_tower = 1
    ; temperature = 215,240
    ; filament_diameter = 1.75,1.75
    ; wiping_volumes_matrix = 0,140,70,0

Orca/Bambu files use ``flush_volumes_matrix`` and ``flush_multiplier``
instead. Matrices are row-major: ``index = from_tool * n + to_tool``.
"""
from __future__ import annotations
import dataclasses
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .policy import PurgeConfig

_SETTING_RE = re.compile(r"^;\s*([A-Za-z_][\w ]*?)\s*=\s*(.*?)\s*$")

DEFAULT_FILAMENT_DIAMETER = PurgeConfig.filament_diameter

def _numbers(value: str) -> List[float]:
    out: List[float] = []
    for part in re.split(r"[,;\s]+", value.strip()):
        if not part:
            continue
        try:
            out.append(float(part))
        except ValueError:
            return []
    return out

@dataclass
class SlicerConfig:
    wipe_tower: bool = False
    total_toolchanges: Optional[int] = None
    temperatures: List[float] = field(default_factory=list)
    filament_diameters: List[float] = field(default_factory=list)
    volumes_matrix: List[float] = field(default_factory=list)
    flush_multiplier: float = 1.0

    @classmethod
    def read(cls, lines: Iterable[str]) -> "SlicerConfig":
        config = cls()
        for line in lines:
            config.update_from_line(line)
        return config

    @classmethod
    def from_file(cls, path: Path) -> "SlicerConfig":
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return cls.read(f)

    def update_from_line(self, line: str) -> None:
        m = _SETTING_RE.match(line.rstrip("\r\n"))
        if not m:
            return
        key, val = m.group(1).strip(), m.group(2)

        if key == "total toolchanges":
            try:
                self.total_toolchanges = int(val)
            except ValueError:
                pass
        elif key == "wipe_tower":
            # anything but 0/1 leaves the flag alone
            if val == "1":
                self.wipe_tower = True
            elif val == "0":
                self.wipe_tower = False
        elif key == "temperature":
            self.temperatures = _numbers(val) or self.temperatures
        elif key == "filament_diameter":
            self.filament_diameters = _numbers(val) or self.filament_diameters
        elif key in ("wiping_volumes_matrix", "flush_volumes_matrix"):
            self.volumes_matrix = _numbers(val) or self.volumes_matrix
        elif key == "flush_multiplier":
            nums = _numbers(val)
            if nums:
                self.flush_multiplier = nums[0]

    @property
    def tool_count(self) -> int:
        if self.volumes_matrix:
            n = int(round(math.sqrt(len(self.volumes_matrix))))
            if n * n == len(self.volumes_matrix):
                return n
        return max(len(self.temperatures), len(self.filament_diameters))

    def purge_volumes(self) -> Dict[Tuple[int, int], float]:
        n = self.tool_count
        if not self.volumes_matrix or n * n != len(self.volumes_matrix):
            return {}
        out: Dict[Tuple[int, int], float] = {}
        for a in range(n):
            for b in range(n):
                if a != b:
                    out[(a, b)] = self.volumes_matrix[a * n + b] * self.flush_multiplier
        return out

    def apply_to(self, config: PurgeConfig) -> PurgeConfig:
        """Fill gaps in ``config``; values already set there win."""
        volumes = dict(self.purge_volumes())
        volumes.update(config.volumes)
        temperatures = {i: t for i, t in enumerate(self.temperatures)}
        temperatures.update(config.temperatures)
        diameter = config.filament_diameter
        if diameter == DEFAULT_FILAMENT_DIAMETER and self.filament_diameters:
            diameter = self.filament_diameters[0]
        return dataclasses.replace(
            config,
            volumes=volumes,
            temperatures=temperatures,
            filament_diameter=diameter,
            wipe_tower=config.wipe_tower or self.wipe_tower,
            total_toolchanges=(config.total_toolchanges if config.total_toolchanges is not None
                               else self.total_toolchanges),
        )
