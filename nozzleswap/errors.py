# nozzleswap/errors.py
from __future__ import annotations
import enum
import logging
from dataclasses import dataclass
from typing import List, Optional

log = logging.getLogger("nozzleswap.diagnostics")

class NozzleSwapError(ValueError):
    """Base class for whole-file failures."""

class InvalidInputError(NozzleSwapError):
    """The input cannot be treated as a G-code text stream."""

class ConfigError(NozzleSwapError):
    """An options file could not be turned into a PurgeConfig."""

class Severity(enum.Enum):
    INFO = "info"
    WARNING = "warning"

@dataclass
class Diagnostic:
    severity: Severity
    code: str                      # e.g. "unterminated-region"
    message: str
    line: Optional[int] = None     # 1-based
    from_tool: Optional[int] = None
    to_tool: Optional[int] = None

    def __str__(self):
        where = f"line {self.line}: " if self.line is not None else ""
        return f"{self.severity.value}: {where}{self.message} [{self.code}]"

class DiagnosticCollector:
    """Per-run sink; every entry is mirrored to the logger."""

    def __init__(self):
        self.items: List[Diagnostic] = []

    def warn(self, code: str, message: str, line: Optional[int] = None,
             from_tool: Optional[int] = None, to_tool: Optional[int] = None) -> Diagnostic:
        return self._add(Diagnostic(Severity.WARNING, code, message, line, from_tool, to_tool))

    def info(self, code: str, message: str, line: Optional[int] = None,
             from_tool: Optional[int] = None, to_tool: Optional[int] = None) -> Diagnostic:
        return self._add(Diagnostic(Severity.INFO, code, message, line, from_tool, to_tool))

    def _add(self, d: Diagnostic) -> Diagnostic:
        self.items.append(d)
        level = logging.WARNING if d.severity is Severity.WARNING else logging.INFO
        log.log(level, "%s", d)
        return d

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.items if d.severity is Severity.WARNING]
