# nozzleswap/gcode.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import math
import re

_OPCODE_RE = re.compile(r"^([GMT])(\d+(?:\.\d+)?)$", re.IGNORECASE)
_PARAM_RE = re.compile(r"^([A-Za-z])(.+)$")
_LINE_RE = re.compile(r"([^\r\n]*)(\r\n|\n|\r|$)")

@dataclass(frozen=True)
class Command:
    raw: str
    opcode: Optional[str] = None              # e.g. "G1", "T1"
    params: Dict[str, float] = field(default_factory=dict)
    comment: str = ""
    decimals: Optional[int] = None            # fractional digits of the first decimal parameter

    @property
    def letter(self) -> Optional[str]:
        return self.opcode[0] if self.opcode else None

    @property
    def number(self) -> Optional[float]:
        if not self.opcode:
            return None
        return float(self.opcode[1:])

    def is_motion(self) -> bool:
        return self.opcode in {"G0", "G1", "G2", "G3"}

    def is_tool_select(self) -> bool:
        return self.letter == "T" and self.number is not None and self.number.is_integer()

    @property
    def tool(self) -> Optional[int]:
        return int(self.number) if self.is_tool_select() else None

    def has(self, key: str) -> bool:
        return key.upper() in self.params

    def get(self, key: str, default=None):
        return self.params.get(key.upper(), default)

    def marker_text(self) -> str:
        """Comment text of a pure comment line, '' for anything else."""
        if self.opcode is not None:
            return ""
        stripped = self.raw.strip()
        return stripped if stripped.startswith(";") else ""

def _parse_value(text: str) -> Optional[float]:
    try:
        v = float(text)
    except ValueError:
        return None
    if not math.isfinite(v):
        return None
    return v

def parse_line(line: str) -> Command:
    """Tokenize one line. Never raises: anything unrecognised stays in ``raw``."""
    original = line.rstrip("\r\n")
    if ";" in original:
        code_part, comment = original.split(";", 1)
        comment = comment.strip()
    else:
        code_part, comment = original, ""

    tokens = code_part.split()
    if not tokens:
        return Command(raw=original, comment=comment)

    m = _OPCODE_RE.match(tokens[0])
    if not m:
        return Command(raw=original, comment=comment)
    opcode = m.group(1).upper() + m.group(2)

    params: Dict[str, float] = {}
    malformed: List[str] = []
    decimals: Optional[int] = None
    for t in tokens[1:]:
        pm = _PARAM_RE.match(t)
        v = _parse_value(pm.group(2)) if pm else None
        if v is None:
            malformed.append(t)
            continue
        params[pm.group(1).upper()] = v
        if decimals is None:
            decimals = fractional_digits(pm.group(2))

    if malformed:
        comment = " ".join(malformed + ([comment] if comment else []))
    return Command(raw=original, opcode=opcode, params=params, comment=comment, decimals=decimals)

def fractional_digits(token: str) -> Optional[int]:
    """Digits after the decimal point of a parameter token like 'X12.50', None without a point."""
    if "." not in token:
        return None
    return len(token.split(".", 1)[1].rstrip())

def format_number(value: float, precision: int) -> str:
    text = f"{value:.{precision}f}"
    # avoid "-0.000"
    if text.lstrip("-").strip("0.") == "":
        text = text.lstrip("-")
    return text

def render(opcode: str, params: Optional[Dict[str, float]] = None,
           comment: str = "", precision: int = 3) -> Command:
    parts = [opcode]
    for k, v in (params or {}).items():
        parts.append(f"{k}{format_number(v, precision)}")
    raw = " ".join(parts)
    if comment:
        raw += f" ; {comment}"
    return Command(raw=raw, opcode=opcode, params=dict(params or {}), comment=comment)

# ---- line endings

def split_lines(text: str) -> List[Tuple[str, str]]:
    """Split into (content, terminator) pairs; the last line may have an empty terminator."""
    return [(m.group(1), m.group(2)) for m in _LINE_RE.finditer(text) if m.group(0)]

def detect_line_ending(text: str) -> str:
    crlf = text.count("\r\n")
    lf = text.count("\n") - crlf
    cr = text.count("\r") - crlf
    if crlf and crlf >= lf and crlf >= cr:
        return "\r\n"
    if cr > lf:
        return "\r"
    return "\n"
