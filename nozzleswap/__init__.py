# nozzleswap/__init__.py
from .errors import ConfigError, Diagnostic, InvalidInputError, NozzleSwapError, Severity
from .gcode import Command, parse_line, render
from .policy import PurgeConfig, WipeMove
from .rewriter import RewriteResult, StreamRewriter, rewrite
from .slicer_config import SlicerConfig
from .state import ExtrusionMode, MachineState, PositionMode, StateTracker

__version__ = "0.1.0"
