"""
Type definitions and type aliases for the SMI system.
"""
from enum import Enum, IntEnum
from typing import Dict
from typing_extensions import TypeAlias
import numpy as np


# Type aliases for clarity
CellIndex: TypeAlias = int  # position in packed (mask-order) space
StepIndex: TypeAlias = int
EventID: TypeAlias = int

# Array types
BoolGrid: TypeAlias = np.ndarray  # Shape: (n_rows, n_cols)
CellMatrix: TypeAlias = np.ndarray  # Shape: (n_cells, n_steps)
IndicatorGrid: TypeAlias = np.ndarray  # Shape: (n_rows, n_cols, n_steps)
CellSets: TypeAlias = Dict[StepIndex, np.ndarray]


class BandwidthStatus(IntEnum):
    """Outcome of the bandwidth search for one (cell, calendar step)"""
    OK = 0
    RULE_FALLBACK = 1  # cross-validation degenerate, Silverman value used
    UNUSABLE = 2  # no bandwidth, propagated as no-data


class BandwidthMode(str, Enum):
    """Bandwidth selection modes"""
    CROSS_VALIDATION = "cross_validation"
    SILVERMAN = "silverman"


class EventState(str, Enum):
    """Drought event lifecycle"""
    OPEN = "open"
    CLOSED = "closed"
