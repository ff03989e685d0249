"""Grid mask and time period models."""
from smi.grid.mask import GridMask
from smi.grid.period import Period, check_consistent

__all__ = [
    "GridMask",
    "Period",
    "check_consistent",
]
