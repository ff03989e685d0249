"""
SMI: Soil Moisture Index and drought cluster analysis.

Kernel-density soil moisture quantiles per grid cell, drought indicator,
space-time drought event tracking and severity-area-duration statistics.
"""

__version__ = "0.1.0"

from smi.core.config import SmiConfig, get_config, set_config
from smi.core.exceptions import (
    SmiError,
    ConfigurationError,
    EstimationFailure,
    ClusteringInconsistency,
)
from smi.grid import GridMask, Period
from smi.estimation import BandwidthField, optimize_bandwidth, calculate_smi, invert_smi
from smi.drought import drought_indicator, ClusterTracker, cluster_statistics, run_sad_analysis
from smi.pipeline import SmiInputs, SmiPipeline, SmiRunResult, run_smi

__all__ = [
    "SmiConfig",
    "get_config",
    "set_config",
    "SmiError",
    "ConfigurationError",
    "EstimationFailure",
    "ClusteringInconsistency",
    "GridMask",
    "Period",
    "BandwidthField",
    "optimize_bandwidth",
    "calculate_smi",
    "invert_smi",
    "drought_indicator",
    "ClusterTracker",
    "cluster_statistics",
    "run_sad_analysis",
    "SmiInputs",
    "SmiPipeline",
    "SmiRunResult",
    "run_smi",
]
