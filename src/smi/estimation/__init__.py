"""Kernel bandwidth selection and the soil moisture <-> SMI quantile engine."""

from .bandwidth import BandwidthField, optimize_bandwidth, select_bandwidth
from .quantile import EstimationReport, forward, inverse, calculate_smi, invert_smi

__all__ = [
    "BandwidthField",
    "optimize_bandwidth",
    "select_bandwidth",
    "EstimationReport",
    "forward",
    "inverse",
    "calculate_smi",
    "invert_smi",
]
