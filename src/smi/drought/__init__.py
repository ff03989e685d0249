"""Drought modules: indicator, cluster tracking and event statistics."""
from smi.drought.indicator import drought_indicator
from smi.drought.clusters import (
    ClusterRegistry,
    ClusterTracker,
    DroughtEvent,
    track_clusters,
)
from smi.drought.statistics import cluster_statistics, cluster_evolution_table
from smi.drought.sad import SADResult, severity_area_duration, sad_percentiles, run_sad_analysis
from smi.drought.basins import basin_average

__all__ = [
    "drought_indicator",
    "ClusterRegistry",
    "ClusterTracker",
    "DroughtEvent",
    "track_clusters",
    "cluster_statistics",
    "cluster_evolution_table",
    "SADResult",
    "severity_area_duration",
    "sad_percentiles",
    "run_sad_analysis",
    "basin_average",
]
