"""Duration, area, magnitude and severity of tracked drought events."""
from __future__ import annotations

from typing import List

import numpy as np
import pandas as pd

from smi.core.exceptions import ConfigurationError, ErrorContext
from smi.core.types import CellMatrix
from smi.drought.clusters import ClusterRegistry, DroughtEvent

EVENT_COLUMNS: List[str] = [
    "event_id", "start", "end", "duration", "mean_area", "peak_area",
    "total_deficit", "magnitude", "severity", "censored", "merged_into", "parent_ids",
]

EVOLUTION_COLUMNS: List[str] = ["event_id", "step", "area", "deficit", "mean_smi"]


def check_smi_field(registry: ClusterRegistry, smi: np.ndarray, threshold: float) -> np.ndarray:
    smi = np.asarray(smi, dtype=float)
    if threshold < 0:
        raise ConfigurationError(f"SMI threshold must be non-negative, got {threshold}",
                                 ErrorContext(component="statistics"))
    if smi.shape != (registry.mask.n_cells, registry.n_steps):
        raise ConfigurationError(
            f"SMI field has shape {smi.shape}, registry covers "
            f"({registry.mask.n_cells}, {registry.n_steps})",
            ErrorContext(component="statistics"),
        )
    return smi


def event_deficits(event: DroughtEvent, smi: np.ndarray, threshold: float) -> np.ndarray:
    """Total deficit (threshold - SMI) of the event's cells at each of its steps"""
    return np.array([np.sum(threshold - smi[event.cells[t], t]) for t in event.steps])


def cluster_evolution_table(registry: ClusterRegistry, smi: CellMatrix,
                            threshold: float, cell_area: float = 1.0) -> pd.DataFrame:
    """Per-event, per-step area, deficit and mean SMI."""
    smi = check_smi_field(registry, smi, threshold)
    rows = []
    for event in registry.events:
        for t in event.steps:
            values = smi[event.cells[t], t]
            rows.append({
                "event_id": event.event_id,
                "step": t,
                "area": values.size * cell_area,
                "deficit": float(np.sum(threshold - values)),
                "mean_smi": float(np.mean(values)),
            })
    return pd.DataFrame(rows, columns=EVOLUTION_COLUMNS)


def cluster_statistics(registry: ClusterRegistry, smi: CellMatrix,
                       threshold: float, cell_area: float = 1.0) -> pd.DataFrame:
    """
    Duration, area, magnitude and severity of every drought event.

    Args:
        registry: Tracked events.
        smi: SMI field (n_cells, n_steps) the indicator was derived from.
        threshold: Drought threshold on SMI.
        cell_area: Area of one cell; areas and severity are scaled by it.

    Returns:
        DataFrame with one row per event. ``magnitude`` is the mean deficit per
        drought cell-step; ``severity`` the deficit summed over cells and steps
        times ``cell_area``.
    """
    smi = check_smi_field(registry, smi, threshold)
    rows = []
    for event in registry.events:
        deficits = event_deficits(event, smi, threshold)
        areas = event.areas
        total = float(deficits.sum())
        rows.append({
            "event_id": event.event_id,
            "start": event.start,
            "end": event.end,
            "duration": event.duration,
            "mean_area": float(areas.mean()) * cell_area,
            "peak_area": float(areas.max()) * cell_area,
            "total_deficit": total,
            "magnitude": total / float(areas.sum()),
            "severity": total * cell_area,
            "censored": event.censored,
            "merged_into": event.merged_into,
            "parent_ids": tuple(event.parent_ids),
        })
    return pd.DataFrame(rows, columns=EVENT_COLUMNS)


def drought_area_fraction(registry: ClusterRegistry) -> pd.Series:
    """Fraction of valid cells inside a tracked event at each step"""
    counts = np.zeros(registry.n_steps)
    for event in registry.events:
        for t in event.steps:
            counts[t] += event.cells[t].size
    return pd.Series(counts / registry.mask.n_cells, name="area_fraction")
