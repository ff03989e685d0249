"""Severity-area-duration (SAD) analysis of tracked drought events.

For a duration ``d`` every event lasting at least ``d`` steps is scanned with
all windows of ``d`` consecutive steps. Within a window each cell's severity
is its mean deficit (threshold - SMI, zero at steps where the cell is not in
the event). For area bins of ``k * delta_area`` cells the severity of the bin
is the mean over the most severe cells; the event's SAD value for the bin is
the maximum over its windows. Percentile curves summarise the SAD values of
all events per area bin.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Sequence

import numpy as np
import pandas as pd

from smi.core.constants import DEFAULT_SAD_PERCENTILES
from smi.core.exceptions import ConfigurationError, ErrorContext
from smi.core.types import CellMatrix
from smi.drought.clusters import ClusterRegistry, DroughtEvent
from smi.drought.statistics import check_smi_field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SADResult:
    duration: int
    table: pd.DataFrame  # events x area bins
    percentiles: pd.DataFrame  # percentiles x area bins


def _deficit_matrix(event: DroughtEvent, smi: np.ndarray, threshold: float) -> np.ndarray:
    footprint = event.footprint()
    position = {cell: i for i, cell in enumerate(footprint)}
    deficits = np.zeros((footprint.size, event.duration))
    for j, t in enumerate(event.steps):
        cells = event.cells[t]
        rows = [position[c] for c in cells]
        deficits[rows, j] = threshold - smi[cells, t]
    return deficits


def _window_curves(deficits: np.ndarray, duration: int) -> Iterable[np.ndarray]:
    """Mean severity of the top-n cells, n = 1..footprint, for each window."""
    for w in range(deficits.shape[1] - duration + 1):
        window = deficits[:, w:w + duration]
        touched = (window > 0).any(axis=1)
        severity = np.sort(window[touched].mean(axis=1))[::-1]
        yield np.cumsum(severity) / np.arange(1, severity.size + 1)


def event_sad_curve(event: DroughtEvent, smi: np.ndarray, threshold: float,
                    duration: int, delta_area: int, n_bins: int) -> np.ndarray:
    """Maximum mean severity per area bin for one event (NaN where too small)."""
    result = np.full(n_bins, np.nan)
    if event.duration < duration or n_bins == 0:
        return result
    n_cells = delta_area * np.arange(1, n_bins + 1)
    for curve in _window_curves(_deficit_matrix(event, smi, threshold), duration):
        fits = n_cells <= curve.size
        values = np.full(n_bins, np.nan)
        values[fits] = curve[n_cells[fits] - 1]
        result = np.fmax(result, values)
    return result


def severity_area_duration(registry: ClusterRegistry, smi: CellMatrix, threshold: float,
                           duration: int, delta_area: int) -> pd.DataFrame:
    """
    SAD table for one duration.

    Returns:
        DataFrame indexed by event_id with one column per area bin, labelled by
        the number of cells in the bin (delta_area, 2 * delta_area, ...).
    """
    if duration <= 0 or delta_area <= 0:
        raise ConfigurationError(
            f"Duration and delta_area must be positive, got {duration}, {delta_area}",
            ErrorContext(component="sad"),
        )
    smi = check_smi_field(registry, smi, threshold)

    events = [e for e in registry.events if e.duration >= duration]
    # largest footprint any window can reach bounds the number of bins
    max_cells = 0
    for event in events:
        deficits = _deficit_matrix(event, smi, threshold)
        for w in range(event.duration - duration + 1):
            max_cells = max(max_cells, int((deficits[:, w:w + duration] > 0).any(axis=1).sum()))
    n_bins = max_cells // delta_area

    columns = pd.Index(delta_area * np.arange(1, n_bins + 1), name="area_cells")
    table = pd.DataFrame(
        [event_sad_curve(e, smi, threshold, duration, delta_area, n_bins) for e in events],
        index=pd.Index([e.event_id for e in events], name="event_id"),
        columns=columns,
    )
    logger.debug("SAD d=%d: %d events, %d area bins", duration, len(events), n_bins)
    return table


def sad_percentiles(table: pd.DataFrame,
                    percentiles: Sequence[float] = DEFAULT_SAD_PERCENTILES) -> pd.DataFrame:
    """Percentiles (0-100) of SAD values across events for each area bin."""
    percentiles = list(percentiles)
    out = pd.DataFrame(np.nan, index=pd.Index(percentiles, name="percentile"),
                       columns=table.columns)
    for column in table.columns:
        values = table[column].dropna().to_numpy(dtype=float)
        if values.size:
            out[column] = np.percentile(values, percentiles)
    return out


def run_sad_analysis(registry: ClusterRegistry, smi: CellMatrix, threshold: float,
                     durations: Sequence[int], delta_area: int,
                     percentiles: Sequence[float] = DEFAULT_SAD_PERCENTILES
                     ) -> Dict[int, SADResult]:
    """SAD tables and percentile curves for every duration."""
    results = {}
    for d in durations:
        table = severity_area_duration(registry, smi, threshold, d, delta_area)
        results[d] = SADResult(duration=d, table=table,
                               percentiles=sad_percentiles(table, percentiles))
    logger.info("SAD analysis done for durations %s", list(durations))
    return results
