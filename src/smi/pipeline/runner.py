"""
SMI pipeline.
Orchestrates bandwidth optimization, SMI estimation, inversion, drought
clustering, SAD analysis and basin averages for one run.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from smi.core.config import SmiConfig, get_config
from smi.core.exceptions import ClusteringInconsistency, ConfigurationError, ErrorContext
from smi.drought.basins import basin_average
from smi.drought.clusters import ClusterRegistry, ClusterTracker
from smi.drought.indicator import drought_indicator
from smi.drought.sad import SADResult, run_sad_analysis
from smi.drought.statistics import cluster_evolution_table, cluster_statistics
from smi.estimation.bandwidth import BandwidthField, optimize_bandwidth
from smi.estimation.quantile import EstimationReport, calculate_smi, invert_smi
from smi.grid.mask import GridMask
from smi.grid.period import Period, check_consistent


@dataclass
class SmiInputs:
    """In-memory inputs handed to the pipeline by the I/O layer"""
    mask: np.ndarray
    sm_kde: Optional[np.ndarray] = None  # (n_cells, n_kde_steps)
    sm_eval: Optional[np.ndarray] = None  # (n_cells, n_eval_steps)
    smi: Optional[np.ndarray] = None  # external SMI, skips estimation
    bandwidth: Optional[BandwidthField] = None  # pre-computed kernel widths
    basin_ids: Optional[np.ndarray] = None  # (rows, cols)


@dataclass
class SmiRunResult:
    """Everything a run produced; partial results survive a failure"""
    status: str = "success"
    error: Optional[str] = None
    bandwidth: Optional[BandwidthField] = None
    smi: Optional[np.ndarray] = None
    sm_invert: Optional[np.ndarray] = None
    indicator: Optional[np.ndarray] = None
    registry: Optional[ClusterRegistry] = None
    cluster_ids: Optional[np.ndarray] = None
    event_stats: Optional[pd.DataFrame] = None
    event_evolution: Optional[pd.DataFrame] = None
    sad: Dict[int, SADResult] = field(default_factory=dict)
    basin_smi: Optional[pd.DataFrame] = None
    estimation: EstimationReport = field(default_factory=EstimationReport)
    timings_ms: Dict[str, float] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    @property
    def n_nodata_introduced(self) -> int:
        return self.estimation.n_nodata_introduced

    def summary(self) -> str:
        n_events = self.registry.n_events if self.registry is not None else 0
        return (
            f"status={self.status} nodata_introduced={self.estimation.n_nodata_introduced} "
            f"unusable_cells={self.estimation.n_unusable_cells} events={n_events}"
        )


class SmiPipeline:
    """
    Runs the SMI engine on in-memory arrays.

    Configuration errors abort the run immediately; a clustering
    inconsistency stops the remaining stages and marks the result failed while
    keeping everything computed before it.
    """

    def __init__(self, config: Optional[SmiConfig] = None):
        self.config = config or get_config()
        self.logger = logging.getLogger("smi.pipeline.runner")

    def run(self, inputs: SmiInputs,
            periods: Optional[Tuple[Period, Period, Period]] = None) -> SmiRunResult:
        """
        Execute one SMI run.

        Args:
            inputs: Mask and cell matrices.
            periods: (estimation, evaluation, output) periods; taken from the
                configuration when omitted.

        Returns:
            SmiRunResult with status and all computed fields.
        """
        per_kde, per_eval, per_smi = periods or self.config.periods()
        mask = GridMask(inputs.mask)
        self._validate(inputs, mask, per_kde, per_eval, per_smi)

        result = SmiRunResult()
        self.logger.info(f"Starting SMI run on {mask.n_cells} cells")

        if inputs.smi is None:
            self._estimate(inputs, mask, per_kde, per_eval, result)
        else:
            result.smi = np.asarray(inputs.smi, dtype=float)
            self.logger.info("Using external SMI field, estimation skipped")

        if self.config.estimation.invert_smi:
            self._invert(inputs, per_kde, per_smi, result)

        try:
            self._drought_analysis(inputs, mask, result)
        except ClusteringInconsistency as e:
            self.logger.error(f"Drought clustering failed: {e}")
            result.status = "failed"
            result.error = str(e)

        if self.config.do_basin and inputs.basin_ids is not None:
            result.basin_smi = basin_average(result.smi, mask, inputs.basin_ids,
                                             index=per_eval.time_index())
            self.logger.info("Calculated basin averages for %d basins", result.basin_smi.shape[1])

        self.logger.info(f"SMI finished: {result.summary()}")
        return result

    def _validate(self, inputs: SmiInputs, mask: GridMask, per_kde: Period,
                  per_eval: Period, per_smi: Period) -> None:
        ctx = ErrorContext(component="pipeline", operation="validate")
        check_consistent(per_kde, per_eval, "evaluation")
        check_consistent(per_kde, per_smi, "output")

        if inputs.smi is not None:
            mask.check_packed(inputs.smi, "external SMI")
            if np.shape(inputs.smi)[1] != per_eval.n_steps:
                raise ConfigurationError(
                    f"External SMI has {np.shape(inputs.smi)[1]} steps, "
                    f"evaluation period {per_eval.n_steps}", ctx)
            if self.config.estimation.invert_smi:
                if inputs.sm_kde is None:
                    raise ConfigurationError(
                        "Inverting an external SMI field requires estimation soil moisture", ctx)
                mask.check_packed(inputs.sm_kde, "estimation soil moisture")
                if inputs.bandwidth is None and self._bandwidth_file() is None:
                    raise ConfigurationError(
                        "Inverting an external SMI field requires kernel widths "
                        "(inputs.bandwidth or estimation.bandwidth_file)", ctx)
        else:
            if inputs.sm_kde is None or inputs.sm_eval is None:
                raise ConfigurationError(
                    "Estimation and evaluation soil moisture are required without external SMI", ctx)
            mask.check_packed(inputs.sm_kde, "estimation soil moisture")
            mask.check_packed(inputs.sm_eval, "evaluation soil moisture")
        if inputs.basin_ids is not None:
            mask.check_grid(inputs.basin_ids, "basin id map")

    def _estimate(self, inputs: SmiInputs, mask: GridMask, per_kde: Period,
                  per_eval: Period, result: SmiRunResult) -> None:
        cfg = self.config.estimation
        sm_kde = np.array(inputs.sm_kde, dtype=float)
        sm_eval = np.array(inputs.sm_eval, dtype=float)

        start = datetime.now()
        bandwidth = self._given_bandwidth(inputs)
        if bandwidth is None:
            bandwidth = optimize_bandwidth(sm_kde, per_kde, mode=cfg.mode,
                                           min_cv_samples=cfg.min_cv_samples,
                                           n_workers=cfg.n_workers)
            self.logger.info("optimizing kernel width...ok")
        bandwidth.validate(mask.n_cells, per_kde.calendar_size)
        result.bandwidth = bandwidth
        result.timings_ms["bandwidth"] = self._elapsed_ms(start)

        start = datetime.now()
        result.smi, report = calculate_smi(bandwidth, sm_kde, per_kde, sm_eval, per_eval,
                                           n_workers=cfg.n_workers)
        result.estimation = report
        result.timings_ms["smi"] = self._elapsed_ms(start)
        self.logger.info("calculating SMI...ok")

    def _invert(self, inputs: SmiInputs, per_kde: Period, per_smi: Period,
                result: SmiRunResult) -> None:
        """Back-transform the SMI field, computed or external, to soil moisture."""
        cfg = self.config.estimation
        ctx = ErrorContext(component="pipeline", operation="invert")
        if result.smi.shape[1] != per_smi.n_steps:
            raise ConfigurationError(
                f"SMI has {result.smi.shape[1]} steps, output period {per_smi.n_steps}", ctx)

        bandwidth = result.bandwidth if result.bandwidth is not None else self._given_bandwidth(inputs)
        if bandwidth is None:
            raise ConfigurationError("No kernel widths available for the inversion", ctx)
        bandwidth.validate(result.smi.shape[0], per_kde.calendar_size)
        result.bandwidth = bandwidth

        start = datetime.now()
        result.sm_invert, inv_report = invert_smi(
            bandwidth, np.asarray(inputs.sm_kde, dtype=float), per_kde, result.smi, per_smi,
            clamp=cfg.clamp_inverse, n_workers=cfg.n_workers)
        result.estimation = result.estimation + EstimationReport(
            n_out_of_range=inv_report.n_out_of_range)
        result.timings_ms["invert"] = self._elapsed_ms(start)
        self.logger.info("inverting SMI...ok")

    def _bandwidth_file(self) -> Optional[Path]:
        path = self.config.estimation.bandwidth_file
        return path if path is not None and path.exists() else None

    def _given_bandwidth(self, inputs: SmiInputs) -> Optional[BandwidthField]:
        """Kernel widths handed in or stored on disk, None when they must be optimized"""
        if inputs.bandwidth is not None:
            return inputs.bandwidth
        path = self._bandwidth_file()
        if path is None:
            return None
        bandwidth = BandwidthField.load(path)
        self.logger.info(f"Read kernel widths from {path}")
        return bandwidth

    def _drought_analysis(self, inputs: SmiInputs, mask: GridMask, result: SmiRunResult) -> None:
        dcfg = self.config.drought
        scfg = self.config.sad
        if not (dcfg.do_cluster or scfg.do_sad):
            return

        cell_area = dcfg.cell_size ** 2
        result.indicator = drought_indicator(result.smi, mask, dcfg.smi_threshold)

        start = datetime.now()
        tracker = ClusterTracker(mask, dcfg.th_cell_clus, dcfg.n_cell_inter)
        result.registry = tracker.track(result.indicator)
        result.cluster_ids = result.registry.cluster_id_field()
        result.event_stats = cluster_statistics(result.registry, result.smi,
                                                dcfg.smi_threshold, cell_area)
        result.event_evolution = cluster_evolution_table(result.registry, result.smi,
                                                         dcfg.smi_threshold, cell_area)
        result.timings_ms["clusters"] = self._elapsed_ms(start)
        self.logger.info(f"Cluster evolution ...ok ({result.registry.n_events} events)")

        if scfg.do_sad:
            result.sad = run_sad_analysis(result.registry, result.smi, dcfg.smi_threshold,
                                          scfg.durations, scfg.delta_area, scfg.percentiles)

    @staticmethod
    def _elapsed_ms(start: datetime) -> float:
        return (datetime.now() - start).total_seconds() * 1000


def run_smi(inputs: SmiInputs, config: Optional[SmiConfig] = None,
            periods: Optional[Tuple[Period, Period, Period]] = None) -> SmiRunResult:
    """Run the SMI pipeline with ``config`` (or the global configuration)."""
    return SmiPipeline(config).run(inputs, periods)


def unusable_cell_report(result: SmiRunResult, mask: GridMask) -> List[Tuple[int, int]]:
    """(row, col) of cells without a usable kernel width"""
    if result.bandwidth is None:
        return []
    coords = mask.cell_coordinates()[result.bandwidth.unusable_cells]
    return [(int(r), int(c)) for r, c in coords]
