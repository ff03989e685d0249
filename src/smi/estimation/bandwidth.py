"""Kernel width selection per cell and calendar step."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
from scipy.optimize import minimize_scalar

from smi.core.constants import CV_BOUND_FACTORS, CV_XATOL, MIN_CV_SAMPLE_SIZE
from smi.core.exceptions import (
    ConfigurationError,
    ConvergenceError,
    DegenerateSampleError,
    ErrorContext,
    handle_exception,
)
from smi.core.types import BandwidthMode, BandwidthStatus, CellMatrix
from smi.estimation.kernel import silverman_bandwidth, squared_differences, ucv_score, valid_sample
from smi.estimation.parallel import map_cells
from smi.grid.period import Period

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BandwidthField:
    """Kernel width per (cell, calendar step) with its search status.

    ``h`` is NaN wherever ``status`` is UNUSABLE.
    """

    h: np.ndarray
    status: np.ndarray

    @property
    def n_cells(self) -> int:
        return self.h.shape[0]

    @property
    def n_calendar_steps(self) -> int:
        return self.h.shape[1]

    def usable(self) -> np.ndarray:
        return self.status != BandwidthStatus.UNUSABLE

    @property
    def unusable_cells(self) -> np.ndarray:
        """Packed indices of cells with at least one unusable calendar step"""
        return np.flatnonzero((~self.usable()).any(axis=1))

    @property
    def n_fallback(self) -> int:
        return int(np.sum(self.status == BandwidthStatus.RULE_FALLBACK))

    def validate(self, n_cells: int, n_calendar_steps: int) -> None:
        """Check shape and that usable entries are finite and > 0."""
        expected = (n_cells, n_calendar_steps)
        if self.h.shape != expected or self.status.shape != expected:
            raise ConfigurationError(
                f"Bandwidth field has shape {self.h.shape}, expected {expected}",
                ErrorContext(component="bandwidth", operation="validate"),
            )
        h = self.h[self.usable()]
        if not np.all(np.isfinite(h) & (h > 0)):
            raise ConfigurationError(
                "Bandwidth field holds non-positive or non-finite widths for usable cells",
                ErrorContext(component="bandwidth", operation="validate"),
            )

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        np.savez(path, h=self.h, status=self.status)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "BandwidthField":
        """Read a field written by ``save``.

        Raises:
            ConfigurationError: the file is missing, unreadable or lacks arrays.
        """
        try:
            with np.load(Path(path)) as data:
                return cls(h=np.asarray(data["h"], dtype=float),
                           status=np.asarray(data["status"], dtype=np.int8))
        except (OSError, KeyError, ValueError) as e:
            raise handle_exception(
                e, ErrorContext(component="bandwidth", operation="load",
                                details={"path": str(path)})) from e


def cross_validated_bandwidth(sample: np.ndarray, h_rule: Optional[float] = None) -> float:
    """Minimise the UCV score over [0.2, 5] times the Silverman width.

    Raises:
        DegenerateSampleError: no rule-based width exists for the sample.
        ConvergenceError: the bounded search did not produce a usable width.
    """
    x = valid_sample(sample)
    if h_rule is None:
        h_rule = silverman_bandwidth(x)

    lower, upper = CV_BOUND_FACTORS[0] * h_rule, CV_BOUND_FACTORS[1] * h_rule
    sq_diff = squared_differences(x)

    with np.errstate(over="ignore", under="ignore"):
        res = minimize_scalar(
            ucv_score,
            bounds=(lower, upper),
            args=(sq_diff,),
            method="bounded",
            options={"xatol": CV_XATOL * h_rule},
        )

    h = float(res.x)
    if not res.success or not np.isfinite(h) or h <= 0 or not np.isfinite(res.fun):
        raise ConvergenceError(f"UCV search failed: {getattr(res, 'message', '')}")
    return h


def select_bandwidth(
    sample: np.ndarray,
    mode: BandwidthMode = BandwidthMode.CROSS_VALIDATION,
    min_cv_samples: int = MIN_CV_SAMPLE_SIZE,
) -> Tuple[float, BandwidthStatus]:
    """Bandwidth and status for one sample; never raises for bad samples."""
    x = valid_sample(sample)
    try:
        h_rule = silverman_bandwidth(x)
    except DegenerateSampleError:
        return float("nan"), BandwidthStatus.UNUSABLE

    if BandwidthMode(mode) == BandwidthMode.SILVERMAN:
        return h_rule, BandwidthStatus.OK

    if x.size < min_cv_samples:
        return h_rule, BandwidthStatus.RULE_FALLBACK
    try:
        return cross_validated_bandwidth(x, h_rule), BandwidthStatus.OK
    except ConvergenceError as e:
        logger.debug("Falling back to Silverman width: %s", e)
        return h_rule, BandwidthStatus.RULE_FALLBACK


def optimize_bandwidth(
    sm_kde: CellMatrix,
    per_kde: Period,
    mode: BandwidthMode = BandwidthMode.CROSS_VALIDATION,
    min_cv_samples: int = MIN_CV_SAMPLE_SIZE,
    n_workers: Optional[int] = None,
) -> BandwidthField:
    """Select a kernel width for every (cell, calendar step) of the estimation data.

    Args:
        sm_kde: Estimation soil moisture, shape (n_cells, per_kde.n_steps).
        per_kde: Estimation period.
        mode: Cross-validation or Silverman's rule.
        min_cv_samples: Smaller samples use the rule with RULE_FALLBACK status.
        n_workers: Thread pool size.

    Returns:
        BandwidthField of shape (n_cells, per_kde.calendar_size).
    """
    sm_kde = np.asarray(sm_kde, dtype=float)
    if sm_kde.ndim != 2 or sm_kde.shape[1] != per_kde.n_steps:
        raise ConfigurationError(
            f"Estimation data has shape {sm_kde.shape}, period has {per_kde.n_steps} steps",
            ErrorContext(component="bandwidth", operation="optimize_bandwidth"),
        )

    n_cells = sm_kde.shape[0]
    n_cal = per_kde.calendar_size
    calendar = per_kde.calendar_steps()
    groups = [np.flatnonzero(calendar == k) for k in range(n_cal)]

    def work(cells: np.ndarray):
        h = np.full((cells.size, n_cal), np.nan)
        status = np.full((cells.size, n_cal), BandwidthStatus.UNUSABLE, dtype=np.int8)
        for i, cell in enumerate(cells):
            for k, steps in enumerate(groups):
                h[i, k], status[i, k] = select_bandwidth(sm_kde[cell, steps], mode, min_cv_samples)
        return h, status

    h = np.full((n_cells, n_cal), np.nan)
    status = np.full((n_cells, n_cal), BandwidthStatus.UNUSABLE, dtype=np.int8)
    for cells, (h_chunk, status_chunk) in map_cells(work, n_cells, n_workers):
        h[cells] = h_chunk
        status[cells] = status_chunk

    field = BandwidthField(h=h, status=status)
    logger.info(
        "Optimized kernel width (%s) for %d cells x %d calendar steps: %d fallbacks, %d unusable cells",
        BandwidthMode(mode).value, n_cells, n_cal, field.n_fallback, field.unusable_cells.size,
    )
    return field
