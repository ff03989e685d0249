"""Density/quantile engine: soil moisture <-> SMI through the kernel CDF.

The forward map evaluates the Gaussian-kernel CDF of a cell's estimation
sample (one per calendar step); the inverse map solves CDF(v) = q by
bisection, so ``forward(inverse(q)) == q`` up to the search tolerance.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from smi.core.constants import INVERSE_BRACKET_WIDTHS, INVERSE_MAX_ITER, INVERSE_XTOL, NODATA
from smi.core.exceptions import ConfigurationError, ErrorContext, InversionRangeError
from smi.core.types import CellMatrix
from smi.estimation.bandwidth import BandwidthField
from smi.estimation.kernel import kernel_cdf, valid_mask, valid_sample
from smi.estimation.parallel import map_cells
from smi.grid.period import Period, check_consistent

logger = logging.getLogger(__name__)


@dataclass
class EstimationReport:
    """Per-cell failures recovered while building a field"""

    n_unusable_cells: int = 0
    n_nodata_introduced: int = 0
    n_out_of_range: int = 0

    def __add__(self, other: "EstimationReport") -> "EstimationReport":
        return EstimationReport(
            n_unusable_cells=self.n_unusable_cells + other.n_unusable_cells,
            n_nodata_introduced=self.n_nodata_introduced + other.n_nodata_introduced,
            n_out_of_range=self.n_out_of_range + other.n_out_of_range,
        )


def _usable_width(h: float) -> bool:
    return bool(np.isfinite(h) and h > 0)


def forward(values, sample: np.ndarray, h: float) -> np.ndarray:
    """Quantile of ``values`` under the kernel CDF of ``sample``.

    No-data values, an unusable width or an empty sample give NODATA.
    """
    values = np.atleast_1d(np.asarray(values, dtype=float))
    out = np.full(values.shape, NODATA)
    x = valid_sample(sample)
    if not _usable_width(h) or x.size == 0:
        return out
    ok = valid_mask(values)
    if ok.any():
        out[ok] = np.clip(kernel_cdf(values[ok], x, h), 0.0, 1.0)
    return out


def cdf_bracket(sample: np.ndarray, h: float) -> Tuple[float, float]:
    """Search interval of the inverse, five widths beyond the sample range"""
    x = valid_sample(sample)
    return (float(x.min() - INVERSE_BRACKET_WIDTHS * h),
            float(x.max() + INVERSE_BRACKET_WIDTHS * h))


def _bisect(q: np.ndarray, x: np.ndarray, h: float, lo: float, hi: float) -> np.ndarray:
    a = np.full(q.shape, lo)
    b = np.full(q.shape, hi)
    xtol = INVERSE_XTOL * max(1.0, hi - lo)
    for _ in range(INVERSE_MAX_ITER):
        mid = 0.5 * (a + b)
        below = kernel_cdf(mid, x, h) < q
        a = np.where(below, mid, a)
        b = np.where(below, b, mid)
        if np.max(b - a) < xtol:
            break
    return 0.5 * (a + b)


def inverse_with_flags(
    quantiles, sample: np.ndarray, h: float, clamp: bool = False
) -> Tuple[np.ndarray, np.ndarray]:
    """Inverse kernel CDF plus a mask of out-of-range requests.

    Quantiles outside [CDF(lo), CDF(hi)] of the search bracket are NODATA, or
    the bracket end when ``clamp`` is set.
    """
    q = np.atleast_1d(np.asarray(quantiles, dtype=float))
    out = np.full(q.shape, NODATA)
    out_of_range = np.zeros(q.shape, dtype=bool)
    x = valid_sample(sample)
    if not _usable_width(h) or x.size == 0:
        return out, out_of_range

    ok = valid_mask(q)
    lo, hi = cdf_bracket(x, h)
    q_lo, q_hi = kernel_cdf(np.array([lo, hi]), x, h)

    below = ok & (q < q_lo)
    above = ok & (q > q_hi)
    inside = ok & ~below & ~above
    if clamp:
        out[below] = lo
        out[above] = hi
    else:
        out_of_range = below | above
    if inside.any():
        out[inside] = _bisect(q[inside], x, h, lo, hi)
    return out, out_of_range


def inverse(quantiles, sample: np.ndarray, h: float, clamp: bool = False,
            strict: bool = False) -> np.ndarray:
    """Soil moisture whose kernel-CDF quantile equals ``quantiles``.

    Raises:
        InversionRangeError: with ``strict``, if a quantile is not representable.
    """
    out, out_of_range = inverse_with_flags(quantiles, sample, h, clamp=clamp)
    if strict and out_of_range.any():
        raise InversionRangeError(
            f"{int(out_of_range.sum())} quantiles outside the representable CDF range",
            ErrorContext(component="quantile", operation="inverse"),
        )
    return out


def _check_inputs(bandwidth: BandwidthField, sm_kde: np.ndarray, per_kde: Period,
                  field: np.ndarray, per_field: Period, name: str) -> None:
    if sm_kde.ndim != 2 or sm_kde.shape[1] != per_kde.n_steps:
        raise ConfigurationError(
            f"Estimation data has shape {sm_kde.shape}, period has {per_kde.n_steps} steps",
            ErrorContext(component="quantile"),
        )
    if field.ndim != 2 or field.shape != (sm_kde.shape[0], per_field.n_steps):
        raise ConfigurationError(
            f"{name} has shape {field.shape}, expected ({sm_kde.shape[0]}, {per_field.n_steps})",
            ErrorContext(component="quantile"),
        )
    check_consistent(per_kde, per_field, name)
    bandwidth.validate(sm_kde.shape[0], per_kde.calendar_size)


def _map_field(func, bandwidth, sm_kde, per_kde, field, per_field, n_workers):
    cal_kde = per_kde.calendar_steps()
    cal_field = per_field.calendar_steps()
    groups = [(np.flatnonzero(cal_kde == k), np.flatnonzero(cal_field == k))
              for k in range(per_kde.calendar_size)]

    def work(cells: np.ndarray):
        out = np.full((cells.size, field.shape[1]), NODATA)
        n_out_of_range = 0
        for i, cell in enumerate(cells):
            for k, (kde_steps, field_steps) in enumerate(groups):
                if field_steps.size == 0:
                    continue
                values, flags = func(field[cell, field_steps], sm_kde[cell, kde_steps],
                                     bandwidth.h[cell, k])
                out[i, field_steps] = values
                n_out_of_range += int(flags.sum())
        return out, n_out_of_range

    result = np.full(field.shape, NODATA)
    n_out_of_range = 0
    for cells, (chunk, n_flagged) in map_cells(work, field.shape[0], n_workers):
        result[cells] = chunk
        n_out_of_range += n_flagged

    introduced = valid_mask(field) & ~valid_mask(result)
    report = EstimationReport(
        n_unusable_cells=int(bandwidth.unusable_cells.size),
        n_nodata_introduced=int(introduced.sum()),
        n_out_of_range=n_out_of_range,
    )
    return result, report


def calculate_smi(
    bandwidth: BandwidthField,
    sm_kde: CellMatrix,
    per_kde: Period,
    sm_eval: CellMatrix,
    per_eval: Period,
    n_workers: Optional[int] = None,
) -> Tuple[np.ndarray, EstimationReport]:
    """SMI of every evaluation value under its cell's calendar-step CDF.

    Returns:
        (SMI field of shape sm_eval.shape, EstimationReport)
    """
    sm_kde = np.asarray(sm_kde, dtype=float)
    sm_eval = np.asarray(sm_eval, dtype=float)
    _check_inputs(bandwidth, sm_kde, per_kde, sm_eval, per_eval, "evaluation")

    def fwd(values, sample, h):
        return forward(values, sample, h), np.zeros(values.shape, dtype=bool)

    smi, report = _map_field(fwd, bandwidth, sm_kde, per_kde, sm_eval, per_eval, n_workers)
    if report.n_nodata_introduced:
        logger.warning(
            "SMI: %d values set to no-data (%d cells without usable kernel width)",
            report.n_nodata_introduced, report.n_unusable_cells,
        )
    return smi, report


def invert_smi(
    bandwidth: BandwidthField,
    sm_kde: CellMatrix,
    per_kde: Period,
    smi: CellMatrix,
    per_smi: Period,
    clamp: bool = False,
    n_workers: Optional[int] = None,
) -> Tuple[np.ndarray, EstimationReport]:
    """Back-transform an SMI field to soil moisture with the estimation CDFs."""
    sm_kde = np.asarray(sm_kde, dtype=float)
    smi = np.asarray(smi, dtype=float)
    _check_inputs(bandwidth, sm_kde, per_kde, smi, per_smi, "output")

    def inv(values, sample, h):
        return inverse_with_flags(values, sample, h, clamp=clamp)

    values, report = _map_field(inv, bandwidth, sm_kde, per_kde, smi, per_smi, n_workers)
    if report.n_out_of_range:
        logger.warning("Inversion: %d quantiles outside the CDF range set to no-data",
                       report.n_out_of_range)
    return values, report
