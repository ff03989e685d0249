"""Gaussian kernel primitives: Silverman's rule, the UCV score and the kernel CDF."""
from __future__ import annotations

import numpy as np
from scipy.special import ndtr

from smi.core.constants import EPSILON, MIN_SAMPLE_SIZE, NODATA, SILVERMAN_FACTOR
from smi.core.exceptions import DegenerateSampleError

_SQRT_PI = np.sqrt(np.pi)
_SQRT_2PI = np.sqrt(2.0 * np.pi)


def valid_mask(values: np.ndarray) -> np.ndarray:
    """True where a value is a real observation (finite and not the sentinel)."""
    values = np.asarray(values, dtype=float)
    return np.isfinite(values) & (values != NODATA)


def valid_sample(values: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=float)
    return values[valid_mask(values)]


def silverman_bandwidth(sample: np.ndarray) -> float:
    """Rule-of-thumb Gaussian bandwidth, (4 / 3n)^(1/5) * std.

    Raises:
        DegenerateSampleError: fewer than two observations or zero variance.
    """
    x = valid_sample(sample)
    n = x.size
    if n < MIN_SAMPLE_SIZE:
        raise DegenerateSampleError(f"{n} valid observations, need {MIN_SAMPLE_SIZE}")
    std = float(np.std(x, ddof=1))
    if not np.isfinite(std) or std <= EPSILON * max(1.0, float(np.max(np.abs(x)))):
        raise DegenerateSampleError("Sample has no variance")
    return float(SILVERMAN_FACTOR * std * n ** (-0.2))


def squared_differences(sample: np.ndarray) -> np.ndarray:
    x = np.asarray(sample, dtype=float)
    d = x[:, None] - x[None, :]
    return d * d


def ucv_score(h: float, sq_diff: np.ndarray) -> float:
    """Unbiased (least-squares) leave-one-out score of a Gaussian KDE.

    UCV(h) = int f_h^2 - 2/n sum_i f_h,-i(x_i), both terms in closed form for
    the Gaussian kernel. ``sq_diff`` holds (x_i - x_j)^2 for the sample.
    """
    n = sq_diff.shape[0]
    u2 = sq_diff / (h * h)
    integral = np.exp(-0.25 * u2).sum() / (n * n * h * 2.0 * _SQRT_PI)
    loo = (np.exp(-0.5 * u2).sum() - n) / ((n - 1) * h * _SQRT_2PI)
    return float(integral - 2.0 * loo / n)


def kernel_cdf(values: np.ndarray, sample: np.ndarray, h: float) -> np.ndarray:
    """Gaussian-kernel CDF of ``sample`` with bandwidth ``h`` at ``values``."""
    values = np.atleast_1d(np.asarray(values, dtype=float))
    x = np.asarray(sample, dtype=float)
    return ndtr((values[:, None] - x[None, :]) / h).mean(axis=1)


def kernel_density(values: np.ndarray, sample: np.ndarray, h: float) -> np.ndarray:
    """Gaussian-kernel density of ``sample`` with bandwidth ``h`` at ``values``."""
    values = np.atleast_1d(np.asarray(values, dtype=float))
    x = np.asarray(sample, dtype=float)
    u = (values[:, None] - x[None, :]) / h
    return np.exp(-0.5 * u * u).mean(axis=1) / (h * _SQRT_2PI)
