"""
No-data sentinels, numerical tolerances and system-wide defaults.
"""
import numpy as np
from typing import Final, Tuple

# No-data sentinels
NODATA: Final[float] = -9999.0
NODATA_INT: Final[int] = -9999

# Calendar
MONTHS_PER_YEAR: Final[int] = 12
DAYS_PER_YEAR: Final[int] = 365

# Kernel estimation
SILVERMAN_FACTOR: Final[float] = (4.0 / 3.0) ** 0.2  # ~1.0592
MIN_SAMPLE_SIZE: Final[int] = 2  # below this no bandwidth exists
MIN_CV_SAMPLE_SIZE: Final[int] = 5  # below this cross-validation falls back to the rule
CV_BOUND_FACTORS: Final[Tuple[float, float]] = (0.2, 5.0)  # search range relative to Silverman
CV_XATOL: Final[float] = 1e-6

# Inversion
INVERSE_BRACKET_WIDTHS: Final[float] = 5.0  # bandwidths beyond the sample range
INVERSE_XTOL: Final[float] = 1e-10
INVERSE_MAX_ITER: Final[int] = 200

# Numerical stability
EPSILON: Final[float] = 1e-12

# Drought defaults (monthly mHM-style run)
DEFAULT_SMI_THRESHOLD: Final[float] = 0.2
DEFAULT_TH_CELL_CLUS: Final[int] = 25
DEFAULT_N_CELL_INTER: Final[int] = 250
DEFAULT_DELTA_AREA: Final[int] = 10
DEFAULT_DURATIONS: Final[Tuple[int, ...]] = (3, 6, 9, 12)
DEFAULT_SAD_PERCENTILES: Final[Tuple[float, ...]] = (50.0, 90.0, 96.0, 98.0)

# 8-connectivity for drought clusters
CLUSTER_STRUCTURE: Final[np.ndarray] = np.ones((3, 3), dtype=bool)
