"""Binary drought indicator from the SMI field."""
from __future__ import annotations

import numpy as np

from smi.core.constants import NODATA_INT
from smi.core.exceptions import ConfigurationError, ErrorContext
from smi.core.types import CellMatrix, IndicatorGrid
from smi.estimation.kernel import valid_mask
from smi.grid.mask import GridMask


def drought_indicator(smi: CellMatrix, mask: GridMask, threshold: float) -> IndicatorGrid:
    """Flag cells under drought (SMI < threshold) on the full grid.

    Returns:
        int32 array (rows, cols, t): 1 drought, 0 no drought, NODATA_INT for
        no-data SMI and cells outside the mask.
    """
    if not np.isfinite(threshold) or threshold < 0:
        raise ConfigurationError(
            f"SMI threshold must be non-negative, got {threshold}",
            ErrorContext(component="indicator"),
        )
    smi = np.asarray(smi, dtype=float)
    if smi.ndim != 2:
        raise ConfigurationError(
            f"SMI field must be (n_cells, n_steps), got shape {smi.shape}",
            ErrorContext(component="indicator"),
        )
    mask.check_packed(smi, "SMI field")

    packed = np.full(smi.shape, NODATA_INT, dtype=np.int32)
    ok = valid_mask(smi)
    packed[ok] = (smi[ok] < threshold).astype(np.int32)
    return mask.unpack(packed, fill=NODATA_INT)
