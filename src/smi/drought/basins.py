"""Basin-averaged SMI series."""
from __future__ import annotations

from typing import Optional

import numpy as np
import pandas as pd

from smi.core.types import CellMatrix
from smi.estimation.kernel import valid_mask
from smi.grid.mask import GridMask


def basin_average(smi: CellMatrix, mask: GridMask, basin_ids: np.ndarray,
                  index: Optional[pd.Index] = None) -> pd.DataFrame:
    """
    Mean SMI of each basin at each step.

    Args:
        smi: SMI field (n_cells, n_steps).
        mask: Grid mask the field is packed with.
        basin_ids: Integer grid (rows, cols); ids <= 0 lie outside any basin.
        index: Optional time labels for the rows.

    Returns:
        DataFrame (steps x basin ids); NaN where a basin has no valid value.
    """
    mask.check_grid(basin_ids, "basin id map")
    smi = np.asarray(smi, dtype=float)
    mask.check_packed(smi, "SMI field")

    ids = mask.pack(np.asarray(basin_ids)).astype(int)
    valid = valid_mask(smi)
    values = np.where(valid, smi, 0.0)

    columns = {}
    for basin in np.unique(ids[ids > 0]):
        in_basin = ids == basin
        counts = valid[in_basin].sum(axis=0)
        sums = values[in_basin].sum(axis=0)
        with np.errstate(invalid="ignore", divide="ignore"):
            columns[int(basin)] = np.where(counts > 0, sums / counts, np.nan)

    frame = pd.DataFrame(columns, index=index if index is not None else pd.RangeIndex(smi.shape[1]))
    frame.columns.name = "basin_id"
    return frame
