"""
Grid mask model: valid land cells and the packed 1-D cell index space.
"""
from __future__ import annotations

from typing import Optional

import numpy as np

from smi.core.constants import NODATA
from smi.core.exceptions import ConfigurationError, ErrorContext
from smi.core.types import BoolGrid


class GridMask:
    """
    2-D validity mask with pack/unpack between grid and cell space.

    Packed arrays follow the row-major scan of the ``True`` entries, the same
    order as ``mask[mask]``.
    """

    def __init__(self, mask: BoolGrid):
        mask = np.asarray(mask)
        if mask.ndim != 2:
            raise ConfigurationError(
                f"Mask must be 2-D, got shape {mask.shape}",
                ErrorContext(component="grid"),
            )
        self.mask = mask.astype(bool)
        if not self.mask.any():
            raise ConfigurationError("Mask has no valid cells", ErrorContext(component="grid"))

        self.rows, self.cols = np.nonzero(self.mask)
        # grid position -> packed index, -1 outside the mask
        self._lookup = np.full(self.mask.shape, -1, dtype=np.int64)
        self._lookup[self.rows, self.cols] = np.arange(self.n_cells)

    @property
    def shape(self):
        return self.mask.shape

    @property
    def n_cells(self) -> int:
        return int(self.rows.size)

    def cell_coordinates(self) -> np.ndarray:
        """(n_cells, 2) array of (row, col) per packed cell"""
        return np.column_stack([self.rows, self.cols])

    def packed_index(self, grid: np.ndarray) -> np.ndarray:
        """Packed cell indices of the True entries of a boolean grid"""
        idx = self._lookup[np.asarray(grid, dtype=bool)]
        return idx[idx >= 0]

    def contains(self, cells: np.ndarray) -> bool:
        cells = np.asarray(cells)
        return bool(cells.size == 0 or (cells.min() >= 0 and cells.max() < self.n_cells))

    def check_grid(self, grid: np.ndarray, name: str = "grid") -> None:
        """Raise ConfigurationError if ``grid`` does not match the mask's rows/cols"""
        if np.shape(grid)[:2] != self.shape:
            raise ConfigurationError(
                f"{name} has spatial shape {np.shape(grid)[:2]}, mask is {self.shape}",
                ErrorContext(component="grid", operation="check_grid"),
            )

    def check_packed(self, data: np.ndarray, name: str = "data") -> None:
        """Raise ConfigurationError if ``data`` is not (n_cells, ...)"""
        if np.ndim(data) < 1 or np.shape(data)[0] != self.n_cells:
            raise ConfigurationError(
                f"{name} has {np.shape(data)[0] if np.ndim(data) else 0} cells, "
                f"mask has {self.n_cells}",
                ErrorContext(component="grid", operation="check_packed"),
            )

    def pack(self, grid: np.ndarray) -> np.ndarray:
        """(rows, cols[, t]) -> (n_cells[, t])"""
        self.check_grid(grid)
        return np.asarray(grid)[self.rows, self.cols].copy()

    def unpack(self, data: np.ndarray, fill: Optional[float] = NODATA) -> np.ndarray:
        """(n_cells[, t]) -> (rows, cols[, t]) with ``fill`` outside the mask"""
        data = np.asarray(data)
        self.check_packed(data)
        out = np.full(self.shape + data.shape[1:], fill, dtype=data.dtype)
        out[self.rows, self.cols] = data
        return out
