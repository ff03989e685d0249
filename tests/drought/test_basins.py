"""
Tests for basin-averaged SMI.
"""
import numpy as np
import pandas as pd
import pytest

from smi.core.constants import NODATA
from smi.core.exceptions import ConfigurationError
from smi.drought.basins import basin_average
from smi.grid.mask import GridMask


class TestBasinAverage:

    @pytest.fixture
    def mask(self):
        return GridMask(np.ones((2, 2), dtype=bool))

    @pytest.fixture
    def smi(self):
        return np.array([
            [0.2, 0.4],
            [0.4, NODATA],
            [NODATA, NODATA],
            [0.9, 0.9],
        ])

    def test_basin_means(self, mask, smi):
        basins = np.array([[1, 1], [2, 0]])
        result = basin_average(smi, mask, basins)
        assert list(result.columns) == [1, 2]
        np.testing.assert_allclose(result[1], [0.3, 0.4])
        assert result[2].isna().all()

    def test_time_index(self, mask, smi):
        index = pd.date_range("2000-01-01", periods=2, freq="MS")
        result = basin_average(smi, mask, np.ones((2, 2), dtype=int), index=index)
        assert result.index.equals(index)
        np.testing.assert_allclose(result[1], [0.5, 0.65])

    def test_grid_mismatch(self, mask, smi):
        with pytest.raises(ConfigurationError):
            basin_average(smi, mask, np.ones((3, 2), dtype=int))
