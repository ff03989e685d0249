"""
Tests for the drought indicator.
"""
import numpy as np
import pytest

from smi.core.constants import NODATA, NODATA_INT
from smi.core.exceptions import ConfigurationError
from smi.drought.indicator import drought_indicator
from smi.grid.mask import GridMask


class TestDroughtIndicator:

    @pytest.fixture
    def mask(self):
        return GridMask(np.array([[True, True], [False, True]]))

    @pytest.fixture
    def smi(self):
        return np.array([
            [0.1, 0.5],
            [0.2, NODATA],
            [0.19, np.nan],
        ])

    def test_threshold(self, mask, smi):
        ind = drought_indicator(smi, mask, 0.2)
        assert ind.shape == (2, 2, 2)
        assert ind.dtype == np.int32
        assert ind[0, 0, 0] == 1
        assert ind[0, 0, 1] == 0
        assert ind[0, 1, 0] == 0  # SMI equal to threshold is not drought
        assert ind[1, 1, 0] == 1

    def test_nodata_propagates(self, mask, smi):
        ind = drought_indicator(smi, mask, 0.2)
        assert ind[0, 1, 1] == NODATA_INT
        assert ind[1, 1, 1] == NODATA_INT
        assert np.all(ind[1, 0, :] == NODATA_INT)  # outside mask

    def test_idempotent(self, mask, smi):
        first = drought_indicator(smi, mask, 0.2)
        second = drought_indicator(smi, mask, 0.2)
        np.testing.assert_array_equal(first, second)

    def test_negative_threshold(self, mask, smi):
        with pytest.raises(ConfigurationError):
            drought_indicator(smi, mask, -0.1)

    def test_cell_count_mismatch(self, mask):
        with pytest.raises(ConfigurationError):
            drought_indicator(np.zeros((4, 2)), mask, 0.2)
