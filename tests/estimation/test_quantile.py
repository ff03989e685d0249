"""
Tests for the forward (soil moisture -> SMI) and inverse quantile maps.
"""
import numpy as np
import pytest

from smi.core.constants import NODATA
from smi.core.exceptions import ConfigurationError, InversionRangeError
from smi.core.types import BandwidthMode
from smi.estimation.bandwidth import optimize_bandwidth
from smi.estimation.kernel import silverman_bandwidth
from smi.estimation.quantile import (
    EstimationReport,
    calculate_smi,
    cdf_bracket,
    forward,
    inverse,
    inverse_with_flags,
    invert_smi,
)
from smi.grid.period import Period


@pytest.fixture
def sample():
    return np.random.default_rng(21).gamma(4.0, 50.0, size=60)


@pytest.fixture
def h(sample):
    return silverman_bandwidth(sample)


class TestForward:

    def test_in_unit_interval_and_monotonic(self, sample, h):
        values = np.linspace(sample.min() - 100, sample.max() + 100, 1000)
        q = forward(values, sample, h)
        assert np.all((q >= 0) & (q <= 1))
        assert np.all(np.diff(q) >= 0)

    def test_median_region(self, sample, h):
        q = forward(np.median(sample), sample, h)[0]
        assert 0.4 < q < 0.6

    def test_nodata_value_propagates(self, sample, h):
        q = forward(np.array([NODATA, np.nan, sample[0]]), sample, h)
        assert q[0] == NODATA
        assert q[1] == NODATA
        assert 0 <= q[2] <= 1

    @pytest.mark.parametrize("bad_h", [np.nan, 0.0, -1.0, np.inf])
    def test_unusable_width_gives_nodata(self, sample, bad_h):
        q = forward(sample[:5], sample, bad_h)
        assert np.all(q == NODATA)

    def test_empty_sample_gives_nodata(self, h):
        assert forward(np.array([1.0]), np.array([NODATA]), h)[0] == NODATA


class TestInverse:

    def test_round_trip_quantiles(self, sample, h):
        q = np.linspace(0.001, 0.999, 500)
        values = inverse(q, sample, h)
        assert np.all(values != NODATA)
        np.testing.assert_allclose(forward(values, sample, h), q, atol=1e-8)

    def test_round_trip_values(self, sample, h):
        v = np.linspace(sample.min(), sample.max(), 200)
        np.testing.assert_allclose(inverse(forward(v, sample, h), sample, h), v, atol=1e-6)

    def test_inverse_is_monotonic(self, sample, h):
        values = inverse(np.linspace(0.01, 0.99, 99), sample, h)
        assert np.all(np.diff(values) > 0)

    def test_out_of_range_flagged(self, sample, h):
        values, flags = inverse_with_flags(np.array([0.0, 0.5, 1.0, 1.5]), sample, h)
        np.testing.assert_array_equal(flags, [True, False, True, True])
        assert values[0] == NODATA and values[2] == NODATA and values[3] == NODATA
        assert values[1] != NODATA

    def test_strict_raises(self, sample, h):
        with pytest.raises(InversionRangeError):
            inverse(np.array([1.0]), sample, h, strict=True)

    def test_clamp(self, sample, h):
        lo, hi = cdf_bracket(sample, h)
        values = inverse(np.array([0.0, 1.0]), sample, h, clamp=True)
        np.testing.assert_allclose(values, [lo, hi])

    def test_nodata_quantile(self, sample, h):
        values, flags = inverse_with_flags(np.array([NODATA]), sample, h)
        assert values[0] == NODATA
        assert not flags[0]


class TestFieldEstimation:

    @pytest.fixture
    def per_kde(self):
        return Period(1991, 1, 1, 2000, 12, 31, 12)

    @pytest.fixture
    def per_eval(self):
        return Period(2001, 1, 1, 2002, 12, 31, 12)

    @pytest.fixture
    def sm_kde(self, per_kde):
        rng = np.random.default_rng(8)
        data = 150.0 + 100.0 * rng.random((3, per_kde.n_steps))
        data[1] = 180.0
        return data

    @pytest.fixture
    def sm_eval(self, per_eval):
        rng = np.random.default_rng(9)
        data = 160.0 + 80.0 * rng.random((3, per_eval.n_steps))
        data[0, 3] = NODATA
        return data

    def test_calculate_smi(self, sm_kde, per_kde, sm_eval, per_eval):
        bandwidth = optimize_bandwidth(sm_kde, per_kde, n_workers=1)
        smi, report = calculate_smi(bandwidth, sm_kde, per_kde, sm_eval, per_eval, n_workers=2)

        assert smi.shape == sm_eval.shape
        assert np.all(smi[1] == NODATA)
        assert smi[0, 3] == NODATA
        valid = smi[[0, 2]]
        valid = valid[valid != NODATA]
        assert np.all((valid >= 0) & (valid <= 1))
        assert report.n_unusable_cells == 1
        assert report.n_nodata_introduced == per_eval.n_steps

    def test_smi_uses_matching_calendar_step(self, sm_kde, per_kde):
        bandwidth = optimize_bandwidth(sm_kde, per_kde, mode=BandwidthMode.SILVERMAN, n_workers=1)
        per_eval = Period(2001, 7, 1, 2001, 7, 31, 12)
        value = np.array([[200.0], [200.0], [200.0]])
        smi, _ = calculate_smi(bandwidth, sm_kde, per_kde, value, per_eval, n_workers=1)
        july = per_kde.calendar_steps() == 6
        expected = forward(200.0, sm_kde[0, july], bandwidth.h[0, 6])[0]
        assert smi[0, 0] == pytest.approx(expected)

    def test_invert_smi_recovers_values(self, sm_kde, per_kde):
        bandwidth = optimize_bandwidth(sm_kde, per_kde, n_workers=1)
        smi, _ = calculate_smi(bandwidth, sm_kde, per_kde, sm_kde, per_kde, n_workers=1)
        values, report = invert_smi(bandwidth, sm_kde, per_kde, smi, per_kde, n_workers=2)
        np.testing.assert_allclose(values[[0, 2]], sm_kde[[0, 2]], atol=1e-6)
        assert np.all(values[1] == NODATA)
        assert report.n_out_of_range == 0

    def test_shape_mismatch(self, sm_kde, per_kde, per_eval):
        bandwidth = optimize_bandwidth(sm_kde, per_kde, n_workers=1)
        with pytest.raises(ConfigurationError):
            calculate_smi(bandwidth, sm_kde, per_kde, np.zeros((3, 5)), per_eval)

    def test_calendar_mismatch(self, sm_kde, per_kde):
        bandwidth = optimize_bandwidth(sm_kde, per_kde, n_workers=1)
        per_daily = Period(2001, 1, 1, 2001, 1, 10, 365)
        with pytest.raises(ConfigurationError):
            calculate_smi(bandwidth, sm_kde, per_kde, np.zeros((3, 10)), per_daily)


def test_report_addition():
    total = EstimationReport(1, 2, 0) + EstimationReport(0, 3, 4)
    assert total == EstimationReport(1, 5, 4)
