"""
Tests for kernel bandwidth selection.
"""
import numpy as np
import pytest

from smi.core.constants import CV_BOUND_FACTORS
from smi.core.exceptions import ConfigurationError
from smi.core.types import BandwidthMode, BandwidthStatus
from smi.estimation.bandwidth import (
    BandwidthField,
    cross_validated_bandwidth,
    optimize_bandwidth,
    select_bandwidth,
)
from smi.estimation.kernel import silverman_bandwidth, squared_differences, ucv_score
from smi.grid.period import Period


class TestSelectBandwidth:

    @pytest.fixture
    def sample(self):
        return np.random.default_rng(11).normal(100.0, 15.0, size=200)

    def test_silverman_mode(self, sample):
        h, status = select_bandwidth(sample, BandwidthMode.SILVERMAN)
        assert status == BandwidthStatus.OK
        assert h == pytest.approx(silverman_bandwidth(sample))

    def test_cross_validation_within_bounds(self, sample):
        h_rule = silverman_bandwidth(sample)
        h, status = select_bandwidth(sample, BandwidthMode.CROSS_VALIDATION)
        assert status == BandwidthStatus.OK
        assert CV_BOUND_FACTORS[0] * h_rule <= h <= CV_BOUND_FACTORS[1] * h_rule

    def test_cross_validation_improves_score(self, sample):
        sq = squared_differences(sample)
        h_rule = silverman_bandwidth(sample)
        h = cross_validated_bandwidth(sample)
        assert ucv_score(h, sq) <= ucv_score(h_rule, sq) + 1e-12

    def test_bimodal_sample_gets_narrower_kernel(self):
        rng = np.random.default_rng(3)
        x = np.concatenate([rng.normal(0.1, 0.01, 100), rng.normal(0.4, 0.01, 100)])
        h, status = select_bandwidth(x, BandwidthMode.CROSS_VALIDATION)
        assert status == BandwidthStatus.OK
        assert h < silverman_bandwidth(x)

    def test_small_sample_falls_back_to_rule(self):
        x = np.array([0.1, 0.2, 0.4])
        h, status = select_bandwidth(x, BandwidthMode.CROSS_VALIDATION, min_cv_samples=5)
        assert status == BandwidthStatus.RULE_FALLBACK
        assert h == pytest.approx(silverman_bandwidth(x))

    @pytest.mark.parametrize("x", [np.full(20, 0.3), np.array([0.3]), np.array([])])
    def test_degenerate_sample_unusable(self, x):
        h, status = select_bandwidth(x)
        assert status == BandwidthStatus.UNUSABLE
        assert np.isnan(h)


class TestOptimizeBandwidth:

    @pytest.fixture
    def per_kde(self):
        return Period(1990, 1, 1, 1999, 12, 31, 12)

    @pytest.fixture
    def sm_kde(self, per_kde):
        rng = np.random.default_rng(5)
        data = 200.0 + 40.0 * rng.random((4, per_kde.n_steps))
        data[2] = 150.0  # constant cell
        data[3, :5] = -9999.0  # some no-data
        return data

    def test_field_shape_and_guarantee(self, sm_kde, per_kde):
        field = optimize_bandwidth(sm_kde, per_kde, n_workers=1)
        assert field.h.shape == (4, 12)
        usable = field.usable()
        assert np.all(np.isfinite(field.h[usable]) & (field.h[usable] > 0))
        assert np.all(np.isnan(field.h[~usable]))
        np.testing.assert_array_equal(field.unusable_cells, [2])

    def test_threads_match_sequential(self, sm_kde, per_kde):
        seq = optimize_bandwidth(sm_kde, per_kde, n_workers=1)
        par = optimize_bandwidth(sm_kde, per_kde, n_workers=3)
        np.testing.assert_array_equal(seq.status, par.status)
        np.testing.assert_allclose(seq.h, par.h, equal_nan=True)

    def test_short_record_uses_rule(self):
        per = Period(2000, 1, 1, 2001, 12, 31, 12)
        data = np.random.default_rng(1).random((2, per.n_steps))
        field = optimize_bandwidth(data, per, n_workers=1)
        assert np.all(field.status == BandwidthStatus.RULE_FALLBACK)
        assert field.n_fallback == 24

    def test_shape_mismatch(self, per_kde):
        with pytest.raises(ConfigurationError):
            optimize_bandwidth(np.zeros((3, 10)), per_kde)

    def test_save_load(self, sm_kde, per_kde, tmp_path):
        field = optimize_bandwidth(sm_kde, per_kde, mode=BandwidthMode.SILVERMAN, n_workers=1)
        path = tmp_path / "bandwidth.npz"
        field.save(path)
        loaded = BandwidthField.load(path)
        np.testing.assert_allclose(loaded.h, field.h, equal_nan=True)
        np.testing.assert_array_equal(loaded.status, field.status)

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            BandwidthField.load(tmp_path / "absent.npz")

    def test_load_without_status(self, tmp_path):
        path = tmp_path / "widths.npz"
        np.savez(path, h=np.ones((2, 12)))
        with pytest.raises(ConfigurationError) as excinfo:
            BandwidthField.load(path)
        assert excinfo.value.context.operation == "load"

    def test_validate_rejects_bad_widths(self):
        field = BandwidthField(h=np.array([[0.1, -1.0]]),
                               status=np.array([[0, 0]], dtype=np.int8))
        with pytest.raises(ConfigurationError):
            field.validate(1, 2)
        with pytest.raises(ConfigurationError):
            field.validate(2, 2)
