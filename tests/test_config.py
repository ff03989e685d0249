"""
Tests for the pydantic-settings run configuration.
"""
import pytest

from smi.core.config import (
    DroughtConfig,
    SmiConfig,
    build_config,
    get_config,
    set_config,
)
from smi.core.exceptions import ConfigurationError
from smi.core.types import BandwidthMode


class TestSmiConfig:

    def test_defaults(self):
        cfg = build_config()
        assert cfg.n_calendar_steps_year == 12
        assert cfg.estimation.mode == BandwidthMode.CROSS_VALIDATION
        assert cfg.drought.smi_threshold == pytest.approx(0.2)
        assert cfg.sad.durations == [3, 6, 9, 12]

    def test_negative_threshold_rejected(self):
        with pytest.raises(ConfigurationError):
            build_config(drought={"th_cell_clus": -1})
        with pytest.raises(ConfigurationError):
            build_config(drought={"smi_threshold": -0.1})

    def test_non_positive_calendar_steps_rejected(self):
        with pytest.raises(ConfigurationError):
            build_config(n_calendar_steps_year=0)

    def test_durations_sorted_unique(self):
        cfg = build_config(sad={"durations": [6, 3, 6]})
        assert cfg.sad.durations == [3, 6]

    def test_periods(self):
        cfg = build_config(
            estimation_period={"y_start": 1990, "y_end": 1999},
            evaluation_period={"y_start": 2000, "y_end": 2001},
        )
        per_kde, per_eval, per_smi = cfg.periods()
        assert per_kde.n_steps == 120
        assert per_eval.n_steps == 24
        assert per_smi == per_eval

    def test_missing_periods(self):
        with pytest.raises(ConfigurationError):
            build_config().periods()

    def test_period_order_validated(self):
        with pytest.raises(ConfigurationError):
            build_config(estimation_period={"y_start": 2000, "y_end": 1999})

    def test_yaml_roundtrip(self, tmp_path):
        cfg = build_config(
            estimation_period={"y_start": 1990, "y_end": 1999},
            evaluation_period={"y_start": 1990, "y_end": 1999},
            drought={"th_cell_clus": 3, "n_cell_inter": 5},
            estimation={"mode": "silverman"},
        )
        path = tmp_path / "smi.yaml"
        cfg.to_yaml(path)
        loaded = SmiConfig.from_yaml(path)
        assert loaded.drought.th_cell_clus == 3
        assert loaded.drought.n_cell_inter == 5
        assert loaded.estimation.mode == BandwidthMode.SILVERMAN
        assert loaded.estimation_period.y_start == 1990

    def test_missing_yaml(self, tmp_path):
        with pytest.raises(ConfigurationError):
            SmiConfig.from_yaml(tmp_path / "missing.yaml")

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("SMI_DROUGHT_TH_CELL_CLUS", "7")
        assert DroughtConfig().th_cell_clus == 7

    def test_global_config(self):
        cfg = build_config(project_name="test")
        set_config(cfg)
        try:
            assert get_config() is cfg
        finally:
            set_config(None)
