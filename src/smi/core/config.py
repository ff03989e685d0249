"""
Configuration system with validation and environment awareness.
Based on Pydantic Settings; every run parameter of the SMI engine lives here.
"""
from pathlib import Path
import yaml
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional, Tuple, Union

from smi.core.constants import (
    DEFAULT_DELTA_AREA,
    DEFAULT_DURATIONS,
    DEFAULT_N_CELL_INTER,
    DEFAULT_SAD_PERCENTILES,
    DEFAULT_SMI_THRESHOLD,
    DEFAULT_TH_CELL_CLUS,
    MIN_CV_SAMPLE_SIZE,
    MONTHS_PER_YEAR,
)
from smi.core.exceptions import ConfigurationError, ErrorContext
from smi.core.types import BandwidthMode


class PeriodConfig(BaseSettings):
    """Start/end date of one period (estimation, evaluation or output)"""

    y_start: int = Field(..., description="First year")
    m_start: int = Field(1, ge=1, le=12)
    d_start: int = Field(1, ge=1, le=31)
    y_end: int = Field(..., description="Last year")
    m_end: int = Field(12, ge=1, le=12)
    d_end: int = Field(31, ge=1, le=31)

    model_config = SettingsConfigDict(env_prefix="SMI_PERIOD_", case_sensitive=False)

    @model_validator(mode="after")
    def check_order(self):
        if (self.y_end, self.m_end, self.d_end) < (self.y_start, self.m_start, self.d_start):
            raise ValueError("Period ends before it starts")
        return self

    def to_period(self, n_calendar_steps: int):
        """Build the runtime Period for this date range"""
        from smi.grid.period import Period

        return Period(
            y_start=self.y_start, m_start=self.m_start, d_start=self.d_start,
            y_end=self.y_end, m_end=self.m_end, d_end=self.d_end,
            n_calendar_steps=n_calendar_steps,
        )


class EstimationConfig(BaseSettings):
    """Configuration for bandwidth optimization and the quantile engine"""

    mode: BandwidthMode = Field(
        BandwidthMode.CROSS_VALIDATION,
        description="Bandwidth selection: cross_validation or silverman",
    )
    min_cv_samples: int = Field(
        MIN_CV_SAMPLE_SIZE, ge=2,
        description="Minimum valid observations for cross-validation",
    )
    n_workers: Optional[int] = Field(
        None, gt=0, description="Thread pool size (default: os.cpu_count())")
    invert_smi: bool = Field(False, description="Back-transform SMI to soil moisture")
    clamp_inverse: bool = Field(
        False, description="Clamp out-of-range quantiles instead of flagging no-data")
    bandwidth_file: Optional[Path] = Field(
        None, description="Pre-computed bandwidth field (.npz), skips optimization")

    model_config = SettingsConfigDict(env_prefix="SMI_ESTIMATION_", case_sensitive=False)


class DroughtConfig(BaseSettings):
    """Configuration for the drought indicator and cluster tracking"""

    do_cluster: bool = Field(True, description="Track drought clusters")
    smi_threshold: float = Field(DEFAULT_SMI_THRESHOLD, ge=0, le=1)
    th_cell_clus: int = Field(
        DEFAULT_TH_CELL_CLUS, ge=0, description="Minimum cells for a cluster in space")
    n_cell_inter: int = Field(
        DEFAULT_N_CELL_INTER, ge=0, description="Shared cells for joining clusters in time")
    cell_size: float = Field(1.0, gt=0, description="Cell edge length (e.g. km)")

    model_config = SettingsConfigDict(env_prefix="SMI_DROUGHT_", case_sensitive=False)


class SADConfig(BaseSettings):
    """Configuration for severity-area-duration analysis"""

    do_sad: bool = Field(False, description="Run SAD analysis")
    durations: List[int] = Field(list(DEFAULT_DURATIONS), description="Durations in steps")
    delta_area: int = Field(DEFAULT_DELTA_AREA, gt=0, description="Cells per area bin")
    percentiles: List[float] = Field(list(DEFAULT_SAD_PERCENTILES))

    model_config = SettingsConfigDict(env_prefix="SMI_SAD_", case_sensitive=False)

    @field_validator("durations")
    @classmethod
    def check_durations(cls, v):
        if not v or any(d <= 0 for d in v):
            raise ValueError("Durations must be positive")
        return sorted(set(v))

    @field_validator("percentiles")
    @classmethod
    def check_percentiles(cls, v):
        if any(p < 0 or p > 100 for p in v):
            raise ValueError("Percentiles must lie in [0, 100]")
        return v


class SmiConfig(BaseSettings):
    """Main configuration for an SMI run"""

    project_name: str = "smi"
    n_calendar_steps_year: int = Field(
        MONTHS_PER_YEAR, gt=0, description="Calendar steps per year (12 monthly, 365 daily)")

    estimation_period: Optional[PeriodConfig] = None
    evaluation_period: Optional[PeriodConfig] = None
    output_period: Optional[PeriodConfig] = None

    estimation: EstimationConfig = Field(default_factory=EstimationConfig)
    drought: DroughtConfig = Field(default_factory=DroughtConfig)
    sad: SADConfig = Field(default_factory=SADConfig)

    do_basin: bool = Field(False, description="Average SMI over basins")
    output_dir: Path = Field(Path("./output"))

    model_config = SettingsConfigDict(
        env_prefix="SMI_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    def periods(self) -> Tuple:
        """Return (estimation, evaluation, output) periods"""
        if self.estimation_period is None or self.evaluation_period is None:
            raise ConfigurationError(
                "Estimation and evaluation periods must be configured",
                ErrorContext(component="config"),
            )
        n = self.n_calendar_steps_year
        per_kde = self.estimation_period.to_period(n)
        per_eval = self.evaluation_period.to_period(n)
        per_smi = (self.output_period or self.evaluation_period).to_period(n)
        return per_kde, per_eval, per_smi

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "SmiConfig":
        """Load configuration from YAML file"""
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise ConfigurationError(f"Config file not found: {yaml_path}")

        with open(yaml_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        return build_config(**yaml_config)

    def to_yaml(self, yaml_path: Union[str, Path]):
        """Save configuration to YAML file"""
        yaml_path = Path(yaml_path)
        yaml_path.parent.mkdir(parents=True, exist_ok=True)

        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)


def build_config(**kwargs) -> SmiConfig:
    """Create a validated SmiConfig, raising ConfigurationError on bad input"""
    try:
        return SmiConfig(**kwargs)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e}", ErrorContext(component="config")) from e


# Global configuration instance
_config: Optional[SmiConfig] = None


def get_config(config_path: Optional[Path] = None) -> SmiConfig:
    """Get or create configuration instance (singleton pattern)"""
    global _config

    if _config is None:
        if config_path and Path(config_path).exists():
            _config = SmiConfig.from_yaml(config_path)
        else:
            # Try to load from environment
            _config = build_config()

    return _config


def set_config(config: Optional[SmiConfig]):
    """Set configuration (useful for testing)"""
    global _config
    _config = config
