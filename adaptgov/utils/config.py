"""Configuration management for adaptgov."""

from pathlib import Path
from typing import Any, Dict, Optional, Union
from omegaconf import OmegaConf, DictConfig
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings


class Bound(BaseModel):
    """Closed numeric range. ``minimum`` may be omitted for one-sided bounds."""

    minimum: Optional[float] = None
    maximum: float

    @model_validator(mode="after")
    def _check_order(self) -> "Bound":
        if self.minimum is not None and self.minimum > self.maximum:
            raise ValueError(f"minimum {self.minimum} > maximum {self.maximum}")
        return self


class ParameterBoundsConfig(BaseModel):
    """Hard ranges for the governed parameters."""

    max_tasks: Bound = Field(default=Bound(minimum=3, maximum=7))
    strictness: Bound = Field(default=Bound(minimum=0.3, maximum=0.8))
    # One-sided: at most one coach nudge every 15 minutes
    coach_frequency: Bound = Field(default=Bound(maximum=1 / 15))
    session_buffer: Bound = Field(default=Bound(minimum=0, maximum=120))
    estimation_factor: Bound = Field(default=Bound(minimum=0.5, maximum=3.0))


class SignalLogConfig(BaseModel):
    """Signal memory limits."""

    max_size: int = Field(default=500, ge=1)
    max_age_days: int = Field(default=90, ge=1)
    export_before_prune: bool = Field(default=True)


class AggregationConfig(BaseModel):
    """Thresholds for the derived aggregate flags."""

    flexibility_forced_ratio: float = Field(default=0.6, ge=0.0, le=1.0)
    structure_forced_ratio: float = Field(default=0.1, ge=0.0, le=1.0)
    structure_rejected_ratio: float = Field(default=0.7, ge=0.0, le=1.0)
    energy_mismatch_ratio: float = Field(default=0.3, ge=0.0, le=1.0)
    mode_override_ratio: float = Field(default=0.3, ge=0.0, le=1.0)
    default_overrun_minutes: float = Field(default=15.0, ge=0.0)


class RuleConfig(BaseModel):
    """Thresholds and step sizes of the adjustment rules."""

    forced_ratio: float = Field(default=0.6, ge=0.0, le=1.0)
    max_tasks_step: int = Field(default=1)
    strictness_step: float = Field(default=0.1)

    rejected_ratio: float = Field(default=0.7, ge=0.0, le=1.0)
    coach_frequency_factor: float = Field(default=0.8, gt=0.0)
    coach_frequency_floor: float = Field(default=1 / 365, ge=0.0)

    overrun_minutes: float = Field(default=30.0, ge=0.0)
    session_buffer_step: float = Field(default=15.0)
    estimation_factor_multiplier: float = Field(default=1.2, gt=0.0)


class GateConfig(BaseModel):
    """Governance gates that can short-circuit a weekly cycle."""

    # Stand-in for a 30 day minimum observation window
    min_signals: int = Field(default=50, ge=0)

    abuse_window_days: int = Field(default=30, ge=1)
    max_override_rate: float = Field(default=0.8, ge=0.0, le=1.0)
    abuse_min_signals: int = Field(default=20, ge=0)

    transparency_window_days: int = Field(default=7, ge=1)
    max_adaptations_per_window: int = Field(default=3, ge=1)


class ConsentConfig(BaseModel):
    """When a proposal needs explicit user consent."""

    max_tasks_threshold: int = Field(default=5)
    strictness_threshold: float = Field(default=0.4)
    review_relative_change: float = Field(default=0.5, gt=0.0)
    proposal_max_age_days: int = Field(default=30, ge=1)


class DriftConfig(BaseModel):
    """Parameter drift monitoring."""

    max_snapshots: int = Field(default=90, ge=28)
    recent_window: int = Field(default=7, ge=1)
    baseline_offset: int = Field(default=14, ge=1)
    baseline_span: int = Field(default=7, ge=1)
    thresholds: Dict[str, float] = Field(
        default_factory=lambda: {"strictness": 0.2, "max_tasks": 1.0}
    )
    progressive_weeks: int = Field(default=4, ge=2)
    progressive_threshold: float = Field(default=0.3, gt=0.0)


class HistoryConfig(BaseModel):
    """Audit trail sizes."""

    max_entries: int = Field(default=500, ge=1)
    governance_log_size: int = Field(default=500, ge=1)


class GovernanceConfig(BaseModel):
    """Complete configuration of one adaptation engine."""

    bounds: ParameterBoundsConfig = Field(default_factory=ParameterBoundsConfig)
    signal_log: SignalLogConfig = Field(default_factory=SignalLogConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    rules: RuleConfig = Field(default_factory=RuleConfig)
    gates: GateConfig = Field(default_factory=GateConfig)
    consent: ConsentConfig = Field(default_factory=ConsentConfig)
    drift: DriftConfig = Field(default_factory=DriftConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)


class EnvSettings(BaseSettings):
    """Environment settings loaded from .env file."""

    log_level: str = Field(default="INFO")
    log_file: Optional[str] = None
    config_path: str = Field(default="configs/default.yaml")

    model_config = {
        "env_prefix": "ADAPTGOV_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


def load_config(
    config_path: Union[str, Path] = "configs/default.yaml",
    overrides: Optional[Dict[str, Any]] = None,
) -> DictConfig:
    """
    Load configuration from YAML file with optional overrides.

    Args:
        config_path: Path to YAML configuration file
        overrides: Dictionary of configuration overrides

    Returns:
        OmegaConf DictConfig object
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    config = OmegaConf.load(config_path)

    if overrides:
        override_config = OmegaConf.create(overrides)
        config = OmegaConf.merge(config, override_config)

    OmegaConf.resolve(config)

    return config


def governance_config_from(config: Optional[DictConfig] = None) -> GovernanceConfig:
    """Validate a loaded DictConfig (or nothing) into a GovernanceConfig."""
    if config is None:
        return GovernanceConfig()

    data = OmegaConf.to_container(config, resolve=True)
    section = data.get("governance", data) if isinstance(data, dict) else {}
    return GovernanceConfig.model_validate(section or {})


def load_env_settings() -> EnvSettings:
    """Load environment settings from .env file."""
    return EnvSettings()


def save_config(config: DictConfig, path: Union[str, Path]) -> None:
    """Save configuration to YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    OmegaConf.save(config, path)


def get_config_hash(config: DictConfig) -> str:
    """Get a hash of the configuration for versioning."""
    import hashlib

    config_str = OmegaConf.to_yaml(config)
    return hashlib.sha256(config_str.encode()).hexdigest()[:16]
