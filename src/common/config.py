# ABOUTME: Declares the tunable constants of the tracker, profiler, and oracle as typed configs.
# ABOUTME: Loads YAML overrides and parses per-request simulation options with explicit defaults.

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .schemas import as_float, clamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MasteryConfig:
    """Constants for the confidence-weighted proficiency update and blind spots."""

    easy_weight: float = 1.0
    medium_weight: float = 1.5
    hard_weight: float = 2.5
    attempts_for_full_confidence: int = 100
    base_update_weight: float = 0.5
    update_weight_damping: float = 0.4
    exposure_per_item: float = 0.002
    blind_spot_weight_threshold: float = 0.10
    blind_spot_exposure_threshold: float = 0.10
    startup_decay_after_days: float = 2.0


@dataclass(frozen=True)
class BehaviorConfig:
    """Learning rates, decay, and normalization bands for the trait profile."""

    passive_rate: float = 0.15
    active_rate: float = 0.08
    confidence_step: float = 0.05
    daily_decay_factor: float = 0.98
    impulse_threshold_ms: float = 1500.0
    fast_item_ms: float = 10_000.0
    slow_item_ms: float = 120_000.0
    endurance_min_items: int = 8


@dataclass(frozen=True)
class ModelWeights:
    simulated: float
    bayesian: float
    pattern: float

    @property
    def total(self) -> float:
        return self.simulated + self.bayesian + self.pattern


@dataclass(frozen=True)
class SimulationConfig:
    """
    Every option the oracle recognizes, with its default.

    `weights` overrides the adaptive history-based weighting when set.
    """

    run_count: int = 500
    noise_scale: float = 5.0
    subject_share: float = 0.7
    deviate_clip: float = 3.5
    panic_deviate_threshold: float = -1.0
    max_marks: float = 200.0
    conservative_baseline: float = 70.0
    prior_confidence: float = 0.1
    gating_pass_marks: float = 66.67
    materiality_marks: float = 1.0
    mistake_alert_level: float = 0.95
    gambler_penalty_scale: float = 8000.0
    fatigue_penalty_scale: float = 160.0
    fatigue_penalty_floor: float = 2.0
    panic_penalty_scale: float = 40.0
    rich_history_threshold: int = 50
    sparse_history_threshold: int = 10
    score_precision: int = 0
    curve_points: int = 20
    curve_min_sigma: float = 2.0
    seed: Optional[int] = None
    weights: Optional[ModelWeights] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SimulationConfig":
        """Parse loosely-typed options; unknown keys are ignored, bad values fall back."""
        if not isinstance(data, Mapping) or not data:
            return cls()
        base = cls()
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown simulation options: %s", ", ".join(unknown))

        updates: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data or f.name in ("seed", "weights"):
                continue
            default = getattr(base, f.name)
            if isinstance(default, int):
                updates[f.name] = int(as_float(data[f.name], default))
            else:
                updates[f.name] = as_float(data[f.name], default)

        seed = data.get("seed")
        if seed is not None:
            updates["seed"] = int(as_float(seed, 0))
        weights = data.get("weights")
        if isinstance(weights, Mapping):
            updates["weights"] = ModelWeights(
                simulated=max(0.0, as_float(weights.get("simulated"))),
                bayesian=max(0.0, as_float(weights.get("bayesian"))),
                pattern=max(0.0, as_float(weights.get("pattern"))),
            )

        config = replace(base, **updates)
        return replace(
            config,
            run_count=max(1, config.run_count),
            subject_share=clamp(config.subject_share, 0.0, 1.0),
            max_marks=max(1.0, config.max_marks),
            prior_confidence=clamp(config.prior_confidence, 0.0, 1.0),
            score_precision=max(0, config.score_precision),
            curve_points=max(2, config.curve_points),
            curve_min_sigma=max(1e-6, config.curve_min_sigma),
        )


@dataclass(frozen=True)
class EngineConfig:
    mastery: MasteryConfig = field(default_factory=MasteryConfig)
    behavior: BehaviorConfig = field(default_factory=BehaviorConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)


def load_engine_config(config_path: Optional[Path] = None) -> EngineConfig:
    """Read an oracle YAML config; a missing path yields the defaults."""

    if config_path is None:
        return EngineConfig()
    config_path = Path(config_path)
    if not config_path.exists():
        raise ValueError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        cfg = yaml.safe_load(f) or {}

    return EngineConfig(
        mastery=MasteryConfig(**cfg.get("mastery", {})),
        behavior=BehaviorConfig(**cfg.get("behavior", {})),
        simulation=SimulationConfig.from_dict(cfg.get("simulation")),
    )
