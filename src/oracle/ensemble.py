# ABOUTME: Stacks the three oracle models into one score, range, confidence, and flag list.
# ABOUTME: Also builds the display distribution curve and the neutral and low-power results.

from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence

import numpy as np

from src.common.config import ModelWeights, SimulationConfig
from src.common.schemas import Flag, PredictionResult, PredictionSnapshot

from .models import run_bayesian_shrinkage, run_pattern_rules, run_stratified_simulation

DEFAULT_WEIGHTS = ModelWeights(simulated=0.5, bayesian=0.3, pattern=0.2)
RICH_HISTORY_WEIGHTS = ModelWeights(simulated=0.3, bayesian=0.5, pattern=0.2)
SPARSE_HISTORY_WEIGHTS = ModelWeights(simulated=0.7, bayesian=0.1, pattern=0.2)


def select_weights(
    history_depth: Optional[int],
    config: SimulationConfig = SimulationConfig(),
) -> ModelWeights:
    """Caller overrides win; otherwise trust earned consistency once history is deep."""

    if config.weights is not None:
        return config.weights
    if history_depth is None:
        return DEFAULT_WEIGHTS
    if history_depth > config.rich_history_threshold:
        return RICH_HISTORY_WEIGHTS
    if history_depth < config.sparse_history_threshold:
        return SPARSE_HISTORY_WEIGHTS
    return DEFAULT_WEIGHTS


def stack_scores(weights: ModelWeights, scores: Sequence[float]) -> float:
    """Weighted average of (simulated, bayesian, pattern) normalized by the weight sum."""

    simulated, bayesian, pattern = scores
    total = weights.total
    if total <= 0:
        raise ValueError("Model weights must sum to a positive value.")
    return (
        simulated * weights.simulated
        + bayesian * weights.bayesian
        + pattern * weights.pattern
    ) / total


def _round_marks(value: float, precision: int):
    if precision <= 0:
        return int(round(value))
    return round(value, precision)


def distribution_curve(
    final: float,
    minimum: float,
    maximum: float,
    config: SimulationConfig = SimulationConfig(),
) -> List[Dict[str, float]]:
    """Gaussian density samples around the final score; cosmetic, never re-consumed."""

    sigma = max(config.curve_min_sigma, (maximum - minimum) / 4.0)
    center = min(max(final, 0.0), config.max_marks)
    low = max(0.0, center - 3.0 * sigma)
    high = min(config.max_marks, center + 3.0 * sigma)
    xs = np.linspace(low, high, config.curve_points)
    ys = np.exp(-0.5 * ((xs - center) / sigma) ** 2) / (sigma * math.sqrt(2.0 * math.pi))
    return [{"x": round(float(x), 2), "y": float(y)} for x, y in zip(xs, ys)]


def flat_curve(config: SimulationConfig = SimulationConfig()) -> List[Dict[str, float]]:
    xs = np.linspace(0.0, config.max_marks, config.curve_points)
    density = 1.0 / config.max_marks
    return [{"x": round(float(x), 2), "y": density} for x in xs]


def neutral_result(config: SimulationConfig = SimulationConfig()) -> PredictionResult:
    return PredictionResult(
        score=0,
        range_min=0.0,
        range_max=float(config.max_marks),
        confidence=0.0,
        flags=[Flag.NEW_RECRUIT.value],
        distribution_curve=flat_curve(config),
        breakdown={"simulated": 0, "bayesian": 0, "pattern": 0},
    )


def has_practice_data(snapshot: PredictionSnapshot) -> bool:
    return any(s.proficiency > 0 for s in snapshot.subjects)


def predict(
    snapshot: PredictionSnapshot,
    config: SimulationConfig = SimulationConfig(),
    rng: Optional[np.random.Generator] = None,
) -> PredictionResult:
    """Run the full ensemble; an empty snapshot short-circuits to the neutral result."""

    if not has_practice_data(snapshot):
        return neutral_result(config)

    rng = rng if rng is not None else np.random.default_rng(config.seed)
    subjects = list(snapshot.subjects)

    simulated = run_stratified_simulation(subjects, snapshot.modifiers, config, rng)
    bayesian = run_bayesian_shrinkage(subjects, simulated.average, config)
    pattern = run_pattern_rules(snapshot, simulated.average, config)

    weights = select_weights(snapshot.history_depth, config)
    final = stack_scores(weights, (simulated.average, bayesian.score, pattern.score))

    return PredictionResult(
        score=_round_marks(final, config.score_precision),
        range_min=simulated.minimum,
        range_max=simulated.maximum,
        confidence=bayesian.confidence,
        flags=pattern.flags,
        distribution_curve=distribution_curve(final, simulated.minimum, simulated.maximum, config),
        breakdown={
            "simulated": _round_marks(simulated.average, config.score_precision),
            "bayesian": _round_marks(bayesian.score, config.score_precision),
            "pattern": _round_marks(pattern.score, config.score_precision),
        },
    )


def fallback_prediction(
    snapshot: PredictionSnapshot,
    config: SimulationConfig = SimulationConfig(),
) -> PredictionResult:
    """Deterministic low-power estimate for callers that cannot reach the worker."""

    total = sum(2.0 * s.exam_weight * s.proficiency for s in snapshot.subjects)
    score = int(round(min(max(total, 0.0), config.max_marks)))
    low, high = score * 0.85, score * 1.15
    return PredictionResult(
        score=score,
        range_min=low,
        range_max=high,
        confidence=0.5,
        flags=[Flag.LOW_POWER_MODE.value],
        distribution_curve=distribution_curve(score, low, high, config),
        breakdown={"simulated": score, "bayesian": score, "pattern": score},
    )
