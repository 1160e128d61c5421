# ABOUTME: Implements the three oracle models: stratified Monte Carlo, Bayesian shrinkage, rule engine.
# ABOUTME: Each model is a pure function of the snapshot, the simulation config, and an injected RNG.

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import numpy as np

from src.common.config import SimulationConfig
from src.common.schemas import BehavioralModifiers, Flag, PredictionSnapshot, SubjectSnapshot

EPSILON = np.finfo(float).eps


@dataclass(frozen=True)
class SimulationSummary:
    average: float
    minimum: float
    maximum: float


@dataclass(frozen=True)
class BayesianSummary:
    score: float
    confidence: float


@dataclass(frozen=True)
class RuleOutcome:
    flag: Flag
    penalty: float
    material: bool


@dataclass(frozen=True)
class PatternSummary:
    score: float
    flags: List[str]


def box_muller(u1, u2, clip: float = 3.5) -> np.ndarray:
    """
    Map uniform draws to standard-normal deviates.

    `u1` is clamped away from zero so the logarithm stays finite and the output
    is clipped to +/- `clip` to bound extreme outliers.
    """

    u1 = np.maximum(np.asarray(u1, dtype=float), EPSILON)
    u2 = np.asarray(u2, dtype=float)
    z = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
    return np.clip(z, -clip, clip)


def run_stratified_simulation(
    subjects: Sequence[SubjectSnapshot],
    modifiers: BehavioralModifiers,
    config: SimulationConfig,
    rng: np.random.Generator,
) -> SimulationSummary:
    """
    Model A: score the exam `run_count` times over evenly spaced luck percentiles.

    Each run draws one global day-luck deviate shared by every subject and
    blends it with the subject's own deviate, so bad days depress subjects
    together. The panic multiplier only bites on draws below the threshold.
    """

    runs = config.run_count
    count = len(subjects)
    percentiles = (np.arange(runs) + 0.5) / runs

    global_z = box_muller(rng.random(runs), rng.random(runs), config.deviate_clip)
    subject_z = box_muller(
        np.repeat(percentiles[:, None], count, axis=1),
        rng.random((runs, count)),
        config.deviate_clip,
    )
    blended = config.subject_share * subject_z + (1.0 - config.subject_share) * global_z[:, None]

    weights = np.array([s.exam_weight for s in subjects], dtype=float)
    proficiency = np.array([s.proficiency for s in subjects], dtype=float)
    confidence = np.array([s.confidence for s in subjects], dtype=float)

    base_points = 2.0 * weights * proficiency
    volatility = (1.0 - confidence) + 0.1
    points = (base_points + volatility * blended * config.noise_scale) * modifiers.mistake
    points = np.where(blended < config.panic_deviate_threshold, points * modifiers.panic, points)
    points = np.maximum(points, 0.0)

    totals = np.clip(points.sum(axis=1), 0.0, config.max_marks)
    return SimulationSummary(
        average=float(totals.mean()),
        minimum=float(math.floor(totals.min())),
        maximum=float(math.ceil(totals.max())),
    )


def run_bayesian_shrinkage(
    subjects: Sequence[SubjectSnapshot],
    simulated_average: float,
    config: SimulationConfig,
) -> BayesianSummary:
    """Model B: pull low-evidence predictions back toward a conservative baseline."""

    if subjects:
        confidence = sum(s.confidence for s in subjects) / len(subjects)
    else:
        confidence = config.prior_confidence
    adjusted = simulated_average * confidence + config.conservative_baseline * (1.0 - confidence)
    return BayesianSummary(score=adjusted, confidence=round(confidence, 2))


def gating_estimate(gating_subjects: Sequence[SubjectSnapshot], config: SimulationConfig) -> float:
    return config.max_marks * sum(s.exam_weight * s.proficiency / 100.0 for s in gating_subjects)


Rule = Callable[[PredictionSnapshot, SimulationConfig], Optional[RuleOutcome]]


def _penalty_outcome(flag: Flag, penalty: float, config: SimulationConfig) -> RuleOutcome:
    return RuleOutcome(flag=flag, penalty=penalty, material=penalty >= config.materiality_marks)


def gambler_rule(snapshot: PredictionSnapshot, config: SimulationConfig) -> Optional[RuleOutcome]:
    """Aggressive guessing compounds with careless errors under negative marking."""
    m = snapshot.modifiers
    if m.risk <= 1.0 or m.mistake >= config.mistake_alert_level:
        return None
    penalty = config.gambler_penalty_scale * (m.risk - 1.0) * (1.0 - m.mistake)
    return _penalty_outcome(Flag.GAMBLER_RISK, penalty, config)


def fatigue_rule(snapshot: PredictionSnapshot, config: SimulationConfig) -> Optional[RuleOutcome]:
    shortfall = 1.0 - snapshot.modifiers.fatigue
    if shortfall <= 0:
        return None
    penalty = max(config.fatigue_penalty_floor, config.fatigue_penalty_scale * shortfall)
    return _penalty_outcome(Flag.FATIGUE_RISK, penalty, config)


def panic_rule(snapshot: PredictionSnapshot, config: SimulationConfig) -> Optional[RuleOutcome]:
    shortfall = 1.0 - snapshot.modifiers.panic
    if shortfall <= 0:
        return None
    return _penalty_outcome(Flag.PANIC_PRONE, config.panic_penalty_scale * shortfall, config)


def gating_rule(snapshot: PredictionSnapshot, config: SimulationConfig) -> Optional[RuleOutcome]:
    """A failed qualifying paper makes the primary score moot; it never lowers it."""
    if not snapshot.gating_subjects:
        return None
    if gating_estimate(snapshot.gating_subjects, config) >= config.gating_pass_marks:
        return None
    return RuleOutcome(flag=Flag.CSAT_CRITICAL_FAIL, penalty=0.0, material=True)


class PatternRuleEngine:
    """Model C: a fixed, ordered table of independent penalty rules."""

    DEFAULT_RULES: Sequence[Rule] = (gambler_rule, fatigue_rule, panic_rule, gating_rule)

    def __init__(self, rules: Optional[Sequence[Rule]] = None):
        self.rules = list(rules if rules is not None else self.DEFAULT_RULES)

    def evaluate(
        self,
        snapshot: PredictionSnapshot,
        starting_score: float,
        config: SimulationConfig,
    ) -> PatternSummary:
        score = starting_score
        flags: List[str] = []
        for rule in self.rules:
            outcome = rule(snapshot, config)
            if outcome is None:
                continue
            score -= outcome.penalty
            if outcome.material:
                flags.append(outcome.flag.value)
        return PatternSummary(score=max(0.0, score), flags=flags)


def run_pattern_rules(
    snapshot: PredictionSnapshot,
    simulated_average: float,
    config: SimulationConfig,
) -> PatternSummary:
    return PatternRuleEngine().evaluate(snapshot, simulated_average, config)
