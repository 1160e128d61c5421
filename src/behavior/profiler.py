# ABOUTME: Maintains the seven-trait behavioral profile from quiz and mini-game telemetry.
# ABOUTME: Derives prediction modifiers and a cosmetic archetype label for the oracle and UI.

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from src.common.config import BehaviorConfig
from src.common.log import get_logger
from src.common.schemas import (
    TRAITS,
    ActiveSignal,
    BehavioralModifiers,
    BehavioralProfile,
    PassiveTelemetry,
    SessionItem,
    TraitState,
    as_float,
    clamp,
)
from src.common.store import PROFILE_STORE, KeyValueStore

from .signals import derive_passive_signals, normalize_duration

logger = get_logger(__name__)

SECONDS_PER_DAY = 86_400.0
DEFAULT_ARCHETYPE = "The Aspirant"


def update_trait(
    state: TraitState,
    signal: float,
    base_rate: float,
    confidence_step: float = 0.05,
) -> TraitState:
    """
    Confidence-damped moving average shared by both signal channels.

    A confident trait moves at half the base rate at most; confidence closes
    a fixed fraction of its remaining distance to 1.0 and never reaches it.
    """

    signal = clamp(as_float(signal, state.value), 0.0, 1.0)
    effective_rate = base_rate * (1.0 - state.confidence * 0.5)
    value = state.value + (signal - state.value) * effective_rate
    confidence = state.confidence + confidence_step * (1.0 - state.confidence)
    return TraitState(value=round(clamp(value, 0.0, 1.0), 3), confidence=min(confidence, 1.0))


def _apply_updates(
    profile: BehavioralProfile,
    updates: Mapping[str, float],
    base_rate: float,
    config: BehaviorConfig,
) -> BehavioralProfile:
    traits = dict(profile.traits)
    for name, signal in updates.items():
        if name not in TRAITS:
            continue
        before = traits.get(name, TraitState())
        traits[name] = update_trait(before, signal, base_rate, config.confidence_step)
        logger.debug(
            "Trait %s updated %.3f -> %.3f (conf %.2f)",
            name, before.value, traits[name].value, traits[name].confidence,
        )
    return replace(profile, traits=traits)


def apply_idle_decay(
    profile: BehavioralProfile,
    now: datetime,
    config: BehaviorConfig = BehaviorConfig(),
) -> BehavioralProfile:
    """Stale profiles become less trusted, not differently shaped."""

    if profile.last_updated_at is None:
        return replace(profile, last_updated_at=now)
    days = (now - profile.last_updated_at).total_seconds() / SECONDS_PER_DAY
    if days <= 1:
        return profile

    factor = config.daily_decay_factor ** days
    traits = {
        name: TraitState(value=state.value, confidence=state.confidence * factor)
        for name, state in profile.traits.items()
    }
    logger.info("Applied profile idle decay", extra={"days": round(days, 1), "factor": round(factor, 3)})
    return replace(profile, traits=traits, last_updated_at=now)


def update_from_passive_signal(
    profile: BehavioralProfile,
    telemetry: PassiveTelemetry,
    items: Sequence[SessionItem],
    config: BehaviorConfig = BehaviorConfig(),
    now: Optional[datetime] = None,
) -> BehavioralProfile:
    signals = derive_passive_signals(telemetry, items, config)
    if signals is None:
        return profile
    updated = _apply_updates(profile, signals.as_updates(), config.passive_rate, config)
    return replace(
        updated,
        total_sessions=profile.total_sessions + 1,
        last_updated_at=now or profile.last_updated_at,
    )


def _metric(signal: ActiveSignal, key: str) -> Optional[float]:
    value = signal.metrics.get(key)
    if value is None:
        return None
    number = as_float(value, -1.0)
    return number if number >= 0 else None


def _blink_test(signal: ActiveSignal, config: BehaviorConfig) -> Dict[str, float]:
    updates = {"focus": signal.normalized_score}
    recovery = _metric(signal, "recovery_rate")
    if recovery is not None:
        updates["flexibility"] = recovery
    return updates


def _pressure_valve(signal: ActiveSignal, config: BehaviorConfig) -> Dict[str, float]:
    updates = {"calm": signal.normalized_score}
    reaction = _metric(signal, "reaction_time_ms")
    if reaction is not None:
        updates["speed"] = normalize_duration(reaction, config)
    return updates


def _balloon_pop(signal: ActiveSignal, config: BehaviorConfig) -> Dict[str, float]:
    risk_factor = _metric(signal, "risk_factor")
    return {"risk": risk_factor if risk_factor is not None else signal.normalized_score}


def _pattern_architect(signal: ActiveSignal, config: BehaviorConfig) -> Dict[str, float]:
    updates = {"precision": signal.normalized_score}
    adaptability = _metric(signal, "adaptability")
    if adaptability is not None:
        updates["flexibility"] = adaptability
    return updates


GAME_TRAIT_TABLE: Dict[str, Callable[[ActiveSignal, BehaviorConfig], Dict[str, float]]] = {
    "BLINK_TEST": _blink_test,
    "PRESSURE_VALVE": _pressure_valve,
    "BALLOON_POP": _balloon_pop,
    "PATTERN_ARCHITECT": _pattern_architect,
}


def update_from_active_signal(
    profile: BehavioralProfile,
    signal: ActiveSignal,
    config: BehaviorConfig = BehaviorConfig(),
    now: Optional[datetime] = None,
) -> BehavioralProfile:
    mapper = GAME_TRAIT_TABLE.get(str(signal.game_id).strip().upper())
    if mapper is None:
        logger.warning("Ignoring signal from unknown game %s", signal.game_id)
        return profile
    updated = _apply_updates(profile, mapper(signal, config), config.active_rate, config)
    return replace(updated, last_updated_at=now or profile.last_updated_at)


def get_prediction_modifiers(profile: BehavioralProfile) -> BehavioralModifiers:
    focus = profile.value("focus")
    precision = profile.value("precision")
    calm = profile.value("calm")
    endurance = profile.value("endurance")
    risk = profile.value("risk")

    mistake = 0.92 + focus * 0.08 + precision * 0.05
    panic = 0.88 if calm < 0.4 else 1.02
    fatigue = 0.95 if endurance < 0.5 else 1.0

    # Inverted U: too cautious and too reckless both leave marks on the table.
    if risk < 0.3:
        risk_mod = 0.98
    elif risk > 0.7:
        risk_mod = 0.90
    else:
        risk_mod = 1.03

    return BehavioralModifiers(
        mistake=round(mistake, 3),
        panic=round(panic, 3),
        fatigue=round(fatigue, 3),
        risk=round(risk_mod, 3),
    )


ARCHETYPE_RULES: List[Tuple[str, Callable[[BehavioralProfile], bool]]] = [
    ("The Maverick", lambda p: p.value("risk") > 0.7 and p.value("calm") > 0.7),
    ("The Marathon Runner", lambda p: p.value("focus") > 0.8 and p.value("endurance") > 0.8),
    ("The Grandmaster", lambda p: p.value("precision") > 0.8 and p.value("speed") < 0.4),
    ("The Gunslinger", lambda p: p.value("speed") > 0.8 and p.value("precision") < 0.4),
    ("The Nervous Rookie", lambda p: p.value("calm") < 0.3),
]


def get_archetype(profile: BehavioralProfile) -> str:
    for label, rule in ARCHETYPE_RULES:
        if rule(profile):
            return label
    return DEFAULT_ARCHETYPE


def average_confidence(profile: BehavioralProfile) -> float:
    return sum(profile.trait(name).confidence for name in TRAITS) / len(TRAITS)


class BehavioralProfiler:
    """Owns one candidate's profile and persists every change to the store."""

    def __init__(
        self,
        store: KeyValueStore,
        user_id: str = "user_1",
        config: BehaviorConfig = BehaviorConfig(),
    ):
        self.store = store
        self.config = config
        self.profile = BehavioralProfile(user_id=user_id)

    def load(self, now: datetime) -> "BehavioralProfiler":
        saved = self.store.get(PROFILE_STORE, self.profile.user_id)
        if saved:
            self.profile = BehavioralProfile.from_dict(saved)
            logger.info("Profile loaded", extra={"confidence": round(average_confidence(self.profile), 2)})
        else:
            logger.info("Creating new behavioral profile")
        self.profile = apply_idle_decay(self.profile, now, self.config)
        self._save()
        return self

    def _save(self) -> None:
        self.store.put(PROFILE_STORE, self.profile.to_dict())

    def record_quiz(self, telemetry: PassiveTelemetry, items: Sequence[SessionItem], now: datetime) -> BehavioralProfile:
        self.profile = update_from_passive_signal(self.profile, telemetry, items, self.config, now)
        self._save()
        return self.profile

    def record_game(self, signal: ActiveSignal, now: datetime) -> BehavioralProfile:
        self.profile = update_from_active_signal(self.profile, signal, self.config, now)
        self._save()
        return self.profile

    def modifiers(self) -> BehavioralModifiers:
        return get_prediction_modifiers(self.profile)

    def archetype(self) -> str:
        return get_archetype(self.profile)

    def trait_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {"trait": name, "value": self.profile.trait(name).value, "confidence": self.profile.trait(name).confidence}
                for name in TRAITS
            ],
            columns=["trait", "value", "confidence"],
        )
