# ABOUTME: Derives raw 0-1 trait signals from one quiz session's telemetry.
# ABOUTME: Provides heuristics for focus, endurance, risk appetite, calm, and speed.

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from src.common.config import BehaviorConfig
from src.common.schemas import PassiveTelemetry, SessionItem, clamp


class SignalThresholds:
    RISK_AVERSE_SKIP_RATE = 0.4
    RECKLESS_WRONG_RATE = 0.4
    RECKLESS_MAX_SKIP_RATE = 0.1
    FATIGUE_MARGIN = 1


@dataclass(frozen=True)
class PassiveSignals:
    """Raw per-session trait readings; `speed` is None when no timings were captured."""

    focus: float
    endurance: float
    risk: float
    calm: float
    speed: Optional[float]

    def as_updates(self) -> Dict[str, float]:
        updates = {
            "focus": self.focus,
            "endurance": self.endurance,
            "risk": self.risk,
            "calm": self.calm,
        }
        if self.speed is not None:
            updates["speed"] = self.speed
        return updates


def normalize_duration(ms: float, config: BehaviorConfig = BehaviorConfig()) -> float:
    """Map a per-item time onto 1.0 (fast band edge) .. 0.0 (slow band edge)."""
    fast, slow = config.fast_item_ms, config.slow_item_ms
    clamped = clamp(ms, fast, slow)
    return 1.0 - (clamped - fast) / (slow - fast)


def focus_signal(telemetry: PassiveTelemetry, count: int) -> float:
    impulse_rate = telemetry.impulse_click_count / count
    switch_rate = sum(telemetry.answer_switches.values()) / count
    return max(0.0, 1.0 - impulse_rate * 0.5 - switch_rate * 0.2)


def endurance_signal(items: Sequence[SessionItem], min_items: int = 8) -> float:
    """Compare mistakes in the first and last quarter of the session, in presented order."""
    if len(items) < min_items:
        return 0.5
    quarter = len(items) // 4
    first_mistakes = sum(1 for item in items[:quarter] if item.is_correct is not True)
    last_mistakes = sum(1 for item in items[-quarter:] if item.is_correct is not True)

    if last_mistakes > first_mistakes + SignalThresholds.FATIGUE_MARGIN:
        return 0.3
    if last_mistakes < first_mistakes:
        return 0.8
    return 0.6


def risk_signal(items: Sequence[SessionItem]) -> float:
    count = len(items)
    skip_rate = sum(1 for item in items if item.is_correct is None) / count
    wrong_rate = sum(1 for item in items if item.is_correct is False) / count

    if skip_rate > SignalThresholds.RISK_AVERSE_SKIP_RATE:
        return 0.2
    if wrong_rate > SignalThresholds.RECKLESS_WRONG_RATE and skip_rate < SignalThresholds.RECKLESS_MAX_SKIP_RATE:
        return 0.8
    return 0.5


def calm_signal(telemetry: PassiveTelemetry, items: Sequence[SessionItem]) -> float:
    """Answer changes concentrated on items that still ended wrong read as anxiety."""
    wrong_ids = [item.question_id for item in items if item.is_correct is False]
    if not wrong_ids:
        return 1.0
    anxious_switches = sum(telemetry.answer_switches.get(qid, 0) for qid in wrong_ids)
    return max(0.0, 1.0 - (anxious_switches / len(wrong_ids)) * 0.15)


def speed_signal(
    telemetry: PassiveTelemetry,
    count: int,
    config: BehaviorConfig = BehaviorConfig(),
) -> Optional[float]:
    if not telemetry.durations_ms:
        return None
    mean_ms = sum(telemetry.durations_ms.values()) / count
    return normalize_duration(mean_ms, config)


def derive_passive_signals(
    telemetry: PassiveTelemetry,
    items: Sequence[SessionItem],
    config: BehaviorConfig = BehaviorConfig(),
) -> Optional[PassiveSignals]:
    """Return None for an empty session; there is nothing to normalize by."""

    count = len(items)
    if count == 0:
        return None
    return PassiveSignals(
        focus=focus_signal(telemetry, count),
        endurance=endurance_signal(items, config.endurance_min_items),
        risk=risk_signal(items),
        calm=calm_signal(telemetry, items),
        speed=speed_signal(telemetry, count, config),
    )
