# ABOUTME: Defines canonical data structures shared by the tracker, profiler, and oracle.
# ABOUTME: Centralizes subject, mastery, trait, telemetry, snapshot, and prediction records.

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

TRAITS = ("focus", "calm", "risk", "speed", "precision", "endurance", "flexibility")


class Flag(str, Enum):
    """Risk flags emitted by the oracle. Consumers must ignore values they do not know."""

    NEW_RECRUIT = "NEW_RECRUIT"
    GAMBLER_RISK = "GAMBLER_RISK"
    FATIGUE_RISK = "FATIGUE_RISK"
    PANIC_PRONE = "PANIC_PRONE"
    CSAT_CRITICAL_FAIL = "CSAT_CRITICAL_FAIL"
    LOW_POWER_MODE = "LOW_POWER_MODE"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @classmethod
    def parse(cls, value: Any) -> "Difficulty":
        """Accept tier names or the legacy L1/L2/L3 labels; anything else is easy."""
        if isinstance(value, Difficulty):
            return value
        label = str(value or "").strip().lower()
        return _DIFFICULTY_ALIASES.get(label, cls.EASY)


_DIFFICULTY_ALIASES = {
    "easy": Difficulty.EASY,
    "l1": Difficulty.EASY,
    "medium": Difficulty.MEDIUM,
    "l2": Difficulty.MEDIUM,
    "hard": Difficulty.HARD,
    "l3": Difficulty.HARD,
}


def as_float(value: Any, default: float = 0.0) -> float:
    """Coerce a loosely-typed numeric field, mapping missing/NaN/garbage to `default`."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def as_count(value: Any) -> Optional[int]:
    """Non-negative integer, or None when the value is missing or not numeric."""
    number = as_float(value, math.nan)
    if math.isnan(number):
        return None
    return max(0, int(number))


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO strings or epoch seconds; naive datetimes are treated as UTC."""
    if value is None or value == "" or value == 0:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class SubjectDefinition:
    """Static taxonomy entry for one knowledge area."""

    id: str
    name: str
    exam_weight: float
    daily_decay_rate: float
    complexity: str = "conceptual"
    paper: str = "GS"
    gating: bool = False


@dataclass(frozen=True)
class SessionItem:
    """One presented question; `is_correct=None` marks a skipped item."""

    question_id: str
    subject_id: str
    difficulty: Difficulty = Difficulty.EASY
    is_correct: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionItem":
        correct = data.get("is_correct")
        return cls(
            question_id=str(data.get("question_id", "")),
            subject_id=str(data.get("subject_id", "")),
            difficulty=Difficulty.parse(data.get("difficulty")),
            is_correct=None if correct is None else bool(correct),
        )


@dataclass(frozen=True)
class MasteryRecord:
    """Belief state for one subject: proficiency 0-100 and evidence confidence 0-1."""

    subject_id: str
    proficiency: float = 0.0
    confidence: float = 0.0
    last_practiced_at: Optional[datetime] = None
    attempts_easy: int = 0
    attempts_medium: int = 0
    attempts_hard: int = 0
    streak: int = 0
    exposure: float = 0.0
    last_decayed_at: Optional[datetime] = None

    @property
    def total_attempts(self) -> int:
        return self.attempts_easy + self.attempts_medium + self.attempts_hard

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "proficiency": self.proficiency,
            "confidence": self.confidence,
            "last_practiced_at": _format_timestamp(self.last_practiced_at),
            "attempts_easy": self.attempts_easy,
            "attempts_medium": self.attempts_medium,
            "attempts_hard": self.attempts_hard,
            "streak": self.streak,
            "exposure": self.exposure,
            "last_decayed_at": _format_timestamp(self.last_decayed_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MasteryRecord":
        return cls(
            subject_id=str(data["subject_id"]),
            proficiency=clamp(as_float(data.get("proficiency")), 0.0, 100.0),
            confidence=clamp(as_float(data.get("confidence")), 0.0, 1.0),
            last_practiced_at=parse_timestamp(data.get("last_practiced_at")),
            attempts_easy=int(as_float(data.get("attempts_easy"))),
            attempts_medium=int(as_float(data.get("attempts_medium"))),
            attempts_hard=int(as_float(data.get("attempts_hard"))),
            streak=int(as_float(data.get("streak"))),
            exposure=clamp(as_float(data.get("exposure")), 0.0, 1.0),
            last_decayed_at=parse_timestamp(data.get("last_decayed_at")),
        )


@dataclass(frozen=True)
class TraitState:
    value: float = 0.5
    confidence: float = 0.0


def _default_traits() -> Dict[str, TraitState]:
    return {name: TraitState() for name in TRAITS}


@dataclass(frozen=True)
class BehavioralProfile:
    """Normalized personality-adjacent traits, each with its own confidence."""

    traits: Mapping[str, TraitState] = field(default_factory=_default_traits)
    last_updated_at: Optional[datetime] = None
    total_sessions: int = 0
    user_id: str = "user_1"

    def trait(self, name: str) -> TraitState:
        return self.traits.get(name, TraitState())

    def value(self, name: str) -> float:
        return self.trait(name).value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "traits": {
                name: {"value": state.value, "confidence": state.confidence}
                for name, state in self.traits.items()
            },
            "last_updated_at": _format_timestamp(self.last_updated_at),
            "total_sessions": self.total_sessions,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BehavioralProfile":
        """Merge stored traits over the default shape so newly added traits always exist."""
        traits = _default_traits()
        stored = data.get("traits") or {}
        if isinstance(stored, Mapping):
            for name in TRAITS:
                raw = stored.get(name)
                if not isinstance(raw, Mapping):
                    continue
                traits[name] = TraitState(
                    value=clamp(as_float(raw.get("value"), 0.5), 0.0, 1.0),
                    confidence=clamp(as_float(raw.get("confidence")), 0.0, 1.0),
                )
        return cls(
            traits=traits,
            last_updated_at=parse_timestamp(data.get("last_updated_at")),
            total_sessions=int(as_float(data.get("total_sessions"))),
            user_id=str(data.get("user_id") or "user_1"),
        )


@dataclass(frozen=True)
class PassiveTelemetry:
    """Quiz-flow telemetry; per-question maps are keyed by question id."""

    impulse_click_count: int = 0
    answer_switches: Mapping[str, int] = field(default_factory=dict)
    durations_ms: Mapping[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PassiveTelemetry":
        switches = data.get("answer_switches") or {}
        durations = data.get("durations_ms") or {}
        return cls(
            impulse_click_count=max(0, int(as_float(data.get("impulse_click_count")))),
            answer_switches={str(k): max(0, int(as_float(v))) for k, v in dict(switches).items()},
            durations_ms={str(k): max(0.0, as_float(v)) for k, v in dict(durations).items()},
        )


@dataclass(frozen=True)
class ActiveSignal:
    """Mini-game telemetry: a 0-1 score plus optional game-specific metrics."""

    game_id: str
    normalized_score: float = 0.5
    metrics: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class BehavioralModifiers:
    """Scalar multipliers derived from the profile; 1.0 is neutral."""

    mistake: float = 1.0
    panic: float = 1.0
    fatigue: float = 1.0
    risk: float = 1.0

    def to_dict(self) -> Dict[str, float]:
        return {"mistake": self.mistake, "panic": self.panic, "fatigue": self.fatigue, "risk": self.risk}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "BehavioralModifiers":
        data = data if isinstance(data, Mapping) else {}
        return cls(
            mistake=as_float(data.get("mistake"), 1.0),
            panic=as_float(data.get("panic"), 1.0),
            fatigue=as_float(data.get("fatigue"), 1.0),
            risk=as_float(data.get("risk"), 1.0),
        )


@dataclass(frozen=True)
class SubjectSnapshot:
    subject_id: str
    proficiency: float
    confidence: float
    exam_weight: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "proficiency": self.proficiency,
            "confidence": self.confidence,
            "exam_weight": self.exam_weight,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SubjectSnapshot":
        return cls(
            subject_id=str(data.get("subject_id", "")),
            proficiency=clamp(as_float(data.get("proficiency")), 0.0, 100.0),
            confidence=clamp(as_float(data.get("confidence")), 0.0, 1.0),
            exam_weight=clamp(as_float(data.get("exam_weight")), 0.0, 1.0),
        )


def _parse_subjects(raw: Any) -> List[SubjectSnapshot]:
    if not isinstance(raw, (list, tuple)):
        return []
    return [SubjectSnapshot.from_dict(entry) for entry in raw if isinstance(entry, Mapping)]


@dataclass(frozen=True)
class PredictionSnapshot:
    """Caller-built input for one prediction; gating subjects feed only the gating rule."""

    subjects: Sequence[SubjectSnapshot] = ()
    gating_subjects: Sequence[SubjectSnapshot] = ()
    modifiers: BehavioralModifiers = field(default_factory=BehavioralModifiers)
    history_depth: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subjects": [s.to_dict() for s in self.subjects],
            "gating_subjects": [s.to_dict() for s in self.gating_subjects],
            "modifiers": self.modifiers.to_dict(),
            "history_depth": self.history_depth,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PredictionSnapshot":
        data = data if isinstance(data, Mapping) else {}
        return cls(
            subjects=_parse_subjects(data.get("subjects")),
            gating_subjects=_parse_subjects(data.get("gating_subjects")),
            modifiers=BehavioralModifiers.from_dict(data.get("modifiers")),
            history_depth=as_count(data.get("history_depth")),
        )


@dataclass(frozen=True)
class PredictionResult:
    score: float
    range_min: float
    range_max: float
    confidence: float
    flags: List[str]
    distribution_curve: List[Dict[str, float]]
    breakdown: Dict[str, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "range": {"min": self.range_min, "max": self.range_max},
            "confidence": self.confidence,
            "flags": list(self.flags),
            "distribution_curve": [dict(point) for point in self.distribution_curve],
            "breakdown": dict(self.breakdown),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PredictionResult":
        bounds = data.get("range")
        bounds = bounds if isinstance(bounds, Mapping) else {}
        return cls(
            score=as_float(data.get("score")),
            range_min=as_float(bounds.get("min")),
            range_max=as_float(bounds.get("max")),
            confidence=clamp(as_float(data.get("confidence")), 0.0, 1.0),
            flags=[str(flag) for flag in data.get("flags") or []],
            distribution_curve=[dict(point) for point in data.get("distribution_curve") or []],
            breakdown=dict(data.get("breakdown") or {}),
        )
