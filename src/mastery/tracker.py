# ABOUTME: Maintains per-subject proficiency beliefs with forgetting-curve decay.
# ABOUTME: Blends difficulty-weighted session scores into confidence-weighted moving averages.

from __future__ import annotations

from collections import OrderedDict
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from src.common.config import MasteryConfig
from src.common.log import get_logger
from src.common.schemas import Difficulty, MasteryRecord, SessionItem, SubjectDefinition, clamp
from src.common.store import ACADEMIC_STORE, KeyValueStore

logger = get_logger(__name__)

SECONDS_PER_DAY = 86_400.0


def _elapsed_days(since: Optional[datetime], now: datetime) -> float:
    if since is None:
        return 0.0
    return (now - since).total_seconds() / SECONDS_PER_DAY


def _decay_anchor(record: MasteryRecord) -> Optional[datetime]:
    stamps = [t for t in (record.last_practiced_at, record.last_decayed_at) if t is not None]
    return max(stamps) if stamps else None


def apply_decay(record: MasteryRecord, subject: SubjectDefinition, now: datetime) -> MasteryRecord:
    """
    Erode proficiency along the subject's forgetting curve.

    Elapsed time is measured from the later of the last practice and the last
    decay, so repeated calls never decay the same interval twice. Confidence
    is left untouched.
    """

    days = _elapsed_days(_decay_anchor(record), now)
    if days < 1:
        return record
    retention = (1.0 - subject.daily_decay_rate) ** days
    return replace(
        record,
        proficiency=clamp(record.proficiency * retention, 0.0, 100.0),
        last_decayed_at=now,
    )


def difficulty_weights(config: MasteryConfig) -> Dict[Difficulty, float]:
    return {
        Difficulty.EASY: config.easy_weight,
        Difficulty.MEDIUM: config.medium_weight,
        Difficulty.HARD: config.hard_weight,
    }


def weighted_mastery_index(items: Sequence[SessionItem], weights: Mapping[Difficulty, float]) -> float:
    """Difficulty-weighted percentage correct; skipped items count against the candidate."""

    earned = 0.0
    possible = 0.0
    for item in items:
        weight = weights.get(item.difficulty, 1.0)
        if item.is_correct is True:
            earned += weight
        possible += weight
    if possible == 0:
        return 0.0
    return earned / possible * 100.0


def record_session(
    record: MasteryRecord,
    items: Sequence[SessionItem],
    subject: SubjectDefinition,
    now: datetime,
    config: MasteryConfig = MasteryConfig(),
) -> MasteryRecord:
    """Decay the stale belief first, then blend this session's WMI into it."""

    if not items:
        return record

    record = apply_decay(record, subject, now)
    wmi = weighted_mastery_index(items, difficulty_weights(config))

    counts = {tier: 0 for tier in Difficulty}
    for item in items:
        counts[item.difficulty] += 1

    total_attempts = record.total_attempts + len(items)
    data_confidence = min(1.0, total_attempts / config.attempts_for_full_confidence)
    update_weight = config.base_update_weight - config.update_weight_damping * data_confidence
    proficiency = record.proficiency + (wmi - record.proficiency) * update_weight

    return replace(
        record,
        proficiency=round(clamp(proficiency, 0.0, 100.0), 2),
        confidence=round(data_confidence, 2),
        last_practiced_at=now,
        attempts_easy=record.attempts_easy + counts[Difficulty.EASY],
        attempts_medium=record.attempts_medium + counts[Difficulty.MEDIUM],
        attempts_hard=record.attempts_hard + counts[Difficulty.HARD],
        streak=record.streak + 1,
        exposure=min(1.0, record.exposure + len(items) * config.exposure_per_item),
    )


def find_blind_spots(
    records: Mapping[str, MasteryRecord],
    subjects: Mapping[str, SubjectDefinition],
    config: MasteryConfig = MasteryConfig(),
) -> List[str]:
    """Material subjects (by exam weight) that have barely been practiced."""

    blind_spots = []
    for subject_id, subject in subjects.items():
        record = records.get(subject_id)
        exposure = record.exposure if record is not None else 0.0
        if (
            subject.exam_weight > config.blind_spot_weight_threshold
            and exposure < config.blind_spot_exposure_threshold
        ):
            blind_spots.append(subject_id)
    return blind_spots


def group_items_by_subject(items: Iterable[SessionItem]) -> Dict[str, List[SessionItem]]:
    groups: Dict[str, List[SessionItem]] = OrderedDict()
    for item in items:
        groups.setdefault(item.subject_id, []).append(item)
    return groups


def _score_band(score: float) -> str:
    if score > 75:
        return "green"
    if score > 40:
        return "yellow"
    return "red"


class MasteryTracker:
    """
    Owns the mastery records of one candidate and mirrors them to a store.

    Not safe for concurrent mutation; a single coordinating caller owns it.
    """

    def __init__(
        self,
        store: KeyValueStore,
        subjects: Mapping[str, SubjectDefinition],
        config: MasteryConfig = MasteryConfig(),
    ):
        self.store = store
        self.subjects = dict(subjects)
        self.config = config
        self.records: Dict[str, MasteryRecord] = {}
        self.quizzes_recorded = 0

    def load(self) -> "MasteryTracker":
        """Read stored records, creating zeroed ones for subjects never seen."""
        for raw in self.store.get_all(ACADEMIC_STORE):
            record = MasteryRecord.from_dict(raw)
            self.records[record.subject_id] = record

        missing = [MasteryRecord(subject_id=sid) for sid in self.subjects if sid not in self.records]
        if missing:
            logger.info("Creating %d empty mastery records", len(missing))
            for record in missing:
                self.records[record.subject_id] = record
            self.store.bulk_put(ACADEMIC_STORE, [r.to_dict() for r in missing])
        return self

    def refresh_decay(self, now: datetime) -> List[str]:
        """Startup pass: decay and persist subjects idle longer than the startup window."""
        updated = []
        for subject_id, record in self.records.items():
            subject = self.subjects.get(subject_id)
            if subject is None:
                continue
            if _elapsed_days(_decay_anchor(record), now) <= self.config.startup_decay_after_days:
                continue
            self.records[subject_id] = apply_decay(record, subject, now)
            updated.append(subject_id)
        if updated:
            self.store.bulk_put(ACADEMIC_STORE, [self.records[sid].to_dict() for sid in updated])
            logger.info("Applied idle decay", extra={"subjects": ",".join(updated)})
        return updated

    def record_quiz(self, items: Sequence[SessionItem], now: datetime) -> List[MasteryRecord]:
        updated = []
        for subject_id, subject_items in group_items_by_subject(items).items():
            subject = self.subjects.get(subject_id)
            if subject is None:
                logger.warning("Skipping items for unknown subject %s", subject_id)
                continue
            current = self.records.get(subject_id, MasteryRecord(subject_id=subject_id))
            record = record_session(current, subject_items, subject, now, self.config)
            self.records[subject_id] = record
            updated.append(record)

        if updated:
            self.store.bulk_put(ACADEMIC_STORE, [r.to_dict() for r in updated])
        self.quizzes_recorded += 1
        return updated

    def blind_spots(self) -> List[str]:
        return find_blind_spots(self.records, self.subjects, self.config)

    def global_mastery(self) -> int:
        if not self.records:
            return 0
        return round(sum(r.proficiency for r in self.records.values()) / len(self.records))

    def total_items_answered(self) -> int:
        return sum(r.total_attempts for r in self.records.values())

    def summary_frame(self) -> pd.DataFrame:
        columns = ["subject_id", "name", "proficiency", "confidence", "score", "band", "exposure", "attempts"]
        rows = []
        for subject_id, record in self.records.items():
            subject = self.subjects.get(subject_id)
            rows.append(
                {
                    "subject_id": subject_id,
                    "name": subject.name if subject else subject_id,
                    "proficiency": record.proficiency,
                    "confidence": record.confidence,
                    "score": int(round(record.proficiency)),
                    "band": _score_band(record.proficiency),
                    "exposure": record.exposure,
                    "attempts": record.total_attempts,
                }
            )
        if not rows:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame(rows, columns=columns)
