# ABOUTME: Builds the serializable prediction snapshot from mastery records and the trait profile.
# ABOUTME: Splits qualifying-paper subjects out so they only reach the gating rule.

from __future__ import annotations

from typing import Mapping, Optional

from src.behavior.profiler import get_prediction_modifiers
from src.common.schemas import (
    BehavioralProfile,
    MasteryRecord,
    PredictionSnapshot,
    SubjectDefinition,
    SubjectSnapshot,
)
from src.common.taxonomy import gating_subjects, scoring_subjects


def _subject_entry(records: Mapping[str, MasteryRecord], subject: SubjectDefinition) -> SubjectSnapshot:
    record = records.get(subject.id, MasteryRecord(subject_id=subject.id))
    return SubjectSnapshot(
        subject_id=subject.id,
        proficiency=record.proficiency,
        confidence=record.confidence,
        exam_weight=subject.exam_weight,
    )


def build_prediction_snapshot(
    records: Mapping[str, MasteryRecord],
    subjects: Mapping[str, SubjectDefinition],
    profile: BehavioralProfile,
    history_depth: Optional[int] = None,
) -> PredictionSnapshot:
    """
    Freeze the current beliefs into the oracle's input.

    Subjects without a record enter with zero proficiency. History depth
    defaults to the number of sessions the profile has seen.
    """

    return PredictionSnapshot(
        subjects=tuple(_subject_entry(records, s) for s in scoring_subjects(subjects)),
        gating_subjects=tuple(_subject_entry(records, s) for s in gating_subjects(subjects)),
        modifiers=get_prediction_modifiers(profile),
        history_depth=profile.total_sessions if history_depth is None else history_depth,
    )
