# ABOUTME: Tests forgetting-curve decay, weighted session scoring, and the mastery update rule.
# ABOUTME: Exercises the MasteryTracker owner object against the in-memory store.

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from src.common.config import MasteryConfig
from src.common.schemas import Difficulty, MasteryRecord, SessionItem, SubjectDefinition
from src.common.store import ACADEMIC_STORE, InMemoryStore
from src.mastery.tracker import (
    MasteryTracker,
    apply_decay,
    difficulty_weights,
    find_blind_spots,
    record_session,
    weighted_mastery_index,
)

NOW = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
POLITY = SubjectDefinition("polity", "Indian Polity", 0.18, 0.02)
HISTORY = SubjectDefinition("history", "History", 0.05, 0.03)
SUBJECTS = {s.id: s for s in (POLITY, HISTORY)}


def _items(subject_id, outcomes, difficulty=Difficulty.EASY):
    return [
        SessionItem(question_id=f"{subject_id}-{i}", subject_id=subject_id, difficulty=difficulty, is_correct=ok)
        for i, ok in enumerate(outcomes)
    ]


def test_decay_erodes_proficiency_but_not_confidence():
    record = MasteryRecord("polity", proficiency=80.0, confidence=0.6, last_practiced_at=NOW - timedelta(days=10))
    decayed = apply_decay(record, POLITY, NOW)
    assert decayed.proficiency == pytest.approx(80.0 * 0.98 ** 10)
    assert decayed.proficiency < record.proficiency
    assert decayed.confidence == 0.6
    assert decayed.last_decayed_at == NOW


@pytest.mark.parametrize("subject", [POLITY, HISTORY])
def test_decay_keeps_falling_as_idle_days_grow(subject):
    record = MasteryRecord(subject.id, proficiency=85.0, confidence=0.7)
    decayed = [
        apply_decay(replace(record, last_practiced_at=NOW - timedelta(days=days)), subject, NOW).proficiency
        for days in (1, 2, 5, 30)
    ]
    assert record.proficiency > decayed[0]
    assert all(earlier > later for earlier, later in zip(decayed, decayed[1:]))
    assert all(0.0 <= value <= 100.0 for value in decayed)


def test_decay_is_noop_within_one_day_and_for_untouched_subjects():
    recent = MasteryRecord("polity", proficiency=80.0, last_practiced_at=NOW - timedelta(hours=20))
    assert apply_decay(recent, POLITY, NOW) == recent
    fresh = MasteryRecord("polity")
    assert apply_decay(fresh, POLITY, NOW) == fresh


def test_decay_does_not_double_count_an_interval():
    record = MasteryRecord("polity", proficiency=80.0, last_practiced_at=NOW - timedelta(days=5))
    once = apply_decay(record, POLITY, NOW)
    twice = apply_decay(once, POLITY, NOW)
    assert twice.proficiency == once.proficiency


def test_weighted_mastery_index_weighs_hard_items_and_penalizes_skips():
    weights = difficulty_weights(MasteryConfig())
    items = [
        SessionItem("q1", "polity", Difficulty.EASY, True),
        SessionItem("q2", "polity", Difficulty.HARD, False),
    ]
    assert weighted_mastery_index(items, weights) == pytest.approx(100.0 / 3.5)

    skipped = [SessionItem("q1", "polity", Difficulty.MEDIUM, True), SessionItem("q2", "polity", Difficulty.MEDIUM, None)]
    assert weighted_mastery_index(skipped, weights) == pytest.approx(50.0)
    assert weighted_mastery_index([], weights) == 0.0


def test_first_session_moves_fast_toward_the_fresh_signal():
    updated = record_session(MasteryRecord("polity"), _items("polity", [True] * 10), POLITY, NOW)
    assert updated.proficiency == pytest.approx(46.0)
    assert updated.confidence == pytest.approx(0.1)
    assert updated.attempts_easy == 10
    assert updated.streak == 1
    assert updated.exposure == pytest.approx(0.02)
    assert updated.last_practiced_at == NOW


def test_lapsed_subject_blends_from_the_decayed_baseline():
    record = MasteryRecord(
        "polity",
        proficiency=90.0,
        confidence=1.0,
        last_practiced_at=NOW - timedelta(days=30),
        attempts_easy=100,
    )
    updated = record_session(record, _items("polity", [True]), POLITY, NOW)
    decayed = 90.0 * 0.98 ** 30
    assert updated.proficiency == pytest.approx(decayed + (100.0 - decayed) * 0.1, abs=0.01)
    assert updated.proficiency < 90.0 * 0.9 + 100.0 * 0.1


def test_proficiency_stays_within_bounds():
    record = MasteryRecord("polity")
    for day in range(30):
        record = record_session(record, _items("polity", [True] * 5, Difficulty.HARD), POLITY, NOW + timedelta(days=day))
        assert 0.0 <= record.proficiency <= 100.0
        assert 0.0 <= record.confidence <= 1.0
    for day in range(30, 60):
        record = record_session(record, _items("polity", [False] * 5), POLITY, NOW + timedelta(days=day))
        assert 0.0 <= record.proficiency <= 100.0


def test_blind_spots_need_weight_and_low_exposure():
    records = {
        "polity": MasteryRecord("polity", exposure=0.05),
        "history": MasteryRecord("history", exposure=0.0),
    }
    assert find_blind_spots(records, SUBJECTS) == ["polity"]
    records["polity"] = MasteryRecord("polity", exposure=0.2)
    assert find_blind_spots(records, SUBJECTS) == []


def test_tracker_creates_records_and_persists_quizzes():
    store = InMemoryStore()
    tracker = MasteryTracker(store, SUBJECTS).load()
    assert {r["subject_id"] for r in store.get_all(ACADEMIC_STORE)} == {"polity", "history"}

    items = _items("polity", [True, True, False]) + _items("unknown", [True])
    updated = tracker.record_quiz(items, NOW)

    assert [r.subject_id for r in updated] == ["polity"]
    stored = MasteryRecord.from_dict(store.get(ACADEMIC_STORE, "polity"))
    assert stored.proficiency == tracker.records["polity"].proficiency
    assert stored.last_practiced_at == NOW
    assert tracker.quizzes_recorded == 1
    assert tracker.total_items_answered() == 3


def test_tracker_startup_decay_only_touches_stale_subjects():
    store = InMemoryStore()
    store.bulk_put(
        ACADEMIC_STORE,
        [
            MasteryRecord("polity", proficiency=70.0, last_practiced_at=NOW - timedelta(days=5)).to_dict(),
            MasteryRecord("history", proficiency=70.0, last_practiced_at=NOW - timedelta(days=1)).to_dict(),
        ],
    )
    tracker = MasteryTracker(store, SUBJECTS).load()
    assert tracker.refresh_decay(NOW) == ["polity"]
    assert tracker.records["polity"].proficiency < 70.0
    assert tracker.records["history"].proficiency == 70.0


def test_summary_frame_bands_scores():
    store = InMemoryStore()
    tracker = MasteryTracker(store, SUBJECTS).load()
    tracker.records["polity"] = MasteryRecord("polity", proficiency=80.0)
    frame = tracker.summary_frame().set_index("subject_id")
    assert frame.loc["polity", "band"] == "green"
    assert frame.loc["history", "band"] == "red"
    assert tracker.global_mastery() == 40
