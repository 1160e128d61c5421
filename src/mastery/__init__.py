# ABOUTME: Exposes the mastery tracker and its pure belief-update functions.
# ABOUTME: Groups decay, weighted session scoring, and blind-spot detection.

from .tracker import (
    MasteryTracker,
    apply_decay,
    find_blind_spots,
    record_session,
    weighted_mastery_index,
)

__all__ = [
    "MasteryTracker",
    "apply_decay",
    "find_blind_spots",
    "record_session",
    "weighted_mastery_index",
]
