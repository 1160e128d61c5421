# ABOUTME: Exposes the behavioral profiler and its trait update rules.
# ABOUTME: Re-exports passive signal derivation and prediction modifier helpers.

from .profiler import (
    BehavioralProfiler,
    apply_idle_decay,
    get_archetype,
    get_prediction_modifiers,
    update_from_active_signal,
    update_from_passive_signal,
    update_trait,
)
from .signals import derive_passive_signals

__all__ = [
    "BehavioralProfiler",
    "apply_idle_decay",
    "derive_passive_signals",
    "get_archetype",
    "get_prediction_modifiers",
    "update_from_active_signal",
    "update_from_passive_signal",
    "update_trait",
]
