# ABOUTME: Makes the shared common package importable across the engines.
# ABOUTME: Re-exports the record types and configuration objects for convenience.

from .config import EngineConfig, SimulationConfig, load_engine_config
from .schemas import (
    BehavioralProfile,
    MasteryRecord,
    PredictionResult,
    PredictionSnapshot,
    SessionItem,
    SubjectDefinition,
)

__all__ = [
    "BehavioralProfile",
    "EngineConfig",
    "MasteryRecord",
    "PredictionResult",
    "PredictionSnapshot",
    "SessionItem",
    "SimulationConfig",
    "SubjectDefinition",
    "load_engine_config",
]
