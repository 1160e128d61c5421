# ABOUTME: Exposes the ensemble prediction simulator and its isolated worker transport.
# ABOUTME: Callers normally go through OracleClient; the pure functions serve tests and fallbacks.

from .client import OracleClient
from .display import DisplayBand, format_for_display
from .ensemble import fallback_prediction, neutral_result, predict, select_weights, stack_scores
from .errors import OracleError, OraclePredictionError, OracleTimeoutError, OracleUnavailableError
from .snapshot import build_prediction_snapshot
from .worker import OracleWorker, handle_message

__all__ = [
    "DisplayBand",
    "OracleClient",
    "OracleError",
    "OraclePredictionError",
    "OracleTimeoutError",
    "OracleUnavailableError",
    "OracleWorker",
    "build_prediction_snapshot",
    "fallback_prediction",
    "format_for_display",
    "handle_message",
    "neutral_result",
    "predict",
    "select_weights",
    "stack_scores",
]
