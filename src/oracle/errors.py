# ABOUTME: Exception hierarchy raised by the caller-side oracle client.
# ABOUTME: The worker itself never raises; it reports faults as ERROR messages.


class OracleError(Exception):
    """Base exception for oracle client failures."""


class OracleUnavailableError(OracleError):
    """The isolated worker is not running or died while a request was in flight."""


class OracleTimeoutError(OracleError):
    """No matching response arrived before the caller's deadline."""


class OraclePredictionError(OracleError):
    """The worker answered with an ERROR response."""

    def __init__(self, message: str, trace: str = ""):
        super().__init__(message)
        self.trace = trace
