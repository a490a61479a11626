"""Metrics Worker: Error Taxonomy.

Sub-fetch failures are caught inside the collectors, cycle failures at the
scheduler iteration boundary. Only sink initialization failures are fatal.
"""


class MetricsWorkerError(Exception):
    """Base class for worker errors."""


class SinkInitializationError(MetricsWorkerError):
    """Raised when the sink cannot establish connectivity at startup."""


class SinkWriteError(MetricsWorkerError):
    """Raised when a single record cannot be persisted."""

    def __init__(self, message: str, record_type: str = ""):
        self.record_type = record_type
        super().__init__(message)
