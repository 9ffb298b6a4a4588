"""
Custom exception hierarchy for the resampled tuning engines.
"""


class TuneException(Exception):
    """Base exception for all system errors."""
    pass


class ConfigurationError(TuneException):
    """Search space, resampling or run configuration is invalid."""
    pass


class EvaluationFailure(TuneException):
    """A single fit/score cell failed or timed out."""
    pass


class AllFailedError(TuneException):
    """No configuration produced a usable result."""

    def __init__(self, message: str, history=None):
        super().__init__(message)
        self.history = history


class ConvergenceWarning(UserWarning):
    """Sequential search stopped early because the metric stopped improving."""
    pass
