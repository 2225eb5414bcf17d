"""
Error taxonomy for the interview analyzer.

Precondition violations (a second calibration, detection without a baseline)
are reported as ``False`` return values and never raised. Per-frame detection
failures are absorbed where they happen. Only the errors below cross module
boundaries.
"""


class AnalysisError(Exception):
    """Base class for all analysis errors."""


class InitializationError(AnalysisError):
    """An inference capability could not be loaded."""


class ResourceAcquisitionError(AnalysisError):
    """A capture device (camera, microphone) could not be opened."""


class AnalyzerStartError(AnalysisError):
    """One of the analyzers failed during a fan-out start."""

    def __init__(self, analyzer_name: str, reason: str = ""):
        self.analyzer_name = analyzer_name
        self.reason = reason
        message = f"{analyzer_name} failed to start"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
