"""
Exceptions raised by the trace builder.

Transport failures are never raised; they are logged by the transport itself.
"""


class XRayError(Exception):
    """Base class for trace builder errors."""


class ConfigurationError(XRayError):
    """Raised when a TracerConfig or SamplingConfig is invalid."""


class RunFinalizedError(XRayError):
    """Raised when a finished Run (or one of its Steps) is mutated."""

    def __init__(self, run_id: str, status: str):
        self.run_id = run_id
        self.status = status
        super().__init__(f'Run {run_id} is already {status}')
