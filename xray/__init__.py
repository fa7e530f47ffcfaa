"""
Client-side trace builder for multi-step decision pipelines.

Records runs, steps, filtering decisions and sampled candidates in-process,
then ships each finished run to the trace ingestion API without blocking.
"""

from .builder import (
    COMPLETED,
    FAILED,
    RUNNING,
    STEP_TYPES,
    FilterApplication,
    Run,
    Step,
    XRay,
    elimination_rate,
    partition_candidates,
)
from .config import SamplingConfig, TracerConfig
from .exceptions import ConfigurationError, RunFinalizedError, XRayError
from .sampling import ACCEPTED, FILTERED_OUT, REJECTED, CandidateRecord, sample_candidates
from .transport import HttpTransport, NullTransport

__all__ = [
    'ACCEPTED',
    'COMPLETED',
    'FAILED',
    'FILTERED_OUT',
    'REJECTED',
    'RUNNING',
    'STEP_TYPES',
    'CandidateRecord',
    'ConfigurationError',
    'FilterApplication',
    'HttpTransport',
    'NullTransport',
    'Run',
    'RunFinalizedError',
    'SamplingConfig',
    'Step',
    'TracerConfig',
    'XRay',
    'XRayError',
    'elimination_rate',
    'partition_candidates',
    'sample_candidates',
]
