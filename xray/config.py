"""
Tracer configuration.

Every field has a named default so a TracerConfig is always fully populated
once constructed. Validation happens here, not in the sampling code.

Usage:
    config = TracerConfig.from_env()
    config = TracerConfig(api_url='http://traces.internal/api',
                          sampling=SamplingConfig(sample_rate=0.05))
"""

import os
from dataclasses import dataclass, field

from .exceptions import ConfigurationError

DEFAULT_API_URL = 'http://localhost:8000/api'
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_KEEP_ALL_OUTPUTS = True
DEFAULT_SAMPLE_RATE = 0.01

# Rejected samples never shrink below this many candidates (unless fewer exist)
MIN_REJECTED_SAMPLE = 5

_TRUE_VALUES = ('1', 'true', 'yes', 'on')


@dataclass(frozen=True)
class SamplingConfig:
    """
    Controls which candidates are persisted.

    Attributes:
        keep_all_outputs: Accepted by XRAY_KEEP_ALL_OUTPUTS and existing client
            configs, but has no effect: accepted candidates are always kept in
            full, whatever its value. Only rejected candidates are sampled.
        sample_rate: Fraction of rejected candidates to keep, in [0, 1]
        min_rejected_sample: Floor on the rejected sample size
    """
    keep_all_outputs: bool = DEFAULT_KEEP_ALL_OUTPUTS
    sample_rate: float = DEFAULT_SAMPLE_RATE
    min_rejected_sample: int = MIN_REJECTED_SAMPLE

    def __post_init__(self):
        if not 0.0 <= self.sample_rate <= 1.0:
            raise ConfigurationError(
                f'sample_rate must be between 0 and 1, got {self.sample_rate}'
            )
        if self.min_rejected_sample < 0:
            raise ConfigurationError(
                f'min_rejected_sample must be non-negative, got {self.min_rejected_sample}'
            )


@dataclass(frozen=True)
class TracerConfig:
    """Settings for an XRay tracer: where to send runs and how to sample them."""
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    sampling: SamplingConfig = field(default_factory=SamplingConfig)

    def __post_init__(self):
        if not self.api_url:
            raise ConfigurationError('api_url must not be empty')
        if self.timeout <= 0:
            raise ConfigurationError(f'timeout must be positive, got {self.timeout}')

    @property
    def runs_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/runs"

    @classmethod
    def from_env(cls) -> 'TracerConfig':
        """Build a config from XRAY_* environment variables, falling back to defaults."""
        try:
            timeout = float(os.environ.get('XRAY_TIMEOUT', DEFAULT_TIMEOUT_SECONDS))
            sample_rate = float(os.environ.get('XRAY_SAMPLE_RATE', DEFAULT_SAMPLE_RATE))
        except ValueError as e:
            raise ConfigurationError(f'Invalid numeric XRAY_* setting: {e}') from e

        keep_all = os.environ.get('XRAY_KEEP_ALL_OUTPUTS')
        keep_all_outputs = (
            DEFAULT_KEEP_ALL_OUTPUTS if keep_all is None
            else keep_all.strip().lower() in _TRUE_VALUES
        )

        return cls(
            api_url=os.environ.get('XRAY_API_URL', DEFAULT_API_URL),
            timeout=timeout,
            sampling=SamplingConfig(
                keep_all_outputs=keep_all_outputs,
                sample_rate=sample_rate,
            ),
        )
