"""
Candidate sampling policy.

Decides which members of a step's intermediate result set are kept in the
trace. Pure functions only: the same input order always yields the same sample.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from .config import SamplingConfig

ACCEPTED = 'accepted'
REJECTED = 'rejected'
FILTERED_OUT = 'filtered_out'

CANDIDATE_STATUSES = (ACCEPTED, REJECTED, FILTERED_OUT)


@dataclass(frozen=True)
class CandidateRecord:
    """One retained candidate, tagged with its disposition."""
    data: Any
    status: str
    score: Optional[float] = None
    rejection_reason: Optional[str] = None
    rejection_filter: Optional[str] = None

    def to_dict(self) -> dict:
        payload = {'data': self.data, 'status': self.status}
        if self.score is not None:
            payload['score'] = self.score
        if self.rejection_reason is not None:
            payload['rejectionReason'] = self.rejection_reason
        if self.rejection_filter is not None:
            payload['rejectionFilter'] = self.rejection_filter
        return payload


def rejected_sample_size(n: int, config: SamplingConfig) -> int:
    """
    Number of rejected candidates to keep out of n.

    max(ceil(n * sample_rate), min_rejected_sample), never more than n.
    """
    if n <= 0:
        return 0
    size = max(math.ceil(n * config.sample_rate), config.min_rejected_sample)
    return min(size, n)


def sample_candidates(
    candidates: Iterable[Any],
    status: str,
    config: SamplingConfig,
    rejection_filter: Optional[str] = None,
    score: Optional[Callable[[Any], Optional[float]]] = None,
) -> list[CandidateRecord]:
    """
    Select the candidates to persist for one disposition.

    Args:
        candidates: Candidate values, in pipeline order
        status: Disposition to tag them with (accepted, rejected, filtered_out)
        config: Sampling configuration
        rejection_filter: Name of the rejecting filter (rejected candidates only)
        score: Optional callable returning a numeric score per candidate

    Returns:
        CandidateRecord list; a positional prefix for rejections, everything otherwise
    """
    candidates = list(candidates)

    if status == REJECTED:
        kept = candidates[:rejected_sample_size(len(candidates), config)]
        return [
            CandidateRecord(
                data=c,
                status=status,
                score=score(c) if score else None,
                rejection_filter=rejection_filter,
            )
            for c in kept
        ]

    # Accepted and filtered_out keep the full set; keep_all_outputs does not change this
    return [
        CandidateRecord(data=c, status=status, score=score(c) if score else None)
        for c in candidates
    ]
