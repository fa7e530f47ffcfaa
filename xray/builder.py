"""
Trace builder - records why a multi-step decision pipeline produced its output.

Usage:
    xray = XRay(TracerConfig.from_env())
    run = xray.start_run('competitor-selection', {'productId': 42})

    search = run.add_step('search', step_type='api')
    search.record_input({'keywords': keywords})
    search.record_candidates(results)

    price = run.add_step('price-filter', step_type='filter')
    price.record_filtering(results, affordable, 'price_range', 'range',
                           {'min': 50, 'max': 500})

    run.complete(best_match)   # hands the run to the transport, returns immediately

All recording is synchronous and in-memory. The only I/O happens in the
transport after complete() or fail(), and that never raises into the caller.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional
from uuid import uuid4

from .config import SamplingConfig, TracerConfig
from .exceptions import RunFinalizedError
from .sampling import (
    ACCEPTED,
    CANDIDATE_STATUSES,
    REJECTED,
    CandidateRecord,
    sample_candidates,
)
from .transport import HttpTransport, NullTransport

logger = logging.getLogger(__name__)

RUNNING = 'running'
COMPLETED = 'completed'
FAILED = 'failed'

STEP_TYPES = ('llm', 'api', 'filter', 'rank', 'transform')
DEFAULT_STEP_TYPE = 'transform'


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def elimination_rate(before: int, after: int) -> float:
    """
    Fraction of candidates removed by a filtering pass: 1 - after/before.

    An empty input eliminates nothing, so before == 0 gives 0.0.
    """
    if before <= 0:
        return 0.0
    return 1.0 - after / before


def partition_candidates(
    before: Iterable[Any],
    after: Iterable[Any],
    key: Optional[Callable[[Any], Any]] = None,
) -> tuple[list, list]:
    """
    Split `before` into (kept, rejected) according to membership in `after`.

    Membership is object identity unless `key` is given, in which case the
    candidates are compared by key(candidate). Structurally equal but distinct
    objects count as different candidates under identity membership.
    """
    after = list(after)
    if key is None:
        survivors = {id(c) for c in after}
        ident = id
    else:
        survivors = {key(c) for c in after}
        ident = key

    kept, rejected = [], []
    for candidate in before:
        (kept if ident(candidate) in survivors else rejected).append(candidate)
    return kept, rejected


@dataclass(frozen=True)
class FilterApplication:
    """One filtering pass recorded on a step."""
    filter_name: str
    filter_type: str
    candidates_before: int
    candidates_after: int
    elimination_rate: float
    parameters: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            'filterName': self.filter_name,
            'filterType': self.filter_type,
            'parameters': self.parameters,
            'candidatesBefore': self.candidates_before,
            'candidatesAfter': self.candidates_after,
            'eliminationRate': self.elimination_rate,
        }


class Step:
    """
    One named, typed stage within a Run.

    Created through Run.add_step(); the recording methods return the step so
    calls can be chained.
    """

    def __init__(
        self,
        run_id: str,
        name: str,
        step_type: str,
        index: int,
        sampling: SamplingConfig,
    ):
        self.id = str(uuid4())
        self.run_id = run_id
        self.name = name
        self.step_type = step_type
        self.index = index
        self.started_at = _now()
        self.completed_at: Optional[datetime] = None
        self.input: Any = None
        self.output: Any = None
        self.candidates_in: Optional[int] = None
        self.candidates_out: Optional[int] = None
        self.reasoning: Optional[str] = None
        self.filters_applied: list[FilterApplication] = []
        self.metadata: Optional[dict] = None
        self.candidates: list[CandidateRecord] = []
        self._sampling = sampling
        self._run_status: Optional[str] = None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    def record_input(self, value: Any) -> 'Step':
        self._ensure_open()
        self.input = value
        return self

    def record_output(self, value: Any) -> 'Step':
        """Record the step's output and stamp its completion time."""
        self._ensure_open()
        self.output = value
        self.completed_at = _now()
        return self

    def record_candidates(
        self,
        candidates: Iterable[Any],
        status: str = ACCEPTED,
        score: Optional[Callable[[Any], Optional[float]]] = None,
    ) -> 'Step':
        """
        Record a candidate set, keeping only what the sampling policy selects.

        For accepted candidates, candidates_out is the full pre-sampling count.
        """
        self._ensure_open()
        if status not in CANDIDATE_STATUSES:
            raise ValueError(f'Unknown candidate status: {status}')

        candidates = list(candidates)
        if status == ACCEPTED:
            self._check_candidates_out(len(candidates))
        self.candidates.extend(sample_candidates(candidates, status, self._sampling, score=score))
        if status == ACCEPTED:
            self.candidates_out = len(candidates)
        return self

    def record_filtering(
        self,
        candidates_in: Iterable[Any],
        candidates_out: Iterable[Any],
        filter_name: str,
        filter_type: str,
        parameters: Optional[dict] = None,
        key: Optional[Callable[[Any], Any]] = None,
    ) -> 'Step':
        """
        Record one filtering pass from candidates_in down to candidates_out.

        Rejected candidates (members of candidates_in missing from candidates_out)
        are sampled and tagged with filter_name; survivors are sampled as accepted.
        Pass the same candidate objects through the filter, or supply `key` to
        compare by a stable identifier instead.

        Raises:
            ValueError: candidates_out is larger than candidates_in
        """
        self._ensure_open()
        before = list(candidates_in)
        after = list(candidates_out)
        if len(after) > len(before):
            raise ValueError(
                f'Filter {filter_name} produced {len(after)} candidates from {len(before)}'
            )

        self.candidates_in = len(before)
        self.candidates_out = len(after)
        self.filters_applied.append(FilterApplication(
            filter_name=filter_name,
            filter_type=filter_type,
            parameters=dict(parameters) if parameters is not None else None,
            candidates_before=len(before),
            candidates_after=len(after),
            elimination_rate=elimination_rate(len(before), len(after)),
        ))

        _, rejected = partition_candidates(before, after, key=key)
        self.candidates.extend(
            sample_candidates(rejected, REJECTED, self._sampling, rejection_filter=filter_name)
        )
        self.candidates.extend(sample_candidates(after, ACCEPTED, self._sampling))
        return self

    def record_llm_decision(self, reasoning: str, candidates_out: Optional[int] = None) -> 'Step':
        """
        Record an LLM's reasoning; marks the step as an llm step.

        Raises:
            ValueError: candidates_out exceeds the step's recorded candidates_in
        """
        self._ensure_open()
        if candidates_out is not None:
            self._check_candidates_out(candidates_out)
        self.reasoning = reasoning
        self.step_type = 'llm'
        if candidates_out is not None:
            self.candidates_out = candidates_out
        return self

    def set_metadata(self, metadata: dict) -> 'Step':
        """Shallow-merge metadata; later keys win. The previous dict is not mutated."""
        self._ensure_open()
        self.metadata = {**(self.metadata or {}), **metadata}
        return self

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'runId': self.run_id,
            'stepName': self.name,
            'stepType': self.step_type,
            'stepIndex': self.index,
            'startedAt': _isoformat(self.started_at),
            'completedAt': _isoformat(self.completed_at),
            'durationMs': self.duration_ms,
            'input': self.input,
            'output': self.output,
            'candidatesIn': self.candidates_in,
            'candidatesOut': self.candidates_out,
            'candidates': [c.to_dict() for c in self.candidates],
            'reasoning': self.reasoning,
            'filtersApplied': [f.to_dict() for f in self.filters_applied],
            'metadata': self.metadata,
        }

    def _check_candidates_out(self, count: int):
        if self.candidates_in is not None and count > self.candidates_in:
            raise ValueError(
                f'Step {self.name}: candidates_out ({count}) exceeds candidates_in ({self.candidates_in})'
            )

    def _finalize(self, run_status: str):
        self._run_status = run_status

    def _ensure_open(self):
        if self._run_status is not None:
            raise RunFinalizedError(self.run_id, self._run_status)

    def __repr__(self):
        return f'<Step {self.index}: {self.name} ({self.step_type})>'


class Run:
    """
    One traced pipeline execution.

    Status moves from running to completed or failed exactly once. After that
    the run and its steps are read-only and the run has been handed to the
    transport.
    """

    def __init__(
        self,
        pipeline_name: str,
        input: Any,
        sampling: SamplingConfig,
        transport,
        metadata: Optional[dict] = None,
    ):
        self.id = str(uuid4())
        self.pipeline_name = pipeline_name
        self.input = input
        self.output: Any = None
        self.status = RUNNING
        self.started_at = _now()
        self.completed_at: Optional[datetime] = None
        self.metadata: Optional[dict] = dict(metadata) if metadata is not None else None
        self.steps: list[Step] = []
        self._sampling = sampling
        self._transport = transport

    @property
    def is_finished(self) -> bool:
        return self.status != RUNNING

    def add_step(self, name: str, step_type: str = DEFAULT_STEP_TYPE) -> Step:
        """Append a new step; its index is its position in creation order."""
        self._ensure_open()
        if step_type not in STEP_TYPES:
            raise ValueError(f'Unknown step type: {step_type}')
        step = Step(self.id, name, step_type, len(self.steps), self._sampling)
        self.steps.append(step)
        return step

    def set_metadata(self, metadata: dict) -> 'Run':
        self._ensure_open()
        self.metadata = {**(self.metadata or {}), **metadata}
        return self

    def complete(self, output: Any = None) -> None:
        """Mark the run completed and send it."""
        self._ensure_open()
        self.output = output
        self._finish(COMPLETED)

    def fail(self, error: BaseException) -> None:
        """Mark the run failed, recording the error message in metadata, and send it."""
        self._ensure_open()
        self.metadata = {**(self.metadata or {}), 'error': str(error)}
        self._finish(FAILED)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'pipelineName': self.pipeline_name,
            'status': self.status,
            'startedAt': _isoformat(self.started_at),
            'completedAt': _isoformat(self.completed_at),
            'input': self.input,
            'output': self.output,
            'metadata': self.metadata,
            'steps': [s.to_dict() for s in self.steps],
        }

    def _finish(self, status: str):
        self.status = status
        self.completed_at = _now()
        for step in self.steps:
            step._finalize(status)

        logger.info(
            f'Run {self.id} ({self.pipeline_name}) {status} with {len(self.steps)} steps'
        )
        try:
            self._transport.send(self.to_dict())
        except Exception as e:
            logger.error(f'Failed to hand run {self.id} to transport: {e}')

    def _ensure_open(self):
        if self.is_finished:
            raise RunFinalizedError(self.id, self.status)

    def __enter__(self) -> 'Run':
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.is_finished:
            return False
        if exc is not None:
            self.fail(exc)
        else:
            self.complete()
        return False

    def __repr__(self):
        return f'<Run {self.id}: {self.pipeline_name} ({self.status})>'


class XRay:
    """
    Entry point for instrumenting a pipeline.

    Args:
        config: Tracer configuration; defaults to TracerConfig()
        transport: Object with send(payload) and flush(timeout); defaults to HttpTransport
        enabled: When False, runs are built but never sent
    """

    def __init__(
        self,
        config: Optional[TracerConfig] = None,
        transport=None,
        enabled: bool = True,
    ):
        self.config = config or TracerConfig()
        if not enabled:
            transport = NullTransport()
        elif transport is None:
            transport = HttpTransport(self.config)
        self.transport = transport

    def start_run(self, pipeline_name: str, input: Any, metadata: Optional[dict] = None) -> Run:
        return Run(pipeline_name, input, self.config.sampling, self.transport, metadata)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries (useful before a short-lived script exits)."""
        self.transport.flush(timeout)
