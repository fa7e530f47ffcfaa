"""
Read-only access to persisted traces.

Results are returned as plain dicts with camelCase keys, matching the shape
the xray client sends at ingestion.
"""

import logging
import math
from typing import Optional
from uuid import UUID

from django.db.models import Count, ExpressionWrapper, FloatField, Prefetch, Value
from django.db.models.functions import Cast, NullIf

from .models import Candidate, Run, Step

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
ELIMINATION_QUERY_LIMIT = 100
RECENT_RUNS_LIMIT = 50

# 1 - out/in; NULL when candidates_in is 0 so the division can never fail
ELIMINATION_RATE = ExpressionWrapper(
    Value(1.0) - Cast('candidates_out', FloatField())
    / NullIf(Cast('candidates_in', FloatField()), Value(0.0)),
    output_field=FloatField(),
)


def _iso(value):
    return value.isoformat() if value else None


def serialize_candidate(candidate: Candidate) -> dict:
    return {
        'id': str(candidate.id),
        'stepId': str(candidate.step_id),
        'data': candidate.candidate_data,
        'status': candidate.status,
        'score': candidate.score,
        'reason': candidate.reason,
        'rejectionReason': candidate.rejection_reason,
        'rejectionFilter': candidate.rejection_filter,
    }


def serialize_step(step: Step, include_candidates: bool = True) -> dict:
    data = {
        'id': str(step.id),
        'runId': str(step.run_id),
        'stepName': step.step_name,
        'stepType': step.step_type,
        'stepIndex': step.step_index,
        'startedAt': _iso(step.started_at),
        'completedAt': _iso(step.completed_at),
        'durationMs': step.duration_ms,
        'input': step.input,
        'output': step.output,
        'candidatesIn': step.candidates_in,
        'candidatesOut': step.candidates_out,
        'eliminationRate': step.elimination_rate,
        'reasoning': step.reasoning,
        'filtersApplied': step.filters_applied or [],
        'metadata': step.metadata,
    }
    if include_candidates:
        data['candidates'] = [serialize_candidate(c) for c in step.candidates.all()]
    return data


def serialize_run(run: Run, include_steps: bool = False) -> dict:
    data = {
        'id': str(run.id),
        'pipelineName': run.pipeline_name,
        'status': run.status,
        'startedAt': _iso(run.started_at),
        'completedAt': _iso(run.completed_at),
        'input': run.input,
        'output': run.output,
        'metadata': run.metadata,
    }
    if include_steps:
        data['steps'] = [serialize_step(s) for s in run.steps.all()]
    elif hasattr(run, 'step_count'):
        data['stepCount'] = run.step_count
    return data


def get_run_detail(run_id) -> dict:
    """
    Fetch one run with its steps (by index) and each step's candidates.

    Raises:
        Run.DoesNotExist: No run with this id, or the id is not a valid UUID
    """
    try:
        run_uuid = UUID(str(run_id))
    except ValueError:
        raise Run.DoesNotExist(f'Invalid run id: {run_id}')

    run = Run.objects.prefetch_related(
        Prefetch(
            'steps',
            queryset=Step.objects.order_by('step_index').prefetch_related('candidates'),
        )
    ).get(id=run_uuid)
    return serialize_run(run, include_steps=True)


def list_runs(
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    pipeline_name: Optional[str] = None,
    status: Optional[str] = None,
) -> dict:
    """Page through runs, most recent first, with optional equality filters."""
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    qs = Run.objects.all()
    if pipeline_name:
        qs = qs.filter(pipeline_name=pipeline_name)
    if status:
        qs = qs.filter(status=status)

    total = qs.count()
    offset = (page - 1) * limit
    runs = qs.annotate(step_count=Count('steps')).order_by('-started_at')[offset:offset + limit]

    return {
        'runs': [serialize_run(r) for r in runs],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'totalPages': math.ceil(total / limit),
        },
    }


def find_high_elimination_steps(
    min_elimination_rate: float,
    pipeline_name: Optional[str] = None,
    step_name: Optional[str] = None,
    step_type: Optional[str] = None,
    limit: int = ELIMINATION_QUERY_LIMIT,
) -> list[dict]:
    """
    Steps across all pipelines whose elimination rate is at least the threshold.

    Steps without candidate counts, or with candidates_in == 0, never match.
    Ordered by elimination rate, highest first.
    """
    qs = (
        Step.objects.select_related('run')
        .filter(candidates_in__gt=0, candidates_out__isnull=False)
        .annotate(rate=ELIMINATION_RATE)
        .filter(rate__gte=min_elimination_rate)
    )
    if pipeline_name:
        qs = qs.filter(run__pipeline_name=pipeline_name)
    if step_name:
        qs = qs.filter(step_name=step_name)
    if step_type:
        qs = qs.filter(step_type=step_type)

    steps = list(qs.order_by('-rate', '-run__started_at', 'step_index')[:limit])
    logger.debug(f'Elimination query >= {min_elimination_rate}: {len(steps)} steps')
    return [
        {
            'runId': str(step.run_id),
            'pipelineName': step.run.pipeline_name,
            'startedAt': _iso(step.run.started_at),
            'stepId': str(step.id),
            'stepName': step.step_name,
            'stepType': step.step_type,
            'stepIndex': step.step_index,
            'candidatesIn': step.candidates_in,
            'candidatesOut': step.candidates_out,
            'eliminationRate': step.rate,
            'filtersApplied': step.filters_applied or [],
        }
        for step in steps
    ]


def recent_runs(
    pipeline_name: Optional[str] = None,
    status: Optional[str] = None,
    start_date=None,
    end_date=None,
    limit: int = RECENT_RUNS_LIMIT,
) -> list[dict]:
    """Most recent runs, optionally narrowed by pipeline, status and start window."""
    qs = Run.objects.all()
    if pipeline_name:
        qs = qs.filter(pipeline_name=pipeline_name)
    if status:
        qs = qs.filter(status=status)
    if start_date:
        qs = qs.filter(started_at__gte=start_date)
    if end_date:
        qs = qs.filter(started_at__lte=end_date)
    return [serialize_run(r) for r in qs.order_by('-started_at')[:limit]]
