"""
Trace ingestion and query endpoints.

Mounted under /api/ by config.urls. Every response uses the envelope
{"success": bool, ...}; failures carry an "error" message.
"""

import logging

from ninja import Query, Router

from .ingestion import IngestionError, ingest_run
from .models import Run
from .queries import (
    DEFAULT_PAGE_SIZE,
    find_high_elimination_steps,
    get_run_detail,
    list_runs,
    recent_runs,
)
from .schemas import QueryFilterIn, RunIn, RunStatus

logger = logging.getLogger(__name__)

router = Router(tags=['runs'])


@router.post('/runs', response={201: dict, 500: dict})
def create_run(request, payload: RunIn):
    """Persist a finished run trace (run, steps and candidates) atomically."""
    try:
        run = ingest_run(payload)
    except IngestionError as e:
        return 500, {'success': False, 'error': str(e)}

    return 201, {
        'success': True,
        'message': 'Run trace recorded successfully',
        'runId': str(run.id),
    }


@router.get('/runs', response={200: dict})
def get_runs(
    request,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    pipeline_name: str | None = Query(None, alias='pipelineName'),
    status: RunStatus | None = None,
):
    """List runs, most recent first."""
    return 200, {
        'success': True,
        'data': list_runs(page=page, limit=limit, pipeline_name=pipeline_name, status=status),
    }


# Registered before /runs/{run_id} so "query" is not captured as a run id
@router.post('/runs/query', response={200: dict})
def query_runs(request, filters: QueryFilterIn):
    """
    Cross-pipeline analysis.

    With minEliminationRate: steps from any pipeline that eliminated at least
    that fraction of their candidates, highest rate first (max 100).
    Without it: the 50 most recent runs.
    """
    if filters.min_elimination_rate is not None:
        data = find_high_elimination_steps(
            filters.min_elimination_rate,
            pipeline_name=filters.pipeline_name,
            step_name=filters.step_name,
            step_type=filters.step_type,
        )
    else:
        data = recent_runs(
            pipeline_name=filters.pipeline_name,
            status=filters.status,
            start_date=filters.start_date,
            end_date=filters.end_date,
        )
    return 200, {'success': True, 'data': data}


@router.get('/runs/{run_id}', response={200: dict, 404: dict})
def get_run(request, run_id: str):
    """Fetch one run with its ordered steps and their sampled candidates."""
    try:
        data = get_run_detail(run_id)
    except Run.DoesNotExist:
        return 404, {'success': False, 'error': 'Run not found'}
    return 200, {'success': True, 'data': data}
