"""
Atomic ingestion of a run trace.

The run row is written first, then each step in index order followed by that
step's candidates, all inside one transaction. Any database error rolls the
whole run back. Runs are never updated after ingestion; a repeated delivery
of the same run id fails on the primary key.
"""

import logging

from django.db import DatabaseError, transaction

from .models import Candidate, Run, Step
from .schemas import RunIn, StepIn

logger = logging.getLogger(__name__)


class IngestionError(Exception):
    """Raised when a run could not be persisted. Nothing was written."""

    def __init__(self, run_id, message: str):
        self.run_id = run_id
        super().__init__(message)


def _duration_ms(step: StepIn):
    if step.duration_ms is not None:
        return step.duration_ms
    if step.completed_at is None:
        return None
    return int((step.completed_at - step.started_at).total_seconds() * 1000)


def ingest_run(payload: RunIn) -> Run:
    """
    Persist a run with all of its steps and candidates, or nothing at all.

    Args:
        payload: Validated run payload

    Returns:
        The created Run

    Raises:
        IngestionError: Any database failure (duplicate id, connectivity, constraint)
    """
    candidate_count = 0
    try:
        with transaction.atomic():
            run = Run.objects.create(
                id=payload.id,
                pipeline_name=payload.pipeline_name,
                status=payload.status,
                started_at=payload.started_at,
                completed_at=payload.completed_at,
                input=payload.input,
                output=payload.output,
                metadata=payload.metadata,
            )

            for step_in in sorted(payload.steps, key=lambda s: s.step_index):
                step = Step.objects.create(
                    id=step_in.id,
                    run=run,
                    step_name=step_in.step_name,
                    step_type=step_in.step_type,
                    step_index=step_in.step_index,
                    started_at=step_in.started_at,
                    completed_at=step_in.completed_at,
                    duration_ms=_duration_ms(step_in),
                    input=step_in.input,
                    output=step_in.output,
                    candidates_in=step_in.candidates_in,
                    candidates_out=step_in.candidates_out,
                    reasoning=step_in.reasoning,
                    filters_applied=[
                        f.model_dump(by_alias=True) for f in step_in.filters_applied
                    ] or None,
                    metadata=step_in.metadata,
                )

                if step_in.candidates:
                    Candidate.objects.bulk_create([
                        Candidate(
                            step=step,
                            candidate_data=c.data,
                            status=c.status,
                            score=c.score,
                            reason=c.reason,
                            rejection_reason=c.rejection_reason,
                            rejection_filter=c.rejection_filter,
                        )
                        for c in step_in.candidates
                    ])
                    candidate_count += len(step_in.candidates)
    except DatabaseError as e:
        logger.error(f'Failed to ingest run {payload.id} ({payload.pipeline_name}), rolled back: {e}')
        raise IngestionError(payload.id, str(e)) from e

    logger.info(
        f'Ingested run {run.id} ({run.pipeline_name}): '
        f'{len(payload.steps)} steps, {candidate_count} candidates'
    )
    return run
