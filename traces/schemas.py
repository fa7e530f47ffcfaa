"""
Request schemas for the trace API.

Payload field names are camelCase on the wire (as produced by the xray
client) and snake_case in Python. Input, output, metadata and candidate
data are opaque JSON and are not inspected.
"""

from datetime import datetime
from typing import Any, List, Literal, Optional
from uuid import UUID

from django.utils import timezone
from ninja import Field, Schema
from pydantic import field_validator, model_validator

RunStatus = Literal['running', 'completed', 'failed']
StepType = Literal['llm', 'api', 'filter', 'rank', 'transform']
CandidateStatus = Literal['accepted', 'rejected', 'filtered_out']


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps without an offset are read in the server's TIME_ZONE (UTC)."""
    if value is not None and timezone.is_naive(value):
        return timezone.make_aware(value)
    return value


class CandidateIn(Schema):
    data: Any
    status: CandidateStatus
    score: Optional[float] = None
    reason: Optional[str] = None
    rejection_reason: Optional[str] = Field(None, alias='rejectionReason')
    rejection_filter: Optional[str] = Field(None, alias='rejectionFilter')


class FilterApplicationIn(Schema):
    filter_name: str = Field(..., alias='filterName')
    filter_type: str = Field(..., alias='filterType')
    parameters: Optional[dict] = None
    candidates_before: int = Field(..., ge=0, alias='candidatesBefore')
    candidates_after: int = Field(..., ge=0, alias='candidatesAfter')
    elimination_rate: Optional[float] = Field(None, alias='eliminationRate')


class StepIn(Schema):
    id: UUID
    run_id: Optional[UUID] = Field(None, alias='runId')
    step_name: str = Field(..., min_length=1, alias='stepName')
    step_type: StepType = Field('transform', alias='stepType')
    step_index: int = Field(..., ge=0, alias='stepIndex')
    started_at: datetime = Field(..., alias='startedAt')
    completed_at: Optional[datetime] = Field(None, alias='completedAt')
    duration_ms: Optional[int] = Field(None, alias='durationMs')
    input: Any = None
    output: Any = None
    candidates_in: Optional[int] = Field(None, ge=0, alias='candidatesIn')
    candidates_out: Optional[int] = Field(None, ge=0, alias='candidatesOut')
    reasoning: Optional[str] = None
    filters_applied: List[FilterApplicationIn] = Field(default_factory=list, alias='filtersApplied')
    metadata: Optional[dict] = None
    candidates: List[CandidateIn] = Field(default_factory=list)

    normalize_timestamps = field_validator('started_at', 'completed_at')(_aware)

    @model_validator(mode='after')
    def check_candidate_counts(self):
        if (
            self.candidates_in is not None
            and self.candidates_out is not None
            and self.candidates_out > self.candidates_in
        ):
            raise ValueError(
                f'step {self.step_index}: candidatesOut ({self.candidates_out}) '
                f'exceeds candidatesIn ({self.candidates_in})'
            )
        return self


class RunIn(Schema):
    id: UUID
    pipeline_name: str = Field(..., min_length=1, max_length=255, alias='pipelineName')
    status: RunStatus
    started_at: datetime = Field(..., alias='startedAt')
    completed_at: Optional[datetime] = Field(None, alias='completedAt')
    input: Any = None
    output: Any = None
    metadata: Optional[dict] = None
    steps: List[StepIn] = Field(default_factory=list)

    normalize_timestamps = field_validator('started_at', 'completed_at')(_aware)

    @model_validator(mode='after')
    def check_run_consistency(self):
        if (self.status == 'running') != (self.completed_at is None):
            raise ValueError('completedAt must be set exactly when status is not running')

        indexes = sorted(step.step_index for step in self.steps)
        if indexes != list(range(len(self.steps))):
            raise ValueError(f'step indexes must be 0..{len(self.steps) - 1} without gaps, got {indexes}')

        for step in self.steps:
            if step.run_id is not None and step.run_id != self.id:
                raise ValueError(f'step {step.step_index} belongs to run {step.run_id}, not {self.id}')
        return self


class QueryFilterIn(Schema):
    """Body of POST /runs/query. Without min_elimination_rate, recent runs are returned."""
    min_elimination_rate: Optional[float] = Field(None, alias='minEliminationRate')
    pipeline_name: Optional[str] = Field(None, alias='pipelineName')
    status: Optional[RunStatus] = None
    step_name: Optional[str] = Field(None, alias='stepName')
    step_type: Optional[StepType] = Field(None, alias='stepType')
    start_date: Optional[datetime] = Field(None, alias='startDate')
    end_date: Optional[datetime] = Field(None, alias='endDate')
