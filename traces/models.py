"""
Models for persisted pipeline traces.

Run - One pipeline execution, written once at ingestion and never updated
Step - One stage within a run, ordered by step_index
Candidate - One sampled member of a step's intermediate result set
"""

import uuid
from django.db import models


class Run(models.Model):
    """A single traced pipeline execution."""

    STATUS_CHOICES = [
        ('running', 'Running'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    pipeline_name = models.CharField(max_length=255)
    status = models.CharField(max_length=50, choices=STATUS_CHOICES)
    started_at = models.DateTimeField()
    completed_at = models.DateTimeField(null=True, blank=True)
    input = models.JSONField(null=True, blank=True)
    output = models.JSONField(null=True, blank=True)
    metadata = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'runs'
        ordering = ['-started_at']
        indexes = [
            models.Index(fields=['pipeline_name'], name='idx_runs_pipeline'),
            models.Index(fields=['status'], name='idx_runs_status'),
            models.Index(fields=['-started_at'], name='idx_runs_started_at'),
        ]

    def __str__(self):
        return f'{self.pipeline_name} {self.id} ({self.status})'


class Step(models.Model):
    """One named, typed stage within a run."""

    TYPE_CHOICES = [
        ('llm', 'LLM'),
        ('api', 'API'),
        ('filter', 'Filter'),
        ('rank', 'Rank'),
        ('transform', 'Transform'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    run = models.ForeignKey(Run, on_delete=models.CASCADE, related_name='steps')
    step_name = models.CharField(max_length=255)
    step_type = models.CharField(max_length=50, choices=TYPE_CHOICES)
    step_index = models.PositiveIntegerField(help_text='Zero-based creation order within the run')
    started_at = models.DateTimeField()
    completed_at = models.DateTimeField(null=True, blank=True)
    duration_ms = models.IntegerField(null=True, blank=True)
    input = models.JSONField(null=True, blank=True)
    output = models.JSONField(null=True, blank=True)
    candidates_in = models.IntegerField(null=True, blank=True)
    candidates_out = models.IntegerField(null=True, blank=True)
    reasoning = models.TextField(null=True, blank=True)
    filters_applied = models.JSONField(null=True, blank=True)
    metadata = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'steps'
        ordering = ['step_index']
        indexes = [
            models.Index(fields=['run'], name='idx_steps_run_id'),
            models.Index(fields=['step_name'], name='idx_steps_step_name'),
            models.Index(
                models.F('candidates_in') - models.F('candidates_out'),
                name='idx_steps_elimination',
                condition=models.Q(candidates_in__isnull=False),
            ),
        ]
        constraints = [
            models.UniqueConstraint(fields=['run', 'step_index'], name='unique_run_step_index'),
        ]

    def __str__(self):
        return f'{self.run_id} #{self.step_index}: {self.step_name} ({self.step_type})'

    @property
    def elimination_rate(self):
        """1 - candidates_out/candidates_in, or None when it cannot be computed."""
        if not self.candidates_in or self.candidates_out is None:
            return None
        return 1.0 - self.candidates_out / self.candidates_in


class Candidate(models.Model):
    """A sampled candidate retained for a step."""

    STATUS_CHOICES = [
        ('accepted', 'Accepted'),
        ('rejected', 'Rejected'),
        ('filtered_out', 'Filtered Out'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    step = models.ForeignKey(Step, on_delete=models.CASCADE, related_name='candidates')
    candidate_data = models.JSONField()
    status = models.CharField(max_length=50, choices=STATUS_CHOICES)
    score = models.FloatField(null=True, blank=True)
    reason = models.TextField(null=True, blank=True)
    rejection_reason = models.TextField(null=True, blank=True)
    rejection_filter = models.CharField(max_length=255, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'candidates'
        indexes = [
            models.Index(fields=['step'], name='idx_candidates_step_id'),
            models.Index(fields=['status'], name='idx_candidates_status'),
        ]

    def __str__(self):
        return f'{self.step_id}: {self.status}'
