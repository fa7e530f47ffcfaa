# Generated manually for the trace store schema

import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Run',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('pipeline_name', models.CharField(max_length=255)),
                ('status', models.CharField(choices=[('running', 'Running'), ('completed', 'Completed'), ('failed', 'Failed')], max_length=50)),
                ('started_at', models.DateTimeField()),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('input', models.JSONField(blank=True, null=True)),
                ('output', models.JSONField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'runs',
                'ordering': ['-started_at'],
                'indexes': [
                    models.Index(fields=['pipeline_name'], name='idx_runs_pipeline'),
                    models.Index(fields=['status'], name='idx_runs_status'),
                    models.Index(fields=['-started_at'], name='idx_runs_started_at'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Step',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('step_name', models.CharField(max_length=255)),
                ('step_type', models.CharField(choices=[('llm', 'LLM'), ('api', 'API'), ('filter', 'Filter'), ('rank', 'Rank'), ('transform', 'Transform')], max_length=50)),
                ('step_index', models.PositiveIntegerField(help_text='Zero-based creation order within the run')),
                ('started_at', models.DateTimeField()),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('duration_ms', models.IntegerField(blank=True, null=True)),
                ('input', models.JSONField(blank=True, null=True)),
                ('output', models.JSONField(blank=True, null=True)),
                ('candidates_in', models.IntegerField(blank=True, null=True)),
                ('candidates_out', models.IntegerField(blank=True, null=True)),
                ('reasoning', models.TextField(blank=True, null=True)),
                ('filters_applied', models.JSONField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('run', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='steps', to='traces.run')),
            ],
            options={
                'db_table': 'steps',
                'ordering': ['step_index'],
                'indexes': [
                    models.Index(fields=['run'], name='idx_steps_run_id'),
                    models.Index(fields=['step_name'], name='idx_steps_step_name'),
                    models.Index(
                        models.F('candidates_in') - models.F('candidates_out'),
                        condition=models.Q(('candidates_in__isnull', False)),
                        name='idx_steps_elimination',
                    ),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('run', 'step_index'), name='unique_run_step_index'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Candidate',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('candidate_data', models.JSONField()),
                ('status', models.CharField(choices=[('accepted', 'Accepted'), ('rejected', 'Rejected'), ('filtered_out', 'Filtered Out')], max_length=50)),
                ('score', models.FloatField(blank=True, null=True)),
                ('reason', models.TextField(blank=True, null=True)),
                ('rejection_reason', models.TextField(blank=True, null=True)),
                ('rejection_filter', models.CharField(blank=True, max_length=255, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('step', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='candidates', to='traces.step')),
            ],
            options={
                'db_table': 'candidates',
                'indexes': [
                    models.Index(fields=['step'], name='idx_candidates_step_id'),
                    models.Index(fields=['status'], name='idx_candidates_status'),
                ],
            },
        ),
    ]
