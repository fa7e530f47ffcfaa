"""
Tests for traces models.
"""

from datetime import timedelta

from django.db import IntegrityError
from django.test import TestCase
from django.utils import timezone

from traces.models import Candidate, Run, Step


class TestRun(TestCase):
    """Tests for Run model."""

    def test_create_run(self):
        run = Run.objects.create(
            pipeline_name='competitor_selection',
            status='completed',
            started_at=timezone.now(),
            completed_at=timezone.now(),
            input={'product': 'charger'},
        )

        self.assertIsNotNone(run.id)
        self.assertEqual(run.input['product'], 'charger')
        self.assertIsNone(run.output)
        self.assertIsNone(run.metadata)

    def test_run_str(self):
        run = Run.objects.create(pipeline_name='ranker', status='failed', started_at=timezone.now())
        self.assertIn('ranker', str(run))
        self.assertIn('failed', str(run))

    def test_default_ordering_most_recent_first(self):
        now = timezone.now()
        old = Run.objects.create(pipeline_name='p', status='completed', started_at=now - timedelta(hours=1))
        new = Run.objects.create(pipeline_name='p', status='completed', started_at=now)

        self.assertEqual(list(Run.objects.all()), [new, old])


class TestStep(TestCase):
    """Tests for Step model."""

    def setUp(self):
        self.run = Run.objects.create(pipeline_name='p', status='completed', started_at=timezone.now())

    def _step(self, index, **kwargs):
        return Step.objects.create(
            run=self.run,
            step_name=f'step-{index}',
            step_type=kwargs.pop('step_type', 'filter'),
            step_index=index,
            started_at=timezone.now(),
            **kwargs,
        )

    def test_step_ordering(self):
        self._step(2)
        self._step(0)
        self._step(1)

        self.assertEqual([s.step_index for s in self.run.steps.all()], [0, 1, 2])

    def test_step_str(self):
        step = self._step(3)
        self.assertIn('#3', str(step))
        self.assertIn('step-3', str(step))

    def test_elimination_rate(self):
        self.assertAlmostEqual(self._step(0, candidates_in=5000, candidates_out=450).elimination_rate, 0.91)
        self.assertIsNone(self._step(1, candidates_in=0, candidates_out=0).elimination_rate)
        self.assertIsNone(self._step(2, candidates_out=30).elimination_rate)

    def test_unique_run_step_index_constraint(self):
        self._step(0)
        with self.assertRaises(IntegrityError):
            self._step(0)

    def test_cascade_delete(self):
        step = self._step(0)
        Candidate.objects.create(step=step, candidate_data={'id': 1}, status='accepted')

        self.run.delete()

        self.assertEqual(Step.objects.count(), 0)
        self.assertEqual(Candidate.objects.count(), 0)


class TestCandidate(TestCase):
    """Tests for Candidate model."""

    def test_create_candidate(self):
        run = Run.objects.create(pipeline_name='p', status='completed', started_at=timezone.now())
        step = Step.objects.create(run=run, step_name='s', step_type='filter', step_index=0,
                                   started_at=timezone.now())
        candidate = Candidate.objects.create(
            step=step,
            candidate_data={'id': 9, 'name': 'Laptop Stand'},
            status='rejected',
            rejection_filter='category_match',
        )

        self.assertEqual(step.candidates.get(), candidate)
        self.assertEqual(candidate.candidate_data['name'], 'Laptop Stand')
        self.assertIsNone(candidate.score)
        self.assertIn('rejected', str(candidate))
