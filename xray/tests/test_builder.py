"""
Tests for the trace builder (XRay, Run, Step).
"""

import unittest
from datetime import datetime
from unittest.mock import Mock

from xray import (
    COMPLETED,
    FAILED,
    RUNNING,
    NullTransport,
    RunFinalizedError,
    SamplingConfig,
    TracerConfig,
    XRay,
    elimination_rate,
    partition_candidates,
)
from xray.transport import HttpTransport


class RecordingTransport:
    """Keeps every payload it is handed."""

    def __init__(self):
        self.payloads = []

    def send(self, payload):
        self.payloads.append(payload)

    def flush(self, timeout=None):
        pass


class TestEliminationRate(unittest.TestCase):

    def test_rate(self):
        self.assertAlmostEqual(elimination_rate(5000, 450), 0.91)
        self.assertAlmostEqual(elimination_rate(120, 4), 0.9667, places=4)

    def test_nothing_eliminated(self):
        self.assertEqual(elimination_rate(10, 10), 0.0)

    def test_empty_input_is_zero(self):
        self.assertEqual(elimination_rate(0, 0), 0.0)


class TestPartitionCandidates(unittest.TestCase):

    def test_identity_membership(self):
        a, b, c = {'id': 1}, {'id': 2}, {'id': 3}
        kept, rejected = partition_candidates([a, b, c], [b])
        self.assertEqual(kept, [b])
        self.assertEqual(rejected, [a, c])

    def test_equal_but_distinct_objects_are_different(self):
        before = [{'id': 1}, {'id': 2}]
        after = [{'id': 1}]  # structurally equal copy, not the same object
        kept, rejected = partition_candidates(before, after)
        self.assertEqual(kept, [])
        self.assertEqual(len(rejected), 2)

    def test_key_membership(self):
        before = [{'id': 1}, {'id': 2}, {'id': 3}]
        after = [{'id': 3}]
        kept, rejected = partition_candidates(before, after, key=lambda c: c['id'])
        self.assertEqual([c['id'] for c in kept], [3])
        self.assertEqual([c['id'] for c in rejected], [1, 2])

    def test_partition_is_exhaustive_and_disjoint(self):
        before = [{'id': i} for i in range(50)]
        after = before[::3]
        kept, rejected = partition_candidates(before, after)

        self.assertEqual(len(kept) + len(rejected), len(before))
        kept_ids = {id(c) for c in kept}
        rejected_ids = {id(c) for c in rejected}
        self.assertFalse(kept_ids & rejected_ids)
        self.assertEqual(kept_ids | rejected_ids, {id(c) for c in before})


class TestRun(unittest.TestCase):

    def setUp(self):
        self.transport = RecordingTransport()
        self.xray = XRay(TracerConfig(), transport=self.transport)

    def test_start_run(self):
        run = self.xray.start_run('competitor_selection', {'q': 'charger'}, {'user': 'u1'})

        self.assertEqual(run.pipeline_name, 'competitor_selection')
        self.assertEqual(run.status, RUNNING)
        self.assertIsNone(run.completed_at)
        self.assertEqual(run.input, {'q': 'charger'})
        self.assertEqual(run.metadata, {'user': 'u1'})
        self.assertIsInstance(run.started_at, datetime)

    def test_run_ids_are_unique(self):
        ids = {self.xray.start_run('p', None).id for _ in range(20)}
        self.assertEqual(len(ids), 20)

    def test_metadata_is_copied(self):
        metadata = {'user': 'u1'}
        run = self.xray.start_run('p', None, metadata)
        run.set_metadata({'extra': True})
        self.assertEqual(metadata, {'user': 'u1'})

    def test_step_indexes_follow_creation_order(self):
        run = self.xray.start_run('p', None)
        steps = [run.add_step(f'step-{i}') for i in range(4)]
        self.assertEqual([s.index for s in steps], [0, 1, 2, 3])
        self.assertTrue(all(s.step_type == 'transform' for s in steps))
        self.assertTrue(all(s.run_id == run.id for s in steps))

    def test_unknown_step_type(self):
        run = self.xray.start_run('p', None)
        with self.assertRaises(ValueError):
            run.add_step('x', step_type='database')

    def test_complete_sends_once(self):
        run = self.xray.start_run('p', {'in': 1})
        run.add_step('search', 'api')
        run.complete({'out': 2})

        self.assertEqual(run.status, COMPLETED)
        self.assertIsNotNone(run.completed_at)
        self.assertEqual(len(self.transport.payloads), 1)
        payload = self.transport.payloads[0]
        self.assertEqual(payload['id'], run.id)
        self.assertEqual(payload['status'], 'completed')
        self.assertEqual(payload['output'], {'out': 2})
        self.assertEqual(len(payload['steps']), 1)

    def test_fail_records_error(self):
        run = self.xray.start_run('p', None, {'user': 'u1'})
        run.fail(RuntimeError('search backend down'))

        self.assertEqual(run.status, FAILED)
        self.assertIsNotNone(run.completed_at)
        self.assertEqual(run.metadata, {'user': 'u1', 'error': 'search backend down'})
        self.assertEqual(self.transport.payloads[0]['status'], 'failed')

    def test_terminal_state_is_final(self):
        run = self.xray.start_run('p', None)
        step = run.add_step('s')
        run.complete('done')

        with self.assertRaises(RunFinalizedError):
            run.complete('again')
        with self.assertRaises(RunFinalizedError):
            run.fail(ValueError('late'))
        with self.assertRaises(RunFinalizedError):
            run.add_step('late')
        with self.assertRaises(RunFinalizedError):
            step.record_output('late')

        self.assertEqual(run.status, COMPLETED)
        self.assertEqual(len(self.transport.payloads), 1)

    def test_context_manager_completes(self):
        with self.xray.start_run('p', None) as run:
            run.add_step('s')
        self.assertEqual(run.status, COMPLETED)
        self.assertEqual(len(self.transport.payloads), 1)

    def test_context_manager_fails_and_reraises(self):
        with self.assertRaises(KeyError):
            with self.xray.start_run('p', None) as run:
                raise KeyError('missing')
        self.assertEqual(run.status, FAILED)
        self.assertIn('error', run.metadata)

    def test_context_manager_respects_explicit_complete(self):
        with self.xray.start_run('p', None) as run:
            run.complete({'answer': 42})
        self.assertEqual(run.output, {'answer': 42})
        self.assertEqual(len(self.transport.payloads), 1)

    def test_transport_errors_do_not_reach_pipeline(self):
        transport = Mock()
        transport.send.side_effect = ConnectionError('boom')
        run = XRay(transport=transport).start_run('p', None)

        run.complete('ok')

        self.assertEqual(run.status, COMPLETED)
        transport.send.assert_called_once()

    def test_disabled_tracer_uses_null_transport(self):
        self.assertIsInstance(XRay(enabled=False).transport, NullTransport)
        self.assertIsInstance(XRay().transport, HttpTransport)

    def test_to_dict_shape(self):
        run = self.xray.start_run('p', {'q': 1})
        run.add_step('s', 'rank').record_output([1, 2])
        run.complete([1])
        payload = run.to_dict()

        self.assertEqual(
            set(payload),
            {'id', 'pipelineName', 'status', 'startedAt', 'completedAt',
             'input', 'output', 'metadata', 'steps'},
        )
        step = payload['steps'][0]
        self.assertEqual(step['runId'], run.id)
        self.assertEqual(step['stepIndex'], 0)
        self.assertEqual(step['stepType'], 'rank')
        self.assertIsInstance(step['durationMs'], int)
        self.assertIsInstance(payload['startedAt'], str)


class TestStep(unittest.TestCase):

    def setUp(self):
        self.transport = RecordingTransport()
        self.xray = XRay(
            TracerConfig(sampling=SamplingConfig(keep_all_outputs=True, sample_rate=0.01)),
            transport=self.transport,
        )
        self.run = self.xray.start_run('p', None)

    def test_record_input_output(self):
        step = self.run.add_step('s')
        self.assertIsNone(step.duration_ms)

        step.record_input({'a': 1}).record_output({'b': 2})

        self.assertEqual(step.input, {'a': 1})
        self.assertEqual(step.output, {'b': 2})
        self.assertIsNotNone(step.completed_at)
        self.assertGreaterEqual(step.duration_ms, 0)

    def test_record_candidates_keeps_all_accepted(self):
        step = self.run.add_step('search', 'api')
        step.record_candidates([{'id': i} for i in range(250)])

        self.assertEqual(len(step.candidates), 250)
        self.assertTrue(all(c.status == 'accepted' for c in step.candidates))
        self.assertEqual(step.candidates_out, 250)

    def test_record_candidates_out_is_pre_sampling_count(self):
        step = self.run.add_step('s')
        step.record_candidates(list(range(300)), status='rejected')

        self.assertEqual(len(step.candidates), 5)
        self.assertIsNone(step.candidates_out)

    def test_record_candidates_unknown_status(self):
        step = self.run.add_step('s')
        with self.assertRaises(ValueError):
            step.record_candidates([1], status='maybe')

    def test_record_filtering(self):
        before = [{'id': i, 'price': i} for i in range(5000)]
        after = [c for c in before if c['price'] >= 4550]

        step = self.run.add_step('price', 'filter')
        step.record_filtering(before, after, 'price_range', 'range', {'min': 4550})

        self.assertEqual(step.candidates_in, 5000)
        self.assertEqual(step.candidates_out, 450)
        self.assertEqual(len(step.filters_applied), 1)
        applied = step.filters_applied[0]
        self.assertEqual(applied.filter_name, 'price_range')
        self.assertEqual(applied.filter_type, 'range')
        self.assertEqual(applied.parameters, {'min': 4550})
        self.assertEqual(applied.candidates_before, 5000)
        self.assertEqual(applied.candidates_after, 450)
        self.assertAlmostEqual(applied.elimination_rate, 0.91)

        rejected = [c for c in step.candidates if c.status == 'rejected']
        accepted = [c for c in step.candidates if c.status == 'accepted']
        # 4550 rejected -> ceil(45.5) = 46 kept, the first 46 in input order
        self.assertEqual(len(rejected), 46)
        self.assertEqual([c.data['id'] for c in rejected], list(range(46)))
        self.assertTrue(all(c.rejection_filter == 'price_range' for c in rejected))
        self.assertEqual(len(accepted), 450)

    def test_record_filtering_small_rejection_set(self):
        before = [object() for _ in range(10)]
        after = before[:7]
        step = self.run.add_step('s', 'filter')
        step.record_filtering(before, after, 'f', 'threshold')

        rejected = [c for c in step.candidates if c.status == 'rejected']
        self.assertEqual(len(rejected), 3)

    def test_record_filtering_empty_input(self):
        step = self.run.add_step('s', 'filter')
        step.record_filtering([], [], 'f', 'threshold')

        self.assertEqual(step.candidates_in, 0)
        self.assertEqual(step.filters_applied[0].elimination_rate, 0.0)
        self.assertEqual(step.candidates, [])

    def test_record_filtering_with_key(self):
        before = [{'sku': 'a'}, {'sku': 'b'}, {'sku': 'c'}]
        after = [{'sku': 'c'}]  # rebuilt objects, same identifiers
        step = self.run.add_step('s', 'filter')
        step.record_filtering(before, after, 'f', 'match', key=lambda c: c['sku'])

        rejected = [c.data['sku'] for c in step.candidates if c.status == 'rejected']
        self.assertEqual(rejected, ['a', 'b'])

    def test_record_filtering_rejects_growing_sets(self):
        step = self.run.add_step('s', 'filter')
        with self.assertRaises(ValueError):
            step.record_filtering([1], [1, 2], 'f', 't')

    def test_multiple_filter_passes(self):
        items = [object() for _ in range(100)]
        step = self.run.add_step('s', 'filter')
        step.record_filtering(items, items[:50], 'first', 't')
        step.record_filtering(items[:50], items[:10], 'second', 't')

        self.assertEqual([f.filter_name for f in step.filters_applied], ['first', 'second'])
        self.assertEqual(step.candidates_in, 50)
        self.assertEqual(step.candidates_out, 10)

    def test_record_llm_decision(self):
        step = self.run.add_step('relevance', 'filter')
        step.record_llm_decision('Kept chargers only', candidates_out=4)

        self.assertEqual(step.step_type, 'llm')
        self.assertEqual(step.reasoning, 'Kept chargers only')
        self.assertEqual(step.candidates_out, 4)

    def test_record_llm_decision_without_count(self):
        step = self.run.add_step('s')
        step.record_candidates([1, 2, 3])
        step.record_llm_decision('why')
        self.assertEqual(step.candidates_out, 3)

    def test_record_llm_decision_cannot_exceed_candidates_in(self):
        items = [object() for _ in range(10)]
        step = self.run.add_step('relevance', 'filter')
        step.record_filtering(items, items[:5], 'f', 't')

        with self.assertRaises(ValueError):
            step.record_llm_decision('picked', candidates_out=12)

        self.assertEqual(step.candidates_out, 5)
        self.assertIsNone(step.reasoning)
        self.assertEqual(step.to_dict()['candidatesOut'], 5)

    def test_record_candidates_cannot_exceed_candidates_in(self):
        items = [object() for _ in range(10)]
        step = self.run.add_step('s', 'filter')
        step.record_filtering(items, items[:5], 'f', 't')
        kept = len(step.candidates)

        with self.assertRaises(ValueError):
            step.record_candidates(list(range(12)))

        self.assertEqual(step.candidates_out, 5)
        self.assertEqual(len(step.candidates), kept)

    def test_record_candidates_within_candidates_in(self):
        items = [object() for _ in range(10)]
        step = self.run.add_step('s', 'filter')
        step.record_filtering(items, items[:5], 'f', 't')

        step.record_candidates(items[:3])
        step.record_llm_decision('narrowed', candidates_out=2)
        self.assertEqual(step.candidates_out, 2)

    def test_rejected_candidates_do_not_count_against_candidates_in(self):
        items = [object() for _ in range(10)]
        step = self.run.add_step('s', 'filter')
        step.record_filtering(items, items[:5], 'f', 't')

        step.record_candidates(list(range(50)), status='rejected')
        self.assertEqual(step.candidates_out, 5)

    def test_set_metadata_merges_without_mutating(self):
        step = self.run.add_step('s')
        step.set_metadata({'a': 1, 'b': 1})
        first = step.metadata
        step.set_metadata({'b': 2, 'c': 3})

        self.assertEqual(step.metadata, {'a': 1, 'b': 2, 'c': 3})
        self.assertEqual(first, {'a': 1, 'b': 1})

    def test_filters_applied_serialization(self):
        items = list(range(120))
        step = self.run.add_step('s', 'filter')
        step.record_filtering(items, items[:4], 'f', 'threshold', {'min': 4})
        applied = step.to_dict()['filtersApplied'][0]

        self.assertEqual(applied['filterName'], 'f')
        self.assertEqual(applied['candidatesBefore'], 120)
        self.assertEqual(applied['candidatesAfter'], 4)
        self.assertAlmostEqual(applied['eliminationRate'], 0.9667, places=4)
