"""
Tests for context fragments and the context reducer.
"""
from django.test import SimpleTestCase, TestCase

from workflow_engine.context import (
    ApprovalOutcomeFragment,
    ContextStore,
    DecisionFragment,
    JoinFragment,
    TriggerFragment,
    UpstreamSignal,
    read_fragment,
    reduce_context,
)
from workflow_engine.models import WorkflowInstance
from workflow_engine.tests.helpers import DiagramBuilder


class ReduceContextTestCase(SimpleTestCase):
    """Test the context reducer."""

    def test_node_merge_lands_under_nodes(self):
        fragment = JoinFragment(check_type='and', last_input=False, input_received=1)
        context = reduce_context({}, fragment, node_state_id='ns-1')

        self.assertEqual(context['nodes']['ns-1'], {
            'checkType': 'and',
            'lastInput': False,
            'inputReceived': 1,
        })
        self.assertNotIn('checkType', context)

    def test_node_merge_is_shallow_union(self):
        context = {'nodes': {'ns-1': {'checkType': 'and', 'lastInput': False, 'keep': 1}}}
        fragment = JoinFragment(check_type='and', last_input=True, input_received=2)

        merged = reduce_context(context, fragment, node_state_id='ns-1')

        self.assertTrue(merged['nodes']['ns-1']['lastInput'])
        self.assertEqual(merged['nodes']['ns-1']['keep'], 1)

    def test_root_merge_never_replaces_nodes(self):
        context = {'nodes': {'ns-1': {'value': 'x'}}, 'Name': 'Old'}
        fragment = TriggerFragment(trigger_event='create', Name='New', nodes={'bogus': {}})

        merged = reduce_context(context, fragment, root=True)

        self.assertEqual(merged['Name'], 'New')
        self.assertEqual(merged['nodes'], {'ns-1': {'value': 'x'}})

    def test_input_context_left_untouched(self):
        context = {'nodes': {}}
        reduce_context(context, DecisionFragment(result=True), node_state_id='ns-1', root=True)
        self.assertEqual(context, {'nodes': {}})

    def test_node_and_root_merge_together(self):
        merged = reduce_context({}, DecisionFragment(condition_value='5', result=True), node_state_id='d', root=True)

        self.assertTrue(merged['result'])
        self.assertTrue(merged['nodes']['d']['result'])
        self.assertIn('processedAt', merged)
        self.assertIsInstance(merged['processedAt'], str)

    def test_read_fragment(self):
        context = {'nodes': {'ns-1': {'value': 'x'}}}
        self.assertEqual(read_fragment(context, 'ns-1'), {'value': 'x'})
        self.assertEqual(read_fragment(context, 'missing'), {})
        self.assertEqual(read_fragment(context, None), {})


class FragmentTestCase(SimpleTestCase):
    """Test fragment shapes."""

    def test_trigger_fragment_carries_payload(self):
        fragment = TriggerFragment.build('create', 3, '42', 7, {'Id': 42, 'Name': 'Acme', 'triggerEvent': 'spoof'})
        data = fragment.to_context()

        self.assertEqual(data['triggerEvent'], 'create')
        self.assertEqual(data['mappingId'], 3)
        self.assertEqual(data['objectId'], '42')
        self.assertEqual(data['triggeredBy'], 7)
        self.assertEqual(data['Id'], 42)
        self.assertEqual(data['Name'], 'Acme')

    def test_approval_outcome_looks_like_a_decision(self):
        self.assertEqual(
            ApprovalOutcomeFragment.from_result(False).to_context(),
            {'result': False, 'approvalResult': False, 'value': 'false'}
        )
        self.assertEqual(ApprovalOutcomeFragment.from_result(True).to_context()['value'], 'true')

    def test_upstream_signal_prefers_result(self):
        signal = UpstreamSignal.model_validate({'result': False, 'value': 'x'})
        self.assertIs(signal.input_value, False)

        signal = UpstreamSignal.model_validate({'value': '5', 'unrelated': [1, 2]})
        self.assertEqual(signal.input_value, '5')

    def test_upstream_signal_join_gates(self):
        unfinished_and = UpstreamSignal.model_validate({'checkType': 'and', 'lastInput': False})
        self.assertTrue(unfinished_and.blocks_true)
        self.assertFalse(unfinished_and.blocks_false)

        finished_or = UpstreamSignal.model_validate({'checkType': 'or', 'lastInput': True})
        self.assertFalse(finished_or.blocks_true)
        self.assertFalse(finished_or.blocks_false)

    def test_upstream_event(self):
        self.assertEqual(UpstreamSignal.model_validate({'triggerEvent': 'sendapprove'}).upstream_event, 'sendapprove')
        self.assertEqual(UpstreamSignal.model_validate({'eventName': 'create'}).upstream_event, 'create')


class ContextStoreTestCase(TestCase):
    """Test context persistence."""

    def setUp(self):
        diagram = DiagramBuilder().diagram
        self.instance = WorkflowInstance.objects.create(
            diagram=diagram,
            start_event='create',
            start_mapping_id='3'
        )
        self.store = ContextStore()

    def test_merge_persists(self):
        self.store.merge(self.instance.pk, TriggerFragment(trigger_event='create', Name='Acme'), node_state_id='t', root=True)
        self.store.merge(self.instance.pk, DecisionFragment(result=True), node_state_id='d', root=True)

        self.instance.refresh_from_db()
        self.assertEqual(self.instance.context['Name'], 'Acme')
        self.assertTrue(self.instance.context['result'])
        self.assertEqual(set(self.instance.context['nodes']), {'t', 'd'})

    def test_lookup_falls_back_to_root(self):
        self.store.merge(self.instance.pk, TriggerFragment(trigger_event='create', Name='Acme'), root=True)
        self.store.merge(self.instance.pk, JoinFragment(check_type='or', last_input=True, input_received=1), node_state_id='j')

        self.assertEqual(self.store.lookup(self.instance.pk, 'j', 'checkType'), 'or')
        self.assertEqual(self.store.lookup(self.instance.pk, 'j', 'Name'), 'Acme')
        self.assertIsNone(self.store.lookup(self.instance.pk, 'j', 'missing'))
