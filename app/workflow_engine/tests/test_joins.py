"""
Tests for AND/OR joins.
"""
from django.test import TestCase

from workflow_engine.context import ContextStore, JoinFragment
from workflow_engine.models import NodeInput, NodeState, WorkflowInstance
from workflow_engine.services.executors import execute_node
from workflow_engine.services.orchestrator import WorkflowOrchestrator
from workflow_engine.services.propagator import Propagator
from workflow_engine.tests.helpers import DiagramBuilder, execution_context, start_graph


class JoinTestMixin:

    def build_join(self, join_type, inputs):
        self.graph = start_graph(DiagramBuilder())
        for source in inputs:
            self.graph.node(source, 'send', sendKinds=[])
            self.graph.connect('t1', source)
            self.graph.connect(source, 'j')
        self.graph.node('j', join_type)
        self.graph.node('done', 'end')
        self.graph.connect('j', 'done')

        self.instance = WorkflowInstance.objects.create(
            diagram=self.graph.diagram,
            start_event='create',
            start_mapping_id='3'
        )
        self.store = ContextStore()
        self.sources = []
        for source in inputs:
            state = NodeState.objects.create(
                workflow_instance=self.instance,
                node_id=source,
                node_type='send',
                status=NodeState.Status.COMPLETED
            )
            self.store.merge(
                self.instance.pk,
                JoinFragment(check_type='or', last_input=True, input_received=1, value=f'from-{source}'),
                node_state_id=state.pk
            )
            self.sources.append(state)

        self.join_node = self.graph.get('j')
        self.join_state, created = Propagator(self.instance).get_or_create_state(self.join_node, self.sources[0])
        self.assertTrue(created)

    def arrive(self, source_state):
        result = execute_node(execution_context(self.instance, self.join_state, self.join_node, source_state))
        self.join_state.refresh_from_db()
        fragment = self.store.read_fragment(self.instance.pk, self.join_state.pk)
        return result, fragment


class AndJoinTestCase(JoinTestMixin, TestCase):
    """Test AND join counting."""

    def setUp(self):
        self.build_join('and', ['a1', 'a2', 'a3'])

    def test_initial_state(self):
        self.assertEqual(self.join_state.status, NodeState.Status.ACTIVE)
        self.assertEqual(self.join_state.inputs_required, 3)
        self.assertEqual(self.join_state.inputs_received, 0)

    def test_completes_only_on_last_input(self):
        """lastInput is false, false, true; the node completes on the 3rd arrival."""
        last_inputs = []
        statuses = []

        for source in self.sources:
            result, fragment = self.arrive(source)
            self.assertTrue(result.should_continue)
            self.assertIsNone(result.connections)
            self.assertEqual(fragment['checkType'], 'and')
            last_inputs.append(fragment['lastInput'])
            statuses.append(self.join_state.status)

        self.assertEqual(last_inputs, [False, False, True])
        self.assertEqual(statuses, ['active', 'active', 'completed'])
        self.assertEqual(self.join_state.inputs_received, 3)

    def test_arrivals_are_audited(self):
        self.arrive(self.sources[0])
        result, fragment = self.arrive(self.sources[1])

        inputs = NodeInput.objects.filter(node_state=self.join_state)
        self.assertEqual(inputs.count(), 2)
        self.assertCountEqual(inputs.values_list('source_node_id', flat=True), ['a1', 'a2'])
        self.assertEqual(fragment['inputReceived'], 2)
        self.assertEqual(fragment['value'], 'from-a2')

    def test_received_never_exceeds_required(self):
        for source in self.sources + [self.sources[0]]:
            self.arrive(source)

        self.assertEqual(self.join_state.inputs_received, 3)
        self.assertEqual(NodeInput.objects.filter(node_state=self.join_state).count(), 4)


class OrJoinTestCase(JoinTestMixin, TestCase):
    """Test OR join fan-out."""

    def setUp(self):
        self.build_join('or', ['o1', 'o2'])

    def test_initial_state(self):
        self.assertEqual(self.join_state.status, NodeState.Status.ACTIVE)
        self.assertEqual(self.join_state.inputs_required, 1)

    def test_fans_out_on_every_arrival(self):
        for source in self.sources:
            result, fragment = self.arrive(source)
            self.assertTrue(result.should_continue)
            self.assertEqual(fragment['checkType'], 'or')
            self.assertTrue(fragment['lastInput'])

        self.assertEqual(self.join_state.status, NodeState.Status.COMPLETED)
        self.assertEqual(self.join_state.inputs_received, 1)
        self.assertEqual(NodeInput.objects.filter(node_state=self.join_state).count(), 2)


class JoinCascadeTestCase(TestCase):
    """Test joins inside a full trigger cascade."""

    def test_and_join_collects_all_branches(self):
        graph = start_graph(DiagramBuilder())
        for source in ['a1', 'a2', 'a3']:
            graph.node(source, 'send', sendKinds=[])
            graph.connect('t1', source)
            graph.connect(source, 'j')
        graph.node('j', 'and').node('done', 'end').connect('j', 'done')

        instance_id = WorkflowOrchestrator().start_or_resume_trigger('create', {'Id': 1}, None, 3)

        instance = WorkflowInstance.objects.get(pk=instance_id)
        join = instance.node_states.get(node_id='j')
        self.assertEqual(instance.status, WorkflowInstance.Status.COMPLETED)
        self.assertEqual(join.status, NodeState.Status.COMPLETED)
        self.assertEqual(join.inputs_received, 3)
        self.assertEqual(join.inputs.count(), 3)
        self.assertEqual(instance.node_states.filter(node_id='done').count(), 1)

    def test_or_join_reuses_its_node_state(self):
        graph = start_graph(DiagramBuilder())
        for source in ['o1', 'o2']:
            graph.node(source, 'send', sendKinds=[])
            graph.connect('t1', source)
            graph.connect(source, 'j')
        graph.node('j', 'or').node('notify', 'send', sendKinds=[]).connect('j', 'notify')

        instance_id = WorkflowOrchestrator().start_or_resume_trigger('create', {'Id': 1}, None, 3)

        instance = WorkflowInstance.objects.get(pk=instance_id)
        self.assertEqual(instance.node_states.filter(node_id='j').count(), 1)
        self.assertEqual(instance.node_states.get(node_id='j').inputs.count(), 2)
        self.assertEqual(instance.node_states.filter(node_id='notify').count(), 1)
        self.assertEqual(instance.status, WorkflowInstance.Status.COMPLETED)
