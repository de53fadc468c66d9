"""
Tests for human-approval gates.
"""
import uuid

from django.contrib.auth.models import Group
from django.test import SimpleTestCase, TestCase

from workflow_engine.exceptions import NotFound
from workflow_engine.models import NodeApproval, NodeState, WorkflowInstance
from workflow_engine.services.approvals import MODE_ALL, MODE_ANY, evaluate_quorum
from workflow_engine.services.orchestrator import WorkflowOrchestrator
from workflow_engine.tests.helpers import DiagramBuilder, make_user, start_graph

APPROVED = NodeApproval.Status.APPROVED
REJECTED = NodeApproval.Status.REJECTED
PENDING = NodeApproval.Status.PENDING


class QuorumTestCase(SimpleTestCase):
    """Test the quorum rule."""

    def test_all_needs_every_vote(self):
        outcome = evaluate_quorum([APPROVED, APPROVED, PENDING], MODE_ALL)
        self.assertFalse(outcome.resolved)

        outcome = evaluate_quorum([APPROVED, APPROVED, APPROVED], MODE_ALL)
        self.assertTrue(outcome.resolved)
        self.assertTrue(outcome.approved)

    def test_all_fails_on_first_rejection(self):
        outcome = evaluate_quorum([REJECTED, PENDING, PENDING], MODE_ALL)
        self.assertTrue(outcome.resolved)
        self.assertFalse(outcome.approved)
        self.assertEqual(outcome.rejected_count, 1)

    def test_any_passes_on_first_approval(self):
        outcome = evaluate_quorum([PENDING, APPROVED], MODE_ANY)
        self.assertTrue(outcome.resolved)
        self.assertTrue(outcome.approved)

    def test_any_fails_only_when_everyone_rejects(self):
        self.assertFalse(evaluate_quorum([REJECTED, PENDING], MODE_ANY).resolved)

        outcome = evaluate_quorum([REJECTED, REJECTED], MODE_ANY)
        self.assertTrue(outcome.resolved)
        self.assertFalse(outcome.approved)

    def test_empty_set_never_resolves(self):
        self.assertFalse(evaluate_quorum([], MODE_ALL).resolved)
        self.assertFalse(evaluate_quorum([], MODE_ANY).resolved)


class ApprovalGateTestMixin:

    def build_gate(self, mode='all', human=True, **gate_data):
        """start -> t1 -> gate -> decision(true) -> ok | ko"""
        self.graph = start_graph(DiagramBuilder())
        self.graph.node('gate', 'trigger', triggerEvents=['approve'], approvalMode=mode, **gate_data)
        self.graph.node('d', 'decision', conditionValue='true')
        self.graph.node('ok', 'end').node('ko', 'end')
        self.graph.connect('t1', 'gate').connect('gate', 'd')
        self.graph.connect('d', 'ok', kind='true').connect('d', 'ko', kind='false')
        if human:
            self.graph.node('h', 'human', humanType='personal', humanIds=[u.pk for u in self.approvers])
            self.graph.connect('h', 'gate')

        self.orchestrator = WorkflowOrchestrator()
        self.instance_id = self.orchestrator.start_or_resume_trigger('create', {'Id': 42}, None, 3)
        self.gate = NodeState.objects.get(workflow_instance_id=self.instance_id, node_id='gate')

    def instance(self):
        return WorkflowInstance.objects.get(pk=self.instance_id)

    def visited(self):
        return set(self.instance().node_states.values_list('node_id', flat=True))


class AllModeTestCase(ApprovalGateTestMixin, TestCase):
    """Test 'all' approval gates."""

    def setUp(self):
        self.approvers = [make_user(f'approver{i}') for i in range(3)]
        self.build_gate('all')

    def test_gate_waits(self):
        self.assertEqual(self.gate.status, NodeState.Status.WAITING)
        self.assertEqual(self.gate.inputs_required, 3)
        self.assertEqual(self.gate.approvals.filter(status=PENDING).count(), 3)
        self.assertEqual(self.instance().status, WorkflowInstance.Status.WAITING)

    def test_one_rejection_fails_the_gate(self):
        first, second, third = self.approvers

        self.assertTrue(self.orchestrator.submit_approval(self.gate.pk, first.pk, True))
        self.assertTrue(self.orchestrator.submit_approval(self.gate.pk, second.pk, True))
        self.gate.refresh_from_db()
        self.assertEqual(self.gate.status, NodeState.Status.WAITING)
        self.assertEqual(self.instance().status, WorkflowInstance.Status.WAITING)

        self.assertTrue(self.orchestrator.submit_approval(self.gate.pk, third.pk, False, comment='No budget'))

        instance = self.instance()
        self.gate.refresh_from_db()
        self.assertEqual(self.gate.status, NodeState.Status.COMPLETED)
        self.assertEqual(instance.status, WorkflowInstance.Status.COMPLETED)
        self.assertIn('ko', self.visited())
        self.assertNotIn('ok', self.visited())

        self.assertFalse(instance.context['approvalResult'])
        self.assertEqual(instance.context['approvedCount'], 2)
        self.assertEqual(instance.context['rejectedCount'], 1)
        self.assertEqual(instance.context['totalCount'], 3)
        self.assertEqual(instance.context['approvalMode'], 'all')
        self.assertEqual(instance.context['comment'], 'No budget')

        node = instance.context['nodes'][str(self.gate.pk)]
        self.assertFalse(node['result'])
        self.assertEqual(node['value'], 'false')

    def test_rejection_first_resolves_immediately(self):
        first, second, third = self.approvers

        self.assertTrue(self.orchestrator.submit_approval(self.gate.pk, third.pk, False))
        self.assertIn('ko', self.visited())

        self.assertFalse(self.orchestrator.submit_approval(self.gate.pk, first.pk, True))
        self.assertFalse(self.orchestrator.submit_approval(self.gate.pk, second.pk, True))
        self.assertEqual(self.gate.approvals.filter(status=PENDING).count(), 2)
        self.assertNotIn('ok', self.visited())

    def test_unanimous_approval_passes(self):
        for user in self.approvers:
            self.orchestrator.submit_approval(self.gate.pk, user.pk, True)

        self.assertIn('ok', self.visited())
        self.assertNotIn('ko', self.visited())
        self.assertTrue(self.instance().context['approvalResult'])

    def test_votes_are_not_repeated(self):
        first = self.approvers[0]
        self.orchestrator.submit_approval(self.gate.pk, first.pk, True)

        with self.assertRaises(NotFound):
            self.orchestrator.submit_approval(self.gate.pk, first.pk, False)

    def test_stranger_cannot_vote(self):
        stranger = make_user('stranger')
        with self.assertRaises(NotFound):
            self.orchestrator.submit_approval(self.gate.pk, stranger.pk, True)

        self.assertFalse(NodeApproval.objects.filter(user=stranger).exists())

    def test_unknown_node_state(self):
        with self.assertRaises(NotFound):
            self.orchestrator.submit_approval(uuid.uuid4(), self.approvers[0].pk, True)
        with self.assertRaises(NotFound):
            self.orchestrator.submit_approval('not-a-uuid', self.approvers[0].pk, True)


class AnyModeTestCase(ApprovalGateTestMixin, TestCase):
    """Test 'any' approval gates."""

    def setUp(self):
        self.approvers = [make_user(f'approver{i}') for i in range(3)]
        self.build_gate('any')

    def test_gate_needs_one_input(self):
        self.assertEqual(self.gate.inputs_required, 1)
        self.assertEqual(self.gate.approvals.count(), 3)

    def test_first_approval_resolves(self):
        self.assertTrue(self.orchestrator.submit_approval(self.gate.pk, self.approvers[1].pk, True))

        self.assertIn('ok', self.visited())
        self.assertEqual(self.instance().status, WorkflowInstance.Status.COMPLETED)
        self.assertFalse(self.orchestrator.submit_approval(self.gate.pk, self.approvers[0].pk, False))

    def test_rejections_wait_for_everyone(self):
        first, second, third = self.approvers
        self.orchestrator.submit_approval(self.gate.pk, first.pk, False)
        self.orchestrator.submit_approval(self.gate.pk, second.pk, False)
        self.assertEqual(self.instance().status, WorkflowInstance.Status.WAITING)

        self.orchestrator.submit_approval(self.gate.pk, third.pk, False)
        self.assertIn('ko', self.visited())
        self.assertEqual(self.instance().context['rejectedCount'], 3)


class ApproverResolutionTestCase(ApprovalGateTestMixin, TestCase):
    """Test who may vote on a gate."""

    def test_role_approvers(self):
        reviewers = Group.objects.create(name='Reviewers')
        self.approvers = [make_user('r1'), make_user('r2')]
        for user in self.approvers:
            user.groups.add(reviewers)
        make_user('outsider')

        self.graph = start_graph(DiagramBuilder())
        self.graph.node('gate', 'trigger', triggerEvents=['approve'], approvalMode='all')
        self.graph.node('h', 'human', humanType='role', humanRoleIds=[reviewers.pk])
        self.graph.connect('t1', 'gate').connect('gate', 'h')

        instance_id = WorkflowOrchestrator().start_or_resume_trigger('create', {'Id': 1}, None, 3)

        gate = NodeState.objects.get(workflow_instance_id=instance_id, node_id='gate')
        self.assertCountEqual(gate.approvals.values_list('user__username', flat=True), ['r1', 'r2'])
        self.assertEqual(gate.inputs_required, 2)

    def test_inline_approvers(self):
        self.approvers = [make_user('inline')]
        self.build_gate('any', human=False, humanIds=[self.approvers[0].pk])

        self.assertEqual(list(self.gate.approvals.values_list('user_id', flat=True)), [self.approvers[0].pk])

    def test_inactive_users_are_skipped(self):
        self.approvers = [make_user('active'), make_user('gone', is_active=False)]
        self.build_gate('all')

        self.assertEqual(self.gate.approvals.count(), 1)
        self.assertEqual(self.gate.inputs_required, 1)

    def test_no_approvers(self):
        self.approvers = []
        self.build_gate('any', human=False)

        self.assertEqual(self.gate.status, NodeState.Status.WAITING)
        self.assertEqual(self.gate.approvals.count(), 0)
        self.assertEqual(self.instance().status, WorkflowInstance.Status.WAITING)

        with self.assertRaises(NotFound):
            self.orchestrator.submit_approval(self.gate.pk, make_user('someone').pk, True)
