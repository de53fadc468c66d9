"""
Quorum bookkeeping for human-approval gates.

A trigger node listening for the approve event becomes a waitpoint: one
NodeApproval row is created per eligible approver when the node-state is
created, and votes are tallied against the node's approval mode.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from django.utils import timezone

from workflow_engine.exceptions import NotFound
from workflow_engine.models import NodeApproval, NodeState
from workflow_engine.services.directory import DirectoryUser, DjangoDirectory

logger = logging.getLogger(__name__)

MODE_ANY = 'any'
MODE_ALL = 'all'


@dataclass
class QuorumOutcome:
    """Tally of one approval set."""
    mode: str
    approved_count: int
    rejected_count: int
    total_count: int
    resolved: bool = False
    approved: Optional[bool] = None


def approval_mode(node) -> str:
    return MODE_ALL if str(node.get('approvalMode') or MODE_ANY).lower() == MODE_ALL else MODE_ANY


def evaluate_quorum(statuses: Iterable[str], mode: str) -> QuorumOutcome:
    """
    Apply the quorum rule to a list of NodeApproval statuses.

    'all': one rejection resolves negatively; otherwise nothing may be pending,
    and the gate passes only if every vote is an approval.
    'any': one approval resolves positively; otherwise every vote must be a
    rejection. An empty set never resolves.
    """
    statuses = list(statuses)
    outcome = QuorumOutcome(
        mode=mode,
        approved_count=statuses.count(NodeApproval.Status.APPROVED),
        rejected_count=statuses.count(NodeApproval.Status.REJECTED),
        total_count=len(statuses),
    )
    if not statuses:
        return outcome

    pending = outcome.total_count - outcome.approved_count - outcome.rejected_count

    if mode == MODE_ALL:
        if outcome.rejected_count:
            outcome.resolved, outcome.approved = True, False
        elif pending == 0:
            outcome.resolved, outcome.approved = True, outcome.approved_count == outcome.total_count
    else:
        if outcome.approved_count:
            outcome.resolved, outcome.approved = True, True
        elif outcome.rejected_count == outcome.total_count:
            outcome.resolved, outcome.approved = True, False

    return outcome


class ApprovalTracker:

    def __init__(self, graph, directory: Optional[DjangoDirectory] = None):
        self.graph = graph
        self.directory = directory or DjangoDirectory()

    def resolve_approvers(self, trigger_node) -> List[DirectoryUser]:
        """
        Eligible approvers: union of the connected human nodes' users, or the
        trigger's own inline human configuration when those yield nobody.
        """
        humans = self.graph.get_connected_humans(trigger_node.node_id)
        approvers = self.directory.users_for_human_nodes(humans)
        if not approvers and (trigger_node.get('humanIds') or trigger_node.get('humanRoleIds')):
            approvers = self.directory.users_for_human_nodes([trigger_node])
        if not approvers:
            logger.warning(
                f"Approval gate {trigger_node.node_id} has no eligible approvers; "
                f"instances reaching it will wait indefinitely"
            )
        return approvers

    def inputs_required(self, trigger_node, approvers: List[DirectoryUser]) -> int:
        if approval_mode(trigger_node) == MODE_ALL:
            return len(approvers)
        return 1

    def create_approval_set(self, node_state: NodeState, approvers: List[DirectoryUser]) -> List[NodeApproval]:
        approvals = NodeApproval.objects.bulk_create([
            NodeApproval(node_state=node_state, user_id=user.id) for user in approvers
        ])
        logger.info(f"Created {len(approvals)} approval record(s) for node-state {node_state.id}")
        return approvals

    def record_vote(self, node_state: NodeState, user_id, approved: bool, comment: Optional[str] = None) -> NodeApproval:
        """
        Store one approver's vote.

        Raises:
            NotFound: The user has no pending approval record on this node-state
        """
        approval = (
            NodeApproval.objects.select_for_update()
            .filter(node_state=node_state, user_id=user_id, status=NodeApproval.Status.PENDING)
            .first()
        )
        if approval is None:
            raise NotFound(f"No pending approval for user {user_id} on node-state {node_state.id}")

        approval.status = NodeApproval.Status.APPROVED if approved else NodeApproval.Status.REJECTED
        approval.comment = comment or None
        approval.updated_at = timezone.now()
        approval.save(update_fields=['status', 'comment', 'updated_at'])

        logger.info(f"User {user_id} {approval.status} node-state {node_state.id}")
        return approval

    def tally(self, node_state: NodeState, mode: str) -> QuorumOutcome:
        statuses = node_state.approvals.values_list('status', flat=True)
        return evaluate_quorum(statuses, mode)
