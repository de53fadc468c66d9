"""
Connection fan-out.

The propagator is the execution loop: it walks outgoing connections from a
finished node-state, creates or reuses the target node-states and runs every
target that is active on arrival. Work is kept on an explicit FIFO queue so
deep or wide diagrams never grow the call stack, and the traversal order is
the order node-states appear in the database.
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import List, Optional, Tuple

from diagrams.models import DiagramConnection, DiagramNode, NodeType
from workflow_engine.conf import engine_setting
from workflow_engine.context import ContextStore
from workflow_engine.models import NodeState, WorkflowInstance
from workflow_engine.services.approvals import ApprovalTracker
from workflow_engine.services.completion import CompletionChecker
from workflow_engine.services.directory import DirectoryUser, DjangoDirectory
from workflow_engine.services.executors import ExecutionContext, execute_node, log_node
from workflow_engine.services.graph_store import NON_FLOW_TYPES, GraphStore
from workflow_engine.services.notifier import Notifier

logger = logging.getLogger(__name__)

JOIN_TYPES = {NodeType.AND, NodeType.OR}


@dataclass
class InitialState:
    status: str
    inputs_required: int = 0
    approvers: Optional[List[DirectoryUser]] = None


class Propagator:
    """Fans out one instance's node-states, executing active targets inline."""

    def __init__(
        self,
        instance: WorkflowInstance,
        graph: Optional[GraphStore] = None,
        store: Optional[ContextStore] = None,
        directory: Optional[DjangoDirectory] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.instance = instance
        self.graph = graph or GraphStore(instance.diagram_id)
        self.store = store or ContextStore()
        self.directory = directory or DjangoDirectory()
        self.notifier = notifier or Notifier()
        self.approvals = ApprovalTracker(self.graph, self.directory)
        self.completion = CompletionChecker()

    def initial_state(self, target: DiagramNode) -> InitialState:
        """Initial status and required input count of a new node-state, by target type."""
        node_type = target.node_type

        if node_type == NodeType.AND:
            return InitialState(NodeState.Status.ACTIVE, self.graph.get_incoming_connection_count(target.node_id))
        if node_type == NodeType.OR:
            return InitialState(NodeState.Status.ACTIVE, 1)
        if node_type in (NodeType.DECISION, NodeType.SEND, NodeType.END):
            return InitialState(NodeState.Status.ACTIVE)

        if node_type == NodeType.TRIGGER:
            if engine_setting('APPROVE_EVENT') in target.trigger_events:
                approvers = self.approvals.resolve_approvers(target)
                return InitialState(
                    NodeState.Status.WAITING,
                    self.approvals.inputs_required(target, approvers),
                    approvers
                )
            if self.graph.is_external_trigger(target.node_id) or not target.trigger_events:
                # Cannot be waited on; TriggerExecutor bypasses it
                return InitialState(NodeState.Status.ACTIVE)
            return InitialState(NodeState.Status.PENDING)

        # Unknown types run so the registry can reject them
        return InitialState(NodeState.Status.ACTIVE)

    def get_or_create_state(self, target: DiagramNode, source_state: NodeState) -> Tuple[NodeState, bool]:
        existing = NodeState.objects.filter(
            workflow_instance=self.instance,
            node_id=target.node_id
        ).first()
        if existing:
            return existing, False

        initial = self.initial_state(target)
        state = NodeState.objects.create(
            workflow_instance=self.instance,
            node_id=target.node_id,
            node_type=target.node_type,
            status=initial.status,
            inputs_required=initial.inputs_required,
            source_node_state=source_state,
        )
        log_node(state, 'INFO', f'Node-state created ({state.status})', {
            'from': source_state.node_id,
            'inputsRequired': state.inputs_required,
        })
        logger.debug(f"Instance {self.instance.pk}: created {target.node_type} node-state {target.node_id} ({state.status})")

        if initial.approvers is not None:
            self.approvals.create_approval_set(state, initial.approvers)

        return state, True

    def should_execute(self, state: NodeState, created: bool) -> bool:
        if state.node_type in JOIN_TYPES and not created:
            return True
        return state.status == NodeState.Status.ACTIVE

    def fan_out(self, node_state: NodeState, connections: Optional[List[DiagramConnection]] = None) -> int:
        """
        Propagate from a finished node-state until no more work is queued,
        then recompute the instance status.

        Args:
            node_state: Node-state to fan out from
            connections: Restrict the first step to these connections

        Returns:
            Number of node-states executed
        """
        queue = deque([(node_state, connections)])
        executed = 0

        while queue:
            source_state, conns = queue.popleft()
            if conns is None:
                conns = self.graph.get_outgoing_connections(source_state.node_id)

            for conn in conns:
                target = self.graph.get_node(conn.target_node_id)
                if target is None:
                    logger.warning(
                        f"Connection {conn.edge_id} points at missing node {conn.target_node_id}; skipped"
                    )
                    continue
                if target.node_type in NON_FLOW_TYPES:
                    continue

                state, created = self.get_or_create_state(target, source_state)
                if not self.should_execute(state, created):
                    continue

                ctx = ExecutionContext(
                    instance=self.instance,
                    node_state=state,
                    node=target,
                    source_state=source_state,
                    graph=self.graph,
                    store=self.store,
                    directory=self.directory,
                    notifier=self.notifier,
                )
                result = execute_node(ctx)
                executed += 1
                if result.should_continue:
                    queue.append((state, result.connections))

        self.completion.check(self.instance)
        return executed
