"""
Node executors.

One executor per executable node type, looked up in a closed registry.
Every executor receives an ExecutionContext and returns an ExecutionResult
telling the propagator whether, and along which connections, to fan out.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from django.core.exceptions import ImproperlyConfigured
from django.db.models import F
from django.db.models.functions import Least
from django.utils import timezone

from diagrams.models import DiagramConnection, DiagramNode, NodeType
from workflow_engine.conf import engine_setting
from workflow_engine.context import (
    ContextStore,
    DecisionFragment,
    JoinFragment,
    SendFragment,
    UpstreamSignal,
)
from workflow_engine.models import NodeInput, NodeLog, NodeState, WorkflowInstance
from workflow_engine.services.directory import DjangoDirectory
from workflow_engine.services.graph_store import NON_FLOW_TYPES, GraphStore
from workflow_engine.services.notifier import INAPP, Notifier, normalize_kind

logger = logging.getLogger(__name__)

TRUE_KINDS = {'true', 'yes'}
FALSE_KINDS = {'false', 'no'}


def log_node(node_state: NodeState, level: str, message: str, context: Dict = None):
    """Create a log entry for a node-state."""
    NodeLog.objects.create(
        node_state=node_state,
        level=level,
        message=message,
        context=context or {}
    )


def complete_node_state(node_state: NodeState) -> bool:
    """
    Mark a node-state completed unless it already is terminal.

    Returns:
        True if this call made the transition
    """
    now = timezone.now()
    changed = NodeState.objects.filter(pk=node_state.pk).exclude(
        status__in=NodeState.TERMINAL_STATUSES
    ).update(status=NodeState.Status.COMPLETED, completed_at=now, updated_at=now)
    if changed:
        node_state.status = NodeState.Status.COMPLETED
        node_state.completed_at = now
        log_node(node_state, 'INFO', 'Node completed')
    return bool(changed)


def fail_node_state(node_state: NodeState, message: str, context: Dict = None):
    now = timezone.now()
    NodeState.objects.filter(pk=node_state.pk).update(
        status=NodeState.Status.ERROR, completed_at=now, updated_at=now
    )
    node_state.status = NodeState.Status.ERROR
    node_state.completed_at = now
    log_node(node_state, 'WARNING', message, context)


def _as_number(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    # NaN/Infinity spellings compare as text
    return number if number.is_finite() else None


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def loosely_equal(left: Any, right: Any) -> bool:
    """
    Compare two condition operands the way editor users expect.

    None matches None and the empty string, booleans compare as 'true'/'false',
    numeric operands compare as numbers, anything else as text.
    """
    if left is None or right is None:
        return (left is None or left == '') and (right is None or right == '')

    left_number, right_number = _as_number(left), _as_number(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number

    return _as_text(left).strip() == _as_text(right).strip()


@dataclass
class ExecutionContext:
    """Everything an executor may read or touch for one node-state."""
    instance: WorkflowInstance
    node_state: NodeState
    node: DiagramNode
    source_state: Optional[NodeState]
    graph: GraphStore
    store: ContextStore
    directory: DjangoDirectory
    notifier: Notifier

    @property
    def source_state_id(self):
        return self.source_state.pk if self.source_state else None

    def upstream_signal(self) -> UpstreamSignal:
        return self.store.upstream_signal(self.instance.pk, self.source_state_id)


@dataclass
class ExecutionResult:
    """
    Continuation signal.

    `connections` limits the fan-out; None means every outgoing connection.
    """
    should_continue: bool
    connections: Optional[List[DiagramConnection]] = field(default=None)

    @classmethod
    def stop(cls) -> 'ExecutionResult':
        return cls(should_continue=False)

    @classmethod
    def proceed(cls, connections: Optional[List[DiagramConnection]] = None) -> 'ExecutionResult':
        return cls(should_continue=True, connections=connections)


class NodeExecutor:
    """Base class for node executors."""

    node_type: str = ''

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        raise NotImplementedError


class DecisionExecutor(NodeExecutor):
    """
    Compares the node's `conditionValue` with the upstream value and follows
    the matching branch. A result gated by an unfinished AND (true) or OR
    (false) leaves the node-state active until the join delivers again.
    """

    node_type = NodeType.DECISION.value

    def input_value(self, ctx: ExecutionContext, signal: UpstreamSignal) -> Any:
        condition_field = ctx.node.get('conditionField')
        if condition_field:
            return ctx.store.lookup(ctx.instance.pk, ctx.source_state_id, condition_field)
        return signal.input_value

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        signal = ctx.upstream_signal()
        condition_value = ctx.node.get('conditionValue')
        input_value = self.input_value(ctx, signal)
        result = loosely_equal(input_value, condition_value)

        if (result and signal.blocks_true) or (not result and signal.blocks_false):
            log_node(ctx.node_state, 'DEBUG', 'Decision gated by an unfinished join', {
                'result': result,
                'checkType': signal.check_type,
            })
            return ExecutionResult.stop()

        predecessor_ids = [c.source_node_id for c in ctx.graph.get_incoming_connections(ctx.node.node_id)]
        now = timezone.now()
        NodeState.objects.filter(
            workflow_instance=ctx.instance,
            node_id__in=predecessor_ids,
            status=NodeState.Status.ACTIVE
        ).update(status=NodeState.Status.COMPLETED, completed_at=now, updated_at=now)

        complete_node_state(ctx.node_state)

        fragment = DecisionFragment(
            condition_value=condition_value,
            input_value=input_value,
            result=result,
            condition_type=ctx.node.get('conditionType') or 'if-then-else',
        )
        ctx.store.merge(ctx.instance.pk, fragment, node_state_id=ctx.node_state.pk, root=True)

        kinds = TRUE_KINDS if result else FALSE_KINDS
        branch = [
            conn for conn in ctx.graph.get_outgoing_connections(ctx.node.node_id)
            if conn.kind.lower() in kinds
        ]
        logger.info(
            f"Decision {ctx.node.node_id}: {input_value!r} vs {condition_value!r} -> {result}, "
            f"{len(branch)} branch connection(s)"
        )
        if not branch:
            return ExecutionResult.stop()
        return ExecutionResult.proceed(branch)


class JoinExecutor(NodeExecutor):
    """
    AND/OR join: counts the arrival, tags the context with `lastInput` and
    always fans out. The node-state completes once the last input arrives.
    """

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        state = ctx.node_state
        upstream = ctx.store.read_fragment(ctx.instance.pk, ctx.source_state_id)
        signal = UpstreamSignal.model_validate(upstream)

        NodeState.objects.filter(pk=state.pk).update(
            inputs_received=Least(F('inputs_received') + 1, F('inputs_required')),
            updated_at=timezone.now()
        )
        state.refresh_from_db(fields=['inputs_received', 'inputs_required', 'status'])

        NodeInput.objects.create(
            node_state=state,
            source_node_id=ctx.source_state.node_id if ctx.source_state else '',
            input_data=upstream,
            evaluation_result=_as_text(signal.input_value).lower() != 'false',
        )
        arrivals = state.inputs.count()
        is_last_input = state.inputs_received >= state.inputs_required

        fragment = JoinFragment(
            check_type=self.node_type,
            last_input=is_last_input,
            input_received=arrivals,
            result=signal.result,
            value=signal.value,
        )
        ctx.store.merge(ctx.instance.pk, fragment, node_state_id=state.pk)

        log_node(state, 'INFO', f'{self.node_type.upper()} input {arrivals} received', {
            'inputsReceived': state.inputs_received,
            'inputsRequired': state.inputs_required,
            'lastInput': is_last_input,
        })

        if is_last_input:
            complete_node_state(state)

        return ExecutionResult.proceed()


class AndExecutor(JoinExecutor):
    node_type = NodeType.AND.value


class OrExecutor(JoinExecutor):
    node_type = NodeType.OR.value


class SendExecutor(NodeExecutor):
    """
    Notifies the users of the connected human nodes over each configured
    channel. In-app failures propagate; other channel failures are logged.
    """

    node_type = NodeType.SEND.value

    def needs_action(self, ctx: ExecutionContext) -> bool:
        if ctx.source_state is None or ctx.source_state.node_type != NodeType.TRIGGER:
            return False
        return ctx.upstream_signal().upstream_event == engine_setting('SEND_APPROVE_EVENT')

    def compose(self, ctx: ExecutionContext, root: Dict[str, Any], sender_name: str, needs_action: bool) -> Dict[str, Any]:
        event_label = ctx.directory.event_label(root.get('triggerEvent') or ctx.instance.start_event)
        mapping_label = ctx.directory.mapping_label(root.get('mappingId') or ctx.instance.start_mapping_id)
        object_name = next(
            (str(root[key]) for key in engine_setting('OBJECT_NAME_FIELDS') if root.get(key) not in (None, '')),
            ctx.instance.start_object_id
        )

        subject = ' '.join(part for part in [mapping_label, object_name] if part)
        title = ctx.node.get('label') or (f"{event_label}: {subject}" if subject else event_label) or 'Notification'

        lines = [f"{event_label or 'Event'}: {subject}".strip(), f"Started by: {sender_name}"]
        if needs_action:
            lines.append('Your approval is requested.')

        return {
            'title': title,
            'body': '\n'.join(lines),
            'workflowInstanceId': ctx.instance.pk,
            'nodeStateId': ctx.node_state.pk,
            'details': {
                'workflowInstanceId': str(ctx.instance.pk),
                'nodeStateId': str(ctx.node_state.pk),
                'nodeId': ctx.node.node_id,
                'event': root.get('triggerEvent'),
                'mappingId': root.get('mappingId'),
                'objectId': root.get('objectId'),
            },
        }

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        kinds = [normalize_kind(kind) for kind in ctx.node.get('sendKinds') or []]
        humans = ctx.graph.get_connected_humans(ctx.node.node_id)
        recipients = ctx.directory.users_for_human_nodes(humans)
        recipient_ids = [user.id for user in recipients]

        needs_action = self.needs_action(ctx)
        sender_id = ctx.instance.started_by_id
        sender_name = ctx.directory.resolve_display_name(sender_id)
        payload = self.compose(ctx, ctx.store.read(ctx.instance.pk), sender_name, needs_action)

        for kind in kinds:
            if kind == INAPP:
                ctx.notifier.notify(kind, sender_id, sender_name, needs_action, payload, recipient_ids, recipients)
                continue
            try:
                ctx.notifier.notify(kind, sender_id, sender_name, needs_action, payload, recipient_ids, recipients)
            except Exception as e:
                logger.error(f"Send {ctx.node.node_id}: '{kind}' delivery failed: {e}")
                log_node(ctx.node_state, 'ERROR', f"'{kind}' delivery failed", {'error': str(e)})

        complete_node_state(ctx.node_state)
        fragment = SendFragment(
            send_kinds=kinds,
            recipient_count=len(recipients),
            needs_action=needs_action,
        )
        ctx.store.merge(ctx.instance.pk, fragment, node_state_id=ctx.node_state.pk)
        return ExecutionResult.proceed()


class EndExecutor(NodeExecutor):
    node_type = NodeType.END.value

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        complete_node_state(ctx.node_state)
        now = timezone.now()
        WorkflowInstance.objects.filter(pk=ctx.instance.pk).update(
            status=WorkflowInstance.Status.COMPLETED,
            completed_at=now,
            updated_at=now
        )
        ctx.instance.status = WorkflowInstance.Status.COMPLETED
        ctx.instance.completed_at = now
        logger.info(f"Instance {ctx.instance.pk} reached end node {ctx.node.node_id}")
        return ExecutionResult.stop()


class TriggerExecutor(NodeExecutor):
    """
    Only runs for triggers that cannot be waited on: an external trigger
    reached mid-graph, or an internal trigger with no events. Both are
    diagram defects; the wait is bypassed so instances do not wedge.
    """

    node_type = NodeType.TRIGGER.value

    def execute(self, ctx: ExecutionContext) -> ExecutionResult:
        message = f"Trigger {ctx.node.node_id} bypassed: it can never be resumed inside an instance"
        logger.warning(f"{message} (diagram {ctx.instance.diagram_id})")
        log_node(ctx.node_state, 'WARNING', message, {'triggerEvents': ctx.node.trigger_events})
        complete_node_state(ctx.node_state)
        return ExecutionResult.proceed()


EXECUTORS: Dict[str, NodeExecutor] = {
    executor.node_type: executor
    for executor in [
        DecisionExecutor(),
        AndExecutor(),
        OrExecutor(),
        SendExecutor(),
        EndExecutor(),
        TriggerExecutor(),
    ]
}

_missing = {t.value for t in NodeType} - set(NON_FLOW_TYPES) - set(EXECUTORS)
if _missing:
    raise ImproperlyConfigured(f"No executor registered for node type(s): {sorted(_missing)}")


def execute_node(ctx: ExecutionContext) -> ExecutionResult:
    """Run the executor for the node-state's type; unknown types stop their branch."""
    executor = EXECUTORS.get(ctx.node.node_type)
    if executor is None:
        logger.warning(
            f"Unsupported node type '{ctx.node.node_type}' at {ctx.node.node_id} "
            f"(instance {ctx.instance.pk}); branch stopped"
        )
        fail_node_state(ctx.node_state, f"Unsupported node type '{ctx.node.node_type}'")
        return ExecutionResult.stop()

    log_node(ctx.node_state, 'DEBUG', f'Executing {ctx.node.node_type} node')
    return executor.execute(ctx)
