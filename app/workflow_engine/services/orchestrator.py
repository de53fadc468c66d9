"""
Workflow orchestration service.

Entry points for everything that moves an instance forward: trigger
dispatch (start or resume), approval submission and administrative
cancellation. Each call runs in one transaction; any exception rolls the
whole cascade back and leaves the previously committed state intact.
"""
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from diagrams.models import Diagram, DiagramNode
from workflow_engine.conf import engine_setting
from workflow_engine.context import (
    ApprovalFragment,
    ApprovalOutcomeFragment,
    ContextStore,
    TriggerFragment,
)
from workflow_engine.exceptions import NotFound, TriggerPermissionDenied
from workflow_engine.models import NodeState, WorkflowInstance
from workflow_engine.services.approvals import ApprovalTracker, approval_mode
from workflow_engine.services.directory import DjangoDirectory
from workflow_engine.services.executors import complete_node_state, log_node
from workflow_engine.services.graph_store import GraphStore
from workflow_engine.services.notifier import Notifier
from workflow_engine.services.propagator import Propagator

logger = logging.getLogger(__name__)


def extract_object_id(payload: Optional[Dict[str, Any]]) -> str:
    """The start object id: the first configured id field present in the payload."""
    for key in engine_setting('OBJECT_ID_FIELDS'):
        value = (payload or {}).get(key)
        if value not in (None, ''):
            return str(value)
    return ''


class WorkflowOrchestrator:
    """
    Main orchestrator for workflow lifecycle management.
    """

    def __init__(
        self,
        directory: Optional[DjangoDirectory] = None,
        notifier: Optional[Notifier] = None,
        store: Optional[ContextStore] = None,
    ):
        self.directory = directory or DjangoDirectory()
        self.notifier = notifier or Notifier()
        self.store = store or ContextStore()

    def _propagator(self, instance: WorkflowInstance, graph: GraphStore) -> Propagator:
        return Propagator(
            instance,
            graph=graph,
            store=self.store,
            directory=self.directory,
            notifier=self.notifier
        )

    # ------------------------------------------------------------------
    # Trigger dispatch
    # ------------------------------------------------------------------

    def start_or_resume_trigger(
        self,
        event_name: str,
        payload: Optional[Dict[str, Any]],
        user_id: Optional[int],
        mapping_id,
    ) -> Optional[UUID]:
        """
        Route an external event to the unique trigger node listening for it.

        A trigger fed by a start node starts a new instance; any other trigger
        resumes an instance waiting on it.

        Args:
            event_name: Trigger event code (e.g. 'create')
            payload: Business object fields
            user_id: Acting user
            mapping_id: Business object type the event refers to

        Returns:
            Id of the started or resumed instance, or None for a no-op

        Raises:
            NotFound: No trigger node matches, or the user does not exist
            MultipleMatches: Several trigger nodes match
            TriggerPermissionDenied: The user may not fire this trigger
        """
        payload = payload or {}
        with transaction.atomic():
            trigger = GraphStore.find_trigger_node(event_name, mapping_id)
            graph = GraphStore(trigger.diagram_id)

            if graph.is_external_trigger(trigger.node_id):
                self.check_trigger_permission(graph, trigger, user_id)
                return self.start_workflow(graph, trigger, event_name, payload, user_id, mapping_id)

            return self.resume_internal_trigger(graph, trigger, event_name, payload, user_id, mapping_id)

    def check_trigger_permission(self, graph: GraphStore, trigger: DiagramNode, user_id):
        if not engine_setting('ENFORCE_TRIGGER_PERMISSIONS'):
            return
        humans = graph.get_connected_humans(trigger.node_id)
        if not humans:
            return
        allowed = {user.id for user in self.directory.users_for_human_nodes(humans)}
        if user_id is None or int(user_id) not in allowed:
            raise TriggerPermissionDenied(
                f"User {user_id} may not fire trigger {trigger.node_id} of diagram {trigger.diagram_id}"
            )

    def start_workflow(
        self,
        graph: GraphStore,
        trigger: DiagramNode,
        event_name: str,
        payload: Dict[str, Any],
        user_id: Optional[int],
        mapping_id,
    ) -> Optional[UUID]:
        """
        Create an instance for a (diagram, mapping, object, user) subject
        unless one is already open, then run it from its trigger.
        Must be called inside a transaction.
        """
        if user_id is not None and not get_user_model().objects.filter(pk=user_id).exists():
            raise NotFound(f"User {user_id} does not exist")

        # Serializes concurrent starts on the same diagram
        Diagram.objects.select_for_update().get(pk=trigger.diagram_id)

        subject = {
            'diagram_id': trigger.diagram_id,
            'start_mapping_id': str(mapping_id),
            'start_object_id': extract_object_id(payload),
            'started_by_id': user_id,
        }
        if WorkflowInstance.objects.filter(status__in=WorkflowInstance.OPEN_STATUSES, **subject).exists():
            logger.info(f"Duplicate start ignored for {event_name} on {subject}")
            return None

        try:
            with transaction.atomic():
                instance = WorkflowInstance.objects.create(start_event=event_name, **subject)
        except IntegrityError:
            logger.info(f"Duplicate start ignored for {event_name} on {subject} (concurrent insert)")
            return None

        trigger_state = NodeState.objects.create(
            workflow_instance=instance,
            node_id=trigger.node_id,
            node_type=trigger.node_type,
            status=NodeState.Status.COMPLETED,
            completed_at=timezone.now(),
        )
        log_node(trigger_state, 'INFO', f'Instance started by {event_name}', {
            'mappingId': str(mapping_id),
            'objectId': subject['start_object_id'],
            'userId': user_id,
        })

        fragment = TriggerFragment.build(event_name, mapping_id, subject['start_object_id'] or None, user_id, payload)
        self.store.merge(instance.pk, fragment, node_state_id=trigger_state.pk, root=True)

        logger.info(f"Created workflow instance {instance.pk} of diagram {trigger.diagram_id} from {event_name}")

        self._propagator(instance, graph).fan_out(trigger_state)
        return instance.pk

    def resume_internal_trigger(
        self,
        graph: GraphStore,
        trigger: DiagramNode,
        event_name: str,
        payload: Dict[str, Any],
        user_id: Optional[int],
        mapping_id,
    ) -> Optional[UUID]:
        """
        Resume the oldest open instance parked on this trigger for the same
        subject. Must be called inside a transaction.
        """
        object_id = extract_object_id(payload)
        waiting = NodeState.objects.select_for_update().select_related('workflow_instance').filter(
            node_id=trigger.node_id,
            status=NodeState.Status.PENDING,
            workflow_instance__diagram_id=trigger.diagram_id,
            workflow_instance__status__in=WorkflowInstance.OPEN_STATUSES,
            workflow_instance__start_mapping_id=str(mapping_id),
        )
        if object_id:
            waiting = waiting.filter(workflow_instance__start_object_id=object_id)

        state = waiting.order_by('workflow_instance__started_at', 'created_at').first()
        if state is None:
            logger.info(f"No instance waiting on trigger {trigger.node_id} for {event_name}; nothing resumed")
            return None

        instance = state.workflow_instance
        complete_node_state(state)
        log_node(state, 'INFO', f'Resumed by {event_name}', {'userId': user_id})

        fragment = TriggerFragment.build(event_name, mapping_id, object_id or None, user_id, payload)
        self.store.merge(instance.pk, fragment, node_state_id=state.pk, root=True)
        self._reactivate(instance)

        logger.info(f"Resumed workflow instance {instance.pk} at trigger {trigger.node_id}")
        self._propagator(instance, graph).fan_out(state)
        return instance.pk

    def _reactivate(self, instance: WorkflowInstance):
        WorkflowInstance.objects.filter(
            pk=instance.pk,
            status=WorkflowInstance.Status.WAITING
        ).update(status=WorkflowInstance.Status.ACTIVE, updated_at=timezone.now())
        instance.refresh_from_db(fields=['status'])

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def submit_approval(
        self,
        node_state_id,
        user_id,
        approved: bool,
        comment: Optional[str] = None
    ) -> bool:
        """
        Record one approver's vote and, once quorum is reached, resume the
        instance along the approval outcome.

        Returns:
            True if the vote was recorded, False if the gate was already resolved

        Raises:
            NotFound: Unknown node-state, or no pending approval for this user
        """
        with transaction.atomic():
            try:
                state = (
                    NodeState.objects.select_for_update()
                    .select_related('workflow_instance')
                    .filter(pk=node_state_id)
                    .first()
                )
            except ValidationError:
                state = None
            if state is None:
                raise NotFound(f"Node-state {node_state_id} does not exist")

            if state.status != NodeState.Status.WAITING:
                logger.info(f"Approval by {user_id} on node-state {node_state_id} ignored: already {state.status}")
                return False

            instance = state.workflow_instance
            graph = GraphStore(instance.diagram_id)
            node = graph.get_node(state.node_id)
            mode = approval_mode(node) if node else 'any'

            tracker = ApprovalTracker(graph, self.directory)
            tracker.record_vote(state, user_id, approved, comment)
            outcome = tracker.tally(state, mode)

            log_node(state, 'INFO', f"{'Approved' if approved else 'Rejected'} by user {user_id}", {
                'approvedCount': outcome.approved_count,
                'rejectedCount': outcome.rejected_count,
                'totalCount': outcome.total_count,
                'resolved': outcome.resolved,
            })
            if not outcome.resolved:
                return True

            logger.info(
                f"Approval gate {state.node_id} of instance {instance.pk} resolved "
                f"{'positively' if outcome.approved else 'negatively'} ({mode})"
            )
            self._reactivate(instance)
            complete_node_state(state)

            metadata = ApprovalFragment(
                approval_result=outcome.approved,
                approved_count=outcome.approved_count,
                rejected_count=outcome.rejected_count,
                total_count=outcome.total_count,
                approval_mode=mode,
                comment=comment,
                user_id=user_id,
            )
            self.store.merge(instance.pk, metadata, node_state_id=state.pk, root=True)
            self.store.merge(instance.pk, ApprovalOutcomeFragment.from_result(outcome.approved), node_state_id=state.pk)

            self._propagator(instance, graph).fan_out(state)
            return True

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def cancel_instance(self, instance_id, reason: str = '') -> bool:
        """
        Cancel an open instance. Its unfinished node-states end in error.

        Returns:
            True if the instance was open and is now cancelled
        """
        with transaction.atomic():
            try:
                instance = WorkflowInstance.objects.select_for_update().filter(pk=instance_id).first()
            except ValidationError:
                instance = None
            if instance is None:
                raise NotFound(f"Workflow instance {instance_id} does not exist")
            if not instance.is_open:
                return False

            now = timezone.now()
            instance.status = WorkflowInstance.Status.CANCELLED
            instance.completed_at = now
            instance.save(update_fields=['status', 'completed_at', 'updated_at'])

            open_states = list(instance.node_states.exclude(status__in=NodeState.TERMINAL_STATUSES))
            for state in open_states:
                log_node(state, 'WARNING', 'Instance cancelled', {'reason': reason})
            NodeState.objects.filter(pk__in=[s.pk for s in open_states]).update(
                status=NodeState.Status.ERROR, completed_at=now, updated_at=now
            )

            logger.info(f"Cancelled workflow instance {instance.pk} ({len(open_states)} open node-state(s))")
        return True
