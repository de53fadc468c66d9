"""
Utility functions for workflow engine.

Read-only helpers over the engine tables, used by the API, the management
commands and the async facade.
"""
from typing import Any, Dict, List

from django.core.exceptions import ValidationError

from workflow_engine.exceptions import NotFound
from workflow_engine.models import NodeApproval, NodeState, WorkflowInstance


def get_instance(instance_id) -> WorkflowInstance:
    try:
        instance = WorkflowInstance.objects.select_related('diagram', 'started_by').filter(pk=instance_id).first()
    except ValidationError:
        instance = None
    if instance is None:
        raise NotFound(f"Workflow instance {instance_id} does not exist")
    return instance


def get_instance_progress(instance: WorkflowInstance) -> Dict[str, Any]:
    """
    Get progress information for an instance.

    Args:
        instance: WorkflowInstance

    Returns:
        Node-state counts per status plus the completed percentage
    """
    return instance.get_progress()


def serialize_node_state(state: NodeState) -> Dict[str, Any]:
    return {
        'id': str(state.id),
        'nodeId': state.node_id,
        'nodeType': state.node_type,
        'status': state.status,
        'inputsRequired': state.inputs_required,
        'inputsReceived': state.inputs_received,
        'createdAt': state.created_at.isoformat(),
        'completedAt': state.completed_at.isoformat() if state.completed_at else None,
        'approvals': [
            {
                'userId': approval.user_id,
                'status': approval.status,
                'comment': approval.comment,
            }
            for approval in state.approvals.all()
        ],
    }


def get_instance_summary(instance_id) -> Dict[str, Any]:
    """
    Get a complete summary of an instance: its status, context, progress and
    every node-state with its approval votes.
    """
    instance = get_instance(instance_id)
    states = instance.node_states.prefetch_related('approvals').order_by('created_at')

    return {
        'id': str(instance.id),
        'diagramId': str(instance.diagram_id),
        'diagramName': instance.diagram.name,
        'status': instance.status,
        'startEvent': instance.start_event,
        'startMappingId': instance.start_mapping_id,
        'startObjectId': instance.start_object_id,
        'startedBy': instance.started_by_id,
        'startedAt': instance.started_at.isoformat(),
        'completedAt': instance.completed_at.isoformat() if instance.completed_at else None,
        'duration': instance.duration,
        'progress': get_instance_progress(instance),
        'context': instance.context,
        'nodeStates': [serialize_node_state(state) for state in states],
    }


def get_pending_approvals(user_id) -> List[Dict[str, Any]]:
    """Approvals waiting on a user, oldest first."""
    approvals = NodeApproval.objects.filter(
        user_id=user_id,
        status=NodeApproval.Status.PENDING,
        node_state__status=NodeState.Status.WAITING,
    ).select_related('node_state__workflow_instance__diagram').order_by('created_at')

    return [
        {
            'nodeStateId': str(approval.node_state_id),
            'nodeId': approval.node_state.node_id,
            'workflowInstanceId': str(approval.node_state.workflow_instance_id),
            'diagramName': approval.node_state.workflow_instance.diagram.name,
            'startEvent': approval.node_state.workflow_instance.start_event,
            'startObjectId': approval.node_state.workflow_instance.start_object_id,
            'createdAt': approval.created_at.isoformat(),
        }
        for approval in approvals
    ]
