"""
HTTP API for the workflow engine.

Engine calls run inline on the request, inside the orchestrator's
transaction, so the response reflects the committed cascade.
"""
import logging
import uuid

from rest_framework import status as http_status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from workflow_engine.exceptions import MultipleMatches, NotFound, TriggerPermissionDenied
from workflow_engine.models import NodeState
from workflow_engine.services.orchestrator import WorkflowOrchestrator
from workflow_engine.utils import get_instance_summary, get_pending_approvals

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFound: http_status.HTTP_404_NOT_FOUND,
    MultipleMatches: http_status.HTTP_409_CONFLICT,
    TriggerPermissionDenied: http_status.HTTP_403_FORBIDDEN,
}


def _error(exc):
    return Response(
        {'success': False, 'error': str(exc)},
        status=ERROR_STATUS.get(type(exc), http_status.HTTP_400_BAD_REQUEST)
    )


def _as_bool(value):
    if isinstance(value, bool):
        return value
    if str(value).strip().lower() in ('true', '1', 'yes'):
        return True
    if str(value).strip().lower() in ('false', '0', 'no'):
        return False
    return None


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def trigger_api(request):
    """
    Start or resume a workflow from a trigger event.

    POST /api/workflow/trigger/
    Body: {
        "event": "create",
        "mappingId": 3,
        "data": {"Id": 42, "Name": "Acme"}
    }
    """
    event = request.data.get('event')
    mapping_id = request.data.get('mappingId')
    payload = request.data.get('data') or {}

    if not event or mapping_id in (None, '') or not isinstance(payload, dict):
        return Response(
            {'success': False, 'error': "'event', 'mappingId' and an object 'data' are required"},
            status=http_status.HTTP_400_BAD_REQUEST
        )

    try:
        instance_id = WorkflowOrchestrator().start_or_resume_trigger(event, payload, request.user.id, mapping_id)
    except (NotFound, MultipleMatches, TriggerPermissionDenied) as e:
        return _error(e)

    return Response({
        'success': True,
        'workflowInstanceId': str(instance_id) if instance_id else None,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def approval_api(request):
    """
    Approve or reject a human-approval gate.

    POST /api/workflow/approval/
    Body: {"nodeStateId": "...", "approved": true, "comment": "ok"}
    """
    node_state_id = request.data.get('nodeStateId')
    approved = _as_bool(request.data.get('approved'))
    comment = request.data.get('comment')

    try:
        node_state_id = uuid.UUID(str(node_state_id))
    except ValueError:
        node_state_id = None

    if not node_state_id or approved is None:
        return Response(
            {'success': False, 'error': "'nodeStateId' and a boolean 'approved' are required"},
            status=http_status.HTTP_400_BAD_REQUEST
        )

    try:
        recorded = WorkflowOrchestrator().submit_approval(node_state_id, request.user.id, approved, comment)
    except NotFound as e:
        return _error(e)

    resolved = NodeState.objects.filter(pk=node_state_id, status=NodeState.Status.COMPLETED).exists()
    return Response({'success': recorded, 'resolved': resolved})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def pending_approvals_api(request):
    """
    Approvals waiting on the current user.

    GET /api/workflow/approvals/pending/
    """
    return Response({'results': get_pending_approvals(request.user.id)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def instance_detail_api(request, instance_id):
    """
    API endpoint to get instance status.

    GET /api/workflow/instances/<instance_id>/
    """
    try:
        summary = get_instance_summary(instance_id)
    except NotFound as e:
        return _error(e)
    return Response(summary)
