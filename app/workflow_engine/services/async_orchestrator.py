"""
Async wrappers for workflow orchestration.

Provides async versions of WorkflowOrchestrator methods for callers running
in an event loop (ASGI views, consumers). All workflow logic stays in the
sync WorkflowOrchestrator; these are thread-sensitive sync_to_async
wrappers around it.
"""
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from asgiref.sync import sync_to_async

from workflow_engine.services.orchestrator import WorkflowOrchestrator
from workflow_engine import utils

logger = logging.getLogger(__name__)


class AsyncWorkflowOperations:
    """
    Async wrapper around WorkflowOrchestrator.
    """

    def __init__(self, orchestrator: Optional[WorkflowOrchestrator] = None):
        self.orchestrator = orchestrator or WorkflowOrchestrator()

    @sync_to_async
    def start_or_resume_trigger(
        self,
        event_name: str,
        payload: Dict[str, Any],
        user_id: Optional[int],
        mapping_id
    ) -> Optional[UUID]:
        """
        Dispatch a trigger event.

        Delegates to WorkflowOrchestrator.start_or_resume_trigger.
        """
        return self.orchestrator.start_or_resume_trigger(event_name, payload, user_id, mapping_id)

    @sync_to_async
    def submit_approval(self, node_state_id, user_id, approved: bool, comment: Optional[str] = None) -> bool:
        return self.orchestrator.submit_approval(node_state_id, user_id, approved, comment)

    @sync_to_async
    def cancel_instance(self, instance_id, reason: str = '') -> bool:
        return self.orchestrator.cancel_instance(instance_id, reason)

    @sync_to_async
    def get_instance_summary(self, instance_id) -> Dict[str, Any]:
        return utils.get_instance_summary(instance_id)

    @sync_to_async
    def get_pending_approvals(self, user_id) -> List[Dict[str, Any]]:
        return utils.get_pending_approvals(user_id)
