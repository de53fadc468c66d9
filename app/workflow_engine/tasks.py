"""
Celery tasks for trigger dispatch, approval submission and outbound email.
"""
import logging
from typing import Any, Dict, List, Optional

from celery import shared_task
from django.core.mail import send_mail

from workflow_engine.conf import engine_setting
from workflow_engine.exceptions import WorkflowEngineError
from workflow_engine.services.orchestrator import WorkflowOrchestrator

logger = logging.getLogger(__name__)


@shared_task
def dispatch_trigger_task(event_name: str, payload: Dict[str, Any] = None, user_id: int = None, mapping_id=None):
    """
    Start or resume a workflow from a trigger event.

    Args:
        event_name: Trigger event code
        payload: Business object fields
        user_id: Acting user
        mapping_id: Business object type
    """
    orchestrator = WorkflowOrchestrator()

    try:
        instance_id = orchestrator.start_or_resume_trigger(event_name, payload or {}, user_id, mapping_id)
    except WorkflowEngineError as e:
        logger.error(f"Trigger {event_name} (mapping {mapping_id}) failed: {e}")
        return {
            'error': str(e),
            'errorType': type(e).__name__
        }

    return {
        'workflow_instance_id': str(instance_id) if instance_id else None,
        'status': 'dispatched' if instance_id else 'noop'
    }


@shared_task
def submit_approval_task(node_state_id: str, user_id: int, approved: bool, comment: Optional[str] = None):
    """Record an approval vote."""
    orchestrator = WorkflowOrchestrator()

    try:
        recorded = orchestrator.submit_approval(node_state_id, user_id, approved, comment)
    except WorkflowEngineError as e:
        logger.error(f"Approval by {user_id} on {node_state_id} failed: {e}")
        return {
            'error': str(e),
            'errorType': type(e).__name__
        }

    return {
        'node_state_id': node_state_id,
        'recorded': recorded
    }


@shared_task(bind=True, max_retries=3, autoretry_for=(Exception,), retry_backoff=True)
def send_email_notification_task(self, subject: str, message: str, recipient_emails: List[str]):
    """
    Send one notification email. Runs after the engine transaction has
    committed; failures are retried with backoff and never touch engine
    state.
    """
    try:
        sent = send_mail(
            subject,
            message,
            engine_setting('DEFAULT_FROM_EMAIL'),
            recipient_emails,
            fail_silently=False
        )
    except Exception as e:
        logger.error(
            f"Email '{subject}' to {len(recipient_emails)} recipient(s) failed "
            f"(attempt {self.request.retries + 1}): {e}"
        )
        raise

    logger.info(f"Email '{subject}' sent to {len(recipient_emails)} recipient(s)")
    return {'sent': sent}
