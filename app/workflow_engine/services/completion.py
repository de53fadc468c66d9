"""
Instance status after a propagation step.
"""
import logging

from django.utils import timezone

from workflow_engine.models import NodeState, WorkflowInstance

logger = logging.getLogger(__name__)


class CompletionChecker:
    """
    Completes an instance once every node-state is completed or in error,
    and parks it as waiting when only pending/waiting node-states remain.
    Never moves an instance from waiting back to active.
    """

    def check(self, instance: WorkflowInstance) -> str:
        """
        Recompute and persist the instance status.

        Returns:
            The instance status after the check
        """
        states = NodeState.objects.filter(workflow_instance_id=instance.pk)
        open_count = states.exclude(status__in=NodeState.TERMINAL_STATUSES).count()
        now = timezone.now()

        if open_count == 0:
            changed = WorkflowInstance.objects.filter(
                pk=instance.pk,
                status__in=WorkflowInstance.OPEN_STATUSES
            ).update(status=WorkflowInstance.Status.COMPLETED, completed_at=now, updated_at=now)
            if changed:
                instance.status = WorkflowInstance.Status.COMPLETED
                instance.completed_at = now
                logger.info(f"Instance {instance.pk} completed")
        elif not states.filter(status=NodeState.Status.ACTIVE).exists():
            changed = WorkflowInstance.objects.filter(
                pk=instance.pk,
                status=WorkflowInstance.Status.ACTIVE
            ).update(status=WorkflowInstance.Status.WAITING, updated_at=now)
            if changed:
                instance.status = WorkflowInstance.Status.WAITING
                logger.info(f"Instance {instance.pk} waiting on {open_count} node-state(s)")

        instance.refresh_from_db(fields=['status', 'completed_at'])
        return instance.status
