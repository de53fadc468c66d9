"""
Notification delivery for Send nodes.

In-app notifications are rows in the engine's own database and are written
inside the engine transaction. Email goes through a Celery task queued only
after that transaction commits.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from django.db import transaction

from workflow_engine.conf import engine_setting
from workflow_engine.models import Notification
from workflow_engine.services.directory import DirectoryUser

logger = logging.getLogger(__name__)

INAPP = 'inapp'
EMAIL = 'email'


def normalize_kind(kind: str) -> str:
    kind = str(kind or '').strip().lower()
    return engine_setting('SEND_KIND_ALIASES').get(kind, kind)


class Notifier:
    """Delivers one Send node's message over one channel."""

    def notify(
        self,
        channel_kind: str,
        sender_id: Optional[int],
        sender_name: str,
        needs_action: bool,
        payload: Dict[str, Any],
        recipient_ids: Sequence[int],
        recipient_records: Sequence[DirectoryUser],
    ) -> int:
        """
        Deliver a notification.

        Args:
            channel_kind: 'inapp' or 'email' (aliases are normalized)
            sender_id: Acting user id, None for the system
            sender_name: Display name of the sender
            needs_action: Whether receivers are asked to approve or reject
            payload: 'title', 'body' and optional 'workflowInstanceId'/'nodeStateId'
            recipient_ids: Receiver user ids
            recipient_records: Directory records for the receivers

        Returns:
            Number of recipients the message was handed to
        """
        kind = normalize_kind(channel_kind)
        if kind == INAPP:
            return self._send_inapp(sender_id, sender_name, needs_action, payload, recipient_ids)
        if kind == EMAIL:
            return self._queue_email(sender_name, payload, recipient_records)

        logger.warning(f"Unsupported send kind '{channel_kind}', nothing delivered")
        return 0

    def _send_inapp(self, sender_id, sender_name, needs_action, payload, recipient_ids) -> int:
        details = {
            'body': payload.get('body', ''),
            'senderName': sender_name,
            'context': payload.get('details', {}),
        }
        notifications = [
            Notification(
                sender_id=sender_id,
                receiver_id=receiver_id,
                title=payload.get('title', 'Notification')[:500],
                details=details,
                is_action=needs_action,
                workflow_instance_id=payload.get('workflowInstanceId'),
                node_state_id=payload.get('nodeStateId'),
            )
            for receiver_id in recipient_ids
        ]
        Notification.objects.bulk_create(notifications)
        logger.info(f"Created {len(notifications)} in-app notification(s): {payload.get('title')}")
        return len(notifications)

    def _queue_email(self, sender_name, payload, recipient_records) -> int:
        emails: List[str] = [r.email for r in recipient_records if r.email]
        skipped = len(recipient_records) - len(emails)
        if skipped:
            logger.info(f"Skipping {skipped} email recipient(s) without an address")
        if not emails:
            return 0

        subject = payload.get('title', 'Notification')
        body = payload.get('body', '')
        if sender_name:
            body = f"{body}\n\n-- {sender_name}"

        def enqueue():
            from workflow_engine.tasks import send_email_notification_task
            try:
                send_email_notification_task.delay(subject, body, emails)
            except Exception as e:
                logger.error(f"Could not queue email '{subject}': {e}")

        transaction.on_commit(enqueue)
        return len(emails)
