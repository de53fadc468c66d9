"""
Workflow Engine Models

Durable state machine tables for diagram execution. Every instance, visited
node and approval vote lives in the database; no scheduler state is kept in
memory between calls.
"""
import uuid
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import models
from django.db.models import Count, Q


class WorkflowInstance(models.Model):
    """
    One execution of a diagram, from its starting trigger to a terminal state.

    At most one open (active or waiting) instance may exist for the same
    (diagram, start mapping, start object, starting user) subject.
    """

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        WAITING = 'waiting', 'Waiting'
        COMPLETED = 'completed', 'Completed'
        ERROR = 'error', 'Error'
        CANCELLED = 'cancelled', 'Cancelled'

    OPEN_STATUSES = [Status.ACTIVE, Status.WAITING]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    diagram = models.ForeignKey(
        'diagrams.Diagram',
        on_delete=models.PROTECT,
        related_name='instances'
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True
    )

    # Starting subject
    start_event = models.CharField(max_length=100)
    start_mapping_id = models.CharField(max_length=64)
    start_object_id = models.CharField(max_length=255, blank=True, default='')
    started_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='workflow_instances'
    )

    context = models.JSONField(
        default=dict,
        blank=True,
        help_text="Accumulated context; per node-state fragments under 'nodes'"
    )

    started_at = models.DateTimeField(auto_now_add=True, db_index=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Workflow Instance"
        verbose_name_plural = "Workflow Instances"
        ordering = ['-started_at']
        indexes = [
            models.Index(fields=['diagram', 'status'], name='idx_instance_diagram_status'),
            models.Index(fields=['status', 'started_at'], name='idx_instance_status_started'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['diagram', 'start_mapping_id', 'start_object_id', 'started_by'],
                condition=Q(status__in=['active', 'waiting']),
                name='unique_open_instance_per_subject'
            ),
        ]

    def __str__(self):
        return f"{self.diagram_id} - {self.start_event} #{self.start_object_id or '-'} ({self.status})"

    @property
    def is_open(self) -> bool:
        return self.status in self.OPEN_STATUSES

    @property
    def duration(self) -> Optional[float]:
        """Calculate instance duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def get_progress(self) -> Dict[str, Any]:
        """Count node-states per status."""
        counts = self.node_states.aggregate(
            total=Count('id'),
            completed=Count('id', filter=Q(status=NodeState.Status.COMPLETED)),
            active=Count('id', filter=Q(status=NodeState.Status.ACTIVE)),
            waiting=Count('id', filter=Q(status=NodeState.Status.WAITING)),
            pending=Count('id', filter=Q(status=NodeState.Status.PENDING)),
            error=Count('id', filter=Q(status=NodeState.Status.ERROR)),
        )
        total = counts['total']
        counts['percentage'] = int((counts['completed'] / total) * 100) if total else 0
        return counts


class NodeState(models.Model):
    """
    The record of one diagram node visited by one instance.

    Created by the propagator the first time a connection reaches the node,
    reused by later arrivals, never deleted.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        ACTIVE = 'active', 'Active'
        WAITING = 'waiting', 'Waiting'
        COMPLETED = 'completed', 'Completed'
        ERROR = 'error', 'Error'

    TERMINAL_STATUSES = [Status.COMPLETED, Status.ERROR]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    workflow_instance = models.ForeignKey(
        WorkflowInstance,
        on_delete=models.CASCADE,
        related_name='node_states'
    )
    node_id = models.CharField(max_length=255, db_index=True)
    node_type = models.CharField(max_length=20)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )

    # Join bookkeeping
    inputs_required = models.IntegerField(default=0)
    inputs_received = models.IntegerField(default=0)

    source_node_state = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        help_text="Node-state whose fan-out created this one"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Node State"
        verbose_name_plural = "Node States"
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['workflow_instance', 'status'], name='idx_nodestate_instance_status'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['workflow_instance', 'node_id'],
                name='unique_node_state_per_instance'
            ),
        ]

    def __str__(self):
        return f"{self.node_id} ({self.status}) - Instance {self.workflow_instance_id}"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES


class NodeApproval(models.Model):
    """One eligible approver's vote on a human-approval node-state."""

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        APPROVED = 'approved', 'Approved'
        REJECTED = 'rejected', 'Rejected'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    node_state = models.ForeignKey(
        NodeState,
        on_delete=models.CASCADE,
        related_name='approvals'
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='node_approvals'
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )
    comment = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Node Approval"
        verbose_name_plural = "Node Approvals"
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['user', 'status'], name='idx_approval_user_status'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['node_state', 'user'],
                name='unique_approval_per_user'
            ),
        ]

    def __str__(self):
        return f"{self.user_id} on {self.node_state.node_id}: {self.status}"


class NodeInput(models.Model):
    """One arrival at an AND/OR join."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    node_state = models.ForeignKey(
        NodeState,
        on_delete=models.CASCADE,
        related_name='inputs'
    )
    source_node_id = models.CharField(max_length=255, blank=True, default='')
    input_data = models.JSONField(default=dict, blank=True)
    evaluation_result = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Node Input"
        verbose_name_plural = "Node Inputs"
        ordering = ['created_at']

    def __str__(self):
        return f"{self.source_node_id or 'unknown'} → {self.node_state.node_id}"


class NodeLog(models.Model):
    """
    Logs for node-state execution (structured logging).

    Written inside the engine transaction, so a rolled-back cascade leaves
    no log rows behind.
    """

    LOG_LEVEL_CHOICES = [
        ('DEBUG', 'Debug'),
        ('INFO', 'Info'),
        ('WARNING', 'Warning'),
        ('ERROR', 'Error'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    node_state = models.ForeignKey(
        NodeState,
        on_delete=models.CASCADE,
        related_name='logs'
    )

    level = models.CharField(max_length=10, choices=LOG_LEVEL_CHOICES, default='INFO')
    message = models.TextField()
    context = models.JSONField(
        default=dict,
        blank=True,
        help_text="Additional context data for the log entry"
    )

    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = "Node Log"
        verbose_name_plural = "Node Logs"
        ordering = ['timestamp']
        indexes = [
            models.Index(fields=['node_state', 'timestamp'], name='idx_nodelog_state_time'),
        ]

    def __str__(self):
        return f"[{self.level}] {self.node_state.node_id}: {self.message[:50]}"


class Notification(models.Model):
    """In-app notification produced by a Send node."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sent_notifications'
    )
    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    title = models.CharField(max_length=500)
    details = models.JSONField(default=dict, blank=True)
    is_action = models.BooleanField(
        default=False,
        help_text="Whether the receiver is asked to approve or reject"
    )
    is_read = models.BooleanField(default=False)
    workflow_instance = models.ForeignKey(
        WorkflowInstance,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notifications'
    )
    node_state = models.ForeignKey(
        NodeState,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notifications'
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = "Notification"
        verbose_name_plural = "Notifications"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['receiver', 'is_read'], name='idx_notification_unread'),
        ]

    def __str__(self):
        return f"{self.title[:50]} → {self.receiver_id}"
