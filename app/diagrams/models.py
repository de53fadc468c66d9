"""
Diagram Models

Graph tables owned by the authoring editor. The workflow engine only reads
them: nodes are typed by `node_type` and carry a free-form `data` blob whose
shape depends on that type.
"""
import uuid
from typing import Any, List

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models


class NodeType(models.TextChoices):
    """Closed set of node types a diagram can contain."""

    START = 'start', 'Start'
    TRIGGER = 'trigger', 'Trigger'
    DECISION = 'decision', 'Decision'
    AND = 'and', 'AND join'
    OR = 'or', 'OR join'
    SEND = 'send', 'Send'
    HUMAN = 'human', 'Human'
    END = 'end', 'End'
    COMMENT = 'comment', 'Comment'


class Diagram(models.Model):
    """A workflow diagram drawn in the editor."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='diagrams'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Diagram"
        verbose_name_plural = "Diagrams"
        ordering = ['-created_at']

    def __str__(self):
        return self.name

    def clean(self):
        """The engine does not support loops: reject cyclic diagrams."""
        super().clean()
        if self.pk and not self.is_acyclic():
            raise ValidationError("Diagram contains cycles - workflows must be acyclic")

    def is_acyclic(self) -> bool:
        """Check if the diagram's connections form a DAG."""
        graph = {node_id: [] for node_id in self.nodes.values_list('node_id', flat=True)}
        for source, target in self.connections.values_list('source_node_id', 'target_node_id'):
            graph.setdefault(source, []).append(target)
            graph.setdefault(target, [])

        visited = set()
        rec_stack = set()

        def has_cycle(node_id):
            visited.add(node_id)
            rec_stack.add(node_id)

            for neighbor in graph.get(node_id, []):
                if neighbor not in visited:
                    if has_cycle(neighbor):
                        return True
                elif neighbor in rec_stack:
                    return True

            rec_stack.remove(node_id)
            return False

        for node_id in graph:
            if node_id not in visited:
                if has_cycle(node_id):
                    return False

        return True


class DiagramNode(models.Model):
    """
    A node of a diagram.

    `node_id` is the editor's identifier, stable and unique within the diagram.
    Connections refer to nodes by this identifier.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    diagram = models.ForeignKey(
        Diagram,
        on_delete=models.CASCADE,
        related_name='nodes'
    )
    node_id = models.CharField(max_length=255, db_index=True)
    node_type = models.CharField(max_length=20, db_index=True)
    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Type-specific configuration (trigger events, condition, send kinds, humans)"
    )
    position_x = models.FloatField(default=0)
    position_y = models.FloatField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Diagram Node"
        verbose_name_plural = "Diagram Nodes"
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['diagram', 'node_id'],
                name='unique_node_per_diagram'
            ),
        ]
        indexes = [
            models.Index(fields=['diagram', 'node_type'], name='idx_node_diagram_type'),
        ]

    def __str__(self):
        return f"{self.node_id} ({self.node_type})"

    @property
    def label(self) -> str:
        return (self.data or {}).get('label') or self.node_type

    @property
    def trigger_events(self) -> List[str]:
        return list((self.data or {}).get('triggerEvents') or [])

    @property
    def mapping_ids(self) -> List[Any]:
        return list((self.data or {}).get('mappingIds') or [])

    def get(self, key: str, default: Any = None) -> Any:
        """Read a key from the node's data blob."""
        return (self.data or {}).get(key, default)


class DiagramConnection(models.Model):
    """
    A directed edge between two nodes of the same diagram.

    `data.kind` discriminates decision branches ('true'/'false', or the
    editor's 'yes'/'no'); it is absent on ordinary edges.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    diagram = models.ForeignKey(
        Diagram,
        on_delete=models.CASCADE,
        related_name='connections'
    )
    edge_id = models.CharField(max_length=255)
    source_node_id = models.CharField(max_length=255)
    target_node_id = models.CharField(max_length=255)
    data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Diagram Connection"
        verbose_name_plural = "Diagram Connections"
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['diagram', 'edge_id'],
                name='unique_edge_per_diagram'
            ),
        ]
        indexes = [
            models.Index(fields=['diagram', 'source_node_id'], name='idx_connection_source'),
            models.Index(fields=['diagram', 'target_node_id'], name='idx_connection_target'),
        ]

    def __str__(self):
        return f"{self.source_node_id} → {self.target_node_id}"

    @property
    def kind(self) -> str:
        return str((self.data or {}).get('kind') or '')


class TriggerEvent(models.Model):
    """Display names for trigger event codes (e.g. 'create' → 'Created')."""

    code = models.CharField(max_length=100, unique=True)
    name = models.CharField(max_length=255)
    icon = models.CharField(max_length=100, blank=True, default='')

    class Meta:
        verbose_name = "Trigger Event"
        verbose_name_plural = "Trigger Events"
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.code})"


class ObjectMapping(models.Model):
    """Business object types a trigger can be bound to (the 'mapping id')."""

    model_name = models.CharField(max_length=255)
    display_name = models.CharField(max_length=255)

    class Meta:
        verbose_name = "Object Mapping"
        verbose_name_plural = "Object Mappings"
        ordering = ['display_name']

    def __str__(self):
        return self.display_name
