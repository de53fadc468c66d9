"""
Read-only access to a diagram's nodes and connections.
"""
import logging
from typing import List, Optional

from django.db import connection
from django.db.models import Q

from diagrams.models import Diagram, DiagramConnection, DiagramNode, NodeType
from workflow_engine.conf import engine_setting
from workflow_engine.exceptions import MultipleMatches, NotFound

logger = logging.getLogger(__name__)

# Configuration nodes: they never carry flow
NON_FLOW_TYPES = {NodeType.START, NodeType.HUMAN, NodeType.COMMENT}


class GraphStore:
    """Queries over one diagram. Nothing is cached between calls."""

    def __init__(self, diagram):
        self.diagram_id = diagram.pk if isinstance(diagram, Diagram) else diagram

    def get_node(self, node_id: str) -> Optional[DiagramNode]:
        return DiagramNode.objects.filter(diagram_id=self.diagram_id, node_id=node_id).first()

    def get_outgoing_connections(self, node_id: str) -> List[DiagramConnection]:
        return list(DiagramConnection.objects.filter(
            diagram_id=self.diagram_id,
            source_node_id=node_id
        ).order_by('created_at', 'edge_id'))

    def get_incoming_connections(self, node_id: str) -> List[DiagramConnection]:
        return list(DiagramConnection.objects.filter(
            diagram_id=self.diagram_id,
            target_node_id=node_id
        ).order_by('created_at', 'edge_id'))

    def get_incoming_connection_count(self, node_id: str) -> int:
        return DiagramConnection.objects.filter(
            diagram_id=self.diagram_id,
            target_node_id=node_id
        ).count()

    def get_incoming_nodes(self, node_id: str, node_type: Optional[str] = None) -> List[DiagramNode]:
        """Nodes with a connection into `node_id`, optionally of one type."""
        source_ids = DiagramConnection.objects.filter(
            diagram_id=self.diagram_id,
            target_node_id=node_id
        ).values_list('source_node_id', flat=True)
        nodes = DiagramNode.objects.filter(diagram_id=self.diagram_id, node_id__in=list(source_ids))
        if node_type:
            nodes = nodes.filter(node_type=node_type)
        return list(nodes)

    def get_connected_humans(self, node_id: str) -> List[DiagramNode]:
        """Human nodes attached to `node_id`, in either direction."""
        connections = DiagramConnection.objects.filter(diagram_id=self.diagram_id).filter(
            Q(target_node_id=node_id) | Q(source_node_id=node_id)
        )
        neighbour_ids = set()
        for source_id, target_id in connections.values_list('source_node_id', 'target_node_id'):
            neighbour_ids.add(target_id if source_id == node_id else source_id)
        return list(DiagramNode.objects.filter(
            diagram_id=self.diagram_id,
            node_id__in=neighbour_ids,
            node_type=NodeType.HUMAN
        ))

    def is_external_trigger(self, node_id: str) -> bool:
        """
        Whether a trigger node starts new instances.

        'start_edge' mode: external iff a start node connects into it.
        'incoming_edges' mode: external iff no flow node connects into it.
        """
        incoming = self.get_incoming_nodes(node_id)
        if engine_setting('INTERNAL_TRIGGER_DETECTION') == 'incoming_edges':
            return not any(node.node_type not in NON_FLOW_TYPES for node in incoming)
        return any(node.node_type == NodeType.START for node in incoming)

    @staticmethod
    def find_trigger_nodes(event_name: str, mapping_id) -> List[DiagramNode]:
        """All trigger nodes listening for this event on this mapping id."""
        wanted_mapping = str(mapping_id)
        nodes = DiagramNode.objects.filter(
            node_type=NodeType.TRIGGER,
            data__has_key='triggerEvents'
        ).only('diagram', 'node_id', 'node_type', 'data')
        if connection.features.supports_json_field_contains:
            nodes = nodes.filter(data__contains={'triggerEvents': [event_name]})

        matches = []
        for node in nodes:
            if event_name not in node.trigger_events:
                continue
            if wanted_mapping not in {str(m) for m in node.mapping_ids}:
                continue
            matches.append(node)
        return matches

    @classmethod
    def find_trigger_node(cls, event_name: str, mapping_id) -> DiagramNode:
        """
        Locate the unique trigger node for an event and mapping id.

        Raises:
            NotFound: No trigger node matches
            MultipleMatches: More than one trigger node matches
        """
        matches = cls.find_trigger_nodes(event_name, mapping_id)
        if not matches:
            raise NotFound(f"No trigger node for event '{event_name}' and mapping {mapping_id}")
        if len(matches) > 1:
            ids = ', '.join(f"{n.diagram_id}/{n.node_id}" for n in matches)
            raise MultipleMatches(
                f"{len(matches)} trigger nodes match event '{event_name}' and mapping {mapping_id}: {ids}"
            )
        return matches[0]
