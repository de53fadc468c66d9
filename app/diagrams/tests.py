"""
Tests for diagram models.
"""
from django.core.exceptions import ValidationError
from django.test import TestCase

from diagrams.models import Diagram, DiagramConnection, DiagramNode


class DiagramTestCase(TestCase):

    def setUp(self):
        self.diagram = Diagram.objects.create(name='Test')
        for node_id in ['a', 'b', 'c']:
            DiagramNode.objects.create(diagram=self.diagram, node_id=node_id, node_type='send')

    def connect(self, edge_id, source, target, **data):
        return DiagramConnection.objects.create(
            diagram=self.diagram,
            edge_id=edge_id,
            source_node_id=source,
            target_node_id=target,
            data=data
        )

    def test_acyclic(self):
        self.connect('e1', 'a', 'b')
        self.connect('e2', 'a', 'c')
        self.connect('e3', 'b', 'c')

        self.assertTrue(self.diagram.is_acyclic())
        self.diagram.full_clean()

    def test_cycle_detection(self):
        self.connect('e1', 'a', 'b')
        self.connect('e2', 'b', 'c')
        self.connect('e3', 'c', 'a')

        self.assertFalse(self.diagram.is_acyclic())
        with self.assertRaises(ValidationError):
            self.diagram.full_clean()

    def test_node_data_accessors(self):
        node = DiagramNode.objects.create(
            diagram=self.diagram,
            node_id='t',
            node_type='trigger',
            data={'triggerEvents': ['create'], 'mappingIds': [3], 'label': 'On create'}
        )

        self.assertEqual(node.trigger_events, ['create'])
        self.assertEqual(node.mapping_ids, [3])
        self.assertEqual(node.label, 'On create')
        self.assertIsNone(node.get('conditionValue'))

        bare = DiagramNode.objects.get(diagram=self.diagram, node_id='a')
        self.assertEqual(bare.trigger_events, [])
        self.assertEqual(bare.label, 'send')

    def test_connection_kind(self):
        self.assertEqual(self.connect('e1', 'a', 'b', kind='true').kind, 'true')
        self.assertEqual(self.connect('e2', 'a', 'c').kind, '')
