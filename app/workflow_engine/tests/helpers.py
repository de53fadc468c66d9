"""
Builders shared by the workflow engine tests.
"""
from django.contrib.auth.models import User

from diagrams.models import Diagram, DiagramConnection, DiagramNode


class DiagramBuilder:
    """
    Builds a diagram node by node.

        graph = DiagramBuilder()
        graph.node('start', 'start').node('t1', 'trigger', triggerEvents=['create'], mappingIds=[3])
        graph.connect('start', 't1')
    """

    def __init__(self, name='Test diagram', owner=None):
        self.diagram = Diagram.objects.create(name=name, owner=owner)
        self.edge_count = 0

    def node(self, node_id, node_type, **data):
        DiagramNode.objects.create(
            diagram=self.diagram,
            node_id=node_id,
            node_type=node_type,
            data=data
        )
        return self

    def connect(self, source, target, kind=None):
        self.edge_count += 1
        DiagramConnection.objects.create(
            diagram=self.diagram,
            edge_id=f'e{self.edge_count:03d}',
            source_node_id=source,
            target_node_id=target,
            data={'kind': kind} if kind else {}
        )
        return self

    def get(self, node_id):
        return DiagramNode.objects.get(diagram=self.diagram, node_id=node_id)


def make_user(username, user_id=None, email=None, **extra):
    if user_id is not None:
        extra['id'] = user_id
    return User.objects.create_user(
        username=username,
        email=f'{username}@example.com' if email is None else email,
        password='password',
        **extra
    )


def start_graph(builder, event='create', mapping_id=3, trigger_id='t1'):
    """Add the usual start -> trigger entry to a diagram."""
    builder.node('start', 'start')
    builder.node(trigger_id, 'trigger', triggerEvents=[event], mappingIds=[mapping_id])
    builder.connect('start', trigger_id)
    return builder


def execution_context(instance, node_state, node, source_state=None, notifier=None):
    """ExecutionContext with the default collaborators, for driving one executor."""
    from workflow_engine.context import ContextStore
    from workflow_engine.services.directory import DjangoDirectory
    from workflow_engine.services.executors import ExecutionContext
    from workflow_engine.services.graph_store import GraphStore
    from workflow_engine.services.notifier import Notifier

    return ExecutionContext(
        instance=instance,
        node_state=node_state,
        node=node,
        source_state=source_state,
        graph=GraphStore(instance.diagram_id),
        store=ContextStore(),
        directory=DjangoDirectory(),
        notifier=notifier or Notifier(),
    )
