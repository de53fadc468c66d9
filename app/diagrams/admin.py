"""
Django admin interface for diagrams.

The editor owns these tables; the admin is for inspection and small fixes.
"""
from django.contrib import admin
from django.utils.safestring import mark_safe

from .models import Diagram, DiagramNode, DiagramConnection, TriggerEvent, ObjectMapping


class DiagramNodeInline(admin.TabularInline):
    model = DiagramNode
    extra = 0
    fields = ['node_id', 'node_type', 'data']


class DiagramConnectionInline(admin.TabularInline):
    model = DiagramConnection
    extra = 0
    fields = ['edge_id', 'source_node_id', 'target_node_id', 'data']


@admin.register(Diagram)
class DiagramAdmin(admin.ModelAdmin):
    list_display = ['name', 'owner', 'node_count', 'created_at']
    search_fields = ['name']
    readonly_fields = ['id', 'created_at', 'updated_at', 'graph_visualization']
    inlines = [DiagramNodeInline, DiagramConnectionInline]

    def node_count(self, obj):
        return obj.nodes.count()
    node_count.short_description = 'Nodes'

    def graph_visualization(self, obj):
        """Display a simple text visualization of the graph."""
        nodes = obj.nodes.all()
        connections = obj.connections.all()

        html = '<div style="font-family: monospace; white-space: pre;">'
        html += f'<strong>Nodes ({len(nodes)}):</strong>\n'
        for node in nodes:
            html += f'  • {node.node_id} ({node.node_type}) {node.label}\n'

        html += f'\n<strong>Connections ({len(connections)}):</strong>\n'
        for conn in connections:
            kind = f' [{conn.kind}]' if conn.kind else ''
            html += f'  {conn.source_node_id} → {conn.target_node_id}{kind}\n'

        html += '</div>'
        return mark_safe(html)
    graph_visualization.short_description = 'Graph'


@admin.register(TriggerEvent)
class TriggerEventAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'icon']
    search_fields = ['code', 'name']


@admin.register(ObjectMapping)
class ObjectMappingAdmin(admin.ModelAdmin):
    list_display = ['id', 'model_name', 'display_name']
    search_fields = ['model_name', 'display_name']
