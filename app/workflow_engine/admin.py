"""
Django admin interface for workflow engine.

Engine tables are written by the orchestrator only; the admin is read-mostly,
with a cancel action for stuck instances.
"""
from django.contrib import admin, messages
from django.urls import reverse
from django.utils.html import format_html
from django.utils.safestring import mark_safe

from .models import (
    WorkflowInstance,
    NodeState,
    NodeApproval,
    NodeInput,
    NodeLog,
    Notification,
)

STATUS_COLORS = {
    'pending': 'gray',
    'active': 'blue',
    'waiting': 'orange',
    'completed': 'green',
    'error': 'red',
    'cancelled': 'black',
    'approved': 'green',
    'rejected': 'red',
}


def _badge(status):
    return format_html(
        '<span style="background-color: {}; color: white; padding: 3px 8px; border-radius: 3px;">{}</span>',
        STATUS_COLORS.get(status, 'gray'),
        status.upper()
    )


def _node_state_link(node_state):
    url = reverse('admin:workflow_engine_nodestate_change', args=[node_state.id])
    return format_html('<a href="{}">{}</a>', url, node_state.node_id)


class NodeStateInline(admin.TabularInline):
    model = NodeState
    extra = 0
    can_delete = False
    fields = ['node_id', 'node_type', 'status', 'inputs_received', 'inputs_required', 'completed_at']
    readonly_fields = fields


class NodeApprovalInline(admin.TabularInline):
    model = NodeApproval
    extra = 0
    can_delete = False
    fields = ['user', 'status', 'comment', 'updated_at']
    readonly_fields = fields


@admin.register(WorkflowInstance)
class WorkflowInstanceAdmin(admin.ModelAdmin):
    list_display = [
        'id_short',
        'diagram',
        'start_event',
        'start_object_id',
        'status_badge',
        'progress_bar',
        'started_at',
        'duration_display'
    ]
    list_filter = ['status', 'diagram', 'started_at']
    search_fields = ['id', 'start_object_id', 'start_event']
    readonly_fields = [
        'id',
        'started_at',
        'completed_at',
        'updated_at',
        'duration_display',
        'progress_display'
    ]
    inlines = [NodeStateInline]
    actions = ['cancel_instances']

    fieldsets = [
        ('Instance', {
            'fields': ['id', 'diagram', 'status']
        }),
        ('Start Subject', {
            'fields': ['start_event', 'start_mapping_id', 'start_object_id', 'started_by']
        }),
        ('Context', {
            'fields': ['context'],
            'classes': ['collapse']
        }),
        ('Timestamps', {
            'fields': ['started_at', 'completed_at', 'updated_at', 'duration_display']
        }),
        ('Progress', {
            'fields': ['progress_display']
        })
    ]

    def id_short(self, obj):
        return str(obj.id)[:8]
    id_short.short_description = 'ID'

    def status_badge(self, obj):
        return _badge(obj.status)
    status_badge.short_description = 'Status'

    def progress_bar(self, obj):
        percentage = obj.get_progress()['percentage']
        return format_html(
            '<div style="width: 100px; background-color: #f0f0f0; border-radius: 3px;">'
            '<div style="width: {}%; background-color: #4CAF50; padding: 2px 5px; color: white; text-align: center; border-radius: 3px;">{}</div>'
            '</div>',
            percentage,
            f'{percentage}%'
        )
    progress_bar.short_description = 'Progress'

    def duration_display(self, obj):
        if obj.duration:
            return f'{obj.duration:.2f}s'
        return '-'
    duration_display.short_description = 'Duration'

    def progress_display(self, obj):
        progress = obj.get_progress()
        html = '<table style="width: 100%;">'
        html += f'<tr><td>Total:</td><td><strong>{progress["total"]}</strong></td></tr>'
        html += f'<tr><td>Completed:</td><td style="color: green;">{progress["completed"]}</td></tr>'
        html += f'<tr><td>Active:</td><td style="color: blue;">{progress["active"]}</td></tr>'
        html += f'<tr><td>Waiting:</td><td style="color: orange;">{progress["waiting"]}</td></tr>'
        html += f'<tr><td>Pending:</td><td>{progress["pending"]}</td></tr>'
        html += f'<tr><td>Error:</td><td style="color: red;">{progress["error"]}</td></tr>'
        html += '</table>'
        return mark_safe(html)
    progress_display.short_description = 'Detailed Progress'

    @admin.action(description='Cancel selected open instances')
    def cancel_instances(self, request, queryset):
        from workflow_engine.services.orchestrator import WorkflowOrchestrator

        orchestrator = WorkflowOrchestrator()
        cancelled = sum(
            1 for instance in queryset
            if orchestrator.cancel_instance(instance.pk, reason=f'Cancelled from admin by {request.user}')
        )
        self.message_user(request, f'Cancelled {cancelled} instance(s)', messages.SUCCESS)


@admin.register(NodeState)
class NodeStateAdmin(admin.ModelAdmin):
    list_display = ['node_id', 'node_type', 'instance_short', 'status_badge', 'inputs_display', 'created_at']
    list_filter = ['status', 'node_type', 'created_at']
    search_fields = ['node_id', 'workflow_instance__id']
    readonly_fields = ['id', 'created_at', 'updated_at', 'completed_at']
    inlines = [NodeApprovalInline]

    def instance_short(self, obj):
        return str(obj.workflow_instance_id)[:8]
    instance_short.short_description = 'Instance'

    def status_badge(self, obj):
        return _badge(obj.status)
    status_badge.short_description = 'Status'

    def inputs_display(self, obj):
        if not obj.inputs_required:
            return '-'
        return f'{obj.inputs_received}/{obj.inputs_required}'
    inputs_display.short_description = 'Inputs'


@admin.register(NodeApproval)
class NodeApprovalAdmin(admin.ModelAdmin):
    list_display = ['user', 'node_link', 'status_badge', 'updated_at']
    list_filter = ['status', 'updated_at']
    search_fields = ['user__username', 'node_state__node_id']
    readonly_fields = ['id', 'created_at', 'updated_at']

    def node_link(self, obj):
        return _node_state_link(obj.node_state)
    node_link.short_description = 'Node'

    def status_badge(self, obj):
        return _badge(obj.status)
    status_badge.short_description = 'Status'


@admin.register(NodeInput)
class NodeInputAdmin(admin.ModelAdmin):
    list_display = ['node_link', 'source_node_id', 'evaluation_result', 'created_at']
    search_fields = ['node_state__node_id', 'source_node_id']
    readonly_fields = ['id', 'created_at']

    def node_link(self, obj):
        return _node_state_link(obj.node_state)
    node_link.short_description = 'Node'


@admin.register(NodeLog)
class NodeLogAdmin(admin.ModelAdmin):
    list_display = ['timestamp', 'level_badge', 'node_link', 'message_short']
    list_filter = ['level', 'timestamp']
    search_fields = ['message', 'node_state__node_id']
    readonly_fields = ['id', 'timestamp']

    def node_link(self, obj):
        return _node_state_link(obj.node_state)
    node_link.short_description = 'Node'

    def level_badge(self, obj):
        colors = {
            'DEBUG': 'lightgray',
            'INFO': 'blue',
            'WARNING': 'orange',
            'ERROR': 'red'
        }
        color = colors.get(obj.level, 'gray')
        return format_html(
            '<span style="background-color: {}; color: white; padding: 2px 6px; border-radius: 2px; font-size: 11px;">{}</span>',
            color,
            obj.level
        )
    level_badge.short_description = 'Level'

    def message_short(self, obj):
        return obj.message[:100]
    message_short.short_description = 'Message'


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['title', 'receiver', 'sender', 'is_action', 'is_read', 'created_at']
    list_filter = ['is_action', 'is_read', 'created_at']
    search_fields = ['title', 'receiver__username']
    readonly_fields = ['id', 'created_at']
