from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('diagrams', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='WorkflowInstance',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('active', 'Active'), ('waiting', 'Waiting'), ('completed', 'Completed'), ('error', 'Error'), ('cancelled', 'Cancelled')], db_index=True, default='active', max_length=20)),
                ('start_event', models.CharField(max_length=100)),
                ('start_mapping_id', models.CharField(max_length=64)),
                ('start_object_id', models.CharField(blank=True, default='', max_length=255)),
                ('context', models.JSONField(blank=True, default=dict, help_text="Accumulated context; per node-state fragments under 'nodes'")),
                ('started_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('diagram', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='instances', to='diagrams.diagram')),
                ('started_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='workflow_instances', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Workflow Instance',
                'verbose_name_plural': 'Workflow Instances',
                'ordering': ['-started_at'],
                'indexes': [
                    models.Index(fields=['diagram', 'status'], name='idx_instance_diagram_status'),
                    models.Index(fields=['status', 'started_at'], name='idx_instance_status_started'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status__in', ['active', 'waiting'])), fields=('diagram', 'start_mapping_id', 'start_object_id', 'started_by'), name='unique_open_instance_per_subject'),
                ],
            },
        ),
        migrations.CreateModel(
            name='NodeState',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('node_id', models.CharField(db_index=True, max_length=255)),
                ('node_type', models.CharField(max_length=20)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('active', 'Active'), ('waiting', 'Waiting'), ('completed', 'Completed'), ('error', 'Error')], db_index=True, default='pending', max_length=20)),
                ('inputs_required', models.IntegerField(default=0)),
                ('inputs_received', models.IntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('source_node_state', models.ForeignKey(blank=True, help_text='Node-state whose fan-out created this one', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='workflow_engine.nodestate')),
                ('workflow_instance', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='node_states', to='workflow_engine.workflowinstance')),
            ],
            options={
                'verbose_name': 'Node State',
                'verbose_name_plural': 'Node States',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['workflow_instance', 'status'], name='idx_nodestate_instance_status'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('workflow_instance', 'node_id'), name='unique_node_state_per_instance'),
                ],
            },
        ),
        migrations.CreateModel(
            name='NodeApproval',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], db_index=True, default='pending', max_length=20)),
                ('comment', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('node_state', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='approvals', to='workflow_engine.nodestate')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='node_approvals', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Node Approval',
                'verbose_name_plural': 'Node Approvals',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['user', 'status'], name='idx_approval_user_status'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('node_state', 'user'), name='unique_approval_per_user'),
                ],
            },
        ),
        migrations.CreateModel(
            name='NodeInput',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('source_node_id', models.CharField(blank=True, default='', max_length=255)),
                ('input_data', models.JSONField(blank=True, default=dict)),
                ('evaluation_result', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('node_state', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='inputs', to='workflow_engine.nodestate')),
            ],
            options={
                'verbose_name': 'Node Input',
                'verbose_name_plural': 'Node Inputs',
                'ordering': ['created_at'],
            },
        ),
        migrations.CreateModel(
            name='NodeLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('level', models.CharField(choices=[('DEBUG', 'Debug'), ('INFO', 'Info'), ('WARNING', 'Warning'), ('ERROR', 'Error')], default='INFO', max_length=10)),
                ('message', models.TextField()),
                ('context', models.JSONField(blank=True, default=dict, help_text='Additional context data for the log entry')),
                ('timestamp', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('node_state', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='logs', to='workflow_engine.nodestate')),
            ],
            options={
                'verbose_name': 'Node Log',
                'verbose_name_plural': 'Node Logs',
                'ordering': ['timestamp'],
                'indexes': [
                    models.Index(fields=['node_state', 'timestamp'], name='idx_nodelog_state_time'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=500)),
                ('details', models.JSONField(blank=True, default=dict)),
                ('is_action', models.BooleanField(default=False, help_text='Whether the receiver is asked to approve or reject')),
                ('is_read', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('node_state', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='notifications', to='workflow_engine.nodestate')),
                ('receiver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
                ('sender', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='sent_notifications', to=settings.AUTH_USER_MODEL)),
                ('workflow_instance', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='notifications', to='workflow_engine.workflowinstance')),
            ],
            options={
                'verbose_name': 'Notification',
                'verbose_name_plural': 'Notifications',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['receiver', 'is_read'], name='idx_notification_unread'),
                ],
            },
        ),
    ]
