from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Diagram',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('owner', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='diagrams', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Diagram',
                'verbose_name_plural': 'Diagrams',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='ObjectMapping',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('model_name', models.CharField(max_length=255)),
                ('display_name', models.CharField(max_length=255)),
            ],
            options={
                'verbose_name': 'Object Mapping',
                'verbose_name_plural': 'Object Mappings',
                'ordering': ['display_name'],
            },
        ),
        migrations.CreateModel(
            name='TriggerEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=100, unique=True)),
                ('name', models.CharField(max_length=255)),
                ('icon', models.CharField(blank=True, default='', max_length=100)),
            ],
            options={
                'verbose_name': 'Trigger Event',
                'verbose_name_plural': 'Trigger Events',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='DiagramNode',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('node_id', models.CharField(db_index=True, max_length=255)),
                ('node_type', models.CharField(db_index=True, max_length=20)),
                ('data', models.JSONField(blank=True, default=dict, help_text='Type-specific configuration (trigger events, condition, send kinds, humans)')),
                ('position_x', models.FloatField(default=0)),
                ('position_y', models.FloatField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('diagram', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='nodes', to='diagrams.diagram')),
            ],
            options={
                'verbose_name': 'Diagram Node',
                'verbose_name_plural': 'Diagram Nodes',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['diagram', 'node_type'], name='idx_node_diagram_type'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('diagram', 'node_id'), name='unique_node_per_diagram'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DiagramConnection',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('edge_id', models.CharField(max_length=255)),
                ('source_node_id', models.CharField(max_length=255)),
                ('target_node_id', models.CharField(max_length=255)),
                ('data', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('diagram', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='connections', to='diagrams.diagram')),
            ],
            options={
                'verbose_name': 'Diagram Connection',
                'verbose_name_plural': 'Diagram Connections',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['diagram', 'source_node_id'], name='idx_connection_source'),
                    models.Index(fields=['diagram', 'target_node_id'], name='idx_connection_target'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('diagram', 'edge_id'), name='unique_edge_per_diagram'),
                ],
            },
        ),
    ]
