"""
Management command to fire a trigger event.
"""
import json

from django.core.management.base import BaseCommand, CommandError

from workflow_engine.exceptions import WorkflowEngineError
from workflow_engine.services.orchestrator import WorkflowOrchestrator


class Command(BaseCommand):
    help = 'Start or resume a workflow from a trigger event'

    def add_arguments(self, parser):
        parser.add_argument(
            'event',
            type=str,
            help='Trigger event code (e.g. create)'
        )
        parser.add_argument(
            'mapping_id',
            type=str,
            help='Business object mapping id'
        )
        parser.add_argument(
            '--data',
            type=str,
            help='JSON object with the business object fields',
            default='{}'
        )
        parser.add_argument(
            '--user',
            type=int,
            help='Acting user id',
            default=None
        )

    def handle(self, *args, **options):
        try:
            payload = json.loads(options['data'])
        except json.JSONDecodeError:
            raise CommandError('Invalid JSON in --data parameter')
        if not isinstance(payload, dict):
            raise CommandError('--data must be a JSON object')

        try:
            instance_id = WorkflowOrchestrator().start_or_resume_trigger(
                options['event'],
                payload,
                options['user'],
                options['mapping_id']
            )
        except WorkflowEngineError as e:
            raise CommandError(str(e))

        if instance_id is None:
            self.stdout.write(self.style.WARNING('No instance started or resumed'))
            return

        self.stdout.write(self.style.SUCCESS(f'Workflow instance {instance_id}'))
