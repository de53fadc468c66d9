"""
Management command to check workflow instance status.
"""
import json

from django.core.management.base import BaseCommand, CommandError

from workflow_engine.exceptions import NotFound
from workflow_engine.utils import get_instance_summary


class Command(BaseCommand):
    help = 'Check the status of a workflow instance'

    def add_arguments(self, parser):
        parser.add_argument(
            'instance_id',
            type=str,
            help='UUID of the workflow instance'
        )
        parser.add_argument(
            '--context',
            action='store_true',
            help='Also print the instance context'
        )

    def handle(self, *args, **options):
        try:
            summary = get_instance_summary(options['instance_id'])
        except NotFound as e:
            raise CommandError(str(e))

        self.stdout.write(self.style.SUCCESS(f"\n=== Workflow Instance {summary['id']} ==="))
        self.stdout.write(f"Diagram: {summary['diagramName']}")
        self.stdout.write(f"Status: {summary['status']}")
        self.stdout.write(
            f"Started by: {summary['startEvent']} on mapping {summary['startMappingId']} "
            f"object {summary['startObjectId'] or '-'}"
        )
        self.stdout.write(f"Started: {summary['startedAt']}")

        if summary['completedAt']:
            self.stdout.write(f"Completed: {summary['completedAt']}")
            if summary['duration']:
                self.stdout.write(f"Duration: {summary['duration']:.2f}s")

        progress = summary['progress']
        self.stdout.write('\n=== Progress ===')
        self.stdout.write(f"Total node-states: {progress['total']}")
        self.stdout.write(f"Completed: {progress['completed']} ({progress['percentage']}%)")
        self.stdout.write(f"Active: {progress['active']}")
        self.stdout.write(f"Waiting: {progress['waiting']}")
        self.stdout.write(f"Pending: {progress['pending']}")
        self.stdout.write(f"Error: {progress['error']}")

        self.stdout.write('\n=== Node States ===')
        for state in summary['nodeStates']:
            status_style = {
                'completed': self.style.SUCCESS,
                'active': self.style.WARNING,
                'waiting': self.style.HTTP_INFO,
                'error': self.style.ERROR,
            }.get(state['status'], lambda x: x)

            joins = ''
            if state['inputsRequired']:
                joins = f" ({state['inputsReceived']}/{state['inputsRequired']} inputs)"
            self.stdout.write(f"  {state['nodeId']} [{state['nodeType']}]: {status_style(state['status'])}{joins}")

            for approval in state['approvals']:
                self.stdout.write(f"    user {approval['userId']}: {approval['status']}")

        if options['context']:
            self.stdout.write('\n=== Context ===')
            self.stdout.write(json.dumps(summary['context'], indent=2, default=str))
