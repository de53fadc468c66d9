"""
Management command to approve or reject a human-approval gate.
"""
from django.core.management.base import BaseCommand, CommandError

from workflow_engine.exceptions import WorkflowEngineError
from workflow_engine.services.orchestrator import WorkflowOrchestrator


class Command(BaseCommand):
    help = 'Approve or reject a waiting approval node-state on behalf of a user'

    def add_arguments(self, parser):
        parser.add_argument('node_state_id', type=str, help='UUID of the waiting node-state')
        parser.add_argument('user_id', type=int, help='Approving user id')
        decision = parser.add_mutually_exclusive_group(required=True)
        decision.add_argument('--approve', action='store_true')
        decision.add_argument('--reject', action='store_true')
        parser.add_argument('--comment', type=str, default=None)

    def handle(self, *args, **options):
        try:
            recorded = WorkflowOrchestrator().submit_approval(
                options['node_state_id'],
                options['user_id'],
                options['approve'],
                options['comment']
            )
        except WorkflowEngineError as e:
            raise CommandError(str(e))

        if recorded:
            self.stdout.write(self.style.SUCCESS('Vote recorded'))
        else:
            self.stdout.write(self.style.WARNING('Approval already resolved; vote ignored'))
