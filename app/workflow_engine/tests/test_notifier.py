"""
Tests for notification delivery and the user directory.
"""
from unittest import mock

from django.contrib.auth.models import Group
from django.core import mail
from django.test import TestCase

from diagrams.models import ObjectMapping, TriggerEvent
from workflow_engine.models import Notification
from workflow_engine.services.directory import DjangoDirectory
from workflow_engine.services.notifier import Notifier, normalize_kind
from workflow_engine.tests.helpers import DiagramBuilder, make_user


class NotifierTestCase(TestCase):

    def setUp(self):
        self.sender = make_user('sender')
        self.alice = make_user('alice')
        self.nomail = make_user('nomail', email='')
        self.directory = DjangoDirectory()
        self.recipients = self.directory.resolve_users_by_id([self.alice.pk, self.nomail.pk])
        self.payload = {'title': 'Order approved', 'body': 'Order 42 was approved'}
        self.notifier = Notifier()

    def notify(self, kind, needs_action=False):
        return self.notifier.notify(
            kind,
            self.sender.pk,
            'Sender',
            needs_action,
            self.payload,
            [r.id for r in self.recipients],
            self.recipients
        )

    def test_aliases(self):
        self.assertEqual(normalize_kind('Notification'), 'inapp')
        self.assertEqual(normalize_kind(' mail '), 'email')
        self.assertEqual(normalize_kind('sms'), 'sms')

    def test_inapp(self):
        self.assertEqual(self.notify('inapp', needs_action=True), 2)

        notifications = Notification.objects.all()
        self.assertEqual(notifications.count(), 2)
        for notification in notifications:
            self.assertEqual(notification.title, 'Order approved')
            self.assertEqual(notification.sender, self.sender)
            self.assertTrue(notification.is_action)
            self.assertFalse(notification.is_read)
            self.assertEqual(notification.details['body'], 'Order 42 was approved')
            self.assertEqual(notification.details['senderName'], 'Sender')

    def test_email_is_queued_on_commit(self):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            self.assertEqual(self.notify('email'), 1)

        self.assertEqual(len(callbacks), 1)
        self.assertEqual(len(mail.outbox), 0)

        callbacks[0]()

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['alice@example.com'])
        self.assertIn('-- Sender', mail.outbox[0].body)

    def test_email_without_addresses(self):
        self.recipients = self.directory.resolve_users_by_id([self.nomail.pk])

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            self.assertEqual(self.notify('mail'), 0)

        self.assertEqual(callbacks, [])
        self.assertEqual(len(mail.outbox), 0)

    def test_unsupported_kind(self):
        self.assertEqual(self.notify('pager'), 0)
        self.assertFalse(Notification.objects.exists())

    @mock.patch('workflow_engine.tasks.send_email_notification_task.delay', side_effect=ConnectionError('broker down'))
    def test_queue_failure_is_logged(self, delay):
        with self.assertLogs('workflow_engine.services.notifier', level='ERROR'):
            with self.captureOnCommitCallbacks(execute=True):
                self.notify('email')

        delay.assert_called_once()


class DirectoryTestCase(TestCase):

    def setUp(self):
        self.directory = DjangoDirectory()
        self.alice = make_user('alice', first_name='Alice', last_name='Smith')
        self.bob = make_user('bob')
        self.carol = make_user('carol', is_active=False)
        self.staff = Group.objects.create(name='Staff')
        self.bob.groups.add(self.staff)
        self.carol.groups.add(self.staff)

    def test_users_by_id(self):
        users = self.directory.resolve_users_by_id([self.bob.pk, str(self.alice.pk), 'junk', self.carol.pk])

        self.assertEqual([u.id for u in users], [self.alice.pk, self.bob.pk])
        self.assertEqual(users[0].display_name, 'Alice Smith')
        self.assertEqual(users[1].display_name, 'bob')

    def test_users_by_role(self):
        users = self.directory.resolve_users_by_role([self.staff.pk])
        self.assertEqual([u.id for u in users], [self.bob.pk])

    def test_human_config(self):
        personal = {'humanType': 'personal', 'humanIds': [self.alice.pk], 'humanRoleIds': [self.staff.pk]}
        role = {'humanType': 'role', 'humanIds': [self.alice.pk], 'humanRoleIds': [self.staff.pk]}
        both = {'humanIds': [self.alice.pk], 'humanRoleIds': [self.staff.pk]}

        self.assertEqual([u.id for u in self.directory.users_for_human_config(personal)], [self.alice.pk])
        self.assertEqual([u.id for u in self.directory.users_for_human_config(role)], [self.bob.pk])
        self.assertEqual([u.id for u in self.directory.users_for_human_config(both)], [self.alice.pk, self.bob.pk])
        self.assertEqual(self.directory.users_for_human_config(None), [])

    def test_human_nodes_are_deduplicated(self):
        graph = DiagramBuilder()
        graph.node('h1', 'human', humanIds=[self.alice.pk, self.bob.pk])
        graph.node('h2', 'human', humanType='role', humanRoleIds=[self.staff.pk])

        users = self.directory.users_for_human_nodes([graph.get('h1'), graph.get('h2')])

        self.assertEqual([u.id for u in users], [self.alice.pk, self.bob.pk])

    def test_display_names(self):
        self.assertEqual(self.directory.resolve_display_name(None), 'System')
        self.assertEqual(self.directory.resolve_display_name(self.alice.pk), 'Alice Smith')
        self.assertEqual(self.directory.resolve_display_name(9999), '9999')

    def test_labels(self):
        TriggerEvent.objects.create(code='create', name='Created')
        mapping = ObjectMapping.objects.create(model_name='crm.Customer', display_name='Customer')

        self.assertEqual(self.directory.event_label('create'), 'Created')
        self.assertEqual(self.directory.event_label('archive'), 'archive')
        self.assertEqual(self.directory.event_label(None), '')
        self.assertEqual(self.directory.mapping_label(mapping.pk), 'Customer')
        self.assertEqual(self.directory.mapping_label(str(mapping.pk)), 'Customer')
        self.assertEqual(self.directory.mapping_label('crm'), 'crm')
