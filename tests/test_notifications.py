"""
Tests for to-dos, notifications and email helpers.
"""

import pytest
from django.core import mail

from apps.core.choices import Module
from apps.notifications.models import Notification, Todo
from apps.notifications.services import (
    complete_todo, create_todos, frontend_link, notify_users, send_bulk_emails, send_email,
)


def test_frontend_link(settings):
    settings.FRONTEND_URL = 'http://portal.test/'
    assert frontend_link('/meeting/respond/4') == 'http://portal.test/meeting/respond/4'


@pytest.mark.django_db
class TestTodos:

    def _todo(self, user, event):
        return {
            'module': Module.MEETING,
            'title': 'Respond',
            'assigned_to': user,
            'completion_event': event,
        }

    def test_complete_by_event(self, make_user):
        alice, bob = make_user(), make_user()
        create_todos([self._todo(alice, 'rsvp 1'), self._todo(bob, 'rsvp 1'), self._todo(bob, 'rsvp 2')])

        assert complete_todo(Module.MEETING, 'rsvp 1') == 2
        assert list(Todo.objects.filter(completed=False).values_list('completion_event', flat=True)) == ['rsvp 2']

    def test_complete_limited_to_assignee(self, make_user):
        alice, bob = make_user(), make_user()
        create_todos([self._todo(alice, 'rsvp 1'), self._todo(bob, 'rsvp 1')])

        assert complete_todo(Module.MEETING, 'rsvp 1', bob.email.upper()) == 1
        assert Todo.objects.get(assigned_to=alice).completed is False
        assert Todo.objects.get(assigned_to=bob).completed_at is not None

    def test_module_must_match(self, make_user):
        create_todos([self._todo(make_user(), 'rsvp 1')])
        assert complete_todo(Module.PHD, 'rsvp 1') == 0

    def test_todo_list_view(self, make_user, client_for):
        user = make_user()
        create_todos([self._todo(user, 'rsvp 1')])
        complete_todo(Module.MEETING, 'nothing')

        todos = client_for(user).get('/api/todos/').json()['todos']
        assert [t['title'] for t in todos] == ['Respond']


@pytest.mark.django_db
class TestNotifications:

    def test_notify_and_mark_read(self, make_user, client_for):
        user = make_user()
        notify_users([user], Module.HANDOUT, 'First')
        notify_users([user], Module.HANDOUT, 'Second')
        client = client_for(user)

        assert client.get('/api/notifications/').json()['unread'] == 2

        first = Notification.objects.get(title='First')
        assert client.post_json('/api/notifications/read/', {'ids': [first.pk]}).json()['updated'] == 1
        assert client.get('/api/notifications/', {'unread': 'true'}).json()['notifications'][0]['title'] == 'Second'

        assert client.post_json('/api/notifications/read/').json()['updated'] == 1

    def test_mark_read_rejects_bad_ids(self, make_user, client_for):
        response = client_for(make_user()).post_json('/api/notifications/read/', {'ids': 'all'})
        assert response.status_code == 400


class TestEmail:

    def test_send_email(self):
        assert send_email('a@uni.edu', 'Hello', 'Body', '<p>Body</p>') is True
        assert mail.outbox[0].to == ['a@uni.edu']
        assert mail.outbox[0].alternatives[0][1] == 'text/html'

    def test_send_email_without_recipient(self):
        assert send_email(None, 'Hello', 'Body') is False
        assert mail.outbox == []

    def test_send_email_to_blank_address(self):
        assert send_email('', 'Hello', 'Body') is False
        assert send_email(['', None], 'Hello', 'Body') is False
        assert mail.outbox == []

    def test_send_bulk_emails(self):
        sent = send_bulk_emails([
            {'to': 'a@uni.edu', 'subject': 'One', 'text': '1'},
            {'to': '', 'subject': 'Skipped', 'text': '2'},
            {'to': ['b@uni.edu'], 'subject': 'Two', 'text': '3'},
        ])
        assert sent == 2
        assert [m.subject for m in mail.outbox] == ['One', 'Two']
