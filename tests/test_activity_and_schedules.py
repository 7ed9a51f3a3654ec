"""
Tests for the activity log and Django-Q2 schedule helpers.
"""

from datetime import timedelta

import pytest
from django.core.management import call_command
from django.utils import timezone
from django_q.models import Schedule

from apps.activity_log.models import get_activity, log_activity, serialize_activity
from apps.core.choices import Module
from apps.notifications.tasks import cancel_scheduled, schedule_once


@pytest.mark.django_db
class TestActivityLog:

    def test_history_is_oldest_first(self, make_user):
        user = make_user('actor@uni.edu')
        log_activity(Module.PHD, 7, user, 'Proposal submitted')
        log_activity(Module.PHD, 7, None, 'Accepted by DAC', 'All approved')
        log_activity(Module.PHD, 8, user, 'Other proposal')

        history = serialize_activity(get_activity(Module.PHD, 7))
        assert [h['action'] for h in history] == ['Proposal submitted', 'Accepted by DAC']
        assert history[0]['user'] == 'actor@uni.edu'
        assert history[1]['user'] is None

    def test_view_requires_operation(self, make_user, client_for):
        assert client_for(make_user()).get('/api/activity/').status_code == 403

    def test_view_filters_by_module(self, make_user, client_for):
        auditor = make_user('auditor@uni.edu', 'activity:view')
        log_activity(Module.MEETING, 1, auditor, 'Meeting created')
        log_activity(Module.HANDOUT, 1, auditor, 'Handout requested')

        body = client_for(auditor).get('/api/activity/', {'module': Module.MEETING}).json()
        assert [a['action'] for a in body['activities']] == ['Meeting created']


@pytest.mark.django_db
class TestSchedules:

    def test_schedule_once_replaces_by_name(self):
        run_at = timezone.now() + timedelta(hours=1)
        schedule_once('apps.meetings.tasks.complete_meeting', run_at, args=(1,), name='meeting-1-completion-1')
        schedule_once('apps.meetings.tasks.complete_meeting', run_at + timedelta(hours=1), args=(1,), name='meeting-1-completion-1')

        schedule = Schedule.objects.get(name='meeting-1-completion-1')
        assert schedule.schedule_type == Schedule.ONCE
        assert schedule.args == '(1,)'
        assert schedule.next_run == run_at + timedelta(hours=1)

    def test_past_run_time_is_skipped(self):
        assert schedule_once('apps.meetings.tasks.complete_meeting', timezone.now() - timedelta(minutes=1)) is None
        assert not Schedule.objects.exists()

    def test_cancel_by_prefix(self):
        run_at = timezone.now() + timedelta(hours=1)
        for name in ('meeting-1-deadline', 'meeting-1-reminder-3', 'meeting-12-deadline'):
            schedule_once('apps.meetings.tasks.handle_meeting_deadline', run_at, args=(1,), name=name)

        assert cancel_scheduled('meeting-1-') == 2
        assert list(Schedule.objects.values_list('name', flat=True)) == ['meeting-12-deadline']

    def test_setup_schedules_is_idempotent(self):
        call_command('setup_schedules')
        call_command('setup_schedules')

        crons = dict(Schedule.objects.filter(schedule_type=Schedule.CRON).values_list('func', 'cron'))
        assert crons == {
            'apps.phd.tasks.run_hourly_reminder_checks': '0 * * * *',
            'apps.handouts.tasks.remind_pending_handouts': '0 9 * * *',
            'apps.qp.tasks.remind_pending_qp': '30 9 * * *',
        }
