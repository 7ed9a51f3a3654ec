"""
Tests for the PhD proposal workflow, seminar booking and deadline reminders.
"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from django.core import mail
from django.core.exceptions import PermissionDenied, ValidationError
from django.utils import timezone

from apps.core.exceptions import ConflictError
from apps.notifications.models import Todo
from apps.phd import services, tasks
from apps.phd.models import (
    DAC_REVERT_FLAG, PhdStudent, Proposal, ProposalSemester, SeminarSlot,
)

Status = Proposal.Status
IST = ZoneInfo('Asia/Kolkata')


@pytest.fixture
def semester(db):
    now = timezone.now()
    return ProposalSemester.objects.create(
        name='Monsoon 2026',
        student_submission_date=now + timedelta(days=10),
        faculty_review_date=now + timedelta(days=20),
        drc_review_date=now + timedelta(days=30),
        dac_review_date=now + timedelta(days=40),
    )


@pytest.fixture
def people(make_user):
    supervisor = make_user('supervisor@uni.edu')
    student = make_user('scholar@uni.edu', user_type='phd')
    PhdStudent.objects.create(user=student, supervisor=supervisor)
    return {
        'student': student,
        'supervisor': supervisor,
        'drc': make_user('drc@uni.edu', 'phd:drc:proposal'),
        'dac1': make_user('dac1@uni.edu'),
        'dac2': make_user('dac2@uni.edu'),
        'cosup': make_user('cosup@uni.edu'),
    }


@pytest.fixture
def submit(people, semester, pdf_file):
    def factory(**overrides):
        data = {
            'semester': semester,
            'title': 'Learning schedulers',
            'declaration': True,
            'has_outside_co_supervisor': False,
            'internal_co_supervisors': [],
            'external_co_supervisors': [],
            'appendix': pdf_file('appendix.pdf'),
            'summary': pdf_file('summary.pdf'),
            'outline': pdf_file('outline.pdf'),
        }
        data.update(overrides)
        return services.submit_proposal(people['student'], data)
    return factory


DAC = [{'email': 'dac1@uni.edu', 'name': 'Dac One'}, {'email': 'dac2@uni.edu', 'name': 'Dac Two'}]


def _open_events(user):
    return list(Todo.objects.filter(assigned_to=user, completed=False).values_list('completion_event', flat=True))


def _to_dac_review(people, proposal):
    services.supervisor_review(people['supervisor'], proposal, 'accept', dac_members=DAC)
    services.drc_review(people['drc'], proposal, 'accept', selected_dac_members=['dac1@uni.edu', 'dac2@uni.edu'])
    return proposal


@pytest.mark.django_db
class TestSubmission:

    def test_submit_goes_to_supervisor(self, submit, people):
        proposal = submit()
        assert proposal.status == Status.SUPERVISOR_REVIEW
        assert proposal.supervisor == people['supervisor']
        assert _open_events(people['supervisor']) == [f'proposal:supervisor-review:{proposal.pk}']
        assert mail.outbox[-1].subject == f"PhD Proposal Submitted for Review by {people['student'].get_full_name()}"

    def test_missing_documents(self, submit):
        with pytest.raises(ValidationError, match='Missing required'):
            submit(outline=None)

    def test_part_time_needs_place_of_research(self, submit, people):
        profile = people['student'].phd_profile
        profile.phd_type = PhdStudent.PhdType.PART_TIME
        profile.save()
        with pytest.raises(ValidationError, match='Place of Research'):
            submit()

    def test_deadline_passed(self, submit, semester):
        semester.student_submission_date = timezone.now() - timedelta(minutes=1)
        semester.save()
        with pytest.raises(PermissionDenied):
            submit()

    def test_one_active_proposal(self, submit):
        submit()
        with pytest.raises(ValidationError, match='active proposal'):
            submit()

    def test_student_without_record(self, make_user, semester):
        with pytest.raises(ValidationError, match='record not found'):
            services.submit_proposal(make_user(), {'semester': semester, 'title': 'x'})


@pytest.mark.django_db
class TestReviewChain:

    def test_full_approval_to_seminar(self, submit, people, pdf_file):
        proposal = submit()

        services.supervisor_review(people['supervisor'], proposal, 'accept', 'Good', DAC)
        assert proposal.status == Status.DRC_REVIEW
        assert _open_events(people['drc']) == [f'proposal:drc-review:{proposal.pk}']

        services.drc_review(people['drc'], proposal, 'accept', selected_dac_members=['dac1@uni.edu', 'dac2@uni.edu'])
        assert proposal.status == Status.DAC_REVIEW
        assert _open_events(people['dac1']) == [f'proposal:dac-review:{proposal.pk}']

        services.dac_submit_review(people['dac1'], proposal, True, 'Sound plan', {'novelty': 4})
        proposal.refresh_from_db()
        assert proposal.status == Status.DAC_REVIEW

        with pytest.raises(ValidationError, match='already reviewed'):
            services.dac_submit_review(people['dac1'], proposal, True, 'Again')

        services.dac_submit_review(people['dac2'], proposal, True, 'Agreed', feedback_file=pdf_file('fb.pdf'))
        proposal.refresh_from_db()
        assert proposal.status == Status.DAC_ACCEPTED
        event = f'proposal:set-seminar-details:{proposal.pk}'
        assert _open_events(people['drc']) == [event]
        assert _open_events(people['supervisor']) == [event]
        links = dict(Todo.objects.filter(completion_event=event).values_list('assigned_to__email', 'link'))
        assert links[people['drc'].email] == f'/phd/drc-convenor/proposal-management/{proposal.pk}'
        assert links[people['supervisor'].email] == f'/phd/supervisor/proposal/{proposal.pk}'

    def test_drc_keeps_only_selected_members(self, submit, people):
        proposal = submit()
        services.supervisor_review(people['supervisor'], proposal, 'accept', dac_members=DAC)
        services.drc_review(people['drc'], proposal, 'accept', selected_dac_members=['dac2@uni.edu'])
        assert proposal.dac_emails() == ['dac2@uni.edu']

        services.dac_submit_review(people['dac2'], proposal, True, 'Fine')
        proposal.refresh_from_db()
        assert proposal.status == Status.DAC_ACCEPTED

    def test_supervisor_needs_two_dac_members(self, submit, people):
        proposal = submit()
        with pytest.raises(ValidationError, match='at least two'):
            services.supervisor_review(people['supervisor'], proposal, 'accept', dac_members=DAC[:1])
        assert Proposal.objects.get(pk=proposal.pk).status == Status.SUPERVISOR_REVIEW

    def test_only_supervisor_reviews(self, submit, people):
        proposal = submit()
        with pytest.raises(PermissionDenied):
            services.supervisor_review(people['drc'], proposal, 'accept', dac_members=DAC)

    def test_supervisor_revert_and_resubmit(self, submit, people, pdf_file):
        proposal = submit()
        services.supervisor_review(people['supervisor'], proposal, 'revert', 'Tighten the scope')
        assert proposal.status == Status.SUPERVISOR_REVERT
        assert _open_events(people['student']) == [f'proposal:student-resubmit:{proposal.pk}']

        original_outline = proposal.outline.name
        services.resubmit_proposal(people['student'], proposal, {
            'title': 'Learning schedulers, narrowed',
            'summary': pdf_file('summary-v2.pdf'),
        })
        proposal.refresh_from_db()
        assert proposal.status == Status.SUPERVISOR_REVIEW
        assert proposal.comments == ''
        assert proposal.outline.name == original_outline
        assert 'summary-v2' in proposal.summary.name
        assert _open_events(people['student']) == []

    def test_resubmit_refused_while_under_review(self, submit, people):
        proposal = submit()
        with pytest.raises(ValidationError):
            services.resubmit_proposal(people['student'], proposal, {'title': 'x'})

    def test_co_supervisor_stage(self, submit, people):
        proposal = submit(
            internal_co_supervisors=['cosup@uni.edu'],
            external_co_supervisors=[{'email': 'ext@other.edu', 'name': 'External'}],
        )
        services.supervisor_review(people['supervisor'], proposal, 'accept', dac_members=DAC)
        assert proposal.status == Status.COSUPERVISOR_REVIEW
        assert _open_events(people['cosup']) == [f'proposal:cosupervisor-review:{proposal.pk}']
        assert any(m.to == ['ext@other.edu'] for m in mail.outbox)

        services.co_supervisor_approve(people['cosup'], proposal)
        assert proposal.status == Status.COSUPERVISOR_REVIEW

    def test_last_co_supervisor_approval_moves_to_drc(self, submit, people):
        proposal = submit(internal_co_supervisors=['cosup@uni.edu'])
        services.supervisor_review(people['supervisor'], proposal, 'accept', dac_members=DAC)

        with pytest.raises(PermissionDenied):
            services.co_supervisor_approve(people['dac1'], proposal)

        services.co_supervisor_approve(people['cosup'], proposal)
        assert proposal.status == Status.DRC_REVIEW

    def test_dac_revert_round_skips_drc(self, submit, people):
        proposal = _to_dac_review(people, submit())
        services.dac_submit_review(people['dac1'], proposal, True, 'Fine')
        services.dac_submit_review(people['dac2'], proposal, False, 'Add baselines')
        proposal.refresh_from_db()
        assert proposal.status == Status.DAC_REVERT
        assert proposal.comments == DAC_REVERT_FLAG

        services.resubmit_proposal(people['student'], proposal, {'title': proposal.title})
        assert proposal.comments == DAC_REVERT_FLAG
        assert not proposal.dac_reviews.exists()

        services.supervisor_review(people['supervisor'], proposal, 'accept', dac_members=DAC)
        assert proposal.status == Status.DAC_REVIEW

    def test_dac_revert_round_with_new_members_goes_to_drc(self, submit, people):
        proposal = _to_dac_review(people, submit())
        services.dac_submit_review(people['dac1'], proposal, False, 'Rework')
        services.dac_submit_review(people['dac2'], proposal, True, 'Fine')
        proposal.refresh_from_db()
        services.resubmit_proposal(people['student'], proposal, {'title': proposal.title})

        services.supervisor_review(
            people['supervisor'], proposal, 'accept',
            dac_members=DAC[:1] + [{'email': 'new@uni.edu', 'name': 'New'}],
        )
        assert proposal.status == Status.DRC_REVIEW

    def test_drc_reject_and_reenable(self, submit, people):
        proposal = submit()
        services.supervisor_review(people['supervisor'], proposal, 'accept', dac_members=DAC)
        services.drc_review(people['drc'], proposal, 'reject', 'Out of scope')
        assert proposal.status == Status.REJECTED
        assert not proposal.is_active

        services.reenable_proposal(people['drc'], proposal)
        assert proposal.status == Status.DRAFT
        assert _open_events(people['student']) == [f'proposal:student-resubmit:{proposal.pk}']

    def test_drc_requires_operation(self, submit, people):
        proposal = submit()
        services.supervisor_review(people['supervisor'], proposal, 'accept', dac_members=DAC)
        with pytest.raises(PermissionDenied):
            services.drc_review(people['supervisor'], proposal, 'reject', 'no')

    def test_dac_deadline(self, submit, people, semester):
        proposal = _to_dac_review(people, submit())
        semester.dac_review_date = timezone.now() - timedelta(minutes=1)
        semester.save()
        proposal.refresh_from_db()
        with pytest.raises(PermissionDenied):
            services.dac_submit_review(people['dac1'], proposal, True, 'late')


@pytest.mark.django_db
class TestSeminar:

    @pytest.fixture
    def accepted(self, submit, people):
        proposal = _to_dac_review(people, submit())
        services.dac_submit_review(people['dac1'], proposal, True, 'ok')
        services.dac_submit_review(people['dac2'], proposal, True, 'ok')
        proposal.refresh_from_db()
        return proposal

    @pytest.fixture
    def slot(self, people):
        start = datetime(2030, 1, 7, 10, 0, tzinfo=IST)
        return services.create_seminar_slots(people['drc'], [
            {'venue': 'Seminar Hall', 'start_time': start, 'end_time': start + timedelta(hours=1)},
        ])[0]

    def test_duplicate_slots_skipped(self, people, slot):
        created = services.create_seminar_slots(people['drc'], [
            {'venue': slot.venue, 'start_time': slot.start_time, 'end_time': slot.end_time},
        ])
        assert created == []

    def test_book_slot(self, accepted, people, slot):
        services.book_seminar_slot(people['supervisor'], accepted, slot.pk)
        accepted.refresh_from_db()
        assert accepted.status == Status.FINALISING_DOCUMENTS
        assert accepted.seminar_time == '10:00 AM - 11:00 AM'
        assert accepted.seminar_venue == 'Seminar Hall'
        assert _open_events(people['supervisor']) == []

    def test_booked_slot_conflicts(self, accepted, people, slot):
        SeminarSlot.objects.filter(pk=slot.pk).update(booked_by=accepted)
        other = Proposal.objects.create(
            semester=accepted.semester, student=people['dac1'], supervisor=people['supervisor'],
            title='Other', status=Status.DAC_ACCEPTED,
            appendix='a.pdf', summary='s.pdf', outline='o.pdf',
        )
        with pytest.raises(ConflictError):
            services.book_seminar_slot(people['supervisor'], other, slot.pk)

    def test_booking_views(self, accepted, people, slot, client_for):
        client = client_for(people['supervisor'])
        url = f'/api/phd/supervisor/proposals/{accepted.pk}/seminar/'

        assert client.post_json(url, {'slot_id': slot.pk + 1000}).status_code == 404
        assert client.post_json(url, {'slot_id': slot.pk}).status_code == 200

        accepted.refresh_from_db()
        accepted.status = Status.SEMINAR_PENDING
        accepted.save()
        SeminarSlot.objects.filter(pk=slot.pk).update(booked_by=Proposal.objects.create(
            semester=accepted.semester, student=people['dac1'], supervisor=people['supervisor'],
            title='Other', status=Status.DAC_ACCEPTED,
            appendix='a.pdf', summary='s.pdf', outline='o.pdf',
        ))
        assert client.post_json(url, {'slot_id': slot.pk}).status_code == 409

    def test_cancel_and_delete(self, accepted, people, slot):
        services.book_seminar_slot(people['supervisor'], accepted, slot.pk)
        with pytest.raises(ValidationError):
            services.delete_seminar_slots(people['drc'], [slot.pk])

        services.cancel_seminar_booking(people['drc'], accepted)
        accepted.refresh_from_db()
        assert accepted.status == Status.SEMINAR_PENDING
        assert accepted.seminar_time == ''
        assert _open_events(people['supervisor']) == [f'proposal:set-seminar-details:{accepted.pk}']

        assert services.delete_seminar_slots(people['drc'], [slot.pk]) == 1

    def test_available_slots_listing(self, people, slot, client_for):
        slots = client_for(people['supervisor']).get('/api/phd/seminar-slots/', {'available': 'true'}).json()['slots']
        assert [s['id'] for s in slots] == [slot.pk]


@pytest.mark.django_db
class TestViews:

    def test_submit_over_http(self, people, semester, client_for, pdf_file):
        client = client_for(people['student'])
        response = client.post('/api/phd/proposals/', {
            'semester': semester.pk,
            'title': 'Learning schedulers',
            'declaration': 'true',
            'appendix': pdf_file('appendix.pdf'),
            'summary': pdf_file('summary.pdf'),
            'outline': pdf_file('outline.pdf'),
        })
        assert response.status_code == 201
        pk = response.json()['proposal']['id']

        mine = client.get('/api/phd/proposals/mine/').json()['proposals']
        assert [p['id'] for p in mine] == [pk]

    def test_outsider_cannot_view_detail(self, submit, make_user, client_for):
        proposal = submit()
        assert client_for(make_user()).get(f'/api/phd/proposals/{proposal.pk}/').status_code == 403

    def test_drc_list_filters_by_status(self, submit, people, client_for):
        proposal = submit()
        client = client_for(people['drc'])

        body = client.get('/api/phd/drc/proposals/', {'status': Status.SUPERVISOR_REVIEW}).json()
        assert [p['id'] for p in body['proposals']] == [proposal.pk]
        body = client.get('/api/phd/drc/proposals/', {'status': Status.DRC_REVIEW}).json()
        assert body['total'] == 0


@pytest.mark.django_db
class TestReminderJob:

    DEADLINE = datetime(2030, 3, 10, 17, 0, tzinfo=IST)

    @pytest.fixture
    def cycle(self):
        return ProposalSemester.objects.create(
            name='Spring 2030',
            student_submission_date=self.DEADLINE,
            faculty_review_date=self.DEADLINE + timedelta(days=7),
            drc_review_date=self.DEADLINE + timedelta(days=14),
            dac_review_date=self.DEADLINE + timedelta(days=21),
        )

    def _proposal(self, cycle, people, status):
        return Proposal.objects.create(
            semester=cycle, student=people['student'], supervisor=people['supervisor'],
            title='Pending', status=status,
            appendix='a.pdf', summary='s.pdf', outline='o.pdf',
        )

    def test_matching_interval(self):
        start, end = tasks.hour_window(self.DEADLINE - timedelta(days=2, minutes=-20))
        assert tasks.matching_interval(self.DEADLINE, start, end) == 'T-2d'
        assert tasks.matching_interval(self.DEADLINE, start - timedelta(hours=3), end - timedelta(hours=3)) is None

    def test_student_reminder(self, cycle, people):
        proposal = self._proposal(cycle, people, Status.SUPERVISOR_REVERT)

        sent = tasks.run_hourly_reminder_checks(now=self.DEADLINE - timedelta(days=1))
        assert sent == 1
        message = mail.outbox[0]
        assert message.to == ['scholar@uni.edu']
        assert message.subject == 'Reminder: PhD Proposal Action Due Soon (T-1d)'
        assert f'(ID: {proposal.pk})' in message.body

    def test_nothing_outside_intervals(self, cycle, people):
        self._proposal(cycle, people, Status.DRAFT)
        assert tasks.run_hourly_reminder_checks(now=self.DEADLINE - timedelta(days=3)) == 0
        assert mail.outbox == []

    def test_dac_reminder_skips_reviewed_members(self, cycle, people):
        proposal = self._proposal(cycle, people, Status.DAC_REVIEW)
        proposal.dac_members.create(email='dac1@uni.edu', name='Dac One')
        proposal.dac_members.create(email='dac2@uni.edu', name='Dac Two')
        proposal.dac_reviews.create(email='dac1@uni.edu', approved=True, comments='ok')

        sent = tasks.run_hourly_reminder_checks(now=cycle.dac_review_date - timedelta(hours=4))
        assert sent == 1
        assert mail.outbox[0].to == ['dac2@uni.edu']
        assert '(T-4h)' in mail.outbox[0].subject

    def test_drc_reminder_goes_to_every_convener(self, cycle, people, make_user):
        make_user('drc2@uni.edu', 'phd:drc:proposal')
        self._proposal(cycle, people, Status.DRC_REVIEW)

        sent = tasks.run_hourly_reminder_checks(now=cycle.drc_review_date - timedelta(minutes=30))
        assert sent == 2
        assert sorted(m.to[0] for m in mail.outbox) == ['drc2@uni.edu', 'drc@uni.edu']

    def test_drc_lookup_runs_once_when_nobody_holds_it(self, cycle, people, monkeypatch):
        second = ProposalSemester.objects.create(
            name='Spring 2030 (second intake)',
            student_submission_date=cycle.student_submission_date,
            faculty_review_date=cycle.faculty_review_date,
            drc_review_date=cycle.drc_review_date,
            dac_review_date=cycle.dac_review_date,
        )
        self._proposal(cycle, people, Status.DRC_REVIEW)
        self._proposal(second, people, Status.DRC_REVIEW)

        lookups = []

        def no_drc(operation):
            lookups.append(operation)
            return []

        monkeypatch.setattr(tasks, 'users_with_operation', no_drc)
        assert tasks.run_hourly_reminder_checks(now=cycle.drc_review_date - timedelta(hours=2)) == 0
        assert lookups == ['phd:drc:proposal']
