"""
Tests for the conference approval chain.
"""

import datetime

import pytest
from django.core import mail
from django.core.exceptions import PermissionDenied, ValidationError

from apps.activity_log.models import ActivityLog
from apps.conference import services
from apps.conference.models import ConferenceApplication, ConferenceSetting
from apps.core.choices import Module
from apps.notifications.models import Todo

State = ConferenceApplication.State

APPLICATION_DATA = {
    'purpose': 'Paper presentation',
    'content_title': 'Scheduling under uncertainty',
    'event_name': 'ICSE 2026',
    'venue': 'Lisbon',
    'date_from': datetime.date(2026, 11, 2),
    'date_to': datetime.date(2026, 11, 5),
    'organized_by': 'ACM',
    'mode_of_event': 'offline',
    'description': 'Main track paper',
    'reimbursements': [{'key': 'Travel', 'amount': '50000'}],
    'funding_split': [{'source': 'Institute', 'amount': '50000'}],
}


@pytest.fixture
def people(make_user):
    return {
        'applicant': make_user('applicant@uni.edu', 'conference:application:create'),
        'convener': make_user(
            'convener@uni.edu',
            'conference:application:convener',
            'conference:application:get-flow',
            'conference:application:view-all',
        ),
        'member1': make_user('member1@uni.edu', 'conference:application:member'),
        'member2': make_user('member2@uni.edu', 'conference:application:member'),
        'hod': make_user('hod@uni.edu', 'conference:application:hod'),
    }


def _open_todos(user):
    return list(Todo.objects.filter(assigned_to=user, completed=False).values_list('completion_event', flat=True))


@pytest.mark.django_db
class TestFullChain:

    def test_member_convener_hod_approval(self, people):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        assert application.state == State.DRC_MEMBER
        assert _open_todos(people['convener']) == [f'assign members {application.pk}']
        assert mail.outbox[-1].to == ['convener@uni.edu']

        services.set_members(people['convener'], application, ['member1@uni.edu', 'member2@uni.edu'])
        assert _open_todos(people['convener']) == []
        assert _open_todos(people['member1']) == [f'review {application.pk} member']

        services.review_as_member(people['member1'], application, True, 'Fine')
        application.refresh_from_db()
        assert application.state == State.DRC_MEMBER

        services.review_as_member(people['member2'], application, True)
        application.refresh_from_db()
        assert application.state == State.DRC_CONVENER
        assert _open_todos(people['convener']) == [f'review {application.pk} convener']

        services.review_as_convener(people['convener'], application, True)
        assert application.state == State.HOD
        assert _open_todos(people['hod']) == [f'review {application.pk} hod']

        services.review_as_hod(people['hod'], application, True)
        assert application.state == State.COMPLETED
        assert mail.outbox[-1].subject == 'Conference Application Approved'
        assert _open_todos(people['hod']) == []

        actions = list(
            ActivityLog.objects.filter(module=Module.CONFERENCE, object_id=application.pk)
            .order_by('pk').values_list('action', flat=True)
        )
        assert actions[0] == 'Application created'
        assert actions[-1] == 'HoD approved'

    def test_member_cannot_review_twice(self, people):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        services.set_members(people['convener'], application, ['member1@uni.edu', 'member2@uni.edu'])
        services.review_as_member(people['member1'], application, False, 'Weak venue')

        with pytest.raises(ValidationError, match='already reviewed'):
            services.review_as_member(people['member1'], application, True)

    def test_last_member_review_advances_from_stale_copy(self, people):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        services.set_members(people['convener'], application, ['member1@uni.edu', 'member2@uni.edu'])
        first = ConferenceApplication.objects.get(pk=application.pk)
        second = ConferenceApplication.objects.get(pk=application.pk)

        services.review_as_member(people['member1'], first, True)
        services.review_as_member(people['member2'], second, True)

        application.refresh_from_db()
        assert application.state == State.DRC_CONVENER
        assert _open_todos(people['convener']) == [f'review {application.pk} convener']

    def test_member_review_checks_current_state(self, people):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        services.set_members(people['convener'], application, ['member1@uni.edu'])
        ConferenceApplication.objects.filter(pk=application.pk).update(state=State.FACULTY)

        with pytest.raises(ValidationError):
            services.review_as_member(people['member1'], application, True)
        assert application.members.get().review_status is None

    def test_unassigned_member_is_refused(self, people, make_user):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        services.set_members(people['convener'], application, ['member1@uni.edu'])
        outsider = make_user('outsider@uni.edu', 'conference:application:member')

        with pytest.raises(PermissionDenied):
            services.review_as_member(outsider, application, True)

    def test_stage_order_is_enforced(self, people):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        with pytest.raises(ValidationError, match='not ready'):
            services.review_as_hod(people['hod'], application, True)

    def test_applicant_cannot_be_member(self, people, make_user):
        applicant = make_user(
            'both@uni.edu', 'conference:application:create', 'conference:application:member',
        )
        application = services.create_application(applicant, APPLICATION_DATA)
        with pytest.raises(ValidationError):
            services.set_members(people['convener'], application, ['both@uni.edu'])

    def test_reassigning_members_closes_removed_todos(self, people):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        services.set_members(people['convener'], application, ['member1@uni.edu'])
        services.set_members(people['convener'], application, ['member2@uni.edu'])

        assert _open_todos(people['member1']) == []
        assert _open_todos(people['member2']) == [f'review {application.pk} member']


@pytest.mark.django_db
class TestSendBackAndRequests:

    def test_convener_rejection_returns_to_applicant(self, people):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        services.set_members(people['convener'], application, ['member1@uni.edu'])
        services.review_as_member(people['member1'], application, True)
        application.refresh_from_db()

        services.review_as_convener(people['convener'], application, False, 'Budget too high')
        assert application.state == State.FACULTY
        assert not application.members.exists()
        assert _open_todos(people['applicant']) == [f'edit {application.pk}']

        services.edit_application(people['applicant'], application, {'venue': 'Porto'})
        assert application.state == State.DRC_MEMBER
        assert application.venue == 'Porto'
        assert _open_todos(people['applicant']) == []

    def test_edit_only_after_send_back(self, people):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        with pytest.raises(ValidationError):
            services.edit_application(people['applicant'], application, {})

    def test_edit_request_accepted(self, people):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        services.request_action(people['applicant'], application, 'edit')
        with pytest.raises(ValidationError, match='already pending'):
            services.request_action(people['applicant'], application, 'edit')

        services.handle_request(people['convener'], application, 'edit', True)
        assert application.state == State.FACULTY
        assert application.request_edit is False
        assert _open_todos(people['convener']) == []

    def test_delete_request_accepted(self, people):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        services.request_action(people['applicant'], application, 'delete')

        assert services.handle_request(people['convener'], application, 'delete', True) is None
        assert not ConferenceApplication.objects.exists()
        assert mail.outbox[-1].subject == 'Conference Application Deleted'

    def test_request_rejected_clears_flag(self, people):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        services.request_action(people['applicant'], application, 'delete')
        services.handle_request(people['convener'], application, 'delete', False)

        application.refresh_from_db()
        assert application.request_delete is False
        assert application.state == State.DRC_MEMBER


@pytest.mark.django_db
class TestDirectFlow:

    def test_direct_flow_skips_members_and_hod(self, people):
        services.set_flow(people['convener'], True)
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        assert application.state == State.DRC_CONVENER

        services.review_as_convener(people['convener'], application, True)
        assert application.state == State.COMPLETED

    def test_enabling_direct_flow_moves_open_applications(self, people):
        at_members = services.create_application(people['applicant'], APPLICATION_DATA)
        services.set_members(people['convener'], at_members, ['member1@uni.edu'])

        services.set_flow(people['convener'], True)
        at_members.refresh_from_db()
        assert at_members.state == State.DRC_CONVENER
        assert not at_members.members.exists()
        assert _open_todos(people['member1']) == []
        assert ConferenceSetting.load().direct_flow is True

    def test_only_convener_changes_flow(self, people):
        with pytest.raises(PermissionDenied):
            services.set_flow(people['hod'], True)


@pytest.mark.django_db
class TestViews:

    def test_create_and_view(self, people, client_for):
        client = client_for(people['applicant'])
        payload = {
            **APPLICATION_DATA,
            'date_from': '2026-11-02',
            'date_to': '2026-11-05',
        }
        response = client.post('/api/conference/applications/', payload | {
            'reimbursements': '[{"key": "Travel", "amount": "50000"}]',
            'funding_split': '[{"source": "Institute", "amount": "50000"}]',
        })
        assert response.status_code == 201
        pk = response.json()['application']['id']

        detail = client.get(f'/api/conference/applications/{pk}/').json()['application']
        assert detail['state'] == State.DRC_MEMBER
        assert detail['status_log'][0]['action'] == 'Application created'

    def test_funding_must_match_reimbursement(self, people, client_for):
        client = client_for(people['applicant'])
        response = client.post('/api/conference/applications/', {
            **APPLICATION_DATA,
            'date_from': '2026-11-02',
            'date_to': '2026-11-05',
            'reimbursements': '[{"key": "Travel", "amount": "50000"}]',
            'funding_split': '[{"source": "Institute", "amount": "100"}]',
        })
        assert response.status_code == 400
        assert 'funding_split' in response.json()['errors']

    def test_pending_queue_includes_flow_for_convener(self, people, client_for):
        services.create_application(people['applicant'], APPLICATION_DATA)
        body = client_for(people['convener']).get('/api/conference/applications/pending/').json()
        assert body['is_direct'] is False
        assert len(body['applications']) == 1

    def test_pending_queue_forbidden_for_applicant(self, people, client_for):
        response = client_for(people['applicant']).get('/api/conference/applications/pending/')
        assert response.status_code == 403

    def test_member_review_view(self, people, client_for):
        application = services.create_application(people['applicant'], APPLICATION_DATA)
        services.set_members(people['convener'], application, ['member1@uni.edu'])

        client = client_for(people['member1'])
        response = client.post_json(
            f'/api/conference/applications/{application.pk}/review/member/', {'status': False},
        )
        assert response.status_code == 400

        response = client.post_json(
            f'/api/conference/applications/{application.pk}/review/member/',
            {'status': False, 'comments': 'Not relevant'},
        )
        assert response.json()['state'] == State.DRC_CONVENER
