"""
Tests for question paper collection, review and reminders.
"""

import csv
import io
from datetime import timedelta

import pytest
from django.core import mail
from django.core.exceptions import PermissionDenied, ValidationError
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone

from apps.activity_log.models import ActivityLog
from apps.core.choices import Module
from apps.notifications.models import Notification, Todo
from apps.qp import services, tasks
from apps.qp.models import QpRequest, QpReview

Status = QpRequest.Status

FULL_SCORES = {
    'language': 8, 'length': 7, 'mix_of_questions': 9, 'cover_learning': 8, 'solution': 10, 'remarks': '',
}


@pytest.fixture
def people(make_user):
    return {
        'convenor': make_user('convenor@uni.edu', 'qp:dca-convenor:*'),
        'reviewer': make_user('reviewer@uni.edu', 'qp:dca:review'),
        'reviewer2': make_user('reviewer2@uni.edu', 'qp:dca:review'),
        'ic': make_user('ic@uni.edu'),
        'ic2': make_user('ic2@uni.edu'),
    }


def _course(code='CS F211', name='Data Structures', ic='ic@uni.edu', **extra):
    return {'course_code': code, 'course_name': name, 'ic_email': ic, **extra}


@pytest.fixture
def qp(people):
    now = timezone.now()
    return services.create_qp_requests(
        people['convenor'],
        [_course(request_type=QpRequest.RequestType.BOTH, reviewer_email='reviewer@uni.edu')],
        now + timedelta(days=7),
        now + timedelta(days=14),
    )[0]


@pytest.fixture
def uploaded(qp, people, pdf_file):
    return services.upload_qp_documents(people['ic'], qp, {
        'mid_sem_file': pdf_file('mid.pdf'),
        'mid_sem_solution': pdf_file('mid-sol.pdf'),
        'compre_file': pdf_file('compre.pdf'),
        'compre_solution': pdf_file('compre-sol.pdf'),
    })


def _open_events(user):
    return list(Todo.objects.filter(assigned_to=user, completed=False).values_list('completion_event', flat=True))


@pytest.mark.django_db
class TestRequests:

    def test_create_requests(self, qp, people):
        assert qp.status == Status.NOT_SUBMITTED
        assert qp.reviewer == people['reviewer']
        assert _open_events(people['ic']) == [f'qp submission {qp.pk} by ic@uni.edu']
        assert _open_events(people['reviewer']) == []
        assert mail.outbox[0].subject == 'Question Paper Submission Required: CS F211'
        assert ActivityLog.objects.get(module=Module.QP, object_id=qp.pk).action == 'QP requested'

    def test_requires_manage_operation(self, people):
        with pytest.raises(PermissionDenied):
            services.create_qp_requests(people['reviewer'], [_course()])

    def test_unknown_ic_creates_nothing(self, people):
        with pytest.raises(ValidationError, match='ghost@uni.edu'):
            services.create_qp_requests(people['convenor'], [_course(), _course(ic='ghost@uni.edu')])
        assert not QpRequest.objects.exists()

    def test_reviewer_needs_review_operation(self, people):
        with pytest.raises(ValidationError):
            services.create_qp_requests(people['convenor'], [_course(reviewer_email='ic2@uni.edu')])

    def test_ic_cannot_review_own_papers(self, people, make_user):
        make_user('both@uni.edu', 'qp:dca:review')
        with pytest.raises(ValidationError, match='cannot review'):
            services.create_qp_requests(
                people['convenor'], [_course(ic='both@uni.edu', reviewer_email='both@uni.edu')],
            )

    def test_review_deadline_after_submission_deadline(self, people):
        now = timezone.now()
        with pytest.raises(ValidationError, match='Review deadline'):
            services.create_qp_requests(
                people['convenor'], [_course()], now + timedelta(days=7), now + timedelta(days=3),
            )

    def test_past_submission_deadline_refused(self, people):
        with pytest.raises(ValidationError, match='future'):
            services.create_qp_requests(people['convenor'], [_course()], timezone.now() - timedelta(hours=1))


@pytest.mark.django_db
class TestEdit:

    def test_ic_change_moves_todo(self, qp, people):
        services.edit_qp_request(people['convenor'], qp, {'ic_email': 'ic2@uni.edu', 'course_name': 'DSA'})

        qp.refresh_from_db()
        assert qp.ic == people['ic2']
        assert qp.course_name == 'DSA'
        assert _open_events(people['ic']) == []
        assert _open_events(people['ic2']) == [f'qp submission {qp.pk} by ic2@uni.edu']
        assert mail.outbox[-1].to == ['ic2@uni.edu']
        log = ActivityLog.objects.filter(module=Module.QP, object_id=qp.pk).latest('pk')
        assert log.action == 'QP request edited'
        assert 'ic' in log.comments

    def test_reopen_sends_back_to_ic(self, uploaded, people):
        services.edit_qp_request(people['convenor'], uploaded, {'status': Status.NOT_SUBMITTED})

        assert uploaded.status == Status.NOT_SUBMITTED
        assert _open_events(people['reviewer']) == []
        assert _open_events(people['ic']) == [f'qp submission {uploaded.pk} by ic@uni.edu']

    def test_reviewer_change_through_edit(self, uploaded, people):
        services.edit_qp_request(people['convenor'], uploaded, {'reviewer_email': 'reviewer2@uni.edu'})

        assert uploaded.reviewer == people['reviewer2']
        assert _open_events(people['reviewer']) == []
        assert _open_events(people['reviewer2']) == [f'qp review {uploaded.pk} by reviewer2@uni.edu']

    def test_nothing_to_update(self, qp, people):
        with pytest.raises(ValidationError, match='Nothing'):
            services.edit_qp_request(people['convenor'], qp, {})

    def test_only_convenor_edits(self, qp, people):
        with pytest.raises(PermissionDenied):
            services.edit_qp_request(people['ic'], qp, {'course_name': 'DSA'})


@pytest.mark.django_db
class TestUpload:

    def test_upload_goes_to_reviewer(self, uploaded, people):
        assert uploaded.status == Status.REVIEW_PENDING
        assert uploaded.submitted_on is not None
        assert _open_events(people['ic']) == []
        assert _open_events(people['reviewer']) == [f'qp review {uploaded.pk} by reviewer@uni.edu']
        assert Notification.objects.filter(user=people['reviewer'], module=Module.QP).exists()
        assert mail.outbox[-1].subject == 'Question Paper Review Assigned: CS F211'

    def test_missing_documents(self, qp, people, pdf_file):
        with pytest.raises(ValidationError, match='compre question paper, compre solution'):
            services.upload_qp_documents(people['ic'], qp, {
                'mid_sem_file': pdf_file(), 'mid_sem_solution': pdf_file(),
            })
        qp.refresh_from_db()
        assert qp.status == Status.NOT_SUBMITTED

    def test_mid_sem_only_needs_mid_sem_files(self, people, pdf_file):
        qp = services.create_qp_requests(
            people['convenor'], [_course(request_type=QpRequest.RequestType.MID_SEM)],
        )[0]
        services.upload_qp_documents(people['ic'], qp, {
            'mid_sem_file': pdf_file(), 'mid_sem_solution': pdf_file(),
        })
        assert qp.status == Status.REVIEW_PENDING
        assert not qp.compre_file

    def test_only_ic_uploads(self, qp, people, pdf_file):
        with pytest.raises(PermissionDenied):
            services.upload_qp_documents(people['ic2'], qp, {'mid_sem_file': pdf_file()})

    def test_no_upload_while_under_review(self, uploaded, people, pdf_file):
        with pytest.raises(ValidationError, match='not open'):
            services.upload_qp_documents(people['ic'], uploaded, {'mid_sem_file': pdf_file()})

    def test_reviewer_assigned_after_upload_gets_todo(self, people, pdf_file):
        qp = services.create_qp_requests(
            people['convenor'], [_course(request_type=QpRequest.RequestType.COMPRE)],
        )[0]
        services.upload_qp_documents(people['ic'], qp, {
            'compre_file': pdf_file(), 'compre_solution': pdf_file(),
        })
        mail.outbox.clear()

        services.assign_qp_reviewer(people['convenor'], qp, 'reviewer@uni.edu', notify=False)
        assert _open_events(people['reviewer']) == [f'qp review {qp.pk} by reviewer@uni.edu']
        assert mail.outbox == []


@pytest.mark.django_db
class TestReview:

    def test_approval(self, uploaded, people):
        review = services.submit_qp_review(people['reviewer'], uploaded, {
            'sections': {'MidSem': FULL_SCORES, 'Compre': FULL_SCORES},
            'status': QpReview.Status.APPROVED,
            'comments': '',
        })

        assert review.sections['MidSem']['solution'] == 10
        assert uploaded.status == Status.APPROVED
        assert _open_events(people['reviewer']) == []
        assert mail.outbox[-1].to == ['ic@uni.edu']
        assert mail.outbox[-1].subject == 'Question Paper Approved: CS F211'

    def test_rejection(self, uploaded, people):
        services.submit_qp_review(people['reviewer'], uploaded, {
            'sections': {'MidSem': FULL_SCORES, 'Compre': FULL_SCORES},
            'status': QpReview.Status.REJECTED,
            'comments': 'Compre is too long',
        })

        assert uploaded.status == Status.REJECTED
        assert 'Compre is too long' in mail.outbox[-1].body

    def test_required_sections(self, uploaded, people):
        with pytest.raises(ValidationError, match='Comprehensive Exam'):
            services.submit_qp_review(people['reviewer'], uploaded, {
                'sections': {'MidSem': FULL_SCORES},
                'status': QpReview.Status.APPROVED,
            })

    def test_only_assigned_reviewer(self, uploaded, people):
        with pytest.raises(PermissionDenied):
            services.submit_qp_review(people['reviewer2'], uploaded, {
                'sections': {'MidSem': FULL_SCORES, 'Compre': FULL_SCORES},
                'status': QpReview.Status.APPROVED,
            })

    def test_not_before_upload(self, qp, people):
        with pytest.raises(ValidationError, match='not awaiting review'):
            services.submit_qp_review(people['reviewer'], qp, {
                'sections': {'MidSem': FULL_SCORES, 'Compre': FULL_SCORES},
                'status': QpReview.Status.APPROVED,
            })


@pytest.mark.django_db
class TestReminders:

    def test_manual_reminders_group_by_recipient(self, uploaded, people):
        services.create_qp_requests(
            people['convenor'],
            [_course('CS F212', 'DBMS', ic='ic2@uni.edu'), _course('CS F213', 'OOP', ic='ic2@uni.edu')],
        )
        mail.outbox.clear()

        counts = services.send_qp_reminders(people['convenor'])

        assert counts == {'instructors': 1, 'reviewers': 1}
        subjects = {m.to[0]: m.subject for m in mail.outbox}
        assert subjects == {
            'ic2@uni.edu': 'Urgent: Document Submission Required (2 courses)',
            'reviewer@uni.edu': 'Reminder: Question Paper Review Pending (1 course)',
        }

    def test_manual_reminders_for_selected_ids(self, qp, uploaded, people):
        other = services.create_qp_requests(people['convenor'], [_course('CS F212', 'DBMS', ic='ic2@uni.edu')])[0]
        mail.outbox.clear()

        assert services.send_qp_reminders(people['convenor'], [other.pk]) == {'instructors': 1, 'reviewers': 0}
        assert mail.outbox[0].to == ['ic2@uni.edu']

    def test_manual_reminders_need_manage(self, people):
        with pytest.raises(PermissionDenied):
            services.send_qp_reminders(people['ic'])

    def test_daily_job_reminds_close_deadlines(self, people, settings):
        settings.QP_REMINDER_DAYS = 2
        now = timezone.now()
        services.create_qp_requests(people['convenor'], [_course()], now + timedelta(days=1))
        services.create_qp_requests(
            people['convenor'], [_course('CS F212', 'DBMS', ic='ic2@uni.edu')], now + timedelta(days=5),
        )
        mail.outbox.clear()

        assert tasks.remind_pending_qp(now=now) == 1
        assert mail.outbox[0].to == ['ic@uni.edu']
        assert 'CS F211' in mail.outbox[0].body

    def test_daily_job_reminds_reviewer(self, uploaded, settings):
        settings.QP_REMINDER_DAYS = 2
        mail.outbox.clear()

        assert tasks.remind_pending_qp(now=uploaded.review_deadline - timedelta(days=1)) == 1
        assert mail.outbox[0].to == ['reviewer@uni.edu']

    def test_daily_job_skips_finished_requests(self, uploaded, people):
        services.submit_qp_review(people['reviewer'], uploaded, {
            'sections': {'MidSem': FULL_SCORES, 'Compre': FULL_SCORES},
            'status': QpReview.Status.APPROVED,
        })
        mail.outbox.clear()

        assert tasks.remind_pending_qp(now=uploaded.review_deadline - timedelta(days=1)) == 0
        assert mail.outbox == []


@pytest.mark.django_db
class TestExport:

    def test_one_row_per_reviewed_section(self, uploaded, people):
        services.submit_qp_review(people['reviewer'], uploaded, {
            'sections': {'MidSem': FULL_SCORES, 'Compre': {'language': 5, 'remarks': 'Typos'}},
            'status': QpReview.Status.REJECTED,
            'comments': 'Fix typos',
        })
        out = io.StringIO()

        assert services.write_reviews_csv(QpRequest.objects.all(), out) == 2
        rows = list(csv.DictReader(io.StringIO(out.getvalue())))
        assert [r['section'] for r in rows] == ['MidSem', 'Compre']
        assert rows[1]['language'] == '5'
        assert rows[1]['solution'] == ''
        assert rows[1]['remarks'] == 'Typos'
        assert rows[0]['comments'] == 'Fix typos'


@pytest.mark.django_db
class TestViews:

    def test_full_flow_over_http(self, people, client_for, pdf_file):
        convenor = client_for(people['convenor'])
        response = convenor.post_json('/api/qp/', {
            'courses': [{
                'course_code': 'cs f211', 'course_name': 'Data Structures',
                'ic_email': 'IC@uni.edu', 'request_type': 'mid_sem',
            }],
            'ic_deadline': (timezone.now() + timedelta(days=3)).isoformat(),
            'review_deadline': (timezone.now() + timedelta(days=6)).isoformat(),
        })
        assert response.status_code == 201
        pk = response.json()['requests'][0]['id']
        assert response.json()['requests'][0]['course_code'] == 'CS F211'

        response = convenor.post_json(f'/api/qp/{pk}/reviewer/', {'reviewer': 'reviewer@uni.edu'})
        assert response.status_code == 200

        ic = client_for(people['ic'])
        response = ic.post(f'/api/qp/{pk}/upload/', {'mid_sem_file': pdf_file()})
        assert response.status_code == 400
        response = ic.post(f'/api/qp/{pk}/upload/', {'mid_sem_file': pdf_file(), 'mid_sem_solution': pdf_file()})
        assert response.status_code == 200
        assert response.json()['request']['status'] == Status.REVIEW_PENDING

        reviewer = client_for(people['reviewer'])
        assert [r['id'] for r in reviewer.get('/api/qp/dca/').json()['requests']] == [pk]
        response = reviewer.post_json(f'/api/qp/{pk}/review/', {
            'sections': {'MidSem': {'language': 11}}, 'status': 'approved',
        })
        assert response.status_code == 400
        response = reviewer.post_json(f'/api/qp/{pk}/review/', {
            'sections': {'MidSem': FULL_SCORES}, 'status': 'approved',
        })
        assert response.json()['request_status'] == Status.APPROVED

        detail = ic.get(f'/api/qp/{pk}/').json()['request']
        assert detail['reviews'][0]['sections']['MidSem']['language'] == 8
        assert [r['id'] for r in ic.get('/api/qp/faculty/').json()['requests']] == [pk]

        listing = convenor.get('/api/qp/', {'status': Status.APPROVED}).json()
        assert listing['total'] == 1

        export = convenor.get('/api/qp/reviews/export/')
        assert export['Content-Type'] == 'text/csv'
        assert 'attachment' in export['Content-Disposition']
        assert 'CS F211' in export.content.decode()

    def test_rejection_needs_comments(self, uploaded, people, client_for):
        response = client_for(people['reviewer']).post_json(f'/api/qp/{uploaded.pk}/review/', {
            'sections': {'MidSem': FULL_SCORES, 'Compre': FULL_SCORES}, 'status': 'rejected',
        })
        assert response.status_code == 400
        assert 'comments' in response.json()['errors']

    def test_edit_and_reminders_over_http(self, qp, people, client_for):
        convenor = client_for(people['convenor'])
        response = convenor.post_json(f'/api/qp/{qp.pk}/edit/', {'course_name': 'DSA', 'category': 'HD'})
        assert response.json()['request']['category'] == 'HD'

        response = convenor.post_json('/api/qp/reminders/', {'ids': [qp.pk]})
        assert response.json()['instructors'] == 1

    def test_non_pdf_rejected(self, qp, people, client_for):
        response = client_for(people['ic']).post(
            f'/api/qp/{qp.pk}/upload/', {'mid_sem_file': SimpleUploadedFile('paper.docx', b'data')},
        )
        assert response.status_code == 400

    def test_staff_views_need_manage(self, qp, people, client_for):
        ic = client_for(people['ic'])
        assert ic.get('/api/qp/').status_code == 403
        assert ic.get('/api/qp/reviews/export/').status_code == 403
        assert client_for(people['ic2']).get(f'/api/qp/{qp.pk}/').status_code == 403
