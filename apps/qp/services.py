"""
Service layer for qp app.

Services:
- create_qp_requests: open question paper collection for a set of courses
- edit_qp_request: convenor corrections (course, people, deadlines, status)
- assign_qp_reviewer: pick the DCA member who reviews the papers
- upload_qp_documents: IC upload of papers and solutions
- submit_qp_review: reviewer scores and verdict
- send_qp_reminders: nudge everyone who still has to act
- write_reviews_csv: export of submitted reviews
"""

import csv
import logging

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.utils import timezone

from apps.accounts.permissions import QP_MANAGE, QP_REVIEW, require_operation
from apps.accounts.services import resolve_users
from apps.activity_log.models import log_activity
from apps.core.choices import Module
from apps.notifications.services import (
    complete_todo, create_todos, frontend_link, notify_users, send_bulk_emails, send_email,
)
from .models import QpRequest, QpReview

logger = logging.getLogger(__name__)

Status = QpRequest.Status

FACULTY_LINK = '/qpReview/faculty'
REVIEWER_LINK = '/qpReview/dca'


def format_deadline(deadline):
    return timezone.localtime(deadline).strftime('%d %b %Y, %I:%M %p') if deadline else 'no deadline'


def _plural(count, word):
    return f'{count} {word}' if count == 1 else f'{count} {word}s'


def _ask_ic_to_upload(qp, created_by):
    create_todos([{
        'module': Module.QP,
        'title': f'Question Paper Submission: {qp.course_code}',
        'description': (
            f'Upload the question paper(s) and solutions for {qp.course_name} '
            f'(Course Code : {qp.course_code}, {qp.get_request_type_display()})'
        ),
        'assigned_to': qp.ic,
        'created_by': created_by,
        'completion_event': qp.submission_event,
        'link': FACULTY_LINK,
        'deadline': qp.ic_deadline,
    }])


def _upload_email(qp):
    return {
        'to': qp.ic.email,
        'subject': f'Question Paper Submission Required: {qp.course_code}',
        'text': (
            f'Dear {qp.ic.get_full_name()},\n\nPlease upload the question paper(s) and solutions for '
            f'{qp.course_name} ({qp.course_code}, {qp.get_request_type_display()}) '
            f'by {format_deadline(qp.ic_deadline)}.\n\n{frontend_link(FACULTY_LINK)}'
        ),
    }


def _give_review_todo(qp, created_by, send_mail=True):
    reviewer = qp.reviewer
    create_todos([{
        'module': Module.QP,
        'title': 'Question Paper Review',
        'description': f'Review question papers for {qp.course_name} (Course Code : {qp.course_code})',
        'assigned_to': reviewer,
        'created_by': created_by,
        'completion_event': qp.review_event(reviewer),
        'link': REVIEWER_LINK,
        'deadline': qp.review_deadline,
    }])
    notify_users(
        [reviewer],
        Module.QP,
        'Question Paper Review',
        content=f'Question papers for {qp.course_name} (Course Code : {qp.course_code}) are ready for review',
        link=REVIEWER_LINK,
    )
    if send_mail:
        send_email(
            to=reviewer.email,
            subject=f'Question Paper Review Assigned: {qp.course_code}',
            text=(
                f'Dear {reviewer.get_full_name()},\n\nThe question papers for {qp.course_name} '
                f'({qp.course_code}) are ready for your review. Please complete it by '
                f'{format_deadline(qp.review_deadline)}.\n\n{frontend_link(REVIEWER_LINK)}'
            ),
        )


def _close_open_todos(qp):
    complete_todo(Module.QP, qp.submission_event, qp.ic)
    if qp.reviewer is not None:
        complete_todo(Module.QP, qp.review_event(qp.reviewer), qp.reviewer)


def _resolve_reviewer(email, qp):
    reviewer = resolve_users([email], operation=QP_REVIEW)[0]
    if reviewer.pk == qp.ic_id:
        raise ValidationError('The faculty-in-charge cannot review their own question papers.')
    return reviewer


def _check_deadlines(ic_deadline, review_deadline):
    if ic_deadline is not None and ic_deadline <= timezone.now():
        raise ValidationError('Submission deadline must be in the future.')
    if ic_deadline and review_deadline and review_deadline <= ic_deadline:
        raise ValidationError('Review deadline must be after the submission deadline.')


# =============================================================================
# DCA convenor
# =============================================================================

def create_qp_requests(user, courses, ic_deadline=None, review_deadline=None):
    """
    Create QP requests and ask each IC to upload.

    Args:
        user: DCA convenor
        courses: Cleaned QpRequestsForm rows
        ic_deadline: Optional aware datetime for the uploads
        review_deadline: Optional aware datetime for the reviews

    Returns:
        list of created QpRequest instances

    Raises:
        PermissionDenied: Without the manage operation
        ValidationError: If an IC or reviewer is unknown, or a deadline is invalid
    """
    require_operation(user, QP_MANAGE)
    _check_deadlines(ic_deadline, review_deadline)

    ics = {u.email.lower(): u for u in resolve_users([c['ic_email'] for c in courses])}
    reviewer_emails = [c['reviewer_email'] for c in courses if c.get('reviewer_email')]
    reviewers = {
        u.email.lower(): u for u in resolve_users(reviewer_emails, operation=QP_REVIEW)
    } if reviewer_emails else {}

    for course in courses:
        if course.get('reviewer_email') == course['ic_email']:
            raise ValidationError(
                f"{course['course_code']}: the faculty-in-charge cannot review their own question papers."
            )

    with transaction.atomic():
        requests = [
            QpRequest.objects.create(
                course_code=course['course_code'],
                course_name=course['course_name'],
                category=course.get('category', QpRequest.Category.FD),
                request_type=course.get('request_type', QpRequest.RequestType.BOTH),
                ic=ics[course['ic_email']],
                reviewer=reviewers.get(course.get('reviewer_email')),
                ic_deadline=ic_deadline,
                review_deadline=review_deadline,
                created_by=user,
            )
            for course in courses
        ]

        for qp in requests:
            _ask_ic_to_upload(qp, user)
        send_bulk_emails([_upload_email(qp) for qp in requests])
        for qp in requests:
            log_activity(Module.QP, qp.pk, user, 'QP requested', qp.ic.email)

    logger.info(f'{user.email} created {len(requests)} QP request(s)')
    return requests


def assign_qp_reviewer(user, qp, reviewer_email, notify=True):
    """
    Assign (or replace) the reviewer of a QP request.

    When the papers are already uploaded the new reviewer gets a to-do
    straight away; notify=False skips the email but not the to-do.

    Raises:
        PermissionDenied: Without the manage operation
        ValidationError: If the reviewer cannot review question papers
    """
    require_operation(user, QP_MANAGE)
    reviewer = _resolve_reviewer(reviewer_email, qp)

    with transaction.atomic():
        previous = qp.reviewer
        changed = previous is None or previous.pk != reviewer.pk
        if previous is not None and changed:
            complete_todo(Module.QP, qp.review_event(previous), previous)

        qp.reviewer = reviewer
        qp.save(update_fields=['reviewer', 'updated_at'])

        if qp.status == Status.REVIEW_PENDING and changed:
            _give_review_todo(qp, user, send_mail=notify)

        log_activity(Module.QP, qp.pk, user, 'Reviewer assigned', reviewer.email)

    return qp


def edit_qp_request(user, qp, changes):
    """
    Apply convenor corrections to a QP request.

    Args:
        changes: QpEditForm.changes(); any of course_code, course_name,
                 category, request_type, ic_email, reviewer_email,
                 ic_deadline, review_deadline, status

    Setting status back to notsubmitted reopens the request: open to-dos
    are closed and the IC is asked to upload again.

    Raises:
        PermissionDenied: Without the manage operation
        ValidationError: If an email is unknown or the deadlines are invalid
    """
    require_operation(user, QP_MANAGE)
    if not changes:
        raise ValidationError('Nothing to update.')

    ic_deadline = changes.get('ic_deadline', qp.ic_deadline)
    review_deadline = changes.get('review_deadline', qp.review_deadline)
    if 'ic_deadline' in changes:
        _check_deadlines(ic_deadline, review_deadline)
    elif ic_deadline and review_deadline and review_deadline <= ic_deadline:
        raise ValidationError('Review deadline must be after the submission deadline.')

    new_ic = None
    if 'ic_email' in changes and changes['ic_email'].lower() != qp.ic.email.lower():
        new_ic = resolve_users([changes['ic_email']])[0]

    with transaction.atomic():
        updated = []
        for field in ('course_code', 'course_name', 'category', 'request_type', 'ic_deadline', 'review_deadline'):
            if field in changes and changes[field] != getattr(qp, field):
                setattr(qp, field, changes[field])
                updated.append(field)

        if new_ic is not None:
            if qp.reviewer_id == new_ic.pk:
                raise ValidationError('The faculty-in-charge cannot review their own question papers.')
            complete_todo(Module.QP, qp.submission_event, qp.ic)
            qp.ic = new_ic
            updated.append('ic')
            if qp.status == Status.NOT_SUBMITTED:
                _ask_ic_to_upload(qp, user)
                send_email(**_upload_email(qp))

        reopen = changes.get('status') == Status.NOT_SUBMITTED and qp.status != Status.NOT_SUBMITTED
        if 'status' in changes and changes['status'] != qp.status:
            if reopen:
                _close_open_todos(qp)
            qp.status = changes['status']
            updated.append('status')

        if updated:
            qp.save()
        if reopen:
            _ask_ic_to_upload(qp, user)
            send_email(**_upload_email(qp))

        if 'reviewer_email' in changes and (
            qp.reviewer is None or changes['reviewer_email'].lower() != qp.reviewer.email.lower()
        ):
            assign_qp_reviewer(user, qp, changes['reviewer_email'])
            updated.append('reviewer')

        if updated:
            log_activity(Module.QP, qp.pk, user, 'QP request edited', ', '.join(updated))

    return qp


# =============================================================================
# Faculty-in-charge
# =============================================================================

def upload_qp_documents(user, qp, data):
    """
    Upload the papers and solutions and send them for review.

    Args:
        data: Cleaned QpUploadForm data; every file the request type needs
              must be present (already stored files count)

    Raises:
        PermissionDenied: If the user is not the IC
        ValidationError: If the request is not open for upload or a file is missing
    """
    if qp.ic_id != user.pk:
        raise PermissionDenied('Only the faculty-in-charge can upload these question papers.')
    if qp.status != Status.NOT_SUBMITTED:
        raise ValidationError('These question papers are not open for upload.')

    missing = [
        QpRequest._meta.get_field(field).verbose_name
        for field in qp.required_files
        if not data.get(field) and not getattr(qp, field)
    ]
    if missing:
        raise ValidationError(f"Missing documents: {', '.join(missing)}")

    with transaction.atomic():
        for field in qp.required_files:
            if data.get(field):
                setattr(qp, field, data[field])
        qp.status = Status.REVIEW_PENDING
        qp.submitted_on = timezone.now()
        qp.save()

        complete_todo(Module.QP, qp.submission_event, user)
        if qp.reviewer is not None:
            _give_review_todo(qp, user)

        log_activity(Module.QP, qp.pk, user, 'Question papers uploaded')

    return qp


# =============================================================================
# Reviewer
# =============================================================================

def submit_qp_review(user, qp, data):
    """
    Record the reviewer's scores and verdict.

    The verdict becomes the request status; the IC is told either way.

    Returns:
        Created QpReview

    Raises:
        PermissionDenied: If the user is not the assigned reviewer
        ValidationError: If the papers are not awaiting review, a required
                         section is unscored, or this submission was
                         already reviewed
    """
    if qp.reviewer_id != user.pk:
        raise PermissionDenied('You are not the reviewer of these question papers.')
    if qp.status != Status.REVIEW_PENDING:
        raise ValidationError('These question papers are not awaiting review.')

    missing = [s for s in qp.required_sections if s not in data['sections']]
    if missing:
        raise ValidationError(
            f"Missing review sections: {', '.join(QpReview.SECTION_LABELS[s] for s in missing)}"
        )
    if qp.reviews.filter(reviewer=user, created_at__gte=qp.submitted_on).exists():
        raise ValidationError('You have already reviewed this submission.')

    with transaction.atomic():
        review = QpReview.objects.create(
            request=qp,
            reviewer=user,
            sections=data['sections'],
            status=data['status'],
            comments=data.get('comments', ''),
        )
        complete_todo(Module.QP, qp.review_event(user), user)

        qp.status = review.status
        qp.save(update_fields=['status', 'updated_at'])

        label = review.get_status_display()
        notify_users(
            [qp.ic],
            Module.QP,
            f'Question Paper {label}: {qp.course_code}',
            content=review.comments,
            link=FACULTY_LINK,
        )
        send_email(
            to=qp.ic.email,
            subject=f'Question Paper {label}: {qp.course_code}',
            text=(
                f'Dear {qp.ic.get_full_name()},\n\nThe reviewer has {label.lower()} the question papers for '
                f'{qp.course_name} ({qp.course_code}).'
                + (f'\n\nComments:\n{review.comments}' if review.comments else '')
                + f'\n\n{frontend_link(FACULTY_LINK)}'
            ),
        )
        log_activity(Module.QP, qp.pk, user, f'Reviewed: {label}', review.comments or None)

    return review


# =============================================================================
# Reminders
# =============================================================================

def build_reminder_emails(requests):
    """
    Group requests by whoever has to act next.

    ICs are reminded about requests still waiting for an upload, reviewers
    about requests waiting for their review.

    Returns:
        (instructor emails, reviewer emails) as lists of message dicts
    """
    by_ic, by_reviewer = {}, {}
    for qp in requests:
        if qp.status == Status.NOT_SUBMITTED:
            by_ic.setdefault(qp.ic, []).append(qp)
        elif qp.status == Status.REVIEW_PENDING and qp.reviewer is not None:
            by_reviewer.setdefault(qp.reviewer, []).append(qp)

    instructor_emails = [
        {
            'to': ic.email,
            'subject': f"Urgent: Document Submission Required ({_plural(len(pending), 'course')})",
            'text': (
                f'Dear {ic.get_full_name()},\n\nThe question papers for the following courses have not been '
                'uploaded yet:\n'
                + '\n'.join(
                    f'- {qp.course_code} {qp.course_name}, due {format_deadline(qp.ic_deadline)}'
                    for qp in pending
                )
                + f'\n\nPlease upload them here: {frontend_link(FACULTY_LINK)}'
            ),
        }
        for ic, pending in by_ic.items()
    ]
    reviewer_emails = [
        {
            'to': reviewer.email,
            'subject': f"Reminder: Question Paper Review Pending ({_plural(len(pending), 'course')})",
            'text': (
                f'Dear {reviewer.get_full_name()},\n\nThe following question papers are waiting for your '
                'review:\n'
                + '\n'.join(
                    f'- {qp.course_code} {qp.course_name}, due {format_deadline(qp.review_deadline)}'
                    for qp in pending
                )
                + f'\n\nPlease review them here: {frontend_link(REVIEWER_LINK)}'
            ),
        }
        for reviewer, pending in by_reviewer.items()
    ]
    return instructor_emails, reviewer_emails


def send_qp_reminders(user, ids=None):
    """
    Remind ICs and reviewers about outstanding QP requests.

    Args:
        user: DCA convenor
        ids: Optional list of request ids; all open requests otherwise

    Returns:
        dict: {'instructors': n, 'reviewers': m} reminded
    """
    require_operation(user, QP_MANAGE)

    requests = _base_queryset().filter(status__in=[Status.NOT_SUBMITTED, Status.REVIEW_PENDING])
    if ids is not None:
        requests = requests.filter(pk__in=ids)

    instructor_emails, reviewer_emails = build_reminder_emails(requests)
    sent = send_bulk_emails(instructor_emails + reviewer_emails)
    total = len(instructor_emails) + len(reviewer_emails)
    if sent < total:
        logger.error(f'QP reminders: only {sent}/{total} email(s) were sent')

    logger.info(
        f'{user.email} sent QP reminders to {len(instructor_emails)} IC(s) '
        f'and {len(reviewer_emails)} reviewer(s)'
    )
    return {'instructors': len(instructor_emails), 'reviewers': len(reviewer_emails)}


# =============================================================================
# Queries
# =============================================================================

def _base_queryset():
    return QpRequest.objects.select_related('ic', 'reviewer')


def ic_requests(user):
    return _base_queryset().filter(ic=user)


def reviewer_requests(user):
    return _base_queryset().filter(reviewer=user)


def all_requests(user):
    require_operation(user, QP_MANAGE)
    return _base_queryset()


def can_view_request(user, qp):
    return user.pk in (qp.ic_id, qp.reviewer_id) or user.has_operation(QP_MANAGE)


REVIEW_CSV_HEADER = (
    ['course_code', 'course_name', 'category', 'ic', 'reviewer', 'status', 'reviewed_at', 'section']
    + QpReview.CRITERIA
    + ['remarks', 'comments']
)


def write_reviews_csv(requests, out):
    """
    Write one CSV row per reviewed section of the given requests.

    Args:
        requests: QpRequest queryset
        out: Any object with a write() method (an HttpResponse works)
    """
    writer = csv.writer(out)
    writer.writerow(REVIEW_CSV_HEADER)
    reviews = (
        QpReview.objects
        .filter(request__in=requests)
        .select_related('request__ic', 'reviewer')
        .order_by('request__course_code', 'created_at')
    )
    rows = 0
    for review in reviews:
        qp = review.request
        for section in QpReview.SECTIONS:
            scores = review.sections.get(section)
            if scores is None:
                continue
            writer.writerow(
                [
                    qp.course_code,
                    qp.course_name,
                    qp.category,
                    qp.ic.email,
                    review.reviewer.email,
                    review.status,
                    timezone.localtime(review.created_at).isoformat(),
                    section,
                ]
                + ['' if scores.get(c) is None else scores[c] for c in QpReview.CRITERIA]
                + [scores.get('remarks', ''), review.comments]
            )
            rows += 1
    return rows
