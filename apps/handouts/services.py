"""
Service layer for handouts app.

Services:
- create_handout_requests: open handout collection for a set of courses
- assign_reviewer: pick the DCA member who checks a handout
- submit_handout: IC upload
- submit_review: reviewer checklist
- final_decision: DCA convenor outcome
"""

import logging

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.utils import timezone

from apps.accounts.permissions import (
    HANDOUT_ASSIGN_REVIEWER, HANDOUT_FINAL_DECISION, HANDOUT_GET_ALL, HANDOUT_REVIEW,
    require_operation, users_with_operation,
)
from apps.accounts.services import resolve_users
from apps.activity_log.models import log_activity
from apps.core.choices import Module
from apps.notifications.services import (
    complete_todo, create_todos, frontend_link, notify_users, send_bulk_emails, send_email,
)
from .models import HandoutRequest, HandoutReview

logger = logging.getLogger(__name__)

Status = HandoutRequest.Status


def format_deadline(deadline):
    return timezone.localtime(deadline).strftime('%d %b %Y, %I:%M %p') if deadline else 'no deadline'


def _give_review_todo(handout, created_by):
    reviewer = handout.reviewer
    create_todos([{
        'module': Module.HANDOUT,
        'title': 'Course Handout Review',
        'description': f'Review handout for the {handout.course_name} (Course Code : {handout.course_code})',
        'assigned_to': reviewer,
        'created_by': created_by,
        'completion_event': handout.review_event(reviewer),
        'link': '/handout/dca',
    }])
    notify_users(
        [reviewer],
        Module.HANDOUT,
        'Course Handout Review',
        content=f'Handout for the {handout.course_name} (Course Code : {handout.course_code}) has been submitted',
        link='/handout/dca',
    )


def _ask_ic_to_revise(handout, created_by, comments):
    create_todos([{
        'module': Module.HANDOUT,
        'title': f'Revise Course Handout: {handout.course_code}',
        'description': f'Revision requested for {handout.course_name}. Comments: {comments}',
        'assigned_to': handout.ic,
        'created_by': created_by,
        'completion_event': handout.revision_event,
        'link': '/handout/faculty',
        'deadline': handout.deadline,
    }])


# =============================================================================
# DCA convenor
# =============================================================================

def create_handout_requests(user, courses, deadline=None):
    """
    Create handout requests and ask each IC to upload.

    Args:
        user: DCA convenor
        courses: List of {'course_code', 'course_name', 'ic_email'}
        deadline: Optional aware datetime for the submissions

    Returns:
        list of created HandoutRequest instances

    Raises:
        PermissionDenied: Without the assign-reviewer operation
        ValidationError: If an IC is unknown
    """
    require_operation(user, HANDOUT_ASSIGN_REVIEWER)
    if deadline is not None and deadline <= timezone.now():
        raise ValidationError('Deadline must be in the future.')

    ics = {u.email.lower(): u for u in resolve_users([c['ic_email'] for c in courses])}

    with transaction.atomic():
        handouts = [
            HandoutRequest.objects.create(
                course_code=course['course_code'],
                course_name=course['course_name'],
                ic=ics[course['ic_email']],
                deadline=deadline,
                created_by=user,
            )
            for course in courses
        ]

        create_todos([
            {
                'module': Module.HANDOUT,
                'title': 'Course Handout Submission',
                'description': f'Submit the handout for {h.course_name} (Course Code : {h.course_code})',
                'assigned_to': h.ic,
                'created_by': user,
                'completion_event': h.submission_event,
                'link': '/handout/faculty',
                'deadline': deadline,
            }
            for h in handouts
        ])
        send_bulk_emails([
            {
                'to': h.ic.email,
                'subject': f'Course Handout Submission Required: {h.course_code}',
                'text': (
                    f'Dear {h.ic.get_full_name()},\n\nPlease submit the course handout for '
                    f'{h.course_name} ({h.course_code}) by {format_deadline(deadline)}.\n\n'
                    f'{frontend_link("/handout/faculty")}'
                ),
            }
            for h in handouts
        ])
        for h in handouts:
            log_activity(Module.HANDOUT, h.pk, user, 'Handout requested', h.ic.email)

    logger.info(f'{user.email} created {len(handouts)} handout request(s)')
    return handouts


def assign_reviewer(user, handout, reviewer_email):
    """
    Assign (or replace) the reviewer of a handout.

    Raises:
        PermissionDenied: Without the assign-reviewer operation
        ValidationError: If the reviewer cannot review handouts
    """
    require_operation(user, HANDOUT_ASSIGN_REVIEWER)
    reviewer = resolve_users([reviewer_email], operation=HANDOUT_REVIEW)[0]
    if reviewer.pk == handout.ic_id:
        raise ValidationError('The instructor-in-charge cannot review their own handout.')

    with transaction.atomic():
        previous = handout.reviewer
        if previous is not None and previous.pk != reviewer.pk:
            complete_todo(Module.HANDOUT, handout.review_event(previous), previous)

        handout.reviewer = reviewer
        handout.save(update_fields=['reviewer', 'updated_at'])

        if handout.status == Status.REVIEW_PENDING and (previous is None or previous.pk != reviewer.pk):
            _give_review_todo(handout, user)

        log_activity(Module.HANDOUT, handout.pk, user, 'Reviewer assigned', reviewer.email)

    return handout


def final_decision(user, handout, status, comments=''):
    """
    Record the convenor's decision.

    Args:
        status: 'approved', 'rejected' or 'revision'

    Raises:
        PermissionDenied: Without the final-decision operation
        ValidationError: If nothing has been submitted yet
    """
    require_operation(user, HANDOUT_FINAL_DECISION)
    if handout.status == Status.NOT_SUBMITTED:
        raise ValidationError('The handout has not been submitted yet.')
    if status not in (Status.APPROVED, Status.REJECTED, Status.REVISION):
        raise ValidationError(f'Invalid decision: {status}')

    with transaction.atomic():
        handout.status = status
        handout.final_comments = comments or ''
        handout.save(update_fields=['status', 'final_comments', 'updated_at'])

        complete_todo(Module.HANDOUT, handout.final_decision_event)
        if status == Status.REVISION:
            _ask_ic_to_revise(handout, user, comments)

        label = HandoutRequest.Status(status).label
        notify_users(
            [handout.ic],
            Module.HANDOUT,
            f'Course Handout {label}: {handout.course_code}',
            content=comments or '',
            link='/handout/faculty',
        )
        send_email(
            to=handout.ic.email,
            subject=f'Course Handout {label}: {handout.course_code}',
            text=(
                f'Dear {handout.ic.get_full_name()},\n\nThe DCA convenor has marked the handout for '
                f'{handout.course_name} ({handout.course_code}) as {label.lower()}.'
                + (f'\n\nComments:\n{comments}' if comments else '')
            ),
        )
        log_activity(Module.HANDOUT, handout.pk, user, f'Final decision: {label}', comments or None)

    return handout


# =============================================================================
# Instructor-in-charge
# =============================================================================

def submit_handout(user, handout, data):
    """
    Upload the handout and send it for review.

    Args:
        data: Cleaned HandoutSubmitForm data; handout_file is required

    Raises:
        PermissionDenied: If the user is not the IC
        ValidationError: If the handout is not open for upload or no file was sent
    """
    if handout.ic_id != user.pk:
        raise PermissionDenied('Only the instructor-in-charge can submit this handout.')
    if handout.status not in HandoutRequest.OPEN_STATUSES:
        raise ValidationError('This handout is not open for submission.')
    if not data.get('handout_file'):
        raise ValidationError('No file uploaded.')

    with transaction.atomic():
        for field in ('open_book', 'mid_sem', 'compre', 'other_evals', 'frequency', 'num_components'):
            if field in data:
                setattr(handout, field, data[field] if data[field] is not None else getattr(handout, field))
        handout.handout_file = data['handout_file']
        handout.status = Status.REVIEW_PENDING
        handout.submitted_on = timezone.now()
        handout.save()

        complete_todo(Module.HANDOUT, [handout.submission_event, handout.revision_event], user)
        if handout.reviewer is not None:
            _give_review_todo(handout, user)

        log_activity(Module.HANDOUT, handout.pk, user, 'Handout submitted')

    return handout


# =============================================================================
# Reviewer
# =============================================================================

def submit_review(user, handout, data):
    """
    Record the reviewer's checklist.

    An approval waits for the convenor's final decision; a revision goes
    straight back to the IC.

    Returns:
        Created HandoutReview

    Raises:
        PermissionDenied: If the user is not the assigned reviewer
        ValidationError: If the handout is not awaiting review or this
                         submission was already reviewed
    """
    if handout.reviewer_id != user.pk:
        raise PermissionDenied('You are not the reviewer of this handout.')
    if handout.status != Status.REVIEW_PENDING:
        raise ValidationError('This handout is not awaiting review.')
    if handout.reviews.filter(reviewer=user, created_at__gte=handout.submitted_on).exists():
        raise ValidationError('You have already reviewed this submission.')

    with transaction.atomic():
        review = HandoutReview.objects.create(
            handout=handout,
            reviewer=user,
            status=data['status'],
            comments=data.get('comments', ''),
            **{criterion: data.get(criterion, False) for criterion in HandoutReview.CRITERIA},
        )
        complete_todo(Module.HANDOUT, handout.review_event(user), user)

        if review.status == HandoutReview.Status.REVISION:
            handout.status = Status.REVISION
            handout.save(update_fields=['status', 'updated_at'])
            _ask_ic_to_revise(handout, user, review.comments)
            notify_users(
                [handout.ic],
                Module.HANDOUT,
                f'Course Handout Revision Requested: {handout.course_code}',
                content=review.comments,
                link='/handout/faculty',
            )
            send_email(
                to=handout.ic.email,
                subject=f'Course Handout Revision Requested: {handout.course_code}',
                text=(
                    f'Dear {handout.ic.get_full_name()},\n\nThe reviewer has requested revisions to the '
                    f'handout for {handout.course_name} ({handout.course_code}).\n\n'
                    f'Comments:\n{review.comments}\n\n{frontend_link("/handout/faculty")}'
                ),
            )
        else:
            convenors = list(users_with_operation(HANDOUT_FINAL_DECISION))
            create_todos([
                {
                    'module': Module.HANDOUT,
                    'title': f'Final Decision: {handout.course_code}',
                    'description': f'The reviewer approved the handout for {handout.course_name}.',
                    'assigned_to': convenor,
                    'created_by': user,
                    'completion_event': handout.final_decision_event,
                    'link': '/handout/dca-convenor',
                }
                for convenor in convenors
            ])

        log_activity(
            Module.HANDOUT, handout.pk, user,
            f'Reviewed: {review.get_status_display()}',
            review.comments or None,
        )

    return review


# =============================================================================
# Queries
# =============================================================================

def _base_queryset():
    return HandoutRequest.objects.select_related('ic', 'reviewer')


def ic_handouts(user):
    return _base_queryset().filter(ic=user)


def reviewer_handouts(user):
    return _base_queryset().filter(reviewer=user)


def all_handouts(user):
    require_operation(user, HANDOUT_GET_ALL)
    return _base_queryset()


def can_view_handout(user, handout):
    return (
        user.pk in (handout.ic_id, handout.reviewer_id)
        or user.has_operation(HANDOUT_GET_ALL)
        or user.has_operation(HANDOUT_FINAL_DECISION)
    )
