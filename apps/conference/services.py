"""
Service layer for conference app.

All business logic for the conference approval chain is centralized here.

Services:
- create_application / edit_application: applicant submissions
- set_flow: toggle direct flow (skips DRC Member and HoD stages)
- set_members: convener assigns DRC members
- review_as_member / review_as_convener / review_as_hod: stage decisions
- request_action / handle_request: applicant edit/delete requests
- pending_applications: review queue for members, conveners and HoDs
"""

import logging

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import Count, Q

from apps.accounts.permissions import (
    CONFERENCE_CONVENER, CONFERENCE_CREATE, CONFERENCE_GET_FLOW,
    CONFERENCE_HOD, CONFERENCE_MEMBER, CONFERENCE_VIEW_ALL,
    require_operation, users_with_operation,
)
from apps.accounts.services import resolve_users
from apps.activity_log.models import log_activity
from apps.core.choices import Module
from apps.notifications.services import (
    complete_todo, create_todos, frontend_link, notify_users,
    send_bulk_emails, send_email,
)
from .models import ConferenceApplication, ConferenceMember, ConferenceReview, ConferenceSetting

logger = logging.getLogger(__name__)

State = ConferenceApplication.State


# =============================================================================
# Helpers
# =============================================================================

def _link(application):
    return f'/conference/view/{application.pk}'


def is_direct_flow():
    return ConferenceSetting.load().direct_flow


def _initial_state():
    return State.DRC_CONVENER if is_direct_flow() else State.DRC_MEMBER


def _pending_events(application):
    """Completion events of the open to-dos for the application's current stage."""
    pk = application.pk
    if application.state == State.DRC_MEMBER:
        return [f'assign members {pk}', f'review {pk} member']
    if application.state == State.DRC_CONVENER:
        return [f'review {pk} convener']
    if application.state == State.HOD:
        return [f'review {pk} hod']
    return []


def _assign_stage_todos(application, created_by):
    """
    Create to-dos and send emails for whoever acts next on the application.

    DRC Member stage: conveners assign members.
    DRC Convener stage: conveners review.
    HoD stage: HoDs review.
    """
    pk = application.pk
    if application.state == State.DRC_MEMBER:
        assignees = users_with_operation(CONFERENCE_CONVENER)
        event = f'assign members {pk}'
        title = 'Assign DRC members to conference application'
    elif application.state == State.DRC_CONVENER:
        assignees = users_with_operation(CONFERENCE_CONVENER)
        event = f'review {pk} convener'
        title = 'Review conference application'
    elif application.state == State.HOD:
        assignees = users_with_operation(CONFERENCE_HOD)
        event = f'review {pk} hod'
        title = 'Review conference application'
    else:
        return

    create_todos([
        {
            'module': Module.CONFERENCE,
            'title': title,
            'description': (
                f'Conference application id {pk} by {application.applicant.email} '
                f'({application.event_name})'
            ),
            'assigned_to': assignee,
            'created_by': created_by,
            'completion_event': event,
            'link': _link(application),
        }
        for assignee in assignees
    ])

    send_bulk_emails([
        {
            'to': assignee.email,
            'subject': 'New Conference Approval Request',
            'text': (
                f'A conference approval request from {application.applicant.get_full_name()} '
                f'for "{application.event_name}" is awaiting your action.\n\n'
                f'View it here: {frontend_link(_link(application))}'
            ),
        }
        for assignee in assignees
    ])


def _email_applicant(application, subject, message):
    send_email(
        to=application.applicant.email,
        subject=subject,
        text=f'{message}\n\nView your application: {frontend_link(_link(application))}',
    )


# =============================================================================
# Applicant operations
# =============================================================================

def create_application(applicant, data):
    """
    Submit a new conference approval application.

    Args:
        applicant: User submitting the application
        data: Cleaned ConferenceApplicationForm data (files included)

    Returns:
        Created ConferenceApplication instance

    Raises:
        PermissionDenied: If the user cannot create applications
    """
    require_operation(applicant, CONFERENCE_CREATE, "You don't have permission to create conference applications.")

    with transaction.atomic():
        application = ConferenceApplication(applicant=applicant, state=_initial_state())
        _apply_fields(application, data)
        application.save()

        log_activity(Module.CONFERENCE, application.pk, applicant, 'Application created')
        _assign_stage_todos(application, applicant)

    logger.info(f'Conference application {application.pk} created by {applicant.email} in state {application.state}')
    return application


def _apply_fields(application, data):
    for field in [
        'purpose', 'content_title', 'event_name', 'venue', 'date_from', 'date_to',
        'organized_by', 'mode_of_event', 'description', 'reimbursements', 'funding_split',
    ]:
        if field in data:
            setattr(application, field, data[field])

    for field in ConferenceApplication.FILE_FIELDS:
        upload = data.get(field)
        # A missing upload keeps the previous file
        if upload and upload != getattr(application, field):
            setattr(application, field, upload)


def edit_application(user, application, data):
    """
    Resubmit an application that was sent back to the applicant.

    Raises:
        PermissionDenied: If the user is not the applicant
        ValidationError: If the application is not in the Faculty state
    """
    if application.applicant_id != user.pk:
        raise PermissionDenied('Only the applicant can edit this application.')
    if application.state != State.FACULTY:
        raise ValidationError('Application can only be edited after it has been sent back.')

    with transaction.atomic():
        _apply_fields(application, data)
        application.state = _initial_state()
        application.request_edit = False
        application.request_delete = False
        application.save()

        application.members.all().delete()
        complete_todo(Module.CONFERENCE, f'edit {application.pk}', user)
        log_activity(Module.CONFERENCE, application.pk, user, 'Application edited and resubmitted')
        _assign_stage_todos(application, user)

    return application


def request_action(user, application, action):
    """
    Applicant asks the convener to reopen (edit) or delete an application.

    Raises:
        PermissionDenied: If the user is not the applicant
        ValidationError: If the state does not allow the request
    """
    if application.applicant_id != user.pk:
        raise PermissionDenied('Only the applicant can request changes.')
    if application.state == State.COMPLETED:
        raise ValidationError('Cannot request changes on a completed application.')
    if application.state == State.FACULTY:
        raise ValidationError('Application is already in Faculty state and can be edited directly.')

    flag = 'request_edit' if action == 'edit' else 'request_delete'
    if getattr(application, flag):
        raise ValidationError(f'A {action} request is already pending.')

    with transaction.atomic():
        setattr(application, flag, True)
        application.save(update_fields=[flag, 'updated_at'])
        log_activity(Module.CONFERENCE, application.pk, user, f'{action.capitalize()} requested by applicant')

        notify_users(
            users_with_operation(CONFERENCE_CONVENER),
            Module.CONFERENCE,
            f'{action.capitalize()} request on conference application {application.pk}',
            content=f'{user.get_full_name()} requested to {action} their application.',
            link=_link(application),
        )

    return application


# =============================================================================
# Convener operations
# =============================================================================

def set_flow(user, direct_flow):
    """
    Switch the direct flow setting.

    Turning direct flow on moves DRC Member applications to DRC Convener
    (dropping member assignments) and HoD applications to Completed.

    Returns:
        ConferenceSetting instance
    """
    require_operation(user, CONFERENCE_CONVENER, 'Only the DRC convener can change the approval flow.')

    with transaction.atomic():
        setting = ConferenceSetting.objects.select_for_update().get(pk=ConferenceSetting.load().pk)
        if setting.direct_flow == direct_flow:
            return setting

        setting.direct_flow = direct_flow
        setting.save()
        logger.info(f'Conference direct flow set to {direct_flow} by {user.email}')

        if not direct_flow:
            return setting

        for application in ConferenceApplication.objects.filter(state=State.DRC_MEMBER).select_related('applicant'):
            complete_todo(Module.CONFERENCE, _pending_events(application))
            application.members.all().delete()
            application.state = State.DRC_CONVENER
            application.save(update_fields=['state', 'updated_at'])
            log_activity(Module.CONFERENCE, application.pk, user, 'Moved to DRC Convener (direct flow enabled)')
            _assign_stage_todos(application, user)

        for application in ConferenceApplication.objects.filter(state=State.HOD).select_related('applicant'):
            complete_todo(Module.CONFERENCE, _pending_events(application))
            application.state = State.COMPLETED
            application.save(update_fields=['state', 'updated_at'])
            log_activity(Module.CONFERENCE, application.pk, user, 'Completed (direct flow enabled)')
            _email_applicant(
                application,
                'Conference Application Approved',
                f'Your conference application for "{application.event_name}" has been approved.',
            )

    return setting


def set_members(user, application, emails):
    """
    Assign (or reassign) the DRC members reviewing an application.

    Args:
        user: Convener
        application: ConferenceApplication in the DRC Member state
        emails: Full list of member emails

    Raises:
        PermissionDenied: If the user is not a convener
        ValidationError: If the state is wrong or a member is not eligible
    """
    require_operation(user, CONFERENCE_CONVENER, 'Only the DRC convener can assign members.')
    if application.state != State.DRC_MEMBER:
        raise ValidationError('Members can only be assigned while the application is with DRC members.')

    members = resolve_users(emails, operation=CONFERENCE_MEMBER)
    if not members:
        raise ValidationError('At least one member must be assigned.')
    if any(member.pk == application.applicant_id for member in members):
        raise ValidationError('The applicant cannot review their own application.')

    with transaction.atomic():
        current = {m.member_id: m for m in application.members.select_related('member')}
        wanted = {member.pk: member for member in members}

        removed = [m.member for pk, m in current.items() if pk not in wanted]
        added = [member for pk, member in wanted.items() if pk not in current]

        if removed:
            application.members.filter(member__in=removed).delete()
            complete_todo(Module.CONFERENCE, f'review {application.pk} member', removed)

        ConferenceMember.objects.bulk_create([
            ConferenceMember(application=application, member=member) for member in added
        ])

        create_todos([
            {
                'module': Module.CONFERENCE,
                'title': 'Review conference application',
                'description': f'Review conference application id {application.pk} by {application.applicant.email}',
                'assigned_to': member,
                'created_by': user,
                'completion_event': f'review {application.pk} member',
                'link': _link(application),
            }
            for member in added
        ])
        send_bulk_emails([
            {
                'to': member.email,
                'subject': 'Conference Application Review Assigned',
                'text': (
                    f'You have been assigned to review the conference application of '
                    f'{application.applicant.get_full_name()} for "{application.event_name}".\n\n'
                    f'Review it here: {frontend_link(_link(application))}'
                ),
            }
            for member in added
        ])

        complete_todo(Module.CONFERENCE, f'assign members {application.pk}')
        log_activity(
            Module.CONFERENCE, application.pk, user, 'Members Assigned/Updated',
            comments=', '.join(member.email for member in members),
        )

    return members


def handle_request(user, application, action, accept):
    """
    Accept or reject an applicant's edit/delete request.

    Returns:
        The application, or None when a delete request was accepted

    Raises:
        PermissionDenied: If the user is not a convener
        ValidationError: If no such request is pending
    """
    require_operation(user, CONFERENCE_CONVENER, 'Only the DRC convener can handle requests.')

    flag = 'request_edit' if action == 'edit' else 'request_delete'
    if not getattr(application, flag):
        raise ValidationError(f'No {action} request is pending for this application.')

    with transaction.atomic():
        if not accept:
            setattr(application, flag, False)
            application.save(update_fields=[flag, 'updated_at'])
            log_activity(Module.CONFERENCE, application.pk, user, f'{action.capitalize()} request rejected by convener')
            _email_applicant(
                application,
                f'Conference Application {action.capitalize()} Request Rejected',
                f'Your request to {action} the conference application for "{application.event_name}" was rejected.',
            )
            return application

        complete_todo(Module.CONFERENCE, _pending_events(application))

        if action == 'delete':
            pk = application.pk
            applicant_email = application.applicant.email
            event_name = application.event_name
            log_activity(Module.CONFERENCE, pk, user, 'Delete request accepted by convener')
            application.delete()
            send_email(
                to=applicant_email,
                subject='Conference Application Deleted',
                text=f'Your conference application for "{event_name}" has been deleted as requested.',
            )
            logger.info(f'Conference application {pk} deleted on request by {user.email}')
            return None

        application.request_edit = False
        application.state = State.FACULTY
        application.save(update_fields=['request_edit', 'state', 'updated_at'])
        application.members.all().delete()
        log_activity(Module.CONFERENCE, application.pk, user, 'Edit request accepted by convener')
        create_todos([{
            'module': Module.CONFERENCE,
            'title': 'Edit conference application',
            'description': f'Your edit request for application id {application.pk} was accepted',
            'assigned_to': application.applicant,
            'created_by': user,
            'completion_event': f'edit {application.pk}',
            'link': _link(application),
        }])
        _email_applicant(
            application,
            'Conference Application Edit Request Accepted',
            f'Your request to edit the conference application for "{application.event_name}" was accepted. '
            'You can now edit and resubmit it.',
        )

    return application


# =============================================================================
# Reviews
# =============================================================================

def _check_state(application, expected):
    current = application.state_index
    target = ConferenceApplication.STATE_ORDER.index(expected)
    if current < target:
        raise ValidationError('Application is not ready to be reviewed yet.')
    if current > target:
        raise ValidationError(f'Application is already reviewed by {expected}.')


def review_as_member(user, application, status, comments=''):
    """
    Record a DRC member's review.

    When every assigned member has reviewed, the application moves to the
    DRC Convener stage.

    Raises:
        PermissionDenied: If the user is not an assigned member
        ValidationError: If the state is wrong or the member already reviewed
    """
    require_operation(user, CONFERENCE_MEMBER, 'Only DRC members can review at this stage.')
    _check_state(application, State.DRC_MEMBER)

    with transaction.atomic():
        # Row lock: one member review at a time per application
        locked = ConferenceApplication.objects.select_for_update().get(pk=application.pk)
        application.state = locked.state
        _check_state(application, State.DRC_MEMBER)

        try:
            assignment = application.members.select_for_update().get(member=user)
        except ConferenceMember.DoesNotExist:
            raise PermissionDenied('You are not assigned to review this application.')

        if assignment.has_reviewed:
            raise ValidationError('You have already reviewed this application.')

        assignment.review_status = status
        assignment.comments = comments or ''
        assignment.save()

        log_activity(
            Module.CONFERENCE, application.pk, user,
            f"Member {'approved' if status else 'rejected'}", comments,
        )
        complete_todo(Module.CONFERENCE, f'review {application.pk} member', user)

        if not application.members.filter(review_status__isnull=True).exists():
            application.state = State.DRC_CONVENER
            application.save(update_fields=['state', 'updated_at'])
            log_activity(Module.CONFERENCE, application.pk, None, 'All members reviewed')
            _assign_stage_todos(application, user)

    return application


def review_as_convener(user, application, status, comments=''):
    """
    Record the DRC convener's decision.

    Approve -> HoD (Completed under direct flow); reject -> Faculty.
    """
    require_operation(user, CONFERENCE_CONVENER, 'Only the DRC convener can review at this stage.')
    _check_state(application, State.DRC_CONVENER)

    if status:
        next_state = State.COMPLETED if is_direct_flow() else State.HOD
    else:
        next_state = State.FACULTY

    with transaction.atomic():
        ConferenceReview.objects.create(
            application=application,
            reviewer=user,
            reviewer_role=ConferenceReview.ReviewerRole.CONVENER,
            status=status,
            comments=comments or '',
        )
        application.state = next_state
        application.save(update_fields=['state', 'updated_at'])
        if not status:
            application.members.all().delete()

        log_activity(
            Module.CONFERENCE, application.pk, user,
            f"Convener {'approved' if status else 'rejected'}", comments,
        )
        complete_todo(Module.CONFERENCE, f'review {application.pk} convener')
        _after_decision(user, application, comments)

    return application


def review_as_hod(user, application, status, comments=''):
    """
    Record the HoD's decision. Approve -> Completed; reject -> Faculty.
    """
    require_operation(user, CONFERENCE_HOD, 'Only the HoD can review at this stage.')
    _check_state(application, State.HOD)

    with transaction.atomic():
        ConferenceReview.objects.create(
            application=application,
            reviewer=user,
            reviewer_role=ConferenceReview.ReviewerRole.HOD,
            status=status,
            comments=comments or '',
        )
        application.state = State.COMPLETED if status else State.FACULTY
        application.save(update_fields=['state', 'updated_at'])

        log_activity(
            Module.CONFERENCE, application.pk, user,
            f"HoD {'approved' if status else 'rejected'}", comments,
        )
        complete_todo(Module.CONFERENCE, f'review {application.pk} hod')
        _after_decision(user, application, comments)

    return application


def _after_decision(user, application, comments):
    if application.state == State.HOD:
        _assign_stage_todos(application, user)
    elif application.state == State.COMPLETED:
        _email_applicant(
            application,
            'Conference Application Approved',
            f'Your conference application for "{application.event_name}" has been approved.',
        )
    elif application.state == State.FACULTY:
        create_todos([{
            'module': Module.CONFERENCE,
            'title': 'Conference application sent back',
            'description': comments or 'Your conference application needs changes.',
            'assigned_to': application.applicant,
            'created_by': user,
            'completion_event': f'edit {application.pk}',
            'link': _link(application),
        }])
        _email_applicant(
            application,
            'Conference Application Rejected',
            f'Your conference application for "{application.event_name}" was sent back.\n\n'
            f'Comments: {comments or "-"}',
        )


# =============================================================================
# Queries
# =============================================================================

def can_view_application(user, application):
    if application.applicant_id == user.pk:
        return True
    if user.has_operation(CONFERENCE_VIEW_ALL):
        return True
    if user.has_operation(CONFERENCE_CONVENER) or user.has_operation(CONFERENCE_HOD):
        return True
    return application.members.filter(member=user).exists()


def pending_applications(user):
    """
    The review queue visible to the user.

    Returns:
        dict with 'applications' (queryset) and, for users holding
        conference:application:get-flow, 'is_direct'

    Raises:
        PermissionDenied: If the user has no reviewing role
    """
    is_convener = user.has_operation(CONFERENCE_CONVENER)
    is_member = user.has_operation(CONFERENCE_MEMBER)
    is_hod = user.has_operation(CONFERENCE_HOD)

    if not (is_convener or is_member or is_hod):
        raise PermissionDenied("You don't have permission to view pending applications.")

    filters = Q(pk__in=[])
    if is_convener:
        filters |= Q(state__in=[State.DRC_MEMBER, State.DRC_CONVENER])
    if is_member:
        unreviewed = ConferenceMember.objects.filter(
            member=user, review_status__isnull=True,
        ).values('application_id')
        filters |= Q(state=State.DRC_MEMBER, pk__in=unreviewed)
    if is_hod:
        filters |= Q(state=State.HOD)

    applications = (
        ConferenceApplication.objects
        .filter(filters)
        .select_related('applicant')
        .annotate(
            members_assigned=Count('members', distinct=True),
            members_reviewed=Count(
                'members', filter=Q(members__review_status__isnull=False), distinct=True,
            ),
        )
        .order_by('created_at')
    )

    result = {'applications': applications}
    if user.has_operation(CONFERENCE_GET_FLOW):
        result['is_direct'] = is_direct_flow()
    return result
