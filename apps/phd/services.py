"""
Service layer for phd app.

Centralized business logic for the proposal workflow:
- Student submission and resubmission
- Supervisor, co-supervisor, DRC and DAC reviews
- Seminar slot creation, booking and cancellation
- Re-enabling rejected proposals

Every stage change is recorded in the activity log and hands the next
actor a to-do (completion events "proposal:<stage>:<id>").
"""

import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import Q
from django.http import Http404
from django.utils import timezone

from apps.accounts.permissions import PHD_DRC, require_operation, users_with_operation
from apps.accounts.services import resolve_users
from apps.activity_log.models import log_activity
from apps.core.choices import Module
from apps.core.exceptions import ConflictError
from apps.notifications.services import (
    complete_todo, create_todos, frontend_link, notify_users, send_bulk_emails, send_email,
)
from .models import (
    DAC_REVERT_FLAG, PhdStudent, Proposal, ProposalCoSupervisor, ProposalDacMember,
    ProposalDacReview, SeminarSlot,
)

logger = logging.getLogger(__name__)

Status = Proposal.Status


# =============================================================================
# Helpers
# =============================================================================

def _event(stage, proposal):
    return f'proposal:{stage}:{proposal.pk}'


def _student_name(proposal):
    return proposal.student.get_full_name() or proposal.student.email


def _users_by_email(emails):
    """Active users for the given addresses; unknown addresses are skipped."""
    emails = [e.lower() for e in emails]
    return list(get_user_model().objects.filter(email__in=emails, is_active=True))


def _assign(users, proposal, created_by, stage, title, description, link, deadline=None):
    create_todos([
        {
            'module': Module.PHD,
            'title': title,
            'description': description,
            'assigned_to': user,
            'created_by': created_by,
            'completion_event': _event(stage, proposal),
            'link': link,
            'deadline': deadline,
        }
        for user in users
    ])


def _mail(emails, subject, text):
    send_bulk_emails([{'to': email, 'subject': subject, 'text': text} for email in emails])


def _set_status(proposal, status, comments=None):
    proposal.status = status
    fields = ['status', 'updated_at']
    if comments is not None:
        proposal.comments = comments
        fields.append('comments')
    proposal.save(update_fields=fields)


def _ask_student_to_resubmit(proposal, created_by, reviewer_label, comments):
    _assign(
        [proposal.student],
        proposal,
        created_by,
        'student-resubmit',
        f'Action Required: PhD Proposal Reverted by {reviewer_label}',
        f'The {reviewer_label} has requested revisions for your proposal. '
        f'Please review the comments and resubmit. Comments: {comments}',
        '/phd/phd-student/proposals',
        proposal.semester.student_submission_date,
    )


def _send_to_supervisor(proposal, created_by, title):
    _assign(
        [proposal.supervisor],
        proposal,
        created_by,
        'supervisor-review',
        title,
        f'The PhD proposal by {_student_name(proposal)} is pending your review.',
        f'/phd/supervisor/proposal/{proposal.pk}',
        proposal.semester.faculty_review_date,
    )


def _send_to_co_supervisors(proposal, created_by):
    pending = proposal.co_supervisors.exclude(approval_status=True)
    emails = [c.email for c in pending]
    _assign(
        _users_by_email(emails),
        proposal,
        created_by,
        'cosupervisor-review',
        f'PhD Proposal Approval Required for {_student_name(proposal)}',
        f'You are listed as a co-supervisor on the proposal "{proposal.title}". Please review and approve it.',
        f'/phd/co-supervisor/proposal/{proposal.pk}',
        proposal.semester.faculty_review_date,
    )
    _mail(
        emails,
        f'PhD Proposal Approval Required for {_student_name(proposal)}',
        f'Dear Co-Supervisor,\n\nThe PhD proposal "{proposal.title}" by {_student_name(proposal)} '
        f'has been accepted by the supervisor and awaits your approval.\n\n'
        f'{frontend_link(f"/phd/co-supervisor/proposal/{proposal.pk}")}',
    )


def _send_to_drc(proposal, created_by):
    conveners = list(users_with_operation(PHD_DRC))
    if not conveners:
        logger.warning(f'Proposal {proposal.pk} is ready for DRC review but no user holds {PHD_DRC}')
        return
    link = f'/phd/drc-convenor/proposal-management/{proposal.pk}'
    _assign(
        conveners,
        proposal,
        created_by,
        'drc-review',
        'PhD Proposal Ready for DRC Review',
        f'Proposal by {_student_name(proposal)} is approved by the supervisor and is '
        'awaiting your review to finalize DAC members.',
        link,
        proposal.semester.drc_review_date,
    )
    _mail(
        [c.email for c in conveners],
        f'PhD Proposal from {_student_name(proposal)} requires DRC review',
        f'Dear DRC Convenor,\n\nA PhD proposal submitted by {_student_name(proposal)} is ready '
        f'for your review to finalize the DAC.\n\n{frontend_link(link)}',
    )


def _send_to_dac(proposal, created_by):
    emails = proposal.dac_emails()
    link = f'/phd/dac/proposals/{proposal.pk}'
    _assign(
        _users_by_email(emails),
        proposal,
        created_by,
        'dac-review',
        f'PhD Proposal Evaluation Required for {_student_name(proposal)}',
        f'Please evaluate the PhD proposal for {_student_name(proposal)}.',
        link,
        proposal.semester.dac_review_date,
    )
    _mail(
        emails,
        f'PhD Proposal Evaluation Required for {_student_name(proposal)}',
        f'Dear DAC Member,\n\nYou have been assigned to evaluate the PhD proposal for '
        f'{_student_name(proposal)}.\n\nPlease submit your review:\n{frontend_link(link)}',
    )


def _deadline_passed(deadline):
    return deadline < timezone.now()


def _get_student_profile(user):
    try:
        return user.phd_profile
    except PhdStudent.DoesNotExist:
        raise ValidationError('PhD student record not found.')


def _check_required_files(data, proposal, has_outside_co_supervisor, is_part_time):
    def present(field):
        return bool(data.get(field)) or bool(proposal and getattr(proposal, field))

    if not all(present(f) for f in Proposal.REQUIRED_FILE_FIELDS):
        raise ValidationError('Missing required proposal documents.')
    if is_part_time and not present('place_of_research'):
        raise ValidationError("Part-time students must upload the 'Place of Research' document.")
    if has_outside_co_supervisor and not (
        present('outside_co_supervisor_format') and present('outside_supervisor_biodata')
    ):
        raise ValidationError('Documents for outside co-supervisor are required.')


# =============================================================================
# Student
# =============================================================================

def submit_proposal(user, data):
    """
    Submit a new proposal for supervisor review.

    Args:
        user: PhD student
        data: Cleaned ProposalSubmitForm data (semester, title, declaration,
              co-supervisors and uploaded files)

    Returns:
        Created Proposal instance

    Raises:
        PermissionDenied: If the submission deadline has passed
        ValidationError: If the student record, supervisor or documents are missing,
                         or another proposal is still active
    """
    profile = _get_student_profile(user)
    if profile.supervisor is None:
        raise ValidationError('Supervisor not assigned.')

    semester = data['semester']
    if _deadline_passed(semester.student_submission_date):
        raise PermissionDenied('The submission deadline for this cycle has passed.')

    active = Proposal.objects.filter(student=user).exclude(status__in=Proposal.INACTIVE_STATUSES)
    if active.exists():
        raise ValidationError('You already have an active proposal. Resubmit it instead.')

    has_outside = data.get('has_outside_co_supervisor', False)
    _check_required_files(data, None, has_outside, profile.is_part_time)

    internal = resolve_users(data.get('internal_co_supervisors') or [])
    external = data.get('external_co_supervisors') or []
    if any(u.pk in (user.pk, profile.supervisor_id) for u in internal):
        raise ValidationError('Co-supervisors cannot include the student or the supervisor.')

    with transaction.atomic():
        proposal = Proposal(
            semester=semester,
            student=user,
            supervisor=profile.supervisor,
            title=data['title'].strip(),
            status=Status.SUPERVISOR_REVIEW,
            has_outside_co_supervisor=has_outside,
            declaration=data.get('declaration', True),
        )
        for field in Proposal.FILE_FIELDS:
            if data.get(field):
                setattr(proposal, field, data[field])
        proposal.save()

        co_supervisors = [ProposalCoSupervisor(proposal=proposal, email=u.email, name=u.get_full_name()) for u in internal]
        co_supervisors += [
            ProposalCoSupervisor(proposal=proposal, email=row['email'], name=row['name'])
            for row in external if row['email'] not in {u.email for u in internal}
        ]
        ProposalCoSupervisor.objects.bulk_create(co_supervisors)

        _send_to_supervisor(proposal, user, f'PhD Proposal Review Required for {_student_name(proposal)}')
        send_email(
            to=proposal.supervisor.email,
            subject=f'PhD Proposal Submitted for Review by {_student_name(proposal)}',
            text=(
                f'Dear Supervisor,\n\nYour student, {_student_name(proposal)}, has submitted their '
                f'PhD research proposal titled "{proposal.title}" for your review.\n\n'
                f'{frontend_link(f"/phd/supervisor/proposal/{proposal.pk}")}'
            ),
        )
        log_activity(Module.PHD, proposal.pk, user, 'Proposal submitted')

    logger.info(f'Proposal {proposal.pk} submitted by {user.email}')
    return proposal


def resubmit_proposal(user, proposal, data):
    """
    Resubmit a draft or reverted proposal.

    Uploaded files replace the stored ones; files not sent are kept.

    Raises:
        PermissionDenied: If the user is not the student
        ValidationError: If the proposal cannot be resubmitted now
    """
    if proposal.student_id != user.pk:
        raise PermissionDenied('You can only resubmit your own proposal.')
    if proposal.status not in Proposal.RESUBMITTABLE_STATUSES:
        raise ValidationError('This proposal cannot be resubmitted at its current stage.')

    profile = _get_student_profile(user)
    _check_required_files(data, proposal, proposal.has_outside_co_supervisor, profile.is_part_time)

    with transaction.atomic():
        after_dac_revert = proposal.status == Status.DAC_REVERT

        proposal.title = data['title'].strip()
        for field in Proposal.FILE_FIELDS:
            if data.get(field):
                setattr(proposal, field, data[field])
        proposal.status = Status.SUPERVISOR_REVIEW
        proposal.comments = DAC_REVERT_FLAG if after_dac_revert else ''
        proposal.save()

        proposal.co_supervisors.update(approval_status=None)
        proposal.dac_reviews.all().delete()

        complete_todo(Module.PHD, _event('student-resubmit', proposal))
        _send_to_supervisor(proposal, user, f'Resubmitted PhD Proposal by {_student_name(proposal)}')
        send_email(
            to=proposal.supervisor.email,
            subject=f'PhD Proposal Resubmitted by {_student_name(proposal)}',
            text=(
                f'Dear Supervisor,\n\n{_student_name(proposal)} has resubmitted the proposal '
                f'"{proposal.title}" for your review.\n\n'
                f'{frontend_link(f"/phd/supervisor/proposal/{proposal.pk}")}'
            ),
        )
        log_activity(Module.PHD, proposal.pk, user, 'Proposal resubmitted')

    return proposal


# =============================================================================
# Supervisor / co-supervisor
# =============================================================================

def supervisor_review(user, proposal, action, comments='', dac_members=None):
    """
    Accept or revert a proposal as its supervisor.

    Args:
        action: 'accept' or 'revert'
        dac_members: On accept, [{'email', 'name'}] (at least two); replaces
                     the proposal's DAC members

    Returns:
        Updated Proposal

    Raises:
        PermissionDenied: If the user is not the supervisor or the faculty
                          review deadline has passed
        ValidationError: If the proposal is not awaiting supervisor review
    """
    if proposal.supervisor_id != user.pk:
        raise PermissionDenied('You are not the supervisor of this proposal.')
    if proposal.status != Status.SUPERVISOR_REVIEW:
        raise ValidationError('Proposal is not in the supervisor review stage.')
    if _deadline_passed(proposal.semester.faculty_review_date):
        raise PermissionDenied('The deadline for supervisor review has passed.')

    with transaction.atomic():
        complete_todo(Module.PHD, _event('supervisor-review', proposal))

        if action == 'revert':
            _set_status(proposal, Status.SUPERVISOR_REVERT, comments)
            _ask_student_to_resubmit(proposal, user, 'Supervisor', comments)
            send_email(
                to=proposal.student.email,
                subject='Action Required: Your PhD Proposal Submission',
                text=(
                    f'Dear {_student_name(proposal)},\n\nYour supervisor has reviewed your PhD '
                    f'proposal and requires revisions. Comments:\n\n{comments}\n\n'
                    'Please log in to the portal to make the changes and resubmit.'
                ),
            )
            log_activity(Module.PHD, proposal.pk, user, 'Reverted by supervisor', comments)
            return proposal

        dac_members = dac_members or []
        if len(dac_members) < 2:
            raise ValidationError('Suggest at least two DAC members.')

        previous = proposal.dac_emails()
        proposed = sorted(m['email'] for m in dac_members)
        unchanged = previous == proposed

        proposal.dac_members.all().delete()
        ProposalDacMember.objects.bulk_create([
            ProposalDacMember(proposal=proposal, email=m['email'], name=m.get('name', ''))
            for m in dac_members
        ])

        if proposal.co_supervisors.exclude(approval_status=True).exists():
            next_status = Status.COSUPERVISOR_REVIEW
        elif proposal.is_post_dac_revert and unchanged:
            next_status = Status.DAC_REVIEW
        else:
            next_status = Status.DRC_REVIEW

        _set_status(proposal, next_status, comments or '')
        if next_status == Status.COSUPERVISOR_REVIEW:
            _send_to_co_supervisors(proposal, user)
        elif next_status == Status.DAC_REVIEW:
            _send_to_dac(proposal, user)
        else:
            _send_to_drc(proposal, user)

        log_activity(
            Module.PHD, proposal.pk, user, 'Accepted by supervisor',
            f"DAC members: {', '.join(proposed)}",
        )

    return proposal


def co_supervisor_approve(user, proposal):
    """
    Approve a proposal as one of its co-supervisors.

    Raises:
        PermissionDenied: If the user is not a listed co-supervisor
        ValidationError: If the proposal is not awaiting co-supervisor review
    """
    if proposal.status != Status.COSUPERVISOR_REVIEW:
        raise ValidationError('Proposal is not in the co-supervisor review stage.')

    record = proposal.co_supervisors.filter(email=user.email.lower()).first()
    if record is None:
        raise PermissionDenied('You are not a co-supervisor for this proposal.')

    with transaction.atomic():
        record.approval_status = True
        record.save(update_fields=['approval_status', 'updated_at'])
        complete_todo(Module.PHD, _event('cosupervisor-review', proposal), user)
        log_activity(Module.PHD, proposal.pk, user, 'Approved by co-supervisor')

        if not proposal.co_supervisors.exclude(approval_status=True).exists():
            _set_status(proposal, Status.DRC_REVIEW)
            _send_to_drc(proposal, user)

    return proposal


# =============================================================================
# DRC convenor
# =============================================================================

def drc_review(user, proposal, action, comments='', selected_dac_members=None):
    """
    DRC decision on a proposal.

    Args:
        action: 'accept', 'revert' or 'reject'
        selected_dac_members: On accept, emails of the DAC members to keep

    Raises:
        PermissionDenied: Without the DRC operation or past the DRC deadline
        ValidationError: If the proposal is not awaiting DRC review or the
                         selection is invalid
    """
    require_operation(user, PHD_DRC)
    if proposal.status != Status.DRC_REVIEW:
        raise ValidationError('Proposal is not in the DRC review stage.')
    if _deadline_passed(proposal.semester.drc_review_date):
        raise PermissionDenied('The deadline for DRC review has passed.')

    with transaction.atomic():
        complete_todo(Module.PHD, _event('drc-review', proposal))
        name = _student_name(proposal)

        if action == 'revert':
            _set_status(proposal, Status.DRC_REVERT, comments)
            _ask_student_to_resubmit(proposal, user, 'DRC', comments)
            _mail(
                [proposal.student.email],
                'Action Required: PhD Proposal Reverted by DRC',
                f'Dear {name},\n\nThe DRC has reviewed your proposal and requires revisions. '
                f'Comments:\n\n{comments}\n\nPlease log in to resubmit.',
            )
            _mail(
                [proposal.supervisor.email],
                f'PhD Proposal for {name} Reverted by DRC',
                f'Dear Supervisor,\n\nThe DRC has reverted the proposal for your student, {name}, '
                f'with the following comments:\n\n{comments}',
            )
            log_activity(Module.PHD, proposal.pk, user, 'Reverted by DRC', comments)

        elif action == 'reject':
            _set_status(proposal, Status.REJECTED, comments)
            notify_users(
                [proposal.student, proposal.supervisor],
                Module.PHD,
                f'PhD proposal rejected: {proposal.title}',
                content=comments,
                link='/phd/phd-student/proposals',
            )
            _mail(
                [proposal.student.email, proposal.supervisor.email],
                f'PhD Proposal Rejected for {name}',
                f'The DRC has rejected the PhD proposal "{proposal.title}" by {name}.\n\n'
                f'Comments:\n{comments}',
            )
            log_activity(Module.PHD, proposal.pk, user, 'Rejected by DRC', comments)

        else:
            selected = sorted(set(selected_dac_members or []))
            if not selected:
                raise ValidationError('Select at least one DAC member.')
            current = set(proposal.dac_emails())
            unknown = [email for email in selected if email not in current]
            if unknown:
                raise ValidationError(
                    f"Selected DAC members must already be on the proposal: {', '.join(unknown)}"
                )

            proposal.dac_members.exclude(email__in=selected).delete()
            _set_status(proposal, Status.DAC_REVIEW, comments or '')
            _send_to_dac(proposal, user)
            log_activity(
                Module.PHD, proposal.pk, user, 'Accepted by DRC',
                f"DAC members: {', '.join(selected)}",
            )

    return proposal


def reenable_proposal(user, proposal):
    """Return a rejected proposal to draft so the student can resubmit."""
    require_operation(user, PHD_DRC)
    if proposal.status != Status.REJECTED:
        raise ValidationError("Proposal is not in a 'rejected' state.")

    with transaction.atomic():
        _set_status(proposal, Status.DRAFT, 'Re-enabled by DRC Convenor for student edits.')
        _assign(
            [proposal.student],
            proposal,
            user,
            'student-resubmit',
            'PhD Proposal Re-enabled for Editing',
            'Your proposal has been returned to draft. Please make changes and resubmit.',
            '/phd/phd-student/proposals',
            proposal.semester.student_submission_date,
        )
        _mail(
            [proposal.student.email],
            'PhD Proposal Re-enabled for Editing',
            f'Dear {_student_name(proposal)},\n\nYour PhD proposal titled "{proposal.title}" has '
            "been re-enabled by the DRC Convenor and returned to the 'Draft' stage. "
            'Please make any necessary changes and resubmit it.',
        )
        _mail(
            [proposal.supervisor.email],
            f'PhD Proposal Re-enabled for {_student_name(proposal)}',
            f'Dear Supervisor,\n\nThe previously rejected PhD proposal "{proposal.title}" has been '
            're-enabled for the student to edit and resubmit.',
        )
        log_activity(Module.PHD, proposal.pk, user, 'Re-enabled by DRC')

    return proposal


# =============================================================================
# DAC
# =============================================================================

def dac_submit_review(user, proposal, approved, comments, evaluation=None, feedback_file=None):
    """
    Record one DAC member's review; resolve the stage once all have reviewed.

    Raises:
        PermissionDenied: If the user is not on the DAC or the DAC deadline passed
        ValidationError: If the proposal is not in DAC review or the member
                         has already reviewed
    """
    if proposal.status != Status.DAC_REVIEW:
        raise ValidationError('Proposal is not in DAC review stage.')
    if _deadline_passed(proposal.semester.dac_review_date):
        raise PermissionDenied('The deadline for DAC review has passed.')

    email = user.email.lower()
    if not proposal.dac_members.filter(email=email).exists():
        raise PermissionDenied('You are not assigned to review this proposal.')
    if proposal.dac_reviews.filter(email=email).exists():
        raise ValidationError('You have already reviewed this proposal.')

    with transaction.atomic():
        review = ProposalDacReview(
            proposal=proposal,
            email=email,
            approved=approved,
            comments=comments,
            evaluation=evaluation or {},
        )
        if feedback_file:
            review.feedback_file = feedback_file
        review.save()

        complete_todo(Module.PHD, _event('dac-review', proposal), user)
        log_activity(
            Module.PHD, proposal.pk, user,
            'DAC member approved' if approved else 'DAC member reverted',
            comments,
        )

        reviews = list(proposal.dac_reviews.all())
        if len(reviews) >= proposal.dac_members.count():
            _resolve_dac_stage(user, proposal, reviews)

    return review


def _resolve_dac_stage(user, proposal, reviews):
    name = _student_name(proposal)

    if all(r.approved for r in reviews):
        _set_status(proposal, Status.DAC_ACCEPTED, '')
        conveners = list(users_with_operation(PHD_DRC))
        title = f"Set Seminar Details for {name}'s Proposal"
        description = f'The DAC has approved the proposal for {name}. Please set the seminar details.'
        _assign(
            conveners, proposal, user, 'set-seminar-details', title, description,
            f'/phd/drc-convenor/proposal-management/{proposal.pk}',
        )
        _assign(
            [proposal.supervisor], proposal, user, 'set-seminar-details', title, description,
            f'/phd/supervisor/proposal/{proposal.pk}',
        )
        _mail(
            [c.email for c in conveners] + [proposal.supervisor.email],
            f'PhD Proposal Approved for {name}',
            f'The DAC has approved the proposal for {name}. Please log in to the portal '
            'to set the seminar details.',
        )
        log_activity(Module.PHD, proposal.pk, None, 'Accepted by DAC')
        return

    revert_comments = '\n'.join(f'- {r.email}: {r.comments}' for r in reviews if not r.approved)
    _set_status(proposal, Status.DAC_REVERT, DAC_REVERT_FLAG)
    _ask_student_to_resubmit(proposal, user, 'DAC', revert_comments)
    _mail(
        [proposal.student.email],
        'Action Required: PhD Proposal Reverted by DAC',
        f'Dear {name},\n\nThe DAC has reviewed your proposal and requires revisions. '
        f'Comments from the committee:\n{revert_comments}\n\nPlease log in to resubmit.',
    )
    _mail(
        [proposal.supervisor.email],
        f'PhD Proposal for {name} Reverted by DAC',
        f'Dear Supervisor,\n\nThe DAC has reverted the proposal for your student, {name}. '
        f'The student has been notified to revise and resubmit.\n\n'
        f'Comments from the committee:\n{revert_comments}',
    )
    log_activity(Module.PHD, proposal.pk, None, 'Reverted by DAC', revert_comments)


# =============================================================================
# Seminar slots
# =============================================================================

def create_seminar_slots(user, slots):
    """
    Create seminar slots; slots clashing with an existing (start, venue) are skipped.

    Args:
        slots: List of {'venue', 'start_time', 'end_time'}

    Returns:
        list of created SeminarSlot instances
    """
    require_operation(user, PHD_DRC)

    existing = set(
        SeminarSlot.objects
        .filter(start_time__in=[s['start_time'] for s in slots])
        .values_list('start_time', 'venue')
    )
    new_slots = [
        SeminarSlot(created_by=user, venue=s['venue'], start_time=s['start_time'], end_time=s['end_time'])
        for s in slots if (s['start_time'], s['venue']) not in existing
    ]
    created = SeminarSlot.objects.bulk_create(new_slots)
    logger.info(f'{user.email} created {len(created)} seminar slot(s)')
    return created


def delete_seminar_slots(user, slot_ids):
    """
    Delete unbooked slots.

    Raises:
        ValidationError: If any of the slots is booked
    """
    require_operation(user, PHD_DRC)
    if SeminarSlot.objects.filter(pk__in=slot_ids, booked_by__isnull=False).exists():
        raise ValidationError('Booked slots cannot be deleted. Cancel the booking first.')
    deleted, _ = SeminarSlot.objects.filter(pk__in=slot_ids).delete()
    return deleted


def book_seminar_slot(user, proposal, slot_id):
    """
    Book a seminar slot for an accepted proposal.

    Raises:
        PermissionDenied: If the user is not the supervisor
        ValidationError: If the proposal is not waiting for a seminar
        Http404: If the slot does not exist
        ConflictError: If the slot is already booked
    """
    if proposal.supervisor_id != user.pk:
        raise PermissionDenied('You are not the supervisor of this proposal.')
    if proposal.status not in (Status.DAC_ACCEPTED, Status.SEMINAR_PENDING):
        raise ValidationError('Proposal not in a valid state to set seminar details.')

    with transaction.atomic():
        slot = SeminarSlot.objects.select_for_update().filter(pk=slot_id).first()
        if slot is None:
            raise Http404('Selected seminar slot not found.')
        if slot.booked_by_id is not None:
            raise ConflictError('This slot has already been booked. Please select another.')

        slot.booked_by = proposal
        slot.save(update_fields=['booked_by'])

        start = timezone.localtime(slot.start_time)
        end = timezone.localtime(slot.end_time)
        proposal.seminar_date = slot.start_time
        proposal.seminar_time = f"{start:%I:%M %p} - {end:%I:%M %p}"
        proposal.seminar_venue = slot.venue
        proposal.status = Status.FINALISING_DOCUMENTS
        proposal.save(update_fields=['seminar_date', 'seminar_time', 'seminar_venue', 'status', 'updated_at'])

        complete_todo(Module.PHD, _event('set-seminar-details', proposal))
        _mail(
            [proposal.student.email],
            'PhD Proposal Seminar Scheduled',
            f'Dear {_student_name(proposal)},\n\nYour proposal seminar is scheduled on '
            f'{start:%d %b %Y}, {proposal.seminar_time} at {slot.venue}.',
        )
        log_activity(
            Module.PHD, proposal.pk, user, 'Seminar slot booked',
            f'{start:%d %b %Y} {proposal.seminar_time}, {slot.venue}',
        )

    return proposal


def cancel_seminar_booking(user, proposal):
    """Free the proposal's booked slot and send it back to seminar_pending."""
    require_operation(user, PHD_DRC)

    with transaction.atomic():
        slot = SeminarSlot.objects.select_for_update().filter(booked_by=proposal).first()
        if slot is None:
            raise ValidationError('No seminar slot is booked for this proposal.')

        slot.booked_by = None
        slot.save(update_fields=['booked_by'])

        proposal.status = Status.SEMINAR_PENDING
        proposal.seminar_date = None
        proposal.seminar_time = ''
        proposal.seminar_venue = ''
        proposal.save(update_fields=['seminar_date', 'seminar_time', 'seminar_venue', 'status', 'updated_at'])

        name = _student_name(proposal)
        when = timezone.localtime(slot.start_time).strftime('%d %b %Y, %I:%M %p')
        link = f'/phd/supervisor/proposal/{proposal.pk}'
        _assign(
            [proposal.supervisor],
            proposal,
            user,
            'set-seminar-details',
            f'Seminar Canceled: Re-book for {name}',
            f'The seminar slot for {name} on {when} was canceled by the DRC Convenor. '
            'Please select a new slot.',
            link,
        )
        _mail(
            [proposal.supervisor.email],
            f'Seminar Booking Canceled for {name}',
            f'Dear Supervisor,\n\nThe seminar slot for your student, {name}, on {when} has been '
            f'canceled by the DRC Convenor.\n\nPlease select a new slot:\n{frontend_link(link)}',
        )
        log_activity(Module.PHD, proposal.pk, user, 'Seminar booking cancelled', when)

    return proposal


# =============================================================================
# Queries
# =============================================================================

def _base_queryset():
    return Proposal.objects.select_related('student', 'supervisor', 'semester')


def student_proposals(user):
    return _base_queryset().filter(student=user)


def supervisor_proposals(user):
    return _base_queryset().filter(supervisor=user).exclude(status=Status.DELETED)


def co_supervisor_proposals(user):
    return _base_queryset().filter(co_supervisors__email=user.email.lower()).distinct()


def dac_proposals(user):
    return _base_queryset().filter(
        dac_members__email=user.email.lower(),
        status__in=[
            Status.DAC_REVIEW, Status.DAC_REVERT, Status.DAC_ACCEPTED,
            Status.SEMINAR_PENDING, Status.FINALISING_DOCUMENTS, Status.COMPLETED,
        ],
    ).distinct()


def drc_proposals(user):
    require_operation(user, PHD_DRC)
    return _base_queryset().exclude(status__in=[Status.DRAFT, Status.DELETED])


def can_view_proposal(user, proposal):
    """Student, supervisor, co-supervisors, DAC members and the DRC."""
    if user.pk in (proposal.student_id, proposal.supervisor_id):
        return True
    if user.has_operation(PHD_DRC):
        return True
    email = user.email.lower()
    return Proposal.objects.filter(pk=proposal.pk).filter(
        Q(co_supervisors__email=email) | Q(dac_members__email=email)
    ).exists()
