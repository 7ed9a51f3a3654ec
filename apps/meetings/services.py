"""
Service layer for meetings app.

Services:
- create_meeting: propose slots, invite participants, schedule the deadline job
- submit_availability: participant responses
- finalize_meeting: pick final slots, schedule reminder and completion jobs
- remind_meeting: nudge participants who have not responded
- add_invitees / update_meeting_details / cancel_meeting
- list_meetings / meeting_detail: queries for the dashboard
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from apps.accounts.permissions import MEETING_USE, require_operation
from apps.accounts.services import resolve_users
from apps.activity_log.models import log_activity
from apps.core.choices import Module
from apps.notifications.services import (
    complete_todo, create_todos, frontend_link, notify_users, send_bulk_emails,
)
from apps.notifications.tasks import cancel_scheduled, schedule_once
from .models import (
    FinalizedMeetingSlot, Meeting, MeetingAvailability, MeetingParticipant, MeetingTimeSlot,
)

logger = logging.getLogger(__name__)

Status = Meeting.Status


# =============================================================================
# Helpers
# =============================================================================

def _rsvp_event(meeting):
    return f'meeting:rsvp:{meeting.pk}'


def finalized_event(meeting):
    return f'meeting:finalized:{meeting.pk}'


def _schedule_prefix(meeting):
    return f'meeting-{meeting.pk}-'


def format_time(value):
    return timezone.localtime(value).strftime('%d %b %Y, %I:%M %p')


def describe_slots(slots):
    """Human-readable lines for finalized slots."""
    lines = []
    for index, slot in enumerate(slots, start=1):
        line = f'Meet {index}: {format_time(slot.start_time)} - {format_time(slot.end_time)}'
        if slot.venue:
            line += f', Venue: {slot.venue}'
        if slot.google_meet_link:
            line += f', Link: {slot.google_meet_link}'
        lines.append(line)
    return '\n'.join(lines)


def _participant_users(meeting):
    return [p.participant for p in meeting.participants.select_related('participant')]


def get_attendees(meeting):
    return [meeting.organizer] + _participant_users(meeting)


def _responded_ids(meeting):
    return set(
        MeetingAvailability.objects
        .filter(time_slot__meeting=meeting)
        .values_list('participant_id', flat=True)
        .distinct()
    )


def _require_organizer(user, meeting, action='manage'):
    if meeting.organizer_id != user.pk:
        raise PermissionDenied(f'Only the organizer can {action} this meeting.')


def _create_attendance_todos(meeting, users, slots, created_by):
    """One to-do per attendee per finalized slot that has not ended yet."""
    now = timezone.now()
    create_todos([
        {
            'module': Module.MEETING,
            'title': f'Attend meeting: {meeting.title}',
            'description': f'{format_time(slot.start_time)} - {format_time(slot.end_time)}'
                           + (f' at {slot.venue}' if slot.venue else ''),
            'assigned_to': user,
            'created_by': created_by,
            'completion_event': finalized_event(meeting),
            'link': f'/meeting/view/{meeting.pk}',
            'deadline': slot.end_time,
        }
        for slot in slots if slot.end_time > now
        for user in users
    ])


# =============================================================================
# Organizer operations
# =============================================================================

def create_meeting(organizer, data):
    """
    Create a meeting and invite participants to mark their availability.

    Args:
        organizer: User creating the meeting
        data: Cleaned MeetingCreateForm data (title, purpose, duration in
            minutes, deadline, participant emails, slot start datetimes)

    Returns:
        Created Meeting instance

    Raises:
        PermissionDenied: If the user cannot organize meetings
        ValidationError: If participants or slots are invalid
    """
    require_operation(organizer, MEETING_USE, "You don't have permission to organize meetings.")

    deadline = data['deadline']
    duration = data['duration']
    time_slots = data['time_slots']

    if deadline <= timezone.now():
        raise ValidationError('Deadline must be in the future.')
    if not time_slots:
        raise ValidationError('At least one time slot is required.')

    users = resolve_users(data['participants'])
    if not users:
        raise ValidationError('At least one participant is required.')
    if any(u.pk == organizer.pk for u in users):
        raise ValidationError('The organizer cannot be a participant.')

    with transaction.atomic():
        meeting = Meeting.objects.create(
            title=data['title'].strip(),
            purpose=(data.get('purpose') or '').strip(),
            duration=duration,
            organizer=organizer,
            deadline=deadline,
        )
        MeetingParticipant.objects.bulk_create([
            MeetingParticipant(meeting=meeting, participant=user) for user in users
        ])
        MeetingTimeSlot.objects.bulk_create([
            MeetingTimeSlot(
                meeting=meeting,
                start_time=start,
                end_time=start + timedelta(minutes=duration),
            )
            for start in time_slots
        ])

        description = (
            f'You have been invited to a meeting by {organizer.email}. '
            'Please provide your availability.'
        )
        create_todos([
            {
                'module': Module.MEETING,
                'title': f'RSVP for meeting: {meeting.title}',
                'description': description,
                'assigned_to': user,
                'created_by': organizer,
                'completion_event': _rsvp_event(meeting),
                'link': f'/meeting/respond/{meeting.pk}',
                'deadline': deadline,
            }
            for user in users
        ])
        send_bulk_emails([
            {
                'to': user.email,
                'subject': f'Meeting Invitation: {meeting.title}',
                'text': (
                    f'{description}\n\nPlease respond by {format_time(deadline)}.\n\n'
                    f'Respond here: {frontend_link(f"/meeting/respond/{meeting.pk}")}'
                ),
            }
            for user in users
        ])

        schedule_once(
            'apps.meetings.tasks.handle_meeting_deadline',
            deadline,
            args=(meeting.pk,),
            name=f'{_schedule_prefix(meeting)}deadline',
        )
        log_activity(Module.MEETING, meeting.pk, organizer, 'Meeting created')

    logger.info(f'Meeting {meeting.pk} created by {organizer.email} with {len(users)} participant(s)')
    return meeting


def finalize_meeting(user, meeting, final_slots):
    """
    Fix the final slot(s) and schedule reminder and completion jobs.

    Args:
        user: Organizer
        meeting: Meeting instance
        final_slots: List of {'time_slot_id', 'venue', 'google_meet_link'}

    Raises:
        PermissionDenied: If the user is not the organizer
        ValidationError: If the meeting is closed or a slot is foreign
    """
    _require_organizer(user, meeting, 'finalize')

    with transaction.atomic():
        meeting = Meeting.objects.select_for_update().get(pk=meeting.pk)
        if meeting.status in (Status.SCHEDULED, Status.COMPLETED):
            raise ValidationError('This meeting has already been finalized.')
        if meeting.status == Status.CANCELLED:
            raise ValidationError('This meeting has been cancelled.')

        ids = [slot['time_slot_id'] for slot in final_slots]
        time_slots = {s.pk: s for s in meeting.time_slots.filter(pk__in=ids)}
        if len(time_slots) != len(set(ids)):
            raise ValidationError('One or more selected slots do not belong to this meeting.')

        finalized = FinalizedMeetingSlot.objects.bulk_create([
            FinalizedMeetingSlot(
                meeting=meeting,
                start_time=time_slots[slot['time_slot_id']].start_time,
                end_time=time_slots[slot['time_slot_id']].end_time,
                venue=slot.get('venue', ''),
                google_meet_link=slot.get('google_meet_link', ''),
            )
            for slot in final_slots
        ])
        finalized.sort(key=lambda s: s.start_time)

        meeting.status = Status.SCHEDULED
        meeting.venue = finalized[0].venue
        meeting.google_meet_link = finalized[0].google_meet_link
        meeting.save(update_fields=['status', 'venue', 'google_meet_link', 'updated_at'])

        cancel_scheduled(f'{_schedule_prefix(meeting)}deadline')
        complete_todo(Module.MEETING, _rsvp_event(meeting))
        _schedule_slot_jobs(meeting, finalized)

        attendees = get_attendees(meeting)
        _create_attendance_todos(meeting, attendees, finalized, user)

        details = describe_slots(finalized)
        notify_users(
            attendees,
            Module.MEETING,
            f'Meeting scheduled: {meeting.title}',
            content=details,
            link=f'/meeting/view/{meeting.pk}',
        )
        send_bulk_emails([
            {
                'to': attendee.email,
                'subject': f'Meeting Scheduled: {meeting.title}',
                'text': f'The meeting "{meeting.title}" has been scheduled.\n\n{details}',
            }
            for attendee in attendees
        ])
        log_activity(Module.MEETING, meeting.pk, user, 'Meeting finalized', details)

    return meeting


def _schedule_slot_jobs(meeting, slots):
    reminder_lead = timedelta(minutes=getattr(settings, 'MEETING_REMINDER_MINUTES', 15))
    grace = timedelta(minutes=getattr(settings, 'MEETING_COMPLETION_GRACE_MINUTES', 60))
    prefix = _schedule_prefix(meeting)

    for slot in slots:
        schedule_once(
            'apps.meetings.tasks.send_pre_meeting_reminder',
            slot.start_time - reminder_lead,
            args=(meeting.pk, slot.pk),
            name=f'{prefix}reminder-{slot.pk}',
        )
        schedule_once(
            'apps.meetings.tasks.complete_meeting',
            slot.end_time + grace,
            args=(meeting.pk,),
            name=f'{prefix}completion-{slot.pk}',
        )


def remind_meeting(user, meeting):
    """
    Email participants who have not responded yet.

    Returns:
        int: Number of participants reminded
    """
    _require_organizer(user, meeting, 'send reminders for')
    if meeting.status != Status.PENDING_RESPONSES:
        raise ValidationError('Reminders can only be sent while responses are pending.')

    responded = _responded_ids(meeting)
    pending = [u for u in _participant_users(meeting) if u.pk not in responded]
    if not pending:
        return 0

    send_bulk_emails([
        {
            'to': participant.email,
            'subject': f'Reminder: Please respond to meeting: {meeting.title}',
            'text': (
                f'{meeting.organizer.get_full_name()} is waiting for your availability for '
                f'"{meeting.title}". Please respond by {format_time(meeting.deadline)}.\n\n'
                f'Respond here: {frontend_link(f"/meeting/respond/{meeting.pk}")}'
            ),
        }
        for participant in pending
    ])
    logger.info(f'Meeting {meeting.pk}: reminded {len(pending)} participant(s)')
    return len(pending)


def add_invitees(user, meeting, emails):
    """
    Invite more people to a scheduled meeting.

    Returns:
        list of newly added Users
    """
    _require_organizer(user, meeting, 'invite people to')
    if meeting.status != Status.SCHEDULED:
        raise ValidationError('Invitees can only be added to a scheduled meeting.')

    users = resolve_users(emails)
    existing = set(meeting.participants.values_list('participant_id', flat=True))
    new_users = [u for u in users if u.pk not in existing and u.pk != meeting.organizer_id]
    if not new_users:
        return []

    with transaction.atomic():
        MeetingParticipant.objects.bulk_create([
            MeetingParticipant(meeting=meeting, participant=u) for u in new_users
        ])

        slots = list(meeting.finalized_slots.all())
        details = describe_slots(slots)
        _create_attendance_todos(meeting, new_users, slots, user)
        notify_users(
            new_users,
            Module.MEETING,
            f'You have been invited to: {meeting.title}',
            content=details,
            link=f'/meeting/view/{meeting.pk}',
        )
        send_bulk_emails([
            {
                'to': invitee.email,
                'subject': f'Meeting Invitation: {meeting.title}',
                'text': (
                    f'{user.get_full_name()} has added you to the meeting "{meeting.title}".\n\n{details}'
                ),
            }
            for invitee in new_users
        ])
        log_activity(
            Module.MEETING, meeting.pk, user, 'Invitees added',
            ', '.join(u.email for u in new_users),
        )

    return new_users


def update_meeting_details(user, meeting, venue='', google_meet_link=''):
    """Change venue and/or link of a scheduled meeting and tell everyone."""
    _require_organizer(user, meeting, 'update')
    if meeting.status != Status.SCHEDULED:
        raise ValidationError('Only scheduled meetings can be updated.')

    with transaction.atomic():
        if venue:
            meeting.venue = venue
        if google_meet_link:
            meeting.google_meet_link = google_meet_link
        meeting.save(update_fields=['venue', 'google_meet_link', 'updated_at'])

        updates = {}
        if venue:
            updates['venue'] = venue
        if google_meet_link:
            updates['google_meet_link'] = google_meet_link
        meeting.finalized_slots.update(**updates)

        attendees = get_attendees(meeting)
        details = describe_slots(meeting.finalized_slots.all())
        notify_users(
            attendees,
            Module.MEETING,
            f'Meeting details updated: {meeting.title}',
            content=details,
            link=f'/meeting/view/{meeting.pk}',
        )
        send_bulk_emails([
            {
                'to': attendee.email,
                'subject': f'Meeting Updated: {meeting.title}',
                'text': f'The details of "{meeting.title}" have changed.\n\n{details}',
            }
            for attendee in attendees
        ])
        log_activity(Module.MEETING, meeting.pk, user, 'Meeting details updated')

    return meeting


def cancel_meeting(user, meeting):
    """Cancel a meeting that has not completed; pending jobs are dropped."""
    _require_organizer(user, meeting, 'cancel')
    if meeting.is_closed:
        raise ValidationError(f'This meeting is already {meeting.status}.')

    with transaction.atomic():
        meeting.status = Status.CANCELLED
        meeting.save(update_fields=['status', 'updated_at'])

        complete_todo(Module.MEETING, [_rsvp_event(meeting), finalized_event(meeting)])
        cancel_scheduled(_schedule_prefix(meeting))

        participants = _participant_users(meeting)
        notify_users(participants, Module.MEETING, f'Meeting cancelled: {meeting.title}')
        send_bulk_emails([
            {
                'to': participant.email,
                'subject': f'Meeting Cancelled: {meeting.title}',
                'text': f'{user.get_full_name()} has cancelled the meeting "{meeting.title}".',
            }
            for participant in participants
        ])
        log_activity(Module.MEETING, meeting.pk, user, 'Meeting cancelled')

    return meeting


# =============================================================================
# Participant operations
# =============================================================================

def submit_availability(user, meeting, entries):
    """
    Record a participant's availability for the meeting's slots.

    Args:
        user: Participant
        meeting: Meeting instance
        entries: {time_slot_id: 'available' | 'unavailable'}

    Raises:
        PermissionDenied: If the user is not a participant
        ValidationError: If responses are closed or a slot is foreign
    """
    if timezone.now() > meeting.deadline or meeting.status not in (
        Status.PENDING_RESPONSES, Status.AWAITING_FINALIZATION,
    ):
        raise ValidationError(
            'Cannot submit availability. The deadline has passed or the meeting '
            'is no longer accepting responses.'
        )
    if not meeting.participants.filter(participant=user).exists():
        raise PermissionDenied('You are not a participant in this meeting.')

    slots = {s.pk: s for s in meeting.time_slots.filter(pk__in=entries.keys())}
    if len(slots) != len(entries):
        raise ValidationError('One or more time slots do not belong to this meeting.')

    with transaction.atomic():
        for slot_id, availability in entries.items():
            MeetingAvailability.objects.update_or_create(
                time_slot=slots[slot_id],
                participant=user,
                defaults={'availability': availability},
            )
        complete_todo(Module.MEETING, _rsvp_event(meeting), user)

        meeting = Meeting.objects.select_for_update().get(pk=meeting.pk)
        participant_ids = set(meeting.participants.values_list('participant_id', flat=True))
        if meeting.status == Status.PENDING_RESPONSES and participant_ids <= _responded_ids(meeting):
            meeting.status = Status.AWAITING_FINALIZATION
            meeting.save(update_fields=['status', 'updated_at'])
            notify_organizer_ready(meeting, 'All responses received for')

    return meeting


def notify_organizer_ready(meeting, headline):
    title = f'{headline}: {meeting.title}'
    notify_users(
        [meeting.organizer],
        Module.MEETING,
        title,
        content='The meeting is ready to be finalized.',
        link=f'/meeting/view/{meeting.pk}',
    )
    send_bulk_emails([{
        'to': meeting.organizer.email,
        'subject': title,
        'text': (
            f'"{meeting.title}" is ready to be finalized.\n\n'
            f'Finalize it here: {frontend_link(f"/meeting/view/{meeting.pk}")}'
        ),
    }])


# =============================================================================
# Queries
# =============================================================================

def list_meetings(user):
    """
    Meetings the user organizes or is invited to.

    Returns:
        dict with 'organized' and 'invited' querysets annotated with
        participant_count and response_count
    """
    base = Meeting.objects.select_related('organizer').prefetch_related('finalized_slots').annotate(
        participant_count=Count('participants', distinct=True),
        response_count=Count('time_slots__availability__participant', distinct=True),
    )
    invited_ids = MeetingParticipant.objects.filter(participant=user).values('meeting_id')
    return {
        'organized': base.filter(organizer=user),
        'invited': base.filter(Q(pk__in=invited_ids)),
    }


def meeting_detail(user, meeting):
    """
    Detail visible to the organizer (everyone's availability) or a
    participant (own availability only).
    """
    is_organizer = meeting.organizer_id == user.pk
    if not is_organizer and not meeting.participants.filter(participant=user).exists():
        raise PermissionDenied("You don't have permission to view this meeting.")

    slots = []
    for slot in meeting.time_slots.prefetch_related('availability__participant'):
        entries = list(slot.availability.all())
        if not is_organizer:
            entries = [a for a in entries if a.participant_id == user.pk]
        slots.append({'slot': slot, 'availability': entries})

    return {
        'meeting': meeting,
        'is_organizer': is_organizer,
        'participants': _participant_users(meeting),
        'responded': _responded_ids(meeting) if is_organizer else None,
        'slots': slots,
        'finalized_slots': list(meeting.finalized_slots.all()),
    }
