"""
Background jobs for meetings app.

One-off Django-Q2 schedules created by the services:
- handle_meeting_deadline: at the response deadline
- send_pre_meeting_reminder: shortly before each finalized slot
- complete_meeting: after each finalized slot has ended
"""

import logging

from django.db import transaction
from django.utils import timezone

from apps.core.choices import Module
from apps.notifications.services import complete_todo, send_bulk_emails
from .models import FinalizedMeetingSlot, Meeting
from .services import get_attendees, finalized_event, notify_organizer_ready, format_time

logger = logging.getLogger(__name__)


def _open_meeting(meeting_id):
    meeting = Meeting.objects.select_related('organizer').filter(pk=meeting_id).first()
    if meeting is None:
        logger.info(f'Meeting {meeting_id} no longer exists, skipping job')
        return None
    if meeting.is_closed:
        logger.info(f'Meeting {meeting_id} is {meeting.status}, skipping job')
        return None
    return meeting


def handle_meeting_deadline(meeting_id):
    """Close responses and hand the meeting to the organizer."""
    meeting = _open_meeting(meeting_id)
    if meeting is None or meeting.status != Meeting.Status.PENDING_RESPONSES:
        return False

    with transaction.atomic():
        meeting.status = Meeting.Status.AWAITING_FINALIZATION
        meeting.save(update_fields=['status', 'updated_at'])
        notify_organizer_ready(meeting, 'Response deadline reached for')

    logger.info(f'Meeting {meeting_id}: deadline reached, awaiting finalization')
    return True


def send_pre_meeting_reminder(meeting_id, slot_id):
    """Email the organizer and participants that a slot starts soon."""
    meeting = _open_meeting(meeting_id)
    if meeting is None or meeting.status != Meeting.Status.SCHEDULED:
        return 0

    slot = FinalizedMeetingSlot.objects.filter(pk=slot_id, meeting=meeting).first()
    if slot is None:
        logger.info(f'Meeting {meeting_id}: slot {slot_id} not found, skipping reminder')
        return 0

    where = slot.venue or slot.google_meet_link
    sent = send_bulk_emails([
        {
            'to': attendee.email,
            'subject': f'Reminder: {meeting.title} starts soon',
            'text': (
                f'"{meeting.title}" starts at {format_time(slot.start_time)}.'
                + (f'\nWhere: {where}' if where else '')
            ),
        }
        for attendee in get_attendees(meeting)
    ])
    logger.info(f'Meeting {meeting_id}: pre-meeting reminder sent to {sent} attendee(s)')
    return sent


def complete_meeting(meeting_id):
    """Mark the meeting completed once every finalized slot has ended."""
    meeting = _open_meeting(meeting_id)
    if meeting is None or meeting.status != Meeting.Status.SCHEDULED:
        return False

    if meeting.finalized_slots.filter(end_time__gt=timezone.now()).exists():
        logger.info(f'Meeting {meeting_id}: slots remaining, not completing yet')
        return False

    with transaction.atomic():
        meeting.status = Meeting.Status.COMPLETED
        meeting.save(update_fields=['status', 'updated_at'])
        complete_todo(Module.MEETING, finalized_event(meeting))

    logger.info(f'Meeting {meeting_id} completed')
    return True
