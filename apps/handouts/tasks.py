"""
Scheduled jobs for handouts app.

remind_pending_handouts runs daily (registered by the setup_schedules
command) and emails every IC with a handout still due within
HANDOUT_REMINDER_DAYS.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from apps.notifications.services import frontend_link, send_bulk_emails
from .models import HandoutRequest
from .services import format_deadline

logger = logging.getLogger(__name__)


def pending_handouts(now):
    days = getattr(settings, 'HANDOUT_REMINDER_DAYS', 2)
    return (
        HandoutRequest.objects
        .select_related('ic')
        .filter(
            status__in=HandoutRequest.OPEN_STATUSES,
            deadline__gt=now,
            deadline__lte=now + timedelta(days=days),
        )
        .order_by('ic__email', 'deadline')
    )


def remind_pending_handouts(now=None):
    """
    Email ICs whose handouts are still open close to the deadline.

    Args:
        now: Reference time (defaults to timezone.now())

    Returns:
        int: Number of ICs reminded
    """
    now = now or timezone.now()

    by_ic = {}
    for handout in pending_handouts(now):
        by_ic.setdefault(handout.ic, []).append(handout)

    if not by_ic:
        logger.info('Handout reminders: nothing due')
        return 0

    link = frontend_link('/handout/faculty')
    sent = send_bulk_emails([
        {
            'to': ic.email,
            'subject': 'Reminder: Course Handout Submission Due',
            'text': (
                f'Dear {ic.get_full_name()},\n\nThe following course handouts are still pending:\n'
                + '\n'.join(
                    f'- {h.course_code} {h.course_name} ({h.get_status_display()}), '
                    f'due {format_deadline(h.deadline)}'
                    for h in pending
                )
                + f'\n\nPlease submit them here: {link}'
            ),
        }
        for ic, pending in by_ic.items()
    ])
    if sent < len(by_ic):
        logger.error(f'Handout reminders: only {sent}/{len(by_ic)} email(s) were sent')
    logger.info(f'Handout reminders sent to {len(by_ic)} IC(s)')
    return len(by_ic)
