"""
Scheduled jobs for qp app.

remind_pending_qp runs daily (registered by the setup_schedules command).
ICs whose upload deadline falls within QP_REMINDER_DAYS and reviewers
whose review deadline falls within it get one email each.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from apps.notifications.services import send_bulk_emails
from .models import QpRequest
from .services import build_reminder_emails

logger = logging.getLogger(__name__)

Status = QpRequest.Status


def pending_requests(now):
    horizon = now + timedelta(days=getattr(settings, 'QP_REMINDER_DAYS', 2))
    return (
        QpRequest.objects
        .select_related('ic', 'reviewer')
        .filter(
            Q(status=Status.NOT_SUBMITTED, ic_deadline__gt=now, ic_deadline__lte=horizon)
            | Q(status=Status.REVIEW_PENDING, review_deadline__gt=now, review_deadline__lte=horizon)
        )
        .order_by('course_code')
    )


def remind_pending_qp(now=None):
    """
    Email ICs and reviewers with QP work due soon.

    Args:
        now: Reference time (defaults to timezone.now())

    Returns:
        int: Number of people reminded
    """
    now = now or timezone.now()
    instructor_emails, reviewer_emails = build_reminder_emails(pending_requests(now))
    emails = instructor_emails + reviewer_emails
    if not emails:
        logger.info('QP reminders: nothing due')
        return 0

    sent = send_bulk_emails(emails)
    if sent < len(emails):
        logger.error(f'QP reminders: only {sent}/{len(emails)} email(s) were sent')
    logger.info(
        f'QP reminders sent to {len(instructor_emails)} IC(s) and {len(reviewer_emails)} reviewer(s)'
    )
    return len(emails)
