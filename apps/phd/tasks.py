"""
Scheduled jobs for phd app.

run_hourly_reminder_checks runs at the top of every hour (registered by
the setup_schedules command). For each proposal cycle deadline it finds the
reminder interval whose fire time falls inside the current hour and emails
everyone who still has to act before that deadline.
"""

import logging
from collections import OrderedDict
from datetime import timedelta

from django.db.models import Q
from django.utils import timezone

from apps.accounts.permissions import PHD_DRC, users_with_operation
from apps.notifications.services import frontend_link, send_bulk_emails
from .models import Proposal, ProposalSemester

logger = logging.getLogger(__name__)

JOB_NAME = 'hourlyProposalReminderCheck'

Status = Proposal.Status

REMINDER_INTERVALS = [
    (timedelta(days=5), 'T-5d'),
    (timedelta(days=2), 'T-2d'),
    (timedelta(days=1), 'T-1d'),
    (timedelta(hours=12), 'T-12h'),
    (timedelta(hours=8), 'T-8h'),
    (timedelta(hours=4), 'T-4h'),
    (timedelta(hours=2), 'T-2h'),
    (timedelta(minutes=30), 'T-30m'),
    (timedelta(minutes=15), 'T-15m'),
]

# deadline field -> (statuses waiting on it, who must act)
DEADLINE_TARGETS = {
    'student_submission_date': (
        [Status.DRAFT, Status.SUPERVISOR_REVERT, Status.DRC_REVERT, Status.DAC_REVERT],
        'student',
    ),
    'faculty_review_date': ([Status.SUPERVISOR_REVIEW], 'supervisor'),
    'drc_review_date': ([Status.DRC_REVIEW], 'drc'),
    'dac_review_date': ([Status.DAC_REVIEW], 'dac'),
}

LINK_PATHS = {
    'student': '/phd/phd-student/proposals',
    'supervisor': '/phd/supervisor/proposal/',
    'drc': '/phd/drc-convenor/proposal-management/',
    'dac': '/phd/dac/proposals/',
}


def hour_window(now):
    """Return [start of the local hour, start of the next hour) around now."""
    start = timezone.localtime(now).replace(minute=0, second=0, microsecond=0)
    return start, start + timedelta(hours=1)


def matching_interval(deadline, window_start, window_end):
    """First reminder interval whose fire time falls inside the window, or None."""
    for offset, label in REMINDER_INTERVALS:
        if window_start <= deadline - offset < window_end:
            return label
    return None


def _recipients(proposals, role, drc_users):
    """Map recipient email -> list of proposals they must act on."""
    recipients = OrderedDict()

    def add(email, proposal):
        recipients.setdefault(email, []).append(proposal)

    for proposal in proposals:
        if role == 'student':
            add(proposal.student.email, proposal)
        elif role == 'supervisor':
            add(proposal.supervisor.email, proposal)
        elif role == 'drc':
            for user in drc_users():
                add(user.email, proposal)
        elif role == 'dac':
            reviewed = {r.email for r in proposal.dac_reviews.all()}
            members = [m.email for m in proposal.dac_members.all()]
            if not members:
                logger.warning(f'[{JOB_NAME}] Proposal {proposal.pk} is in dac_review but has no DAC members')
            for email in members:
                if email not in reviewed:
                    add(email, proposal)
    return recipients


def _build_email(email, proposals, role, label, deadline):
    tasks = '\n'.join(
        f'- {p.student.get_full_name() or p.student.email} (ID: {p.pk})' for p in proposals
    )
    path = LINK_PATHS[role]
    link = frontend_link(path if role == 'student' else f'{path}{proposals[0].pk}')
    when = timezone.localtime(deadline).strftime('%d %b %Y, %I:%M %p')
    return {
        'to': email,
        'subject': f'Reminder: PhD Proposal Action Due Soon ({label})',
        'text': (
            f'This is a reminder that action is required on one or more PhD proposals by {when}.\n\n'
            f'Pending Tasks:\n{tasks}\n\n'
            f'Please log in to the portal to take action:\n{link}\n\nThank you.'
        ),
    }


def run_hourly_reminder_checks(now=None):
    """
    Send deadline reminders for the current hour.

    Args:
        now: Reference time (defaults to timezone.now())

    Returns:
        int: Number of reminder emails queued for sending
    """
    now = now or timezone.now()
    window_start, window_end = hour_window(now)
    logger.info(f'[{JOB_NAME}] Starting reminder checks for {window_start.isoformat()}')

    deadline_filter = Q()
    for field in ProposalSemester.DEADLINE_FIELDS:
        deadline_filter |= Q(**{f'{field}__gte': window_start})
    semesters = list(ProposalSemester.objects.filter(deadline_filter))
    if not semesters:
        logger.info(f'[{JOB_NAME}] No relevant proposal deadlines found')
        return 0

    drc_cache = None

    def drc_users():
        nonlocal drc_cache
        if drc_cache is None:
            drc_cache = list(users_with_operation(PHD_DRC))
            if not drc_cache:
                logger.warning(f'[{JOB_NAME}] DRC reminders needed but no user holds {PHD_DRC}')
        return drc_cache

    emails = []
    for semester in semesters:
        for field, (statuses, role) in DEADLINE_TARGETS.items():
            deadline = getattr(semester, field)
            label = matching_interval(deadline, window_start, window_end)
            if label is None:
                continue

            logger.info(
                f'[{JOB_NAME}] {label} reminder for {field} of {semester} '
                f'(deadline {deadline.isoformat()})'
            )
            proposals = list(
                Proposal.objects
                .filter(semester=semester, status__in=statuses)
                .select_related('student', 'supervisor')
                .prefetch_related('dac_members', 'dac_reviews')
                .order_by('pk')
            )
            if not proposals:
                continue

            for email, pending in _recipients(proposals, role, drc_users).items():
                emails.append(_build_email(email, pending, role, label, deadline))

    if not emails:
        logger.info(f'[{JOB_NAME}] No reminders to send this hour')
        return 0

    sent = send_bulk_emails(emails)
    if sent < len(emails):
        logger.error(f'[{JOB_NAME}] Only {sent}/{len(emails)} reminder email(s) were sent')
    logger.info(f'[{JOB_NAME}] Finished: {len(emails)} reminder email(s)')
    return len(emails)
