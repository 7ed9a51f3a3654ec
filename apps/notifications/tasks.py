"""
Scheduling helpers for background jobs.

Repeating jobs are registered by the setup_schedules management command.
One-off jobs (meeting deadline, pre-meeting reminder, meeting completion)
are Django-Q2 ONCE schedules created by the services that need them.
"""

import logging

from django.utils import timezone
from django_q.models import Schedule

logger = logging.getLogger(__name__)


def schedule_once(func, run_at, args=(), name=None):
    """
    Schedule a single run of a dotted-path function.

    Args:
        func: Dotted path, e.g. 'apps.meetings.tasks.complete_meeting'
        run_at: Aware datetime of the run
        args: Positional arguments (literals only)
        name: Optional unique schedule name; an existing one is replaced

    Returns:
        Schedule instance, or None when run_at is already in the past
    """
    if run_at <= timezone.now():
        logger.info(f'Skipping {func}{tuple(args)}: run time {run_at.isoformat()} has passed')
        return None

    defaults = {
        'func': func,
        'args': repr(tuple(args)),
        'schedule_type': Schedule.ONCE,
        'next_run': run_at,
        'repeats': 1,
    }
    if name:
        schedule, _ = Schedule.objects.update_or_create(name=name, defaults=defaults)
    else:
        schedule = Schedule.objects.create(**defaults)

    logger.info(f'Scheduled {func}{tuple(args)} at {run_at.isoformat()}')
    return schedule


def cancel_scheduled(name_prefix):
    """Delete pending one-off schedules whose name starts with the prefix."""
    deleted, _ = Schedule.objects.filter(name__startswith=name_prefix).delete()
    return deleted
