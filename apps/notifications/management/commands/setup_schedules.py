"""
Management command to set up Django-Q2 schedules for the portal's repeating jobs.

This command creates/updates the scheduled tasks required for:
- Hourly PhD proposal deadline reminders (top of every hour)
- Daily course handout submission reminders (9:00 AM IST)
- Daily question paper upload and review reminders (9:30 AM IST)

Usage:
    python manage.py setup_schedules

The command is idempotent - safe to run multiple times.
Existing schedules will be updated if their configuration changes.
"""
from django.core.management.base import BaseCommand
from django_q.models import Schedule


SCHEDULES = [
    {
        'name': 'PhD Proposal Reminder Check',
        'func': 'apps.phd.tasks.run_hourly_reminder_checks',
        'cron': '0 * * * *',
        'label': 'every hour, on the hour',
    },
    {
        'name': 'Handout Submission Reminder',
        'func': 'apps.handouts.tasks.remind_pending_handouts',
        'cron': '0 9 * * *',
        'label': 'daily at 9:00 AM',
    },
    {
        'name': 'QP Review Reminder',
        'func': 'apps.qp.tasks.remind_pending_qp',
        'cron': '30 9 * * *',
        'label': 'daily at 9:30 AM',
    },
]


class Command(BaseCommand):
    help = 'Set up Django-Q2 schedules for repeating jobs'

    def handle(self, *args, **options):
        self.stdout.write('\nSetting up Django-Q2 schedules...\n')

        schedules_created = 0
        schedules_updated = 0

        for entry in SCHEDULES:
            _, created = Schedule.objects.update_or_create(
                name=entry['name'],
                defaults={
                    'func': entry['func'],
                    'schedule_type': Schedule.CRON,
                    'cron': entry['cron'],
                    'repeats': -1,  # Run forever
                },
            )
            if created:
                schedules_created += 1
                self.stdout.write(
                    self.style.SUCCESS(f"✓ Created schedule: {entry['name']} ({entry['label']})")
                )
            else:
                schedules_updated += 1
                self.stdout.write(
                    self.style.WARNING(f"↻ Updated schedule: {entry['name']} ({entry['label']})")
                )

        total = schedules_created + schedules_updated
        self.stdout.write('')
        self.stdout.write(
            self.style.SUCCESS(
                f'Done! {schedules_created} schedule(s) created, '
                f'{schedules_updated} schedule(s) updated. '
                f'Total: {total} schedules configured.'
            )
        )
        self.stdout.write('')
        self.stdout.write(
            self.style.NOTICE(
                'Note: Ensure Django-Q cluster is running: python manage.py qcluster'
            )
        )
        self.stdout.write('')
