"""
Activity log model for workflow audit trails.

Every workflow app records its status history here:
- Conference application created / reviewed / edit and delete requests
- PhD proposal submissions, reviews, reverts and seminar bookings
- Handout submissions and decisions
- Meeting lifecycle events
"""

from django.db import models
from django.conf import settings

from apps.core.choices import Module


class ActivityLog(models.Model):
    """
    Audit log entry for a workflow object.

    The object is addressed by (module, object_id) rather than a foreign key
    so a log survives the deletion of the object it describes.
    """

    module = models.CharField(max_length=20, choices=Module.choices, db_index=True)
    object_id = models.PositiveBigIntegerField(db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='activity_logs',
        help_text='User who performed the action (empty for scheduled jobs)'
    )
    action = models.CharField(max_length=255)
    comments = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = 'activity log'
        verbose_name_plural = 'activity logs'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['module', 'object_id', '-created_at']),
            models.Index(fields=['user', '-created_at']),
        ]

    def __str__(self):
        return f"{self.module}#{self.object_id} - {self.action}"


def log_activity(module, object_id, user, action, comments=None):
    """
    Helper function to create activity log entries.

    Args:
        module: One of apps.core.choices.Module values
        object_id: Primary key of the logged object
        user: User who performed the action (None for scheduled jobs)
        action: Short description, e.g. "Member approved"
        comments: Optional free text

    Returns:
        Created ActivityLog instance
    """
    return ActivityLog.objects.create(
        module=module,
        object_id=object_id,
        user=user,
        action=action,
        comments=comments or None,
    )


def get_activity(module, object_id):
    """Return the status history for an object, oldest first."""
    return (
        ActivityLog.objects
        .filter(module=module, object_id=object_id)
        .select_related('user')
        .order_by('created_at', 'id')
    )


def serialize_activity(logs):
    return [
        {
            'action': log.action,
            'comments': log.comments,
            'user': log.user.email if log.user else None,
            'timestamp': log.created_at.isoformat(),
        }
        for log in logs
    ]
