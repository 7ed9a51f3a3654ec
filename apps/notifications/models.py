"""
To-do and notification models.

A Todo is an action item for one user that is closed by a workflow event
(its completion_event, e.g. "review 12 convener"). A Notification is an
informational message with a read flag.
"""

from django.db import models
from django.conf import settings

from apps.core.choices import Module


class Todo(models.Model):
    module = models.CharField(max_length=20, choices=Module.choices, db_index=True)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default='')
    link = models.CharField(max_length=500, blank=True, default='')

    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='todos',
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_todos',
        help_text='Empty for to-dos raised by scheduled jobs'
    )

    completion_event = models.CharField(
        max_length=255,
        db_index=True,
        help_text='Workflow event that closes this to-do'
    )
    deadline = models.DateTimeField(null=True, blank=True)

    completed = models.BooleanField(default=False, db_index=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['completed', 'deadline', '-created_at']
        indexes = [
            models.Index(fields=['assigned_to', 'completed']),
            models.Index(fields=['module', 'completion_event']),
        ]

    def __str__(self):
        return f"{self.title} -> {self.assigned_to_id}"


class Notification(models.Model):
    module = models.CharField(max_length=20, choices=Module.choices, db_index=True)
    title = models.CharField(max_length=255)
    content = models.TextField(blank=True, default='')
    link = models.CharField(max_length=500, blank=True, default='')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications',
    )
    read = models.BooleanField(default=False, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'read']),
        ]

    def __str__(self):
        return self.title
