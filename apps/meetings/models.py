"""
Models for meeting scheduling.

Flow:
- Organizer proposes time slots and invites participants
- Participants mark each slot available/unavailable before the deadline
- Organizer finalizes one or more slots; reminders and completion are
  scheduled as one-off background jobs
"""

from django.conf import settings
from django.db import models


class Meeting(models.Model):

    class Status(models.TextChoices):
        PENDING_RESPONSES = 'pending_responses', 'Pending Responses'
        AWAITING_FINALIZATION = 'awaiting_finalization', 'Awaiting Finalization'
        SCHEDULED = 'scheduled', 'Scheduled'
        COMPLETED = 'completed', 'Completed'
        CANCELLED = 'cancelled', 'Cancelled'

    title = models.CharField(max_length=255)
    purpose = models.TextField(blank=True, default='')
    duration = models.PositiveIntegerField(help_text='Duration in minutes')
    organizer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='organized_meetings',
    )
    deadline = models.DateTimeField(help_text='Last moment participants can respond')
    status = models.CharField(
        max_length=30,
        choices=Status.choices,
        default=Status.PENDING_RESPONSES,
        db_index=True,
    )
    venue = models.CharField(max_length=255, blank=True, default='')
    google_meet_link = models.URLField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title} ({self.get_status_display()})"

    @property
    def is_closed(self):
        return self.status in (self.Status.COMPLETED, self.Status.CANCELLED)


class MeetingParticipant(models.Model):
    meeting = models.ForeignKey(Meeting, on_delete=models.CASCADE, related_name='participants')
    participant = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='meeting_invitations',
    )
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['meeting', 'participant'], name='unique_meeting_participant'),
        ]

    def __str__(self):
        return f"{self.participant} in {self.meeting_id}"


class MeetingTimeSlot(models.Model):
    meeting = models.ForeignKey(Meeting, on_delete=models.CASCADE, related_name='time_slots')
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()

    class Meta:
        ordering = ['start_time']

    def __str__(self):
        return f"{self.start_time:%d %b %Y %H:%M} - {self.end_time:%H:%M}"


class MeetingAvailability(models.Model):

    class Availability(models.TextChoices):
        AVAILABLE = 'available', 'Available'
        UNAVAILABLE = 'unavailable', 'Unavailable'

    time_slot = models.ForeignKey(MeetingTimeSlot, on_delete=models.CASCADE, related_name='availability')
    participant = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='meeting_availability',
    )
    availability = models.CharField(max_length=20, choices=Availability.choices)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'meeting availability'
        constraints = [
            models.UniqueConstraint(fields=['time_slot', 'participant'], name='unique_slot_participant'),
        ]


class FinalizedMeetingSlot(models.Model):
    meeting = models.ForeignKey(Meeting, on_delete=models.CASCADE, related_name='finalized_slots')
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    venue = models.CharField(max_length=255, blank=True, default='')
    google_meet_link = models.URLField(blank=True, default='')

    class Meta:
        ordering = ['start_time']

    def __str__(self):
        return f"{self.meeting.title} @ {self.start_time:%d %b %Y %H:%M}"
