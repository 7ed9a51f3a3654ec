"""
Models for conference approval applications.

An application moves through an ordered chain of states:
Faculty -> DRC Member -> DRC Convener -> HoD -> Completed

With direct flow switched on, the DRC Member and HoD stages are skipped.
"""

from django.conf import settings
from django.db import models

from apps.core.validators import UploadPath, validate_pdf


class ConferenceSetting(models.Model):
    """Single-row global settings for the conference module."""

    direct_flow = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'conference setting'

    def __str__(self):
        return f"Direct flow: {'on' if self.direct_flow else 'off'}"

    @classmethod
    def load(cls):
        setting, _ = cls.objects.get_or_create(pk=1)
        return setting


class ConferenceApplication(models.Model):

    class State(models.TextChoices):
        FACULTY = 'Faculty', 'Faculty'
        DRC_MEMBER = 'DRC Member', 'DRC Member'
        DRC_CONVENER = 'DRC Convener', 'DRC Convener'
        HOD = 'HoD', 'HoD'
        COMPLETED = 'Completed', 'Completed'

    class Mode(models.TextChoices):
        ONLINE = 'online', 'Online'
        OFFLINE = 'offline', 'Offline'

    # States in workflow order
    STATE_ORDER = [
        State.FACULTY,
        State.DRC_MEMBER,
        State.DRC_CONVENER,
        State.HOD,
        State.COMPLETED,
    ]

    FILE_FIELDS = [
        'letter_of_invitation',
        'first_page_of_paper',
        'reviewers_comments',
        'details_of_event',
        'other_documents',
    ]

    applicant = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='conference_applications',
    )
    state = models.CharField(max_length=20, choices=State.choices, db_index=True)

    purpose = models.CharField(max_length=255)
    content_title = models.CharField(max_length=500)
    event_name = models.CharField(max_length=500)
    venue = models.CharField(max_length=500)
    date_from = models.DateField()
    date_to = models.DateField()
    organized_by = models.CharField(max_length=500)
    mode_of_event = models.CharField(max_length=10, choices=Mode.choices)
    description = models.TextField()

    # [{"key": "Travel", "amount": "12000"}, ...]
    reimbursements = models.JSONField(default=list, blank=True)
    # [{"source": "Institute", "amount": "8000"}, ...]
    funding_split = models.JSONField(default=list, blank=True)

    letter_of_invitation = models.FileField(
        upload_to=UploadPath('conference'), validators=[validate_pdf], null=True, blank=True,
    )
    first_page_of_paper = models.FileField(
        upload_to=UploadPath('conference'), validators=[validate_pdf], null=True, blank=True,
    )
    reviewers_comments = models.FileField(
        upload_to=UploadPath('conference'), validators=[validate_pdf], null=True, blank=True,
    )
    details_of_event = models.FileField(
        upload_to=UploadPath('conference'), validators=[validate_pdf], null=True, blank=True,
    )
    other_documents = models.FileField(
        upload_to=UploadPath('conference'), validators=[validate_pdf], null=True, blank=True,
    )

    request_edit = models.BooleanField(default=False)
    request_delete = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['applicant', '-created_at']),
            models.Index(fields=['state']),
        ]

    def __str__(self):
        return f"#{self.pk} {self.event_name} ({self.state})"

    @property
    def state_index(self):
        return self.STATE_ORDER.index(self.state)


class ConferenceMember(models.Model):
    """A DRC member assigned to review an application."""

    application = models.ForeignKey(
        ConferenceApplication,
        on_delete=models.CASCADE,
        related_name='members',
    )
    member = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='conference_assignments',
    )
    # None until the member has reviewed
    review_status = models.BooleanField(null=True, blank=True)
    comments = models.TextField(blank=True, default='')
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['application', 'member'], name='unique_conference_member'),
        ]

    def __str__(self):
        return f"{self.member} on #{self.application_id}"

    @property
    def has_reviewed(self):
        return self.review_status is not None


class ConferenceReview(models.Model):
    """A convener or HoD decision on an application."""

    class ReviewerRole(models.TextChoices):
        CONVENER = 'convener', 'DRC Convener'
        HOD = 'hod', 'HoD'

    application = models.ForeignKey(
        ConferenceApplication,
        on_delete=models.CASCADE,
        related_name='reviews',
    )
    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='conference_reviews',
    )
    reviewer_role = models.CharField(max_length=10, choices=ReviewerRole.choices)
    status = models.BooleanField()
    comments = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']

    def __str__(self):
        return f"{self.get_reviewer_role_display()} {'approved' if self.status else 'rejected'} #{self.application_id}"
