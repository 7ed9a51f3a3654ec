"""
Models for course handout review.

Flow:
- DCA convenor creates a request per course and instructor-in-charge (IC)
- IC uploads the handout; the assigned reviewer checks it against the
  review criteria and approves or asks for revision
- DCA convenor records the final decision
"""

from django.conf import settings
from django.db import models

from apps.core.validators import UploadPath, validate_pdf


class HandoutRequest(models.Model):

    class Status(models.TextChoices):
        NOT_SUBMITTED = 'notsubmitted', 'Not Submitted'
        REVIEW_PENDING = 'review pending', 'Review Pending'
        APPROVED = 'approved', 'Approved'
        REVISION = 'revision', 'Revision Requested'
        REJECTED = 'rejected', 'Rejected'

    # Statuses in which the IC is expected to upload
    OPEN_STATUSES = [Status.NOT_SUBMITTED, Status.REVISION]

    course_code = models.CharField(max_length=20, db_index=True)
    course_name = models.CharField(max_length=255)
    ic = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='handouts_in_charge',
        verbose_name='instructor-in-charge',
    )
    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='handouts_to_review',
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.NOT_SUBMITTED,
        db_index=True,
    )

    open_book = models.CharField(max_length=255, blank=True, default='')
    mid_sem = models.TextField(blank=True, default='')
    compre = models.TextField(blank=True, default='')
    other_evals = models.TextField(blank=True, default='')
    frequency = models.PositiveIntegerField(null=True, blank=True)
    num_components = models.PositiveIntegerField(null=True, blank=True)
    handout_file = models.FileField(
        upload_to=UploadPath('handouts'),
        validators=[validate_pdf],
        blank=True,
    )

    submitted_on = models.DateTimeField(null=True, blank=True)
    deadline = models.DateTimeField(null=True, blank=True)
    final_comments = models.TextField(blank=True, default='')

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='+',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['course_code', '-created_at']

    def __str__(self):
        return f"{self.course_code} - {self.course_name}"

    @property
    def submission_event(self):
        return f'handout submission {self.course_code} by {self.ic.email}'

    @property
    def revision_event(self):
        return f'handout revision {self.course_code} by {self.ic.email}'

    def review_event(self, reviewer):
        return f'handout review {self.course_code} by {reviewer.email}'

    @property
    def final_decision_event(self):
        return f'handout final decision {self.course_code} {self.pk}'


class HandoutReview(models.Model):

    class Status(models.TextChoices):
        APPROVED = 'approved', 'Approved'
        REVISION = 'revision', 'Revision'

    CRITERIA = [
        'scope_and_objective',
        'textbook_prescribed',
        'lecturewise_plan',
        'evaluation_scheme',
        'number_of_components',
        'plagiarism_policy',
    ]

    handout = models.ForeignKey(HandoutRequest, on_delete=models.CASCADE, related_name='reviews')
    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='handout_reviews',
    )
    scope_and_objective = models.BooleanField(default=False)
    textbook_prescribed = models.BooleanField(default=False)
    lecturewise_plan = models.BooleanField(default=False)
    evaluation_scheme = models.BooleanField(default=False)
    number_of_components = models.BooleanField(default=False)
    plagiarism_policy = models.BooleanField(default=False)
    status = models.CharField(max_length=20, choices=Status.choices)
    comments = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.handout} - {self.get_status_display()}"
