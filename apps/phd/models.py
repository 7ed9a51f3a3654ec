"""
Models for the PhD proposal workflow.

A proposal passes through:
supervisor review -> co-supervisor review (if any) -> DRC review
-> DAC review -> seminar booking -> finalising documents

Each stage may revert the proposal to the student. Deadlines for every
stage come from the ProposalSemester the proposal was submitted in.
"""

from django.conf import settings
from django.db import models

from apps.core.validators import UploadPath, validate_pdf

DAC_REVERT_FLAG = 'DAC_REVERT_FLAG'


class PhdStudent(models.Model):

    class PhdType(models.TextChoices):
        FULL_TIME = 'full-time', 'Full-time'
        PART_TIME = 'part-time', 'Part-time'

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='phd_profile',
    )
    supervisor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='supervised_students',
    )
    phd_type = models.CharField(max_length=20, choices=PhdType.choices, default=PhdType.FULL_TIME)

    def __str__(self):
        return self.user.get_full_name()

    @property
    def is_part_time(self):
        return self.phd_type == self.PhdType.PART_TIME


class ProposalSemester(models.Model):
    """A submission cycle and its four stage deadlines."""

    name = models.CharField(max_length=100)
    student_submission_date = models.DateTimeField()
    faculty_review_date = models.DateTimeField()
    drc_review_date = models.DateTimeField()
    dac_review_date = models.DateTimeField()

    DEADLINE_FIELDS = [
        'student_submission_date',
        'faculty_review_date',
        'drc_review_date',
        'dac_review_date',
    ]

    class Meta:
        ordering = ['-student_submission_date']

    def __str__(self):
        return self.name


class Proposal(models.Model):

    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        SUPERVISOR_REVIEW = 'supervisor_review', 'Supervisor Review'
        SUPERVISOR_REVERT = 'supervisor_revert', 'Reverted by Supervisor'
        COSUPERVISOR_REVIEW = 'cosupervisor_review', 'Co-Supervisor Review'
        DRC_REVIEW = 'drc_review', 'DRC Review'
        DRC_REVERT = 'drc_revert', 'Reverted by DRC'
        DAC_REVIEW = 'dac_review', 'DAC Review'
        DAC_REVERT = 'dac_revert', 'Reverted by DAC'
        DAC_ACCEPTED = 'dac_accepted', 'Accepted by DAC'
        SEMINAR_PENDING = 'seminar_pending', 'Seminar Pending'
        FINALISING_DOCUMENTS = 'finalising_documents', 'Finalising Documents'
        COMPLETED = 'completed', 'Completed'
        DELETED = 'deleted', 'Deleted'
        REJECTED = 'rejected', 'Rejected'
        DRAFT_EXPIRED = 'draft_expired', 'Draft Expired'

    INACTIVE_STATUSES = [
        Status.COMPLETED,
        Status.DELETED,
        Status.REJECTED,
        Status.DRAFT_EXPIRED,
    ]

    RESUBMITTABLE_STATUSES = [
        Status.DRAFT,
        Status.SUPERVISOR_REVERT,
        Status.DRC_REVERT,
        Status.DAC_REVERT,
    ]

    REQUIRED_FILE_FIELDS = ['appendix', 'summary', 'outline']
    FILE_FIELDS = REQUIRED_FILE_FIELDS + [
        'place_of_research',
        'outside_co_supervisor_format',
        'outside_supervisor_biodata',
    ]

    semester = models.ForeignKey(ProposalSemester, on_delete=models.CASCADE, related_name='proposals')
    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='phd_proposals',
    )
    supervisor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='supervised_proposals',
    )
    title = models.CharField(max_length=500)
    status = models.CharField(
        max_length=30,
        choices=Status.choices,
        default=Status.SUPERVISOR_REVIEW,
        db_index=True,
    )
    comments = models.TextField(blank=True, default='')

    seminar_date = models.DateTimeField(null=True, blank=True)
    seminar_time = models.CharField(max_length=50, blank=True, default='')
    seminar_venue = models.CharField(max_length=255, blank=True, default='')

    has_outside_co_supervisor = models.BooleanField(default=False)
    declaration = models.BooleanField(default=True)

    appendix = models.FileField(upload_to=UploadPath('phd/proposals'), validators=[validate_pdf])
    summary = models.FileField(upload_to=UploadPath('phd/proposals'), validators=[validate_pdf])
    outline = models.FileField(upload_to=UploadPath('phd/proposals'), validators=[validate_pdf])
    place_of_research = models.FileField(
        upload_to=UploadPath('phd/proposals'), validators=[validate_pdf], blank=True,
    )
    outside_co_supervisor_format = models.FileField(
        upload_to=UploadPath('phd/proposals'), validators=[validate_pdf], blank=True,
    )
    outside_supervisor_biodata = models.FileField(
        upload_to=UploadPath('phd/proposals'), validators=[validate_pdf], blank=True,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title} ({self.get_status_display()})"

    @property
    def is_active(self):
        return self.status not in self.INACTIVE_STATUSES

    @property
    def is_post_dac_revert(self):
        return DAC_REVERT_FLAG in (self.comments or '')

    def dac_emails(self):
        return sorted(self.dac_members.values_list('email', flat=True))


class ProposalCoSupervisor(models.Model):
    proposal = models.ForeignKey(Proposal, on_delete=models.CASCADE, related_name='co_supervisors')
    email = models.EmailField()
    name = models.CharField(max_length=255, blank=True, default='')
    approval_status = models.BooleanField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['proposal', 'email'], name='unique_proposal_cosupervisor'),
        ]

    def __str__(self):
        return self.email


class ProposalDacMember(models.Model):
    proposal = models.ForeignKey(Proposal, on_delete=models.CASCADE, related_name='dac_members')
    email = models.EmailField()
    name = models.CharField(max_length=255, blank=True, default='')

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['proposal', 'email'], name='unique_proposal_dac_member'),
        ]

    def __str__(self):
        return self.email


class ProposalDacReview(models.Model):
    proposal = models.ForeignKey(Proposal, on_delete=models.CASCADE, related_name='dac_reviews')
    email = models.EmailField()
    approved = models.BooleanField()
    comments = models.TextField()
    feedback_file = models.FileField(
        upload_to=UploadPath('phd/dac-feedback'), validators=[validate_pdf], blank=True,
    )
    evaluation = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['proposal', 'email'], name='unique_proposal_dac_review'),
        ]

    def __str__(self):
        return f"{self.email}: {'approved' if self.approved else 'reverted'}"


class SeminarSlot(models.Model):
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='+',
    )
    venue = models.CharField(max_length=255)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    booked_by = models.OneToOneField(
        Proposal,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='seminar_slot',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['start_time']
        constraints = [
            models.UniqueConstraint(fields=['start_time', 'venue'], name='unique_seminar_slot'),
        ]

    def __str__(self):
        return f"{self.venue} @ {self.start_time:%d %b %Y %H:%M}"

    @property
    def is_booked(self):
        return self.booked_by_id is not None
