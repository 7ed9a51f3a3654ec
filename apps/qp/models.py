"""
Models for question paper (QP) review.

Flow:
- DCA convenor opens a request per course, naming the faculty-in-charge
  (IC), the exam(s) it covers and optionally the reviewer
- IC uploads the question papers and solutions for those exams
- The reviewer scores each paper and approves or rejects the request
"""

from django.conf import settings
from django.db import models

from apps.core.validators import UploadPath, validate_pdf


def _document_field(verbose_name):
    return models.FileField(
        verbose_name, upload_to=UploadPath('qp'), validators=[validate_pdf], blank=True,
    )


class QpRequest(models.Model):

    class Status(models.TextChoices):
        NOT_SUBMITTED = 'notsubmitted', 'Not Submitted'
        REVIEW_PENDING = 'review pending', 'Review Pending'
        APPROVED = 'approved', 'Approved'
        REJECTED = 'rejected', 'Rejected'

    class Category(models.TextChoices):
        FD = 'FD', 'First Degree'
        HD = 'HD', 'Higher Degree'

    class RequestType(models.TextChoices):
        MID_SEM = 'mid_sem', 'Mid Sem'
        COMPRE = 'compre', 'Comprehensive'
        BOTH = 'both', 'Both'

    MID_SEM_FILES = ['mid_sem_file', 'mid_sem_solution']
    COMPRE_FILES = ['compre_file', 'compre_solution']
    FILE_FIELDS = MID_SEM_FILES + COMPRE_FILES

    course_code = models.CharField(max_length=20, db_index=True)
    course_name = models.CharField(max_length=255)
    category = models.CharField(max_length=2, choices=Category.choices, default=Category.FD)
    request_type = models.CharField(max_length=10, choices=RequestType.choices, default=RequestType.BOTH)
    ic = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='qp_requests_in_charge',
        verbose_name='faculty-in-charge',
    )
    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='qp_requests_to_review',
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.NOT_SUBMITTED,
        db_index=True,
    )

    mid_sem_file = _document_field('mid sem question paper')
    mid_sem_solution = _document_field('mid sem solution')
    compre_file = _document_field('compre question paper')
    compre_solution = _document_field('compre solution')

    ic_deadline = models.DateTimeField(null=True, blank=True)
    review_deadline = models.DateTimeField(null=True, blank=True)
    submitted_on = models.DateTimeField(null=True, blank=True)

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
        verbose_name = 'QP review request'

    def __str__(self):
        return f"{self.course_code} - {self.course_name} ({self.get_request_type_display()})"

    @property
    def required_files(self):
        if self.request_type == self.RequestType.MID_SEM:
            return list(self.MID_SEM_FILES)
        if self.request_type == self.RequestType.COMPRE:
            return list(self.COMPRE_FILES)
        return list(self.FILE_FIELDS)

    @property
    def required_sections(self):
        return {
            self.RequestType.MID_SEM: ['MidSem'],
            self.RequestType.COMPRE: ['Compre'],
        }.get(self.request_type, ['MidSem', 'Compre'])

    @property
    def submission_event(self):
        return f'qp submission {self.pk} by {self.ic.email}'

    def review_event(self, reviewer):
        return f'qp review {self.pk} by {reviewer.email}'


class QpReview(models.Model):
    """
    One reviewer verdict on a submission.

    sections maps "MidSem", "Compre" and "Others" to the reviewer's scores
    (0-10, or null when not scored) for each criterion plus free remarks.
    """

    class Status(models.TextChoices):
        APPROVED = 'approved', 'Approved'
        REJECTED = 'rejected', 'Rejected'

    SECTIONS = ['MidSem', 'Compre', 'Others']
    SECTION_LABELS = {
        'MidSem': 'Mid Semester Exam',
        'Compre': 'Comprehensive Exam',
        'Others': 'Other Evaluations',
    }
    CRITERIA = ['language', 'length', 'mix_of_questions', 'cover_learning', 'solution']

    request = models.ForeignKey(QpRequest, on_delete=models.CASCADE, related_name='reviews')
    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='qp_reviews',
    )
    sections = models.JSONField(default=dict)
    status = models.CharField(max_length=20, choices=Status.choices)
    comments = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.request} - {self.get_status_display()}"
