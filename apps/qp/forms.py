"""
Forms for qp app.

Includes:
- QpRequestsForm: courses to collect question papers for
- QpEditForm: convenor corrections to a single request
- AssignQpReviewerForm
- QpUploadForm: IC upload of papers and solutions (multipart)
- QpReviewForm: per-section scores with approve/reject
- QpRemindersForm
"""

from django import forms
from django.core.exceptions import ValidationError
from django.core.validators import validate_email

from apps.core.http import decode_json_field
from apps.core.validators import validate_pdf
from .models import QpRequest, QpReview


def _clean_course(row):
    if not isinstance(row, dict):
        raise ValidationError('Each course must be an object.')

    code = str(row.get('course_code') or '').strip().upper()
    name = str(row.get('course_name') or '').strip()
    ic_email = str(row.get('ic_email') or '').strip().lower()
    if not code or not name or not ic_email:
        raise ValidationError('Each course needs course_code, course_name and ic_email.')
    validate_email(ic_email)

    category = row.get('category') or QpRequest.Category.FD
    if category not in QpRequest.Category.values:
        raise ValidationError(f'Invalid category: {category}')
    request_type = row.get('request_type') or QpRequest.RequestType.BOTH
    if request_type not in QpRequest.RequestType.values:
        raise ValidationError(f'Invalid request type: {request_type}')

    reviewer_email = str(row.get('reviewer_email') or '').strip().lower()
    if reviewer_email:
        validate_email(reviewer_email)

    return {
        'course_code': code,
        'course_name': name,
        'ic_email': ic_email,
        'category': category,
        'request_type': request_type,
        'reviewer_email': reviewer_email or None,
    }


class QpRequestsForm(forms.Form):
    courses = forms.JSONField()
    ic_deadline = forms.DateTimeField(required=False)
    review_deadline = forms.DateTimeField(required=False)

    def clean_courses(self):
        courses = self.cleaned_data.get('courses') or []
        if not isinstance(courses, list) or not courses:
            raise ValidationError('Provide at least one course.')
        return [_clean_course(row) for row in courses]

    def clean(self):
        cleaned_data = super().clean()
        ic_deadline = cleaned_data.get('ic_deadline')
        review_deadline = cleaned_data.get('review_deadline')
        if ic_deadline and review_deadline and review_deadline <= ic_deadline:
            self.add_error('review_deadline', 'Review deadline must be after the submission deadline.')
        return cleaned_data


class QpEditForm(forms.Form):
    """Every field is optional; only the ones sent are changed."""

    course_code = forms.CharField(required=False, max_length=20)
    course_name = forms.CharField(required=False, max_length=255)
    category = forms.ChoiceField(required=False, choices=QpRequest.Category.choices)
    request_type = forms.ChoiceField(required=False, choices=QpRequest.RequestType.choices)
    ic_email = forms.EmailField(required=False)
    reviewer_email = forms.EmailField(required=False)
    ic_deadline = forms.DateTimeField(required=False)
    review_deadline = forms.DateTimeField(required=False)
    status = forms.ChoiceField(required=False, choices=QpRequest.Status.choices)

    def changes(self):
        """Cleaned values for the fields present in the submitted data."""
        return {
            name: value
            for name, value in self.cleaned_data.items()
            if name in self.data and value not in (None, '')
        }


class AssignQpReviewerForm(forms.Form):
    reviewer = forms.EmailField()
    send_email = forms.NullBooleanField(required=False)


class QpUploadForm(forms.Form):
    mid_sem_file = forms.FileField(required=False, validators=[validate_pdf])
    mid_sem_solution = forms.FileField(required=False, validators=[validate_pdf])
    compre_file = forms.FileField(required=False, validators=[validate_pdf])
    compre_solution = forms.FileField(required=False, validators=[validate_pdf])


def _clean_score(value, section, criterion):
    if value in (None, ''):
        return None
    try:
        score = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{section} {criterion}: score must be a number.')
    if not 0 <= score <= 10:
        raise ValidationError(f'{section} {criterion}: score must be between 0 and 10.')
    return score


class QpReviewForm(forms.Form):
    sections = forms.JSONField()
    status = forms.ChoiceField(choices=QpReview.Status.choices)
    comments = forms.CharField(required=False, max_length=5000)

    def clean_sections(self):
        sections = decode_json_field(self.cleaned_data.get('sections'), {})
        if not isinstance(sections, dict) or not sections:
            raise ValidationError('Provide scores for at least one section.')

        cleaned = {}
        for section, scores in sections.items():
            if section not in QpReview.SECTIONS:
                raise ValidationError(f'Unknown section: {section}')
            if not isinstance(scores, dict):
                raise ValidationError(f'{section}: scores must be an object.')
            cleaned[section] = {
                criterion: _clean_score(scores.get(criterion), section, criterion)
                for criterion in QpReview.CRITERIA
            }
            cleaned[section]['remarks'] = str(scores.get('remarks') or '').strip()
        return cleaned

    def clean(self):
        cleaned_data = super().clean()
        if (
            cleaned_data.get('status') == QpReview.Status.REJECTED
            and not (cleaned_data.get('comments') or '').strip()
        ):
            self.add_error('comments', 'Comments are required when rejecting.')
        return cleaned_data


class QpRemindersForm(forms.Form):
    ids = forms.JSONField(required=False)

    def clean_ids(self):
        ids = self.cleaned_data.get('ids')
        if ids in (None, ''):
            return None
        if not isinstance(ids, list) or not all(isinstance(pk, int) for pk in ids):
            raise ValidationError('ids must be a list of request ids.')
        return ids
