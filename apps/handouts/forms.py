"""
Forms for handouts app.

Includes:
- HandoutRequestsForm: courses to collect handouts for, with a deadline
- AssignReviewerForm
- HandoutSubmitForm: IC upload (multipart)
- HandoutReviewForm: per-criterion checklist with approve/revision
- FinalDecisionForm
"""

from django import forms
from django.core.exceptions import ValidationError
from django.core.validators import validate_email

from apps.core.validators import validate_pdf
from .models import HandoutRequest, HandoutReview


class HandoutRequestsForm(forms.Form):
    courses = forms.JSONField()
    deadline = forms.DateTimeField(required=False)

    def clean_courses(self):
        courses = self.cleaned_data.get('courses') or []
        if not isinstance(courses, list) or not courses:
            raise ValidationError('Provide at least one course.')

        cleaned = []
        for row in courses:
            if not isinstance(row, dict):
                raise ValidationError('Each course must be an object.')
            code = str(row.get('course_code') or '').strip().upper()
            name = str(row.get('course_name') or '').strip()
            ic_email = str(row.get('ic_email') or '').strip().lower()
            if not code or not name or not ic_email:
                raise ValidationError('Each course needs course_code, course_name and ic_email.')
            validate_email(ic_email)
            cleaned.append({'course_code': code, 'course_name': name, 'ic_email': ic_email})
        return cleaned


class AssignReviewerForm(forms.Form):
    reviewer = forms.EmailField()


class HandoutSubmitForm(forms.ModelForm):
    handout_file = forms.FileField(required=False, validators=[validate_pdf])

    class Meta:
        model = HandoutRequest
        fields = ['open_book', 'mid_sem', 'compre', 'other_evals', 'frequency', 'num_components']


class HandoutReviewForm(forms.ModelForm):

    class Meta:
        model = HandoutReview
        fields = HandoutReview.CRITERIA + ['status', 'comments']

    def clean(self):
        cleaned_data = super().clean()
        if (
            cleaned_data.get('status') == HandoutReview.Status.REVISION
            and not (cleaned_data.get('comments') or '').strip()
        ):
            self.add_error('comments', 'Comments are required when asking for revision.')
        return cleaned_data


class FinalDecisionForm(forms.Form):
    status = forms.ChoiceField(choices=[
        (HandoutRequest.Status.APPROVED, 'Approve'),
        (HandoutRequest.Status.REJECTED, 'Reject'),
        (HandoutRequest.Status.REVISION, 'Revision'),
    ])
    comments = forms.CharField(required=False, max_length=5000)

    def clean(self):
        cleaned_data = super().clean()
        if cleaned_data.get('status') != HandoutRequest.Status.APPROVED and not cleaned_data.get('comments', '').strip():
            self.add_error('comments', 'Comments are required unless approving.')
        return cleaned_data
