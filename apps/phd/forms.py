"""
Forms for phd app.

Includes:
- ProposalSubmitForm / ProposalResubmitForm: multipart proposal payload
- SupervisorReviewForm, DrcReviewForm, DacReviewForm: stage decisions
- SeminarSlotsForm: generates weekday slots over a date range
- BookSlotForm, SemesterForm
"""

from datetime import datetime, timedelta

from django import forms
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.utils import timezone

from apps.core.validators import validate_pdf
from .models import ProposalSemester


def _clean_email_list(value, label):
    value = value or []
    if not isinstance(value, list):
        raise ValidationError(f'{label} must be a list.')
    emails = []
    for email in value:
        if not isinstance(email, str):
            raise ValidationError(f'{label} must contain email addresses.')
        email = email.strip().lower()
        validate_email(email)
        if email not in emails:
            emails.append(email)
    return emails


def _clean_people(value, label, name_required=False):
    """Validate [{email, name?}] rows."""
    value = value or []
    if not isinstance(value, list):
        raise ValidationError(f'{label} must be a list.')
    people = []
    seen = set()
    for row in value:
        if not isinstance(row, dict) or not isinstance(row.get('email'), str):
            raise ValidationError(f'Each entry in {label.lower()} needs an email.')
        email = row['email'].strip().lower()
        validate_email(email)
        name = str(row.get('name') or '').strip()
        if name_required and not name:
            raise ValidationError(f'Each entry in {label.lower()} needs a name.')
        if email in seen:
            continue
        seen.add(email)
        people.append({'email': email, 'name': name})
    return people


class ProposalResubmitForm(forms.Form):
    title = forms.CharField(max_length=500)
    appendix = forms.FileField(required=False, validators=[validate_pdf])
    summary = forms.FileField(required=False, validators=[validate_pdf])
    outline = forms.FileField(required=False, validators=[validate_pdf])
    place_of_research = forms.FileField(required=False, validators=[validate_pdf])
    outside_co_supervisor_format = forms.FileField(required=False, validators=[validate_pdf])
    outside_supervisor_biodata = forms.FileField(required=False, validators=[validate_pdf])


class ProposalSubmitForm(ProposalResubmitForm):
    semester = forms.ModelChoiceField(queryset=ProposalSemester.objects.all())
    has_outside_co_supervisor = forms.BooleanField(required=False)
    declaration = forms.BooleanField()
    internal_co_supervisors = forms.JSONField(required=False)
    external_co_supervisors = forms.JSONField(required=False)

    def clean_internal_co_supervisors(self):
        return _clean_email_list(self.cleaned_data.get('internal_co_supervisors'), 'Internal co-supervisors')

    def clean_external_co_supervisors(self):
        return _clean_people(
            self.cleaned_data.get('external_co_supervisors'),
            'External co-supervisors',
            name_required=True,
        )


class SupervisorReviewForm(forms.Form):
    action = forms.ChoiceField(choices=[('accept', 'Accept'), ('revert', 'Revert')])
    comments = forms.CharField(required=False, max_length=5000)
    dac_members = forms.JSONField(required=False)

    def clean_dac_members(self):
        return _clean_people(self.cleaned_data.get('dac_members'), 'DAC members')

    def clean(self):
        cleaned_data = super().clean()
        action = cleaned_data.get('action')
        if action == 'revert' and not cleaned_data.get('comments', '').strip():
            self.add_error('comments', 'Comments are required when reverting.')
        if action == 'accept' and len(cleaned_data.get('dac_members') or []) < 2:
            self.add_error('dac_members', 'Suggest at least two DAC members.')
        return cleaned_data


class DrcReviewForm(forms.Form):
    action = forms.ChoiceField(choices=[('accept', 'Accept'), ('revert', 'Revert'), ('reject', 'Reject')])
    comments = forms.CharField(required=False, max_length=5000)
    selected_dac_members = forms.JSONField(required=False)

    def clean_selected_dac_members(self):
        return _clean_email_list(self.cleaned_data.get('selected_dac_members'), 'Selected DAC members')

    def clean(self):
        cleaned_data = super().clean()
        action = cleaned_data.get('action')
        if action in ('revert', 'reject') and not cleaned_data.get('comments', '').strip():
            self.add_error('comments', f'Comments are required to {action}.')
        if action == 'accept' and not cleaned_data.get('selected_dac_members'):
            self.add_error('selected_dac_members', 'Select at least one DAC member.')
        return cleaned_data


class DacReviewForm(forms.Form):
    approved = forms.TypedChoiceField(
        choices=[('true', 'Approve'), ('false', 'Revert')],
        coerce=lambda value: value in (True, 'true', 'True', '1'),
    )
    comments = forms.CharField(max_length=10000)
    evaluation = forms.JSONField(required=False)
    feedback_file = forms.FileField(required=False, validators=[validate_pdf])

    def __init__(self, data=None, *args, **kwargs):
        if data is not None and isinstance(data.get('approved'), bool):
            data = {**data, 'approved': 'true' if data['approved'] else 'false'}
        super().__init__(data, *args, **kwargs)

    def clean_evaluation(self):
        evaluation = self.cleaned_data.get('evaluation') or {}
        if not isinstance(evaluation, dict):
            raise ValidationError('Evaluation must be an object.')
        return evaluation


class SemesterForm(forms.ModelForm):

    class Meta:
        model = ProposalSemester
        fields = ['name'] + ProposalSemester.DEADLINE_FIELDS

    def clean(self):
        cleaned_data = super().clean()
        dates = [cleaned_data.get(f) for f in ProposalSemester.DEADLINE_FIELDS]
        if all(dates) and dates != sorted(dates):
            raise ValidationError('Deadlines must be in order: submission, faculty, DRC, DAC.')
        return cleaned_data


class SeminarSlotsForm(forms.Form):
    venue = forms.CharField(max_length=255)
    start_date = forms.DateField()
    end_date = forms.DateField()
    start_time = forms.TimeField()
    end_time = forms.TimeField()
    duration_minutes = forms.IntegerField(min_value=15, max_value=480)

    def clean(self):
        cleaned_data = super().clean()
        if self.errors:
            return cleaned_data
        if cleaned_data['end_date'] < cleaned_data['start_date']:
            raise ValidationError('End date cannot be before start date.')
        if cleaned_data['end_time'] <= cleaned_data['start_time']:
            raise ValidationError('End time must be after start time.')
        return cleaned_data

    def slots(self):
        """
        Weekday slots of duration_minutes between start_time and end_time
        on every day of the range.

        Returns:
            list of {'venue', 'start_time', 'end_time'} with aware datetimes
        """
        data = self.cleaned_data
        length = timedelta(minutes=data['duration_minutes'])
        slots = []
        day = data['start_date']
        while day <= data['end_date']:
            if day.weekday() < 5:
                start = timezone.make_aware(datetime.combine(day, data['start_time']))
                day_end = timezone.make_aware(datetime.combine(day, data['end_time']))
                while start + length <= day_end:
                    slots.append({'venue': data['venue'], 'start_time': start, 'end_time': start + length})
                    start += length
            day += timedelta(days=1)
        return slots


class BookSlotForm(forms.Form):
    slot_id = forms.IntegerField(min_value=1)
