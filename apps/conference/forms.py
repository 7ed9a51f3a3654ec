"""
Forms for conference app.

Includes:
- ConferenceApplicationForm: create/edit payload (multipart, JSON lists
  for reimbursements and funding split)
- ReviewForm: approve/reject with comments
- MembersForm, RequestActionForm, HandleRequestForm, FlowForm
"""

from decimal import Decimal, InvalidOperation

from django import forms
from django.core.exceptions import ValidationError

from .models import ConferenceApplication


def _clean_amount_rows(rows, label_key, field_label):
    """Validate [{label_key: str, "amount": number}] rows."""
    if not isinstance(rows, list):
        raise ValidationError(f'{field_label} must be a list.')

    cleaned = []
    for row in rows:
        if not isinstance(row, dict):
            raise ValidationError(f'Each {field_label.lower()} entry must be an object.')
        label = str(row.get(label_key, '')).strip()
        if not label:
            raise ValidationError(f'Each {field_label.lower()} entry needs a {label_key}.')
        try:
            amount = Decimal(str(row.get('amount', '')))
        except InvalidOperation:
            raise ValidationError(f'Invalid amount for {label}.')
        if amount < 0:
            raise ValidationError(f'Amount for {label} cannot be negative.')
        cleaned.append({label_key: label, 'amount': str(amount)})
    return cleaned


class ConferenceApplicationForm(forms.ModelForm):

    reimbursements = forms.JSONField(required=False)
    funding_split = forms.JSONField(required=False)

    class Meta:
        model = ConferenceApplication
        fields = [
            'purpose', 'content_title', 'event_name', 'venue',
            'date_from', 'date_to', 'organized_by', 'mode_of_event',
            'description', 'reimbursements', 'funding_split',
        ] + ConferenceApplication.FILE_FIELDS

    def clean_reimbursements(self):
        rows = self.cleaned_data.get('reimbursements') or []
        return _clean_amount_rows(rows, 'key', 'Reimbursements')

    def clean_funding_split(self):
        rows = self.cleaned_data.get('funding_split') or []
        return _clean_amount_rows(rows, 'source', 'Funding split')

    def clean(self):
        cleaned_data = super().clean()
        date_from = cleaned_data.get('date_from')
        date_to = cleaned_data.get('date_to')
        if date_from and date_to and date_to < date_from:
            self.add_error('date_to', 'End date cannot be before start date.')

        reimbursements = cleaned_data.get('reimbursements') or []
        funding_split = cleaned_data.get('funding_split') or []
        if reimbursements and funding_split:
            requested = sum(Decimal(r['amount']) for r in reimbursements)
            funded = sum(Decimal(f['amount']) for f in funding_split)
            if requested != funded:
                self.add_error('funding_split', 'Funding split must add up to the total reimbursement.')
        return cleaned_data


class ReviewForm(forms.Form):
    status = forms.TypedChoiceField(
        choices=[('true', 'Approve'), ('false', 'Reject')],
        coerce=lambda value: value in (True, 'true', 'True', '1'),
    )
    comments = forms.CharField(required=False, max_length=5000)

    def __init__(self, data=None, **kwargs):
        if data is not None and isinstance(data.get('status'), bool):
            data = {**data, 'status': 'true' if data['status'] else 'false'}
        super().__init__(data, **kwargs)

    def clean(self):
        cleaned_data = super().clean()
        if cleaned_data.get('status') is False and not cleaned_data.get('comments', '').strip():
            self.add_error('comments', 'Comments are required when rejecting.')
        return cleaned_data


class MembersForm(forms.Form):
    members = forms.JSONField(required=False)

    def clean_members(self):
        members = self.cleaned_data.get('members') or []
        if not isinstance(members, list) or not all(isinstance(m, str) for m in members):
            raise ValidationError('members must be a list of email addresses.')
        return members


class RequestActionForm(forms.Form):
    action = forms.ChoiceField(choices=[('edit', 'Edit'), ('delete', 'Delete')])


class HandleRequestForm(forms.Form):
    action = forms.ChoiceField(choices=[('edit', 'Edit'), ('delete', 'Delete')])
    accept = forms.BooleanField(required=False)


class FlowForm(forms.Form):
    direct_flow = forms.BooleanField(required=False)
