"""
Forms for meetings app.

Includes:
- MeetingCreateForm: title, purpose, duration, deadline, participants, time slots
- AvailabilityForm: [{timeSlotId, availability}] entries
- FinalizeForm: chosen slots with venue/link
- InviteesForm, MeetingDetailsForm
"""

from django import forms
from django.core.exceptions import ValidationError
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .models import MeetingAvailability


def _parse_aware(value, label='time'):
    dt = parse_datetime(value) if isinstance(value, str) else None
    if dt is None:
        raise ValidationError(f'Invalid {label}: {value!r}')
    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt)
    return dt


def _email_list(value, field_label):
    value = value or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f'{field_label} must be a list of email addresses.')
    return value


class MeetingCreateForm(forms.Form):
    title = forms.CharField(max_length=255)
    purpose = forms.CharField(required=False)
    duration = forms.IntegerField(min_value=5, max_value=480)
    deadline = forms.DateTimeField()
    participants = forms.JSONField()
    time_slots = forms.JSONField()

    def clean_deadline(self):
        deadline = self.cleaned_data['deadline']
        if deadline <= timezone.now():
            raise ValidationError('Deadline must be in the future.')
        return deadline

    def clean_participants(self):
        participants = _email_list(self.cleaned_data.get('participants'), 'Participants')
        if not participants:
            raise ValidationError('At least one participant is required.')
        return participants

    def clean_time_slots(self):
        slots = self.cleaned_data.get('time_slots') or []
        if not isinstance(slots, list) or not slots:
            raise ValidationError('At least one time slot is required.')
        parsed = sorted({_parse_aware(slot, 'time slot') for slot in slots})
        if parsed[0] <= timezone.now():
            raise ValidationError('Time slots must be in the future.')
        return parsed


class AvailabilityForm(forms.Form):
    availability = forms.JSONField()

    def clean_availability(self):
        entries = self.cleaned_data.get('availability') or []
        if not isinstance(entries, list) or not entries:
            raise ValidationError('Availability must be a non-empty list.')

        valid = set(MeetingAvailability.Availability.values)
        cleaned = {}
        for entry in entries:
            if not isinstance(entry, dict):
                raise ValidationError('Each availability entry must be an object.')
            slot_id = entry.get('timeSlotId')
            status = entry.get('availability')
            if not isinstance(slot_id, int) or status not in valid:
                raise ValidationError('Each entry needs an integer timeSlotId and availability available/unavailable.')
            cleaned[slot_id] = status
        return cleaned


class FinalizeForm(forms.Form):
    final_slots = forms.JSONField()

    def clean_final_slots(self):
        slots = self.cleaned_data.get('final_slots') or []
        if not isinstance(slots, list) or not slots:
            raise ValidationError('Select at least one slot to finalize.')

        cleaned = []
        for slot in slots:
            if not isinstance(slot, dict) or not isinstance(slot.get('timeSlotId'), int):
                raise ValidationError('Each final slot needs an integer timeSlotId.')
            venue = (slot.get('venue') or '').strip()
            link = (slot.get('googleMeetLink') or '').strip()
            if not venue and not link:
                raise ValidationError('Each final slot needs a venue or a meeting link.')
            if link:
                forms.URLField().clean(link)
            cleaned.append({'time_slot_id': slot['timeSlotId'], 'venue': venue, 'google_meet_link': link})
        return cleaned


class InviteesForm(forms.Form):
    emails = forms.JSONField()

    def clean_emails(self):
        emails = _email_list(self.cleaned_data.get('emails'), 'Invitees')
        if not emails:
            raise ValidationError('At least one invitee is required.')
        return emails


class MeetingDetailsForm(forms.Form):
    venue = forms.CharField(required=False, max_length=255)
    google_meet_link = forms.URLField(required=False)

    def clean(self):
        cleaned_data = super().clean()
        if not cleaned_data.get('venue') and not cleaned_data.get('google_meet_link'):
            raise ValidationError('Provide a venue or a meeting link.')
        return cleaned_data
