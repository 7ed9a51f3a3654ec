"""
Views for meetings app.
"""

from django.shortcuts import get_object_or_404

from apps.accounts.permissions import MEETING_USE, require_operation
from apps.activity_log.models import get_activity, serialize_activity
from apps.core.choices import Module
from apps.core.http import api_view, form_errors, iso, json_success, parse_body, user_summary
from .forms import AvailabilityForm, FinalizeForm, InviteesForm, MeetingCreateForm, MeetingDetailsForm
from .models import Meeting
from . import services


def _serialize_slot(slot):
    data = {
        'id': slot.pk,
        'start_time': iso(slot.start_time),
        'end_time': iso(slot.end_time),
    }
    if hasattr(slot, 'venue'):
        data['venue'] = slot.venue
        data['google_meet_link'] = slot.google_meet_link
    return data


def _serialize(meeting):
    data = {
        'id': meeting.pk,
        'title': meeting.title,
        'purpose': meeting.purpose,
        'duration': meeting.duration,
        'deadline': iso(meeting.deadline),
        'status': meeting.status,
        'venue': meeting.venue,
        'google_meet_link': meeting.google_meet_link,
        'organizer': user_summary(meeting.organizer),
        'created_at': iso(meeting.created_at),
        'finalized_slots': [_serialize_slot(s) for s in meeting.finalized_slots.all()],
    }
    if hasattr(meeting, 'participant_count'):
        data['participant_count'] = meeting.participant_count
        data['response_count'] = meeting.response_count
    return data


def _get_meeting(request, pk):
    require_operation(request.user, MEETING_USE)
    return get_object_or_404(Meeting.objects.select_related('organizer'), pk=pk)


@api_view(['GET', 'POST'])
def meeting_list(request):
    require_operation(request.user, MEETING_USE)

    if request.method == 'GET':
        result = services.list_meetings(request.user)
        return json_success(
            organized=[_serialize(m) for m in result['organized']],
            invited=[_serialize(m) for m in result['invited']],
        )

    form = MeetingCreateForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    meeting = services.create_meeting(request.user, form.cleaned_data)
    return json_success(status=201, message='Meeting created.', meeting=_serialize(meeting))


@api_view(['GET'])
def meeting_detail(request, pk):
    detail = services.meeting_detail(request.user, _get_meeting(request, pk))
    meeting = detail['meeting']

    payload = _serialize(meeting)
    payload.update({
        'is_organizer': detail['is_organizer'],
        'participants': [
            {
                **user_summary(p),
                **({'responded': p.pk in detail['responded']} if detail['is_organizer'] else {}),
            }
            for p in detail['participants']
        ],
        'time_slots': [
            {
                **_serialize_slot(entry['slot']),
                'availability': [
                    {'participant': user_summary(a.participant), 'availability': a.availability}
                    for a in entry['availability']
                ],
            }
            for entry in detail['slots']
        ],
    })
    if detail['is_organizer']:
        payload['status_log'] = serialize_activity(get_activity(Module.MEETING, meeting.pk))
    return json_success(meeting=payload)


@api_view(['POST'])
def submit_availability(request, pk):
    meeting = _get_meeting(request, pk)
    form = AvailabilityForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    meeting = services.submit_availability(request.user, meeting, form.cleaned_data['availability'])
    return json_success(message='Availability submitted.', meeting_status=meeting.status)


@api_view(['POST'])
def finalize(request, pk):
    meeting = _get_meeting(request, pk)
    form = FinalizeForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    meeting = services.finalize_meeting(request.user, meeting, form.cleaned_data['final_slots'])
    return json_success(message='Meeting finalized.', meeting=_serialize(meeting))


@api_view(['POST'])
def remind(request, pk):
    count = services.remind_meeting(request.user, _get_meeting(request, pk))
    if not count:
        return json_success(message='All participants have already responded.', reminded=0)
    return json_success(message=f'Reminder sent to {count} participant(s).', reminded=count)


@api_view(['POST'])
def add_invitees(request, pk):
    meeting = _get_meeting(request, pk)
    form = InviteesForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    added = services.add_invitees(request.user, meeting, form.cleaned_data['emails'])
    return json_success(
        message=f'{len(added)} invitee(s) added.',
        added=[user_summary(u) for u in added],
    )


@api_view(['POST'])
def update_details(request, pk):
    meeting = _get_meeting(request, pk)
    form = MeetingDetailsForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    meeting = services.update_meeting_details(
        request.user,
        meeting,
        venue=form.cleaned_data['venue'],
        google_meet_link=form.cleaned_data['google_meet_link'],
    )
    return json_success(message='Meeting details updated.', meeting=_serialize(meeting))


@api_view(['POST'])
def cancel(request, pk):
    services.cancel_meeting(request.user, _get_meeting(request, pk))
    return json_success(message='Meeting cancelled.')
