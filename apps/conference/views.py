"""
Views for conference app.

JSON endpoints for the approval chain. Request validation happens in
forms; all state changes go through services.
"""

from django.core.exceptions import PermissionDenied
from django.core.paginator import Paginator
from django.shortcuts import get_object_or_404

from apps.accounts.permissions import CONFERENCE_GET_FLOW, CONFERENCE_VIEW_ALL, require_operation
from apps.activity_log.models import get_activity, serialize_activity
from apps.core.choices import Module
from apps.core.http import api_view, file_url, form_errors, iso, json_success, parse_body, user_summary
from .filters import ApplicationFilter
from .forms import (
    ConferenceApplicationForm, FlowForm, HandleRequestForm, MembersForm,
    RequestActionForm, ReviewForm,
)
from .models import ConferenceApplication
from . import services


def _serialize(application, detail=False):
    data = {
        'id': application.pk,
        'state': application.state,
        'applicant': user_summary(application.applicant),
        'event_name': application.event_name,
        'content_title': application.content_title,
        'date_from': iso(application.date_from),
        'date_to': iso(application.date_to),
        'request_edit': application.request_edit,
        'request_delete': application.request_delete,
        'created_at': iso(application.created_at),
    }
    if hasattr(application, 'members_assigned'):
        data['members_assigned'] = application.members_assigned
        data['members_reviewed'] = application.members_reviewed
    if not detail:
        return data

    data.update({
        'purpose': application.purpose,
        'venue': application.venue,
        'organized_by': application.organized_by,
        'mode_of_event': application.mode_of_event,
        'description': application.description,
        'reimbursements': application.reimbursements,
        'funding_split': application.funding_split,
        'files': {
            field: file_url(getattr(application, field))
            for field in ConferenceApplication.FILE_FIELDS
        },
        'members': [
            {
                **user_summary(m.member),
                'review_status': m.review_status,
                'comments': m.comments,
            }
            for m in application.members.select_related('member')
        ],
        'reviews': [
            {
                'reviewer': user_summary(r.reviewer),
                'role': r.reviewer_role,
                'status': r.status,
                'comments': r.comments,
                'created_at': iso(r.created_at),
            }
            for r in application.reviews.select_related('reviewer')
        ],
        'status_log': serialize_activity(get_activity(Module.CONFERENCE, application.pk)),
    })
    return data


def _get_application(pk):
    return get_object_or_404(ConferenceApplication.objects.select_related('applicant'), pk=pk)


# =============================================================================
# Applicant
# =============================================================================

@api_view(['POST'])
def application_create(request):
    form = ConferenceApplicationForm(parse_body(request), request.FILES)
    if not form.is_valid():
        return form_errors(form)

    application = services.create_application(request.user, form.cleaned_data)
    return json_success(
        status=201,
        message='Application submitted successfully.',
        application=_serialize(application),
    )


@api_view(['POST'])
def application_edit(request, pk):
    application = _get_application(pk)
    if application.applicant_id != request.user.pk:
        raise PermissionDenied('Only the applicant can edit this application.')

    form = ConferenceApplicationForm(parse_body(request), request.FILES, instance=application)
    if not form.is_valid():
        return form_errors(form)

    application = services.edit_application(request.user, application, form.cleaned_data)
    return json_success(message='Application resubmitted.', application=_serialize(application))


@api_view(['GET'])
def my_applications(request):
    applications = ConferenceApplication.objects.filter(applicant=request.user).select_related('applicant')
    return json_success(applications=[_serialize(a) for a in applications])


@api_view(['GET'])
def application_detail(request, pk):
    application = _get_application(pk)
    if not services.can_view_application(request.user, application):
        raise PermissionDenied("You don't have permission to view this application.")
    return json_success(application=_serialize(application, detail=True))


@api_view(['POST'])
def request_action(request, pk):
    form = RequestActionForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    action = form.cleaned_data['action']
    services.request_action(request.user, _get_application(pk), action)
    return json_success(message=f'{action.capitalize()} request submitted.')


# =============================================================================
# Reviewers
# =============================================================================

@api_view(['GET'])
def pending(request):
    result = services.pending_applications(request.user)
    payload = {'applications': [_serialize(a) for a in result['applications']]}
    if 'is_direct' in result:
        payload['is_direct'] = result['is_direct']
    return json_success(**payload)


@api_view(['GET'])
def all_applications(request):
    require_operation(request.user, CONFERENCE_VIEW_ALL)

    filterset = ApplicationFilter(
        request.GET,
        queryset=ConferenceApplication.objects.select_related('applicant'),
    )
    if not filterset.is_valid():
        return form_errors(filterset.form)

    paginator = Paginator(filterset.qs, 25)
    page = paginator.get_page(request.GET.get('page'))
    return json_success(
        page=page.number,
        pages=paginator.num_pages,
        total=paginator.count,
        applications=[_serialize(a) for a in page.object_list],
    )


@api_view(['POST'])
def set_members(request, pk):
    form = MembersForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    members = services.set_members(request.user, _get_application(pk), form.cleaned_data['members'])
    return json_success(message='Members assigned.', members=[user_summary(m) for m in members])


def _review(request, pk, service):
    form = ReviewForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    application = service(
        request.user,
        _get_application(pk),
        form.cleaned_data['status'],
        form.cleaned_data['comments'],
    )
    return json_success(message='Review submitted.', state=application.state)


@api_view(['POST'])
def review_member(request, pk):
    return _review(request, pk, services.review_as_member)


@api_view(['POST'])
def review_convener(request, pk):
    return _review(request, pk, services.review_as_convener)


@api_view(['POST'])
def review_hod(request, pk):
    return _review(request, pk, services.review_as_hod)


@api_view(['POST'])
def handle_request(request, pk):
    form = HandleRequestForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    action = form.cleaned_data['action']
    accept = form.cleaned_data['accept']
    application = services.handle_request(request.user, _get_application(pk), action, accept)
    return json_success(
        message=f"{action.capitalize()} request {'accepted' if accept else 'rejected'}.",
        deleted=application is None,
    )


@api_view(['GET', 'POST'])
def flow(request):
    if request.method == 'GET':
        require_operation(request.user, CONFERENCE_GET_FLOW)
        return json_success(is_direct=services.is_direct_flow())

    form = FlowForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    setting = services.set_flow(request.user, form.cleaned_data['direct_flow'])
    return json_success(is_direct=setting.direct_flow)
