"""
Views for handouts app.

JSON endpoints for the DCA convenor, the instructor-in-charge (IC)
and the DCA reviewer.
"""

from django.core.exceptions import PermissionDenied
from django.core.paginator import Paginator
from django.shortcuts import get_object_or_404

from apps.activity_log.models import get_activity, serialize_activity
from apps.core.choices import Module
from apps.core.http import api_view, file_url, form_errors, iso, json_success, parse_body, user_summary
from .filters import HandoutFilter
from .forms import (
    AssignReviewerForm, FinalDecisionForm, HandoutRequestsForm, HandoutReviewForm, HandoutSubmitForm,
)
from .models import HandoutRequest, HandoutReview
from . import services


def _serialize(handout, detail=False):
    data = {
        'id': handout.pk,
        'course_code': handout.course_code,
        'course_name': handout.course_name,
        'status': handout.status,
        'ic': user_summary(handout.ic),
        'reviewer': user_summary(handout.reviewer),
        'deadline': iso(handout.deadline),
        'submitted_on': iso(handout.submitted_on),
        'handout_file': file_url(handout.handout_file),
    }
    if not detail:
        return data

    data.update({
        'open_book': handout.open_book,
        'mid_sem': handout.mid_sem,
        'compre': handout.compre,
        'other_evals': handout.other_evals,
        'frequency': handout.frequency,
        'num_components': handout.num_components,
        'final_comments': handout.final_comments,
        'reviews': [
            {
                'reviewer': user_summary(r.reviewer),
                'status': r.status,
                'comments': r.comments,
                'criteria': {c: getattr(r, c) for c in HandoutReview.CRITERIA},
                'created_at': iso(r.created_at),
            }
            for r in handout.reviews.select_related('reviewer')
        ],
        'history': serialize_activity(get_activity(Module.HANDOUT, handout.pk)),
    })
    return data


def _get_handout(pk):
    return get_object_or_404(HandoutRequest.objects.select_related('ic', 'reviewer'), pk=pk)


# =============================================================================
# DCA convenor
# =============================================================================

@api_view(['GET', 'POST'])
def handout_list(request):
    if request.method == 'GET':
        filterset = HandoutFilter(request.GET, queryset=services.all_handouts(request.user))
        if not filterset.is_valid():
            return form_errors(filterset.form)

        paginator = Paginator(filterset.qs, 50)
        page = paginator.get_page(request.GET.get('page'))
        return json_success(
            page=page.number,
            pages=paginator.num_pages,
            total=paginator.count,
            handouts=[_serialize(h) for h in page.object_list],
        )

    form = HandoutRequestsForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    handouts = services.create_handout_requests(
        request.user, form.cleaned_data['courses'], form.cleaned_data['deadline'],
    )
    return json_success(
        status=201,
        message=f'{len(handouts)} handout request(s) created.',
        handouts=[_serialize(h) for h in handouts],
    )


@api_view(['POST'])
def assign_reviewer(request, pk):
    form = AssignReviewerForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    handout = services.assign_reviewer(request.user, _get_handout(pk), form.cleaned_data['reviewer'])
    return json_success(message='Reviewer assigned.', handout=_serialize(handout))


@api_view(['POST'])
def final_decision(request, pk):
    form = FinalDecisionForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    handout = services.final_decision(
        request.user, _get_handout(pk), form.cleaned_data['status'], form.cleaned_data['comments'],
    )
    return json_success(message='Final decision recorded.', handout_status=handout.status)


# =============================================================================
# IC / reviewer
# =============================================================================

@api_view(['GET'])
def faculty_handouts(request):
    return json_success(handouts=[_serialize(h) for h in services.ic_handouts(request.user)])


@api_view(['GET'])
def reviewer_handouts(request):
    return json_success(handouts=[_serialize(h) for h in services.reviewer_handouts(request.user)])


@api_view(['GET'])
def handout_detail(request, pk):
    handout = _get_handout(pk)
    if not services.can_view_handout(request.user, handout):
        raise PermissionDenied("You don't have permission to view this handout.")
    return json_success(handout=_serialize(handout, detail=True))


@api_view(['POST'])
def submit(request, pk):
    form = HandoutSubmitForm(parse_body(request), request.FILES)
    if not form.is_valid():
        return form_errors(form)

    handout = services.submit_handout(request.user, _get_handout(pk), form.cleaned_data)
    return json_success(message='Handout submitted for review.', handout=_serialize(handout))


@api_view(['POST'])
def review(request, pk):
    form = HandoutReviewForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    handout = _get_handout(pk)
    services.submit_review(request.user, handout, form.cleaned_data)
    return json_success(message='Review submitted.', handout_status=handout.status)
