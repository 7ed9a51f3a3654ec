"""
Views for qp app.

JSON endpoints for the DCA convenor, the faculty-in-charge (IC) and the
DCA reviewer, plus a CSV export of submitted reviews.
"""

from django.core.exceptions import PermissionDenied
from django.core.paginator import Paginator
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone

from apps.activity_log.models import get_activity, serialize_activity
from apps.core.choices import Module
from apps.core.http import api_view, file_url, form_errors, iso, json_success, parse_body, user_summary
from .filters import QpFilter
from .forms import (
    AssignQpReviewerForm, QpEditForm, QpRemindersForm, QpRequestsForm, QpReviewForm, QpUploadForm,
)
from .models import QpRequest
from . import services


def _serialize(qp, detail=False):
    data = {
        'id': qp.pk,
        'course_code': qp.course_code,
        'course_name': qp.course_name,
        'category': qp.category,
        'request_type': qp.request_type,
        'status': qp.status,
        'ic': user_summary(qp.ic),
        'reviewer': user_summary(qp.reviewer),
        'ic_deadline': iso(qp.ic_deadline),
        'review_deadline': iso(qp.review_deadline),
        'submitted_on': iso(qp.submitted_on),
        'documents': {field: file_url(getattr(qp, field)) for field in QpRequest.FILE_FIELDS},
    }
    if not detail:
        return data

    data.update({
        'required_files': qp.required_files,
        'reviews': [
            {
                'reviewer': user_summary(r.reviewer),
                'status': r.status,
                'sections': r.sections,
                'comments': r.comments,
                'created_at': iso(r.created_at),
            }
            for r in qp.reviews.select_related('reviewer')
        ],
        'history': serialize_activity(get_activity(Module.QP, qp.pk)),
    })
    return data


def _get_request(pk):
    return get_object_or_404(QpRequest.objects.select_related('ic', 'reviewer'), pk=pk)


# =============================================================================
# DCA convenor
# =============================================================================

@api_view(['GET', 'POST'])
def qp_list(request):
    if request.method == 'GET':
        filterset = QpFilter(request.GET, queryset=services.all_requests(request.user))
        if not filterset.is_valid():
            return form_errors(filterset.form)

        paginator = Paginator(filterset.qs, 50)
        page = paginator.get_page(request.GET.get('page'))
        return json_success(
            page=page.number,
            pages=paginator.num_pages,
            total=paginator.count,
            requests=[_serialize(qp) for qp in page.object_list],
        )

    form = QpRequestsForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    requests = services.create_qp_requests(
        request.user,
        form.cleaned_data['courses'],
        form.cleaned_data['ic_deadline'],
        form.cleaned_data['review_deadline'],
    )
    return json_success(
        status=201,
        message=f'{len(requests)} QP request(s) created.',
        requests=[_serialize(qp) for qp in requests],
    )


@api_view(['POST'])
def edit(request, pk):
    form = QpEditForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    qp = services.edit_qp_request(request.user, _get_request(pk), form.changes())
    return json_success(message='QP request updated.', request=_serialize(qp))


@api_view(['POST'])
def assign_reviewer(request, pk):
    form = AssignQpReviewerForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    qp = services.assign_qp_reviewer(
        request.user,
        _get_request(pk),
        form.cleaned_data['reviewer'],
        notify=form.cleaned_data['send_email'] is not False,
    )
    return json_success(message='Reviewer assigned.', request=_serialize(qp))


@api_view(['POST'])
def reminders(request):
    form = QpRemindersForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    counts = services.send_qp_reminders(request.user, form.cleaned_data['ids'])
    return json_success(message='Reminders sent.', **counts)


@api_view(['GET'])
def export_reviews(request):
    filterset = QpFilter(request.GET, queryset=services.all_requests(request.user))
    if not filterset.is_valid():
        return form_errors(filterset.form)

    filename = f"qp-reviews-{timezone.localdate().isoformat()}.csv"
    response = HttpResponse(content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    services.write_reviews_csv(filterset.qs, response)
    return response


# =============================================================================
# IC / reviewer
# =============================================================================

@api_view(['GET'])
def faculty_requests(request):
    return json_success(requests=[_serialize(qp) for qp in services.ic_requests(request.user)])


@api_view(['GET'])
def reviewer_requests(request):
    return json_success(requests=[_serialize(qp) for qp in services.reviewer_requests(request.user)])


@api_view(['GET'])
def qp_detail(request, pk):
    qp = _get_request(pk)
    if not services.can_view_request(request.user, qp):
        raise PermissionDenied("You don't have permission to view this request.")
    return json_success(request=_serialize(qp, detail=True))


@api_view(['POST'])
def upload(request, pk):
    form = QpUploadForm(parse_body(request), request.FILES)
    if not form.is_valid():
        return form_errors(form)

    qp = services.upload_qp_documents(request.user, _get_request(pk), form.cleaned_data)
    return json_success(message='Question papers sent for review.', request=_serialize(qp))


@api_view(['POST'])
def review(request, pk):
    form = QpReviewForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    qp = _get_request(pk)
    services.submit_qp_review(request.user, qp, form.cleaned_data)
    return json_success(message='Review submitted.', request_status=qp.status)
