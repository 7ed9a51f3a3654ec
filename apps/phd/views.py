"""
Views for phd app.

JSON endpoints grouped by actor: student, supervisor, co-supervisor,
DRC convenor and DAC member.
"""

from django.core.exceptions import PermissionDenied
from django.core.paginator import Paginator
from django.shortcuts import get_object_or_404

from apps.accounts.permissions import PHD_DRC, require_operation
from apps.activity_log.models import get_activity, serialize_activity
from apps.core.choices import Module
from apps.core.http import (
    api_view, file_url, form_errors, iso, json_error, json_success, parse_body, user_summary,
)
from .filters import ProposalFilter
from .forms import (
    BookSlotForm, DacReviewForm, DrcReviewForm, ProposalResubmitForm, ProposalSubmitForm,
    SemesterForm, SeminarSlotsForm, SupervisorReviewForm,
)
from .models import Proposal, ProposalSemester, SeminarSlot
from . import services


def _serialize_semester(semester):
    return {
        'id': semester.pk,
        'name': semester.name,
        **{field: iso(getattr(semester, field)) for field in ProposalSemester.DEADLINE_FIELDS},
    }


def _serialize(proposal, detail=False):
    data = {
        'id': proposal.pk,
        'title': proposal.title,
        'status': proposal.status,
        'student': user_summary(proposal.student),
        'supervisor': user_summary(proposal.supervisor),
        'semester': _serialize_semester(proposal.semester),
        'seminar_date': iso(proposal.seminar_date),
        'seminar_time': proposal.seminar_time,
        'seminar_venue': proposal.seminar_venue,
        'created_at': iso(proposal.created_at),
        'updated_at': iso(proposal.updated_at),
    }
    if not detail:
        return data

    data.update({
        'comments': proposal.comments,
        'has_outside_co_supervisor': proposal.has_outside_co_supervisor,
        'declaration': proposal.declaration,
        'files': {field: file_url(getattr(proposal, field)) for field in Proposal.FILE_FIELDS},
        'co_supervisors': [
            {'email': c.email, 'name': c.name, 'approval_status': c.approval_status}
            for c in proposal.co_supervisors.all()
        ],
        'dac_members': [{'email': m.email, 'name': m.name} for m in proposal.dac_members.all()],
        'dac_reviews': [
            {
                'email': r.email,
                'approved': r.approved,
                'comments': r.comments,
                'evaluation': r.evaluation,
                'feedback_file': file_url(r.feedback_file),
                'created_at': iso(r.created_at),
            }
            for r in proposal.dac_reviews.all()
        ],
        'status_log': serialize_activity(get_activity(Module.PHD, proposal.pk)),
    })
    return data


def _serialize_slot(slot):
    return {
        'id': slot.pk,
        'venue': slot.venue,
        'start_time': iso(slot.start_time),
        'end_time': iso(slot.end_time),
        'is_booked': slot.is_booked,
        'booked_by': slot.booked_by_id,
    }


def _get_proposal(pk):
    return get_object_or_404(
        Proposal.objects.select_related('student', 'supervisor', 'semester'),
        pk=pk,
    )


# =============================================================================
# Cycles
# =============================================================================

@api_view(['GET', 'POST'])
def semesters(request):
    if request.method == 'GET':
        return json_success(semesters=[_serialize_semester(s) for s in ProposalSemester.objects.all()])

    require_operation(request.user, PHD_DRC)
    form = SemesterForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)
    semester = form.save()
    return json_success(status=201, semester=_serialize_semester(semester))


# =============================================================================
# Student
# =============================================================================

@api_view(['POST'])
def proposal_submit(request):
    form = ProposalSubmitForm(parse_body(request), request.FILES)
    if not form.is_valid():
        return form_errors(form)

    proposal = services.submit_proposal(request.user, form.cleaned_data)
    return json_success(status=201, message='Proposal submitted successfully.', proposal=_serialize(proposal))


@api_view(['POST'])
def proposal_resubmit(request, pk):
    form = ProposalResubmitForm(parse_body(request), request.FILES)
    if not form.is_valid():
        return form_errors(form)

    proposal = services.resubmit_proposal(request.user, _get_proposal(pk), form.cleaned_data)
    return json_success(message='Proposal resubmitted successfully.', proposal=_serialize(proposal))


@api_view(['GET'])
def my_proposals(request):
    return json_success(proposals=[_serialize(p) for p in services.student_proposals(request.user)])


@api_view(['GET'])
def proposal_detail(request, pk):
    proposal = _get_proposal(pk)
    if not services.can_view_proposal(request.user, proposal):
        raise PermissionDenied("You don't have permission to view this proposal.")
    return json_success(proposal=_serialize(proposal, detail=True))


# =============================================================================
# Supervisor / co-supervisor
# =============================================================================

@api_view(['GET'])
def supervisor_proposals(request):
    return json_success(proposals=[_serialize(p) for p in services.supervisor_proposals(request.user)])


@api_view(['POST'])
def supervisor_review(request, pk):
    form = SupervisorReviewForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    action = form.cleaned_data['action']
    proposal = services.supervisor_review(
        request.user,
        _get_proposal(pk),
        action,
        form.cleaned_data['comments'],
        form.cleaned_data['dac_members'],
    )
    return json_success(
        message=f"Proposal {'reverted' if action == 'revert' else 'processed'} successfully.",
        proposal_status=proposal.status,
    )


@api_view(['POST'])
def book_seminar_slot(request, pk):
    form = BookSlotForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    proposal = services.book_seminar_slot(request.user, _get_proposal(pk), form.cleaned_data['slot_id'])
    return json_success(message='Seminar slot booked successfully.', proposal=_serialize(proposal))


@api_view(['GET'])
def co_supervisor_proposals(request):
    return json_success(proposals=[_serialize(p) for p in services.co_supervisor_proposals(request.user)])


@api_view(['POST'])
def co_supervisor_approve(request, pk):
    proposal = services.co_supervisor_approve(request.user, _get_proposal(pk))
    return json_success(message='Proposal approved.', proposal_status=proposal.status)


# =============================================================================
# DRC convenor
# =============================================================================

@api_view(['GET'])
def drc_proposals(request):
    filterset = ProposalFilter(request.GET, queryset=services.drc_proposals(request.user))
    if not filterset.is_valid():
        return form_errors(filterset.form)

    paginator = Paginator(filterset.qs, 25)
    page = paginator.get_page(request.GET.get('page'))
    return json_success(
        page=page.number,
        pages=paginator.num_pages,
        total=paginator.count,
        proposals=[_serialize(p) for p in page.object_list],
    )


@api_view(['POST'])
def drc_review(request, pk):
    form = DrcReviewForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    action = form.cleaned_data['action']
    proposal = services.drc_review(
        request.user,
        _get_proposal(pk),
        action,
        form.cleaned_data['comments'],
        form.cleaned_data['selected_dac_members'],
    )
    return json_success(message=f'Proposal {action}ed successfully.', proposal_status=proposal.status)


@api_view(['POST'])
def reenable(request, pk):
    services.reenable_proposal(request.user, _get_proposal(pk))
    return json_success(message='Proposal re-enabled and returned to draft.')


@api_view(['GET', 'POST'])
def seminar_slots(request):
    if request.method == 'GET':
        slots = SeminarSlot.objects.all()
        if request.GET.get('available') == 'true':
            slots = slots.filter(booked_by__isnull=True)
        return json_success(slots=[_serialize_slot(s) for s in slots])

    form = SeminarSlotsForm(parse_body(request))
    if not form.is_valid():
        return form_errors(form)

    created = services.create_seminar_slots(request.user, form.slots())
    return json_success(
        status=201,
        message=f'{len(created)} slots created successfully.',
        slots=[_serialize_slot(s) for s in created],
    )


@api_view(['POST'])
def seminar_slots_delete(request):
    slot_ids = parse_body(request).get('slot_ids') or []
    if not isinstance(slot_ids, list) or not all(isinstance(i, int) for i in slot_ids):
        return json_error('slot_ids must be a list of integers.')

    deleted = services.delete_seminar_slots(request.user, slot_ids)
    return json_success(message=f'{deleted} slots deleted successfully.')


@api_view(['POST'])
def cancel_seminar_booking(request, pk):
    services.cancel_seminar_booking(request.user, _get_proposal(pk))
    return json_success(message='Booking canceled successfully.')


# =============================================================================
# DAC member
# =============================================================================

@api_view(['GET'])
def dac_proposals(request):
    return json_success(proposals=[_serialize(p) for p in services.dac_proposals(request.user)])


@api_view(['POST'])
def dac_review(request, pk):
    form = DacReviewForm(parse_body(request), request.FILES)
    if not form.is_valid():
        return form_errors(form)

    services.dac_submit_review(
        request.user,
        _get_proposal(pk),
        form.cleaned_data['approved'],
        form.cleaned_data['comments'],
        form.cleaned_data['evaluation'],
        form.cleaned_data['feedback_file'],
    )
    return json_success(message='Review submitted.')
