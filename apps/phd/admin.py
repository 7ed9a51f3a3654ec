"""
Admin configuration for phd app.
"""

from django.contrib import admin
from .models import (
    PhdStudent, Proposal, ProposalCoSupervisor, ProposalDacMember, ProposalDacReview,
    ProposalSemester, SeminarSlot,
)


@admin.register(PhdStudent)
class PhdStudentAdmin(admin.ModelAdmin):
    list_display = ('user', 'supervisor', 'phd_type')
    list_filter = ('phd_type',)
    search_fields = ('user__email', 'supervisor__email')
    raw_id_fields = ('user', 'supervisor')


@admin.register(ProposalSemester)
class ProposalSemesterAdmin(admin.ModelAdmin):
    list_display = ('name', 'student_submission_date', 'faculty_review_date', 'drc_review_date', 'dac_review_date')


class CoSupervisorInline(admin.TabularInline):
    model = ProposalCoSupervisor
    extra = 0


class DacMemberInline(admin.TabularInline):
    model = ProposalDacMember
    extra = 0


class DacReviewInline(admin.TabularInline):
    model = ProposalDacReview
    extra = 0
    readonly_fields = ('email', 'approved', 'comments', 'created_at')
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Proposal)
class ProposalAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'student', 'supervisor', 'semester', 'status', 'created_at')
    list_filter = ('status', 'semester')
    search_fields = ('title', 'student__email', 'supervisor__email')
    ordering = ('-created_at',)
    readonly_fields = ('created_at', 'updated_at')
    inlines = [CoSupervisorInline, DacMemberInline, DacReviewInline]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('student', 'supervisor', 'semester')


@admin.register(SeminarSlot)
class SeminarSlotAdmin(admin.ModelAdmin):
    list_display = ('venue', 'start_time', 'end_time', 'booked_by')
    list_filter = ('venue',)
