"""
Admin configuration for conference app.
"""

from django.contrib import admin
from .models import ConferenceApplication, ConferenceMember, ConferenceReview, ConferenceSetting


class ConferenceMemberInline(admin.TabularInline):
    model = ConferenceMember
    extra = 0
    readonly_fields = ('member', 'review_status', 'comments', 'updated_at')
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class ConferenceReviewInline(admin.TabularInline):
    model = ConferenceReview
    extra = 0
    readonly_fields = ('reviewer', 'reviewer_role', 'status', 'comments', 'created_at')
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(ConferenceApplication)
class ConferenceApplicationAdmin(admin.ModelAdmin):
    list_display = ('id', 'event_name', 'applicant', 'state', 'date_from', 'request_edit', 'request_delete', 'created_at')
    list_filter = ('state', 'mode_of_event', 'created_at')
    search_fields = ('event_name', 'content_title', 'applicant__email')
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'
    readonly_fields = ('created_at', 'updated_at')
    inlines = [ConferenceMemberInline, ConferenceReviewInline]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('applicant')


@admin.register(ConferenceSetting)
class ConferenceSettingAdmin(admin.ModelAdmin):
    list_display = ('direct_flow', 'updated_at')

    def has_add_permission(self, request):
        return not ConferenceSetting.objects.exists()
