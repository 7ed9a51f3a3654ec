"""
Admin configuration for handouts app.
"""

from django.contrib import admin
from .models import HandoutRequest, HandoutReview


class HandoutReviewInline(admin.TabularInline):
    model = HandoutReview
    extra = 0
    readonly_fields = ('reviewer', 'status', 'comments', 'created_at')
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(HandoutRequest)
class HandoutRequestAdmin(admin.ModelAdmin):
    list_display = ('course_code', 'course_name', 'ic', 'reviewer', 'status', 'deadline')
    list_filter = ('status',)
    search_fields = ('course_code', 'course_name', 'ic__email')
    raw_id_fields = ('ic', 'reviewer')
    readonly_fields = ('submitted_on', 'created_at', 'updated_at')
    inlines = [HandoutReviewInline]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('ic', 'reviewer')
