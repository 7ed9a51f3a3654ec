"""
Admin configuration for qp app.
"""

from django.contrib import admin
from .models import QpRequest, QpReview


class QpReviewInline(admin.TabularInline):
    model = QpReview
    extra = 0
    readonly_fields = ('reviewer', 'status', 'sections', 'comments', 'created_at')
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(QpRequest)
class QpRequestAdmin(admin.ModelAdmin):
    list_display = ('course_code', 'course_name', 'category', 'request_type', 'ic', 'reviewer', 'status')
    list_filter = ('status', 'category', 'request_type')
    search_fields = ('course_code', 'course_name', 'ic__email')
    raw_id_fields = ('ic', 'reviewer')
    readonly_fields = ('submitted_on', 'created_at', 'updated_at')
    inlines = [QpReviewInline]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('ic', 'reviewer')
