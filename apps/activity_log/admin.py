"""
Admin configuration for activity_log app.
"""

from django.contrib import admin
from .models import ActivityLog


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    """Read-only admin for ActivityLog."""

    list_display = ('module', 'object_id', 'user', 'action', 'comments_preview', 'created_at')
    list_filter = ('module', 'created_at')
    search_fields = ('action', 'comments', 'user__email', 'user__first_name', 'user__last_name')
    ordering = ('-created_at',)
    date_hierarchy = 'created_at'

    readonly_fields = ('module', 'object_id', 'user', 'action', 'comments', 'created_at')

    def comments_preview(self, obj):
        """Show truncated comments."""
        if not obj.comments:
            return '-'
        return obj.comments[:80] + '...' if len(obj.comments) > 80 else obj.comments
    comments_preview.short_description = 'Comments'

    def has_add_permission(self, request):
        """Prevent manual creation of activity logs."""
        return False

    def has_change_permission(self, request, obj=None):
        """Prevent editing of activity logs."""
        return False

    def has_delete_permission(self, request, obj=None):
        """Prevent deletion of activity logs."""
        return False

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('user')
