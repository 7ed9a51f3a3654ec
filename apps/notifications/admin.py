"""
Admin configuration for notifications app.
"""

from django.contrib import admin
from .models import Notification, Todo


@admin.register(Todo)
class TodoAdmin(admin.ModelAdmin):
    list_display = ('title', 'module', 'assigned_to', 'completion_event', 'deadline', 'completed', 'created_at')
    list_filter = ('module', 'completed', 'created_at')
    search_fields = ('title', 'completion_event', 'assigned_to__email')
    ordering = ('-created_at',)
    readonly_fields = ('created_at', 'completed_at')

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('assigned_to')


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('title', 'module', 'user', 'read', 'created_at')
    list_filter = ('module', 'read', 'created_at')
    search_fields = ('title', 'content', 'user__email')
    ordering = ('-created_at',)

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('user')
