"""
Admin configuration for meetings app.
"""

from django.contrib import admin
from .models import FinalizedMeetingSlot, Meeting, MeetingParticipant, MeetingTimeSlot


class MeetingParticipantInline(admin.TabularInline):
    model = MeetingParticipant
    extra = 0
    raw_id_fields = ('participant',)


class MeetingTimeSlotInline(admin.TabularInline):
    model = MeetingTimeSlot
    extra = 0


class FinalizedMeetingSlotInline(admin.TabularInline):
    model = FinalizedMeetingSlot
    extra = 0


@admin.register(Meeting)
class MeetingAdmin(admin.ModelAdmin):
    list_display = ('title', 'organizer', 'status', 'deadline', 'created_at')
    list_filter = ('status',)
    search_fields = ('title', 'organizer__email')
    ordering = ('-created_at',)
    readonly_fields = ('created_at', 'updated_at')
    inlines = [MeetingParticipantInline, MeetingTimeSlotInline, FinalizedMeetingSlotInline]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('organizer')
