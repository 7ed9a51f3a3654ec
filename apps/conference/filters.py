"""
Conference application filters using django-filter.

Used by the "all applications" view:
- state (multi-select)
- applicant (email, case-insensitive contains)
- search (event name, content title, venue)
- created date range
"""

import django_filters
from django.db.models import Q

from .models import ConferenceApplication


class ApplicationFilter(django_filters.FilterSet):
    """
    Usage in views:
        filterset = ApplicationFilter(request.GET, queryset=queryset)
        applications = filterset.qs
    """

    state = django_filters.MultipleChoiceFilter(choices=ConferenceApplication.State.choices)
    applicant = django_filters.CharFilter(field_name='applicant__email', lookup_expr='icontains')
    search = django_filters.CharFilter(method='filter_search')
    created_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    created_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = ConferenceApplication
        fields = ['state', 'mode_of_event']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(event_name__icontains=value) |
            Q(content_title__icontains=value) |
            Q(venue__icontains=value)
        )
