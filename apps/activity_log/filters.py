"""
Activity log filters using django-filter.

Filtering for the activity log view:
- module
- object_id
- user (email)
- date range (from date, to date)
"""

import django_filters

from apps.core.choices import Module
from .models import ActivityLog


class ActivityFilter(django_filters.FilterSet):
    """
    Usage in views:
        filterset = ActivityFilter(request.GET, queryset=queryset)
        activities = filterset.qs
    """

    module = django_filters.ChoiceFilter(choices=Module.choices)
    object_id = django_filters.NumberFilter()
    user = django_filters.CharFilter(field_name='user__email', lookup_expr='iexact')
    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')

    class Meta:
        model = ActivityLog
        fields = ['module', 'object_id', 'user', 'date_from', 'date_to']
