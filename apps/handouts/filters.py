"""
Handout filters for the DCA convenor list.
"""

import django_filters
from django.db.models import Q

from .models import HandoutRequest


class HandoutFilter(django_filters.FilterSet):

    status = django_filters.MultipleChoiceFilter(choices=HandoutRequest.Status.choices)
    reviewer = django_filters.CharFilter(field_name='reviewer__email', lookup_expr='iexact')
    unassigned = django_filters.BooleanFilter(field_name='reviewer', lookup_expr='isnull')
    search = django_filters.CharFilter(method='filter_search')

    class Meta:
        model = HandoutRequest
        fields = ['status']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(course_code__icontains=value) |
            Q(course_name__icontains=value) |
            Q(ic__email__icontains=value)
        )
