"""
QP request filters for the DCA convenor list.
"""

import django_filters
from django.db.models import Q

from .models import QpRequest


class QpFilter(django_filters.FilterSet):

    status = django_filters.MultipleChoiceFilter(choices=QpRequest.Status.choices)
    category = django_filters.ChoiceFilter(choices=QpRequest.Category.choices)
    request_type = django_filters.ChoiceFilter(choices=QpRequest.RequestType.choices)
    reviewer = django_filters.CharFilter(field_name='reviewer__email', lookup_expr='iexact')
    unassigned = django_filters.BooleanFilter(field_name='reviewer', lookup_expr='isnull')
    search = django_filters.CharFilter(method='filter_search')

    class Meta:
        model = QpRequest
        fields = ['status', 'category', 'request_type']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(course_code__icontains=value) |
            Q(course_name__icontains=value) |
            Q(ic__email__icontains=value)
        )
