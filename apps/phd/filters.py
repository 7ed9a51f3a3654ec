"""
Proposal filters for the DRC management list.
"""

import django_filters
from django.db.models import Q

from .models import Proposal, ProposalSemester


class ProposalFilter(django_filters.FilterSet):

    status = django_filters.MultipleChoiceFilter(choices=Proposal.Status.choices)
    semester = django_filters.ModelChoiceFilter(queryset=ProposalSemester.objects.all())
    search = django_filters.CharFilter(method='filter_search')

    class Meta:
        model = Proposal
        fields = ['status', 'semester']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(title__icontains=value) |
            Q(student__email__icontains=value) |
            Q(student__first_name__icontains=value) |
            Q(student__last_name__icontains=value)
        )
