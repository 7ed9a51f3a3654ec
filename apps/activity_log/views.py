"""
Views for activity_log app.

The full activity log is restricted to users holding "activity:view".
"""

from django.core.paginator import Paginator

from apps.accounts.permissions import require_operation
from apps.core.http import api_view, form_errors, json_success
from .filters import ActivityFilter
from .models import ActivityLog

ACTIVITY_VIEW = 'activity:view'


@api_view(['GET'])
def activity_log_view(request):
    require_operation(request.user, ACTIVITY_VIEW)

    filterset = ActivityFilter(
        request.GET,
        queryset=ActivityLog.objects.select_related('user'),
    )
    if not filterset.is_valid():
        return form_errors(filterset.form)

    paginator = Paginator(filterset.qs, 50)
    page = paginator.get_page(request.GET.get('page'))

    return json_success(
        page=page.number,
        pages=paginator.num_pages,
        total=paginator.count,
        activities=[
            {
                'id': log.pk,
                'module': log.module,
                'object_id': log.object_id,
                'user': log.user.email if log.user else None,
                'action': log.action,
                'comments': log.comments,
                'timestamp': log.created_at.isoformat(),
            }
            for log in page.object_list
        ],
    )
