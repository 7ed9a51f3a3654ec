"""
Views for notifications app.

JSON endpoints:
- todos: the current user's open to-dos
- notifications: the current user's notifications (newest first)
- notifications/read: mark some or all notifications read
"""

from django.core.exceptions import ValidationError

from apps.core.http import api_view, iso, json_success, parse_body
from .models import Notification, Todo
from .services import mark_notifications_read


@api_view(['GET'])
def todo_list_view(request):
    todos = Todo.objects.filter(assigned_to=request.user, completed=False)

    module = request.GET.get('module')
    if module:
        todos = todos.filter(module=module)

    return json_success(todos=[
        {
            'id': todo.pk,
            'module': todo.module,
            'title': todo.title,
            'description': todo.description,
            'link': todo.link,
            'deadline': iso(todo.deadline),
            'created_at': iso(todo.created_at),
        }
        for todo in todos
    ])


@api_view(['GET'])
def notification_list_view(request):
    notifications = Notification.objects.filter(user=request.user)
    if request.GET.get('unread') == 'true':
        notifications = notifications.filter(read=False)

    return json_success(
        unread=Notification.objects.filter(user=request.user, read=False).count(),
        notifications=[
            {
                'id': n.pk,
                'module': n.module,
                'title': n.title,
                'content': n.content,
                'link': n.link,
                'read': n.read,
                'created_at': iso(n.created_at),
            }
            for n in notifications[:100]
        ],
    )


@api_view(['POST'])
def notification_mark_read_view(request):
    data = parse_body(request)
    ids = data.get('ids')
    if ids is not None and not (isinstance(ids, list) and all(isinstance(i, int) for i in ids)):
        raise ValidationError('ids must be a list of integers.')

    updated = mark_notifications_read(request.user, ids)
    return json_success(updated=updated)
