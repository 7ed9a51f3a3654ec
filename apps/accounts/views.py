"""
Views for accounts app.

JSON endpoints:
- login / logout
- me: current user with effective operations
- users: directory lookup, optionally filtered by operation
"""

import logging

from django.contrib.auth import get_user_model, login, logout
from django.db.models import Q
from django.views.decorators.csrf import ensure_csrf_cookie

from apps.core.http import api_view, json_error, json_success, parse_body, user_summary
from .forms import LoginForm

logger = logging.getLogger(__name__)

User = get_user_model()


def _me_payload(user):
    operations = user.get_operations()
    return {
        **user_summary(user),
        'user_type': user.user_type,
        'roles': [role.name for role in user.roles.all()],
        'operations': operations,
    }


@ensure_csrf_cookie
@api_view(['POST'], login_required=False)
def login_view(request):
    """Authenticate with email and password and start a session."""
    form = LoginForm(data=parse_body(request), request=request)
    if not form.is_valid():
        errors = form.non_field_errors()
        message = errors[0] if errors else 'Email and password are required.'
        status = 423 if form.has_error('__all__', code='locked') else 400
        return json_error(message, status=status)

    user = form.get_user()
    login(request, user)
    logger.info(f'User {user.email} logged in')
    return json_success(user=_me_payload(user))


@api_view(['POST'])
def logout_view(request):
    logger.info(f'User {request.user.email} logged out')
    logout(request)
    return json_success(message='Logged out.')


@ensure_csrf_cookie
@api_view(['GET'])
def me_view(request):
    return json_success(user=_me_payload(request.user))


@api_view(['GET'])
def user_list_view(request):
    """
    Directory lookup used when picking members, reviewers and participants.

    Query params:
        q: search in email/name
        operation: only users whose roles grant this operation
    """
    users = User.objects.filter(is_active=True).prefetch_related('roles')

    search = request.GET.get('q', '').strip()
    if search:
        users = users.filter(
            Q(email__icontains=search) |
            Q(first_name__icontains=search) |
            Q(last_name__icontains=search)
        )

    operation = request.GET.get('operation')
    if operation:
        users = [u for u in users if u.has_operation(operation)]

    return json_success(users=[user_summary(u) for u in users])
