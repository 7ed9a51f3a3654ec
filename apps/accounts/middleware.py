"""
Custom middleware for accounts app.

Includes:
- Session idle timeout middleware (SESSION_IDLE_TIMEOUT seconds)

The portal only serves JSON, so an expired session answers 401 instead of
redirecting to a login page.
"""

from datetime import datetime

from django.conf import settings
from django.contrib.auth import logout
from django.http import JsonResponse
from django.utils import timezone


def get_auth_expired_response():
    """401 response telling the client to authenticate again."""
    return JsonResponse(
        {'success': False, 'message': 'Your session has expired due to inactivity. Please log in again.'},
        status=401,
    )


class SessionIdleTimeoutMiddleware:
    """
    Middleware to log out users after a period of inactivity.

    Default: 60 minutes (SESSION_IDLE_TIMEOUT setting)
    """

    EXEMPT_PATH_PREFIXES = [
        '/admin/',
        '/static/',
        '/media/',
        '/__debug__/',
    ]

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if request.user.is_authenticated and not self._is_exempt(request):
            last_activity = request.session.get('last_activity')

            if last_activity:
                last_activity_time = datetime.fromisoformat(last_activity)
                idle_timeout = getattr(settings, 'SESSION_IDLE_TIMEOUT', 60 * 60)

                if timezone.is_naive(last_activity_time):
                    last_activity_time = timezone.make_aware(last_activity_time)

                time_since_activity = (timezone.now() - last_activity_time).total_seconds()

                if time_since_activity > idle_timeout:
                    logout(request)
                    return get_auth_expired_response()

            request.session['last_activity'] = timezone.now().isoformat()

        return self.get_response(request)

    def _is_exempt(self, request):
        return any(request.path.startswith(prefix) for prefix in self.EXEMPT_PATH_PREFIXES)
