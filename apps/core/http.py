"""
JSON API helpers shared by every app.

Includes:
- api_view: decorator enforcing method + authentication and translating
  service exceptions into JSON error responses
- parse_body: read a JSON or multipart request body into a dict
- json_success / json_error / form_errors: response shortcuts
- serialize helpers for users, dates and files
"""

import json
import logging
from functools import wraps

from django.core.exceptions import PermissionDenied, ValidationError
from django.http import Http404, JsonResponse

from .exceptions import ConflictError

logger = logging.getLogger(__name__)


def json_success(status=200, **payload):
    """Return {"success": true, ...payload}."""
    return JsonResponse({'success': True, **payload}, status=status)


def json_error(message, status=400, **payload):
    """Return {"success": false, "message": message, ...payload}."""
    return JsonResponse({'success': False, 'message': message, **payload}, status=status)


def form_errors(form):
    """Return a 400 response carrying a bound form's errors."""
    return JsonResponse(
        {'success': False, 'message': 'Invalid input.', 'errors': form.errors},
        status=400,
    )


def _validation_message(exc):
    return ' '.join(exc.messages) if exc.messages else 'Invalid input.'


def api_view(methods=('GET',), login_required=True):
    """
    Decorator for JSON endpoints.

    - Rejects other HTTP methods with 405
    - Rejects anonymous users with 401 (unless login_required=False)
    - Maps PermissionDenied -> 403, ValidationError -> 400,
      Http404 -> 404 and ConflictError -> 409

    Usage:
        @api_view(['POST'])
        def review(request, pk):
            ...
    """
    allowed = [m.upper() for m in methods]

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if request.method not in allowed:
                response = json_error('Method not allowed.', status=405)
                response['Allow'] = ', '.join(allowed)
                return response

            if login_required and not request.user.is_authenticated:
                return json_error('Authentication required.', status=401)

            try:
                return view_func(request, *args, **kwargs)
            except PermissionDenied as exc:
                logger.warning(
                    f'Permission denied for {request.user} on {request.path}: {exc}'
                )
                return json_error(str(exc) or 'You do not have permission to perform this action.', status=403)
            except ValidationError as exc:
                return json_error(_validation_message(exc), status=400)
            except Http404 as exc:
                return json_error(str(exc) or 'Not found.', status=404)
            except ConflictError as exc:
                return json_error(exc.message, status=409)

        return wrapper

    return decorator


def parse_body(request):
    """
    Return the request payload as a dict.

    JSON bodies are decoded; form and multipart bodies come from request.POST
    (values that hold JSON, such as lists sent alongside files, are left as
    strings for the form layer to decode).
    """
    content_type = request.content_type or ''
    if content_type.startswith('application/json'):
        if not request.body:
            return {}
        try:
            data = json.loads(request.body)
        except (ValueError, UnicodeDecodeError):
            raise ValidationError('Request body is not valid JSON.')
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object.')
        return data
    return request.POST.dict()


def decode_json_field(value, default=None):
    """Decode a value that may arrive as a JSON string inside multipart data."""
    if value in (None, ''):
        return default
    if isinstance(value, (list, dict)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        raise ValidationError('Malformed JSON value.')


# =============================================================================
# Serialization helpers
# =============================================================================

def user_summary(user):
    if user is None:
        return None
    return {
        'id': user.pk,
        'email': user.email,
        'name': user.get_full_name(),
    }


def iso(value):
    return value.isoformat() if value else None


def file_url(field):
    """Return the URL for a FileField value, or None when empty."""
    if not field:
        return None
    try:
        return field.url
    except ValueError:
        return None
