"""
Exceptions shared across the workflow apps.

Services raise Django's PermissionDenied and ValidationError for the usual
failures; the ones here cover the remaining HTTP outcomes.
"""


class ConflictError(Exception):
    """A resource was claimed concurrently (e.g. an already booked slot)."""

    def __init__(self, message='The resource is no longer available.'):
        self.message = message
        super().__init__(message)
