"""
Upload validators.

Every document in the portal is checked against the ALLOWED_UPLOAD_EXTENSIONS
and MAX_UPLOAD_SIZE settings.
"""

import os

from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils import timezone
from django.utils.deconstruct import deconstructible


def validate_pdf(file):
    """Reject anything that is not an allowed document within the upload size limit."""
    if not file:
        return

    allowed = getattr(settings, 'ALLOWED_UPLOAD_EXTENSIONS', ['.pdf'])
    ext = os.path.splitext(file.name)[1].lower()
    if ext not in allowed:
        raise ValidationError(
            f"File type '{ext or 'unknown'}' is not allowed. "
            f"Accepted types: {', '.join(allowed)}."
        )

    max_size = getattr(settings, 'MAX_UPLOAD_SIZE', 5 * 1024 * 1024)
    if file.size > max_size:
        raise ValidationError(
            f"File size cannot exceed {max_size // (1024 * 1024)} MB. "
            f"Your file is {file.size / (1024 * 1024):.1f} MB."
        )


@deconstructible
class UploadPath:
    """
    upload_to callable storing files under <prefix>/YYYY/MM/<filename>.

    Usage:
        models.FileField(upload_to=UploadPath('conference'))
    """

    def __init__(self, prefix):
        self.prefix = prefix

    def __call__(self, instance, filename):
        date = timezone.now()
        return f"{self.prefix}/{date.year}/{date.month:02d}/{filename}"

    def __eq__(self, other):
        return isinstance(other, UploadPath) and self.prefix == other.prefix
