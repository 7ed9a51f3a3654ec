"""
Service layer for accounts app.

Centralized business logic for:
- Resolving users from submitted email addresses
- Role assignment
- Account lockout notifications
"""

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError

from .models import Role

logger = logging.getLogger(__name__)


def normalize_emails(emails):
    """Lower-case, strip and de-duplicate a list of addresses, keeping order."""
    seen = []
    for email in emails or []:
        if not isinstance(email, str):
            raise ValidationError('Email addresses must be strings.')
        email = email.strip().lower()
        if email and email not in seen:
            seen.append(email)
    return seen


def resolve_users(emails, operation=None):
    """
    Look up active users for a list of email addresses.

    Args:
        emails: Iterable of email addresses
        operation: If given, every user must hold this operation

    Returns:
        list of User, in the order the emails were given

    Raises:
        ValidationError: If an email is unknown or lacks the operation
    """
    User = get_user_model()
    emails = normalize_emails(emails)
    users = {u.email.lower(): u for u in User.objects.filter(email__in=emails, is_active=True)}

    missing = [email for email in emails if email not in users]
    if missing:
        raise ValidationError(f"Unknown users: {', '.join(missing)}")

    resolved = [users[email] for email in emails]
    if operation:
        unqualified = [u.email for u in resolved if not u.has_operation(operation)]
        if unqualified:
            raise ValidationError(
                f"Users not permitted for this role: {', '.join(unqualified)}"
            )
    return resolved


def set_user_roles(user, role_names):
    """
    Replace a user's roles by name.

    Raises:
        ValidationError: If a role does not exist
    """
    roles = list(Role.objects.filter(name__in=role_names))
    found = {role.name for role in roles}
    unknown = [name for name in role_names if name not in found]
    if unknown:
        raise ValidationError(f"Unknown roles: {', '.join(unknown)}")

    user.roles.set(roles)
    user.clear_operations_cache()
    logger.info(f'Roles for {user.email} set to {sorted(found)}')
    return user


def send_lockout_notification(user):
    """
    Send notification when account is locked due to failed login attempts.

    Returns:
        bool: True if email sent successfully
    """
    from apps.notifications.services import send_email

    lockout_minutes = getattr(settings, 'LOCKOUT_DURATION', 900) // 60
    locked_until = user.locked_until.strftime('%d %b %Y, %I:%M %p') if user.locked_until else ''

    return send_email(
        to=user.email,
        subject='IMS Portal - Account Temporarily Locked',
        text=(
            f"Dear {user.get_full_name()},\n\n"
            f"Your account has been locked for {lockout_minutes} minutes after "
            f"repeated failed login attempts. It will unlock at {locked_until}.\n\n"
            "If this was not you, please contact the department office."
        ),
    )
