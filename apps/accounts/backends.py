"""
Email login backend for the portal.

Failed passwords are counted on the user row. Reaching LOCKOUT_THRESHOLD
locks the account for LOCKOUT_DURATION seconds and mails the owner.
"""

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend

logger = logging.getLogger(__name__)

User = get_user_model()


class EmailAuthBackend(ModelBackend):
    """Authenticate faculty, staff and students by email address."""

    def authenticate(self, request, username=None, password=None, **kwargs):
        email = (kwargs.get('email') or username or '').strip().lower()
        if not email or password is None:
            return None

        user = User.objects.filter(email__iexact=email).first()
        if user is None:
            # Keep response time close to the known-user path
            User().set_password(password)
            return None

        if user.is_locked():
            logger.warning(f'Login attempt on locked account {user.email}')
            return None
        if not user.is_active:
            return None

        if user.check_password(password):
            user.reset_failed_logins()
            return user

        self.register_failure(user)
        return None

    def register_failure(self, user):
        """Count a bad password and lock the account at the threshold."""
        user.record_failed_login()
        if user.failed_login_attempts < getattr(settings, 'LOCKOUT_THRESHOLD', 5):
            return

        user.lock_account(getattr(settings, 'LOCKOUT_DURATION', 15 * 60))
        logger.warning(f'Account {user.email} locked after {user.failed_login_attempts} failed attempts')

        from apps.accounts.services import send_lockout_notification
        send_lockout_notification(user)

    def get_user(self, user_id):
        user = User.objects.filter(pk=user_id).first()
        if user is not None and self.user_can_authenticate(user):
            return user
        return None

    def user_can_authenticate(self, user):
        return bool(getattr(user, 'is_active', False)) and not user.is_locked()
