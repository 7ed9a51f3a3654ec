"""
Custom User and Role models for the IMS portal.

CRITICAL: This file must be created and AUTH_USER_MODEL set before running
any migrations. Changing the User model after migrations is very complex.

Access control is operation based: every Role carries a list of allowed and
disallowed operation patterns (e.g. "conference:*", "phd:drc:proposal") and
a user's effective access is the union over their roles.
"""

import re

from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models
from django.utils import timezone


def operation_matches(pattern, operation):
    """
    Return True when an operation pattern covers the given operation.

    "*" inside a pattern matches any run of characters, so "conference:*"
    covers "conference:application:create".
    """
    if pattern == operation:
        return True
    if '*' not in pattern:
        return False
    regex = '^' + '.*'.join(re.escape(part) for part in pattern.split('*')) + '$'
    return re.match(regex, operation) is not None


def resolve_operations(roles):
    """
    Merge the allowed/disallowed lists of several roles.

    A role's disallowed patterns are checked against the allowed patterns
    of earlier roles only, and are kept unless one of those covers them.
    The role's own allowed patterns are added afterwards.

    Returns:
        dict: {'allowed': [...], 'disallowed': [...]}
    """
    allowed = []
    disallowed = []
    for role in roles:
        for op in role.disallowed or []:
            if op in disallowed:
                continue
            if any(operation_matches(pattern, op) for pattern in allowed):
                continue
            disallowed.append(op)
        for op in role.allowed or []:
            if op not in allowed:
                allowed.append(op)
    return {'allowed': allowed, 'disallowed': disallowed}


def is_operation_permitted(operations, operation):
    """Check an operation against a resolved {'allowed', 'disallowed'} pair."""
    if any(operation_matches(pattern, operation) for pattern in operations['disallowed']):
        return False
    if '*' in operations['allowed']:
        return True
    return any(operation_matches(pattern, operation) for pattern in operations['allowed'])


class Role(models.Model):
    """
    A named bundle of operation patterns.

    Examples:
    - "conference-convener": allowed ["conference:application:convener", ...]
    - "admin": allowed ["*"]
    """

    name = models.CharField(max_length=100, unique=True)
    allowed = models.JSONField(default=list, blank=True)
    disallowed = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class UserManager(BaseUserManager):
    """
    Custom user manager where email is the unique identifier
    for authentication instead of username.
    """

    def create_user(self, email, password=None, **extra_fields):
        """Create and save a regular user with the given email and password."""
        if not email:
            raise ValueError('The Email field must be set')

        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """Create and save a SuperUser with the given email and password."""
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(email, password, **extra_fields)

    def with_operation(self, operation):
        """
        Active users whose roles grant the given operation.

        Resolution happens in Python since patterns may contain wildcards.
        """
        users = self.filter(is_active=True).prefetch_related('roles')
        return [user for user in users if user.has_operation(operation)]


class User(AbstractUser):
    """
    Custom User model with email authentication and role-based operations.

    User types:
    - Faculty: conference applicant, supervisor, DAC/DRC member, handout IC
    - PhD: proposal submitter
    - Staff: administrative office
    """

    class UserType(models.TextChoices):
        FACULTY = 'faculty', 'Faculty'
        PHD = 'phd', 'PhD Scholar'
        STAFF = 'staff', 'Staff'

    # Remove username field, use email instead
    username = None
    email = models.EmailField(
        'email address',
        unique=True,
        error_messages={
            'unique': 'A user with that email already exists.',
        },
    )

    user_type = models.CharField(
        max_length=20,
        choices=UserType.choices,
        default=UserType.FACULTY,
        db_index=True,
    )
    roles = models.ManyToManyField(Role, blank=True, related_name='users')

    # Security fields
    failed_login_attempts = models.PositiveSmallIntegerField(default=0)
    locked_until = models.DateTimeField(null=True, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['first_name', 'last_name']

    class Meta:
        verbose_name = 'user'
        verbose_name_plural = 'users'
        ordering = ['first_name', 'last_name']
        indexes = [
            models.Index(fields=['email']),
            models.Index(fields=['user_type']),
            models.Index(fields=['is_active']),
        ]

    def __str__(self):
        return f"{self.get_full_name()} ({self.email})"

    def get_full_name(self):
        """Return the first_name plus the last_name, with a space in between."""
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.email

    def get_short_name(self):
        """Return the short name for the user."""
        return self.first_name or self.email.split('@')[0]

    # ==========================================================================
    # Account Status Methods
    # ==========================================================================

    def is_locked(self):
        """Check if the account is currently locked."""
        if self.locked_until and self.locked_until > timezone.now():
            return True
        return False

    def lock_account(self, duration_seconds):
        """Lock the account for the specified duration."""
        self.locked_until = timezone.now() + timezone.timedelta(seconds=duration_seconds)
        self.save(update_fields=['locked_until'])

    def unlock_account(self):
        """Unlock the account and reset failed attempts."""
        self.locked_until = None
        self.failed_login_attempts = 0
        self.save(update_fields=['locked_until', 'failed_login_attempts'])

    def record_failed_login(self):
        """Record a failed login attempt."""
        self.failed_login_attempts += 1
        self.save(update_fields=['failed_login_attempts'])

    def reset_failed_logins(self):
        """Reset failed login counter on successful login."""
        if self.failed_login_attempts > 0:
            self.failed_login_attempts = 0
            self.save(update_fields=['failed_login_attempts'])

    # ==========================================================================
    # Operation Permission Methods
    # ==========================================================================

    def get_operations(self):
        """Effective {'allowed', 'disallowed'} patterns across all roles."""
        if not hasattr(self, '_operations_cache'):
            self._operations_cache = resolve_operations(self.roles.all())
        return self._operations_cache

    def has_operation(self, operation):
        """Check whether the user's roles grant an operation."""
        if not self.is_active:
            return False
        return is_operation_permitted(self.get_operations(), operation)

    def clear_operations_cache(self):
        self.__dict__.pop('_operations_cache', None)
