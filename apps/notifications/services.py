"""
Service layer for notifications app.

Services:
- send_email / send_bulk_emails: outgoing mail; failures are logged, never raised
- create_todos / complete_todo: workflow action items
- create_notifications / mark_notifications_read: in-app messages
- frontend_link: absolute link into the client application
"""

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import EmailMultiAlternatives, get_connection
from django.db.models import Q
from django.utils import timezone

from .models import Notification, Todo

logger = logging.getLogger(__name__)


def frontend_link(path):
    """Join a client route onto FRONTEND_URL."""
    base = getattr(settings, 'FRONTEND_URL', '').rstrip('/')
    return f"{base}/{path.lstrip('/')}"


# =============================================================================
# Email
# =============================================================================

def _as_list(value):
    if isinstance(value, (list, tuple, set)):
        return [v for v in value if v]
    return [value] if value else []


def _build_message(to, subject, text=None, html=None, connection=None):
    email = EmailMultiAlternatives(
        subject=subject,
        body=text or '',
        from_email=getattr(settings, 'DEFAULT_FROM_EMAIL', None),
        to=_as_list(to),
        connection=connection,
    )
    if html:
        email.attach_alternative(html, 'text/html')
    return email


def send_email(to, subject, text=None, html=None):
    """
    Send a single email.

    Args:
        to: Recipient address or list of addresses
        subject: Email subject
        text: Plain text body
        html: Optional HTML body

    Returns:
        bool: True if the email was sent
    """
    recipients = _as_list(to)
    if not recipients:
        return False

    try:
        _build_message(recipients, subject, text, html).send()
        logger.info(f'Email "{subject}" sent to {", ".join(recipients)}')
        return True
    except Exception as e:
        logger.error(f'Failed to send email "{subject}" to {", ".join(recipients)}: {e}')
        return False


def send_bulk_emails(messages):
    """
    Send several emails over one connection.

    Args:
        messages: List of dicts with to, subject, text and optional html

    Returns:
        int: Number of messages sent (0 on failure)
    """
    messages = [m for m in messages if _as_list(m.get('to'))]
    if not messages:
        return 0

    try:
        connection = get_connection()
        emails = [
            _build_message(m['to'], m['subject'], m.get('text'), m.get('html'), connection)
            for m in messages
        ]
        sent = connection.send_messages(emails) or 0
        logger.info(f'Bulk email: {sent}/{len(emails)} message(s) sent')
        return sent
    except Exception as e:
        logger.error(f'Bulk email send failed for {len(messages)} message(s): {e}')
        return 0


# =============================================================================
# To-dos
# =============================================================================

def create_todos(items):
    """
    Bulk create to-dos.

    Args:
        items: List of dicts with module, title, assigned_to (User),
               completion_event and optional description, created_by,
               link, deadline

    Returns:
        list of created Todo instances
    """
    todos = [
        Todo(
            module=item['module'],
            title=item['title'],
            description=item.get('description', ''),
            assigned_to=item['assigned_to'],
            created_by=item.get('created_by'),
            link=item.get('link', ''),
            completion_event=item['completion_event'],
            deadline=item.get('deadline'),
        )
        for item in items
    ]
    if not todos:
        return []
    return Todo.objects.bulk_create(todos)


def complete_todo(module, completion_event, assigned_to=None):
    """
    Mark matching open to-dos as completed.

    Args:
        module: Module of the to-dos
        completion_event: Event string or list of event strings
        assigned_to: Optional User, email, or list of either

    Returns:
        int: Number of to-dos completed
    """
    events = _as_list(completion_event)
    if not events:
        return 0

    todos = Todo.objects.filter(module=module, completion_event__in=events, completed=False)

    if assigned_to is not None:
        assignees = _as_list(assigned_to)
        User = get_user_model()
        users = [a for a in assignees if isinstance(a, User)]
        emails = [a.lower() for a in assignees if isinstance(a, str)]
        todos = todos.filter(
            Q(assigned_to__in=users) | Q(assigned_to__email__in=emails)
        )

    return todos.update(completed=True, completed_at=timezone.now())


# =============================================================================
# Notifications
# =============================================================================

def create_notifications(items):
    """
    Bulk create notifications.

    Args:
        items: List of dicts with module, title, user and optional
               content and link
    """
    notifications = [
        Notification(
            module=item['module'],
            title=item['title'],
            content=item.get('content', ''),
            link=item.get('link', ''),
            user=item['user'],
        )
        for item in items
    ]
    if not notifications:
        return []
    return Notification.objects.bulk_create(notifications)


def notify_users(users, module, title, content='', link=''):
    """Shortcut: the same notification for several users."""
    return create_notifications([
        {'module': module, 'title': title, 'content': content, 'link': link, 'user': user}
        for user in users
    ])


def mark_notifications_read(user, ids=None):
    """Mark the user's notifications read; all of them when ids is None."""
    notifications = Notification.objects.filter(user=user, read=False)
    if ids is not None:
        notifications = notifications.filter(pk__in=ids)
    return notifications.update(read=True)
