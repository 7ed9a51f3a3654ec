"""
Permission helpers for operation-based access control.

Operation names used across the portal live here so services and views
refer to the same strings.
"""

from django.core.exceptions import PermissionDenied
from django.contrib.auth import get_user_model


# =============================================================================
# Operation names
# =============================================================================

CONFERENCE_CREATE = 'conference:application:create'
CONFERENCE_MEMBER = 'conference:application:member'
CONFERENCE_CONVENER = 'conference:application:convener'
CONFERENCE_HOD = 'conference:application:hod'
CONFERENCE_VIEW_ALL = 'conference:application:view-all'
CONFERENCE_GET_FLOW = 'conference:application:get-flow'

MEETING_USE = 'meeting:use'

PHD_DRC = 'phd:drc:proposal'

HANDOUT_ASSIGN_REVIEWER = 'handout:dca-convenor:assignreviewer'
HANDOUT_REVIEW = 'handout:dca:review'
HANDOUT_FINAL_DECISION = 'handout:dca-convenor:final-decision'
HANDOUT_GET_ALL = 'handout:dca-convenor:get-all'

QP_MANAGE = 'qp:dca-convenor:manage'
QP_REVIEW = 'qp:dca:review'


# =============================================================================
# Helpers
# =============================================================================

def require_operation(user, operation, message=None):
    """
    Raise PermissionDenied unless the user holds the operation.

    Raises:
        PermissionDenied: If the user's roles do not grant the operation
    """
    if not user.has_operation(operation):
        raise PermissionDenied(message or "You don't have permission to perform this action.")


def users_with_operation(operation):
    """Return active users whose roles grant the operation."""
    return get_user_model().objects.with_operation(operation)
