"""
Authentication utilities for extracting user info from Cognito tokens.
"""
from typing import Optional

from .errors import ForbiddenError
from .models import UserRole


def get_user_sub(event: dict) -> Optional[str]:
    """
    Extract user sub (unique ID) from Cognito authorizer claims.

    Args:
        event: API Gateway Lambda proxy event

    Returns:
        User sub string or None if not authenticated
    """
    try:
        return event['requestContext']['authorizer']['claims']['sub']
    except (KeyError, TypeError):
        return None


def get_user_groups(event: dict) -> list:
    """Extract user groups (worker, dispatcher, admin) from Cognito claims."""
    try:
        groups = event['requestContext']['authorizer']['claims'].get('cognito:groups', '')
        if isinstance(groups, str):
            return [g.strip() for g in groups.split(',') if g.strip()]
        return groups or []
    except (KeyError, TypeError, AttributeError):
        return []


def is_admin(event: dict) -> bool:
    """Check if user belongs to admin group."""
    return UserRole.ADMIN in get_user_groups(event)


def is_worker(event: dict) -> bool:
    """Check if user belongs to worker group."""
    return UserRole.WORKER in get_user_groups(event)


def is_dispatcher(event: dict) -> bool:
    """Check if user belongs to dispatcher group. Admins may act as dispatchers."""
    groups = get_user_groups(event)
    return UserRole.DISPATCHER in groups or UserRole.ADMIN in groups


def current_admin_id(event: dict) -> str:
    """
    Identity of the admin performing a privileged action.

    Raises:
        ForbiddenError: caller is anonymous or not in the admin group
    """
    user_id = get_user_sub(event)
    if not user_id or not is_admin(event):
        raise ForbiddenError('Admin role required')
    return user_id
