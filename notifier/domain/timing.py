"""Send-time mapping from an event's start time and duration.

Every notification type maps to a target send time through a pure function of
``(type, start_time, duration)``, and to the recipient roles that receive it.
"""

from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Optional

from .models import NotificationType, RecipientRole

DEFAULT_DURATION_MINUTES = 60

RECIPIENT_ROLES: Dict[NotificationType, FrozenSet[RecipientRole]] = {
    NotificationType.PREP_48H: frozenset({RecipientRole.STUDENT}),
    NotificationType.PREP_24H: frozenset({RecipientRole.STUDENT}),
    NotificationType.IMMEDIATE_FEEDBACK: frozenset({RecipientRole.STUDENT, RecipientRole.MENTOR}),
    NotificationType.FOLLOWUP_24H: frozenset({RecipientRole.STUDENT, RecipientRole.MENTOR}),
}


def target_send_time(
    notification_type: NotificationType,
    start_time: datetime,
    duration_minutes: Optional[int] = None,
) -> datetime:
    """Compute when a notification of the given type should be delivered.

    Args:
        notification_type: Kind of notification
        start_time: Event start (UTC)
        duration_minutes: Event length; defaults to 60 minutes

    Returns:
        Target send time (UTC)
    """
    end_time = start_time + timedelta(minutes=duration_minutes or DEFAULT_DURATION_MINUTES)

    if notification_type == NotificationType.PREP_48H:
        return start_time - timedelta(hours=48)
    if notification_type == NotificationType.PREP_24H:
        return start_time - timedelta(hours=24)
    if notification_type == NotificationType.IMMEDIATE_FEEDBACK:
        return end_time
    if notification_type == NotificationType.FOLLOWUP_24H:
        return end_time + timedelta(hours=24)
    raise ValueError(f"Unsupported notification type: {notification_type}")


def receives(notification_type: NotificationType, role: RecipientRole) -> bool:
    """Whether recipients with ``role`` get notifications of this type."""
    return role in RECIPIENT_ROLES[notification_type]
