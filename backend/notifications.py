"""
Carpool Platform - Notification Dispatcher

Stores per-user notifications for booking and ride lifecycle events.
Dispatch is a side channel: it runs after the triggering transition has
committed and never raises, so a storage failure cannot undo a booking.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from database import db

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    BOOKING_REQUEST = 'booking_request'
    BOOKING_ACCEPTED = 'booking_accepted'
    BOOKING_REJECTED = 'booking_rejected'
    RIDE_COMPLETED = 'ride_completed'
    RIDE_CANCELLED = 'ride_cancelled'


NOTIFICATION_TITLES = {
    NotificationType.BOOKING_REQUEST: 'New Booking Request',
    NotificationType.BOOKING_ACCEPTED: 'Booking Accepted',
    NotificationType.BOOKING_REJECTED: 'Booking Declined',
    NotificationType.RIDE_COMPLETED: 'Ride Completed',
    NotificationType.RIDE_CANCELLED: 'Ride Cancelled',
}

_untitled = set(NotificationType) - set(NOTIFICATION_TITLES)
if _untitled:
    raise RuntimeError(f"Notification types without a title: {sorted(t.value for t in _untitled)}")


def title_for(notification_type: NotificationType) -> str:
    """Display title of a notification type."""
    return NOTIFICATION_TITLES[NotificationType(notification_type)]


def notify(
    user_id: int,
    notification_type: NotificationType,
    message: str,
    ride_id: Optional[int] = None
) -> Optional[int]:
    """
    Append an unread notification for a user.

    Returns:
        The notification ID, or None if it could not be stored.
    """
    notification_type = NotificationType(notification_type)
    try:
        return db.create_notification(user_id, notification_type.value, message, ride_id)
    except Exception:
        logger.exception(
            "Failed to store %s notification for user %s", notification_type.value, user_id
        )
        return None


def notify_many(
    user_ids: List[int],
    notification_type: NotificationType,
    message: str,
    ride_id: Optional[int] = None
) -> int:
    """Notify several users; returns how many notifications were stored."""
    return sum(1 for user_id in user_ids if notify(user_id, notification_type, message, ride_id))


def list_notifications(user_id: int, limit: int = 50) -> List[Dict[str, Any]]:
    """A user's notifications, newest first, shaped for the API."""
    return [
        {
            'id': n['id'],
            'type': n['type'],
            'title': title_for(n['type']),
            'message': n['message'],
            'rideId': n['ride_id'],
            'isRead': bool(n['is_read']),
            'createdAt': n['created_at'],
        }
        for n in db.get_notifications(user_id, limit=limit)
    ]


def mark_all_read(user_id: int) -> int:
    """Mark all of a user's notifications as read."""
    return db.mark_notifications_read(user_id)


def unread_count(user_id: int) -> int:
    return db.get_unread_notification_count(user_id)
