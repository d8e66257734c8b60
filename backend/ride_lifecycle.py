"""
Carpool Platform - Ride Lifecycle

Status transitions of a ride: active -> completed and active -> cancelled.
Both are terminal; a ride in either state accepts no new bookings.
"""

import logging
from typing import Any, Dict, List, Tuple

from database import db
from exceptions import AuthorizationError, NotFoundError, StateError
from notifications import NotificationType, notify_many

logger = logging.getLogger(__name__)


def _transition(ride_id: int, requester: Dict[str, Any], to_status: str,
                allow_admin: bool, notify_statuses: tuple) -> Tuple[Dict[str, Any], List[int]]:
    with db.transaction() as cursor:
        ride = db.lock_ride(cursor, ride_id)
        if not ride:
            raise NotFoundError('Ride not found.')
        is_driver = ride['driver_id'] == requester['id']
        if not is_driver and not (allow_admin and requester.get('is_admin')):
            raise AuthorizationError('Only the driver can change the status of this ride.')
        if ride['status'] != 'active':
            raise StateError(f"Ride is already {ride['status']}.")
        if not db.set_ride_status(cursor, ride_id, 'active', to_status):
            raise StateError('Ride is no longer active.')
        ride['status'] = to_status
        recipients = db.passenger_ids(cursor, ride_id, notify_statuses)
    return ride, recipients


def complete_ride(driver: Dict[str, Any], ride_id: int) -> Dict[str, Any]:
    """
    Mark an active ride as completed (driver only) and tell every accepted
    passenger, who may now review it.

    Raises:
        NotFoundError, AuthorizationError, StateError
    """
    ride, passengers = _transition(ride_id, driver, 'completed',
                                   allow_admin=False, notify_statuses=('accepted',))
    logger.info("Driver %s completed ride %s", driver['id'], ride_id)
    notify_many(
        passengers,
        NotificationType.RIDE_COMPLETED,
        f"Your ride from {ride['origin']} to {ride['destination']} is complete. "
        f"You can now leave a review.",
        ride_id=ride_id
    )
    return ride


def cancel_ride(requester: Dict[str, Any], ride_id: int) -> Dict[str, Any]:
    """
    Cancel an active ride (driver or admin). Pending and accepted
    passengers are notified; their entries are kept for history.

    Raises:
        NotFoundError, AuthorizationError, StateError
    """
    ride, passengers = _transition(ride_id, requester, 'cancelled',
                                   allow_admin=True, notify_statuses=('pending', 'accepted'))
    logger.info("User %s cancelled ride %s", requester['id'], ride_id)
    notify_many(
        passengers,
        NotificationType.RIDE_CANCELLED,
        f"The ride from {ride['origin']} to {ride['destination']} on "
        f"{ride['departure_date']} was cancelled.",
        ride_id=ride_id
    )
    return ride
