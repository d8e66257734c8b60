"""
Carpool Platform - Booking Manager

Seat requests against a ride and the driver's accept/reject decisions.

Every operation re-reads the ride and its accepted-seat sum inside one
locked transaction, so a decision racing a new request can never push the
accepted seats past the ride's total.
"""

import logging
from typing import Any, Dict

from database import db
from exceptions import (
    AuthorizationError, CapacityError, ConflictError, NotFoundError,
    StateError, ValidationError
)
from notifications import NotificationType, notify

logger = logging.getLogger(__name__)

ACCEPT = 'accept'
REJECT = 'reject'

DECISION_STATUS = {
    ACCEPT: 'accepted',
    REJECT: 'rejected',
}


def _parse_seats(seats) -> int:
    value = None
    if isinstance(seats, int) and not isinstance(seats, bool):
        value = seats
    elif isinstance(seats, str) and seats.strip().isdecimal():
        value = int(seats.strip())
    if value is None or value < 1:
        raise ValidationError('Seats must be a positive whole number.')
    return value


def _route(ride: dict) -> str:
    return f"{ride['origin']} to {ride['destination']} on {ride['departure_date']}"


def request_booking(ride_id: int, user: Dict[str, Any], seats=1) -> Dict[str, Any]:
    """
    Ask the driver for `seats` seats on a ride.

    Returns:
        The new pending passenger entry.

    Raises:
        ValidationError: seats is not a positive integer.
        NotFoundError: Unknown ride.
        AuthorizationError: The user is the ride's driver.
        StateError: The ride is not active.
        ConflictError: The user already has an entry on this ride.
        CapacityError: Not enough seats left.
    """
    with db.transaction() as cursor:
        ride = db.lock_ride(cursor, ride_id)
        if not ride:
            raise NotFoundError('Ride not found.')
        seats = _parse_seats(seats)
        if ride['driver_id'] == user['id']:
            raise AuthorizationError('You cannot book your own ride.')
        if ride['status'] != 'active':
            raise StateError('This ride is no longer available for booking.')
        if db.find_booking(cursor, ride_id, user['id']):
            raise ConflictError('You have already requested to join this ride.')

        available = ride['total_seats'] - db.accepted_seats(cursor, ride_id)
        if seats > available:
            raise CapacityError(f'Only {available} seat(s) available on this ride.')

        db.insert_booking(cursor, ride_id, user['id'], seats)
        booking = db.find_booking(cursor, ride_id, user['id'])

    logger.info("User %s requested %s seat(s) on ride %s", user['id'], seats, ride_id)
    notify(
        ride['driver_id'],
        NotificationType.BOOKING_REQUEST,
        f"{user['full_name']} requested {seats} seat(s) on your ride {_route(ride)}.",
        ride_id=ride_id
    )
    return booking


def decide_booking(ride_id: int, driver: Dict[str, Any], passenger_id: int, decision: str) -> Dict[str, Any]:
    """
    Accept or reject a pending passenger entry (driver only).

    A passenger entry is decided exactly once; deciding again fails.

    Raises:
        ValidationError: Unknown decision.
        NotFoundError: Unknown ride or passenger entry.
        AuthorizationError: The requester is not the driver.
        StateError: The ride is not active or the entry is not pending.
        CapacityError: Accepting would exceed the ride's seats.
    """
    if decision not in DECISION_STATUS:
        raise ValidationError(f"Decision must be '{ACCEPT}' or '{REJECT}'.")
    new_status = DECISION_STATUS[decision]

    with db.transaction() as cursor:
        ride = db.lock_ride(cursor, ride_id)
        if not ride:
            raise NotFoundError('Ride not found.')
        if ride['driver_id'] != driver['id']:
            raise AuthorizationError('Only the driver can accept or reject bookings.')
        if ride['status'] != 'active':
            raise StateError('Bookings can only be decided while the ride is active.')

        booking = db.find_booking(cursor, ride_id, passenger_id)
        if not booking:
            raise NotFoundError('Booking request not found.')
        if booking['status'] != 'pending':
            raise StateError(f"This booking was already {booking['status']}.")

        if decision == ACCEPT:
            accepted = db.accepted_seats(cursor, ride_id)
            if accepted + booking['seats'] > ride['total_seats']:
                raise CapacityError(
                    f"Only {ride['total_seats'] - accepted} seat(s) left; "
                    f"this request needs {booking['seats']}."
                )

        if not db.set_booking_status(cursor, booking['id'], 'pending', new_status):
            raise StateError('This booking is no longer pending.')
        booking['status'] = new_status

    logger.info("Driver %s %s passenger %s on ride %s", driver['id'], new_status, passenger_id, ride_id)
    if decision == ACCEPT:
        notify(
            passenger_id,
            NotificationType.BOOKING_ACCEPTED,
            f"Your booking for {_route(ride)} was accepted.",
            ride_id=ride_id
        )
    else:
        notify(
            passenger_id,
            NotificationType.BOOKING_REJECTED,
            f"Your booking for {_route(ride)} was declined.",
            ride_id=ride_id
        )
    return booking


def cancel_booking(ride_id: int, user: Dict[str, Any]) -> None:
    """
    Withdraw the caller's own pending request.

    Raises:
        NotFoundError: Unknown ride, or the user has no entry on it.
        StateError: The entry has already been decided.
    """
    with db.transaction() as cursor:
        ride = db.lock_ride(cursor, ride_id)
        if not ride:
            raise NotFoundError('Ride not found.')
        booking = db.find_booking(cursor, ride_id, user['id'])
        if not booking:
            raise NotFoundError('You have no booking on this ride.')
        if booking['status'] != 'pending':
            raise StateError('Only pending bookings can be cancelled.')
        if not db.delete_booking(cursor, booking['id'], 'pending'):
            raise StateError('This booking is no longer pending.')

    logger.info("User %s cancelled their booking on ride %s", user['id'], ride_id)
