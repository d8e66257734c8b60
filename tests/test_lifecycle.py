import pytest

import bookings
import ride_lifecycle
import ride_registry
from database import db
from exceptions import AuthorizationError, NotFoundError, StateError


def test_complete_ride(ride, driver):
    completed = ride_lifecycle.complete_ride(driver, ride['id'])

    assert completed['status'] == 'completed'
    assert ride_registry.get_ride(ride['id'])['status'] == 'completed'


def test_only_driver_completes(ride, passenger, admin):
    with pytest.raises(AuthorizationError):
        ride_lifecycle.complete_ride(passenger, ride['id'])
    with pytest.raises(AuthorizationError):
        ride_lifecycle.complete_ride(admin, ride['id'])


def test_complete_unknown_ride(driver):
    with pytest.raises(NotFoundError):
        ride_lifecycle.complete_ride(driver, 9999)


def test_complete_is_terminal(ride, driver):
    ride_lifecycle.complete_ride(driver, ride['id'])

    with pytest.raises(StateError):
        ride_lifecycle.complete_ride(driver, ride['id'])
    with pytest.raises(StateError):
        ride_lifecycle.cancel_ride(driver, ride['id'])


def test_completed_ride_refuses_bookings_and_decisions(ride, driver, passenger, other_passenger):
    bookings.request_booking(ride['id'], passenger)
    ride_lifecycle.complete_ride(driver, ride['id'])

    with pytest.raises(StateError):
        bookings.request_booking(ride['id'], other_passenger)
    with pytest.raises(StateError):
        bookings.decide_booking(ride['id'], driver, passenger['id'], bookings.ACCEPT)


def test_complete_notifies_accepted_passengers_only(ride, driver, passenger, other_passenger):
    bookings.request_booking(ride['id'], passenger)
    bookings.request_booking(ride['id'], other_passenger)
    bookings.decide_booking(ride['id'], driver, passenger['id'], bookings.ACCEPT)

    ride_lifecycle.complete_ride(driver, ride['id'])

    assert [n['type'] for n in db.get_notifications(passenger['id'])] == [
        'ride_completed', 'booking_accepted'
    ]
    assert db.get_notifications(other_passenger['id']) == []


def test_cancel_ride_by_driver_notifies_pending_and_accepted(ride, driver, passenger, other_passenger):
    bookings.request_booking(ride['id'], passenger)
    bookings.request_booking(ride['id'], other_passenger)
    bookings.decide_booking(ride['id'], driver, passenger['id'], bookings.ACCEPT)

    cancelled = ride_lifecycle.cancel_ride(driver, ride['id'])

    assert cancelled['status'] == 'cancelled'
    assert db.get_notifications(passenger['id'])[0]['type'] == 'ride_cancelled'
    assert db.get_notifications(other_passenger['id'])[0]['type'] == 'ride_cancelled'
    # Entries are kept for history
    assert len(db.get_bookings_by_ride(ride['id'])) == 2


def test_admin_may_cancel(ride, admin):
    assert ride_lifecycle.cancel_ride(admin, ride['id'])['status'] == 'cancelled'


def test_stranger_may_not_cancel(ride, passenger):
    with pytest.raises(AuthorizationError):
        ride_lifecycle.cancel_ride(passenger, ride['id'])
