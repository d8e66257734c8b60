import pytest

import bookings
import reviews
import ride_lifecycle
import ride_registry
from exceptions import AuthorizationError, ConflictError, NotFoundError, StateError, ValidationError


@pytest.fixture
def completed_ride(ride, driver, passenger, other_passenger):
    bookings.request_booking(ride['id'], passenger)
    bookings.request_booking(ride['id'], other_passenger)
    bookings.decide_booking(ride['id'], driver, passenger['id'], bookings.ACCEPT)
    bookings.decide_booking(ride['id'], driver, other_passenger['id'], bookings.ACCEPT)
    ride_lifecycle.complete_ride(driver, ride['id'])
    return ride


def test_review_once_then_conflict(completed_ride, passenger):
    review = reviews.submit_review(completed_ride['id'], passenger, 5, 'Smooth ride')
    assert review['rating'] == 5
    assert review['comment'] == 'Smooth ride'

    with pytest.raises(ConflictError):
        reviews.submit_review(completed_ride['id'], passenger, 4)

    assert len(reviews.reviews_for_ride(completed_ride['id'])) == 1


def test_average_is_derived(completed_ride, passenger, other_passenger):
    reviews.submit_review(completed_ride['id'], passenger, 5)
    reviews.submit_review(completed_ride['id'], other_passenger, 4)

    ride = ride_registry.get_ride(completed_ride['id'])
    assert ride['average_rating'] == 4.5
    assert ride['review_count'] == 2
    assert reviews.average_rating(ride['reviews']) == 4.5


def test_active_ride_cannot_be_reviewed(ride, driver, passenger):
    bookings.request_booking(ride['id'], passenger)
    bookings.decide_booking(ride['id'], driver, passenger['id'], bookings.ACCEPT)

    with pytest.raises(StateError):
        reviews.submit_review(ride['id'], passenger, 5)


def test_cancelled_ride_cannot_be_reviewed(ride, driver, passenger):
    bookings.request_booking(ride['id'], passenger)
    bookings.decide_booking(ride['id'], driver, passenger['id'], bookings.ACCEPT)
    ride_lifecycle.cancel_ride(driver, ride['id'])

    with pytest.raises(StateError):
        reviews.submit_review(ride['id'], passenger, 5)


def test_only_accepted_passengers_review(ride, driver, passenger, other_passenger, make_user):
    bookings.request_booking(ride['id'], passenger)
    bookings.request_booking(ride['id'], other_passenger)
    bookings.decide_booking(ride['id'], driver, passenger['id'], bookings.ACCEPT)
    bookings.decide_booking(ride['id'], driver, other_passenger['id'], bookings.REJECT)
    ride_lifecycle.complete_ride(driver, ride['id'])

    with pytest.raises(AuthorizationError):
        reviews.submit_review(ride['id'], other_passenger, 3)
    with pytest.raises(AuthorizationError):
        reviews.submit_review(ride['id'], make_user(), 3)
    with pytest.raises(AuthorizationError):
        reviews.submit_review(ride['id'], driver, 3)


@pytest.mark.parametrize('rating', [0, 6, -1, 4.5, True, 'five', None, '\u00b2', '\u2075'])
def test_rating_must_be_whole_number_in_range(completed_ride, passenger, rating):
    with pytest.raises(ValidationError):
        reviews.submit_review(completed_ride['id'], passenger, rating)


def test_rating_from_form_string(completed_ride, passenger):
    assert reviews.submit_review(completed_ride['id'], passenger, '3')['rating'] == 3


def test_unknown_ride(passenger):
    with pytest.raises(NotFoundError):
        reviews.submit_review(9999, passenger, 5)
    with pytest.raises(NotFoundError):
        reviews.reviews_for_ride(9999)
