"""
Carpool Platform - Ride Routes

JSON endpoints for offering, searching, booking, completing and reviewing
rides. Service errors propagate as RideShareError and are rendered by the
app-level error handler.
"""

from typing import Any, Dict

from flask import Blueprint, g, jsonify, request

import bookings
import reviews
import ride_lifecycle
import ride_registry
from auth import api_login_required
from exceptions import ValidationError
from extensions import json_body
from uploads import save_uploaded_file

rides_bp = Blueprint('rides', __name__, url_prefix='/api/rides')


# =============================================================================
# Serialization
# =============================================================================

def passenger_to_json(booking: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'id': booking['id'],
        'user': {
            'id': booking['passenger_id'],
            'name': booking.get('passenger_name'),
            'email': booking.get('passenger_email'),
            'phone': booking.get('passenger_phone'),
        },
        'bookedSeats': booking['seats'],
        'status': booking['status'],
        'bookedAt': booking.get('created_at'),
    }


def review_to_json(review: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'id': review['id'],
        'user': {'id': review['user_id'], 'name': review.get('reviewer_name')},
        'rating': review['rating'],
        'comment': review.get('comment'),
        'createdAt': review.get('created_at'),
    }


def ride_to_json(ride: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shape a ride row for the web client.

    Optional keys (passengers, reviews, search distances, the caller's own
    booking) are included only when the row carries them.
    """
    data = {
        'id': ride['id'],
        'from': ride['origin'],
        'to': ride['destination'],
        'departureDate': ride['departure_date'],
        'departureTime': ride['departure_time'],
        'totalSeats': ride['total_seats'],
        'availableSeats': ride['available_seats'],
        'pricePerSeat': ride['price_per_seat'],
        'description': ride.get('description'),
        'vehicleModel': ride.get('vehicle_model'),
        'vehicleNumber': ride.get('vehicle_number'),
        'vehiclePhoto': ride.get('vehicle_photo'),
        'status': ride['status'],
        'driver': {
            'id': ride['driver_id'],
            'name': ride.get('driver_name'),
            'email': ride.get('driver_email'),
            'phone': ride.get('driver_phone'),
        },
        'averageRating': ride['average_rating'],
        'reviewCount': ride['review_count'],
        'createdAt': ride.get('created_at'),
    }
    if 'passengers' in ride:
        data['passengers'] = [passenger_to_json(b) for b in ride['passengers']]
    if 'reviews' in ride:
        data['reviews'] = [review_to_json(r) for r in ride['reviews']]
    if 'from_distance' in ride:
        data['fromDistance'] = ride['from_distance']
    if 'to_distance' in ride:
        data['toDistance'] = ride['to_distance']
    if 'booking_status' in ride:
        data['userBookingStatus'] = ride['booking_status']
        data['userBookedSeats'] = ride['booked_seats']
        data['bookedAt'] = ride['booked_at']
        data['hasReviewed'] = ride['has_reviewed']
    return data


def _request_data() -> dict:
    """JSON body, or form fields for multipart submissions."""
    if request.is_json:
        return json_body()
    return request.form.to_dict()


def _passenger_id(data: dict) -> int:
    raw = data.get('passengerId', data.get('passenger_id'))
    if isinstance(raw, bool):
        raw = None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError('passengerId is required.')


# =============================================================================
# Offer & Search
# =============================================================================

@rides_bp.route('', methods=['POST'])
@api_login_required
def create_ride():
    """Offer a ride. Accepts JSON, or multipart with a `vehiclePhoto` file."""
    data = _request_data()

    # Reject bad input before anything is written to the upload folder
    is_valid, errors, _ = ride_registry.validate_ride_data(data)
    if not is_valid:
        raise ValidationError('Invalid ride details.', details=errors)

    vehicle_photo = save_uploaded_file(request.files.get('vehiclePhoto'), 'vehicles') or None
    ride = ride_registry.create_ride(g.user, data, vehicle_photo=vehicle_photo)
    return jsonify({'success': True, 'ride': ride_to_json(ride)}), 201


@rides_bp.route('/search')
@api_login_required
def search_rides():
    """Search active rides; results are split into exact and nearby matches."""
    results = ride_registry.list_rides(request.args.to_dict())
    return jsonify({
        'exactMatches': [ride_to_json(r) for r in results['exact']],
        'nearbyMatches': [ride_to_json(r) for r in results['nearby']],
    })


@rides_bp.route('/my-rides')
@api_login_required
def my_rides():
    """Rides offered by the current user, with passenger entries."""
    rides = ride_registry.rides_for_driver(g.user['id'])
    return jsonify([ride_to_json(r) for r in rides])


@rides_bp.route('/my-bookings')
@api_login_required
def my_bookings():
    """Rides the current user has booked."""
    rides = ride_registry.rides_for_passenger(g.user['id'])
    return jsonify([ride_to_json(r) for r in rides])


@rides_bp.route('/<int:ride_id>')
@api_login_required
def get_ride(ride_id):
    return jsonify(ride_to_json(ride_registry.get_ride(ride_id)))


@rides_bp.route('/<int:ride_id>', methods=['DELETE'])
@api_login_required
def delete_ride(ride_id):
    ride_registry.delete_ride(g.user, ride_id)
    return jsonify({'success': True, 'message': 'Ride deleted'})


# =============================================================================
# Bookings
# =============================================================================

@rides_bp.route('/<int:ride_id>/book', methods=['POST'])
@api_login_required
def book_ride(ride_id):
    """Request seats on a ride."""
    data = json_body()
    booking = bookings.request_booking(ride_id, g.user, data.get('seats', 1))
    return jsonify({
        'success': True,
        'message': 'Booking request sent to the driver.',
        'booking': {'id': booking['id'], 'bookedSeats': booking['seats'], 'status': booking['status']}
    }), 201


@rides_bp.route('/<int:ride_id>/accept', methods=['POST'])
@api_login_required
def accept_booking(ride_id):
    data = json_body()
    bookings.decide_booking(ride_id, g.user, _passenger_id(data), bookings.ACCEPT)
    return jsonify({'success': True, 'message': 'Booking accepted'})


@rides_bp.route('/<int:ride_id>/reject', methods=['POST'])
@api_login_required
def reject_booking(ride_id):
    data = json_body()
    bookings.decide_booking(ride_id, g.user, _passenger_id(data), bookings.REJECT)
    return jsonify({'success': True, 'message': 'Booking rejected'})


@rides_bp.route('/<int:ride_id>/cancel', methods=['POST'])
@api_login_required
def cancel_booking(ride_id):
    """Withdraw the current user's pending request."""
    bookings.cancel_booking(ride_id, g.user)
    return jsonify({'success': True, 'message': 'Booking cancelled'})


# =============================================================================
# Lifecycle & Reviews
# =============================================================================

@rides_bp.route('/<int:ride_id>/complete', methods=['POST'])
@api_login_required
def complete_ride(ride_id):
    ride_lifecycle.complete_ride(g.user, ride_id)
    return jsonify({'success': True, 'ride': ride_to_json(ride_registry.get_ride(ride_id))})


@rides_bp.route('/<int:ride_id>/cancel-ride', methods=['POST'])
@api_login_required
def cancel_ride(ride_id):
    ride_lifecycle.cancel_ride(g.user, ride_id)
    return jsonify({'success': True, 'ride': ride_to_json(ride_registry.get_ride(ride_id))})


@rides_bp.route('/<int:ride_id>/review', methods=['POST'])
@api_login_required
def review_ride(ride_id):
    data = json_body()
    review = reviews.submit_review(ride_id, g.user, data.get('rating'), data.get('comment'))
    return jsonify({'success': True, 'review': {
        'id': review['id'],
        'rating': review['rating'],
        'comment': review['comment'],
    }}), 201


@rides_bp.route('/<int:ride_id>/reviews')
@api_login_required
def ride_reviews(ride_id):
    items = reviews.reviews_for_ride(ride_id)
    return jsonify({
        'averageRating': reviews.average_rating(items),
        'reviews': [review_to_json(r) for r in items],
    })
