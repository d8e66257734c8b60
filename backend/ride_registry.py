"""
Carpool Platform - Ride Registry

Creating, searching, reading and deleting ride offers.

Search results come in two tiers: rides whose origin/destination match the
query text exactly, and rides whose geocoded pickup/dropoff lie within
`NEARBY_RADIUS_KM` of the geocoded query. The second tier keeps a search
useful when nobody offers the exact same trip.
"""

import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from config import config
from database import db
from exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from geo import calculate_distance_km, geocoder, normalize_place

logger = logging.getLogger(__name__)

MAX_SEATS = 50
MAX_PRICE = 100000


# =============================================================================
# Helper Functions
# =============================================================================

def _first(data: dict, *keys, default=None):
    """Return the first present, non-empty value among alias keys."""
    for key in keys:
        value = data.get(key)
        if value is not None and value != '':
            return value
    return default


def _parse_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _parse_float(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _parse_date(value: str) -> Optional[date]:
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except ValueError:
        return None


def _parse_coordinate(data: dict, *keys) -> Tuple[Optional[float], Optional[str]]:
    raw = _first(data, *keys)
    if raw is None:
        return None, None
    value = _parse_float(raw)
    if value is None:
        return None, f'{keys[0]} must be a number.'
    limit = 90 if keys[0].endswith('Lat') else 180
    if abs(value) > limit:
        return None, f'{keys[0]} must be between -{limit} and {limit}.'
    return value, None


def validate_ride_data(form_data: dict) -> Tuple[bool, list, dict]:
    """
    Validate ride offer data.

    Accepts both the camelCase field names sent by the web client
    (from, to, departureDate, ...) and snake_case names.

    Args:
        form_data: The submitted fields.

    Returns:
        Tuple of (is_valid, errors, cleaned_data)
    """
    errors = []
    cleaned: Dict[str, Any] = {}

    # Origin
    origin = str(_first(form_data, 'from', 'origin', default='')).strip()
    if not origin:
        errors.append('Please enter the pickup location.')
    else:
        cleaned['origin'] = origin

    # Destination
    destination = str(_first(form_data, 'to', 'destination', default='')).strip()
    if not destination:
        errors.append('Please enter the destination.')
    else:
        cleaned['destination'] = destination

    # Departure date and time, together in the future
    departure_date_str = str(_first(form_data, 'departureDate', 'departure_date', default='')).strip()
    departure_time_str = str(_first(form_data, 'departureTime', 'departure_time', default='')).strip()
    departure_date = None
    departure_time = None

    if not departure_date_str:
        errors.append('Please select a departure date.')
    else:
        departure_date = _parse_date(departure_date_str)
        if departure_date is None:
            errors.append('Invalid date format.')

    if not departure_time_str:
        errors.append('Please select a departure time.')
    else:
        try:
            departure_time = datetime.strptime(departure_time_str[:5], '%H:%M').time()
        except ValueError:
            errors.append('Invalid time format.')

    if departure_date and departure_time:
        if datetime.combine(departure_date, departure_time) <= datetime.now():
            errors.append('Departure must be in the future.')
        else:
            cleaned['departure_date'] = departure_date.isoformat()
            cleaned['departure_time'] = departure_time.strftime('%H:%M')

    # Seats
    seats = _parse_int(_first(form_data, 'availableSeats', 'total_seats', 'seats'))
    if seats is None:
        errors.append('Please enter the number of seats.')
    elif seats < 1:
        errors.append('A ride must offer at least one seat.')
    elif seats > MAX_SEATS:
        errors.append(f'A ride can offer at most {MAX_SEATS} seats.')
    else:
        cleaned['total_seats'] = seats

    # Price
    price = _parse_float(_first(form_data, 'pricePerSeat', 'price_per_seat'))
    if price is None:
        errors.append('Please enter a valid price.')
    elif price < 0:
        errors.append('Price cannot be negative.')
    elif price > MAX_PRICE:
        errors.append(f'Price cannot exceed {MAX_PRICE}.')
    else:
        cleaned['price_per_seat'] = round(price, 2)

    # Optional coordinates supplied by the client's place picker
    for field, keys in (
        ('origin_lat', ('originLat', 'origin_lat')),
        ('origin_lng', ('originLng', 'origin_lng')),
        ('destination_lat', ('destinationLat', 'destination_lat')),
        ('destination_lng', ('destinationLng', 'destination_lng')),
    ):
        value, error = _parse_coordinate(form_data, *keys)
        if error:
            errors.append(error)
        cleaned[field] = value

    cleaned['description'] = str(_first(form_data, 'description', 'notes', default='')).strip()
    cleaned['vehicle_model'] = str(_first(form_data, 'vehicleModel', 'vehicle_model', default='')).strip()
    # Plates are stored upper-case without spaces
    vehicle_number = str(_first(form_data, 'vehicleNumber', 'vehicle_number', default=''))
    cleaned['vehicle_number'] = ''.join(vehicle_number.split()).upper()

    return len(errors) == 0, errors, cleaned


def _fill_coordinates(cleaned: dict) -> None:
    """Geocode origin/destination when the client did not send coordinates."""
    for prefix, place in (('origin', cleaned['origin']), ('destination', cleaned['destination'])):
        if cleaned.get(f'{prefix}_lat') is not None and cleaned.get(f'{prefix}_lng') is not None:
            continue
        coords = geocoder.geocode(place)
        if coords:
            cleaned[f'{prefix}_lat'], cleaned[f'{prefix}_lng'] = coords
        else:
            cleaned[f'{prefix}_lat'] = cleaned[f'{prefix}_lng'] = None


def _ride_point(ride: dict, prefix: str) -> Optional[Tuple[float, float]]:
    lat, lng = ride.get(f'{prefix}_lat'), ride.get(f'{prefix}_lng')
    if lat is not None and lng is not None:
        return float(lat), float(lng)
    return geocoder.geocode(ride[prefix])


# =============================================================================
# Registry Operations
# =============================================================================

def create_ride(driver: Dict[str, Any], details: dict, vehicle_photo: Optional[str] = None) -> Dict[str, Any]:
    """
    Offer a new ride.

    Raises:
        ValidationError: With one message per invalid field.
    """
    is_valid, errors, cleaned = validate_ride_data(details)
    if not is_valid:
        raise ValidationError('Invalid ride details.', details=errors)

    _fill_coordinates(cleaned)

    ride_id = db.create_ride(driver_id=driver['id'], vehicle_photo=vehicle_photo, **cleaned)
    logger.info("Driver %s created ride %s (%s -> %s)",
                driver['id'], ride_id, cleaned['origin'], cleaned['destination'])
    return get_ride(ride_id)


def get_ride(ride_id: int) -> Dict[str, Any]:
    """Get a ride with its passenger entries and reviews."""
    ride = db.get_ride_by_id(ride_id)
    if not ride:
        raise NotFoundError('Ride not found.')
    ride['passengers'] = db.get_bookings_by_ride(ride_id)
    ride['reviews'] = db.get_reviews_for_ride(ride_id)
    return ride


def rides_for_driver(driver_id: int) -> List[Dict[str, Any]]:
    """The driver's rides, each with its passenger entries."""
    rides = db.get_rides_by_driver(driver_id)
    for ride in rides:
        ride['passengers'] = db.get_bookings_by_ride(ride['id'])
    return rides


def rides_for_passenger(user_id: int) -> List[Dict[str, Any]]:
    """Rides the user has booked, with their booking status."""
    return db.get_rides_by_passenger(user_id)


def list_rides(filters: dict) -> Dict[str, List[Dict[str, Any]]]:
    """
    Search active rides.

    Args:
        filters: Optional from, to, date (YYYY-MM-DD), minSeats,
            minPrice and maxPrice.

    Returns:
        {'exact': [...], 'nearby': [...]}. Nearby rides carry
        `from_distance`/`to_distance` in km.
    """
    origin = str(filters.get('from') or '').strip()
    destination = str(filters.get('to') or '').strip()

    errors = []
    departure_date = None
    if filters.get('date'):
        parsed = _parse_date(filters['date'])
        if parsed is None:
            errors.append('date must be formatted YYYY-MM-DD.')
        else:
            departure_date = parsed.isoformat()

    numbers = {}
    for key, parse in (('minSeats', _parse_int), ('minPrice', _parse_float), ('maxPrice', _parse_float)):
        raw = filters.get(key)
        if raw is None or raw == '':
            numbers[key] = None
            continue
        numbers[key] = parse(raw)
        if numbers[key] is None:
            errors.append(f'{key} must be a number.')

    if errors:
        raise ValidationError('Invalid search filters.', details=errors)

    candidates = db.search_rides(
        today=date.today().isoformat(),
        departure_date=departure_date,
        min_price=numbers['minPrice'],
        max_price=numbers['maxPrice']
    )
    if numbers['minSeats']:
        candidates = [r for r in candidates if r['available_seats'] >= numbers['minSeats']]

    if not origin and not destination:
        return {'exact': candidates, 'nearby': []}

    wanted_from, wanted_to = normalize_place(origin), normalize_place(destination)
    exact, rest = [], []
    for ride in candidates:
        if ((not origin or normalize_place(ride['origin']) == wanted_from)
                and (not destination or normalize_place(ride['destination']) == wanted_to)):
            exact.append(ride)
        else:
            rest.append(ride)

    return {'exact': exact, 'nearby': _nearby_matches(rest, origin, destination)}


def _nearby_matches(rides: List[dict], origin: str, destination: str) -> List[Dict[str, Any]]:
    if not rides:
        return []

    query_from = geocoder.geocode(origin) if origin else None
    query_to = geocoder.geocode(destination) if destination else None
    if (origin and query_from is None) or (destination and query_to is None):
        return []

    radius = config.NEARBY_RADIUS_KM
    matches = []
    for ride in rides:
        total = 0.0
        if query_from:
            pickup = _ride_point(ride, 'origin')
            if pickup is None:
                continue
            ride['from_distance'] = round(calculate_distance_km(*query_from, *pickup), 2)
            if ride['from_distance'] > radius:
                continue
            total += ride['from_distance']
        if query_to:
            dropoff = _ride_point(ride, 'destination')
            if dropoff is None:
                continue
            ride['to_distance'] = round(calculate_distance_km(*query_to, *dropoff), 2)
            if ride['to_distance'] > radius:
                continue
            total += ride['to_distance']
        matches.append((total, ride))

    matches.sort(key=lambda m: m[0])
    return [ride for _, ride in matches]


def all_rides(page: int = 1, per_page: int = 20, status: Optional[str] = None):
    """Every ride, newest first (admin)."""
    return db.get_all_rides(page=page, per_page=per_page, status=status)


def delete_ride(requester: Dict[str, Any], ride_id: int) -> None:
    """
    Delete a ride offer.

    Only the driver (or an admin) may delete, and never while a passenger
    holds an accepted booking.

    Raises:
        NotFoundError, AuthorizationError, ConflictError
    """
    with db.transaction() as cursor:
        ride = db.lock_ride(cursor, ride_id)
        if not ride:
            raise NotFoundError('Ride not found.')
        if ride['driver_id'] != requester['id'] and not requester.get('is_admin'):
            raise AuthorizationError('Only the driver can delete this ride.')
        if db.accepted_seats(cursor, ride_id) > 0:
            raise ConflictError('This ride has accepted passengers and cannot be deleted.')
        db.delete_ride(cursor, ride_id)

    logger.info("User %s deleted ride %s", requester['id'], ride_id)
