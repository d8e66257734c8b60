"""
Carpool Platform - Reviews

Passengers rate a completed ride once. A ride's average rating is always
derived from its reviews on read.
"""

import logging
from typing import Any, Dict, List, Optional

from database import db
from exceptions import AuthorizationError, ConflictError, NotFoundError, StateError, ValidationError

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 1000


def validate_rating(rating) -> int:
    """Ratings are whole numbers from 1 to 5."""
    if isinstance(rating, bool) or not isinstance(rating, (int, str)):
        raise ValidationError('Rating must be a whole number between 1 and 5.')
    if isinstance(rating, str):
        if not rating.strip().isdecimal():
            raise ValidationError('Rating must be a whole number between 1 and 5.')
        rating = int(rating.strip())
    if rating < 1 or rating > 5:
        raise ValidationError('Rating must be a whole number between 1 and 5.')
    return rating


def submit_review(ride_id: int, user: Dict[str, Any], rating, comment: Optional[str] = None) -> Dict[str, Any]:
    """
    Review a completed ride as one of its accepted passengers.

    Raises:
        ValidationError: Rating outside 1..5 or comment too long.
        NotFoundError: Unknown ride.
        StateError: The ride is not completed.
        AuthorizationError: The user was not an accepted passenger.
        ConflictError: The user already reviewed this ride.
    """
    comment = str(comment or '').strip()

    with db.transaction() as cursor:
        ride = db.lock_ride(cursor, ride_id)
        if not ride:
            raise NotFoundError('Ride not found.')
        rating = validate_rating(rating)
        if len(comment) > MAX_COMMENT_LENGTH:
            raise ValidationError(f'Comment must be at most {MAX_COMMENT_LENGTH} characters.')
        if ride['status'] != 'completed':
            raise StateError('Only completed rides can be reviewed.')
        booking = db.find_booking(cursor, ride_id, user['id'])
        if not booking or booking['status'] != 'accepted':
            raise AuthorizationError('Only accepted passengers can review this ride.')
        if db.review_exists(cursor, ride_id, user['id']):
            raise ConflictError('You have already reviewed this ride.')
        review_id = db.insert_review(cursor, ride_id, user['id'], rating, comment or None)

    logger.info("User %s rated ride %s with %s", user['id'], ride_id, rating)
    return {
        'id': review_id,
        'ride_id': ride_id,
        'user_id': user['id'],
        'rating': rating,
        'comment': comment or None,
    }


def reviews_for_ride(ride_id: int) -> List[Dict[str, Any]]:
    if not db.get_ride_by_id(ride_id):
        raise NotFoundError('Ride not found.')
    return db.get_reviews_for_ride(ride_id)


def average_rating(reviews: List[Dict[str, Any]]) -> float:
    """Mean rating of a list of reviews, 0.0 when there are none."""
    if not reviews:
        return 0.0
    return round(sum(r['rating'] for r in reviews) / len(reviews), 1)
