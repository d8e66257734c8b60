"""
Carpool Platform - Admin Routes

Platform statistics, user moderation and ride management for admins.
"""

import logging

from flask import Blueprint, g, jsonify, request

import ride_lifecycle
import ride_registry
from auth import api_admin_required, user_to_json
from database import db
from exceptions import AuthorizationError, NotFoundError, ValidationError
from routes_rides import ride_to_json

logger = logging.getLogger(__name__)

# Create blueprint
admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')

PER_PAGE = 20
RIDE_STATUSES = ('active', 'completed', 'cancelled')


def _page() -> int:
    """Parse the page query parameter, falling back to the first page."""
    try:
        return max(1, int(request.args.get('page', '1')))
    except ValueError:
        return 1


def _pagination(total: int, page: int) -> dict:
    return {
        'page': page,
        'perPage': PER_PAGE,
        'total': total,
        'totalPages': (total + PER_PAGE - 1) // PER_PAGE,
    }


def _moderated_user(user_id: int) -> dict:
    """The target of a ban; admins cannot moderate themselves or each other."""
    user = db.get_user_by_id(user_id)
    if not user:
        raise NotFoundError('User not found.')
    if user_id == g.user['id']:
        raise AuthorizationError('You cannot ban yourself.')
    if user['is_admin']:
        raise AuthorizationError('You cannot ban another admin.')
    return user


# =============================================================================
# Statistics
# =============================================================================

@admin_bp.route('/stats')
@api_admin_required
def stats():
    """Platform-wide counters."""
    return jsonify({'success': True, 'stats': db.get_platform_statistics()})


# =============================================================================
# User Management
# =============================================================================

@admin_bp.route('/users')
@api_admin_required
def users():
    """List users with optional search and banned filter."""
    page = _page()
    search = request.args.get('search', '').strip()
    filter_banned = request.args.get('banned', '')

    banned = None
    if filter_banned == 'true':
        banned = True
    elif filter_banned == 'false':
        banned = False

    users_list, total = db.get_all_users(
        page=page,
        per_page=PER_PAGE,
        search=search or None,
        filter_banned=banned
    )

    users_data = []
    for user in users_list:
        data = user_to_json(user)
        data['isBanned'] = bool(user['is_banned'])
        data['lastLogin'] = user.get('last_login')
        users_data.append(data)

    return jsonify({'users': users_data, 'pagination': _pagination(total, page)})


@admin_bp.route('/users/<int:user_id>/ban', methods=['POST'])
@api_admin_required
def ban_user(user_id):
    user = _moderated_user(user_id)
    db.ban_user(user_id)
    logger.info("Admin %s banned user %s", g.user['id'], user_id)
    return jsonify({'success': True, 'message': f"{user['full_name']} has been banned."})


@admin_bp.route('/users/<int:user_id>/unban', methods=['POST'])
@api_admin_required
def unban_user(user_id):
    user = db.get_user_by_id(user_id)
    if not user:
        raise NotFoundError('User not found.')
    db.unban_user(user_id)
    logger.info("Admin %s unbanned user %s", g.user['id'], user_id)
    return jsonify({'success': True, 'message': f"{user['full_name']} has been unbanned."})


@admin_bp.route('/users/<int:user_id>', methods=['DELETE'])
@api_admin_required
def delete_user(user_id):
    """
    Remove a user from the platform.

    Rides, bookings and reviews reference the account, so it is banned
    rather than deleted and its history stays intact.
    """
    user = _moderated_user(user_id)
    db.ban_user(user_id)
    logger.info("Admin %s removed user %s", g.user['id'], user_id)
    return jsonify({'success': True, 'message': f"{user['full_name']} has been removed."})


# =============================================================================
# Ride Management
# =============================================================================

@admin_bp.route('/rides')
@api_admin_required
def rides():
    """List all rides, optionally by status."""
    page = _page()
    status = request.args.get('status', '').strip() or None
    if status and status not in RIDE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(RIDE_STATUSES)}.")

    rides_list, total = ride_registry.all_rides(page=page, per_page=PER_PAGE, status=status)
    return jsonify({
        'rides': [ride_to_json(r) for r in rides_list],
        'pagination': _pagination(total, page),
    })


@admin_bp.route('/rides/<int:ride_id>/cancel', methods=['POST'])
@api_admin_required
def cancel_ride(ride_id):
    """Admin cancels a ride; its passengers are notified."""
    ride_lifecycle.cancel_ride(g.user, ride_id)
    return jsonify({'success': True, 'message': 'Ride cancelled. Passengers have been notified.'})


@admin_bp.route('/rides/<int:ride_id>', methods=['DELETE'])
@api_admin_required
def delete_ride(ride_id):
    ride_registry.delete_ride(g.user, ride_id)
    return jsonify({'success': True, 'message': 'Ride deleted'})
