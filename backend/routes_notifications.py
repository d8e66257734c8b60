"""
Carpool Platform - Notification Routes
"""

from flask import Blueprint, g, jsonify, request

import notifications
from auth import api_login_required

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


@notifications_bp.route('')
@api_login_required
def list_notifications():
    """The current user's notifications, newest first."""
    limit = request.args.get('limit', 50, type=int)
    limit = max(1, min(limit, 200))
    return jsonify(notifications.list_notifications(g.user['id'], limit=limit))


@notifications_bp.route('/read-all', methods=['PUT'])
@api_login_required
def read_all():
    updated = notifications.mark_all_read(g.user['id'])
    return jsonify({'success': True, 'updated': updated})


@notifications_bp.route('/unread-count')
@api_login_required
def unread_count():
    return jsonify({'count': notifications.unread_count(g.user['id'])})
