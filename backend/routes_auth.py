"""
Carpool Platform - Account Routes

Signup, login, logout and the current user's profile.
"""

import logging

from flask import Blueprint, g, jsonify, request

from auth import (
    api_login_required, check_login_attempts, generate_api_token, hash_password,
    invalidate_token, record_failed_login, user_to_json, validate_email,
    validate_password_strength, validate_phone, verify_password
)
from config import config
from database import db
from exceptions import ConflictError, ValidationError
from extensions import json_body, limiter

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')
users_bp = Blueprint('users', __name__, url_prefix='/api/users')


@auth_bp.route('/signup', methods=['POST'])
@limiter.limit(lambda: config.LOGIN_RATE_LIMIT)
def signup():
    """Register a new account."""
    data = json_body()

    email = str(data.get('email') or '').strip().lower()
    password = str(data.get('password') or '')
    full_name = str(data.get('name') or data.get('full_name') or '').strip()
    phone = str(data.get('phone') or '').strip()

    errors = []
    if not full_name:
        errors.append('Please enter your name.')

    is_valid, message = validate_email(email)
    if not is_valid:
        errors.append(message)

    is_valid, message = validate_phone(phone)
    if not is_valid:
        errors.append(message)

    is_valid, message = validate_password_strength(password)
    if not is_valid:
        errors.append(message)

    if errors:
        raise ValidationError('Invalid signup details.', details=errors)

    if db.get_user_by_email(email):
        raise ConflictError('An account with this email already exists.')

    user_id = db.create_user(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name,
        phone=phone or None
    )
    logger.info("Registered user %s", user_id)

    return jsonify({
        'success': True,
        'message': 'Signup successful! You can now log in.',
        'user': user_to_json(db.get_user_by_id(user_id))
    }), 201


@auth_bp.route('/login', methods=['POST'])
@limiter.limit(lambda: config.LOGIN_RATE_LIMIT)
def login():
    """Exchange email and password for a bearer token."""
    data = json_body()
    email = str(data.get('email') or '').strip().lower()
    password = str(data.get('password') or '')

    if not email or not password:
        raise ValidationError('Email and password are required.')

    # Get user first to check login attempts
    user = db.get_user_by_email(email)

    if user:
        is_allowed, lockout_message = check_login_attempts(user)
        if not is_allowed:
            return jsonify({'error': lockout_message}), 429

    if not user or not verify_password(password, user['password_hash']):
        warning = record_failed_login(user) if user else None
        payload = {'error': 'Invalid email or password'}
        if warning:
            payload['warning'] = warning
        return jsonify(payload), 401

    if user['is_banned']:
        return jsonify({'error': 'Your account has been suspended.'}), 403

    # ADMIN_EMAIL may be configured after the account was created
    if config.ADMIN_EMAIL and email == config.ADMIN_EMAIL.lower() and not user['is_admin']:
        db.set_user_admin(user['id'], True)
        user['is_admin'] = 1

    db.reset_login_attempts(user['id'])
    db.update_last_login(user['id'])
    token = generate_api_token(user['id'])
    logger.info("User %s logged in", user['id'])

    return jsonify({
        'success': True,
        'token': token,
        'user': user_to_json(user)
    })


@auth_bp.route('/logout', methods=['POST'])
@api_login_required
def logout():
    """Revoke the bearer token used for this request."""
    invalidate_token()
    return jsonify({'success': True})


@users_bp.route('/profile')
@api_login_required
def get_profile():
    """Get current user's profile."""
    profile = user_to_json(g.user)
    profile['rating'] = db.get_driver_average_rating(g.user['id'])
    return jsonify(profile)


@users_bp.route('/profile', methods=['PUT'])
@api_login_required
def update_profile():
    """Update the current user's name and phone."""
    data = json_body()
    updates = {}
    errors = []

    if 'name' in data or 'full_name' in data:
        full_name = str(data.get('name') or data.get('full_name') or '').strip()
        if not full_name:
            errors.append('Name cannot be empty.')
        updates['full_name'] = full_name

    if 'phone' in data:
        phone = str(data.get('phone') or '').strip()
        is_valid, message = validate_phone(phone)
        if not is_valid:
            errors.append(message)
        updates['phone'] = phone or None

    if errors:
        raise ValidationError('Invalid profile details.', details=errors)

    if updates:
        db.update_user(g.user['id'], **updates)

    return jsonify({
        'success': True,
        'user': user_to_json(db.get_user_by_id(g.user['id']))
    })
