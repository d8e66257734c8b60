"""
Carpool Platform - Authentication Module

This module handles password hashing, input validation, bearer tokens
and the decorators that protect API routes.
"""

import re
import secrets
from datetime import datetime, timedelta
from functools import wraps
from typing import Optional, Dict, Any

import bcrypt
from flask import g, jsonify, request

from config import config
from database import db


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: The plain text password to hash.

    Returns:
        The bcrypt hash as a string.
    """
    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, hashed: str) -> bool:
    """
    Verify a password against a bcrypt hash.

    Returns:
        True if the password matches, False otherwise (including a
        malformed hash).
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))
    except ValueError:
        return False


def validate_password_strength(password: str) -> tuple[bool, str]:
    """
    Validate password meets security requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one number

    Returns:
        Tuple of (is_valid, error_message)
    """
    if len(password) < 8:
        return False, "Password must be at least 8 characters long."

    if not re.search(r'[A-Z]', password):
        return False, "Password must contain at least one uppercase letter."

    if not re.search(r'[a-z]', password):
        return False, "Password must contain at least one lowercase letter."

    if not re.search(r'[0-9]', password):
        return False, "Password must contain at least one number."

    return True, ""


def validate_email(email: str) -> tuple[bool, str]:
    """Validate email format."""
    if not email:
        return False, "Email address is required."

    email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    if not re.match(email_pattern, email):
        return False, "Please enter a valid email address."

    return True, ""


def validate_phone(phone: str) -> tuple[bool, str]:
    """
    Validate phone number format.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not phone:
        return True, ""  # Phone is optional

    # Remove spaces and dashes for validation
    cleaned = re.sub(r'[\s\-\(\)]', '', phone)

    # Must be 10-15 digits, optionally starting with +
    if not re.match(r'^\+?[0-9]{10,15}$', cleaned):
        return False, "Please enter a valid phone number."

    return True, ""


def user_to_json(user: Dict[str, Any]) -> Dict[str, Any]:
    """Public shape of a user as sent to the web client."""
    return {
        'id': user['id'],
        'name': user['full_name'],
        'email': user['email'],
        'phone': user.get('phone'),
        'role': 'admin' if user.get('is_admin') else 'user',
        'createdAt': user.get('created_at'),
    }


# =============================================================================
# Bearer Tokens
# =============================================================================

def _bearer_token() -> Optional[str]:
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header[7:].strip() or None
    return None


def generate_api_token(user_id: int) -> str:
    """Generate an API token for a user and store it in the database."""
    token = secrets.token_urlsafe(32)
    expires_at = datetime.now() + timedelta(days=config.API_TOKEN_EXPIRY_DAYS)
    db.create_api_token(token, user_id, expires_at)
    # Occasionally clean up expired tokens
    db.cleanup_expired_tokens()
    return token


def get_user_from_token() -> Optional[Dict[str, Any]]:
    """Get user from Authorization header token."""
    token = _bearer_token()
    if token:
        return db.get_user_by_api_token(token)
    return None


def invalidate_token() -> bool:
    """Invalidate the current request's token (for logout)."""
    token = _bearer_token()
    if token:
        return db.delete_api_token(token)
    return False


def api_login_required(f):
    """
    Decorator to require a valid bearer token.
    Loads the user into `g.user`; 401 without a valid token, 403 when banned.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_user_from_token()
        if not user:
            return jsonify({'error': 'Authentication required'}), 401
        if user['is_banned']:
            return jsonify({'error': 'Your account has been suspended.'}), 403
        g.user = user
        return f(*args, **kwargs)
    return decorated_function


def api_admin_required(f):
    """Decorator to require admin role for API endpoints."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_user_from_token()
        if not user:
            return jsonify({'error': 'Authentication required'}), 401
        if user['is_banned'] or not user.get('is_admin'):
            return jsonify({'error': 'Admin access required'}), 403
        g.user = user
        return f(*args, **kwargs)
    return decorated_function


# =============================================================================
# Login Lockout
# =============================================================================

def check_login_attempts(user: Dict[str, Any]) -> tuple[bool, str]:
    """
    Check if user account is locked due to too many failed login attempts.

    Returns:
        Tuple of (is_allowed, error_message)
    """
    if user.get('lockout_until'):
        lockout_until = datetime.fromisoformat(str(user['lockout_until']))
        if datetime.now() < lockout_until:
            remaining_minutes = int((lockout_until - datetime.now()).total_seconds() / 60) + 1
            return False, f"Account is temporarily locked. Please try again in {remaining_minutes} minute(s)."
        else:
            # Lockout has expired, reset attempts
            db.reset_login_attempts(user['id'])

    return True, ""


def record_failed_login(user: Dict[str, Any]) -> Optional[str]:
    """
    Record a failed login attempt and potentially lock the account.

    Returns:
        Warning message if account is being locked, None otherwise.
    """
    attempts = db.increment_login_attempts(user['id'])

    if attempts >= config.MAX_LOGIN_ATTEMPTS:
        lockout_until = datetime.now() + timedelta(minutes=config.LOGIN_LOCKOUT_MINUTES)
        db.set_user_lockout(user['id'], lockout_until)
        return f"Too many failed attempts. Account locked for {config.LOGIN_LOCKOUT_MINUTES} minutes."

    remaining = config.MAX_LOGIN_ATTEMPTS - attempts
    if remaining <= 2:
        return f"Warning: {remaining} login attempt(s) remaining before account lockout."

    return None
