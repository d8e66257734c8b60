"""
Carpool Platform - Configuration Module

This module loads all configuration from environment variables.
It validates that required variables are present and provides
sensible defaults for optional configuration.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class ConfigurationError(Exception):
    """Raised when a required configuration value is missing."""
    pass


def get_required(key: str) -> str:
    """
    Get a required environment variable.
    Raises ConfigurationError if the variable is not set or empty.
    """
    value = os.getenv(key)
    if not value or value.strip() == '' or value.startswith('your-'):
        raise ConfigurationError(
            f"Required environment variable '{key}' is not set. "
            f"Please check your .env file."
        )
    return value.strip()


def get_optional(key: str, default: str = '') -> str:
    """
    Get an optional environment variable with a default value.
    """
    value = os.getenv(key, default)
    return value.strip() if value else default


def get_int(key: str, default: int) -> int:
    """
    Get an environment variable as an integer.
    """
    value = os.getenv(key)
    if value:
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def get_float(key: str, default: float) -> float:
    """
    Get an environment variable as a float.
    """
    value = os.getenv(key)
    if value:
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


def get_bool(key: str, default: bool) -> bool:
    """Get an environment variable as a boolean."""
    value = os.getenv(key)
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in ('true', '1', 'yes')


class Config:
    """
    Application configuration loaded from environment variables.
    All configuration values are accessed through this class.
    """

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    # Flask secret key
    SECRET_KEY: str = get_required('SECRET_KEY')

    # Application display name
    APP_NAME: str = get_optional('APP_NAME', 'Carpool')

    # Root log level for the application loggers
    LOG_LEVEL: str = get_optional('LOG_LEVEL', 'INFO').upper()

    # -------------------------------------------------------------------------
    # Database Settings
    # -------------------------------------------------------------------------

    # Path to SQLite database file (ignored when DATABASE_URL is set)
    DATABASE_PATH: str = get_optional('DATABASE_PATH', 'carpool.db')

    # -------------------------------------------------------------------------
    # Geocoding (nearby ride matching)
    # -------------------------------------------------------------------------

    GEOCODING_ENABLED: bool = get_bool('GEOCODING_ENABLED', True)

    # Nominatim-compatible search endpoint
    GEOCODER_URL: str = get_optional('GEOCODER_URL', 'https://nominatim.openstreetmap.org/search')

    # Nominatim's usage policy requires an identifying user agent
    GEOCODER_USER_AGENT: str = get_optional('GEOCODER_USER_AGENT', 'carpool-backend/1.0')

    # Request timeout in seconds
    GEOCODER_TIMEOUT: float = get_float('GEOCODER_TIMEOUT', 5.0)

    # Pickup/dropoff radius for the "nearby" search bucket
    NEARBY_RADIUS_KM: float = get_float('NEARBY_RADIUS_KM', 10.0)

    # -------------------------------------------------------------------------
    # Admin Configuration
    # -------------------------------------------------------------------------

    # Email that gets admin privileges on registration
    ADMIN_EMAIL: str = get_optional('ADMIN_EMAIL', '')

    # -------------------------------------------------------------------------
    # Security Settings
    # -------------------------------------------------------------------------

    # Maximum file upload size in bytes (2MB)
    MAX_UPLOAD_SIZE: int = get_int('MAX_UPLOAD_SIZE', 2 * 1024 * 1024)

    # Allowed image extensions for vehicle photos
    ALLOWED_IMAGE_EXTENSIONS: set = {'png', 'jpg', 'jpeg', 'gif'}

    # Login attempt rate limiting
    MAX_LOGIN_ATTEMPTS: int = get_int('MAX_LOGIN_ATTEMPTS', 5)
    LOGIN_LOCKOUT_MINUTES: int = get_int('LOGIN_LOCKOUT_MINUTES', 15)

    # Bearer token lifetime
    API_TOKEN_EXPIRY_DAYS: int = get_int('API_TOKEN_EXPIRY_DAYS', 7)

    # bcrypt work factor
    BCRYPT_ROUNDS: int = get_int('BCRYPT_ROUNDS', 12)

    # Flask-Limiter
    RATELIMIT_ENABLED: bool = get_bool('RATELIMIT_ENABLED', True)
    LOGIN_RATE_LIMIT: str = get_optional('LOGIN_RATE_LIMIT', '10 per minute')

    # Comma separated list of origins allowed to call /api with credentials
    CORS_ORIGINS: list = [
        o.strip() for o in get_optional(
            'CORS_ORIGINS', 'http://localhost:5008,http://127.0.0.1:5008'
        ).split(',') if o.strip()
    ]

    # -------------------------------------------------------------------------
    # Upload Paths
    # -------------------------------------------------------------------------

    # Directory for uploaded files
    UPLOAD_FOLDER: str = get_optional('UPLOAD_FOLDER', 'static/uploads')

    @classmethod
    def is_geocoding_enabled(cls) -> bool:
        """Check if nearby matching may call the geocoding service."""
        return bool(cls.GEOCODING_ENABLED and cls.GEOCODER_URL)


# Create a global config instance for easy importing
config = Config()
