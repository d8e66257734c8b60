"""Flask extensions and request helpers shared by the app factory and the blueprints."""

from flask import request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from exceptions import ValidationError

# Initialised against the app in create_app()
limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def json_body() -> dict:
    """The request's JSON object, or {} when no parseable JSON was sent."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object.')
    return data
