import logging
import os

from flask import Flask, jsonify, request

from config import config
from database import db
from exceptions import RideShareError
from extensions import limiter
from routes_admin import admin_bp
from routes_auth import auth_bp, users_bp
from routes_notifications import notifications_bp
from routes_rides import rides_bp

logger = logging.getLogger(__name__)

CORS_METHODS = 'GET, POST, PUT, DELETE, OPTIONS'
CORS_HEADERS = 'Content-Type, Authorization, X-Requested-With, Accept'

# =============================================================================

def create_app():
    """Create and configure the Flask application."""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    app = Flask(__name__)

    # Configure Flask
    app.secret_key = config.SECRET_KEY
    app.config['MAX_CONTENT_LENGTH'] = config.MAX_UPLOAD_SIZE
    app.config['UPLOAD_FOLDER'] = config.UPLOAD_FOLDER
    app.config['RATELIMIT_ENABLED'] = config.RATELIMIT_ENABLED

    # Ensure upload folder exists
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(rides_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(admin_bp)

    # Register error handlers (JSON responses for API)
    @app.errorhandler(RideShareError)
    def ride_share_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(413)
    def file_too_large(error):
        limit_mb = config.MAX_UPLOAD_SIZE // (1024 * 1024)
        return jsonify({'error': f'File is too large. Maximum size is {limit_mb}MB.'}), 413

    @app.errorhandler(429)
    def rate_limited(error):
        return jsonify({'error': 'Too many requests. Please slow down.'}), 429

    @app.errorhandler(500)
    def internal_error(error):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({'error': 'Internal server error'}), 500

    # CORS support for API routes
    @app.after_request
    def after_request(response):
        origin = request.headers.get('Origin', '')
        if request.path.startswith('/api') and origin in config.CORS_ORIGINS:
            response.headers['Access-Control-Allow-Origin'] = origin
            response.headers['Access-Control-Allow-Credentials'] = 'true'
            response.headers['Access-Control-Allow-Methods'] = CORS_METHODS
            response.headers['Access-Control-Allow-Headers'] = CORS_HEADERS
            response.headers['Vary'] = 'Origin'
        return response

    @app.before_request
    def handle_preflight():
        if request.method == 'OPTIONS' and request.path.startswith('/api'):
            response = app.make_default_options_response()
            response.headers['Access-Control-Max-Age'] = '86400'
            return response

    # Initialize Flask-Limiter after app creation
    limiter.init_app(app)
    return app

# Create app instance

app = create_app()


# =============================================================================
# Run Application
# =============================================================================

if __name__ == '__main__':
    logger.info("Starting %s...", config.APP_NAME)
    logger.info("Database: %s", 'PostgreSQL' if db.use_postgres else config.DATABASE_PATH)
    logger.info("Geocoding: %s", 'Enabled' if config.is_geocoding_enabled() else 'Disabled')

    # Run the development server
    app.run(
        host='0.0.0.0',
        port=int(os.environ.get('PORT', 5008)),
        debug=False
    )
